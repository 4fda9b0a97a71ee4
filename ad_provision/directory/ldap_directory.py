"""
Active Directory backend built on ldap3.

This module connects to a domain controller and implements the directory
operations the reconciliation engine needs: OU existence and creation, account
lookup, creation and deletion, expiry settings and group membership.
"""

import logging
import ssl
import time
from typing import Dict, Any, Optional

from ldap3 import Server, Connection, ALL, BASE, SUBTREE, MODIFY_REPLACE, Tls
from ldap3.core.exceptions import LDAPException, LDAPSocketOpenError, LDAPBindError
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import escape_rdn

from ad_provision.directory.base import DirectoryBackend, DirectoryError, DirectoryConnectionError

logger = logging.getLogger(__name__)

# userAccountControl flags
UAC_ACCOUNT_DISABLED = 0x0002
UAC_NORMAL_ACCOUNT = 0x0200
UAC_DONT_EXPIRE_PASSWORD = 0x10000

RESULT_SUCCESS = 0
RESULT_NO_SUCH_OBJECT = 32

USER_OBJECT_CLASSES = ['top', 'person', 'organizationalPerson', 'user']


def domain_dns_name(domain_root: str) -> str:
    """Convert ``DC=example,DC=com`` into ``example.com``."""
    parts = [part.strip() for part in domain_root.split(',')]
    return '.'.join(part[3:] for part in parts if part.upper().startswith('DC='))


class LDAPDirectory(DirectoryBackend):
    """
    Directory backend for Active Directory over LDAP.

    Accounts are located by sAMAccountName and groups by cn, both searched
    below the configured domain root.
    """

    def __init__(self, config: Dict[str, Any], domain_root: str):
        """
        Initialize the backend with configuration.

        Args:
            config: LDAP configuration dictionary
            domain_root: Distinguished name accounts and groups are searched under
        """
        self.config = config
        self.server_url = config['server_url']
        self.bind_dn = config['bind_dn']
        self.bind_password = config['bind_password']
        self.domain_root = domain_root
        self.upn_suffix = domain_dns_name(domain_root)

        # SSL/TLS configuration
        self.use_ssl = config.get('use_ssl', self.server_url.lower().startswith('ldaps://'))
        self.start_tls = config.get('start_tls', False)
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')
        self.cert_file = config.get('cert_file')
        self.key_file = config.get('key_file')

        # Connection settings
        self.connection_timeout = config.get('connection_timeout', 10)
        self.receive_timeout = config.get('receive_timeout', 10)

        self.server = None
        self.connection = None
        self._connected = False

    def connect(self, max_retries: int = 3, retry_wait: int = 5) -> bool:
        """
        Establish connection to the domain controller with retry logic.

        Only the bind is retried; directory operations are never re-attempted.

        Args:
            max_retries: Maximum number of connection attempts
            retry_wait: Seconds to wait between retries

        Returns:
            True if connection successful

        Raises:
            DirectoryConnectionError: If connection fails after all retries
        """
        if self._connected:
            return True

        try:
            self.server = Server(
                self.server_url,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                get_info=ALL,
                connect_timeout=self.connection_timeout
            )
        except LDAPException as e:
            raise DirectoryConnectionError(f"Failed to create LDAP server: {e}")

        last_exception = None
        for attempt in range(max_retries):
            try:
                self.connection = Connection(
                    self.server,
                    user=self.bind_dn,
                    password=self.bind_password,
                    auto_bind=False,
                    receive_timeout=self.receive_timeout
                )

                if not self.connection.open():
                    raise LDAPSocketOpenError(f"Failed to open connection: {self.connection.result}")

                if self.start_tls and not self.use_ssl:
                    if not self.connection.start_tls():
                        raise DirectoryConnectionError(f"Failed to start TLS: {self.connection.result}")
                    logger.debug("StartTLS negotiation successful")

                if not self.connection.bind():
                    raise LDAPBindError(f"Bind failed: {self.connection.result}")

                self._connected = True
                logger.info(f"Successfully connected and bound to LDAP server {self.server_url}")
                return True

            except (LDAPException, DirectoryConnectionError) as e:
                last_exception = e
                logger.warning(f"LDAP connection attempt {attempt + 1}/{max_retries} failed: {e}")
                self._drop_connection()
                if attempt < max_retries - 1:
                    time.sleep(retry_wait)

        error_msg = f"Failed to connect to LDAP after {max_retries} attempts"
        if last_exception:
            error_msg += f": {last_exception}"
        raise DirectoryConnectionError(error_msg)

    def _create_tls_config(self) -> Optional[Tls]:
        """
        Create TLS configuration for LDAP connection.

        Returns:
            Tls configuration object or None if not needed
        """
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {}

        if not self.verify_ssl:
            tls_config['validate'] = ssl.CERT_NONE
            logger.warning("SSL certificate verification disabled")
        else:
            tls_config['validate'] = ssl.CERT_REQUIRED

        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file
            logger.debug(f"Using CA certificate file: {self.ca_cert_file}")

        if self.cert_file and self.key_file:
            tls_config['local_certificate_file'] = self.cert_file
            tls_config['local_private_key_file'] = self.key_file
            logger.debug("Client certificate configured for mutual TLS")

        try:
            return Tls(**tls_config)
        except LDAPException as e:
            raise DirectoryConnectionError(f"Failed to create TLS configuration: {e}")

    def _drop_connection(self):
        if self.connection:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logger.debug(f"Ignoring unbind error on failed connection: {e}")
            self.connection = None

    def disconnect(self):
        """Close LDAP connection."""
        if self.connection and self._connected:
            try:
                self.connection.unbind()
                logger.debug("LDAP connection closed")
            except LDAPException as e:
                logger.warning(f"Error closing LDAP connection: {e}")
            finally:
                self._connected = False
                self.connection = None

    def _require_connection(self):
        if not self._connected or self.connection is None:
            raise DirectoryError("Not connected to LDAP server")

    def _search(self, base: str, search_filter: str, scope, attributes=None) -> bool:
        """
        Run a search and report whether it matched anything.

        A missing search base counts as no match; any other failure raises.
        """
        self._require_connection()
        try:
            success = self.connection.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=scope,
                attributes=attributes or []
            )
            if success:
                return bool(self.connection.entries)
        except LDAPException as e:
            raise DirectoryError(f"Search under {base} failed: {e}")

        result_code = self.connection.result.get('result')
        if result_code in (RESULT_SUCCESS, RESULT_NO_SUCH_OBJECT):
            return False
        raise DirectoryError(f"Search under {base} failed: {self.connection.result}")

    def _find_dn(self, search_filter: str) -> Optional[str]:
        if not self._search(self.domain_root, search_filter, SUBTREE, ['distinguishedName']):
            return None
        try:
            return str(self.connection.entries[0].entry_dn)
        except LDAPException as e:
            raise DirectoryError(f"Reading search result for {search_filter} failed: {e}")

    def find_account_dn(self, account: str) -> Optional[str]:
        """Return the DN of the user with this sAMAccountName, or None."""
        return self._find_dn(f"(&(objectClass=user)(sAMAccountName={escape_filter_chars(account)}))")

    def find_group_dn(self, group: str) -> Optional[str]:
        """Return the DN of the group with this cn, or None."""
        return self._find_dn(f"(&(objectClass=group)(cn={escape_filter_chars(group)}))")

    def _run(self, operation: str, call) -> bool:
        """Run a write call and log the server's refusal, if any."""
        self._require_connection()
        try:
            success = call()
        except LDAPException as e:
            raise DirectoryError(f"{operation} failed: {e}")
        if not success:
            logger.warning(f"{operation} refused: {self.connection.result.get('description')} "
                           f"{self.connection.result.get('message', '')}".rstrip())
        return bool(success)

    def ou_exists(self, ou_dn: str) -> bool:
        return self._search(ou_dn, '(objectClass=organizationalUnit)', BASE, ['ou'])

    def create_ou(self, ou_dn: str) -> bool:
        return self._run(f"Create OU {ou_dn}",
                         lambda: self.connection.add(ou_dn, 'organizationalUnit'))

    def account_exists(self, account: str) -> bool:
        return self.find_account_dn(account) is not None

    def delete_account(self, account: str) -> bool:
        account_dn = self.find_account_dn(account)
        if account_dn is None:
            logger.warning(f"Cannot delete {account}: account not found")
            return False
        return self._run(f"Delete account {account_dn}",
                         lambda: self.connection.delete(account_dn))

    def build_account_dn(self, account: str, ou_dn: str) -> str:
        return f"CN={escape_rdn(account)},{ou_dn}"

    def create_account(self, account: str, password: str, attributes: Dict[str, Any]) -> bool:
        """
        Create a user object, set its password and leave it disabled.

        The account is enabled by set_account_non_expiring. If the password
        cannot be set the half-created object is removed again.
        """
        account_dn = self.build_account_dn(account, attributes['ou'])
        given_name = attributes.get('givenName', '')
        surname = attributes.get('surname', '')

        ldap_attributes = {
            'sAMAccountName': account,
            'userPrincipalName': f"{account}@{self.upn_suffix}",
            'givenName': given_name,
            'sn': surname,
            'displayName': f"{given_name} {surname}".strip(),
            'mail': attributes.get('mail'),
            'homeDirectory': attributes.get('homeDirectory'),
            'department': attributes.get('department'),
            'userAccountControl': str(UAC_NORMAL_ACCOUNT | UAC_ACCOUNT_DISABLED),
        }
        ldap_attributes = {key: value for key, value in ldap_attributes.items() if value}

        logger.debug(f"Creating account {account_dn}")
        if not self._run(f"Create account {account_dn}",
                         lambda: self.connection.add(account_dn, USER_OBJECT_CLASSES, ldap_attributes)):
            return False

        password_set = self._run(
            f"Set password for {account_dn}",
            lambda: self.connection.extend.microsoft.modify_password(account_dn, password)
        )
        if not password_set:
            logger.error(f"Removing {account_dn} after failed password set")
            self._run(f"Delete account {account_dn}", lambda: self.connection.delete(account_dn))
            return False
        return True

    def set_account_non_expiring(self, account: str) -> bool:
        account_dn = self.find_account_dn(account)
        if account_dn is None:
            logger.warning(f"Cannot update expiry for {account}: account not found")
            return False
        changes = {
            'userAccountControl': [(MODIFY_REPLACE, [str(UAC_NORMAL_ACCOUNT | UAC_DONT_EXPIRE_PASSWORD)])],
            'accountExpires': [(MODIFY_REPLACE, ['0'])],
        }
        return self._run(f"Enable account {account_dn}",
                         lambda: self.connection.modify(account_dn, changes))

    def add_group_member(self, group: str, account: str) -> bool:
        group_dn = self.find_group_dn(group)
        if group_dn is None:
            logger.warning(f"Group not found: {group}")
            return False
        account_dn = self.find_account_dn(account)
        if account_dn is None:
            logger.warning(f"Cannot add {account} to {group}: account not found")
            return False
        # fix=True treats an existing membership as success
        return self._run(
            f"Add {account} to {group_dn}",
            lambda: self.connection.extend.microsoft.add_members_to_groups(account_dn, group_dn, fix=True)
        )

    def test_connection(self) -> bool:
        """
        Test LDAP connection without throwing exceptions.

        Returns:
            True if the domain root can be read, False otherwise
        """
        try:
            if not self._connected:
                self.connect(max_retries=1, retry_wait=1)
            return self._search(self.domain_root, '(objectClass=*)', BASE)
        except DirectoryError as e:
            logger.warning(f"Connection test failed: {e}")
            return False
