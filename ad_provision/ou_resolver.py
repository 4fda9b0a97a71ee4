"""
Organizational unit resolution.

Ensures that the OU a user is placed in exists before the account is created.
Creating an OU that already exists is an error in Active Directory, so
existence is checked first and remembered for the rest of the run.
"""

import logging
from typing import Dict

from ldap3.utils.dn import escape_rdn

from ad_provision.directory.base import DirectoryBackend, DirectoryError
from ad_provision.logging_setup import audit_logger

logger = logging.getLogger(__name__)

PARENT_CREATION_FAILED = 'parent-creation-failed'
LEAF_CREATION_FAILED = 'leaf-creation-failed'
LOOKUP_FAILED = 'lookup-failed'


class OUResolutionError(Exception):
    """Raised when the target OU cannot be found or created."""

    def __init__(self, ou_dn: str, reason: str):
        self.ou_dn = ou_dn
        self.reason = reason
        super().__init__(f"{reason}: {ou_dn}")


def build_ou_dn(ou_component: str, base_ou: str) -> str:
    return f"OU={escape_rdn(ou_component)},{base_ou}"


class OUResolver:
    """
    Ensures target OUs exist, querying the directory at most once per OU per run.

    Both successes and failures are memoized; a failed OU is not created
    again during the same run.
    """

    def __init__(self, backend: DirectoryBackend, base_ou: str):
        self.backend = backend
        self.base_ou = base_ou
        self._exists: Dict[str, bool] = {}
        self._failures: Dict[str, str] = {}

    def ensure(self, ou_component: str) -> str:
        """
        Make sure ``OU=<ou_component>,<base_ou>`` exists.

        Args:
            ou_component: Leaf OU name

        Returns:
            Distinguished name of the OU

        Raises:
            OUResolutionError: If the OU or its parent cannot be created
        """
        ou_dn = build_ou_dn(ou_component, self.base_ou)

        if self._check(ou_dn):
            return ou_dn

        try:
            if not self._check(self.base_ou):
                logger.info(f"Parent OU {self.base_ou} missing, creating it")
                if not self._create(self.base_ou):
                    self._fail(self.base_ou, PARENT_CREATION_FAILED)

            logger.info(f"Creating OU {ou_dn}")
            if not self._create(ou_dn):
                self._fail(ou_dn, LEAF_CREATION_FAILED)
        except OUResolutionError as e:
            self._failures[ou_dn] = e.reason
            raise OUResolutionError(ou_dn, e.reason)

        return ou_dn

    def _check(self, ou_dn: str) -> bool:
        if ou_dn in self._failures:
            raise OUResolutionError(ou_dn, self._failures[ou_dn])
        if ou_dn not in self._exists:
            try:
                self._exists[ou_dn] = self.backend.ou_exists(ou_dn)
            except DirectoryError as e:
                logger.error(f"Could not check OU {ou_dn}: {e}")
                self._failures[ou_dn] = LOOKUP_FAILED
                raise OUResolutionError(ou_dn, LOOKUP_FAILED)
        return self._exists[ou_dn]

    def _create(self, ou_dn: str) -> bool:
        try:
            created = self.backend.create_ou(ou_dn)
        except DirectoryError as e:
            logger.error(f"Error creating OU {ou_dn}: {e}")
            created = False
        audit_logger.log_ou_operation('create', ou_dn, created)
        if created:
            self._exists[ou_dn] = True
        return created

    def _fail(self, ou_dn: str, reason: str):
        logger.error(f"OU setup failed for {ou_dn}: {reason}")
        self._failures[ou_dn] = reason
        raise OUResolutionError(ou_dn, reason)

    @property
    def known_ous(self):
        """OUs confirmed to exist during this run."""
        return sorted(dn for dn, exists in self._exists.items() if exists)
