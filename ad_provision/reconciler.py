"""
Account lifecycle and group membership reconciliation.

An existing account is deleted and recreated rather than updated in place, so
the resulting account carries exactly the attributes of the directive. No
directory operation is retried; each step either succeeds or is reported as a
failure for the record.
"""

import logging
from typing import Any, Dict, Iterable, Tuple

from ad_provision.credentials import password_for_tier
from ad_provision.directory.base import DirectoryBackend, DirectoryError
from ad_provision.logging_setup import audit_logger
from ad_provision.models import Classification, Reason, RecordOutcome, UserDirective
from ad_provision.normalizer import GROUP_SENTINELS

logger = logging.getLogger(__name__)


def _attempt(operation: str, call) -> bool:
    """Run a backend write, treating a DirectoryError as a failed step."""
    try:
        return bool(call())
    except DirectoryError as e:
        logger.error(f"{operation} failed: {e}")
        return False


class GroupMembershipSync:
    """Adds a freshly created account to each group of its directive."""

    def __init__(self, backend: DirectoryBackend):
        self.backend = backend

    def sync(self, account: str, groups: Iterable[str]) -> Tuple[int, int]:
        """
        Add the account to every requested group.

        Each group is attempted independently; a failure does not stop the
        remaining groups.

        Returns:
            Tuple of (groups_added, groups_failed)
        """
        added = 0
        failed = 0
        for group in groups:
            group = group.strip()
            if group in GROUP_SENTINELS:
                continue
            if _attempt(f"Add {account} to group {group}",
                        lambda: self.backend.add_group_member(group, account)):
                added += 1
                logger.info(f"Added {account} to group {group}")
                audit_logger.log_group_operation('add_member', account, group, True)
            else:
                failed += 1
                logger.error(f"Failed to add {account} to group {group}")
                audit_logger.log_group_operation('add_member', account, group, False)
        return added, failed


class AccountReconciler:
    """
    Drives one directive through the account lifecycle.

    exists? -> (delete if allowed) -> create -> enable/non-expiring -> groups
    """

    def __init__(self, backend: DirectoryBackend, settings, group_sync: GroupMembershipSync = None):
        self.backend = backend
        self.settings = settings
        self.group_sync = group_sync or GroupMembershipSync(backend)

    def build_attributes(self, directive: UserDirective, ou_dn: str) -> Dict[str, Any]:
        """Attributes passed to the backend's create_account."""
        attributes = {
            'givenName': directive.given_name,
            'surname': directive.surname,
            'mail': directive.mail,
            'homeDirectory': self.settings.home_directory_for(directive.sam_account_name),
            'ou': ou_dn,
        }
        if directive.department:
            attributes['department'] = directive.department
        return attributes

    def reconcile(self, directive: UserDirective, ou_dn: str) -> RecordOutcome:
        """
        Reconcile one account against the directory.

        Args:
            directive: Normalized directive with its credential tier set
            ou_dn: Distinguished name of the (existing) target OU

        Returns:
            Classified outcome for the record
        """
        account = directive.sam_account_name

        try:
            exists = self.backend.account_exists(account)
        except DirectoryError as e:
            logger.error(f"Could not look up account {account}: {e}")
            return RecordOutcome.error(account, Reason.LOOKUP_FAILED, str(e))

        if exists:
            if not self.settings.delete_existing:
                logger.info(f"Account {account} already exists and deletion is disabled, skipping")
                return RecordOutcome.skipped(account, Reason.EXISTING_NOT_DELETED,
                                             'account exists and delete_existing is off')

            logger.info(f"Account {account} exists, deleting before recreate")
            deleted = _attempt(f"Delete account {account}",
                               lambda: self.backend.delete_account(account))
            audit_logger.log_account_operation('delete', account, deleted)
            if not deleted:
                logger.error(f"Failed to delete existing account {account}")
                return RecordOutcome.error(account, Reason.DELETE_FAILED, 'delete of existing account failed')

        password = password_for_tier(directive.credential_tier, self.settings)
        attributes = self.build_attributes(directive, ou_dn)
        created = _attempt(f"Create account {account}",
                           lambda: self.backend.create_account(account, password, attributes))
        audit_logger.log_account_operation('create', account, created)
        if not created:
            logger.error(f"Failed to create account {account} in {ou_dn}")
            return RecordOutcome.error(account, Reason.CREATE_FAILED, f'create in {ou_dn} failed')

        logger.info(f"Created account {account} in {ou_dn} "
                    f"({directive.credential_tier.value} credentials)")

        if not _attempt(f"Set {account} non-expiring",
                        lambda: self.backend.set_account_non_expiring(account)):
            logger.warning(f"Could not set {account} to enabled/non-expiring; continuing")

        added, failed = self.group_sync.sync(account, directive.member_of)

        if failed:
            logger.error(f"{account}: {failed} of {added + failed} group additions failed")
            return RecordOutcome.error(
                account, Reason.GROUP_ADD_FAILURES,
                f'{failed} of {added + failed} group additions failed',
                provisioned=True, groups_added=added, groups_failed=failed
            )

        return RecordOutcome(
            account=account,
            classification=Classification.PROCESSED,
            provisioned=True,
            groups_added=added,
        )
