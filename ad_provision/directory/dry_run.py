"""
Dry-run directory wrapper.

Existence queries go to the wrapped backend; writes are logged and reported
as successful without touching the directory.
"""

import logging
from typing import Dict, Any, Set

from ad_provision.directory.base import DirectoryBackend

logger = logging.getLogger(__name__)


class DryRunDirectory(DirectoryBackend):
    """Read-through backend that never writes."""

    def __init__(self, backend: DirectoryBackend):
        self.backend = backend
        self._created_ous: Set[str] = set()
        self._created_accounts: Set[str] = set()
        self._deleted_accounts: Set[str] = set()

    def connect(self, *args, **kwargs) -> bool:
        return self.backend.connect(*args, **kwargs)

    def disconnect(self):
        self.backend.disconnect()

    def ou_exists(self, ou_dn: str) -> bool:
        return ou_dn in self._created_ous or self.backend.ou_exists(ou_dn)

    def create_ou(self, ou_dn: str) -> bool:
        logger.info(f"[dry-run] Would create OU {ou_dn}")
        self._created_ous.add(ou_dn)
        return True

    def account_exists(self, account: str) -> bool:
        if account in self._created_accounts:
            return True
        if account in self._deleted_accounts:
            return False
        return self.backend.account_exists(account)

    def delete_account(self, account: str) -> bool:
        logger.info(f"[dry-run] Would delete account {account}")
        self._deleted_accounts.add(account)
        self._created_accounts.discard(account)
        return True

    def create_account(self, account: str, password: str, attributes: Dict[str, Any]) -> bool:
        logger.info(f"[dry-run] Would create account {account} in {attributes.get('ou')}")
        self._created_accounts.add(account)
        return True

    def set_account_non_expiring(self, account: str) -> bool:
        logger.info(f"[dry-run] Would enable {account} with non-expiring password")
        return True

    def add_group_member(self, group: str, account: str) -> bool:
        logger.info(f"[dry-run] Would add {account} to group {group}")
        return True
