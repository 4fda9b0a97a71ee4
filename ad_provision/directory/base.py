"""
Base directory backend interface.

This module defines the abstract base class the reconciliation engine talks to.
Every directory implementation (the LDAP backend, the dry-run wrapper, test
fakes) provides these operations with boolean results.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Any

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """Base exception for directory backend errors."""
    pass


class DirectoryConnectionError(DirectoryError):
    """Raised when the directory cannot be reached or bound."""
    pass


class DirectoryBackend(ABC):
    """
    Abstract base class for directory backends.

    Mutating operations return True on success and False on a refused
    operation. Transport failures may raise DirectoryError; callers treat
    that the same as a False result for the step that raised it.
    """

    def connect(self) -> bool:
        """Open the backend connection. Backends without a session return True."""
        return True

    def disconnect(self):
        """Release the backend connection."""
        pass

    @abstractmethod
    def ou_exists(self, ou_dn: str) -> bool:
        """Return True if the organizational unit exists."""
        pass

    @abstractmethod
    def create_ou(self, ou_dn: str) -> bool:
        """Create an organizational unit whose parent already exists."""
        pass

    @abstractmethod
    def account_exists(self, account: str) -> bool:
        """Return True if an account with this sAMAccountName exists."""
        pass

    @abstractmethod
    def delete_account(self, account: str) -> bool:
        """Delete the account with this sAMAccountName."""
        pass

    @abstractmethod
    def create_account(self, account: str, password: str, attributes: Dict[str, Any]) -> bool:
        """
        Create an account.

        Args:
            account: sAMAccountName of the new account
            password: Initial password
            attributes: givenName, surname, mail, homeDirectory, ou and optionally department
        """
        pass

    @abstractmethod
    def set_account_non_expiring(self, account: str) -> bool:
        """Enable the account and clear password and account expiry."""
        pass

    @abstractmethod
    def add_group_member(self, group: str, account: str) -> bool:
        """Add the account to the named group."""
        pass
