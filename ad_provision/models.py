"""
Data model for AD Provision.

Defines the normalized user directive, credential tiers and the per-record
outcome types shared by the reconciliation components.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class CredentialTier(Enum):
    """Password class applied to a new account."""
    STANDARD = 'standard'
    ELEVATED = 'elevated'


class Classification(Enum):
    """Terminal classification of one input record."""
    PROCESSED = 'processed'
    SKIPPED = 'skipped'
    ERROR = 'error'


class Reason(Enum):
    """Reason codes attached to skipped and errored records."""

    MISSING_ACCOUNT_NAME = ('missing-samaccountname', False)
    MISSING_OU = ('missing-ou', False)
    OU_SETUP_FAILED = ('ou-setup-failure', True)
    EXISTING_NOT_DELETED = ('existing-deletion-disabled', False)
    LOOKUP_FAILED = ('lookup-failed', True)
    DELETE_FAILED = ('delete-failed', True)
    CREATE_FAILED = ('create-failed', True)
    GROUP_ADD_FAILURES = ('group-add-failures', True)
    UNEXPECTED_ERROR = ('unexpected-error', True)

    def __init__(self, code: str, counts_as_error: bool):
        self.code = code
        self.counts_as_error = counts_as_error

    def __str__(self):
        return self.code


@dataclass(frozen=True)
class UserDirective:
    """Normalized, validated form of one input record."""
    sam_account_name: str
    given_name: str
    surname: str
    mail: str
    department: str
    ou_component: str
    member_of: Tuple[str, ...] = ()
    credential_tier: CredentialTier = CredentialTier.STANDARD


@dataclass(frozen=True)
class RecordOutcome:
    """Result of reconciling a single record."""
    account: str
    classification: Classification
    reason: Optional[Reason] = None
    provisioned: bool = False
    groups_added: int = 0
    groups_failed: int = 0
    detail: str = ''

    @property
    def is_error(self) -> bool:
        return self.reason is not None and self.reason.counts_as_error

    def as_dict(self) -> dict:
        return {
            'account': self.account,
            'classification': self.classification.value,
            'reason': self.reason.code if self.reason else None,
            'provisioned': self.provisioned,
            'groups_added': self.groups_added,
            'groups_failed': self.groups_failed,
            'detail': self.detail,
        }

    @classmethod
    def skipped(cls, account: str, reason: Reason, detail: str = '') -> 'RecordOutcome':
        return cls(account=account, classification=Classification.SKIPPED,
                   reason=reason, detail=detail)

    @classmethod
    def error(cls, account: str, reason: Reason, detail: str = '', **kwargs) -> 'RecordOutcome':
        return cls(account=account, classification=Classification.ERROR,
                   reason=reason, detail=detail, **kwargs)
