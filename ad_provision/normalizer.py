"""
Record normalization for AD Provision.

Turns one positional input record into a validated UserDirective. Every
transform here is a pure string function so it can be tested in isolation.

Field order: account name, given name, surname, mail, department, OU leaf,
semicolon-separated group list.
"""

import re
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from ad_provision.models import Reason, UserDirective

logger = logging.getLogger(__name__)

FIELD_COUNT = 7
UNKNOWN_SURNAME = 'Unknown'

# Group entries that mean "no group" in exported sheets
GROUP_SENTINELS = ('', '0')

_ACCOUNT_NAME_DISALLOWED = re.compile(r'[^A-Za-z0-9._-]')
_QUOTES = '"\''


class RecordRejected(Exception):
    """Raised when a record lacks a required field after normalization."""

    def __init__(self, reason: Reason, message: str):
        self.reason = reason
        super().__init__(message)


def strip_quotes(value: Optional[str]) -> str:
    """Trim whitespace and any surrounding quote characters."""
    if value is None:
        return ''
    return str(value).strip().strip(_QUOTES).strip()


def sanitize_account_name(value: Optional[str]) -> str:
    """
    Reduce an account name to the identifier-safe charset.

    Characters outside ``[A-Za-z0-9._-]`` are dropped, then a single leading
    underscore is removed.
    """
    cleaned = _ACCOUNT_NAME_DISALLOWED.sub('', strip_quotes(value))
    if cleaned.startswith('_'):
        cleaned = cleaned[1:]
    return cleaned


def sanitize_ou_component(value: Optional[str]) -> str:
    """Strip non-printable characters, then quoting, from an OU leaf name."""
    if value is None:
        return ''
    printable = ''.join(ch for ch in str(value) if ch.isprintable())
    return strip_quotes(printable)



def split_groups(value: Optional[str]) -> Tuple[str, ...]:
    """
    Split a semicolon-separated group list.

    Entries are trimmed; blank and sentinel entries are dropped and duplicates
    removed, keeping the first occurrence.
    """
    groups: List[str] = []
    for entry in strip_quotes(value).split(';'):
        name = strip_quotes(entry)
        if name in GROUP_SENTINELS or name in groups:
            continue
        groups.append(name)
    return tuple(groups)


def derive_names(given_name: str, surname: str) -> Tuple[str, str]:
    """
    Fill in a missing surname.

    When the surname is blank and the given name contains a dot, the segment
    after the last dot becomes the surname and is removed from the given name.
    Otherwise a blank surname becomes ``"Unknown"``.
    """
    if not surname:
        if '.' in given_name:
            given_name, surname = given_name.rsplit('.', 1)
        else:
            surname = UNKNOWN_SURNAME
    if not surname:
        surname = UNKNOWN_SURNAME
    return given_name, surname


def _pad(fields: Iterable[Optional[str]]) -> List[Optional[str]]:
    padded = list(fields)[:FIELD_COUNT]
    padded.extend([None] * (FIELD_COUNT - len(padded)))
    return padded


def normalize_record(fields: Sequence[Optional[str]], default_mail: str = '') -> UserDirective:
    """
    Normalize one raw record into a UserDirective.

    Args:
        fields: Positional record fields; missing trailing fields count as blank
        default_mail: Address used when the mail field is blank

    Returns:
        Normalized directive with the STANDARD credential tier

    Raises:
        RecordRejected: If the account name or OU leaf is empty after cleaning
    """
    raw_account, raw_given, raw_surname, raw_mail, raw_department, raw_ou, raw_groups = _pad(fields)

    account = sanitize_account_name(raw_account)
    if not account:
        raise RecordRejected(Reason.MISSING_ACCOUNT_NAME, 'missing SamAccountName')

    ou_component = sanitize_ou_component(raw_ou)
    if not ou_component:
        raise RecordRejected(Reason.MISSING_OU, f'missing Folder/OU for {account}')

    given_name, surname = derive_names(strip_quotes(raw_given), strip_quotes(raw_surname))

    directive = UserDirective(
        sam_account_name=account,
        given_name=given_name,
        surname=surname,
        mail=strip_quotes(raw_mail) or default_mail,
        department=strip_quotes(raw_department),
        ou_component=ou_component,
        member_of=split_groups(raw_groups),
    )
    logger.debug(f"Normalized record for {account}: ou={ou_component}, groups={list(directive.member_of)}")
    return directive
