"""
Credential tier selection for new accounts.

The tier depends only on the directive's group memberships: an account that
belongs to any configured privileged group receives the elevated password.
"""

from typing import Iterable

from ad_provision.models import CredentialTier

DEFAULT_ELEVATED_GROUPS = ('Domain Admins', 'Administrators')


def classify_credential_tier(member_of: Iterable[str],
                             elevated_groups: Iterable[str] = DEFAULT_ELEVATED_GROUPS) -> CredentialTier:
    """
    Decide which credential tier applies to a membership set.

    Group names are compared as whole, case-sensitive tokens, so
    ``"Administratorship"`` does not match ``"Administrators"``.
    """
    memberships = {name.strip() for name in member_of}
    if memberships & set(elevated_groups):
        return CredentialTier.ELEVATED
    return CredentialTier.STANDARD


def password_for_tier(tier: CredentialTier, settings) -> str:
    """Return the configured password for a credential tier."""
    if tier is CredentialTier.ELEVATED:
        return settings.elevated_password
    return settings.standard_password
