"""
Directory backends for AD Provision.

The engine only depends on DirectoryBackend; LDAPDirectory talks to Active
Directory over ldap3 and DryRunDirectory wraps another backend without writing.
"""

from ad_provision.directory.base import DirectoryBackend, DirectoryError, DirectoryConnectionError
from ad_provision.directory.ldap_directory import LDAPDirectory
from ad_provision.directory.dry_run import DryRunDirectory

__all__ = [
    'DirectoryBackend',
    'DirectoryError',
    'DirectoryConnectionError',
    'LDAPDirectory',
    'DryRunDirectory',
]
