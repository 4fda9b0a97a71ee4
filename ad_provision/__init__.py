"""
AD Provision - Reconcile Active Directory OUs, user accounts and group memberships
against a batch of desired user records.

This package provides a sequential reconciliation engine that creates missing
organizational units, (re)creates user accounts and applies group memberships,
isolating failures per record and reporting a run summary.
"""

__version__ = "1.0.0"
__author__ = "AD Provision Team"
