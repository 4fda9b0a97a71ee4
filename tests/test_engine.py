#!/usr/bin/env python3
"""
End-to-end tests for the provisioning engine.

Uses an in-memory directory that records every operation, so the tests can
check both the final directory state and the exact sequence of calls.
"""

import os
import sys
import unittest
from unittest.mock import patch

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ad_provision.config import ProvisioningSettings
from ad_provision.directory.base import DirectoryBackend
from ad_provision.directory.dry_run import DryRunDirectory
from ad_provision.engine import ProvisioningEngine
from ad_provision.models import Classification, Reason

BASE_OU = 'OU=Staff,DC=example,DC=com'
SALES_OU = 'OU=Sales,' + BASE_OU


class InMemoryDirectory(DirectoryBackend):
    """Directory fake keeping OUs, accounts and groups in dictionaries."""

    def __init__(self, ous=(), accounts=(), groups=('Domain Admins', 'VPN', 'Staff')):
        self.ous = set(ous)
        self.accounts = {name: {} for name in accounts}
        self.groups = {name: set() for name in groups}
        self.calls = []
        self.fail = set()

    def _record(self, *entry):
        self.calls.append(entry)
        return entry not in self.fail and entry[0] not in self.fail

    def ou_exists(self, ou_dn):
        self.calls.append(('ou_exists', ou_dn))
        return ou_dn in self.ous

    def create_ou(self, ou_dn):
        if not self._record('create_ou', ou_dn):
            return False
        self.ous.add(ou_dn)
        return True

    def account_exists(self, account):
        self.calls.append(('account_exists', account))
        return account in self.accounts

    def delete_account(self, account):
        if not self._record('delete_account', account):
            return False
        del self.accounts[account]
        return True

    def create_account(self, account, password, attributes):
        if not self._record('create_account', account):
            return False
        self.accounts[account] = dict(attributes, password=password)
        return True

    def set_account_non_expiring(self, account):
        if not self._record('set_account_non_expiring', account):
            return False
        self.accounts[account]['non_expiring'] = True
        return True

    def add_group_member(self, group, account):
        if not self._record('add_group_member', group, account) or group not in self.groups:
            return False
        self.groups[group].add(account)
        return True

    def operations(self, name):
        return [c for c in self.calls if c[0] == name]


def make_settings(**overrides):
    values = dict(
        base_ou=BASE_OU,
        domain_root='DC=example,DC=com',
        standard_password='Std-Pass-1',
        elevated_password='Elev-Pass-1',
        home_directory_template='\\\\fs01\\home\\{account}',
        default_mail='helpdesk@example.com',
        delete_existing=True,
    )
    values.update(overrides)
    return ProvisioningSettings(**values)


JDOE = ('jdoe', 'john.doe', '', '', '', 'Sales', 'Domain Admins;VPN')


class TestProvisioningEngine(unittest.TestCase):
    """Scenario tests for ProvisioningEngine.run."""

    def test_new_elevated_user_end_to_end(self):
        directory = InMemoryDirectory(ous=[BASE_OU])
        summary = ProvisioningEngine(directory, make_settings()).run([JDOE])

        self.assertIn(SALES_OU, directory.ous)
        account = directory.accounts['jdoe']
        self.assertEqual(account['givenName'], 'john')
        self.assertEqual(account['surname'], 'doe')
        self.assertEqual(account['mail'], 'helpdesk@example.com')
        self.assertEqual(account['homeDirectory'], '\\\\fs01\\home\\jdoe')
        self.assertEqual(account['ou'], SALES_OU)
        self.assertEqual(account['password'], 'Elev-Pass-1')
        self.assertTrue(account['non_expiring'])
        self.assertIn('jdoe', directory.groups['Domain Admins'])
        self.assertIn('jdoe', directory.groups['VPN'])

        self.assertEqual(summary.outcomes[0].classification, Classification.PROCESSED)
        self.assertEqual((summary.processed, summary.skipped, summary.errored), (1, 0, 0))

    def test_ou_failure_end_to_end(self):
        directory = InMemoryDirectory(ous=[BASE_OU])
        directory.fail.add('create_ou')

        summary = ProvisioningEngine(directory, make_settings()).run([JDOE])

        outcome = summary.outcomes[0]
        self.assertEqual(outcome.classification, Classification.SKIPPED)
        self.assertEqual(outcome.reason, Reason.OU_SETUP_FAILED)
        self.assertEqual((summary.processed, summary.skipped, summary.errored), (0, 1, 1))
        self.assertEqual(directory.operations('create_account'), [])
        self.assertEqual(directory.operations('account_exists'), [])

    def test_records_missing_required_fields_make_no_backend_calls(self):
        directory = InMemoryDirectory(ous=[BASE_OU])
        records = [
            ('', 'John', 'Doe', '', '', 'Sales', 'VPN'),
            ('_', 'John', 'Doe', '', '', 'Sales', 'VPN'),
            ('jdoe', 'John', 'Doe', '', '', '', 'VPN'),
            (),
        ]

        summary = ProvisioningEngine(directory, make_settings()).run(records)

        self.assertEqual(directory.calls, [])
        self.assertEqual((summary.processed, summary.skipped, summary.errored), (0, 4, 0))
        self.assertEqual([o.reason for o in summary.outcomes], [
            Reason.MISSING_ACCOUNT_NAME, Reason.MISSING_ACCOUNT_NAME,
            Reason.MISSING_OU, Reason.MISSING_ACCOUNT_NAME,
        ])

    def test_ou_queried_once_for_many_records(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU])
        records = [(f'user{i}', 'First', 'Last', '', '', 'Sales', 'VPN') for i in range(10)]

        summary = ProvisioningEngine(directory, make_settings()).run(records)

        self.assertEqual(directory.operations('ou_exists'), [('ou_exists', SALES_OU)])
        self.assertEqual(summary.processed, 10)

    def test_existing_account_deletion_disabled(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU], accounts=['jdoe'])
        summary = ProvisioningEngine(directory, make_settings(delete_existing=False)).run([JDOE])

        self.assertEqual(summary.outcomes[0].reason, Reason.EXISTING_NOT_DELETED)
        self.assertEqual((summary.processed, summary.skipped, summary.errored), (0, 1, 0))
        self.assertEqual(directory.operations('create_account'), [])

    def test_delete_failure_stops_record(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU], accounts=['jdoe'])
        directory.fail.add('delete_account')

        summary = ProvisioningEngine(directory, make_settings()).run([JDOE])

        self.assertEqual(summary.outcomes[0].classification, Classification.ERROR)
        self.assertEqual(summary.outcomes[0].reason, Reason.DELETE_FAILED)
        self.assertEqual(directory.operations('create_account'), [])
        self.assertEqual(summary.errored, 1)

    def test_create_failure_skips_groups(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU])
        directory.fail.add('create_account')

        summary = ProvisioningEngine(directory, make_settings()).run([JDOE])

        self.assertEqual(summary.outcomes[0].reason, Reason.CREATE_FAILED)
        self.assertEqual(directory.operations('add_group_member'), [])

    def test_partial_group_failure_counts_processed_and_errored(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU], groups=('VPN',))
        records = [('jdoe', 'John', 'Doe', '', '', 'Sales', 'VPN;Missing Group')]

        summary = ProvisioningEngine(directory, make_settings()).run(records)

        outcome = summary.outcomes[0]
        self.assertEqual(outcome.reason, Reason.GROUP_ADD_FAILURES)
        self.assertEqual((outcome.groups_added, outcome.groups_failed), (1, 1))
        self.assertEqual((summary.processed, summary.skipped, summary.errored), (1, 0, 1))

    def test_failure_in_one_record_does_not_affect_the_next(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU])
        directory.fail.add(('create_account', 'bad'))
        records = [
            ('bad', 'Bad', 'User', '', '', 'Sales', ''),
            ('good', 'Good', 'User', '', '', 'Sales', 'Staff'),
        ]

        summary = ProvisioningEngine(directory, make_settings()).run(records)

        self.assertEqual([o.classification for o in summary.outcomes],
                         [Classification.ERROR, Classification.PROCESSED])
        self.assertIn('good', directory.accounts)

    def test_records_processed_in_input_order(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU])
        records = [(name, 'A', 'B', '', '', 'Sales', '') for name in ('c', 'a', 'b')]

        ProvisioningEngine(directory, make_settings()).run(records)

        created = [c[1] for c in directory.operations('create_account')]
        self.assertEqual(created, ['c', 'a', 'b'])

    def test_unexpected_exception_is_contained(self):
        directory = InMemoryDirectory(ous=[BASE_OU, SALES_OU])
        engine = ProvisioningEngine(directory, make_settings())
        records = [JDOE, ('other', 'A', 'B', '', '', 'Sales', '')]

        real_reconcile = engine.reconciler.reconcile

        def flaky_reconcile(directive, ou_dn):
            if directive.sam_account_name == 'jdoe':
                raise RuntimeError('boom')
            return real_reconcile(directive, ou_dn)

        with patch.object(engine.reconciler, 'reconcile', side_effect=flaky_reconcile):
            summary = engine.run(records)

        self.assertEqual(summary.outcomes[0].reason, Reason.UNEXPECTED_ERROR)
        self.assertEqual(summary.outcomes[0].account, 'jdoe')
        self.assertEqual(summary.outcomes[1].classification, Classification.PROCESSED)
        self.assertEqual((summary.processed, summary.skipped, summary.errored), (1, 1, 1))

    def test_dry_run_makes_no_writes(self):
        directory = InMemoryDirectory(ous=[BASE_OU], accounts=['jdoe'])
        summary = ProvisioningEngine(DryRunDirectory(directory), make_settings()).run([JDOE, JDOE])

        self.assertEqual(summary.processed, 2)
        writes = [c for c in directory.calls if c[0] not in ('ou_exists', 'account_exists')]
        self.assertEqual(writes, [])
        self.assertNotIn(SALES_OU, directory.ous)
        self.assertEqual(directory.accounts['jdoe'], {})


if __name__ == '__main__':
    unittest.main()
