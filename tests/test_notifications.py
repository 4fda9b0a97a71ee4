#!/usr/bin/env python3
"""
Unit tests for email notifications.
"""

import os
import sys
import smtplib
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

# Add the project directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ad_provision import notifications
from ad_provision.models import Classification, Reason, RecordOutcome
from ad_provision.summary import RunSummary


def make_summary(outcomes, processed, skipped, errored, runtime=2.5):
    started = datetime(2026, 1, 5, 6, 0, 0)
    return RunSummary(
        processed=processed,
        skipped=skipped,
        errored=errored,
        outcomes=tuple(outcomes),
        started_at=started,
        finished_at=started + timedelta(seconds=runtime),
    )


class TestSendEmail(unittest.TestCase):
    """Test cases for send_email."""

    def setUp(self):
        self.config = {
            'enable_email': True,
            'smtp_server': 'smtp.example.com',
            'smtp_port': 587,
            'smtp_tls': True,
            'smtp_username': 'alerts@example.com',
            'smtp_password': 'password123',
            'email_from': 'alerts@example.com',
            'email_to': ['admin1@example.com', 'admin2@example.com']
        }

    @patch('ad_provision.notifications.smtplib.SMTP')
    def test_send_with_starttls_and_login(self, mock_smtp):
        server = mock_smtp.return_value

        self.assertTrue(notifications.send_email('Subject', 'Body', self.config))

        mock_smtp.assert_called_once_with('smtp.example.com', 587)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with('alerts@example.com', 'password123')
        from_addr, to_addrs, message = server.sendmail.call_args.args
        self.assertEqual(from_addr, 'alerts@example.com')
        self.assertEqual(to_addrs, ['admin1@example.com', 'admin2@example.com'])
        self.assertIn('Subject: Subject', message)
        server.quit.assert_called_once()

    @patch('ad_provision.notifications.smtplib.SMTP_SSL')
    def test_port_465_uses_ssl(self, mock_smtp_ssl):
        self.config['smtp_port'] = 465
        self.assertTrue(notifications.send_email('Subject', 'Body', self.config))
        mock_smtp_ssl.assert_called_once_with('smtp.example.com', 465)

    @patch('ad_provision.notifications.smtplib.SMTP')
    def test_single_recipient_string(self, mock_smtp):
        self.config['email_to'] = 'admin@example.com'
        notifications.send_email('Subject', 'Body', self.config)
        self.assertEqual(mock_smtp.return_value.sendmail.call_args.args[1], ['admin@example.com'])

    @patch('ad_provision.notifications.smtplib.SMTP')
    def test_disabled(self, mock_smtp):
        self.config['enable_email'] = False
        self.assertFalse(notifications.send_email('Subject', 'Body', self.config))
        mock_smtp.assert_not_called()

    @patch('ad_provision.notifications.smtplib.SMTP')
    def test_missing_server_or_recipients(self, mock_smtp):
        self.assertFalse(notifications.send_email('S', 'B', dict(self.config, smtp_server=None)))
        self.assertFalse(notifications.send_email('S', 'B', dict(self.config, email_to=[])))
        mock_smtp.assert_not_called()

    @patch('ad_provision.notifications.smtplib.SMTP')
    def test_smtp_failure_returns_false(self, mock_smtp):
        mock_smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b'bad credentials')
        self.assertFalse(notifications.send_email('Subject', 'Body', self.config))

    @patch('ad_provision.notifications.smtplib.SMTP')
    def test_connection_refused_returns_false(self, mock_smtp):
        mock_smtp.side_effect = ConnectionRefusedError("refused")
        self.assertFalse(notifications.send_email('Subject', 'Body', self.config))


class TestRunNotifications(unittest.TestCase):
    """Test cases for run summary and failure notifications."""

    def setUp(self):
        self.config = {'enable_email': True, 'email_on_failure': True, 'email_on_success': False}
        self.clean = make_summary(
            [RecordOutcome(account='jdoe', classification=Classification.PROCESSED, provisioned=True)],
            processed=1, skipped=0, errored=0)
        self.failed = make_summary(
            [
                RecordOutcome(account='jdoe', classification=Classification.PROCESSED, provisioned=True),
                RecordOutcome.skipped('asmith', Reason.OU_SETUP_FAILED, 'leaf-creation-failed'),
                RecordOutcome.skipped('', Reason.MISSING_ACCOUNT_NAME),
            ],
            processed=1, skipped=2, errored=1, runtime=95)

    def test_summary_body(self):
        body = notifications.format_summary_body(self.failed)

        self.assertIn('Records: 3', body)
        self.assertIn('Processed: 1', body)
        self.assertIn('Skipped: 2', body)
        self.assertIn('Errors: 1', body)
        self.assertIn('1m 35.0s', body)
        self.assertIn('asmith: skipped (ou-setup-failure)', body)
        self.assertIn('<unnamed>: skipped (missing-samaccountname)', body)

    def test_summary_body_truncates_long_lists(self):
        outcomes = [RecordOutcome.error(f'user{i}', Reason.CREATE_FAILED) for i in range(30)]
        body = notifications.format_summary_body(make_summary(outcomes, 0, 30, 30))

        self.assertIn('user24', body)
        self.assertNotIn('user25:', body)
        self.assertIn('... and 5 more', body)

    @patch('ad_provision.notifications.send_email')
    def test_errored_run_is_reported(self, mock_send):
        mock_send.return_value = True

        self.assertTrue(notifications.send_run_summary(self.failed, self.config))
        self.assertIn('1 errors', mock_send.call_args.args[0])

    @patch('ad_provision.notifications.send_email')
    def test_clean_run_not_reported_by_default(self, mock_send):
        self.assertFalse(notifications.send_run_summary(self.clean, self.config))
        mock_send.assert_not_called()

    @patch('ad_provision.notifications.send_email')
    def test_clean_run_reported_when_enabled(self, mock_send):
        self.config['email_on_success'] = True
        notifications.send_run_summary(self.clean, self.config)
        self.assertEqual(mock_send.call_args.args[0], 'AD Provision: Successful Completion')

    @patch('ad_provision.notifications.send_email')
    def test_failure_reports_suppressed(self, mock_send):
        self.config['email_on_failure'] = False
        self.assertFalse(notifications.send_run_summary(self.failed, self.config))
        self.assertFalse(notifications.send_failure_notification('Input Unavailable', 'gone', self.config))
        mock_send.assert_not_called()

    @patch('ad_provision.notifications.send_email')
    def test_directory_connection_failure(self, mock_send):
        notifications.send_directory_connection_failure('bind refused', self.config, retry_count=3)

        subject, body, _ = mock_send.call_args.args
        self.assertEqual(subject, 'AD Provision Alert: Directory Connection Failed')
        self.assertIn('Error Message: bind refused', body)
        self.assertIn('Retry Attempts: 3', body)
        self.assertIn('No directory changes were made by this run.', body)

    @patch('ad_provision.notifications.send_email')
    def test_no_changes_sentence_only_before_changes(self, mock_send):
        notifications.send_failure_notification('Provisioning Failed', 'Unexpected error: boom', self.config)
        self.assertNotIn('No directory changes', mock_send.call_args.args[1])

        notifications.send_failure_notification('Input Unavailable', 'gone', self.config, before_changes=True)
        self.assertIn('No directory changes were made by this run.', mock_send.call_args.args[1])

    @patch('ad_provision.notifications.send_email')
    def test_notification_config_check(self, mock_send):
        mock_send.return_value = True
        config = dict(self.config, smtp_server='smtp.example.com', email_to='admin@example.com')

        self.assertTrue(notifications.test_notification_config(config))
        self.assertIn('Recipients: admin@example.com', mock_send.call_args.args[1])


if __name__ == '__main__':
    unittest.main()
