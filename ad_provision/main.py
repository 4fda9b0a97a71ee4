"""
Main orchestrator for AD Provision.

Loads configuration, sets up logging, connects to the directory, reads the
input batch and hands it to the provisioning engine. Only pre-flight failures
produce a non-zero exit code; record-level failures are reported in the summary.
"""

import sys
import json
import logging
from datetime import datetime
from typing import Dict, Any, Optional

from ad_provision.config import load_config, ConfigurationError, ProvisioningSettings
from ad_provision.directory import DirectoryConnectionError, DirectoryError, DryRunDirectory, LDAPDirectory
from ad_provision.engine import ProvisioningEngine
from ad_provision.logging_setup import setup_logging
from ad_provision.records import read_records, InputUnavailableError
from ad_provision.notifications import (
    send_failure_notification,
    send_directory_connection_failure,
    send_run_summary
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_DIRECTORY_ERROR = 3
EXIT_UNEXPECTED_ERROR = 4
EXIT_INPUT_UNAVAILABLE = 5


class ProvisionOrchestrator:
    """
    Runs one provisioning batch end to end.

    Handles pre-flight failures (configuration, directory bind, input file)
    and maps them to exit codes.
    """

    def __init__(self, input_path: Optional[str] = None, config_path: Optional[str] = None,
                 dry_run: bool = False, summary_path: Optional[str] = None):
        """
        Initialize the orchestrator.

        Args:
            input_path: Path to the input CSV
            config_path: Path to configuration file
            dry_run: Report planned changes without writing to the directory
            summary_path: Optional path for a JSON copy of the run summary
        """
        self.input_path = input_path
        self.config_path = config_path
        self.dry_run = dry_run
        self.summary_path = summary_path
        self.config = None
        self.settings = None
        self.directory = None
        self.summary = None

    def run(self) -> int:
        """
        Run the provisioning batch.

        Returns:
            Exit code (0 when the batch completed, non-zero for pre-flight failures)
        """
        try:
            self._load_configuration()
            setup_logging(self.config.get('logging', {}))

            logger.info(f"Starting AD Provision{' (dry run)' if self.dry_run else ''}")

            records = self._read_input()
            self._connect_directory()

            engine = ProvisioningEngine(self.directory, self.settings)
            self.summary = engine.run(records)

            self._write_summary_file()
            self._send_run_summary()

            if self.summary.has_errors:
                logger.warning(f"Run completed with {self.summary.errored} record errors")
            else:
                logger.info("Run completed successfully")
            return EXIT_OK

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return EXIT_CONFIG_ERROR
        except InputUnavailableError as e:
            logger.error(f"Input error: {e}")
            self._send_failure_notification("Input Unavailable", str(e), before_changes=True)
            return EXIT_INPUT_UNAVAILABLE
        except DirectoryConnectionError as e:
            logger.error(f"Directory connection error: {e}")
            self._send_directory_connection_failure(str(e))
            return EXIT_DIRECTORY_ERROR
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            self._send_failure_notification("Provisioning Failed", f"Unexpected error: {e}")
            return EXIT_UNEXPECTED_ERROR
        finally:
            self._cleanup()

    def _load_configuration(self):
        """Load and validate configuration."""
        try:
            self.config = load_config(self.config_path)
            self.settings = ProvisioningSettings.from_config(self.config)
            logger.debug(f"Provisioning settings: {self.settings!r}")
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def _read_input(self):
        if not self.input_path:
            raise InputUnavailableError("No input file given")
        input_config = self.config.get('input', {})
        return read_records(
            self.input_path,
            encoding=input_config.get('encoding', 'utf-8-sig'),
            delimiter=input_config.get('delimiter', ',')
        )

    def _create_directory(self) -> LDAPDirectory:
        return LDAPDirectory(self.config['ldap'], self.settings.domain_root)

    def _connect_directory(self):
        """Establish the directory connection."""
        error_config = self.config.get('error_handling', {})
        ldap_directory = self._create_directory()
        ldap_directory.connect(
            max_retries=error_config.get('max_retries', 3),
            retry_wait=error_config.get('retry_wait_seconds', 5)
        )
        self.directory = DryRunDirectory(ldap_directory) if self.dry_run else ldap_directory

    def _write_summary_file(self):
        if not self.summary_path:
            return
        try:
            with open(self.summary_path, 'w', encoding='utf-8') as f:
                json.dump(self.summary.as_dict(), f, indent=2)
            logger.info(f"Summary written to {self.summary_path}")
        except OSError as e:
            logger.error(f"Failed to write summary file {self.summary_path}: {e}")

    def _send_run_summary(self):
        notifications_config = self.config.get('notifications', {})
        send_run_summary(self.summary, notifications_config)

    def _send_failure_notification(self, title: str, error_message: str, before_changes: bool = False):
        """Send email notification for failures."""
        if not self.config:
            return
        send_failure_notification(title, error_message, self.config.get('notifications', {}),
                                  before_changes=before_changes)

    def _send_directory_connection_failure(self, error_message: str):
        if not self.config:
            return
        retry_count = self.config.get('error_handling', {}).get('max_retries', 3)
        send_directory_connection_failure(error_message, self.config.get('notifications', {}), retry_count)

    def health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of configuration and directory access.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except ConfigurationError as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        ldap_directory = self._create_directory()
        try:
            if ldap_directory.test_connection():
                health_status['checks']['directory'] = {
                    'status': 'pass',
                    'message': 'Directory connection successful'
                }
                base_ou_exists = ldap_directory.ou_exists(self.settings.base_ou)
                health_status['checks']['base_ou'] = {
                    'status': 'pass' if base_ou_exists else 'warn',
                    'message': (f'Base OU {self.settings.base_ou} exists' if base_ou_exists
                                else f'Base OU {self.settings.base_ou} missing, it will be created on first use')
                }
            else:
                health_status['checks']['directory'] = {
                    'status': 'fail',
                    'message': f'Cannot bind to {ldap_directory.server_url} or read {self.settings.domain_root}'
                }
                health_status['status'] = 'unhealthy'
        except DirectoryError as e:
            health_status['checks']['base_ou'] = {
                'status': 'fail',
                'message': f'Base OU lookup failed: {e}'
            }
            health_status['status'] = 'unhealthy'
        finally:
            ldap_directory.disconnect()

        notifications_config = self.config.get('notifications', {})
        if notifications_config.get('enable_email', False):
            required_fields = ['smtp_server', 'email_from', 'email_to']
            missing_fields = [f for f in required_fields if not notifications_config.get(f)]
            if missing_fields:
                health_status['checks']['notifications'] = {
                    'status': 'fail',
                    'message': f'Missing notification config: {missing_fields}'
                }
                health_status['status'] = 'unhealthy'
            else:
                health_status['checks']['notifications'] = {
                    'status': 'pass',
                    'message': 'Email notification configuration valid'
                }
        else:
            health_status['checks']['notifications'] = {
                'status': 'skip',
                'message': 'Email notifications disabled'
            }

        return health_status

    def _cleanup(self):
        """Clean up resources."""
        if self.directory:
            self.directory.disconnect()
            self.directory = None


def main():
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description='Provision Active Directory users from a CSV batch')
    parser.add_argument('input', nargs='?', help='Path to the input CSV file')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--dry-run', action='store_true',
                        help='Report planned changes without writing to the directory')
    parser.add_argument('--summary-json', metavar='PATH',
                        help='Write the run summary as JSON to PATH')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of a provisioning run')
    parser.add_argument('--test-email', action='store_true',
                        help='Send test email notification')

    args = parser.parse_args()

    orchestrator = ProvisionOrchestrator(
        input_path=args.input,
        config_path=args.config,
        dry_run=args.dry_run,
        summary_path=args.summary_json
    )

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    elif args.test_email:
        try:
            orchestrator._load_configuration()
        except ConfigurationError as e:
            print(f"Error testing email: {e}")
            sys.exit(EXIT_CONFIG_ERROR)

        from ad_provision.notifications import test_notification_config
        if test_notification_config(orchestrator.config.get('notifications', {})):
            print("Test email sent successfully")
            sys.exit(0)
        print("Failed to send test email")
        sys.exit(1)

    else:
        if not args.input:
            parser.error('an input CSV file is required')
        sys.exit(orchestrator.run())


if __name__ == "__main__":
    main()
