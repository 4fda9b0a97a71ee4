"""
Configuration loading and management for AD Provision.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults, and builds the immutable settings the engine runs with.
"""

import os
import yaml
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional, Tuple

from ad_provision.credentials import DEFAULT_ELEVATED_GROUPS

logger = logging.getLogger(__name__)

ACCOUNT_PLACEHOLDER = '{account}'


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for sensitive fields
    ENV_OVERRIDES = {
        'ldap.bind_password': 'LDAP_BIND_PASSWORD',
        'provisioning.standard_password': 'STANDARD_PASSWORD',
        'provisioning.elevated_password': 'ELEVATED_PASSWORD',
        'notifications.smtp_password': 'SMTP_PASSWORD',
    }

    REQUIRED_LDAP_FIELDS = ['server_url', 'bind_dn', 'bind_password']
    REQUIRED_PROVISIONING_FIELDS = [
        'base_ou', 'domain_root', 'standard_password',
        'elevated_password', 'home_directory_template'
    ]

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for sensitive fields."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if current.get(key) is None:
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        ldap_config = self.config.get('ldap') or {}
        for field in self.REQUIRED_LDAP_FIELDS:
            if not ldap_config.get(field):
                errors.append(f"Missing required LDAP field: {field}")

        provisioning = self.config.get('provisioning') or {}
        for field in self.REQUIRED_PROVISIONING_FIELDS:
            if not provisioning.get(field):
                errors.append(f"Missing required provisioning field: {field}")

        template = provisioning.get('home_directory_template')
        if template and ACCOUNT_PLACEHOLDER not in template:
            errors.append(f"provisioning.home_directory_template must contain {ACCOUNT_PLACEHOLDER}")

        domain_root = provisioning.get('domain_root')
        if domain_root and 'DC=' not in domain_root.upper():
            errors.append("provisioning.domain_root must be a DC= distinguished name")

        if 'elevated_groups' in provisioning:
            elevated = provisioning['elevated_groups']
            if not isinstance(elevated, list) or not elevated:
                errors.append("provisioning.elevated_groups must be a non-empty list")

        if 'delete_existing' in provisioning and not isinstance(provisioning['delete_existing'], bool):
            errors.append("provisioning.delete_existing must be true or false")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        provisioning_defaults = {
            'default_mail': '',
            'delete_existing': False,
            'elevated_groups': list(DEFAULT_ELEVATED_GROUPS)
        }
        provisioning = self.config.setdefault('provisioning', {})
        for key, value in provisioning_defaults.items():
            provisioning.setdefault(key, value)

        input_defaults = {
            'encoding': 'utf-8-sig',
            'delimiter': ','
        }
        input_config = self.config.setdefault('input', {})
        for key, value in input_defaults.items():
            input_config.setdefault(key, value)

        # Logging defaults
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'INFO'
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        # Only the initial bind is retried
        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5
        }
        error_config = self.config.setdefault('error_handling', {})
        for key, value in error_defaults.items():
            error_config.setdefault(key, value)

        # Notification defaults
        notification_defaults = {
            'enable_email': False,
            'email_on_failure': True,
            'email_on_success': False,
            'smtp_port': 587,
            'smtp_tls': True
        }
        notification_config = self.config.setdefault('notifications', {})
        for key, value in notification_defaults.items():
            notification_config.setdefault(key, value)


@dataclass(frozen=True)
class ProvisioningSettings:
    """Immutable provisioning options handed to the engine."""
    base_ou: str
    domain_root: str
    standard_password: str
    elevated_password: str
    home_directory_template: str
    default_mail: str = ''
    delete_existing: bool = False
    elevated_groups: Tuple[str, ...] = DEFAULT_ELEVATED_GROUPS

    def __repr__(self):
        # Passwords stay out of reprs and therefore out of log lines
        return (f"ProvisioningSettings(base_ou={self.base_ou!r}, domain_root={self.domain_root!r}, "
                f"delete_existing={self.delete_existing!r}, elevated_groups={self.elevated_groups!r})")

    def home_directory_for(self, account: str) -> str:
        return self.home_directory_template.replace(ACCOUNT_PLACEHOLDER, account)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ProvisioningSettings':
        """Build settings from a loaded configuration dictionary."""
        provisioning = config.get('provisioning') or {}
        return cls(
            base_ou=provisioning['base_ou'],
            domain_root=provisioning['domain_root'],
            standard_password=provisioning['standard_password'],
            elevated_password=provisioning['elevated_password'],
            home_directory_template=provisioning['home_directory_template'],
            default_mail=provisioning.get('default_mail') or '',
            delete_existing=bool(provisioning.get('delete_existing', False)),
            elevated_groups=tuple(provisioning.get('elevated_groups') or DEFAULT_ELEVATED_GROUPS),
        )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
