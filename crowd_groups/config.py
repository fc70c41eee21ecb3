"""
Configuration loading and management for the groups provider.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of provider configuration."""

    # Environment variable mappings for sensitive fields
    ENV_OVERRIDES = {
        'directory.application_password': 'CROWD_APPLICATION_PASSWORD',
        'directory.bind_password': 'LDAP_BIND_PASSWORD',
    }

    # Required directory fields per directory module
    REQUIRED_DIRECTORY_FIELDS = {
        'crowd': ['base_url', 'application_name', 'application_password'],
        'ldap': ['server_url', 'bind_dn', 'bind_password'],
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CROWD_GROUPS_CONFIG env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CROWD_GROUPS_CONFIG', 'config.yaml')
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

        self.config = prepare_config(self.config)
        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config


def _set_nested_value(config: Dict, key_path: str, value: Any):
    """Set a nested configuration value using dot notation."""
    keys = key_path.split('.')
    current = config
    for key in keys[:-1]:
        if current.get(key) is None:
            current[key] = {}
        current = current[key]
        if not isinstance(current, dict):
            # Left for _validate to report
            return
    current[keys[-1]] = value


def _apply_env_overrides(config: Dict[str, Any]):
    for config_key, env_var in ConfigLoader.ENV_OVERRIDES.items():
        env_value = os.getenv(env_var)
        if env_value:
            _set_nested_value(config, config_key, env_value)
            logger.debug(f"Applied environment override for {config_key}")


OPTIONAL_SECTIONS = ('resolver', 'logging', 'error_handling')


def _validate(config: Dict[str, Any]):
    errors = []

    directory = config.get('directory')
    if directory is None:
        errors.append("Missing required section: directory")
        directory = {}
    elif not isinstance(directory, dict):
        errors.append(f"Section directory must be a mapping, got {type(directory).__name__}")
        directory = {}

    for section in OPTIONAL_SECTIONS:
        if section in config and not isinstance(config[section], dict):
            errors.append(f"Section {section} must be a mapping, got {type(config[section]).__name__}")

    module = directory.get('module')
    if not module:
        errors.append("Missing required directory field: module")
    elif module in ConfigLoader.REQUIRED_DIRECTORY_FIELDS:
        for field in ConfigLoader.REQUIRED_DIRECTORY_FIELDS[module]:
            if not directory.get(field):
                errors.append(f"Missing required {module} directory field: {field}")

    resolver = config.get('resolver')
    page_size = resolver.get('page_size') if isinstance(resolver, dict) else None
    if page_size is not None and (isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1):
        errors.append(f"resolver.page_size must be a positive integer, got {page_size!r}")

    if errors:
        raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))


def _apply_defaults(config: Dict[str, Any]):
    resolver_config = config.setdefault('resolver', {})
    resolver_config.setdefault('page_size', 100)

    logging_defaults = {
        'level': 'INFO',
        'log_file': None,
        'rotation': 'daily',
        'retention_days': 7,
        'console_output': False,
        'propagate': True
    }
    logging_config = config.setdefault('logging', {})
    for key, value in logging_defaults.items():
        logging_config.setdefault(key, value)

    error_defaults = {
        'max_retries': 3,
        'retry_wait_seconds': 5
    }
    error_config = config.setdefault('error_handling', {})
    for key, value in error_defaults.items():
        error_config.setdefault(key, value)

    directory = config['directory']
    directory.setdefault('verify_ssl', True)
    directory.setdefault('error_handling', dict(error_config))


def prepare_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply environment overrides, validate and fill defaults on a raw configuration.

    Args:
        config: Configuration dictionary, modified in place

    Returns:
        The prepared configuration dictionary

    Raises:
        ConfigurationError: If validation fails
    """
    _apply_env_overrides(config)
    _validate(config)
    _apply_defaults(config)
    return config


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
