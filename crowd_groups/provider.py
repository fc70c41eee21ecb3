"""
Composition of the groups provider.

Host applications call create_groups_provider with a configuration file path or
an already loaded configuration dictionary and register the returned resolver
as their external groups source.
"""

import logging
import importlib
from typing import Dict, Any, Optional, Union

from crowd_groups.config import load_config, prepare_config
from crowd_groups.directories.base import GroupDirectoryClient
from crowd_groups.logging_setup import setup_logging
from crowd_groups.resolver import GroupResolver

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when the configured directory client cannot be created."""
    pass


def load_directory_client(directory_config: Dict[str, Any]) -> GroupDirectoryClient:
    """
    Dynamically load the directory module named in the configuration.

    Args:
        directory_config: Directory section of the configuration

    Returns:
        Directory client instance

    Raises:
        ProviderError: If the module cannot be imported or has no client class
    """
    module_name = directory_config['module']

    try:
        directory_module = importlib.import_module(f"crowd_groups.directories.{module_name}")
    except ImportError as e:
        raise ProviderError(f"Failed to import directory module {module_name}: {e}") from e

    client_class = None
    for attr_name in dir(directory_module):
        attr = getattr(directory_module, attr_name)
        if (isinstance(attr, type) and
                issubclass(attr, GroupDirectoryClient) and
                attr is not GroupDirectoryClient):
            client_class = attr
            break

    if not client_class:
        raise ProviderError(f"No GroupDirectoryClient subclass found in module {module_name}")

    logger.debug(f"Using directory client {client_class.__name__} from module {module_name}")
    try:
        return client_class(directory_config)
    except (KeyError, ValueError, OSError) as e:
        raise ProviderError(f"Failed to initialize directory client {module_name}: {e}") from e


def create_groups_provider(config: Optional[Union[str, Dict[str, Any]]] = None,
                           configure_logging: bool = False) -> GroupResolver:
    """
    Build a GroupResolver from configuration.

    Args:
        config: Path to a YAML config file, a configuration dictionary, or None
            to use the default config location
        configure_logging: Whether to attach the configured handlers to the
            crowd_groups logger; host applications usually leave this off

    Returns:
        Resolver backed by the configured directory client
    """
    if isinstance(config, dict):
        config = prepare_config(config)
    else:
        config = load_config(config)

    if configure_logging:
        setup_logging(config['logging'])

    client = load_directory_client(config['directory'])
    page_size = config['resolver']['page_size']
    logger.info(f"Groups provider ready: directory={config['directory']['module']}, page_size={page_size}")
    return GroupResolver(client, page_size=page_size)
