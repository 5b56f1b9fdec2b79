"""
Configuration module for slotmap

This module provides configuration settings for the application.
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    'LOG_DIR': '/var/log/slotmap',
    'LOG_LEVEL': 'INFO',
    # External tools
    'DMIDECODE_BINARY': 'dmidecode',
    'LSPCI_BINARY': 'lspci',
    'PVESH_BINARY': 'pvesh',
    'IP_BINARY': 'ip',
    'COMMAND_TIMEOUT': 60,
    # Host paths
    'SYSFS_PCI_DEVICES': '/sys/bus/pci/devices',
    'SYSFS_NET': '/sys/class/net',
    'VM_CONFIG_DIR': '/etc/pve/qemu-server',
    # Cluster API
    'MAPPING_API_PATH': '/cluster/mapping/pci',
    'BRIDGE_NAME': 'vmbr0',
}

CONFIG = dict(DEFAULT_CONFIG)

DEFAULT_CONFIG_FILE = '/etc/slotmap/config.json'
CONFIG_ENV_VAR = 'SLOTMAP_CONFIG'


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file

    The file is ``path`` if given, otherwise ``$SLOTMAP_CONFIG``, otherwise
    /etc/slotmap/config.json. Keys in the file override the defaults.

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    config_file = path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE

    CONFIG.clear()
    CONFIG.update(DEFAULT_CONFIG)

    if not os.path.exists(config_file):
        logger.info(f"Configuration file {config_file} not found, using defaults")
        return CONFIG

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            user_config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load configuration from {config_file}: {e}")
        return CONFIG

    if not isinstance(user_config, dict):
        logger.error(f"Ignoring {config_file}: expected a JSON object")
        return CONFIG

    unknown = sorted(set(user_config) - set(DEFAULT_CONFIG))
    if unknown:
        logger.warning(f"Unknown configuration keys in {config_file}: {', '.join(unknown)}")

    CONFIG.update(user_config)
    logger.info(f"Loaded configuration from {config_file}")
    return CONFIG


@dataclass
class DisplayOptions:
    """Which sections of a device report are shown"""
    mapping: bool = True
    vms: bool = True
    net: bool = True
    driver: bool = True
    verbose: bool = True

    @classmethod
    def from_flags(cls, mapping=False, vms=False, net=False, driver=False, verbose=False):
        """
        Build options from command line flags.

        When no flag is given every section is enabled, otherwise only the
        given ones are.
        """
        if not any((mapping, vms, net, driver, verbose)):
            return cls()
        return cls(mapping=mapping, vms=vms, net=net, driver=driver, verbose=verbose)
