"""
Configuration management for Farm Agent.
Reads YAML configuration files and provides configuration data.
"""

import copy
import logging
import os
from typing import Any, Dict, Optional

import yaml

from src.i18n import _

SYSTEM_CONFIG_PATH = "/etc/farm-agent.yaml"
LOCAL_CONFIG_PATH = "./farm-agent.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "logging": {
        "level": "WARNING|ERROR|CRITICAL",
        "file": None,
        "format": "%(levelname)s: %(name)s: %(message)s",
    },
    "i18n": {"language": "en"},
    "collection": {
        "parallel": False,
        "max_workers": 4,
        "probe_timeout": 30,
        "deduplicate_power_supplies": False,
    },
    "paths": {
        "sysfs_root": "/sys",
        "procfs_root": "/proc",
        "dev_root": "/dev",
        "dmi_table": "/sys/firmware/dmi/tables/DMI",
        "dmi_entries": "/sys/firmware/dmi/entries",
        "pci_ids": None,
    },
    "bmc": {"smbios_detection": False, "redfish_timeout": 2},
    "output": {"format": "pretty"},
    "server": {"url": "http://localhost:6183", "verify_ssl": True, "timeout": 30},
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay override onto a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:  # pylint: disable=too-many-public-methods
    """Manages configuration for the Farm Agent."""

    def __init__(self, config_file: Optional[str] = None):
        # Initialize logger
        self.logger = logging.getLogger(__name__)

        self.config_file = self._determine_config_path(config_file)
        self.config_data: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.load_config()

    def _determine_config_path(self, config_file: Optional[str]) -> Optional[str]:
        """
        Determine configuration file path.

        Priority order:
        1. Explicitly provided path (must exist)
        2. /etc/farm-agent.yaml (system config)
        3. ./farm-agent.yaml (local config)
        4. None: run on built-in defaults
        """
        if config_file:
            if not os.path.exists(config_file):
                raise FileNotFoundError(
                    _("Configuration file '%s' not found") % config_file
                )
            return config_file

        # System config takes precedence over local config
        if os.path.exists(SYSTEM_CONFIG_PATH):
            return SYSTEM_CONFIG_PATH
        if os.path.exists(LOCAL_CONFIG_PATH):
            return LOCAL_CONFIG_PATH
        return None

    def load_config(self) -> None:
        """Load configuration from the YAML file, if any, over the defaults."""
        if self.config_file is None:
            self.logger.debug("No configuration file found, using defaults")
            return

        try:
            with open(self.config_file, "r", encoding="utf-8") as file:
                loaded = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ValueError(_("Invalid YAML in configuration file: %s") % e) from e
        except OSError as e:
            raise RuntimeError(_("Failed to load configuration file: %s") % e) from e

        if not isinstance(loaded, dict):
            raise ValueError(
                _("Configuration file '%s' must contain a mapping") % self.config_file
            )
        self.config_data = _merge(DEFAULT_CONFIG, loaded)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration key (e.g., 'paths.sysfs_root')
            default: Default value if key is not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value = self.config_data

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_log_level(self) -> str:
        """Get logging level (may be pipe-separated)."""
        return self.get("logging.level", "WARNING|ERROR|CRITICAL")

    def get_log_file(self) -> Optional[str]:
        """Get log file path if specified."""
        return self.get("logging.file")

    def get_log_format(self) -> str:
        """Get log format string."""
        return self.get("logging.format", "%(levelname)s: %(name)s: %(message)s")

    def get_language(self) -> str:
        """Get configured language/locale."""
        return self.get("i18n.language", "en")

    def is_parallel_collection(self) -> bool:
        """Check if collectors should run on a thread pool."""
        return bool(self.get("collection.parallel", False))

    def get_max_workers(self) -> int:
        """Get the thread pool size for parallel collection."""
        return max(1, int(self.get("collection.max_workers", 4)))

    def get_probe_timeout(self) -> float:
        """Get the timeout in seconds for external diagnostic tools."""
        return float(self.get("collection.probe_timeout", 30))

    def should_deduplicate_power_supplies(self) -> bool:
        """Check if power supplies reported by several sources are merged."""
        return bool(self.get("collection.deduplicate_power_supplies", False))

    def get_paths_config(self) -> Dict[str, Any]:
        """Get the filesystem roots section."""
        return self.get("paths", {})

    def is_smbios_bmc_detection_enabled(self) -> bool:
        """Check if the SMBIOS IPMI device record counts as BMC evidence."""
        return bool(self.get("bmc.smbios_detection", False))

    def get_redfish_timeout(self) -> float:
        """Get the Redfish probe timeout in seconds."""
        return float(self.get("bmc.redfish_timeout", 2))

    def get_output_format(self) -> str:
        """Get default output format."""
        return self.get("output.format", "pretty")

    def get_server_url(self) -> str:
        """Get the inventory server base URL."""
        return self.get("server.url", "http://localhost:6183")

    def should_verify_ssl(self) -> bool:
        """Check if SSL certificates should be verified."""
        return bool(self.get("server.verify_ssl", True))

    def get_server_timeout(self) -> float:
        """Get the inventory posting timeout in seconds."""
        return float(self.get("server.timeout", 30))
