"""
Sysfs/procfs attribute readers for Farm Agent.

All kernel filesystem access goes through SystemPaths so a collector can be
pointed at a fake tree (tests, containers with /host mounts). Readers return
None for anything missing or unreadable and never raise.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class SystemPaths:
    """Roots of the kernel trees and firmware files the collectors read."""

    sysfs_root: str = "/sys"
    procfs_root: str = "/proc"
    dev_root: str = "/dev"
    dmi_table: str = "/sys/firmware/dmi/tables/DMI"
    dmi_entries: str = "/sys/firmware/dmi/entries"
    pci_ids: Optional[str] = None

    @classmethod
    def from_config(cls, config_manager=None) -> "SystemPaths":
        """Build from the ``paths`` config section, defaults for missing keys."""
        if config_manager is None:
            return cls()
        section = config_manager.get_paths_config() or {}
        defaults = cls()
        return cls(
            sysfs_root=section.get("sysfs_root") or defaults.sysfs_root,
            procfs_root=section.get("procfs_root") or defaults.procfs_root,
            dev_root=section.get("dev_root") or defaults.dev_root,
            dmi_table=section.get("dmi_table") or defaults.dmi_table,
            dmi_entries=section.get("dmi_entries") or defaults.dmi_entries,
            pci_ids=section.get("pci_ids"),
        )

    def sys(self, *parts: str) -> str:
        """Join a path under the sysfs root."""
        return os.path.join(self.sysfs_root, *parts)

    def proc(self, *parts: str) -> str:
        """Join a path under the procfs root."""
        return os.path.join(self.procfs_root, *parts)

    def dev(self, *parts: str) -> str:
        """Join a path under the device root."""
        return os.path.join(self.dev_root, *parts)


def read_text(path: str) -> Optional[str]:
    """Read and trim a sysfs attribute; empty content becomes None."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as file_handle:
            value = file_handle.read().strip()
    except OSError as error:
        logger.debug("Cannot read %s: %s", path, error)
        return None
    return value or None


def read_int(path: str, base: int = 10) -> Optional[int]:
    """Read an integer attribute."""
    value = read_text(path)
    if value is None:
        return None
    try:
        return int(value, base)
    except ValueError:
        logger.debug("Non-integer content in %s: %r", path, value)
        return None


def read_hex(path: str) -> Optional[int]:
    """Read a hexadecimal attribute such as ``0x8086``."""
    return read_int(path, 16)


def read_link_name(path: str) -> Optional[str]:
    """Basename of a symlink's target (e.g. a driver or subsystem name)."""
    try:
        target = os.readlink(path)
    except OSError as error:
        logger.debug("Cannot resolve link %s: %s", path, error)
        return None
    return os.path.basename(target.rstrip("/")) or None


def resolve_path(path: str) -> Optional[str]:
    """Canonical path with every symlink resolved, None when missing."""
    if not os.path.exists(path):
        return None
    return os.path.realpath(path)


def list_dir(path: str) -> List[str]:
    """Sorted directory entries, empty when the directory is unreadable."""
    try:
        return sorted(os.listdir(path))
    except OSError as error:
        logger.debug("Cannot list %s: %s", path, error)
        return []
