"""
PCI ID resolution for Farm Agent.

Resolves numeric vendor/device IDs read from sysfs to names through the
pci.ids database shipped by hwdata/pciutils. The database is parsed once per
path and shared read-only by every collector.
"""

import logging
import os
import threading
from typing import Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

PCI_IDS_LOCATIONS = (
    "/usr/share/hwdata/pci.ids",
    "/usr/share/misc/pci.ids",
    "/usr/share/pci.ids",
    "/usr/local/share/pci.ids",
)


def unknown_device_label(device_id: int) -> str:
    """Label used for a device ID missing under a known vendor."""
    return f"Unknown Device [0x{device_id:04x}]"


class PciIdDatabase:
    """Vendor and device names keyed by 16-bit PCI IDs."""

    def __init__(self, vendors: Optional[Dict[int, str]] = None,
                 devices: Optional[Dict[Tuple[int, int], str]] = None):
        self.vendors: Dict[int, str] = vendors or {}
        self.devices: Dict[Tuple[int, int], str] = devices or {}

    def __len__(self) -> int:
        return len(self.vendors)

    @classmethod
    def parse(cls, lines: Iterable[str]) -> "PciIdDatabase":
        """
        Parse pci.ids content.

        Vendor lines start in column 0, device lines with one tab, subsystem
        lines with two tabs (ignored). The device class list that follows
        the first ``C`` line is not needed and ends parsing.
        """
        vendors: Dict[int, str] = {}
        devices: Dict[Tuple[int, int], str] = {}
        current_vendor: Optional[int] = None

        for line in lines:
            line = line.rstrip("\n")
            if not line or line.startswith("#"):
                continue
            if line.startswith("C "):
                break
            if line.startswith("\t\t"):
                continue
            try:
                if line.startswith("\t"):
                    if current_vendor is None:
                        continue
                    device_hex, name = line.strip().split(None, 1)
                    devices[(current_vendor, int(device_hex, 16))] = name.strip()
                else:
                    vendor_hex, name = line.split(None, 1)
                    current_vendor = int(vendor_hex, 16)
                    vendors[current_vendor] = name.strip()
            except ValueError:
                logger.debug("Skipping malformed pci.ids line: %r", line)

        return cls(vendors, devices)

    @classmethod
    def load(cls, path: str) -> "PciIdDatabase":
        """Parse a pci.ids file; raises OSError when unreadable."""
        with open(path, "r", encoding="utf-8", errors="replace") as file_handle:
            return cls.parse(file_handle)

    def vendor_name(self, vendor_id: Optional[int]) -> Optional[str]:
        """Vendor name, None when unknown."""
        if vendor_id is None:
            return None
        return self.vendors.get(vendor_id)

    def resolve(
        self, vendor_id: Optional[int], device_id: Optional[int]
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Resolve a vendor/device pair to names.

        An unknown vendor yields (None, None). A known vendor with an unknown
        device yields a synthesized "Unknown Device [0xNNNN]" label.
        """
        vendor = self.vendor_name(vendor_id)
        if vendor is None:
            return None, None
        if device_id is None:
            return vendor, None
        device = self.devices.get((vendor_id, device_id))
        if device is None:
            device = unknown_device_label(device_id)
        return vendor, device


_CACHE: Dict[Optional[str], PciIdDatabase] = {}
_CACHE_LOCK = threading.Lock()


def _candidate_paths(path: Optional[str]) -> Tuple[str, ...]:
    if path:
        return (path,)
    return PCI_IDS_LOCATIONS


def get_pci_database(path: Optional[str] = None) -> PciIdDatabase:
    """
    Return the database for a path (or the standard locations), loading it
    on first use. A missing database yields an empty one, which resolves
    nothing.
    """
    with _CACHE_LOCK:
        if path in _CACHE:
            return _CACHE[path]

        database = PciIdDatabase()
        for candidate in _candidate_paths(path):
            if not os.path.exists(candidate):
                continue
            try:
                database = PciIdDatabase.load(candidate)
                logger.debug(
                    "Loaded %d PCI vendors from %s", len(database), candidate
                )
                break
            except OSError as error:
                logger.debug("Cannot read %s: %s", candidate, error)
        else:
            logger.info("No pci.ids database found; PCI names stay empty")

        _CACHE[path] = database
        return database


def clear_cache() -> None:
    """Forget loaded databases."""
    with _CACHE_LOCK:
        _CACHE.clear()
