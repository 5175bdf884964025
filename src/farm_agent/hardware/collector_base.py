"""
Base hardware collector module for Farm Agent.
Provides the base class shared by every per-category collector.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from .pci_ids import PciIdDatabase, get_pci_database
from .probes import ProbeRunner
from .smbios import SmbiosTable, load_smbios_table
from .sysfs import SystemPaths


class HardwareCollectorBase(ABC):
    """
    Base class for per-category collectors.

    Holds the shared inputs (filesystem roots, probe runner, firmware table)
    so one SMBIOS parse can be reused by every collector of a run.
    """

    category = ""

    def __init__(
        self,
        config_manager=None,
        paths: Optional[SystemPaths] = None,
        probes: Optional[ProbeRunner] = None,
        smbios_table: Optional[SmbiosTable] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__module__)
        self.config = config_manager
        self.paths = paths or SystemPaths.from_config(config_manager)
        self.probes = probes or ProbeRunner.from_config(config_manager)
        self._smbios_table = smbios_table

    @property
    def smbios(self) -> SmbiosTable:
        """Firmware table, loaded on first access."""
        if self._smbios_table is None:
            self._smbios_table = load_smbios_table(
                self.paths.dmi_table, self.paths.dmi_entries
            )
        return self._smbios_table

    @property
    def pci_database(self) -> PciIdDatabase:
        """Shared PCI ID database."""
        return get_pci_database(self.paths.pci_ids)

    @abstractmethod
    def collect(self) -> Any:
        """Collect this category. Never raises for missing hardware data."""

    @abstractmethod
    def empty(self) -> Any:
        """Value reported when the category could not be collected at all."""
