"""
Inventory aggregation for Farm Agent.
Runs every category collector and assembles the full report.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Type

from src.i18n import _
from src.farm_agent.core.version import get_agent_version
from src.farm_agent.utils.verbosity_logger import get_logger

from .collect_cpu import CpuCollector
from .collect_gpus import GpuCollector
from .collect_memory import MemoryCollector
from .collect_network import NetworkCollector
from .collect_node import NodeCollector
from .collect_power import PowerCollector
from .collect_storage import StorageCollector
from .collector_base import HardwareCollectorBase
from .probes import ProbeRunner
from .smbios import SmbiosTable, load_smbios_table
from .sysfs import SystemPaths
from .types import Inventory

COLLECTORS: Dict[str, Type[HardwareCollectorBase]] = {
    "node": NodeCollector,
    "cpu": CpuCollector,
    "memory": MemoryCollector,
    "storage": StorageCollector,
    "network": NetworkCollector,
    "gpu": GpuCollector,
    "power": PowerCollector,
}


class HardwareCollector:
    """Collects every hardware category into one inventory."""

    def __init__(self, config_manager=None, smbios_table: Optional[SmbiosTable] = None):
        self.config = config_manager
        self.logger = get_logger(__name__, config_manager)
        self.paths = SystemPaths.from_config(config_manager)
        self.probes = ProbeRunner.from_config(config_manager)
        self._smbios_table = smbios_table

    @property
    def smbios(self) -> SmbiosTable:
        """Firmware table shared by every collector of this run."""
        if self._smbios_table is None:
            self._smbios_table = load_smbios_table(
                self.paths.dmi_table, self.paths.dmi_entries
            )
        return self._smbios_table

    def get_collector(self, category: str) -> HardwareCollectorBase:
        """Instantiate the collector for one category."""
        try:
            collector_class = COLLECTORS[category]
        except KeyError as error:
            raise ValueError(_("Unknown hardware category: %s") % category) from error
        return collector_class(
            config_manager=self.config,
            paths=self.paths,
            probes=self.probes,
            smbios_table=self.smbios,
        )

    def collect_category(self, category: str) -> Any:
        """
        Run one collector. An unexpected exception is logged and replaced by
        the category's empty value so the report keeps its shape.
        """
        collector = self.get_collector(category)
        try:
            return collector.collect()
        except Exception:  # pylint: disable=broad-exception-caught
            self.logger.exception("Collector %s failed", category)
            return collector.empty()

    def _collect_all(self) -> Dict[str, Any]:
        if not self._is_parallel():
            return {category: self.collect_category(category) for category in COLLECTORS}

        # Parse the shared table once, before fanning out
        self.logger.debug("Firmware table holds %d structures", len(self.smbios))
        max_workers = self._max_workers()
        self.logger.debug("Collecting on %d worker threads", max_workers)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                category: executor.submit(self.collect_category, category)
                for category in COLLECTORS
            }
            return {category: future.result() for category, future in futures.items()}

    def _is_parallel(self) -> bool:
        return bool(self.config and self.config.is_parallel_collection())

    def _max_workers(self) -> int:
        return self.config.get_max_workers() if self.config else 4

    def collect_full_inventory(self) -> Inventory:
        """Collect every category; never fails for missing hardware data."""
        results = self._collect_all()
        inventory = Inventory(
            agent_version=get_agent_version(),
            node=results["node"],
            cpu=results["cpu"],
            memory=results["memory"],
            disks=results["storage"],
            network=results["network"],
            gpus=results["gpu"],
            power_supplies=results["power"],
        )
        self.logger.info(
            "Collected inventory: %d disks, %d interfaces, %d GPUs, %d power supplies",
            len(inventory.disks),
            len(inventory.network.interfaces),
            len(inventory.gpus),
            len(inventory.power_supplies),
        )
        return inventory


def collect_full_inventory(config_manager=None) -> Inventory:
    """Collect the full hardware inventory for this host."""
    return HardwareCollector(config_manager).collect_full_inventory()

