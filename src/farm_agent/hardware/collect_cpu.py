"""
CPU collector for Farm Agent.
Builds one socket entry per SMBIOS processor record.
"""

from typing import List, Optional

from .collector_base import HardwareCollectorBase
from .smbios import ProcessorRecord, SmbiosTable
from .types import CpuInfo, CpuSocket


def _sum_positive(values: List[Optional[int]]) -> Optional[int]:
    """Sum of the values that are present, None when none are."""
    present = [value for value in values if value]
    return sum(present) if present else None


def build_socket(index: int, record: ProcessorRecord, table: SmbiosTable) -> CpuSocket:
    """Build one socket from a processor record and its cache references."""
    return CpuSocket(
        socket=index,
        manufacturer=record.manufacturer,
        model_name=record.version,
        num_cores=record.core_count,
        num_threads=record.thread_count,
        capacity_mhz=record.current_speed_mhz or record.max_speed_mhz,
        slot=record.socket_designation,
        l1_cache_kb=table.cache_size_kb(record.l1_cache_handle),
        l2_cache_kb=table.cache_size_kb(record.l2_cache_handle),
        l3_cache_kb=table.cache_size_kb(record.l3_cache_handle),
    )


class CpuCollector(HardwareCollectorBase):
    """Collects processor sockets from the firmware table."""

    category = "cpu"

    def collect(self) -> CpuInfo:
        """
        Socket indices follow table order (0..n-1), never firmware handles.
        Aggregates stay None rather than 0 when no socket reported a value.
        """
        table = self.smbios
        cpus = [
            build_socket(index, record, table)
            for index, record in enumerate(table.processors())
        ]
        if not cpus:
            self.logger.debug("No processor records in the firmware table")

        return CpuInfo(
            sockets=len(cpus) or None,
            cores=_sum_positive([cpu.num_cores for cpu in cpus]),
            threads=_sum_positive([cpu.num_threads for cpu in cpus]),
            cpus=cpus,
        )

    def empty(self) -> CpuInfo:
        return CpuInfo()
