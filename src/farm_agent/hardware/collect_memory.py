"""
Memory collector for Farm Agent.
Builds one DIMM entry per populated SMBIOS memory device.
"""

from typing import Optional

from .collector_base import HardwareCollectorBase
from .normalize import memory_type_name
from .smbios import MemoryDeviceRecord
from .types import DimmInfo, MemoryInfo

KIB = 1024
MIB = 1024 * 1024

SIZE_NOT_INSTALLED = 0x0000
SIZE_UNKNOWN = 0xFFFF
SIZE_SEE_EXTENDED = 0x7FFF
SIZE_IN_KILOBYTES = 0x8000


def resolve_dimm_size(size_field: Optional[int], extended_mb: Optional[int]) -> Optional[int]:
    """
    Decode the memory device size field into bytes.

    0 means no module, 0xFFFF means unknown; bit 15 selects kilobytes
    over megabytes. 0x7FFF points at the 32-bit extended size (MB); when
    that field is absent or zero the raw 0x7FFF megabytes are used.
    """
    if size_field is None or size_field in (SIZE_NOT_INSTALLED, SIZE_UNKNOWN):
        return None
    if size_field == SIZE_SEE_EXTENDED:
        if extended_mb:
            return extended_mb * MIB
        return SIZE_SEE_EXTENDED * MIB
    if size_field & SIZE_IN_KILOBYTES:
        kilobytes = size_field & 0x7FFF
        return kilobytes * KIB if kilobytes else None
    return size_field * MIB


def build_dimm(record: MemoryDeviceRecord) -> Optional[DimmInfo]:
    """Build a DIMM from a memory device record, None for empty slots."""
    size_bytes = resolve_dimm_size(record.size_field, record.extended_size_mb)
    if size_bytes is None:
        return None

    return DimmInfo(
        slot=record.device_locator,
        size_bytes=size_bytes,
        mem_type=memory_type_name(record.memory_type),
        speed_mt_s=record.configured_speed_mts or record.speed_mts,
        manufacturer=record.manufacturer,
        serial_number=record.serial_number,
        part_number=record.part_number,
    )


class MemoryCollector(HardwareCollectorBase):
    """Collects installed memory modules from the firmware table."""

    category = "memory"

    def collect(self) -> MemoryInfo:
        dimms = []
        for record in self.smbios.memory_devices():
            dimm = build_dimm(record)
            if dimm is None:
                self.logger.debug(
                    "Skipping memory device 0x%04X without installed capacity",
                    record.handle,
                )
                continue
            dimms.append(dimm)

        total = sum(dimm.size_bytes or 0 for dimm in dimms)
        return MemoryInfo(total_bytes=total or None, dimms=dimms)

    def empty(self) -> MemoryInfo:
        return MemoryInfo()
