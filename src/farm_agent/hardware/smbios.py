"""
SMBIOS/DMI firmware table reader for Farm Agent.

Parses the raw table the kernel exports under /sys/firmware/dmi into
structures, and exposes typed views for the record types the collectors
use. Reading never raises: a missing or corrupt table yields an empty
SmbiosTable so every collector can move on to its next source.
"""

import logging
import os
import re
from typing import Dict, Iterator, List, Optional

from .normalize import clean_string

logger = logging.getLogger(__name__)

DMI_TABLE_PATH = "/sys/firmware/dmi/tables/DMI"
DMI_ENTRIES_PATH = "/sys/firmware/dmi/entries"

TYPE_BIOS = 0
TYPE_SYSTEM = 1
TYPE_BASEBOARD = 2
TYPE_CHASSIS = 3
TYPE_PROCESSOR = 4
TYPE_CACHE = 7
TYPE_MEMORY_DEVICE = 17
TYPE_IPMI_DEVICE = 38
TYPE_END_OF_TABLE = 127

# Handle values meaning "no cross reference"
NO_HANDLE = (0xFFFF, 0xFFFE)

_ENTRY_NAME = re.compile(r"^(\d+)-(\d+)$")


class SmbiosStructure:
    """One structure: formatted area (header included) plus its string set."""

    def __init__(self, struct_type: int, handle: int, data: bytes, strings: List[str]):
        self.type = struct_type
        self.handle = handle
        self.data = data
        self.strings = strings

    @property
    def length(self) -> int:
        """Length of the formatted area, header included."""
        return len(self.data)

    def _int(self, offset: int, size: int) -> Optional[int]:
        if offset + size > len(self.data):
            return None
        return int.from_bytes(self.data[offset : offset + size], "little")

    def byte(self, offset: int) -> Optional[int]:
        """Read a BYTE field, None when beyond the formatted area."""
        return self._int(offset, 1)

    def word(self, offset: int) -> Optional[int]:
        """Read a little-endian WORD field."""
        return self._int(offset, 2)

    def dword(self, offset: int) -> Optional[int]:
        """Read a little-endian DWORD field."""
        return self._int(offset, 4)

    def qword(self, offset: int) -> Optional[int]:
        """Read a little-endian QWORD field."""
        return self._int(offset, 8)

    def raw_string(self, offset: int) -> Optional[str]:
        """Resolve a string-number field to its text, without filtering."""
        index = self.byte(offset)
        if not index or index > len(self.strings):
            return None
        return self.strings[index - 1]

    def string(self, offset: int) -> Optional[str]:
        """Resolve a string field, mapping firmware placeholders to None."""
        return clean_string(self.raw_string(offset))

    def __repr__(self) -> str:
        return f"SmbiosStructure(type={self.type}, handle=0x{self.handle:04X})"


class _Record:  # pylint: disable=too-few-public-methods
    """Base for typed views over a structure."""

    def __init__(self, structure: SmbiosStructure):
        self.structure = structure

    @property
    def handle(self) -> int:
        """Firmware handle of the underlying structure."""
        return self.structure.handle


class BiosRecord(_Record):
    """Type 0: BIOS information."""

    @property
    def vendor(self) -> Optional[str]:
        """BIOS vendor."""
        return self.structure.string(0x04)

    @property
    def version(self) -> Optional[str]:
        """BIOS version."""
        return self.structure.string(0x05)

    @property
    def release_date(self) -> Optional[str]:
        """BIOS release date."""
        return self.structure.string(0x08)


class SystemRecord(_Record):
    """Type 1: system information."""

    @property
    def manufacturer(self) -> Optional[str]:
        """System manufacturer."""
        return self.structure.string(0x04)

    @property
    def product_name(self) -> Optional[str]:
        """System product name."""
        return self.structure.string(0x05)

    @property
    def version(self) -> Optional[str]:
        """System version."""
        return self.structure.string(0x06)

    @property
    def serial_number(self) -> Optional[str]:
        """System serial number."""
        return self.structure.string(0x07)

    @property
    def sku_number(self) -> Optional[str]:
        """SKU number (SMBIOS 2.4+)."""
        return self.structure.string(0x19)

    @property
    def family(self) -> Optional[str]:
        """System family (SMBIOS 2.4+)."""
        return self.structure.string(0x1A)


class BaseboardRecord(_Record):
    """Type 2: baseboard information."""

    @property
    def manufacturer(self) -> Optional[str]:
        """Board manufacturer."""
        return self.structure.string(0x04)

    @property
    def product_name(self) -> Optional[str]:
        """Board product name."""
        return self.structure.string(0x05)

    @property
    def version(self) -> Optional[str]:
        """Board version."""
        return self.structure.string(0x06)

    @property
    def serial_number(self) -> Optional[str]:
        """Board serial number."""
        return self.structure.string(0x07)


class ChassisRecord(_Record):
    """Type 3: system enclosure."""

    @property
    def manufacturer(self) -> Optional[str]:
        """Chassis manufacturer."""
        return self.structure.string(0x04)

    @property
    def version(self) -> Optional[str]:
        """Chassis version."""
        return self.structure.string(0x06)

    @property
    def serial_number(self) -> Optional[str]:
        """Chassis serial number."""
        return self.structure.string(0x07)


class ProcessorRecord(_Record):
    """Type 4: processor information."""

    @property
    def socket_designation(self) -> Optional[str]:
        """Socket label, e.g. "CPU0"."""
        return self.structure.string(0x04)

    @property
    def manufacturer(self) -> Optional[str]:
        """Processor manufacturer."""
        return self.structure.string(0x07)

    @property
    def version(self) -> Optional[str]:
        """Processor version, i.e. the marketing model string."""
        return self.structure.string(0x10)

    @property
    def max_speed_mhz(self) -> Optional[int]:
        """Maximum speed in MHz, None when unknown."""
        return self.structure.word(0x14) or None

    @property
    def current_speed_mhz(self) -> Optional[int]:
        """Current speed in MHz, None when unknown."""
        return self.structure.word(0x16) or None

    def _cache_handle(self, offset: int) -> Optional[int]:
        handle = self.structure.word(offset)
        if handle is None or handle in NO_HANDLE:
            return None
        return handle

    @property
    def l1_cache_handle(self) -> Optional[int]:
        """Handle of the L1 cache record."""
        return self._cache_handle(0x1A)

    @property
    def l2_cache_handle(self) -> Optional[int]:
        """Handle of the L2 cache record."""
        return self._cache_handle(0x1C)

    @property
    def l3_cache_handle(self) -> Optional[int]:
        """Handle of the L3 cache record."""
        return self._cache_handle(0x1E)

    def _count(self, offset: int, offset2: int) -> Optional[int]:
        count = self.structure.byte(offset)
        if count == 0xFF:
            # 0xFF defers to the 16-bit field added in SMBIOS 3.0
            count = self.structure.word(offset2)
            if count == 0xFFFF:
                return None
        if not count:
            return None
        return count

    @property
    def core_count(self) -> Optional[int]:
        """Number of cores, None when zero or unknown."""
        return self._count(0x23, 0x2A)

    @property
    def thread_count(self) -> Optional[int]:
        """Number of threads, None when zero or unknown."""
        return self._count(0x25, 0x2E)


class CacheRecord(_Record):
    """Type 7: cache information."""

    @property
    def socket_designation(self) -> Optional[str]:
        """Cache label, e.g. "L2 Cache"."""
        return self.structure.string(0x04)

    @property
    def installed_size_kb(self) -> Optional[int]:
        """Installed size in KB, None when not installed or unknown."""
        size = self.structure.word(0x09)
        if size is None:
            return None
        if size == 0xFFFF:
            size2 = self.structure.dword(0x17)
            if size2 is None:
                return None
            granularity = 64 if size2 & 0x80000000 else 1
            kilobytes = (size2 & 0x7FFFFFFF) * granularity
        else:
            granularity = 64 if size & 0x8000 else 1
            kilobytes = (size & 0x7FFF) * granularity
        return kilobytes or None


class MemoryDeviceRecord(_Record):
    """Type 17: memory device (one slot)."""

    @property
    def size_field(self) -> Optional[int]:
        """Raw 16-bit size field (see collect_memory for its encodings)."""
        return self.structure.word(0x0C)

    @property
    def extended_size_mb(self) -> Optional[int]:
        """Extended size in MB (SMBIOS 2.7+), None when not present."""
        extended = self.structure.dword(0x1C)
        if extended is None:
            return None
        return extended & 0x7FFFFFFF

    @property
    def device_locator(self) -> Optional[str]:
        """Slot label, e.g. "DIMM_A1"."""
        return self.structure.string(0x10)

    @property
    def bank_locator(self) -> Optional[str]:
        """Bank label."""
        return self.structure.string(0x11)

    @property
    def memory_type(self) -> Optional[int]:
        """Raw memory type code."""
        return self.structure.byte(0x12)

    def _speed(self, offset: int, extended_offset: int) -> Optional[int]:
        speed = self.structure.word(offset)
        if speed == 0xFFFF:
            speed = self.structure.dword(extended_offset)
            if speed is not None:
                speed &= 0x7FFFFFFF
        return speed or None

    @property
    def speed_mts(self) -> Optional[int]:
        """Rated speed in MT/s."""
        return self._speed(0x15, 0x54)

    @property
    def configured_speed_mts(self) -> Optional[int]:
        """Configured speed in MT/s (SMBIOS 2.7+)."""
        return self._speed(0x20, 0x58)

    @property
    def manufacturer(self) -> Optional[str]:
        """Module manufacturer."""
        return self.structure.string(0x17)

    @property
    def serial_number(self) -> Optional[str]:
        """Module serial number."""
        return self.structure.string(0x18)

    @property
    def part_number(self) -> Optional[str]:
        """Module part number."""
        return self.structure.string(0x1A)


IPMI_INTERFACE_TYPES = {1: "KCS", 2: "SMIC", 3: "BT", 4: "SSIF"}


class IpmiDeviceRecord(_Record):
    """Type 38: IPMI device information."""

    @property
    def interface_type(self) -> Optional[str]:
        """BMC interface type (KCS, SMIC, BT, SSIF)."""
        return IPMI_INTERFACE_TYPES.get(self.structure.byte(0x04) or 0)

    @property
    def specification_revision(self) -> Optional[str]:
        """IPMI specification revision, e.g. "2.0"."""
        revision = self.structure.byte(0x05)
        if not revision:
            return None
        return f"{revision >> 4}.{revision & 0x0F}"

    @property
    def base_address(self) -> Optional[int]:
        """Base address of the BMC interface."""
        return self.structure.qword(0x08)


class SmbiosTable:
    """Parsed table with a handle index built once at construction."""

    def __init__(self, structures: Optional[List[SmbiosStructure]] = None):
        self.structures: List[SmbiosStructure] = list(structures or [])
        self._by_handle: Dict[int, SmbiosStructure] = {}
        for structure in self.structures:
            self._by_handle.setdefault(structure.handle, structure)

    def __len__(self) -> int:
        return len(self.structures)

    def __iter__(self) -> Iterator[SmbiosStructure]:
        return iter(self.structures)

    @property
    def is_empty(self) -> bool:
        """True when nothing could be read."""
        return not self.structures

    def records(self, struct_type: int) -> List[SmbiosStructure]:
        """All structures of one type, in table order."""
        return [s for s in self.structures if s.type == struct_type]

    def by_handle(self, handle: int) -> Optional[SmbiosStructure]:
        """Look a structure up by its handle."""
        return self._by_handle.get(handle)

    def cache_size_kb(self, handle: Optional[int]) -> Optional[int]:
        """Installed size of the cache record a processor points at."""
        if handle is None:
            return None
        structure = self._by_handle.get(handle)
        if structure is None or structure.type != TYPE_CACHE:
            return None
        return CacheRecord(structure).installed_size_kb

    def first(self, struct_type: int) -> Optional[SmbiosStructure]:
        """First structure of a type, or None."""
        records = self.records(struct_type)
        return records[0] if records else None

    def bios(self) -> Optional[BiosRecord]:
        """First BIOS record."""
        structure = self.first(TYPE_BIOS)
        return BiosRecord(structure) if structure else None

    def system(self) -> Optional[SystemRecord]:
        """First system record."""
        structure = self.first(TYPE_SYSTEM)
        return SystemRecord(structure) if structure else None

    def baseboard(self) -> Optional[BaseboardRecord]:
        """First baseboard record."""
        structure = self.first(TYPE_BASEBOARD)
        return BaseboardRecord(structure) if structure else None

    def chassis(self) -> Optional[ChassisRecord]:
        """First chassis record."""
        structure = self.first(TYPE_CHASSIS)
        return ChassisRecord(structure) if structure else None

    def processors(self) -> List[ProcessorRecord]:
        """Processor records in table order."""
        return [ProcessorRecord(s) for s in self.records(TYPE_PROCESSOR)]

    def memory_devices(self) -> List[MemoryDeviceRecord]:
        """Memory device records in table order."""
        return [MemoryDeviceRecord(s) for s in self.records(TYPE_MEMORY_DEVICE)]

    def ipmi_device(self) -> Optional[IpmiDeviceRecord]:
        """First IPMI device record."""
        structure = self.first(TYPE_IPMI_DEVICE)
        return IpmiDeviceRecord(structure) if structure else None


def parse_smbios(data: bytes) -> SmbiosTable:
    """
    Split a raw table into structures.

    Parsing stops at the end-of-table marker or at the first malformed
    structure; everything read up to that point is kept.
    """
    structures: List[SmbiosStructure] = []
    offset = 0
    total = len(data)

    while offset + 4 <= total:
        struct_type = data[offset]
        length = data[offset + 1]
        handle = int.from_bytes(data[offset + 2 : offset + 4], "little")

        if length < 4 or offset + length > total:
            logger.debug("Truncated SMBIOS structure at offset %d", offset)
            break

        strings_start = offset + length
        strings_end = data.find(b"\x00\x00", strings_start)
        if strings_end == -1:
            logger.debug("Unterminated SMBIOS string set at offset %d", offset)
            break

        raw_strings = data[strings_start:strings_end]
        strings = (
            [part.decode("utf-8", errors="replace") for part in raw_strings.split(b"\x00")]
            if raw_strings
            else []
        )
        structures.append(
            SmbiosStructure(struct_type, handle, data[offset:strings_start], strings)
        )

        if struct_type == TYPE_END_OF_TABLE:
            break
        offset = strings_end + 2

    return SmbiosTable(structures)


def _read_entries(entries_path: str) -> bytes:
    """Concatenate /sys/firmware/dmi/entries/<type>-<instance>/raw files."""
    keyed = []
    for name in os.listdir(entries_path):
        match = _ENTRY_NAME.match(name)
        if match:
            keyed.append((int(match.group(1)), int(match.group(2)), name))

    chunks = []
    for _type, _instance, name in sorted(keyed):
        try:
            with open(os.path.join(entries_path, name, "raw"), "rb") as file_handle:
                chunks.append(file_handle.read())
        except OSError as error:
            logger.debug("Skipping DMI entry %s: %s", name, error)
    return b"".join(chunks)


def load_smbios_table(
    table_path: str = DMI_TABLE_PATH, entries_path: str = DMI_ENTRIES_PATH
) -> SmbiosTable:
    """
    Load the firmware table, falling back to per-entry files.

    Returns an empty table when neither source is readable.
    """
    try:
        with open(table_path, "rb") as file_handle:
            table = parse_smbios(file_handle.read())
        if not table.is_empty:
            return table
        logger.debug("DMI table at %s is empty", table_path)
    except OSError as error:
        logger.debug("Cannot read DMI table %s: %s", table_path, error)

    try:
        table = parse_smbios(_read_entries(entries_path))
        if not table.is_empty:
            return table
    except OSError as error:
        logger.debug("Cannot read DMI entries %s: %s", entries_path, error)

    logger.info("No SMBIOS data available; firmware-backed fields stay empty")
    return SmbiosTable()
