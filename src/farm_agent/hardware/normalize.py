"""
Normalization helpers shared by every hardware collector.

Maps firmware placeholders to absence, tool vocabularies to canonical
enumerations, and drives ordered detection strategies.
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Firmware strings that mean "no value"
PLACEHOLDER_STRINGS = frozenset(
    {
        "not specified",
        "to be filled by o.e.m.",
        "default string",
        "not available",
    }
)


def is_placeholder(value: Optional[str]) -> bool:
    """Return True when a firmware/tool string carries no real value."""
    if value is None:
        return True
    stripped = value.strip()
    if not stripped:
        return True
    return stripped.lower() in PLACEHOLDER_STRINGS


def clean_string(value: Optional[str]) -> Optional[str]:
    """Trim a string and map placeholders to None."""
    if is_placeholder(value):
        return None
    return value.strip()


def positive_int(value: Any) -> Optional[int]:
    """Return value as an int when it parses and is greater than zero."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def first_success(
    strategies: Iterable[Tuple[str, Callable[[], Optional[T]]]],
) -> Tuple[Optional[str], Optional[T]]:
    """
    Run named strategies in order and return the first non-None result.

    A strategy that raises is treated like one that found nothing; the
    chain continues with the next entry.

    Returns:
        (strategy name, result), or (None, None) when every strategy failed.
    """
    for name, strategy in strategies:
        try:
            result = strategy()
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.debug("Strategy %s failed: %s", name, error)
            continue
        if result is not None:
            logger.debug("Strategy %s succeeded", name)
            return name, result
    return None, None


# SMBIOS memory device type codes (type 17, offset 0x12)
MEMORY_TYPES: Dict[int, str] = {
    0x01: "OTHER",
    0x03: "DRAM",
    0x04: "EDRAM",
    0x05: "VRAM",
    0x06: "SRAM",
    0x07: "RAM",
    0x08: "ROM",
    0x09: "FLASH",
    0x0A: "EEPROM",
    0x0B: "FEPROM",
    0x0C: "EPROM",
    0x0D: "CDRAM",
    0x0E: "3DRAM",
    0x0F: "SDRAM",
    0x10: "SGRAM",
    0x11: "RDRAM",
    0x12: "DDR",
    0x13: "DDR2",
    0x14: "DDR2 FB-DIMM",
    0x18: "DDR3",
    0x19: "FBD2",
    0x1A: "DDR4",
    0x1B: "LPDDR",
    0x1C: "LPDDR2",
    0x1D: "LPDDR3",
    0x1E: "LPDDR4",
    0x1F: "LOGICAL NON-VOLATILE DEVICE",
    0x20: "HBM",
    0x21: "HBM2",
    0x22: "DDR5",
    0x23: "LPDDR5",
    0x24: "HBM3",
}


def memory_type_name(code: Optional[int]) -> Optional[str]:
    """Map an SMBIOS memory type code to its canonical name."""
    if code is None:
        return None
    return MEMORY_TYPES.get(code)


ADDRESS_FAMILIES = {"inet": "IPv4", "inet6": "IPv6"}


def address_family(family: Optional[str]) -> Optional[str]:
    """Map iproute2 family names to IPv4/IPv6."""
    if not family:
        return None
    return ADDRESS_FAMILIES.get(family.lower(), family)


# Canonical power supply states
STATUS_OK = "OK"
STATUS_NON_CRITICAL = "Non-critical"
STATUS_CRITICAL = "Critical"
STATUS_NOT_PRESENT = "Not Present"
STATUS_ON_BATTERY = "On Battery"
STATUS_PRESENT = "Present"
STATUS_UNKNOWN = "Unknown"

_POWER_STATUS_WORDS = {
    # dmidecode / generic
    "ok": STATUS_OK,
    "present, ok": STATUS_OK,
    "present, non-critical": STATUS_NON_CRITICAL,
    "present, critical": STATUS_CRITICAL,
    "present, unknown": STATUS_PRESENT,
    "present, other": STATUS_PRESENT,
    "present": STATUS_PRESENT,
    "not present": STATUS_NOT_PRESENT,
    "non-critical": STATUS_NON_CRITICAL,
    "critical": STATUS_CRITICAL,
    # ipmitool sdr status column
    "nc": STATUS_NON_CRITICAL,
    "cr": STATUS_CRITICAL,
    "nr": STATUS_CRITICAL,
    "ns": STATUS_NOT_PRESENT,
    # apcupsd
    "online": STATUS_OK,
    "onbatt": STATUS_ON_BATTERY,
    "lowbatt": STATUS_CRITICAL,
    "commlost": STATUS_UNKNOWN,
    # sysfs power_supply class
    "full": STATUS_OK,
    "charging": STATUS_OK,
    "not charging": STATUS_OK,
    "discharging": STATUS_ON_BATTERY,
    "unknown": STATUS_UNKNOWN,
}

# NUT ups.status flags, most severe first
_NUT_FLAGS = (
    ("LB", STATUS_CRITICAL),
    ("RB", STATUS_NON_CRITICAL),
    ("OVER", STATUS_NON_CRITICAL),
    ("OB", STATUS_ON_BATTERY),
    ("OL", STATUS_OK),
)


def normalize_power_status(raw: Optional[str]) -> Optional[str]:
    """
    Map a tool-specific power status string onto the canonical set.

    Handles dmidecode ("Present, OK"), ipmitool ("ok", "cr"), apcupsd
    ("ONLINE"), NUT flag lists ("OL CHRG") and sysfs ("Discharging").
    Unrecognized non-empty values become "Unknown".
    """
    value = clean_string(raw)
    if value is None:
        return None

    lowered = value.lower()
    if lowered in _POWER_STATUS_WORDS:
        return _POWER_STATUS_WORDS[lowered]

    flags = value.upper().split()
    for flag, status in _NUT_FLAGS:
        if flag in flags:
            return status

    # apcupsd may report several words, e.g. "ONLINE LOWBATT"
    for word in lowered.split():
        if word == "lowbatt":
            return STATUS_CRITICAL
    for word in lowered.split():
        if word in _POWER_STATUS_WORDS:
            return _POWER_STATUS_WORDS[word]

    return STATUS_UNKNOWN
