"""
Power supply collector for Farm Agent.

Every strategy contributes: dmidecode (SMBIOS type 39), ipmitool sensors,
lshw, UPS daemons (apcupsd or NUT) and the kernel power_supply class. The
same physical unit may therefore appear more than once; an optional
de-duplication pass merges entries sharing manufacturer, model and serial.
"""

import os
from typing import Callable, Dict, List, Optional, Tuple

from .collector_base import HardwareCollectorBase
from .normalize import (
    STATUS_CRITICAL,
    STATUS_OK,
    STATUS_PRESENT,
    clean_string,
    normalize_power_status,
)
from .probes import parse_key_values
from .sysfs import list_dir, read_int, read_text
from .types import PowerSupplyInfo

SOURCE_DMIDECODE = "dmidecode"
SOURCE_IPMI = "ipmitool"
SOURCE_LSHW = "lshw"
SOURCE_APCUPSD = "apcupsd"
SOURCE_NUT = "nut"
SOURCE_SYSFS = "sysfs"

# Laptop batteries and mains adapters are not server power supplies
SYSFS_SKIPPED_PREFIXES = ("BAT", "ADP", "AC")

PowerStrategy = Tuple[str, Callable[[], List[PowerSupplyInfo]]]


def _leading_number(value: Optional[str]) -> Optional[float]:
    """First whitespace token of a value as a float ("750 W" -> 750.0)."""
    if not value:
        return None
    try:
        return float(value.split()[0])
    except (IndexError, ValueError):
        return None


def _leading_int(value: Optional[str]) -> Optional[int]:
    number = _leading_number(value)
    return int(number) if number is not None else None


def _dmidecode_blocks(text: str) -> List[List[str]]:
    """Split dmidecode output into per-structure blocks at "Handle" lines."""
    blocks: List[List[str]] = []
    for line in text.splitlines():
        if line.startswith("Handle "):
            blocks.append([line])
        elif blocks:
            blocks[-1].append(line)
    return blocks


def parse_dmidecode_power(text: Optional[str]) -> List[PowerSupplyInfo]:
    """System power supply entries from ``dmidecode -t 39``."""
    supplies = []
    for block in _dmidecode_blocks(text or ""):
        header = block[0]
        title = block[1].strip() if len(block) > 1 else ""
        if "DMI type 39" not in header and not title.endswith("Power Supply"):
            continue

        fields = {
            key: clean_string(value)
            for key, value in parse_key_values("\n".join(block[1:])).items()
        }
        model = fields.get("Model Part Number")
        max_power = fields.get("Max Power Capacity")
        supplies.append(
            PowerSupplyInfo(
                name=fields.get("Name") or fields.get("Location"),
                manufacturer=fields.get("Manufacturer"),
                model=model,
                serial_number=fields.get("Serial Number"),
                part_number=model,
                max_power_watts=_leading_int(max_power) if max_power else None,
                status=normalize_power_status(fields.get("Status")),
                source=SOURCE_DMIDECODE,
            )
        )
    return supplies


def is_psu_sensor(line: str) -> bool:
    """IPMI sensor rows naming a power supply; "PSU1 Fan" alone is not one."""
    lowered = line.lower()
    return "power" in lowered and ("supply" in lowered or "psu" in lowered)


def parse_ipmi_sdr_list(text: Optional[str]) -> List[PowerSupplyInfo]:
    """PSU sensors from ``ipmitool sdr list full`` (name | reading | status)."""
    supplies = []
    for line in (text or "").splitlines():
        if not is_psu_sensor(line):
            continue
        parts = [part.strip() for part in line.split("|")]
        if len(parts) < 3 or not parts[0]:
            continue
        supplies.append(
            PowerSupplyInfo(
                name=parts[0],
                status=normalize_power_status(parts[2]),
                source=SOURCE_IPMI,
            )
        )
    return supplies


def apply_ipmi_sensor_reading(supply: PowerSupplyInfo, text: Optional[str]) -> None:
    """Temperature or voltage from ``ipmitool sdr get <sensor>``."""
    reading = parse_key_values(text).get("Sensor Reading")
    if not reading:
        return
    if "degrees C" in reading:
        supply.temperature_c = _leading_int(reading)
    elif "Volts" in reading:
        supply.output_voltage = _leading_number(reading)


def parse_apcaccess(text: Optional[str]) -> Optional[PowerSupplyInfo]:
    """UPS entry from ``apcaccess status``."""
    if not text:
        return None
    fields = parse_key_values(text)
    return PowerSupplyInfo(
        name=clean_string(fields.get("UPSNAME")) or "UPS",
        manufacturer="APC",
        model=clean_string(fields.get("MODEL")),
        serial_number=clean_string(fields.get("SERIALNO")),
        status=normalize_power_status(fields.get("STATUS")),
        input_voltage=_leading_number(fields.get("LINEV")),
        output_voltage=_leading_number(fields.get("OUTPUTV")),
        temperature_c=_leading_int(fields.get("ITEMP")),
        source=SOURCE_APCUPSD,
    )


def parse_upsc(name: str, text: Optional[str]) -> Optional[PowerSupplyInfo]:
    """UPS entry from ``upsc <name>``."""
    if not text:
        return None
    fields = parse_key_values(text)
    return PowerSupplyInfo(
        name=name,
        manufacturer=clean_string(fields.get("device.mfr")),
        model=clean_string(fields.get("device.model")),
        serial_number=clean_string(fields.get("device.serial")),
        status=normalize_power_status(fields.get("ups.status")),
        input_voltage=_leading_number(fields.get("input.voltage")),
        output_voltage=_leading_number(fields.get("output.voltage")),
        temperature_c=_leading_int(fields.get("ups.temperature")),
        source=SOURCE_NUT,
    )


def _identity(supply: PowerSupplyInfo) -> Optional[Tuple[str, str, str]]:
    key = tuple(
        (value or "").strip().lower()
        for value in (supply.manufacturer, supply.model, supply.serial_number)
    )
    return key if any(key) else None


def deduplicate_power_supplies(supplies: List[PowerSupplyInfo]) -> List[PowerSupplyInfo]:
    """
    Merge entries sharing (manufacturer, model, serial).

    The first entry wins and absorbs fields it lacks from later duplicates.
    Entries without any identity field are never merged.
    """
    merged: List[PowerSupplyInfo] = []
    by_identity: Dict[Tuple[str, str, str], PowerSupplyInfo] = {}
    for supply in supplies:
        identity = _identity(supply)
        if identity is None:
            merged.append(supply)
            continue
        existing = by_identity.get(identity)
        if existing is None:
            by_identity[identity] = supply
            merged.append(supply)
            continue
        for field_name, value in supply.to_dict().items():
            if getattr(existing, field_name) is None and value is not None:
                setattr(existing, field_name, value)
    return merged


class PowerCollector(HardwareCollectorBase):
    """Collects power supplies and UPS units."""

    category = "power"

    def strategies(self) -> List[PowerStrategy]:
        """Detection strategies in report order."""
        return [
            (SOURCE_DMIDECODE, self.from_dmidecode),
            (SOURCE_IPMI, self.from_ipmitool),
            (SOURCE_LSHW, self.from_lshw),
            ("ups", self.from_ups),
            (SOURCE_SYSFS, self.from_sysfs),
        ]

    def collect(self) -> List[PowerSupplyInfo]:
        supplies: List[PowerSupplyInfo] = []
        for name, strategy in self.strategies():
            try:
                found = strategy()
            except (OSError, ValueError) as error:
                self.logger.debug("Power supply strategy %s failed: %s", name, error)
                continue
            self.logger.debug("Power supply strategy %s found %d", name, len(found))
            supplies.extend(found)

        if self.config and self.config.should_deduplicate_power_supplies():
            supplies = deduplicate_power_supplies(supplies)
        return supplies

    def empty(self) -> List[PowerSupplyInfo]:
        return []

    def from_dmidecode(self) -> List[PowerSupplyInfo]:
        """SMBIOS system power supply records as decoded by dmidecode."""
        return parse_dmidecode_power(self.probes.run(["dmidecode", "-t", "39"]))

    def from_ipmitool(self) -> List[PowerSupplyInfo]:
        """PSU sensors from the BMC, each enriched with its reading."""
        supplies = parse_ipmi_sdr_list(self.probes.run(["ipmitool", "sdr", "list", "full"]))
        for supply in supplies:
            apply_ipmi_sensor_reading(
                supply, self.probes.run(["ipmitool", "sdr", "get", supply.name])
            )
        return supplies

    def from_lshw(self) -> List[PowerSupplyInfo]:
        """Placeholder entry when lshw reports a power-class node."""
        output = self.probes.run(["lshw", "-class", "power"])
        if not output or "*-power" not in output:
            return []
        return [
            PowerSupplyInfo(
                name="System Power Supply", status=STATUS_PRESENT, source=SOURCE_LSHW
            )
        ]

    def from_ups(self) -> List[PowerSupplyInfo]:
        """apcupsd first; NUT only when apcupsd reports nothing."""
        apc = parse_apcaccess(self.probes.run(["apcaccess", "status"]))
        if apc is not None:
            return [apc]

        supplies = []
        for name in (self.probes.run(["upsc", "-l"]) or "").split():
            ups = parse_upsc(name, self.probes.run(["upsc", name]))
            if ups is not None:
                supplies.append(ups)
        return supplies

    def from_sysfs(self) -> List[PowerSupplyInfo]:
        """Kernel power_supply class entries other than batteries and adapters."""
        supplies = []
        root = self.paths.sys("class", "power_supply")
        for name in list_dir(root):
            if name.upper().startswith(SYSFS_SKIPPED_PREFIXES):
                continue
            supplies.append(self.read_sysfs_supply(name, os.path.join(root, name)))
        return supplies

    def read_sysfs_supply(self, name: str, path: str) -> PowerSupplyInfo:
        """One power_supply class entry; voltages/currents are in micro units."""
        status = normalize_power_status(read_text(os.path.join(path, "status")))
        if status is None:
            online = read_int(os.path.join(path, "online"))
            if online is not None:
                status = STATUS_OK if online else STATUS_CRITICAL

        voltage = read_int(os.path.join(path, "voltage_now"))
        current = read_int(os.path.join(path, "current_now"))
        temperature = read_int(os.path.join(path, "temp"))
        return PowerSupplyInfo(
            name=name,
            manufacturer=clean_string(read_text(os.path.join(path, "manufacturer"))),
            model=clean_string(read_text(os.path.join(path, "model_name"))),
            serial_number=clean_string(read_text(os.path.join(path, "serial_number"))),
            status=status,
            output_voltage=voltage / 1_000_000 if voltage is not None else None,
            output_current=current / 1_000_000 if current is not None else None,
            temperature_c=temperature // 10 if temperature is not None else None,
            source=SOURCE_SYSFS,
        )
