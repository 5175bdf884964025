"""
Type definitions for the hardware inventory.

Every record is built once per collection run and serialized through
``to_dict()``. Absent values are ``None``.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


class _Serializable:  # pylint: disable=too-few-public-methods
    """Mixin adding dictionary serialization to inventory dataclasses."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary (recursively)."""
        return asdict(self)  # type: ignore[call-overload]


@dataclass
class MotherboardInfo(_Serializable):
    """Baseboard identity from the firmware table."""

    manufacturer: Optional[str] = None
    product_name: Optional[str] = None
    version: Optional[str] = None
    serial_number: Optional[str] = None


@dataclass
class BiosInfo(_Serializable):
    """BIOS identity from the firmware table."""

    vendor: Optional[str] = None
    version: Optional[str] = None
    release_date: Optional[str] = None


@dataclass
class BmcInfo(_Serializable):
    """Baseboard management controller details."""

    ip_address: Optional[str] = None
    mac_address: Optional[str] = None
    firmware_version: Optional[str] = None
    release_date: Optional[str] = None
    detected_by: Optional[str] = None


@dataclass
class NodeInfo(_Serializable):  # pylint: disable=too-many-instance-attributes
    """Host identity: hostname, system, chassis, board, BIOS and BMC."""

    hostname: str
    architecture: str
    product_name: Optional[str] = None
    manufacturer: Optional[str] = None
    serial_number: Optional[str] = None
    sku_number: Optional[str] = None
    chassis_manufacturer: Optional[str] = None
    chassis_serial_number: Optional[str] = None
    motherboard: Optional[MotherboardInfo] = None
    bios: Optional[BiosInfo] = None
    bmc: Optional[BmcInfo] = None


@dataclass
class CpuSocket(_Serializable):  # pylint: disable=too-many-instance-attributes
    """One physical processor socket."""

    socket: int
    manufacturer: Optional[str] = None
    model_name: Optional[str] = None
    num_cores: Optional[int] = None
    num_threads: Optional[int] = None
    capacity_mhz: Optional[int] = None
    slot: Optional[str] = None
    l1_cache_kb: Optional[int] = None
    l2_cache_kb: Optional[int] = None
    l3_cache_kb: Optional[int] = None


@dataclass
class CpuInfo(_Serializable):
    """Aggregate processor information."""

    sockets: Optional[int] = None
    cores: Optional[int] = None
    threads: Optional[int] = None
    cpus: List[CpuSocket] = field(default_factory=list)


@dataclass
class DimmInfo(_Serializable):
    """One populated memory slot."""

    slot: Optional[str] = None
    size_bytes: Optional[int] = None
    mem_type: Optional[str] = None
    speed_mt_s: Optional[int] = None
    manufacturer: Optional[str] = None
    serial_number: Optional[str] = None
    part_number: Optional[str] = None


@dataclass
class MemoryInfo(_Serializable):
    """Installed memory: total plus one entry per populated DIMM."""

    total_bytes: Optional[int] = None
    dimms: List[DimmInfo] = field(default_factory=list)


@dataclass
class SmartInfo(_Serializable):
    """SMART health verdict: PASSED, FAILED or None."""

    health: Optional[str] = None


@dataclass
class DiskInfo(_Serializable):  # pylint: disable=too-many-instance-attributes
    """One physical block device."""

    name: str
    dev_path: str
    model: Optional[str] = None
    serial: Optional[str] = None
    size_bytes: Optional[int] = None
    rotational: Optional[bool] = None
    bus_type: Optional[str] = None
    firmware_version: Optional[str] = None
    smart: Optional[SmartInfo] = None


@dataclass
class IpAddress(_Serializable):
    """An address assigned to an interface."""

    family: str
    address: str
    prefix: int
    scope: Optional[str] = None


@dataclass
class RouteInfo(_Serializable):
    """A routing table entry. ``iface`` is a plain interface name."""

    dst: str
    gateway: str
    iface: str


@dataclass
class NetInterface(_Serializable):  # pylint: disable=too-many-instance-attributes
    """One physical NIC or bond/team master."""

    name: str
    mac_address: Optional[str] = None
    mtu: Optional[int] = None
    speed_mbps: Optional[int] = None
    driver: Optional[str] = None
    firmware_version: Optional[str] = None
    vendor_name: Optional[str] = None
    device_name: Optional[str] = None
    pci_address: Optional[str] = None
    addresses: List[IpAddress] = field(default_factory=list)
    is_primary: bool = False
    bond_group: Optional[str] = None
    bond_master: Optional[str] = None


@dataclass
class NetworkInfo(_Serializable):
    """Interfaces and routes."""

    interfaces: List[NetInterface] = field(default_factory=list)
    routes: List[RouteInfo] = field(default_factory=list)


@dataclass
class GpuInfo(_Serializable):
    """One display-class PCI device."""

    vendor: Optional[str] = None
    model: Optional[str] = None
    pci_address: Optional[str] = None
    vram_mb: Optional[int] = None
    driver_version: Optional[str] = None
    uuid: Optional[str] = None


@dataclass
class GpuHealthInfo(_Serializable):  # pylint: disable=too-many-instance-attributes
    """Live health metrics for one GPU."""

    device_index: int
    device_name: str
    device_uuid: Optional[str] = None
    temperature_celsius: Optional[int] = None
    power_usage_watts: Optional[int] = None
    power_limit_watts: Optional[int] = None
    fan_speed_percent: Optional[int] = None
    utilization_gpu_percent: Optional[int] = None
    utilization_memory_percent: Optional[int] = None
    memory_used_mb: Optional[int] = None
    memory_total_mb: Optional[int] = None
    clock_graphics_mhz: Optional[int] = None
    clock_memory_mhz: Optional[int] = None
    performance_state: Optional[str] = None


@dataclass
class PowerSupplyInfo(_Serializable):  # pylint: disable=too-many-instance-attributes
    """A detected power source (PSU or UPS)."""

    name: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    part_number: Optional[str] = None
    max_power_watts: Optional[int] = None
    efficiency_rating: Optional[str] = None
    status: Optional[str] = None
    input_voltage: Optional[float] = None
    input_current: Optional[float] = None
    output_voltage: Optional[float] = None
    output_current: Optional[float] = None
    temperature_c: Optional[int] = None
    fan_speed_rpm: Optional[int] = None
    source: Optional[str] = None


@dataclass
class Inventory(_Serializable):
    """The full report for one host."""

    agent_version: str
    node: NodeInfo
    cpu: CpuInfo
    memory: MemoryInfo
    disks: List[DiskInfo]
    network: NetworkInfo
    gpus: List[GpuInfo]
    power_supplies: List[PowerSupplyInfo]
