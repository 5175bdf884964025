"""
Network collector for Farm Agent.
Handles NIC discovery through /sys/class/net, with ethtool and iproute2 for
link speed, firmware, addresses and routes.
"""

import os
import re
from typing import Any, Dict, List, Optional, Tuple

from .collector_base import HardwareCollectorBase
from .normalize import address_family
from .probes import parse_ethtool_firmware, parse_ethtool_speed
from .sysfs import list_dir, read_hex, read_int, read_link_name, read_text, resolve_path
from .types import IpAddress, NetInterface, NetworkInfo, RouteInfo

# Virtual interface families that never describe physical hardware
VIRTUAL_PREFIXES = (
    "lo",
    "veth",
    "docker",
    "br-",
    "virbr",
    "cni",
    "flannel",
    "kube",
    "tun",
    "tap",
    "vmnet",
)
AGGREGATE_PREFIXES = ("bond", "team")

_PCI_ADDRESS = re.compile(r"^[0-9a-fA-F]{4}:[0-9a-fA-F]{2}:[0-9a-fA-F]{2}\.[0-7]$")


def is_aggregate_interface(name: str) -> bool:
    """Bond or team master."""
    return name.startswith(AGGREGATE_PREFIXES)


def is_virtual_interface(name: str, has_device: bool) -> bool:
    """
    Decide whether an interface is excluded from the inventory.

    Bond/team masters are always kept. Excluded families and VLANs are
    always dropped. Anything else without a backing device is virtual.
    """
    if is_aggregate_interface(name):
        return False
    if name.startswith(VIRTUAL_PREFIXES) or "vlan" in name:
        return True
    return not has_device


def is_pci_address(value: str) -> bool:
    """Match the dddd:bb:dd.f shape of a PCI function address."""
    return bool(_PCI_ADDRESS.match(value))


def pci_address_from_path(resolved: Optional[str]) -> Optional[str]:
    """
    PCI address of a device from its resolved sysfs path.

    The deepest matching component is the function itself; earlier ones
    are the bridges above it.
    """
    if not resolved:
        return None
    matches = [part for part in resolved.split(os.sep) if is_pci_address(part)]
    return matches[-1] if matches else None


def parse_ip_addresses(data: Any) -> Dict[str, List[IpAddress]]:
    """Map ``ip -j addr`` output to addresses keyed by interface name."""
    addresses: Dict[str, List[IpAddress]] = {}
    if not isinstance(data, list):
        return addresses

    for entry in data:
        ifname = entry.get("ifname") if isinstance(entry, dict) else None
        if not ifname:
            continue
        iface_addresses = []
        for addr in entry.get("addr_info") or []:
            local = addr.get("local")
            if not local:
                continue
            iface_addresses.append(
                IpAddress(
                    family=address_family(addr.get("family")) or "",
                    address=local,
                    prefix=int(addr.get("prefixlen") or 0),
                    scope=addr.get("scope"),
                )
            )
        addresses[ifname] = iface_addresses
    return addresses


def parse_ip_routes(data: Any) -> List[RouteInfo]:
    """Map ``ip -j route`` output to routes."""
    if not isinstance(data, list):
        return []
    return [
        RouteInfo(
            dst=route.get("dst") or "default",
            gateway=route.get("gateway") or "",
            iface=route.get("dev") or "",
        )
        for route in data
        if isinstance(route, dict)
    ]


def has_global_ipv4(addresses: List[IpAddress]) -> bool:
    """True when any address is a globally scoped IPv4 address."""
    return any(
        addr.family == "IPv4" and addr.scope == "global" for addr in addresses
    )


class NetworkCollector(HardwareCollectorBase):
    """Collects physical NICs, bond/team masters and routes."""

    category = "network"

    def collect(self) -> NetworkInfo:
        address_map = self.collect_addresses()
        routes = self.collect_routes()

        interfaces = []
        net_root = self.paths.sys("class", "net")
        for name in list_dir(net_root):
            iface_path = os.path.join(net_root, name)
            has_device = os.path.exists(os.path.join(iface_path, "device"))
            if is_virtual_interface(name, has_device):
                self.logger.debug("Skipping virtual interface %s", name)
                continue
            interfaces.append(
                self.collect_interface(name, iface_path, address_map.get(name, []))
            )

        return NetworkInfo(interfaces=interfaces, routes=routes)

    def empty(self) -> NetworkInfo:
        return NetworkInfo()

    def collect_addresses(self) -> Dict[str, List[IpAddress]]:
        """All interface addresses from a single ``ip -j addr`` call."""
        return parse_ip_addresses(self.probes.run_json(["ip", "-j", "addr"]))

    def collect_routes(self) -> List[RouteInfo]:
        """IPv4 then IPv6 routes."""
        routes = parse_ip_routes(self.probes.run_json(["ip", "-j", "route"]))
        routes.extend(parse_ip_routes(self.probes.run_json(["ip", "-6", "-j", "route"])))
        return routes

    def collect_interface(
        self, name: str, iface_path: str, addresses: List[IpAddress]
    ) -> NetInterface:
        """Collect one interface; every field resolves independently."""
        device_path = os.path.join(iface_path, "device")

        speed = read_int(os.path.join(iface_path, "speed"))
        if speed is None or speed <= 0:
            speed = parse_ethtool_speed(self.probes.run(["ethtool", name]))

        vendor_name, device_name = self.resolve_pci_names(device_path)
        is_primary, bond_group, bond_master = self.detect_bond(name, iface_path, addresses)

        return NetInterface(
            name=name,
            mac_address=read_text(os.path.join(iface_path, "address")),
            mtu=read_int(os.path.join(iface_path, "mtu")),
            speed_mbps=speed,
            driver=read_link_name(os.path.join(device_path, "driver")),
            firmware_version=parse_ethtool_firmware(self.probes.run(["ethtool", "-i", name])),
            vendor_name=vendor_name,
            device_name=device_name,
            pci_address=pci_address_from_path(resolve_path(device_path)),
            addresses=addresses,
            is_primary=is_primary,
            bond_group=bond_group,
            bond_master=bond_master,
        )

    def resolve_pci_names(self, device_path: str) -> Tuple[Optional[str], Optional[str]]:
        """Vendor/device names of the backing PCI device."""
        if not os.path.exists(device_path):
            return None, None
        vendor_id = read_hex(os.path.join(device_path, "vendor"))
        device_id = read_hex(os.path.join(device_path, "device"))
        if vendor_id is None or device_id is None:
            return None, None
        return self.pci_database.resolve(vendor_id, device_id)

    def detect_bond(
        self, name: str, iface_path: str, addresses: List[IpAddress]
    ) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Returns (is_primary, bond_group, bond_master).

        A bond/team master is primary and its own group. An enslaved
        interface joins its master's group and is primary when the master
        is a bond/team. Anything not yet primary is primary when it carries
        a global IPv4 address.
        """
        if is_aggregate_interface(name):
            return True, name, None

        is_primary = False
        bond_group = bond_master = None
        master = read_link_name(os.path.join(iface_path, "master"))
        if master:
            bond_group = bond_master = master
            is_primary = is_aggregate_interface(master)

        if not is_primary:
            is_primary = has_global_ipv4(addresses)
        return is_primary, bond_group, bond_master
