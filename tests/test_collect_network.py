"""
Tests for the network collector.
"""

# pylint: disable=redefined-outer-name

import json
import os

import pytest

from src.farm_agent.hardware.collect_network import (
    NetworkCollector,
    has_global_ipv4,
    is_virtual_interface,
    parse_ip_addresses,
    parse_ip_routes,
    pci_address_from_path,
)
from src.farm_agent.hardware.types import IpAddress
from tests.hardware_test_base import FakeProbes, make_symlink, write_file

IP_ADDR = [
    {"ifname": "lo", "addr_info": [
        {"family": "inet", "local": "127.0.0.1", "prefixlen": 8, "scope": "host"}]},
    {"ifname": "eth0", "addr_info": [
        {"family": "inet", "local": "10.20.0.15", "prefixlen": 24, "scope": "global"},
        {"family": "inet6", "local": "fe80::1e34:daff:fe5a:1b2c", "prefixlen": 64,
         "scope": "link"}]},
    {"ifname": "docker0", "addr_info": [
        {"family": "inet", "local": "172.17.0.1", "prefixlen": 16, "scope": "global"}]},
    {"ifname": "bond0", "addr_info": []},
]
IP_ROUTE = [
    {"dst": "default", "gateway": "10.20.0.1", "dev": "eth0"},
    {"dst": "10.20.0.0/24", "dev": "eth0", "prefsrc": "10.20.0.15"},
]
IP6_ROUTE = [{"dst": "fe80::/64", "dev": "eth0"}]

PCI_FUNCTION = ("devices", "pci0000:00", "0000:00:1c.0", "0000:03:00.0")


def add_interface(paths, name, mac=None, mtu="1500", speed=None, pci=None, master=None):
    """Create /sys/class/net/<name>, optionally backed by a PCI function."""
    iface = paths.sys("class", "net", name)
    os.makedirs(iface, exist_ok=True)
    if mac:
        write_file(os.path.join(iface, "address"), mac)
    write_file(os.path.join(iface, "mtu"), mtu)
    if speed is not None:
        write_file(os.path.join(iface, "speed"), speed)
    if pci is not None:
        vendor, device, driver = pci
        function = paths.sys(*PCI_FUNCTION)
        write_file(os.path.join(function, "vendor"), vendor)
        write_file(os.path.join(function, "device"), device)
        driver_dir = paths.sys("bus", "pci", "drivers", driver)
        os.makedirs(driver_dir, exist_ok=True)
        make_symlink(driver_dir, os.path.join(function, "driver"))
        make_symlink(function, os.path.join(iface, "device"))
    if master is not None:
        make_symlink(paths.sys("class", "net", master), os.path.join(iface, "master"))
    return iface


@pytest.fixture
def ip_probes():
    """iproute2 answers for the sample host."""
    return FakeProbes({
        ("ip", "-j", "addr"): json.dumps(IP_ADDR),
        ("ip", "-j", "route"): json.dumps(IP_ROUTE),
        ("ip", "-6", "-j", "route"): json.dumps(IP6_ROUTE),
        ("ethtool", "-i", "eth0"): "driver: igb\nversion: 5.15.0\nfirmware-version: 1.63, 0x800009fa\n",
    })


class TestHelpers:
    """Tests for interface classification and parsing helpers."""

    @pytest.mark.parametrize("name", [
        "lo", "veth1a2b", "docker0", "br-4f2a", "virbr0", "cni0", "flannel.1",
        "kube-ipvs0", "tun0", "tap3", "vmnet8", "eth0.vlan100", "vlan20",
    ])
    def test_excluded_names(self, name):
        """Virtual families are excluded even with a backing device."""
        assert is_virtual_interface(name, has_device=True)

    @pytest.mark.parametrize("name", ["bond0", "team0"])
    def test_aggregates_kept(self, name):
        """Bond/team masters are kept without a device."""
        assert not is_virtual_interface(name, has_device=False)

    def test_deviceless_interface_excluded(self):
        """Other interfaces need a backing device."""
        assert is_virtual_interface("wg0", has_device=False)
        assert not is_virtual_interface("eno1", has_device=True)

    def test_pci_address_is_deepest_component(self):
        """The function address wins over bridges above it."""
        path = "/sys/devices/pci0000:00/0000:00:1c.0/0000:03:00.0"
        assert pci_address_from_path(path) == "0000:03:00.0"
        assert pci_address_from_path("/sys/devices/virtual/net/dummy0") is None
        assert pci_address_from_path(None) is None

    def test_parse_ip_addresses(self):
        """Addresses are grouped per interface with canonical families."""
        addresses = parse_ip_addresses(IP_ADDR)
        assert addresses["eth0"][0] == IpAddress(
            family="IPv4", address="10.20.0.15", prefix=24, scope="global"
        )
        assert addresses["eth0"][1].family == "IPv6"
        assert addresses["bond0"] == []
        assert parse_ip_addresses(None) == {}

    def test_parse_ip_routes(self):
        """Routes keep destination, gateway and plain interface name."""
        routes = parse_ip_routes(IP_ROUTE)
        assert routes[0].dst == "default"
        assert routes[0].gateway == "10.20.0.1"
        assert routes[0].iface == "eth0"
        assert routes[1].gateway == ""
        assert parse_ip_routes({"unexpected": True}) == []

    def test_has_global_ipv4(self):
        """Only globally scoped IPv4 counts."""
        link_local = [IpAddress("IPv6", "fe80::1", 64, "link")]
        assert not has_global_ipv4(link_local)
        assert has_global_ipv4(link_local + [IpAddress("IPv4", "10.0.0.2", 24, "global")])


class TestNetworkCollector:
    """Tests for NetworkCollector.collect."""

    def test_sample_host(self, system_paths, ip_probes):
        """lo and docker0 are dropped; eth0 and bond0 are primary."""
        add_interface(system_paths, "lo", mac="00:00:00:00:00:00", mtu="65536")
        add_interface(system_paths, "docker0", mac="02:42:ac:11:00:01")
        add_interface(system_paths, "eth0", mac="1c:34:da:5a:1b:2c", speed="1000",
                      pci=("0x8086", "0x1521", "igb"))
        add_interface(system_paths, "bond0", mac="1c:34:da:5a:1b:2d", mtu="9000")

        network = NetworkCollector(paths=system_paths, probes=ip_probes).collect()

        by_name = {iface.name: iface for iface in network.interfaces}
        assert sorted(by_name) == ["bond0", "eth0"]

        eth0 = by_name["eth0"]
        assert eth0.is_primary is True
        assert eth0.bond_group is None
        assert eth0.mac_address == "1c:34:da:5a:1b:2c"
        assert eth0.mtu == 1500
        assert eth0.speed_mbps == 1000
        assert eth0.driver == "igb"
        assert eth0.firmware_version == "1.63, 0x800009fa"
        assert eth0.vendor_name == "Intel Corporation"
        assert eth0.device_name == "I350 Gigabit Network Connection"
        assert eth0.pci_address == "0000:03:00.0"
        assert [addr.address for addr in eth0.addresses] == [
            "10.20.0.15", "fe80::1e34:daff:fe5a:1b2c"
        ]

        bond0 = by_name["bond0"]
        assert bond0.is_primary is True
        assert bond0.bond_group == "bond0"
        assert bond0.bond_master is None
        assert bond0.pci_address is None
        assert bond0.vendor_name is None

        assert [route.dst for route in network.routes] == [
            "default", "10.20.0.0/24", "fe80::/64"
        ]

    def test_bond_slave(self, system_paths):
        """An enslaved NIC joins its master's group and is primary."""
        add_interface(system_paths, "bond0")
        add_interface(system_paths, "eno1", pci=("0x8086", "0x1572", "i40e"), master="bond0")

        network = NetworkCollector(paths=system_paths, probes=FakeProbes()).collect()

        eno1 = {iface.name: iface for iface in network.interfaces}["eno1"]
        assert eno1.is_primary is True
        assert eno1.bond_group == "bond0"
        assert eno1.bond_master == "bond0"

    def test_bridge_member_falls_back_to_address_heuristic(self, system_paths):
        """A NIC enslaved to a non-bond master is primary only with global IPv4."""
        add_interface(system_paths, "br0")
        add_interface(system_paths, "eno2", pci=("0x8086", "0x1521", "igb"), master="br0")

        network = NetworkCollector(paths=system_paths, probes=FakeProbes()).collect()

        eno2 = {iface.name: iface for iface in network.interfaces}["eno2"]
        assert eno2.is_primary is False
        assert eno2.bond_group == "br0"

    def test_speed_from_ethtool(self, system_paths):
        """A negative sysfs speed falls back to ethtool."""
        add_interface(system_paths, "eno3", speed="-1", pci=("0x8086", "0x1521", "igb"))
        probes = FakeProbes({("ethtool", "eno3"): "Settings for eno3:\n\tSpeed: 25000Mb/s\n"})

        network = NetworkCollector(paths=system_paths, probes=probes).collect()

        assert network.interfaces[0].speed_mbps == 25000

    def test_unknown_pci_device(self, system_paths):
        """A known vendor with an unknown device gets a synthesized name."""
        add_interface(system_paths, "eno4", pci=("0x8086", "0xabcd", "ice"))

        network = NetworkCollector(paths=system_paths, probes=FakeProbes()).collect()

        assert network.interfaces[0].vendor_name == "Intel Corporation"
        assert network.interfaces[0].device_name == "Unknown Device [0xabcd]"

    def test_without_tools(self, system_paths):
        """Missing iproute2 leaves addresses and routes empty."""
        add_interface(system_paths, "eno5", pci=("0x8086", "0x1521", "igb"))

        network = NetworkCollector(paths=system_paths, probes=FakeProbes()).collect()

        assert network.routes == []
        assert network.interfaces[0].addresses == []
        assert network.interfaces[0].is_primary is False
        assert network.interfaces[0].firmware_version is None
