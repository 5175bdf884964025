"""
Node collector for Farm Agent.
Handles host identity (system, chassis, baseboard, BIOS) from the firmware
table and baseboard management controller detection.
"""

import asyncio
import os
import platform
import socket
import ssl
from typing import Callable, List, Optional, Tuple

import aiohttp
import psutil

from .collector_base import HardwareCollectorBase
from .normalize import first_success
from .probes import parse_key_values
from .sysfs import list_dir, read_text
from .types import BiosInfo, BmcInfo, MotherboardInfo, NodeInfo

IPMI_DEVICE_FILES = ("ipmi0", "ipmidev/0", "ipmi/0")
MANAGEMENT_NAME_PATTERNS = ("bmc", "ipmi", "ilo", "idrac", "rac")
IPMI_PORT = 623

REDFISH_BASE_URL = "https://localhost"
REDFISH_PATHS = ("/redfish/v1/", "/redfish/v1/Systems", "/redfish/v1/Managers")
REDFISH_MARKERS = ("@odata", "redfish")
DEFAULT_REDFISH_TIMEOUT = 2.0

NULL_IP = "0.0.0.0"  # nosec B104
NULL_MAC = "00:00:00:00:00:00"

BmcStrategy = Tuple[str, Callable[[], Optional[BmcInfo]]]


def listening_ports() -> List[int]:
    """
    Local ports with a listener: TCP sockets in LISTEN state and bound UDP
    sockets, which have no connection state.
    """
    ports = []
    for conn in psutil.net_connections(kind="inet"):
        if not conn.laddr:
            continue
        if conn.type == socket.SOCK_STREAM and conn.status != psutil.CONN_LISTEN:
            continue
        if conn.type == socket.SOCK_DGRAM and conn.status != psutil.CONN_NONE:
            continue
        ports.append(conn.laddr.port)
    return ports


def parse_ipmi_mc_info(text: Optional[str]) -> Optional[BmcInfo]:
    """Firmware revision and build date from ``ipmitool mc info``."""
    if not text:
        return None
    fields = parse_key_values(text)
    release_date = None
    for key in ("Build Time", "Build Date", "Firmware Build"):
        if fields.get(key):
            release_date = fields[key]
            break
    return BmcInfo(
        firmware_version=fields.get("Firmware Revision") or None,
        release_date=release_date,
    )


def parse_ipmi_lan_print(text: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """IP and MAC address from ``ipmitool lan print``; null values ignored."""
    fields = parse_key_values(text)
    ip_address = fields.get("IP Address") or None
    mac_address = fields.get("MAC Address") or None
    if ip_address == NULL_IP:
        ip_address = None
    if mac_address and mac_address.lower() == NULL_MAC:
        mac_address = None
    return ip_address, mac_address


async def probe_redfish(
    base_url: str = REDFISH_BASE_URL, timeout: float = DEFAULT_REDFISH_TIMEOUT
) -> Optional[BmcInfo]:
    """
    Look for a Redfish service on the local host.

    Any of the standard entry points answering with a Redfish body counts.
    The service normally presents a self-signed certificate, so
    verification is off.
    """
    ssl_context = ssl.create_default_context()
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_NONE

    connector = aiohttp.TCPConnector(ssl=ssl_context)
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(connector=connector, timeout=client_timeout) as session:
        for path in REDFISH_PATHS:
            try:
                async with session.get(f"{base_url}{path}") as response:
                    body = await response.text()
            except (aiohttp.ClientError, asyncio.TimeoutError):
                continue
            if any(marker in body for marker in REDFISH_MARKERS):
                return BmcInfo(ip_address="localhost")
    return None


class NodeCollector(HardwareCollectorBase):
    """Collects host identity and BMC details."""

    category = "node"

    def collect(self) -> NodeInfo:
        table = self.smbios
        system = table.system()
        chassis = table.chassis()

        return NodeInfo(
            hostname=self.get_hostname(),
            architecture=platform.machine() or "unknown",
            product_name=system.product_name if system else None,
            manufacturer=system.manufacturer if system else None,
            serial_number=system.serial_number if system else None,
            sku_number=system.sku_number if system else None,
            chassis_manufacturer=chassis.manufacturer if chassis else None,
            chassis_serial_number=chassis.serial_number if chassis else None,
            motherboard=self.get_motherboard(),
            bios=self.get_bios(),
            bmc=self.detect_bmc(),
        )

    def empty(self) -> NodeInfo:
        return NodeInfo(hostname=self.get_hostname(), architecture=platform.machine() or "unknown")

    def get_hostname(self) -> str:
        """Kernel hostname, then the resolver's view, then "unknown"."""
        hostname = read_text(self.paths.proc("sys", "kernel", "hostname"))
        if hostname:
            return hostname
        try:
            return socket.gethostname() or "unknown"
        except OSError:
            return "unknown"

    def get_motherboard(self) -> Optional[MotherboardInfo]:
        """Baseboard identity, None when no field resolved."""
        board = self.smbios.baseboard()
        if board is None:
            return None
        info = MotherboardInfo(
            manufacturer=board.manufacturer,
            product_name=board.product_name,
            version=board.version,
            serial_number=board.serial_number,
        )
        return info if any(info.to_dict().values()) else None

    def get_bios(self) -> Optional[BiosInfo]:
        """BIOS identity, None when no field resolved."""
        bios = self.smbios.bios()
        if bios is None:
            return None
        info = BiosInfo(
            vendor=bios.vendor, version=bios.version, release_date=bios.release_date
        )
        return info if any(info.to_dict().values()) else None

    def bmc_strategies(self) -> List[BmcStrategy]:
        """Detection strategies in priority order."""
        return [
            ("ipmi_device", self.detect_ipmi_device),
            ("smbios", self.detect_smbios_ipmi),
            ("network_management", self.detect_network_management),
            ("ipmitool", self.detect_ipmitool),
            ("redfish", self.detect_redfish),
        ]

    def detect_bmc(self) -> Optional[BmcInfo]:
        """Run the detection chain; None when no controller is found."""
        name, bmc = first_success(self.bmc_strategies())
        if bmc is None:
            self.logger.debug("No baseboard management controller detected")
            return None
        bmc.detected_by = name
        return bmc

    def detect_ipmi_device(self) -> Optional[BmcInfo]:
        """Kernel IPMI driver device node."""
        for device in IPMI_DEVICE_FILES:
            if os.path.exists(self.paths.dev(device)):
                return BmcInfo()
        return None

    def detect_smbios_ipmi(self) -> Optional[BmcInfo]:
        """
        SMBIOS IPMI device record. Off by default: many boards publish the
        record without a reachable controller.
        """
        if self.config is None or not self.config.is_smbios_bmc_detection_enabled():
            return None
        if self.smbios.ipmi_device() is None:
            return None
        return BmcInfo()

    def detect_network_management(self) -> Optional[BmcInfo]:
        """Management-looking interface name or a listener on port 623."""
        for name in list_dir(self.paths.sys("class", "net")):
            lowered = name.lower()
            if any(pattern in lowered for pattern in MANAGEMENT_NAME_PATTERNS):
                return BmcInfo()

        try:
            ports = listening_ports()
        except (psutil.Error, OSError) as error:
            self.logger.debug("Cannot list listening sockets: %s", error)
            return None
        if IPMI_PORT in ports:
            return BmcInfo()
        return None

    def detect_ipmitool(self) -> Optional[BmcInfo]:
        """Controller details from ipmitool, enriched with LAN settings."""
        bmc = parse_ipmi_mc_info(self.probes.run(["ipmitool", "mc", "info"]))
        if bmc is None:
            return None
        bmc.ip_address, bmc.mac_address = parse_ipmi_lan_print(
            self.probes.run(["ipmitool", "lan", "print", "1"])
        )
        return bmc

    def detect_redfish(self) -> Optional[BmcInfo]:
        """Redfish service on localhost."""
        timeout = self.config.get_redfish_timeout() if self.config else DEFAULT_REDFISH_TIMEOUT
        return asyncio.run(probe_redfish(timeout=timeout))
