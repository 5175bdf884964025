"""
Storage collector for Farm Agent.
Handles block device discovery through sysfs with smartctl/hdparm/udevadm
and nvme-cli as secondary sources.
"""

import os
import re
from typing import List, Optional

from .collector_base import HardwareCollectorBase
from .probes import (
    parse_hdparm_identity,
    parse_smart_health,
    parse_smartctl_identity,
    parse_udev_properties,
    smartctl_exit_ok,
)
from .sysfs import list_dir, read_int, read_link_name, read_text
from .types import DiskInfo, SmartInfo

SKIPPED_PREFIXES = ("loop", "ram", "dm-", "zram")
SECTOR_SIZE = 512
BUS_NVME = "nvme"

_NVME_NAMESPACE = re.compile(r"^(nvme\d+)(?:c\d+)?n\d+")


def is_virtual_block_device(name: str) -> bool:
    """Loop, ramdisk, device-mapper and zram devices are not disks."""
    return name.startswith(SKIPPED_PREFIXES)


def nvme_controller_name(namespace: str) -> str:
    """
    Controller owning an NVMe namespace.

    nvme0n1 -> nvme0, nvme12n3 -> nvme12, and the multipath path device
    nvme0c1n1 -> nvme0.
    """
    match = _NVME_NAMESPACE.match(namespace)
    return match.group(1) if match else namespace


class StorageCollector(HardwareCollectorBase):
    """Collects physical block devices."""

    category = "storage"

    def collect(self) -> List[DiskInfo]:
        disks = []
        for name in list_dir(self.paths.sys("block")):
            if is_virtual_block_device(name):
                continue
            dev_path = self.paths.dev(name)
            if not os.path.exists(dev_path):
                self.logger.debug("Skipping %s: no device node", name)
                continue
            disks.append(self.collect_disk(name, dev_path))
        return disks

    def empty(self) -> List[DiskInfo]:
        return []

    def collect_disk(self, name: str, dev_path: str) -> DiskInfo:
        """Collect one disk; every field resolves independently."""
        sys_path = self.paths.sys("block", name)
        device_path = os.path.join(sys_path, "device")

        model = read_text(os.path.join(device_path, "model"))
        serial = read_text(os.path.join(device_path, "serial"))
        firmware_version = None

        sectors = read_int(os.path.join(sys_path, "size"))
        size_bytes = sectors * SECTOR_SIZE if sectors is not None else None
        rotational_flag = read_int(os.path.join(sys_path, "queue", "rotational"))
        rotational = rotational_flag == 1 if rotational_flag is not None else None

        if name.startswith("nvme"):
            bus_type: Optional[str] = BUS_NVME
            controller_path = self.paths.sys("class", "nvme", nvme_controller_name(name))
            firmware_version = read_text(os.path.join(controller_path, "firmware_rev"))
            serial = serial or read_text(os.path.join(controller_path, "serial"))
            model = model or read_text(os.path.join(controller_path, "model"))
        else:
            bus_type = self.detect_bus_type(device_path, dev_path)

        if firmware_version is None or serial is None:
            identity = self.identify(dev_path, bus_type)
            firmware_version = firmware_version or identity.get("firmware_version")
            serial = serial or identity.get("serial")

        return DiskInfo(
            name=name,
            dev_path=dev_path,
            model=model,
            serial=serial,
            size_bytes=size_bytes,
            rotational=rotational,
            bus_type=bus_type,
            firmware_version=firmware_version,
            smart=self.collect_smart(dev_path, bus_type),
        )

    def detect_bus_type(self, device_path: str, dev_path: str) -> Optional[str]:
        """Subsystem symlink name (scsi, virtio, ...), else udev ID_BUS."""
        subsystem = read_link_name(os.path.join(device_path, "subsystem"))
        if subsystem:
            return subsystem
        properties = parse_udev_properties(
            self.probes.run(["udevadm", "info", "--query=property", "--name", dev_path])
        )
        return properties.get("ID_BUS") or None

    def _smartctl_args(self, flag: str, dev_path: str, bus_type: Optional[str]) -> List[str]:
        args = ["smartctl", flag]
        if bus_type == BUS_NVME:
            args.extend(["-d", "nvme"])
        args.append(dev_path)
        return args

    def identify(self, dev_path: str, bus_type: Optional[str]) -> dict:
        """
        Firmware version and serial from diagnostic tools: smartctl first,
        then hdparm for buses other than NVMe.
        """
        identity = parse_smartctl_identity(
            self.probes.run(
                self._smartctl_args("-i", dev_path, bus_type), accept=smartctl_exit_ok
            )
        )
        if bus_type != BUS_NVME and not all(identity.values()):
            fallback = parse_hdparm_identity(self.probes.run(["hdparm", "-I", dev_path]))
            for key, value in fallback.items():
                identity[key] = identity.get(key) or value
        return identity

    def collect_smart(self, dev_path: str, bus_type: Optional[str]) -> Optional[SmartInfo]:
        """SMART verdict from smartctl; nvme smart-log proves NVMe SMART support."""
        output = self.probes.run(
            self._smartctl_args("-H", dev_path, bus_type), accept=smartctl_exit_ok
        )
        if output is not None:
            return SmartInfo(health=parse_smart_health(output))

        if bus_type == BUS_NVME and self.probes.run(["nvme", "smart-log", dev_path]):
            return SmartInfo(health=None)
        return None
