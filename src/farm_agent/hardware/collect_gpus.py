"""
GPU collector for Farm Agent.
Handles display-class PCI device discovery, enriched with nvidia-smi and
rocm-smi where those tools are installed.
"""

import os
import re
from typing import Dict, List, Optional

from .collector_base import HardwareCollectorBase
from .sysfs import list_dir, read_hex
from .types import GpuInfo

# PCI base class + subclass (upper 16 bits of the 24-bit class code)
GPU_CLASSES = frozenset({0x0300, 0x0301, 0x0302, 0x0380})

NVIDIA_QUERY = [
    "nvidia-smi",
    "--query-gpu=name,memory.total,driver_version,uuid",
    "--format=csv,noheader,nounits",
]
ROCM_QUERY = ["rocm-smi", "--showproductname", "--showmeminfo", "vram"]

_ROCM_GPU_INDEX = re.compile(r"GPU\[(\d+)\]")


def is_gpu_class(class_code: Optional[int]) -> bool:
    """True for VGA, XGA, 3D and other display controllers."""
    if class_code is None:
        return False
    return (class_code >> 8) in GPU_CLASSES


def gpu_models_match(tool_name: str, pci_name: str) -> bool:
    """
    Fuzzy match between a vendor tool's GPU name and the PCI model name:
    any tool token longer than three characters contained in any PCI token.
    """
    tool_tokens = [token for token in tool_name.lower().split() if len(token) > 3]
    pci_tokens = pci_name.lower().split()
    return any(
        tool_token in pci_token for tool_token in tool_tokens for pci_token in pci_tokens
    )


def parse_nvidia_smi(text: Optional[str]) -> List[Dict[str, Optional[str]]]:
    """Rows of the nvidia-smi CSV query; short rows are skipped."""
    rows = []
    for line in (text or "").splitlines():
        parts = [part.strip() for part in line.split(",")]
        if len(parts) < 4:
            continue
        rows.append(
            {
                "name": parts[0],
                "memory_total": parts[1],
                "driver_version": parts[2] or None,
                "uuid": parts[3] or None,
            }
        )
    return rows


def _first_integer(line: str) -> Optional[int]:
    for token in line.split():
        if token.isdigit():
            return int(token)
    return None


def parse_rocm_vram(text: Optional[str]) -> Dict[int, int]:
    """
    Total VRAM in MB per GPU index from rocm-smi.

    Values reported in bytes ("(B)") are converted to MB. Lines without a
    GPU[n] marker count as GPU 0.
    """
    vram: Dict[int, int] = {}
    for line in (text or "").splitlines():
        lowered = line.lower()
        if "memory" not in lowered or "used" in lowered:
            continue
        if "(b)" not in lowered and "mb" not in lowered:
            continue
        value = _first_integer(line)
        if value is None:
            continue
        if "(b)" in lowered:
            value //= 1024 * 1024
        match = _ROCM_GPU_INDEX.search(line)
        vram.setdefault(int(match.group(1)) if match else 0, value)
    return vram


class GpuCollector(HardwareCollectorBase):
    """Collects GPUs from the PCI bus."""

    category = "gpu"

    def collect(self) -> List[GpuInfo]:
        gpus = self.scan_pci()
        self.enrich_nvidia([gpu for gpu in gpus if self._vendor_matches(gpu, ("nvidia",))])
        self.enrich_amd([gpu for gpu in gpus if self._vendor_matches(gpu, ("amd", "ati"))])
        return gpus

    def empty(self) -> List[GpuInfo]:
        return []

    @staticmethod
    def _vendor_matches(gpu: GpuInfo, needles) -> bool:
        # Whole words only: "ati" must not match "Corporation"
        words = re.findall(r"[a-z0-9]+", (gpu.vendor or "").lower())
        return any(needle in words for needle in needles)

    def scan_pci(self) -> List[GpuInfo]:
        """Display-class devices; unresolved IDs still produce an entry."""
        gpus = []
        devices_root = self.paths.sys("bus", "pci", "devices")
        for address in list_dir(devices_root):
            device_path = os.path.join(devices_root, address)
            if not is_gpu_class(read_hex(os.path.join(device_path, "class"))):
                continue
            vendor, model = self.pci_database.resolve(
                read_hex(os.path.join(device_path, "vendor")),
                read_hex(os.path.join(device_path, "device")),
            )
            gpus.append(GpuInfo(vendor=vendor, model=model, pci_address=address))
        return gpus

    def enrich_nvidia(self, gpus: List[GpuInfo]) -> None:
        """Fill VRAM, driver and UUID from nvidia-smi; each row serves one GPU."""
        if not gpus:
            return
        rows = parse_nvidia_smi(self.probes.run(NVIDIA_QUERY))
        used = set()
        for gpu in gpus:
            if not gpu.model:
                continue
            for index, row in enumerate(rows):
                if index in used or not gpu_models_match(row["name"], gpu.model):
                    continue
                used.add(index)
                try:
                    gpu.vram_mb = int(float(row["memory_total"]))
                except (TypeError, ValueError):
                    self.logger.debug("Unparseable memory total %r", row["memory_total"])
                gpu.driver_version = row["driver_version"]
                gpu.uuid = row["uuid"]
                break

    def enrich_amd(self, gpus: List[GpuInfo]) -> None:
        """Fill VRAM from rocm-smi, matching GPUs to indices in bus order."""
        if not gpus:
            return
        vram = parse_rocm_vram(self.probes.run(ROCM_QUERY))
        for index, gpu in enumerate(gpus):
            if index in vram:
                gpu.vram_mb = vram[index]
