"""
Tests for the GPU collector.
"""

import os

import pytest

from src.farm_agent.hardware.collect_gpus import (
    NVIDIA_QUERY,
    ROCM_QUERY,
    GpuCollector,
    gpu_models_match,
    is_gpu_class,
    parse_nvidia_smi,
    parse_rocm_vram,
)
from tests.hardware_test_base import FakeProbes, write_file

ROCM_OUTPUT = """
============================ ROCm System Management Interface ============================
================================== Product Info ==================================
GPU[0]		: Card series: 		Instinct MI210
GPU[1]		: Card series: 		Instinct MI210
================================== Memory Usage (Bytes) ==================================
GPU[0]		: VRAM Total Memory (B): 68702699520
GPU[0]		: VRAM Total Used Memory (B): 10960896
GPU[1]		: VRAM Total Memory (B): 34351349760
GPU[1]		: VRAM Total Used Memory (B): 10960896
"""


def add_pci_device(paths, address, class_code, vendor, device):
    """Create /sys/bus/pci/devices/<address>."""
    root = paths.sys("bus", "pci", "devices", address)
    write_file(os.path.join(root, "class"), class_code)
    write_file(os.path.join(root, "vendor"), vendor)
    write_file(os.path.join(root, "device"), device)


class TestHelpers:
    """Tests for GPU helpers."""

    @pytest.mark.parametrize("class_code,expected", [
        (0x030000, True), (0x030200, True), (0x038000, True), (0x030100, True),
        (0x020000, False), (0x010802, False), (None, False),
    ])
    def test_is_gpu_class(self, class_code, expected):
        """Only display controller classes are GPUs."""
        assert is_gpu_class(class_code) is expected

    def test_gpu_models_match(self):
        """Tool names match PCI names on significant tokens."""
        assert gpu_models_match("NVIDIA A100 SXM4 40GB", "GA100 [A100 SXM4 40GB]")
        assert gpu_models_match("NVIDIA GeForce RTX 3090", "GA102 [GeForce RTX 3090]")
        assert not gpu_models_match("Tesla T4", "GA102 [GeForce RTX 3090]")

    def test_parse_nvidia_smi(self):
        """CSV rows parse; short rows are skipped."""
        rows = parse_nvidia_smi(
            "NVIDIA A100-SXM4-40GB, 40960, 535.104.05, GPU-1a2b\nbroken,row\n"
        )
        assert rows == [{
            "name": "NVIDIA A100-SXM4-40GB",
            "memory_total": "40960",
            "driver_version": "535.104.05",
            "uuid": "GPU-1a2b",
        }]
        assert parse_nvidia_smi(None) == []

    def test_parse_rocm_vram(self):
        """Byte totals per GPU index are converted to MB; used memory is ignored."""
        assert parse_rocm_vram(ROCM_OUTPUT) == {0: 65520, 1: 32760}

    def test_parse_rocm_vram_without_index(self):
        """A single unindexed total belongs to GPU 0."""
        assert parse_rocm_vram("VRAM Total Memory (MB): 16368\n") == {0: 16368}
        assert parse_rocm_vram(None) == {}


class TestGpuCollector:
    """Tests for GpuCollector.collect."""

    def test_nvidia_enrichment(self, system_paths):
        """NVIDIA GPUs pick up VRAM, driver and UUID from nvidia-smi."""
        add_pci_device(system_paths, "0000:17:00.0", "0x030200", "0x10de", "0x2204")
        add_pci_device(system_paths, "0000:31:00.0", "0x030200", "0x10de", "0x2204")
        add_pci_device(system_paths, "0000:03:00.0", "0x020000", "0x8086", "0x1521")
        probes = FakeProbes({
            tuple(NVIDIA_QUERY): "NVIDIA GeForce RTX 3090, 24576, 535.104.05, GPU-aaaa\n"
                                 "NVIDIA GeForce RTX 3090, 24576, 535.104.05, GPU-bbbb\n",
        })

        gpus = GpuCollector(paths=system_paths, probes=probes).collect()

        assert [gpu.pci_address for gpu in gpus] == ["0000:17:00.0", "0000:31:00.0"]
        assert all(gpu.vendor == "NVIDIA Corporation" for gpu in gpus)
        assert all(gpu.model == "GA102 [GeForce RTX 3090]" for gpu in gpus)
        assert [gpu.uuid for gpu in gpus] == ["GPU-aaaa", "GPU-bbbb"]
        assert gpus[0].vram_mb == 24576
        assert gpus[0].driver_version == "535.104.05"

    def test_amd_enrichment(self, system_paths):
        """AMD GPUs are matched to rocm-smi indices in bus order."""
        add_pci_device(system_paths, "0000:c1:00.0", "0x038000", "0x1002", "0x740f")
        add_pci_device(system_paths, "0000:29:00.0", "0x038000", "0x1002", "0x740f")
        probes = FakeProbes({tuple(ROCM_QUERY): ROCM_OUTPUT})

        gpus = GpuCollector(paths=system_paths, probes=probes).collect()

        assert [gpu.pci_address for gpu in gpus] == ["0000:29:00.0", "0000:c1:00.0"]
        assert [gpu.vram_mb for gpu in gpus] == [65520, 32760]
        assert not probes.called(*NVIDIA_QUERY)

    def test_unresolved_ids_still_reported(self, system_paths):
        """A GPU with unknown IDs is listed without names."""
        add_pci_device(system_paths, "0000:65:00.0", "0x030000", "0x1d17", "0x3a04")

        gpus = GpuCollector(paths=system_paths, probes=FakeProbes()).collect()

        assert len(gpus) == 1
        assert gpus[0].vendor is None
        assert gpus[0].model is None
        assert gpus[0].pci_address == "0000:65:00.0"

    def test_onboard_graphics_without_tools(self, system_paths):
        """BMC graphics are reported with PCI names only."""
        add_pci_device(system_paths, "0000:02:00.0", "0x030000", "0x1a03", "0x2000")

        gpus = GpuCollector(paths=system_paths, probes=FakeProbes()).collect()

        assert gpus[0].vendor == "ASPEED Technology, Inc."
        assert gpus[0].model == "ASPEED Graphics Family"
        assert gpus[0].vram_mb is None

    def test_no_pci_bus(self, system_paths):
        """No PCI tree, no GPUs."""
        collector = GpuCollector(paths=system_paths, probes=FakeProbes())
        assert collector.collect() == []
        assert collector.empty() == []
