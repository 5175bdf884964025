"""
GPU health collection for Farm Agent.

Unlike the inventory categories there is no degraded output here: without
the vendor management tool nothing can be reported, so failures surface as
GpuHealthUnavailableError.
"""

import logging
import shutil
from typing import List, Optional

from .errors import GpuHealthUnavailableError
from .probes import ProbeRunner
from .types import GpuHealthInfo

logger = logging.getLogger(__name__)

NVIDIA_SMI = "nvidia-smi"
HEALTH_FIELDS = (
    "index",
    "name",
    "uuid",
    "temperature.gpu",
    "power.draw",
    "power.limit",
    "fan.speed",
    "utilization.gpu",
    "utilization.memory",
    "memory.used",
    "memory.total",
    "clocks.gr",
    "clocks.mem",
    "pstate",
)


def _metric(value: str) -> Optional[int]:
    """Numeric metric; "[N/A]" and "[Not Supported]" become None."""
    value = value.strip()
    if not value or value.startswith("["):
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def _text(value: str) -> Optional[str]:
    value = value.strip()
    if not value or value.startswith("["):
        return None
    return value


def parse_health_csv(text: str) -> List[GpuHealthInfo]:
    """Rows of the nvidia-smi health query."""
    devices = []
    for line in text.splitlines():
        parts = [part.strip() for part in line.split(",")]
        if len(parts) < len(HEALTH_FIELDS):
            logger.debug("Skipping short nvidia-smi row: %r", line)
            continue
        index = _metric(parts[0])
        devices.append(
            GpuHealthInfo(
                device_index=index if index is not None else len(devices),
                device_name=parts[1],
                device_uuid=_text(parts[2]),
                temperature_celsius=_metric(parts[3]),
                power_usage_watts=_metric(parts[4]),
                power_limit_watts=_metric(parts[5]),
                fan_speed_percent=_metric(parts[6]),
                utilization_gpu_percent=_metric(parts[7]),
                utilization_memory_percent=_metric(parts[8]),
                memory_used_mb=_metric(parts[9]),
                memory_total_mb=_metric(parts[10]),
                clock_graphics_mhz=_metric(parts[11]),
                clock_memory_mhz=_metric(parts[12]),
                performance_state=_text(parts[13]),
            )
        )
    return devices


def collect_gpu_health(probes: Optional[ProbeRunner] = None) -> List[GpuHealthInfo]:
    """
    Query per-GPU health metrics from nvidia-smi.

    Raises:
        GpuHealthUnavailableError: nvidia-smi is missing or its query failed
    """
    if shutil.which(NVIDIA_SMI) is None:
        raise GpuHealthUnavailableError(NVIDIA_SMI, "tool not found in PATH")

    probes = probes or ProbeRunner()
    output = probes.run(
        [
            NVIDIA_SMI,
            f"--query-gpu={','.join(HEALTH_FIELDS)}",
            "--format=csv,noheader,nounits",
        ]
    )
    if output is None:
        raise GpuHealthUnavailableError(NVIDIA_SMI, "query returned no data")
    return parse_health_csv(output)
