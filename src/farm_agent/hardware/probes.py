"""
External diagnostic tool probes for Farm Agent.

Runs binaries such as smartctl, ethtool, ip or ipmitool with a fixed argv
and a timeout. An absent binary, a non-zero exit, a timeout or empty output
all mean "no data" and come back as None; nothing here raises.
"""

import json
import logging
import re
import subprocess  # nosec B404
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 30.0


def exit_ok(returncode: int) -> bool:
    """Default exit status check: only zero counts as success."""
    return returncode == 0


def smartctl_exit_ok(returncode: int) -> bool:
    """
    smartctl exit statuses are a bitmask.

    Bits 0-1 mean the command line could not be parsed or the device could
    not be opened. Higher bits (failing health, logged errors) come with a
    fully readable report.
    """
    return returncode >= 0 and not returncode & 0x03


class ProbeRunner:
    """Runs external tools with a shared timeout."""

    def __init__(self, timeout: float = DEFAULT_PROBE_TIMEOUT):
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config_manager=None) -> "ProbeRunner":
        """Build a runner honoring ``collection.probe_timeout``."""
        if config_manager is None:
            return cls()
        return cls(timeout=config_manager.get_probe_timeout())

    def run(
        self,
        cmd: List[str],
        accept: Callable[[int], bool] = exit_ok,
    ) -> Optional[str]:
        """
        Run a command and return its trimmed stdout.

        Args:
            cmd: Fixed argument vector, never passed through a shell
            accept: Predicate deciding whether the exit status carries data

        Returns:
            Standard output, or None when the tool produced no usable data
        """
        try:
            result = subprocess.run(  # nosec B603
                cmd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError:
            self.logger.debug("%s is not installed", cmd[0])
            return None
        except subprocess.TimeoutExpired:
            self.logger.debug("%s timed out after %ss", " ".join(cmd), self.timeout)
            return None
        except OSError as error:
            self.logger.debug("Cannot run %s: %s", cmd[0], error)
            return None

        if not accept(result.returncode):
            self.logger.debug(
                "%s exited with status %d: %s",
                " ".join(cmd),
                result.returncode,
                (result.stderr or "").strip(),
            )
            return None

        output = (result.stdout or "").strip()
        return output or None

    def run_json(self, cmd: List[str]) -> Optional[Any]:
        """Run a command whose stdout is JSON and decode it."""
        output = self.run(cmd)
        if output is None:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as error:
            self.logger.debug("Invalid JSON from %s: %s", " ".join(cmd), error)
            return None


def parse_key_values(text: Optional[str], separator: str = ":") -> Dict[str, str]:
    """
    Parse ``Key: value`` lines into a dict.

    Keys and values are trimmed; the first occurrence of a key wins and lines
    without the separator are ignored.
    """
    fields: Dict[str, str] = {}
    if not text:
        return fields
    for line in text.splitlines():
        if separator not in line:
            continue
        key, value = line.split(separator, 1)
        key = key.strip()
        if key and key not in fields:
            fields[key] = value.strip()
    return fields


def parse_udev_properties(text: Optional[str]) -> Dict[str, str]:
    """Parse ``udevadm info --query=property`` KEY=VALUE output."""
    return parse_key_values(text, separator="=")


def parse_smart_health(text: Optional[str]) -> Optional[str]:
    """Map ``smartctl -H`` output to PASSED, FAILED or None."""
    if not text:
        return None
    if "PASSED" in text:
        return "PASSED"
    if "FAILED" in text:
        return "FAILED"
    return None


def parse_smartctl_identity(text: Optional[str]) -> Dict[str, Optional[str]]:
    """Firmware version and serial number from ``smartctl -i``."""
    fields = parse_key_values(text)
    return {
        "firmware_version": fields.get("Firmware Version")
        or fields.get("Firmware Revision"),
        "serial": fields.get("Serial Number") or fields.get("Serial number"),
    }


def parse_hdparm_identity(text: Optional[str]) -> Dict[str, Optional[str]]:
    """Firmware revision and serial number from ``hdparm -I``."""
    fields = parse_key_values(text)
    return {
        "firmware_version": fields.get("Firmware Revision")
        or fields.get("FW Revision"),
        "serial": fields.get("Serial Number"),
    }


_ETHTOOL_SPEED = re.compile(r"^\s*Speed:\s*(\d+)\s*Mb/s", re.MULTILINE)


def parse_ethtool_speed(text: Optional[str]) -> Optional[int]:
    """Link speed in Mb/s from ``ethtool <iface>``; "Unknown!" yields None."""
    if not text:
        return None
    match = _ETHTOOL_SPEED.search(text)
    if not match:
        return None
    speed = int(match.group(1))
    return speed if speed > 0 else None


def parse_ethtool_firmware(text: Optional[str]) -> Optional[str]:
    """Firmware from ``ethtool -i``: firmware-version first, then version."""
    fields = parse_key_values(text)
    for key in ("firmware-version", "version"):
        value = fields.get(key)
        if value and value.upper() != "N/A":
            return value
    return None
