"""
Pytest configuration and shared fixtures for Farm agent tests.
"""

from unittest.mock import AsyncMock, patch

import pytest

from src.farm_agent.core import version
from src.farm_agent.core.config import ConfigManager
from src.farm_agent.hardware import pci_ids
from tests.hardware_test_base import FakeProbes, make_system_paths


@pytest.fixture(autouse=True)
def reset_shared_caches():
    """Forget cached PCI databases and the agent version between tests."""
    pci_ids.clear_cache()
    version._CACHED_VERSION.clear()  # pylint: disable=protected-access
    yield
    pci_ids.clear_cache()
    version._CACHED_VERSION.clear()  # pylint: disable=protected-access


@pytest.fixture(autouse=True)
def no_host_sockets():
    """Keep BMC detection from seeing the test host's own sockets."""
    with patch("psutil.net_connections", return_value=[]) as mock_connections:
        yield mock_connections


@pytest.fixture
def system_paths(tmp_path):
    """SystemPaths rooted in an empty temporary tree."""
    return make_system_paths(str(tmp_path))


@pytest.fixture
def fake_probes():
    """Probe runner with no canned output: every tool is 'missing'."""
    return FakeProbes()


@pytest.fixture
def write_config(tmp_path):
    """Write YAML text to a config file and load it."""

    def _write(text: str) -> ConfigManager:
        config_path = tmp_path / "farm-agent.yaml"
        config_path.write_text(text, encoding="utf-8")
        return ConfigManager(str(config_path))

    return _write


@pytest.fixture
def config_manager(write_config, system_paths):
    """Config pointing every path at the temporary tree."""
    return write_config(
        f"""
logging:
  level: "INFO|WARNING|ERROR|CRITICAL"
collection:
  probe_timeout: 5
paths:
  sysfs_root: "{system_paths.sysfs_root}"
  procfs_root: "{system_paths.procfs_root}"
  dev_root: "{system_paths.dev_root}"
  dmi_table: "{system_paths.dmi_table}"
  dmi_entries: "{system_paths.dmi_entries}"
  pci_ids: "{system_paths.pci_ids}"
"""
    )


@pytest.fixture
def no_redfish():
    """Keep BMC detection away from the network."""
    with patch(
        "src.farm_agent.hardware.collect_node.probe_redfish",
        new=AsyncMock(return_value=None),
    ) as mock_probe:
        yield mock_probe
