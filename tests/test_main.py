"""
Tests for the command-line entry point.
"""

# pylint: disable=redefined-outer-name,protected-access

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

import main
from src.farm_agent.communication.inventory_poster import InventoryPostError
from src.farm_agent.hardware.errors import GpuHealthUnavailableError
from src.farm_agent.hardware.types import CpuInfo, CpuSocket
from tests.hardware_test_base import mock_http_response, mock_http_session


@pytest.fixture
def config_file(tmp_path):
    """A config file with a JSON default and a local server."""
    path = tmp_path / "farm-agent.yaml"
    path.write_text(
        "output:\n  format: json\nserver:\n  url: http://inv.test\n  timeout: 3\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def quiet_logging():
    """Keep main from replacing the root logger handlers."""
    with patch.object(main.FarmAgent, "setup_logging"):
        yield


@pytest.fixture
def mock_collector():
    """HardwareCollector replaced in the CLI module."""
    with patch.object(main, "HardwareCollector") as mock_class:
        yield mock_class.return_value


def sample_cpu():
    """A small CPU report."""
    return CpuInfo(
        sockets=1, cores=8, threads=16,
        cpus=[CpuSocket(socket=0, model_name="EPYC 7313")],
    )


class TestBuildParser:
    """Tests for argument parsing."""

    def test_category_command(self):
        """Category commands accept --format and --output."""
        args = main.build_parser().parse_args(
            ["hardware", "cpu", "--format", "yaml", "--output", "cpu.yaml"]
        )
        assert (args.group, args.command) == ("hardware", "cpu")
        assert args.format == "yaml"
        assert args.output == "cpu.yaml"

    def test_post_inventory(self):
        """post-inventory takes a URL override."""
        args = main.build_parser().parse_args(
            ["--config", "a.yaml", "hardware", "post-inventory", "--url", "http://x"]
        )
        assert args.config == "a.yaml"
        assert args.url == "http://x"

    def test_invalid_format(self):
        """Unknown formats are rejected by argparse."""
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["hardware", "cpu", "--format", "xml"])

    def test_every_report_command(self):
        """All report subcommands parse."""
        parser = main.build_parser()
        for name in ["inventory", *main.CATEGORY_COMMANDS, "gpu-health"]:
            assert parser.parse_args(["hardware", name]).command == name


class TestMain:
    """Tests for main()."""

    def test_missing_config(self, tmp_path, capsys):
        """An explicit config that does not exist fails."""
        code = main.main(["--config", str(tmp_path / "none.yaml"), "hardware", "cpu"])
        assert code == main.EXIT_FAILURE
        assert "not found" in capsys.readouterr().err

    def test_category_to_stdout(self, config_file, quiet_logging, mock_collector,
                                capsys):
        """A category report prints in the configured format."""
        _ = quiet_logging
        mock_collector.collect_category.return_value = sample_cpu()

        code = main.main(["--config", config_file, "hardware", "cpu"])

        assert code == main.EXIT_OK
        mock_collector.collect_category.assert_called_once_with("cpu")
        data = json.loads(capsys.readouterr().out)
        assert data["cpus"][0]["model_name"] == "EPYC 7313"

    def test_output_file(self, config_file, quiet_logging, mock_collector, tmp_path,
                         capsys):
        """--output writes the report to a file instead of stdout."""
        _ = quiet_logging
        mock_collector.collect_category.return_value = sample_cpu()
        target = tmp_path / "cpu.yaml"

        code = main.main(
            ["--config", config_file, "hardware", "cpu", "--format", "yaml",
             "--output", str(target)]
        )

        assert code == main.EXIT_OK
        assert capsys.readouterr().out == ""
        assert "model_name: EPYC 7313" in target.read_text(encoding="utf-8")

    def test_output_unwritable(self, config_file, quiet_logging, mock_collector,
                               tmp_path, capsys):
        """An output path that cannot be written is a failure with a message."""
        _ = quiet_logging
        mock_collector.collect_category.return_value = sample_cpu()

        code = main.main(
            ["--config", config_file, "hardware", "cpu",
             "--output", str(tmp_path / "missing-dir" / "cpu.json")]
        )

        assert code == main.EXIT_FAILURE
        assert "Cannot write report" in capsys.readouterr().err

    def test_full_inventory(self, config_file, quiet_logging, mock_collector, capsys):
        """inventory uses the full aggregation."""
        _ = quiet_logging
        mock_collector.collect_full_inventory.return_value = {"agent_version": "1.0.0"}

        assert main.main(["--config", config_file, "hardware", "inventory"]) == 0
        assert json.loads(capsys.readouterr().out) == {"agent_version": "1.0.0"}

    def test_gpu_health_unavailable(self, config_file, quiet_logging, mock_collector,
                                    capsys):
        """Missing nvidia-smi is a failure with a message."""
        _ = (quiet_logging, mock_collector)
        with patch.object(
            main, "collect_gpu_health",
            side_effect=GpuHealthUnavailableError("nvidia-smi", "tool not found in PATH"),
        ):
            code = main.main(["--config", config_file, "hardware", "gpu-health"])

        assert code == main.EXIT_FAILURE
        assert "nvidia-smi" in capsys.readouterr().err

    def test_post_inventory_success(self, config_file, quiet_logging, mock_collector,
                                    capsys):
        """The server response is printed."""
        _ = quiet_logging
        mock_collector.collect_full_inventory.return_value = "inventory"
        with patch.object(
            main, "post_inventory", new=AsyncMock(return_value={"id": 7})
        ) as mock_post:
            code = main.main(["--config", config_file, "hardware", "post-inventory"])

        assert code == main.EXIT_OK
        mock_post.assert_awaited_once_with(
            "inventory", "http://inv.test", verify_ssl=True, timeout=3.0
        )
        assert json.loads(capsys.readouterr().out) == {"id": 7}

    def test_post_inventory_text_response(self, config_file, quiet_logging,
                                          mock_collector, capsys):
        """A server that answers with plain text still succeeds."""
        _ = quiet_logging
        mock_collector.collect_full_inventory.return_value = {"agent_version": "1.0.0"}
        session = mock_http_session("post", [mock_http_response(200, "accepted")])
        with patch("aiohttp.TCPConnector"), patch(
            "aiohttp.ClientSession", return_value=session
        ):
            code = main.main(["--config", config_file, "hardware", "post-inventory"])

        assert code == main.EXIT_OK
        assert json.loads(capsys.readouterr().out) == {"response": "accepted"}

    def test_post_inventory_url_override(self, config_file, quiet_logging,
                                         mock_collector):
        """--url wins over the configured server."""
        _ = (quiet_logging, mock_collector)
        with patch.object(
            main, "post_inventory", new=AsyncMock(return_value={})
        ) as mock_post:
            main.main(
                ["--config", config_file, "hardware", "post-inventory",
                 "--url", "https://other.test"]
            )

        assert mock_post.call_args.args[1] == "https://other.test"

    def test_post_inventory_error(self, config_file, quiet_logging, mock_collector,
                                  capsys):
        """Server errors exit non-zero."""
        _ = (quiet_logging, mock_collector)
        with patch.object(
            main, "post_inventory",
            new=AsyncMock(side_effect=InventoryPostError("HTTP 500", 500, "oops")),
        ):
            code = main.main(["--config", config_file, "hardware", "post-inventory"])

        assert code == main.EXIT_FAILURE
        assert "HTTP 500" in capsys.readouterr().err


class TestSetupLogging:
    """Tests for FarmAgent.setup_logging."""

    @pytest.fixture
    def saved_root_logger(self):
        """Restore the root logger after the test."""
        root_logger = logging.getLogger()
        handlers = root_logger.handlers[:]
        level = root_logger.level
        yield root_logger
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        for handler in handlers:
            root_logger.addHandler(handler)
        root_logger.setLevel(level)

    def test_handlers(self, write_config, tmp_path, saved_root_logger):
        """The first listed level applies to console and file handlers."""
        log_file = tmp_path / "agent.log"
        config = write_config(
            f'logging:\n  level: "INFO|ERROR"\n  file: "{log_file}"\n'
        )

        main.FarmAgent(config)

        assert saved_root_logger.level == logging.INFO
        assert len(saved_root_logger.handlers) == 2
        for handler in saved_root_logger.handlers:
            assert isinstance(handler.formatter, main.UTCTimestampFormatter)
        assert any(
            isinstance(handler, logging.FileHandler)
            for handler in saved_root_logger.handlers
        )
