"""
This module is the command-line entry point for the Farm agent. It collects
the hardware inventory of the local machine and prints it, writes it to a
file, or posts it to the inventory server.
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, List, Optional

from src.farm_agent.communication.inventory_poster import (
    InventoryPostError,
    post_inventory,
)
from src.farm_agent.core.async_utils import write_file_async
from src.farm_agent.core.config import ConfigManager
from src.farm_agent.hardware.collector import HardwareCollector
from src.farm_agent.hardware.errors import HardwareCollectionError
from src.farm_agent.hardware.gpu_health import collect_gpu_health
from src.farm_agent.hardware.output import FORMATS, render
from src.farm_agent.utils.logging_formatter import UTCTimestampFormatter
from src.farm_agent.utils.verbosity_logger import get_logger
from src.i18n import _, set_language

EXIT_OK = 0
EXIT_FAILURE = 1

# Subcommand -> collector category
CATEGORY_COMMANDS = {
    "cpu": "cpu",
    "memory": "memory",
    "storage": "storage",
    "network": "network",
    "node": "node",
    "power": "power",
    "gpu": "gpu",
}


class FarmAgent:
    """Command dispatcher for one CLI invocation."""

    def __init__(self, config: ConfigManager):
        self.config = config
        set_language(self.config.get_language())
        self.setup_logging()
        self.logger = get_logger(__name__, self.config)

    def setup_logging(self):
        """Setup logging based on configuration with verbosity support."""
        log_level = self.config.get_log_level()
        log_file = self.config.get_log_file()
        formatter = UTCTimestampFormatter(self.config.get_log_format())

        # Parse log level - handle pipe-separated levels (use first one)
        if "|" in log_level:
            log_level = log_level.split("|")[0].strip()
        level = getattr(logging, log_level.upper(), logging.WARNING)

        # Clear any existing handlers to prevent double logging
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        root_logger.setLevel(level)

        # Diagnostics go to stderr so stdout carries only the report
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    def collect(self, command: str) -> Any:
        """Collect the data a hardware subcommand reports."""
        collector = HardwareCollector(self.config)
        if command == "inventory":
            return collector.collect_full_inventory()
        if command == "gpu-health":
            return collect_gpu_health(collector.probes)
        return collector.collect_category(CATEGORY_COMMANDS[command])

    def emit(self, data: Any, fmt: str, output: Optional[str]) -> None:
        """Print the rendered report or write it to a file."""
        text = render(data, fmt)
        if output:
            asyncio.run(write_file_async(output, text + "\n"))
            self.logger.info("Wrote report to %s", output)
        else:
            print(text)

    def run_hardware(self, args: argparse.Namespace) -> int:
        """Handle ``hardware <command>``."""
        if args.command == "post-inventory":
            return self.run_post_inventory(args)

        try:
            data = self.collect(args.command)
        except HardwareCollectionError as error:
            print(_("Error: %s") % error, file=sys.stderr)
            return EXIT_FAILURE

        try:
            self.emit(data, args.format or self.config.get_output_format(), args.output)
        except OSError as error:
            print(_("Cannot write report: %s") % error, file=sys.stderr)
            return EXIT_FAILURE
        return EXIT_OK

    def run_post_inventory(self, args: argparse.Namespace) -> int:
        """Collect the inventory and POST it to the server."""
        inventory = HardwareCollector(self.config).collect_full_inventory()
        base_url = args.url or self.config.get_server_url()
        try:
            response = asyncio.run(
                post_inventory(
                    inventory,
                    base_url,
                    verify_ssl=self.config.should_verify_ssl(),
                    timeout=self.config.get_server_timeout(),
                )
            )
        except InventoryPostError as error:
            print(_("Error: %s") % error, file=sys.stderr)
            return EXIT_FAILURE

        print(render(response, args.format or self.config.get_output_format()))
        return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="farm-agent",
        description=_("Collect and report the hardware inventory of this machine."),
    )
    parser.add_argument(
        "--config", metavar="FILE", help=_("Configuration file (YAML)")
    )
    subparsers = parser.add_subparsers(dest="group", required=True)

    hardware = subparsers.add_parser("hardware", help=_("Hardware inventory commands"))
    commands = hardware.add_subparsers(dest="command", required=True)

    report_commands = ["inventory", *CATEGORY_COMMANDS, "gpu-health"]
    for name in report_commands:
        command = commands.add_parser(name, help=_("Report %s information") % name)
        command.add_argument("--format", choices=FORMATS, help=_("Output format"))
        command.add_argument("--output", metavar="FILE", help=_("Write to FILE"))

    post = commands.add_parser(
        "post-inventory", help=_("Collect the inventory and send it to the server")
    )
    post.add_argument("--url", help=_("Server base URL"))
    post.add_argument("--format", choices=FORMATS, help=_("Response output format"))

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager(args.config)
    except (FileNotFoundError, ValueError, RuntimeError) as error:
        print(_("Error: %s") % error, file=sys.stderr)
        return EXIT_FAILURE

    agent = FarmAgent(config)
    return agent.run_hardware(args)


if __name__ == "__main__":
    sys.exit(main())
