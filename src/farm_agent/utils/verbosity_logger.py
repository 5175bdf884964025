"""
Flexible logging utility for Farm Agent.

Lets the configuration enable individual levels with a pipe-separated list,
e.g. "INFO|ERROR" logs info and error messages but not warnings.
"""

import logging
from typing import Set

DEFAULT_LEVELS = "WARNING|ERROR|CRITICAL"


def parse_levels(level_config: str) -> Set[int]:
    """Parse a pipe-separated level list into logging constants."""
    enabled_levels = set()
    for level_name in str(level_config).split("|"):
        level_name = level_name.strip().upper()
        level = logging.getLevelName(level_name)
        if isinstance(level, int):
            enabled_levels.add(level)
    return enabled_levels


class FlexibleLogger:
    """
    Logger that filters messages against an explicit set of enabled levels.

    Examples:
    - "DEBUG" - Only debug messages
    - "INFO|ERROR" - Only info and error messages
    - "WARNING|ERROR|CRITICAL" - Default for the inventory CLI
    """

    def __init__(self, name: str, config_manager=None):
        """Initialize flexible logger."""
        self.logger = logging.getLogger(name)
        self.name = name
        self.config_manager = config_manager
        self.enabled_levels = self._parse_enabled_levels()

    def _parse_enabled_levels(self) -> Set[int]:
        """Read the level list from config, falling back to the defaults."""
        level_config = (
            self.config_manager.get("logging.level", DEFAULT_LEVELS)
            if self.config_manager
            else DEFAULT_LEVELS
        )
        return parse_levels(level_config) or parse_levels(DEFAULT_LEVELS)

    def _should_log(self, level: int) -> bool:
        """Check if message should be logged based on configured levels."""
        return level in self.enabled_levels

    def debug(self, msg: str, *args, **kwargs):
        """Log debug message if enabled."""
        if self._should_log(logging.DEBUG):
            self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        """Log info message if enabled."""
        if self._should_log(logging.INFO):
            self.logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        """Log warning message if enabled."""
        if self._should_log(logging.WARNING):
            self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        """Log error message if enabled."""
        if self._should_log(logging.ERROR):
            self.logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Log an error with traceback if errors are enabled."""
        if self._should_log(logging.ERROR):
            self.logger.exception(msg, *args, **kwargs)


def get_logger(name: str, config_manager=None) -> FlexibleLogger:
    """Get a flexible logger instance with granular level control."""
    return FlexibleLogger(name, config_manager)
