"""
Version stamp for inventory reports.
"""

import logging
import subprocess  # nosec B404
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Optional

logger = logging.getLogger(__name__)

PACKAGE_NAME = "farm-agent"
UNKNOWN_VERSION = "unknown"

_CACHED_VERSION: dict[str, str] = {}


def _version_from_git() -> Optional[str]:
    """Latest tag of a source checkout, marked as a development build."""
    try:
        described = subprocess.run(  # nosec B603, B607
            ["git", "describe", "--tags", "--abbrev=0"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as error:
        logger.debug("git describe unavailable: %s", error)
        return None
    tag = described.stdout.strip() if described.returncode == 0 else ""
    return f"{tag}-dev" if tag else None


def get_agent_version() -> str:
    """
    Version reported in every inventory.

    The installed distribution's metadata wins; a source checkout reports its
    latest git tag with a '-dev' suffix; anything else is 'unknown'. Cached
    for the life of the process.
    """
    if "value" not in _CACHED_VERSION:
        try:
            found = pkg_version(PACKAGE_NAME)
        except PackageNotFoundError:
            logger.debug("No installed metadata for %s", PACKAGE_NAME)
            found = _version_from_git()
        if found is None:
            logger.warning("Agent version could not be determined")
            found = UNKNOWN_VERSION
        _CACHED_VERSION["value"] = found
    return _CACHED_VERSION["value"]
