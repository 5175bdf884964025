"""
Exception types for hardware collection.

Per-field resolution never raises; only categories that cannot produce any
degraded output raise these.
"""


class HardwareCollectionError(Exception):
    """Base class for category-level collection failures."""


class GpuHealthUnavailableError(HardwareCollectionError):
    """GPU health metrics need vendor tooling that is missing or failing."""

    def __init__(self, dependency: str, detail: str = ""):
        self.dependency = dependency
        self.detail = detail
        message = f"GPU health collection requires '{dependency}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
