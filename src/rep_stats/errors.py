"""Error taxonomy for representation sharing scans."""

from __future__ import annotations


class RepStatsError(Exception):
    """Base class for reportable, non-fatal tool errors."""

    code = "REP_STATS_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UsageError(RepStatsError):
    """Raised when command-line arguments are malformed or incomplete."""

    code = "USAGE"


class ExperimentalGateError(RepStatsError):
    """Raised when the experimental environment gate is not set."""

    code = "EXPERIMENTAL"


class UnsupportedBackendError(RepStatsError):
    """Raised when a store is not of a supported physical format."""

    code = "UNSUPPORTED_BACKEND"


class BackendIOError(RepStatsError):
    """Raised when revision or node data cannot be read from a store."""

    code = "BACKEND_IO"


class CancelledError(RepStatsError):
    """Raised when a cancellation token is observed mid-scan or mid-report."""

    code = "CANCELLED"


class RunLogError(RepStatsError):
    """Raised when the run log cannot be written."""

    code = "RUN_LOG"


class StoreInconsistencyError(RepStatsError):
    """Raised for a checksum mismatch when the mismatch policy is ``report``."""

    code = "STORE_INCONSISTENCY"

    def __init__(self, category: str, key: object, stored: str, observed: str) -> None:
        super().__init__(
            f"Representation {key} in '{category}' has checksum {observed}, "
            f"previously recorded as {stored}."
        )
        self.category = category
        self.key = key
        self.stored = stored
        self.observed = observed


class CorruptionAssertion(AssertionError):
    """Fatal checksum mismatch: one physical key seen with two different digests."""

    code = "CORRUPTION"


__all__ = [
    "BackendIOError",
    "CancelledError",
    "CorruptionAssertion",
    "ExperimentalGateError",
    "RepStatsError",
    "RunLogError",
    "StoreInconsistencyError",
    "UnsupportedBackendError",
    "UsageError",
]
