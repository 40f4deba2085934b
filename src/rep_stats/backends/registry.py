"""Backend registry with format detection and the supported-format gate."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from rep_stats.backends.base import StorageBackend
from rep_stats.backends.fsfs import FSFS_FORMAT, FsfsStore, read_fs_type
from rep_stats.errors import UnsupportedBackendError

BackendOpener = Callable[[Path], StorageBackend]


@dataclass(slots=True)
class BackendRegistry:
    """Maps store format identifiers to openers in registration order."""

    _openers: dict[str, BackendOpener] = field(default_factory=dict)

    def register(self, store_format: str, opener: BackendOpener) -> None:
        """Register an opener for a store format."""
        self._openers[store_format] = opener

    def formats(self) -> tuple[str, ...]:
        """Return registered format identifiers in deterministic order."""
        return tuple(self._openers.keys())

    def open(self, location: Path) -> StorageBackend:
        """Detect the store format at location and open it read-only."""
        store_format = read_fs_type(location)
        opener = self._openers.get(store_format)
        if opener is None:
            raise UnsupportedBackendError(
                f"Filesystem '{location}' has unsupported type '{store_format}'"
            )
        return opener(location)


def ensure_supported(store: StorageBackend, supported_formats: tuple[str, ...]) -> None:
    """Raise UnsupportedBackendError unless the store format is supported."""
    actual = store.store_format()
    if actual not in supported_formats:
        expected = ", ".join(supported_formats)
        raise UnsupportedBackendError(
            f"Store format '{actual}' is not supported (expected: {expected})"
        )


def build_backend_registry() -> BackendRegistry:
    """Build the registry of on-disk backends."""
    registry = BackendRegistry()
    registry.register(FSFS_FORMAT, FsfsStore)
    return registry
