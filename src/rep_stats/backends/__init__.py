"""Storage backend interfaces."""

from .base import (
    ChangedPathEntry,
    ChangeKind,
    Checksum,
    NodeRecord,
    RepDescriptor,
    StorageBackend,
    validate_changed_paths,
)
from .fsfs import FSFS_FORMAT, FsfsFormat, FsfsStore
from .memory import MEMORY_FORMAT, InMemoryStore
from .registry import BackendRegistry, build_backend_registry, ensure_supported

__all__ = [
    "BackendRegistry",
    "ChangeKind",
    "ChangedPathEntry",
    "Checksum",
    "FSFS_FORMAT",
    "FsfsFormat",
    "FsfsStore",
    "InMemoryStore",
    "MEMORY_FORMAT",
    "NodeRecord",
    "RepDescriptor",
    "StorageBackend",
    "build_backend_registry",
    "ensure_supported",
    "validate_changed_paths",
]
