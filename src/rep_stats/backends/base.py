"""Core storage backend protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from rep_stats.errors import BackendIOError

SHA1_DIGEST_SIZE = 20


class ChangeKind(str, Enum):
    """Kind of change a path underwent in one revision."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    REPLACED = "replaced"


@dataclass(slots=True, frozen=True)
class Checksum:
    """Fixed-length content digest of a representation."""

    kind: str
    digest: bytes

    def to_display(self) -> str:
        """Return the stable lowercase hex display form."""
        return self.digest.hex()

    @classmethod
    def sha1_from_hex(cls, value: str) -> Checksum:
        """Parse a 40-character hex sha1 digest."""
        try:
            digest = bytes.fromhex(value)
        except ValueError as error:
            raise BackendIOError(f"Malformed sha1 digest: {value!r}") from error
        if len(digest) != SHA1_DIGEST_SIZE:
            raise BackendIOError(f"Malformed sha1 digest: {value!r}")
        return cls(kind="sha1", digest=digest)


@dataclass(slots=True, frozen=True)
class RepDescriptor:
    """Location and checksums of one physical representation."""

    revision: int
    offset: int
    size: int
    expanded_size: int
    md5_hex: str | None = None
    sha1: Checksum | None = None

    @property
    def has_checksum(self) -> bool:
        """Return True when the representation carries a sha1 digest."""
        return self.sha1 is not None


@dataclass(slots=True, frozen=True)
class ChangedPathEntry:
    """Single path change within one revision's change set."""

    path: str
    kind: ChangeKind
    node_id: str | None


@dataclass(slots=True, frozen=True)
class NodeRecord:
    """Representations backing one path's content at one revision."""

    node_id: str
    kind: str
    data_rep: RepDescriptor | None = None
    prop_rep: RepDescriptor | None = None
    created_path: str | None = None


def validate_changed_paths(entries: list[ChangedPathEntry]) -> None:
    """Validate changed-path entries against the shared backend contract."""
    seen: set[str] = set()
    for entry in entries:
        if not entry.path.startswith("/"):
            raise BackendIOError(f"Changed path must be absolute: {entry.path!r}")
        if entry.path in seen:
            raise BackendIOError(f"Changed path listed twice: {entry.path}")
        seen.add(entry.path)


class StorageBackend(Protocol):
    """Read-only capability interface consumed by the scan engine."""

    def store_format(self) -> str:
        """Return the physical format identifier of the opened store."""

    def youngest_revision(self) -> int:
        """Return the highest revision number present in the store."""

    def changed_paths(self, revision: int) -> list[ChangedPathEntry]:
        """Return the folded change set of a revision."""

    def resolve_node_id(self, revision: int, path: str) -> str:
        """Return the node-revision id valid for path in the given revision root."""

    def fetch_node_record(self, node_id: str) -> NodeRecord:
        """Fetch the node record identified by a revision-scoped node id."""
