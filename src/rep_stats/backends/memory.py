"""In-process storage backend for embedding and tests."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from rep_stats.backends.base import (
    ChangedPathEntry,
    ChangeKind,
    NodeRecord,
    validate_changed_paths,
)
from rep_stats.errors import BackendIOError

MEMORY_FORMAT = "memory"

PathChange = tuple[ChangeKind, NodeRecord | None]


@dataclass(slots=True)
class _MemoryRevision:
    changes: list[ChangedPathEntry]
    node_ids: dict[str, str]


@dataclass(slots=True)
class InMemoryStore:
    """Append-only revision history kept in memory.

    Revision 0 exists from construction and has no changes. Changed-path entries
    carry transaction-scoped ids; ``resolve_node_id`` returns the committed id.
    """

    _revisions: list[_MemoryRevision] = field(
        default_factory=lambda: [_MemoryRevision(changes=[], node_ids={})]
    )
    _nodes: dict[str, NodeRecord] = field(default_factory=dict)
    _next_node: int = 1
    fetch_log: list[str] = field(default_factory=list)

    def commit(self, changes: dict[str, PathChange]) -> int:
        """Append a revision made of the given path changes and return its number."""
        revision = len(self._revisions)
        entries: list[ChangedPathEntry] = []
        node_ids: dict[str, str] = {}
        for index, path in enumerate(sorted(changes)):
            kind, node = changes[path]
            if kind is ChangeKind.DELETED:
                entries.append(ChangedPathEntry(path=path, kind=kind, node_id=None))
                continue
            if node is None:
                raise ValueError(f"Change for {path} needs a node record.")
            serial = self._next_node
            self._next_node += 1
            node_id = f"{serial}.0.r{revision}/{index}"
            self._nodes[node_id] = replace(node, node_id=node_id)
            node_ids[path] = node_id
            entries.append(
                ChangedPathEntry(path=path, kind=kind, node_id=f"_{serial}.0.t{revision}-1")
            )
        validate_changed_paths(entries)
        self._revisions.append(_MemoryRevision(changes=entries, node_ids=node_ids))
        return revision

    def store_format(self) -> str:
        """Return the memory format identifier."""
        return MEMORY_FORMAT

    def youngest_revision(self) -> int:
        """Return the newest committed revision."""
        return len(self._revisions) - 1

    def changed_paths(self, revision: int) -> list[ChangedPathEntry]:
        """Return the change set recorded for a revision."""
        return list(self._revision(revision).changes)

    def resolve_node_id(self, revision: int, path: str) -> str:
        """Return the committed node id for a path changed in the revision."""
        node_id = self._revision(revision).node_ids.get(path)
        if node_id is None:
            raise BackendIOError(f"Path '{path}' not found in revision {revision}.")
        return node_id

    def fetch_node_record(self, node_id: str) -> NodeRecord:
        """Return a committed node record and log the fetch."""
        self.fetch_log.append(node_id)
        node = self._nodes.get(node_id)
        if node is None:
            raise BackendIOError(f"Unknown node-revision id: {node_id}")
        return node

    def _revision(self, revision: int) -> _MemoryRevision:
        if revision < 0 or revision >= len(self._revisions):
            raise BackendIOError(f"No such revision {revision}.")
        return self._revisions[revision]
