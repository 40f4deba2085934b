"""Read-only access to on-disk FSFS repositories with physical addressing."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from rep_stats.backends.base import (
    ChangedPathEntry,
    ChangeKind,
    Checksum,
    NodeRecord,
    RepDescriptor,
)
from rep_stats.errors import BackendIOError, UnsupportedBackendError

FSFS_FORMAT = "fsfs"

MIN_PACKED_FORMAT = 4
MIN_LOGICAL_ADDRESSING_FORMAT = 7

_TRAILER_MAX_BYTES = 64
_NODE_HEADER_MAX_LINES = 64
_NODE_ID_RE = re.compile(r"^([^.\s]+)\.([^.\s]+)\.r(\d+)/(\d+)$")
_SHA1_HEX_RE = re.compile(r"^[0-9a-fA-F]{40}$")
_ACTIONS: dict[str, ChangeKind | None] = {
    "add": ChangeKind.ADDED,
    "modify": ChangeKind.MODIFIED,
    "delete": ChangeKind.DELETED,
    "replace": ChangeKind.REPLACED,
    "reset": None,
}


@dataclass(slots=True, frozen=True)
class FsfsFormat:
    """Parsed contents of ``db/format``."""

    number: int
    max_files_per_dir: int | None
    logical_addressing: bool


@dataclass(slots=True, frozen=True)
class NodeRevisionId:
    """Revision-scoped node-revision id ``<node>.<copy>.r<rev>/<offset>``."""

    node: str
    copy: str
    revision: int
    offset: int


def read_fs_type(repo_root: Path) -> str:
    """Return the backend type recorded in ``db/fs-type``."""
    fs_type_path = repo_root / "db" / "fs-type"
    try:
        return fs_type_path.read_text(encoding="utf-8").strip()
    except OSError as error:
        raise BackendIOError(
            f"'{repo_root}' is not a repository: can't read {fs_type_path.name}"
        ) from error


def parse_format_file(text: str) -> FsfsFormat:
    """Parse the FSFS format number and its layout options."""
    lines = text.splitlines()
    if not lines or not lines[0].strip().isdigit():
        raise BackendIOError("Format file has no leading format number.")
    number = int(lines[0].strip())
    max_files_per_dir: int | None = None
    logical_addressing = False
    for raw in lines[1:]:
        words = raw.split()
        if not words:
            continue
        if words[:2] == ["layout", "sharded"] and len(words) == 3 and words[2].isdigit():
            max_files_per_dir = int(words[2])
        elif words == ["layout", "linear"]:
            max_files_per_dir = None
        elif words == ["addressing", "logical"]:
            logical_addressing = True
        elif words == ["addressing", "physical"]:
            logical_addressing = False
        else:
            raise BackendIOError(f"Unrecognized format option: {raw.strip()!r}")
    if logical_addressing and number < MIN_LOGICAL_ADDRESSING_FORMAT:
        raise BackendIOError(f"Format {number} does not support logical addressing.")
    return FsfsFormat(
        number=number,
        max_files_per_dir=max_files_per_dir,
        logical_addressing=logical_addressing,
    )


def parse_node_revision_id(value: str) -> NodeRevisionId:
    """Parse a committed node-revision id; transaction ids are rejected."""
    match = _NODE_ID_RE.match(value.strip())
    if match is None:
        raise BackendIOError(f"Malformed or uncommitted node-revision id: {value!r}")
    return NodeRevisionId(
        node=match.group(1),
        copy=match.group(2),
        revision=int(match.group(3)),
        offset=int(match.group(4)),
    )


def parse_representation(value: str) -> RepDescriptor:
    """Parse a ``text:``/``props:`` representation string."""
    tokens = value.split()
    if len(tokens) < 4:
        raise BackendIOError(f"Malformed representation: {value!r}")
    try:
        revision, offset, size, expanded_size = (int(token) for token in tokens[:4])
    except ValueError as error:
        raise BackendIOError(f"Malformed representation: {value!r}") from error
    if revision < 0 or offset < 0:
        raise BackendIOError(f"Mutable representation in committed data: {value!r}")
    md5_hex = tokens[4] if len(tokens) > 4 else None
    sha1: Checksum | None = None
    if len(tokens) > 5 and _SHA1_HEX_RE.match(tokens[5]):
        sha1 = Checksum.sha1_from_hex(tokens[5].lower())
    return RepDescriptor(
        revision=revision,
        offset=offset,
        size=size,
        expanded_size=expanded_size,
        md5_hex=md5_hex,
        sha1=sha1,
    )


def parse_node_revision(block: str) -> NodeRecord:
    """Parse a node-revision header block into a node record."""
    headers: dict[str, str] = {}
    for line in block.splitlines():
        if not line:
            break
        key, sep, value = line.partition(": ")
        if not sep:
            raise BackendIOError(f"Malformed node-revision header: {line!r}")
        headers[key] = value
    node_id = headers.get("id")
    kind = headers.get("type")
    if node_id is None or kind not in {"file", "dir"}:
        raise BackendIOError("Node-revision lacks a valid 'id' or 'type' header.")
    text = headers.get("text")
    props = headers.get("props")
    return NodeRecord(
        node_id=node_id,
        kind=kind,
        data_rep=parse_representation(text) if text is not None else None,
        prop_rep=parse_representation(props) if props is not None else None,
        created_path=headers.get("cpath"),
    )


def parse_changes(text: str) -> dict[str, ChangedPathEntry]:
    """Parse and fold a revision's changed-path list."""
    changes: dict[str, ChangedPathEntry] = {}
    lines = text.split("\n")
    index = 0
    while index < len(lines) and lines[index]:
        line = lines[index]
        # Each change is followed by its copy-from line, which may be empty.
        index += 2
        parts = line.split(" ", 4)
        if len(parts) != 5:
            raise BackendIOError(f"Malformed changed-path entry: {line!r}")
        node_id, action, _text_mod, _prop_mod, rest = parts
        if not rest.startswith("/"):
            _mergeinfo_mod, _, rest = rest.partition(" ")
        action_name = action.split("-", 1)[0]
        if action_name not in _ACTIONS or not rest.startswith("/"):
            raise BackendIOError(f"Malformed changed-path entry: {line!r}")
        _fold_change(changes, rest, _ACTIONS[action_name], node_id)
    return changes


def _fold_change(
    changes: dict[str, ChangedPathEntry],
    path: str,
    kind: ChangeKind | None,
    node_id: str,
) -> None:
    existing = changes.get(path)
    if kind is None:
        changes.pop(path, None)
        return
    if existing is None:
        changes[path] = ChangedPathEntry(path=path, kind=kind, node_id=node_id)
        return
    if kind is ChangeKind.DELETED:
        if existing.kind is ChangeKind.ADDED:
            del changes[path]
        else:
            changes[path] = ChangedPathEntry(path=path, kind=kind, node_id=node_id)
        return
    if kind is ChangeKind.MODIFIED:
        changes[path] = ChangedPathEntry(path=path, kind=existing.kind, node_id=node_id)
        return
    if kind is ChangeKind.ADDED and existing.kind is not ChangeKind.DELETED:
        raise BackendIOError(f"Invalid change ordering: add on preexisting path {path}")
    changes[path] = ChangedPathEntry(path=path, kind=ChangeKind.REPLACED, node_id=node_id)


class FsfsStore:
    """FSFS repository reader implementing the storage backend protocol."""

    def __init__(self, repo_root: Path) -> None:
        self._repo_root = repo_root.resolve()
        self._db = self._repo_root / "db"
        self._fs_type = read_fs_type(self._repo_root)
        if self._fs_type != FSFS_FORMAT:
            raise UnsupportedBackendError(
                f"Filesystem '{self._repo_root}' is of type '{self._fs_type}', "
                f"not '{FSFS_FORMAT}'"
            )
        self._format = parse_format_file(self._read_text(self._db / "format"))
        if self._format.logical_addressing:
            raise UnsupportedBackendError(
                f"Filesystem '{self._repo_root}' uses logical addressing; "
                "only physical addressing is supported"
            )
        self._min_unpacked_rev = 0
        if self._format.number >= MIN_PACKED_FORMAT:
            min_unpacked_path = self._db / "min-unpacked-rev"
            if min_unpacked_path.exists():
                self._min_unpacked_rev = self._read_int(min_unpacked_path)
        self._cached_changes: tuple[int, dict[str, ChangedPathEntry]] | None = None
        self._cached_manifest: tuple[int, list[int]] | None = None

    @property
    def repo_root(self) -> Path:
        """Return the resolved repository root."""
        return self._repo_root

    @property
    def format(self) -> FsfsFormat:
        """Return the parsed ``db/format`` contents."""
        return self._format

    def store_format(self) -> str:
        return self._fs_type

    def youngest_revision(self) -> int:
        current = self._read_text(self._db / "current").split()
        if not current or not current[0].isdigit():
            raise BackendIOError("Corrupt 'current' file.")
        return int(current[0])

    def changed_paths(self, revision: int) -> list[ChangedPathEntry]:
        return list(self._changes_for(revision).values())

    def resolve_node_id(self, revision: int, path: str) -> str:
        entry = self._changes_for(revision).get(path)
        if entry is None or entry.kind is ChangeKind.DELETED or entry.node_id is None:
            raise BackendIOError(f"File not found: revision {revision}, path '{path}'")
        parsed = parse_node_revision_id(entry.node_id)
        if parsed.revision != revision:
            raise BackendIOError(
                f"Node-revision id {entry.node_id} for '{path}' is not from revision {revision}"
            )
        return entry.node_id

    def fetch_node_record(self, node_id: str) -> NodeRecord:
        parsed = parse_node_revision_id(node_id)
        path, start, end = self._rev_span(parsed.revision)
        position = start + parsed.offset
        if end is not None and position >= end:
            raise BackendIOError(f"Node-revision offset out of range: {node_id}")
        lines: list[bytes] = []
        try:
            with path.open("rb") as handle:
                handle.seek(position)
                for _ in range(_NODE_HEADER_MAX_LINES):
                    line = handle.readline()
                    if line in {b"", b"\n"}:
                        break
                    lines.append(line)
        except OSError as error:
            raise BackendIOError(f"Can't read node-revision {node_id}: {error}") from error
        record = parse_node_revision(_decode(b"".join(lines), node_id))
        if record.node_id != node_id:
            raise BackendIOError(
                f"Node-revision at {node_id} carries mismatched id {record.node_id}"
            )
        return record

    def _changes_for(self, revision: int) -> dict[str, ChangedPathEntry]:
        if self._cached_changes is not None and self._cached_changes[0] == revision:
            return self._cached_changes[1]
        path, start, end = self._rev_span(revision)
        try:
            with path.open("rb") as handle:
                if end is None:
                    handle.seek(0, os.SEEK_END)
                    end = handle.tell()
                tail_start = max(start, end - _TRAILER_MAX_BYTES)
                handle.seek(tail_start)
                tail = handle.read(end - tail_start)
                if not tail.endswith(b"\n"):
                    raise BackendIOError(f"Revision file for r{revision} lacks a trailer.")
                trailer_start = tail_start + tail.rfind(b"\n", 0, len(tail) - 1) + 1
                _root_offset, changes_offset = _parse_trailer(
                    tail[trailer_start - tail_start :], revision
                )
                changes_start = start + changes_offset
                if changes_start > trailer_start:
                    raise BackendIOError(f"Changes offset out of range in r{revision}.")
                handle.seek(changes_start)
                raw = handle.read(trailer_start - changes_start)
        except OSError as error:
            raise BackendIOError(f"Can't read revision {revision}: {error}") from error
        changes = parse_changes(_decode(raw, f"r{revision}"))
        self._cached_changes = (revision, changes)
        return changes

    def _rev_span(self, revision: int) -> tuple[Path, int, int | None]:
        if revision < 0:
            raise BackendIOError(f"No such revision {revision}.")
        revs = self._db / "revs"
        shard_size = self._format.max_files_per_dir
        if shard_size is not None and revision < self._min_unpacked_rev:
            shard = revision // shard_size
            offsets = self._manifest(shard)
            slot = revision % shard_size
            if slot >= len(offsets):
                raise BackendIOError(f"Pack manifest for shard {shard} lacks r{revision}.")
            end = offsets[slot + 1] if slot + 1 < len(offsets) else None
            return revs / f"{shard}.pack" / "pack", offsets[slot], end
        if shard_size is not None:
            return revs / str(revision // shard_size) / str(revision), 0, None
        return revs / str(revision), 0, None

    def _manifest(self, shard: int) -> list[int]:
        if self._cached_manifest is not None and self._cached_manifest[0] == shard:
            return self._cached_manifest[1]
        if self._format.number >= MIN_LOGICAL_ADDRESSING_FORMAT:
            # Format 7 manifests are binary-encoded.
            raise UnsupportedBackendError(
                f"Packed shards of format {self._format.number} are not supported"
            )
        text = self._read_text(self._db / "revs" / f"{shard}.pack" / "manifest")
        try:
            offsets = [int(line) for line in text.split()]
        except ValueError as error:
            raise BackendIOError(f"Corrupt pack manifest for shard {shard}.") from error
        self._cached_manifest = (shard, offsets)
        return offsets

    def _read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as error:
            raise BackendIOError(f"Can't read '{path}': {error}") from error

    def _read_int(self, path: Path) -> int:
        text = self._read_text(path).strip()
        if not text.isdigit():
            raise BackendIOError(f"Corrupt integer file '{path.name}'.")
        return int(text)


def _parse_trailer(line: bytes, revision: int) -> tuple[int, int]:
    words = line.split()
    if len(words) != 2 or not all(word.isdigit() for word in words):
        raise BackendIOError(f"Revision file for r{revision} has a corrupt trailer.")
    return int(words[0]), int(words[1])


def _decode(raw: bytes, where: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as error:
        raise BackendIOError(f"Undecodable data in {where}.") from error
