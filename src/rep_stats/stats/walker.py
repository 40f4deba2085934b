"""Sequential revision scan feeding the representation tallies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

from rep_stats.backends.base import ChangeKind, StorageBackend
from rep_stats.cancel import CancellationToken
from rep_stats.stats.tally import TallySet


@dataclass(slots=True, frozen=True)
class RevisionStats:
    """Counters for one processed revision."""

    revision: int
    paths_considered: int
    paths_skipped_deleted: int
    node_records_fetched: int


@dataclass(slots=True, frozen=True)
class ScanSummary:
    """Counters for a completed history scan."""

    youngest_revision: int
    revisions_scanned: int
    paths_considered: int
    paths_skipped_deleted: int
    node_records_fetched: int


def process_revision(
    store: StorageBackend,
    revision: int,
    tallies: TallySet,
    progress: TextIO | None = None,
) -> RevisionStats:
    """Tally the representations of every path changed in one revision.

    Deleted paths are skipped before any lookup, since they no longer exist in
    the revision root. Everything fetched here is dropped on return; only the
    tallies outlive the call.
    """
    if progress is not None:
        progress.write(f"processing r{revision}\n")
    changes = store.changed_paths(revision)
    skipped = 0
    fetched = 0
    for change in changes:
        if progress is not None:
            progress.write(f"processing r{revision}:{change.path}\n")
        if change.kind is ChangeKind.DELETED:
            skipped += 1
            continue
        # The change entry's id may be transaction-scoped; use the revision root's.
        node_id = store.resolve_node_id(revision, change.path)
        node = store.fetch_node_record(node_id)
        fetched += 1
        tallies.observe(node)
    return RevisionStats(
        revision=revision,
        paths_considered=len(changes),
        paths_skipped_deleted=skipped,
        node_records_fetched=fetched,
    )


def walk_revisions(
    store: StorageBackend,
    tallies: TallySet,
    cancel: CancellationToken,
    progress: TextIO | None = None,
) -> ScanSummary:
    """Scan revisions 0 through youngest in increasing order."""
    youngest = store.youngest_revision()
    scanned = 0
    considered = 0
    skipped = 0
    fetched = 0
    for revision in range(youngest + 1):
        cancel.check()
        stats = process_revision(store, revision, tallies, progress=progress)
        scanned += 1
        considered += stats.paths_considered
        skipped += stats.paths_skipped_deleted
        fetched += stats.node_records_fetched
    return ScanSummary(
        youngest_revision=youngest,
        revisions_scanned=scanned,
        paths_considered=considered,
        paths_skipped_deleted=skipped,
        node_records_fetched=fetched,
    )
