"""Structured JSONL run log utilities."""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

from rep_stats.errors import RunLogError
from rep_stats.stats.report import CategorySummary
from rep_stats.stats.walker import ScanSummary


@dataclass(slots=True, frozen=True)
class RunEvent:
    """Outcome of a single statistics run."""

    timestamp: str
    run_id: str
    store: str
    store_format: str | None
    ok: bool
    error_code: str | None
    metadata: dict[str, object]


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_run_id() -> str:
    """Return a unique run identifier."""
    return f"run-{uuid.uuid4().hex[:12]}"


def run_metadata(
    categories: tuple[str, ...],
    scan: ScanSummary | None,
    summaries: list[CategorySummary],
    failed_categories: tuple[str, ...] = (),
) -> dict[str, object]:
    """Build run log metadata from scan counters and tally summaries."""
    metadata: dict[str, object] = {
        "categories": list(categories),
        "failed_categories": list(failed_categories),
    }
    if scan is not None:
        metadata["scan"] = asdict(scan)
    metadata["tallies"] = {
        summary.category: {
            "distinct_representations": summary.distinct_representations,
            "total_references": summary.total_references,
            "shared_representations": summary.shared_representations,
            "distinct_checksums": summary.distinct_checksums,
        }
        for summary in summaries
    }
    return metadata


class JsonlRunLogger:
    """Append-only JSONL run logger and bounded reader."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """Return on-disk JSONL path."""
        return self._path

    def append(self, event: RunEvent) -> None:
        """Append an event as one JSON object per line."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(asdict(event), sort_keys=True))
                handle.write("\n")
        except OSError as error:
            raise RunLogError(f"Can't write run log '{self._path}': {error.strerror}") from error

    def read(self, since: str | None = None, limit: int = 50) -> list[dict[str, object]]:
        """Read recent events, optionally filtered by timestamp lower bound."""
        if limit < 1:
            return []
        entries: list[dict[str, object]] = []
        if not self._path.exists():
            return entries
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    record = json.loads(stripped)
                except json.JSONDecodeError:
                    continue
                if since is not None:
                    ts = record.get("timestamp")
                    if not isinstance(ts, str) or ts < since:
                        continue
                entries.append(record)
        if len(entries) <= limit:
            return entries
        return entries[-limit:]
