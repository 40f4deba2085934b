from __future__ import annotations

import json
from pathlib import Path

import pytest

from repo_fixtures import file_node, rep
from rep_stats.errors import RunLogError
from rep_stats.logging import JsonlRunLogger, RunEvent, run_metadata, utc_timestamp
from rep_stats.stats import ScanSummary, TallySet, summarize


def _event(run_id: str, timestamp: str) -> RunEvent:
    return RunEvent(
        timestamp=timestamp,
        run_id=run_id,
        store="/srv/repo",
        store_format="fsfs",
        ok=True,
        error_code=None,
        metadata={},
    )


def test_run_log_writes_jsonl_schema(tmp_path: Path) -> None:
    logger = JsonlRunLogger(tmp_path / "logs" / "runs.jsonl")
    logger.append(_event("run-1", utc_timestamp()))

    lines = logger.path.read_text(encoding="utf-8").splitlines()
    event = json.loads(lines[-1])

    assert set(event.keys()) == {
        "error_code",
        "metadata",
        "ok",
        "run_id",
        "store",
        "store_format",
        "timestamp",
    }
    assert event["timestamp"].endswith("Z")


def test_run_log_read_filters_and_limits(tmp_path: Path) -> None:
    logger = JsonlRunLogger(tmp_path / "runs.jsonl")
    logger.append(_event("run-1", "2026-01-01T00:00:00.000Z"))
    logger.append(_event("run-2", "2026-02-01T00:00:00.000Z"))
    logger.append(_event("run-3", "2026-03-01T00:00:00.000Z"))
    with logger.path.open("a", encoding="utf-8") as handle:
        handle.write("{not-json\n")

    recent = logger.read(since="2026-01-15T00:00:00.000Z")
    last = logger.read(limit=1)

    assert [entry["run_id"] for entry in recent] == ["run-2", "run-3"]
    assert [entry["run_id"] for entry in last] == ["run-3"]
    assert logger.read(limit=0) == []


def test_run_metadata_includes_scan_and_tally_summaries() -> None:
    tallies = TallySet.for_categories(data=True, prop=False)
    tallies.observe(file_node(data=rep(1, 0, "a")))
    tallies.observe(file_node(data=rep(1, 0, "a")))
    scan = ScanSummary(
        youngest_revision=2,
        revisions_scanned=3,
        paths_considered=2,
        paths_skipped_deleted=0,
        node_records_fetched=2,
    )

    metadata = run_metadata(tallies.requested(), scan, summarize(tallies))

    assert metadata["categories"] == ["data"]
    assert metadata["failed_categories"] == []
    assert metadata["scan"] == {
        "youngest_revision": 2,
        "revisions_scanned": 3,
        "paths_considered": 2,
        "paths_skipped_deleted": 0,
        "node_records_fetched": 2,
    }
    assert metadata["tallies"] == {
        "data": {
            "distinct_representations": 1,
            "total_references": 2,
            "shared_representations": 1,
            "distinct_checksums": 1,
        }
    }


def test_run_log_write_failure_raises_run_log_error(tmp_path: Path) -> None:
    target = tmp_path / "runs.jsonl"
    target.mkdir()
    logger = JsonlRunLogger(target)

    with pytest.raises(RunLogError, match="Can't write run log") as excinfo:
        logger.append(_event("run-1", utc_timestamp()))

    assert excinfo.value.code == "RUN_LOG"
