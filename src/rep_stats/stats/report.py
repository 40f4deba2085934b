"""Report lines and summaries for completed tallies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

from rep_stats.cancel import CancellationToken
from rep_stats.stats.tally import RepValue, Tally, TallySet


@dataclass(slots=True, frozen=True)
class CategorySummary:
    """Sharing statistics for one tally."""

    category: str
    distinct_representations: int
    total_references: int
    shared_representations: int
    distinct_checksums: int


def format_report_line(category: str, value: RepValue) -> str:
    """Return ``<category> <refcount> <sha1-hex>`` with a trailing newline."""
    return f"{category} {value.refcount} {value.checksum.to_display()}\n"


def print_tally(tally: Tally, out_stream: TextIO, cancel: CancellationToken) -> int:
    """Write one line per representation; return the number of lines written."""
    written = 0
    for _key, value in tally.items():
        cancel.check()
        out_stream.write(format_report_line(tally.category, value))
        written += 1
    return written


def print_report(tallies: TallySet, out_stream: TextIO, cancel: CancellationToken) -> int:
    """Write every reportable tally in prop, data, both order."""
    return sum(print_tally(tally, out_stream, cancel) for tally in tallies.reportable())


def summarize_tally(tally: Tally) -> CategorySummary:
    """Compute sharing statistics for a tally."""
    values = [value for _key, value in tally.items()]
    return CategorySummary(
        category=tally.category,
        distinct_representations=len(values),
        total_references=sum(value.refcount for value in values),
        shared_representations=sum(1 for value in values if value.refcount > 1),
        distinct_checksums=len({value.checksum for value in values}),
    )


def summarize(tallies: TallySet) -> list[CategorySummary]:
    """Compute statistics for every reportable tally in report order."""
    return [summarize_tally(tally) for tally in tallies.reportable()]
