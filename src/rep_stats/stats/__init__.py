"""Representation sharing scan and aggregation."""

from .report import (
    CategorySummary,
    format_report_line,
    print_report,
    print_tally,
    summarize,
    summarize_tally,
)
from .tally import (
    CATEGORY_BOTH,
    CATEGORY_DATA,
    CATEGORY_PROP,
    REPORT_ORDER,
    MismatchPolicy,
    RepKey,
    RepValue,
    Tally,
    TallySet,
    record,
)
from .walker import RevisionStats, ScanSummary, process_revision, walk_revisions

__all__ = [
    "CATEGORY_BOTH",
    "CATEGORY_DATA",
    "CATEGORY_PROP",
    "CategorySummary",
    "MismatchPolicy",
    "REPORT_ORDER",
    "RepKey",
    "RepValue",
    "RevisionStats",
    "ScanSummary",
    "Tally",
    "TallySet",
    "format_report_line",
    "print_report",
    "print_tally",
    "process_revision",
    "record",
    "summarize",
    "summarize_tally",
    "walk_revisions",
]
