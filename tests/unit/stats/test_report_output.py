from __future__ import annotations

import io

import pytest

from repo_fixtures import file_node, rep, sha1_hex
from rep_stats.backends import Checksum
from rep_stats.cancel import CancellationToken
from rep_stats.errors import CancelledError
from rep_stats.stats import RepValue, TallySet, format_report_line, print_report, summarize


class CancelAfter(CancellationToken):
    """Token that trips itself after a fixed number of checks."""

    def __init__(self, checks: int) -> None:
        super().__init__()
        self._remaining = checks

    def check(self) -> None:
        if self._remaining == 0:
            self.cancel()
        self._remaining -= 1
        super().check()


def _populated() -> TallySet:
    tallies = TallySet.for_categories(data=True, prop=True)
    tallies.observe(file_node(data=rep(1, 0, "d1"), props=rep(1, 30, "p1")))
    tallies.observe(file_node(data=rep(1, 0, "d1")))
    tallies.observe(file_node(data=rep(2, 0, "d2")))
    return tallies


def test_report_line_uses_category_refcount_and_hex_digest() -> None:
    value = RepValue(checksum=Checksum.sha1_from_hex(sha1_hex("abc")), refcount=4)

    assert format_report_line("both", value) == f"both 4 {sha1_hex('abc')}\n"


def test_report_prints_prop_then_data_then_both() -> None:
    out = io.StringIO()

    written = print_report(_populated(), out, CancellationToken())

    categories = [line.split(" ")[0] for line in out.getvalue().splitlines()]
    assert categories == ["prop", "data", "data", "both", "both", "both"]
    assert written == 6
    assert f"data 2 {sha1_hex('d1')}" in out.getvalue().splitlines()


def test_unrequested_category_is_not_printed() -> None:
    tallies = TallySet.for_categories(data=True, prop=False)
    tallies.observe(file_node(data=rep(1, 0, "d"), props=rep(1, 9, "p")))
    out = io.StringIO()

    print_report(tallies, out, CancellationToken())

    assert out.getvalue() == f"data 1 {sha1_hex('d')}\n"


def test_cancellation_during_printing_truncates_report() -> None:
    out = io.StringIO()

    with pytest.raises(CancelledError):
        print_report(_populated(), out, CancelAfter(checks=2))

    assert len(out.getvalue().splitlines()) == 2


def test_summarize_reports_sharing_per_category() -> None:
    summaries = {summary.category: summary for summary in summarize(_populated())}

    data = summaries["data"]
    assert data.distinct_representations == 2
    assert data.total_references == 3
    assert data.shared_representations == 1
    assert data.distinct_checksums == 2
    assert summaries["both"].total_references == 4
