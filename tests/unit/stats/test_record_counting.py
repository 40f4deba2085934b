from __future__ import annotations

import pytest

from repo_fixtures import file_node, rep
from rep_stats.errors import CorruptionAssertion, StoreInconsistencyError
from rep_stats.stats import MismatchPolicy, RepKey, Tally, TallySet, record


def test_record_inserts_then_increments_by_physical_key() -> None:
    tally = Tally("data")

    record(tally, rep(1, 10, "x"))
    record(tally, rep(1, 10, "x"))
    record(tally, rep(1, 10, "x"))

    assert len(tally) == 1
    value = tally.entries[RepKey(revision=1, offset=10)]
    assert value.refcount == 3


def test_record_keeps_identical_content_at_distinct_keys_separate() -> None:
    tally = Tally("data")

    record(tally, rep(5, 0, "same"))
    record(tally, rep(5, 40, "same"))

    assert [value.refcount for _key, value in tally.items()] == [1, 1]


def test_record_is_noop_for_missing_tally_descriptor_or_checksum() -> None:
    tally = Tally("data")

    record(None, rep(1, 0, "x"))
    record(tally, None)
    record(tally, rep(1, 0, None))

    assert len(tally) == 0


def test_rep_key_uses_value_equality() -> None:
    assert RepKey(3, 7) == RepKey(revision=3, offset=7)
    assert {RepKey(3, 7): "a"}[RepKey(3, 7)] == "a"
    assert str(RepKey(3, 7)) == "r3/7"


def test_checksum_mismatch_aborts_under_default_policy() -> None:
    tally = Tally("data")
    record(tally, rep(2, 0, "original"))

    with pytest.raises(CorruptionAssertion, match="r2/0"):
        record(tally, rep(2, 0, "different"))


def test_checksum_mismatch_raises_inconsistency_under_report_policy() -> None:
    tally = Tally("prop", MismatchPolicy.REPORT)
    record(tally, rep(2, 0, "original"))

    with pytest.raises(StoreInconsistencyError) as excinfo:
        record(tally, rep(2, 0, "different"))

    assert excinfo.value.code == "STORE_INCONSISTENCY"
    assert excinfo.value.category == "prop"
    assert excinfo.value.key == RepKey(2, 0)


def test_for_categories_allocates_combined_tally_only_with_data_and_prop() -> None:
    data_only = TallySet.for_categories(data=True, prop=False)
    both = TallySet.for_categories(data=True, prop=True)

    assert data_only.requested() == ("data",)
    assert data_only.both is None
    assert both.requested() == ("prop", "data", "both")


def test_combined_tally_counts_data_and_prop_observations() -> None:
    tallies = TallySet.for_categories(data=True, prop=True)
    shared = rep(1, 0, "shared")

    tallies.observe(file_node(data=shared, props=rep(1, 50, "props")))
    tallies.observe(file_node(data=rep(2, 0, "other"), props=shared))

    assert tallies.data is not None and tallies.prop is not None and tallies.both is not None
    key = RepKey(1, 0)
    data_count = tallies.data.entries[key].refcount
    prop_count = tallies.prop.entries[key].refcount
    assert tallies.both.entries[key].refcount == data_count + prop_count == 2
    assert len(tallies.both) == 3


def test_unrequested_category_is_never_populated() -> None:
    tallies = TallySet.for_categories(data=False, prop=True)

    tallies.observe(file_node(data=rep(1, 0, "d"), props=rep(1, 9, "p")))

    assert tallies.data is None
    assert tallies.both is None
    assert tallies.prop is not None and len(tallies.prop) == 1


def test_report_policy_fails_one_category_and_keeps_the_others() -> None:
    tallies = TallySet.for_categories(data=True, prop=True, policy=MismatchPolicy.REPORT)

    tallies.observe(file_node(data=rep(1, 0, "a")))
    tallies.observe(file_node(props=rep(1, 0, "b")))
    tallies.observe(file_node(data=rep(1, 0, "a")))

    assert set(tallies.failures) == {"both"}
    assert [tally.category for tally in tallies.reportable()] == ["prop", "data"]
    assert tallies.data is not None
    assert tallies.data.entries[RepKey(1, 0)].refcount == 2
