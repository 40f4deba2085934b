"""Reference-count tallies keyed by physical representation location."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from rep_stats.backends.base import Checksum, NodeRecord, RepDescriptor
from rep_stats.errors import CorruptionAssertion, StoreInconsistencyError

CATEGORY_DATA = "data"
CATEGORY_PROP = "prop"
CATEGORY_BOTH = "both"
REPORT_ORDER = (CATEGORY_PROP, CATEGORY_DATA, CATEGORY_BOTH)


class MismatchPolicy(str, Enum):
    """What to do when one physical key is seen with two checksums."""

    ABORT = "abort"
    REPORT = "report"


@dataclass(slots=True, frozen=True)
class RepKey:
    """Physical location of one representation."""

    revision: int
    offset: int

    def __str__(self) -> str:
        return f"r{self.revision}/{self.offset}"


@dataclass(slots=True)
class RepValue:
    """Checksum and observed reference count of one representation."""

    checksum: Checksum
    refcount: int = 1


@dataclass(slots=True)
class Tally:
    """Append-only mapping from representation key to reference count."""

    category: str
    policy: MismatchPolicy = MismatchPolicy.ABORT
    entries: dict[RepKey, RepValue] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def items(self) -> Iterator[tuple[RepKey, RepValue]]:
        """Iterate entries in insertion order."""
        return iter(self.entries.items())


def record(tally: Tally | None, descriptor: RepDescriptor | None) -> None:
    """Count one reference to descriptor's representation in tally.

    Does nothing when the category is not tallied, the node has no such
    representation, or the representation carries no sha1. A key seen again
    with a different checksum raises CorruptionAssertion under the ``abort``
    policy and StoreInconsistencyError under ``report``.
    """
    if tally is None or descriptor is None or descriptor.sha1 is None:
        return
    key = RepKey(revision=descriptor.revision, offset=descriptor.offset)
    value = tally.entries.get(key)
    if value is None:
        tally.entries[key] = RepValue(checksum=descriptor.sha1)
        return
    if value.checksum != descriptor.sha1:
        stored = value.checksum.to_display()
        observed = descriptor.sha1.to_display()
        if tally.policy is MismatchPolicy.ABORT:
            raise CorruptionAssertion(
                f"Representation {key} in '{tally.category}' has checksum {observed}, "
                f"previously recorded as {stored}"
            )
        raise StoreInconsistencyError(
            category=tally.category, key=key, stored=stored, observed=observed
        )
    value.refcount += 1


@dataclass(slots=True)
class TallySet:
    """The data, prop and combined tallies of one run."""

    data: Tally | None = None
    prop: Tally | None = None
    both: Tally | None = None
    failures: dict[str, StoreInconsistencyError] = field(default_factory=dict)

    @classmethod
    def for_categories(
        cls, *, data: bool, prop: bool, policy: MismatchPolicy = MismatchPolicy.ABORT
    ) -> TallySet:
        """Allocate the tallies for the requested categories.

        The combined tally exists only when both data and prop are tallied.
        """
        return cls(
            data=Tally(CATEGORY_DATA, policy) if data else None,
            prop=Tally(CATEGORY_PROP, policy) if prop else None,
            both=Tally(CATEGORY_BOTH, policy) if data and prop else None,
        )

    def observe(self, node: NodeRecord) -> None:
        """Record a node's prop and data representations in every active tally."""
        self._record(self.prop, node.prop_rep)
        self._record(self.data, node.data_rep)
        self._record(self.both, node.prop_rep)
        self._record(self.both, node.data_rep)

    def get(self, category: str) -> Tally | None:
        """Return the tally for a category, or None when it is not tallied."""
        if category == CATEGORY_DATA:
            return self.data
        if category == CATEGORY_PROP:
            return self.prop
        if category == CATEGORY_BOTH:
            return self.both
        raise KeyError(category)

    def requested(self) -> tuple[str, ...]:
        """Return tallied category names in report order."""
        return tuple(name for name in REPORT_ORDER if self.get(name) is not None)

    def reportable(self) -> list[Tally]:
        """Return tallies that are requested and not failed, in report order."""
        output: list[Tally] = []
        for name in REPORT_ORDER:
            tally = self.get(name)
            if tally is not None and name not in self.failures:
                output.append(tally)
        return output

    def _record(self, tally: Tally | None, descriptor: RepDescriptor | None) -> None:
        if tally is None or tally.category in self.failures:
            return
        try:
            record(tally, descriptor)
        except StoreInconsistencyError as error:
            self.failures[tally.category] = error
