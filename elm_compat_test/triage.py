"""Rank completed results so the most actionable anomalies come first."""

from collections.abc import Sequence
from enum import IntEnum

from elm_compat_test.models.result import CompletedEntry, RunResults


class Priority(IntEnum):
    """Triage class of a result. Lower values are shown first."""

    ELM_VS_STABLE = 0
    ELM_VS_NEXT = 1
    STABLE_WIRE = 2
    NEXT_WIRE = 3
    ELM_TIMED_OUT = 4
    ELM_FAILED = 5
    NOMINAL = 6

    @property
    def label(self) -> str:
        return PRIORITY_LABELS[self]


PRIORITY_LABELS = {
    Priority.ELM_VS_STABLE: "elm differs from lamdera stable",
    Priority.ELM_VS_NEXT: "elm differs from lamdera next",
    Priority.STABLE_WIRE: "lamdera stable wire mismatch",
    Priority.NEXT_WIRE: "lamdera next wire mismatch",
    Priority.ELM_TIMED_OUT: "elm timed out",
    Priority.ELM_FAILED: "elm failed",
    Priority.NOMINAL: "nominal",
}


def classify(results: RunResults) -> Priority:
    """Put a result set in its triage class.

    Differences between elm and lamdera rank above differences between a
    lamdera build with and without wire, which rank above anything elm does
    on its own. The lamdera-next checks never match V1 results because
    those outcomes are None.
    """
    if results.elm != results.lamdera_stable_no_wire:
        return Priority.ELM_VS_STABLE
    if results.lamdera_next_no_wire is not None and (
        results.elm != results.lamdera_next_no_wire
    ):
        return Priority.ELM_VS_NEXT
    if results.lamdera_stable_no_wire != results.lamdera_stable:
        return Priority.STABLE_WIRE
    if results.lamdera_next_no_wire != results.lamdera_next:
        return Priority.NEXT_WIRE
    if results.elm == "timeout":
        return Priority.ELM_TIMED_OUT
    if results.elm == "failure":
        return Priority.ELM_FAILED
    return Priority.NOMINAL


def rank(entries: Sequence[CompletedEntry]) -> Sequence[CompletedEntry]:
    """Stable sort by triage class, keeping the given order within a class."""
    return sorted(entries, key=lambda entry: classify(entry.results))


def display_order(entries: Sequence[CompletedEntry]) -> Sequence[CompletedEntry]:
    """Newest first, then grouped by triage class."""
    return rank(entries[::-1])
