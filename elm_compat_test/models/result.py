"""Models for differential test results."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

RunOutcome = Literal["success", "failure", "timeout"]

OUTCOME_SYMBOLS: Mapping[RunOutcome, str] = {
    "success": "✅",
    "failure": "❌",
    "timeout": "⏰",
}


def finished(passed: bool) -> RunOutcome:
    """Outcome of a test runner that exited before the timeout."""
    return "success" if passed else "failure"


class ElmTestVersion(Enum):
    """Major version of elm-explorations/test declared by a package."""

    V1 = "1"
    V2 = "2"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, kw_only=True)
class RunResults:
    """Outcomes of one target under every compiler variant.

    V1 packages only run the stable variants, so ``lamdera_next_no_wire``
    and ``lamdera_next`` are None exactly when ``version`` is V1.
    """

    version: ElmTestVersion
    elm: RunOutcome
    lamdera_stable_no_wire: RunOutcome
    lamdera_stable: RunOutcome
    lamdera_next_no_wire: RunOutcome | None = None
    lamdera_next: RunOutcome | None = None

    def __post_init__(self) -> None:
        next_results = (self.lamdera_next_no_wire, self.lamdera_next)
        if self.version is ElmTestVersion.V1 and any(
            r is not None for r in next_results
        ):
            raise ValueError("V1 results cannot carry lamdera-next outcomes")
        if self.version is ElmTestVersion.V2 and any(r is None for r in next_results):
            raise ValueError("V2 results require lamdera-next outcomes")

    @property
    def outcomes(self) -> Sequence[RunOutcome | None]:
        """Outcomes in column order, None for variants that were not run."""
        return (
            self.elm,
            self.lamdera_stable_no_wire,
            self.lamdera_stable,
            self.lamdera_next_no_wire,
            self.lamdera_next,
        )

    @property
    def all_passed(self) -> bool:
        return all(o in (None, "success") for o in self.outcomes)


@dataclass(frozen=True, kw_only=True)
class CompletedEntry:
    """A target whose results have been fully collected."""

    path: Path
    elapsed: float
    results: RunResults
