"""Export completed results to CSV."""

import csv
import logging
from collections.abc import Sequence
from pathlib import Path

from elm_compat_test.models.result import OUTCOME_SYMBOLS, CompletedEntry

log = logging.getLogger(__name__)

HEADER = (
    "Path",
    "Elm-test version",
    "Elm",
    "Lamdera stable no wire",
    "Lamdera stable",
    "Lamdera next no wire",
    "Lamdera next",
)


def format_row(entry: CompletedEntry) -> Sequence[str]:
    """Format one entry as a CSV row, leaving variants that did not run empty."""
    results = entry.results
    return [
        str(entry.path),
        str(results.version),
        *(
            "" if outcome is None else OUTCOME_SYMBOLS[outcome]
            for outcome in results.outcomes
        ),
    ]


def export_csv(entries: Sequence[CompletedEntry], path: Path) -> int:
    """Write every entry that did not pass unanimously, in storage order.

    Returns:
        Number of rows written, not counting the header

    """
    written = 0
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(HEADER)
        for entry in entries:
            if entry.results.all_passed:
                continue
            writer.writerow(format_row(entry))
            written += 1

    log.info("Exported %d of %d result(s) to %s", written, len(entries), path)
    return written
