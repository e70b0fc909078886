"""CLI entry point for the elm/lamdera differential test harness."""

import argparse
import logging
import sys
from collections import Counter
from collections.abc import Callable, Sequence
from functools import partial
from pathlib import Path

from elm_compat_test.config import (
    ConfigError,
    EngineConfig,
    build_engine_config,
    compilers_from_env,
    runner_from_env,
)
from elm_compat_test.dashboard import Dashboard
from elm_compat_test.export import export_csv
from elm_compat_test.models.result import CompletedEntry
from elm_compat_test.orchestrator import Engine, EngineError, wait_until_drained
from elm_compat_test.state import EngineState
from elm_compat_test.triage import Priority, classify

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_ENGINE_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def log_results_summary(
    log: logging.Logger, entries: Sequence[CompletedEntry]
) -> None:
    """Log how many completed targets fall in each triage class."""
    counts = Counter(classify(entry.results) for entry in entries)
    log.info("=" * 80)
    log.info("Results Summary (%d target(s)):", len(entries))
    log.info("=" * 80)
    for priority in Priority:
        log.info("%6d  %s", counts[priority], priority.label)


def run(
    config: EngineConfig,
    *,
    timeout: float | None = None,
    headless: bool = False,
) -> int:
    """Run the harness and return an exit code."""
    log = logging.getLogger("elm_compat_test")

    compilers = compilers_from_env()
    runner_config = runner_from_env(timeout=timeout)
    log.info(
        "Testing packages under %s with %d worker(s)", config.root, config.concurrency
    )
    log.info("Compilers: %s", compilers.model_dump())

    engine = Engine.create(config, compilers, runner_config)
    foreground: Callable[[EngineState], None]
    if headless:
        foreground = partial(wait_until_drained, poll_interval=config.poll_interval)
    else:
        foreground = Dashboard(
            export_path=config.export_path, frame_period=config.frame_period
        )

    try:
        engine.run(foreground)
    except EngineError as e:
        log.error("Stopped after a fatal error in %s", e.component, exc_info=e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ENGINE_ERROR

    entries = engine.state.completed.snapshot()
    if headless:
        try:
            export_csv(entries, config.export_path)
        except OSError as e:
            log.error("Export to %s failed", config.export_path, exc_info=e)
            print(f"Error: export failed: {e}", file=sys.stderr)
            return EXIT_ENGINE_ERROR
    log_results_summary(log, entries)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run package test suites under elm and lamdera, report differences"
    )
    parser.add_argument(
        "--root",
        type=Path,
        help="Directory of <author>/<package>/<version> checkouts (default: repos)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of packages tested at the same time (default: 10)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds before a single test run is killed (default: 120)",
    )
    parser.add_argument(
        "--export-path",
        type=Path,
        help="CSV file written by the export key (default: export.csv)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=Path("elm-compat-test.log"),
        help="Log destination while the dashboard owns the terminal",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Minimum level of logged messages",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run without the dashboard until every package is tested, then export",
    )

    args = parser.parse_args(argv)

    if args.headless:
        logging.basicConfig(level=args.log_level, format=LOG_FORMAT, stream=sys.stderr)
    else:
        logging.basicConfig(
            level=args.log_level, format=LOG_FORMAT, filename=args.log_file
        )

    try:
        config = build_engine_config(
            root=args.root,
            concurrency=args.concurrency,
            export_path=args.export_path,
        )
        exit_code = run(config, timeout=args.timeout, headless=args.headless)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        exit_code = EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        exit_code = EXIT_INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
