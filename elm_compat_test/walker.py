"""Discover package checkouts that have a test suite."""

import logging
from collections.abc import Iterator, Sequence
from pathlib import Path

from elm_compat_test.config import RunnerConfig
from elm_compat_test.state import Shutdown, WorkQueue

log = logging.getLogger(__name__)


def read_dir(path: Path) -> Sequence[Path]:
    """List a directory's entries sorted by path.

    Raises:
        OSError: If the directory cannot be read

    """
    return sorted(path.iterdir())


def is_target(version_root: Path, config: RunnerConfig) -> bool:
    """Check if a version checkout has both a manifest and a tests directory."""
    return (version_root / config.manifest_name).exists() and (
        version_root / config.tests_dir_name
    ).exists()


def iter_targets(
    root: Path, config: RunnerConfig, shutdown: Shutdown
) -> Iterator[Path]:
    """Yield every ``<root>/<author>/<package>/<version>`` holding a test suite.

    Directories are visited in sorted order so repeated runs see targets in
    the same order. The walk stops early once shutdown is requested.
    """
    for author_root in read_dir(root):
        for package_root in read_dir(author_root):
            for version_root in read_dir(package_root):
                if shutdown.requested:
                    return
                if is_target(version_root, config):
                    yield version_root


def walk(
    root: Path, config: RunnerConfig, queue: WorkQueue[Path], shutdown: Shutdown
) -> int:
    """Feed discovered targets to the work queue, then close it.

    Returns:
        Number of targets sent

    """
    sent = 0
    try:
        for target in iter_targets(root, config, shutdown):
            log.debug("Discovered %s", target)
            queue.send(target)
            sent += 1
    finally:
        queue.close()
    log.info("Directory walk finished: %d target(s)", sent)
    return sent
