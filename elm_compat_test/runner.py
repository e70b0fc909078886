"""Run a package's test suite under every compiler variant."""

import logging
import os
import shutil
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from elm_compat_test.config import CompilerConfig, RunnerConfig
from elm_compat_test.models.result import (
    ElmTestVersion,
    RunOutcome,
    RunResults,
    finished,
)

log = logging.getLogger(__name__)

V1_MARKER = '"elm-explorations/test": "1'

VARIANTS: Mapping[ElmTestVersion, Sequence[str]] = {
    ElmTestVersion.V1: ("elm", "lamdera_stable_no_wire", "lamdera_stable"),
    ElmTestVersion.V2: (
        "elm",
        "lamdera_stable_no_wire",
        "lamdera_stable",
        "lamdera_next_no_wire",
        "lamdera_next",
    ),
}


def detect_version(manifest: str) -> ElmTestVersion:
    """Detect which elm-explorations/test major version a manifest depends on."""
    return ElmTestVersion.V1 if V1_MARKER in manifest else ElmTestVersion.V2


class TargetChecker(Protocol):
    """Produces the run results of one target."""

    def check(self, target: Path) -> RunResults:
        """Run the target under every required compiler variant."""


@dataclass(frozen=True, kw_only=True)
class DifferentialRunner:
    """Runs one target's tests with each compiler and collects the outcomes."""

    compilers: CompilerConfig
    config: RunnerConfig

    def check(self, target: Path) -> RunResults:
        """Run every required variant against ``target``.

        All variants always run, even once outcomes diverge.

        Raises:
            OSError: If the manifest cannot be read or a runner cannot be
                started, killed or reaped

        """
        manifest = (target / self.config.manifest_name).read_text(encoding="utf-8")
        version = detect_version(manifest)

        outcomes: dict[str, RunOutcome] = {}
        for variant in VARIANTS[version]:
            outcomes[variant] = self.run_variant(target, version, variant)

        return RunResults(version=version, **outcomes)

    def command_for(self, version: ElmTestVersion, variant: str) -> Sequence[str]:
        base = (
            self.config.v1_command
            if version is ElmTestVersion.V1
            else self.config.v2_command
        )
        return [*base, "--compiler", getattr(self.compilers, variant)]

    def run_variant(
        self, target: Path, version: ElmTestVersion, variant: str
    ) -> RunOutcome:
        """Run the test suite once, killing the runner if it exceeds the timeout."""
        self.clear_cache(target)
        command = self.command_for(version, variant)
        log.debug("Running %s in %s: %s", variant, target, " ".join(command))

        process = subprocess.Popen(
            command,
            cwd=target,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        try:
            returncode = process.wait(timeout=self.config.timeout)
        except subprocess.TimeoutExpired:
            kill_process_group(process)
            log.warning(
                "%s timed out after %.0fs in %s", variant, self.config.timeout, target
            )
            return "timeout"

        outcome = finished(returncode == 0)
        log.debug("%s finished in %s: %s", variant, target, outcome)
        return outcome

    def clear_cache(self, target: Path) -> None:
        """Remove build artifacts left by a previous variant."""
        cache = target / self.config.cache_dir_name
        if cache.exists():
            shutil.rmtree(cache)


def kill_process_group(process: subprocess.Popen[bytes]) -> None:
    """Kill a runner started in its own session, then reap it.

    Runners such as npx start the actual test process as a child, so the
    whole process group is killed.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    process.wait()
