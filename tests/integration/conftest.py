"""Fixtures for integration tests."""

import json
import stat
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

import pytest

from elm_compat_test.config import RunnerConfig

# Stands in for elm-test / elm-test-rs. The behaviour for a compiler is read
# from "<compiler>.behaviour" in the package directory (default: pass), and
# every invocation is appended to "invocations.log".
FAKE_RUNNER = """\
#!{python}
import os
import sys
import time
from pathlib import Path

compiler = sys.argv[sys.argv.index("--compiler") + 1]
with open("invocations.log", "a") as log:
    log.write(" ".join(sys.argv[1:]) + "\\n")

behaviour_file = Path(compiler + ".behaviour")
behaviour = behaviour_file.read_text().strip() if behaviour_file.exists() else "pass"

if behaviour == "hang":
    Path(compiler + ".pid").write_text(str(os.getpid()))
    time.sleep(60)
if behaviour == "dirty-cache":
    if Path("elm-stuff").exists():
        sys.exit(3)
    Path("elm-stuff").mkdir()
    Path("elm-stuff", "artifact.dat").write_text("stale")
    sys.exit(0)
sys.exit(0 if behaviour == "pass" else 1)
"""


def manifest(version: str) -> str:
    """Build an elm.json depending on the given elm-explorations/test version."""
    test_version = "1.2.2" if version == "1" else "2.1.0"
    return json.dumps(
        {
            "type": "package",
            "name": "author/package",
            "dependencies": {"elm/core": "1.0.0 <= v < 2.0.0"},
            "test-dependencies": {"elm-explorations/test": test_version},
        },
        indent=4,
    )


class CreateTargetFn(Protocol):
    """Protocol for package checkout creation function."""

    def __call__(
        self,
        name: str,
        *,
        version: str = "2",
        with_manifest: bool = True,
        with_tests: bool = True,
        behaviours: Mapping[str, str] | None = None,
    ) -> Path:
        """Create ``<root>/<name>`` and return its path."""


@pytest.fixture
def corpus_root(tmp_path: Path) -> Path:
    """Create an empty corpus directory."""
    root = tmp_path / "repos"
    root.mkdir()
    return root


@pytest.fixture
def create_target(corpus_root: Path) -> CreateTargetFn:
    """Return a function to create package checkouts in the corpus."""

    def _create(
        name: str,
        *,
        version: str = "2",
        with_manifest: bool = True,
        with_tests: bool = True,
        behaviours: Mapping[str, str] | None = None,
    ) -> Path:
        target = corpus_root / name
        target.mkdir(parents=True)
        if with_manifest:
            (target / "elm.json").write_text(manifest(version))
        if with_tests:
            tests_dir = target / "tests"
            tests_dir.mkdir()
            (tests_dir / "Example.elm").write_text("module Example exposing (..)")
        for compiler, behaviour in (behaviours or {}).items():
            (target / f"{compiler}.behaviour").write_text(behaviour)
        return target

    return _create


@pytest.fixture
def fake_runner(tmp_path: Path) -> Path:
    """Write an executable fake test runner."""
    script = tmp_path / "fake-elm-test"
    script.write_text(FAKE_RUNNER.format(python=sys.executable))
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


@pytest.fixture
def runner_config(fake_runner: Path) -> RunnerConfig:
    """Runner configuration using the fake runner with a short timeout."""
    return RunnerConfig(
        v1_command=(str(fake_runner),),
        v2_command=(str(fake_runner), "--workers", "4"),
        timeout=1.0,
    )
