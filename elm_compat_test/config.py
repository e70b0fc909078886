"""Configuration for compilers, test runners and the execution engine."""

import os
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import Field, ValidationError

from elm_compat_test.models.base import Model

COMPILER_ENV_VARS: Mapping[str, str] = {
    "elm": "ELM",
    "lamdera_stable_no_wire": "LAMDERA_STABLE_NO_WIRE",
    "lamdera_stable": "LAMDERA_STABLE",
    "lamdera_next_no_wire": "LAMDERA_NEXT_NO_WIRE",
    "lamdera_next": "LAMDERA_NEXT",
}

ELM_TEST_RS_ENV_VAR = "ELM_TEST_RS_PATH"


class ConfigError(Exception):
    """Raised when the configuration cannot be built."""


class CompilerConfig(Model):
    """Executable used for each compiler variant under comparison."""

    elm: str = "elm"
    lamdera_stable_no_wire: str = "lamdera-stable-no-wire"
    lamdera_stable: str = "lamdera-stable"
    lamdera_next_no_wire: str = "lamdera-next-no-wire"
    lamdera_next: str = "lamdera-next"


class RunnerConfig(Model):
    """How a single test suite is run."""

    v1_command: Sequence[str] = ("npx", "--yes", "elm-test@0.19.1-revision9")
    v2_command: Sequence[str] = ("npx", "--yes", "elm-test-rs", "--workers", "4")
    timeout: float = Field(default=120.0, gt=0)
    manifest_name: str = "elm.json"
    tests_dir_name: str = "tests"
    cache_dir_name: str = "elm-stuff"


class EngineConfig(Model):
    """Settings of the worker pool and the live view."""

    root: Path = Path("repos")
    concurrency: int = Field(default=10, ge=1)
    fps: int = Field(default=20, ge=1)
    poll_interval: float = Field(default=0.1, gt=0)
    export_path: Path = Path("export.csv")

    @property
    def frame_period(self) -> float:
        return 1.0 / self.fps


def _env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "")
    return value or None


def compilers_from_env(environ: Mapping[str, str] | None = None) -> CompilerConfig:
    """Build the compiler configuration, letting the environment override defaults."""
    environ = os.environ if environ is None else environ
    overrides = {
        field: value
        for field, env_var in COMPILER_ENV_VARS.items()
        if (value := _env(environ, env_var)) is not None
    }
    return CompilerConfig(**overrides)


def runner_from_env(
    environ: Mapping[str, str] | None = None, **overrides: object
) -> RunnerConfig:
    """Build the runner configuration.

    ``ELM_TEST_RS_PATH`` replaces the npx invocation of elm-test-rs used
    for elm-explorations/test 2.x packages.
    """
    environ = os.environ if environ is None else environ
    values: dict[str, object] = {}
    if (elm_test_rs := _env(environ, ELM_TEST_RS_ENV_VAR)) is not None:
        values["v2_command"] = (elm_test_rs, "--workers", "4")
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return RunnerConfig(**values)
    except ValidationError as e:
        raise ConfigError(str(e)) from e


def build_engine_config(**overrides: object) -> EngineConfig:
    """Build the engine configuration from non-None overrides."""
    try:
        return EngineConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        raise ConfigError(str(e)) from e
