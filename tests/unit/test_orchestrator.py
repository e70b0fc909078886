"""Tests for the engine orchestrator."""

import threading
from functools import partial
from pathlib import Path
from unittest.mock import Mock

import pytest

from elm_compat_test.config import RunnerConfig
from elm_compat_test.orchestrator import Engine, EngineError, wait_until_drained
from elm_compat_test.runner import DifferentialRunner
from elm_compat_test.state import EngineState
from elm_compat_test.testing.factories import V2ResultsFactory


@pytest.fixture
def corpus(tmp_path: Path) -> list[Path]:
    """Create a corpus of five package checkouts."""
    targets = []
    for i in range(5):
        target = tmp_path / "repos" / "author" / f"pkg{i}" / "1.0.0"
        (target / "tests").mkdir(parents=True)
        (target / "elm.json").write_text("{}")
        targets.append(target)
    return targets


@pytest.fixture
def runner_mock() -> Mock:
    """Create a mock differential runner where every variant passes."""
    runner = Mock(spec=DifferentialRunner)
    runner.check.side_effect = lambda target: V2ResultsFactory.build()
    return runner


@pytest.fixture
def notify_mock() -> Mock:
    """Create a mock for user-facing shutdown messages."""
    return Mock()


@pytest.fixture
def engine(tmp_path: Path, runner_mock: Mock, notify_mock: Mock) -> Engine:
    """Create an engine with two workers over the temporary corpus."""
    return Engine(
        root=tmp_path / "repos",
        concurrency=2,
        runner_config=RunnerConfig(),
        runner=runner_mock,
        state=EngineState.create(poll_interval=0.01),
        notify=notify_mock,
    )


drain = partial(wait_until_drained, poll_interval=0.01)


def test_checks_every_target_exactly_once(
    engine: Engine, runner_mock: Mock, corpus: list[Path]
) -> None:
    """Each discovered target is checked and recorded once."""
    engine.run(drain)

    checked = [call.args[0] for call in runner_mock.check.call_args_list]
    assert sorted(checked) == corpus
    assert sorted(e.path for e in engine.state.completed.snapshot()) == corpus
    assert engine.state.in_progress.snapshot() == []
    assert engine.state.shutdown.reason == "all work drained"


def test_empty_corpus_drains_immediately(tmp_path: Path, engine: Engine) -> None:
    """A run without targets ends with nothing completed."""
    (tmp_path / "repos").mkdir()

    engine.run(drain)

    assert engine.state.completed.snapshot() == ()
    assert engine.state.shutdown.reason == "all work drained"


def test_runner_error_stops_the_engine(
    engine: Engine, runner_mock: Mock, corpus: list[Path]
) -> None:
    """A worker failure is raised as EngineError after shutdown and join."""
    error = OSError("cannot spawn test runner")
    runner_mock.check.side_effect = error

    with pytest.raises(EngineError) as exc_info:
        engine.run(drain)

    assert exc_info.value.component.startswith("worker-")
    assert exc_info.value.__cause__ is error
    assert engine.state.shutdown.reason is not None
    assert "failed" in engine.state.shutdown.reason
    assert engine.state.in_progress.snapshot() == []


def test_walker_error_stops_the_engine(engine: Engine) -> None:
    """A missing root fails the walker, which stops the run."""
    with pytest.raises(EngineError) as exc_info:
        engine.run(drain)

    assert exc_info.value.component == "walker"
    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


def test_foreground_exit_stops_workers(
    engine: Engine, runner_mock: Mock, corpus: list[Path]
) -> None:
    """Returning from the foreground requests shutdown and joins everything."""
    release = threading.Event()

    def slow_check(target: Path) -> object:
        release.wait(5)
        return V2ResultsFactory.build()

    runner_mock.check.side_effect = slow_check

    def foreground(state: EngineState) -> None:
        release.set()

    engine.run(foreground)

    assert engine.state.shutdown.reason == "foreground exited"
    assert len(engine.state.completed) <= 2
    assert engine.state.in_progress.snapshot() == []


def test_foreground_error_still_joins_workers(
    engine: Engine, corpus: list[Path]
) -> None:
    """An error in the foreground propagates after the pool is joined."""

    def foreground(state: EngineState) -> None:
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        engine.run(foreground)

    assert engine.state.shutdown.requested


def test_foreground_failure_raises_engine_error(
    engine: Engine, corpus: list[Path]
) -> None:
    """A foreground failure stops the run and is raised as EngineError."""
    error = PermissionError("export.csv is read-only")

    def foreground(state: EngineState) -> None:
        raise error

    with pytest.raises(EngineError) as exc_info:
        engine.run(foreground)

    assert exc_info.value.component == "foreground"
    assert exc_info.value.__cause__ is error
    assert engine.state.shutdown.reason == f"foreground failed: {error}"
    assert engine.state.in_progress.snapshot() == []


def test_notifies_join_order(
    engine: Engine, notify_mock: Mock, corpus: list[Path]
) -> None:
    """The walker is joined before the workers."""
    engine.run(drain)

    assert [call.args[0] for call in notify_mock.call_args_list] == [
        "Waiting for directory walker to exit.",
        "Waiting for testers to exit.",
    ]


class TestWaitUntilDrained:
    """Tests for wait_until_drained."""

    def test_requests_shutdown_once_drained(self) -> None:
        """Shutdown is requested when the closed queue has no unfinished work."""
        state = EngineState.create(poll_interval=0.01)
        state.queue.close()

        wait_until_drained(state, poll_interval=0.01)

        assert state.shutdown.reason == "all work drained"

    def test_returns_on_external_shutdown(self) -> None:
        """Another shutdown reason ends the wait without overriding it."""
        state = EngineState.create(poll_interval=0.01)
        state.shutdown.request("user quit")

        wait_until_drained(state, poll_interval=0.01)

        assert state.shutdown.reason == "user quit"
