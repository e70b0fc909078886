"""Worker pool coordinating discovery, test runs and shutdown."""

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from elm_compat_test.config import CompilerConfig, EngineConfig, RunnerConfig
from elm_compat_test.runner import DifferentialRunner, TargetChecker
from elm_compat_test.state import EngineState
from elm_compat_test.triage import classify
from elm_compat_test.walker import walk

log = logging.getLogger(__name__)


class EngineError(Exception):
    """Raised when a walker or worker failed, chained to the underlying error."""

    def __init__(self, component: str, error: BaseException) -> None:
        super().__init__(f"{component} failed: {error}")
        self.component = component
        self.__cause__ = error


def wait_until_drained(state: EngineState, poll_interval: float = 0.1) -> None:
    """Block until every discovered target is done, or shutdown is requested."""
    while not state.shutdown.wait(poll_interval):
        if state.drained:
            state.shutdown.request("all work drained")
            return


@dataclass(frozen=True, kw_only=True)
class Engine:
    """Runs the walker and a fixed pool of workers around a foreground loop.

    The foreground (the dashboard, or a drain wait when headless) runs on
    the calling thread. When it returns, shutdown is requested and the
    walker and the workers are joined in that order.
    """

    root: Path
    concurrency: int
    runner_config: RunnerConfig
    runner: TargetChecker
    state: EngineState
    notify: Callable[[str], None] = field(default=print, repr=False)

    @classmethod
    def create(
        cls,
        config: EngineConfig,
        compilers: CompilerConfig,
        runner_config: RunnerConfig,
    ) -> "Engine":
        return cls(
            root=config.root,
            concurrency=config.concurrency,
            runner_config=runner_config,
            runner=DifferentialRunner(compilers=compilers, config=runner_config),
            state=EngineState.create(config.poll_interval),
        )

    def run(self, foreground: Callable[[EngineState], None]) -> None:
        """Run until the foreground returns, then shut everything down.

        KeyboardInterrupt raised in the foreground propagates unchanged once
        the pool is joined.

        Raises:
            EngineError: If the foreground, the walker or a worker failed

        """
        errors: list[EngineError] = []
        with ThreadPoolExecutor(
            max_workers=self.concurrency + 1, thread_name_prefix="elm-compat"
        ) as pool:
            walker = pool.submit(self._guarded, "walker", self.walk)
            workers = [
                pool.submit(self._guarded, f"worker-{i}", self.work, i)
                for i in range(self.concurrency)
            ]
            try:
                foreground(self.state)
            except Exception as e:
                self.state.shutdown.request(f"foreground failed: {e}")
                log.error("foreground failed", exc_info=e)
                errors.append(EngineError("foreground", e))
            finally:
                self.state.shutdown.request("foreground exited")
                errors.extend(self._join(walker, workers))

        if errors:
            raise errors[0]

    def walk(self) -> int:
        state = self.state
        return walk(self.root, self.runner_config, state.queue, state.shutdown)

    def work(self, index: int) -> int:
        """Take targets off the queue until it is drained or shutdown is requested.

        Returns:
            Number of targets handled by this worker

        """
        state = self.state
        handled = 0
        while not state.shutdown.requested:
            target = state.queue.receive()
            if target is None:
                break
            try:
                with state.in_progress.track(target) as start:
                    results = self.runner.check(target)
                entry = state.record(target, time.monotonic() - start, results)
            finally:
                state.queue.task_done()
            handled += 1
            log.info(
                "Completed %s in %.0fs: %s",
                target,
                entry.elapsed,
                classify(results).label,
            )
        log.debug("Worker %d exiting after %d target(s)", index, handled)
        return handled

    def _guarded[R](self, component: str, fn: Callable[..., R], *args: object) -> R:
        try:
            return fn(*args)
        except BaseException as e:
            self.state.shutdown.request(f"{component} failed: {e}")
            log.error("%s failed", component, exc_info=e)
            raise

    def _join(
        self, walker: "Future[int]", workers: Sequence["Future[int]"]
    ) -> Sequence[EngineError]:
        errors: list[EngineError] = []

        self.notify("Waiting for directory walker to exit.")
        log.info("Waiting for directory walker to exit")
        self._collect("walker", walker, errors)

        self.notify("Waiting for testers to exit.")
        log.info("Waiting for %d worker(s) to exit", len(workers))
        for i, worker in enumerate(workers):
            self._collect(f"worker-{i}", worker, errors)

        return errors

    @staticmethod
    def _collect(
        component: str, future: "Future[int]", errors: list[EngineError]
    ) -> None:
        if (error := future.exception()) is not None:
            errors.append(EngineError(component, error))
