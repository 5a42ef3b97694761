# src/rainier/workload/scheduler.py
"""Iteration scheduling across a worker pool."""

from __future__ import annotations

import concurrent.futures
import random
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence
import logging

from ..core.errors import RainierError, RunCancelled
from .arguments import ArgumentResolver
from .chain import ChainExecutor, StatementTemplate

logger = logging.getLogger(__name__)


class IterationStatus(Enum):
    """Final state of one iteration."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class IterationPlan:
    """Everything an iteration draws from its seeded generator."""
    index: int
    seed: int
    repeat_count: int
    arguments: Dict[str, str]


@dataclass
class IterationOutcome:
    """Result of running one iteration."""
    plan: IterationPlan
    status: IterationStatus
    repeats_completed: int = 0
    statements_executed: int = 0
    error: Optional[str] = None

    @property
    def index(self) -> int:
        return self.plan.index


@dataclass
class ScheduleResult:
    """Outcome of a whole run, iterations sorted by index."""
    outcomes: List[IterationOutcome] = field(default_factory=list)

    @property
    def total_chains(self) -> int:
        """Number of full chain runs, the sum of completed repeats."""
        return sum(o.repeats_completed for o in self.outcomes)

    @property
    def statements_executed(self) -> int:
        return sum(o.statements_executed for o in self.outcomes)

    def count(self, status: IterationStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def iterations_completed(self) -> int:
        return self.count(IterationStatus.COMPLETED)

    @property
    def iterations_failed(self) -> int:
        return self.count(IterationStatus.FAILED)

    @property
    def iterations_cancelled(self) -> int:
        return self.count(IterationStatus.CANCELLED)

    @property
    def errors(self) -> List[str]:
        return [f"iteration {o.index}: {o.error}" for o in self.outcomes if o.error]


class IterationScheduler:
    """Runs a fixed number of seeded iterations of a chain.

    Iteration ``i`` seeds its own ``random.Random`` with ``seed_offset + i``.
    The arguments and the repeat count it draws are therefore the same for
    every run and every thread count; only the interleaving of statements at
    the store changes.
    """

    def __init__(self,
                 executor: ChainExecutor,
                 chain: Sequence[StatementTemplate],
                 static_args: Optional[Mapping[str, str]] = None,
                 list_sources: Optional[Mapping[str, List[str]]] = None,
                 min_repeat: int = 1,
                 max_repeat: int = 1,
                 n_threads: int = 1,
                 seed_offset: int = 0,
                 strict: bool = False):
        if min_repeat < 1 or max_repeat < min_repeat:
            raise ValueError(f"Invalid repeat bounds: [{min_repeat}, {max_repeat}]")
        if n_threads < 1:
            raise ValueError(f"n_threads must be positive: {n_threads}")

        self.executor = executor
        self.chain = tuple(chain)
        self.static_args = dict(static_args or {})
        self.list_sources = {k: list(v) for k, v in (list_sources or {}).items()}
        self.min_repeat = min_repeat
        self.max_repeat = max_repeat
        self.n_threads = n_threads
        self.seed_offset = seed_offset
        self.strict = strict
        self.resolver = ArgumentResolver(executor.codec)
        self._fatal: Optional[BaseException] = None
        self._fatal_lock = threading.Lock()

    @property
    def stop_event(self) -> threading.Event:
        return self.executor.stop_event

    def plan_iteration(self, index: int) -> IterationPlan:
        """Draw the arguments, then the repeat count, for iteration ``index``."""
        seed = self.seed_offset + index
        rng = random.Random(seed)
        arguments = self.resolver.resolve(self.static_args, self.list_sources, rng)
        repeat_count = self.min_repeat + rng.randrange(self.max_repeat - self.min_repeat + 1)
        return IterationPlan(index=index, seed=seed, repeat_count=repeat_count, arguments=arguments)

    def run_iteration(self, index: int) -> IterationOutcome:
        """Run one iteration; errors are recorded, not raised."""
        plan = self.plan_iteration(index)
        outcome = IterationOutcome(plan=plan, status=IterationStatus.COMPLETED)

        if self.stop_event.is_set():
            outcome.status = IterationStatus.CANCELLED
            return outcome

        try:
            for repeat in range(plan.repeat_count):
                logger.debug(f"[{index:5d}] Iter {index} repeat {repeat}")
                outcome.statements_executed += self.executor.run_chain(
                    self.chain, plan.arguments, None, iteration=index
                )
                outcome.repeats_completed += 1
        except RunCancelled as e:
            outcome.status = IterationStatus.CANCELLED
            outcome.error = str(e)
        except RainierError as e:
            outcome.status = IterationStatus.FAILED
            outcome.error = str(e)
            logger.error(f"[{index:5d}] Iteration failed: {e}")
            if self.strict:
                self._abort(e)
        except Exception as e:
            outcome.status = IterationStatus.FAILED
            outcome.error = f"{type(e).__name__}: {e}"
            logger.exception(f"[{index:5d}] Iteration failed with an unexpected error")
            if self.strict:
                self._abort(e)

        return outcome

    def _abort(self, error: BaseException) -> None:
        with self._fatal_lock:
            if self._fatal is None:
                self._fatal = error
                logger.error("Strict mode: stopping the run after the first failed iteration")
        self.stop_event.set()

    def stop(self) -> None:
        """Ask running iterations to stop and skip the ones not started."""
        self.stop_event.set()

    def schedule(self, n_iterations: int, duration_seconds: Optional[float] = None) -> ScheduleResult:
        """Run ``n_iterations`` iterations and wait for all of them.

        Raises the first iteration error in strict mode, after the pool
        has drained.
        """
        if n_iterations < 1:
            raise ValueError(f"n_iterations must be positive: {n_iterations}")

        self._fatal = None
        timer = None
        if duration_seconds:
            timer = threading.Timer(duration_seconds, self._on_timeout)
            timer.daemon = True
            timer.start()

        try:
            if self.n_threads == 1:
                outcomes = self._run_sequential(n_iterations)
            else:
                outcomes = self._run_pooled(n_iterations)
        finally:
            if timer is not None:
                timer.cancel()

        result = ScheduleResult(outcomes=sorted(outcomes, key=lambda o: o.index))
        logger.info(f"Completed {result.iterations_completed} of {n_iterations} iterations, "
                    f"for a total of {result.total_chains} total chains")

        if self._fatal is not None:
            raise self._fatal
        return result

    def _on_timeout(self) -> None:
        logger.warning("Run duration reached, stopping")
        self.stop_event.set()

    def _run_sequential(self, n_iterations: int) -> List[IterationOutcome]:
        outcomes = []
        for index in range(n_iterations):
            outcomes.append(self.run_iteration(index))
        return outcomes

    def _run_pooled(self, n_iterations: int) -> List[IterationOutcome]:
        logger.info(f"Scheduling {n_iterations} iterations on {self.n_threads} threads")
        outcomes = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.n_threads,
                                                   thread_name_prefix="rainier") as pool:
            futures = {pool.submit(self.run_iteration, index): index for index in range(n_iterations)}
            try:
                for future in concurrent.futures.as_completed(futures):
                    outcomes.append(future.result())
            except KeyboardInterrupt:
                logger.warning("Interrupted, waiting for running iterations to stop")
                self.stop()
                raise
        return outcomes
