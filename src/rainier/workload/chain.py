# src/rainier/workload/chain.py
"""Chain loading, preparation and recursive execution.

A chain is an ordered tuple of statements. The first statement is bound
with the iteration's arguments and executed; every row it returns is merged
into a copy of those arguments and drives one execution of the rest of the
chain. Traversal is depth-first within the calling thread.

The number of executions grows with the product of the fanouts: a chain of
``k`` statements whose steps each return ``f`` rows on average performs on
the order of ``f ** (k - 1)`` executions of its last statement per run.
Keep this in mind when choosing the rate and the iteration count.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Event
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging

from ..core.codec import RowValueCodec
from ..core.connection import PreparedTemplate, Row, StoreSession
from ..core.errors import (
    BindingError,
    MissingBindingError,
    PrepareError,
    RunCancelled,
    StoreExecutionError,
)
from ..core.metrics import ExecutionStats
from .arguments import ArgumentResolver
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)

ABORT_ITERATION = "abort_iteration"
SKIP_BRANCH = "skip_branch"

_NAMED_MARKER = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")
_QUOTED = re.compile(r"'(?:[^']|'')*'")


@dataclass(frozen=True)
class ChainLine:
    """One statement line of a chain file."""
    line_number: int
    text: str


@dataclass(frozen=True)
class StatementTemplate:
    """A prepared chain statement and where it came from."""
    line_number: int
    prepared: PreparedTemplate

    @property
    def query(self) -> str:
        return self.prepared.query

    @property
    def parameters(self):
        return self.prepared.parameters


Chain = Tuple[StatementTemplate, ...]


def read_chain_file(path: Path) -> List[ChainLine]:
    """Read statement lines, skipping empty lines and ``#`` comments."""
    lines = []
    with open(path, 'r', encoding='utf-8') as f:
        for number, raw in enumerate(f, start=1):
            text = raw.rstrip("\r\n")
            if not text.strip():
                continue
            if text.lstrip().startswith("#"):
                continue
            lines.append(ChainLine(line_number=number, text=text))

    if not lines:
        logger.warning(f"Chain file {path} contains no statements")
    return lines


def find_named_markers(query: str) -> List[str]:
    """Named ``:marker`` placeholders of a query, in order, without duplicates.

    Quoted string literals are ignored. Used for offline validation only;
    at run time the prepared statement's own metadata is authoritative.
    """
    names: List[str] = []
    for name in _NAMED_MARKER.findall(_QUOTED.sub("''", query)):
        if name not in names:
            names.append(name)
    return names


def prepare_chain(session: StoreSession, lines: Sequence[ChainLine]) -> Chain:
    """Prepare every chain line before anything is executed."""
    templates = []
    logger.info("cmds:")
    for line in lines:
        logger.info(f"  {line.line_number:4d}: {line.text}")
        try:
            prepared = session.prepare(line.text)
        except Exception as e:
            raise PrepareError(line.line_number, line.text, e) from e
        templates.append(StatementTemplate(line_number=line.line_number, prepared=prepared))
    return tuple(templates)


class ChainExecutor:
    """Runs chains against a store session.

    One executor is shared by all worker threads; it keeps no per-run
    mutable state of its own.
    """

    def __init__(self,
                 session: StoreSession,
                 rate_limiter: RateLimiter,
                 codec: Optional[RowValueCodec] = None,
                 stats: Optional[ExecutionStats] = None,
                 on_store_error: str = ABORT_ITERATION,
                 max_retries: int = 0,
                 retry_backoff: float = 0.1,
                 stop_event: Optional[Event] = None):
        if on_store_error not in (ABORT_ITERATION, SKIP_BRANCH):
            raise ValueError(f"Invalid on_store_error policy: {on_store_error}")
        self.session = session
        self.rate_limiter = rate_limiter
        self.codec = codec or RowValueCodec()
        self.resolver = ArgumentResolver(self.codec)
        self.stats = stats or ExecutionStats()
        self.on_store_error = on_store_error
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.stop_event = stop_event or Event()

    def run_chain(self,
                  chain: Sequence[StatementTemplate],
                  bindings: Mapping[str, Optional[str]],
                  input_row: Optional[Row] = None,
                  iteration: int = 0,
                  step: int = 0) -> int:
        """Execute ``chain`` depth-first; return the number of statements run.

        Raises:
            MissingBindingError: a placeholder of the current statement has
                no value; nothing is executed for that statement.
            BindingError: a value could not be converted to its column type
                or bound by the driver.
            StoreExecutionError: the store failed and the policy is
                ``abort_iteration``.
            RunCancelled: the stop event was set.
        """
        if not chain:
            return 0
        if self.stop_event.is_set():
            raise RunCancelled("Run stopped")

        head, tail = chain[0], chain[1:]
        effective = self.resolver.merge(bindings, input_row) if input_row is not None else bindings

        values = self._bind_values(head, effective, iteration)
        bound = self._bind(head, values)
        logger.debug(f"[{iteration:5d}] Running: {head.query}")
        logger.debug(f"[{iteration:5d}] With variables: {dict(effective)}")

        try:
            rows = self._execute(head, bound, step)
        except StoreExecutionError as e:
            if self.on_store_error == SKIP_BRANCH:
                logger.warning(f"[{iteration:5d}] Skipping branch at line {head.line_number}: {e}")
                self.stats.record_skipped_branch()
                return 0
            raise

        executed = 1
        for row in rows:
            executed += self.run_chain(tail, effective, row, iteration, step + 1)
        return executed

    def _bind_values(self,
                     template: StatementTemplate,
                     bindings: Mapping[str, Optional[str]],
                     iteration: int) -> Dict[str, Any]:
        # A key bound to None is a NULL column, not a missing value
        missing = [p.name for p in template.parameters if p.name not in bindings]
        if missing:
            logger.error(f"[{iteration:5d}] Could not find value for key(s) {', '.join(missing)}")
            raise MissingBindingError(template.query, missing,
                                      line_number=template.line_number, iteration=iteration)

        values = {}
        for parameter in template.parameters:
            text = bindings[parameter.name]
            try:
                values[parameter.name] = self.codec.parse(text, parameter.cql_type)
            except Exception as e:
                raise BindingError(
                    f"Cannot convert {parameter.name}={text!r} for line "
                    f"{template.line_number}: {e!r}"
                ) from e
        return values

    def _bind(self, template: StatementTemplate, values: Dict[str, Any]) -> Any:
        try:
            return self.session.bind(template.prepared, values)
        except Exception as e:
            raise BindingError(
                f"Cannot bind values for line {template.line_number}: {e!r}"
            ) from e

    def _execute(self, template: StatementTemplate, bound: Any, step: int) -> List[Row]:
        attempt = 0
        while True:
            attempt += 1
            self.rate_limiter.acquire(self.stop_event)
            start = time.perf_counter()
            try:
                rows = self.session.execute(bound)
            except Exception as e:
                self.stats.record_failure(step, time.perf_counter() - start)
                if attempt > self.max_retries:
                    raise StoreExecutionError(template.query, e, attempts=attempt) from e
                self.stats.record_retry()
                wait = self.retry_backoff * (2 ** (attempt - 1))
                logger.warning(f"Retry {attempt}/{self.max_retries} for line "
                               f"{template.line_number} after {wait:.2f}s: {e}")
                if self.stop_event.wait(wait):
                    raise RunCancelled("Stopped while retrying") from e
                continue

            self.stats.record_success(step, time.perf_counter() - start, len(rows))
            return rows
