"""
Debounced, bounded scheduling of cell validations.

Edits arrive through ``notify_cell_changed``. Each (row, column) key gets a
trailing-edge debounce deadline. One timer thread serves every deadline
from a heap; when a key comes due it is handed to a worker pool sized to
the concurrency limit, where the evaluation waits for a limiter slot, reads
the row fresh from the accessor, runs the rule set and pushes the merged
result to the sink.

A newer edit of a key supersedes older work for that key: the pending
deadline is dropped and any evaluation already dispatched gets its
cancellation token fired, so its result is never reported.
"""

import asyncio
import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from ..cancellation import CancellationToken
from ..data.accessor import DataAccessor
from ..data.sink import NotificationSink
from ..errors import ValidationCancelled
from ..quality.context import ValidationContext
from ..quality.result import ValidationResult
from .limiter import ConcurrencyLimiter
from .throttling import ThrottlingConfig

logger = logging.getLogger('gridquality.scheduler')

CellKey = Tuple[int, str]

_UNSET = object()


class ValidationScheduler:
    """Schedule rule evaluation for edited grid cells.

    The rule set is snapshotted on construction; later changes to the
    caller's RuleSet do not affect a running scheduler. Threads used: one
    timer thread plus at most ``max_concurrent_validations`` workers, both
    started on the first edit.

    Usage::

        with ValidationScheduler(ruleset, accessor, sink) as scheduler:
            scheduler.notify_cell_changed(3, "Email", "new@example.com")
            scheduler.wait_idle(timeout=5)

    Args:
        ruleset: Rules to evaluate. A clone is kept.
        accessor: Source of row data; read at evaluation time.
        sink: Receives one report per completed evaluation, from worker threads.
        config: Overrides the rule set's throttling config when given.
    """

    def __init__(self, ruleset, accessor: DataAccessor, sink: NotificationSink,
                 config: Optional[ThrottlingConfig] = None):
        self._ruleset = ruleset.clone()
        if config is not None:
            self._ruleset.throttling = config.clone()
        self.config: ThrottlingConfig = self._ruleset.throttling
        self._accessor = accessor
        self._sink = sink

        # Guards deadlines, tokens, overrides and the limiter
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._wakeup = threading.Condition(self._lock)
        self._limiter = ConcurrencyLimiter(self.config.max_concurrent_validations, lock=self._lock)
        # Serializes the stale check with the sink call
        self._report_lock = threading.RLock()

        # key -> (due time, arm sequence); heap entries whose sequence no
        # longer matches were superseded and are skipped
        self._deadlines: Dict[CellKey, Tuple[float, int]] = {}
        self._heap: List[Tuple[float, int, CellKey]] = []
        self._sequence = itertools.count(1)
        self._inflight: Dict[CellKey, CancellationToken] = {}
        self._overrides: Dict[CellKey, Dict[str, Any]] = {}
        self._running = 0
        self._closed = False
        self._timer_thread: Optional[threading.Thread] = None
        self._pool: Optional[ThreadPoolExecutor] = None

        # Telemetry counters
        self._scheduled = 0
        self._coalesced = 0
        self._evaluations = 0
        self._reported = 0
        self._cancelled = 0
        self._errors = 0

        for problem in self._ruleset.check_columns(accessor.column_names):
            logger.warning("Rule set '%s': %s", self._ruleset.name, problem)
        for warning in self.config.configuration_warnings():
            logger.warning("Rule set '%s': %s", self._ruleset.name, warning)
        logger.debug("Scheduler started for rule set '%s' (%s)", self._ruleset.name, self.config)

    @property
    def ruleset(self):
        return self._ruleset

    @property
    def limiter(self) -> ConcurrencyLimiter:
        return self._limiter

    # --- Edits ----------------------------------------------------------------

    def notify_cell_changed(self, row: int, column: str, pending_value: Any = _UNSET) -> None:
        """Schedule validation of (row, column) and of the cells depending on it.

        Args:
            row: Zero-based row of the edited cell.
            column: Column of the edited cell.
            pending_value: Value the rules should see for ``column`` instead
                of the stored one, e.g. while the editor is still open.

        Raises:
            KeyError: ``column`` is not a grid column.
            RuntimeError: The scheduler has been closed.
        """
        if not self._accessor.has_column(column):
            raise KeyError(f"Column '{column}' is not in the grid")

        keys = [(row, c) for c in [column] + self._ruleset.dependent_columns(column)
                if self._ruleset.rules_for_column(c)]
        if not keys:
            logger.debug("No rules for row %d column %r", row, column)
            return

        if not self.config.enable_async:
            self._run_inline(keys, column, pending_value)
            return

        with self._lock:
            if self._closed:
                raise RuntimeError("scheduler is closed")
            for key in keys:
                self._remember_override(key, column, pending_value)
                self._arm(key)

    def _remember_override(self, key: CellKey, column: str, pending_value: Any) -> None:
        if pending_value is _UNSET:
            overrides = self._overrides.get(key)
            if overrides is not None:
                overrides.pop(column, None)
                if not overrides:
                    del self._overrides[key]
        else:
            self._overrides.setdefault(key, {})[column] = pending_value

    def _supersede(self, key: CellKey) -> bool:
        """Drop the pending deadline and running evaluation of ``key``. Lock held."""
        superseded = False
        if self._deadlines.pop(key, None) is not None:
            self._coalesced += 1
            superseded = True
        token = self._inflight.get(key)
        if token is not None and not token.cancelled:
            token.cancel()
            self._cancelled += 1
            superseded = True
        return superseded

    def _arm(self, key: CellKey) -> None:
        self._scheduled += 1
        self._supersede(key)
        sequence = next(self._sequence)
        due = time.monotonic() + self.config.debounce_seconds
        self._deadlines[key] = (due, sequence)
        heapq.heappush(self._heap, (due, sequence, key))
        self._start_threads()
        self._wakeup.notify()
        logger.debug("Armed row %d column %r (sequence %d)", key[0], key[1], sequence)

    def _start_threads(self) -> None:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.config.max_concurrent_validations,
                thread_name_prefix='gridquality-eval',
            )
        if self._timer_thread is None:
            self._timer_thread = threading.Thread(
                target=self._timer_loop, name='gridquality-debounce', daemon=True,
            )
            self._timer_thread.start()

    def _run_inline(self, keys: List[CellKey], column: str, pending_value: Any) -> None:
        overrides = {} if pending_value is _UNSET else {column: pending_value}
        for key in keys:
            with self._lock:
                if self._closed:
                    raise RuntimeError("scheduler is closed")
                self._scheduled += 1
                self._running += 1
            try:
                self._run(key, dict(overrides), CancellationToken())
            finally:
                with self._lock:
                    self._running -= 1
                    self._idle.notify_all()

    # --- Evaluation -----------------------------------------------------------

    def _timer_loop(self) -> None:
        with self._lock:
            while not self._closed:
                now = time.monotonic()
                while self._heap and self._heap[0][0] <= now:
                    _, sequence, key = heapq.heappop(self._heap)
                    armed = self._deadlines.get(key)
                    if armed is not None and armed[1] == sequence:
                        self._dispatch(key)
                timeout = self._heap[0][0] - now if self._heap else None
                self._wakeup.wait(timeout)

    def _dispatch(self, key: CellKey) -> None:
        """Hand a due key to the worker pool. Lock held."""
        del self._deadlines[key]
        overrides = self._overrides.pop(key, {})
        token = CancellationToken()
        self._inflight[key] = token
        self._running += 1
        self._pool.submit(self._work, key, overrides, token)

    def _work(self, key: CellKey, overrides: Dict[str, Any], token: CancellationToken) -> None:
        slot = False
        try:
            if token.cancelled:
                logger.debug("Dropped superseded evaluation of row %d column %r", key[0], key[1])
                return
            # Waits in FIFO order; the scheduler lock is released while waiting
            self._limiter.acquire()
            slot = True
            self._run(key, overrides, token)
        finally:
            if slot:
                self._limiter.release()
            with self._lock:
                self._running -= 1
                if self._inflight.get(key) is token:
                    del self._inflight[key]
                self._idle.notify_all()

    def _run(self, key: CellKey, overrides: Dict[str, Any], token: CancellationToken) -> None:
        row, column = key
        try:
            token.raise_if_cancelled()
            result = self._evaluate(row, column, overrides, token)
            with self._report_lock:
                token.raise_if_cancelled()
                self._sink.report_cell_validation(row, column, result)
            with self._lock:
                self._reported += 1
        except ValidationCancelled:
            logger.debug("Dropped superseded evaluation of row %d column %r", row, column)
        except Exception:
            logger.exception("Validation of row %d column %r failed", row, column)
            with self._lock:
                self._errors += 1

    def _evaluate(self, row: int, column: str, overrides: Dict[str, Any],
                  token: CancellationToken) -> ValidationResult:
        values = dict(self._accessor.get_row_context(row).column_values)
        values.update(overrides)
        context = ValidationContext(row_index=row, column_values=values, current_column=column)

        all_rows = None
        if any(rule.is_cross_row for rule in self._ruleset.rules_for_column(column)):
            all_rows = self._accessor.get_all_row_contexts()

        with self._lock:
            self._evaluations += 1
        return self._ruleset.evaluate_cell(context, all_rows, token)

    # --- Whole grid -----------------------------------------------------------

    def validate_all_rows(self) -> bool:
        """Blocking whole-grid pass; must not be called from a running event loop."""
        return asyncio.run(self.validate_all_rows_async())

    async def validate_all_rows_async(self) -> bool:
        """Validate every targeted cell, reporting each one to the sink.

        Batches share this scheduler's limiter with edit evaluations.
        """
        return await self._ruleset.validate_all_rows_async(
            self._accessor, limiter=self._limiter, on_result=self._report_pass_result,
        )

    def _report_pass_result(self, row: int, column: str, result: ValidationResult) -> None:
        try:
            with self._report_lock:
                self._sink.report_cell_validation(row, column, result)
            with self._lock:
                self._reported += 1
        except Exception:
            logger.exception("Sink failed for row %d column %r", row, column)
            with self._lock:
                self._errors += 1

    # --- Control --------------------------------------------------------------

    def cancel(self, row: int, column: str) -> bool:
        """Abandon pending and running work for one cell.

        Returns:
            True if a pending deadline or an evaluation was cancelled.
        """
        key = (row, column)
        with self._lock:
            cancelled = self._supersede(key)
            self._overrides.pop(key, None)
            self._idle.notify_all()
        return cancelled

    def close(self) -> None:
        """Cancel every pending and running evaluation. Further edits are refused.

        Stops the timer thread. Workers finish the evaluation they are in;
        anything dispatched but not started sees its cancelled token and
        returns without evaluating.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for key in list(self._deadlines) + list(self._inflight):
                self._supersede(key)
            self._heap.clear()
            self._overrides.clear()
            self._wakeup.notify_all()
            self._idle.notify_all()
            timer_thread, pool = self._timer_thread, self._pool
        if timer_thread is not None and timer_thread is not threading.current_thread():
            timer_thread.join()
        if pool is not None:
            pool.shutdown(wait=False)
        logger.debug("Scheduler for rule set '%s' closed", self._ruleset.name)

    def __enter__(self) -> 'ValidationScheduler':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def pending_count(self) -> int:
        """Pending deadlines plus evaluations dispatched and not yet finished."""
        with self._lock:
            return len(self._deadlines) + self._running

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no deadline is pending and no evaluation runs.

        Returns:
            False if ``timeout`` expired first.
        """
        with self._idle:
            return self._idle.wait_for(
                lambda: not self._deadlines and self._running == 0, timeout
            )

    def get_telemetry(self) -> Dict[str, Any]:
        limiter = self._limiter.get_telemetry()
        with self._lock:
            tracked = self._deadlines.keys() | self._inflight.keys() | self._overrides.keys()
            return {
                'scheduled': self._scheduled,
                'coalesced': self._coalesced,
                'evaluations': self._evaluations,
                'reported': self._reported,
                'cancelled': self._cancelled,
                'errors': self._errors,
                'pending': len(self._deadlines) + self._running,
                'tracked_cells': len(tracked),
                'peak_concurrency': limiter['peak_active'],
                'waiting_for_slot': limiter['waiting'],
            }
