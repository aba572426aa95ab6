"""
Rule sets: a named, ordered collection of rules plus the throttling
settings used to schedule them.

Cell evaluation picks the enabled rules targeting a column, runs them in
priority order and merges the failures into one ValidationResult. Whole-grid
passes can run synchronously or split into row batches on worker threads.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..cancellation import CancellationToken
from ..errors import DuplicateRuleError
from ..scheduling.limiter import ConcurrencyLimiter
from ..scheduling.throttling import ThrottlingConfig
from .context import ValidationContext
from .result import Severity, ValidationResult
from .rules import Rule

logger = logging.getLogger(__name__)

CellKey = Tuple[int, str]
ResultCallback = Callable[[int, str, ValidationResult], None]


class ExecutionMode(Enum):
    """How evaluation of one cell reacts to an ERROR-severity failure."""

    PROCESS_ALL = 'process_all'
    STOP_ON_FIRST_ERROR = 'stop_on_first_error'
    CONTINUE_WITH_WARNINGS = 'continue_with_warnings'


@dataclass
class RuleSetDiagnostics:
    name: str
    total_rules: int
    enabled_rules: int
    cross_row_rules: int
    async_rules: int
    execution_mode: str
    rules_by_severity: Dict[str, int] = field(default_factory=dict)
    columns: List[str] = field(default_factory=list)

    @property
    def disabled_rules(self) -> int:
        return self.total_rules - self.enabled_rules

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['disabled_rules'] = self.disabled_rules
        return data


class RuleSet:
    """
    A named collection of rules evaluated together.

    Usage:
        rules = RuleSet("employees")
        rules.add_rule(Rule.create("name").for_columns("Name").then_required("Name").build())
        result = rules.evaluate_cell(accessor.get_row_context(0).for_cell("Name"))
    """

    def __init__(
        self,
        name: str = 'default',
        description: str = '',
        execution_mode: ExecutionMode = ExecutionMode.PROCESS_ALL,
        throttling: Optional[ThrottlingConfig] = None,
    ):
        self.name = name
        self.description = description
        self.execution_mode = ExecutionMode(execution_mode)
        self.throttling = throttling or ThrottlingConfig()
        self._rules: List[Rule] = []

    @staticmethod
    def create(name: str):
        """Start a RuleSetBuilder for a rule set called ``name``."""
        from .ruleset_builder import RuleSetBuilder
        return RuleSetBuilder(name)

    # --- Rule management ------------------------------------------------------

    def add_rule(self, rule: Rule) -> 'RuleSet':
        """Append ``rule``.

        Raises:
            DuplicateRuleError: A rule with the same name is already present.
        """
        if self.get_rule(rule.name) is not None:
            raise DuplicateRuleError(f"Rule '{rule.name}' already exists in rule set '{self.name}'")
        self._rules.append(rule)
        return self

    def add_rules(self, rules: Iterable[Rule]) -> 'RuleSet':
        for rule in rules:
            self.add_rule(rule)
        return self

    def remove_rule(self, name: str) -> 'RuleSet':
        rule = self.get_rule(name)
        if rule is None:
            raise KeyError(f"No rule named '{name}' in rule set '{self.name}'")
        self._rules.remove(rule)
        return self

    def get_rule(self, name: str) -> Optional[Rule]:
        for rule in self._rules:
            if rule.name == name:
                return rule
        return None

    def set_enabled(self, name: str, enabled: bool) -> 'RuleSet':
        """Swap the named rule for a copy with ``enabled`` set."""
        rule = self.get_rule(name)
        if rule is None:
            raise KeyError(f"No rule named '{name}' in rule set '{self.name}'")
        self._rules[self._rules.index(rule)] = rule.with_enabled(enabled)
        return self

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return tuple(self._rules)

    @property
    def has_rules(self) -> bool:
        return bool(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(tuple(self._rules))

    def __contains__(self, name: object) -> bool:
        return any(rule.name == name for rule in self._rules)

    # --- Selection ------------------------------------------------------------

    def rules_for_column(self, column: str) -> List[Rule]:
        """Enabled rules targeting ``column``, lowest priority first.

        The sort is stable, so equal priorities keep insertion order.
        """
        return sorted(
            (rule for rule in self._rules if rule.targets(column)),
            key=lambda rule: rule.priority,
        )

    def cross_row_rules(self) -> List[Rule]:
        return [rule for rule in self._rules if rule.enabled and rule.is_cross_row]

    def async_rules(self) -> List[Rule]:
        return [rule for rule in self._rules if rule.enabled and rule.is_async]

    def dependent_columns(self, column: str) -> List[str]:
        """Target columns of enabled rules that read ``column``.

        An edit to ``column`` can change the outcome of these cells.
        """
        dependents: Dict[str, None] = {}
        for rule in self._rules:
            if rule.enabled and column in rule.dependency_columns:
                for target in rule.target_columns:
                    if target != column:
                        dependents[target] = None
        return list(dependents)

    def check_columns(self, columns: Sequence[str]) -> List[str]:
        """Report rule columns that the grid does not have."""
        known = set(columns)
        problems = []
        for rule in self._rules:
            for column in rule.target_columns:
                if column not in known:
                    problems.append(f"Rule '{rule.name}': target column '{column}' not found")
            for column in rule.dependency_columns:
                if column not in known:
                    problems.append(f"Rule '{rule.name}': dependency column '{column}' not found")
        return problems

    # --- Cell evaluation ------------------------------------------------------

    def _plan(self, context: ValidationContext) -> List[Rule]:
        if context.current_column is None:
            raise ValueError("evaluate_cell needs a context with a current column")
        return self.rules_for_column(context.current_column)

    def _should_run(self, rule: Rule, error_seen: bool) -> bool:
        if not error_seen:
            return True
        if self.execution_mode is ExecutionMode.CONTINUE_WITH_WARNINGS:
            return rule.severity < Severity.ERROR
        return True

    def _halts(self, result: ValidationResult) -> bool:
        return self.execution_mode is ExecutionMode.STOP_ON_FIRST_ERROR and result.is_error

    @staticmethod
    def _other_rows(
        context: ValidationContext,
        all_rows: Optional[Sequence[ValidationContext]],
    ) -> List[ValidationContext]:
        if not all_rows:
            return []
        return [row for row in all_rows if row.row_index != context.row_index]

    def evaluate_cell(
        self,
        context: ValidationContext,
        all_rows: Optional[Sequence[ValidationContext]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ValidationResult:
        """Run every applicable rule against the context's current cell.

        Args:
            context: Cell-level context (``current_column`` set).
            all_rows: Row contexts of the whole grid, needed by cross-row
                rules. The context's own row is excluded before they run.
            cancel_token: Checked between rules and while awaiting async
                validators.

        Raises:
            ValidationCancelled: If ``cancel_token`` fires.
        """
        plan = self._plan(context)
        others = self._other_rows(context, all_rows) if any(r.is_cross_row for r in plan) else []
        results: List[ValidationResult] = []
        error_seen = False

        for rule in plan:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if not self._should_run(rule, error_seen):
                continue
            result = rule.execute(context, others, cancel_token)
            results.append(result)
            if result.is_error:
                error_seen = True
                if self._halts(result):
                    break

        return self._merge(context, plan, results)

    async def evaluate_cell_async(
        self,
        context: ValidationContext,
        all_rows: Optional[Sequence[ValidationContext]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ValidationResult:
        """Coroutine counterpart of :meth:`evaluate_cell`."""
        plan = self._plan(context)
        others = self._other_rows(context, all_rows) if any(r.is_cross_row for r in plan) else []
        results: List[ValidationResult] = []
        error_seen = False

        for rule in plan:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if not self._should_run(rule, error_seen):
                continue
            result = await rule.execute_async(context, others, cancel_token)
            results.append(result)
            if result.is_error:
                error_seen = True
                if self._halts(result):
                    break

        return self._merge(context, plan, results)

    def _merge(self, context: ValidationContext, plan: List[Rule], results: List[ValidationResult]) -> ValidationResult:
        merged = ValidationResult.combine(results)
        logger.debug(
            "Row %d column %r: %d/%d rules ran, %s",
            context.row_index, context.current_column, len(results), len(plan), merged,
        )
        return merged

    # --- Grid evaluation ------------------------------------------------------

    def _targeted_columns(self, columns: Sequence[str]) -> List[str]:
        return [c for c in columns if self.rules_for_column(c)]

    def _snapshot(self, accessor) -> Optional[List[ValidationContext]]:
        if not self.cross_row_rules():
            return None
        return accessor.get_all_row_contexts()

    def validate_row(
        self,
        accessor,
        row: int,
        all_rows: Optional[Sequence[ValidationContext]] = None,
    ) -> Dict[str, ValidationResult]:
        """Evaluate every targeted cell of ``row``. Returns column -> result."""
        if all_rows is None:
            all_rows = self._snapshot(accessor)
        row_context = accessor.get_row_context(row)
        return {
            column: self.evaluate_cell(row_context.for_cell(column), all_rows)
            for column in self._targeted_columns(accessor.column_names)
        }

    def _validate_rows(
        self,
        accessor,
        rows: Sequence[int],
        all_rows: Optional[Sequence[ValidationContext]],
        on_result: Optional[ResultCallback],
    ) -> Dict[CellKey, ValidationResult]:
        results: Dict[CellKey, ValidationResult] = {}
        for row in rows:
            for column, result in self.validate_row(accessor, row, all_rows or []).items():
                results[(row, column)] = result
                if on_result is not None:
                    on_result(row, column, result)
        return results

    async def _validate_rows_async(
        self,
        accessor,
        rows: Sequence[int],
        all_rows: Optional[Sequence[ValidationContext]],
        on_result: Optional[ResultCallback],
    ) -> Dict[CellKey, ValidationResult]:
        # Same walk as _validate_rows, awaiting async validators on the running loop
        results: Dict[CellKey, ValidationResult] = {}
        columns = self._targeted_columns(accessor.column_names)
        for row in rows:
            row_context = accessor.get_row_context(row)
            for column in columns:
                result = await self.evaluate_cell_async(row_context.for_cell(column), all_rows or [])
                results[(row, column)] = result
                if on_result is not None:
                    on_result(row, column, result)
        return results

    def validate_all_cells(
        self,
        accessor,
        on_result: Optional[ResultCallback] = None,
    ) -> Dict[CellKey, ValidationResult]:
        """Synchronously evaluate every targeted cell of the grid.

        The row snapshot for cross-row rules is taken once for the pass.

        Returns:
            (row, column) -> merged result.
        """
        results = self._validate_rows(
            accessor, range(accessor.row_count), self._snapshot(accessor), on_result
        )
        self._log_pass(results)
        return results

    async def validate_cell_async(
        self,
        accessor,
        row: int,
        column: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[str]:
        """Evaluate one stored cell and return its failure messages."""
        context = accessor.get_row_context(row).for_cell(column)
        all_rows = None
        if any(rule.is_cross_row for rule in self.rules_for_column(column)):
            all_rows = accessor.get_all_row_contexts()
        result = await self.evaluate_cell_async(context, all_rows, cancel_token)
        return [] if result.is_valid else list(result.messages)

    async def validate_all_rows_async(
        self,
        accessor,
        limiter: Optional[ConcurrencyLimiter] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> bool:
        """Evaluate the whole grid, returning True when every cell passed.

        With async validation disabled the pass runs inline on the calling
        loop, awaiting async validators there. Otherwise rows are split into
        batches of ``throttling.batch_size`` (one batch when batching is
        disabled) that run on worker threads, each holding a slot of
        ``limiter`` for its whole duration.
        """
        config = self.throttling
        all_rows = self._snapshot(accessor)
        rows = list(range(accessor.row_count))

        if not config.enable_async:
            results = await self._validate_rows_async(accessor, rows, all_rows, on_result)
            self._log_pass(results)
            return all(r.is_valid for r in results.values())

        if limiter is None:
            limiter = ConcurrencyLimiter(config.max_concurrent_validations)
        size = config.batch_size if config.enable_batch else max(len(rows), 1)
        batches = [rows[i:i + size] for i in range(0, len(rows), size)]
        logger.debug(
            "Rule set '%s': %d rows in %d batches of up to %d",
            self.name, len(rows), len(batches), size,
        )

        def run_batch(batch: List[int]) -> Dict[CellKey, ValidationResult]:
            with limiter.slot():
                return self._validate_rows(accessor, batch, all_rows, on_result)

        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(
            max_workers=limiter.max_concurrent,
            thread_name_prefix='gridquality-batch',
        ) as pool:
            parts = await asyncio.gather(
                *(loop.run_in_executor(pool, run_batch, batch) for batch in batches)
            )

        results: Dict[CellKey, ValidationResult] = {}
        for part in parts:
            results.update(part)
        self._log_pass(results)
        return all(r.is_valid for r in results.values())

    def _log_pass(self, results: Dict[CellKey, ValidationResult]) -> None:
        failed = sum(1 for r in results.values() if not r.is_valid)
        logger.info(
            "Rule set '%s': validated %d cells, %d failed", self.name, len(results), failed
        )

    # --- Introspection --------------------------------------------------------

    def diagnostics(self) -> RuleSetDiagnostics:
        by_severity: Dict[str, int] = {}
        columns: Dict[str, None] = {}
        for rule in self._rules:
            by_severity[rule.severity.label] = by_severity.get(rule.severity.label, 0) + 1
            for column in rule.target_columns:
                columns[column] = None
        return RuleSetDiagnostics(
            name=self.name,
            total_rules=len(self._rules),
            enabled_rules=sum(1 for r in self._rules if r.enabled),
            cross_row_rules=len(self.cross_row_rules()),
            async_rules=len(self.async_rules()),
            execution_mode=self.execution_mode.value,
            rules_by_severity=by_severity,
            columns=list(columns),
        )

    def clone(self) -> 'RuleSet':
        """Independent copy: own rule list and throttling config.

        Rules themselves are immutable and shared.
        """
        copy = RuleSet(
            name=self.name,
            description=self.description,
            execution_mode=self.execution_mode,
            throttling=self.throttling.clone(),
        )
        copy._rules = list(self._rules)
        return copy

    def __repr__(self) -> str:
        return f"RuleSet(name={self.name!r}, rules={len(self._rules)}, mode={self.execution_mode.value})"
