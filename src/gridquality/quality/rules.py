"""
Validation rule definitions.

A Rule bundles target columns, a guard and up to three validators. Rules
are frozen once built; RuleBuilder is the intended way to make one. The
module also holds the pre-built validator bodies behind the builder's
shortcuts (required, range, pattern, date order, uniqueness).
"""

import inspect
import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, Optional, Sequence, Tuple

import pandas as pd

from ..cancellation import CancellationToken, run_awaitable, wait_cancellable
from ..errors import IncompleteRuleError, ValidationCancelled
from .context import ValidationContext, is_missing
from .result import Severity, ValidationResult
from .validators import AsyncValidator, CrossRowValidator, SyncValidator, Validator

logger = logging.getLogger(__name__)

Guard = Callable[[ValidationContext], bool]

DEFAULT_MESSAGE = 'Validation failed'
DEFAULT_PRIORITY = 100

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
PHONE_PATTERN = r'^[\+]?[1-9][\d]{0,15}$'


@dataclass(frozen=True)
class Rule:
    """A named, immutable validation rule.

    Attributes:
        name: Identifier, unique within a RuleSet.
        target_columns: Columns whose cells this rule validates.
        dependency_columns: Columns the rule reads; edits to them re-validate
            the target cells of the same row.
        guard: Predicate gating the validators. None means always run.
        validator: Synchronous validator.
        async_validator: Coroutine validator.
        cross_row_validator: Validator that also sees every other row.
        severity: Severity given to failures synthesized from bool outcomes.
        priority: Lower values run earlier.
        message: Message given to failures synthesized from bool outcomes.
    """

    name: str
    target_columns: Tuple[str, ...]
    dependency_columns: Tuple[str, ...] = ()
    guard: Optional[Guard] = None
    validator: Optional[SyncValidator] = None
    async_validator: Optional[AsyncValidator] = None
    cross_row_validator: Optional[CrossRowValidator] = None
    severity: Severity = Severity.ERROR
    priority: int = DEFAULT_PRIORITY
    message: str = DEFAULT_MESSAGE
    description: str = ''
    enabled: bool = True

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise IncompleteRuleError("Rule name is required")
        if not self.validators:
            raise IncompleteRuleError(
                f"Rule '{self.name}': at least one validation function must be specified"
            )
        if not self.target_columns:
            raise IncompleteRuleError(f"Rule '{self.name}': at least one target column is required")
        object.__setattr__(self, 'target_columns', tuple(dict.fromkeys(self.target_columns)))
        object.__setattr__(self, 'dependency_columns', tuple(dict.fromkeys(self.dependency_columns)))
        object.__setattr__(self, 'severity', Severity(self.severity))

    # --- Construction ---------------------------------------------------------

    @staticmethod
    def create(name: str):
        """Start a RuleBuilder for a rule called ``name``."""
        from .builder import RuleBuilder
        return RuleBuilder(name)

    @staticmethod
    def create_cross_cell_rule(name: str):
        from .builder import RuleBuilder
        return RuleBuilder(name)

    @staticmethod
    def create_async_rule(name: str):
        from .builder import RuleBuilder
        return RuleBuilder(name)

    def with_enabled(self, enabled: bool) -> 'Rule':
        return replace(self, enabled=enabled)

    # --- Introspection --------------------------------------------------------

    @property
    def validators(self) -> Tuple[Validator, ...]:
        """Attached validators in execution order: sync, async, cross-row."""
        return tuple(
            v for v in (self.validator, self.async_validator, self.cross_row_validator)
            if v is not None
        )

    @property
    def is_cross_row(self) -> bool:
        return self.cross_row_validator is not None

    @property
    def is_async(self) -> bool:
        return self.async_validator is not None

    def targets(self, column: str) -> bool:
        return self.enabled and column in self.target_columns

    def describe(self) -> str:
        return (
            f"Rule '{self.name}' - Priority: {self.priority}, Enabled: {self.enabled}, "
            f"Severity: {self.severity.label}, "
            f"Targets: [{', '.join(self.target_columns)}], "
            f"Dependencies: [{', '.join(self.dependency_columns)}]"
        )

    # --- Execution ------------------------------------------------------------

    def execute(
        self,
        context: ValidationContext,
        other_rows: Sequence[ValidationContext] = (),
        cancel_token: Optional[CancellationToken] = None,
    ) -> ValidationResult:
        """Evaluate this rule synchronously.

        Async validators are driven to completion with a private event loop,
        on a helper thread when the caller already runs one. A guard that
        returns False leaves the cell unvalidated, which counts as success.

        Raises:
            ValidationCancelled: If ``cancel_token`` fires mid-evaluation.
        """
        try:
            if self.guard is not None and not self.guard(context):
                return ValidationResult.success()
            for validator in self.validators:
                outcome = validator(context, other_rows)
                if inspect.isawaitable(outcome):
                    outcome = run_awaitable(outcome, cancel_token)
                result = self._coerce(outcome)
                if not result.is_valid:
                    return result
            return ValidationResult.success()
        except ValidationCancelled:
            raise
        except Exception as exc:
            return self._fault(exc, context)

    async def execute_async(
        self,
        context: ValidationContext,
        other_rows: Sequence[ValidationContext] = (),
        cancel_token: Optional[CancellationToken] = None,
    ) -> ValidationResult:
        """Coroutine counterpart of :meth:`execute`."""
        try:
            if self.guard is not None and not self.guard(context):
                return ValidationResult.success()
            for validator in self.validators:
                outcome = validator(context, other_rows)
                if inspect.isawaitable(outcome):
                    outcome = await wait_cancellable(outcome, cancel_token)
                result = self._coerce(outcome)
                if not result.is_valid:
                    return result
            return ValidationResult.success()
        except ValidationCancelled:
            raise
        except Exception as exc:
            return self._fault(exc, context)

    def _coerce(self, outcome: Any) -> ValidationResult:
        if isinstance(outcome, ValidationResult):
            return outcome
        if outcome is None:
            raise TypeError("validator returned None instead of a bool or ValidationResult")
        if bool(outcome):
            return ValidationResult.success()
        return ValidationResult.failure(self.message or DEFAULT_MESSAGE, self.severity)

    def _fault(self, exc: Exception, context: ValidationContext) -> ValidationResult:
        logger.warning(
            "Rule '%s' raised on row %d column %r",
            self.name, context.row_index, context.current_column,
            exc_info=True,
        )
        return ValidationResult.error(f"Validation error in rule '{self.name}': {exc}")


# --- Pre-built validator bodies -----------------------------------------------

def required(column: str) -> Callable[[ValidationContext], bool]:
    """Pass when ``column`` holds a non-blank value."""
    def check(ctx: ValidationContext) -> bool:
        return ctx.has_value(column)
    return check


def required_fields(columns: Sequence[str]) -> Callable[[ValidationContext], ValidationResult]:
    """Fail listing every column in ``columns`` that is blank."""
    columns = list(columns)

    def check(ctx: ValidationContext) -> ValidationResult:
        missing = [c for c in columns if not ctx.has_value(c)]
        if missing:
            return ValidationResult.error(f"Required fields missing: {', '.join(missing)}")
        return ValidationResult.success()
    return check


def in_range(column: str, min_value: Any, max_value: Any) -> Callable[[ValidationContext], bool]:
    """Inclusive range check.

    Blank values fail. Text that looks numeric is compared as a number, since
    grid editors usually hand over strings.
    """
    def between(value: Any) -> bool:
        return bool(min_value <= value <= max_value)

    def check(ctx: ValidationContext) -> bool:
        value = ctx.get_value(column)
        if is_missing(value):
            return False
        try:
            return between(value)
        except TypeError:
            if not isinstance(value, str):
                return False
        try:
            return between(float(value))
        except (TypeError, ValueError):
            return False
    return check


def matches_pattern(column: str, pattern: str, message: str) -> Callable[[ValidationContext], ValidationResult]:
    """Blank passes; anything else must match ``pattern``."""
    regex = re.compile(pattern)

    def check(ctx: ValidationContext) -> ValidationResult:
        text = ctx.get_string_value(column)
        if not text:
            return ValidationResult.success()
        if regex.match(text):
            return ValidationResult.success()
        return ValidationResult.error(message)
    return check


def valid_email(column: str) -> Callable[[ValidationContext], ValidationResult]:
    return matches_pattern(column, EMAIL_PATTERN, f"Invalid email format in {column}")


def valid_phone_number(column: str) -> Callable[[ValidationContext], ValidationResult]:
    return matches_pattern(column, PHONE_PATTERN, f"Invalid phone number format in {column}")


def as_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """Coerce a cell value to a Timestamp, or None when it is not a date."""
    if is_missing(value):
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return pd.Timestamp(value)
    parsed = pd.to_datetime(str(value), errors='coerce')
    if pd.isna(parsed):
        return None
    return parsed


def start_before_end(start_column: str, end_column: str) -> Callable[[ValidationContext], bool]:
    """Same-row date ordering. Values that are not dates are skipped."""
    def check(ctx: ValidationContext) -> bool:
        start = as_timestamp(ctx.get_value(start_column))
        end = as_timestamp(ctx.get_value(end_column))
        if start is None or end is None:
            return True
        return bool(start < end)
    return check


def values_equal(left: Any, right: Any) -> bool:
    try:
        return bool(left == right)
    except (TypeError, ValueError):
        return False


def unique_in_column(column: str) -> Callable[[ValidationContext, Sequence[ValidationContext]], ValidationResult]:
    """Fail when another row holds the same non-blank value in ``column``."""
    def check(ctx: ValidationContext, other_rows: Sequence[ValidationContext]) -> ValidationResult:
        current = ctx.get_value(column)
        if is_missing(current):
            return ValidationResult.success()
        for other in other_rows:
            if other.row_index == ctx.row_index:
                continue
            if values_equal(other.get_value(column), current):
                return ValidationResult.error(f"Value '{current}' in {column} must be unique")
        return ValidationResult.success()
    return check


def unique_combination(columns: Sequence[str]) -> Callable[[ValidationContext, Sequence[ValidationContext]], ValidationResult]:
    """Composite-key variant of :func:`unique_in_column`."""
    columns = list(columns)

    def check(ctx: ValidationContext, other_rows: Sequence[ValidationContext]) -> ValidationResult:
        key = [ctx.get_value(c) for c in columns]
        if all(is_missing(v) for v in key):
            return ValidationResult.success()
        for other in other_rows:
            if other.row_index == ctx.row_index:
                continue
            if all(values_equal(other.get_value(c), v) for c, v in zip(columns, key)):
                return ValidationResult.error(
                    f"Combination of {', '.join(columns)} must be unique"
                )
        return ValidationResult.success()
    return check
