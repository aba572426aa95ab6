"""
Fluent construction of Rules.

Usage:
    rule = (
        RuleBuilder("age_range")
        .for_columns("Age")
        .when_column_has_value("Age")
        .then_in_range("Age", 0, 120)
        .with_severity(Severity.WARNING)
        .build()
    )

Every method returns the builder. Nothing is checked until build(), which
either returns a frozen Rule or raises IncompleteRuleError.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from . import rules as bodies
from .context import ValidationContext
from .result import Severity
from .rules import DEFAULT_MESSAGE, DEFAULT_PRIORITY, Guard, Rule
from .validators import AsyncValidator, CrossRowValidator, Outcome, SyncValidator

logger = logging.getLogger(__name__)


class RuleBuilder:
    """Accumulates a draft rule."""

    def __init__(self, name: str):
        self._name = name
        self._description = ''
        self._message = DEFAULT_MESSAGE
        self._severity = Severity.ERROR
        self._priority = DEFAULT_PRIORITY
        self._enabled = True
        self._targets: List[str] = []
        self._dependencies: List[str] = []
        self._guard: Optional[Guard] = None
        self._validator: Optional[SyncValidator] = None
        self._async_validator: Optional[AsyncValidator] = None
        self._cross_row_validator: Optional[CrossRowValidator] = None

    # --- Metadata -------------------------------------------------------------

    def with_description(self, description: str) -> 'RuleBuilder':
        self._description = description
        return self

    def with_message(self, message: str) -> 'RuleBuilder':
        """Message used when a bool validator returns False."""
        self._message = message
        return self

    def with_severity(self, severity: Severity) -> 'RuleBuilder':
        self._severity = Severity(severity)
        return self

    def with_priority(self, priority: int) -> 'RuleBuilder':
        """Lower priorities run first."""
        self._priority = priority
        return self

    def for_columns(self, *columns: str) -> 'RuleBuilder':
        self._targets.extend(columns)
        return self

    def depends_on(self, *columns: str) -> 'RuleBuilder':
        self._dependencies.extend(columns)
        return self

    def enabled(self, enabled: bool = True) -> 'RuleBuilder':
        self._enabled = enabled
        return self

    # --- Guards ---------------------------------------------------------------

    def when(self, condition: Guard) -> 'RuleBuilder':
        """Set the guard. A second call replaces the first; see and_when()."""
        if self._guard is not None:
            logger.debug("Rule '%s': when() replaces the existing guard", self._name)
        self._guard = condition
        return self

    def and_when(self, condition: Guard) -> 'RuleBuilder':
        """Conjoin ``condition`` with the current guard."""
        previous = self._guard
        if previous is None:
            self._guard = condition
            return self

        def both(ctx: ValidationContext) -> bool:
            return bool(previous(ctx)) and bool(condition(ctx))

        self._guard = both
        return self

    def when_column_equals(self, column: str, value: Any) -> 'RuleBuilder':
        return self.when(lambda ctx: bodies.values_equal(ctx.get_value(column), value))

    def when_column_contains(self, column: str, value: str) -> 'RuleBuilder':
        """Case-insensitive substring match on the column's text."""
        needle = str(value).casefold()
        return self.when(lambda ctx: needle in ctx.get_string_value(column).casefold())

    def when_column_has_value(self, column: str) -> 'RuleBuilder':
        return self.when(lambda ctx: ctx.has_value(column))

    def when_column_is_empty(self, column: str) -> 'RuleBuilder':
        return self.when(lambda ctx: not ctx.has_value(column))

    # --- Validators -----------------------------------------------------------

    def then(self, validator: Callable[[ValidationContext], Outcome]) -> 'RuleBuilder':
        """Attach the synchronous validator.

        ``validator`` may return a ValidationResult, or a bool in which case
        False becomes a failure with this rule's severity and message.
        """
        self._validator = SyncValidator(validator)
        return self

    def then_async(self, validator: Callable[[ValidationContext], Awaitable[Outcome]]) -> 'RuleBuilder':
        """Attach a coroutine validator; same return conventions as then()."""
        self._async_validator = AsyncValidator(validator)
        return self

    def then_validate_across_cells(
        self,
        validator: Callable[[ValidationContext, Sequence[ValidationContext]], Outcome],
    ) -> 'RuleBuilder':
        """Attach a validator that also receives every other row's context."""
        self._cross_row_validator = CrossRowValidator(validator)
        return self

    def then_required(self, column: str) -> 'RuleBuilder':
        return self.then(bodies.required(column)).with_message(f"{column} is required")

    def then_required_fields(self, *columns: str) -> 'RuleBuilder':
        return self.then(bodies.required_fields(columns))

    def then_in_range(self, column: str, min_value: Any, max_value: Any) -> 'RuleBuilder':
        return (
            self.then(bodies.in_range(column, min_value, max_value))
            .with_message(f"{column} must be between {min_value} and {max_value}")
        )

    def then_start_before_end(self, start_column: str, end_column: str) -> 'RuleBuilder':
        return (
            self.then(bodies.start_before_end(start_column, end_column))
            .with_message(f"{start_column} must be before {end_column}")
        )

    def then_unique_in_column(self, column: str) -> 'RuleBuilder':
        return self.then_validate_across_cells(bodies.unique_in_column(column))

    def then_unique_combination(self, *columns: str) -> 'RuleBuilder':
        return self.then_validate_across_cells(bodies.unique_combination(columns))

    def then_valid_email(self, column: str) -> 'RuleBuilder':
        return self.then(bodies.valid_email(column))

    def then_valid_phone_number(self, column: str) -> 'RuleBuilder':
        return self.then(bodies.valid_phone_number(column))

    # --- Build ----------------------------------------------------------------

    def build(self) -> Rule:
        """Freeze the draft.

        Raises:
            IncompleteRuleError: Name empty, no validator, or no target column.
        """
        return Rule(
            name=self._name,
            target_columns=tuple(self._targets),
            dependency_columns=tuple(self._dependencies),
            guard=self._guard,
            validator=self._validator,
            async_validator=self._async_validator,
            cross_row_validator=self._cross_row_validator,
            severity=self._severity,
            priority=self._priority,
            message=self._message,
            description=self._description,
            enabled=self._enabled,
        )
