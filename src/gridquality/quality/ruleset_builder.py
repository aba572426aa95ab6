"""
Fluent construction of RuleSets, plus ready-made rule sets for common
business grids (employees, projects).
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Sequence

from ..errors import ConfigurationError
from ..scheduling.throttling import ThrottlingConfig
from .builder import RuleBuilder
from .context import ValidationContext, is_missing
from .result import Severity, ValidationResult
from .rules import Rule
from .ruleset import ExecutionMode, RuleSet

logger = logging.getLogger(__name__)


class RuleSetBuilder:
    """
    Accumulates rules and settings for a RuleSet.

    Usage:
        ruleset = (
            RuleSet.create("contacts")
            .add_required("Name", "Email")
            .add_email_validation("Email")
            .with_throttling(debounce_ms=200, max_concurrent=3)
            .build()
        )
    """

    def __init__(self, name: str):
        self._ruleset = RuleSet(name)

    # --- Configuration --------------------------------------------------------

    def with_description(self, description: str) -> 'RuleSetBuilder':
        self._ruleset.description = description
        return self

    def with_execution_mode(self, mode: ExecutionMode) -> 'RuleSetBuilder':
        self._ruleset.execution_mode = ExecutionMode(mode)
        return self

    def with_throttling(self, debounce_ms: int = 300, max_concurrent: int = 5) -> 'RuleSetBuilder':
        """Replace the throttling config; async and batch validation are re-enabled."""
        self._ruleset.throttling = ThrottlingConfig(
            debounce_ms=debounce_ms,
            max_concurrent_validations=max_concurrent,
        )
        return self

    def with_throttling_config(self, config: ThrottlingConfig) -> 'RuleSetBuilder':
        self._ruleset.throttling = config.clone()
        return self

    def disable_async_validation(self) -> 'RuleSetBuilder':
        self._ruleset.throttling.enable_async = False
        return self

    def disable_batch_validation(self) -> 'RuleSetBuilder':
        self._ruleset.throttling.enable_batch = False
        return self

    # --- Rules ----------------------------------------------------------------

    def add_rule(self, rule: Rule) -> 'RuleSetBuilder':
        self._ruleset.add_rule(rule)
        return self

    def add_rules(self, rules: Iterable[Rule]) -> 'RuleSetBuilder':
        self._ruleset.add_rules(rules)
        return self

    def add_required(self, *columns: str) -> 'RuleSetBuilder':
        for column in columns:
            self.add_rule(
                RuleBuilder(f"Required_{column}")
                .for_columns(column)
                .then_required(column)
                .build()
            )
        return self

    def add_email_validation(self, column: str, required: bool = False) -> 'RuleSetBuilder':
        """Email format check. Blank cells pass the format check itself."""
        builder = RuleBuilder(f"Email_{column}").for_columns(column).then_valid_email(column)
        if required:
            builder.when_column_has_value(column)
        return self.add_rule(builder.build())

    def add_phone_validation(self, column: str, required: bool = False) -> 'RuleSetBuilder':
        builder = RuleBuilder(f"Phone_{column}").for_columns(column).then_valid_phone_number(column)
        if required:
            builder.when_column_has_value(column)
        return self.add_rule(builder.build())

    def add_range_validation(self, column: str, min_value: Any, max_value: Any) -> 'RuleSetBuilder':
        return self.add_rule(
            RuleBuilder(f"Range_{column}")
            .for_columns(column)
            .then_in_range(column, min_value, max_value)
            .build()
        )

    def add_unique_validation(self, column: str) -> 'RuleSetBuilder':
        return self.add_rule(
            RuleBuilder(f"Unique_{column}")
            .for_columns(column)
            .then_unique_in_column(column)
            .build()
        )

    def add_composite_unique_validation(self, *columns: str) -> 'RuleSetBuilder':
        """Every row's combination of ``columns`` must be unique.

        The rule targets and depends on all of the columns, so editing any of
        them re-validates the whole key.
        """
        return self.add_rule(
            RuleBuilder(f"UniqueCombination_{'_'.join(columns)}")
            .for_columns(*columns)
            .depends_on(*columns)
            .then_unique_combination(*columns)
            .build()
        )

    def add_date_range_validation(self, start_column: str, end_column: str) -> 'RuleSetBuilder':
        return self.add_rule(
            RuleBuilder(f"DateRange_{start_column}_{end_column}")
            .for_columns(start_column, end_column)
            .depends_on(start_column, end_column)
            .then_start_before_end(start_column, end_column)
            .build()
        )

    def add_conditional_required(self, target_column: str, condition_column: str, condition_value: Any) -> 'RuleSetBuilder':
        """``target_column`` is required while ``condition_column`` equals ``condition_value``."""
        return self.add_rule(
            RuleBuilder(f"ConditionalRequired_{target_column}")
            .for_columns(target_column)
            .depends_on(condition_column)
            .when_column_equals(condition_column, condition_value)
            .then_required(target_column)
            .with_message(f"{target_column} is required when {condition_column} is '{condition_value}'")
            .build()
        )

    # --- Business presets -----------------------------------------------------

    def add_employee_validation_rules(self) -> 'RuleSetBuilder':
        return (
            self.add_required("FirstName", "LastName", "Email")
            .add_email_validation("Email", required=True)
            .add_unique_validation("Email")
            .add_range_validation("Salary", 0, 999999)
            .add_conditional_required("ManagerId", "EmployeeType", "Employee")
            .add_rule(
                RuleBuilder("ManagerSalaryCheck")
                .for_columns("Salary")
                .depends_on("ManagerId", "EmployeeType")
                .when(lambda ctx: ctx.get_string_value("EmployeeType") == "Employee"
                      and ctx.has_value("ManagerId"))
                .then_validate_across_cells(_salary_below_manager)
                .with_severity(Severity.WARNING)
                .build()
            )
        )

    def add_project_validation_rules(self) -> 'RuleSetBuilder':
        return (
            self.add_required("ProjectName", "StartDate")
            .add_date_range_validation("StartDate", "EndDate")
            .add_unique_validation("ProjectCode")
            .add_conditional_required("EndDate", "Status", "Completed")
            .add_conditional_required("ActualHours", "Status", "Completed")
        )

    # --- Build ----------------------------------------------------------------

    def build(self) -> RuleSet:
        """
        Raises:
            ConfigurationError: The rule set has no name.
        """
        if not self._ruleset.name or not self._ruleset.name.strip():
            raise ConfigurationError("RuleSet name is required")
        for warning in self._ruleset.throttling.configuration_warnings():
            logger.warning("Rule set '%s': %s", self._ruleset.name, warning)
        return self._ruleset


def _as_decimal(value: Any) -> Optional[Decimal]:
    if is_missing(value):
        return Decimal(0)
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return None if parsed.is_nan() else parsed


def _salary_below_manager(ctx: ValidationContext, other_rows: Sequence[ValidationContext]) -> ValidationResult:
    manager_id = ctx.get_string_value("ManagerId")
    manager = next(
        (row for row in other_rows if row.get_string_value("EmployeeId") == manager_id),
        None,
    )
    if manager is None:
        return ValidationResult.success()

    salary = _as_decimal(ctx.value)
    manager_salary = _as_decimal(manager.get_value("Salary"))
    if salary is None or manager_salary is None:
        return ValidationResult.success()
    if salary > manager_salary:
        return ValidationResult.error("Employee salary cannot exceed manager's salary")
    return ValidationResult.success()


# --- Ready-made rule sets -----------------------------------------------------

def create_basic_ruleset(name: str, *required_fields: str) -> RuleSet:
    return (
        RuleSetBuilder(name)
        .add_required(*required_fields)
        .with_execution_mode(ExecutionMode.PROCESS_ALL)
        .with_throttling(300, 5)
        .build()
    )


def create_employee_ruleset() -> RuleSet:
    return (
        RuleSetBuilder("EmployeeValidation")
        .with_description("Validation rules for employee data")
        .add_employee_validation_rules()
        .with_execution_mode(ExecutionMode.PROCESS_ALL)
        .with_throttling(500, 3)
        .build()
    )


def create_project_ruleset() -> RuleSet:
    return (
        RuleSetBuilder("ProjectValidation")
        .with_description("Validation rules for project data")
        .add_project_validation_rules()
        .with_execution_mode(ExecutionMode.PROCESS_ALL)
        .with_throttling(300, 5)
        .build()
    )
