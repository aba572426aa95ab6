"""Rule model, rule sets and whole-grid reporting."""

from .builder import RuleBuilder
from .context import ValidationContext, is_missing
from .report import CellResult, GridValidationReport
from .result import Severity, ValidationResult
from .rules import Rule
from .ruleset import ExecutionMode, RuleSet, RuleSetDiagnostics
from .ruleset_builder import (
    RuleSetBuilder,
    create_basic_ruleset,
    create_employee_ruleset,
    create_project_ruleset,
)
from .validator import GridValidator
from .validators import AsyncValidator, CrossRowValidator, SyncValidator, Validator, ValidatorKind
