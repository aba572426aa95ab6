"""
gridquality: rule-based validation for editable tabular grids.

Declare rules with a fluent builder, group them into rule sets and either
validate a whole DataFrame at once or let a ValidationScheduler re-validate
cells as the user edits them.
"""

from .cancellation import CancellationToken
from .errors import (
    ConfigurationError,
    DuplicateRuleError,
    GridQualityError,
    IncompleteRuleError,
    ValidationCancelled,
)
from .quality import (
    CellResult,
    ExecutionMode,
    GridValidationReport,
    GridValidator,
    Rule,
    RuleBuilder,
    RuleSet,
    RuleSetBuilder,
    Severity,
    ValidationContext,
    ValidationResult,
    create_basic_ruleset,
    create_employee_ruleset,
    create_project_ruleset,
)
from .data import CallbackSink, CollectingSink, DataAccessor, DataFrameAccessor, NotificationSink
from .scheduling import ConcurrencyLimiter, ThrottlingConfig, ValidationScheduler

__version__ = '0.1.0'
