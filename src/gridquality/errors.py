"""
Exception hierarchy.

Configuration problems are raised immediately to the caller. Data problems
are never exceptions: they travel as ValidationResult values.
"""


class GridQualityError(Exception):
    """Base class for all errors raised by gridquality."""


class ConfigurationError(GridQualityError):
    """A rule, rule set or throttling config was declared incorrectly."""


class IncompleteRuleError(ConfigurationError):
    """RuleBuilder.build() was called on a draft missing required parts."""


class DuplicateRuleError(ConfigurationError):
    """A rule with the same name already exists in the rule set."""


class ValidationCancelled(GridQualityError):
    """An evaluation was abandoned because a newer edit superseded it."""
