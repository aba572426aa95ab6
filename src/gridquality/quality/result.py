"""
Validation outcome container.

A ValidationResult is the only channel through which data problems are
reported. Failures are values, not exceptions, so they can be merged,
short-circuited and pushed to the grid without unwinding anything.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterable, Tuple


class Severity(IntEnum):
    """Ordinal severity. Comparisons follow INFO < WARNING < ERROR."""

    INFO = 0
    WARNING = 1
    ERROR = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one cell against one or more rules.

    Attributes:
        is_valid: False when any rule failed.
        severity: Severity of the failure (highest one for merged results).
        message: Human-readable diagnostic, required when is_valid is False.
        messages: Individual messages that make up ``message`` after a merge.
    """

    is_valid: bool = True
    severity: Severity = Severity.INFO
    message: str = ''
    messages: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.is_valid and not self.message:
            raise ValueError("an invalid ValidationResult needs a message")
        if self.message and not self.messages:
            object.__setattr__(self, 'messages', (self.message,))

    # --- Factories ------------------------------------------------------------

    @classmethod
    def success(cls) -> 'ValidationResult':
        return _SUCCESS

    @classmethod
    def failure(cls, message: str, severity: Severity = Severity.ERROR) -> 'ValidationResult':
        return cls(is_valid=False, severity=Severity(severity), message=message)

    @classmethod
    def error(cls, message: str) -> 'ValidationResult':
        return cls.failure(message, Severity.ERROR)

    @classmethod
    def warning(cls, message: str) -> 'ValidationResult':
        return cls.failure(message, Severity.WARNING)

    @classmethod
    def info(cls, message: str) -> 'ValidationResult':
        return cls.failure(message, Severity.INFO)

    # --- Aggregation ----------------------------------------------------------

    @classmethod
    def combine(cls, results: Iterable['ValidationResult']) -> 'ValidationResult':
        """Merge per-rule results into one cell-level outcome.

        Failing messages are joined with "; " in evaluation order and the
        merged severity is the highest one observed. No failures means
        success.
        """
        failures = [r for r in results if not r.is_valid]
        if not failures:
            return _SUCCESS

        messages: Tuple[str, ...] = tuple(m for r in failures for m in r.messages)
        return cls(
            is_valid=False,
            severity=max(r.severity for r in failures),
            message='; '.join(messages),
            messages=messages,
        )

    @property
    def is_error(self) -> bool:
        return not self.is_valid and self.severity >= Severity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'severity': self.severity.label,
            'message': self.message,
            'messages': list(self.messages),
        }

    def __str__(self) -> str:
        if self.is_valid:
            return 'Valid'
        return f"{self.severity.label}: {self.message}"


_SUCCESS = ValidationResult()
