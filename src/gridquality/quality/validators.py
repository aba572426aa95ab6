"""
Validator variants attached to a Rule.

A rule carries at most one validator of each kind. The kinds are distinct
types instead of nullable function slots so the engine dispatches on what a
validator is, and always runs them in the same order: sync, async, cross-row.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence, Union

from .context import ValidationContext
from .result import ValidationResult

# A validator body may return a full result or a plain bool.
Outcome = Union[ValidationResult, bool]
SyncFn = Callable[[ValidationContext], Outcome]
AsyncFn = Callable[[ValidationContext], Awaitable[Outcome]]
CrossRowFn = Callable[[ValidationContext, Sequence[ValidationContext]], Outcome]


class ValidatorKind(Enum):
    SYNC = 'sync'
    ASYNC = 'async'
    CROSS_ROW = 'cross_row'


class Validator(ABC):
    """Base class for the three validator kinds."""

    kind: ValidatorKind

    def __init__(self, func: Callable[..., Any]):
        if not callable(func):
            raise TypeError(f"{type(self).__name__} needs a callable, got {func!r}")
        self.func = func

    @abstractmethod
    def __call__(
        self,
        context: ValidationContext,
        other_rows: Sequence[ValidationContext],
    ) -> Union[Outcome, Awaitable[Outcome]]:
        """Run the body; async validators return an awaitable."""

    def __repr__(self) -> str:
        name = getattr(self.func, '__name__', type(self.func).__name__)
        return f"{type(self).__name__}({name})"


class SyncValidator(Validator):
    kind = ValidatorKind.SYNC

    def __call__(self, context, other_rows):
        return self.func(context)


class AsyncValidator(Validator):
    kind = ValidatorKind.ASYNC

    def __call__(self, context, other_rows):
        return self.func(context)


class CrossRowValidator(Validator):
    """Receives the row contexts of every other row in the dataset."""

    kind = ValidatorKind.CROSS_ROW

    def __call__(self, context, other_rows):
        return self.func(context, other_rows)
