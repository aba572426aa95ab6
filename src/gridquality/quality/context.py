"""
Per-evaluation, read-only view of one grid row.

A context is built fresh for every evaluation and thrown away afterwards.
Rules read column values through it and never touch the data accessor.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

import pandas as pd

_UNSET = object()


def is_missing(value: Any) -> bool:
    """True for None, NaN/NaT and blank strings."""
    if value is None:
        return True
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


@dataclass(frozen=True)
class ValidationContext:
    """Snapshot of a row presented to rule logic.

    Attributes:
        row_index: Zero-based row position in the grid.
        column_values: Column name -> value, in grid column order.
        current_column: Column being validated, or None for a row-level view.
        current_value: Value being validated (may be a pending, uncommitted edit).
    """

    row_index: int
    column_values: Mapping[str, Any] = field(default_factory=dict)
    current_column: Optional[str] = None
    current_value: Any = _UNSET

    def __post_init__(self):
        values = self.column_values
        if not isinstance(values, MappingProxyType):
            values = MappingProxyType(dict(values))
            object.__setattr__(self, 'column_values', values)
        if self.current_column is not None and self.current_column not in values:
            raise ValueError(
                f"current column {self.current_column!r} is not a column of row {self.row_index}"
            )
        if self.current_value is _UNSET:
            current = values[self.current_column] if self.current_column is not None else None
            object.__setattr__(self, 'current_value', current)

    def get_value(self, column: str) -> Any:
        """Return the value of ``column`` in this row, or None.

        The current column reports ``current_value`` so that rules see a
        pending edit before the grid commits it.
        """
        if column == self.current_column:
            return self.current_value
        return self.column_values.get(column)

    def get_string_value(self, column: str) -> str:
        value = self.get_value(column)
        if is_missing(value) and not isinstance(value, str):
            return ''
        return str(value)

    def has_value(self, column: str) -> bool:
        return not is_missing(self.get_value(column))

    @property
    def value(self) -> Any:
        return self.current_value

    def for_cell(self, column: str, value: Any = _UNSET) -> 'ValidationContext':
        """Return a context focused on ``column``.

        Args:
            column: Column to validate.
            value: Pending value; defaults to the value stored in the row.
        """
        if column not in self.column_values:
            raise ValueError(f"unknown column {column!r}")
        current = self.column_values[column] if value is _UNSET else value
        return ValidationContext(
            row_index=self.row_index,
            column_values=self.column_values,
            current_column=column,
            current_value=current,
        )
