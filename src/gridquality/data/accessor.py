"""
Grid data access.

The engine never stores grid data. It reads cells through a DataAccessor,
which the host grid implements. DataFrameAccessor is a ready-made
implementation over a pandas DataFrame.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, List, Sequence

import pandas as pd

from ..quality.context import ValidationContext

logger = logging.getLogger(__name__)


class DataAccessor(ABC):
    """Read-only view of the grid used during evaluation.

    Implementations may be edited concurrently by the host. Every read
    should return a consistent value for the cell at the time of the read;
    no cross-cell snapshot isolation is expected.
    """

    @property
    @abstractmethod
    def row_count(self) -> int:
        """Number of rows currently in the grid."""

    @property
    @abstractmethod
    def column_names(self) -> Sequence[str]:
        """Column names in display order (column metadata)."""

    @abstractmethod
    def get_cell_value(self, row: int, column: str) -> Any:
        """Return the value stored at (row, column)."""

    def get_row_context(self, row: int) -> ValidationContext:
        """Row-level context for ``row`` (no current column)."""
        return ValidationContext(
            row_index=row,
            column_values={c: self.get_cell_value(row, c) for c in self.column_names},
        )

    def get_all_row_contexts(self) -> List[ValidationContext]:
        """Row-level contexts for every row, in row order."""
        return [self.get_row_context(i) for i in range(self.row_count)]

    def has_column(self, column: str) -> bool:
        return column in self.column_names


def _clean(value: Any) -> Any:
    """Map pandas missing markers (NaN, NaT, NA) to None."""
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    return value


class DataFrameAccessor(DataAccessor):
    """DataAccessor over a pandas DataFrame.

    Rows are addressed by position, not by index label. Edits made through
    ``set_cell_value`` are serialized with reads by an internal lock.

    Usage::

        accessor = DataFrameAccessor(df)
        accessor.set_cell_value(0, "Email", "new@example.com")
    """

    def __init__(self, df: pd.DataFrame):
        self._df = df.reset_index(drop=True)
        self._lock = threading.RLock()

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the current data."""
        with self._lock:
            return self._df.copy()

    @property
    def row_count(self) -> int:
        with self._lock:
            return len(self._df)

    @property
    def column_names(self) -> List[str]:
        with self._lock:
            return [str(c) for c in self._df.columns]

    def get_cell_value(self, row: int, column: str) -> Any:
        with self._lock:
            self._check_row(row)
            if column not in self._df.columns:
                raise KeyError(f"Column '{column}' is not in the grid")
            return _clean(self._df.at[row, column])

    def set_cell_value(self, row: int, column: str, value: Any) -> None:
        with self._lock:
            self._check_row(row)
            if column not in self._df.columns:
                raise KeyError(f"Column '{column}' is not in the grid")
            if self._df[column].dtype != object:
                # Grid edits can put text into numeric columns
                self._df[column] = self._df[column].astype(object)
            self._df.at[row, column] = value
            logger.debug("Set row %d column %r", row, column)

    def get_row_context(self, row: int) -> ValidationContext:
        with self._lock:
            self._check_row(row)
            values = {str(k): _clean(v) for k, v in self._df.iloc[row].items()}
        return ValidationContext(row_index=row, column_values=values)

    def get_all_row_contexts(self) -> List[ValidationContext]:
        with self._lock:
            records = self._df.to_dict('records')
        return [
            ValidationContext(
                row_index=i,
                column_values={str(k): _clean(v) for k, v in record.items()},
            )
            for i, record in enumerate(records)
        ]

    def _check_row(self, row: int) -> None:
        if not 0 <= row < len(self._df):
            raise IndexError(f"Row {row} is out of range (0..{len(self._df) - 1})")
