"""
Grid validation reports.

Collects per-cell outcomes of a whole-grid pass into pass/fail counts,
failure details and a tabular view.
"""

from dataclasses import dataclass
from typing import Dict, List

import pandas as pd

from .result import Severity, ValidationResult


@dataclass(frozen=True)
class CellResult:
    """Merged outcome for one cell."""
    row: int
    column: str
    result: ValidationResult

    @property
    def passed(self) -> bool:
        return self.result.is_valid


@dataclass
class GridValidationReport:
    """
    Structured output from a whole-grid validation run.

    Attributes:
        name: Name of this validation run.
        cells: One entry per validated cell, in row then column order.
        row_count: Number of rows in the validated grid.
        column_count: Number of columns in the validated grid.
        rule_count: Number of rules in the rule set that produced the report.
    """
    name: str
    cells: List[CellResult]
    row_count: int
    column_count: int
    rule_count: int = 0

    @property
    def passed(self) -> bool:
        """True if every cell passed (warnings count as failures)."""
        return all(c.passed for c in self.cells)

    @property
    def pass_count(self) -> int:
        return sum(1 for c in self.cells if c.passed)

    @property
    def fail_count(self) -> int:
        return sum(1 for c in self.cells if not c.passed)

    @property
    def total_cells(self) -> int:
        return len(self.cells)

    @property
    def failures(self) -> List[CellResult]:
        return [c for c in self.cells if not c.passed]

    def cells_by_severity(self) -> Dict[str, int]:
        """Failed-cell counts keyed by severity label."""
        counts = {s.label: 0 for s in Severity}
        for cell in self.failures:
            counts[cell.result.severity.label] += 1
        return counts

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'passed': self.passed,
            'summary': {
                'total_cells': self.total_cells,
                'passed': self.pass_count,
                'failed': self.fail_count,
                'by_severity': self.cells_by_severity(),
                'rows_checked': self.row_count,
                'columns_checked': self.column_count,
                'rules': self.rule_count,
            },
            'failures': [
                {
                    'row': c.row,
                    'column': c.column,
                    'severity': c.result.severity.label,
                    'message': c.result.message,
                }
                for c in self.failures
            ],
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per validated cell: row, column, is_valid, severity, message."""
        columns = ['row', 'column', 'is_valid', 'severity', 'message']
        records = [
            {
                'row': c.row,
                'column': c.column,
                'is_valid': c.passed,
                'severity': c.result.severity.label if not c.passed else None,
                'message': c.result.message or None,
            }
            for c in self.cells
        ]
        return pd.DataFrame.from_records(records, columns=columns)

    def print_summary(self) -> None:
        status = 'PASSED' if self.passed else 'FAILED'
        print(f"\n{'=' * 60}")
        print(f"  Validation: {self.name}")
        print(f"  Status:     {status}")
        print(f"  Cells:      {self.pass_count}/{self.total_cells} passed")
        print(f"  Rules:      {self.rule_count}")
        print(f"  Data:       {self.row_count:,} rows x {self.column_count} columns")
        print(f"{'=' * 60}")

    def print_failures(self) -> None:
        if not self.failures:
            print("  No failures.")
            return

        print(f"\n  Failures ({self.fail_count}):")
        print(f"  {'-' * 56}")
        for c in self.failures:
            print(f"  {c.result.severity.label.upper():<7} row {c.row}, {c.column}")
            for message in c.result.messages:
                print(f"          {message}")
        print()
