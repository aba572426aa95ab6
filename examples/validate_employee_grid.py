#!/usr/bin/env python3
"""
Example: Validate an editable employee grid.

Runs the ready-made employee rule set over a small DataFrame, prints the
report, then simulates a user typing into the grid and shows the debounced
per-cell results as they arrive.

Usage:
    python examples/validate_employee_grid.py
"""

import logging
import sys
from pathlib import Path

import pandas as pd

# Allow imports from src/
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from gridquality import (
    CallbackSink,
    DataFrameAccessor,
    GridValidator,
    ThrottlingConfig,
    ValidationScheduler,
    create_employee_ruleset,
)


def build_grid() -> pd.DataFrame:
    return pd.DataFrame({
        'EmployeeId': ['E1', 'E2', 'E3', 'E4'],
        'FirstName': ['Ann', 'Ben', 'Cid', ''],
        'LastName': ['Smith', 'Jones', 'Brown', 'Stone'],
        'Email': ['ann@corp.com', 'ben@corp', 'cid@corp.com', 'ann@corp.com'],
        'Salary': [90000, 50000, 95000, -10],
        'EmployeeType': ['Manager', 'Employee', 'Employee', 'Employee'],
        'ManagerId': [None, 'E1', 'E1', None],
    })


def print_cell(row: int, column: str, result) -> None:
    print(f"  row {row:<3} {column:<12} {result}")


def main():
    logging.basicConfig(level=logging.WARNING, format='%(levelname)s %(name)s: %(message)s')

    df = build_grid()
    ruleset = create_employee_ruleset()

    # --- Whole-grid report ---
    report = GridValidator('employees', ruleset=ruleset).validate(df)
    report.print_summary()
    report.print_failures()

    # --- Live editing ---
    print("\nSimulating edits (150 ms debounce):")
    accessor = DataFrameAccessor(df)
    config = ThrottlingConfig.high_responsiveness()
    with ValidationScheduler(ruleset, accessor, CallbackSink(print_cell), config) as scheduler:
        # Keystrokes into one cell coalesce into a single evaluation
        for draft in ['b', 'ben@', 'ben@corp', 'ben@corp.co', 'ben@corp.com']:
            scheduler.notify_cell_changed(1, 'Email', draft)
        accessor.set_cell_value(1, 'Email', 'ben@corp.com')

        accessor.set_cell_value(3, 'Salary', 42000)
        scheduler.notify_cell_changed(3, 'Salary')

        # Re-validates ManagerId of row 0 through its dependency on EmployeeType
        scheduler.notify_cell_changed(0, 'EmployeeType', 'Employee')

        scheduler.wait_idle(timeout=10)
        telemetry = scheduler.get_telemetry()

    print(f"\nTelemetry: {telemetry}")


if __name__ == '__main__':
    main()
