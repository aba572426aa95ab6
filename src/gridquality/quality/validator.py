"""
Batch validation of DataFrames.

GridValidator runs a RuleSet over every targeted cell of a DataFrame and
produces a GridValidationReport.
"""

import logging
from typing import Iterable, Optional

import pandas as pd

from ..data.accessor import DataFrameAccessor
from .report import CellResult, GridValidationReport
from .rules import Rule
from .ruleset import RuleSet

logger = logging.getLogger(__name__)


class GridValidator:
    """
    Validate a DataFrame against a set of cell rules.

    Usage:
        from gridquality import GridValidator, Rule

        v = GridValidator("employees")
        v.add_rule(Rule.create("age").for_columns("Age").then_in_range("Age", 0, 120).build())

        report = v.validate(df)
        report.print_summary()

        if not report.passed:
            report.print_failures()
    """

    def __init__(self, name: str = 'validation', ruleset: Optional[RuleSet] = None):
        self.name = name
        self._ruleset = ruleset if ruleset is not None else RuleSet(name)

    def add_rule(self, rule: Rule) -> 'GridValidator':
        self._ruleset.add_rule(rule)
        return self

    def add_rules(self, rules: Iterable[Rule]) -> 'GridValidator':
        self._ruleset.add_rules(rules)
        return self

    @property
    def ruleset(self) -> RuleSet:
        return self._ruleset

    @property
    def rule_count(self) -> int:
        return len(self._ruleset)

    def validate(self, df: pd.DataFrame) -> GridValidationReport:
        """
        Run all rules against every cell they target.

        Rule columns missing from ``df`` are logged and skipped.
        """
        accessor = DataFrameAccessor(df)
        for problem in self._ruleset.check_columns(accessor.column_names):
            logger.warning("%s: %s", self.name, problem)

        results = self._ruleset.validate_all_cells(accessor)
        cells = [
            CellResult(row=row, column=column, result=result)
            for (row, column), result in results.items()
        ]
        return GridValidationReport(
            name=self.name,
            cells=cells,
            row_count=len(df),
            column_count=len(df.columns),
            rule_count=self.rule_count,
        )
