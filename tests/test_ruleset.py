"""
Tests for RuleSet selection, evaluation modes and whole-grid passes.
"""

import asyncio
import threading

import pandas as pd
import pytest

from gridquality.cancellation import CancellationToken
from gridquality.data.accessor import DataFrameAccessor
from gridquality.errors import DuplicateRuleError, ValidationCancelled
from gridquality.quality.builder import RuleBuilder
from gridquality.quality.context import ValidationContext
from gridquality.quality.result import Severity, ValidationResult
from gridquality.quality.ruleset import ExecutionMode, RuleSet
from gridquality.scheduling.limiter import ConcurrencyLimiter
from gridquality.scheduling.throttling import ThrottlingConfig


def failing(name, column='A', severity=Severity.ERROR, priority=100, calls=None):
    def check(ctx):
        if calls is not None:
            calls.append(name)
        return False
    return (
        RuleBuilder(name)
        .for_columns(column)
        .then(check)
        .with_message(f"{name} failed")
        .with_severity(severity)
        .with_priority(priority)
        .build()
    )


def passing(name, column='A', priority=100, calls=None):
    def check(ctx):
        if calls is not None:
            calls.append(name)
        return True
    return RuleBuilder(name).for_columns(column).then(check).with_priority(priority).build()


def cell(column='A', row=0, **values):
    values.setdefault(column, 1)
    return ValidationContext(row, values, current_column=column)


class TestRuleManagement:

    def test_add_rule_is_chainable(self):
        rs = RuleSet('s').add_rule(passing('a')).add_rule(passing('b'))
        assert len(rs) == 2
        assert 'a' in rs
        assert rs.has_rules

    def test_duplicate_name_rejected(self):
        rs = RuleSet('s').add_rule(passing('a'))
        with pytest.raises(DuplicateRuleError):
            rs.add_rule(failing('a'))

    def test_remove_and_get(self):
        rs = RuleSet('s').add_rules([passing('a'), passing('b')])
        rs.remove_rule('a')
        assert rs.get_rule('a') is None
        assert rs.get_rule('b').name == 'b'
        with pytest.raises(KeyError):
            rs.remove_rule('a')

    def test_set_enabled(self):
        rs = RuleSet('s').add_rule(failing('a'))
        rs.set_enabled('a', False)
        assert rs.rules_for_column('A') == []
        assert rs.evaluate_cell(cell()).is_valid

    def test_rules_for_column_sorted_by_priority_stably(self):
        rs = RuleSet('s').add_rules([
            passing('late', priority=50),
            passing('first', priority=1),
            passing('late2', priority=50),
            passing('other', column='B', priority=0),
        ])
        assert [r.name for r in rs.rules_for_column('A')] == ['first', 'late', 'late2']

    def test_dependent_columns(self):
        rule = (
            RuleBuilder('cond')
            .for_columns('ManagerId')
            .depends_on('EmployeeType')
            .then_required('ManagerId')
            .build()
        )
        rs = RuleSet('s').add_rule(rule)
        assert rs.dependent_columns('EmployeeType') == ['ManagerId']
        assert rs.dependent_columns('ManagerId') == []

    def test_check_columns(self):
        rule = RuleBuilder('r').for_columns('A', 'Z').depends_on('Y').then(lambda ctx: True).build()
        problems = RuleSet('s').add_rule(rule).check_columns(['A', 'B'])
        assert problems == [
            "Rule 'r': target column 'Z' not found",
            "Rule 'r': dependency column 'Y' not found",
        ]

    def test_diagnostics(self):
        rs = RuleSet('s').add_rules([
            failing('a', severity=Severity.WARNING),
            RuleBuilder('u').for_columns('B').then_unique_in_column('B').build(),
        ])
        rs.set_enabled('a', False)
        d = rs.diagnostics()
        assert d.total_rules == 2
        assert d.enabled_rules == 1
        assert d.disabled_rules == 1
        assert d.cross_row_rules == 1
        assert d.rules_by_severity == {'Warning': 1, 'Error': 1}
        assert d.to_dict()['columns'] == ['A', 'B']


class TestEvaluateCell:

    def test_no_rules_is_success(self):
        assert RuleSet('s').evaluate_cell(cell()).is_valid

    def test_needs_current_column(self):
        with pytest.raises(ValueError):
            RuleSet('s').evaluate_cell(ValidationContext(0, {'A': 1}))

    def test_process_all_merges_failures(self):
        rs = RuleSet('s').add_rules([
            failing('e1'),
            failing('w', severity=Severity.WARNING),
            failing('e2'),
        ])
        result = rs.evaluate_cell(cell())
        assert result.message == 'e1 failed; w failed; e2 failed'
        assert result.severity is Severity.ERROR

    def test_stop_on_first_error_skips_later_rules(self):
        calls = []
        rs = RuleSet('s', execution_mode=ExecutionMode.STOP_ON_FIRST_ERROR).add_rules([
            failing('err', priority=1, calls=calls),
            failing('warn', severity=Severity.WARNING, priority=2, calls=calls),
        ])
        result = rs.evaluate_cell(cell())
        assert calls == ['err']
        assert result.messages == ('err failed',)

    def test_stop_on_first_error_ignores_warnings(self):
        calls = []
        rs = RuleSet('s', execution_mode=ExecutionMode.STOP_ON_FIRST_ERROR).add_rules([
            failing('warn', severity=Severity.WARNING, priority=1, calls=calls),
            failing('err', priority=2, calls=calls),
            passing('after', priority=3, calls=calls),
        ])
        rs.evaluate_cell(cell())
        assert calls == ['warn', 'err']

    def test_continue_with_warnings_only_runs_lower_severity_after_error(self):
        calls = []
        rs = RuleSet('s', execution_mode=ExecutionMode.CONTINUE_WITH_WARNINGS).add_rules([
            failing('err', priority=1, calls=calls),
            failing('err2', priority=2, calls=calls),
            failing('warn', severity=Severity.WARNING, priority=3, calls=calls),
        ])
        result = rs.evaluate_cell(cell())
        assert calls == ['err', 'warn']
        assert result.messages == ('err failed', 'warn failed')

    def test_guard_false_counts_as_success(self):
        rule = (
            RuleBuilder('g')
            .for_columns('A')
            .when_column_is_empty('B')
            .then(lambda ctx: False)
            .build()
        )
        rs = RuleSet('s').add_rule(rule)
        assert rs.evaluate_cell(cell(B='filled')).is_valid

    def test_cross_row_rules_never_see_own_row(self):
        seen = []

        def check(ctx, others):
            seen.append(sorted(o.row_index for o in others))
            return True

        rule = RuleBuilder('x').for_columns('A').then_validate_across_cells(check).build()
        rs = RuleSet('s').add_rule(rule)
        all_rows = [ValidationContext(i, {'A': i}) for i in range(3)]
        rs.evaluate_cell(all_rows[1].for_cell('A'), all_rows)
        assert seen == [[0, 2]]

    def test_cross_row_rules_without_dataset_see_nothing(self):
        seen = []
        rule = (
            RuleBuilder('x')
            .for_columns('A')
            .then_validate_across_cells(lambda ctx, others: seen.append(len(others)) or True)
            .build()
        )
        RuleSet('s').add_rule(rule).evaluate_cell(cell())
        assert seen == [0]

    def test_cancelled_token_stops_evaluation(self):
        token = CancellationToken()
        token.cancel()
        rs = RuleSet('s').add_rule(passing('a'))
        with pytest.raises(ValidationCancelled):
            rs.evaluate_cell(cell(), cancel_token=token)

    def test_fault_in_one_rule_does_not_stop_others(self):
        def boom(ctx):
            raise KeyError('x')

        rs = RuleSet('s').add_rules([
            RuleBuilder('boom').for_columns('A').then(boom).build(),
            failing('next'),
        ])
        result = rs.evaluate_cell(cell())
        assert len(result.messages) == 2
        assert result.messages[0].startswith("Validation error in rule 'boom'")

    def test_evaluate_cell_async(self):
        async def check(ctx):
            await asyncio.sleep(0)
            return ValidationResult.info('note')

        rs = RuleSet('s').add_rule(RuleBuilder('a').for_columns('A').then_async(check).build())
        result = asyncio.run(rs.evaluate_cell_async(cell()))
        assert result.severity is Severity.INFO
        assert result.message == 'note'


class TestClone:

    def test_clone_is_independent(self):
        original = RuleSet('s', throttling=ThrottlingConfig(debounce_ms=100)).add_rule(passing('a'))
        copy = original.clone()
        copy.add_rule(passing('b'))
        copy.throttling.debounce_ms = 999
        copy.execution_mode = ExecutionMode.STOP_ON_FIRST_ERROR
        assert len(original) == 1
        assert original.throttling.debounce_ms == 100
        assert original.execution_mode is ExecutionMode.PROCESS_ALL


class TestGridPasses:

    @pytest.fixture
    def ruleset(self):
        return (
            RuleSet('people')
            .add_rule(RuleBuilder('name').for_columns('Name').then_required('Name').build())
            .add_rule(RuleBuilder('age').for_columns('Age').then_in_range('Age', 0, 120).build())
            .add_rule(RuleBuilder('email').for_columns('Email').then_unique_in_column('Email').build())
        )

    def test_validate_row(self, ruleset, people):
        results = ruleset.validate_row(people, 0)
        assert set(results) == {'Name', 'Age', 'Email'}
        assert results['Age'].is_valid
        assert not results['Email'].is_valid

    def test_validate_all_cells(self, ruleset, people):
        reported = []
        results = ruleset.validate_all_cells(people, on_result=lambda r, c, res: reported.append((r, c)))
        failed = sorted(key for key, res in results.items() if not res.is_valid)
        assert failed == [(0, 'Email'), (1, 'Age'), (2, 'Email'), (3, 'Name')]
        assert len(reported) == 12

    def test_validate_cell_async_returns_messages(self, ruleset, people):
        messages = asyncio.run(ruleset.validate_cell_async(people, 1, 'Age'))
        assert messages == ['Age must be between 0 and 120']
        assert asyncio.run(ruleset.validate_cell_async(people, 0, 'Age')) == []

    def test_validate_all_rows_async_batches(self, ruleset, people):
        ruleset.throttling = ThrottlingConfig(batch_size=1, max_concurrent_validations=2)
        limiter = ConcurrencyLimiter(2)
        seen = []
        lock = threading.Lock()

        def record(row, column, result):
            with lock:
                seen.append((row, column))

        ok = asyncio.run(ruleset.validate_all_rows_async(people, limiter=limiter, on_result=record))
        assert ok is False
        assert len(seen) == 12
        assert limiter.acquired == 4
        assert limiter.peak_active <= 2

    def test_validate_all_rows_async_inline_when_async_disabled(self, ruleset):
        ruleset.throttling = ThrottlingConfig.debug()
        accessor = DataFrameAccessor(pd.DataFrame({
            'Name': ['a', 'b'], 'Age': [1, 2], 'Email': ['x@y.z', 'q@y.z'],
        }))
        limiter = ConcurrencyLimiter(1)
        assert asyncio.run(ruleset.validate_all_rows_async(accessor, limiter=limiter)) is True
        assert limiter.acquired == 0

    def test_validate_all_rows_async_without_batching(self, ruleset, people):
        ruleset.throttling = ThrottlingConfig(enable_batch=False)
        limiter = ConcurrencyLimiter(3)
        asyncio.run(ruleset.validate_all_rows_async(people, limiter=limiter))
        assert limiter.acquired == 1

    def test_inline_pass_awaits_async_validators(self):
        async def always_ok(ctx):
            await asyncio.sleep(0)
            return True

        ruleset = RuleSet('inline', throttling=ThrottlingConfig.debug())
        ruleset.add_rule(RuleBuilder('ok').for_columns('A').then_async(always_ok).build())
        accessor = DataFrameAccessor(pd.DataFrame({'A': [1, 2]}))
        reported = []

        ok = asyncio.run(ruleset.validate_all_rows_async(
            accessor, on_result=lambda r, c, res: reported.append(res)
        ))
        assert ok is True
        assert len(reported) == 2
        assert all(res.is_valid for res in reported)

    def test_inline_pass_reports_async_failures(self):
        async def too_big(ctx):
            return ctx.value < 10

        ruleset = RuleSet('inline', throttling=ThrottlingConfig.debug())
        ruleset.add_rule(
            RuleBuilder('small').for_columns('A').then_async(too_big).with_message('too big').build()
        )
        accessor = DataFrameAccessor(pd.DataFrame({'A': [1, 20]}))
        reported = {}

        ok = asyncio.run(ruleset.validate_all_rows_async(
            accessor, on_result=lambda r, c, res: reported.setdefault(r, res)
        ))
        assert ok is False
        assert reported[0].is_valid
        assert reported[1].message == 'too big'

    def test_validate_all_cells_from_running_loop(self):
        async def always_ok(ctx):
            return True

        ruleset = RuleSet('nested')
        ruleset.add_rule(RuleBuilder('ok').for_columns('A').then_async(always_ok).build())
        accessor = DataFrameAccessor(pd.DataFrame({'A': [1, 2]}))

        async def caller():
            return ruleset.validate_all_cells(accessor)

        results = asyncio.run(caller())
        assert all(res.is_valid for res in results.values())
