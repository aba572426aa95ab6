"""
Tests for ValidationResult and ValidationContext.
"""

import math

import pytest

from gridquality.quality.context import ValidationContext, is_missing
from gridquality.quality.result import Severity, ValidationResult


class TestValidationResult:

    def test_success_is_valid(self):
        result = ValidationResult.success()
        assert result.is_valid is True
        assert result.message == ''
        assert str(result) == 'Valid'

    def test_failure_needs_message(self):
        with pytest.raises(ValueError):
            ValidationResult(is_valid=False, severity=Severity.ERROR, message='')

    def test_factories_set_severity(self):
        assert ValidationResult.error('e').severity is Severity.ERROR
        assert ValidationResult.warning('w').severity is Severity.WARNING
        assert ValidationResult.info('i').severity is Severity.INFO
        assert ValidationResult.warning('w').is_valid is False

    def test_severity_ordering(self):
        assert Severity.INFO < Severity.WARNING < Severity.ERROR
        assert Severity.WARNING.label == 'Warning'

    def test_is_error_only_for_error_severity(self):
        assert ValidationResult.error('x').is_error
        assert not ValidationResult.warning('x').is_error
        assert not ValidationResult.success().is_error

    def test_combine_joins_messages_and_takes_max_severity(self):
        merged = ValidationResult.combine([
            ValidationResult.warning('too long'),
            ValidationResult.success(),
            ValidationResult.error('required'),
        ])
        assert merged.is_valid is False
        assert merged.severity is Severity.ERROR
        assert merged.message == 'too long; required'
        assert merged.messages == ('too long', 'required')

    def test_combine_without_failures_is_success(self):
        merged = ValidationResult.combine([ValidationResult.success()] * 3)
        assert merged.is_valid is True

    def test_combine_empty(self):
        assert ValidationResult.combine([]).is_valid is True

    def test_to_dict(self):
        d = ValidationResult.warning('careful').to_dict()
        assert d == {
            'is_valid': False,
            'severity': 'Warning',
            'message': 'careful',
            'messages': ['careful'],
        }


class TestIsMissing:

    @pytest.mark.parametrize('value', [None, '', '   ', float('nan')])
    def test_missing(self, value):
        assert is_missing(value) is True

    @pytest.mark.parametrize('value', [0, 'x', False, [1]])
    def test_present(self, value):
        assert is_missing(value) is False


class TestValidationContext:

    def test_current_value_defaults_to_row_value(self):
        ctx = ValidationContext(0, {'A': 1, 'B': 2}, current_column='B')
        assert ctx.value == 2
        assert ctx.get_value('A') == 1

    def test_pending_value_overrides_current_column(self):
        ctx = ValidationContext(0, {'A': 1}).for_cell('A', 99)
        assert ctx.get_value('A') == 99
        assert ctx.current_value == 99

    def test_unknown_current_column_rejected(self):
        with pytest.raises(ValueError):
            ValidationContext(0, {'A': 1}, current_column='Z')

    def test_for_cell_unknown_column_rejected(self):
        with pytest.raises(ValueError):
            ValidationContext(0, {'A': 1}).for_cell('Z')

    def test_missing_column_reads_as_none(self):
        ctx = ValidationContext(3, {'A': 1})
        assert ctx.get_value('Nope') is None
        assert ctx.has_value('Nope') is False

    def test_string_value(self):
        ctx = ValidationContext(0, {'A': None, 'B': 42, 'C': '  '})
        assert ctx.get_string_value('A') == ''
        assert ctx.get_string_value('B') == '42'
        assert ctx.get_string_value('C') == '  '
        assert ctx.has_value('C') is False

    def test_column_values_read_only(self):
        source = {'A': 1}
        ctx = ValidationContext(0, source)
        source['A'] = 2
        assert ctx.get_value('A') == 1
        with pytest.raises(TypeError):
            ctx.column_values['A'] = 5

    def test_nan_has_no_value(self):
        ctx = ValidationContext(0, {'A': math.nan})
        assert ctx.has_value('A') is False
