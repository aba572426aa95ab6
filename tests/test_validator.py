"""
Tests for the GridValidator orchestrator and GridValidationReport.
"""

import logging

import pandas as pd

from gridquality import GridValidator, Rule, Severity
from gridquality.quality.ruleset_builder import create_project_ruleset


def age_rule():
    return Rule.create('age').for_columns('Age').then_in_range('Age', 0, 120).build()


def name_rule():
    return Rule.create('name').for_columns('Name').then_required('Name').build()


def email_rule():
    return (
        Rule.create('email_unique')
        .for_columns('Email')
        .then_unique_in_column('Email')
        .with_severity(Severity.WARNING)
        .build()
    )


class TestGridValidator:

    def test_validate_clean_data(self):
        df = pd.DataFrame({'Name': ['a', 'b'], 'Age': [1, 2]})
        report = GridValidator('test').add_rules([age_rule(), name_rule()]).validate(df)
        assert report.passed is True
        assert report.pass_count == 4
        assert report.fail_count == 0

    def test_validate_messy_data(self, people_df):
        v = GridValidator('test').add_rules([age_rule(), name_rule(), email_rule()])
        report = v.validate(people_df)
        assert report.passed is False
        assert report.fail_count == 4
        assert [(c.row, c.column) for c in report.failures] == [
            (0, 'Email'), (1, 'Age'), (2, 'Email'), (3, 'Name'),
        ]

    def test_rule_count(self):
        v = GridValidator('test')
        assert v.rule_count == 0
        v.add_rule(age_rule())
        v.add_rule(name_rule())
        assert v.rule_count == 2

    def test_wraps_existing_ruleset(self, project_df):
        v = GridValidator('projects', ruleset=create_project_ruleset())
        report = v.validate(project_df)
        assert report.rule_count == len(v.ruleset)
        assert report.fail_count == 6

    def test_missing_columns_are_logged(self, caplog):
        df = pd.DataFrame({'Name': ['a']})
        v = GridValidator('test').add_rules([age_rule(), name_rule()])
        with caplog.at_level(logging.WARNING, logger='gridquality'):
            report = v.validate(df)
        assert "target column 'Age' not found" in caplog.text
        assert report.total_cells == 1

    def test_report_row_and_column_count(self, people_df):
        report = GridValidator('test').add_rule(age_rule()).validate(people_df)
        assert report.row_count == 4
        assert report.column_count == 3


class TestGridValidationReport:

    def test_to_dict_structure(self, people_df):
        v = GridValidator('people_check').add_rules([age_rule(), email_rule()])
        d = v.validate(people_df).to_dict()
        assert d['name'] == 'people_check'
        assert d['passed'] is False
        assert d['summary']['total_cells'] == 8
        assert d['summary']['failed'] == 3
        assert d['summary']['by_severity'] == {'Info': 0, 'Warning': 2, 'Error': 1}
        assert d['failures'][0] == {
            'row': 0,
            'column': 'Email',
            'severity': 'Warning',
            'message': "Value 'a@x.com' in Email must be unique",
        }

    def test_to_frame(self, people_df):
        frame = GridValidator('t').add_rule(age_rule()).validate(people_df).to_frame()
        assert list(frame.columns) == ['row', 'column', 'is_valid', 'severity', 'message']
        assert len(frame) == 4
        bad = frame[~frame['is_valid']]
        assert bad['row'].tolist() == [1]
        assert bad['severity'].tolist() == ['Error']

    def test_print_summary(self, people_df, capsys):
        GridValidator('people').add_rule(age_rule()).validate(people_df).print_summary()
        out = capsys.readouterr().out
        assert 'FAILED' in out
        assert '3/4 passed' in out

    def test_print_failures(self, people_df, capsys):
        GridValidator('people').add_rule(age_rule()).validate(people_df).print_failures()
        out = capsys.readouterr().out
        assert 'row 1, Age' in out
        assert 'Age must be between 0 and 120' in out

    def test_print_no_failures(self, capsys):
        df = pd.DataFrame({'Age': [5]})
        GridValidator('ok').add_rule(age_rule()).validate(df).print_failures()
        assert 'No failures.' in capsys.readouterr().out
