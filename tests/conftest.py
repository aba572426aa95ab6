"""Shared test fixtures and path setup."""
import sys
from pathlib import Path

# Add src/ to sys.path so tests run without an installed package
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
import pandas as pd

from gridquality.data.accessor import DataFrameAccessor
from gridquality.data.sink import CollectingSink


# --- Grid fixtures ---

@pytest.fixture
def people_df():
    """Small contact grid: one duplicate email, one bad age, one blank name."""
    return pd.DataFrame({
        'Name': ['Alice', 'Bob', 'Carol', ''],
        'Age': [30, 121, 0, 45],
        'Email': ['a@x.com', 'b@x.com', 'a@x.com', 'not-an-email'],
    })


@pytest.fixture
def people(people_df):
    return DataFrameAccessor(people_df)


@pytest.fixture
def employee_df():
    """Employees with a manager hierarchy; E3 out-earns their manager E1."""
    return pd.DataFrame({
        'EmployeeId': ['E1', 'E2', 'E3'],
        'FirstName': ['Ann', 'Ben', 'Cid'],
        'LastName': ['Smith', 'Jones', 'Brown'],
        'Email': ['ann@corp.com', 'ben@corp.com', 'cid@corp.com'],
        'Salary': [90000, 50000, 95000],
        'EmployeeType': ['Manager', 'Employee', 'Employee'],
        'ManagerId': [None, 'E1', 'E1'],
    })


@pytest.fixture
def project_df():
    return pd.DataFrame({
        'ProjectName': ['Apollo', 'Gemini', 'Mercury'],
        'ProjectCode': ['P-1', 'P-2', 'P-1'],
        'StartDate': ['2024-01-01', '2024-06-01', '2024-03-01'],
        'EndDate': ['2024-12-31', '2024-05-01', None],
        'Status': ['Active', 'Active', 'Completed'],
        'ActualHours': [None, None, None],
    })


@pytest.fixture
def sink():
    return CollectingSink()
