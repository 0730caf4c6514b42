"""
Pytest configuration and shared fixtures for all tests.
"""

import pytest
from fastapi.testclient import TestClient

from dataops.main import create_app
from dataops.services.engine import DataOperationsEngine


@pytest.fixture
def simple_rows():
    """Create a small, clean dataset."""
    return [
        {'name': 'Alice', 'age': 25, 'active': True},
        {'name': 'Bob', 'age': 30, 'active': False},
        {'name': 'Charlie', 'age': 35, 'active': True},
    ]


@pytest.fixture
def rows_with_duplicates():
    """Create a dataset with repeated rows."""
    return [
        {'id': 1, 'name': 'Alice', 'value': 100},
        {'id': 2, 'name': 'Bob', 'value': 200},
        {'id': 1, 'name': 'Alice', 'value': 100},
        {'id': 3, 'name': 'Charlie', 'value': 300},
        {'id': 2, 'name': 'Bob', 'value': 200},
    ]


@pytest.fixture
def rows_with_missing():
    """Create a dataset with None and empty-string cells."""
    return [
        {'name': 'Alice', 'age': 25, 'email': 'alice@test.com'},
        {'name': None, 'age': None, 'email': 'bob@test.com'},
        {'name': 'Charlie', 'age': 35, 'email': None},
        {'name': '', 'age': 40, 'email': 'dave@test.com'},
    ]


@pytest.fixture
def messy_rows():
    """Create a dataset with whitespace, case and name-column issues."""
    return [
        {'first_name': '  Alice', 'last_name': 'Smith  ', 'city': 'New York', 'joined': '2023-01-15'},
        {'first_name': 'Bob  ', 'last_name': '  Johnson', 'city': 'new york', 'joined': '2023-02-20'},
        {'first_name': '  Charlie  ', 'last_name': '  Brown  ', 'city': 'Chicago', 'joined': '2023-03-05'},
    ]


@pytest.fixture
def outlier_rows():
    """Ten numeric values with a single high outlier."""
    return [{'amount': value} for value in [1, 2, 3, 4, 5, 6, 7, 8, 9, 100]]


@pytest.fixture
def engine(simple_rows):
    """Engine loaded with the simple dataset."""
    return DataOperationsEngine(simple_rows)


@pytest.fixture
def client():
    """HTTP client against a fresh app (empty session store)."""
    with TestClient(create_app()) as test_client:
        yield test_client
