"""Shared test fixtures."""

from pathlib import Path

import pytest

from attendance import ColumnMapping
from attendance.roster import Roster, read_roster
from attendance.verification import CheckInSession


DATA_DIR = Path(__file__).resolve().parent / 'data'


@pytest.fixture(scope='session')
def data_dir() -> Path:
    """Path to the test data directory."""
    return DATA_DIR


@pytest.fixture
def roster() -> Roster:
    """Two-person roster; Bob has no email."""
    return Roster([
        {'ID': 'A1', 'Name': 'Alice', 'Email': 'a@x.com'},
        {'ID': 'B2', 'Name': 'Bob'},
    ])


@pytest.fixture
def mapping() -> ColumnMapping:
    return ColumnMapping(id='ID', name='Name', email='Email')


@pytest.fixture
def session(roster, mapping) -> CheckInSession:
    """Fresh check-in session on the two-person roster."""
    return CheckInSession(roster, mapping)


@pytest.fixture(scope='session')
def sample_roster() -> Roster:
    """All attendees from sample_roster.csv."""
    return read_roster(DATA_DIR / 'sample_roster.csv')
