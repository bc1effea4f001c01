"""Shared fixtures."""
import pytest

from legistrack.database.store import BillStore
from tests.fakes import FakeClock, FakeDatabase, RecordingSleep


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def store(db):
    return BillStore(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)
