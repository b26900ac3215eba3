import pytest

from mm_replicator.config import Settings
from mm_replicator.session import Session
from tests.utils.fake_database import FakeDatabase


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def left():
    return FakeDatabase('left')


@pytest.fixture
def right():
    return FakeDatabase('right')


@pytest.fixture
def session(settings, left, right):
    return Session(settings, left=left, right=right)
