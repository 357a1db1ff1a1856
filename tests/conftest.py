import pytest

from taxtracker.app import TrackerApp, create_app
from taxtracker.db import RecordStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "tracker.db"


@pytest.fixture
async def store(db_path) -> RecordStore:
    return await RecordStore(db_path).open()


@pytest.fixture
async def app(db_path) -> TrackerApp:
    return await create_app(db_path)
