from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from attendme.core.config import Settings
from attendme.db.base import Base
from attendme.main import create_client
from attendme.models.attendance_session import AttendanceSession
from attendme.services.kv_store import InMemoryKeyValueStore
import attendme.models  # noqa: F401


class RecordingDispatcher:
    def __init__(self):
        self.delivered: list[tuple[str, dict]] = []

    def deliver(self, user_id: str, payload: dict) -> None:
        self.delivered.append((user_id, payload))

    def types_for(self, user_id: str) -> list[str]:
        return [
            payload["notification"]["notification_type"]
            for recipient, payload in self.delivered
            if recipient == user_id
        ]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def engine():
    engine = create_engine(  # isolated in-memory DB shared across worker threads
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture()
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def store():
    return InMemoryKeyValueStore()


@pytest.fixture()
def settings():
    return Settings(_env_file=None, database_url="sqlite+pysqlite://", log_level="DEBUG")


@pytest.fixture()
def client(settings, session_factory, store, dispatcher):
    return create_client(settings, session_factory=session_factory, store=store, dispatcher=dispatcher)


@pytest.fixture()
def add_session(session_factory):
    """Records that a faculty member already took attendance at a slot."""

    def _add(faculty_id: str, on_date: date, slot_id: str) -> str:
        with session_factory() as db, db.begin():
            record = AttendanceSession(faculty_id=faculty_id, date=on_date, slot_id=slot_id)
            db.add(record)
            db.flush()
            return record.id

    return _add
