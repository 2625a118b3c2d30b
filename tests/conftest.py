import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from calendar_api.core import config  # noqa: E402
from calendar_api.database import Base  # noqa: E402
from calendar_api.models.appointment import Appointment  # noqa: E402
from calendar_api.models.availability import Availability  # noqa: E402
from calendar_api.models.user import User  # noqa: E402
from calendar_api.services.availability_service import AvailabilityService  # noqa: E402


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'BOOKING_RETRY_BACKOFF_SECONDS', 0)


@pytest.fixture
def session_factory(tmp_path):
    # A file database so that separate sessions really use separate connections.
    engine = create_engine(f"sqlite:///{tmp_path / 'calendar.db'}")
    Base.metadata.create_all(bind=engine, tables=[User.__table__, Availability.__table__, Appointment.__table__])
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(email: str) -> User:
        user = User(email=email)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def people(make_user):
    return make_user('host@example.com'), make_user('attendee@example.com')


@pytest.fixture
def declare(db):
    def _declare(person: User, date: str, slots: list[tuple[str, str]], zone: str = 'UTC'):
        return AvailabilityService(db).set_availability(person.id, [(date, slots)], zone)

    return _declare
