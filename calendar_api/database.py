from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from calendar_api.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def ensure_availability_schema() -> None:
    """Add the ``(user_id, day)`` unique index to an availability table created without it."""
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS uq_availability_user_day ON availability(user_id, day)')
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    """Add the lookup indexes ``create_all`` skips when the appointments table already exists."""
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_host_day ON appointments(host_id, day)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_attendee_day ON appointments(attendee_id, day)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_day_start ON appointments(day, start_time)')
            )

        _appointment_schema_checked = True
