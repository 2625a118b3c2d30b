from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calendar_api.core.errors import SchedulingError
from calendar_api.core.timezones import format_local_date, format_local_datetime, format_local_time
from calendar_api.database import ensure_appointment_schema, ensure_availability_schema
from calendar_api.models.appointment import Appointment
from calendar_api.services.availability_service import DayAvailability

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def normalize_required(value: str, field_name: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f'{field_name} is required.')
    return normalized


def normalize_email_field(value: str) -> str:
    return normalize_required(value, 'Email').lower()


class TimeSlotResponse(BaseModel):
    start: str
    end: str


class DayAvailabilityResponse(BaseModel):
    date: str
    time_slots: list[TimeSlotResponse]
    declared: bool = True

    @classmethod
    def from_day(cls, day: DayAvailability, zone_name: str) -> 'DayAvailabilityResponse':
        return cls(
            date=format_local_date(day.day, zone_name),
            time_slots=[
                TimeSlotResponse(
                    start=format_local_time(interval.start, zone_name),
                    end=format_local_time(interval.end, zone_name),
                )
                for interval in day.intervals
            ],
            declared=day.declared,
        )


class AppointmentResponse(BaseModel):
    id: int
    host: str
    attendee: str
    day: str
    start_time: str
    end_time: str
    status: str

    @classmethod
    def from_appointment(cls, appointment: Appointment, zone_name: str) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            host=appointment.host.email,
            attendee=appointment.attendee.email,
            day=format_local_date(appointment.day_utc, zone_name),
            start_time=format_local_datetime(appointment.start_utc, zone_name),
            end_time=format_local_datetime(appointment.end_utc, zone_name),
            status=appointment.status,
        )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@contextmanager
def service_errors(db: Session) -> Iterator[None]:
    """Translate scheduling and database failures into HTTP errors."""
    try:
        yield
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc
