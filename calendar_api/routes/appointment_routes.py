from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from calendar_api.auth.dependencies import get_current_user, get_db
from calendar_api.core.errors import InvalidRequest
from calendar_api.core.timezones import get_zone
from calendar_api.models.user import User
from calendar_api.repositories.people import get_person_by_email
from calendar_api.routes import shared
from calendar_api.routes.shared import AppointmentResponse, service_errors
from calendar_api.services.booking import BookingService
from calendar_api.services.overlap import find_overlaps

router = APIRouter(tags=['appointments'])


class BookAppointmentRequest(BaseModel):
    host_email: str
    attendee_email: str
    start_time: str
    end_time: str
    timezone: str

    @field_validator('host_email', 'attendee_email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return shared.normalize_email_field(value)

    @field_validator('start_time', 'end_time', 'timezone')
    @classmethod
    def validate_required(cls, value: str) -> str:
        return shared.normalize_required(value, 'Start time, end time and timezone')


class CancelAppointmentRequest(BaseModel):
    timezone: str

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return shared.normalize_required(value, 'Timezone')


class RescheduleAppointmentRequest(BaseModel):
    new_start_time: str
    new_end_time: str
    timezone: str

    @field_validator('new_start_time', 'new_end_time', 'timezone')
    @classmethod
    def validate_required(cls, value: str) -> str:
        return shared.normalize_required(value, 'New start time, new end time and timezone')


class AppointmentOverlapResponse(BaseModel):
    first: AppointmentResponse
    second: AppointmentResponse
    shared: bool


def _list_appointments(db: Session, email: str, start_date: str, end_date: str, timezone: str, status_filter: str | None):
    person = get_person_by_email(db, email)
    appointments = BookingService(db).list_appointments(
        person.id, start_date, end_date, timezone, status=status_filter,
    )
    return [AppointmentResponse.from_appointment(appointment, timezone) for appointment in appointments]


def _list_overlaps(db: Session, email1: str, email2: str, start_date: str, end_date: str, timezone: str):
    first = get_person_by_email(db, email1)
    second = get_person_by_email(db, email2)
    if first.id == second.id:
        raise InvalidRequest('Overlap needs two different people.')
    overlaps = find_overlaps(db, first.id, second.id, start_date, end_date, timezone)
    return [
        AppointmentOverlapResponse(
            first=AppointmentResponse.from_appointment(overlap.first, timezone),
            second=AppointmentResponse.from_appointment(overlap.second, timezone),
            shared=overlap.shared,
        )
        for overlap in overlaps
    ]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(data: BookAppointmentRequest, db: Session = Depends(get_db)):
    shared.ensure_database_ready()

    with service_errors(db):
        host = get_person_by_email(db, data.host_email)
        attendee = get_person_by_email(db, data.attendee_email)
        appointment = BookingService(db).book(
            host.id, attendee.id, data.start_time, data.end_time, data.timezone,
        )
        return AppointmentResponse.from_appointment(appointment, data.timezone)


@router.get('/date', response_model=list[AppointmentResponse])
def get_appointments_by_date(
    email: str = Query(...),
    date: str = Query(...),
    timezone: str = Query(...),
    status_filter: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        return _list_appointments(db, email, date, date, timezone, status_filter)


@router.get('/range', response_model=list[AppointmentResponse])
def get_appointments_by_range(
    email: str = Query(...),
    start_date: str = Query(...),
    end_date: str = Query(...),
    timezone: str = Query(...),
    status_filter: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        return _list_appointments(db, email, start_date, end_date, timezone, status_filter)


@router.get('/overlap/date', response_model=list[AppointmentOverlapResponse])
def find_overlap_by_date(
    email1: str = Query(...),
    email2: str = Query(...),
    date: str = Query(...),
    timezone: str = Query(...),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        return _list_overlaps(db, email1, email2, date, date, timezone)


@router.get('/overlap/range', response_model=list[AppointmentOverlapResponse])
def find_overlap_by_range(
    email1: str = Query(...),
    email2: str = Query(...),
    start_date: str = Query(...),
    end_date: str = Query(...),
    timezone: str = Query(...),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        return _list_overlaps(db, email1, email2, start_date, end_date, timezone)


@router.put('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        get_zone(data.timezone)
        appointment = BookingService(db).cancel(appointment_id, current_user.id)
        return AppointmentResponse.from_appointment(appointment, data.timezone)


@router.put('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        appointment = BookingService(db).reschedule(
            appointment_id,
            current_user.id,
            data.new_start_time,
            data.new_end_time,
            data.timezone,
        )
        return AppointmentResponse.from_appointment(appointment, data.timezone)
