from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from calendar_api.auth.dependencies import get_db
from calendar_api.repositories.people import get_person_by_email
from calendar_api.routes import shared
from calendar_api.routes.shared import DayAvailabilityResponse, service_errors
from calendar_api.services.availability_service import AvailabilityService

router = APIRouter(tags=['availability'])


class TimeSlotRequest(BaseModel):
    start: str
    end: str


class DayAvailabilityRequest(BaseModel):
    date: str
    time_slots: list[TimeSlotRequest]


class SetAvailabilityRequest(BaseModel):
    email: str
    availabilities: list[DayAvailabilityRequest]
    timezone: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return shared.normalize_email_field(value)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return shared.normalize_required(value, 'Timezone')


class SetAvailabilityResponse(BaseModel):
    message: str
    availabilities: list[DayAvailabilityResponse]


@router.post('/', response_model=SetAvailabilityResponse)
def set_availability(data: SetAvailabilityRequest, db: Session = Depends(get_db)):
    shared.ensure_database_ready()

    with service_errors(db):
        person = get_person_by_email(db, data.email)
        entries = [
            (entry.date, [(slot.start, slot.end) for slot in entry.time_slots])
            for entry in data.availabilities
        ]
        days = AvailabilityService(db).set_availability(person.id, entries, data.timezone)

        return SetAvailabilityResponse(
            message='Availabilities set successfully',
            availabilities=[DayAvailabilityResponse.from_day(day, data.timezone) for day in days],
        )


@router.get('/date/{email}', response_model=DayAvailabilityResponse)
def get_availability_by_date(
    email: str,
    date: str = Query(...),
    timezone: str = Query(...),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        person = get_person_by_email(db, email)
        days = AvailabilityService(db).get_availability(person.id, date, None, timezone)
        return DayAvailabilityResponse.from_day(days[0], timezone)


@router.get('/range/{email}', response_model=list[DayAvailabilityResponse])
def get_availability_by_range(
    email: str,
    start_date: str = Query(...),
    end_date: str = Query(...),
    timezone: str = Query(...),
    db: Session = Depends(get_db),
):
    shared.ensure_database_ready()

    with service_errors(db):
        person = get_person_by_email(db, email)
        days = AvailabilityService(db).get_availability(person.id, start_date, end_date, timezone)
        return [DayAvailabilityResponse.from_day(day, timezone) for day in days]
