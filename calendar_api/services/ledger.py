"""
Appointment ledger.

Keeps the lifecycle of every booking (confirmed or cancelled) together with
the free-time fragments it consumed. Entries are never deleted. The ledger
does not commit; callers run it inside ``run_in_transaction``.
"""

from datetime import datetime
from typing import Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from calendar_api.core.errors import AlreadyCancelled, AppointmentNotFound, InvalidRequest
from calendar_api.core.timezones import to_storage
from calendar_api.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    Appointment,
)
from calendar_api.scheduling.intervals import Interval, intervals_to_json


class AppointmentLedger:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, appointment_id: int, *, for_update: bool = False) -> Appointment:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        appointment = query.first()
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        return appointment

    @staticmethod
    def require_confirmed(appointment: Appointment) -> None:
        if appointment.status != STATUS_CONFIRMED:
            raise AlreadyCancelled(appointment.id)

    def record(
        self,
        host_id: int,
        attendee_id: int,
        day: datetime,
        start_time: datetime,
        end_time: datetime,
        consumed_host: Sequence[Interval],
        consumed_attendee: Sequence[Interval],
    ) -> Appointment:
        appointment = Appointment(
            host_id=host_id,
            attendee_id=attendee_id,
            day=to_storage(day),
            start_time=to_storage(start_time),
            end_time=to_storage(end_time),
            status=STATUS_CONFIRMED,
            consumed_host_fragments=intervals_to_json(consumed_host),
            consumed_attendee_fragments=intervals_to_json(consumed_attendee),
        )
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def cancel(self, appointment_id: int) -> Appointment:
        appointment = self.get(appointment_id, for_update=True)
        self.require_confirmed(appointment)
        appointment.status = STATUS_CANCELLED
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        new_day: datetime,
        new_start: datetime,
        new_end: datetime,
        new_consumed_host: Sequence[Interval],
        new_consumed_attendee: Sequence[Interval],
    ) -> Appointment:
        appointment = self.get(appointment_id, for_update=True)
        self.require_confirmed(appointment)
        appointment.day = to_storage(new_day)
        appointment.start_time = to_storage(new_start)
        appointment.end_time = to_storage(new_end)
        appointment.consumed_host_fragments = intervals_to_json(new_consumed_host)
        appointment.consumed_attendee_fragments = intervals_to_json(new_consumed_attendee)
        appointment.status = STATUS_CONFIRMED
        return appointment

    def list_for_person(
        self,
        person_id: int,
        day_from: datetime,
        day_to: datetime,
        status: str | None = None,
    ) -> list[Appointment]:
        """Appointments the person hosts or attends with ``day_from <= day < day_to``."""
        query = self.db.query(Appointment).filter(
            or_(Appointment.host_id == person_id, Appointment.attendee_id == person_id),
            Appointment.day >= to_storage(day_from),
            Appointment.day < to_storage(day_to),
        )
        if status is not None:
            if status not in APPOINTMENT_STATUSES:
                raise InvalidRequest(
                    f'Unknown appointment status: {status!r}.',
                    details={'status': status},
                )
            query = query.filter(Appointment.status == status)
        return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    def list_overlapping(self, person_id: int, window: Interval) -> list[Appointment]:
        """Confirmed appointments of the person that intersect ``window``."""
        return self.db.query(Appointment).filter(
            or_(Appointment.host_id == person_id, Appointment.attendee_id == person_id),
            Appointment.status == STATUS_CONFIRMED,
            Appointment.start_time < to_storage(window.end),
            Appointment.end_time > to_storage(window.start),
        ).order_by(Appointment.start_time.asc()).all()
