"""
Booking orchestration.

Book, cancel and reschedule each run as one transaction over the ledger and
the interval sets of both participants. A booking is either committed in full
(appointment row plus both reduced interval sets) or not at all; there is no
pending state in storage.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from calendar_api.core.errors import (
    AvailabilityNotFound,
    InvalidInterval,
    InvalidRequest,
    SlotUnavailable,
    Unauthorized,
)
from calendar_api.core.timezones import day_key_of, day_range, normalize
from calendar_api.models.appointment import Appointment
from calendar_api.models.availability import Availability
from calendar_api.repositories.availability_store import AvailabilityStore, DayKey
from calendar_api.repositories.people import get_person
from calendar_api.scheduling.intervals import Interval, Reservation, can_reserve, release, reserve
from calendar_api.services.ledger import AppointmentLedger
from calendar_api.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


def build_target(local_start: str, local_end: str, zone_name: str) -> tuple[Interval, datetime]:
    """Normalize a requested slot; returns the UTC interval and its day key."""
    start = normalize(local_start, zone_name)
    end = normalize(local_end, zone_name)
    if not start < end:
        raise InvalidInterval(
            'Start time must be before end time.',
            details={'start_time': local_start, 'end_time': local_end},
        )
    return Interval(start, end), day_key_of(local_start, zone_name)


class BookingService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.store = AvailabilityStore(db)
        self.ledger = AppointmentLedger(db)

    def book(
        self,
        host_id: int,
        attendee_id: int,
        local_start: str,
        local_end: str,
        zone_name: str,
    ) -> Appointment:
        target, day = build_target(local_start, local_end, zone_name)
        if host_id == attendee_id:
            raise InvalidRequest('Host and attendee must be different people.')
        get_person(self.db, host_id)
        get_person(self.db, attendee_id)

        def operation() -> Appointment:
            sets = self.store.lock_days([(host_id, day), (attendee_id, day)])
            host_set = sets.get((host_id, day))
            attendee_set = sets.get((attendee_id, day))
            if host_set is None or attendee_set is None:
                raise AvailabilityNotFound(day=day.isoformat())

            host_reservation, attendee_reservation = self._reserve_both(host_set, attendee_set, target)
            appointment = self.ledger.record(
                host_id,
                attendee_id,
                day,
                target.start,
                target.end,
                host_reservation.consumed,
                attendee_reservation.consumed,
            )
            host_set.intervals = host_reservation.remaining
            attendee_set.intervals = attendee_reservation.remaining
            return appointment

        appointment = run_in_transaction(self.db, operation, description='book appointment')
        logger.info(
            'Booked appointment %s for host %s and attendee %s (%s - %s)',
            appointment.id, host_id, attendee_id, target.start.isoformat(), target.end.isoformat(),
        )
        return appointment

    def cancel(self, appointment_id: int, requester_id: int) -> Appointment:
        def operation() -> Appointment:
            appointment = self.ledger.get(appointment_id, for_update=True)
            self._authorize(appointment, requester_id)
            appointment = self.ledger.cancel(appointment_id)

            day = appointment.day_utc
            sets = self.store.lock_days([(appointment.host_id, day), (appointment.attendee_id, day)])
            self._release_snapshot(sets, appointment)
            return appointment

        appointment = run_in_transaction(self.db, operation, description='cancel appointment')
        logger.info('Cancelled appointment %s at the request of %s', appointment_id, requester_id)
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        requester_id: int,
        new_local_start: str,
        new_local_end: str,
        zone_name: str,
    ) -> Appointment:
        target, new_day = build_target(new_local_start, new_local_end, zone_name)

        def operation() -> Appointment:
            appointment = self.ledger.get(appointment_id, for_update=True)
            self._authorize(appointment, requester_id)
            self.ledger.require_confirmed(appointment)

            host_id, attendee_id = appointment.host_id, appointment.attendee_id
            old_day = appointment.day_utc
            sets = self.store.lock_days([
                (host_id, old_day),
                (attendee_id, old_day),
                (host_id, new_day),
                (attendee_id, new_day),
            ])
            # Give the old slot back first so that moving within the same
            # free fragment (or onto an overlapping slot) is possible.
            self._release_snapshot(sets, appointment)

            host_set = sets.get((host_id, new_day))
            attendee_set = sets.get((attendee_id, new_day))
            if host_set is None or attendee_set is None:
                raise AvailabilityNotFound(
                    'Host or attendee availability not found for the new date.',
                    day=new_day.isoformat(),
                )

            host_reservation, attendee_reservation = self._reserve_both(host_set, attendee_set, target)
            host_set.intervals = host_reservation.remaining
            attendee_set.intervals = attendee_reservation.remaining
            return self.ledger.reschedule(
                appointment_id,
                new_day,
                target.start,
                target.end,
                host_reservation.consumed,
                attendee_reservation.consumed,
            )

        appointment = run_in_transaction(self.db, operation, description='reschedule appointment')
        logger.info(
            'Rescheduled appointment %s to %s - %s',
            appointment_id, target.start.isoformat(), target.end.isoformat(),
        )
        return appointment

    def list_appointments(
        self,
        person_id: int,
        start_date: str,
        end_date: str,
        zone_name: str,
        status: str | None = None,
    ) -> list[Appointment]:
        day_from, day_to = day_range(start_date, end_date, zone_name)
        get_person(self.db, person_id)
        return self.ledger.list_for_person(person_id, day_from, day_to, status=status)

    @staticmethod
    def _authorize(appointment: Appointment, requester_id: int) -> None:
        if not appointment.is_participant(requester_id):
            raise Unauthorized(
                'Only the host or the attendee can change this appointment.',
                details={'appointment_id': appointment.id},
            )

    @staticmethod
    def _reserve_both(
        host_set: Availability,
        attendee_set: Availability,
        target: Interval,
    ) -> tuple[Reservation, Reservation]:
        # Both sides are checked before either set is written back.
        for role, interval_set in (('host', host_set), ('attendee', attendee_set)):
            if not can_reserve(interval_set.intervals, target):
                raise SlotUnavailable(
                    start=target.start.isoformat(),
                    end=target.end.isoformat(),
                    unavailable_for=role,
                )
        return reserve(host_set.intervals, target), reserve(attendee_set.intervals, target)

    @staticmethod
    def _release_snapshot(sets: dict[DayKey, Availability], appointment: Appointment) -> None:
        day = appointment.day_utc
        for person_id, fragments in (
            (appointment.host_id, appointment.consumed_host),
            (appointment.attendee_id, appointment.consumed_attendee),
        ):
            interval_set = sets.get((person_id, day))
            # Availability withdrawn since booking: nothing to give back to.
            if interval_set is None:
                continue
            interval_set.intervals = release(interval_set.intervals, fragments)
