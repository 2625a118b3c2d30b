from datetime import datetime, timezone

import pytest

from calendar_api.core.errors import (
    AlreadyCancelled,
    AppointmentNotFound,
    AvailabilityNotFound,
    InvalidInterval,
    InvalidRequest,
    InvalidTimeZone,
    PersonNotFound,
    SlotUnavailable,
    Unauthorized,
)
from calendar_api.models.appointment import STATUS_CANCELLED, STATUS_CONFIRMED, Appointment
from calendar_api.models.availability import Availability
from calendar_api.repositories.availability_store import AvailabilityStore
from calendar_api.scheduling.intervals import Interval
from calendar_api.services.booking import BookingService

DAY = '2024-05-06'
NEXT_DAY = '2024-05-07'


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def span(start: tuple[int, int], end: tuple[int, int], day: int = 6) -> Interval:
    return Interval(utc(2024, 5, day, *start), utc(2024, 5, day, *end))


def free_time(db, person, day: int = 6) -> tuple[Interval, ...] | None:
    db.expire_all()
    row = AvailabilityStore(db).get(person.id, utc(2024, 5, day))
    return None if row is None else row.intervals


@pytest.fixture
def morning(people, declare):
    host, attendee = people
    declare(host, DAY, [('09:00', '12:00')])
    declare(attendee, DAY, [('09:00', '12:00')])
    return host, attendee


def test_book_splits_both_interval_sets(db, morning) -> None:
    host, attendee = morning

    appointment = BookingService(db).book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    assert appointment.status == STATUS_CONFIRMED
    assert appointment.interval == span((10, 0), (10, 30))
    assert appointment.day_utc == utc(2024, 5, 6)
    assert appointment.consumed_host == (span((10, 0), (10, 30)),)
    assert appointment.consumed_attendee == (span((10, 0), (10, 30)),)
    assert free_time(db, host) == (span((9, 0), (10, 0)), span((10, 30), (12, 0)))
    assert free_time(db, attendee) == (span((9, 0), (10, 0)), span((10, 30), (12, 0)))


def test_cancel_restores_declared_interval_sets(db, morning) -> None:
    host, attendee = morning
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    cancelled = service.cancel(appointment.id, attendee.id)

    assert cancelled.status == STATUS_CANCELLED
    assert free_time(db, host) == (span((9, 0), (12, 0)),)
    assert free_time(db, attendee) == (span((9, 0), (12, 0)),)


def test_overlapping_booking_is_rejected_without_side_effects(db, morning) -> None:
    host, attendee = morning
    service = BookingService(db)
    service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    with pytest.raises(SlotUnavailable):
        service.book(host.id, attendee.id, f'{DAY} 10:15', f'{DAY} 10:45', 'UTC')

    assert db.query(Appointment).count() == 1
    assert free_time(db, host) == (span((9, 0), (10, 0)), span((10, 30), (12, 0)))


def test_booking_needs_both_sides_free(db, people, declare) -> None:
    host, attendee = people
    declare(host, DAY, [('09:00', '12:00')])
    declare(attendee, DAY, [('09:00', '10:00'), ('11:00', '12:00')])

    with pytest.raises(SlotUnavailable) as excinfo:
        BookingService(db).book(host.id, attendee.id, f'{DAY} 09:30', f'{DAY} 11:30', 'UTC')

    assert excinfo.value.details['unavailable_for'] == 'attendee'

    assert free_time(db, host) == (span((9, 0), (12, 0)),)


def test_booking_without_declared_availability_fails(db, people, declare) -> None:
    host, attendee = people
    declare(host, DAY, [('09:00', '12:00')])

    with pytest.raises(AvailabilityNotFound):
        BookingService(db).book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    assert db.query(Appointment).count() == 0


def test_booking_in_caller_time_zone_uses_local_day(db, people, declare) -> None:
    host, attendee = people
    zone = 'America/New_York'
    declare(host, DAY, [('09:00', '17:00')], zone)
    declare(attendee, DAY, [('09:00', '17:00')], zone)

    appointment = BookingService(db).book(host.id, attendee.id, f'{DAY} 16:00', f'{DAY} 17:00', zone)

    assert appointment.day_utc == utc(2024, 5, 6, 4)
    assert appointment.interval == span((20, 0), (21, 0))


@pytest.mark.parametrize(
    ('start', 'end', 'zone', 'error'),
    [
        (f'{DAY} 10:30', f'{DAY} 10:00', 'UTC', InvalidInterval),
        (f'{DAY} 10:00', f'{DAY} 10:00', 'UTC', InvalidInterval),
        (f'{DAY} 10:00', f'{DAY} 10:30', 'Not/AZone', InvalidTimeZone),
    ],
)
def test_booking_rejects_invalid_requests_before_touching_store(db, morning, start, end, zone, error) -> None:
    host, attendee = morning

    with pytest.raises(error):
        BookingService(db).book(host.id, attendee.id, start, end, zone)


def test_booking_with_oneself_is_rejected(db, morning) -> None:
    host, _ = morning

    with pytest.raises(InvalidRequest):
        BookingService(db).book(host.id, host.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')


def test_booking_with_unknown_person_fails(db, morning) -> None:
    host, _ = morning

    with pytest.raises(PersonNotFound):
        BookingService(db).book(host.id, 999, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')


def test_only_participants_may_cancel(db, morning, make_user) -> None:
    host, attendee = morning
    stranger = make_user('stranger@example.com')
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    with pytest.raises(Unauthorized):
        service.cancel(appointment.id, stranger.id)

    db.expire_all()
    assert db.get(Appointment, appointment.id).status == STATUS_CONFIRMED


def test_cancel_twice_and_unknown_ids_fail(db, morning) -> None:
    host, attendee = morning
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')
    service.cancel(appointment.id, host.id)

    with pytest.raises(AlreadyCancelled):
        service.cancel(appointment.id, host.id)
    with pytest.raises(AppointmentNotFound):
        service.cancel(12345, host.id)

    assert free_time(db, host) == (span((9, 0), (12, 0)),)


def test_cancel_after_availability_was_withdrawn_releases_the_rest(db, morning) -> None:
    host, attendee = morning
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')
    db.delete(AvailabilityStore(db).get(host.id, utc(2024, 5, 6)))
    db.commit()

    cancelled = service.cancel(appointment.id, host.id)

    assert cancelled.status == STATUS_CANCELLED
    assert free_time(db, host) is None
    assert free_time(db, attendee) == (span((9, 0), (12, 0)),)


def test_reschedule_moves_reservation_within_the_day(db, morning) -> None:
    host, attendee = morning
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    moved = service.reschedule(appointment.id, host.id, f'{DAY} 10:15', f'{DAY} 10:45', 'UTC')

    assert moved.id == appointment.id
    assert moved.status == STATUS_CONFIRMED
    assert moved.interval == span((10, 15), (10, 45))
    assert moved.consumed_host == (span((10, 15), (10, 45)),)
    assert free_time(db, host) == (span((9, 0), (10, 15)), span((10, 45), (12, 0)))
    assert free_time(db, attendee) == (span((9, 0), (10, 15)), span((10, 45), (12, 0)))


def test_reschedule_to_another_day_restores_the_old_one(db, morning, declare) -> None:
    host, attendee = morning
    declare(host, NEXT_DAY, [('13:00', '15:00')])
    declare(attendee, NEXT_DAY, [('14:00', '16:00')])
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    moved = service.reschedule(appointment.id, attendee.id, f'{NEXT_DAY} 14:00', f'{NEXT_DAY} 15:00', 'UTC')

    assert moved.day_utc == utc(2024, 5, 7)
    assert free_time(db, host) == (span((9, 0), (12, 0)),)
    assert free_time(db, host, day=7) == (span((13, 0), (14, 0), day=7),)
    assert free_time(db, attendee, day=7) == (span((15, 0), (16, 0), day=7),)


def test_failed_reschedule_without_availability_changes_nothing(db, morning) -> None:
    host, attendee = morning
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    with pytest.raises(AvailabilityNotFound):
        service.reschedule(appointment.id, host.id, f'{NEXT_DAY} 10:00', f'{NEXT_DAY} 10:30', 'UTC')

    db.expire_all()
    unchanged = db.get(Appointment, appointment.id)
    assert unchanged.status == STATUS_CONFIRMED
    assert unchanged.interval == span((10, 0), (10, 30))
    assert unchanged.consumed_host == (span((10, 0), (10, 30)),)
    assert free_time(db, host) == (span((9, 0), (10, 0)), span((10, 30), (12, 0)))
    assert free_time(db, attendee) == (span((9, 0), (10, 0)), span((10, 30), (12, 0)))


def test_failed_reschedule_into_busy_slot_rolls_back(db, morning, make_user, declare) -> None:
    host, attendee = morning
    other = make_user('other@example.com')
    declare(other, DAY, [('09:00', '12:00')])
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')
    service.book(other.id, attendee.id, f'{DAY} 11:00', f'{DAY} 11:30', 'UTC')

    with pytest.raises(SlotUnavailable):
        service.reschedule(appointment.id, host.id, f'{DAY} 11:15', f'{DAY} 11:45', 'UTC')

    db.expire_all()
    assert db.get(Appointment, appointment.id).interval == span((10, 0), (10, 30))
    assert free_time(db, host) == (span((9, 0), (10, 0)), span((10, 30), (12, 0)))
    assert free_time(db, attendee) == (span((9, 0), (10, 0)), span((10, 30), (11, 0)), span((11, 30), (12, 0)))


def test_reschedule_rules_for_outsiders_and_cancelled_appointments(db, morning, make_user) -> None:
    host, attendee = morning
    stranger = make_user('stranger@example.com')
    service = BookingService(db)
    appointment = service.book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    with pytest.raises(Unauthorized):
        service.reschedule(appointment.id, stranger.id, f'{DAY} 11:00', f'{DAY} 11:30', 'UTC')

    service.cancel(appointment.id, host.id)
    with pytest.raises(AlreadyCancelled):
        service.reschedule(appointment.id, host.id, f'{DAY} 11:00', f'{DAY} 11:30', 'UTC')

    assert free_time(db, host) == (span((9, 0), (12, 0)),)


def test_list_appointments_orders_by_start_and_filters_status(db, morning) -> None:
    host, attendee = morning
    service = BookingService(db)
    late = service.book(host.id, attendee.id, f'{DAY} 11:00', f'{DAY} 11:30', 'UTC')
    early = service.book(attendee.id, host.id, f'{DAY} 09:00', f'{DAY} 09:30', 'UTC')
    service.cancel(late.id, host.id)

    everything = service.list_appointments(host.id, DAY, DAY, 'UTC')
    confirmed = service.list_appointments(host.id, DAY, DAY, 'UTC', status=STATUS_CONFIRMED)

    assert [appointment.id for appointment in everything] == [early.id, late.id]
    assert [appointment.id for appointment in confirmed] == [early.id]
    assert service.list_appointments(host.id, NEXT_DAY, NEXT_DAY, 'UTC') == []
    with pytest.raises(PersonNotFound):
        service.list_appointments(999, DAY, DAY, 'UTC')


def _race_on_first_lock(monkeypatch, session_factory, competing_booking) -> None:
    """Commit ``competing_booking`` from another session right after the first read."""
    original_lock_days = AvailabilityStore.lock_days
    calls = []

    def racing_lock_days(self, keys):
        rows = original_lock_days(self, keys)
        calls.append(keys)
        if len(calls) == 1:
            other_db = session_factory()
            try:
                competing_booking(BookingService(other_db))
            finally:
                other_db.close()
        return rows

    monkeypatch.setattr(AvailabilityStore, 'lock_days', racing_lock_days)


def test_concurrent_disjoint_bookings_both_succeed(db, morning, session_factory, monkeypatch) -> None:
    host, attendee = morning
    _race_on_first_lock(
        monkeypatch,
        session_factory,
        lambda service: service.book(host.id, attendee.id, f'{DAY} 11:00', f'{DAY} 11:30', 'UTC'),
    )

    BookingService(db).book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    expected = (span((9, 0), (10, 0)), span((10, 30), (11, 0)), span((11, 30), (12, 0)))
    assert db.query(Appointment).count() == 2
    assert free_time(db, host) == expected
    assert free_time(db, attendee) == expected


def test_concurrent_overlapping_bookings_admit_exactly_one(db, morning, session_factory, monkeypatch) -> None:
    host, attendee = morning
    _race_on_first_lock(
        monkeypatch,
        session_factory,
        lambda service: service.book(host.id, attendee.id, f'{DAY} 10:15', f'{DAY} 10:45', 'UTC'),
    )

    with pytest.raises(SlotUnavailable):
        BookingService(db).book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')

    assert db.query(Appointment).count() == 1
    assert free_time(db, host) == (span((9, 0), (10, 15)), span((10, 45), (12, 0)))


def test_concurrent_cancellations_release_once(db, morning, session_factory, monkeypatch) -> None:
    host, attendee = morning
    appointment = BookingService(db).book(host.id, attendee.id, f'{DAY} 10:00', f'{DAY} 10:30', 'UTC')
    _race_on_first_lock(
        monkeypatch,
        session_factory,
        lambda service: service.cancel(appointment.id, attendee.id),
    )

    with pytest.raises(AlreadyCancelled):
        BookingService(db).cancel(appointment.id, host.id)

    assert free_time(db, host) == (span((9, 0), (12, 0)),)
    assert db.query(Availability).count() == 2
