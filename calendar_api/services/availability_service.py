import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from sqlalchemy.orm import Session

from calendar_api.core.errors import InvalidInterval
from calendar_api.core.timezones import (
    day_key_for_date,
    day_range,
    get_zone,
    normalize,
    parse_local,
)
from calendar_api.repositories.availability_store import AvailabilityStore
from calendar_api.repositories.people import get_person
from calendar_api.scheduling.intervals import Interval, merge_intervals, release, subtract
from calendar_api.services.ledger import AppointmentLedger
from calendar_api.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)

# (date, [(start, end), ...]) with wall-clock strings such as '2024-03-10' and '09:00'.
AvailabilityEntry = tuple[str, Sequence[tuple[str, str]]]


@dataclass(frozen=True)
class DayAvailability:
    day: datetime
    intervals: tuple[Interval, ...]
    declared: bool = True


def _build_day(entry_date: str, slots: Sequence[tuple[str, str]], zone_name: str) -> tuple[datetime, tuple[Interval, ...]]:
    zone = get_zone(zone_name)
    day = day_key_for_date(parse_local(entry_date, zone), zone)
    intervals = []
    for start, end in slots:
        slot_start = normalize(f'{entry_date} {start}', zone_name)
        slot_end = normalize(f'{entry_date} {end}', zone_name)
        if not slot_start < slot_end:
            raise InvalidInterval(
                'Time slot start must be before its end.',
                details={'date': entry_date, 'start': start, 'end': end},
            )
        intervals.append(Interval(slot_start, slot_end))
    return day, merge_intervals(intervals)


class AvailabilityService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.store = AvailabilityStore(db)
        self.ledger = AppointmentLedger(db)

    def set_availability(
        self,
        person_id: int,
        entries: Sequence[AvailabilityEntry],
        zone_name: str,
    ) -> list[DayAvailability]:
        """Add free time for each listed day.

        New slots are merged into whatever is already declared for the day.
        Time already taken by the person's confirmed appointments stays booked.
        """
        declared: dict[datetime, tuple[Interval, ...]] = {}
        for entry_date, slots in entries:
            day, intervals = _build_day(entry_date, slots, zone_name)
            declared[day] = merge_intervals([*declared.get(day, ()), *intervals])
        get_person(self.db, person_id)

        def operation() -> list[DayAvailability]:
            rows = self.store.lock_days((person_id, day) for day in declared)
            results = []
            for day in sorted(declared):
                booked = self._booked_time(person_id, declared[day])
                row = rows.get((person_id, day))
                if row is None:
                    row = self.store.create(person_id, day, subtract(declared[day], booked))
                else:
                    row.intervals = subtract(release(row.intervals, declared[day]), booked)
                results.append(DayAvailability(day=day, intervals=row.intervals))
            return results

        results = run_in_transaction(self.db, operation, description='set availability')
        logger.info('Updated availability of person %s for %d day(s)', person_id, len(results))
        return results

    def _booked_time(self, person_id: int, intervals: tuple[Interval, ...]) -> list[Interval]:
        if not intervals:
            return []
        window = Interval(intervals[0].start, intervals[-1].end)
        return [appointment.interval for appointment in self.ledger.list_overlapping(person_id, window)]

    def get_availability(
        self,
        person_id: int,
        start_date: str,
        end_date: str | None,
        zone_name: str,
    ) -> list[DayAvailability]:
        """Interval sets for one date, or for every declared day in a range.

        A single date without declared availability comes back with
        ``declared=False`` and no intervals.
        """
        if end_date is None:
            zone = get_zone(zone_name)
            day = day_key_for_date(parse_local(start_date, zone), zone)
            get_person(self.db, person_id)
            # Same exact key that booking looks up; sets keyed in other zones do not match.
            row = self.store.get(person_id, day)
            if row is None:
                return [DayAvailability(day=day, intervals=(), declared=False)]
            return [DayAvailability(day=day, intervals=row.intervals)]

        day_from, day_to = day_range(start_date, end_date, zone_name)
        get_person(self.db, person_id)
        rows = self.store.list_range(person_id, day_from, day_to)
        return [DayAvailability(day=row.day_utc, intervals=row.intervals) for row in rows]
