"""
Availability store.

Per ``(person, day)`` interval sets backed by the ``availability`` table.
Reads meant to be followed by a write go through ``lock_days``, which takes
row locks (where the database supports them) in ascending ``(user_id, day)``
order so that two bookings touching the same pair of people never wait on
each other in opposite orders. The row ``version`` column catches any write
that slips past, e.g. on SQLite where ``FOR UPDATE`` is not available.
"""

from datetime import datetime
from typing import Iterable

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from calendar_api.core import config
from calendar_api.core.timezones import to_storage
from calendar_api.models.availability import Availability
from calendar_api.scheduling.intervals import Interval

DayKey = tuple[int, datetime]


class AvailabilityStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, person_id: int, day: datetime) -> Availability | None:
        return self.db.query(Availability).filter(
            Availability.user_id == person_id,
            Availability.day == to_storage(day),
        ).first()

    def lock_days(self, keys: Iterable[DayKey]) -> dict[DayKey, Availability]:
        ordered = sorted(set(keys), key=lambda key: (key[0], to_storage(key[1])))
        if not ordered:
            return {}

        query = self.db.query(Availability).filter(
            or_(*[
                and_(Availability.user_id == person_id, Availability.day == to_storage(day))
                for person_id, day in ordered
            ])
        ).order_by(Availability.user_id.asc(), Availability.day.asc())

        if config.BOOKING_USE_ROW_LOCKS:
            query = query.with_for_update()

        return {(row.user_id, row.day_utc): row for row in query.all()}

    def list_range(self, person_id: int, day_from: datetime, day_to: datetime) -> list[Availability]:
        """Interval sets with ``day_from <= day < day_to``, ordered by day."""
        return self.db.query(Availability).filter(
            Availability.user_id == person_id,
            Availability.day >= to_storage(day_from),
            Availability.day < to_storage(day_to),
        ).order_by(Availability.day.asc()).all()

    def create(self, person_id: int, day: datetime, intervals: Iterable[Interval]) -> Availability:
        row = Availability(user_id=person_id, day=to_storage(day))
        row.intervals = tuple(intervals)
        self.db.add(row)
        return row
