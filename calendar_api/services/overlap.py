"""
Overlap report.

Pairs up the confirmed appointments of two people whose time ranges intersect.
An appointment both people take part in intersects itself and is reported
once, flagged as shared.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from calendar_api.core.timezones import day_range
from calendar_api.models.appointment import STATUS_CONFIRMED, Appointment
from calendar_api.repositories.people import get_person
from calendar_api.services.ledger import AppointmentLedger


@dataclass(frozen=True)
class AppointmentOverlap:
    first: Appointment
    second: Appointment

    @property
    def shared(self) -> bool:
        return self.first.id == self.second.id


def find_overlaps(
    db: Session,
    person_a: int,
    person_b: int,
    start_date: str,
    end_date: str,
    zone_name: str,
) -> list[AppointmentOverlap]:
    day_from, day_to = day_range(start_date, end_date, zone_name)
    get_person(db, person_a)
    get_person(db, person_b)

    ledger = AppointmentLedger(db)
    first_appointments = ledger.list_for_person(person_a, day_from, day_to, status=STATUS_CONFIRMED)
    second_appointments = ledger.list_for_person(person_b, day_from, day_to, status=STATUS_CONFIRMED)

    overlaps = []
    seen: set[frozenset[int]] = set()
    for first in first_appointments:
        for second in second_appointments:
            pair = frozenset((first.id, second.id))
            if pair in seen or not first.interval.overlaps(second.interval):
                continue
            seen.add(pair)
            overlaps.append(AppointmentOverlap(first=first, second=second))
    return overlaps
