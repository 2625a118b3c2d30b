"""Availability model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, UniqueConstraint
from calendar_api.core.timezones import from_storage
from calendar_api.database import Base
from calendar_api.scheduling.intervals import (
    Interval,
    ensure_interval_set,
    intervals_from_json,
    intervals_to_json,
)


class Availability(Base):
    """Free time of one person on one calendar day.

    ``version`` is bumped on every update and checked by the UPDATE statement,
    so two writers that read the same row cannot both commit.
    """
    __tablename__ = "availability"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_availability_user_day"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day = Column(DateTime, nullable=False)
    time_slots = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def day_utc(self) -> datetime:
        return from_storage(self.day)

    @property
    def intervals(self) -> tuple[Interval, ...]:
        return intervals_from_json(self.time_slots)

    @intervals.setter
    def intervals(self, value) -> None:
        self.time_slots = intervals_to_json(ensure_interval_set(value))
