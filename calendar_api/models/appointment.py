"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import relationship
from calendar_api.core.timezones import from_storage
from calendar_api.database import Base
from calendar_api.models.user import User
from calendar_api.scheduling.intervals import Interval, intervals_from_json

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
APPOINTMENT_STATUSES = (STATUS_CONFIRMED, STATUS_CANCELLED)


class Appointment(Base):
    """A booking between a host and an attendee.

    The ``consumed_*_fragments`` columns record exactly which free time was
    taken from each participant when the booking was last confirmed, so that a
    cancellation can give back that time and nothing else.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_host_day", "host_id", "day"),
        Index("idx_appointments_attendee_day", "attendee_id", "day"),
        Index("idx_appointments_day_start", "day", "start_time"),
    )

    id = Column(Integer, primary_key=True)
    host_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    attendee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    day = Column(DateTime, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=STATUS_CONFIRMED)
    consumed_host_fragments = Column(JSON, nullable=False, default=list)
    consumed_attendee_fragments = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    version = Column(Integer, nullable=False)

    host = relationship(User, foreign_keys=[host_id])
    attendee = relationship(User, foreign_keys=[attendee_id])

    __mapper_args__ = {"version_id_col": version}

    @property
    def day_utc(self) -> datetime:
        return from_storage(self.day)

    @property
    def start_utc(self) -> datetime:
        return from_storage(self.start_time)

    @property
    def end_utc(self) -> datetime:
        return from_storage(self.end_time)

    @property
    def interval(self) -> Interval:
        return Interval(self.start_utc, self.end_utc)

    @property
    def consumed_host(self) -> tuple[Interval, ...]:
        return intervals_from_json(self.consumed_host_fragments)

    @property
    def consumed_attendee(self) -> tuple[Interval, ...]:
        return intervals_from_json(self.consumed_attendee_fragments)

    def is_participant(self, person_id: int) -> bool:
        return person_id in (self.host_id, self.attendee_id)
