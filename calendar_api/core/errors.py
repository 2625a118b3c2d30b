"""
Scheduling errors.

Every failure the booking engine can report has its own class so callers can
tell them apart. The HTTP layer turns them into ``HTTPException`` through
``to_http_exception``.
"""

from typing import Any

from fastapi import HTTPException, status


class SchedulingError(Exception):
    """Base class for all scheduling failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                'message': self.message,
                'code': self.code,
                'details': self.details,
            },
        )


class InvalidRequest(SchedulingError):
    """Malformed input, rejected before the store is touched."""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTimeZone(InvalidRequest):
    def __init__(self, zone_name: str | None) -> None:
        super().__init__(
            f'Unknown time zone: {zone_name!r}.',
            details={'timezone': zone_name},
        )


class InvalidTimestamp(InvalidRequest):
    def __init__(self, value: str | None) -> None:
        super().__init__(
            f'Cannot parse date/time: {value!r}.',
            details={'value': value},
        )


class InvalidInterval(InvalidRequest):
    pass


class NotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class PersonNotFound(NotFound):
    def __init__(self, person: int | str) -> None:
        super().__init__('User not found.', details={'person': person})


class AppointmentNotFound(NotFound):
    def __init__(self, appointment_id: int) -> None:
        super().__init__('Appointment not found.', details={'appointment_id': appointment_id})


class AvailabilityNotFound(NotFound):
    def __init__(self, message: str = 'Host or attendee availability not found for the specified date.', **details: Any) -> None:
        super().__init__(message, details=details)


class Conflict(SchedulingError):
    status_code = status.HTTP_409_CONFLICT


class SlotUnavailable(Conflict):
    def __init__(self, message: str = 'The selected time slot is not available for the host or the attendee.', **details: Any) -> None:
        super().__init__(message, details=details)


class AlreadyCancelled(Conflict):
    def __init__(self, appointment_id: int) -> None:
        super().__init__('Appointment is already cancelled.', details={'appointment_id': appointment_id})


class ConcurrentUpdateConflict(Conflict):
    """Optimistic retries ran out; the caller may try again."""


class Unauthorized(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN


class BookingTimeout(SchedulingError):
    """Could not obtain the calendar rows in time. Retryable."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
