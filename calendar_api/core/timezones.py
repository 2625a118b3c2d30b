"""
Time normalization.

Callers speak wall-clock strings paired with an IANA zone name; the engine
works on timezone-aware UTC datetimes. This module is the only place that
converts between the two.
"""

from datetime import datetime, timedelta

import pytz

from calendar_api.core.errors import InvalidInterval, InvalidTimeZone, InvalidTimestamp

LOCAL_DATETIME_FORMAT = '%Y-%m-%d %H:%M'
LOCAL_DATE_FORMAT = '%Y-%m-%d'
LOCAL_TIME_FORMAT = '%H:%M'


def get_zone(zone_name: str | None) -> pytz.BaseTzInfo:
    if zone_name is None or not zone_name.strip():
        raise InvalidTimeZone(zone_name)
    try:
        return pytz.timezone(zone_name.strip())
    except pytz.exceptions.UnknownTimeZoneError as exc:
        raise InvalidTimeZone(zone_name) from exc


def parse_local(value: str | None, zone: pytz.BaseTzInfo | None = None) -> datetime:
    """Parse a wall-clock string into a naive datetime.

    Values carrying an explicit UTC offset are moved onto ``zone``'s wall clock
    so that the rest of the pipeline can treat every input the same way.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidTimestamp(value)
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidTimestamp(value) from exc

    if parsed.tzinfo is not None:
        target = zone or pytz.UTC
        parsed = parsed.astimezone(target).replace(tzinfo=None)
    return parsed


def localize(naive: datetime, zone: pytz.BaseTzInfo) -> datetime:
    # Ambiguous wall times take the earlier instant; wall times inside a
    # spring-forward gap move forward by the size of the gap.
    try:
        return zone.localize(naive, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        return zone.localize(naive, is_dst=True)
    except pytz.exceptions.NonExistentTimeError:
        return zone.normalize(zone.localize(naive, is_dst=False))


def normalize(local_value: str, zone_name: str) -> datetime:
    """Return the UTC instant for ``local_value`` observed in ``zone_name``."""
    zone = get_zone(zone_name)
    naive = parse_local(local_value, zone)
    return localize(naive, zone).astimezone(pytz.UTC)


def day_key_for_date(local_date: datetime, zone: pytz.BaseTzInfo) -> datetime:
    midnight = local_date.replace(hour=0, minute=0, second=0, microsecond=0)
    return localize(midnight, zone).astimezone(pytz.UTC)


def day_key_of(local_value: str, zone_name: str) -> datetime:
    """Return the calendar-day key: the UTC instant of local midnight."""
    zone = get_zone(zone_name)
    return day_key_for_date(parse_local(local_value, zone), zone)


def day_range(start_date: str, end_date: str, zone_name: str) -> tuple[datetime, datetime]:
    """Return the half-open range of day keys covering both dates inclusively."""
    zone = get_zone(zone_name)
    first = parse_local(start_date, zone)
    last = parse_local(end_date, zone)
    if last.date() < first.date():
        raise InvalidInterval(
            'End date must not be before start date.',
            details={'start_date': start_date, 'end_date': end_date},
        )
    return day_key_for_date(first, zone), day_key_for_date(last + timedelta(days=1), zone)


def to_local(instant: datetime, zone_name: str) -> datetime:
    if instant.tzinfo is None:
        instant = pytz.UTC.localize(instant)
    return instant.astimezone(get_zone(zone_name))


def format_local_datetime(instant: datetime, zone_name: str) -> str:
    return to_local(instant, zone_name).strftime(LOCAL_DATETIME_FORMAT)


def format_local_date(instant: datetime, zone_name: str) -> str:
    return to_local(instant, zone_name).strftime(LOCAL_DATE_FORMAT)


def format_local_time(instant: datetime, zone_name: str) -> str:
    return to_local(instant, zone_name).strftime(LOCAL_TIME_FORMAT)


def to_storage(instant: datetime) -> datetime:
    """Database columns hold naive UTC."""
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(pytz.UTC).replace(tzinfo=None)


def from_storage(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)
