"""
Interval sets.

A person's free time on one calendar day is an ordered tuple of half-open
``[start, end)`` intervals that neither overlap nor touch. Booking reserves a
target interval out of a single free fragment, splitting it; cancelling
releases the recorded fragments back and merges them with their neighbours.

All functions here are pure: they take interval tuples and return new ones.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, NamedTuple, Sequence

from calendar_api.core.errors import SlotUnavailable


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError('Interval bounds must be timezone-aware.')
        if not self.start < self.end:
            raise ValueError(f'Interval start must precede end: {self.start} >= {self.end}.')

    def contains(self, other: 'Interval') -> bool:
        return self.start <= other.start and other.end <= self.end

    def overlaps(self, other: 'Interval') -> bool:
        return self.start < other.end and other.start < self.end


class Reservation(NamedTuple):
    remaining: tuple[Interval, ...]
    consumed: tuple[Interval, ...]


def ensure_interval_set(intervals: Sequence[Interval]) -> tuple[Interval, ...]:
    """Raise ``ValueError`` unless intervals are sorted, disjoint and not touching."""
    checked = tuple(intervals)
    for current, following in zip(checked, checked[1:]):
        if current.end >= following.start:
            raise ValueError(
                f'Interval set is not normalized: {current.start}-{current.end} '
                f'runs into {following.start}-{following.end}.'
            )
    return checked


def merge_intervals(intervals: Iterable[Interval]) -> tuple[Interval, ...]:
    ordered = sorted(intervals, key=lambda interval: interval.start)
    if not ordered:
        return ()

    merged: list[Interval] = []
    current = ordered[0]
    for following in ordered[1:]:
        if current.end >= following.start:
            current = Interval(current.start, max(current.end, following.end))
        else:
            merged.append(current)
            current = following
    merged.append(current)
    return tuple(merged)


def overlap_fragments(intervals: Sequence[Interval], target: Interval) -> list[Interval]:
    """Free fragments that wholly contain ``target``."""
    return [fragment for fragment in intervals if fragment.contains(target)]


def can_reserve(intervals: Sequence[Interval], target: Interval) -> bool:
    return any(fragment.contains(target) for fragment in intervals)


def reserve(intervals: Sequence[Interval], target: Interval) -> Reservation:
    """Cut ``target`` out of the one fragment containing it.

    The containing fragment is replaced by whatever is left on either side, so
    ordering and disjointness carry over from the input.
    """
    containing = overlap_fragments(intervals, target)
    if not containing:
        raise SlotUnavailable(start=target.start.isoformat(), end=target.end.isoformat())

    # Fragments are disjoint, so at most one can contain the target.
    chosen = containing[0]
    remaining: list[Interval] = []
    for fragment in intervals:
        if fragment != chosen:
            remaining.append(fragment)
            continue
        if fragment.start < target.start:
            remaining.append(Interval(fragment.start, target.start))
        if target.end < fragment.end:
            remaining.append(Interval(target.end, fragment.end))

    return Reservation(remaining=tuple(remaining), consumed=(target,))


def release(intervals: Sequence[Interval], fragments: Sequence[Interval]) -> tuple[Interval, ...]:
    if not fragments:
        return tuple(intervals)
    return merge_intervals([*intervals, *fragments])


def subtract(intervals: Sequence[Interval], busy: Iterable[Interval]) -> tuple[Interval, ...]:
    """Remove every ``busy`` span from ``intervals``."""
    result = list(intervals)
    for blocked in busy:
        carved: list[Interval] = []
        for fragment in result:
            if not fragment.overlaps(blocked):
                carved.append(fragment)
                continue
            if fragment.start < blocked.start:
                carved.append(Interval(fragment.start, blocked.start))
            if blocked.end < fragment.end:
                carved.append(Interval(blocked.end, fragment.end))
        result = carved
    return merge_intervals(result)


def intervals_to_json(intervals: Iterable[Interval]) -> list[dict[str, str]]:
    return [
        {'start': interval.start.isoformat(), 'end': interval.end.isoformat()}
        for interval in intervals
    ]


def intervals_from_json(payload: Iterable[dict[str, str]] | None) -> tuple[Interval, ...]:
    return tuple(
        Interval(datetime.fromisoformat(item['start']), datetime.fromisoformat(item['end']))
        for item in payload or ()
    )
