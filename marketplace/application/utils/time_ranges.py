from __future__ import annotations

import re
from typing import Iterable

from marketplace.application.exceptions import InvalidRangeError
from marketplace.domain.entities.time_range import MINUTES_PER_DAY, TimeRange

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight. "24:00" is accepted as end of day."""
    match = _TIME_PATTERN.match((value or "").strip())
    if not match:
        raise InvalidRangeError(f"Invalid time of day: {value!r}", value=value)
    hour, minute = int(match.group(1)), int(match.group(2))
    if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
        raise InvalidRangeError(f"Invalid time of day: {value!r}", value=value)
    return hour * 60 + minute


def format_time(minutes: int) -> str:
    if minutes < 0 or minutes > MINUTES_PER_DAY:
        raise InvalidRangeError(f"Minutes out of day bounds: {minutes}", minutes=minutes)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def make_range(start: int, end: int) -> TimeRange:
    candidate = TimeRange(start, end)
    validate_range(candidate)
    return candidate


def range_from_strings(start_time: str, end_time: str) -> TimeRange:
    return make_range(parse_time(start_time), parse_time(end_time))


def validate_range(value: TimeRange) -> None:
    if value.start < 0 or value.end > MINUTES_PER_DAY:
        raise InvalidRangeError(
            f"Range {value.start}-{value.end} falls outside the day", start=value.start, end=value.end
        )
    if value.start >= value.end:
        raise InvalidRangeError(
            f"Range start must precede end ({value.start} >= {value.end})",
            start=value.start,
            end=value.end,
        )


def subtract_range(value: TimeRange, break_range: TimeRange) -> list[TimeRange]:
    """Remove `break_range` from `value`, returning zero, one or two ranges.

    Both inputs must be strictly ordered. Degenerate pieces are dropped.
    """
    validate_range(value)
    validate_range(break_range)

    if break_range.end <= value.start or break_range.start >= value.end:
        return [value]

    pieces: list[TimeRange] = []
    if value.start < break_range.start:
        pieces.append(TimeRange(value.start, break_range.start))
    if break_range.end < value.end:
        pieces.append(TimeRange(break_range.end, value.end))
    return [piece for piece in pieces if piece.start < piece.end]


def subtract_all(ranges: Iterable[TimeRange], breaks: Iterable[TimeRange]) -> list[TimeRange]:
    """Apply every break to every range, one break at a time in the order given."""
    surviving = list(ranges)
    for break_range in breaks:
        surviving = [piece for current in surviving for piece in subtract_range(current, break_range)]
    return surviving


def merge_overlapping(ranges: Iterable[TimeRange]) -> list[TimeRange]:
    """Sort ranges and merge the ones that strictly overlap. Touching ranges stay separate."""
    merged: list[TimeRange] = []
    for current in sorted(ranges):
        if merged and current.start < merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def covered_minutes(ranges: Iterable[TimeRange]) -> set[int]:
    return {minute for current in ranges for minute in range(current.start, current.end)}
