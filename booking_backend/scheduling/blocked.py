"""Parsing of the ``blocked`` entries stored on availability records.

Three shapes are accepted::

    2026-03-02                          the whole day
    2026-03-02_2026-03-06               whole days, both ends inclusive
    2026-03-02T12:00_2026-03-02T13:30   a half-open date-time range

A side written as a bare date means "from midnight" on the left and
"until the following midnight" on the right.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

RANGE_SEPARATOR = '_'


@dataclass(frozen=True)
class BlockedRange:
    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


def _parse_side(value: str, *, is_end: bool) -> datetime:
    value = value.strip()
    if 'T' in value or ' ' in value:
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is not None:
            raise ValueError('Blocked date-times are wall-clock times without an offset.')
        return parsed.replace(second=0, microsecond=0)

    day = date.fromisoformat(value)
    if is_end:
        day += timedelta(days=1)
    return datetime.combine(day, time.min)


def parse_blocked_range(entry: str) -> BlockedRange:
    if not isinstance(entry, str) or not entry.strip():
        raise ValueError('Blocked entries must be non-empty strings.')

    left, separator, right = entry.strip().partition(RANGE_SEPARATOR)
    if not separator:
        right = left

    try:
        blocked = BlockedRange(
            start=_parse_side(left, is_end=False),
            end=_parse_side(right, is_end=True),
        )
    except ValueError as exc:
        raise ValueError(f'Invalid blocked range "{entry}".') from exc

    if blocked.start >= blocked.end:
        raise ValueError(f'Blocked range "{entry}" ends before it starts.')

    return blocked


def parse_blocked_ranges(entries: list[str]) -> list[BlockedRange]:
    return [parse_blocked_range(entry) for entry in entries]
