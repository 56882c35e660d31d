"""Weekly RRULE expansion with EXDATE/RDATE handling."""
import heapq
import logging
from datetime import datetime, timedelta
from enum import Enum
from itertools import islice
from typing import Iterable, Iterator, List, Optional

from processor.date_normalizer import parse_ics_date
from processor.models import Occurrence, RawProperty, RRuleSpec

logger = logging.getLogger(__name__)

WEEKDAY_CODES = {'MO': 1, 'TU': 2, 'WE': 3, 'TH': 4, 'FR': 5, 'SA': 6, 'SU': 7}

ONE_WEEK = timedelta(weeks=1)


class CountPolicy(Enum):
    """How COUNT limits instances when BYDAY lists several weekdays."""
    PER_WEEKDAY = 'per_weekday'
    GLOBAL = 'global'


def _parse_positive_int(raw: Optional[str], name: str) -> Optional[int]:
    if raw is None or raw == '':
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric RRULE {name}: {raw}")
        return None


def parse_rrule(value: str, fallback_zone: str) -> RRuleSpec:
    """
    Parse an RRULE value such as "FREQ=WEEKLY;BYDAY=MO,WE;INTERVAL=2".

    Args:
        value: RRULE property value
        fallback_zone: Zone used to interpret a floating UNTIL

    Returns:
        RRuleSpec; unknown BYDAY codes are dropped, an invalid UNTIL
        is treated as absent and an invalid INTERVAL defaults to 1
    """
    parts = {}
    for piece in (value or '').split(';'):
        key, _, part_value = piece.partition('=')
        parts[key.strip().upper()] = part_value.strip()

    interval = _parse_positive_int(parts.get('INTERVAL'), 'INTERVAL')
    if interval is None or interval < 1:
        interval = 1

    count = _parse_positive_int(parts.get('COUNT'), 'COUNT')
    if count is not None and count < 0:
        count = None

    by_weekday = []
    for code in parts.get('BYDAY', '').split(','):
        weekday = WEEKDAY_CODES.get(code.strip().upper())
        if weekday is not None:
            by_weekday.append(weekday)

    until = None
    if parts.get('UNTIL'):
        until = parse_ics_date(RawProperty(value=parts['UNTIL']), fallback_zone)

    return RRuleSpec(
        frequency=parts.get('FREQ', '').upper(),
        interval=interval,
        by_weekday=tuple(by_weekday),
        until=until,
        count=count
    )


def _start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _weekday_candidates(
    seed_start: datetime,
    weekday: int,
    interval: int,
    window_start: datetime,
    upper_bound: datetime
) -> Iterator[datetime]:
    """
    Yield start times on one weekday, INTERVAL-aligned with the seed's week.

    The first candidate is the first matching weekday on or after the
    start of window_start's day, at the seed's time of day.
    """
    day = _start_of_day(window_start)
    first = (day + timedelta(days=(weekday - day.isoweekday()) % 7)).replace(
        hour=seed_start.hour,
        minute=seed_start.minute,
        second=seed_start.second,
        microsecond=seed_start.microsecond
    )

    seed_week_start = _start_of_day(
        seed_start - timedelta(days=seed_start.weekday())
    )
    weeks_between = (first - seed_week_start) // ONE_WEEK
    while weeks_between % interval != 0:
        first += ONE_WEEK
        weeks_between += 1

    current = first
    step = timedelta(weeks=interval)
    while current <= upper_bound:
        yield current
        current += step


def expand_extra_dates(
    extra_dates: Iterable[datetime],
    exception_dates: Iterable[datetime],
    duration: timedelta,
    window_start: datetime,
    window_end: datetime
) -> List[Occurrence]:
    """
    Turn RDATE instants inside [window_start, window_end] into occurrences.

    Instants that are also exception dates are dropped.
    """
    exceptions = set(exception_dates)
    return [
        Occurrence(start=extra, end=extra + duration)
        for extra in sorted(extra_dates)
        if window_start <= extra <= window_end and extra not in exceptions
    ]


def expand_weekly(
    seed_start: Optional[datetime],
    seed_end: Optional[datetime],
    rrule: RRuleSpec,
    exception_dates: Iterable[datetime],
    extra_dates: Iterable[datetime],
    window_start: datetime,
    window_end: datetime,
    count_policy: CountPolicy = CountPolicy.PER_WEEKDAY
) -> List[Occurrence]:
    """
    Expand a weekly recurrence master into occurrences inside a window.

    Every instance keeps the seed's duration. UNTIL is an inclusive upper
    bound. With CountPolicy.PER_WEEKDAY each BYDAY weekday is capped at
    COUNT generated candidates on its own; a candidate skipped because it
    precedes window_start still uses up a slot, an EXDATE does not. With
    CountPolicy.GLOBAL the first COUNT candidates across all weekdays, in
    chronological order, are considered. RDATEs are added afterwards.

    Args:
        seed_start: Normalized DTSTART of the master; None yields []
        seed_end: Normalized DTEND; defaults to seed_start
        rrule: Parsed rule (callers only pass WEEKLY rules)
        exception_dates: EXDATE instants
        extra_dates: RDATE instants
        window_start: Inclusive lower bound for instance starts
        window_end: Inclusive upper bound for instance starts
        count_policy: How COUNT applies across BYDAY weekdays

    Returns:
        Occurrences sorted by start with duplicate starts removed
    """
    if seed_start is None:
        return []

    if seed_end is None or seed_end < seed_start:
        seed_end = seed_start
    duration = seed_end - seed_start

    window_start = window_start.astimezone(seed_start.tzinfo)
    window_end = window_end.astimezone(seed_start.tzinfo)
    upper_bound = min(window_end, rrule.until) if rrule.until else window_end
    exceptions = set(exception_dates)

    weekdays = rrule.by_weekday or (seed_start.isoweekday(),)
    # EXDATEs leave each stream before COUNT is applied
    streams = [
        (
            start for start in _weekday_candidates(
                seed_start, weekday, rrule.interval, window_start, upper_bound
            )
            if start not in exceptions
        )
        for weekday in weekdays
    ]

    if rrule.count == 0:
        candidates = []
    elif rrule.count is None:
        candidates = [start for stream in streams for start in stream]
    elif count_policy is CountPolicy.GLOBAL:
        candidates = list(islice(heapq.merge(*streams), rrule.count))
    else:
        candidates = [
            start for stream in streams for start in islice(stream, rrule.count)
        ]

    occurrences = [
        Occurrence(start=start, end=start + duration)
        for start in candidates
        if start >= window_start
    ]
    occurrences.extend(
        expand_extra_dates(
            extra_dates, exceptions, duration, window_start, window_end
        )
    )

    seen = set()
    unique = []
    for occurrence in occurrences:
        if occurrence.start in seen:
            continue
        seen.add(occurrence.start)
        unique.append(occurrence)

    return sorted(unique, key=lambda o: o.start)
