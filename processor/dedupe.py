"""Merge near-identical events coming from overlapping sources."""
import logging
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from processor.models import CalendarEvent, DedupeOptions

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r'\s+')
_SUBTITLE_RE = re.compile(r'\s*[-–—:]\s*.*$')
_NON_WORD_RE = re.compile(r'[^\w\s]|_')
_ROOM_RE = re.compile(r'(room|rm|suite|#)\s*\w+', re.IGNORECASE)
_LOCATION_ESCAPE_RE = re.compile(r'\\[n,]')

DEFAULT_PREFERRED_URL_PATTERN = r'churchcenter\.com|registrations'

MergeKey = Tuple[str, datetime, Optional[str]]


def normalize_title(title: str) -> str:
    """
    Reduce a title to its comparable core.

    "Born from Above: Bible Study" and "Born from Above" both become
    "born from above".
    """
    text = _WHITESPACE_RE.sub(' ', (title or '').lower())
    text = _SUBTITLE_RE.sub('', text)
    text = _NON_WORD_RE.sub('', text)
    return text.strip()


def normalize_location(location: str) -> str:
    text = _LOCATION_ESCAPE_RE.sub(' ', (location or '').lower())
    return _WHITESPACE_RE.sub(' ', text).strip()


def time_bucket(start: datetime, minutes: int = 10) -> datetime:
    """Round a start time down to the nearest N-minute boundary."""
    return start.replace(
        minute=start.minute - start.minute % minutes,
        second=0,
        microsecond=0
    )


def is_more_specific_location(a: str, b: str) -> bool:
    """
    Return True if location a is at least as specific as location b.

    A location naming a room, suite or number beats one that does not;
    otherwise the longer string wins and ties go to a.
    """
    a = a or ''
    b = b or ''
    a_has_room = bool(_ROOM_RE.search(a))
    b_has_room = bool(_ROOM_RE.search(b))
    if a_has_room != b_has_room:
        return a_has_room
    return len(a) >= len(b)


def pick_url(
    a: Optional[str],
    b: Optional[str],
    preferred_pattern: str = DEFAULT_PREFERRED_URL_PATTERN
) -> Optional[str]:
    """Prefer a registration/booking URL, then whichever is present (a first)."""
    a_preferred = bool(a and re.search(preferred_pattern, a))
    b_preferred = bool(b and re.search(preferred_pattern, b))
    if a_preferred and not b_preferred:
        return a
    if b_preferred and not a_preferred:
        return b
    return a or b or None


def merge_events(
    existing: CalendarEvent,
    new: CalendarEvent,
    preferred_url_pattern: str = DEFAULT_PREFERRED_URL_PATTERN
) -> CalendarEvent:
    """
    Combine two events believed to describe the same occurrence.

    Args:
        existing: Event already stored
        new: Event being merged in

    Returns:
        New CalendarEvent spanning both, with the longer title, the more
        specific location and the preferred URL
    """
    existing_title = existing.title or ''
    new_title = new.title or ''

    if is_more_specific_location(existing.location, new.location):
        location = existing.location
    else:
        location = new.location

    return CalendarEvent(
        id=existing.id or new.id or None,
        title=existing_title if len(existing_title) >= len(new_title) else new_title,
        start=min(existing.start, new.start),
        end=max(existing.end, new.end),
        location=location,
        url=pick_url(existing.url, new.url, preferred_url_pattern)
    )


def _candidate_keys(
    event: CalendarEvent,
    options: DedupeOptions
) -> List[MergeKey]:
    title_key = normalize_title(event.title)
    center = time_bucket(event.start, options.time_bucket_minutes)
    step = timedelta(minutes=options.time_bucket_minutes)
    location_key = (
        normalize_location(event.location)
        if options.include_location_in_key else None
    )
    return [
        (title_key, bucket, location_key)
        for bucket in (center, center - step, center + step)
    ]


def _sort_key(event: CalendarEvent) -> Tuple[datetime, str, str]:
    return event.start, event.title or '', event.id or ''


def dedupe_by_id(events: List[CalendarEvent]) -> List[CalendarEvent]:
    """Collapse events sharing a non-empty id; the first one wins.

    Events keep their input order, with or without an id.
    """
    seen: Set[str] = set()
    unique = []
    for event in events:
        if event.id:
            if event.id in seen:
                continue
            seen.add(event.id)
        unique.append(event)
    return unique


def dedupe_events(
    events: List[CalendarEvent],
    options: Optional[DedupeOptions] = None,
    preferred_url_pattern: str = DEFAULT_PREFERRED_URL_PATTERN
) -> List[CalendarEvent]:
    """
    De-duplicate events from overlapping sources.

    Pass 1 collapses events with the same id. Pass 2 merges events whose
    normalized titles match and whose starts fall into the same or an
    adjacent time bucket. A merged event is re-filed under the bucket of
    its merged start, and ties on start are ordered by title and then id,
    so running the function on its own output changes nothing.

    Args:
        events: Events in any order
        options: Bucket width and whether location is part of the key

    Returns:
        De-duplicated events sorted by start
    """
    if not events:
        return []
    options = options or DedupeOptions()

    stored: Dict[MergeKey, CalendarEvent] = {}
    merged_count = 0

    for event in dedupe_by_id(events):
        candidates = _candidate_keys(event, options)
        for key in candidates:
            if key in stored:
                merged = merge_events(stored.pop(key), event, preferred_url_pattern)
                stored[_candidate_keys(merged, options)[0]] = merged
                merged_count += 1
                break
        else:
            stored[candidates[0]] = event

    if merged_count:
        logger.info(f"Merged {merged_count} near-duplicate events")

    return sorted(stored.values(), key=_sort_key)
