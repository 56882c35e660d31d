"""Turn ICS text into the ordered list of events shown in the newsletter."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from processor.date_normalizer import parse_date_list, parse_ics_date
from processor.dedupe import dedupe_events
from processor.ics_text import (
    IcsProperty,
    extract_vevent_blocks,
    get_all_properties,
    get_property,
    get_text,
    unfold,
)
from processor.models import CalendarEvent, DedupeOptions, EventSeed, Occurrence
from processor.recurrence import (
    CountPolicy,
    expand_extra_dates,
    expand_weekly,
    parse_rrule,
)

logger = logging.getLogger(__name__)


class CalendarProcessor:
    """Parses, expands and de-duplicates the events of one ICS document."""

    DEFAULT_DAYS = 14
    MAX_EVENTS = 8

    def __init__(
        self,
        timezone: str = 'America/Chicago',
        days: int = DEFAULT_DAYS,
        lookback_days: int = 0,
        max_events: Optional[int] = MAX_EVENTS,
        default_location: str = '',
        dedupe_options: Optional[DedupeOptions] = None,
        count_policy: CountPolicy = CountPolicy.PER_WEEKDAY
    ):
        """
        Initialize the processor.

        Args:
            timezone: IANA zone used for floating values and for all output
            days: Lookahead window in days from now
            lookback_days: Lookback window in days before now
            max_events: Truncate the final list to this many events (None keeps all)
            default_location: Location for events that have none
            dedupe_options: Near-duplicate merge options
            count_policy: How RRULE COUNT applies across BYDAY weekdays
        """
        self.timezone = timezone
        self.days = days
        self.lookback_days = lookback_days
        self.max_events = max_events
        self.default_location = default_location
        self.dedupe_options = dedupe_options or DedupeOptions()
        self.count_policy = count_policy

    def window(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """Return the [start, end] window around now in the output zone."""
        zone = ZoneInfo(self.timezone)
        now = now.astimezone(zone) if now else datetime.now(zone)
        return (
            now - timedelta(days=self.lookback_days),
            now + timedelta(days=self.days)
        )

    def process_ics(
        self,
        ics_text: Optional[str],
        now: Optional[datetime] = None
    ) -> List[CalendarEvent]:
        """
        Process an ICS document into newsletter events.

        Args:
            ics_text: Raw ICS text; empty or None yields []
            now: Current instant (defaults to the system clock)

        Returns:
            De-duplicated events sorted by start, truncated to max_events
        """
        if not ics_text:
            return []

        window_start, window_end = self.window(now)
        blocks = extract_vevent_blocks(unfold(ics_text))

        events = []
        for index, block in enumerate(blocks):
            try:
                events.extend(self._process_block(block, window_start, window_end))
            except Exception as e:
                logger.warning(f"Failed to process VEVENT block {index}: {e}")
                continue

        events.sort(key=lambda e: e.start)
        deduped = dedupe_events(events, self.dedupe_options)

        logger.info(
            f"Processed {len(blocks)} VEVENT blocks into {len(events)} events, "
            f"{len(deduped)} after de-duplication"
        )

        if self.max_events is not None:
            return deduped[:self.max_events]
        return deduped

    def parse_seed(self, block: str) -> Optional[EventSeed]:
        """
        Extract the un-expanded event description from a VEVENT block.

        Returns:
            EventSeed, or None if the block has no SUMMARY
        """
        title = get_text(block, IcsProperty.SUMMARY)
        if not title:
            logger.warning("Skipping VEVENT without SUMMARY")
            return None

        start_raw = get_property(block, IcsProperty.DTSTART)
        end_raw = get_property(block, IcsProperty.DTEND) or start_raw
        rrule_prop = get_property(block, IcsProperty.RRULE)
        uid = get_property(block, IcsProperty.UID)
        url = get_property(block, IcsProperty.URL)

        return EventSeed(
            uid=(uid.value.strip() or None) if uid else None,
            title=title,
            location=get_text(block, IcsProperty.LOCATION, self.default_location),
            url=(url.value or None) if url else None,
            start_raw=start_raw,
            end_raw=end_raw,
            rrule=parse_rrule(rrule_prop.value, self.timezone) if rrule_prop else None,
            exception_dates=parse_date_list(
                get_all_properties(block, IcsProperty.EXDATE), self.timezone
            ),
            extra_dates=parse_date_list(
                get_all_properties(block, IcsProperty.RDATE), self.timezone
            )
        )

    def _process_block(
        self,
        block: str,
        window_start: datetime,
        window_end: datetime
    ) -> List[CalendarEvent]:
        seed = self.parse_seed(block)
        if seed is None:
            return []

        start = parse_ics_date(seed.start_raw, self.timezone)
        end = parse_ics_date(seed.end_raw, self.timezone)
        if start is not None and (end is None or end < start):
            end = start

        if seed.rrule is not None and seed.rrule.is_weekly:
            occurrences = expand_weekly(
                seed_start=start,
                seed_end=end,
                rrule=seed.rrule,
                exception_dates=seed.exception_dates,
                extra_dates=seed.extra_dates,
                window_start=window_start,
                window_end=window_end,
                count_policy=self.count_policy
            )
            return [self._instance(seed, o) for o in occurrences]

        if seed.rrule is not None:
            logger.debug(
                f"Treating {seed.rrule.frequency or 'unknown'} recurrence of "
                f"'{seed.title}' as a single occurrence"
            )

        if start is None:
            logger.warning(f"Skipping '{seed.title}': missing or invalid DTSTART")
            return []

        occurrences = []
        if window_start <= start <= window_end:
            occurrences.append(Occurrence(start=start, end=end))

        if not seed.extra_dates:
            return [self._single(seed, o) for o in occurrences]

        seen = {o.start for o in occurrences}
        for extra in expand_extra_dates(
            seed.extra_dates, seed.exception_dates, end - start,
            window_start, window_end
        ):
            if extra.start not in seen:
                seen.add(extra.start)
                occurrences.append(extra)
        return [self._instance(seed, o) for o in occurrences]

    @staticmethod
    def _single(seed: EventSeed, occurrence: Occurrence) -> CalendarEvent:
        return CalendarEvent(
            id=seed.uid,
            title=seed.title,
            start=occurrence.start,
            end=occurrence.end,
            location=seed.location,
            url=seed.url
        )

    @staticmethod
    def _instance(seed: EventSeed, occurrence: Occurrence) -> CalendarEvent:
        """Build one occurrence of a recurring seed with a synthetic id."""
        return CalendarEvent(
            id=f"{seed.uid}#{occurrence.start.isoformat()}" if seed.uid else None,
            title=seed.title,
            start=occurrence.start,
            end=occurrence.end,
            location=seed.location,
            url=seed.url
        )
