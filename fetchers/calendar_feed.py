"""ICS calendar feed client."""
import logging
from datetime import datetime
from typing import List, Optional

from fetchers.http_client import HttpClient
from processor.calendar_processor import CalendarProcessor
from processor.models import CalendarEvent

logger = logging.getLogger(__name__)


class CalendarFeedClient:
    """Downloads ICS documents."""

    def __init__(self, timeout: int = 10, http: Optional[HttpClient] = None):
        """
        Initialize the feed client.

        Args:
            timeout: HTTP request timeout in seconds (default: 10)
            http: Optional preconfigured HttpClient
        """
        self.http = http or HttpClient(timeout=timeout)

    def fetch_ics(self, url: str) -> str:
        """
        Fetch raw ICS text.

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        logger.info("Fetching calendar feed")
        response = self.http.get(url, headers={'Accept': 'text/calendar'})
        return response.text


def fetch_calendar_events(
    ics_url: Optional[str],
    days: int = CalendarProcessor.DEFAULT_DAYS,
    tz: str = 'America/Chicago',
    now: Optional[datetime] = None,
    lookback_days: int = 0,
    max_events: Optional[int] = CalendarProcessor.MAX_EVENTS,
    default_location: str = '',
    client: Optional[CalendarFeedClient] = None
) -> List[CalendarEvent]:
    """
    Fetch an ICS feed and return the upcoming events for the newsletter.

    Args:
        ics_url: Feed URL; empty means no calendar section
        days: Lookahead window in days
        tz: Fallback and output IANA zone
        now: Current instant (defaults to the system clock)
        lookback_days: Lookback window in days
        max_events: Maximum number of events returned
        default_location: Location for events that have none
        client: Optional feed client

    Returns:
        Events sorted by start

    Raises:
        requests.RequestException: If the feed cannot be fetched
    """
    if not ics_url:
        logger.info("No calendar feed configured")
        return []

    client = client or CalendarFeedClient()
    text = client.fetch_ics(ics_url)

    processor = CalendarProcessor(
        timezone=tz,
        days=days,
        lookback_days=lookback_days,
        max_events=max_events,
        default_location=default_location
    )
    events = processor.process_ics(text, now=now)
    logger.info(f"Fetched {len(events)} calendar events")
    return events
