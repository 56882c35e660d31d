"""Data models for calendar normalization and newsletter assembly."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple


@dataclass
class RawProperty:
    """One ICS property occurrence: trimmed value plus uppercased parameters."""
    value: str
    params: Dict[str, str] = field(default_factory=dict)


@dataclass
class RRuleSpec:
    """Parsed RRULE. Only WEEKLY frequency is expanded."""
    frequency: str
    interval: int = 1
    by_weekday: Tuple[int, ...] = ()
    until: Optional[datetime] = None
    count: Optional[int] = None

    @property
    def is_weekly(self) -> bool:
        return self.frequency == 'WEEKLY'


@dataclass
class EventSeed:
    """Un-expanded description of one VEVENT block."""
    uid: Optional[str]
    title: str
    location: str
    url: Optional[str]
    start_raw: Optional[RawProperty]
    end_raw: Optional[RawProperty]
    rrule: Optional[RRuleSpec]
    exception_dates: FrozenSet[datetime] = frozenset()
    extra_dates: FrozenSet[datetime] = frozenset()


@dataclass(frozen=True)
class Occurrence:
    """Concrete start/end produced by recurrence expansion."""
    start: datetime
    end: datetime


@dataclass(frozen=True)
class CalendarEvent:
    """Normalized calendar event handed to the renderer."""
    id: Optional[str]
    title: str
    start: datetime
    end: datetime
    location: str
    url: Optional[str]


@dataclass
class DedupeOptions:
    """Options for near-duplicate merging."""
    time_bucket_minutes: int = 10
    include_location_in_key: bool = False

    def __post_init__(self):
        if self.time_bucket_minutes <= 0:
            raise ValueError(
                f"time_bucket_minutes must be positive, got {self.time_bucket_minutes}"
            )


@dataclass
class Registration:
    """Open registration (signup) from Planning Center."""
    id: str
    title: str
    starts_at: Optional[str]
    display_starts_at: Optional[str]
    url: Optional[str]
    description_html: Optional[str]
    logo_url: Optional[str]


@dataclass
class Sermon:
    """Latest sermon video."""
    video_id: str
    title: str
    thumbnail: Optional[str]
    url: str


@dataclass
class MessageOutline:
    """Sermon outline item found under the "Message" header of a service plan."""
    plan_id: str
    plan_sort_date: Optional[str]
    header_id: str
    item_id: str
    item_title: str
    description: str


@dataclass
class FinancialStats:
    """Giving statistics shown at the top of the newsletter."""
    gifts_received: int
    giving_goal: int
    total_gifts: int
    new_givers: int
    unique_givers: int


@dataclass
class DraftResult:
    """Result of creating an email campaign draft."""
    campaign_id: str
    web_id: Optional[int]


@dataclass
class NewsletterResult:
    """Summary of one newsletter build."""
    subject: str
    html: str
    calendar_events: List[CalendarEvent]
    registrations: List[Registration]
    sermon: Optional[Sermon]
    draft: Optional[DraftResult] = None
