"""Planning Center Online client for registrations and sermon outlines."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from fetchers.http_client import HttpClient
from processor.models import MessageOutline, Registration

logger = logging.getLogger(__name__)


class PlanningCenterError(Exception):
    """Raised when Planning Center data does not have the expected shape."""


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a Planning Center ISO 8601 timestamp into an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Invalid Planning Center timestamp: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class IncludedIndex:
    """Lookup of JSON:API "included" resources by type and id."""

    def __init__(self, included: List[Dict[str, Any]]):
        self._by_type_id = {
            (item.get('type'), item.get('id')): item for item in included
        }

    def get(self, ref: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not ref:
            return None
        return self._by_type_id.get((ref.get('type'), ref.get('id')))


class PlanningCenterClient:
    """Client for the Planning Center Registrations and Services APIs."""

    BASE_URL = "https://api.planningcenteronline.com"
    DEFAULT_SERVICE_TYPE_ID = "884831"

    def __init__(
        self,
        pat_id: Optional[str],
        pat_secret: Optional[str],
        timeout: int = 10,
        http: Optional[HttpClient] = None
    ):
        """
        Initialize the client with a personal access token.

        Args:
            pat_id: Application id of the personal access token
            pat_secret: Secret of the personal access token
            timeout: HTTP request timeout in seconds (default: 10)
            http: Optional preconfigured HttpClient
        """
        self.pat_id = pat_id
        self.pat_secret = pat_secret

        if http is None:
            session = requests.Session()
            session.auth = (pat_id or '', pat_secret or '')
            session.headers['Accept'] = 'application/vnd.api+json'
            http = HttpClient(timeout=timeout, session=session)
        self.http = http

    @property
    def has_credentials(self) -> bool:
        return bool(self.pat_id and self.pat_secret)

    def fetch_open_registrations(
        self,
        now: Optional[datetime] = None
    ) -> List[Registration]:
        """
        Fetch signups that are open for registration right now.

        Args:
            now: Current instant (defaults to the system clock)

        Returns:
            Open registrations ordered by display start, ongoing ones last
        """
        if not self.has_credentials:
            logger.info("Planning Center credentials not configured")
            return []

        now = now or datetime.now(timezone.utc)
        data = self.http.get_json(
            f"{self.BASE_URL}/registrations/v2/signups",
            params={
                'filter': 'unarchived',
                'include': 'next_signup_time,signup_times'
            }
        )

        included = IncludedIndex(data.get('included') or [])
        registrations = []
        for signup in data.get('data') or []:
            registration = self._build_registration(signup, included, now)
            if registration:
                registrations.append(registration)

        far_future = datetime.max.replace(tzinfo=timezone.utc)
        registrations.sort(
            key=lambda r: parse_timestamp(r.display_starts_at) or far_future
        )

        logger.info(f"Fetched {len(registrations)} open registrations")
        return registrations

    def _build_registration(
        self,
        signup: Dict[str, Any],
        included: IncludedIndex,
        now: datetime
    ) -> Optional[Registration]:
        """
        Build a Registration from one signup resource.

        Returns:
            Registration, or None if the signup is not open now or lacks
            a start, a URL or a logo
        """
        attributes = signup.get('attributes') or {}
        relationships = signup.get('relationships') or {}

        next_time = included.get(
            (relationships.get('next_signup_time') or {}).get('data')
        )
        next_starts_at = ((next_time or {}).get('attributes') or {}).get('starts_at')

        signup_times = [
            included.get(ref)
            for ref in (relationships.get('signup_times') or {}).get('data') or []
        ]
        time_values = sorted(
            t['attributes']['starts_at']
            for t in signup_times
            if t and (t.get('attributes') or {}).get('starts_at')
        )

        starts_at = next_starts_at or (time_values[0] if time_values else None)
        if not starts_at:
            starts_at = attributes.get('open_at')

        open_at = parse_timestamp(attributes.get('open_at'))
        close_at = parse_timestamp(attributes.get('close_at'))
        is_open_now = (
            (open_at is not None or close_at is not None)
            and (open_at is None or open_at <= now)
            and (close_at is None or close_at > now)
        )

        next_future = None
        next_start = parse_timestamp(next_starts_at)
        if next_start and next_start > now:
            next_future = next_start
        else:
            future = [
                ts for ts in (parse_timestamp(v) for v in time_values)
                if ts and ts > now
            ]
            if future:
                next_future = min(future)

        is_ongoing = is_open_now and next_future is None
        if is_ongoing:
            display_starts_at = None
        elif next_future is not None:
            display_starts_at = next_future.astimezone(timezone.utc).isoformat()
        else:
            display_starts_at = starts_at

        registration_url = attributes.get('new_registration_url')
        url = registration_url.split('/reservations/new')[0] if registration_url else None
        logo_url = attributes.get('logo_url')

        if not (starts_at and url and logo_url and is_open_now):
            return None

        return Registration(
            id=str(signup.get('id')),
            title=attributes.get('name') or '',
            starts_at=starts_at,
            display_starts_at=display_starts_at,
            url=url,
            description_html=attributes.get('description'),
            logo_url=logo_url
        )

    def fetch_message_outline(
        self,
        service_type_id: str = DEFAULT_SERVICE_TYPE_ID,
        now: Optional[datetime] = None
    ) -> Optional[MessageOutline]:
        """
        Find the sermon outline of the most recent past service plan.

        The outline is the first non-header item after the plan's
        "Message" header.

        Args:
            service_type_id: Services service type id
            now: Current instant (defaults to the system clock)

        Returns:
            MessageOutline, or None without credentials

        Raises:
            PlanningCenterError: If no past plan, header or outline item exists
        """
        if not self.has_credentials:
            logger.info("Planning Center credentials not configured")
            return None

        now = now or datetime.now(timezone.utc)
        base = f"{self.BASE_URL}/services/v2/service_types/{service_type_id}"

        plans = self.http.get_json(
            f"{base}/plans",
            params={'order': '-sort_date', 'per_page': 25}
        ).get('data') or []

        past_plan = None
        for plan in plans:
            sort_date = parse_timestamp((plan.get('attributes') or {}).get('sort_date'))
            if sort_date and sort_date <= now:
                past_plan = plan
                break

        if past_plan is None:
            raise PlanningCenterError(
                "No past plan found. (Check serviceTypeId or date assumptions.)"
            )

        items = self.http.get_json(
            f"{base}/plans/{past_plan['id']}/items",
            params={
                'order': 'position',
                'per_page': 200,
                'include': 'parent',
                'fields[items]': 'title,description,item_type,position'
            }
        ).get('data') or []

        def item_type(item: Dict[str, Any]) -> str:
            return ((item.get('attributes') or {}).get('item_type') or '').lower()

        header_index = next(
            (
                i for i, item in enumerate(items)
                if item_type(item) == 'header'
                and ((item.get('attributes') or {}).get('title') or '').strip().lower() == 'message'
            ),
            None
        )
        if header_index is None:
            raise PlanningCenterError('No "Message" header found in this plan.')

        child = next(
            (item for item in items[header_index + 1:] if item_type(item) != 'header'),
            None
        )
        if child is None:
            raise PlanningCenterError('No item found after the "Message" header.')

        child_attributes = child.get('attributes') or {}
        return MessageOutline(
            plan_id=str(past_plan['id']),
            plan_sort_date=(past_plan.get('attributes') or {}).get('sort_date'),
            header_id=str(items[header_index].get('id')),
            item_id=str(child.get('id')),
            item_title=child_attributes.get('title') or '',
            description=(
                child_attributes.get('description')
                or child_attributes.get('html_details')
                or ''
            )
        )
