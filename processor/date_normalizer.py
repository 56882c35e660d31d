"""Convert ICS DATE and DATE-TIME values into timezone-aware datetimes."""
import logging
import re
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.models import RawProperty

logger = logging.getLogger(__name__)

_DATE_ONLY_RE = re.compile(r'^\d{8}$')
_DATE_TIME_FORMATS = {
    15: '%Y%m%dT%H%M%S',
    13: '%Y%m%dT%H%M',
}
_DATE_TIME_RE = re.compile(r'^\d{8}T\d{4}(\d{2})?$')


def resolve_zone(tzid: Optional[str], fallback_zone: str) -> ZoneInfo:
    """
    Resolve a TZID parameter to a ZoneInfo.

    Unknown identifiers (for example Windows zone names emitted by some
    calendar servers) resolve to the fallback zone.

    Args:
        tzid: TZID parameter value, may be None
        fallback_zone: IANA identifier used when tzid is absent or unknown

    Returns:
        ZoneInfo instance
    """
    if tzid:
        try:
            return ZoneInfo(tzid)
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug(f"Unknown TZID '{tzid}', using {fallback_zone}")
    return ZoneInfo(fallback_zone)


def parse_ics_date(
    prop: Optional[RawProperty],
    fallback_zone: str,
    output_zone: Optional[str] = None
) -> Optional[datetime]:
    """
    Parse a DTSTART/DTEND/EXDATE/RDATE value.

    Accepted forms are YYYYMMDD (or any value with VALUE=DATE),
    YYYYMMDDTHHMMSS and YYYYMMDDTHHMM, the date-time forms optionally
    suffixed with Z for UTC.

    Args:
        prop: Raw property; None yields None
        fallback_zone: Zone used when the property carries no TZID
        output_zone: Zone of the returned datetime (defaults to fallback_zone)

    Returns:
        Aware datetime in the output zone, or None if the value is not
        a recognized form or not a valid calendar date/time
    """
    if prop is None:
        return None

    value = prop.value.strip()
    params = prop.params or {}
    zone = resolve_zone(params.get('TZID'), fallback_zone)
    out_zone = ZoneInfo(output_zone or fallback_zone)

    if params.get('VALUE') == 'DATE' or _DATE_ONLY_RE.match(value):
        if not _DATE_ONLY_RE.match(value):
            logger.debug(f"Invalid DATE value: {value}")
            return None
        try:
            parsed = datetime.strptime(value, '%Y%m%d')
        except ValueError:
            logger.debug(f"Invalid DATE value: {value}")
            return None
        return parsed.replace(tzinfo=zone).astimezone(out_zone)

    is_utc = value.endswith('Z')
    base = value[:-1] if is_utc else value

    if not _DATE_TIME_RE.match(base):
        logger.debug(f"Unrecognized DATE-TIME value: {value}")
        return None

    try:
        parsed = datetime.strptime(base, _DATE_TIME_FORMATS[len(base)])
    except ValueError:
        logger.debug(f"Invalid DATE-TIME value: {value}")
        return None

    parsed = parsed.replace(tzinfo=timezone.utc if is_utc else zone)
    return parsed.astimezone(out_zone)


def parse_date_list(
    props: Iterable[RawProperty],
    fallback_zone: str
) -> FrozenSet[datetime]:
    """
    Parse repeatable, comma-separated EXDATE/RDATE properties.

    Values that fail to parse are skipped.

    Args:
        props: Every occurrence of the property in one block
        fallback_zone: Zone used when an occurrence has no TZID

    Returns:
        Set of aware datetimes in the fallback zone
    """
    dates = set()
    for prop in props:
        for piece in prop.value.split(','):
            parsed = parse_ics_date(
                RawProperty(value=piece, params=prop.params),
                fallback_zone
            )
            if parsed is not None:
                dates.add(parsed)
    return frozenset(dates)
