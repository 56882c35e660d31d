"""Text-level access to ICS documents: unfolding, VEVENT blocks and properties."""
import re
from enum import Enum
from typing import Dict, List, Optional

from processor.models import RawProperty

_FOLD_RE = re.compile(r'\r?\n[ \t]')
_VEVENT_RE = re.compile(r'BEGIN:VEVENT(.*?)END:VEVENT', re.DOTALL)

_ESCAPES = {'\\n': '\n', '\\N': '\n', '\\,': ',', '\\;': ';', '\\\\': '\\'}
_ESCAPE_RE = re.compile(r'\\[nN,;\\]')


class IcsProperty(str, Enum):
    """VEVENT properties recognized by the calendar pipeline."""
    UID = 'UID'
    SUMMARY = 'SUMMARY'
    LOCATION = 'LOCATION'
    URL = 'URL'
    DTSTART = 'DTSTART'
    DTEND = 'DTEND'
    RRULE = 'RRULE'
    EXDATE = 'EXDATE'
    RDATE = 'RDATE'


def _property_pattern(key: IcsProperty) -> re.Pattern:
    return re.compile(
        rf'^{key.value}(;[^:\r\n]+)?:([^\r\n]+)',
        re.MULTILINE
    )


_PATTERNS = {key: _property_pattern(key) for key in IcsProperty}


def unfold(text: str) -> str:
    """
    Join folded content lines (RFC 5545 section 3.1).

    Args:
        text: Raw ICS document text

    Returns:
        Text with every line break followed by a space or tab removed
    """
    return _FOLD_RE.sub('', text)


def extract_vevent_blocks(text: str) -> List[str]:
    """
    Return the interior text of every BEGIN:VEVENT ... END:VEVENT span.

    Args:
        text: Unfolded ICS document text

    Returns:
        Block interiors in order of appearance
    """
    return [match.group(1) for match in _VEVENT_RE.finditer(text)]


def parse_params(params_str: str) -> Dict[str, str]:
    """Parse ';NAME=VALUE;NAME=VALUE' into a dict keyed by uppercased name."""
    params = {}
    for piece in params_str.split(';'):
        if not piece:
            continue
        name, _, value = piece.partition('=')
        params[name.upper()] = value.strip('"')
    return params


def get_property(block: str, key: IcsProperty) -> Optional[RawProperty]:
    """
    Find the first occurrence of a property in a VEVENT block.

    Args:
        block: VEVENT block interior
        key: Property to look up

    Returns:
        RawProperty with trimmed value and parameters, or None if absent
    """
    match = _PATTERNS[key].search(block)
    if not match:
        return None
    return RawProperty(
        value=match.group(2).strip(),
        params=parse_params(match.group(1) or '')
    )


def get_all_properties(block: str, key: IcsProperty) -> List[RawProperty]:
    """Return every occurrence of a repeatable property (EXDATE, RDATE)."""
    return [
        RawProperty(
            value=match.group(2).strip(),
            params=parse_params(match.group(1) or '')
        )
        for match in _PATTERNS[key].finditer(block)
    ]


def get_text(block: str, key: IcsProperty, default: str = '') -> str:
    """Look up a TEXT property and decode its escapes."""
    prop = get_property(block, key)
    if prop is None or not prop.value:
        return default
    return unescape_text(prop.value)


def unescape_text(value: str) -> str:
    """Decode RFC 5545 TEXT escapes (\\n, \\, \\; and \\\\)."""
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(0)], value)
