"""Fill the newsletter HTML template with fetched content."""
import html as html_lib
import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup

from processor.models import CalendarEvent, FinancialStats, Registration, Sermon

logger = logging.getLogger(__name__)

ALLOWED_TAGS = {
    'address', 'article', 'aside', 'footer', 'header', 'h1', 'h2', 'h3',
    'h4', 'h5', 'h6', 'hgroup', 'main', 'nav', 'section', 'blockquote',
    'dd', 'div', 'dl', 'dt', 'figcaption', 'figure', 'hr', 'li', 'ol', 'p',
    'pre', 'ul', 'a', 'abbr', 'b', 'bdi', 'bdo', 'br', 'cite', 'code',
    'data', 'dfn', 'em', 'i', 'kbd', 'mark', 'q', 's', 'samp', 'small',
    'span', 'strong', 'sub', 'sup', 'time', 'u', 'var', 'wbr', 'caption',
    'col', 'colgroup', 'table', 'tbody', 'td', 'tfoot', 'th', 'thead', 'tr',
    'img',
}
ALLOWED_ATTRIBUTES = {
    'a': {'href', 'title', 'target', 'rel'},
    'img': {'src', 'alt'},
}
DROPPED_TAGS = ['script', 'style', 'textarea', 'option', 'noscript', 'iframe']
ALLOWED_SCHEMES = ('http', 'https', 'ftp', 'mailto', 'tel')

REGISTRATION_START = '<div data-block="registration_block_start"></div>'
REGISTRATION_END = '<div data-block="registration_block_end"></div>'

DEFAULT_SERMON_TITLE = "This Week's Message"
DEFAULT_SERMON_URL = "canachurch.com/sermons"

_SCHEME_RE = re.compile(r'^\s*([a-zA-Z][a-zA-Z0-9+.\-]*):')


def escape_html(text: Optional[str]) -> str:
    return html_lib.escape(text or '', quote=True)


def _url_allowed(url: str) -> bool:
    match = _SCHEME_RE.match(url)
    return match is None or match.group(1).lower() in ALLOWED_SCHEMES


def sanitize_html(fragment: str) -> str:
    """
    Reduce an HTML fragment to an allow-list of tags and attributes.

    Disallowed tags are unwrapped (their text is kept) except script-like
    tags, which are removed with their content. Links and images with
    non-web URL schemes lose the offending attribute.
    """
    soup = BeautifulSoup(fragment or '', 'html.parser')

    for tag in soup.find_all(DROPPED_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        allowed = ALLOWED_ATTRIBUTES.get(tag.name, set())
        for attr in list(tag.attrs):
            if attr not in allowed:
                del tag[attr]
            elif attr in ('href', 'src') and not _url_allowed(tag[attr]):
                del tag[attr]

    return str(soup)


def left_align_paragraphs(fragment: Optional[str]) -> str:
    """Force text-align:left on every <p> of a description."""
    if not fragment:
        return ''
    soup = BeautifulSoup(fragment, 'html.parser')
    for paragraph in soup.find_all('p'):
        style = paragraph.get('style', '')
        if 'text-align' not in style:
            paragraph['style'] = f"text-align:left; {style}".strip()
    return str(soup)


def format_currency(amount: float) -> str:
    """Format whole US dollars, e.g. 45000 -> "$45,000"."""
    return f"${amount:,.0f}"


def format_statistic(value: int) -> str:
    return f"{value:,}"


def format_event_time(value, tz: str) -> str:
    """
    Format an instant as "Friday, Oct 17, 7:00 PM" in the given zone.

    Args:
        value: Aware datetime or ISO 8601 string
        tz: IANA zone for display
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    local = value.astimezone(ZoneInfo(tz))
    hour = local.hour % 12 or 12
    return f"{local:%A}, {local:%b} {local.day}, {hour}:{local:%M} {local:%p}"


def calc_remaining(goal: int, received: int) -> int:
    """Amount still needed to reach the giving goal, never negative."""
    return max(goal - received, 0)


def render_financials(html: str, stats: FinancialStats) -> str:
    """Replace the {{F_*}} giving placeholders."""
    replacements = {
        '{{F_R}}': format_currency(calc_remaining(stats.giving_goal, stats.gifts_received)),
        '{{F_G}}': format_currency(stats.giving_goal),
        '{{F_T}}': format_statistic(stats.total_gifts),
        '{{F_N}}': format_statistic(stats.new_givers),
        '{{F_U}}': format_statistic(stats.unique_givers),
    }
    for placeholder, value in replacements.items():
        html = html.replace(placeholder, value)
    return html


def registration_anchor(registration: Registration) -> str:
    key = registration.id or re.sub(r'\s+', '-', registration.title).lower()
    return f"reg-{key}"


def render_calendar(events: List[CalendarEvent], tz: str) -> str:
    """Render the "calendar at a glance" list."""
    if not events:
        return "<p>No upcoming events.</p>"

    items = []
    for event in events:
        title = escape_html(event.title)
        if event.url:
            title = f'<a href="{escape_html(event.url)}" target="_blank" rel="noopener">{title}</a>'
        location = f" ({escape_html(event.location)})" if event.location else ''
        items.append(
            f"<li><strong>{format_event_time(event.start, tz)}</strong> - "
            f"{title}{location}</li>"
        )
    return sanitize_html(f"<ul>{''.join(items)}</ul>")


def render_upcoming_events(registrations: List[Registration], tz: str) -> str:
    """Render the condensed registration list linking to in-page anchors."""
    if not registrations:
        return "<p>No upcoming registrations.</p>"

    items = []
    for registration in registrations:
        when = ''
        if registration.display_starts_at:
            when = f"<strong>{format_event_time(registration.display_starts_at, tz)}</strong> - "
        items.append(
            f"<li>{when}{escape_html(registration.title)} "
            f"— <a href=\"#{registration_anchor(registration)}\">Details</a></li>"
        )
    body = "\n".join(items)
    return sanitize_html(f"<ul>{body}</ul>")


def render_sermon(sermon: Optional[Sermon], summary: str) -> str:
    """Render the sermon thumbnail, title and summary."""
    title = sermon.title if sermon and sermon.title else DEFAULT_SERMON_TITLE
    url = sermon.url if sermon and sermon.url else DEFAULT_SERMON_URL

    image = ''
    if sermon and sermon.thumbnail:
        image = (
            f'<p><a href="{escape_html(url)}" target="_blank" rel="noopener">'
            f'<img src="{escape_html(sermon.thumbnail)}" alt="{escape_html(title)}"/></a></p>'
        )
    body = escape_html(summary).replace("\n", "<br>")
    return sanitize_html(
        f'{image}<h3>{escape_html(title)}</h3><div>{body}</div>'
    )


def _render_registration_block(template: str, registration: Registration) -> str:
    name = registration.title or ''
    image = ''
    if registration.logo_url:
        image = (
            '<div style="text-align:center;margin:0 0 12px 0;">'
            f'<img src="{escape_html(registration.logo_url)}" alt="{escape_html(name)}" '
            'style="max-width:100%;height:auto;border-radius:16px;display:inline-block;" />'
            '</div>'
        )
    description = left_align_paragraphs(registration.description_html)
    anchor = registration_anchor(registration)

    filled = template.replace('{{REGISTRATION_NAME}}', escape_html(name))
    filled = filled.replace(
        '{{REGISTRATION}}',
        f'{image}<div style="text-align:left;">{description}</div>',
        1
    )
    filled = filled.replace('{{REGISTRATION_LINK}}', 'View Details')
    filled = filled.replace('href=""', f'href="{escape_html(registration.url or "")}"', 1)
    return f'<a id="{anchor}" name="{anchor}"></a>\n{filled}'


def render_registrations(html: str, registrations: Iterable[Registration]) -> str:
    """
    Repeat the template section between the registration block markers
    once per registration.

    The HTML is returned unchanged when the markers are missing or out
    of order.
    """
    start = html.find(REGISTRATION_START)
    end = html.find(REGISTRATION_END)
    if start == -1 or end == -1 or end <= start:
        logger.warning("Registration block markers not found in template")
        return html

    template = html[start + len(REGISTRATION_START):end]
    blocks = '\n'.join(
        _render_registration_block(template, registration)
        for registration in registrations or []
    )
    return f"{html[:start + len(REGISTRATION_START)]}\n{blocks}\n{html[end:]}"


def build_subject(now: datetime) -> str:
    """Subject line such as "October 17, 2026 Wire"."""
    return f"{now:%B} {now.day}, {now.year} Wire"


def render_newsletter(
    template: str,
    stats: FinancialStats,
    calendar_events: List[CalendarEvent],
    registrations: List[Registration],
    sermon: Optional[Sermon],
    sermon_summary: str,
    tz: str
) -> str:
    """Fill every placeholder of the newsletter template."""
    html = render_financials(template, stats)
    html = html.replace('{{CALENDAR}}', render_calendar(calendar_events, tz))
    html = html.replace('{{EVENTS}}', render_upcoming_events(registrations, tz))
    html = html.replace('{{SERMON}}', render_sermon(sermon, sermon_summary))
    return render_registrations(html, registrations)
