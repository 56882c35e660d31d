"""AWS Lambda handler for the weekly newsletter draft."""
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, TypeVar
from zoneinfo import ZoneInfo

from campaign.mailchimp_client import MailchimpClient
from config import NewsletterConfig
from fetchers.calendar_feed import CalendarFeedClient, fetch_calendar_events
from fetchers.planning_center import PlanningCenterClient
from fetchers.summarizer import SermonSummarizer
from fetchers.youtube import fetch_latest_sermon
from processor.models import NewsletterResult
from render.newsletter_renderer import build_subject, render_newsletter

T = TypeVar('T')

# Attributes every LogRecord has; anything else came in through `extra=`
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any `extra` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


logger = logging.getLogger(__name__)


def _fetch_optional(name: str, fetch: Callable[[], T], default: T) -> T:
    """Run a fetch for an optional newsletter section, degrading to a default."""
    try:
        return fetch()
    except Exception as e:
        logger.warning(
            f"Could not fetch {name}, section will be empty: {e}",
            extra={'error_type': type(e).__name__}
        )
        return default


def build_newsletter(
    config: NewsletterConfig,
    now: Optional[datetime] = None
) -> NewsletterResult:
    """
    Fetch every source and render the newsletter HTML.

    The calendar feed is required; registrations, the sermon video and
    the sermon outline are optional sections.

    Args:
        config: Newsletter configuration
        now: Current instant (defaults to the system clock)

    Returns:
        NewsletterResult without a draft

    Raises:
        requests.RequestException: If the calendar feed cannot be fetched
        OSError: If the template cannot be read
    """
    now = now or datetime.now(ZoneInfo(config.timezone))

    logger.info("Fetching calendar events")
    calendar_events = fetch_calendar_events(
        config.calendar_ics,
        days=config.calendar_days,
        tz=config.timezone,
        now=now,
        lookback_days=config.calendar_lookback_days,
        max_events=config.calendar_max_events,
        default_location=config.default_location,
        client=CalendarFeedClient(timeout=config.timeout_seconds)
    )

    planning_center = PlanningCenterClient(
        config.pco_pat_id,
        config.pco_pat_secret,
        timeout=config.timeout_seconds
    )
    registrations = _fetch_optional(
        'registrations',
        lambda: planning_center.fetch_open_registrations(now=now),
        []
    )
    sermon = _fetch_optional(
        'latest sermon',
        lambda: fetch_latest_sermon(config.yt_channel_id, config.yt_api_key),
        None
    )
    outline = _fetch_optional(
        'message outline',
        lambda: planning_center.fetch_message_outline(
            config.pco_service_type_id, now=now
        ),
        None
    )

    summarizer = SermonSummarizer(config.gemini_api_key, model=config.gemini_model)
    summary = summarizer.summarize_sermon(
        outline.description if outline else '',
        sermon.title if sermon else "This Week's Message"
    )

    with open(config.template_path, encoding='utf-8') as template_file:
        template = template_file.read()

    html = render_newsletter(
        template,
        config.financial_stats,
        calendar_events,
        registrations,
        sermon,
        summary,
        config.timezone
    )

    return NewsletterResult(
        subject=build_subject(now.astimezone(ZoneInfo(config.timezone))),
        html=html,
        calendar_events=calendar_events,
        registrations=registrations,
        sermon=sermon
    )


def _error_response(message: str, error: Exception, start_time: float, **extra) -> Dict[str, Any]:
    duration = time.time() - start_time
    body = {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(duration, 2)
    }
    body.update(extra)
    return {'statusCode': 500, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler: build the weekly newsletter and save it as a draft.

    Args:
        event: EventBridge event payload; {"dry_run": true} renders only
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    start_time = time.time()

    try:
        config = NewsletterConfig.from_env()
    except ValueError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}", exc_info=True)
        return _error_response('Invalid configuration', e, start_time)

    setup_logging(config.log_level)
    dry_run = config.dry_run or bool((event or {}).get('dry_run'))

    logger.info(
        "Newsletter build started",
        extra={
            'dry_run': dry_run,
            'calendar_days': config.calendar_days,
            'timezone': config.timezone
        }
    )

    try:
        try:
            result = build_newsletter(config)
        except Exception as e:
            logger.error(
                f"Failed to build newsletter: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response('Failed to build newsletter', e, start_time)

        statistics = {
            'calendar_events': len(result.calendar_events),
            'registrations': len(result.registrations),
            'video_id': result.sermon.video_id if result.sermon else None
        }

        if dry_run:
            duration = time.time() - start_time
            logger.info(
                "Dry run completed, no draft created",
                extra={'duration_seconds': round(duration, 2), **statistics}
            )
            return {
                'statusCode': 200,
                'body': json.dumps({
                    'message': 'Dry run completed',
                    'subject': result.subject,
                    'statistics': {**statistics, 'duration_seconds': round(duration, 2)},
                    'html': result.html
                })
            }

        try:
            if not config.mailchimp_list_id:
                raise ValueError("MAILCHIMP_LIST_ID is not configured")
            mailchimp = MailchimpClient(
                config.mailchimp_api_key,
                timeout=config.timeout_seconds
            )
            result.draft = mailchimp.create_draft(
                list_id=config.mailchimp_list_id,
                subject=result.subject,
                from_name=config.from_name,
                reply_to=config.reply_to,
                html=result.html,
                folder_id=config.mailchimp_folder_id
            )
        except Exception as e:
            logger.error(
                f"Failed to create campaign draft: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response('Failed to create campaign draft', e, start_time)

        duration = time.time() - start_time
        logger.info(
            "Newsletter draft created successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'campaign_id': result.draft.campaign_id,
                **statistics
            }
        )

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Draft created successfully',
                'subject': result.subject,
                'statistics': {**statistics, 'duration_seconds': round(duration, 2)},
                'campaign': {
                    'campaign_id': result.draft.campaign_id,
                    'web_id': result.draft.web_id
                }
            })
        }

    except Exception as e:
        logger.error(
            f"Newsletter build failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response('Newsletter build failed', e, start_time)
