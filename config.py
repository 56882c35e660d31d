"""Newsletter configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from processor.models import FinancialStats

TRUE_VALUES = ('1', 'true', 'yes', 'on')

# Next to this module, not relative to the working directory
DEFAULT_TEMPLATE_PATH = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), 'templates', 'base.html'
)


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, '')
    if raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


@dataclass
class NewsletterConfig:
    """All settings needed for one newsletter build."""
    log_level: str = 'INFO'
    timezone: str = 'America/Chicago'
    timeout_seconds: int = 10

    calendar_ics: Optional[str] = None
    calendar_days: int = 14
    calendar_lookback_days: int = 0
    calendar_max_events: int = 8
    default_location: str = 'Cana Campus'

    pco_pat_id: Optional[str] = None
    pco_pat_secret: Optional[str] = None
    pco_service_type_id: str = '884831'

    yt_channel_id: Optional[str] = None
    yt_api_key: Optional[str] = None

    gemini_api_key: Optional[str] = None
    gemini_model: str = 'gemini-2.0-flash'

    mailchimp_api_key: Optional[str] = None
    mailchimp_list_id: Optional[str] = None
    mailchimp_folder_id: Optional[str] = None
    from_name: str = 'Cana Church'
    reply_to: str = 'cana@canachurch.com'

    giving_goal: int = 0
    gifts_received: int = 0
    total_gifts: int = 0
    new_givers: int = 0
    unique_givers: int = 0

    template_path: str = DEFAULT_TEMPLATE_PATH
    dry_run: bool = False

    @property
    def financial_stats(self) -> FinancialStats:
        return FinancialStats(
            gifts_received=self.gifts_received,
            giving_goal=self.giving_goal,
            total_gifts=self.total_gifts,
            new_givers=self.new_givers,
            unique_givers=self.unique_givers
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'NewsletterConfig':
        """
        Build the configuration from environment variables.

        Raises:
            ValueError: If a numeric variable is not an integer
        """
        env = os.environ if environ is None else environ
        return cls(
            log_level=env.get('LOG_LEVEL', 'INFO'),
            timezone=env.get('TIMEZONE', 'America/Chicago'),
            timeout_seconds=_int(env, 'TIMEOUT_SECONDS', 10),
            calendar_ics=env.get('CALENDAR_ICS') or None,
            calendar_days=_int(env, 'CALENDAR_DAYS', 14),
            calendar_lookback_days=_int(env, 'CALENDAR_LOOKBACK_DAYS', 0),
            calendar_max_events=_int(env, 'CALENDAR_MAX_EVENTS', 8),
            default_location=env.get('DEFAULT_LOCATION', 'Cana Campus'),
            pco_pat_id=env.get('PCO_PAT_ID') or None,
            pco_pat_secret=env.get('PCO_PAT_SECRET') or None,
            pco_service_type_id=env.get('PCO_SERVICE_TYPE_ID', '884831'),
            yt_channel_id=env.get('YT_CHANNEL_ID') or None,
            yt_api_key=env.get('YT_API_KEY') or None,
            gemini_api_key=env.get('GEMINI_API_KEY') or None,
            gemini_model=env.get('GEMINI_MODEL', 'gemini-2.0-flash'),
            mailchimp_api_key=env.get('MAILCHIMP_API_KEY') or None,
            mailchimp_list_id=env.get('MAILCHIMP_LIST_ID') or None,
            mailchimp_folder_id=env.get('MAILCHIMP_FOLDER_ID') or None,
            from_name=env.get('MC_FROM_NAME') or 'Cana Church',
            reply_to=env.get('MC_REPLY_TO') or 'cana@canachurch.com',
            giving_goal=_int(env, 'GIVING_GOAL', 0),
            gifts_received=_int(env, 'GIFTS_RECEIVED', 0),
            total_gifts=_int(env, 'TOTAL_GIFTS', 0),
            new_givers=_int(env, 'NEW_GIVERS', 0),
            unique_givers=_int(env, 'UNIQUE_GIVERS', 0),
            template_path=env.get('TEMPLATE_PATH') or DEFAULT_TEMPLATE_PATH,
            dry_run=env.get('DRY_RUN', 'false').strip().lower() in TRUE_VALUES
        )
