"""Mailchimp Marketing API client for newsletter campaign drafts."""
import logging
from typing import Any, Dict, Optional

import requests

from fetchers.http_client import HttpClient
from processor.models import DraftResult

logger = logging.getLogger(__name__)


class MailchimpClient:
    """Creates regular email campaigns and sets their HTML content."""

    def __init__(
        self,
        api_key: str,
        timeout: int = 15,
        http: Optional[HttpClient] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: Mailchimp API key ending in the data center, e.g. "...-us21"
            timeout: HTTP request timeout in seconds (default: 15)
            http: Optional preconfigured HttpClient

        Raises:
            ValueError: If the API key carries no data center suffix
        """
        if not api_key or '-' not in api_key:
            raise ValueError("Mailchimp API key must end with a data center suffix")

        self.server = api_key.rsplit('-', 1)[1]
        self.base_url = f"https://{self.server}.api.mailchimp.com/3.0"

        if http is None:
            session = requests.Session()
            session.auth = ('anystring', api_key)
            # Campaign creation is not idempotent
            http = HttpClient(timeout=timeout, max_retries=1, session=session)
        self.http = http
        logger.info(f"Initialized MailchimpClient for server: {self.server}")

    def create_draft(
        self,
        list_id: str,
        subject: str,
        from_name: str,
        reply_to: str,
        html: str,
        folder_id: Optional[str] = None
    ) -> DraftResult:
        """
        Create a draft campaign and upload its HTML.

        Args:
            list_id: Audience id
            subject: Subject line, also used as the campaign title
            from_name: Sender name
            reply_to: Reply-to address
            html: Full newsletter HTML
            folder_id: Optional campaign folder

        Returns:
            DraftResult with the campaign id and web id

        Raises:
            requests.RequestException: If either API call fails
        """
        settings: Dict[str, Any] = {
            'subject_line': subject,
            'from_name': from_name,
            'reply_to': reply_to,
            'title': subject
        }
        if folder_id:
            settings['folder_id'] = folder_id

        campaign = self.http.post_json(
            f"{self.base_url}/campaigns",
            {
                'type': 'regular',
                'recipients': {'list_id': list_id},
                'settings': settings
            }
        )
        campaign_id = campaign['id']
        logger.info(f"Created campaign {campaign_id}")

        self.http.put_json(
            f"{self.base_url}/campaigns/{campaign_id}/content",
            {'html': html}
        )
        logger.info(f"Uploaded {len(html)} characters of HTML to campaign {campaign_id}")

        return DraftResult(campaign_id=campaign_id, web_id=campaign.get('web_id'))
