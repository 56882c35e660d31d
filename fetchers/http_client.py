"""HTTP helper with retry logic shared by the external-service clients."""
import logging
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin wrapper around requests with exponential-backoff retries."""

    def __init__(
        self,
        timeout: int = 10,
        max_retries: int = 3,
        base_delay: float = 1,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            timeout: HTTP request timeout in seconds (default: 10)
            max_retries: Attempts before giving up (default: 3)
            base_delay: First retry delay in seconds, doubled per attempt
            session: Optional requests session (auth, headers)
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> requests.Response:
        """
        Send a request, retrying failed attempts.

        Returns:
            Successful response

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        for attempt in range(self.max_retries):
            try:
                logger.debug(
                    f"{method} {url} (attempt {attempt + 1}/{self.max_retries})"
                )
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=headers,
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def get(self, url: str, **kwargs) -> requests.Response:
        return self.request('GET', url, **kwargs)

    def get_json(self, url: str, **kwargs) -> Dict[str, Any]:
        return self.get(url, **kwargs).json()

    def post_json(self, url: str, payload: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        return self.request('POST', url, json=payload, **kwargs).json()

    def put_json(self, url: str, payload: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        return self.request('PUT', url, json=payload, **kwargs).json()
