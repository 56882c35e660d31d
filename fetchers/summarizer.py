"""Sermon summaries from the Gemini generateContent API."""
import logging
from typing import Optional

from bs4 import BeautifulSoup

from fetchers.http_client import HttpClient

logger = logging.getLogger(__name__)

API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

FALLBACK_SUMMARY = (
    "Listen to this week's message on our YouTube channel, our website, "
    "or even through our Apple or Spotify Podcast channels!"
)

PROMPT = (
    "Summarize the sermon for a church newsletter.\n"
    "- 180-220 words, warm pastoral tone."
)


class SermonSummarizer:
    """Summarizes sermon outlines with a generative model."""

    MIN_TRANSCRIPT_LENGTH = 100
    MAX_TRANSCRIPT_LENGTH = 12000

    def __init__(
        self,
        api_key: Optional[str],
        model: str = 'gemini-2.0-flash',
        timeout: int = 30,
        http: Optional[HttpClient] = None
    ):
        self.api_key = api_key
        self.model = model
        self.http = http or HttpClient(timeout=timeout, max_retries=1)

    def summarize_sermon(self, transcript: str, title: str) -> str:
        """
        Summarize a sermon transcript or outline.

        HTML in the transcript is reduced to text first. Short or missing
        transcripts, and a missing API key, produce the fallback text.

        Args:
            transcript: Sermon outline or transcript, may contain HTML
            title: Sermon title

        Returns:
            Summary text
        """
        text = BeautifulSoup(transcript or '', 'html.parser').get_text(' ', strip=True)
        if len(text) < self.MIN_TRANSCRIPT_LENGTH:
            logger.info("Transcript too short, using fallback summary")
            return FALLBACK_SUMMARY
        if not self.api_key:
            logger.warning("Summarizer API key not configured, using fallback summary")
            return FALLBACK_SUMMARY

        payload = {
            'contents': [{
                'parts': [{
                    'text': (
                        f"{PROMPT}\n\nTitle: {title}\nTranscript:\n"
                        f"{text[:self.MAX_TRANSCRIPT_LENGTH]}"
                    )
                }]
            }]
        }
        data = self.http.post_json(
            API_URL.format(model=self.model),
            payload,
            params={'key': self.api_key}
        )

        candidates = data.get('candidates') or []
        parts = ((candidates[0].get('content') or {}).get('parts') or []) if candidates else []
        summary = ''.join(part.get('text', '') for part in parts).strip()
        if not summary:
            logger.warning("Summarizer returned no text, using fallback summary")
            return FALLBACK_SUMMARY
        return summary
