"""YouTube Data API client for the latest sermon video."""
import logging
from typing import Optional

from fetchers.http_client import HttpClient
from processor.models import Sermon

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"


def fetch_latest_sermon(
    channel_id: Optional[str],
    api_key: Optional[str],
    http: Optional[HttpClient] = None
) -> Optional[Sermon]:
    """
    Look up the newest video on a channel.

    Args:
        channel_id: YouTube channel id
        api_key: YouTube Data API key
        http: Optional preconfigured HttpClient

    Returns:
        Sermon, or None without credentials or when the channel has no videos
    """
    if not channel_id or not api_key:
        logger.info("YouTube channel or API key not configured")
        return None

    http = http or HttpClient()
    data = http.get_json(
        SEARCH_URL,
        params={
            'part': 'snippet',
            'channelId': channel_id,
            'order': 'date',
            'maxResults': 1,
            'type': 'video',
            'key': api_key
        }
    )

    items = data.get('items') or []
    if not items:
        logger.warning("No videos found for channel")
        return None

    item = items[0]
    video_id = item['id']['videoId']
    snippet = item.get('snippet') or {}
    thumbnail = ((snippet.get('thumbnails') or {}).get('medium') or {}).get('url')

    return Sermon(
        video_id=video_id,
        title=snippet.get('title') or '',
        thumbnail=thumbnail,
        url=f"https://youtu.be/{video_id}"
    )
