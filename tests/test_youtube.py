"""Unit tests for the latest-sermon lookup."""
import pytest
import responses
from requests.exceptions import RequestException

from fetchers.http_client import HttpClient
from fetchers.youtube import SEARCH_URL, fetch_latest_sermon


SEARCH_RESPONSE = {
    "items": [{
        "id": {"kind": "youtube#video", "videoId": "abc123XYZ"},
        "snippet": {
            "title": "Born from Above | John 3",
            "thumbnails": {
                "default": {"url": "https://i.ytimg.com/vi/abc123XYZ/default.jpg"},
                "medium": {"url": "https://i.ytimg.com/vi/abc123XYZ/mqdefault.jpg"},
            },
        },
    }]
}


class TestFetchLatestSermon:
    """Test cases for fetch_latest_sermon."""

    @responses.activate
    def test_latest_video(self):
        """Test mapping the newest search result to a Sermon."""
        responses.add(responses.GET, SEARCH_URL, json=SEARCH_RESPONSE, status=200)

        sermon = fetch_latest_sermon("UC-cana", "yt-key", http=HttpClient(base_delay=0))

        assert sermon.video_id == "abc123XYZ"
        assert sermon.title == "Born from Above | John 3"
        assert sermon.thumbnail == "https://i.ytimg.com/vi/abc123XYZ/mqdefault.jpg"
        assert sermon.url == "https://youtu.be/abc123XYZ"

        url = responses.calls[0].request.url
        assert "channelId=UC-cana" in url
        assert "order=date" in url
        assert "maxResults=1" in url
        assert "key=yt-key" in url

    @responses.activate
    def test_no_videos(self):
        """Test that an empty channel yields None."""
        responses.add(responses.GET, SEARCH_URL, json={"items": []}, status=200)

        assert fetch_latest_sermon("UC-cana", "yt-key", http=HttpClient(base_delay=0)) is None

    @responses.activate
    def test_missing_thumbnail(self):
        """Test that a result without thumbnails still maps."""
        responses.add(responses.GET, SEARCH_URL, json={
            "items": [{"id": {"videoId": "v1"}, "snippet": {"title": "Sermon"}}]
        })

        sermon = fetch_latest_sermon("UC-cana", "yt-key", http=HttpClient(base_delay=0))

        assert sermon.thumbnail is None

    @pytest.mark.parametrize("channel_id,api_key", [(None, "key"), ("UC-cana", None), ("", "")])
    def test_not_configured(self, channel_id, api_key):
        """Test that missing configuration skips the lookup."""
        assert fetch_latest_sermon(channel_id, api_key) is None

    @responses.activate
    def test_api_failure(self):
        """Test that an API error propagates."""
        responses.add(responses.GET, SEARCH_URL, status=403)

        with pytest.raises(RequestException):
            fetch_latest_sermon("UC-cana", "yt-key", http=HttpClient(max_retries=1))
