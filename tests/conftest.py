"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and fakes for FeedMirror tests.

The fakes stand in for the network edges (upstream feed service and media
CDN) so every test runs offline and without real backoff waits.
"""

import pytest
import tempfile
import os
import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_MEDIA_DIR = Path(tempfile.gettempdir()) / "feedmirror_tests" / "images"
os.environ.setdefault("FEEDMIRROR_MEDIA__DIRECTORY", str(_TEST_MEDIA_DIR))
os.environ.setdefault("FEEDMIRROR_LOGGING__LEVEL", "DEBUG")

from feedmirror.utils.exceptions import TransientFetchError


JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00\x10JFIF" + b"\x42" * 120
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Lookonchain &amp; Friends</title>
    <link>https://t.me/s/abc</link>
    <description>Onchain alerts</description>
    <language>en</language>
    <item>
      <title>Whale alert</title>
      <description>A whale moved 5,000 &lt;b&gt;ETH&lt;/b&gt;</description>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
      <link>https://t.me/abc/100</link>
      <image><url>https://cdn.example.com/abc/100.jpg</url></image>
    </item>
    <item>
      <title>Newest post</title>
      <pubDate>Mon, 01 Jan 2024 12:00:00 +0000</pubDate>
      <link>https://t.me/abc/102</link>
    </item>
    <item>
      <title>Middle post</title>
      <description>Funds moved &nbsp;to Binance</description>
      <pubDate>not a date</pubDate>
      <link>https://t.me/abc/101</link>
      <enclosure url="https://cdn.example.com/abc/101.png" type="image/png" length="0"/>
    </item>
  </channel>
</rss>
"""


class SleepRecorder:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeHttpClient:
    """In-memory stand-in for HttpClient.

    ``responses`` maps URL to bytes, or to an exception instance to raise.
    URLs that are not mapped fail with a 404 TransientFetchError.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.requests = []
        self.closed = False

    def _lookup(self, url):
        self.requests.append(url)
        result = self.responses.get(url)
        if result is None:
            raise TransientFetchError(f"HTTP 404 for {url}", url=url, status=404)
        if isinstance(result, BaseException):
            raise result
        return result

    async def get_bytes(self, url, timeout=30):
        return self._lookup(url)

    async def get_text(self, url, timeout=30):
        data = self._lookup(url)
        return data.decode("utf-8") if isinstance(data, bytes) else data

    async def close(self):
        self.closed = True


class FakeFeedSource:
    """Feed source returning a fixed document, optionally failing first."""

    def __init__(self, document=SAMPLE_FEED, failures=0, error=None):
        self.document = document
        self.failures = failures
        self.error = error or TransientFetchError("upstream unavailable", status=503)
        self.calls = []

    async def fetch(self, source_id):
        self.calls.append(source_id)
        if len(self.calls) <= self.failures:
            raise self.error
        return self.document


@pytest.fixture
def sample_feed():
    return SAMPLE_FEED


@pytest.fixture
def media_responses():
    return {
        "https://cdn.example.com/abc/100.jpg": JPEG_BYTES,
        "https://cdn.example.com/abc/101.png": PNG_BYTES,
    }


@pytest.fixture
def fake_http(media_responses):
    return FakeHttpClient(media_responses)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def media_dir(tmp_path):
    path = tmp_path / "images"
    path.mkdir()
    return path
