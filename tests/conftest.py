import pytest
import pytest_asyncio
import os
import sys

# Add src to python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from leadcrawler.config import CrawlOptions
from leadcrawler.errors import NetworkError
from leadcrawler.fetch import FetchResult
from leadcrawler.store import SqliteStore
from leadcrawler.urls import canonicalize


class FakeFetcher:
    """In-memory fetcher keyed by canonical URL.

    Values are either an HTML string (served with 200), a (status, html)
    tuple, or an exception instance to raise. Unknown URLs raise
    NetworkError. `redirects` maps a URL to the final URL it lands on.
    """

    def __init__(self, pages=None, redirects=None):
        self.pages = {canonicalize(url): value for url, value in (pages or {}).items()}
        self.redirects = {canonicalize(url): target for url, target in (redirects or {}).items()}
        self.calls = []
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True

    async def fetch(self, url):
        self.calls.append(url)
        final_url = self.redirects.get(canonicalize(url), url)
        value = self.pages.get(canonicalize(final_url))
        if value is None:
            raise NetworkError(url, "Connection refused")
        if isinstance(value, Exception):
            raise value
        status, body = value if isinstance(value, tuple) else (200, value)
        return FetchResult(url=url, final_url=final_url, status=status, content_type="text/html", body=body)


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def crawl_options():
    return CrawlOptions(
        max_pages=15,
        max_depth=2,
        concurrency=2,
        inter_request_delay=0,
        follow_social_profiles=False,
        render_fallback=False,
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SqliteStore(str(tmp_path / "leads.db"))
    await s.init()
    return s
