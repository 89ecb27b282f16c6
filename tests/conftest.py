"""
Shared Test Fixtures for Gaslighter

Fixtures and builders used across the test modules: a zero-delay config,
listing/post builders, a fake aiohttp session for fetcher tests, and a stub
fetcher that serves canned pages to the pairing engine.
"""

import asyncio
import os
import random
import sys
from typing import Any, Optional
from urllib.parse import urlparse

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config_loader import ConfigLoader
from reddit_fetcher import RedditFetcher
from reddit_models import ListingPage, RawItem


TEST_CONFIG_YAML = """
fetch:
  base_url: https://reddit.test
  initial_limit: 25
  load_more_limit: 15
  source_limit: 75
  replenish_limit: 50
retry:
  max_retries: 2
  base_delay_sec: 0
  max_delay_sec: 0
timeouts:
  request_sec: 5
  suggestion_sec: 1
"""


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def config(tmp_path, monkeypatch):
    """ConfigLoader with a fake base URL and no retry delays."""
    for key in list(os.environ):
        if key.startswith("GASLIGHTER_"):
            monkeypatch.delenv(key)
    path = tmp_path / "config.yaml"
    path.write_text(TEST_CONFIG_YAML)
    return ConfigLoader(path)


# =============================================================================
# Post Builders
# =============================================================================

def post(post_id: str, subreddit: str = "pics", **data: Any) -> dict[str, Any]:
    """A listing child for a plain self post, with ``data`` overrides."""
    base = {
        "id": post_id,
        "title": f"Post {post_id}",
        "author": "someone",
        "subreddit": subreddit,
        "permalink": f"/r/{subreddit}/comments/{post_id}/post/",
        "score": 42,
        "domain": f"self.{subreddit}",
        "url": f"https://www.reddit.com/r/{subreddit}/comments/{post_id}/post/",
    }
    base.update(data)
    return {"kind": "t3", "data": base}


def image_post(post_id: str, subreddit: str = "pics", url: Optional[str] = None) -> dict[str, Any]:
    return post(
        post_id,
        subreddit,
        url_overridden_by_dest=url or f"https://i.redd.it/{post_id}.jpg",
        domain="i.redd.it",
        post_hint="image",
    )


def link_post(post_id: str, subreddit: str = "news") -> dict[str, Any]:
    """An off-site article link with no preview: never qualifies, never yields media."""
    return post(
        post_id,
        subreddit,
        url_overridden_by_dest=f"https://example-news.test/articles/{post_id}.html",
        domain="example-news.test",
        post_hint="link",
    )


def gallery_post(post_id: str, urls: list[str], subreddit: str = "pics") -> dict[str, Any]:
    media_ids = [f"{post_id}m{i}" for i in range(len(urls))]
    return post(
        post_id,
        subreddit,
        is_gallery=True,
        url_overridden_by_dest=f"https://www.reddit.com/gallery/{post_id}",
        domain="reddit.com",
        gallery_data={"items": [{"media_id": m} for m in media_ids]},
        media_metadata={
            m: {"status": "valid", "e": "Image", "s": {"u": u, "x": 1920, "y": 1080}}
            for m, u in zip(media_ids, urls)
        },
    )


def items(*children: dict[str, Any]) -> list[RawItem]:
    return [RawItem.from_listing_child(child) for child in children]


def page(*children: dict[str, Any], after: Optional[str] = None) -> ListingPage:
    return ListingPage(items=items(*children), next_cursor=after)


def listing(*children: dict[str, Any], after: Optional[str] = None) -> dict[str, Any]:
    """Raw JSON body of a listing response."""
    return {"kind": "Listing", "data": {"children": list(children), "after": after}}


# =============================================================================
# Fake aiohttp Session
# =============================================================================

class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None):
        self.status = status
        self._payload = payload

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Serves canned responses by URL path.

    Each route holds a list; responses are consumed in order and the last one
    repeats. An Exception in the list is raised by ``get``.
    """

    def __init__(self, routes: dict[str, list]):
        self.routes = {path: list(responses) for path, responses in routes.items()}
        self.calls: list[tuple[str, dict]] = []
        self.closed = False

    def get(self, url, params=None, **kwargs):
        path = urlparse(url).path
        self.calls.append((path, dict(params or {})))
        queue = self.routes[path]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True

    def calls_to(self, path: str) -> list[dict]:
        return [params for call_path, params in self.calls if call_path == path]


# =============================================================================
# Stub Fetcher
# =============================================================================

class StubFetcher(RedditFetcher):
    """
    RedditFetcher whose ``fetch`` serves canned pages.

    Routes are keyed by ``(collection, sort, cursor)`` or ``(collection, sort)``;
    values are ListingPages or exceptions to raise. Unknown routes return an
    empty page. ``fetch_multiple`` is the real implementation.
    """

    def __init__(self, config: ConfigLoader, routes: dict, gated: tuple = ()):
        super().__init__(config, session=FakeSession({}), rng=random.Random(7))
        self.routes = routes
        self.calls: list[tuple] = []
        self.gated = set(gated)
        self.gate: Optional[asyncio.Event] = None

    async def fetch(self, collection, sort, time_filter=None, limit=25, cursor=None):
        self.calls.append((collection, sort, time_filter, limit, cursor))
        if collection in self.gated:
            if self.gate is None:
                self.gate = asyncio.Event()
            await self.gate.wait()
        await asyncio.sleep(0)

        route = self.routes.get((collection, sort, cursor), self.routes.get((collection, sort)))
        if route is None:
            return ListingPage(items=[], next_cursor=None)
        if isinstance(route, Exception):
            raise route
        return route

    def calls_for(self, collection: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == collection]
