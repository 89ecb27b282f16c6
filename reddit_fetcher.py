#!/usr/bin/env python3
"""
Gaslighter - Reddit Listing Fetcher

Fetches subreddit listings from Reddit's public JSON endpoints.

No credentials are needed for /r/{subreddit}/{sort}.json; Reddit only asks
for a descriptive User-Agent. Transient failures (429, connection errors,
timeouts) are retried by the configured RetryPolicy; everything else maps to
a typed FetchError on the first attempt.
"""

import asyncio
import logging
import random
from typing import Any, Optional

import aiohttp

from config_loader import ConfigLoader, get_config
from pipeline_robustness import (
    CollectionNotFoundError,
    CollectionRestrictedError,
    FetchError,
    FetchFailedError,
    NetworkError,
    NoItemsAvailableError,
    RateLimitedError,
    TransportError,
    ValidationError,
    retry_with_backoff,
)
from reddit_models import ListingPage, RawItem

logger = logging.getLogger("gaslighter")

SORT_MODES = ("hot", "new", "top")
TIME_FILTERS = ("hour", "day", "week", "month", "year", "all")


def _escalate(error: Exception) -> Exception:
    """Turn a retryable failure that outlived every retry into a NetworkError."""
    return NetworkError(f"Giving up after retries: {error}", getattr(error, "collection", None))


class RedditFetcher:
    """
    Fetches subreddit listings over one shared aiohttp session.

    Usage:
        async with RedditFetcher(config) as fetcher:
            page = await fetcher.fetch("pics", "hot", limit=25)
    """

    def __init__(
        self,
        config: Optional[ConfigLoader] = None,
        session: Optional[aiohttp.ClientSession] = None,
        rng: Optional[random.Random] = None,
    ):
        config = config or get_config()
        self.fetch_config = config.get_fetch_config()
        self.timeouts = config.get_timeout_config()
        self.retry_policy = config.get_retry_config().to_policy()
        self.user_agent = self.fetch_config.user_agent
        self.rng = rng or random.Random()

        self._session = session
        self._owns_session = session is None
        self._request_timeout = aiohttp.ClientTimeout(total=self.timeouts.request_sec)
        self._fetch_with_retry = retry_with_backoff(
            self.retry_policy, on_exhausted=_escalate
        )(self._fetch_once)

    async def __aenter__(self) -> "RedditFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._request_timeout,
                headers={"User-Agent": self.user_agent},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _fetch_once(
        self,
        collection: str,
        sort: str,
        time_filter: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> ListingPage:
        url = f"{self.fetch_config.base_url}/r/{collection}/{sort}.json"
        params = {"limit": str(limit), "raw_json": "1"}
        if sort == "top" and time_filter:
            params["t"] = time_filter
        if cursor:
            params["after"] = cursor

        session = self._get_session()
        try:
            async with session.get(
                url,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=self._request_timeout,
            ) as response:
                status = response.status
                if status == 404:
                    raise CollectionNotFoundError(f"Subreddit r/{collection} not found.", collection)
                if status == 403:
                    raise CollectionRestrictedError(
                        f"Subreddit r/{collection} is private/quarantined.", collection
                    )
                if status == 429:
                    raise RateLimitedError(f"Too many requests for r/{collection}.", collection)
                if not 200 <= status < 300:
                    raise FetchFailedError(
                        f"Failed to fetch r/{collection}: {status}", collection, status
                    )
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Request for r/{collection} failed: {e!r}", collection) from e
        except ValueError as e:
            raise FetchFailedError(f"Invalid JSON from r/{collection}: {e}", collection) from e

        return self._parse_listing(collection, payload)

    def _parse_listing(self, collection: str, payload: Any) -> ListingPage:
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not isinstance(data.get("children"), list):
            raise FetchFailedError(f"Invalid data from r/{collection}.", collection)

        items = []
        for child in data["children"]:
            try:
                items.append(RawItem.from_listing_child(child))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug(f"Skipping unparseable post in r/{collection}: {e}")

        return ListingPage(items=items, next_cursor=data.get("after"))

    async def fetch(
        self,
        collection: str,
        sort: str,
        time_filter: Optional[str] = None,
        limit: int = 25,
        cursor: Optional[str] = None,
    ) -> ListingPage:
        """
        Fetch one listing page of a subreddit.

        Args:
            collection: Subreddit name without the r/ prefix.
            sort: One of hot, new, top.
            time_filter: Only sent when sort is top.
            limit: Page size.
            cursor: The ``after`` token of the previous page.

        Returns:
            ListingPage with parsed items and the next cursor.

        Raises:
            FetchError: A typed failure; never an empty page in its place.
        """
        if sort not in SORT_MODES:
            raise ValidationError(f"Unknown sort mode: {sort}")
        if time_filter is not None and time_filter not in TIME_FILTERS:
            raise ValidationError(f"Unknown time filter: {time_filter}")

        page = await self._fetch_with_retry(collection, sort, time_filter, limit, cursor)
        logger.debug(
            f"r/{collection}/{sort}: {len(page.items)} posts, after={page.next_cursor}"
        )
        return page

    async def fetch_multiple(
        self,
        collections: list[str],
        sort: str,
        time_filter: Optional[str] = None,
        limit: int = 25,
        cursor: Optional[str] = None,
    ) -> ListingPage:
        """
        Fetch the same page of several subreddits concurrently and merge them.

        A failing subreddit is logged and contributes nothing. Merged items are
        shuffled. The returned cursor is the first one found among the
        successful responses, in collection order; cursors are per-subreddit,
        so paging a mixed feed with it is approximate.

        Raises:
            NoItemsAvailableError: If every subreddit failed or came back empty.
        """
        results = await asyncio.gather(
            *(self.fetch(name, sort, time_filter, limit, cursor) for name in collections),
            return_exceptions=True,
        )

        merged: list[RawItem] = []
        next_cursor: Optional[str] = None
        responded = 0
        for name, result in zip(collections, results):
            if isinstance(result, BaseException):
                if not isinstance(result, FetchError):
                    raise result
                logger.warning(f"Failed to fetch r/{name} ({sort}): {result}")
                continue
            responded += 1
            merged.extend(result.items)
            if next_cursor is None and result.next_cursor:
                next_cursor = result.next_cursor

        if not merged:
            raise NoItemsAvailableError(
                f"No posts returned by r/{', '.join(collections)} ({sort})",
                ", ".join(collections),
                responded=responded,
            )

        self.rng.shuffle(merged)
        return ListingPage(items=merged, next_cursor=next_cursor)

    async def search_names(self, query: str) -> list[str]:
        """
        Subreddit name suggestions for autocomplete.

        Returns an empty list for queries shorter than two characters and on
        any failure.
        """
        if not query or len(query) < 2:
            return []

        url = f"{self.fetch_config.base_url}/api/search_reddit_names.json"
        params = {"query": query, "exact": "false", "include_over_18": "true"}
        session = self._get_session()
        try:
            async with session.get(
                url,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=aiohttp.ClientTimeout(total=self.timeouts.suggestion_sec),
            ) as response:
                if response.status != 200:
                    logger.debug(f"Name search for '{query}' failed: {response.status}")
                    return []
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Failed to fetch subreddit suggestions: {e}")
            return []

        names = payload.get("names") if isinstance(payload, dict) else None
        if not isinstance(names, list):
            return []
        return [str(name) for name in names]
