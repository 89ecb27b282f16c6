#!/usr/bin/env python3
"""
Gaslighter - Pairing Engine

Main orchestrator for a feed session:
Source media acquisition → Target acquisition → Pairing → Load more

Source media is always collected before any target post is paired. Target
posts that arrive while the media pool is empty wait in a queue and are
paired in one flush as soon as media lands in the pool.

Every submission stamps a new generation; results of requests started under
an older generation are discarded on arrival.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Union

from config_loader import ConfigLoader, get_config
from media_extractor import extract_media, is_qualifying
from pipeline_robustness import (
    FetchError,
    GaslighterError,
    NoItemsAvailableError,
    NoQualifyingTargetPostsError,
    NoSourceMediaError,
    NoTargetPostsError,
    SourceFailureTracker,
    ValidationError,
)
from reddit_fetcher import RedditFetcher, SORT_MODES, TIME_FILTERS
from reddit_models import ListingPage, MediaReference, PairedPost, RawItem, TargetMeta
from reporting import SessionStats
from session_state import SessionState, normalize_collections

logger = logging.getLogger("gaslighter")

SOURCE_SORT_ORDER = ("hot", "new", "top")
TARGET_FALLBACK_ORDER = ("hot", "new", "top")

CollectionInput = Union[str, list[str], tuple]


class EngineState(Enum):
    IDLE = "idle"
    ACQUIRING_SOURCE_MEDIA = "acquiring_source_media"
    ACQUIRING_TARGET = "acquiring_target"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class UserMessage:
    """The one message shown to the user; kind is "error" or "info"."""
    text: str
    kind: str = "error"


@dataclass
class SubmitResult:
    """Outcome of a submission that produced posts."""
    posts_added: int
    requested_sort: str
    used_sort: str
    media_pool_size: int = 0
    superseded: bool = False

    @property
    def fallback_used(self) -> bool:
        return self.used_sort != self.requested_sort


class PairingEngine:
    """
    Pairs target subreddit posts with random media from source subreddits.

    The renderer reads ``displayed_posts``, ``is_loading_initial``,
    ``is_loading_more`` and ``message``, and drives the engine with
    ``submit`` and ``load_more``. It never writes session state.
    """

    def __init__(
        self,
        fetcher: RedditFetcher,
        config: Optional[ConfigLoader] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the engine.

        Args:
            fetcher: Listing fetcher used for every upstream request.
            config: Configuration (defaults to the global config).
            rng: Random source for media selection.
        """
        config = config or get_config()
        self.fetcher = fetcher
        self.fetch_config = config.get_fetch_config()
        self.rng = rng or random.Random()

        self.session = SessionState()
        self.state = EngineState.IDLE
        self.stats = SessionStats()
        self.message: Optional[UserMessage] = None
        self.is_loading_initial = False
        self.is_loading_more = False

    # -------------------------------------------------------------------------
    # Rendering contract
    # -------------------------------------------------------------------------

    @property
    def displayed_posts(self) -> list[PairedPost]:
        return list(self.session.posts)

    def display_message(self, text: str, kind: str = "error") -> None:
        self.message = UserMessage(text, kind)
        log = logger.error if kind == "error" else logger.info
        log(f"[Message displayed] {kind}: {text}")

    def clear_message(self) -> None:
        self.message = None

    def _is_current(self, generation: int) -> bool:
        return generation == self.session.generation

    def _fail(self, error: GaslighterError) -> None:
        self.state = EngineState.ERROR
        self.display_message(error.user_message(), "error")

    # -------------------------------------------------------------------------
    # Pool and pairing (single writer for media_pool and pending_queue)
    # -------------------------------------------------------------------------

    def merge_source_media(self, references: Iterable[MediaReference]) -> int:
        """
        Merge references into the pool, deduplicated by URL.

        If this makes media available for the first time and target posts are
        waiting, the whole queue is paired immediately.

        Returns:
            Number of new URLs added to the pool.
        """
        was_ready = self.session.media_ready
        added = self.session.media_pool.add_all(references)
        self.stats.unique_media = len(self.session.media_pool)

        if not was_ready and self.session.media_ready and self.session.pending_queue:
            queued = self.session.take_pending()
            logger.info(f"[Processing queued posts] Count: {len(queued)}")
            self._pair(queued)
        return added

    def pair_or_queue(self, items: list[RawItem]) -> int:
        """
        Pair a batch of target items, or queue it untouched if there is no media yet.

        Returns:
            Number of PairedPosts appended to the feed.
        """
        if not self.session.media_ready:
            self.session.pending_queue.extend(items)
            self.stats.queued_posts += len(items)
            logger.warning(f"No source media available - queued {len(items)} posts")
            return 0
        return self._pair(items)

    def _pair(self, items: list[RawItem]) -> int:
        new_posts = []
        for item in items:
            if not is_qualifying(item):
                self.stats.dropped_posts += 1
                continue
            self.stats.qualifying_posts += 1
            media = self.session.media_pool.choose(self.rng)
            new_posts.append(PairedPost(TargetMeta.from_item(item), media))

        self.session.posts.extend(new_posts)
        self.stats.paired_posts += len(new_posts)
        logger.info(
            f"[Appending posts] {len(new_posts)}/{len(items)} target posts paired, "
            f"pool size {len(self.session.media_pool)}"
        )
        return len(new_posts)

    # -------------------------------------------------------------------------
    # Source acquisition
    # -------------------------------------------------------------------------

    async def _media_from_source(
        self,
        name: str,
        generation: int,
        tracker: SourceFailureTracker,
        stats: SessionStats,
    ) -> list[MediaReference]:
        """Try each sort for one source until one of them yields media."""
        for sort in SOURCE_SORT_ORDER:
            if not self._is_current(generation):
                return []
            time_filter = self.fetch_config.source_top_time_filter if sort == "top" else None
            try:
                page = await self.fetcher.fetch(name, sort, time_filter, self.fetch_config.source_limit)
            except FetchError as e:
                tracker.record_failure(name, sort, e)
                stats.source_failures += 1
                continue

            tracker.record_response(name, len(page.items))
            stats.source_posts_fetched += len(page.items)
            media = extract_media(page.items)
            stats.media_extracted += len(media)

            if media:
                logger.info(f"Fetched {len(media)} media items from r/{name} using {sort}")
                return media
            if page.items:
                logger.info(f"No media found in r/{name} using {sort}")
            else:
                logger.info(f"No posts found in r/{name} using {sort}")
        return []

    async def _acquire_source_media(
        self,
        sources: list[str],
        generation: int,
        stats: SessionStats,
    ) -> tuple[list[MediaReference], SourceFailureTracker]:
        tracker = SourceFailureTracker()
        results = await asyncio.gather(
            *(self._media_from_source(name, generation, tracker, stats) for name in sources)
        )
        references = [reference for media in results for reference in media]
        self.rng.shuffle(references)
        return references, tracker

    # -------------------------------------------------------------------------
    # Target acquisition
    # -------------------------------------------------------------------------

    async def _acquire_target_page(
        self,
        targets: list[str],
        sort: str,
        time_filter: Optional[str],
    ) -> tuple[ListingPage, str]:
        """Requested sort first, then the remaining sorts until one returns posts."""
        order = [sort] + [s for s in TARGET_FALLBACK_ORDER if s != sort]
        for candidate in order:
            candidate_filter = time_filter if candidate == "top" else None
            try:
                page = await self.fetcher.fetch_multiple(
                    targets, candidate, candidate_filter, self.fetch_config.initial_limit
                )
            except FetchError as e:
                logger.info(f"Error with {candidate} for r/{', '.join(targets)}: {e}")
                continue
            return page, candidate
        raise NoTargetPostsError(targets)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def _validate(
        self,
        target_collections: CollectionInput,
        source_collections: CollectionInput,
        sort: str,
        time_filter: Optional[str],
    ) -> tuple[list[str], list[str]]:
        targets = normalize_collections(target_collections)
        sources = normalize_collections(source_collections)

        if not targets and not sources:
            raise ValidationError("Please enter both target and source subreddits.")
        if not sources:
            raise ValidationError("Please enter valid, comma-separated source subreddits.")
        if not targets:
            raise ValidationError("Please enter valid, comma-separated target subreddits.")
        if sort not in SORT_MODES:
            raise ValidationError(f"Unknown sort mode: {sort}")
        if time_filter is not None and time_filter not in TIME_FILTERS:
            raise ValidationError(f"Unknown time filter: {time_filter}")
        return targets, sources

    async def submit(
        self,
        target_collections: CollectionInput,
        source_collections: CollectionInput,
        sort: str = "hot",
        time_filter: Optional[str] = "day",
    ) -> SubmitResult:
        """
        Start a new feed: collect source media, then fetch and pair target posts.

        Any previous session is discarded, including requests still in flight.

        Args:
            target_collections: Subreddits whose posts are shown.
            source_collections: Subreddits whose media is shown in their place.
            sort: Requested sort for the target feed.
            time_filter: Time filter used whenever the target sort is top.

        Returns:
            SubmitResult; ``superseded`` is set if a newer submission took over.

        Raises:
            ValidationError: Empty or invalid input. Nothing was fetched.
            NoSourceMediaError: No usable media in any source subreddit.
            NoTargetPostsError: No sort returned target posts.
            NoQualifyingTargetPostsError: Target posts exist, none with media.
        """
        generation = self.session.generation + 1
        self.session = SessionState(generation=generation)
        self.stats = stats = SessionStats(start_time=datetime.now())
        self.state = EngineState.IDLE
        self.is_loading_initial = False
        self.is_loading_more = False
        self.clear_message()

        try:
            targets, sources = self._validate(target_collections, source_collections, sort, time_filter)
        except ValidationError as e:
            self._fail(e)
            raise

        self.session.target_collections = targets
        self.session.source_collections = sources
        self.is_loading_initial = True
        logger.info(f"[submit] targets={targets} sources={sources} sort={sort} t={time_filter}")

        try:
            # STEP 1: source media, fully collected before any pairing
            self.state = EngineState.ACQUIRING_SOURCE_MEDIA
            started = time.monotonic()
            references, tracker = await self._acquire_source_media(sources, generation, stats)
            stats.source_duration_sec = time.monotonic() - started
            if not self._is_current(generation):
                logger.info(f"[submit] generation {generation} superseded during source acquisition")
                return SubmitResult(0, sort, sort, superseded=True)

            self.merge_source_media(references)
            logger.info(f"Source media collected: {len(self.session.media_pool)} unique items")
            if not self.session.media_ready:
                raise NoSourceMediaError(sources, sources_reachable=tracker.any_responded)

            # STEP 2: target posts
            self.state = EngineState.ACQUIRING_TARGET
            started = time.monotonic()
            page, used_sort = await self._acquire_target_page(targets, sort, time_filter)
            stats.target_duration_sec = time.monotonic() - started
            if not self._is_current(generation):
                logger.info(f"[submit] generation {generation} superseded during target acquisition")
                return SubmitResult(0, sort, used_sort, superseded=True)

            stats.target_posts_fetched += len(page.items)
            stats.pages_loaded += 1
            stats.sorts_used.append(used_sort)
            self.session.record_page(page.next_cursor)

            added = self.pair_or_queue(page.items)
            if added == 0:
                raise NoQualifyingTargetPostsError(targets, len(page.items))

            self.session.submitted = True
            self.state = EngineState.READY
            if used_sort != sort:
                stats.fallback_sort = used_sort
                self.display_message(
                    f'Using "{used_sort}" sorting: "{sort}" returned no posts for r/{", ".join(targets)}',
                    "info",
                )

            return SubmitResult(
                posts_added=added,
                requested_sort=sort,
                used_sort=used_sort,
                media_pool_size=len(self.session.media_pool),
            )

        except GaslighterError as e:
            if self._is_current(generation):
                logger.error(f"[submit] Error: {e}")
                self._fail(e)
            raise
        finally:
            if self._is_current(generation):
                self.is_loading_initial = False

    async def load_more(self, sort: str = "hot", time_filter: Optional[str] = "day") -> int:
        """
        Fetch and pair the next page of the target feed.

        Returns immediately (0) while another load or the initial submission is
        running, after the feed is exhausted, without a successful submission,
        or while no source media is available. Failures become the displayed
        message; they are not raised.

        Returns:
            Number of posts appended.
        """
        session = self.session
        if self.is_loading_initial or not session.can_load_more():
            return 0
        if not session.begin_load():
            return 0

        generation = session.generation
        self.is_loading_more = True
        try:
            page_filter = time_filter if sort == "top" else None
            try:
                page = await self.fetcher.fetch_multiple(
                    session.target_collections,
                    sort,
                    page_filter,
                    self.fetch_config.load_more_limit,
                    session.cursor,
                )
            except NoItemsAvailableError as e:
                if not self._is_current(generation):
                    return 0
                if e.all_failed:
                    self.display_message(f"Error loading more: {e}", "error")
                else:
                    session.mark_exhausted()
                return 0
            except FetchError as e:
                if self._is_current(generation):
                    self.display_message(f"Error loading more: {e.user_message()}", "error")
                return 0

            if not self._is_current(generation):
                logger.debug(f"Discarding page from superseded generation {generation}")
                return 0

            self.stats.pages_loaded += 1
            self.stats.target_posts_fetched += len(page.items)
            session.record_page(page.next_cursor)

            added = self.pair_or_queue(page.items)
            if added:
                self.clear_message()
            return added
        finally:
            session.end_load()
            if self._is_current(generation):
                self.is_loading_more = False

    async def replenish_media(self) -> int:
        """
        Refetch source media in the background and merge it into the pool.

        Goes through merge_source_media, so posts waiting in the queue are
        flushed if the pool was empty.

        Returns:
            Number of new URLs added to the pool.
        """
        session = self.session
        if not session.source_collections or session.replenish_in_flight or self.is_loading_initial:
            return 0
        if not (session.submitted or session.pending_queue):
            return 0

        generation = session.generation
        session.replenish_in_flight = True
        logger.info("[Refetching source media]")
        try:
            results = await asyncio.gather(
                *(self._replenish_from(name) for name in session.source_collections)
            )
            if not self._is_current(generation):
                return 0

            references = [reference for media in results for reference in media]
            self.rng.shuffle(references)
            added = self.merge_source_media(references)
            self.stats.replenish_runs += 1
            logger.info(f"[Source media updated] +{added}, total: {len(session.media_pool)}")
            return added
        finally:
            session.replenish_in_flight = False

    async def _replenish_from(self, name: str) -> list[MediaReference]:
        try:
            page = await self.fetcher.fetch(name, "hot", None, self.fetch_config.replenish_limit)
        except FetchError as e:
            logger.warning(f"Replenish failed for r/{name}: {e}")
            return []
        return extract_media(page.items)
