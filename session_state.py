#!/usr/bin/env python3
"""
Gaslighter - Session State

Bookkeeping for one submitted query: pagination cursor, end-of-feed flag,
the source media pool, target posts waiting for media, the posts paired so
far, and the in-flight guard that keeps at most one page load running at a time.

A new submission replaces the whole SessionState and bumps ``generation``;
work started under an older generation must not touch the new state.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from dedup_manager import MediaPool
from reddit_models import PairedPost, RawItem

logger = logging.getLogger("gaslighter")

_SUBREDDIT_PREFIX = re.compile(r"^/?r/", re.IGNORECASE)


def normalize_collections(raw: Union[str, list[str], tuple, None]) -> list[str]:
    """
    Clean user-entered subreddit names.

    Accepts a comma-separated string or a list of entries (which may
    themselves contain commas). Strips whitespace, a leading ``r/`` and a
    trailing ``/``, and drops blanks.
    """
    if raw is None:
        return []
    entries = [raw] if isinstance(raw, str) else list(raw)

    names = []
    for entry in entries:
        for part in str(entry).split(","):
            name = _SUBREDDIT_PREFIX.sub("", part.strip()).rstrip("/").strip()
            if name:
                names.append(name)
    return names


@dataclass
class SessionState:
    """State of the active query. Owned and written only by the PairingEngine."""
    generation: int = 0
    target_collections: list[str] = field(default_factory=list)
    source_collections: list[str] = field(default_factory=list)
    cursor: Optional[str] = None
    exhausted: bool = False
    media_pool: MediaPool = field(default_factory=MediaPool)
    pending_queue: list[RawItem] = field(default_factory=list)
    posts: list[PairedPost] = field(default_factory=list)
    submitted: bool = False
    load_in_flight: bool = False
    replenish_in_flight: bool = False

    @property
    def media_ready(self) -> bool:
        return len(self.media_pool) > 0

    def record_page(self, next_cursor: Optional[str]) -> None:
        """Advance pagination after a page arrived."""
        self.cursor = next_cursor
        if next_cursor is None:
            self.exhausted = True
            logger.info("Reached the end of the target feed")

    def mark_exhausted(self) -> None:
        """The upstream returned an empty page."""
        self.exhausted = True
        self.cursor = None
        logger.info("Target feed returned an empty page; no more posts")

    def can_load_more(self) -> bool:
        """True if a load_more call should actually fetch."""
        return (
            self.submitted
            and not self.load_in_flight
            and not self.exhausted
            and self.cursor is not None
            and self.media_ready
        )

    def begin_load(self) -> bool:
        """Claim the single load slot; False if a load is already running."""
        if self.load_in_flight:
            return False
        self.load_in_flight = True
        return True

    def end_load(self) -> None:
        self.load_in_flight = False

    def take_pending(self) -> list[RawItem]:
        """Empty the pending queue and return what it held."""
        pending, self.pending_queue = self.pending_queue, []
        return pending
