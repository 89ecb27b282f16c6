#!/usr/bin/env python3
"""
Gaslighter - Media Deduplication

URL-keyed pool of source media. Two references with the same URL are the
same media, whichever post they came from, so the pool keeps exactly one
entry per URL regardless of the order fetches complete in.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from reddit_models import MediaKind, MediaReference

logger = logging.getLogger("gaslighter")


@dataclass
class MediaPool:
    """
    Deduplicated set of MediaReferences keyed by URL.

    The first reference seen for a URL is kept; later duplicates are counted
    and dropped.
    """
    by_url: dict[str, MediaReference] = field(default_factory=dict)
    duplicates_skipped: int = 0

    def __len__(self) -> int:
        return len(self.by_url)

    def __iter__(self) -> Iterator[MediaReference]:
        return iter(self.by_url.values())

    def __contains__(self, url: object) -> bool:
        return url in self.by_url

    def has_url(self, url: str) -> bool:
        """Check if URL is already in the pool."""
        return url in self.by_url

    def add(self, reference: MediaReference) -> bool:
        """Add a reference; returns False if its URL was already present."""
        if reference.url in self.by_url:
            self.duplicates_skipped += 1
            return False
        self.by_url[reference.url] = reference
        return True

    def add_all(self, references: Iterable[MediaReference]) -> int:
        """Add references, returning how many new URLs entered the pool."""
        added = sum(1 for reference in references if self.add(reference))
        logger.debug(f"Media pool: +{added} new, {len(self)} total, {self.duplicates_skipped} duplicates skipped")
        return added

    def choose(self, rng: random.Random) -> Optional[MediaReference]:
        """Uniformly random member of the pool, or None if it is empty."""
        if not self.by_url:
            return None
        return rng.choice(list(self.by_url.values()))

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the pool."""
        return {
            "urls": len(self.by_url),
            "images": sum(1 for r in self.by_url.values() if r.kind is MediaKind.IMAGE),
            "videos": sum(1 for r in self.by_url.values() if r.kind is MediaKind.VIDEO),
            "duplicates_skipped": self.duplicates_skipped,
        }
