#!/usr/bin/env python3
"""
Gaslighter - Reporting

Counts what a session did (posts fetched, media extracted, posts paired,
queued or dropped) and renders a summary.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

logger = logging.getLogger("gaslighter")


@dataclass
class SessionStats:
    """Statistics for one submission and the pages loaded after it."""
    # Timing
    start_time: Optional[datetime] = None
    source_duration_sec: float = 0.0
    target_duration_sec: float = 0.0

    # Source acquisition
    source_posts_fetched: int = 0
    media_extracted: int = 0
    unique_media: int = 0
    source_failures: int = 0
    replenish_runs: int = 0

    # Target acquisition
    target_posts_fetched: int = 0
    qualifying_posts: int = 0
    dropped_posts: int = 0
    paired_posts: int = 0
    queued_posts: int = 0
    pages_loaded: int = 0

    # Sorts actually used, in order
    sorts_used: list[str] = field(default_factory=list)
    fallback_sort: Optional[str] = None


class ReportGenerator:
    """Builds and prints session reports."""

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        return f"{seconds / 60:.1f}m"

    def generate_report(self, stats: SessionStats) -> dict[str, Any]:
        """
        Generate a report dict from session statistics.

        Args:
            stats: SessionStats collected by the engine.

        Returns:
            Report dictionary.
        """
        pair_rate = (
            stats.paired_posts / stats.target_posts_fetched * 100
            if stats.target_posts_fetched else 0.0
        )

        return {
            "session": {
                "started": stats.start_time.isoformat() if stats.start_time else None,
                "source_duration": self._format_duration(stats.source_duration_sec),
                "target_duration": self._format_duration(stats.target_duration_sec),
                "pages_loaded": stats.pages_loaded,
            },
            "sources": {
                "posts_fetched": stats.source_posts_fetched,
                "media_extracted": stats.media_extracted,
                "unique_media": stats.unique_media,
                "failures": stats.source_failures,
                "replenish_runs": stats.replenish_runs,
            },
            "targets": {
                "posts_fetched": stats.target_posts_fetched,
                "qualifying": stats.qualifying_posts,
                "dropped": stats.dropped_posts,
                "paired": stats.paired_posts,
                "queued": stats.queued_posts,
                "pair_rate": pair_rate,
                "sorts_used": list(stats.sorts_used),
                "fallback_sort": stats.fallback_sort,
            },
        }

    def print_summary(self, report: dict[str, Any]) -> None:
        """Print formatted summary to console and log."""
        sources = report["sources"]
        targets = report["targets"]
        session = report["session"]

        lines = [
            "",
            "=" * 60,
            "SESSION REPORT",
            "=" * 60,
            "",
            "SOURCE MEDIA",
            "-" * 60,
            f"  Posts Fetched:        {sources['posts_fetched']}",
            f"  Media Extracted:      {sources['media_extracted']}",
            f"  Unique Media:         {sources['unique_media']}",
            f"  Failed Fetches:       {sources['failures']}",
            "",
            "TARGET POSTS",
            "-" * 60,
            f"  Posts Fetched:        {targets['posts_fetched']}",
            f"  Qualifying:           {targets['qualifying']}",
            f"  Dropped:              {targets['dropped']}",
            f"  Paired:               {targets['paired']} ({targets['pair_rate']:.1f}%)",
            f"  Queued:               {targets['queued']}",
            f"  Sorts Used:           {', '.join(targets['sorts_used']) or '-'}",
            "",
            "TIMING",
            "-" * 60,
            f"  Source Acquisition:   {session['source_duration']}",
            f"  Target Acquisition:   {session['target_duration']}",
            f"  Pages Loaded:         {session['pages_loaded']}",
            "",
            "=" * 60,
        ]

        output = "\n".join(lines)
        print(output)
        logger.info(output)
