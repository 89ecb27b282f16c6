#!/usr/bin/env python3
"""
Gaslighter - Headless Feed Runner

Runs one feed session from the command line: submit, load a few more pages,
print the paired posts and a session report.

Usage:
    gaslighter --target news --source pics,earthporn --sort top --time week --pages 3
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from config_loader import ConfigLoader, reload_config
from pairing_engine import PairingEngine
from pipeline_robustness import GaslighterError
from reddit_fetcher import RedditFetcher, SORT_MODES, TIME_FILTERS
from reddit_models import PairedPost
from reporting import ReportGenerator
from scheduling import throttle
from settings_store import SettingsStore

logger = logging.getLogger("gaslighter")


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(log_dir: Path = Path("./logs"), debug: bool = False) -> logging.Logger:
    """Configure logging with timestamps and proper formatting."""
    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)

    log_dir.mkdir(exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    file_handler = logging.FileHandler(log_dir / f"feed_{timestamp}.log")
    file_handler.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(formatter)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger


def format_post(index: int, post: PairedPost) -> str:
    meta = post.target_meta
    media = post.media
    media_line = f"{media.kind.value}: {media.url}" if media else "(no media)"
    return (
        f"{index:>3}. [{meta.score:>6}] {meta.title}\n"
        f"     r/{meta.subreddit} by u/{meta.author} - {post.permalink_url}\n"
        f"     {media_line}"
    )


async def run_feed(
    config: ConfigLoader,
    targets: str,
    sources: str,
    sort: str,
    time_filter: str,
    pages: int,
    page_interval: float,
) -> PairingEngine:
    """Submit a query and load ``pages`` extra pages, throttled to one per interval."""
    async with RedditFetcher(config) as fetcher:
        engine = PairingEngine(fetcher, config)
        await engine.submit(targets, sources, sort, time_filter)

        @throttle(page_interval)
        async def load_next() -> int:
            return await engine.load_more(sort, time_filter)

        for _ in range(pages):
            if engine.session.exhausted:
                break
            await load_next()
            await asyncio.sleep(page_interval)

        return engine


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Gaslighter - show posts from one subreddit with media from others"
    )
    parser.add_argument("--target", "-t", help="Target subreddits, comma-separated (default: saved)")
    parser.add_argument("--source", "-s", help="Source subreddits, comma-separated (default: saved)")
    parser.add_argument("--sort", choices=SORT_MODES, help="Target sort mode (default: saved)")
    parser.add_argument("--time", choices=TIME_FILTERS, help="Time filter for top (default: saved)")
    parser.add_argument("--pages", type=int, default=2, help="Extra pages to load after the first (default: 2)")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between page loads (default: 1.0)")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    setup_logging(debug=args.debug)

    config = reload_config(args.config)
    store = SettingsStore(config.get_settings_config().path)
    saved = store.load()

    targets = args.target if args.target is not None else saved.target_subreddit
    sources = args.source if args.source is not None else saved.source_subreddits
    sort = args.sort or saved.sort_mode
    time_filter = args.time or saved.top_time_filter

    try:
        engine = asyncio.run(run_feed(config, targets, sources, sort, time_filter, args.pages, args.interval))
    except GaslighterError as e:
        print(f"\n❌ {e.user_message()}")
        return 1

    store.update(
        target_subreddit=targets,
        source_subreddits=sources,
        sort_mode=sort,
        top_time_filter=time_filter,
    )

    for index, post in enumerate(engine.displayed_posts, start=1):
        print(format_post(index, post))
    if engine.message:
        print(f"\n[{engine.message.kind}] {engine.message.text}")

    reporter = ReportGenerator()
    reporter.print_summary(reporter.generate_report(engine.stats))
    return 0


if __name__ == "__main__":
    sys.exit(main())
