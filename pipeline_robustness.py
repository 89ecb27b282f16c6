#!/usr/bin/env python3
"""
Gaslighter - Robustness Module

Error handling infrastructure for the acquisition and pairing pipeline:
- Error categorization and the exception taxonomy
- User-facing message wording per error class
- Declarative retry policy with capped backoff
- Graceful degradation tracking for per-source failures
- Atomic file operations
"""

import asyncio
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Iterator, IO, Optional, TypeVar

logger = logging.getLogger("gaslighter")

# =============================================================================
# ERROR CATEGORIES
# =============================================================================

class ErrorCategory(Enum):
    """Classification of errors by severity and recoverability."""
    RECOVERABLE = "recoverable"  # Can retry or resubmit
    WARNING = "warning"          # Non-critical, log and continue


class GaslighterError(Exception):
    """Base exception for all pipeline errors."""
    category: ErrorCategory = ErrorCategory.RECOVERABLE

    def user_message(self) -> str:
        """Human-readable text for the single message area."""
        return f"Operation failed: {self}"


class ValidationError(GaslighterError):
    """Raised when collection input is empty or invalid. Never reaches the network."""

    def user_message(self) -> str:
        return str(self)


# =============================================================================
# FETCH ERRORS
# =============================================================================

class FetchError(GaslighterError):
    """Base exception for upstream request failures."""

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message)
        self.collection = collection


class CollectionNotFoundError(FetchError):
    """Upstream answered 404 for a subreddit."""

    def user_message(self) -> str:
        return f"Subreddit r/{self.collection} not found. Check the spelling."


class CollectionRestrictedError(FetchError):
    """Upstream answered 403: private, quarantined or age-gated subreddit."""

    def user_message(self) -> str:
        return (
            f"Subreddit r/{self.collection} is private, quarantined or age-restricted. "
            f"Try a different subreddit."
        )


class RateLimitedError(FetchError):
    """Upstream answered 429. Retried automatically."""


class TransportError(FetchError):
    """Connection failure or request timeout. Retried automatically."""


class FetchFailedError(FetchError):
    """Any other non-success status or an unusable response body."""

    def __init__(self, message: str, collection: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, collection)
        self.status = status


class NetworkError(FetchError):
    """A retryable failure that persisted after every retry."""

    def user_message(self) -> str:
        return (
            "Network problem while contacting Reddit (rate limited or unreachable). "
            "Check your internet connection and try again in a moment."
        )


class NoItemsAvailableError(FetchError):
    """
    Every collection of a multi-collection fetch failed or returned nothing.

    ``responded`` counts the collections that answered successfully (with an
    empty page); zero means every request failed.
    """
    category = ErrorCategory.WARNING

    def __init__(self, message: str, collection: Optional[str] = None, responded: int = 0):
        super().__init__(message, collection)
        self.responded = responded

    @property
    def all_failed(self) -> bool:
        return self.responded == 0


# =============================================================================
# PAIRING ERRORS
# =============================================================================

class PairingError(GaslighterError):
    """Base exception for submission outcomes that leave nothing to display."""


class NoSourceMediaError(PairingError):
    """
    The merged source media pool is empty.

    ``sources_reachable`` distinguishes "sources returned posts but none had
    usable media" from "sources could not be loaded at all".
    """

    def __init__(self, sources: list[str], sources_reachable: bool):
        self.sources = list(sources)
        self.sources_reachable = sources_reachable
        state = "had no usable media" if sources_reachable else "could not be loaded"
        super().__init__(f"Source subreddits {', '.join(self.sources)} {state}")

    def user_message(self) -> str:
        if self.sources_reachable:
            return "No media content found in the source subreddits. Try different sources."
        return (
            "Failed to load source subreddits. Check your internet connection "
            "or try different subreddits."
        )


class NoTargetPostsError(PairingError):
    """No sort mode returned any target posts."""

    def __init__(self, targets: list[str]):
        self.targets = list(targets)
        super().__init__(f"No posts found in r/{', '.join(self.targets)}")

    def user_message(self) -> str:
        return f"No posts found in r/{', '.join(self.targets)}."


class NoQualifyingTargetPostsError(PairingError):
    """Target posts exist but none of them carry replaceable media."""

    def __init__(self, targets: list[str], fetched: int):
        self.targets = list(targets)
        self.fetched = fetched
        super().__init__(
            f"{fetched} posts found in r/{', '.join(self.targets)} but none had replaceable media"
        )

    def user_message(self) -> str:
        return f"Found posts in r/{', '.join(self.targets)}, but none had replaceable media."


# =============================================================================
# RETRY LOGIC
# =============================================================================

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Which failures are retried, how often and how long to wait.

    Backoff is linear and capped: attempt n waits ``min(base_delay * n, max_delay)``.
    """
    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 5.0
    retry_on: tuple = (RateLimitedError, TransportError)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * attempt, self.max_delay)


def retry_with_backoff(
    policy: RetryPolicy,
    on_exhausted: Optional[Callable[[Exception], Exception]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for coroutines, driven by a RetryPolicy.

    Args:
        policy: Retry policy to apply.
        on_exhausted: Optional mapper turning the last retryable exception into
            the exception raised once every attempt failed.

    Returns:
        Decorated coroutine function with retry logic.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            last_exception: Optional[Exception] = None

            for attempt in range(policy.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except policy.retry_on as e:
                    last_exception = e
                    if attempt < policy.max_retries:
                        delay = policy.delay_for(attempt + 1)
                        logger.warning(
                            f"Attempt {attempt + 1}/{policy.max_retries + 1} failed for {func.__name__}: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)

            logger.error(f"All {policy.max_retries + 1} attempts failed for {func.__name__}: {last_exception}")
            if on_exhausted is not None:
                raise on_exhausted(last_exception) from last_exception
            raise last_exception

        return async_wrapper

    return decorator


# =============================================================================
# GRACEFUL DEGRADATION
# =============================================================================

class SourceFailureTracker:
    """
    Records per-collection failures during a fan-out.

    Lets a submission continue with the collections that worked and decide,
    once every alternative is exhausted, which aggregate error to surface.
    """

    def __init__(self):
        self.failed_collections: dict[str, list[str]] = {}
        self.responded_collections: set[str] = set()

    def record_failure(self, collection: str, sort: str, error: Exception) -> None:
        """Record a failed fetch for one collection and sort."""
        self.failed_collections.setdefault(collection, []).append(f"{sort}: {error}")
        logger.warning(f"⚠️ r/{collection} ({sort}) unavailable, continuing with others: {error}")

    def record_response(self, collection: str, item_count: int) -> None:
        """Record that a collection answered with posts."""
        if item_count > 0:
            self.responded_collections.add(collection)

    @property
    def any_responded(self) -> bool:
        return bool(self.responded_collections)

    def get_summary(self) -> dict[str, Any]:
        """Get summary of all degradation events."""
        return {
            "failed_collections": sorted(self.failed_collections),
            "responded_collections": sorted(self.responded_collections),
            "failure_count": sum(len(v) for v in self.failed_collections.values()),
        }


# =============================================================================
# ATOMIC FILE OPERATIONS
# =============================================================================

class AtomicFileWriter:
    """
    Writes files so readers see either the old content or the new, never a
    partial write: content goes to a sibling temp file that replaces the
    target only after it is flushed to disk.
    """

    @contextmanager
    def atomic_write(self, target: Path, encoding: str = "utf-8") -> Iterator[IO]:
        """Yield a text handle whose content replaces ``target`` on clean exit."""
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding=encoding,
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        )
        temp_path = Path(handle.name)
        committed = False
        try:
            with handle:
                yield handle
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, target)
            committed = True
        finally:
            if not committed:
                temp_path.unlink(missing_ok=True)

    def atomic_json_write(self, target: Path, data: Any, indent: int = 2) -> None:
        with self.atomic_write(target) as f:
            json.dump(data, f, indent=indent, default=str)
