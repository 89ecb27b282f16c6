#!/usr/bin/env python3
"""
Gaslighter - Media Extractor

Turns parsed listing items into displayable media references and decides
which target posts are worth pairing.

Each item yields at most one MediaReference. The rule is picked by the
item's ContentShape:
1. Gallery: first image id with a usable source or preview URL
2. Reddit-hosted video: fallback URL without its query string
3. Direct image link: destination URL as-is
4. Imgur .gifv link: rewritten to .mp4
5. Preview fallback: preview source image, else its widest resolution
"""

import logging
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from reddit_models import (
    ContentShape,
    GIFV_EXTENSION,
    MediaKind,
    MediaReference,
    RASTER_IMAGE_EXTENSIONS,
    RawItem,
    unescape_url,
    url_extension,
)

logger = logging.getLogger("gaslighter")

QUALIFYING_POST_HINTS = ("image", "hosted:video", "rich:video")
IMAGE_HOST_TOKENS = ("imgur.com", "redd.it")


def _widest(entries: Any, width_key: str, url_key: str) -> Optional[dict[str, Any]]:
    """Widest entry that has both a URL and a numeric width; malformed entries are ignored."""
    candidates = [
        e for e in entries or ()
        if isinstance(e, dict) and e.get(url_key) and isinstance(e.get(width_key), (int, float))
    ]
    return max(candidates, key=lambda e: e[width_key], default=None)


def _gallery_entry_url(meta: dict[str, Any]) -> Optional[str]:
    source = meta.get("s")
    if isinstance(source, dict):
        url = source.get("u") or source.get("gif")
        if url:
            return unescape_url(url)

    largest = _widest(meta.get("p"), "x", "u")
    return unescape_url(largest["u"]) if largest else None


def _gallery_url(item: RawItem) -> Optional[str]:
    for media_id in item.gallery_ids:
        meta = item.media_metadata.get(media_id)
        if not isinstance(meta, dict):
            continue
        url = _gallery_entry_url(meta)
        if url:
            return url
    return None


def _preview_url(item: RawItem) -> Optional[str]:
    first = item.preview_images[0]
    source_url = (first.get("source") or {}).get("url")
    if source_url:
        return unescape_url(source_url)

    largest = _widest(first.get("resolutions"), "width", "url")
    return unescape_url(largest["url"]) if largest else None


def _gifv_to_mp4(url: str) -> str:
    """Swap the .gifv path suffix for .mp4, keeping any query string."""
    parts = urlparse(url)
    return parts._replace(path=parts.path[: -len(GIFV_EXTENSION)] + ".mp4").geturl()


def extract_one(item: RawItem) -> Optional[MediaReference]:
    """Derive the single media reference an item provides, if any."""
    shape = item.shape

    if shape is ContentShape.GALLERY:
        url = _gallery_url(item)
        return MediaReference(MediaKind.IMAGE, url, item) if url else None

    if shape is ContentShape.REDDIT_VIDEO:
        return MediaReference(MediaKind.VIDEO, item.video_fallback_url.split("?")[0], item)

    if shape is ContentShape.DIRECT_IMAGE:
        return MediaReference(MediaKind.IMAGE, item.url, item)

    if shape is ContentShape.CONVERTED_GIFV:
        return MediaReference(MediaKind.VIDEO, _gifv_to_mp4(item.url), item)

    if shape is ContentShape.PREVIEW:
        url = _preview_url(item)
        return MediaReference(MediaKind.IMAGE, url, item) if url else None

    return None


def extract_media(items: Iterable[RawItem]) -> list[MediaReference]:
    """
    Extract media references from a batch of items, preserving order.

    Items without media are skipped. An item with malformed metadata is
    logged and skipped without aborting the rest of the batch.
    """
    media: list[MediaReference] = []
    for item in items:
        try:
            reference = extract_one(item)
        except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
            logger.debug(f"Failed to extract media from {item.id} ({item.shape.value}): {e}")
            continue
        if reference is not None:
            media.append(reference)
    return media


def is_qualifying(item: RawItem) -> bool:
    """True if a target post is a media post whose media can be swapped out."""
    if item.post_hint in QUALIFYING_POST_HINTS:
        return True
    if item.is_video or item.is_gallery:
        return True
    if item.preview_images:
        return True
    if item.url and url_extension(item.url) in RASTER_IMAGE_EXTENSIONS:
        return True
    return any(token in item.domain for token in IMAGE_HOST_TOKENS)
