#!/usr/bin/env python3
"""
Gaslighter - Data Models

Typed views of upstream listing items and of what the pipeline produces
from them:

- RawItem: one parsed post, tagged with its ContentShape at parse time
- MediaReference: one displayable image or video extracted from a RawItem
- PairedPost: target post metadata paired with a source MediaReference
- ListingPage: one page of RawItems plus the continuation cursor
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Optional
from urllib.parse import urlparse

logger = logging.getLogger("gaslighter")

REDDIT_BASE_URL = "https://www.reddit.com"

RASTER_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
DIRECT_IMAGE_HOSTS = ("i.redd.it", "i.imgur.com")
GIFV_EXTENSION = ".gifv"


class ContentShape(Enum):
    """Which extraction rule applies to an item, decided once when it is parsed."""
    GALLERY = "gallery"
    REDDIT_VIDEO = "reddit_video"
    DIRECT_IMAGE = "direct_image"
    CONVERTED_GIFV = "converted_gifv"
    PREVIEW = "preview"
    NONE = "none"


class MediaKind(Enum):
    IMAGE = "image"
    VIDEO = "video"


def url_extension(url: str) -> str:
    """Lower-cased file extension of a URL path, ignoring query and fragment."""
    if not url:
        return ""
    return PurePosixPath(urlparse(url).path).suffix.lower()


def unescape_url(url: str) -> str:
    """Undo the HTML escaping Reddit applies to query strings in some payloads."""
    return url.replace("&amp;", "&")


def _classify(
    is_gallery: bool,
    media_metadata: dict[str, Any],
    is_video: bool,
    video_fallback_url: Optional[str],
    url: str,
    domain: str,
    post_hint: str,
    preview_images: tuple,
) -> ContentShape:
    if is_gallery and media_metadata:
        return ContentShape.GALLERY
    if is_video and video_fallback_url:
        return ContentShape.REDDIT_VIDEO
    if url:
        ext = url_extension(url)
        if ext in RASTER_IMAGE_EXTENSIONS:
            return ContentShape.DIRECT_IMAGE
        if ext == GIFV_EXTENSION:
            return ContentShape.CONVERTED_GIFV
        if domain in DIRECT_IMAGE_HOSTS or post_hint == "image":
            return ContentShape.DIRECT_IMAGE
    if preview_images:
        return ContentShape.PREVIEW
    return ContentShape.NONE


@dataclass(frozen=True)
class RawItem:
    """A Reddit post as returned by a listing, reduced to what the pipeline reads."""
    id: str
    title: str
    author: str
    subreddit: str
    permalink: str
    score: int
    shape: ContentShape
    url: str = ""
    domain: str = ""
    post_hint: str = ""
    is_video: bool = False
    is_gallery: bool = False
    gallery_ids: tuple = ()
    media_metadata: dict[str, Any] = field(default_factory=dict)
    video_fallback_url: Optional[str] = None
    preview_images: tuple = ()

    def __repr__(self) -> str:
        return f"RawItem(id={self.id}, subreddit={self.subreddit}, shape={self.shape.value})"

    @classmethod
    def from_listing_child(cls, child: dict[str, Any]) -> "RawItem":
        """
        Parse one entry of ``data.children`` from a listing response.

        Raises:
            ValueError: If the child carries no ``data`` object.
        """
        if not isinstance(child, dict) or not isinstance(child.get("data"), dict):
            raise ValueError("listing child has no data object")
        data = child["data"]

        media_metadata = data.get("media_metadata") or {}
        if not isinstance(media_metadata, dict):
            media_metadata = {}

        gallery_items = (data.get("gallery_data") or {}).get("items") or []
        gallery_ids = tuple(
            str(entry["media_id"]) for entry in gallery_items
            if isinstance(entry, dict) and entry.get("media_id")
        )
        if not gallery_ids:
            gallery_ids = tuple(media_metadata.keys())

        video_fallback_url = None
        for media_key in ("media", "secure_media"):
            reddit_video = (data.get(media_key) or {}).get("reddit_video") or {}
            if reddit_video.get("fallback_url"):
                video_fallback_url = reddit_video["fallback_url"]
                break

        preview_images = tuple((data.get("preview") or {}).get("images") or ())
        url = data.get("url_overridden_by_dest") or data.get("url") or ""
        domain = (data.get("domain") or "").lower()
        post_hint = data.get("post_hint") or ""
        is_video = bool(data.get("is_video"))
        is_gallery = bool(data.get("is_gallery"))

        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            author=data.get("author") or "[deleted]",
            subreddit=data.get("subreddit") or "",
            permalink=data.get("permalink") or "",
            score=int(data.get("score") or 0),
            shape=_classify(
                is_gallery, media_metadata, is_video, video_fallback_url,
                url, domain, post_hint, preview_images,
            ),
            url=url,
            domain=domain,
            post_hint=post_hint,
            is_video=is_video,
            is_gallery=is_gallery,
            gallery_ids=gallery_ids,
            media_metadata=media_metadata,
            video_fallback_url=video_fallback_url,
            preview_images=preview_images,
        )


@dataclass(frozen=True)
class MediaReference:
    """One displayable media asset; the pool deduplicates these by ``url``."""
    kind: MediaKind
    url: str
    source_item: RawItem

    def __repr__(self) -> str:
        return f"MediaReference(kind={self.kind.value}, url={self.url})"


@dataclass(frozen=True)
class TargetMeta:
    """The parts of a target post that survive pairing."""
    title: str
    author: str
    subreddit: str
    permalink: str
    score: int

    @classmethod
    def from_item(cls, item: RawItem) -> "TargetMeta":
        return cls(
            title=item.title,
            author=item.author,
            subreddit=item.subreddit,
            permalink=item.permalink,
            score=item.score,
        )


@dataclass(frozen=True)
class PairedPost:
    """
    A target post shown with media taken from a source subreddit.

    The engine always pairs with a real MediaReference; ``media`` is Optional
    only so a renderer can build placeholder posts of its own.
    """
    target_meta: TargetMeta
    media: Optional[MediaReference]

    @property
    def permalink_url(self) -> str:
        return f"{REDDIT_BASE_URL}{self.target_meta.permalink}"


@dataclass
class ListingPage:
    """One page of a listing: parsed items and the cursor for the next page."""
    items: list[RawItem] = field(default_factory=list)
    next_cursor: Optional[str] = None
