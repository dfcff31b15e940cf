"""
Image URL resolution for Reddit posts.

Works on a Post or on a raw post mapping (Reddit JSON in snake_case, or the
camelCase shape some hosts hand over). Sources are tried from the most
structured to the loosest and the first one that yields images wins:

1. gallery image list supplied by the host (gallery posts)
2. inline media list supplied by the host (self posts with inline media)
3. gallery_data items looked up in media_metadata
4. any media_metadata entry, then image links found in the selftext
5. url_overridden_by_dest, preview source image, then url
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from .items import Post

logger = logging.getLogger(__name__)

IMAGE_HOST_RE = re.compile(r"i\.redd\.it|preview\.redd\.it|i\.imgur\.com")
IMAGE_EXTENSION_RE = re.compile(r"\.(png|jpe?g|gif|webp)$", re.IGNORECASE)
TEXT_URL_RE = re.compile(r"https?://\S+")


def decode_url(url: Optional[str]) -> Optional[str]:
    """Undo the HTML escaping Reddit applies to media URLs."""
    return str(url).replace("&amp;", "&") if url else None


def looks_like_image(url: Optional[str]) -> bool:
    """True for known image hosts or URLs ending in a raster image extension."""
    if not url:
        return False
    return bool(IMAGE_HOST_RE.search(url) or IMAGE_EXTENSION_RE.search(url))


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _as_mapping(data: Any) -> Optional[Mapping[str, Any]]:
    if data is None:
        return None
    if isinstance(data, Post):
        return data.media_fields()
    if isinstance(data, Mapping):
        return data
    return None


def _media_entry_url(entry: Any) -> Optional[str]:
    """URL of one media_metadata entry: the source image, else the largest preview."""
    if not isinstance(entry, Mapping):
        return None

    source = entry.get("s") or entry.get("source") or {}
    url = None
    if isinstance(source, Mapping):
        url = source.get("u") or source.get("url")

    if not url:
        previews = entry.get("p")
        if isinstance(previews, list) and previews and isinstance(previews[-1], Mapping):
            url = previews[-1].get("u") or previews[-1].get("url")

    return decode_url(url)


def _image_list(urls: Any) -> List[str]:
    images = []
    for url in urls or []:
        url = decode_url(url)
        if url and looks_like_image(url):
            images.append(url)
    return images


def _collect_candidates(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Walk the sources in preference order and return the first image list found."""
    url_overridden = _first(data, "url_overridden_by_dest", "urlOverriddenByDest")
    base_url = data.get("url")
    selftext = data.get("selftext") or data.get("selfText") or ""
    media_metadata = _first(data, "media_metadata", "mediaMetadata")
    gallery_data = _first(data, "gallery_data", "galleryData")

    host_gallery = _first(data, "gallery_images", "galleryImages")
    host_media = _first(data, "media_urls", "mediaUrls")
    has_host_gallery = isinstance(host_gallery, list) and len(host_gallery) > 0
    has_host_media = isinstance(host_media, list) and len(host_media) > 0

    is_gallery = (
        data.get("isGallery") is True
        or data.get("is_gallery") is True
        or data.get("type") == "gallery"
    )
    is_text_with_media = (
        (data.get("isSelf") is True or data.get("is_self") is True)
        and not is_gallery
        and (bool(media_metadata) or has_host_media)
    )

    if is_gallery and has_host_gallery:
        images = _image_list(host_gallery)
        if images:
            return {"source": "gallery", "images": images}

    if is_text_with_media and has_host_media:
        images = _image_list(host_media)
        if images:
            return {"source": "inline media", "images": images}

    if (
        not has_host_gallery
        and isinstance(gallery_data, Mapping)
        and isinstance(media_metadata, Mapping)
        and isinstance(gallery_data.get("items"), list)
    ):
        images = []
        for item in gallery_data["items"]:
            if not isinstance(item, Mapping):
                continue
            media_id = item.get("media_id") or item.get("mediaId") or item.get("id")
            if not media_id:
                continue
            url = _media_entry_url(media_metadata.get(media_id))
            if url and looks_like_image(url):
                images.append(url)
        if images:
            return {"source": "gallery metadata", "images": images}

    images = []
    if not has_host_media and isinstance(media_metadata, Mapping):
        for entry in media_metadata.values():
            url = _media_entry_url(entry)
            if url and looks_like_image(url):
                images.append(url)

    if not has_host_media and selftext:
        for candidate in TEXT_URL_RE.findall(selftext):
            candidate = re.sub(r"[)\]]$", "", candidate)
            url = decode_url(candidate)
            if url and looks_like_image(url) and url not in images:
                images.append(url)

    if images:
        return {"source": "inline metadata", "images": images}

    preview_image = None
    preview = data.get("preview")
    if isinstance(preview, Mapping):
        try:
            preview_image = preview["images"][0]["source"]["url"]
        except (KeyError, IndexError, TypeError):
            preview_image = None

    for candidate in (url_overridden, preview_image, base_url):
        if looks_like_image(candidate):
            return {"source": "direct", "images": [decode_url(candidate)]}

    return {"source": None, "images": []}


def resolve_image_urls(data: Any, limit: Optional[int] = None) -> Optional[List[str]]:
    """
    Resolve every image URL a post carries.

    Args:
        data: A Post or a raw post mapping
        limit: Maximum number of URLs to return (None for all)

    Returns:
        Image URLs in discovery order, or None if the post has no image
    """
    mapping = _as_mapping(data)
    if mapping is None:
        return None

    found = _collect_candidates(mapping)
    images = found["images"]
    if limit is not None:
        images = images[:max(0, limit)]

    logger.debug(f"Image candidates ({found['source']}): {images}")
    return images or None


def resolve_image_url(data: Any) -> Optional[str]:
    """Resolve the single best image URL of a post, or None."""
    images = resolve_image_urls(data, limit=1)
    return images[0] if images else None
