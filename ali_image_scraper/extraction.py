"""Image URL extraction from network response payloads."""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Pattern, Tuple

from .canonical import canonicalize, has_image_extension, is_cdn_url
from .config import DEFAULT_PROFILE, CdnProfile

logger = logging.getLogger("ali_image_scraper")

_IMAGE_EXT = r"\.(?:jpg|jpeg|png|webp|gif)"
_QUERY = r"(?:\?[^\"'\s]*)?"

IMAGE_URL_PATTERNS: Tuple[Pattern[str], ...] = (
    # CDN path shape: s.alicdn.com/@sc04/kf/...
    re.compile(
        rf"https?://s\.alicdn\.com/@sc\d+/kf/[^\"'\s]+{_IMAGE_EXT}{_QUERY}", re.IGNORECASE
    ),
    # CDN subdomain shape: sc04.alicdn.com/kf/...
    re.compile(
        rf"https?://sc\d+\.alicdn\.com/kf/[^\"'\s]+{_IMAGE_EXT}{_QUERY}", re.IGNORECASE
    ),
    re.compile(
        rf"https?://[^\"'\s]*\.alicdn\.com[^\"'\s]+{_IMAGE_EXT}{_QUERY}", re.IGNORECASE
    ),
    re.compile(
        rf"https?://[^\"'\s]+_(?:960x960|800x800|1200x1200|1600x1600)[^\"'\s]*{_IMAGE_EXT}{_QUERY}",
        re.IGNORECASE,
    ),
    re.compile(rf"https?://[^\"'\s]+{_IMAGE_EXT}{_QUERY}", re.IGNORECASE),
)

_EXCLUDED_WORDS = ("imgextra", "icon", "flag", "logo")
_TILE_PATTERN = r"tps-\d+-\d+\.(?:png|svg)"
_THUMBNAIL_WORDS = ("thumbnail",)


@lru_cache(maxsize=None)
def _exclusion_pattern(small_ui_markers: Tuple[str, ...]) -> Pattern[str]:
    parts = [re.escape(word) for word in _EXCLUDED_WORDS]
    parts.extend(re.escape(marker) for marker in small_ui_markers)
    parts.append(_TILE_PATTERN)
    return re.compile("|".join(parts), re.IGNORECASE)


def is_excluded(url: str, profile: CdnProfile = DEFAULT_PROFILE) -> bool:
    """True for UI chrome: icons, flags, logos, tiny tiles."""
    return bool(_exclusion_pattern(profile.small_ui_markers).search(url))


def _build_thumbnail_filter(profile: CdnProfile) -> Pattern[str]:
    parts = [re.escape(marker) for marker in profile.low_res_markers]
    parts.extend(re.escape(word) for word in _THUMBNAIL_WORDS)
    return re.compile("|".join(parts), re.IGNORECASE)


class ImageUrlExtractor:
    """Accumulates canonical image URLs found in response payloads.

    URLs are kept per crawl target (product id) and in a global set that acts
    as a fallback when no response could be attributed to the target.  Both
    collections are insertion-ordered and unique, so the same URL arriving
    from several responses is stored once.
    """

    def __init__(self, profile: CdnProfile = DEFAULT_PROFILE) -> None:
        self.profile = profile
        self._thumbnail = _build_thumbnail_filter(profile)
        self._all_urls: Dict[str, None] = {}
        self._target_urls: Dict[str, Dict[str, None]] = {}

    def is_excluded(self, url: str) -> bool:
        return is_excluded(url, self.profile)

    def _store(self, url: str, target_id: Optional[str]) -> bool:
        added = url not in self._all_urls
        self._all_urls[url] = None
        if target_id:
            bucket = self._target_urls.setdefault(target_id, {})
            if url not in bucket:
                bucket[url] = None
                added = True
        return added

    def extract(self, text: str, target_id: Optional[str] = None) -> bool:
        """Scan ``text`` for image URLs; return True if any were new."""
        if not text:
            return False
        text = text.replace("\\/", "/")
        found = False
        for pattern in IMAGE_URL_PATTERNS:
            for match in pattern.findall(text):
                if self.is_excluded(match):
                    continue
                url = canonicalize(match, self.profile)
                if url is None:
                    continue
                if self._store(url, target_id):
                    found = True
        return found

    def extract_structured(self, value: Any, target_id: Optional[str] = None) -> bool:
        """Serialize an arbitrary decoded payload and scan it as text."""
        if value is None:
            return False
        if isinstance(value, str):
            return self.extract(value, target_id)
        try:
            text = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            logger.debug("Payload is not JSON serializable; scanning its repr")
            text = str(value)
        return self.extract(text, target_id)

    def extract_image_response(self, url: str) -> bool:
        """Record a CDN image that the browser fetched directly."""
        if self._thumbnail.search(url) or self.is_excluded(url):
            return False
        if not is_cdn_url(url, self.profile):
            return False
        if not has_image_extension(url.partition("?")[0], self.profile):
            return False
        canonical = canonicalize(url, self.profile)
        if canonical is None:
            return False
        if canonical != url:
            logger.debug("Upgraded direct image URL %s -> %s", url, canonical)
        return self._store(canonical, None)

    def get_target_urls(self, target_id: str) -> List[str]:
        return list(self._target_urls.get(target_id, ()))

    def get_all_urls(self) -> List[str]:
        return list(self._all_urls)

    def target_ids(self) -> List[str]:
        return list(self._target_urls)

    def clear(self) -> None:
        self._all_urls.clear()
        self._target_urls.clear()
