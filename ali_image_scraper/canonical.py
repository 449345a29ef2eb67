"""Canonicalization of candidate image URLs.

Alibaba serves every product photo under several resize suffixes
(``_50x50.jpg``, ``_960x960q80.jpg`` ...).  Canonicalizing maps each variant of
the same photo onto a single high-resolution URL so that duplicates collapse
when stored in a set.

Query strings frequently carry signing tokens, so size markers are only ever
rewritten in the path component and the query is re-attached verbatim.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional, Pattern, Tuple
from urllib.parse import urlsplit

from .config import DEFAULT_PROFILE, CdnProfile
from .utils import is_http_url

SIZE_MARKER_PATTERN = re.compile(r"_(\d+)x\d+")
QUOTE_CHARS = "'\""


@lru_cache(maxsize=None)
def _marker_pattern(markers: Tuple[str, ...]) -> Pattern[str]:
    alternatives = "|".join(re.escape(marker) + r"(?!\d)" for marker in markers)
    return re.compile(alternatives, re.IGNORECASE)


@lru_cache(maxsize=None)
def _extension_pattern(extensions: Tuple[str, ...]) -> Pattern[str]:
    alternatives = "|".join(re.escape(ext) for ext in extensions)
    return re.compile(rf"\.(?:{alternatives})$", re.IGNORECASE)


def has_high_res_marker(url: str, profile: CdnProfile = DEFAULT_PROFILE) -> bool:
    return bool(_marker_pattern(profile.high_res_markers).search(url))


def has_low_res_marker(url: str, profile: CdnProfile = DEFAULT_PROFILE) -> bool:
    return bool(_marker_pattern(profile.low_res_markers).search(url))


def has_image_extension(path: str, profile: CdnProfile = DEFAULT_PROFILE) -> bool:
    return bool(_extension_pattern(profile.image_extensions).search(path))


def size_markers(url: str) -> int:
    """Number of ``_<w>x<h>`` markers in ``url``."""
    return len(SIZE_MARKER_PATTERN.findall(url))


def size_rank(url: str) -> int:
    """Width taken from the first size marker, or 0 when there is none."""
    match = SIZE_MARKER_PATTERN.search(url)
    return int(match.group(1)) if match else 0


def is_cdn_url(url: str, profile: CdnProfile = DEFAULT_PROFILE) -> bool:
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return False
    domain = profile.cdn_domain.lower()
    return host == domain or host.endswith("." + domain)


def canonicalize(raw: Optional[str], profile: CdnProfile = DEFAULT_PROFILE) -> Optional[str]:
    """Return the canonical high-resolution form of ``raw`` or ``None``.

    ``None`` means the candidate is rejected: empty, a ``data:`` literal, or
    not an absolute http(s) URL.  Applying the function to its own output is
    a no-op.
    """
    if raw is None:
        return None
    url = raw.strip().strip(QUOTE_CHARS).strip()
    if not url or url[:5].lower() == "data:":
        return None
    if not is_http_url(url):
        return None

    # Never touch a URL that is already high resolution, otherwise markers
    # get stacked (``_960x960q80_960x960q80.jpg``).
    if has_high_res_marker(url, profile):
        return url

    base, separator, query = url.partition("?")

    low_res = _marker_pattern(profile.low_res_markers)
    if low_res.search(base):
        return low_res.sub(profile.upgrade_marker, base) + separator + query

    if is_cdn_url(url, profile) and not SIZE_MARKER_PATTERN.search(url):
        extension = _extension_pattern(profile.image_extensions)
        if extension.search(base):
            upgraded = extension.sub(
                lambda match: profile.upgrade_marker + match.group(0), base, count=1
            )
            return upgraded + separator + query

    return url
