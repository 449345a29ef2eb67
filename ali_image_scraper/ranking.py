"""Filtering and quality ordering of accumulated image URLs."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List
from urllib.parse import urlsplit

from .canonical import has_high_res_marker, is_cdn_url, size_markers, size_rank
from .config import DEFAULT_PROFILE, CdnProfile
from .extraction import is_excluded


def _is_product_path(url: str, profile: CdnProfile) -> bool:
    return profile.product_path in urlsplit(url).path


def _is_product_grade(url: str, profile: CdnProfile) -> bool:
    if has_high_res_marker(url, profile):
        return True
    host = urlsplit(url).hostname or ""
    if re.fullmatch(profile.product_subdomain_pattern, host, re.IGNORECASE):
        return True
    # Two size markers mean a thumbnail suffix was rewritten twice.
    return _is_product_path(url, profile) and size_markers(url) < 2


def fallback_cdn_urls(
    candidates: Iterable[str],
    profile: CdnProfile = DEFAULT_PROFILE,
) -> List[str]:
    """Any CDN URL that is not UI chrome, unique, in input order."""
    seen: Dict[str, None] = {}
    for url in candidates:
        if url in seen or not is_cdn_url(url, profile) or is_excluded(url, profile):
            continue
        seen[url] = None
    return list(seen)


def rank_urls(
    candidates: Iterable[str],
    profile: CdnProfile = DEFAULT_PROFILE,
) -> List[str]:
    """Order product-grade CDN URLs best first.

    Larger size markers lead; at equal size, URLs under the product image
    path come before anything else.  When no URL looks like a product photo
    the unranked CDN fallback is returned instead.
    """
    candidates = list(candidates)
    eligible = [
        url
        for url in fallback_cdn_urls(candidates, profile)
        if _is_product_grade(url, profile)
    ]
    if not eligible:
        return fallback_cdn_urls(candidates, profile)
    return sorted(
        eligible,
        key=lambda url: (-size_rank(url), 0 if _is_product_path(url, profile) else 1),
    )
