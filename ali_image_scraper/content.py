"""Product identifier and name discovery from pages, URLs and payloads."""

from __future__ import annotations

import re
from typing import Any, Optional

from bs4 import BeautifulSoup

from .models import DEFAULT_DISPLAY_NAME, UNKNOWN_TARGET, ProductInfo

# Alibaba product pages end in ``_<id>.html``; generic shops use ``/<id>.html``.
PAGE_ID_PATTERNS = (
    re.compile(r"_(\d+)\.html"),
    re.compile(r"/(\d+)\.html"),
)

RESPONSE_ID_PATTERNS = (
    re.compile(r"product[_-]?id[=:](\d+)", re.IGNORECASE),
    re.compile(r"_(\d+)\.html"),
    re.compile(r"/(\d+)\.html"),
    re.compile(r"detailId=(\d+)", re.IGNORECASE),
    re.compile(r"productId=(\d+)", re.IGNORECASE),
)

NAME_SELECTORS = ("h1", "[data-product-name]", ".product-title")


def _first_match(patterns, value: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(value)
        if match:
            return match.group(1)
    return None


def page_target_id(url: str) -> Optional[str]:
    """Product id encoded in a product page address."""
    return _first_match(PAGE_ID_PATTERNS, url or "")


def response_target_id(url: Optional[str]) -> Optional[str]:
    """Product id encoded in an API/XHR response address."""
    if not url:
        return None
    return _first_match(RESPONSE_ID_PATTERNS, url)


def payload_target_id(payload: Any) -> Optional[str]:
    """Product id carried by a decoded JSON payload, if any."""
    if not isinstance(payload, dict):
        return None
    value = payload.get("productId") or payload.get("id")
    if not value and isinstance(payload.get("product"), dict):
        value = payload["product"].get("id")
    return str(value) if value else None


def payload_display_name(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    name = payload.get("productName") or payload.get("name")
    if not name and isinstance(payload.get("product"), dict):
        name = payload["product"].get("name")
    return name if isinstance(name, str) and name.strip() else None


def extract_product_info(html: str, page_url: str) -> ProductInfo:
    """Read the product id from the address and its name from the markup."""
    soup = BeautifulSoup(html or "", "html.parser")

    display_name: Optional[str] = None
    for selector in NAME_SELECTORS:
        node = soup.select_one(selector)
        if node:
            text = " ".join(node.get_text(" ", strip=True).split())
            if text:
                display_name = text
                break
    if not display_name and soup.title and soup.title.string:
        display_name = soup.title.string.strip() or None

    return ProductInfo(
        target_id=page_target_id(page_url) or UNKNOWN_TARGET,
        display_name=display_name or DEFAULT_DISPLAY_NAME,
    )
