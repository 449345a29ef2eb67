"""Feeds browser network responses into the image URL extractor."""

from __future__ import annotations

import json
import logging
import re
from typing import Awaitable, Callable

from .content import payload_display_name, payload_target_id, response_target_id
from .extraction import ImageUrlExtractor

logger = logging.getLogger("ali_image_scraper")

BodyReader = Callable[[], Awaitable[str]]

JSON_CONTENT_TYPES = ("application/json", "text/json")
DATA_ENDPOINT_HINTS = (
    "/api/",
    "/ajax/",
    "getProduct",
    "productDetail",
    "/event/app/productDetail/",
    "/event/app/mainAction/",
    "mtop.alibaba",
    "productQuickDetail",
    "descIframe",
    "product-detail/description",
)
IMAGE_RESPONSE_PATTERN = re.compile(r"\.(?:jpg|jpeg|png|webp|gif)(?:\?|$)", re.IGNORECASE)


def is_data_response(url: str, content_type: str) -> bool:
    content_type = (content_type or "").lower()
    if any(kind in content_type for kind in JSON_CONTENT_TYPES):
        return True
    return any(hint in url for hint in DATA_ENDPOINT_HINTS)


class ResponseInterceptor:
    """Response-received handler installed on a browser session.

    Responses may arrive at any point while the crawler is suspended; every
    write goes through the extractor, whose stores are idempotent sets.
    """

    def __init__(self, extractor: ImageUrlExtractor) -> None:
        self.extractor = extractor
        self.responses_seen = 0

    async def __call__(self, url: str, content_type: str, read_body: BodyReader) -> None:
        self.responses_seen += 1
        if is_data_response(url, content_type):
            await self._handle_data(url, read_body)
        if IMAGE_RESPONSE_PATTERN.search(url):
            self.extractor.extract_image_response(url)

    async def _handle_data(self, url: str, read_body: BodyReader) -> None:
        try:
            body = await read_body()
        except Exception as exc:  # pylint: disable=broad-except
            # Redirects and aborted requests have no body; not worth failing over.
            logger.debug("Could not read response body from %s: %s", url, exc)
            return

        target_id = response_target_id(url)
        try:
            payload = json.loads(body)
        except ValueError:
            self.extractor.extract(body, target_id)
            return

        target_id = target_id or payload_target_id(payload)
        found = self.extractor.extract_structured(payload, target_id)
        if found:
            count = len(self.extractor.get_target_urls(target_id)) if target_id else 0
            logger.debug(
                "Found images in response %s (product=%s, name=%s, count=%d)",
                url,
                target_id,
                payload_display_name(payload),
                count,
            )
