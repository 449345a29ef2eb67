"""Image retrieval: file transfer and the sequential download coordinator."""

from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, Optional

import requests
from filetype import guess

from .config import CrawlConfig
from .errors import (
    OversizeError,
    TransientFetchError,
    UnsupportedContentError,
    ValidationError,
)
from .models import UNKNOWN_TARGET, RetrievalBatch, RetrievalFailure
from .utils import image_extension, is_http_url, sanitize_filename

logger = logging.getLogger("ali_image_scraper")

CHUNK_SIZE = 64 * 1024

Sleep = Callable[[float], Awaitable[None]]


def is_image_payload(data: bytes, content_type: Optional[str]) -> bool:
    """Check the file signature, falling back to the Content-Type header."""
    kind = guess(data)
    if kind is not None:
        return kind.mime.startswith("image/")
    if not content_type:
        return True
    return content_type.split(";")[0].strip().lower().startswith("image/")


class FileTransfer(ABC):
    """Fetches a URL into a local file.

    Implementations raise ``ValidationError`` for malformed URLs,
    ``TransientFetchError`` for network trouble and ``OversizeError`` when the
    body exceeds ``max_bytes``.
    """

    @abstractmethod
    def fetch_to_file(
        self,
        url: str,
        destination: Path,
        max_bytes: int,
        max_redirects: int,
        headers: Dict[str, str],
        timeout: float,
    ) -> None:
        raise NotImplementedError


class RequestsFileTransfer(FileTransfer):
    """Streams a response body to disk with ``requests``."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self.session = session or requests.Session()

    def fetch_to_file(
        self,
        url: str,
        destination: Path,
        max_bytes: int,
        max_redirects: int,
        headers: Dict[str, str],
        timeout: float,
    ) -> None:
        self.session.max_redirects = max_redirects
        try:
            response = self.session.get(url, headers=headers, timeout=timeout, stream=True)
        except (
            requests.exceptions.InvalidURL,
            requests.exceptions.InvalidSchema,
            requests.exceptions.MissingSchema,
        ) as exc:
            raise ValidationError(f"Invalid URL: {url}") from exc
        except requests.RequestException as exc:
            raise TransientFetchError(f"Request failed for {url}: {exc}") from exc

        with response:
            try:
                response.raise_for_status()
            except requests.HTTPError as exc:
                raise TransientFetchError(str(exc)) from exc

            content_type = response.headers.get("Content-Type", "")
            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise OversizeError(
                    f"{url} declares {declared} bytes (limit {max_bytes})"
                )

            written = 0
            try:
                with destination.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        if written == 0 and not is_image_payload(chunk, content_type):
                            raise UnsupportedContentError(
                                f"{url} is not an image (Content-Type={content_type})"
                            )
                        written += len(chunk)
                        if written > max_bytes:
                            raise OversizeError(
                                f"{url} exceeded {max_bytes} bytes while streaming"
                            )
                        handle.write(chunk)
            except requests.RequestException as exc:
                raise TransientFetchError(f"Stream error for {url}: {exc}") from exc


class ImageDownloader:
    """Retrieves image URLs one at a time into the download directory.

    A failing item is recorded and skipped; the batch always runs to the end.
    Items are separated by a randomized pause so the request pattern does not
    look like a burst.
    """

    def __init__(
        self,
        config: CrawlConfig,
        transfer: Optional[FileTransfer] = None,
        sleep: Optional[Sleep] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.transfer = transfer or RequestsFileTransfer()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    def build_destination(
        self,
        url: str,
        target_id: Optional[str],
        display_name: Optional[str],
        index: int,
    ) -> Path:
        product_dir = self.config.output_root / sanitize_filename(
            target_id, fallback=UNKNOWN_TARGET
        )
        extension = image_extension(url)
        if display_name:
            filename = f"{sanitize_filename(display_name)}_{index}{extension}"
        else:
            filename = f"image_{index}{extension}"
        return product_dir / filename

    async def download_image(
        self,
        url: str,
        target_id: Optional[str],
        display_name: Optional[str],
        index: int,
    ) -> Path:
        if not is_http_url(url):
            raise ValidationError(f"Invalid URL: {url}")

        destination = self.build_destination(url, target_id, display_name, index)
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.exists():
            logger.debug("Image already exists: %s", destination)
            return destination

        try:
            await asyncio.to_thread(
                self.transfer.fetch_to_file,
                url,
                destination,
                self.config.max_image_bytes,
                self.config.max_redirects,
                dict(self.config.download_headers),
                self.config.download_timeout,
            )
        except BaseException:
            destination.unlink(missing_ok=True)
            raise

        logger.info("Downloaded %s", destination.name)
        return destination

    async def download_all(
        self,
        urls: Iterable[str],
        target_id: Optional[str],
        display_name: Optional[str],
    ) -> RetrievalBatch:
        urls = list(urls)
        unique = list(dict.fromkeys(urls))
        batch = RetrievalBatch(duplicates=len(urls) - len(unique))
        logger.info(
            "Starting download of %d images (%d total, %d duplicates removed) for %s",
            len(unique),
            len(urls),
            batch.duplicates,
            target_id,
        )

        for index, url in enumerate(unique):
            if index:
                await self._sleep(
                    self._rng.uniform(self.config.min_pacing, self.config.max_pacing)
                )
            try:
                path = await self.download_image(url, target_id, display_name, index)
            except Exception as exc:  # pylint: disable=broad-except
                batch.failed.append(RetrievalFailure(url=url, error=str(exc)))
                logger.warning(
                    "Skipped image %d/%d %s: %s", index + 1, len(unique), url, exc
                )
                continue
            batch.succeeded.append(path)

        logger.info(
            "Download complete for %s: %d succeeded, %d failed, %d total",
            target_id,
            len(batch.succeeded),
            len(batch.failed),
            len(unique),
        )
        return batch
