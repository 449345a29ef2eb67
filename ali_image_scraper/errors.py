"""Exception types raised by the scraper."""

from __future__ import annotations

from typing import Optional


class ScraperError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(ScraperError):
    """A URL or payload is malformed; retrying will not help."""


class UnsupportedContentError(ValidationError):
    """The server answered with something that is not an image."""


class TransientFetchError(ScraperError):
    """Network, timeout or stream failure while transferring a file."""


class OversizeError(ScraperError):
    """The payload exceeds the configured byte cap."""


class NavigationTimeout(ScraperError):
    """The browser did not reach the requested load state in time."""


class RetryExhausted(ScraperError):
    """Every crawl attempt for a target failed."""

    def __init__(self, url: str, attempts: int, last_error: Optional[BaseException]):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Giving up on {url} after {attempts} attempt(s): {last_error}"
        )
