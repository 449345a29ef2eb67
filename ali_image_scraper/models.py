"""Data models used throughout the scraper pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

UNKNOWN_TARGET = "unknown"
DEFAULT_DISPLAY_NAME = "product"


class CrawlState(enum.Enum):
    """Lifecycle of a single crawl target."""

    NAVIGATING = "navigating"
    EXTRACTING_INFO = "extracting_info"
    SIMULATING_PRESENCE = "simulating_presence"
    LAZY_LOAD_SCROLLING = "lazy_load_scrolling"
    SETTLING = "settling"
    SELECTING_URLS = "selecting_urls"
    RETRIEVING = "retrieving"
    DONE = "done"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass
class ProductInfo:
    """Identifier and human-readable name of a product page."""

    target_id: str = UNKNOWN_TARGET
    display_name: str = DEFAULT_DISPLAY_NAME


@dataclass
class RetrievalFailure:
    """An image that could not be stored, with the reason."""

    url: str
    error: str


@dataclass
class RetrievalBatch:
    """Outcome of retrieving a list of image URLs."""

    succeeded: List[Path] = field(default_factory=list)
    failed: List[RetrievalFailure] = field(default_factory=list)
    duplicates: int = 0


@dataclass
class CrawlResult:
    """Result of crawling one product page."""

    success: bool
    url: str
    target_id: Optional[str] = None
    display_name: Optional[str] = None
    images: List[Path] = field(default_factory=list)
    total_found: int = 0
    failed: List[RetrievalFailure] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, url: str, error: str) -> "CrawlResult":
        return cls(success=False, url=url, error=error)
