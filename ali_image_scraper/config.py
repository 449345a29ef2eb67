"""Configuration objects and constants for the scraper."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_DOWNLOAD_HEADERS: Dict[str, str] = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Referer": "https://www.alibaba.com/",
    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

MAX_IMAGE_BYTES = 50 * 1024 * 1024
MAX_REDIRECTS = 5


@dataclass(frozen=True)
class CdnProfile:
    """Site vocabulary used to recognise, upgrade and rank image URLs."""

    cdn_domain: str = "alicdn.com"
    product_path: str = "/kf/"
    product_subdomain_pattern: str = r"sc\d+\.alicdn\.com"
    high_res_markers: Tuple[str, ...] = (
        "_960x960",
        "_800x800",
        "_1200x1200",
        "_1600x1600",
    )
    low_res_markers: Tuple[str, ...] = ("_50x50", "_80x80", "_100x100")
    small_ui_markers: Tuple[str, ...] = (
        "_20x20",
        "_40x40",
        "_48x48",
        "_60x60",
        "_80x80",
    )
    upgrade_marker: str = "_960x960q80"
    image_extensions: Tuple[str, ...] = ("jpg", "jpeg", "png", "webp", "gif")


DEFAULT_PROFILE = CdnProfile()


@dataclass
class ProxyConfig:
    """Upstream proxy handed to the browser at launch."""

    server: str
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_env(cls) -> Optional["ProxyConfig"]:
        server = os.getenv("PROXY_URL")
        if not server:
            return None
        return cls(
            server=server,
            username=os.getenv("PROXY_USERNAME") or None,
            password=os.getenv("PROXY_PASSWORD") or None,
        )

    def as_playwright(self) -> Dict[str, str]:
        proxy = {"server": self.server}
        if self.username:
            proxy["username"] = self.username
        if self.password:
            proxy["password"] = self.password
        return proxy


@dataclass
class CrawlConfig:
    """Top-level settings that control crawling, pacing and retrieval.

    All durations are in seconds; ranges are ``(minimum, maximum)`` pairs that
    are sampled uniformly.
    """

    output_root: Path = Path("downloads")
    headless: bool = False
    navigation_timeout: float = 60.0
    retry_attempts: int = 3
    retry_base_delay: float = 5.0
    min_pacing: float = 0.5
    max_pacing: float = 1.0
    proxy: Optional[ProxyConfig] = None
    post_navigation_delay: Tuple[float, float] = (2.0, 3.0)
    human_delay: Tuple[float, float] = (0.5, 2.0)
    scroll_delay: Tuple[float, float] = (1.0, 2.0)
    settle_delay: float = 5.0
    between_targets_delay: Tuple[float, float] = (3.0, 5.0)
    max_scroll_rounds: int = 50
    gallery_selectors: Tuple[str, ...] = (
        ".product-image",
        ".image-gallery img",
        "[data-image]",
        ".main-image",
    )
    download_timeout: float = 30.0
    max_image_bytes: int = MAX_IMAGE_BYTES
    max_redirects: int = MAX_REDIRECTS
    download_headers: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_DOWNLOAD_HEADERS)
    )
    profile: CdnProfile = DEFAULT_PROFILE
