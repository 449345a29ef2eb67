"""Browser sessions used by the crawler."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Response,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import DEFAULT_USER_AGENT, CrawlConfig
from .errors import NavigationTimeout

logger = logging.getLogger("ali_image_scraper")

ResponseHandler = Callable[[str, str, Callable[[], Awaitable[str]]], Awaitable[None]]

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


class BrowserSession(ABC):
    """The slice of browser automation the crawler relies on.

    Response handlers are called as ``handler(url, content_type, read_body)``
    where ``read_body`` is a coroutine function returning the body text.
    """

    async def start(self) -> None:
        """Launch the browser; a no-op for sessions that need no setup."""

    async def close(self) -> None:
        """Release browser resources."""

    @property
    @abstractmethod
    def url(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def navigate(self, url: str, wait_until: str, timeout: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_response_handler(self, handler: ResponseHandler) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_response_handler(self, handler: ResponseHandler) -> None:
        raise NotImplementedError

    @abstractmethod
    async def content(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def scroll_to_bottom(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def scroll_by(self, pixels: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def page_height(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def hover(self, selector: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def move_mouse(self, x: int, y: int) -> None:
        raise NotImplementedError


class PlaywrightSession(BrowserSession):
    """Chromium page driven through Playwright's async API."""

    def __init__(self, config: CrawlConfig) -> None:
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._listeners: Dict[ResponseHandler, Callable[[Response], Awaitable[None]]] = {}

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session has not been started")
        return self._page

    @property
    def url(self) -> str:
        return self.page.url

    async def start(self) -> None:
        logger.info("Initializing browser...")
        self._playwright = await async_playwright().start()
        launch_options = {"headless": self.config.headless, "args": list(LAUNCH_ARGS)}
        if self.config.proxy:
            launch_options["proxy"] = self.config.proxy.as_playwright()
            logger.info("Using proxy %s", self.config.proxy.server)
        self._browser = await self._playwright.chromium.launch(**launch_options)
        self._context = await self._browser.new_context(
            viewport={"width": 1920, "height": 1080},
            user_agent=DEFAULT_USER_AGENT,
            locale="en-US",
            timezone_id="America/New_York",
        )
        self._page = await self._context.new_page()
        logger.info("Browser initialized")

    async def close(self) -> None:
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
                logger.info("Browser closed")
        except PlaywrightError as exc:
            logger.warning("Error closing browser: %s", exc)
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._page = self._context = self._browser = self._playwright = None

    async def navigate(self, url: str, wait_until: str, timeout: float) -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(
                f"Timed out waiting for {wait_until} on {url}"
            ) from exc

    def add_response_handler(self, handler: ResponseHandler) -> None:
        async def _listener(response: Response) -> None:
            content_type = response.headers.get("content-type", "")
            await handler(response.url, content_type, response.text)

        self._listeners[handler] = _listener
        self.page.on("response", _listener)

    def remove_response_handler(self, handler: ResponseHandler) -> None:
        listener = self._listeners.pop(handler, None)
        if listener is not None:
            self.page.remove_listener("response", listener)

    async def content(self) -> str:
        return await self.page.content()

    async def scroll_to_bottom(self) -> None:
        await self.page.evaluate(
            "() => window.scrollTo({top: document.body.scrollHeight, behavior: 'smooth'})"
        )

    async def scroll_by(self, pixels: int) -> None:
        await self.page.evaluate("(amount) => window.scrollBy(0, amount)", pixels)

    async def page_height(self) -> int:
        return int(await self.page.evaluate("() => document.body.scrollHeight"))

    async def hover(self, selector: str) -> bool:
        try:
            element = await self.page.query_selector(selector)
            if element is None:
                return False
            await element.hover(timeout=5000)
            return True
        except PlaywrightError as exc:
            logger.debug("Could not hover element %s: %s", selector, exc)
            return False

    async def move_mouse(self, x: int, y: int) -> None:
        await self.page.mouse.move(x, y)
