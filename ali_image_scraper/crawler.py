"""High-level orchestration for crawling product pages and saving images."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import List, Optional, Sequence, Tuple

from .browser import BrowserSession, PlaywrightSession
from .config import CrawlConfig
from .content import extract_product_info
from .errors import NavigationTimeout, RetryExhausted
from .extraction import ImageUrlExtractor
from .images import ImageDownloader, Sleep
from .interceptor import ResponseInterceptor
from .models import UNKNOWN_TARGET, CrawlResult, CrawlState
from .ranking import fallback_cdn_urls, rank_urls

logger = logging.getLogger("ali_image_scraper")


class ProductCrawler:
    """Drives one browser session through a sequence of product pages.

    Images are discovered from network traffic rather than the DOM: a
    response handler feeds every JSON/XHR payload into the extractor while
    the crawler scrolls the page to trigger lazy loading.  Extraction is
    therefore asynchronous relative to scrolling; the settle delay before
    URL selection gives in-flight responses a chance to land but does not
    guarantee it.
    """

    def __init__(
        self,
        session: BrowserSession,
        config: CrawlConfig,
        extractor: Optional[ImageUrlExtractor] = None,
        downloader: Optional[ImageDownloader] = None,
        sleep: Optional[Sleep] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.extractor = extractor or ImageUrlExtractor(config.profile)
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self.downloader = downloader or ImageDownloader(
            config, sleep=self._sleep, rng=self._rng
        )
        self.interceptor = ResponseInterceptor(self.extractor)
        self.state: Optional[CrawlState] = None

    def _set_state(self, state: CrawlState) -> None:
        logger.debug("State %s -> %s", self.state.value if self.state else None, state.value)
        self.state = state

    async def _pause(self, bounds: Tuple[float, float]) -> None:
        low, high = bounds
        await self._sleep(self._rng.uniform(low, high))

    async def _navigate(self, url: str) -> None:
        timeout = self.config.navigation_timeout
        try:
            await self.session.navigate(url, wait_until="networkidle", timeout=timeout)
        except NavigationTimeout:
            logger.warning("networkidle timeout, trying domcontentloaded for %s", url)
            await self.session.navigate(url, wait_until="domcontentloaded", timeout=timeout)

    async def _random_mouse_move(self) -> None:
        x = max(100, min(800, 400 + self._rng.randint(-100, 99)))
        y = max(100, min(600, 300 + self._rng.randint(-100, 99)))
        await self.session.move_mouse(x, y)
        await self._pause(self.config.human_delay)

    async def _simulate_presence(self) -> None:
        await self._random_mouse_move()
        await self._pause(self.config.human_delay)
        await self._random_mouse_move()

    async def _trigger_lazy_load(self) -> int:
        """Scroll until the page height stops changing; return rounds used."""
        previous = 0
        current = await self.session.page_height()
        rounds = 0
        while current != previous:
            if rounds >= self.config.max_scroll_rounds:
                logger.warning(
                    "Page height still changing after %d scroll rounds; moving on",
                    rounds,
                )
                break
            previous = current
            await self.session.scroll_to_bottom()
            await self._pause(self.config.human_delay)
            await self.session.scroll_by(self._rng.randint(200, 700))
            await self._pause(self.config.scroll_delay)
            current = await self.session.page_height()
            for selector in self.config.gallery_selectors:
                if await self.session.hover(selector):
                    await self._pause(self.config.human_delay)
            rounds += 1
        logger.debug("Lazy loading settled after %d round(s) at height %d", rounds, current)
        return rounds

    def select_image_urls(self, target_id: str) -> List[str]:
        """Pick the URLs to retrieve, degrading through the fallbacks."""
        if target_id != UNKNOWN_TARGET:
            urls = self.extractor.get_target_urls(target_id)
            if urls:
                return urls
            logger.warning("No responses attributed to product %s; ranking all URLs", target_id)

        all_urls = self.extractor.get_all_urls()
        ranked = rank_urls(all_urls, self.config.profile)
        if ranked:
            return ranked
        if all_urls:
            logger.warning("Ranking kept nothing; falling back to any CDN URL")
        return fallback_cdn_urls(all_urls, self.config.profile)

    async def _attempt(self, url: str) -> CrawlResult:
        self._set_state(CrawlState.NAVIGATING)
        await self._navigate(url)
        await self._pause(self.config.post_navigation_delay)

        self._set_state(CrawlState.EXTRACTING_INFO)
        info = extract_product_info(await self.session.content(), self.session.url)
        logger.info("Product info extracted: id=%s name=%s", info.target_id, info.display_name)

        self._set_state(CrawlState.SIMULATING_PRESENCE)
        await self._simulate_presence()

        self._set_state(CrawlState.LAZY_LOAD_SCROLLING)
        await self._trigger_lazy_load()

        self._set_state(CrawlState.SETTLING)
        await self._sleep(self.config.settle_delay)

        self._set_state(CrawlState.SELECTING_URLS)
        image_urls = self.select_image_urls(info.target_id)
        if not image_urls:
            logger.warning("No images found in network responses for %s", url)
            self._set_state(CrawlState.DONE)
            return CrawlResult(
                success=False,
                url=url,
                target_id=info.target_id,
                display_name=info.display_name,
            )
        logger.info("Found %d images for %s", len(image_urls), info.target_id)

        self._set_state(CrawlState.RETRIEVING)
        batch = await self.downloader.download_all(
            image_urls, info.target_id, info.display_name
        )
        self._set_state(CrawlState.DONE)
        return CrawlResult(
            success=True,
            url=url,
            target_id=info.target_id,
            display_name=info.display_name,
            images=batch.succeeded,
            total_found=len(image_urls),
            failed=batch.failed,
        )

    async def scrape_product(self, url: str) -> CrawlResult:
        """Crawl one product page, retrying the whole attempt on failure."""
        attempts = max(1, self.config.retry_attempts)
        last_error: Optional[BaseException] = None
        self.session.add_response_handler(self.interceptor)
        try:
            for attempt in range(1, attempts + 1):
                if attempt > 1:
                    delay = self.config.retry_base_delay * (attempt - 1)
                    self._set_state(CrawlState.RETRYING)
                    logger.info(
                        "Retrying %s in %.1fs (%d/%d)", url, delay, attempt, attempts
                    )
                    await self._sleep(delay)
                logger.info("Scraping product page %s (attempt %d)", url, attempt)
                try:
                    return await self._attempt(url)
                except Exception as exc:  # pylint: disable=broad-except
                    last_error = exc
                    logger.error("Error scraping %s: %s", url, exc, exc_info=True)
        finally:
            self.session.remove_response_handler(self.interceptor)

        self._set_state(CrawlState.FAILED)
        raise RetryExhausted(url, attempts, last_error) from last_error

    async def scrape_many(self, urls: Sequence[str]) -> List[CrawlResult]:
        """Crawl several products; one product failing does not stop the rest."""
        results: List[CrawlResult] = []
        for index, url in enumerate(urls):
            # Responses for the previous product must not leak into this one.
            self.extractor.clear()
            try:
                result = await self.scrape_product(url)
            except RetryExhausted as exc:
                logger.error("Failed to scrape product %s: %s", url, exc.last_error)
                result = CrawlResult.failure(url, str(exc.last_error))
            results.append(result)
            if index < len(urls) - 1:
                await self._pause(self.config.between_targets_delay)
        return results


async def run_crawler(
    urls: Sequence[str],
    config: CrawlConfig,
    session: Optional[BrowserSession] = None,
) -> List[CrawlResult]:
    """Start a browser, crawl each URL sequentially and close the browser.

    A single URL is crawled with :meth:`ProductCrawler.scrape_product`, so
    retry exhaustion propagates to the caller; several URLs run as a batch
    that records per-product failures instead.
    """
    session = session or PlaywrightSession(config)
    await session.start()
    try:
        crawler = ProductCrawler(session, config)
        if len(urls) == 1:
            return [await crawler.scrape_product(urls[0])]
        results = await crawler.scrape_many(urls)
    finally:
        await session.close()

    logger.info(
        "All scraping complete: %d/%d products succeeded",
        sum(1 for result in results if result.success),
        len(results),
    )
    return results
