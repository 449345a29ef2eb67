"""Command-line entry point for the product image scraper."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from dotenv import load_dotenv

from .config import CrawlConfig, ProxyConfig
from .crawler import run_crawler

logger = logging.getLogger("ali_image_scraper.cli")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Crawl Alibaba product pages with Playwright and download the "
            "product images discovered in their network traffic."
        ),
    )
    parser.add_argument(
        "urls",
        nargs="*",
        help="Product page URLs; prompts for one when none are given",
    )
    parser.add_argument(
        "--output",
        default="downloads",
        type=Path,
        help="Directory where images are written (one folder per product)",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run the browser without a visible window",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Navigation timeout in seconds",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=3,
        help="Maximum number of attempts per product page",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=5.0,
        help="Base delay in seconds between attempts; grows with each attempt",
    )
    parser.add_argument(
        "--min-pacing",
        type=float,
        default=0.5,
        help="Minimum pause in seconds between image downloads",
    )
    parser.add_argument(
        "--max-pacing",
        type=float,
        default=1.0,
        help="Maximum pause in seconds between image downloads",
    )
    parser.add_argument(
        "--settle",
        type=float,
        default=5.0,
        help="Seconds to wait after scrolling for late network responses",
    )
    parser.add_argument(
        "--proxy",
        default=None,
        help="Proxy server (defaults to $PROXY_URL)",
    )
    parser.add_argument("--proxy-username", default=None, help="Proxy user name")
    parser.add_argument("--proxy-password", default=None, help="Proxy password")
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also append log records to this file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(argv)
    if args.min_pacing > args.max_pacing:
        parser.error("--min-pacing must not exceed --max-pacing")
    return args


def _configure_logging(args: argparse.Namespace) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if args.log_file:
        args.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(args.log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )


def _resolve_proxy(args: argparse.Namespace) -> Optional[ProxyConfig]:
    if args.proxy:
        return ProxyConfig(
            server=args.proxy,
            username=args.proxy_username,
            password=args.proxy_password,
        )
    return ProxyConfig.from_env()


def build_config(args: argparse.Namespace) -> CrawlConfig:
    return CrawlConfig(
        output_root=Path(args.output).resolve(),
        headless=args.headless,
        navigation_timeout=args.timeout,
        retry_attempts=args.retries,
        retry_base_delay=args.retry_delay,
        min_pacing=args.min_pacing,
        max_pacing=args.max_pacing,
        settle_delay=args.settle,
        proxy=_resolve_proxy(args),
    )


def _prompt_for_url(prompt: Optional[Callable[[str], str]] = None) -> List[str]:
    prompt = prompt or input
    logger.warning("No product URLs provided.")
    logger.info(
        "Example: ali-image-scraper https://www.alibaba.com/product-detail/1234567890.html"
    )
    try:
        url = prompt("Enter Alibaba product URL: ").strip()
    except EOFError:
        url = ""
    return [url] if url else []


def main(argv: Sequence[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    _configure_logging(args)

    urls = list(args.urls) or _prompt_for_url()
    if not urls:
        logger.info("Nothing to do")
        return

    config = build_config(args)
    overall_start = time.perf_counter()
    try:
        results = asyncio.run(run_crawler(urls, config))
    except Exception:  # pylint: disable=broad-except
        logger.exception("Fatal error")
        sys.exit(1)
    total_elapsed = time.perf_counter() - overall_start

    successes = sum(1 for result in results if result.success)
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        total_elapsed,
        successes,
        len(results),
        len(results) - successes,
    )
    for result in results:
        if result.success:
            logger.info(
                "%s -> %d/%d images saved under %s",
                result.url,
                len(result.images),
                result.total_found,
                config.output_root,
            )
        else:
            logger.info("%s -> no images (%s)", result.url, result.error or "none found")


if __name__ == "__main__":
    main()
