"""MCP server exposing the product image scraper as a tool."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from .config import CrawlConfig
from .crawler import run_crawler
from .models import CrawlResult

logger = logging.getLogger("ali_image_scraper.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="ali-image-scraper")


def format_results(results: List[CrawlResult]) -> str:
    """Render crawl results as a short Markdown report."""
    lines: List[str] = []
    for result in results:
        lines.append(f"## {result.display_name or result.url}")
        lines.append(f"- source: {result.url}")
        if result.target_id:
            lines.append(f"- product id: {result.target_id}")
        if not result.success:
            lines.append(f"- no images saved ({result.error or 'none found'})")
            continue
        lines.append(f"- saved {len(result.images)} of {result.total_found} images")
        lines.extend(f"  - {path}" for path in result.images)
        lines.extend(f"  - failed: {item.url} ({item.error})" for item in result.failed)
    return "\n".join(lines) + "\n"


@mcp.tool()
async def scrape_product_images(url: str, output_dir: Optional[str] = None) -> str:
    """Crawl an Alibaba product page and download its product images."""
    config = CrawlConfig(
        output_root=Path(output_dir or "downloads").expanduser().resolve(),
        headless=True,
    )
    results = await run_crawler([url], config)
    return format_results(results)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
