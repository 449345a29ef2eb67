"""Alibaba product image scraper."""

__version__ = "0.1.0"
