"""Utility helpers for filename normalization and URL handling."""

from __future__ import annotations

import os
import re
from typing import Optional
from urllib.parse import urlsplit

UNSAFE_FILENAME_PATTERN = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
WHITESPACE_PATTERN = re.compile(r"\s+")
REPEATED_SEPARATOR_PATTERN = re.compile(r"_+")
SIZE_SUFFIX_PATTERN = re.compile(
    r"_\d+x\d+q?\d*\.(jpg|jpeg|png|webp|gif)$", re.IGNORECASE
)
MAX_FILENAME_CHARS = 200
DEFAULT_EXTENSION = ".jpg"


def sanitize_filename(value: Optional[str], fallback: str = "unnamed") -> str:
    """Replace path-hostile characters so ``value`` is safe as a file name."""
    if not value:
        return fallback
    cleaned = UNSAFE_FILENAME_PATTERN.sub("_", value)
    cleaned = WHITESPACE_PATTERN.sub("_", cleaned)
    cleaned = REPEATED_SEPARATOR_PATTERN.sub("_", cleaned)
    cleaned = cleaned[:MAX_FILENAME_CHARS].strip()
    return cleaned or fallback


def image_extension(url: str) -> str:
    """Return the file extension for an image URL.

    Alibaba appends resize suffixes such as ``_960x960q80.jpg`` to an already
    complete file name; the suffix is dropped before the extension is read.
    """
    path = urlsplit(url).path
    path = SIZE_SUFFIX_PATTERN.sub(r".\1", path)
    extension = os.path.splitext(path)[1]
    if not extension or len(extension) > 5:
        return DEFAULT_EXTENSION
    return extension


def is_http_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)
