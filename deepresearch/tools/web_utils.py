from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def clean_content(text: str, max_length: int = 50000) -> str:
    """Collapse whitespace and trim to max_length."""
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return text


def extract_domain(url: str) -> str:
    """Host part of a URL without a leading www."""
    try:
        netloc = urlparse(url).netloc.lower()
    except ValueError:
        return url
    if netloc.startswith("www."):
        netloc = netloc[4:]
    return netloc.split(":")[0]


def word_count(text: str) -> int:
    return len(text.split())
