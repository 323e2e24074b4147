from __future__ import annotations

import fnmatch
import re
from typing import Any

_MEDIA_CODE_RE = re.compile(r"instagram\.com/(?:p|reel)/([A-Za-z0-9_-]+)")

EMBED_SUFFIX = "/embed/"
_EMBED_SEGMENT_RE = re.compile(r"/embed(?:/|$)")

# URL patterns the signing backend issues zkFetch tokens for.
ALLOWED_URL_PATTERNS: tuple[str, ...] = (
    "https://www.instagram.com/p/*",
    "https://www.instagram.com/reel/*",
)


def extract_media_code(raw_url: Any) -> str | None:
    """
    Return the media code of a post or reel URL, or None when there is none.

    https://instagram.com/p/ABC123/ -> "ABC123"
    https://www.instagram.com/reel/XYZ789 -> "XYZ789"
    """
    if not isinstance(raw_url, str):
        return None
    match = _MEDIA_CODE_RE.search(raw_url)
    return match.group(1) if match else None


def normalize_post_url(raw_url: str) -> str:
    """
    Normalize a post URL to the embed page fetched through zkFetch.

    Idempotent: an URL that already points at the embed page only gets its
    trailing slash fixed.
    """
    url = (raw_url or "").strip()

    if url.endswith("/"):
        url = url[:-1]

    if not _EMBED_SEGMENT_RE.search(url):
        return url + EMBED_SUFFIX
    if not url.endswith("/"):
        url = url + "/"
    return url


def post_url_for_media_code(media_code: str) -> str:
    code = (media_code or "").strip()
    if not code:
        raise ValueError("media_code must be non-empty")
    return f"https://www.instagram.com/p/{code}/"


def is_allowed_post_url(url: str) -> bool:
    value = (url or "").strip()
    if not value:
        return False
    return any(fnmatch.fnmatchcase(value, pattern) for pattern in ALLOWED_URL_PATTERNS)
