"""
listing_images.py — Collect property photo URLs from a listing page.

Page chrome (icons, buttons, shared assets) is filtered out; the remaining
thumbnails are rewritten to their large-size variants before de-duplication.
"""

from __future__ import annotations

import re
from typing import Final

from bs4 import BeautifulSoup


_SRC_ATTRS: Final[tuple[str, ...]] = ("src", "data-src", "data-lazy")

_BLOCKED_MARKERS: Final[tuple[str, ...]] = ("spacer", "icon", "logo", "common", "btn_", "arrow")
_HOST_MARKERS: Final[tuple[str, ...]] = ("suumo", "img0")
_CONTENT_MARKERS: Final[tuple[str, ...]] = ("/bukken/", "/chintai/", "/jnc/", "resize")

_RESIZE_RE: Final[re.Pattern[str]] = re.compile(r"/resize/\d+x\d+")
_LARGE_RESIZE: Final[str] = "/resize/640x480"


def _image_source(img) -> str:  # noqa: ANN001
    for attr in _SRC_ATTRS:
        val = img.get(attr)
        if val and str(val).strip():
            return str(val).strip()
    return ""


def is_listing_photo(url: str) -> bool:
    if not url:
        return False
    if any(m in url for m in _BLOCKED_MARKERS):
        return False
    if not any(m in url for m in _HOST_MARKERS):
        return False
    return any(m in url for m in _CONTENT_MARKERS)


def upgrade_image_size(url: str) -> str:
    """Rewrite thumbnail URLs to the large variant SUUMO serves from the same path."""
    out = url.replace("/s/", "/l/")
    out = out.replace("_s.", "_l.", 1)
    return _RESIZE_RE.sub(_LARGE_RESIZE, out, count=1)


def collect_image_urls(soup: BeautifulSoup) -> list[str]:
    images: list[str] = []
    seen: set[str] = set()
    for img in soup.find_all("img"):
        src = _image_source(img)
        if not is_listing_photo(src):
            continue
        large = upgrade_image_size(src)
        if large in seen:
            continue
        seen.add(large)
        images.append(large)

    # The page-level preview image leads the gallery.
    og = soup.select_one('meta[property="og:image"]')
    og_url = str(og.get("content") or "").strip() if og else ""
    if og_url:
        if og_url in seen:
            images.remove(og_url)
        images.insert(0, og_url)
    return images
