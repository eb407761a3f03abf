"""
http_fetch.py — Single-shot GET helpers for listing pages, crawl pages and JSON lookups.

Every failure surfaces as TransportError so callers can degrade uniformly.
No retries: a failed fetch is reported once and the caller decides what to zero out.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from backend.src.errors import TransportError
from backend.src.settings import get_settings


logger = logging.getLogger(__name__)

_ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def _decode_best_effort(raw: bytes, charset_hint: str | None) -> str:
    encs: list[str] = []
    if charset_hint:
        encs.append(str(charset_hint).strip())
    encs.extend(["utf-8", "shift_jis", "cp932", "euc_jp"])

    best_text = None
    best_repl = None
    for enc in encs:
        try:
            text = raw.decode(enc, errors="replace")
        except LookupError:
            continue
        repl = text.count("\ufffd")
        if best_repl is None or repl < best_repl:
            best_text = text
            best_repl = repl
            if repl == 0:
                break
    return best_text or raw.decode("utf-8", errors="replace")


def _detect_waf_challenge(html: str) -> bool:
    h = (html or "").lower()
    return ("token.awswaf.com" in h) or ("challenge-container" in h) or ("awswafintegration" in h)


def _headers(user_agent: str | None, accept: str) -> dict[str, str]:
    return {
        "User-Agent": user_agent or get_settings().service_user_agent,
        "Accept": accept,
        "Accept-Language": "ja,en;q=0.9",
    }


def fetch_text(url: str, *, user_agent: str | None = None, timeout: float | None = None) -> str:
    """GET an HTML page and return its decoded body."""
    timeout = get_settings().fetch_timeout_s if timeout is None else timeout
    try:
        resp = requests.get(url, headers=_headers(user_agent, _ACCEPT_HTML), timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(f"Fetch failed {url}: {e}") from e
    if not resp.ok:
        raise TransportError(f"Fetch failed {url}: HTTP {resp.status_code}")

    # requests falls back to ISO-8859-1 for text/* without a charset; that guess is useless here.
    charset = resp.encoding if "charset" in (resp.headers.get("Content-Type") or "").lower() else None
    html = _decode_best_effort(resp.content, charset)
    if _detect_waf_challenge(html):
        raise TransportError(f"{url} returned a WAF/JS challenge page (bot detection)")
    logger.debug("fetched %s (%d chars)", url, len(html))
    return html


def fetch_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    user_agent: str | None = None,
    timeout: float | None = None,
) -> Any:
    timeout = get_settings().fetch_timeout_s if timeout is None else timeout
    try:
        resp = requests.get(url, params=params, headers=_headers(user_agent, "application/json"), timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(f"Fetch failed {url}: {e}") from e
    if not resp.ok:
        raise TransportError(f"Fetch failed {url}: HTTP {resp.status_code}")
    try:
        return resp.json()
    except ValueError as e:
        raise TransportError(f"{url} returned a non-JSON body") from e
