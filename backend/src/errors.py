"""
errors.py — Failure taxonomy shared by the extraction and crawl layers.

None of these escape the public entry points (parse_listing_html,
search_parking_near*); they are raised internally and converted to the
documented empty/zero sentinel at the boundary.
"""

from __future__ import annotations


class ScrapeError(Exception):
    pass


class NotFoundError(ScrapeError):
    """An expected link, field or pattern is absent."""


class UnparseableError(ScrapeError):
    """A fragment matched but does not convert to the expected shape."""


class TransportError(ScrapeError):
    """Fetch failed, returned a non-success status, or hit a bot challenge."""


class InputValidationError(ValueError):
    pass
