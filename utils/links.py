"""
Pagination Helpers - Link header parsing and timestamp formatting

The audit log API pages with an RFC 5988 ``Link`` header that carries a
``self`` entry and, while more data exists, a ``next`` entry whose URL holds
the ``after`` cursor:

    <https://example.okta.com/api/v1/logs?limit=1000>; rel="self",
    <https://example.okta.com/api/v1/logs?after=1234&limit=1000>; rel="next"

The entries may arrive in a single header or as repeated headers.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Iterable
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)

CURSOR_PARAM = "after"

_LINK_ENTRY = re.compile(r"<([^>]*)>\s*;\s*rel\s*=\s*\"?([^\";,]+)\"?")


def parse_link_header(values: Iterable[str]) -> dict[str, str]:
    """
    Parse one or more Link header values into a rel -> url mapping.

    Args:
        values: Raw header values (repeated headers are allowed)

    Returns:
        Mapping of relation name to URL; malformed entries are skipped
    """
    links: dict[str, str] = {}
    for value in values:
        if not value:
            continue
        for match in _LINK_ENTRY.finditer(value):
            url, rel = match.group(1).strip(), match.group(2).strip().lower()
            # A single entry may declare several space-separated relations
            for name in rel.split():
                links.setdefault(name, url)
    return links


def next_cursor(values: Iterable[str], param: str = CURSOR_PARAM) -> str:
    """
    Extract the next-page cursor from Link header values.

    A missing ``next`` entry, an unparsable URL, or a ``next`` URL without the
    cursor parameter all mean the final page has been reached.

    Returns:
        The cursor, or "" when there are no more pages
    """
    next_url = parse_link_header(values).get("next")
    if not next_url:
        return ""

    logger.debug("Next URL: %s", next_url)

    try:
        query = parse_qs(urlsplit(next_url).query)
    except ValueError:
        logger.debug("Unparsable next link, treating as last page: %s", next_url)
        return ""

    cursor = query.get(param)
    if not cursor or not cursor[0]:
        return ""
    return cursor[0]


def format_rfc3339(value: datetime) -> str:
    """Format a datetime as second-precision RFC3339 in UTC (2024-01-01T00:00:00Z)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)
