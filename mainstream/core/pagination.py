"""
Mainstream - Cursor Pagination
==============================

Composite ``timestamp::id`` cursors for time-ordered feeds.

Every feed is ordered by ``created_at DESC, id DESC``. The cursor records
the last item of a page; the next page starts strictly after it in that
ordering, so rows inserted while a user scrolls never shift the window.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import and_, or_

from mainstream.core.database import as_utc

logger = structlog.get_logger()

T = TypeVar("T")


class PageSizes:
    """Page sizes shared by every paginated endpoint."""
    SSR_INITIAL = 50
    CLIENT_PAGE = 20
    MAX_LIMIT = 50
    COMMENTS_PAGE = 50
    NOTIFICATIONS_PAGE = 20
    SEARCH_PAGE = 20


UUID_V4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
ISO_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{1,6})?(?:Z|[+-]\d{2}:\d{2})$"
)


@dataclass(frozen=True)
class Cursor:
    """A validated cursor position."""
    timestamp: datetime
    id: Optional[UUID] = None


# ==========================================================================
# Validation
# ==========================================================================

def is_valid_uuid(value: str) -> bool:
    return bool(UUID_V4_RE.match(value))


def parse_iso_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp that carries an explicit zone, else None."""
    if not ISO_TIMESTAMP_RE.match(value):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_limit(
    value: Any,
    default: int = PageSizes.CLIENT_PAGE,
    maximum: int = PageSizes.MAX_LIMIT,
) -> int:
    """Coerce a raw limit parameter into ``[1, maximum]``."""
    if value is None or value == "":
        return default
    try:
        requested = int(value)
    except (TypeError, ValueError):
        return default
    return min(max(1, requested), maximum)


# ==========================================================================
# Cursor Encoding
# ==========================================================================

def format_timestamp(value: datetime) -> str:
    """Render a timestamp in UTC with a ``Z`` suffix."""
    return as_utc(value).isoformat().replace("+00:00", "Z")


def build_cursor(created_at: datetime, item_id: UUID) -> str:
    return f"{format_timestamp(created_at)}::{item_id}"


def _split_pair(timestamp_part: str, id_part: str) -> Optional[Cursor]:
    timestamp = parse_iso_timestamp(timestamp_part)
    if timestamp is None or not is_valid_uuid(id_part):
        return None
    return Cursor(timestamp=as_utc(timestamp), id=UUID(id_part))


def parse_cursor(raw: Optional[str]) -> Optional[Cursor]:
    """
    Parse and validate a cursor from user input.

    Accepted forms, tried in order:
    - ``<timestamp>::<uuid>``
    - ``<timestamp>:<uuid>`` (older single-colon cursors)
    - ``<timestamp>`` alone

    Anything that does not validate is treated as "no cursor".
    """
    if not raw:
        return None

    separator = raw.rfind("::")
    if separator > 0:
        cursor = _split_pair(raw[:separator], raw[separator + 2:])
        if cursor is None:
            logger.warning("invalid_cursor", cursor=raw)
        return cursor

    # ISO timestamps carry colons at positions 13 and 16
    colon = raw.rfind(":")
    if colon > 10:
        cursor = _split_pair(raw[:colon], raw[colon + 1:])
        if cursor is not None:
            return cursor

    timestamp = parse_iso_timestamp(raw)
    if timestamp is not None:
        return Cursor(timestamp=as_utc(timestamp))

    logger.warning("invalid_cursor", cursor=raw)
    return None


# ==========================================================================
# Query & Page Helpers
# ==========================================================================

def after_cursor(created_at_column, id_column, cursor: Optional[Cursor]):
    """SQL predicate selecting rows strictly after ``cursor`` in feed order."""
    if cursor is None:
        return None
    if cursor.id is None:
        return created_at_column < cursor.timestamp
    return or_(
        created_at_column < cursor.timestamp,
        and_(created_at_column == cursor.timestamp, id_column < cursor.id),
    )


def feed_sort_key(item: Any) -> tuple[datetime, str]:
    """Sort key matching ``created_at DESC, id DESC`` when used with reverse=True."""
    return as_utc(item.created_at), str(item.id)


@dataclass
class Page:
    """One page of a cursor-paginated feed."""
    items: list
    has_more: bool
    cursor: Optional[str]


def make_page(rows: Sequence[T], limit: int) -> Page:
    """
    Slice ``limit + 1`` fetched rows into a page.

    The extra row only signals that another page exists. The cursor is
    built from the last item only when ``has_more``; a final page carries
    None so clients stop paging.
    """
    has_more = len(rows) > limit
    items = list(rows[:limit])
    cursor = None
    if has_more and items:
        last = items[-1]
        cursor = build_cursor(last.created_at, last.id)
    return Page(items=items, has_more=has_more, cursor=cursor)
