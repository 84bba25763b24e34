"""
Mainstream - Cursor Pagination Tests
====================================
"""

from types import SimpleNamespace
from uuid import uuid4

from mainstream.core.pagination import (
    PageSizes,
    build_cursor,
    make_page,
    parse_cursor,
    parse_limit,
)
from tests.conftest import utc


class TestParseLimit:
    """Raw limit parameters are clamped, never rejected."""

    def test_missing_uses_default(self):
        assert parse_limit(None) == PageSizes.CLIENT_PAGE
        assert parse_limit("") == PageSizes.CLIENT_PAGE

    def test_non_numeric_uses_default(self):
        assert parse_limit("lots") == PageSizes.CLIENT_PAGE
        assert parse_limit("12.5", default=7) == 7

    def test_clamped_to_range(self):
        assert parse_limit("0") == 1
        assert parse_limit("-5") == 1
        assert parse_limit("500") == PageSizes.MAX_LIMIT
        assert parse_limit("500", maximum=100) == 100

    def test_valid_value_passes_through(self):
        assert parse_limit("7") == 7
        assert parse_limit(30) == 30


class TestParseCursor:
    """Cursor parsing accepts three shapes and ignores garbage."""

    def test_double_colon_cursor(self):
        item_id = uuid4()
        cursor = parse_cursor(f"2026-10-19T10:00:00Z::{item_id}")

        assert cursor is not None
        assert cursor.timestamp == utc(2026, 10, 19, 10, 0)
        assert cursor.id == item_id

    def test_single_colon_cursor(self):
        item_id = uuid4()
        cursor = parse_cursor(f"2026-10-19T10:00:00.250000Z:{item_id}")

        assert cursor is not None
        assert cursor.id == item_id
        assert cursor.timestamp.microsecond == 250000

    def test_timestamp_only_cursor(self):
        cursor = parse_cursor("2026-10-19T10:00:00+02:00")

        assert cursor is not None
        assert cursor.id is None
        assert cursor.timestamp == utc(2026, 10, 19, 8, 0)

    def test_invalid_cursors_are_ignored(self):
        assert parse_cursor(None) is None
        assert parse_cursor("") is None
        assert parse_cursor("yesterday") is None
        assert parse_cursor("2026-10-19T10:00:00::not-a-uuid") is None
        # Zone-less timestamps are ambiguous
        assert parse_cursor("2026-10-19T10:00:00") is None

    def test_non_v4_uuid_rejected(self):
        assert parse_cursor("2026-10-19T10:00:00Z::00000000-0000-1000-8000-000000000000") is None


class TestCursorEncoding:

    def test_build_cursor_uses_utc_z_suffix(self):
        item_id = uuid4()
        cursor = build_cursor(utc(2026, 10, 19, 10, 30), item_id)

        assert cursor == f"2026-10-19T10:30:00Z::{item_id}"

    def test_naive_timestamps_treated_as_utc(self):
        item_id = uuid4()
        naive = utc(2026, 10, 19, 10, 30).replace(tzinfo=None)

        assert build_cursor(naive, item_id).startswith("2026-10-19T10:30:00Z")

    def test_built_cursor_parses_back(self):
        item_id = uuid4()
        created_at = utc(2026, 10, 19, 10, 30, 15, 123456)
        cursor = parse_cursor(build_cursor(created_at, item_id))

        assert cursor.timestamp == created_at
        assert cursor.id == item_id


class TestMakePage:
    """Pages are cut from ``limit + 1`` rows."""

    def _rows(self, count: int) -> list:
        return [
            SimpleNamespace(id=uuid4(), created_at=utc(2026, 10, 19, 12 - i))
            for i in range(count)
        ]

    def test_extra_row_signals_more(self):
        rows = self._rows(4)
        page = make_page(rows, 3)

        assert page.has_more is True
        assert page.items == rows[:3]
        assert page.cursor == build_cursor(rows[2].created_at, rows[2].id)

    def test_last_page_has_no_cursor(self):
        rows = self._rows(3)
        page = make_page(rows, 3)

        assert page.has_more is False
        assert page.cursor is None
        assert len(page.items) == 3

    def test_empty(self):
        page = make_page([], 20)
        assert page.items == []
        assert page.has_more is False
