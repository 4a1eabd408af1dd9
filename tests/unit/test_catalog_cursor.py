import pytest
from cms_engine.services.catalog import MAX_CURSOR_OFFSET, InvalidCursorError, clamp_limit, encode_cursor, parse_cursor


def test_missing_cursor_starts_at_first_page():
  assert parse_cursor(None) == 0
  assert parse_cursor("") == 0


def test_cursor_round_trips_offset():
  assert parse_cursor(encode_cursor(20)) == 20


@pytest.mark.parametrize("cursor", ["abc", "-1", "1.5", " 3", "\u00b2"])
def test_malformed_cursor_is_rejected(cursor):
  with pytest.raises(InvalidCursorError):
    parse_cursor(cursor)


def test_cursor_beyond_store_range_is_rejected():
  assert parse_cursor(str(MAX_CURSOR_OFFSET)) == MAX_CURSOR_OFFSET
  with pytest.raises(InvalidCursorError):
    parse_cursor(str(MAX_CURSOR_OFFSET + 1))
  with pytest.raises(InvalidCursorError):
    parse_cursor("9" * 23)


def test_limit_is_clamped():
  assert clamp_limit(None, default=10, maximum=50) == 10
  assert clamp_limit(500, default=10, maximum=50) == 50
  assert clamp_limit(0, default=10, maximum=50) == 1
  assert clamp_limit(7, default=10, maximum=50) == 7
