from datetime import datetime, timezone

import pytest

from dbreplay.mysqltime import (
    append_microsecs,
    b_to_i,
    format_binary_date_time,
    format_binary_time,
    format_date_time,
    parse_binary_date_time,
    parse_byte_2digits,
    parse_byte_nano_sec,
    parse_byte_year,
    parse_date_time,
)

UTC = timezone.utc
DST = b"2021-11-24 10:10:00"
SRC = b"123456"


def test_b_to_i_succ():
    assert b_to_i(ord("5")) == 5


@pytest.mark.parametrize("char", [" ", "A"])
def test_b_to_i_fail(char):
    with pytest.raises(ValueError, match=r"not \[0-9\]"):
        b_to_i(ord(char))


def test_parse_byte_year_succ():
    assert parse_byte_year(b"2021") == 2021


def test_parse_byte_year_fail():
    with pytest.raises(ValueError):
        parse_byte_year(b"2A21")


def test_parse_byte_2digits_succ():
    assert parse_byte_2digits(ord("1"), ord("2")) == 12


@pytest.mark.parametrize("b1,b2", [("A", "2"), ("1", "A")])
def test_parse_byte_2digits_fail(b1, b2):
    with pytest.raises(ValueError):
        parse_byte_2digits(ord(b1), ord(b2))


def test_parse_byte_nano_sec_succ():
    assert parse_byte_nano_sec(b"123456") == 123456000


def test_parse_byte_nano_sec_short():
    assert parse_byte_nano_sec(b"123") == 123000000


def test_parse_byte_nano_sec_fail():
    with pytest.raises(ValueError):
        parse_byte_nano_sec(b"12A456")


def test_parse_date_time():
    ts = parse_date_time(b"2021-11-24 09:53:53.000000", UTC)
    assert ts == datetime(2021, 11, 24, 9, 53, 53, tzinfo=UTC)
    assert str(ts)[:19] == "2021-11-24 09:53:53"


def test_parse_date_time_fraction():
    ts = parse_date_time(b"2021-11-24 09:53:53.123", UTC)
    assert ts.microsecond == 123000


def test_parse_date_time_date_only():
    assert parse_date_time(b"2021-11-24", UTC) == datetime(2021, 11, 24, tzinfo=UTC)


def test_parse_date_time_zero_value():
    assert parse_date_time(b"0000-00-00 00:00:00", UTC) is None


def test_parse_date_time_zero_parts_become_one():
    assert parse_date_time(b"0000-00-05", UTC) == datetime(1, 1, 5, tzinfo=UTC)


def test_parse_date_time_month_overflow_carries():
    assert parse_date_time(b"2021-13-01", UTC) == datetime(2022, 1, 1, tzinfo=UTC)


def test_parse_date_time_bad_length():
    with pytest.raises(ValueError, match="invalid time bytes"):
        parse_date_time(b"2021", UTC)


def test_parse_date_time_bad_separator():
    with pytest.raises(ValueError, match="bad value for field: `/`"):
        parse_date_time(b"2021/11/24", UTC)


def test_parse_date_time_bad_digit():
    with pytest.raises(ValueError):
        parse_date_time(b"2021-11-24 0A:53:53", UTC)


@pytest.mark.parametrize(
    "decimals,expected",
    [
        (0, b""),
        (1, b".2"),
        (2, b".25"),
        (3, b".250"),
        (4, b".2504"),
        (5, b".25041"),
        (6, b".250417"),
    ],
)
def test_append_microsecs(decimals, expected):
    assert append_microsecs(DST, SRC, decimals) == DST + expected


def test_append_microsecs_src_len_zero():
    assert append_microsecs(DST, b"", 6) == DST + b".000000"


def test_format_date_time_with_fraction():
    d = format_date_time(datetime(2021, 11, 30, 21, 45, 0, 1, tzinfo=UTC))
    assert d == "2021-11-30 21:45:00.000001"
    assert len(d) == 26


def test_format_date_time_trims_trailing_zeros():
    assert format_date_time(datetime(2021, 11, 30, 21, 45, 0, 500000)) == "2021-11-30 21:45:00.5"


def test_format_date_time_no_fraction():
    assert format_date_time(datetime(2021, 11, 30, 21, 45, 0)) == "2021-11-30 21:45:00"


def test_format_date_time_midnight():
    assert format_date_time(datetime(2021, 11, 30)) == "2021-11-30"


def test_format_date_time_round_trip():
    t = datetime(2021, 11, 30, 21, 45, 7, 123456, tzinfo=UTC)
    assert parse_date_time(format_date_time(t), UTC) == t


def _binary(year, *rest):
    return year.to_bytes(2, "little") + bytes(rest)


def test_parse_binary_date_time_case_0():
    assert parse_binary_date_time(0, b"", UTC) is None


def test_parse_binary_date_time_case_4_day_zero_normalised():
    data = _binary(2021, 11, 0) + bytes(7)
    assert parse_binary_date_time(4, data, UTC) == datetime(2021, 10, 31, tzinfo=UTC)


def test_parse_binary_date_time_case_7():
    data = _binary(2021, 11, 24, 15, 5, 30) + bytes(3)
    assert parse_binary_date_time(7, data, UTC) == datetime(2021, 11, 24, 15, 5, 30, tzinfo=UTC)


def test_parse_binary_date_time_case_11():
    data = _binary(2021, 11, 24, 15, 5, 30) + (998990).to_bytes(4, "little") + bytes(9)
    assert parse_binary_date_time(11, data, UTC) == datetime(
        2021, 11, 24, 15, 5, 30, 998990, tzinfo=UTC
    )


def test_parse_binary_date_time_case_12():
    data = _binary(2021, 11, 24, 15, 5, 30) + (998990).to_bytes(4, "little") + bytes(9)
    with pytest.raises(ValueError, match="invalid DATETIME packet length 12"):
        parse_binary_date_time(12, data, UTC)


def test_format_binary_date_time_date():
    assert format_binary_date_time(_binary(2021, 11, 24), 10) == b"2021-11-24"


def test_format_binary_date_time_date_only_padded():
    assert format_binary_date_time(_binary(2021, 11, 24), 19) == b"2021-11-24 00:00:00"


def test_format_binary_date_time_datetime():
    src = _binary(2021, 11, 24, 15, 5, 30)
    assert format_binary_date_time(src, 19) == b"2021-11-24 15:05:30"
    assert format_binary_date_time(src, 26) == b"2021-11-24 15:05:30.000000"


def test_format_binary_date_time_with_micros():
    src = _binary(2021, 11, 24, 15, 5, 30) + (123456).to_bytes(4, "little")
    assert format_binary_date_time(src, 26) == b"2021-11-24 15:05:30.123456"
    assert format_binary_date_time(src, 23) == b"2021-11-24 15:05:30.123"


def test_format_binary_date_time_zero():
    assert format_binary_date_time(b"", 19) == b"0000-00-00 00:00:00"


@pytest.mark.parametrize("length,message", [(5, "illegal DATE length 5"), (20, "illegal DATETIME length 20")])
def test_format_binary_date_time_bad_length(length, message):
    with pytest.raises(ValueError, match=message):
        format_binary_date_time(_binary(2021, 11, 24), length)


def test_format_binary_date_time_bad_packet_length():
    with pytest.raises(ValueError, match="illegal DATETIME packet length 5"):
        format_binary_date_time(_binary(2021, 11, 24, 1), 19)


def test_format_binary_time():
    src = bytes([0, 0, 0, 0, 0, 10, 20, 30])
    assert format_binary_time(src, 8) == b"10:20:30"


def test_format_binary_time_negative_many_hours():
    src = bytes([1, 5, 0, 0, 0, 2, 3, 4])
    assert format_binary_time(src, 8) == b"-122:03:04"


def test_format_binary_time_with_micros():
    src = bytes([0, 0, 0, 0, 0, 1, 2, 3]) + (500000).to_bytes(4, "little")
    assert format_binary_time(src, 15) == b"01:02:03.500000"


def test_format_binary_time_zero():
    assert format_binary_time(b"", 8) == b"00:00:00"


def test_format_binary_time_bad_length():
    with pytest.raises(ValueError, match="illegal TIME length 9"):
        format_binary_time(bytes(8), 9)


def test_format_binary_time_bad_packet_length():
    with pytest.raises(ValueError, match="invalid TIME packet length 7"):
        format_binary_time(bytes(7), 8)