"""Parsing and formatting of MySQL DATE, DATETIME and TIME values."""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Optional, Union

ZERO_DATE_TIME = b"0000-00-00 00:00:00.000000"

DIGITS01 = "0123456789" * 10
DIGITS10 = "".join(d * 10 for d in "0123456789")

_DATE_TIME_LENGTHS = (10, 19, 21, 22, 23, 24, 25, 26)
_TIME_LENGTHS = (8, 10, 11, 12, 13, 14, 15)

BytesLike = Union[bytes, bytearray, memoryview, str]


def _as_bytes(b: BytesLike) -> bytes:
    if isinstance(b, str):
        return b.encode()
    return bytes(b)


def _pair(p: int) -> str:
    return DIGITS10[p] + DIGITS01[p]


def _make_datetime(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    microsecond: int = 0,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """Build a datetime, carrying out-of-range fields into the next larger unit."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        base = datetime(year, month, 1, tzinfo=tz)
        return base + timedelta(
            days=day - 1,
            hours=hour,
            minutes=minute,
            seconds=second,
            microseconds=microsecond,
        )
    except OverflowError as exc:
        raise ValueError(f"date out of range: {exc}") from exc


def b_to_i(b: int) -> int:
    """Return the value of an ASCII digit byte."""
    if b < ord("0") or b > ord("9"):
        raise ValueError("not [0-9]")
    return b - ord("0")


def parse_byte_year(b: BytesLike) -> int:
    """Parse the first four bytes as a decimal year."""
    data = _as_bytes(b)
    year = 0
    for c in data[:4]:
        year = year * 10 + b_to_i(c)
    return year


def parse_byte_2digits(b1: int, b2: int) -> int:
    """Parse two digit bytes as a two-digit number."""
    return b_to_i(b1) * 10 + b_to_i(b2)


def parse_byte_nano_sec(b: BytesLike) -> int:
    """Parse up to six fractional-second digits and return nanoseconds."""
    ns, digit = 0, 100000
    for c in _as_bytes(b):
        ns += b_to_i(c) * digit
        digit //= 10
    return ns * 1000


def parse_date_time(b: BytesLike, tz: Optional[tzinfo]) -> Optional[datetime]:
    """Parse text of the form "YYYY-MM-DD[ HH:MM:SS[.ffffff]]".

    Returns None for the all-zero value. Zero year, month or day become 1.
    """
    data = _as_bytes(b)
    if len(data) not in _DATE_TIME_LENGTHS:
        raise ValueError(f"invalid time bytes: {data.decode(errors='replace')}")
    if data == ZERO_DATE_TIME[: len(data)]:
        return None

    def expect(index: int, char: str) -> None:
        if data[index] != ord(char):
            raise ValueError(f"bad value for field: `{chr(data[index])}`")

    year = max(parse_byte_year(data), 1)
    expect(4, "-")
    month = max(parse_byte_2digits(data[5], data[6]), 1)
    expect(7, "-")
    day = max(parse_byte_2digits(data[8], data[9]), 1)
    if len(data) == 10:
        return _make_datetime(year, month, day, tz=tz)

    expect(10, " ")
    hour = parse_byte_2digits(data[11], data[12])
    expect(13, ":")
    minute = parse_byte_2digits(data[14], data[15])
    expect(16, ":")
    second = parse_byte_2digits(data[17], data[18])
    if len(data) == 19:
        return _make_datetime(year, month, day, hour, minute, second, tz=tz)

    expect(19, ".")
    nsec = parse_byte_nano_sec(data[20:])
    return _make_datetime(year, month, day, hour, minute, second, nsec // 1000, tz=tz)


def parse_binary_date_time(num: int, data: BytesLike, tz: Optional[tzinfo]) -> Optional[datetime]:
    """Decode a binary-protocol DATETIME of num bytes; None for length 0."""
    raw = _as_bytes(data)
    if num == 0:
        return None
    if num not in (4, 7, 11):
        raise ValueError(f"invalid DATETIME packet length {num}")
    if len(raw) < num:
        raise ValueError(f"DATETIME data shorter than {num} bytes")
    year = int.from_bytes(raw[0:2], "little")
    month, day = raw[2], raw[3]
    if num == 4:
        return _make_datetime(year, month, day, tz=tz)
    hour, minute, second = raw[4], raw[5], raw[6]
    if num == 7:
        return _make_datetime(year, month, day, hour, minute, second, tz=tz)
    microsecond = int.from_bytes(raw[7:11], "little")
    return _make_datetime(year, month, day, hour, minute, second, microsecond, tz=tz)


def format_date_time(t: datetime) -> str:
    """Format a datetime as MySQL text, dropping zero time and trailing zeros."""
    if t.year < 1 or t.year > 9999:
        raise ValueError(f"year is not in the range [1, 9999]: {t.year}")
    date_part = f"{t.year:04d}-{t.month:02d}-{t.day:02d}"
    nsec = t.microsecond * 1000
    if t.hour == 0 and t.minute == 0 and t.second == 0 and nsec == 0:
        return date_part
    text = f"{date_part} {t.hour:02d}:{t.minute:02d}:{t.second:02d}"
    if nsec == 0:
        return text
    return f"{text}.{nsec:09d}".rstrip("0")


def append_microsecs(dst: bytes, src: bytes, decimals: int) -> bytes:
    """Append up to six fractional digits taken from a little-endian uint32."""
    dst = bytes(dst)
    if decimals <= 0:
        return dst
    if len(src) == 0:
        return dst + b".000000"[: decimals + 1]
    if len(src) < 4:
        raise ValueError("microseconds need 4 bytes")

    microsecs = int.from_bytes(src[:4], "little")
    p1 = (microsecs // 10000) & 0xFF
    microsecs = (microsecs - 10000 * p1) & 0xFFFFFFFF
    p2 = (microsecs // 100) & 0xFF
    microsecs = (microsecs - 100 * p2) & 0xFFFFFFFF
    p3 = microsecs & 0xFF

    count = min(decimals, 6)
    needed = (p1, p2, p3)[: (count + 1) // 2]
    digits = "".join(_pair(p) for p in needed)[:count]
    return dst + b"." + digits.encode()


def format_binary_date_time(src: bytes, length: int) -> bytes:
    """Format a binary DATE/DATETIME as text of the given column length."""
    if len(src) == 0:
        return ZERO_DATE_TIME[:length]
    kind = "DATETIME" if length > 10 else "DATE"
    if length not in _DATE_TIME_LENGTHS:
        raise ValueError(f"illegal {kind} length {length}")
    if len(src) not in (4, 7, 11):
        raise ValueError(f"illegal {kind} packet length {len(src)}")

    year = int.from_bytes(src[0:2], "little")
    pt = year // 100
    p1 = year - 100 * pt
    text = f"{_pair(pt)}{_pair(p1)}-{_pair(src[2])}-{_pair(src[3])}"
    dst = text.encode()
    if length == 10:
        return dst
    if len(src) == 4:
        return dst + ZERO_DATE_TIME[10:length]
    clock = f" {_pair(src[4])}:{_pair(src[5])}:{_pair(src[6])}"
    return append_microsecs(dst + clock.encode(), src[7:], length - 20)


def format_binary_time(src: bytes, length: int) -> bytes:
    """Format a binary TIME as text of the given column length."""
    if len(src) == 0:
        return ZERO_DATE_TIME[11 : 11 + length]
    if length not in _TIME_LENGTHS:
        raise ValueError(f"illegal TIME length {length}")
    if len(src) not in (8, 12):
        raise ValueError(f"invalid TIME packet length {len(src)}")

    sign = "-" if src[0] == 1 else ""
    days = int.from_bytes(src[1:5], "little")
    hours = days * 24 + src[5]
    hour_text = str(hours) if hours >= 100 else _pair(hours)
    text = f"{sign}{hour_text}:{_pair(src[6])}:{_pair(src[7])}"
    return append_microsecs(text.encode(), src[8:], length - 9)