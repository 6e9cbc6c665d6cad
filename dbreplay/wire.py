"""Low-level helpers for the MySQL wire protocol and driver plumbing."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

BytesLike = Union[bytes, bytearray, memoryview]

_UINT64_MASK = (1 << 64) - 1

_TRUE_WORDS = frozenset({"1", "true", "TRUE", "True"})
_FALSE_WORDS = frozenset({"0", "false", "FALSE", "False"})

_tls_lock = threading.RLock()
_tls_registry: Dict[str, Any] = {}


def read_bool(value: str) -> Optional[bool]:
    """Return the boolean a DSN value spells, or None if it is not a boolean."""
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    return None


def register_tls_config(key: str, config: Any) -> None:
    """Register a TLS configuration under key; reserved keys raise ValueError."""
    lowered = key.lower()
    if read_bool(key) is not None or lowered in ("skip-verify", "preferred"):
        raise ValueError(f"key '{key}' is reserved")
    with _tls_lock:
        _tls_registry[key] = config


def deregister_tls_config(key: str) -> None:
    """Remove the TLS configuration registered under key, if any."""
    with _tls_lock:
        _tls_registry.pop(key, None)


def get_tls_config(key: str) -> Optional[Any]:
    """Return the TLS configuration registered under key, or None."""
    with _tls_lock:
        return _tls_registry.get(key)


def uint64_to_bytes(n: int) -> bytes:
    """Encode n as eight little-endian bytes."""
    return (n & _UINT64_MASK).to_bytes(8, "little")


def uint64_to_string(n: int) -> bytes:
    """Return the decimal ASCII representation of an unsigned 64-bit value."""
    return str(n & _UINT64_MASK).encode()


def string_to_int(b: BytesLike) -> int:
    """Read bytes as an unsigned decimal number without validating the digits."""
    val = 0
    for c in bytes(b):
        val = val * 10 + ((c - 0x30) & 0xFF)
    return val


def _need(b: bytes, size: int) -> None:
    if len(b) < size:
        raise ValueError(
            f"length-encoded integer needs {size} bytes, got {len(b)}"
        )


def read_length_encoded_integer(b: Optional[BytesLike]) -> Tuple[int, bool, int]:
    """Decode a length-encoded integer.

    Returns (value, is_null, bytes_read). An empty buffer counts as NULL.
    """
    data = bytes(b) if b is not None else b""
    if not data:
        return 0, True, 1
    first = data[0]
    if first == 0xFB:
        return 0, True, 1
    if first == 0xFC:
        _need(data, 3)
        return int.from_bytes(data[1:3], "little"), False, 3
    if first == 0xFD:
        _need(data, 4)
        return int.from_bytes(data[1:4], "little"), False, 4
    if first == 0xFE:
        _need(data, 9)
        return int.from_bytes(data[1:9], "little"), False, 9
    return first, False, 1


def read_length_encoded_string(b: Optional[BytesLike]) -> Tuple[bytes, bool, int]:
    """Decode a length-encoded string.

    Returns (data, is_null, bytes_read). Raises ValueError for a missing
    buffer and EOFError when the string runs past the end of b.
    """
    if b is None:
        raise ValueError("read data from nil slice ,slice:[],len:0,cap:0")
    data = bytes(b)
    num, is_null, n = read_length_encoded_integer(data)
    if num < 1:
        return data[n:n], is_null, n
    end = n + num
    if len(data) >= end:
        return data[n:end], False, end
    raise EOFError(f"length-encoded string needs {end} bytes, got {len(data)}")


def skip_length_encoded_string(b: Optional[BytesLike]) -> int:
    """Return the number of bytes a length-encoded string occupies.

    Raises EOFError when the string runs past the end of b.
    """
    data = bytes(b) if b is not None else b""
    num, _, n = read_length_encoded_integer(data)
    if num < 1:
        return n
    end = n + num
    if len(data) >= end:
        return end
    raise EOFError(f"length-encoded string needs {end} bytes, got {len(data)}")


def append_length_encoded_integer(b: BytesLike, n: int) -> bytes:
    """Return b followed by the length encoding of n."""
    prefix = bytes(b)
    n &= _UINT64_MASK
    if n <= 250:
        return prefix + bytes((n,))
    if n <= 0xFFFF:
        return prefix + b"\xfc" + n.to_bytes(2, "little")
    if n <= 0xFFFFFF:
        return prefix + b"\xfd" + n.to_bytes(3, "little")
    return prefix + b"\xfe" + n.to_bytes(8, "little")


_BACKSLASH_ESCAPES = {
    0x00: b"\\0",
    ord("\n"): b"\\n",
    ord("\r"): b"\\r",
    0x1A: b"\\Z",
    ord("'"): b"\\'",
    ord('"'): b'\\"',
    ord("\\"): b"\\\\",
}


def _escape_backslash(v: Iterable[int]) -> bytes:
    return b"".join(_BACKSLASH_ESCAPES.get(c, bytes((c,))) for c in v)


def escape_bytes_backslash(buf: BytesLike, v: BytesLike) -> bytes:
    """Return buf followed by v with special characters backslash-escaped."""
    return bytes(buf) + _escape_backslash(bytes(v))


def escape_string_backslash(buf: BytesLike, v: str) -> bytes:
    """Like escape_bytes_backslash, for a text value encoded as UTF-8."""
    return bytes(buf) + _escape_backslash(v.encode())


def escape_bytes_quotes(buf: BytesLike, v: BytesLike) -> bytes:
    """Return buf followed by v with every apostrophe doubled."""
    return bytes(buf) + bytes(v).replace(b"'", b"''")


def escape_string_quotes(buf: BytesLike, v: str) -> bytes:
    """Like escape_bytes_quotes, for a text value encoded as UTF-8."""
    return bytes(buf) + v.encode().replace(b"'", b"''")


class AtomicBool:
    """A boolean flag safe to read and change from several threads."""

    def __init__(self, value: bool = False) -> None:
        self._value = bool(value)
        self._lock = threading.Lock()

    def is_set(self) -> bool:
        """Return the current value."""
        with self._lock:
            return self._value

    def set(self, value: bool) -> None:
        """Set the value regardless of the previous one."""
        with self._lock:
            self._value = bool(value)

    def try_set(self, value: bool) -> bool:
        """Set the value and return whether it changed."""
        with self._lock:
            changed = self._value != bool(value)
            self._value = bool(value)
            return changed


class AtomicError:
    """An error slot safe to read and replace from several threads."""

    def __init__(self) -> None:
        self._value: Optional[BaseException] = None
        self._lock = threading.Lock()

    def set(self, value: BaseException) -> None:
        """Store an error; None is not allowed."""
        if value is None:
            raise TypeError("error value must not be None")
        with self._lock:
            self._value = value

    def value(self) -> Optional[BaseException]:
        """Return the stored error, or None if none was set."""
        with self._lock:
            return self._value


@dataclass
class NamedValue:
    """A statement argument, optionally named."""

    name: str = ""
    ordinal: int = 0
    value: Any = None


def named_value_to_value(named: Iterable[NamedValue]) -> List[Any]:
    """Return the plain argument values; named parameters raise ValueError."""
    values = []
    for param in named:
        if param.name:
            raise ValueError("mysql: driver does not support the use of Named Parameters")
        values.append(param.value)
    return values


_ISOLATION_LEVELS = {
    4: "REPEATABLE READ",
    2: "READ COMMITTED",
    1: "READ UNCOMMITTED",
    6: "SERIALIZABLE",
}


def map_isolation_level(level: int) -> str:
    """Return the SQL name of a transaction isolation level number."""
    try:
        return _ISOLATION_LEVELS[int(level)]
    except KeyError:
        raise ValueError(f"mysql: unsupported isolation level: {level}") from None