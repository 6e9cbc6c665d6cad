"""Replay configuration: validation, DSN parsing and command-line options."""

from __future__ import annotations

import argparse
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Dict, Optional, Tuple, Union
from urllib.parse import quote, unquote, unquote_plus

import pymysql

from .consts import UINT64_MAX, ReplayDecision, RunType
from .dirs import check_dir_exist_and_privileges
from .mysqltime import parse_byte_2digits, parse_byte_nano_sec, parse_byte_year

CONNECT_CHECK_QUERY = "select count(*) from mysql.user;"
DEFAULT_MYSQL_PORT = 3306
REPLAY_WINDOW_NS = 100_000_000
BEGIN_TIME_LENGTH = 23

_BEGIN_TIME_BASE = b"0000-00-00 00:00:00.000"
_BEGIN_TIME_FORMAT = "YYYY-MM-DD HH:MM:SS.MMMMMM"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ERR_NO_SLASH = "invalid DSN: missing the slash separating the database name"
_ERR_ADDR = "invalid DSN: network address not terminated (missing closing brace)"
_ERR_UNESCAPED = "invalid DSN: did you forget to escape a param value?"


def _ensure_have_port(addr: str) -> str:
    if addr.startswith("["):
        return addr if "]:" in addr else f"{addr}:{DEFAULT_MYSQL_PORT}"
    colons = addr.count(":")
    if colons == 1:
        return addr
    if colons == 0:
        return f"{addr}:{DEFAULT_MYSQL_PORT}"
    return f"[{addr}]:{DEFAULT_MYSQL_PORT}"


def _split_host_port(addr: str) -> Tuple[str, int]:
    if addr.startswith("["):
        host, _, rest = addr[1:].partition("]")
        port = rest.lstrip(":")
    else:
        host, _, port = addr.rpartition(":")
    return host, int(port) if port else DEFAULT_MYSQL_PORT


@dataclass
class DsnConfig:
    """Connection settings taken from a data source name."""

    user: str = ""
    password: str = ""
    net: str = "tcp"
    addr: str = f"127.0.0.1:{DEFAULT_MYSQL_PORT}"
    db_name: str = ""
    params: Dict[str, str] = field(default_factory=dict)

    def format_dsn(self) -> str:
        """Return the settings as a data source name."""
        parts = []
        if self.user or self.password:
            parts.append(self.user)
            if self.password:
                parts.append(":" + self.password)
            parts.append("@")
        if self.net:
            parts.append(self.net)
            if self.addr:
                parts.append(f"({self.addr})")
        parts.append("/" + quote(self.db_name, safe=""))
        if self.params:
            query = "&".join(
                f"{key}={quote(value, safe='')}" for key, value in sorted(self.params.items())
            )
            parts.append("?" + query)
        return "".join(parts)

    def _connect_args(self) -> Dict[str, Any]:
        args: Dict[str, Any] = {"user": self.user, "password": self.password}
        if self.db_name:
            args["database"] = self.db_name
        if self.net == "unix":
            args["unix_socket"] = self.addr
        else:
            host, port = _split_host_port(self.addr)
            args["host"] = host
            args["port"] = port
        return args


def _parse_params(query: str) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for item in query.split("&"):
        key, sep, value = item.partition("=")
        if not sep:
            continue
        params[key] = unquote_plus(value)
    return params


def parse_dsn(dsn: str) -> DsnConfig:
    """Parse "[user[:password]@][net[(addr)]]/dbname[?params]"; raise ValueError if malformed."""
    cfg = DsnConfig(net="", addr="")
    slash = dsn.rfind("/")
    if slash < 0:
        if dsn:
            raise ValueError(_ERR_NO_SLASH)
    else:
        left = dsn[:slash]
        at = left.rfind("@")
        if at >= 0:
            user, _, secret = left[:at].partition(":")
            cfg.user = user
            cfg.password = secret
        rest = left[at + 1 :]
        paren = rest.find("(")
        if paren >= 0:
            if not rest.endswith(")"):
                if ")" in rest[paren + 1 :]:
                    raise ValueError(_ERR_UNESCAPED)
                raise ValueError(_ERR_ADDR)
            cfg.addr = rest[paren + 1 : -1]
            rest = rest[:paren]
        cfg.net = rest
        db_name, _, query = dsn[slash + 1 :].partition("?")
        cfg.db_name = unquote(db_name)
        if query:
            cfg.params = _parse_params(query)

    if not cfg.net:
        cfg.net = "tcp"
    if not cfg.addr:
        if cfg.net == "tcp":
            cfg.addr = f"127.0.0.1:{DEFAULT_MYSQL_PORT}"
        elif cfg.net == "unix":
            cfg.addr = "/tmp/mysql.sock"
        else:
            raise ValueError(f"default addr for network '{cfg.net}' unknown")
    elif cfg.net == "tcp":
        cfg.addr = _ensure_have_port(cfg.addr)
    return cfg


def parse_begin_time(b: Union[bytes, bytearray, str], tz: Optional[tzinfo]) -> int:
    """Parse "YYYY-MM-DD HH:MM:SS.fff" and return nanoseconds since the epoch.

    A tz of None means local time. Zero or malformed values raise ValueError.
    """
    data = b.encode() if isinstance(b, str) else bytes(b)
    text = data.decode(errors="replace")
    malformed = f"{text} time is not like {_BEGIN_TIME_FORMAT}"
    if data == _BEGIN_TIME_BASE[: len(data)]:
        raise ValueError(f"{text} time is zero ,{_BEGIN_TIME_FORMAT}")
    if len(data) < 20:
        raise ValueError(malformed)

    def expect(index: int, char: str) -> None:
        if data[index] != ord(char):
            raise ValueError(malformed)

    year = parse_byte_year(data)
    if year <= 0:
        raise ValueError(f"{text} year is invalid,{_BEGIN_TIME_FORMAT}")
    expect(4, "-")
    month = parse_byte_2digits(data[5], data[6])
    if month <= 0:
        raise ValueError(f"{text} month is invalid,{_BEGIN_TIME_FORMAT}")
    expect(7, "-")
    day = parse_byte_2digits(data[8], data[9])
    if day <= 0:
        raise ValueError(f"{text} day is invalid,{_BEGIN_TIME_FORMAT}")
    expect(10, " ")
    hour = parse_byte_2digits(data[11], data[12])
    expect(13, ":")
    minute = parse_byte_2digits(data[14], data[15])
    expect(16, ":")
    second = parse_byte_2digits(data[17], data[18])
    expect(19, ".")
    nsec = parse_byte_nano_sec(data[20:])

    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        moment = datetime(year, month, 1, tzinfo=tz) + timedelta(
            days=day - 1, hours=hour, minutes=minute, seconds=second, microseconds=nsec // 1000
        )
        if moment.tzinfo is None:
            moment = moment.astimezone()
    except (OverflowError, ValueError) as exc:
        raise ValueError(f"{text} is out of range: {exc}") from exc
    delta = moment - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000 + nsec % 1000


@dataclass
class Config:
    """Settings of one replay run."""

    dsn: str = ""
    run_time: int = 0
    output_dir: str = ""
    pre_file_size: int = 0
    store_dir: str = ""
    listen_port: int = 0
    data_dir: str = ""
    flush_interval: float = 0.0
    device_name: str = ""
    src_port: int = 0
    run_type: RunType = RunType.TEXT
    mysql_config: Optional[DsnConfig] = None
    begin_replay_sql_time: int = 0
    begin_replay_sql: bool = False
    begin_times: str = ""
    log: logging.Logger = field(
        default_factory=lambda: logging.getLogger(__name__), repr=False, compare=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def check_param_valid(self) -> None:
        """Validate every setting, connecting to the target database if a DSN is given."""
        self.check_begin_time()
        self.check_output_dir()
        if self.store_dir:
            self.check_store_dir()
        if self.dsn:
            self.check_dsn()
            self.try_connect_dst_db()

    def check_output_dir(self) -> None:
        """Ensure the output directory exists and is writable."""
        if not self.output_dir:
            raise ValueError("outputDir len is zero")
        check_dir_exist_and_privileges(self.output_dir)

    def check_store_dir(self) -> None:
        """Ensure the store directory is usable when capturing online."""
        if self.run_type == RunType.ONLINE:
            if not self.store_dir:
                raise ValueError("store dir len is zero")
            check_dir_exist_and_privileges(self.store_dir)

    def check_dsn(self) -> None:
        """Parse the DSN into mysql_config."""
        if not self.dsn:
            raise ValueError("parma dsn len is zero")
        self.mysql_config = parse_dsn(self.dsn)

    def try_connect_dst_db(self) -> None:
        """Connect to the target database and run a trivial query."""
        if self.mysql_config is None:
            raise ValueError("dsn has not been parsed")
        conn = pymysql.connect(**self.mysql_config._connect_args())
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(CONNECT_CHECK_QUERY)
            finally:
                try:
                    cursor.close()
                except Exception as exc:
                    self.log.warning("close row fail,%s", exc)
        finally:
            try:
                conn.close()
            except Exception as exc:
                self.log.warning("close db conn fail ,%s", exc)

    def parse_date_time(self) -> None:
        """Parse begin_times as local time into begin_replay_sql_time."""
        if len(self.begin_times) != BEGIN_TIME_LENGTH:
            raise ValueError(f"length of time is not 23 digits,{_BEGIN_TIME_FORMAT}")
        self.begin_replay_sql_time = parse_begin_time(self.begin_times, None)

    def check_begin_time(self) -> None:
        """Set begin_replay_sql_time from begin_times, or 0 when none is given."""
        if not self.begin_times:
            self.begin_replay_sql_time = 0
            return
        self.parse_date_time()

    def set_begin_replay_sql(self, need_replay: bool) -> None:
        """Record whether statements are to be replayed from now on."""
        with self._lock:
            self.begin_replay_sql = need_replay

    def check_need_replay(self, ts: int) -> ReplayDecision:
        """Decide what to do with a statement seen at ts nanoseconds."""
        with self._lock:
            if self.begin_replay_sql:
                return ReplayDecision.NEED_REPLAY_SQL
            begin = self.begin_replay_sql_time
            if begin == 0:
                self.begin_replay_sql = True
                return ReplayDecision.NEED_REPLAY_SQL
            diff = ts - begin
            if -REPLAY_WINDOW_NS <= diff <= 0:
                return ReplayDecision.NEED_WRITE_LOG
            if diff < -REPLAY_WINDOW_NS:
                return ReplayDecision.NOT_WRITE_LOG
            self.begin_replay_sql = True
            return ReplayDecision.NEED_REPLAY_SQL


_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def _parse_duration(text: str) -> float:
    body = text
    sign = 1.0
    if body[:1] in "+-" and body:
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]
    if body == "0":
        return 0.0
    if not body:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if match is None:
            raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def _uint_type(bits: int) -> Callable[[str], int]:
    limit = (1 << bits) - 1

    def convert(text: str) -> int:
        try:
            value = int(text, 0)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid unsigned integer {text!r}") from None
        if not 0 <= value <= limit:
            raise argparse.ArgumentTypeError(f"value {text!r} out of range [0, {limit}]")
        return value

    return convert


_PORT_HELP = (
    "http server port , Provide query statistical (query) information and exit (exit) services"
)


def add_dir_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Add the options for replaying capture files from a directory."""
    parser.add_argument("-d", "--dsn", dest="dsn", default="", help="replay server dsn")
    parser.add_argument("-t", "--runtime", dest="run_time", type=_uint_type(32), default=10,
                        help="replay server run time")
    parser.add_argument("-o", "--output", dest="output_dir", default="./output",
                        help="directory used to write the result set")
    parser.add_argument("-S", "--storeDir", dest="store_dir", default="", help="save result dir")
    parser.add_argument("-s", "--filesize", dest="pre_file_size", type=_uint_type(64),
                        default=UINT64_MAX, help="Baseline size per document, unit M")
    parser.add_argument("-p", "--listen-port", dest="listen_port", type=_uint_type(16),
                        default=7002, help=_PORT_HELP)
    parser.add_argument("-D", "--data-dir", dest="data_dir", default="./data",
                        help="directory used to read pcap file")
    parser.add_argument("-P", "--srcPort", dest="src_port", type=_uint_type(16), default=4000,
                        help="server port")
    parser.add_argument("--flush-interval", dest="flush_interval", type=_parse_duration,
                        default=180.0, help="flush interval")
    parser.add_argument("-T", "--begin-time", dest="begin_times", default="",
                        help="time to replay sql")
    parser.set_defaults(run_type=RunType.DIR)
    return parser


def add_text_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Add the options for replaying recorded text."""
    parser.add_argument("-d", "--dsn", dest="dsn", default="", help="replay server dsn")
    parser.add_argument("-o", "--output", dest="output_dir", default="./output",
                        help="directory used to write the result set")
    parser.add_argument("-S", "--storeDir", dest="store_dir", default="", help="save result dir")
    parser.add_argument("-P", "--srcPort", dest="src_port", type=_uint_type(16), default=4000,
                        help="server port")
    parser.add_argument("--flush-interval", dest="flush_interval", type=_parse_duration,
                        default=60.0, help="flush interval")
    parser.add_argument("-s", "--filesize", dest="pre_file_size", type=_uint_type(64),
                        default=UINT64_MAX, help="Baseline size per document, unit M")
    parser.add_argument("-p", "--listen-port", dest="listen_port", type=_uint_type(16),
                        default=7002, help=_PORT_HELP)
    parser.set_defaults(run_type=RunType.TEXT)
    return parser


def add_online_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Add the options for capturing and replaying live traffic."""
    parser.add_argument("-d", "--dsn", dest="dsn", default="", help="replay server dsn")
    parser.add_argument("-t", "--runtime", dest="run_time", type=_uint_type(32), default=0,
                        help="replay server run time")
    parser.add_argument("-o", "--output", dest="output_dir", default="./output",
                        help="directory used to write the result set")
    parser.add_argument("-D", "--device", dest="device_name", default="eth0", help="device name")
    parser.add_argument("-S", "--storeDir", dest="store_dir", default="", help="save result dir")
    parser.add_argument("-P", "--srcPort", dest="src_port", type=_uint_type(16), default=4000,
                        help="server port")
    parser.add_argument("-s", "--filesize", dest="pre_file_size", type=_uint_type(64),
                        default=UINT64_MAX, help="Baseline size per document, unit M")
    parser.add_argument("-p", "--listen-port", dest="listen_port", type=_uint_type(16),
                        default=7002, help=_PORT_HELP)
    parser.set_defaults(run_type=RunType.ONLINE)
    return parser