"""Splitting reassembled TCP payloads into MySQL protocol packets."""

from __future__ import annotations

import ipaddress
import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Callable, Dict, Optional, Protocol, Union

log = logging.getLogger(__name__)

FNV_BASIS = 14695981039346656037
FNV_PRIME = 1099511628211
_UINT64_MASK = (1 << 64) - 1

_HEADER_SIZE = 4

BytesLike = Union[bytes, bytearray, memoryview]


class Direction(IntEnum):
    """Direction of a half of a TCP connection."""

    CLIENT_TO_SERVER = 0
    SERVER_TO_CLIENT = 1

    def __str__(self) -> str:
        if self is Direction.CLIENT_TO_SERVER:
            return "client->server"
        return "server->client"


def _other(direction: Direction) -> Direction:
    if direction is Direction.CLIENT_TO_SERVER:
        return Direction.SERVER_TO_CLIENT
    return Direction.CLIENT_TO_SERVER


class EndpointType(IntEnum):
    """Kinds of network and transport endpoints."""

    INVALID = 0
    IPV4 = 1
    IPV6 = 2
    MAC = 3
    TCP_PORT = 4
    UDP_PORT = 5


@dataclass(frozen=True)
class Endpoint:
    """One end of a flow: a typed raw address."""

    type: EndpointType = EndpointType.INVALID
    raw: bytes = b""

    def __str__(self) -> str:
        if self.type is EndpointType.IPV4 and len(self.raw) == 4:
            return str(ipaddress.IPv4Address(self.raw))
        if self.type is EndpointType.IPV6 and len(self.raw) == 16:
            return str(ipaddress.IPv6Address(self.raw))
        if self.type is EndpointType.MAC:
            return ":".join(f"{b:02x}" for b in self.raw)
        if self.type in (EndpointType.TCP_PORT, EndpointType.UDP_PORT):
            return str(int.from_bytes(self.raw, "big"))
        return "[" + " ".join(str(b) for b in self.raw) + "]"


@dataclass(frozen=True)
class Flow:
    """A pair of endpoints of the same type, from source to destination."""

    src: Endpoint = field(default_factory=Endpoint)
    dst: Endpoint = field(default_factory=Endpoint)

    @property
    def endpoint_type(self) -> EndpointType:
        return self.src.type

    def reverse(self) -> "Flow":
        """Return the flow running the other way."""
        return Flow(self.dst, self.src)


def fnv_hash(*args: BytesLike) -> int:
    """64-bit FNV-1a hash over the concatenation of the given chunks."""
    h = FNV_BASIS
    for chunk in args:
        for byte in bytes(chunk):
            h ^= byte
            h = (h * FNV_PRIME) & _UINT64_MASK
    return h


@dataclass(frozen=True)
class ConnID:
    """Identifies a connection by its network and transport flows."""

    net: Flow = field(default_factory=Flow)
    transport: Flow = field(default_factory=Flow)

    def src_addr(self) -> str:
        """Return "host:port" of the source side."""
        return f"{self.net.src}:{self.transport.src}"

    def dst_addr(self) -> str:
        """Return "host:port" of the destination side."""
        return f"{self.net.dst}:{self.transport.dst}"

    def __str__(self) -> str:
        return f"{self.src_addr()}->{self.dst_addr()}"

    def reverse(self) -> "ConnID":
        """Return the connection seen from the other side."""
        return ConnID(self.net.reverse(), self.transport.reverse())

    def hash(self) -> int:
        """Direction-independent 64-bit hash of the connection."""
        h = (
            fnv_hash(self.net.src.raw, self.transport.src.raw)
            + fnv_hash(self.net.dst.raw, self.transport.dst.raw)
        ) & _UINT64_MASK
        h ^= int(self.net.endpoint_type)
        h = (h * FNV_PRIME) & _UINT64_MASK
        h ^= int(self.transport.endpoint_type)
        h = (h * FNV_PRIME) & _UINT64_MASK
        return h

    def hash_str(self) -> str:
        """Hex of the little-endian bytes of hash()."""
        return self.hash().to_bytes(8, "little").hex()

    def logger(self, name: str) -> logging.LoggerAdapter:
        """Return a logger tagged with this connection, optionally named."""
        base = log.getChild(name) if name else log
        return logging.LoggerAdapter(base, {"conn": f"{self.hash_str()}:{self.src_addr()}"})

    def to_json(self) -> str:
        """Return the source and destination addresses as a JSON object."""
        return json.dumps({"src": self.src_addr(), "dst": self.dst_addr()}, sort_keys=True)


@dataclass
class MySQLPacket:
    """One MySQL protocol packet taken from a connection."""

    conn: ConnID
    time: Optional[datetime]
    direction: Direction
    length: int
    seq: int
    data: bytes = b""


@dataclass
class FactoryOptions:
    """Options for creating packet streams."""

    conn_cache_size: int = 0
    synchronized: bool = False
    force_start: bool = False


class PacketHandler(Protocol):
    """Receives the packets of one connection."""

    def accept(self, timestamp: Optional[datetime], direction: Direction, tcp: object) -> bool:
        """Return whether a TCP segment should be taken into the stream."""

    def on_packet(self, packet: MySQLPacket) -> None:
        """Handle one complete packet."""

    def on_close(self) -> None:
        """Handle the end of the connection."""


def lookup_packet_len(buf: BytesLike) -> int:
    """Payload length from the packet header, or -1 if fewer than 3 bytes."""
    if len(buf) < 3:
        return -1
    return int.from_bytes(bytes(buf[:3]), "little")


def lookup_packet_seq(buf: BytesLike) -> int:
    """Sequence number from the packet header, or -1 if fewer than 4 bytes."""
    if len(buf) < 4:
        return -1
    return buf[3]


def format_data(data: BytesLike) -> str:
    """Return data as text, shortening anything over 500 bytes."""
    raw = bytes(data)
    if len(raw) > 500:
        head = raw[:297].decode(errors="replace")
        tail = raw[-200:].decode(errors="replace")
        return f"{head}...{tail}"
    return raw.decode(errors="replace")


@dataclass
class _HalfState:
    buf: Optional[bytearray] = None
    pending: Optional[MySQLPacket] = None
    time: Optional[datetime] = None


_CLOSED = object()


class MySQLStream:
    """Reassembles the two directions of a connection into MySQL packets."""

    def __init__(
        self,
        conn: ConnID,
        handler: PacketHandler,
        opts: Optional[FactoryOptions] = None,
    ) -> None:
        self.conn = conn
        self.handler = handler
        self.opts = opts if opts is not None else FactoryOptions()
        self.start = False
        self._log = conn.logger("mysql-stream")
        self._halves: Dict[Direction, _HalfState] = {d: _HalfState() for d in Direction}
        self._queue: Optional[queue.Queue] = None
        self._worker: Optional[threading.Thread] = None
        if not self.opts.synchronized:
            self._queue = queue.Queue(maxsize=max(self.opts.conn_cache_size, 1))
            self._worker = threading.Thread(target=self._drain, daemon=True)
            self._worker.start()

    def _drain(self) -> None:
        assert self._queue is not None
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            self.handler.on_packet(item)

    def _deliver(self, packet: MySQLPacket) -> None:
        if self._queue is None:
            self.handler.on_packet(packet)
        else:
            self._queue.put(packet)

    def accept(self, timestamp: Optional[datetime], direction: Direction, tcp: object) -> bool:
        """Ask the handler whether to take a segment; marks start if forced."""
        if not self.handler.accept(timestamp, direction, tcp):
            return False
        if self.opts.force_start:
            self.start = True
        return True

    def reassembled(
        self,
        data: BytesLike,
        direction: Direction,
        skip: int = 0,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """Take in-order payload bytes of one direction and emit complete packets."""
        payload = bytes(data)
        if not payload:
            self._log.debug("get packet data len is zero")
            return

        half = self._halves[direction]
        ts = half.time
        if timestamp is not None and (ts is None or ts < timestamp):
            half.time = timestamp
            ts = timestamp

        if skip < 0:
            self._log.warning(
                "streams without SYN/SYN+ACK/ACK sequence dir=%s size=%d", direction, -skip
            )

        if half.buf is None:
            buf = bytearray(payload)
            seq = lookup_packet_seq(buf)
            if self._halves[_other(direction)].buf is None and seq != 0:
                self._log.warning(
                    "drop init packet with non-zero seq dir=%s data=%s",
                    direction,
                    format_data(payload),
                )
                return
            half.buf = buf
        else:
            if skip > 0:
                self._log.warning("missing net bytes len=%d", skip)
            half.buf.extend(payload)
        buf = half.buf

        count = 0
        while buf:
            packet = half.pending
            if packet is None:
                packet = MySQLPacket(
                    conn=self.conn,
                    time=ts,
                    direction=direction,
                    length=lookup_packet_len(buf),
                    seq=lookup_packet_seq(buf),
                )
            if packet.seq == -1 or len(buf) < packet.length + _HEADER_SIZE:
                self._log.debug(
                    "wait for more packet data dir=%s seq=%d len=%d buf=%d",
                    direction,
                    packet.seq,
                    packet.length,
                    len(buf),
                )
                if half.pending is None and packet.seq >= 0:
                    half.pending = packet
                break
            end = packet.length + _HEADER_SIZE
            packet.data = bytes(buf[_HEADER_SIZE:end])
            del buf[:end]
            count += 1
            self._deliver(packet)
            half.pending = None

        if timestamp is None and count > 0:
            self._log.warning(
                "fallback to last seen time dir=%s packets=%d time=%s", direction, count, ts
            )

    def reassembly_complete(self) -> bool:
        """Flush outstanding packets, then tell the handler the connection closed."""
        self._log.info("read packet complete")
        if self._queue is not None:
            self._queue.put(_CLOSED)
            if self._worker is not None:
                self._worker.join()
        self.handler.on_close()
        return True


class MySQLStreamFactory:
    """Creates a MySQLStream, with its own handler, for each new connection."""

    def __init__(
        self,
        handler_factory: Callable[[ConnID], PacketHandler],
        opts: Optional[FactoryOptions] = None,
    ) -> None:
        self._handler_factory = handler_factory
        self.opts = opts if opts is not None else FactoryOptions()

    def new(self, net_flow: Flow, tcp_flow: Flow) -> MySQLStream:
        """Return a stream for the connection made of these two flows."""
        conn = ConnID(net_flow, tcp_flow)
        return MySQLStream(conn, self._handler_factory(conn), self.opts)