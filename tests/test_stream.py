import json
import logging
from datetime import datetime, timedelta

import pytest

from dbreplay.stream import (
    ConnID,
    Direction,
    Endpoint,
    EndpointType,
    FactoryOptions,
    Flow,
    MySQLStream,
    MySQLStreamFactory,
    fnv_hash,
    format_data,
    lookup_packet_len,
    lookup_packet_seq,
)

C2S = Direction.CLIENT_TO_SERVER
S2C = Direction.SERVER_TO_CLIENT


class Recorder:
    def __init__(self, accept_result=True):
        self.accept_result = accept_result
        self.packets = []
        self.closed = 0

    def accept(self, timestamp, direction, tcp):
        return self.accept_result

    def on_packet(self, packet):
        self.packets.append(packet)

    def on_close(self):
        self.closed += 1


def _frame(seq, payload):
    return len(payload).to_bytes(3, "little") + bytes([seq]) + payload


def _conn():
    net = Flow(
        Endpoint(EndpointType.IPV4, bytes([127, 0, 0, 1])),
        Endpoint(EndpointType.IPV4, bytes([10, 0, 0, 2])),
    )
    tcp = Flow(
        Endpoint(EndpointType.TCP_PORT, (50000).to_bytes(2, "big")),
        Endpoint(EndpointType.TCP_PORT, (3306).to_bytes(2, "big")),
    )
    return ConnID(net, tcp)


def _sync_stream(handler=None, **opts):
    handler = handler or Recorder()
    return MySQLStream(_conn(), handler, FactoryOptions(synchronized=True, **opts)), handler


def test_empty_conn_src_addr():
    assert ConnID().src_addr() == "[]:[]"


def test_empty_conn_dst_addr():
    assert ConnID().dst_addr() == "[]:[]"


def test_empty_conn_str():
    assert str(ConnID()) == "[]:[]->[]:[]"


def test_empty_conn_reverse():
    assert ConnID().reverse() == ConnID()


def test_empty_conn_hash():
    assert ConnID().hash() == 1181368135640866778


def test_empty_conn_hash_str():
    assert ConnID().hash_str() == "dadfd6690f106510"


def test_conn_addresses_and_reverse():
    conn = _conn()
    assert conn.src_addr() == "127.0.0.1:50000"
    assert conn.dst_addr() == "10.0.0.2:3306"
    assert str(conn.reverse()) == "10.0.0.2:3306->127.0.0.1:50000"
    assert conn.reverse().reverse() == conn


def test_conn_hash_is_direction_independent():
    conn = _conn()
    assert conn.hash() == conn.reverse().hash()


def test_conn_to_json():
    assert json.loads(_conn().to_json()) == {
        "src": "127.0.0.1:50000",
        "dst": "10.0.0.2:3306",
    }


def test_logger_with_name():
    adapter = ConnID().logger("test")
    assert adapter.logger.name == "dbreplay.stream.test"
    assert adapter.extra["conn"] == "dadfd6690f106510:[]:[]"


def test_logger_without_name():
    adapter = ConnID().logger("")
    assert adapter.logger.name == "dbreplay.stream"


def test_lookup_packet_seq_with_len():
    assert lookup_packet_seq(b"12345") == 52


def test_lookup_packet_seq_short():
    assert lookup_packet_seq(b"123") == -1


def test_lookup_packet_len():
    assert lookup_packet_len(b"\x01\x02\x03\x00") == 0x030201
    assert lookup_packet_len(b"\x01\x02") == -1


def test_format_data_long():
    res = format_data(("select" * 100).encode())
    assert len(res) == 500
    assert res[294:300] == "sel..."
    assert res.startswith("selectselect")
    assert res.endswith("select")


def test_format_data_short():
    assert format_data(b"selectselect") == "selectselect"


def test_fnv_hash():
    assert fnv_hash(b"12345", b"abcde", b"!@#$%") == 11931777628171521584


def test_accept_false():
    stream, _ = _sync_stream(Recorder(accept_result=False))
    assert stream.accept(None, C2S, None) is False


def test_accept_true():
    stream, _ = _sync_stream()
    assert stream.accept(None, C2S, None) is True
    assert stream.start is False


def test_accept_force_start():
    stream, _ = _sync_stream(force_start=True)
    assert stream.accept(None, C2S, None) is True
    assert stream.start is True


def test_reassembly_complete_synchronized():
    stream, handler = _sync_stream()
    assert stream.reassembly_complete() is True
    assert handler.closed == 1


def test_synchronized_delivers_packets_in_order():
    stream, handler = _sync_stream()
    t = datetime(2021, 11, 22, 17, 14)
    stream.reassembled(_frame(0, b"abc") + _frame(1, b"de"), C2S, 0, t)
    assert [(p.seq, p.data, p.length) for p in handler.packets] == [
        (0, b"abc", 3),
        (1, b"de", 2),
    ]
    assert all(p.direction is C2S and p.time == t for p in handler.packets)
    assert handler.packets[0].conn == _conn()


def test_split_packet_keeps_first_time():
    stream, handler = _sync_stream()
    t1 = datetime(2021, 1, 1, 0, 0, 0)
    t2 = t1 + timedelta(seconds=5)
    frame = _frame(0, b"hello world")
    stream.reassembled(frame[:6], C2S, 0, t1)
    assert handler.packets == []
    stream.reassembled(frame[6:], C2S, 0, t2)
    assert len(handler.packets) == 1
    assert handler.packets[0].data == b"hello world"
    assert handler.packets[0].time == t1


def test_header_split_before_seq():
    stream, handler = _sync_stream()
    frame = _frame(0, b"xyz")
    stream.reassembled(frame[:2], C2S)
    stream.reassembled(frame[2:], C2S)
    assert [p.data for p in handler.packets] == [b"xyz"]


def test_time_never_goes_back():
    stream, handler = _sync_stream()
    t1 = datetime(2021, 1, 1)
    t2 = t1 + timedelta(seconds=1)
    stream.reassembled(_frame(0, b"a"), C2S, 0, t2)
    stream.reassembled(_frame(1, b"b"), C2S, 0, t1)
    assert [p.time for p in handler.packets] == [t2, t2]


def test_directions_are_independent():
    stream, handler = _sync_stream()
    t0 = datetime(2021, 1, 1)
    t1 = t0 + timedelta(seconds=10)
    stream.reassembled(_frame(0, b"query")[:5], C2S, 0, t0)
    stream.reassembled(_frame(1, b"ok"), S2C, 0, t1)
    assert [(p.direction, p.data, p.time) for p in handler.packets] == [(S2C, b"ok", t1)]


def test_init_packet_with_nonzero_seq_is_dropped():
    stream, handler = _sync_stream()
    stream.reassembled(_frame(3, b"junk"), C2S)
    assert handler.packets == []
    stream.reassembled(_frame(0, b"good"), C2S)
    assert [p.data for p in handler.packets] == [b"good"]


def test_nonzero_seq_accepted_when_other_side_seen():
    stream, handler = _sync_stream()
    stream.reassembled(_frame(0, b"greeting"), S2C)
    stream.reassembled(_frame(1, b"login"), C2S)
    assert [(p.direction, p.seq) for p in handler.packets] == [(S2C, 0), (C2S, 1)]


def test_empty_data_is_ignored():
    stream, handler = _sync_stream()
    stream.reassembled(b"", C2S)
    stream.reassembled(_frame(1, b"x"), C2S)
    assert handler.packets == []


def test_factory_new_asynchronous_delivers_all_before_close():
    handlers = []

    def make(conn):
        handler = Recorder()
        handlers.append((conn, handler))
        return handler

    factory = MySQLStreamFactory(make, FactoryOptions(conn_cache_size=2))
    conn = _conn()
    stream = factory.new(conn.net, conn.transport)
    data = b"".join(_frame(i, bytes([65 + i]) * 3) for i in range(5))
    stream.reassembled(data, C2S)
    assert stream.reassembly_complete() is True
    (seen_conn, handler), = handlers
    assert seen_conn == conn
    assert [p.seq for p in handler.packets] == [0, 1, 2, 3, 4]
    assert handler.packets[4].data == b"EEE"
    assert handler.closed == 1


def test_factory_new_synchronized():
    factory = MySQLStreamFactory(lambda conn: Recorder(accept_result=False),
                                 FactoryOptions(synchronized=True))
    stream = factory.new(Flow(), Flow())
    assert stream.conn == ConnID()
    assert stream.accept(None, C2S, None) is False


def test_direction_str():
    assert Direction.__str__(Direction.CLIENT_TO_SERVER) == "client->server"
    assert Direction.__str__(Direction.SERVER_TO_CLIENT) == "server->client"


def test_flow_reverse():
    a = Endpoint(EndpointType.TCP_PORT, b"\x00\x01")
    b = Endpoint(EndpointType.TCP_PORT, b"\x00\x02")
    assert Flow(a, b).reverse() == Flow(b, a)
    assert Flow(a, b).endpoint_type is EndpointType.TCP_PORT


@pytest.mark.parametrize(
    "endpoint, text",
    [
        (Endpoint(EndpointType.IPV4, bytes([192, 168, 1, 1])), "192.168.1.1"),
        (Endpoint(EndpointType.TCP_PORT, (4000).to_bytes(2, "big")), "4000"),
        (Endpoint(EndpointType.INVALID, b"\x01\x02"), "[1 2]"),
        (Endpoint(EndpointType.MAC, bytes([0x02, 0, 0, 0, 0, 0x01])), "02:00:00:00:00:01"),
    ],
)
def test_endpoint_str(endpoint, text):
    assert str(endpoint) == text


def test_logging_without_timestamp_warns(caplog):
    stream, handler = _sync_stream()
    with caplog.at_level(logging.WARNING, logger="dbreplay.stream"):
        stream.reassembled(_frame(0, b"a"), C2S)
    assert len(handler.packets) == 1
    assert any("fallback to last seen time" in r.getMessage() for r in caplog.records)