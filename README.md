# dbreplay

`dbreplay` is a library of building blocks for capturing MySQL traffic and
replaying it against another server. It provides these parts:

- it rebuilds MySQL protocol packets from reassembled TCP payloads;
- it decodes and encodes MySQL wire values and date/time values;
- it reads TiDB binlog checkpoints as TSO timestamps;
- it checks the settings that control where output goes and when replay begins.

Install with `pip install .`. Add the `test` extra to get pytest.

## Modules

| Module | What it does |
| --- | --- |
| `dbreplay.consts` | Enumerations: `ParserState`, `MysqlEventType`, `RunType`, `ReplayDecision`, `StmtType`; the constant `UINT64_MAX` |
| `dbreplay.stream` | Splits reassembled TCP payloads into `MySQLPacket`s for each direction. Also holds `ConnID`, `Flow`, `Endpoint`, `Direction`, `MySQLStream`, `MySQLStreamFactory`, `PacketHandler` |
| `dbreplay.wire` | Length-encoded integers and strings, backslash and quote escaping, `AtomicBool`, `AtomicError`, a TLS config registry, isolation level names |
| `dbreplay.mysqltime` | Parses and formats MySQL text and binary `DATE`, `DATETIME` and `TIME` values |
| `dbreplay.tso` | `TSO` timestamps and the `MysqlCheckPoint` read from a TiDB binlog checkpoint |
| `dbreplay.config` | Replay `Config`, DSN parsing (`parse_dsn`, `DsnConfig`), begin-time parsing, argparse option sets |
| `dbreplay.dirs` | Checks that a directory exists and is writable, and counts, sizes and lists the files in it |
| `dbreplay.files` | Opens output files; `FileNameSequence` keeps a running file-name suffix |
| `dbreplay.watchdir` | Polls a directory and records the entries created in it |

## Examples

### Splitting MySQL packets out of a TCP stream

A MySQL packet starts with a 3-byte little-endian payload length. A 1-byte
sequence number follows it:

```python
from dbreplay.stream import lookup_packet_len, lookup_packet_seq, fnv_hash

header = b"\x05\x00\x00\x00"
lookup_packet_len(header)   # 5
lookup_packet_seq(header)   # 0
lookup_packet_seq(b"123")   # -1: the header is not complete yet

fnv_hash(b"12345", b"abcde", b"!@#$%")   # 64-bit FNV-1a hash over all chunks
```

To reassemble packets:

1. Give `MySQLStreamFactory` a callable that builds a `PacketHandler` for each
   `ConnID`.
2. Call `factory.new(net_flow, tcp_flow)` to get a `MySQLStream`.
3. Feed the stream with `reassembled(data, direction, skip, timestamp)`.

The handler's `on_packet` is called once for every complete packet. While the
first data of a connection arrives, a first packet whose sequence number is
not 0 is dropped.

`FactoryOptions(synchronized=True)` delivers packets on the caller's thread.
Otherwise a worker thread delivers them through a queue.
`reassembly_complete()` waits for outstanding packets and then calls
`on_close`.

### Length-encoded values

```python
from dbreplay.wire import read_length_encoded_integer, uint64_to_string

read_length_encoded_integer(bytes([0xFC, 1, 2]))   # (513, False, 3)
uint64_to_string(123456)                           # b"123456"
```

A length-encoded string that runs past the end of the buffer raises
`EOFError`.

### Dates and times

```python
from datetime import timezone
from dbreplay.mysqltime import parse_date_time, format_date_time

t = parse_date_time(b"2021-11-24 09:53:53.000000", timezone.utc)
format_date_time(t)   # "2021-11-24 09:53:53"
```

### TiDB checkpoints

```python
from dbreplay.tso import TSO, MysqlCheckPoint

checkpoint = MysqlCheckPoint.from_json(
    '{"consistent": false, "commitTS": 427779224058986498,'
    ' "ts-map": {}, "schema-version": 61}'
)
tso = TSO()
tso.parse_ts(checkpoint.commit_ts)
tso.physical_time   # UTC datetime of the physical part
tso.logical         # the low 18 bits
```

`TSO.get_tso_from_tidb(conn)` reads the same checkpoint from
`tidb_binlog.checkpoint` through an open DB-API connection. It returns the
commit TS.

### DSNs

```python
from dbreplay.config import parse_dsn

dsn = parse_dsn("user:password@tcp(localhost:3306)/mysql")
dsn.addr          # "localhost:3306"
dsn.format_dsn()
```

### Configuration and when replay begins

`add_dir_arguments`, `add_text_arguments` and `add_online_arguments` each add
one set of options to an `argparse.ArgumentParser`.

`Config.check_param_valid()` validates a configuration:

- it parses the begin time;
- it makes sure the output directory exists and is writable, and creates it
  when it is missing;
- in online mode, it does the same for the store directory;
- when a DSN is set, it parses the DSN and connects to the target server
  with pymysql.

The begin time is written as `YYYY-MM-DD HH:MM:SS.mmm` (23 characters, local
time). `Config.check_need_replay(ts)` takes `ts` in nanoseconds and returns a
`ReplayDecision`:

- more than 100 ms before the begin time: `NOT_WRITE_LOG`;
- within 100 ms before it: `NEED_WRITE_LOG`;
- after it, or when no begin time is set: `NEED_REPLAY_SQL`. Replay stays on
  from then on.

Errors are raised as exceptions. Examples are a malformed date or DSN, an
empty output path (`ValueError`), a path that is not a directory
(`DirPathNotDirError`), and an unknown isolation level.

## What this package does not do

It has no command-line program. The argparse option sets are there for you to
build one. It does not capture packets from a network device or read capture
files. It does not do TCP reassembly itself: it expects data that has already
been reassembled. It does not decode MySQL commands or replay statements
against a server, and it does not compare result sets.