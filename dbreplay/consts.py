"""Enumerations shared across the replay tool."""

from __future__ import annotations

import json
from enum import IntEnum

UINT64_MAX = (1 << 64) - 1


class ParserState(IntEnum):
    """States of the MySQL protocol parser."""

    INIT = 0
    UNKNOWN = 1
    COM_QUERY = 2
    COM_STMT_EXECUTE = 3
    COM_STMT_CLOSE = 4
    COM_STMT_PREPARE0 = 5
    COM_STMT_PREPARE1 = 6
    COM_QUIT = 7
    HANDSHAKE0 = 8
    HANDSHAKE1 = 9
    COM_QUERY1 = 10
    COM_QUERY2 = 11
    COM_STMT_EXECUTE1 = 12
    COM_STMT_EXECUTE2 = 13
    SKIP_PACKET = 14


_EVENT_NAMES = {
    1: "handshake",
    2: "quit",
    3: "query",
    4: "stmt_prepare",
    5: "stmt_execute",
    6: "stmt_close",
}


class MysqlEventType(IntEnum):
    """Kinds of events recorded from a MySQL session."""

    HANDSHAKE = 1
    QUIT = 2
    QUERY = 3
    STMT_PREPARE = 4
    STMT_EXECUTE = 5
    STMT_CLOSE = 6

    def __str__(self) -> str:
        return _EVENT_NAMES[self.value]

    def to_json(self) -> str:
        """Return the event name as a JSON string."""
        return json.dumps(str(self))


class RunType(IntEnum):
    """Where captured traffic is read from."""

    TEXT = 0
    DIR = 1
    ONLINE = 2


class ReplayDecision(IntEnum):
    """What to do with a statement seen at a given time."""

    NOT_WRITE_LOG = 0
    NEED_WRITE_LOG = 1
    NEED_REPLAY_SQL = 2


class StmtType(IntEnum):
    """Broad classification of SQL statements."""

    SELECT = 0
    OUTFILE = 1
    SET = 2
    USE = 3
    UPDATE = 4
    INSERT = 5
    DELETE = 6
    DDL = 7
    UNKNOWN = 8