"""TiDB timestamp oracle values and binlog checkpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

log = logging.getLogger(__name__)

PHYSICAL_SHIFT_BITS = 18
LOGICAL_BITS = (1 << PHYSICAL_SHIFT_BITS) - 1

CHECKPOINT_QUERY = "select checkPoint  from tidb_binlog.checkpoint; "

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class MysqlCheckPoint:
    """Checkpoint saved by the TiDB binlog drainer."""

    consistent: bool = False
    commit_ts: int = 0
    ts_map: Dict[str, int] = field(default_factory=dict)
    version: int = 0

    @classmethod
    def from_json(cls, text: str) -> "MysqlCheckPoint":
        """Parse a checkpoint from its JSON text; raise ValueError if invalid."""
        data: Any = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("checkpoint is not a JSON object")
        consistent = data.get("consistent", False)
        commit_ts = data.get("commitTS", 0)
        ts_map = data.get("ts-map") or {}
        version = data.get("schema-version", 0)
        if not isinstance(consistent, bool):
            raise ValueError("checkpoint field consistent is not a bool")
        if not isinstance(commit_ts, int) or isinstance(commit_ts, bool) or commit_ts < 0:
            raise ValueError("checkpoint field commitTS is not an unsigned integer")
        if not isinstance(ts_map, dict) or not all(
            isinstance(v, int) and not isinstance(v, bool) for v in ts_map.values()
        ):
            raise ValueError("checkpoint field ts-map is not a map of integers")
        if not isinstance(version, int) or isinstance(version, bool):
            raise ValueError("checkpoint field schema-version is not an integer")
        return cls(
            consistent=consistent,
            commit_ts=commit_ts,
            ts_map=dict(ts_map),
            version=version,
        )


@dataclass
class TSO:
    """A timestamp split into its physical time and logical counter."""

    physical_time: datetime = _EPOCH
    logical: int = 0

    def parse_ts(self, ts: int) -> None:
        """Split a 64-bit timestamp into physical time and logical parts."""
        self.logical = ts & LOGICAL_BITS
        physical_ms = ts >> PHYSICAL_SHIFT_BITS
        self.physical_time = _EPOCH + timedelta(milliseconds=physical_ms)

    def get_tso_from_tidb(self, conn: Any) -> int:
        """Read the binlog checkpoint over a DB-API connection and return its commit TS."""
        text = ""
        cursor = conn.cursor()
        try:
            try:
                cursor.execute(CHECKPOINT_QUERY)
            except Exception as exc:
                log.error("query checkpoint tso fail ,%s", exc)
                raise
            try:
                for row in cursor:
                    text = row[0]
                    log.info("get checkpoint from db success ,%s", text)
            except Exception as exc:
                log.error("Scan failed,err:%s", exc)
                raise
        finally:
            try:
                cursor.close()
            except Exception as exc:
                log.error("close row error ,%s", exc)
        if isinstance(text, (bytes, bytearray)):
            text = text.decode()
        try:
            checkpoint = MysqlCheckPoint.from_json(text)
        except ValueError as exc:
            log.error("unmarshal checkpoint fail,%s", exc)
            raise
        return checkpoint.commit_ts