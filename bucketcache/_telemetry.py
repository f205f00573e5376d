from __future__ import annotations

import abc
import hashlib
import logging
import time
import typing as tp
from dataclasses import dataclass
from pathlib import Path

import anyio
import anysqlite
from typing_extensions import Literal

from bucketcache._utils import ensure_parent_dir

logger = logging.getLogger("bucketcache.telemetry")

__all__ = (
    "TelemetryEvent",
    "AsyncBaseTelemetrySink",
    "LoggingTelemetrySink",
    "InMemoryTelemetrySink",
    "AsyncSqliteTelemetrySink",
    "fingerprint",
    "record_safely",
)

Classification = Literal["cache-hit", "cache-miss"]


def fingerprint(path: str) -> bytes:
    """
    Stable 32-byte digest of a request path, used to correlate telemetry events.

    This is never used as a cache key.
    """
    return hashlib.sha256(path.encode("utf-8")).digest()


@dataclass(frozen=True)
class TelemetryEvent:
    classification: Classification
    size_marker: int
    correlation_hash: bytes

    @classmethod
    def hit(cls, path: str) -> "TelemetryEvent":
        return cls(classification="cache-hit", size_marker=1, correlation_hash=fingerprint(path))

    @classmethod
    def miss(cls, path: str) -> "TelemetryEvent":
        return cls(classification="cache-miss", size_marker=0, correlation_hash=fingerprint(path))


class AsyncBaseTelemetrySink(abc.ABC):
    @abc.abstractmethod
    async def record(self, event: TelemetryEvent) -> None:
        raise NotImplementedError()

    async def close(self) -> None:
        pass


class LoggingTelemetrySink(AsyncBaseTelemetrySink):
    """Writes every event to the ``bucketcache.telemetry`` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def record(self, event: TelemetryEvent) -> None:
        logger.log(
            self.level,
            "Telemetry event: classification=%s size_marker=%d index=%s",
            event.classification,
            event.size_marker,
            event.correlation_hash.hex(),
        )


class InMemoryTelemetrySink(AsyncBaseTelemetrySink):
    def __init__(self) -> None:
        self.events: tp.List[TelemetryEvent] = []

    async def record(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    @property
    def classifications(self) -> tp.List[str]:
        return [event.classification for event in self.events]


class AsyncSqliteTelemetrySink(AsyncBaseTelemetrySink):
    """
    Appends events as data points to a SQLite table.

    Each row mirrors an analytics data point: one blob (the classification), one double
    (the size marker), one index (the correlation hash) and the time it was written.
    """

    def __init__(
        self,
        *,
        connection: tp.Optional[anysqlite.Connection] = None,
        database_path: tp.Union[str, Path] = "bucketcache_telemetry.db",
    ) -> None:
        self.connection = connection
        self.database_path = database_path if isinstance(database_path, Path) else Path(database_path)
        self._initialized = False

    async def _ensure_connection(self) -> anysqlite.Connection:
        if self.connection is None:
            self.connection = await anysqlite.connect(str(ensure_parent_dir(self.database_path)))
        if not self._initialized:
            cursor = await self.connection.cursor()
            await cursor.execute("""
                CREATE TABLE IF NOT EXISTS data_points (
                    blob_value TEXT NOT NULL,
                    double_value REAL NOT NULL,
                    index_value BLOB NOT NULL,
                    recorded_at REAL NOT NULL
                )
            """)
            await self.connection.commit()
            self._initialized = True
        return self.connection

    async def record(self, event: TelemetryEvent) -> None:
        connection = await self._ensure_connection()
        cursor = await connection.cursor()
        await cursor.execute(
            "INSERT INTO data_points (blob_value, double_value, index_value, recorded_at) VALUES (?, ?, ?, ?)",
            (event.classification, float(event.size_marker), event.correlation_hash, time.time()),
        )
        await connection.commit()

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
            self._initialized = False


async def record_safely(
    sink: tp.Optional[AsyncBaseTelemetrySink],
    event: TelemetryEvent,
    timeout: float = 1.0,
) -> None:
    """
    Record an event without ever letting the sink affect the request.

    Slow sinks are abandoned after ``timeout`` seconds, failures are logged and dropped.
    """
    if sink is None:
        return
    try:
        with anyio.move_on_after(timeout) as scope:
            await sink.record(event)
        if scope.cancelled_caught:
            logger.warning("Telemetry sink %s timed out after %.2fs", type(sink).__name__, timeout)
    except Exception:
        logger.warning("Telemetry sink %s failed", type(sink).__name__, exc_info=True)
