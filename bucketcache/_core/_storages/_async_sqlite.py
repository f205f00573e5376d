from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import anysqlite

from bucketcache._core._storages._async_base import AsyncBaseStorage
from bucketcache._core._storages._packing import pack, unpack
from bucketcache._core.models import CachedEntry, Response
from bucketcache._utils import ensure_parent_dir

logger = logging.getLogger("bucketcache.storages")

# How often superseded entries are purged (seconds).
BATCH_CLEANUP_INTERVAL = 3600
# How long a superseded entry stays readable for requests that are still streaming it (seconds).
SOFT_DELETE_GRACE = 3600


class AsyncSqliteStorage(AsyncBaseStorage):
    """
    Object store backed by SQLite.

    Entry metadata lives in ``entries``, the body is split into chunks in ``streams``.
    A chunk numbered ``-1`` marks a body as complete; incomplete entries are never
    returned by `lookup`. When a newer entry for the same key completes, older ones
    are soft deleted and purged later, so readers that are still streaming them are
    not cut short.

    Args:
        connection: An open anysqlite connection. When omitted, one is opened lazily.
        database_path: Database file used when no connection is given.
    """

    _COMPLETE_CHUNK_NUMBER = -1

    def __init__(
        self,
        *,
        connection: Optional[anysqlite.Connection] = None,
        database_path: Union[str, Path] = "bucketcache.db",
    ) -> None:
        self.connection = connection
        self.database_path: Path = database_path if isinstance(database_path, Path) else Path(database_path)
        self.last_cleanup = time.time()
        self._initialized = False

    async def _ensure_connection(self) -> anysqlite.Connection:
        """Ensure connection is established and database is initialized."""
        if self.connection is None:
            self.connection = await anysqlite.connect(str(ensure_parent_dir(self.database_path)))
        if not self._initialized:
            await self._initialize_database()
            self._initialized = True
        return self.connection

    async def _initialize_database(self) -> None:
        assert self.connection is not None
        cursor = await self.connection.cursor()

        await cursor.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                id BLOB PRIMARY KEY,
                cache_key TEXT NOT NULL,
                data BLOB NOT NULL,
                created_at REAL NOT NULL,
                deleted_at REAL
            )
        """)

        await cursor.execute("""
            CREATE TABLE IF NOT EXISTS streams (
                entry_id BLOB NOT NULL,
                chunk_number INTEGER NOT NULL,
                chunk_data BLOB NOT NULL,
                PRIMARY KEY (entry_id, chunk_number),
                FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
            )
        """)

        await cursor.execute("CREATE INDEX IF NOT EXISTS idx_entries_cache_key ON entries(cache_key)")
        await cursor.execute("CREATE INDEX IF NOT EXISTS idx_entries_deleted_at ON entries(deleted_at)")

        await self.connection.commit()

    async def lookup(self, key: str) -> Optional[CachedEntry]:
        connection = await self._ensure_connection()
        cursor = await connection.cursor()
        await cursor.execute(
            "SELECT id, data FROM entries WHERE cache_key = ? AND deleted_at IS NULL ORDER BY created_at DESC",
            (key,),
        )

        for row in await cursor.fetchall():
            entry = unpack(row[1])
            if entry is None:
                continue

            # A concurrent writer may still be streaming this body
            if not await self._is_stream_complete(entry.id, cursor=cursor):
                continue

            return replace(
                entry,
                response=replace(entry.response, stream=self._stream_data_from_cache(entry.id.bytes)),
            )
        return None

    async def store(self, key: str, response: Response) -> CachedEntry:
        connection = await self._ensure_connection()
        cursor = await connection.cursor()

        entry = CachedEntry(
            id=uuid.uuid4(),
            key=key,
            response=Response(status_code=response.status_code, headers=response.headers, metadata={}),
            created_at=time.time(),
        )

        await cursor.execute(
            "INSERT INTO entries (id, cache_key, data, created_at, deleted_at) VALUES (?, ?, ?, ?, ?)",
            (entry.id.bytes, key, pack(entry), entry.created_at, None),
        )
        await connection.commit()

        try:
            content_length = await self._save_stream(response._aiter_stream(), entry.id.bytes)
        except Exception:
            logger.warning("Discarding partially stored entry for key %s", key)
            await self._hard_delete_entry(entry.id.bytes, cursor)
            await connection.commit()
            raise

        await self._supersede_older_entries(entry, cursor)
        await connection.commit()
        logger.debug("Stored %d bytes for key %s", content_length, key)

        if time.time() - self.last_cleanup >= BATCH_CLEANUP_INTERVAL:
            await self._batch_cleanup()

        return entry

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
            self._initialized = False

    async def _is_stream_complete(self, entry_id: uuid.UUID, cursor: anysqlite.Cursor) -> bool:
        await cursor.execute(
            "SELECT 1 FROM streams WHERE entry_id = ? AND chunk_number = ? LIMIT 1",
            (entry_id.bytes, self._COMPLETE_CHUNK_NUMBER),
        )
        return await cursor.fetchone() is not None

    async def _supersede_older_entries(self, entry: CachedEntry, cursor: anysqlite.Cursor) -> None:
        """
        Soft delete every other live entry for the key that is not newer than this one.
        """
        await cursor.execute(
            "UPDATE entries SET deleted_at = ? WHERE cache_key = ? AND id != ? AND created_at <= ? AND deleted_at IS NULL",
            (time.time(), entry.key, entry.id.bytes, entry.created_at),
        )

    async def _batch_cleanup(self) -> None:
        """
        Permanently delete entries that were superseded long enough ago.
        """
        self.last_cleanup = time.time()
        connection = await self._ensure_connection()
        cursor = await connection.cursor()
        await cursor.execute(
            "SELECT id FROM entries WHERE deleted_at IS NOT NULL AND deleted_at < ?",
            (time.time() - SOFT_DELETE_GRACE,),
        )
        rows = await cursor.fetchall()
        for row in rows:
            await self._hard_delete_entry(row[0], cursor)
        await connection.commit()
        if rows:
            logger.debug("Purged %d superseded entries", len(rows))

    async def _hard_delete_entry(self, entry_id: bytes, cursor: anysqlite.Cursor) -> None:
        await cursor.execute("DELETE FROM streams WHERE entry_id = ?", (entry_id,))
        await cursor.execute("DELETE FROM entries WHERE id = ?", (entry_id,))

    async def _save_stream(self, stream: AsyncIterator[bytes], entry_id: bytes) -> int:
        """
        Drain the stream into the ``streams`` table and mark it complete.
        """
        connection = await self._ensure_connection()
        chunk_number = 0
        content_length = 0
        async for chunk in stream:
            if not chunk:
                continue
            content_length += len(chunk)
            cursor = await connection.cursor()
            await cursor.execute(
                "INSERT INTO streams (entry_id, chunk_number, chunk_data) VALUES (?, ?, ?)",
                (entry_id, chunk_number, chunk),
            )
            await connection.commit()
            chunk_number += 1

        cursor = await connection.cursor()
        await cursor.execute(
            "INSERT INTO streams (entry_id, chunk_number, chunk_data) VALUES (?, ?, ?)",
            (entry_id, self._COMPLETE_CHUNK_NUMBER, b""),
        )
        await connection.commit()
        return content_length

    async def _stream_data_from_cache(self, entry_id: bytes) -> AsyncIterator[bytes]:
        chunk_number = 0

        connection = await self._ensure_connection()
        while True:
            cursor = await connection.cursor()
            await cursor.execute(
                "SELECT chunk_data FROM streams WHERE entry_id = ? AND chunk_number = ?",
                (entry_id, chunk_number),
            )
            result = await cursor.fetchone()

            if result is None:
                break
            yield result[0]
            chunk_number += 1
