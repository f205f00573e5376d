from __future__ import annotations

import logging
import time
import typing as tp
import uuid
from dataclasses import replace

from bucketcache._core._headers import Headers
from bucketcache._core._storages._async_base import AsyncBaseStorage
from bucketcache._core.models import CachedEntry, Response
from bucketcache._utils import make_async_iterator

logger = logging.getLogger("bucketcache.storages")


class AsyncInMemoryStorage(AsyncBaseStorage):
    """
    A process-local object store, mostly useful for tests and single-worker deployments.
    """

    def __init__(self) -> None:
        self._entries: tp.Dict[str, tp.Tuple[CachedEntry, bytes]] = {}

    async def lookup(self, key: str) -> tp.Optional[CachedEntry]:
        stored = self._entries.get(key)
        if stored is None:
            return None
        entry, body = stored
        return replace(
            entry,
            response=Response(
                status_code=entry.response.status_code,
                headers=Headers(entry.response.headers._headers),
                stream=make_async_iterator([body]),
                metadata={},
            ),
        )

    async def store(self, key: str, response: Response) -> CachedEntry:
        body = b"".join([chunk async for chunk in response._aiter_stream()])
        entry = CachedEntry(
            id=uuid.uuid4(),
            key=key,
            response=Response(
                status_code=response.status_code, headers=Headers(response.headers._headers), metadata={}
            ),
            created_at=time.time(),
        )
        self._entries[key] = (entry, body)
        logger.debug("Stored %d bytes for key %s", len(body), key)
        return entry

    def __len__(self) -> int:
        return len(self._entries)
