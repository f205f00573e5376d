from __future__ import annotations

import abc
import typing as tp

from bucketcache._core.models import CachedEntry, Response


class AsyncBaseStorage(abc.ABC):
    """
    Object store keyed by the rewritten origin URL.

    Implementations must keep the headers exactly as they were given and must not alter
    stored bytes. Capacity and eviction are the implementation's own business.
    """

    @abc.abstractmethod
    async def lookup(self, key: str) -> tp.Optional[CachedEntry]:
        raise NotImplementedError()

    @abc.abstractmethod
    async def store(self, key: str, response: Response) -> CachedEntry:
        """
        Persist the response, consuming its stream completely before returning.
        """
        raise NotImplementedError()

    async def close(self) -> None:
        pass
