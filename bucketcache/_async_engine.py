from __future__ import annotations

import logging
import typing as tp

from anyio.abc import TaskGroup
from typing_extensions import assert_never

from bucketcache._core._spec import (
    AnyState,
    CacheMiss,
    CacheOptions,
    CouldNotBeStored,
    FromCache,
    IdleClient,
    NeedRevalidation,
    StoreAndUse,
)
from bucketcache._core._storages._async_base import AsyncBaseStorage
from bucketcache._core.models import RequestIdentity, Response
from bucketcache._origin import AsyncOriginClient
from bucketcache._telemetry import AsyncBaseTelemetrySink, TelemetryEvent, record_safely
from bucketcache._utils import aclose_stream, tee_stream

logger = logging.getLogger("bucketcache.engine")


class AsyncRevalidationEngine:
    """
    Decides, per request, whether to serve a stored object, revalidate it, or refetch it.

    The decision logic lives in the state classes; this class performs the I/O each state
    asks for and feeds the results back in.

    Args:
        origin: Client used to reach the origin bucket.
        storage: Object store holding previously fetched objects.
        telemetry: Sink receiving cache hit/miss events. Optional.
        options: Engine policy. Defaults to CacheOptions().
        telemetry_timeout: Upper bound, in seconds, for recording one telemetry event.
    """

    def __init__(
        self,
        origin: AsyncOriginClient,
        storage: AsyncBaseStorage,
        telemetry: tp.Optional[AsyncBaseTelemetrySink] = None,
        options: tp.Optional[CacheOptions] = None,
        telemetry_timeout: float = 1.0,
    ) -> None:
        self.origin = origin
        self.storage = storage
        self.telemetry = telemetry
        self.options = options if options is not None else CacheOptions()
        self.telemetry_timeout = telemetry_timeout

    async def resolve(self, identity: RequestIdentity, task_group: tp.Optional[TaskGroup] = None) -> Response:
        """
        Produce the response for `identity`.

        When `task_group` is given, a fetched object is written to the object store in a task
        started there, while the returned body is streamed; otherwise the write finishes first.
        """
        state: AnyState = IdleClient(identity=identity, options=self.options)

        while state:
            logger.debug(f"Handling state: {state.__class__.__name__}")
            if isinstance(state, IdleClient):
                state = await self._handle_idle_state(state)
            elif isinstance(state, NeedRevalidation):
                state = await self._handle_revalidation(state)
            elif isinstance(state, CacheMiss):
                state = await self._handle_cache_miss(state)
            elif isinstance(state, StoreAndUse):
                return await self._handle_store_and_use(state, task_group)
            elif isinstance(state, CouldNotBeStored):
                logger.error(f"url: {identity} returned status: {state.response.status_code}")
                return state.response
            elif isinstance(state, FromCache):
                return await self._handle_from_cache(state)
            else:
                assert_never(state)

        raise RuntimeError("Unreachable")

    async def _handle_idle_state(self, state: IdleClient) -> AnyState:
        entry = await self.storage.lookup(state.identity.url)
        return state.next(entry)

    async def _handle_revalidation(self, state: NeedRevalidation) -> AnyState:
        revalidation_response = await self.origin.send(state.request)
        next_state = state.next(revalidation_response)
        if isinstance(next_state, CacheMiss):
            logger.info(f"Cache invalidation for: {state.identity} etag: {state.entry.validators.etag}")
        return next_state

    async def _handle_cache_miss(self, state: CacheMiss) -> AnyState:
        if not state.after_revalidation:
            logger.info(f"Cache miss for: {state.identity}")
        logger.debug(f"Updating cache for: {state.identity}")

        if state.emits_miss_event:
            await record_safely(self.telemetry, TelemetryEvent.miss(state.identity.path), self.telemetry_timeout)
        response = await self.origin.send(state.request)
        return state.next(response)

    async def _handle_store_and_use(self, state: StoreAndUse, task_group: tp.Optional[TaskGroup]) -> Response:
        to_store, to_return = tee_stream(state.response.stream)
        stored = Response(status_code=state.response.status_code, headers=state.response.headers, stream=to_store)
        state.response.stream = to_return

        if task_group is not None:
            task_group.start_soon(self._store_in_background, state.identity, stored)
            return state.response

        try:
            await self._store(state.identity, stored)
        except Exception:
            await to_return.aclose()
            raise
        return state.response

    async def _store(self, identity: RequestIdentity, response: Response) -> None:
        try:
            await self.storage.store(identity.url, response)
        finally:
            await aclose_stream(response.stream)
        logger.info(f"Cache updated for: {identity}. etag: {response.headers.get('etag')}")

    async def _store_in_background(self, identity: RequestIdentity, response: Response) -> None:
        try:
            await self._store(identity, response)
        except Exception:
            logger.error(f"Failed to update cache for: {identity}", exc_info=True)

    async def _handle_from_cache(self, state: FromCache) -> Response:
        logger.info(f"Cache hit for: {state.identity} etag: {state.entry.validators.etag}")
        await record_safely(self.telemetry, TelemetryEvent.hit(state.identity.path), self.telemetry_timeout)
        return state.entry.response
