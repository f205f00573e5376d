from __future__ import annotations

import logging
import types
import typing as tp
from typing import AsyncIterator

import httpx
from typing_extensions import Literal, Self

from bucketcache._core._headers import Headers
from bucketcache._core.models import Request, RequestIdentity, Response
from bucketcache._exceptions import OriginTransportError
from bucketcache._utils import filter_mapping, make_async_iterator

logger = logging.getLogger("bucketcache.origin")

__all__ = ("AsyncOriginClient",)

# 128 KB
CHUNK_SIZE = 131072

# Hop-by-hop headers that must not be replayed to our own client.
HOP_BY_HOP_HEADERS = ("transfer-encoding", "connection", "keep-alive")


def _httpx_to_internal(response: httpx.Response, stream: AsyncIterator[bytes]) -> Response:
    headers = Headers.from_pairs(
        (key, value)
        for key, value in response.headers.multi_items()
        if key.lower() not in HOP_BY_HOP_HEADERS
    )
    return Response(
        status_code=response.status_code,
        headers=headers,
        stream=stream,
        metadata={},
    )


class _OriginBody:
    """
    Raw body of a streamed origin response.

    The response is closed when the body is drained, fails, or is closed, even before
    the first chunk was read.
    """

    def __init__(self, response: httpx.Response, request: Request) -> None:
        self._response = response
        self._request = request
        self._chunks = response.aiter_raw(chunk_size=CHUNK_SIZE)

    def __aiter__(self) -> _OriginBody:
        return self

    async def __anext__(self) -> bytes:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise
        except httpx.TransportError as exc:
            await self.aclose()
            raise OriginTransportError(
                f"{self._request.method} {self._request.url} failed while streaming: {exc}"
            ) from exc

    async def aclose(self) -> None:
        await self._response.aclose()


class AsyncOriginClient:
    """
    Talks to the origin bucket over plain HTTP.

    Any status code the origin answers with is returned as a normal `Response`.
    Only transport failures (DNS, refused connections, timeouts, broken streams)
    raise, as `OriginTransportError`.

    Args:
        client: The httpx client to use. When omitted, one is created and owned by this object.
        timeout: Seconds to wait for the origin, used only for the client created here.
    """

    def __init__(self, client: tp.Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> None:
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def fetch(
        self,
        method: Literal["GET", "HEAD"],
        identity: RequestIdentity,
        conditional_headers: tp.Optional[tp.Mapping[str, tp.Optional[str]]] = None,
    ) -> Response:
        headers = Headers()
        for key, value in (conditional_headers or {}).items():
            if value:
                headers[key] = value
        return await self.send(Request(method=method, url=identity.url, headers=headers))

    async def send(self, request: Request) -> Response:
        # Ask for the body as stored, so raw bytes and content-length agree.
        headers = {"accept-encoding": "identity", **filter_mapping(request.headers, ["accept-encoding"])}
        httpx_request = self._client.build_request(request.method, request.url, headers=headers)

        logger.debug("Sending %s %s", request.method, request.url)
        try:
            httpx_response = await self._client.send(httpx_request, stream=True)
        except httpx.TransportError as exc:
            raise OriginTransportError(f"{request.method} {request.url} failed: {exc}") from exc

        logger.debug("Origin answered %s %s with status %d", request.method, request.url, httpx_response.status_code)

        if request.method == "HEAD":
            try:
                await httpx_response.aread()
            except httpx.TransportError as exc:
                raise OriginTransportError(f"{request.method} {request.url} failed: {exc}") from exc
            finally:
                await httpx_response.aclose()
            return _httpx_to_internal(httpx_response, make_async_iterator([]))

        return _httpx_to_internal(httpx_response, _OriginBody(httpx_response, request))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        await self.aclose()
