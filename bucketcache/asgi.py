from __future__ import annotations

import logging
import typing as t

import anyio

from bucketcache._async_engine import AsyncRevalidationEngine
from bucketcache._config import ProxyConfig
from bucketcache._core._headers import Headers
from bucketcache._core._storages._async_sqlite import AsyncSqliteStorage
from bucketcache._core.models import Request, Response
from bucketcache._origin import AsyncOriginClient
from bucketcache._router import AsyncRequestRouter
from bucketcache._telemetry import AsyncBaseTelemetrySink, LoggingTelemetrySink
from bucketcache._utils import HEADERS_ENCODING, aclose_stream

logger = logging.getLogger("bucketcache.asgi")

__all__ = ("ASGIProxyApp", "create_app")


class _ASGIScope(t.TypedDict, total=False):
    """ASGI HTTP scope type."""

    type: str
    asgi: dict[str, str]
    http_version: str
    method: str
    scheme: str
    path: str
    raw_path: bytes
    query_string: bytes
    root_path: str
    headers: list[tuple[bytes, bytes]]
    server: tuple[str, int | None] | None
    client: tuple[str, int] | None
    state: dict[str, t.Any]
    extensions: dict[str, t.Any]


_Scope = _ASGIScope
_Receive = t.Callable[[], t.Awaitable[dict[str, t.Any]]]
_Send = t.Callable[[dict[str, t.Any]], t.Awaitable[None]]


class ASGIProxyApp:
    """
    ASGI application serving the bucket through the cache.

    Request bodies are ignored; only the method, URL and headers are meaningful.
    Response bodies are streamed to the client chunk by chunk.

    Args:
        router: The router every HTTP request is dispatched to.

    Example:
        ```python
        from bucketcache.asgi import create_app

        app = create_app()  # reads BUCKETCACHE_ORIGIN_HOST and friends
        ```
    """

    def __init__(self, router: AsyncRequestRouter) -> None:
        self.router = router

    async def __call__(self, scope: _Scope, receive: _Receive, send: _Send) -> None:
        if scope["type"] != "http":
            logger.debug("Skipping non-HTTP request: type=%s", scope["type"])
            return

        request = self._asgi_to_internal_request(scope)
        logger.debug("Incoming HTTP request: method=%s url=%s", request.method, request.url)

        # The object store write runs in the task group; a failed send must not cancel it
        send_error: t.Optional[Exception] = None
        async with anyio.create_task_group() as task_group:
            response = await self.router.dispatch(request, task_group=task_group)
            try:
                await self._send_internal_response(response, send)
            except Exception as exc:
                send_error = exc
            finally:
                await aclose_stream(response.stream)
        if send_error is not None:
            raise send_error

    def _asgi_to_internal_request(self, scope: _Scope) -> Request:
        scheme = scope.get("scheme", "http")
        server = scope.get("server")

        if server is None:
            server = ("localhost", 80)

        host = server[0]
        port = server[1] if server[1] is not None else (443 if scheme == "https" else 80)

        if (scheme == "http" and port != 80) or (scheme == "https" and port != 443):
            host = f"{host}:{port}"

        # raw_path keeps escapes such as %2F, %3F and %23 that are part of the object key
        raw_path = scope.get("raw_path")
        path = raw_path.decode(HEADERS_ENCODING) if raw_path else scope.get("path", "/")
        query_string = scope.get("query_string", b"")
        if query_string:
            path = f"{path}?{query_string.decode(HEADERS_ENCODING)}"

        return Request(
            method=scope.get("method", "GET"),
            url=f"{scheme}://{host}{path}",
            headers=Headers.from_pairs(
                (key.decode(HEADERS_ENCODING), value.decode(HEADERS_ENCODING))
                for key, value in scope.get("headers", [])
            ),
            metadata={},
        )

    async def _send_internal_response(self, response: Response, send: _Send) -> None:
        headers: list[tuple[bytes, bytes]] = [
            (key.encode(HEADERS_ENCODING), value.encode(HEADERS_ENCODING)) for key, value in response.headers.pairs()
        ]

        await send(
            {
                "type": "http.response.start",
                "status": response.status_code,
                "headers": headers,
            }
        )

        bytes_sent = 0
        try:
            async for chunk in response._aiter_stream():
                await send(
                    {
                        "type": "http.response.body",
                        "body": chunk,
                        "more_body": True,
                    }
                )
                bytes_sent += len(chunk)
        except Exception as e:
            logger.error(
                "Error streaming response body: status=%d bytes_sent=%d error=%s",
                response.status_code,
                bytes_sent,
                str(e),
                exc_info=True,
            )
            raise

        await send(
            {
                "type": "http.response.body",
                "body": b"",
                "more_body": False,
            }
        )
        logger.debug("Response fully sent: status=%d total_bytes=%d", response.status_code, bytes_sent)

    async def aclose(self) -> None:
        """Close the object store, the telemetry sink and the origin client."""
        engine = self.router.engine
        await engine.storage.close()
        if engine.telemetry is not None:
            await engine.telemetry.close()
        await self.router.origin.aclose()


def create_app(
    config: ProxyConfig | None = None,
    telemetry: AsyncBaseTelemetrySink | None = None,
) -> ASGIProxyApp:
    """
    Wire up the default stack: httpx origin client, SQLite object store, logging telemetry.
    """
    config = config if config is not None else ProxyConfig.from_env()
    if not config.origin_host:
        logger.warning("No origin host configured; every request will fail with 500")

    origin = AsyncOriginClient(timeout=config.origin_timeout)
    engine = AsyncRevalidationEngine(
        origin=origin,
        storage=AsyncSqliteStorage(database_path=config.database_path),
        telemetry=telemetry if telemetry is not None else LoggingTelemetrySink(),
        telemetry_timeout=config.telemetry_timeout,
    )
    return ASGIProxyApp(AsyncRequestRouter(config=config, engine=engine, origin=origin))
