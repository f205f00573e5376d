from __future__ import annotations

import logging
import typing as tp

import httpx
from anyio.abc import TaskGroup

from bucketcache._async_engine import AsyncRevalidationEngine
from bucketcache._config import ProxyConfig
from bucketcache._core._headers import Headers
from bucketcache._core.models import Request, RequestIdentity, Response
from bucketcache._exceptions import ConfigurationError, OriginTransportError
from bucketcache._origin import AsyncOriginClient
from bucketcache._utils import make_async_iterator

logger = logging.getLogger("bucketcache.router")

__all__ = ("AsyncRequestRouter",)


def error_response(status_code: int, message: str) -> Response:
    body = message.encode("utf-8")
    return Response(
        status_code=status_code,
        headers=Headers({"content-type": "text/plain; charset=utf-8", "content-length": str(len(body))}),
        stream=make_async_iterator([body]),
        metadata={},
    )


class AsyncRequestRouter:
    """
    Entry point for every inbound request.

    The request URL is rewritten to the configured origin. The root path is proxied
    straight through, since it usually serves a bucket listing that must never go stale;
    every other path goes through the revalidation engine.
    """

    def __init__(
        self,
        config: ProxyConfig,
        engine: AsyncRevalidationEngine,
        origin: tp.Optional[AsyncOriginClient] = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.origin = origin if origin is not None else engine.origin

    def rewrite(self, url: str) -> RequestIdentity:
        """
        Point the URL at the origin host, keeping its path and query.

        Raises:
            ConfigurationError: If no origin host is configured.
        """
        origin_host = self.config.require_origin_host()
        target = httpx.URL(url).copy_with(host=origin_host, port=self.config.origin_port)
        if self.config.origin_scheme:
            target = target.copy_with(scheme=self.config.origin_scheme)
        return RequestIdentity(url=str(target))

    async def route(self, request: Request, task_group: tp.Optional[TaskGroup] = None) -> Response:
        logger.info(f"Handling request for: {request.url}")

        try:
            identity = self.rewrite(request.url)
        except ConfigurationError as exc:
            logger.error("Refusing request for %s: %s", request.url, exc)
            return error_response(500, str(exc))

        if identity.is_root:
            logger.info(f"Proxying request for: {identity}")
            return await self.origin.send(Request(method="GET", url=identity.url))

        return await self.engine.resolve(identity, task_group=task_group)

    async def dispatch(self, request: Request, task_group: tp.Optional[TaskGroup] = None) -> Response:
        """
        Like `route`, but never raises: any failure becomes an error response.
        """
        try:
            return await self.route(request, task_group=task_group)
        except OriginTransportError as exc:
            logger.error("Origin unreachable for %s", request.url, exc_info=True)
            return error_response(502, f"Error thrown {exc}")
        except Exception as exc:
            logger.error("Unhandled error for %s", request.url, exc_info=True)
            return error_response(500, f"Error thrown {exc}")
