from __future__ import annotations

import typing as tp

import httpx
import pytest

from bucketcache import AsyncInMemoryStorage, AsyncOriginClient, AsyncRevalidationEngine, InMemoryTelemetrySink

Handler = tp.Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class MockOrigin:
    """
    Scripted origin bucket.

    Responses are queued per method and handed out in order; every request is recorded.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.queued: dict[str, list[tp.Union[httpx.Response, Handler]]] = {"GET": [], "HEAD": []}

    def queue(self, method: str, response: tp.Union[httpx.Response, Handler]) -> None:
        self.queued[method].append(response)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.queued[request.method]:
            raise RuntimeError(f"No more mocked {request.method} responses available")
        response = self.queued[request.method].pop(0)
        if callable(response):
            return response(request)
        return response

    def client(self) -> AsyncOriginClient:
        return AsyncOriginClient(client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))

    @property
    def methods(self) -> list[str]:
        return [request.method for request in self.requests]


def origin_response(status_code: int = 200, body: bytes = b"", headers: tp.Optional[dict[str, str]] = None) -> httpx.Response:
    # A ByteStream keeps httpx from adding a content-length header on its own.
    return httpx.Response(status_code, headers=headers or {}, stream=httpx.ByteStream(body))


class TrackedStream(httpx.AsyncByteStream):
    """Origin body that yields the given chunks and remembers whether it was closed."""

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self) -> tp.AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def origin() -> MockOrigin:
    return MockOrigin()


@pytest.fixture
def storage() -> AsyncInMemoryStorage:
    return AsyncInMemoryStorage()


@pytest.fixture
def telemetry() -> InMemoryTelemetrySink:
    return InMemoryTelemetrySink()


@pytest.fixture
def engine(origin: MockOrigin, storage: AsyncInMemoryStorage, telemetry: InMemoryTelemetrySink) -> AsyncRevalidationEngine:
    return AsyncRevalidationEngine(origin=origin.client(), storage=storage, telemetry=telemetry)
