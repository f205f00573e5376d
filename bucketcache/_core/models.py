from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Mapping,
    Optional,
    TypedDict,
    cast,
)

import httpx

from bucketcache._core._headers import Headers
from bucketcache._utils import make_async_iterator


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "bucketcache_" to avoid collisions with user data
    bucketcache_from_cache: bool
    """Indicates whether the response was served from cache."""

    bucketcache_revalidated: bool
    """Indicates whether the response went through a conditional request to the origin."""

    bucketcache_stored: bool
    """Indicates whether the response was written to the object store."""

    bucketcache_created_at: float
    """Timestamp when the served entry was cached."""


@dataclass
class Request:
    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: ResponseMetadata | Mapping[str, Any] = field(default_factory=dict)

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            async for chunk in self.stream:
                yield chunk
        else:
            raise TypeError("Response stream is not an AsyncIterator")

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire response body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            raise TypeError("Response stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected


@dataclass(frozen=True)
class RequestIdentity:
    """
    The inbound URL rewritten to point at the origin bucket.

    Used both as the object store key and as the fetch target.
    """

    url: str

    @property
    def path(self) -> str:
        # Percent-encoded, without the query string
        return httpx.URL(self.url).raw_path.decode("ascii").split("?", 1)[0]

    @property
    def is_root(self) -> bool:
        return self.path == "/"

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class Validators:
    etag: Optional[str] = None
    last_modified: Optional[str] = None


@dataclass
class CachedEntry:
    id: uuid.UUID
    key: str
    response: Response
    created_at: float = field(default_factory=time.time)

    @property
    def validators(self) -> Validators:
        headers = self.response.headers
        return Validators(etag=headers.get("etag"), last_modified=headers.get("last-modified"))

    @property
    def content_length(self) -> Optional[int]:
        value = self.response.headers.get("content-length")
        if value is None or not value.isdigit():
            return None
        return int(value)
