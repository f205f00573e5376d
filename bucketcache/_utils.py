from __future__ import annotations

import typing as tp
from pathlib import Path
from typing import AsyncIterator, Iterable

import anyio

T = tp.TypeVar("T")

HEADERS_ENCODING = "latin-1"


async def make_async_iterator(
    iterable: Iterable[bytes],
) -> AsyncIterator[bytes]:
    for item in iterable:
        yield item


async def aclose_stream(stream: tp.Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


def filter_mapping(mapping: tp.Mapping[str, T], keys_to_exclude: tp.Iterable[str]) -> tp.Dict[str, T]:
    """
    Filter out specified keys from a string-keyed mapping using case-insensitive comparison.

    Example:
    ```python
        original = {'a': 1, 'B': 2, 'c': 3}
        filtered = filter_mapping(original, ['b'])
        # filtered will be {'a': 1, 'c': 3}
    ```
    """
    exclude_set = {k.lower() for k in keys_to_exclude}
    return {k: v for k, v in mapping.items() if k.lower() not in exclude_set}


class _TeeSource:
    def __init__(self, stream: AsyncIterator[bytes]) -> None:
        self._stream = stream
        self._lock = anyio.Lock()
        self._buffers: tp.List[tp.List[bytes]] = [[], []]
        self._active = [True, True]
        self._exhausted = False
        self._error: tp.Optional[BaseException] = None

    async def pull(self, branch: int) -> tp.Optional[bytes]:
        buffer = self._buffers[branch]
        async with self._lock:
            if buffer:
                return buffer.pop(0)
            if self._error is not None:
                raise self._error
            if self._exhausted:
                return None
            try:
                chunk = await self._stream.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                return None
            except Exception as exc:
                # Both branches must see the failure, not a silently truncated body
                self._error = exc
                raise
            other = 1 - branch
            if self._active[other]:
                self._buffers[other].append(chunk)
            return chunk

    async def release(self, branch: int) -> None:
        self._active[branch] = False
        self._buffers[branch].clear()
        if not any(self._active) and not self._exhausted:
            async with self._lock:
                await aclose_stream(self._stream)


class _TeeBranch:
    def __init__(self, source: _TeeSource, branch: int) -> None:
        self._source = source
        self._branch = branch
        self._closed = False

    def __aiter__(self) -> _TeeBranch:
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            chunk = await self._source.pull(self._branch)
        except Exception:
            await self.aclose()
            raise
        if chunk is None:
            await self.aclose()
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        # Safe to call before the first read, unlike an async generator's aclose
        if not self._closed:
            self._closed = True
            await self._source.release(self._branch)


def tee_stream(stream: AsyncIterator[bytes]) -> tp.Tuple[_TeeBranch, _TeeBranch]:
    """
    Split a single-consumption byte stream into two independently consumable streams.

    Chunks are pulled from the source lazily, by whichever branch asks first, and are
    buffered only until the other branch reads them. Closing one branch drops its buffer
    and leaves the other branch intact; the source is closed once both branches are gone.

    Example:
    ```python
        to_store, to_return = tee_stream(response.stream)
    ```
    """
    source = _TeeSource(stream)
    return _TeeBranch(source, 0), _TeeBranch(source, 1)


def ensure_parent_dir(path: Path) -> Path:
    """
    Create the directory holding `path`, if missing, and return `path` unchanged.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    return path
