import uuid
from datetime import datetime
from unittest.mock import patch
from zoneinfo import ZoneInfo

import anysqlite
import pytest
from time_machine import travel

from bucketcache import AsyncInMemoryStorage, AsyncSqliteStorage, Headers, Response
from bucketcache._core._storages._packing import pack, unpack
from bucketcache._core.models import CachedEntry
from bucketcache._utils import make_async_iterator

KEY = "https://bucket.example.com/images/logo.png"
STORED_HEADERS = {"cache-control": "public, max-age=14400", "etag": '"abc"', "last-modified": "Tue"}


def create_response(body: list[bytes], headers: dict[str, str] = STORED_HEADERS) -> Response:
    return Response(status_code=200, headers=Headers(headers), stream=make_async_iterator(body))


@pytest.fixture(params=["memory", "sqlite"])
async def storage(request: pytest.FixtureRequest):  # type: ignore[no-untyped-def]
    if request.param == "memory":
        yield AsyncInMemoryStorage()
        return
    sqlite_storage = AsyncSqliteStorage(connection=await anysqlite.connect(":memory:"))
    yield sqlite_storage
    await sqlite_storage.close()


@pytest.mark.anyio
async def test_lookup_of_unknown_key_is_none(storage) -> None:  # type: ignore[no-untyped-def]
    assert await storage.lookup(KEY) is None


@pytest.mark.anyio
async def test_store_then_lookup_preserves_headers_and_bytes(storage) -> None:  # type: ignore[no-untyped-def]
    await storage.store(KEY, create_response([b"\x89PNG", b"\r\n\x1a\n", b"\x00" * 10]))

    entry = await storage.lookup(KEY)

    assert entry is not None
    assert entry.key == KEY
    assert entry.response.status_code == 200
    assert entry.response.headers == Headers(STORED_HEADERS)
    assert await entry.response.aread() == b"\x89PNG\r\n\x1a\n" + b"\x00" * 10


@pytest.mark.anyio
async def test_lookup_streams_are_independent(storage) -> None:  # type: ignore[no-untyped-def]
    await storage.store(KEY, create_response([b"body"]))

    first = await storage.lookup(KEY)
    second = await storage.lookup(KEY)

    assert first is not None and second is not None
    assert await first.response.aread() == b"body"
    assert await second.response.aread() == b"body"


@pytest.mark.anyio
async def test_last_write_wins(storage) -> None:  # type: ignore[no-untyped-def]
    await storage.store(KEY, create_response([b"old"], {"cache-control": "public, max-age=14400", "etag": '"1"'}))
    await storage.store(KEY, create_response([b"new"], {"cache-control": "public, max-age=14400", "etag": '"2"'}))

    entry = await storage.lookup(KEY)

    assert entry is not None
    assert entry.validators.etag == '"2"'
    assert await entry.response.aread() == b"new"


@pytest.mark.anyio
async def test_empty_body_is_stored(storage) -> None:  # type: ignore[no-untyped-def]
    await storage.store(KEY, create_response([]))

    entry = await storage.lookup(KEY)

    assert entry is not None
    assert await entry.response.aread() == b""


@pytest.mark.anyio
async def test_sqlite_discards_entry_when_body_fails() -> None:
    storage = AsyncSqliteStorage(connection=await anysqlite.connect(":memory:"))
    await storage.store(KEY, create_response([b"good"]))

    async def broken():  # type: ignore[no-untyped-def]
        yield b"partial"
        raise RuntimeError("connection dropped")

    with pytest.raises(RuntimeError):
        await storage.store(KEY, Response(status_code=200, headers=Headers(STORED_HEADERS), stream=broken()))

    entry = await storage.lookup(KEY)
    assert entry is not None
    assert await entry.response.aread() == b"good"

    connection = await storage._ensure_connection()
    cursor = await connection.cursor()
    await cursor.execute("SELECT COUNT(*) FROM entries")
    assert (await cursor.fetchone())[0] == 1


@pytest.mark.anyio
async def test_sqlite_superseded_entry_stays_readable() -> None:
    storage = AsyncSqliteStorage(connection=await anysqlite.connect(":memory:"))
    await storage.store(KEY, create_response([b"old-1", b"old-2"]))
    old = await storage.lookup(KEY)
    assert old is not None

    await storage.store(KEY, create_response([b"new"]))

    assert await old.response.aread() == b"old-1old-2"


@pytest.mark.anyio
async def test_sqlite_cleanup_purges_superseded_entries() -> None:
    storage = AsyncSqliteStorage(connection=await anysqlite.connect(":memory:"))

    with travel(datetime(2024, 1, 1, 0, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False):
        storage.last_cleanup = datetime(2024, 1, 1, tzinfo=ZoneInfo("UTC")).timestamp()
        await storage.store(KEY, create_response([b"old"]))
        await storage.store(KEY, create_response([b"new"]))

    with travel(datetime(2024, 1, 1, 3, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False):
        await storage.store("https://bucket.example.com/other", create_response([b"other"]))

    connection = await storage._ensure_connection()
    cursor = await connection.cursor()
    await cursor.execute("SELECT cache_key FROM entries ORDER BY cache_key")
    assert [row[0] for row in await cursor.fetchall()] == [KEY, "https://bucket.example.com/other"]

    entry = await storage.lookup(KEY)
    assert entry is not None
    assert await entry.response.aread() == b"new"


@pytest.mark.anyio
async def test_custom_connection_does_not_create_directory() -> None:
    with patch("bucketcache._core._storages._async_sqlite.ensure_parent_dir") as mock_ensure:
        storage = AsyncSqliteStorage(connection=await anysqlite.connect(":memory:"))
        await storage.store(KEY, create_response([b"data"]))
        mock_ensure.assert_not_called()


@pytest.mark.anyio
async def test_database_is_opened_at_the_given_path(tmp_path) -> None:  # type: ignore[no-untyped-def]
    database_path = tmp_path / "nested" / "objects.db"
    storage = AsyncSqliteStorage(database_path=database_path)

    await storage.store(KEY, create_response([b"data"]))
    await storage.close()

    assert sorted(path.name for path in (tmp_path / "nested").iterdir()) == ["objects.db"]


def test_packing_keeps_headers() -> None:
    entry = CachedEntry(
        id=uuid.UUID(int=1),
        key=KEY,
        response=Response(status_code=200, headers=Headers(STORED_HEADERS)),
        created_at=1704067200.0,
    )

    unpacked = unpack(pack(entry))

    assert unpacked is not None
    assert unpacked.id == entry.id
    assert unpacked.key == KEY
    assert unpacked.created_at == 1704067200.0
    assert unpacked.response.headers == Headers(STORED_HEADERS)
    assert unpack(None) is None
