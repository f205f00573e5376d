from __future__ import annotations

import uuid
from typing import Optional, cast

import msgpack

from bucketcache._core._headers import Headers
from bucketcache._core.models import CachedEntry, Response


def pack(value: CachedEntry, /) -> bytes:
    return cast(
        bytes,
        msgpack.packb(
            {
                "id": value.id.bytes,
                "key": value.key,
                "response": {
                    "status_code": value.response.status_code,
                    "headers": value.response.headers._headers,
                },
                "created_at": value.created_at,
            }
        ),
    )


def unpack(value: Optional[bytes], /) -> Optional[CachedEntry]:
    if value is None:
        return None
    data = msgpack.unpackb(value)
    return CachedEntry(
        id=uuid.UUID(bytes=data["id"]),
        key=data["key"],
        response=Response(
            status_code=data["response"]["status_code"],
            headers=Headers(data["response"]["headers"]),
            metadata={},
        ),
        created_at=data["created_at"],
    )
