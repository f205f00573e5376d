from bucketcache._core._headers import Headers as Headers
from bucketcache._core._spec import (
    AnyState as AnyState,
    CacheMiss as CacheMiss,
    CacheOptions as CacheOptions,
    CouldNotBeStored as CouldNotBeStored,
    FromCache as FromCache,
    IdleClient as IdleClient,
    NeedRevalidation as NeedRevalidation,
    State as State,
    StoreAndUse as StoreAndUse,
)
from bucketcache._core._storages._async_base import AsyncBaseStorage as AsyncBaseStorage
from bucketcache._core._storages._async_sqlite import AsyncSqliteStorage as AsyncSqliteStorage
from bucketcache._core._storages._memory import AsyncInMemoryStorage as AsyncInMemoryStorage
from bucketcache._core.models import (
    CachedEntry as CachedEntry,
    Request as Request,
    RequestIdentity as RequestIdentity,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
    Validators as Validators,
)

__all__ = (
    ## States
    "AnyState",
    "IdleClient",
    "CacheMiss",
    "NeedRevalidation",
    "FromCache",
    "StoreAndUse",
    "CouldNotBeStored",
    "State",
    "CacheOptions",
    ## Models
    "Request",
    "Response",
    "ResponseMetadata",
    "RequestIdentity",
    "CachedEntry",
    "Validators",
    ## Headers
    "Headers",
    ## Storages
    "AsyncBaseStorage",
    "AsyncInMemoryStorage",
    "AsyncSqliteStorage",
)
