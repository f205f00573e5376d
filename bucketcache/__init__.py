__version__ = "0.1.0"

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
from bucketcache._core._storages._async_base import AsyncBaseStorage
from bucketcache._core._storages._async_sqlite import AsyncSqliteStorage
from bucketcache._core._storages._memory import AsyncInMemoryStorage
from bucketcache._core.models import (
    CachedEntry as CachedEntry,
    Request as Request,
    RequestIdentity as RequestIdentity,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
    Validators as Validators,
)
from bucketcache._config import ProxyConfig
from bucketcache._exceptions import BucketCacheError, ConfigurationError, OriginTransportError
from bucketcache._origin import AsyncOriginClient
from bucketcache._telemetry import (
    AsyncBaseTelemetrySink,
    AsyncSqliteTelemetrySink,
    InMemoryTelemetrySink,
    LoggingTelemetrySink,
    TelemetryEvent,
    fingerprint,
)
from bucketcache._async_engine import AsyncRevalidationEngine
from bucketcache._router import AsyncRequestRouter

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
    ## Telemetry
    "TelemetryEvent",
    "AsyncBaseTelemetrySink",
    "LoggingTelemetrySink",
    "InMemoryTelemetrySink",
    "AsyncSqliteTelemetrySink",
    "fingerprint",
    ## Origin, engine and routing
    "AsyncOriginClient",
    "AsyncRevalidationEngine",
    "AsyncRequestRouter",
    "ProxyConfig",
    ## Errors
    "BucketCacheError",
    "ConfigurationError",
    "OriginTransportError",
)
