from __future__ import annotations

import os
import typing as tp
from dataclasses import dataclass

from bucketcache._exceptions import ConfigurationError

__all__ = ("ProxyConfig",)

# Environment variables read by `ProxyConfig.from_env`.
# The first name that is set wins.
ORIGIN_HOST_ENV = ("BUCKETCACHE_ORIGIN_HOST", "S3_BUCKET")
ORIGIN_SCHEME_ENV = "BUCKETCACHE_ORIGIN_SCHEME"
ORIGIN_PORT_ENV = "BUCKETCACHE_ORIGIN_PORT"
ORIGIN_TIMEOUT_ENV = "BUCKETCACHE_ORIGIN_TIMEOUT"
TELEMETRY_TIMEOUT_ENV = "BUCKETCACHE_TELEMETRY_TIMEOUT"
DATABASE_PATH_ENV = "BUCKETCACHE_DATABASE_PATH"


def _parse_number(environ: tp.Mapping[str, str], name: str, kind: tp.Callable[[str], tp.Any], default: tp.Any) -> tp.Any:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class ProxyConfig:
    """
    Startup configuration of the proxy.

    Attributes:
    ----------
    origin_host : str | None
        Hostname of the bucket that serves the authoritative objects, for example
        ``my-bucket.s3.amazonaws.com``. Required for every request; when it is missing
        the router answers with a 500 response describing the problem.

    origin_scheme : str | None
        Scheme used to reach the origin. ``None`` keeps the scheme of the inbound request.

    origin_port : int | None
        Port used to reach the origin. ``None`` uses the default port of the scheme.

    origin_timeout : float
        Seconds to wait for the origin before the request fails with a transport error.

    telemetry_timeout : float
        Upper bound, in seconds, for recording a single telemetry event.

    database_path : str
        SQLite file used by the default object store.
    """

    origin_host: tp.Optional[str] = None
    origin_scheme: tp.Optional[str] = None
    origin_port: tp.Optional[int] = None
    origin_timeout: float = 30.0
    telemetry_timeout: float = 1.0
    database_path: str = "bucketcache.db"

    @classmethod
    def from_env(cls, environ: tp.Optional[tp.Mapping[str, str]] = None) -> "ProxyConfig":
        environ = os.environ if environ is None else environ

        origin_host = None
        for name in ORIGIN_HOST_ENV:
            value = environ.get(name, "").strip()
            if value:
                origin_host = value
                break

        return cls(
            origin_host=origin_host,
            origin_scheme=environ.get(ORIGIN_SCHEME_ENV) or None,
            origin_port=_parse_number(environ, ORIGIN_PORT_ENV, int, None),
            origin_timeout=_parse_number(environ, ORIGIN_TIMEOUT_ENV, float, 30.0),
            telemetry_timeout=_parse_number(environ, TELEMETRY_TIMEOUT_ENV, float, 1.0),
            database_path=environ.get(DATABASE_PATH_ENV) or "bucketcache.db",
        )

    def require_origin_host(self) -> str:
        if not self.origin_host:
            raise ConfigurationError(
                "Origin host is not defined. Set BUCKETCACHE_ORIGIN_HOST (or S3_BUCKET) to the bucket hostname."
            )
        return self.origin_host
