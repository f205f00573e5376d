import pytest

from bucketcache import ConfigurationError, ProxyConfig


def test_defaults() -> None:
    config = ProxyConfig.from_env({})

    assert config == ProxyConfig()
    assert config.origin_host is None
    assert config.origin_timeout == 30.0
    assert config.telemetry_timeout == 1.0


def test_reads_environment() -> None:
    config = ProxyConfig.from_env(
        {
            "BUCKETCACHE_ORIGIN_HOST": "bucket.s3.amazonaws.com",
            "BUCKETCACHE_ORIGIN_SCHEME": "https",
            "BUCKETCACHE_ORIGIN_PORT": "9000",
            "BUCKETCACHE_ORIGIN_TIMEOUT": "2.5",
            "BUCKETCACHE_TELEMETRY_TIMEOUT": "0.2",
            "BUCKETCACHE_DATABASE_PATH": "/var/cache/bucketcache.db",
        }
    )

    assert config == ProxyConfig(
        origin_host="bucket.s3.amazonaws.com",
        origin_scheme="https",
        origin_port=9000,
        origin_timeout=2.5,
        telemetry_timeout=0.2,
        database_path="/var/cache/bucketcache.db",
    )


def test_s3_bucket_is_accepted_as_fallback() -> None:
    assert ProxyConfig.from_env({"S3_BUCKET": "legacy.example.com"}).origin_host == "legacy.example.com"
    assert (
        ProxyConfig.from_env({"S3_BUCKET": "legacy.example.com", "BUCKETCACHE_ORIGIN_HOST": "new.example.com"}).origin_host
        == "new.example.com"
    )


def test_blank_origin_host_counts_as_missing() -> None:
    config = ProxyConfig.from_env({"BUCKETCACHE_ORIGIN_HOST": "   "})

    with pytest.raises(ConfigurationError):
        config.require_origin_host()


def test_malformed_number_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="BUCKETCACHE_ORIGIN_PORT must be a number"):
        ProxyConfig.from_env({"BUCKETCACHE_ORIGIN_PORT": "http"})


def test_require_origin_host() -> None:
    assert ProxyConfig(origin_host="bucket").require_origin_host() == "bucket"
