__all__ = ("BucketCacheError", "ConfigurationError", "OriginTransportError")


class BucketCacheError(Exception): ...


class ConfigurationError(BucketCacheError): ...


class OriginTransportError(BucketCacheError):
    """
    The origin could not be reached at all.

    Raised for DNS failures, refused connections, timeouts and other transport level
    problems. An origin that answers with an error status is not a transport error.
    """
