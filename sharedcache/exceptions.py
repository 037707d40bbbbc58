from typing import Any


class SharedCacheError(Exception):
    """Base exception for the shared cache."""

    pass


class ProtocolError(SharedCacheError):
    """Raised when a request envelope cannot be dispatched."""

    pass


class MissingOperationError(ProtocolError):
    def __init__(self):
        super().__init__("SharedCache: The name of the function to be called has not been provided.")


class UnknownOperationError(ProtocolError):
    def __init__(self, fn: str):
        self.fn = fn
        super().__init__(f"SharedCache: Tried to call an unknown function: {fn}")


class InvalidRequestError(ProtocolError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"SharedCache: Invalid request: {detail}")


class CacheNotFoundError(SharedCacheError):
    """Raised when no cache with the given name is alive on the coordinator."""
    def __init__(self, name: str):
        super().__init__(f"Cache with name '{name}' not found")
        self.name = name


class CacheTimeoutError(SharedCacheError, TimeoutError):
    """Raised by a client get() whose pending value did not settle in time."""

    pass


class CacheRejectedError(SharedCacheError):
    """Raised by a client get() when the memoized computation was rejected with a non-exception reason."""
    def __init__(self, reason: Any):
        super().__init__(f"Cached computation was rejected: {reason!r}")
        self.reason = reason


class ConnectionClosedError(SharedCacheError):
    """Raised for calls still outstanding when a client connection closes."""

    pass
