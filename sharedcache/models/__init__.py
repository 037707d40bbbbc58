from .entry import Entry, Status
from .message import CacheRequest, GetArgs, GetResult, KeyArgs, SetArgs
from .cache import CacheSummary
from .error import Error

__all__ = [
    "Entry",
    "Status",
    "CacheRequest",
    "GetArgs",
    "GetResult",
    "KeyArgs",
    "SetArgs",
    "CacheSummary",
    "Error",
]
