from typing import Dict, Hashable, Iterator, Optional
import logging

from sharedcache.models.entry import Entry

logger = logging.getLogger(__name__)


class CacheStore:
    """
    The key space of one named cache.

    Writes are unconditional here; which writer may overwrite a pending
    entry is decided by the coordinator before it calls set().
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[Hashable, Entry] = {}

    def has(self, key: Hashable) -> bool:
        """Returns True if an entry exists under key."""
        return key in self._entries

    def get(self, key: Hashable) -> Optional[Entry]:
        """Returns the entry under key, or None."""
        return self._entries.get(key)

    def set(self, key: Hashable, entry: Entry) -> None:
        self._entries[key] = entry

    def delete(self, key: Hashable) -> None:
        """Drops the entry under key, if any."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drops every entry of this cache."""
        logger.debug(f"Clearing {len(self._entries)} entries from cache '{self.name}'")
        self._entries.clear()

    def keys(self) -> Iterator[Hashable]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
