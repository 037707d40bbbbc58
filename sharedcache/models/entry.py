from enum import Enum
from typing import Any, Hashable, Optional


class Status(str, Enum):
    SYNC = "SYNC"
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"
    REJECTED = "REJECTED"

    @property
    def is_settlement(self) -> bool:
        """True for the statuses that finish a PENDING computation."""
        return self in (Status.FULFILLED, Status.REJECTED)


class Entry:
    def __init__(self, value: Any = None, status: Status = Status.SYNC, writer_id: Optional[Hashable] = None):
        self.value = value
        self.status = status  # PENDING while the writer's computation is in flight
        self.writer_id = writer_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return (self.value, self.status, self.writer_id) == (other.value, other.status, other.writer_id)

    def __repr__(self) -> str:
        return f"Entry(value={self.value!r}, status={self.status.value}, writer_id={self.writer_id!r})"
