from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .entry import Status


class CacheRequest(BaseModel):
    """Envelope sent by a client to the coordinator."""

    model_config = ConfigDict(populate_by_name=True)

    call_id: Optional[Any] = Field(default=None, alias="callId")
    cache_name: Optional[str] = Field(default=None, alias="cacheName")
    fn: Optional[str] = None
    args: Dict[str, Any] = Field(default_factory=dict)


class KeyArgs(BaseModel):
    key: Any = None


class GetArgs(KeyArgs):
    timeout: Optional[float] = Field(default=None, description="Milliseconds to wait for a pending value.")


class SetArgs(KeyArgs):
    model_config = ConfigDict(populate_by_name=True)

    status: Status
    value: Any = None
    writer_id: Optional[Any] = Field(default=None, alias="writerId")


class GetResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Status
    value: Any = None
    timed_out: bool = Field(default=False, alias="timedOut")

    def to_message(self) -> Dict[str, Any]:
        message = {"status": self.status, "value": self.value}
        if self.timed_out:
            message["timedOut"] = True
        return message
