from pydantic import BaseModel, Field


class CacheSummary(BaseModel):
    name: str
    size: int = Field(..., description="Number of entries currently held.")
    references: int = Field(..., description="Number of connections using this cache.")
