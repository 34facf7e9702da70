from __future__ import annotations

from pathlib import Path

from content_deploy.core import CacheCorruptionError, sha256_bytes
from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """
    Immutable record of one cached payload. Entries are never mutated, only
    superseded under a new key or invalidated.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str = Field(..., min_length=1)
    sha256: str = Field(pattern=r"^[a-f0-9]{64}$")
    bytes: int = Field(ge=0)
    created_at_utc: str
    payload_path: Path

    def read_payload(self) -> bytes:
        data = self.payload_path.read_bytes()
        actual = sha256_bytes(data)
        if actual != self.sha256:
            raise CacheCorruptionError(self.key, expected=self.sha256, actual=actual)
        return data
