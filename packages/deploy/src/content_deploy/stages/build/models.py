from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional

from content_deploy.core import InvalidArgumentError


class BuildStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class BuildResult:
    """
    Outcome of one build. `artifact_ref` is the rendered output root and is
    present iff the build succeeded. `workspace` is the scratch directory
    holding it, removed by the caller once the output has been published.
    """

    status: BuildStatus
    logs: str
    duration_ms: int
    artifact_ref: Optional[Path] = None
    failure_kind: Optional[str] = None
    returncode: Optional[int] = None
    workspace: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.succeeded and self.artifact_ref is None:
            raise InvalidArgumentError("Successful BuildResult requires artifact_ref")
        if not self.succeeded and self.artifact_ref is not None:
            raise InvalidArgumentError("Failed BuildResult must not carry artifact_ref")

    @property
    def succeeded(self) -> bool:
        return self.status is BuildStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "artifact_ref": str(self.artifact_ref) if self.artifact_ref else None,
            "duration_ms": self.duration_ms,
            "failure_kind": self.failure_kind,
            "returncode": self.returncode,
        }
