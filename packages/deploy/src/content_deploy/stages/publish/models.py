from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from content_deploy.core import sha256_bytes


def artifact_id_for(run_id: str) -> str:
    """
    Artifact ids are derived from the producing run, so one run can never
    publish two artifacts and two runs never share one.
    """
    return sha256_bytes(run_id.encode("utf-8"))[:32]


@dataclass(frozen=True, slots=True)
class Artifact:
    artifact_id: str
    producing_run: str
    content_root: Path
    created_at_utc: str
    commit: str
    files: int
    manifest_path: Path

    @property
    def root(self) -> Path:
        return self.manifest_path.parent

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact_id": self.artifact_id,
            "producing_run": self.producing_run,
            "content_root": str(self.content_root),
            "created_at_utc": self.created_at_utc,
            "commit": self.commit,
            "files": self.files,
        }
