from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class DataLayout:
    """
    Canonical path layout for orchestrator state:

      {root}/cache/{cache_key}/
      {root}/artifacts/{artifact_id}/
      {root}/site/releases/{artifact_id}/
      {root}/site/current -> releases/{artifact_id}
      {root}/work/{run_id}/deps/
      {root}/work/{run_id}/build/
    """

    root: Path

    def cache_root(self) -> Path:
        return self.root / "cache"

    def artifacts_root(self) -> Path:
        return self.root / "artifacts"

    def site_root(self) -> Path:
        return self.root / "site"

    def work_root(self) -> Path:
        return self.root / "work"

    def work(self, run_id: str) -> Path:
        return self.work_root() / run_id

    def deps(self, run_id: str) -> Path:
        return self.work(run_id) / "deps"

    def build(self, run_id: str) -> Path:
        return self.work(run_id) / "build"

    def ensure_dirs(self) -> None:
        for p in (
            self.cache_root(),
            self.artifacts_root(),
            self.site_root(),
            self.work_root(),
        ):
            p.mkdir(parents=True, exist_ok=True)
