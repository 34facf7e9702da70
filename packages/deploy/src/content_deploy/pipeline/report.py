from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from content_deploy.core import atomic_write_json

from .stage import StageResult
from .types import Run


@dataclass(slots=True)
class RunReport:
    run_id: str
    started_at_utc: str
    finished_at_utc: str
    status: str
    deployed: bool
    cache_hit: bool
    duration_ms: int
    event: dict[str, Any]

    fingerprint: Optional[str] = None
    cache_key: Optional[str] = None
    artifact_id: Optional[str] = None
    page_url: Optional[str] = None
    stale: bool = False
    build: Optional[dict[str, Any]] = None
    stages: list[StageResult] = field(default_factory=list)
    events_jsonl: Optional[str] = None
    provenance: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())

    def failed_stage(self) -> StageResult | None:
        for s in self.stages:
            if s.failed:
                return s
        return None

    def logs(self) -> str:
        """
        Plain-text summary: one line per stage, plus full diagnostics of the
        failing stage.
        """
        lines: list[str] = []
        for s in self.stages:
            line = f"[{s.status}] {s.stage} ({s.duration_ms} ms)"
            reason = s.outputs.get("reason") or s.outputs.get("message")
            if reason:
                line += f": {reason}"
            lines.append(line)
        failed = self.failed_stage()
        if failed is not None and failed.error is not None:
            lines.append("")
            lines.append(f"{failed.error.exc_type} [{failed.error.kind}]")
            lines.append(failed.error.message)
        return "\n".join(lines)


def build_run_report(
    *,
    run: Run,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    stage_results: list[StageResult],
    events_jsonl: str | None,
    provenance: dict[str, Any] | None = None,
) -> RunReport:
    return RunReport(
        run_id=run.run_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=run.status.value,
        deployed=run.deployed,
        cache_hit=run.cache_hit,
        duration_ms=duration_ms,
        event=run.event.to_dict(),
        fingerprint=str(run.fingerprint) if run.fingerprint is not None else None,
        cache_key=run.cache_key,
        artifact_id=run.artifact_id,
        page_url=run.page_url,
        stale=run.stale,
        build=run.build_result.to_dict() if run.build_result is not None else None,
        stages=stage_results,
        events_jsonl=events_jsonl,
        provenance=provenance or {},
    )
