from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from content_deploy.core import StageError, monotonic_ms, utc_now_iso
from content_deploy.core.errors import failure_kind_of

from .context import RunContext
from .events import EventType


def format_duration_ms(ms: int) -> str:
    """Return a short human-readable duration string."""
    if ms < 1000:
        return f"{ms} ms"
    return f"{ms / 1000:.2f} s"


@dataclass(slots=True)
class StageResult:
    stage: str
    status: str  # "success" | "failed" | "skipped"
    started_at_utc: str
    finished_at_utc: str
    duration_ms: int

    outputs: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: Optional[StageError] = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"


class Stage(Protocol):
    stage_id: str

    def run(self, ctx: RunContext) -> dict[str, Any] | None: ...


def skipped_stage(*, ctx: RunContext, stage_id: str, reason: str) -> StageResult:
    now = utc_now_iso()
    ctx.emit(EventType.STAGE_SKIPPED, stage=stage_id, reason=reason)
    ctx.stage_logger(stage_id).info("Stage skipped", reason=reason)
    return StageResult(
        stage=stage_id,
        status="skipped",
        started_at_utc=now,
        finished_at_utc=now,
        duration_ms=0,
        outputs={"reason": reason},
    )


def run_stage(
    *,
    ctx: RunContext,
    stage: Stage,
    index: int | None = None,
    total: int | None = None,
) -> StageResult:
    stage_id = stage.stage_id
    log = ctx.stage_logger(stage_id)

    t0 = monotonic_ms()
    started_at = utc_now_iso()
    position = f"{index}/{total}" if index is not None and total is not None else None

    ctx.emit(EventType.STAGE_START, stage=stage_id)
    log.info("Stage starting", position=position, started_at=started_at)

    warnings: list[str] = []
    metrics: dict[str, Any] = {}

    try:
        out = stage.run(ctx) or {}
        if not isinstance(out, dict):
            raise TypeError(
                f"Stage {stage_id} returned {type(out).__name__}, expected dict or None"
            )

        if "_warnings" in out:
            w = out.pop("_warnings")
            if isinstance(w, list):
                warnings.extend(str(x) for x in w)

        if "_metrics" in out:
            m = out.pop("_metrics")
            if isinstance(m, dict):
                metrics.update(m)

        for w in warnings:
            ctx.emit(EventType.STAGE_WARN, stage=stage_id, message=w)
            log.warning(w)

        if metrics:
            ctx.emit(EventType.STAGE_METRICS, stage=stage_id, metrics=metrics)

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        ctx.emit(EventType.STAGE_SUCCESS, stage=stage_id, duration_ms=duration)
        log.info(
            "Stage succeeded",
            status="success",
            position=position,
            duration_ms=duration,
            duration=format_duration_ms(duration),
            warnings=len(warnings),
            metrics=len(metrics),
            outputs=sorted(out.keys()) if out else [],
        )

        return StageResult(
            stage=stage_id,
            status="success",
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            outputs=out,
            metrics=metrics,
            warnings=warnings,
        )

    except Exception as e:
        tb = traceback.format_exc()
        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0
        kind = failure_kind_of(e).value

        ctx.emit(
            EventType.STAGE_FAILED,
            stage=stage_id,
            duration_ms=duration,
            exc_type=type(e).__name__,
            kind=kind,
            message=str(e),
        )
        log.error(
            "Stage failed",
            status="failed",
            position=position,
            duration_ms=duration,
            duration=format_duration_ms(duration),
            kind=kind,
            error=str(e),
        )
        log.exception("Stage exception")

        return StageResult(
            stage=stage_id,
            status="failed",
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            outputs={},
            metrics=metrics,
            warnings=warnings,
            error=StageError(
                exc_type=type(e).__name__, message=str(e), traceback=tb, kind=kind
            ),
        )
