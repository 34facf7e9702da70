from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from content_deploy.core import BuildError
from content_deploy.core.errors import failure_kind_of
from content_deploy.pipeline.context import RunContext
from content_deploy.pipeline.events import EventType

from ..resolve import ResolvedDependencies
from .builder import Builder
from .models import BuildResult, BuildStatus


@dataclass(slots=True)
class BuildStage:
    builder: Builder
    corpus_root: Path
    stage_id: str = "build"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        deps = ctx.meta.get("dependencies")
        if not isinstance(deps, ResolvedDependencies):
            raise RuntimeError("build stage requires resolved dependencies")

        ctx.emit(EventType.BUILD_START, stage=self.stage_id, corpus=str(self.corpus_root))
        try:
            result = self.builder.build(self.corpus_root, deps)
        except BuildError as e:
            ctx.run.build_result = BuildResult(
                status=BuildStatus.FAILURE,
                logs=e.diagnostics,
                duration_ms=0,
                failure_kind=failure_kind_of(e).value,
                returncode=e.returncode,
            )
            raise

        ctx.run.build_result = result
        ctx.emit(
            EventType.BUILD_FINISH,
            stage=self.stage_id,
            status=result.status.value,
            duration_ms=result.duration_ms,
            output=str(result.artifact_ref) if result.artifact_ref else None,
        )
        if not result.succeeded:
            raise BuildError("Builder reported failure", diagnostics=result.logs)
        return {
            "output": str(result.artifact_ref),
            "_metrics": {"build_ms": result.duration_ms},
        }
