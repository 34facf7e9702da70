from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from content_deploy.pipeline.context import RunContext
from content_deploy.pipeline.events import EventType

from .store import ArtifactStore


@dataclass(slots=True)
class PublishStage:
    store: ArtifactStore
    stage_id: str = "publish"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        run = ctx.run
        if run.build_result is None:
            raise RuntimeError("publish stage requires a build result")

        ctx.emit(EventType.PUBLISH_START, stage=self.stage_id)
        artifact = self.store.publish(
            run.build_result,
            run_id=run.run_id,
            event=run.event,
            fingerprint=str(run.fingerprint) if run.fingerprint else None,
        )
        run.artifact_id = artifact.artifact_id
        ctx.meta["artifact"] = artifact
        ctx.emit(
            EventType.PUBLISH_FINISH,
            stage=self.stage_id,
            artifact_id=artifact.artifact_id,
            files=artifact.files,
        )
        return {
            "artifact_id": artifact.artifact_id,
            "_metrics": {"files": artifact.files},
        }
