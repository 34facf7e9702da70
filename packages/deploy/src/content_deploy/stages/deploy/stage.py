from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from content_deploy.core import PromotionError, PublishError
from content_deploy.pipeline.context import RunContext
from content_deploy.pipeline.events import EventType

from ..publish.models import Artifact
from ..publish.store import ArtifactStore
from .gate import DeploymentGate
from .hosting import HostingEndpoint


@dataclass(slots=True)
class DeployStage:
    """
    Verify the run's artifact, take the deployment gate and promote. A busy
    gate ends the stage without promoting and marks the run superseded.
    """

    gate: DeploymentGate
    host: HostingEndpoint
    store: ArtifactStore
    deploy_latest_pending: bool = False
    stage_id: str = "deploy"

    def _verified(self, artifact: Artifact) -> Artifact:
        try:
            self.store.verify(artifact)
        except PublishError as e:
            raise PromotionError(f"Refusing to promote unverified artifact: {e}") from e
        return artifact

    def _artifact(self, ctx: RunContext) -> Artifact:
        artifact = ctx.meta.get("artifact")
        if isinstance(artifact, Artifact):
            return artifact
        if ctx.run.artifact_id is None:
            raise RuntimeError("deploy stage requires a published artifact")
        return self.store.retrieve(ctx.run.artifact_id)

    def _promote_pending(self, ctx: RunContext) -> list[str]:
        promoted: list[str] = []
        while (req := self.gate.take_pending()) is not None:
            if req.artifact_id is None:
                continue
            artifact = self._verified(self.store.retrieve(req.artifact_id))
            result = self.host.promote(artifact)
            ctx.run.page_url = result.page_url
            promoted.append(artifact.artifact_id)
            ctx.emit(
                EventType.DEPLOY_FINISH,
                stage=self.stage_id,
                artifact_id=artifact.artifact_id,
                requested_by=req.request_id,
                page_url=result.page_url,
            )
        return promoted

    def run(self, ctx: RunContext) -> dict[str, Any]:
        run = ctx.run
        artifact = self._verified(self._artifact(ctx))

        token = self.gate.try_acquire(run.run_id, artifact.artifact_id)
        if token is None:
            ctx.meta["superseded"] = True
            ctx.emit(EventType.GATE_BUSY, stage=self.stage_id, group=self.gate.group)
            return {"gate": "busy", "promoted": False}

        ctx.emit(EventType.GATE_ACQUIRED, stage=self.stage_id, group=self.gate.group)
        pending: list[str] = []
        warnings: list[str] = []
        try:
            with self.gate.deploying(token):
                ctx.emit(EventType.DEPLOY_START, stage=self.stage_id, artifact_id=artifact.artifact_id)
                result = self.host.promote(artifact)
                run.deployed = True
                run.page_url = result.page_url
                ctx.emit(
                    EventType.DEPLOY_FINISH,
                    stage=self.stage_id,
                    artifact_id=artifact.artifact_id,
                    page_url=result.page_url,
                )
                if self.deploy_latest_pending:
                    try:
                        pending = self._promote_pending(ctx)
                    except Exception as e:
                        # own promotion already live; only the pending one is lost
                        warnings.append(f"pending promotion failed: {e}")
                        ctx.stage_logger(self.stage_id).warning(
                            "deploy.pending_failed",
                            error_type=type(e).__name__,
                            error=str(e),
                        )
        finally:
            ctx.emit(EventType.GATE_RELEASED, stage=self.stage_id, group=self.gate.group)

        return {
            "gate": "acquired",
            "promoted": True,
            "page_url": run.page_url,
            "pending_promoted": pending,
            "_warnings": warnings,
        }


@dataclass(slots=True)
class CheckStage:
    stage_id: str = "check"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        pr = ctx.run.event.pr_number
        message = (
            f"Build completed successfully for PR #{pr}"
            if pr is not None
            else "Build completed successfully"
        )
        ctx.emit(EventType.CHECK_PASSED, stage=self.stage_id, message=message)
        ctx.stage_logger(self.stage_id).info(message)
        return {"message": message}
