from __future__ import annotations

import itertools
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from content_deploy.core import (
    DataLayout,
    ILogger,
    InvalidArgumentError,
    RunProvenance,
    Settings,
    bound,
    get_logger,
    monotonic_ms,
    new_run_id,
    platform_tag,
    remove_tree,
    utc_now_iso,
)
from content_deploy.stages.build import Builder, BuildStage, SubprocessBuilder
from content_deploy.stages.cache import CacheRestoreStage, CacheStore, FsCacheStore
from content_deploy.stages.deploy import (
    CheckStage,
    DeploymentGate,
    DeployStage,
    DirectoryHost,
    HostingEndpoint,
    HttpHost,
)
from content_deploy.stages.fingerprint import FingerprintStage
from content_deploy.stages.publish import ArtifactStore, FsArtifactStore, PublishStage
from content_deploy.stages.resolve import (
    CommandResolver,
    DependencyResolver,
    ResolveStage,
)

from .context import RunContext
from .events import EventSink, EventType
from .report import RunReport, build_run_report
from .stage import Stage, StageResult, format_duration_ms, run_stage, skipped_stage
from .types import EventKind, Run, RunOutcome, RunStatus, TriggerEvent


@dataclass(slots=True)
class OrchestratorConfig:
    manifest_paths: list[Path]
    corpus_root: Path
    main_branch: str = "main"
    cache_namespace: str = "pip"
    platform: str = field(default_factory=platform_tag)
    resolve_attempts: int = 2
    resolve_retry_wait_s: float = 1.0
    deploy_latest_pending: bool = False
    keep_workdir: bool = False


class Orchestrator:
    """
    Drives one trigger through fingerprint, cache, resolve, build, publish and
    (policy permitting) deploy. Runs are independent; the deployment gate is
    the only state shared between concurrent runs besides the stores.
    """

    def __init__(
        self,
        *,
        cfg: OrchestratorConfig,
        layout: DataLayout,
        run_root: Path,
        cache: CacheStore,
        resolver: DependencyResolver,
        builder: Builder,
        artifacts: ArtifactStore,
        gate: DeploymentGate,
        host: HostingEndpoint,
        logger: ILogger | None = None,
    ) -> None:
        self.cfg = cfg
        self.layout = layout
        self.run_root = Path(run_root)
        self.cache = cache
        self.resolver = resolver
        self.builder = builder
        self.artifacts = artifacts
        self.gate = gate
        self.host = host
        self.logger: ILogger = logger or get_logger("content_deploy.orchestrator")

        self._seq = itertools.count(1)
        self._latest_lock = threading.Lock()
        self._latest: dict[str, tuple[int, str]] = {}

    @classmethod
    def from_settings(
        cls,
        s: Settings,
        *,
        gate: DeploymentGate | None = None,
        host: HostingEndpoint | None = None,
        logger: ILogger | None = None,
    ) -> "Orchestrator":
        layout = DataLayout(Path(s.data_root))
        layout.ensure_dirs()

        if host is None:
            if s.host_kind == "http":
                if not s.host_url:
                    raise InvalidArgumentError("host_kind=http requires CONTENT_DEPLOY_HOST_URL")
                host = HttpHost(
                    s.host_url,
                    token=s.host_token,
                    max_attempts=s.publish_max_attempts,
                    backoff_base=s.backoff_base_s,
                    backoff_cap=s.backoff_cap_s,
                )
            else:
                host = DirectoryHost(layout.site_root(), site_url=s.site_url)

        return cls(
            cfg=OrchestratorConfig(
                manifest_paths=list(s.manifest_paths),
                corpus_root=Path(s.corpus_root),
                main_branch=s.main_branch,
                cache_namespace=s.cache_namespace,
                deploy_latest_pending=s.deploy_latest_pending,
            ),
            layout=layout,
            run_root=Path(s.run_root),
            cache=FsCacheStore(layout.cache_root()),
            resolver=CommandResolver(s.resolve_command, timeout_s=s.resolve_timeout_s),
            builder=SubprocessBuilder(
                command=s.build_command,
                work_root=layout.work_root() / "builds",
                timeout_s=s.build_timeout_s,
                output_subdir=s.build_output_subdir,
                required_files=tuple(s.build_required_files),
            ),
            artifacts=FsArtifactStore(
                layout.artifacts_root(),
                max_attempts=s.publish_max_attempts,
                backoff_base=s.backoff_base_s,
                backoff_cap=s.backoff_cap_s,
            ),
            gate=gate or DeploymentGate(s.gate_group),
            host=host,
            logger=logger,
        )

    # staleness is advisory: a superseded run is flagged, never aborted

    def _register(self, event: TriggerEvent) -> int:
        seq = next(self._seq)
        with self._latest_lock:
            self._latest[event.branch] = (seq, event.commit)
        return seq

    def _newer_commit(self, event: TriggerEvent, seq: int) -> str | None:
        with self._latest_lock:
            latest_seq, commit = self._latest.get(event.branch, (seq, event.commit))
        return commit if latest_seq != seq else None

    def _build_stages(self) -> list[Stage]:
        cfg = self.cfg
        return [
            FingerprintStage(
                manifest_paths=cfg.manifest_paths,
                namespace=cfg.cache_namespace,
                platform=cfg.platform,
            ),
            CacheRestoreStage(
                cache=self.cache, platform=cfg.platform, namespace=cfg.cache_namespace
            ),
            ResolveStage(
                cache=self.cache,
                resolver=self.resolver,
                manifest_paths=cfg.manifest_paths,
                max_attempts=cfg.resolve_attempts,
                retry_wait_s=cfg.resolve_retry_wait_s,
            ),
            BuildStage(builder=self.builder, corpus_root=cfg.corpus_root),
            PublishStage(store=self.artifacts),
        ]

    def _final_stage(self, event: TriggerEvent) -> Stage | str:
        """
        The stage that follows publish, or the reason no stage follows it.
        """
        if event.kind is EventKind.PULL_REQUEST:
            return CheckStage()
        if event.wants_deploy:
            return DeployStage(
                gate=self.gate,
                host=self.host,
                store=self.artifacts,
                deploy_latest_pending=self.cfg.deploy_latest_pending,
            )
        if event.kind is EventKind.MANUAL:
            return "manual trigger builds and publishes only"
        return f"push to {event.branch!r} is not the main branch"

    def _execute(self, ctx: RunContext) -> list[StageResult]:
        stages = self._build_stages()
        final = self._final_stage(ctx.run.event)
        if not isinstance(final, str):
            stages.append(final)

        results: list[StageResult] = []
        total = len(stages)
        for idx, st in enumerate(stages, start=1):
            res = run_stage(ctx=ctx, stage=st, index=idx, total=total)
            results.append(res)
            if res.failed:
                self.logger.error("Stopping on first failure", stage=st.stage_id)
                return results

        if isinstance(final, str):
            results.append(skipped_stage(ctx=ctx, stage_id="deploy", reason=final))
        return results

    @staticmethod
    def _final_status(run: Run, ctx: RunContext, results: Sequence[StageResult]) -> RunStatus:
        # a live promotion is never reported as anything else
        if run.deployed:
            return RunStatus.DEPLOYED
        if any(r.failed for r in results):
            return RunStatus.FAILED
        if run.event.kind is EventKind.PULL_REQUEST:
            return RunStatus.CHECK_PASSED
        if run.event.wants_deploy:
            if ctx.meta.get("superseded"):
                return RunStatus.SKIPPED_SUPERSEDED
            return RunStatus.DEPLOYED
        return RunStatus.BUILT

    def _cleanup(self, run: Run) -> None:
        if self.cfg.keep_workdir:
            return
        remove_tree(self.layout.work(run.run_id))
        if run.build_result is not None and run.build_result.workspace is not None:
            remove_tree(run.build_result.workspace)

    def handle(self, event: TriggerEvent) -> RunOutcome:
        run = Run(run_id=new_run_id(), event=event)
        seq = self._register(event)

        run_dir = self.run_root / run.run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        events_path = run_dir / "events.jsonl"
        sink = EventSink(events_path)

        with bound(
            run_id=run.run_id,
            event=event.kind.value,
            branch=event.branch,
            commit=event.commit,
        ):
            ctx = RunContext(
                run=run,
                run_root=run_dir,
                layout=self.layout,
                logger=self.logger,
                events=sink,
            )

            started_at = utc_now_iso()
            t0 = monotonic_ms()
            self.logger.info(
                "Run starting",
                kind=event.kind.value,
                is_main=event.is_main,
                run_root=str(run_dir),
            )
            ctx.emit(EventType.RUN_START, **event.to_dict())

            try:
                results = self._execute(ctx)
            finally:
                self._cleanup(run)

            newer = self._newer_commit(event, seq)
            if newer is not None:
                run.stale = True
                ctx.emit(EventType.RUN_STALE, superseded_by=newer)
                self.logger.warning("Run superseded by a newer trigger", superseded_by=newer)

            run.finish(self._final_status(run, ctx, results))

            finished_at = utc_now_iso()
            duration = monotonic_ms() - t0
            report = build_run_report(
                run=run,
                started_at_utc=started_at,
                finished_at_utc=finished_at,
                duration_ms=duration,
                stage_results=results,
                events_jsonl=str(events_path),
                provenance=RunProvenance(run_id=run.run_id, started_at_utc=started_at).to_dict(),
            )
            report_path = run_dir / "run_report.json"
            report.write_json(report_path)

            ctx.emit(
                EventType.RUN_FINISH,
                status=run.status.value,
                deployed=run.deployed,
                duration_ms=duration,
                report_json=str(report_path),
            )
            self.logger.info(
                "Run complete",
                status=run.status.value,
                deployed=run.deployed,
                cache_hit=run.cache_hit,
                duration_ms=duration,
                duration=format_duration_ms(duration),
                report=str(report_path),
            )

        return self._outcome(run, report, report_path)

    @staticmethod
    def _outcome(run: Run, report: RunReport, report_path: Path) -> RunOutcome:
        failed = report.failed_stage()
        failure_kind = failed.error.kind if failed is not None and failed.error else None
        return RunOutcome(
            run_id=run.run_id,
            status=run.status,
            deployed=run.deployed,
            cache_hit=run.cache_hit,
            logs=report.logs(),
            artifact_id=run.artifact_id,
            failure_kind=failure_kind,
            page_url=run.page_url,
            report_path=str(report_path),
            stale=run.stale,
            stages=tuple(f"{r.stage}:{r.status}" for r in report.stages),
        )

    def handle_many(
        self, events: Iterable[TriggerEvent], *, max_workers: int = 4
    ) -> list[RunOutcome]:
        """
        Handle triggers concurrently. Outcomes are returned in input order.
        """
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="run") as pool:
            return list(pool.map(self.handle, events))
