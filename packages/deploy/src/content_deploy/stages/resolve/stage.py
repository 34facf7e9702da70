from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from content_deploy.core import CacheError, InvalidArgumentError
from content_deploy.pipeline.context import RunContext
from content_deploy.pipeline.events import EventType

from ..cache import CacheStore, pack_dir
from .resolver import DependencyResolver, ResolvedDependencies, resolve_with_retry


@dataclass(slots=True)
class ResolveStage:
    """
    Use restored dependencies on an exact cache hit; otherwise resolve the
    manifests (seeded by any prefix restore) and store the result under the
    exact key.
    """

    cache: CacheStore
    resolver: DependencyResolver
    manifest_paths: list[Path]
    max_attempts: int = 2
    retry_wait_s: float = 1.0
    stage_id: str = "resolve"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        run = ctx.run
        if run.fingerprint is None or run.cache_key is None:
            raise RuntimeError("resolve stage requires a fingerprint")
        dest = ctx.layout.deps(ctx.run_id)
        dest.mkdir(parents=True, exist_ok=True)

        if run.cache_hit:
            deps = ResolvedDependencies(root=dest, fingerprint=run.fingerprint, source="cache")
            ctx.meta["dependencies"] = deps
            return {"source": deps.source, "root": str(dest)}

        source = "warm" if ctx.meta.get("warm_from") else "fresh"
        ctx.emit(EventType.RESOLVE_START, stage=self.stage_id, source=source)
        attempts = resolve_with_retry(
            self.resolver,
            self.manifest_paths,
            dest,
            max_attempts=self.max_attempts,
            wait_s=self.retry_wait_s,
        )
        ctx.emit(EventType.RESOLVE_FINISH, stage=self.stage_id, attempts=attempts)

        deps = ResolvedDependencies(root=dest, fingerprint=run.fingerprint, source=source)
        ctx.meta["dependencies"] = deps

        warnings: list[str] = []
        try:
            entry = self.cache.store(run.cache_key, pack_dir(dest))
            run.cache_stored = True
            ctx.emit(
                EventType.CACHE_STORED,
                stage=self.stage_id,
                key=entry.key,
                bytes=entry.bytes,
                sha256=entry.sha256,
            )
        except (CacheError, InvalidArgumentError, OSError) as e:
            # caching is an optimization; the fresh resolve is still valid
            warnings.append(f"cache store failed: {e}")
            ctx.emit(EventType.CACHE_STORE_FAILED, stage=self.stage_id, error=str(e))

        return {
            "source": source,
            "root": str(dest),
            "_metrics": {"attempts": attempts},
            "_warnings": warnings,
        }
