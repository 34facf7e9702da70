from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from content_deploy.core import CacheError, InvalidArgumentError, remove_tree
from content_deploy.pipeline.context import RunContext
from content_deploy.pipeline.events import EventType

from ..fingerprint import cache_key_prefix
from .archive import unpack_into
from .models import CacheEntry
from .store import CacheStore


@dataclass(slots=True)
class CacheRestoreStage:
    """
    Look up the exact cache key and restore its payload into the run's deps
    dir. Falls back to the newest entry sharing the key prefix as a warm
    seed. Cache failures of any kind degrade to a miss.
    """

    cache: CacheStore
    platform: str
    namespace: str = "pip"
    stage_id: str = "cache"

    def _restore(self, ctx: RunContext, entry: CacheEntry) -> int:
        dest = ctx.layout.deps(ctx.run_id)
        try:
            return unpack_into(entry.read_payload(), dest)
        except OSError as e:
            remove_tree(dest)
            raise CacheError(f"Cache entry {entry.key} unreadable: {e}") from e
        except CacheError:
            remove_tree(dest)
            raise

    def run(self, ctx: RunContext) -> dict[str, Any]:
        key = ctx.run.cache_key
        if key is None:
            raise RuntimeError("cache stage requires a fingerprint")
        log = ctx.stage_logger(self.stage_id)
        warnings: list[str] = []

        entry: CacheEntry | None = None
        try:
            entry = self.cache.lookup(key)
            if entry is not None:
                members = self._restore(ctx, entry)
                ctx.run.cache_hit = True
                ctx.emit(EventType.CACHE_HIT, stage=self.stage_id, key=key, members=members)
                return {"cache_hit": True, "key": key, "restored_from": key}
        except (CacheError, InvalidArgumentError) as e:
            warnings.append(f"cache lookup failed, treating as miss: {e}")
            log.warning("cache.lookup_failed", key=key, error=str(e))

        prefix = cache_key_prefix(platform=self.platform, namespace=self.namespace)
        try:
            partial = self.cache.restore_prefix(prefix)
            if partial is not None:
                members = self._restore(ctx, partial)
                ctx.meta["warm_from"] = partial.key
                ctx.emit(
                    EventType.CACHE_PARTIAL_HIT,
                    stage=self.stage_id,
                    key=key,
                    restored_from=partial.key,
                    members=members,
                )
                return {
                    "cache_hit": False,
                    "key": key,
                    "restored_from": partial.key,
                    "_warnings": warnings,
                }
        except (CacheError, InvalidArgumentError) as e:
            warnings.append(f"cache prefix restore failed: {e}")
            log.warning("cache.restore_prefix_failed", prefix=prefix, error=str(e))

        ctx.emit(EventType.CACHE_MISS, stage=self.stage_id, key=key)
        return {"cache_hit": False, "key": key, "restored_from": None, "_warnings": warnings}
