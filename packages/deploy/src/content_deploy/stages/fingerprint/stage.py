from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from content_deploy.core import platform_tag
from content_deploy.pipeline.context import RunContext
from content_deploy.pipeline.events import EventType

from .fingerprint import cache_key, fingerprint_manifests


@dataclass(slots=True)
class FingerprintStage:
    manifest_paths: list[Path]
    namespace: str = "pip"
    platform: str = field(default_factory=platform_tag)
    stage_id: str = "fingerprint"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        fp = fingerprint_manifests(self.manifest_paths)
        key = cache_key(fp, platform=self.platform, namespace=self.namespace)

        ctx.run.fingerprint = fp
        ctx.run.cache_key = key
        ctx.emit(
            EventType.FINGERPRINT_COMPUTED,
            stage=self.stage_id,
            fingerprint=fp.value,
            cache_key=key,
            manifests=[str(p) for p in self.manifest_paths],
        )
        return {"fingerprint": fp.value, "cache_key": key}
