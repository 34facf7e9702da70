from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

import structlog
from content_deploy.core import (
    ArtifactNotFoundError,
    InvalidArgumentError,
    PublishError,
    TransientError,
    atomic_dir_commit,
    atomic_write_json,
    copy_tree,
    make_tmp_dir_for,
    read_json,
    read_sha256_sum_txt,
    remove_tree,
    sha256_file,
    write_sha256_sum_txt,
)
from content_deploy.core.retry import bounded_retrying
from content_deploy.pipeline.types import TriggerEvent
from tenacity import RetryError

from ..build.models import BuildResult
from .manifest import (
    ManifestValidationError,
    build_manifest,
    file_entries_from_dir,
    validate_manifest,
)
from .models import Artifact, artifact_id_for

log = structlog.get_logger(__name__)

_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$")

CONTENT_DIR = "content"
MANIFEST_NAME = "manifest.json"
SHA256SUMS_NAME = "sha256sums.txt"


class ArtifactStore(Protocol):
    def publish(
        self,
        result: BuildResult,
        *,
        run_id: str,
        event: TriggerEvent,
        fingerprint: str | None = None,
    ) -> Artifact: ...

    def retrieve(self, artifact_id: str) -> Artifact: ...

    def verify(self, artifact: Artifact) -> None: ...


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, FileExistsError):
        return False
    return isinstance(exc, (OSError, TransientError))


class FsArtifactStore:
    """
    Versioned artifact storage on the local filesystem:

      {root}/{artifact_id}/content/...
      {root}/{artifact_id}/manifest.json
      {root}/{artifact_id}/sha256sums.txt

    Artifacts are assembled in a temp dir and renamed into place. An existing
    artifact directory is never replaced.
    """

    def __init__(
        self,
        root: Path,
        *,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_cap: float = 4.0,
    ) -> None:
        self.root = Path(root)
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap

    def _publish_once(
        self,
        *,
        artifact_id: str,
        source_dir: Path,
        run_id: str,
        trigger: dict[str, object],
        build: dict[str, object],
    ) -> None:
        final_dir = self.root / artifact_id
        if final_dir.exists():
            raise FileExistsError(f"Target exists: {final_dir}")

        tmp_dir = make_tmp_dir_for(final_dir)
        try:
            content = tmp_dir / CONTENT_DIR
            if copy_tree(source_dir, content) == 0:
                raise PublishError(f"Build output is empty: {source_dir}")

            entries = file_entries_from_dir(content)
            manifest = build_manifest(
                artifact_id=artifact_id,
                producing_run=run_id,
                trigger=trigger,
                build=build,
                files=entries,
            )
            validate_manifest(manifest)
            atomic_write_json(tmp_dir / MANIFEST_NAME, manifest)

            sums = {f"{CONTENT_DIR}/{e.path}": e.sha256 for e in entries}
            sums[MANIFEST_NAME] = sha256_file(tmp_dir / MANIFEST_NAME).sha256
            write_sha256_sum_txt(tmp_dir / SHA256SUMS_NAME, sums)

            atomic_dir_commit(tmp_dir=tmp_dir, final_dir=final_dir)
        finally:
            if tmp_dir.exists():
                remove_tree(tmp_dir)

    def publish(
        self,
        result: BuildResult,
        *,
        run_id: str,
        event: TriggerEvent,
        fingerprint: str | None = None,
    ) -> Artifact:
        if result is None or not result.succeeded or result.artifact_ref is None:
            raise InvalidArgumentError("Only successful builds can be published")
        source_dir = Path(result.artifact_ref)
        if not source_dir.is_dir():
            raise InvalidArgumentError(f"Build output missing: {source_dir}")

        artifact_id = artifact_id_for(run_id)
        trigger = {
            "kind": event.kind.value,
            "branch": event.branch,
            "commit": event.commit,
            "pr_number": event.pr_number,
        }
        build = {
            "duration_ms": int(result.duration_ms),
            "returncode": result.returncode,
            "fingerprint": fingerprint,
        }

        retrying = bounded_retrying(
            op="publish",
            max_attempts=self.max_attempts,
            base=self.backoff_base,
            cap=self.backoff_cap,
            should_retry=_is_transient,
            artifact_id=artifact_id,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._publish_once(
                        artifact_id=artifact_id,
                        source_dir=source_dir,
                        run_id=run_id,
                        trigger=trigger,
                        build=build,
                    )
        except RetryError as re:
            last = re.last_attempt.exception()
            raise PublishError(
                f"Publishing artifact {artifact_id} failed after "
                f"{re.last_attempt.attempt_number} attempts: {last}"
            ) from last
        except FileExistsError as e:
            raise PublishError(
                f"Artifact {artifact_id} already exists and is never overwritten"
            ) from e
        except ManifestValidationError as e:
            raise PublishError(str(e)) from e

        log.info("artifact.published", artifact_id=artifact_id, run_id=run_id)
        return self.retrieve(artifact_id)

    def retrieve(self, artifact_id: str) -> Artifact:
        if not _ID_PATTERN.match(artifact_id):
            raise ArtifactNotFoundError(artifact_id)
        root = self.root / artifact_id
        manifest_path = root / MANIFEST_NAME
        if not manifest_path.is_file():
            raise ArtifactNotFoundError(artifact_id)

        manifest = read_json(manifest_path)
        validate_manifest(manifest)
        return Artifact(
            artifact_id=artifact_id,
            producing_run=str(manifest["producing_run"]),
            content_root=root / CONTENT_DIR,
            created_at_utc=str(manifest["created_at_utc"]),
            commit=str(manifest["trigger"]["commit"]),
            files=len(manifest["files"]),
            manifest_path=manifest_path,
        )

    def verify(self, artifact: Artifact) -> None:
        """
        Re-hash every file listed in sha256sums.txt. Raises PublishError on a
        missing or altered file.
        """
        sums_path = artifact.root / SHA256SUMS_NAME
        if not sums_path.is_file():
            raise PublishError(f"Artifact {artifact.artifact_id} has no {SHA256SUMS_NAME}")
        problems: list[str] = []
        for rel, expected in sorted(read_sha256_sum_txt(sums_path).items()):
            p = artifact.root / rel
            if not p.is_file():
                problems.append(f"missing {rel}")
            elif sha256_file(p).sha256 != expected:
                problems.append(f"altered {rel}")
        if problems:
            raise PublishError(
                f"Artifact {artifact.artifact_id} failed verification: " + ", ".join(problems)
            )

    def list_ids(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if _ID_PATTERN.match(p.name))
