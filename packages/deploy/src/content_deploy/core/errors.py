from __future__ import annotations

import traceback
from dataclasses import dataclass
from enum import StrEnum


class PipelineError(RuntimeError):
    """Base error"""


class FailureKind(StrEnum):
    DEPENDENCY_RESOLUTION = "dependency_resolution"
    BUILD = "build"
    TIMEOUT = "timeout"
    PUBLISH = "publish"
    PROMOTION = "promotion"
    INTERNAL = "internal"


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str
    kind: str = FailureKind.INTERNAL.value


def failure_kind_of(exc: BaseException) -> FailureKind:
    kind = getattr(exc, "kind", None)
    if isinstance(kind, FailureKind):
        return kind
    return FailureKind.INTERNAL


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
        kind=failure_kind_of(exc).value,
    )


class TransientError(PipelineError):
    """
    Retryable failures such as network timeouts, temporary upstream 5xx
    """


class InvalidArgumentError(PipelineError, ValueError):
    """Caller passed a value the operation cannot accept"""


class DependencyResolutionError(PipelineError):
    """
    Dependency manifest could not be resolved (network, bad pins, resolver crash).
    Retried once by the resolve stage, then fatal for the run.
    """

    kind = FailureKind.DEPENDENCY_RESOLUTION


class BuildError(PipelineError):
    """
    The rendering toolchain failed. Never retried.

    `diagnostics` holds the toolchain's combined stdout/stderr verbatim.
    """

    kind = FailureKind.BUILD

    def __init__(
        self,
        message: str,
        *,
        diagnostics: str = "",
        returncode: int | None = None,
        pid: int | None = None,
    ) -> None:
        text = message
        if diagnostics:
            text += "\n" + diagnostics
        super().__init__(text)
        self.summary = message
        self.diagnostics = diagnostics
        self.returncode = returncode
        self.pid = pid


class BuildTimeoutError(BuildError):
    """Build exceeded its wall-clock budget; the process group was killed"""

    kind = FailureKind.TIMEOUT

    def __init__(
        self,
        *,
        timeout_s: float,
        diagnostics: str = "",
        pid: int | None = None,
    ) -> None:
        super().__init__(
            f"Build exceeded timeout of {timeout_s:g}s",
            diagnostics=diagnostics,
            returncode=None,
            pid=pid,
        )
        self.timeout_s = timeout_s


class CacheError(PipelineError):
    """Cache store I/O failure. Never fatal for a run."""


class CacheCorruptionError(CacheError):
    """A cache key maps to a payload that does not match its recorded digest"""

    def __init__(self, key: str, *, expected: str, actual: str) -> None:
        super().__init__(
            f"Cache entry {key} is corrupt: expected sha256 {expected}, got {actual}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual


class PublishError(PipelineError):
    """Artifact store unavailable or refused the artifact"""

    kind = FailureKind.PUBLISH


class ArtifactNotFoundError(PipelineError, LookupError):
    def __init__(self, artifact_id: str) -> None:
        super().__init__(f"Artifact not found: {artifact_id}")
        self.artifact_id = artifact_id


class PromotionError(PipelineError):
    """
    Hosting endpoint rejected the promotion. The live site stays on the
    previous artifact.
    """

    kind = FailureKind.PROMOTION


class GateTokenError(PipelineError):
    """Release attempted with a token that does not hold the gate"""
