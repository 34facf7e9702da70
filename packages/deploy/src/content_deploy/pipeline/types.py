from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Optional

from content_deploy.core import InvalidArgumentError, utc_now_iso

if TYPE_CHECKING:
    from content_deploy.stages.build.models import BuildResult
    from content_deploy.stages.fingerprint import DependencyFingerprint

_GITHUB_EVENT_KINDS = {
    "push": "push",
    "pull_request": "pull_request",
    "workflow_dispatch": "manual",
}


class EventKind(StrEnum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    MANUAL = "manual"


class RunStatus(StrEnum):
    PENDING = "pending"
    DEPLOYED = "deployed"
    CHECK_PASSED = "check_passed"
    BUILT = "built"
    SKIPPED_SUPERSEDED = "skipped_superseded"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self is not RunStatus.PENDING


@dataclass(frozen=True, slots=True)
class TriggerEvent:
    """
    One trigger delivered by the event source. Consumed once.
    """

    kind: EventKind
    branch: str
    commit: str
    is_main: bool
    pr_number: Optional[int] = None
    received_at_utc: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, EventKind):
            object.__setattr__(self, "kind", EventKind(self.kind))
        if not self.commit:
            raise InvalidArgumentError("TriggerEvent.commit must not be empty")

    @property
    def wants_deploy(self) -> bool:
        return self.kind is EventKind.PUSH and self.is_main

    @classmethod
    def create(
        cls,
        *,
        kind: EventKind | str,
        branch: str,
        commit: str,
        main_branch: str = "main",
        pr_number: int | None = None,
    ) -> "TriggerEvent":
        return cls(
            kind=EventKind(kind),
            branch=branch,
            commit=commit,
            is_main=branch == main_branch,
            pr_number=pr_number,
        )

    @classmethod
    def from_github_env(
        cls, environ: Mapping[str, str], *, main_branch: str = "main"
    ) -> "TriggerEvent":
        """
        Build an event from the variables a GitHub Actions job exposes.

        For pull requests the branch is the PR base (`GITHUB_BASE_REF`) when
        set, matching `on.pull_request.branches` filtering.
        """
        name = environ.get("GITHUB_EVENT_NAME", "")
        if name not in _GITHUB_EVENT_KINDS:
            raise InvalidArgumentError(f"Unsupported GITHUB_EVENT_NAME: {name!r}")
        kind = EventKind(_GITHUB_EVENT_KINDS[name])

        ref = environ.get("GITHUB_REF", "")
        branch = ref.removeprefix("refs/heads/")
        if kind is EventKind.PULL_REQUEST:
            branch = environ.get("GITHUB_BASE_REF") or branch

        pr_number: int | None = None
        event_path = environ.get("GITHUB_EVENT_PATH")
        if event_path and Path(event_path).is_file():
            payload = json.loads(Path(event_path).read_text(encoding="utf-8"))
            if isinstance(payload.get("number"), int):
                pr_number = payload["number"]

        return cls(
            kind=kind,
            branch=branch,
            commit=environ.get("GITHUB_SHA", ""),
            is_main=branch == main_branch,
            pr_number=pr_number,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "branch": self.branch,
            "commit": self.commit,
            "is_main": self.is_main,
            "pr_number": self.pr_number,
            "received_at_utc": self.received_at_utc,
        }


@dataclass(slots=True)
class Run:
    """
    Aggregate for one trigger, filled in as stages complete.
    """

    run_id: str
    event: TriggerEvent
    fingerprint: Optional["DependencyFingerprint"] = None
    cache_key: Optional[str] = None
    cache_hit: bool = False
    cache_stored: bool = False
    build_result: Optional["BuildResult"] = None
    artifact_id: Optional[str] = None
    deployed: bool = False
    page_url: Optional[str] = None
    stale: bool = False
    status: RunStatus = RunStatus.PENDING

    def finish(self, status: RunStatus) -> None:
        if self.status.is_terminal():
            raise InvalidArgumentError(
                f"Run {self.run_id} already finished as {self.status.value}"
            )
        if status is RunStatus.DEPLOYED and not self.deployed:
            raise InvalidArgumentError("DEPLOYED requires a completed promotion")
        if status is not RunStatus.DEPLOYED and self.deployed:
            raise InvalidArgumentError(f"{status.value} contradicts deployed=True")
        self.status = status


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """
    Human-facing summary of a finished run (e.g. for a PR status check).
    """

    run_id: str
    status: RunStatus
    deployed: bool
    cache_hit: bool
    logs: str
    artifact_id: Optional[str] = None
    failure_kind: Optional[str] = None
    page_url: Optional[str] = None
    report_path: Optional[str] = None
    stale: bool = False
    stages: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is not RunStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "deployed": self.deployed,
            "cache_hit": self.cache_hit,
            "artifact_id": self.artifact_id,
            "failure_kind": self.failure_kind,
            "page_url": self.page_url,
            "report_path": self.report_path,
            "stale": self.stale,
            "stages": list(self.stages),
            "logs": self.logs,
        }


@dataclass(frozen=True, slots=True)
class Event:
    """
    Structured event emitted by the pipeline.
    """

    type: str
    ts_utc: str
    run_id: str
    stage: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
