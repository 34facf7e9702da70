from __future__ import annotations

import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, Sequence

import structlog
from content_deploy.core import DependencyResolutionError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..fingerprint import DependencyFingerprint

log = structlog.get_logger(__name__)

# Output kept on failure; pip can be very chatty.
_MAX_DIAGNOSTIC_CHARS = 20_000


@dataclass(frozen=True, slots=True)
class ResolvedDependencies:
    """
    Installed toolchain dependencies for one run.

    source: "cache" (exact restore), "warm" (prefix restore + resolve) or
    "fresh" (resolved from scratch).
    """

    root: Path
    fingerprint: DependencyFingerprint
    source: str

    def env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ if base is None else base)
        root = str(self.root)
        env["PYTHONPATH"] = os.pathsep.join(
            x for x in (root, env.get("PYTHONPATH", "")) if x
        )
        env["PATH"] = os.pathsep.join(
            x for x in (str(self.root / "bin"), env.get("PATH", "")) if x
        )
        env["CONTENT_DEPLOY_DEPS"] = root
        return env


class DependencyResolver(Protocol):
    def resolve(self, manifest_paths: Sequence[Path], dest: Path) -> None: ...


def _tail(text: str) -> str:
    if len(text) <= _MAX_DIAGNOSTIC_CHARS:
        return text
    return "...\n" + text[-_MAX_DIAGNOSTIC_CHARS:]


@dataclass(slots=True)
class CommandResolver:
    """
    Runs `command` once per manifest. Placeholders: {manifest}, {dest},
    {python}.
    """

    command: str
    timeout_s: float = 900.0

    def argv(self, manifest: Path, dest: Path) -> list[str]:
        return [
            part.format(manifest=str(manifest), dest=str(dest), python=sys.executable)
            for part in shlex.split(self.command)
        ]

    def resolve(self, manifest_paths: Sequence[Path], dest: Path) -> None:
        dest.mkdir(parents=True, exist_ok=True)
        for manifest in manifest_paths:
            argv = self.argv(Path(manifest), dest)
            try:
                proc = subprocess.run(
                    argv,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    timeout=self.timeout_s,
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                raise DependencyResolutionError(
                    f"Dependency resolution timed out after {self.timeout_s:g}s: {shlex.join(argv)}"
                ) from e
            except OSError as e:
                raise DependencyResolutionError(
                    f"Dependency resolver could not start: {shlex.join(argv)}: {e}"
                ) from e

            if proc.returncode != 0:
                raise DependencyResolutionError(
                    f"Dependency resolution failed (exit {proc.returncode}): {shlex.join(argv)}\n"
                    + _tail(proc.stdout or "")
                )


def resolve_with_retry(
    resolver: DependencyResolver,
    manifest_paths: Sequence[Path],
    dest: Path,
    *,
    max_attempts: int = 2,
    wait_s: float = 1.0,
) -> int:
    """
    Resolve, retrying DependencyResolutionError once by default. Returns the
    number of attempts used; the last error propagates unchanged.
    """

    def _before_sleep(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "resolve.retry",
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else None,
        )

    attempts = 0
    for attempt in Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(wait_s),
        retry=retry_if_exception_type(DependencyResolutionError),
        reraise=True,
        before_sleep=_before_sleep,
    ):
        with attempt:
            attempts = attempt.retry_state.attempt_number
            resolver.resolve(manifest_paths, dest)
    return attempts
