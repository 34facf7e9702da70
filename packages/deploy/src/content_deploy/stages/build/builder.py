from __future__ import annotations

import os
import shlex
import signal
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog
from content_deploy.core import (
    BuildError,
    BuildTimeoutError,
    InvalidArgumentError,
    Timer,
    remove_tree,
)

from ..resolve import ResolvedDependencies
from .models import BuildResult, BuildStatus

log = structlog.get_logger(__name__)


class Builder(Protocol):
    def build(self, corpus_root: Path, deps: ResolvedDependencies) -> BuildResult: ...


def _signal_group(pid: int, sig: signal.Signals) -> None:
    try:
        os.killpg(pid, sig)
    except ProcessLookupError:
        return


@dataclass(slots=True)
class SubprocessBuilder:
    """
    Invoke the external rendering toolchain over the whole corpus.

    `command` placeholders: {corpus}, {output}, {python}. The process runs in
    its own session so a timeout can kill every descendant, and is always
    reaped before build() returns or raises.
    """

    command: str
    work_root: Path
    timeout_s: float = 300.0
    output_subdir: str = "_build/html"
    required_files: tuple[str, ...] = ("index.html",)
    kill_grace_s: float = 5.0

    def argv(self, corpus_root: Path, output_root: Path) -> list[str]:
        return [
            part.format(corpus=str(corpus_root), output=str(output_root), python=sys.executable)
            for part in shlex.split(self.command)
        ]

    def _terminate(self, proc: subprocess.Popen[str]) -> str:
        _signal_group(proc.pid, signal.SIGTERM)
        try:
            out, _ = proc.communicate(timeout=self.kill_grace_s)
        except subprocess.TimeoutExpired:
            _signal_group(proc.pid, signal.SIGKILL)
            out, _ = proc.communicate()
        return out or ""

    def _validate_output(self, html_root: Path, logs: str, pid: int) -> None:
        if not html_root.is_dir():
            raise BuildError(
                f"Build produced no output directory at {html_root}",
                diagnostics=logs,
                returncode=0,
                pid=pid,
            )
        missing = [f for f in self.required_files if not (html_root / f).is_file()]
        if missing:
            raise BuildError(
                f"Build output is missing required files: {', '.join(missing)}",
                diagnostics=logs,
                returncode=0,
                pid=pid,
            )

    def build(self, corpus_root: Path, deps: ResolvedDependencies) -> BuildResult:
        corpus_root = Path(corpus_root).resolve()
        if not corpus_root.is_dir():
            raise InvalidArgumentError(f"Corpus root is not a directory: {corpus_root}")

        self.work_root.mkdir(parents=True, exist_ok=True)
        output_root = Path(tempfile.mkdtemp(prefix="build.", dir=str(self.work_root)))
        try:
            return self._build_into(corpus_root, deps, output_root)
        except BaseException:
            remove_tree(output_root)
            raise

    def _build_into(
        self, corpus_root: Path, deps: ResolvedDependencies, output_root: Path
    ) -> BuildResult:
        argv = self.argv(corpus_root, output_root)
        log.info("build.exec", argv=argv, timeout_s=self.timeout_s, deps=deps.source)

        with Timer() as t:
            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=str(corpus_root),
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    text=True,
                    env=deps.env(),
                    start_new_session=True,
                )
            except OSError as e:
                raise BuildError(f"Build command could not start: {shlex.join(argv)}: {e}") from e

            try:
                logs, _ = proc.communicate(timeout=self.timeout_s)
            except subprocess.TimeoutExpired:
                partial = self._terminate(proc)
                log.error("build.timeout", pid=proc.pid, timeout_s=self.timeout_s)
                raise BuildTimeoutError(
                    timeout_s=self.timeout_s, diagnostics=partial, pid=proc.pid
                ) from None
            except BaseException:
                # interrupted: never leave the renderer running
                self._terminate(proc)
                raise

        logs = logs or ""
        if proc.returncode != 0:
            raise BuildError(
                f"Build command failed with exit code {proc.returncode}: {shlex.join(argv)}",
                diagnostics=logs,
                returncode=proc.returncode,
                pid=proc.pid,
            )

        html_root = output_root / self.output_subdir
        self._validate_output(html_root, logs, proc.pid)

        return BuildResult(
            status=BuildStatus.SUCCESS,
            logs=logs,
            duration_ms=int(t.duration_ms or 0),
            artifact_ref=html_root,
            returncode=0,
            workspace=output_root,
        )
