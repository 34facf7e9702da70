from __future__ import annotations

import os
from pathlib import Path

import pytest
from content_deploy.core import BuildError, BuildTimeoutError
from content_deploy.stages.build import BuildStatus, SubprocessBuilder
from content_deploy.stages.fingerprint import fingerprint_bytes
from content_deploy.stages.resolve import ResolvedDependencies

RENDER = (
    "import pathlib, sys; "
    "out = pathlib.Path(sys.argv[1], '_build', 'html'); "
    "out.mkdir(parents=True); "
    "(out / 'index.html').write_text('<h1>book</h1>'); "
    "print('rendered 1 page')"
)


def _deps(tmp_path: Path) -> ResolvedDependencies:
    root = tmp_path / "deps"
    root.mkdir(exist_ok=True)
    return ResolvedDependencies(root=root, fingerprint=fingerprint_bytes([b"x"]), source="fresh")


def _corpus(tmp_path: Path) -> Path:
    corpus = tmp_path / "book"
    corpus.mkdir(exist_ok=True)
    (corpus / "intro.md").write_text("# Intro\n")
    return corpus


def _builder(tmp_path: Path, script: str, **kw) -> SubprocessBuilder:
    return SubprocessBuilder(
        command=f'{{python}} -c "{script}" {{output}}',
        work_root=tmp_path / "work",
        **kw,
    )


def test_successful_build_returns_output(tmp_path: Path) -> None:
    corpus = _corpus(tmp_path)
    result = _builder(tmp_path, RENDER).build(corpus, _deps(tmp_path))

    assert result.status is BuildStatus.SUCCESS
    assert result.artifact_ref is not None
    assert (result.artifact_ref / "index.html").read_text() == "<h1>book</h1>"
    assert "rendered 1 page" in result.logs
    assert result.workspace is not None and result.workspace.is_dir()
    assert sorted(p.name for p in corpus.iterdir()) == ["intro.md"]


def test_failing_build_keeps_diagnostics(tmp_path: Path) -> None:
    script = "import sys; print('Error: notebook cell failed'); sys.exit(2)"
    with pytest.raises(BuildError) as ei:
        _builder(tmp_path, script).build(_corpus(tmp_path), _deps(tmp_path))

    assert ei.value.returncode == 2
    assert "Error: notebook cell failed" in ei.value.diagnostics
    assert "Error: notebook cell failed" in str(ei.value)
    assert not isinstance(ei.value, BuildTimeoutError)
    assert list((tmp_path / "work").iterdir()) == []


def test_missing_required_output_is_a_build_error(tmp_path: Path) -> None:
    script = "print('rendered nothing')"
    with pytest.raises(BuildError, match="no output directory"):
        _builder(tmp_path, script).build(_corpus(tmp_path), _deps(tmp_path))


def test_timeout_kills_and_reaps_process(tmp_path: Path) -> None:
    script = "import time; print('starting', flush=True); time.sleep(60)"
    builder = _builder(tmp_path, script, timeout_s=0.5, kill_grace_s=1.0)

    with pytest.raises(BuildTimeoutError) as ei:
        builder.build(_corpus(tmp_path), _deps(tmp_path))

    err = ei.value
    assert err.kind.value == "timeout"
    assert err.pid is not None
    with pytest.raises(ProcessLookupError):
        os.kill(err.pid, 0)


def test_build_runs_with_dependency_env(tmp_path: Path) -> None:
    script = (
        "import os, pathlib, sys; "
        "out = pathlib.Path(sys.argv[1], '_build', 'html'); "
        "out.mkdir(parents=True); "
        "(out / 'index.html').write_text(os.environ['CONTENT_DEPLOY_DEPS'])"
    )
    deps = _deps(tmp_path)
    result = _builder(tmp_path, script).build(_corpus(tmp_path), deps)
    assert result.artifact_ref is not None
    assert (result.artifact_ref / "index.html").read_text() == str(deps.root)
