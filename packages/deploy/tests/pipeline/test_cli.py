from __future__ import annotations

from pathlib import Path

import pytest
from content_deploy import cli
from content_deploy.core import load_settings


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CONTENT_DEPLOY_DATA_ROOT", str(tmp_path / "data"))
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_fingerprint_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest = tmp_path / "requirements.txt"
    manifest.write_text("jupyter-book\n")

    assert cli.main(["fingerprint", "--manifest", str(manifest)]) == 0
    out = capsys.readouterr().out
    assert "fingerprint" in out
    assert "cache_key" in out


def test_fingerprint_missing_manifest(tmp_path: Path) -> None:
    assert cli.main(["fingerprint", "--manifest", str(tmp_path / "missing.txt")]) == 2


def test_run_requires_a_trigger() -> None:
    assert cli.main(["run", "--event", "push"]) == 2


def test_artifact_unknown(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["artifact", "0" * 32]) == 1
    assert "Artifact not found" in capsys.readouterr().out
