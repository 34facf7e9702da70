from __future__ import annotations

from pathlib import Path

import pytest
from content_deploy.core import errors, paths, provenance, time
from content_deploy.core.retry import DeterministicExponentialBackoff, bounded_retrying
from tenacity import RetryError


def test_datalayout_paths_and_dirs(tmp_path: Path) -> None:
    layout = paths.DataLayout(root=tmp_path)
    assert layout.deps("r1") == tmp_path / "work" / "r1" / "deps"
    assert layout.build("r1") == tmp_path / "work" / "r1" / "build"

    layout.ensure_dirs()
    for name in ("cache", "artifacts", "site", "work"):
        assert (tmp_path / name).is_dir()


def test_stage_error_and_run_id() -> None:
    try:
        raise errors.PublishError("store down")
    except Exception as exc:
        err = errors.stage_error_from_exc(exc)
    assert err.exc_type == "PublishError"
    assert err.kind == "publish"
    assert "store down" in err.message
    assert "PublishError" in err.traceback

    assert errors.failure_kind_of(ValueError("x")) is errors.FailureKind.INTERNAL
    assert errors.failure_kind_of(
        errors.BuildTimeoutError(timeout_s=1, diagnostics="")
    ) is errors.FailureKind.TIMEOUT

    rid1, rid2 = provenance.new_run_id(), provenance.new_run_id()
    assert rid1 != rid2 and len(rid1) == 32


def test_timer_records_duration() -> None:
    with provenance.Timer() as t:
        pass
    assert t.duration_ms is not None and t.duration_ms >= 0


def test_time_helpers_format() -> None:
    assert time.utc_now_iso().endswith("Z")
    assert time.utc_stamp().endswith("Z")


def test_backoff_is_capped() -> None:
    class _State:
        def __init__(self, n: int) -> None:
            self.attempt_number = n

    w = DeterministicExponentialBackoff(base=0.5, cap=1.5)
    assert [w(_State(n)) for n in (1, 2, 3, 4, 5)] == [0.0, 0.5, 1.0, 1.5, 1.5]


def test_bounded_retrying_gives_up_after_budget() -> None:
    calls = []

    def flaky() -> None:
        calls.append(1)
        raise errors.TransientError("nope")

    retrying = bounded_retrying(
        op="test",
        max_attempts=3,
        base=0.0,
        cap=0.0,
        should_retry=lambda e: isinstance(e, errors.TransientError),
    )
    with pytest.raises(RetryError):
        for attempt in retrying:
            with attempt:
                flaky()
    assert len(calls) == 3
