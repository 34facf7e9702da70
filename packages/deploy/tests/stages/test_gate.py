from __future__ import annotations

import threading

import pytest
from content_deploy.core import GateTokenError
from content_deploy.stages.deploy import DeploymentGate, GateState


def test_single_token_under_contention() -> None:
    gate = DeploymentGate("pages")
    barrier = threading.Barrier(16)
    tokens = []
    lock = threading.Lock()

    def worker(i: int) -> None:
        barrier.wait()
        tok = gate.try_acquire(f"req-{i}")
        with lock:
            tokens.append(tok)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [t for t in tokens if t is not None]
    assert len(winners) == 1
    assert gate.held
    assert gate.pending is not None

    gate.release(winners[0])
    assert not gate.held
    assert gate.state is GateState.IDLE


def test_busy_request_supersedes_older_pending() -> None:
    gate = DeploymentGate()
    holder = gate.try_acquire("first")
    assert holder is not None

    assert gate.try_acquire("second", artifact_id="a" * 32) is None
    assert gate.try_acquire("third", artifact_id="b" * 32) is None

    pending = gate.take_pending()
    assert pending is not None
    assert pending.request_id == "third"
    assert pending.artifact_id == "b" * 32
    assert gate.take_pending() is None

    gate.release(holder)


def test_new_holder_drops_pending_left_by_failed_holder() -> None:
    gate = DeploymentGate()
    holder = gate.try_acquire("first")
    assert holder is not None
    assert gate.try_acquire("second", artifact_id="a" * 32) is None

    with pytest.raises(RuntimeError):
        with gate.deploying(holder):
            raise RuntimeError("host rejected upload")
    assert gate.pending is not None

    newer = gate.try_acquire("third", artifact_id="b" * 32)
    assert newer is not None
    assert gate.pending is None
    assert gate.take_pending() is None
    gate.release(newer)


def test_release_with_stale_token_is_an_error() -> None:
    gate = DeploymentGate()
    first = gate.try_acquire("one")
    assert first is not None
    gate.release(first)

    with pytest.raises(GateTokenError):
        gate.release(first)

    second = gate.try_acquire("two")
    assert second is not None
    with pytest.raises(GateTokenError):
        gate.release(first)
    gate.release(second)


def test_deploying_releases_on_failure() -> None:
    gate = DeploymentGate()
    token = gate.try_acquire("r")
    assert token is not None
    assert gate.state is GateState.ACQUIRING

    with pytest.raises(RuntimeError):
        with gate.deploying(token):
            assert gate.state is GateState.DEPLOYING
            raise RuntimeError("host rejected upload")

    assert gate.state is GateState.IDLE
    assert not gate.held
    assert gate.try_acquire("next") is not None
