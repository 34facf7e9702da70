from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Iterator, Optional

import structlog
from content_deploy.core import GateTokenError, utc_now_iso

log = structlog.get_logger(__name__)


class GateState(StrEnum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    DEPLOYING = "deploying"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class GateToken:
    group: str
    request_id: str
    serial: int
    acquired_at_utc: str


@dataclass(frozen=True, slots=True)
class PendingRequest:
    request_id: str
    artifact_id: Optional[str]
    requested_at_utc: str


class DeploymentGate:
    """
    Single-slot mutual exclusion around promotion for one deployment group.

    try_acquire() never blocks: a busy gate records the caller as the pending
    request (replacing any older pending one) and returns None. The holder is
    never cancelled. A new holder drops whatever was pending when it took the
    gate, so a pending request is only ever honoured by the holder it queued
    behind.
    """

    def __init__(self, group: str = "pages") -> None:
        self.group = group
        self._slot = threading.Lock()
        self._state_lock = threading.Lock()
        self._serial = itertools.count(1)
        self._token: GateToken | None = None
        self._state = GateState.IDLE
        self._pending: PendingRequest | None = None

    @property
    def state(self) -> GateState:
        with self._state_lock:
            return self._state

    @property
    def held(self) -> bool:
        with self._state_lock:
            return self._token is not None

    @property
    def pending(self) -> PendingRequest | None:
        with self._state_lock:
            return self._pending

    def try_acquire(
        self, request_id: str, artifact_id: str | None = None
    ) -> GateToken | None:
        # slot and pending are updated together so release() cannot interleave
        with self._state_lock:
            if not self._slot.acquire(blocking=False):
                dropped = self._pending
                self._pending = PendingRequest(
                    request_id=request_id,
                    artifact_id=artifact_id,
                    requested_at_utc=utc_now_iso(),
                )
                token = None
            else:
                dropped, self._pending = self._pending, None
                self._state = GateState.ACQUIRING
                token = GateToken(
                    group=self.group,
                    request_id=request_id,
                    serial=next(self._serial),
                    acquired_at_utc=utc_now_iso(),
                )
                self._token = token

        if token is None:
            log.info("gate.busy", group=self.group, request_id=request_id)
        else:
            log.info("gate.acquired", group=self.group, request_id=request_id)
        if dropped is not None:
            log.info(
                "gate.pending_dropped",
                group=self.group,
                dropped=dropped.request_id,
                by=request_id,
            )
        return token

    def _check_holder(self, token: GateToken) -> None:
        if self._token is None or self._token != token:
            raise GateTokenError(
                f"Token {token.request_id}#{token.serial} does not hold gate {self.group}"
            )

    def release(self, token: GateToken) -> None:
        with self._state_lock:
            self._check_holder(token)
            self._token = None
            self._state = GateState.IDLE
            self._slot.release()
        log.info("gate.released", group=self.group, request_id=token.request_id)

    @contextmanager
    def deploying(self, token: GateToken) -> Iterator[GateToken]:
        """
        Mark the holder as deploying for the duration of the block. The gate
        is released on exit whatever happens inside.
        """
        with self._state_lock:
            self._check_holder(token)
            self._state = GateState.DEPLOYING
        try:
            yield token
        except BaseException:
            with self._state_lock:
                self._state = GateState.FAILED
            raise
        finally:
            self.release(token)

    def take_pending(self) -> PendingRequest | None:
        with self._state_lock:
            req, self._pending = self._pending, None
        return req
