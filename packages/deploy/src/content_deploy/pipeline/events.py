from __future__ import annotations

import json
import os
import socket
import threading
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from content_deploy.core import utc_now_iso

from .types import Event


class EventType(str, Enum):
    RUN_ENV = "run.env"
    RUN_START = "run.start"
    RUN_STALE = "run.stale"
    RUN_FINISH = "run.finish"

    STAGE_START = "stage.start"
    STAGE_WARN = "stage.warn"
    STAGE_METRICS = "stage.metrics"
    STAGE_SUCCESS = "stage.success"
    STAGE_SKIPPED = "stage.skipped"
    STAGE_FAILED = "stage.failed"

    FINGERPRINT_COMPUTED = "fingerprint.computed"

    CACHE_HIT = "cache.hit"
    CACHE_PARTIAL_HIT = "cache.partial_hit"
    CACHE_MISS = "cache.miss"
    CACHE_STORED = "cache.stored"
    CACHE_STORE_FAILED = "cache.store_failed"

    RESOLVE_START = "resolve.start"
    RESOLVE_FINISH = "resolve.finish"

    BUILD_START = "build.start"
    BUILD_FINISH = "build.finish"

    PUBLISH_START = "publish.start"
    PUBLISH_FINISH = "publish.finish"

    GATE_ACQUIRED = "gate.acquired"
    GATE_BUSY = "gate.busy"
    GATE_RELEASED = "gate.released"

    DEPLOY_START = "deploy.start"
    DEPLOY_FINISH = "deploy.finish"

    CHECK_PASSED = "check.passed"


class EventSink:
    """
    Append-only JSONL event log for one run.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        self.emit(
            Event(
                type=EventType.RUN_ENV.value,
                ts_utc=utc_now_iso(),
                run_id="__init__",
                data={
                    "hostname": socket.gethostname(),
                    "pid": os.getpid(),
                    "cwd": str(Path.cwd()),
                },
            )
        )

    def emit(self, event: Event) -> None:
        line = json.dumps(asdict(event), ensure_ascii=False, default=str)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")

    def read(self) -> list[Event]:
        with self._lock:
            if not self.path.exists():
                return []
            lines = self.path.read_text(encoding="utf-8").splitlines()
        return [Event(**json.loads(line)) for line in lines if line.strip()]


def make_event(
    *,
    event_type: EventType | str,
    run_id: str,
    stage: Optional[str] = None,
    **data: Any,
) -> Event:
    type_value = (
        event_type.value if isinstance(event_type, EventType) else str(event_type)
    )
    return Event(
        type=type_value,
        ts_utc=utc_now_iso(),
        run_id=run_id,
        stage=stage,
        data=dict(data),
    )
