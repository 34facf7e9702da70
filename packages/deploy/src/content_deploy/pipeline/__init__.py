from .context import RunContext
from .events import EventSink, EventType
from .report import RunReport
from .stage import Stage, StageResult, run_stage, skipped_stage
from .types import EventKind, Run, RunOutcome, RunStatus, TriggerEvent

__all__ = [
    "EventKind",
    "EventSink",
    "EventType",
    "Run",
    "RunContext",
    "RunOutcome",
    "RunReport",
    "RunStatus",
    "Stage",
    "StageResult",
    "TriggerEvent",
    "run_stage",
    "skipped_stage",
]
