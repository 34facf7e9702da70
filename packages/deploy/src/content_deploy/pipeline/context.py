from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from content_deploy.core import DataLayout, ILogger

from .events import EventSink, EventType, make_event
from .types import Run


@dataclass(slots=True)
class RunContext:
    """
    Context shared across stages for a single pipeline run.
    """

    run: Run
    run_root: Path
    layout: DataLayout
    logger: ILogger
    events: EventSink

    # optional free-form metadata
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def run_id(self) -> str:
        return self.run.run_id

    def stage_logger(self, stage: str) -> ILogger:
        return self.logger.bind(stage=stage)

    def emit(self, event: EventType | str, *, stage: str | None = None, **kw: object) -> None:
        # Keep event chatter at debug level to leave console logs readable.
        event_value = event.value if isinstance(event, EventType) else str(event)
        self.events.emit(
            make_event(event_type=event_value, run_id=self.run_id, stage=stage, **kw)
        )
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)
