from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tag_release.core import ILogger

from .events import EventSink, EventType, make_event
from .types import TriggerEvent

if TYPE_CHECKING:
    from tag_release.stages.build import PackageArtifact
    from tag_release.stages.provision import ToolchainHandle
    from tag_release.stages.trigger import TagVersion


@dataclass(slots=True)
class RunContext:
    """
    Context shared across stages for a single pipeline run.

    Stages hand their products forward through the typed slots below. The
    registry credential is never held here; it passes only from the
    authenticate stage to the publish stage.
    """

    run_id: str
    run_root: Path
    workspace: Path
    trigger: TriggerEvent
    logger: ILogger
    events: EventSink

    tag: TagVersion | None = None
    toolchain: ToolchainHandle | None = None
    artifact: PackageArtifact | None = None
    cache_keys: dict[str, str] = field(default_factory=dict)
    cache_hits: dict[str, bool] = field(default_factory=dict)

    # optional free-form metadata
    meta: dict[str, Any] = field(default_factory=dict)

    def stage_logger(self, stage: str) -> ILogger:
        return self.logger.bind(stage=stage)

    def emit(self, event: EventType | str, *, stage: str | None = None, **kw: object) -> None:
        event_value = event.value if isinstance(event, EventType) else str(event)
        self.events.emit(
            make_event(event_type=event_value, run_id=self.run_id, stage=stage, **kw)
        )
        # Keep event chatter at debug level to leave console logs readable.
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)
