from .context import RunContext
from .events import EventSink, EventType, make_event
from .report import RunResult, build_run_result
from .runner import PipelineRunner
from .stage import FunctionStage, Stage, StageResult, run_stage
from .types import Event, TriggerEvent

__all__ = [
    "RunContext",
    "EventSink",
    "EventType",
    "make_event",
    "RunResult",
    "build_run_result",
    "PipelineRunner",
    "FunctionStage",
    "Stage",
    "StageResult",
    "run_stage",
    "Event",
    "TriggerEvent",
]
