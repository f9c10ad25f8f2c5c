from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional, Protocol

from tag_release.core import StageError, monotonic_ms, stage_error_from_exc, utc_now_iso

from .context import RunContext
from .events import EventType

StageStatus = Literal["success", "halted", "failed"]

# Reserved output keys, popped before outputs are recorded.
WARNINGS_KEY = "_warnings"
METRICS_KEY = "_metrics"
HALT_KEY = "_halt"


def format_duration_ms(ms: int) -> str:
    """Return a short human-readable duration string."""
    if ms < 1000:
        return f"{ms} ms"
    return f"{ms / 1000:.2f} s"


class Stage(Protocol):
    stage_id: str

    def run(self, ctx: RunContext) -> dict[str, Any] | None: ...


StageFn = Callable[[RunContext], dict[str, Any] | None]


@dataclass(slots=True)
class FunctionStage:
    """
    Adapter that turns a plain function into a Stage.
    """

    stage_id: str
    fn: StageFn

    def run(self, ctx: RunContext) -> dict[str, Any] | None:
        return self.fn(ctx)


@dataclass(slots=True)
class StageResult:
    stage: str
    status: StageStatus
    started_at_utc: str
    finished_at_utc: str
    duration_ms: int

    outputs: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: Optional[StageError] = None


def run_stage(
    *,
    ctx: RunContext,
    stage: Stage,
    index: int | None = None,
    total: int | None = None,
) -> StageResult:
    """
    Run one stage and normalize its outcome.

    Exceptions become a `failed` result carrying a StageError. A stage may
    return `_halt: True` to end the run early without failing it.
    """
    stage_id = stage.stage_id
    log = ctx.stage_logger(stage_id)

    t0 = monotonic_ms()
    started_at = utc_now_iso()
    position = f"{index}/{total}" if index is not None and total is not None else None

    ctx.emit(EventType.STAGE_START, stage=stage_id)
    log.info("Stage starting", position=position)

    warnings: list[str] = []
    metrics: dict[str, Any] = {}

    try:
        out = stage.run(ctx) or {}
        if not isinstance(out, dict):
            raise TypeError(
                f"Stage {stage_id} returned {type(out).__name__}, expected dict or None"
            )

        w = out.pop(WARNINGS_KEY, None)
        if isinstance(w, list):
            warnings.extend(str(x) for x in w)

        m = out.pop(METRICS_KEY, None)
        if isinstance(m, dict):
            metrics.update(m)

        halted = bool(out.pop(HALT_KEY, False))
        status: StageStatus = "halted" if halted else "success"

        for msg in warnings:
            ctx.emit(EventType.STAGE_WARN, stage=stage_id, message=msg)
            log.warning(msg)

        if metrics:
            ctx.emit(EventType.STAGE_METRICS, stage=stage_id, metrics=metrics)

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        ctx.emit(
            EventType.STAGE_HALT if halted else EventType.STAGE_SUCCESS,
            stage=stage_id,
            duration_ms=duration,
        )
        log.info(
            "Stage halted the run" if halted else "Stage succeeded",
            status=status,
            position=position,
            duration=format_duration_ms(duration),
            warnings=len(warnings),
            outputs=sorted(out.keys()),
        )

        return StageResult(
            stage=stage_id,
            status=status,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            outputs=out,
            metrics=metrics,
            warnings=warnings,
        )

    except Exception as e:
        err = stage_error_from_exc(e)
        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        ctx.emit(
            EventType.STAGE_FAILED,
            stage=stage_id,
            duration_ms=duration,
            exc_type=err.exc_type,
            message=err.message,
            retryable=err.retryable,
        )
        log.error(
            "Stage failed",
            status="failed",
            position=position,
            duration=format_duration_ms(duration),
            error=err.message,
            exc_type=err.exc_type,
        )
        log.debug("Stage exception", traceback=err.traceback)

        return StageResult(
            stage=stage_id,
            status="failed",
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            metrics=metrics,
            warnings=warnings,
            error=err,
        )
