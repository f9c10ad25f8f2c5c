from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Sequence

from tag_release.core import ILogger, configure_logging, get_logger, monotonic_ms

from .context import RunContext
from .events import EventSink, EventType, make_event, utc_now_iso
from .report import RunResult, build_run_result
from .stage import FunctionStage, Stage, StageResult, format_duration_ms, run_stage
from .types import TriggerEvent


def default_logger() -> ILogger:
    """
    Provide a structlog BoundLogger that satisfies ILogger.
    """
    configure_logging()
    return get_logger("pipeline")


class PipelineRunner:
    """
    Runs stages strictly in order, one at a time.

    The run ends at the first failed stage or the first stage that halts;
    later stages are never started and nothing already done is rolled back.
    """

    def __init__(
        self,
        *,
        stages: Sequence[Stage],
        logger: ILogger | None = None,
    ) -> None:
        self.stages = list(stages)
        self.logger: ILogger = logger or default_logger()

        ids = [s.stage_id for s in self.stages]
        if len(ids) != len(set(ids)):
            dupes = sorted({x for x in ids if ids.count(x) > 1})
            raise ValueError(f"Duplicate stage_id(s): {dupes}")

    @staticmethod
    def fn(stage_id: str, fn) -> Stage:
        return FunctionStage(stage_id=stage_id, fn=fn)

    def run(
        self,
        *,
        trigger: TriggerEvent,
        workspace: Path,
        run_root: Path,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> RunResult:
        """
        Execute the pipeline and write, under `run_root/<run_id>/`:
          - events.jsonl
          - run_result.json
        """
        meta = dict(meta or {})
        rid = run_id or uuid.uuid4().hex
        run_dir = Path(run_root) / rid
        run_dir.mkdir(parents=True, exist_ok=True)

        events_path = run_dir / "events.jsonl"
        sink = EventSink(events_path)

        ctx = RunContext(
            run_id=rid,
            run_root=run_dir,
            workspace=Path(workspace),
            trigger=trigger,
            logger=self.logger,
            events=sink,
            meta=meta,
        )

        started_at = utc_now_iso()
        t0 = monotonic_ms()

        self.logger.info(
            "Pipeline starting",
            run_id=rid,
            ref=trigger.ref,
            stages=[s.stage_id for s in self.stages],
            workspace=str(ctx.workspace),
            run_root=str(run_dir),
        )
        sink.emit(
            make_event(
                event_type=EventType.RUN_START, run_id=rid, ref=trigger.ref, **meta
            )
        )

        results: list[StageResult] = []

        total = len(self.stages)
        for idx, st in enumerate(self.stages, start=1):
            res = run_stage(ctx=ctx, stage=st, index=idx, total=total)
            results.append(res)

            if res.status == "failed":
                self.logger.error("Stopping on first failure", stage=st.stage_id)
                break
            if res.status == "halted":
                self.logger.info("Nothing to do", stage=st.stage_id)
                break

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        result = build_run_result(
            run_id=rid,
            ref=trigger.ref,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            stage_results=results,
            events_jsonl=str(events_path),
            meta=meta,
        )

        result_json = run_dir / "run_result.json"
        result.write_json(result_json)

        sink.emit(
            make_event(
                event_type=EventType.RUN_FINISH,
                run_id=rid,
                status=result.status,
                failed_step=result.failed_step,
                duration_ms=duration,
                run_result=str(result_json),
            )
        )

        self.logger.info(
            "Run complete",
            status=result.status,
            failed_step=result.failed_step,
            duration=format_duration_ms(duration),
            run_result=str(result_json),
            events=str(events_path),
        )
        return result
