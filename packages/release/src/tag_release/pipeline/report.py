from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional

from tag_release.core import StageError, atomic_write_json

from .stage import StageResult

RunStatus = Literal["success", "failed", "noop"]


@dataclass(slots=True)
class RunResult:
    """
    Final outcome of a run plus its step log.

    `noop` means the trigger did not qualify and nothing ran after it.
    """

    run_id: str
    ref: str
    started_at_utc: str
    finished_at_utc: str
    status: RunStatus
    duration_ms: int

    failed_step: Optional[str] = None
    error: Optional[StageError] = None
    stages: list[StageResult] = field(default_factory=list)
    events_jsonl: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def error_kind(self) -> str | None:
        return self.error.exc_type if self.error is not None else None

    @property
    def exit_code(self) -> int:
        return 1 if self.status == "failed" else 0

    def stage(self, stage_id: str) -> StageResult | None:
        for s in self.stages:
            if s.stage == stage_id:
                return s
        return None

    def outputs(self, stage_id: str) -> dict[str, Any]:
        s = self.stage(stage_id)
        return dict(s.outputs) if s is not None else {}

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["error_kind"] = self.error_kind
        return d

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())


def build_run_result(
    *,
    run_id: str,
    ref: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    stage_results: list[StageResult],
    events_jsonl: str | None,
    meta: dict[str, Any] | None = None,
) -> RunResult:
    failed = next((s for s in stage_results if s.status == "failed"), None)
    halted = any(s.status == "halted" for s in stage_results)

    status: RunStatus
    if failed is not None:
        status = "failed"
    elif halted:
        status = "noop"
    else:
        status = "success"

    return RunResult(
        run_id=run_id,
        ref=ref,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=status,
        duration_ms=duration_ms,
        failed_step=failed.stage if failed is not None else None,
        error=failed.error if failed is not None else None,
        stages=stage_results,
        events_jsonl=events_jsonl,
        meta=meta or {},
    )
