from __future__ import annotations

from typing import Any

from tag_release.pipeline.context import RunContext
from tag_release.pipeline.events import EventType
from tag_release.pipeline.stage import HALT_KEY

from .matcher import parse_tag


class TriggerStage:
    stage_id = "trigger"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        ref = ctx.trigger.ref
        tag = parse_tag(ref)

        if tag is None:
            ctx.emit(EventType.TRIGGER_IGNORED, stage=self.stage_id, ref=ref)
            return {"ref": ref, "matched": False, HALT_KEY: True}

        ctx.tag = tag
        ctx.emit(
            EventType.TRIGGER_MATCHED, stage=self.stage_id, ref=ref, version=tag.text
        )
        return {"ref": ref, "matched": True, "tag": tag.tag, "version": tag.text}
