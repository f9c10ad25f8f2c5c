from __future__ import annotations

from typing import Any

from tag_release.pipeline.context import RunContext
from tag_release.pipeline.events import EventType

from .secrets import CredentialBinder, CredentialSlot


class AuthenticateStage:
    stage_id = "authenticate"

    def __init__(self, binder: CredentialBinder, secret_ref: str, slot: CredentialSlot) -> None:
        self.binder = binder
        self.secret_ref = secret_ref
        self.slot = slot

    def run(self, ctx: RunContext) -> dict[str, Any]:
        credential = self.binder.bind(self.secret_ref, run_id=ctx.run_id)
        self.slot.put(credential)

        ctx.emit(EventType.AUTH_BOUND, stage=self.stage_id, secret_ref=self.secret_ref)
        return {"secret_ref": self.secret_ref, "scope": credential.scope}
