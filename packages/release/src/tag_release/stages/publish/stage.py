from __future__ import annotations

from typing import Any

from tag_release.core import AuthError, PublishError
from tag_release.pipeline.context import RunContext
from tag_release.pipeline.events import EventType
from tag_release.pipeline.stage import WARNINGS_KEY
from tag_release.stages.credentials.secrets import CredentialSlot

from .publisher import Publisher


class PublishStage:
    stage_id = "publish"

    def __init__(self, publisher: Publisher, slot: CredentialSlot) -> None:
        self.publisher = publisher
        self.slot = slot

    def run(self, ctx: RunContext) -> dict[str, Any]:
        if ctx.artifact is None:
            raise PublishError("publish requires an artifact built in this run")
        credential = self.slot.take()
        if credential is None:
            raise AuthError("publish requires a credential bound in this run")

        ctx.emit(
            EventType.PUBLISH_START,
            stage=self.stage_id,
            name=ctx.artifact.name,
            version=ctx.artifact.version,
        )
        try:
            receipt = self.publisher.publish(ctx.artifact, credential, run_id=ctx.run_id)
        finally:
            self.slot.dispose()

        ctx.emit(EventType.PUBLISH_FINISH, stage=self.stage_id, **receipt.to_dict())
        return {"receipt": receipt.to_dict(), WARNINGS_KEY: list(receipt.warnings)}
