from __future__ import annotations

from typing import Any

from tag_release.config.models import ToolchainSpec
from tag_release.pipeline.context import RunContext
from tag_release.pipeline.events import EventType

from .toolchain import EnvironmentProvisioner


class ProvisionStage:
    stage_id = "provision"

    def __init__(self, provisioner: EnvironmentProvisioner, spec: ToolchainSpec) -> None:
        self.provisioner = provisioner
        self.spec = spec

    def run(self, ctx: RunContext) -> dict[str, Any]:
        ctx.emit(EventType.PROVISION_START, stage=self.stage_id, channel=self.spec.channel)

        handle = self.provisioner.provision(self.spec)
        ctx.toolchain = handle

        ctx.emit(
            EventType.PROVISION_READY,
            stage=self.stage_id,
            channel=self.spec.channel,
            version=handle.version_text,
        )
        return {"toolchain": handle.to_dict()}
