from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tag_release.config.models import ReleaseConfig
from tag_release.core import ILogger, Settings
from tag_release.pipeline.report import RunResult
from tag_release.pipeline.runner import PipelineRunner, default_logger
from tag_release.pipeline.stage import Stage
from tag_release.pipeline.types import TriggerEvent
from tag_release.stages.build import BuildStage, BuildTool, CargoBuildTool
from tag_release.stages.cache import (
    ArtifactCache,
    CacheRestoreStage,
    CacheSaveStage,
    FilesystemCacheBackend,
)
from tag_release.stages.credentials import (
    AuthenticateStage,
    CredentialBinder,
    CredentialSlot,
    EnvSecretStore,
    FileSecretStore,
    SecretStore,
)
from tag_release.stages.provision import (
    EnvironmentProvisioner,
    ProvisionStage,
    RustupToolchainRepository,
)
from tag_release.stages.publish import HttpRegistry, Publisher, PublishStage, Registry
from tag_release.stages.trigger import TriggerStage

STEP_ORDER: tuple[str, ...] = (
    "trigger",
    "provision",
    "cache_restore",
    "build",
    "cache_save",
    "authenticate",
    "publish",
)


@dataclass(slots=True)
class ReleaseServices:
    """
    External collaborators, one per pipeline concern.
    """

    provisioner: EnvironmentProvisioner
    cache: ArtifactCache
    build_tool: BuildTool
    secrets: SecretStore
    registry: Registry

    def close(self) -> None:
        close = getattr(self.registry, "close", None)
        if callable(close):
            close()


def default_services(settings: Settings, config: ReleaseConfig) -> ReleaseServices:
    workspace = Path(settings.workspace)
    secrets: SecretStore = (
        FileSecretStore(settings.secrets_dir)
        if settings.secrets_dir is not None
        else EnvSecretStore()
    )
    return ReleaseServices(
        provisioner=EnvironmentProvisioner(
            RustupToolchainRepository(
                workspace=workspace, timeout_s=config.command_timeout_s
            )
        ),
        cache=ArtifactCache(FilesystemCacheBackend(settings.cache_root)),
        build_tool=CargoBuildTool(timeout_s=config.command_timeout_s),
        secrets=secrets,
        registry=HttpRegistry(
            url=str(config.registry.url),
            timeout_s=config.registry.timeout_s,
            max_query_attempts=config.registry.max_query_attempts,
        ),
    )


class ReleaseSequencer:
    """
    trigger -> provision -> cache_restore -> build -> cache_save ->
    authenticate -> publish, halting at the first failure.

    The credential lives in a slot created per run and is disposed when the
    run ends, whatever the outcome.
    """

    def __init__(
        self,
        *,
        config: ReleaseConfig,
        services: ReleaseServices,
        workspace: Path,
        run_root: Path,
        runner_os: str,
        logger: ILogger | None = None,
    ) -> None:
        self.config = config
        self.services = services
        self.workspace = Path(workspace)
        self.run_root = Path(run_root)
        self.runner_os = runner_os
        self.logger: ILogger = logger or default_logger()

    def build_stages(self, slot: CredentialSlot) -> list[Stage]:
        cfg = self.config
        svc = self.services
        stages: list[Stage] = [
            TriggerStage(),
            ProvisionStage(svc.provisioner, cfg.toolchain),
            CacheRestoreStage(
                svc.cache, cfg.caches, runner_os=self.runner_os, lock_glob=cfg.lock_glob
            ),
            BuildStage(
                svc.build_tool,
                package_dir=cfg.package_dir,
                require_version_match=cfg.require_version_match,
            ),
            CacheSaveStage(svc.cache, cfg.caches),
            AuthenticateStage(CredentialBinder(svc.secrets), cfg.registry.secret, slot),
            PublishStage(Publisher(svc.registry), slot),
        ]
        return stages

    def run(
        self,
        event: TriggerEvent,
        *,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> RunResult:
        slot = CredentialSlot()
        try:
            runner = PipelineRunner(stages=self.build_stages(slot), logger=self.logger)
            return runner.run(
                trigger=event,
                workspace=self.workspace,
                run_root=self.run_root,
                run_id=run_id,
                meta=meta,
            )
        finally:
            slot.dispose()
