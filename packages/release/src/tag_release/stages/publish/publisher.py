from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from tag_release.core import AlreadyPublished, PublishError
from tag_release.stages.build.stage import PackageArtifact
from tag_release.stages.credentials.secrets import Credential

from .registry import Registry

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PublishReceipt:
    """
    Proof of a successful publish. Carries no timestamps: the same package
    published from a warm or a cold cache yields an equal receipt.
    """

    registry: str
    name: str
    version: str
    sha256: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, object]:
        return {
            "registry": self.registry,
            "name": self.name,
            "version": self.version,
            "sha256": self.sha256,
            "warnings": list(self.warnings),
        }


class Publisher:
    def __init__(self, registry: Registry) -> None:
        self.registry = registry

    def publish(
        self, artifact: PackageArtifact, credential: Credential, *, run_id: str
    ) -> PublishReceipt:
        if artifact.run_id != run_id:
            raise PublishError(
                f"Refusing to publish {artifact.name}@{artifact.version}: "
                "artifact was not built in this run"
            )
        if credential.run_id != run_id or credential.disposed:
            raise PublishError("Refusing to publish: credential was not bound in this run")

        if self.registry.version_exists(artifact.name, artifact.version):
            raise AlreadyPublished(artifact.name, artifact.version, f"found on {self.registry.name}")

        log.info(
            "publish.submit",
            registry=self.registry.name,
            name=artifact.name,
            version=artifact.version,
            sha256=artifact.sha256,
        )
        result = self.registry.submit(artifact, credential)

        return PublishReceipt(
            registry=self.registry.name,
            name=artifact.name,
            version=artifact.version,
            sha256=artifact.sha256,
            warnings=tuple(result.warnings),
        )
