from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tag_release.core import BuildError, sha256_file
from tag_release.pipeline.context import RunContext
from tag_release.pipeline.events import EventType

from .cargo import BuildTool


@dataclass(frozen=True, slots=True)
class PackageArtifact:
    """
    A built package, bound to the run that produced it.
    """

    name: str
    version: str
    path: Path
    sha256: str
    bytes: int
    run_id: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "version": self.version,
            "path": str(self.path),
            "sha256": self.sha256,
            "bytes": self.bytes,
        }


class BuildStage:
    stage_id = "build"

    def __init__(
        self,
        tool: BuildTool,
        *,
        package_dir: str = ".",
        require_version_match: bool = True,
    ) -> None:
        self.tool = tool
        self.package_dir = package_dir
        self.require_version_match = require_version_match

    def run(self, ctx: RunContext) -> dict[str, Any]:
        if ctx.toolchain is None:
            raise BuildError("build requires a provisioned toolchain")

        package_dir = ctx.workspace / self.package_dir
        ctx.emit(EventType.BUILD_START, stage=self.stage_id, package_dir=str(package_dir))

        try:
            built = self.tool.build(ctx.toolchain, package_dir)
        except BuildError:
            raise
        except Exception as e:
            raise BuildError(f"Build tool failed: {e}") from e

        if (
            self.require_version_match
            and ctx.tag is not None
            and built.version != ctx.tag.text
        ):
            raise BuildError(
                f"Package version {built.version} does not match tag {ctx.tag.tag}"
            )

        path = Path(built.path)
        if not path.is_file():
            raise BuildError(f"Build produced no package file at {path}")
        digest = sha256_file(path)

        artifact = PackageArtifact(
            name=built.name,
            version=built.version,
            path=path,
            sha256=digest.sha256,
            bytes=digest.bytes,
            run_id=ctx.run_id,
            metadata=dict(built.metadata),
        )
        ctx.artifact = artifact

        ctx.emit(EventType.BUILD_FINISH, stage=self.stage_id, **artifact.to_dict())
        return {"artifact": artifact.to_dict()}
