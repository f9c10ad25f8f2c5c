from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pytest
import structlog
from tag_release.config.models import CacheSpec, ReleaseConfig, ToolchainSpec
from tag_release.core import BuildError, ProvisionError, PublishError
from tag_release.sequencer import ReleaseSequencer, ReleaseServices
from tag_release.stages.build import BuiltPackage
from tag_release.stages.build.stage import PackageArtifact
from tag_release.stages.cache import ArtifactCache
from tag_release.stages.credentials import Credential, EnvSecretStore
from tag_release.stages.provision import EnvironmentProvisioner, ToolchainHandle
from tag_release.stages.publish import SubmitResult

TOKEN = "cio-test-token-123"


@dataclass
class FakeToolchains:
    fail: bool = False
    calls: list[ToolchainSpec] = field(default_factory=list)

    def resolve(self, spec: ToolchainSpec) -> ToolchainHandle:
        self.calls.append(spec)
        if self.fail:
            raise ProvisionError(f"toolchain {spec.channel} not found")
        return ToolchainHandle(spec=spec, version_text=f"rustc 1.80.0 ({spec.channel})")


@dataclass
class FakeBuildTool:
    name: str = "demo"
    version: str = "1.2.3"
    fail: bool = False
    calls: int = 0

    def build(self, toolchain: ToolchainHandle, package_dir: Path) -> BuiltPackage:
        self.calls += 1
        if self.fail:
            raise BuildError("error[E0425]: cannot find value `x` in this scope")
        out = Path(package_dir) / "target" / "package" / f"{self.name}-{self.version}.crate"
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(f"crate:{self.name}:{self.version}".encode())
        return BuiltPackage(
            name=self.name,
            version=self.version,
            path=out,
            metadata={"license": "MIT", "deps": []},
        )


@dataclass
class MemoryCacheBackend:
    fail_writes: bool = False
    blobs: dict[str, bytes] = field(default_factory=dict)

    def read(self, key: str) -> bytes | None:
        return self.blobs.get(key)

    def write(self, key: str, blob: bytes) -> None:
        if self.fail_writes:
            raise OSError(28, "No space left on device")
        self.blobs[key] = blob


@dataclass
class FakeRegistry:
    name: str = "https://registry.test"
    existing: set[tuple[str, str]] = field(default_factory=set)
    reject: PublishError | None = None
    submissions: list[tuple[str, str]] = field(default_factory=list)
    credentials: list[Credential] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)

    def version_exists(self, package: str, version: str) -> bool:
        return (package, version) in self.existing

    def submit(self, artifact: PackageArtifact, credential: Credential) -> SubmitResult:
        self.credentials.append(credential)
        self.tokens.append(credential.reveal())
        if self.reject is not None:
            raise self.reject
        self.submissions.append((artifact.name, artifact.version))
        self.existing.add((artifact.name, artifact.version))
        return SubmitResult()


@dataclass
class Harness:
    workspace: Path
    run_root: Path
    toolchains: FakeToolchains
    build_tool: FakeBuildTool
    cache_backend: MemoryCacheBackend
    registry: FakeRegistry
    secrets: dict[str, str]
    config: ReleaseConfig

    def services(self) -> ReleaseServices:
        return ReleaseServices(
            provisioner=EnvironmentProvisioner(self.toolchains),
            cache=ArtifactCache(self.cache_backend),
            build_tool=self.build_tool,
            secrets=EnvSecretStore(environ=self.secrets),
            registry=self.registry,
        )

    def sequencer(self) -> ReleaseSequencer:
        return ReleaseSequencer(
            config=self.config,
            services=self.services(),
            workspace=self.workspace,
            run_root=self.run_root,
            runner_os="Linux",
            logger=structlog.get_logger("test"),
        )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "Cargo.lock").write_text('[[package]]\nname = "demo"\nversion = "1.2.3"\n')
    return ws


@pytest.fixture
def release_config() -> ReleaseConfig:
    return ReleaseConfig(
        caches=[CacheSpec(name="build", paths=["target"], key_prefix="cargo-build-target")]
    )


@pytest.fixture
def make_harness(
    tmp_path: Path, workspace: Path, release_config: ReleaseConfig
) -> Callable[..., Harness]:
    def _make(**overrides: object) -> Harness:
        h = Harness(
            workspace=workspace,
            run_root=tmp_path / "_runs",
            toolchains=FakeToolchains(),
            build_tool=FakeBuildTool(),
            cache_backend=MemoryCacheBackend(),
            registry=FakeRegistry(),
            secrets={"CRATES_TOKEN": TOKEN},
            config=release_config,
        )
        for k, v in overrides.items():
            setattr(h, k, v)
        return h

    return _make
