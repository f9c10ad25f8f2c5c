from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from tag_release.config.models import ToolchainSpec
from tag_release.core import ProvisionError
from tag_release.core.process import run_command

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ToolchainHandle:
    """
    An installed, selected toolchain.
    """

    spec: ToolchainSpec
    version_text: str
    root: Path | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "channel": self.spec.channel,
            "profile": self.spec.profile,
            "override": self.spec.override,
            "version": self.version_text,
            "root": str(self.root) if self.root else None,
        }


class ToolchainRepository(Protocol):
    def resolve(self, spec: ToolchainSpec) -> ToolchainHandle: ...


class RustupToolchainRepository:
    """
    Installs and selects Rust toolchains through `rustup`.
    """

    def __init__(
        self,
        *,
        workspace: Path,
        rustup: str = "rustup",
        rustc: str = "rustc",
        timeout_s: float = 600.0,
    ) -> None:
        self.workspace = Path(workspace)
        self.rustup = rustup
        self.rustc = rustc
        self.timeout_s = float(timeout_s)

    def _run(self, *args: str):
        return run_command(
            args,
            cwd=self.workspace,
            timeout_s=self.timeout_s,
            error=ProvisionError,
        )

    def resolve(self, spec: ToolchainSpec) -> ToolchainHandle:
        install = [self.rustup, "toolchain", "install", spec.channel, "--profile", spec.profile]
        for comp in spec.components:
            install += ["--component", comp]
        self._run(*install)

        if spec.override:
            self._run(self.rustup, "override", "set", spec.channel)

        version = self._run(self.rustc, f"+{spec.channel}", "--version").stdout.strip()
        if not version:
            raise ProvisionError(f"{self.rustc} +{spec.channel} reported no version")

        sysroot = self._run(self.rustc, f"+{spec.channel}", "--print", "sysroot").stdout.strip()
        return ToolchainHandle(
            spec=spec, version_text=version, root=Path(sysroot) if sysroot else None
        )


class EnvironmentProvisioner:
    """
    Resolves each toolchain spec once; later calls with an equal spec return
    the remembered handle without touching the repository.
    """

    def __init__(self, repository: ToolchainRepository) -> None:
        self.repository = repository
        self._ready: dict[ToolchainSpec, ToolchainHandle] = {}

    def provision(self, spec: ToolchainSpec) -> ToolchainHandle:
        ready = self._ready.get(spec)
        if ready is not None:
            log.debug("toolchain.already_ready", channel=spec.channel)
            return ready

        try:
            handle = self.repository.resolve(spec)
        except ProvisionError:
            raise
        except Exception as e:
            raise ProvisionError(f"Cannot provision toolchain {spec.channel}: {e}") from e

        self._ready[spec] = handle
        return handle
