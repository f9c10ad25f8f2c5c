from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from tag_release.core import BuildError
from tag_release.core.process import run_command
from tag_release.stages.provision.toolchain import ToolchainHandle

# [package] keys forwarded to the registry as publish metadata.
_METADATA_KEYS = (
    "description",
    "documentation",
    "homepage",
    "readme",
    "keywords",
    "categories",
    "license",
    "license-file",
    "repository",
    "authors",
    "rust-version",
)


@dataclass(frozen=True, slots=True)
class BuiltPackage:
    """
    What an external build tool hands back: a file plus its identity.
    """

    name: str
    version: str
    path: Path
    metadata: dict[str, Any] = field(default_factory=dict)


class BuildTool(Protocol):
    def build(self, toolchain: ToolchainHandle, package_dir: Path) -> BuiltPackage: ...


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise BuildError(f"No manifest at {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise BuildError(f"Invalid TOML in {path}: {e}") from e


def _workspace_table(package_dir: Path) -> dict[str, Any]:
    """
    `[workspace]` of the nearest manifest at or above `package_dir` that
    declares one, or an empty dict.
    """
    start = package_dir.resolve()
    for parent in (start, *start.parents):
        manifest = parent / "Cargo.toml"
        if not manifest.is_file():
            continue
        ws = _read_toml(manifest).get("workspace")
        if isinstance(ws, dict):
            return ws
    return {}


def _workspace_package_value(package_dir: Path, key: str) -> Any:
    return (_workspace_table(package_dir).get("package") or {}).get(key)


def _dependency(
    toml_name: str,
    spec: Any,
    *,
    kind: str,
    target: str | None,
    workspace_deps: dict[str, Any],
) -> dict[str, Any] | None:
    if isinstance(spec, str):
        spec = {"version": spec}
    if not isinstance(spec, dict):
        raise BuildError(f"Cargo.toml: dependency {toml_name} has an invalid entry")

    if spec.get("workspace") is True:
        inherited = workspace_deps.get(toml_name)
        if inherited is None:
            raise BuildError(
                f"Cargo.toml: {toml_name}.workspace = true but the workspace does not declare it"
            )
        if isinstance(inherited, str):
            inherited = {"version": inherited}
        merged = dict(inherited)
        merged["features"] = list(inherited.get("features") or []) + list(
            spec.get("features") or []
        )
        if "optional" in spec:
            merged["optional"] = spec["optional"]
        spec = merged

    version = spec.get("version")
    if not version:
        # cargo strips unversioned dev-dependencies (path/git only) on publish.
        if kind == "dev":
            return None
        raise BuildError(
            f"Cargo.toml: dependency {toml_name} has no version and cannot be published"
        )

    package = spec.get("package", toml_name)
    return {
        "name": package,
        "version_req": str(version),
        "features": list(spec.get("features") or []),
        "optional": bool(spec.get("optional", False)),
        "default_features": bool(
            spec.get("default-features", spec.get("default_features", True))
        ),
        "target": target,
        "kind": kind,
        "registry": None,
        "explicit_name_in_toml": toml_name if package != toml_name else None,
    }


_DEPENDENCY_TABLES = (
    ("dependencies", "normal"),
    ("build-dependencies", "build"),
    ("dev-dependencies", "dev"),
)


def manifest_dependencies(doc: dict[str, Any], package_dir: Path) -> list[dict[str, Any]]:
    """
    Dependencies in the shape the registry index stores them, including
    target-specific tables. Workspace-inherited entries are resolved.
    """
    sections: list[tuple[str | None, dict[str, Any]]] = [(None, doc)]
    for target, table in sorted((doc.get("target") or {}).items()):
        if isinstance(table, dict):
            sections.append((target, table))

    workspace_deps: dict[str, Any] | None = None
    out: list[dict[str, Any]] = []
    for target, section in sections:
        for table, kind in _DEPENDENCY_TABLES:
            deps = section.get(table)
            if not isinstance(deps, dict):
                continue
            for toml_name, spec in deps.items():
                if workspace_deps is None:
                    workspace_deps = _workspace_table(package_dir).get("dependencies") or {}
                dep = _dependency(
                    toml_name, spec, kind=kind, target=target, workspace_deps=workspace_deps
                )
                if dep is not None:
                    out.append(dep)
    return out


_README_CANDIDATES = ("README.md", "README.txt", "README")


def _readme(package_dir: Path, setting: Any) -> tuple[str | None, str | None]:
    """
    (relative path, contents) of the package README. An explicit path must
    exist; with no setting the usual README names are tried.
    """
    if setting is False:
        return None, None
    if isinstance(setting, str) or setting is True:
        rel = setting if isinstance(setting, str) else "README.md"
        p = package_dir / rel
        if not p.is_file():
            raise BuildError(f"Cargo.toml: readme {rel} does not exist")
        return rel, p.read_text(encoding="utf-8")
    for rel in _README_CANDIDATES:
        p = package_dir / rel
        if p.is_file():
            return rel, p.read_text(encoding="utf-8")
    return None, None


def read_manifest(package_dir: Path) -> tuple[str, str, dict[str, Any]]:
    """
    Return (name, version, metadata) from `{package_dir}/Cargo.toml`,
    following `key.workspace = true` inheritance to the workspace root.

    Besides the [package] keys, metadata carries `deps`, `features`, `links`
    and `readme_text`, which the registry needs to build its index entry.
    """
    package_dir = Path(package_dir)
    doc = _read_toml(package_dir / "Cargo.toml")
    pkg = doc.get("package")
    if not isinstance(pkg, dict):
        raise BuildError(f"{package_dir / 'Cargo.toml'} has no [package] table")

    def value(key: str) -> Any:
        v = pkg.get(key)
        if isinstance(v, dict) and v.get("workspace") is True:
            return _workspace_package_value(package_dir, key)
        return v

    name = value("name")
    version = value("version")
    if not isinstance(name, str) or not name:
        raise BuildError("Cargo.toml: package.name is missing")
    if not isinstance(version, str) or not version:
        raise BuildError(f"Cargo.toml: package.version is missing for {name}")

    metadata: dict[str, Any] = {
        k: value(k) for k in _METADATA_KEYS if value(k) is not None
    }

    readme_file, readme_text = _readme(package_dir, value("readme"))
    if readme_file is not None:
        metadata["readme"] = readme_file
        metadata["readme_text"] = readme_text
    else:
        metadata.pop("readme", None)

    features = doc.get("features")
    metadata["features"] = {
        k: list(v) for k, v in (features or {}).items() if isinstance(v, list)
    }
    if isinstance(pkg.get("links"), str):
        metadata["links"] = pkg["links"]
    metadata["deps"] = manifest_dependencies(doc, package_dir)
    return name, version, metadata


class CargoBuildTool:
    """
    Builds the `.crate` file with `cargo package`, which also verifies that
    the packaged sources compile.
    """

    def __init__(
        self, *, cargo: str = "cargo", timeout_s: float = 1800.0, locked: bool = True
    ) -> None:
        self.cargo = cargo
        self.timeout_s = float(timeout_s)
        self.locked = locked

    def build(self, toolchain: ToolchainHandle, package_dir: Path) -> BuiltPackage:
        package_dir = Path(package_dir)
        name, version, metadata = read_manifest(package_dir)

        cmd = [self.cargo, f"+{toolchain.spec.channel}", "package"]
        if self.locked:
            cmd.append("--locked")
        run_command(cmd, cwd=package_dir, timeout_s=self.timeout_s, error=BuildError)

        filename = f"{name}-{version}.crate"
        for target_dir in _target_dirs(package_dir):
            crate = target_dir / "package" / filename
            if crate.is_file():
                return BuiltPackage(
                    name=name, version=version, path=crate, metadata=metadata
                )
        raise BuildError(f"cargo package succeeded but {filename} was not found")


def _target_dirs(package_dir: Path) -> list[Path]:
    env = os.environ.get("CARGO_TARGET_DIR")
    if env:
        return [Path(env)]
    # Workspace members build into the workspace root's target/.
    out = [package_dir / "target"]
    out += [p / "target" for p in package_dir.resolve().parents if (p / "Cargo.toml").is_file()]
    return out
