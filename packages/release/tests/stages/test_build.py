from __future__ import annotations

from pathlib import Path

import pytest
from tag_release.core import BuildError
from tag_release.stages.build import read_manifest


def test_read_manifest_collects_publish_metadata(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(
        "[package]\n"
        'name = "demo"\n'
        'version = "1.2.3"\n'
        'license = "MIT"\n'
        'keywords = ["cli"]\n'
        "\n[dependencies]\n"
    )
    name, version, metadata = read_manifest(tmp_path)

    assert (name, version) == ("demo", "1.2.3")
    assert metadata == {
        "license": "MIT",
        "keywords": ["cli"],
        "features": {},
        "deps": [],
    }


def test_read_manifest_follows_workspace_inheritance(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(
        '[workspace]\nmembers = ["crates/demo"]\n\n'
        '[workspace.package]\nversion = "0.4.0"\nlicense = "Apache-2.0"\n'
    )
    member = tmp_path / "crates" / "demo"
    member.mkdir(parents=True)
    (member / "Cargo.toml").write_text(
        "[package]\n"
        'name = "demo"\n'
        "version.workspace = true\n"
        "license.workspace = true\n"
    )

    name, version, metadata = read_manifest(member)
    assert (name, version) == ("demo", "0.4.0")
    assert metadata["license"] == "Apache-2.0"


def test_read_manifest_errors(tmp_path: Path) -> None:
    with pytest.raises(BuildError, match="No manifest"):
        read_manifest(tmp_path)

    (tmp_path / "Cargo.toml").write_text("[package\n")
    with pytest.raises(BuildError, match="Invalid TOML"):
        read_manifest(tmp_path)

    (tmp_path / "Cargo.toml").write_text('[package]\nname = "demo"\n')
    with pytest.raises(BuildError, match="version is missing"):
        read_manifest(tmp_path)


def test_dependencies_cover_every_table_and_target(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(
        "[package]\n"
        'name = "demo"\n'
        'version = "1.2.3"\n'
        "\n[dependencies]\n"
        'serde = "1.0"\n'
        'json = { package = "serde_json", version = "1", optional = true, default-features = false }\n'
        "\n[build-dependencies]\n"
        'cc = "1"\n'
        "\n[dev-dependencies]\n"
        'helper = { path = "../helper" }\n'
        'tempfile = "3"\n'
        "\n[target.'cfg(windows)'.dependencies]\n"
        'winapi = "0.3"\n'
        "\n[features]\n"
        'default = ["json"]\n'
    )
    _, _, metadata = read_manifest(tmp_path)
    deps = {d["name"]: d for d in metadata["deps"]}

    assert sorted(deps) == ["cc", "serde", "serde_json", "tempfile", "winapi"]
    assert deps["serde"]["kind"] == "normal" and deps["serde"]["version_req"] == "1.0"
    assert deps["serde_json"]["explicit_name_in_toml"] == "json"
    assert deps["serde_json"]["optional"] is True
    assert deps["serde_json"]["default_features"] is False
    assert deps["cc"]["kind"] == "build"
    assert deps["tempfile"]["kind"] == "dev"
    assert deps["winapi"]["target"] == "cfg(windows)"
    assert deps["serde"]["target"] is None
    assert metadata["features"] == {"default": ["json"]}


def test_workspace_dependencies_are_resolved(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(
        '[workspace]\nmembers = ["crates/demo"]\n\n'
        '[workspace.dependencies]\nserde = { version = "1.0.200", features = ["std"] }\n'
    )
    member = tmp_path / "crates" / "demo"
    member.mkdir(parents=True)
    (member / "Cargo.toml").write_text(
        "[package]\n"
        'name = "demo"\n'
        'version = "0.1.0"\n'
        "\n[dependencies]\n"
        'serde = { workspace = true, features = ["derive"] }\n'
    )

    _, _, metadata = read_manifest(member)
    (serde,) = metadata["deps"]
    assert serde["version_req"] == "1.0.200"
    assert serde["features"] == ["std", "derive"]


def test_unpublishable_dependencies_fail_the_build(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(
        '[package]\nname = "demo"\nversion = "0.1.0"\n\n'
        '[dependencies]\nlocal = { path = "../local" }\n'
    )
    with pytest.raises(BuildError, match="local has no version"):
        read_manifest(tmp_path)


def test_readme_is_read_from_the_package(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text(
        '[package]\nname = "demo"\nversion = "0.1.0"\nreadme = "docs/INTRO.md"\n'
    )
    with pytest.raises(BuildError, match="docs/INTRO.md does not exist"):
        read_manifest(tmp_path)

    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "INTRO.md").write_text("intro")
    _, _, metadata = read_manifest(tmp_path)
    assert metadata["readme"] == "docs/INTRO.md"
    assert metadata["readme_text"] == "intro"
