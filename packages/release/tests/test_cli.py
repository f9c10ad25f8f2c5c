from __future__ import annotations

import json
from pathlib import Path

import pytest
from tag_release import cli
from tag_release.core import load_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch, workspace: Path):
    monkeypatch.setenv("TAG_RELEASE_WORKSPACE", str(workspace))
    monkeypatch.setenv("TAG_RELEASE_RUNNER_OS", "Linux")
    monkeypatch.delenv("GITHUB_REF", raising=False)
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_match_exit_codes() -> None:
    assert cli.main(["match", "refs/tags/v1.2.3"]) == 0
    assert cli.main(["match", "main"]) == 1


def test_cache_keys_prints_every_cache(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["cache-keys"]) == 0
    out = capsys.readouterr().out
    assert "Linux-cargo-registry-" in out
    assert "Linux-cargo-build-target-" in out


def test_run_without_ref_is_a_usage_error() -> None:
    assert cli.main(["run"]) == cli.EXIT_USAGE


def test_invalid_config_is_a_usage_error(workspace: Path) -> None:
    (workspace / "release.json").write_text(json.dumps({"unknown": 1}))
    assert cli.main(["cache-keys"]) == cli.EXIT_USAGE


def _single_cache_config(workspace: Path) -> None:
    (workspace / "release.json").write_text(
        json.dumps(
            {"caches": [{"name": "build", "paths": ["target"], "key_prefix": "cargo-build-target"}]}
        )
    )


def _run_result(run_root: Path, run_id: str) -> dict:
    return json.loads((run_root / run_id / "run_result.json").read_text(encoding="utf-8"))


def test_run_takes_ref_from_github_ref(
    monkeypatch: pytest.MonkeyPatch, workspace: Path, make_harness
) -> None:
    h = make_harness()
    _single_cache_config(workspace)
    monkeypatch.setenv("GITHUB_REF", "refs/tags/v1.2.3")
    monkeypatch.setenv("TAG_RELEASE_RUN_ROOT", str(h.run_root))
    monkeypatch.setattr(cli, "default_services", lambda s, cfg: h.services())

    assert cli.main(["run", "--run-id", "r-ok"]) == 0

    doc = _run_result(h.run_root, "r-ok")
    assert doc["status"] == "success"
    assert doc["ref"] == "refs/tags/v1.2.3"
    assert doc["meta"]["provenance"]["run_id"] == "r-ok"
    assert h.registry.submissions == [("demo", "1.2.3")]


def test_run_without_secret_exits_1(
    monkeypatch: pytest.MonkeyPatch, workspace: Path, make_harness
) -> None:
    h = make_harness(secrets={})
    _single_cache_config(workspace)
    monkeypatch.setenv("GITHUB_REF", "refs/tags/v1.2.3")
    monkeypatch.setenv("TAG_RELEASE_RUN_ROOT", str(h.run_root))
    monkeypatch.setattr(cli, "default_services", lambda s, cfg: h.services())

    assert cli.main(["run", "--run-id", "r-auth"]) == 1

    doc = _run_result(h.run_root, "r-auth")
    assert doc["failed_step"] == "authenticate"
    assert doc["error_kind"] == "AuthError"
    assert h.registry.submissions == []


def test_run_on_a_branch_is_a_noop(monkeypatch: pytest.MonkeyPatch, make_harness) -> None:
    h = make_harness()
    monkeypatch.setenv("TAG_RELEASE_RUN_ROOT", str(h.run_root))
    monkeypatch.setattr(cli, "default_services", lambda s, cfg: h.services())

    assert cli.main(["run", "--ref", "refs/heads/main"]) == 0
    assert h.toolchains.calls == []


def test_run_with_default_services_stops_at_provision(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, workspace: Path
) -> None:
    _single_cache_config(workspace)
    run_root = tmp_path / "_runs"
    monkeypatch.setenv("TAG_RELEASE_RUN_ROOT", str(run_root))
    monkeypatch.setenv("TAG_RELEASE_CACHE_ROOT", str(tmp_path / "cache"))
    monkeypatch.setenv("CRATES_TOKEN", "unused")

    commands: list[list[str]] = []

    def no_rustup(cmd, **kwargs):
        commands.append(list(cmd))
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr("tag_release.core.process.subprocess.run", no_rustup)

    assert cli.main(["run", "--ref", "v1.2.3", "--run-id", "r-prov"]) == 1

    doc = _run_result(run_root, "r-prov")
    assert doc["failed_step"] == "provision"
    assert doc["error_kind"] == "ProvisionError"
    assert ["rustup", "toolchain", "install"] in [c[:3] for c in commands]
