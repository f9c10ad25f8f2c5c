from __future__ import annotations

import json
from pathlib import Path

import pytest
from tag_release.config.models import ReleaseConfig
from tag_release.core import Settings, ValidationFailed
from tag_release.pipeline.types import TriggerEvent
from tag_release.sequencer import STEP_ORDER, default_services
from tag_release.stages.build import CargoBuildTool
from tag_release.stages.cache import FilesystemCacheBackend
from tag_release.stages.credentials import EnvSecretStore, FileSecretStore
from tag_release.stages.publish import HttpRegistry

from conftest import TOKEN, FakeBuildTool, FakeRegistry, FakeToolchains, MemoryCacheBackend


def test_tag_push_publishes_once(make_harness) -> None:
    h = make_harness()
    result = h.sequencer().run(TriggerEvent(ref="refs/tags/v1.2.3"))

    assert result.status == "success"
    assert result.exit_code == 0
    assert result.failed_step is None
    assert [s.stage for s in result.stages] == list(STEP_ORDER)
    assert all(s.status == "success" for s in result.stages)

    assert h.registry.submissions == [("demo", "1.2.3")]
    assert h.registry.tokens == [TOKEN]
    receipt = result.outputs("publish")["receipt"]
    assert receipt["name"] == "demo" and receipt["version"] == "1.2.3"
    assert result.outputs("cache_restore")["hits"] == {"build": False}
    assert result.outputs("cache_save")["stored"] == ["build"]


def test_branch_push_is_a_noop(make_harness) -> None:
    h = make_harness()
    result = h.sequencer().run(TriggerEvent(ref="main"))

    assert result.status == "noop"
    assert result.exit_code == 0
    assert [s.stage for s in result.stages] == ["trigger"]
    assert result.stages[0].status == "halted"
    assert h.toolchains.calls == []
    assert h.build_tool.calls == 0
    assert h.registry.submissions == []


def test_existing_version_fails_at_publish(make_harness) -> None:
    h = make_harness(
        build_tool=FakeBuildTool(version="2.0.0"),
        registry=FakeRegistry(existing={("demo", "2.0.0")}),
    )
    result = h.sequencer().run(TriggerEvent(ref="v2.0.0"))

    assert result.status == "failed"
    assert result.exit_code == 1
    assert result.failed_step == "publish"
    assert result.error_kind == "AlreadyPublished"
    assert result.error is not None and "bump the version" in (result.error.hint or "")
    assert h.registry.submissions == []


def test_republishing_same_tag_never_succeeds(make_harness) -> None:
    h = make_harness()
    first = h.sequencer().run(TriggerEvent(ref="v1.2.3"))
    second = h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert first.status == "success"
    assert second.status == "failed"
    assert second.failed_step == "publish"
    assert second.error_kind == "AlreadyPublished"
    assert h.registry.submissions == [("demo", "1.2.3")]


def test_warm_and_cold_cache_give_identical_receipts(make_harness) -> None:
    backend = MemoryCacheBackend()
    cold = make_harness(cache_backend=backend, registry=FakeRegistry())
    cold_result = cold.sequencer().run(TriggerEvent(ref="v1.2.3"))

    warm = make_harness(cache_backend=backend, registry=FakeRegistry())
    warm_result = warm.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert cold_result.outputs("cache_restore")["hits"] == {"build": False}
    assert warm_result.outputs("cache_restore")["hits"] == {"build": True}
    assert warm_result.outputs("cache_save")["skipped"] == {"build": "hit"}
    assert cold_result.status == warm_result.status == "success"
    assert (
        cold_result.outputs("publish")["receipt"]
        == warm_result.outputs("publish")["receipt"]
    )


def test_cache_store_failure_does_not_change_outcome(make_harness) -> None:
    h = make_harness(cache_backend=MemoryCacheBackend(fail_writes=True))
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert result.status == "success"
    save = result.stage("cache_save")
    assert save is not None and save.status == "success"
    assert save.outputs["failed"] == ["build"]
    assert any("store failed" in w for w in save.warnings)
    assert h.registry.submissions == [("demo", "1.2.3")]


def test_provision_failure_halts_before_build(make_harness) -> None:
    h = make_harness(toolchains=FakeToolchains(fail=True))
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert result.status == "failed"
    assert result.failed_step == "provision"
    assert result.error_kind == "ProvisionError"
    assert [s.stage for s in result.stages] == ["trigger", "provision"]
    assert h.build_tool.calls == 0


def test_build_failure_halts_before_auth(make_harness) -> None:
    h = make_harness(build_tool=FakeBuildTool(fail=True))
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert result.failed_step == "build"
    assert result.error_kind == "BuildError"
    assert "authenticate" not in [s.stage for s in result.stages]
    assert h.registry.tokens == []


def test_tag_and_package_version_must_agree(make_harness) -> None:
    h = make_harness(build_tool=FakeBuildTool(version="1.2.4"))
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert result.failed_step == "build"
    assert result.error is not None
    assert "does not match tag v1.2.3" in result.error.message


def test_missing_secret_fails_at_authenticate(make_harness) -> None:
    h = make_harness(secrets={})
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert result.failed_step == "authenticate"
    assert result.error_kind == "AuthError"
    assert h.registry.submissions == []


def test_registry_rejection_is_reported_with_its_kind(make_harness) -> None:
    h = make_harness(registry=FakeRegistry(reject=ValidationFailed("missing license")))
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert result.failed_step == "publish"
    assert result.error_kind == "ValidationFailed"


def test_credential_is_disposed_and_never_written(make_harness) -> None:
    h = make_harness()
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"), run_id="run-1")

    assert result.status == "success"
    assert len(h.registry.credentials) == 1
    assert h.registry.credentials[0].disposed
    assert TOKEN not in repr(h.registry.credentials[0])

    run_dir = h.run_root / "run-1"
    for name in ("run_result.json", "events.jsonl"):
        assert TOKEN not in (run_dir / name).read_text(encoding="utf-8")


def test_credential_is_disposed_when_publish_fails(make_harness) -> None:
    h = make_harness(registry=FakeRegistry(reject=ValidationFailed("bad")))
    h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert h.registry.credentials[0].disposed


def test_run_writes_result_and_events(make_harness) -> None:
    h = make_harness()
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"), run_id="run-2")

    run_dir: Path = h.run_root / "run-2"
    doc = json.loads((run_dir / "run_result.json").read_text(encoding="utf-8"))
    assert doc["status"] == "success"
    assert doc["run_id"] == "run-2"
    assert [s["stage"] for s in doc["stages"]] == list(STEP_ORDER)

    types = [
        json.loads(line)["type"]
        for line in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()
    ]
    assert types[0] == "run.env"
    assert types[-1] == "run.finish"
    assert "trigger.matched" in types
    assert "cache.miss" in types
    assert "publish.finish" in types
    assert result.events_jsonl == str(run_dir / "events.jsonl")


def test_credential_is_disposed_on_interrupt(make_harness) -> None:
    class InterruptingRegistry(FakeRegistry):
        def submit(self, artifact, credential):
            self.credentials.append(credential)
            raise KeyboardInterrupt

    h = make_harness(registry=InterruptingRegistry())
    with pytest.raises(KeyboardInterrupt):
        h.sequencer().run(TriggerEvent(ref="v1.2.3"))

    assert h.registry.credentials[0].disposed


def test_run_meta_is_not_extended_by_stages(make_harness) -> None:
    h = make_harness()
    meta = {"trigger": "push"}
    result = h.sequencer().run(TriggerEvent(ref="v1.2.3"), meta=meta)

    assert result.status == "success"
    assert meta == {"trigger": "push"}
    assert result.meta == {"trigger": "push"}
    keys = result.outputs("cache_restore")["keys"]
    assert keys["build"].startswith("Linux-cargo-build-target-")


def test_default_services_follow_settings_and_config(tmp_path: Path) -> None:
    secrets = tmp_path / "secrets"
    secrets.mkdir()
    settings = Settings(
        workspace=tmp_path, cache_root=tmp_path / "cache", secrets_dir=secrets
    )
    services = default_services(settings, ReleaseConfig())
    try:
        assert isinstance(services.secrets, FileSecretStore)
        assert isinstance(services.build_tool, CargoBuildTool)
        assert isinstance(services.registry, HttpRegistry)
        assert services.registry.name == "https://crates.io"
        assert isinstance(services.cache.backend, FilesystemCacheBackend)
        assert services.cache.backend.root == tmp_path / "cache"
    finally:
        services.close()

    services = default_services(Settings(workspace=tmp_path), ReleaseConfig())
    try:
        assert isinstance(services.secrets, EnvSecretStore)
    finally:
        services.close()
