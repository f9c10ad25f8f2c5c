from __future__ import annotations

import argparse
import os
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tag_release.config import load_release_config, resolve_config_path
from tag_release.config.models import ReleaseConfig
from tag_release.core import (
    ConfigError,
    RunProvenance,
    Settings,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
    utc_now_iso,
)
from tag_release.pipeline.report import RunResult
from tag_release.pipeline.types import TriggerEvent
from tag_release.sequencer import ReleaseSequencer, default_services
from tag_release.stages.cache import derive_cache_keys
from tag_release.stages.trigger import parse_tag

console = Console()

EXIT_USAGE = 2


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tag-release")
    sub = p.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Run the release pipeline for a pushed ref")
    run.add_argument(
        "--ref",
        default=None,
        help="Pushed ref (refs/tags/<tag> or <tag>). Defaults to $GITHUB_REF.",
    )
    run.add_argument("--config", default=None, help="Path to release.json")
    run.add_argument("--run-id", default=None, help="Override the generated run id")

    match = sub.add_parser("match", help="Exit 0 when REF is a release tag, 1 otherwise")
    match.add_argument("ref")

    keys = sub.add_parser("cache-keys", help="Print the cache keys for the workspace")
    keys.add_argument("--config", default=None, help="Path to release.json")

    return p


def _load_config(s: Settings, explicit: str | None) -> ReleaseConfig:
    path = resolve_config_path(
        Path(s.workspace), Path(explicit) if explicit else s.config_path
    )
    return load_release_config(path)


def _print_result(result: RunResult) -> None:
    status_style = {"success": "green", "noop": "yellow", "failed": "red"}[result.status]

    tbl = Table(title="Result", show_header=False, box=None)
    tbl.add_row("status", f"[{status_style}]{result.status}[/{status_style}]")
    tbl.add_row("ref", result.ref)
    for st in result.stages:
        tbl.add_row(f"  {st.stage}", st.status)

    if result.error is not None:
        tbl.add_row("failed step", str(result.failed_step))
        tbl.add_row("error", f"{result.error.exc_type}: {result.error.message}")
        if result.error.hint:
            tbl.add_row("hint", result.error.hint)

    receipt = result.outputs("publish").get("receipt")
    if receipt:
        tbl.add_row("published", f"{receipt['name']} {receipt['version']}")
    if result.events_jsonl:
        tbl.add_row("events", result.events_jsonl)
    console.print(tbl)


def _cmd_run(args: argparse.Namespace, s: Settings) -> int:
    ref = args.ref or os.environ.get("GITHUB_REF")
    if not ref:
        console.print("[red]No ref given: pass --ref or set GITHUB_REF[/red]")
        return EXIT_USAGE

    cfg = _load_config(s, args.config)

    run_id = args.run_id or new_run_id()
    bind(run_id=run_id, ref=ref)
    log = get_logger("tag_release")

    console.print(
        Panel.fit(
            Text(f"tag-release - run\nrun_id={run_id}\nref={ref}", style="bold"),
            title="Run",
        )
    )

    provenance = RunProvenance(run_id=run_id, started_at_utc=utc_now_iso())

    services = default_services(s, cfg)
    sequencer = ReleaseSequencer(
        config=cfg,
        services=services,
        workspace=Path(s.workspace),
        run_root=Path(s.run_root),
        runner_os=s.runner_os,
        logger=log,
    )
    try:
        result = sequencer.run(
            TriggerEvent(ref=ref), run_id=run_id, meta={"provenance": provenance.to_dict()}
        )
    finally:
        services.close()
        clear_bindings()

    _print_result(result)
    return result.exit_code


def _cmd_match(args: argparse.Namespace) -> int:
    tag = parse_tag(args.ref)
    if tag is None:
        console.print(f"{args.ref}: not a release tag")
        return 1
    console.print(f"{args.ref}: release {tag.text}")
    return 0


def _cmd_cache_keys(args: argparse.Namespace, s: Settings) -> int:
    cfg = _load_config(s, args.config)
    keys = derive_cache_keys(
        workspace=Path(s.workspace),
        runner_os=s.runner_os,
        lock_glob=cfg.lock_glob,
        caches=cfg.caches,
    )
    tbl = Table(title="Cache keys", show_header=True, box=None)
    tbl.add_column("cache")
    tbl.add_column("key")
    for name, key in keys.items():
        tbl.add_row(name, key)
    console.print(tbl)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    s = load_settings()
    configure_logging(level=s.log_level, fmt=s.log_format)

    try:
        if args.cmd == "run":
            return _cmd_run(args, s)
        if args.cmd == "match":
            return _cmd_match(args)
        return _cmd_cache_keys(args, s)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
