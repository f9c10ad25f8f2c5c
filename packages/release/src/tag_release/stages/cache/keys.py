from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

from tag_release.config.models import CacheSpec
from tag_release.core import sha256_files

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def resolve_cache_path(workspace: Path, raw: str) -> Path:
    p = Path(raw).expanduser()
    return p if p.is_absolute() else Path(workspace) / p


def find_lock_files(
    workspace: Path, pattern: str, *, exclude: Iterable[Path] = ()
) -> list[Path]:
    """
    Lock files matched by `pattern` under `workspace`, skipping anything that
    lives inside an excluded directory (cached output can carry copies).
    """
    workspace = Path(workspace)
    excluded = [Path(p).resolve() for p in exclude]

    out: list[Path] = []
    for p in workspace.glob(pattern):
        if not p.is_file():
            continue
        rp = p.resolve()
        if any(rp.is_relative_to(ex) for ex in excluded):
            continue
        out.append(p)
    return sorted(out)


def lock_fingerprint(workspace: Path, pattern: str, *, exclude: Iterable[Path] = ()) -> str:
    return sha256_files(find_lock_files(workspace, pattern, exclude=exclude))


def cache_key(*, runner_os: str, key_prefix: str, fingerprint: str) -> str:
    return f"{runner_os}-{key_prefix}-{fingerprint}"


def derive_cache_keys(
    *,
    workspace: Path,
    runner_os: str,
    lock_glob: str,
    caches: Iterable[CacheSpec],
) -> dict[str, str]:
    """
    Map cache name -> key. Every key shares one lock fingerprint, so a lock
    change invalidates all of them together.
    """
    specs = list(caches)
    exclude = [resolve_cache_path(workspace, raw) for c in specs for raw in c.paths]
    fp = lock_fingerprint(workspace, lock_glob, exclude=exclude)
    return {
        c.name: cache_key(runner_os=runner_os, key_prefix=c.key_prefix, fingerprint=fp)
        for c in specs
    }


def safe_key_filename(key: str) -> str:
    return _UNSAFE.sub("_", key)
