from __future__ import annotations

from typing import Any, Sequence

from tag_release.config.models import CacheSpec
from tag_release.core import CacheError
from tag_release.pipeline.context import RunContext
from tag_release.pipeline.events import EventType
from tag_release.pipeline.stage import METRICS_KEY, WARNINGS_KEY

from .archive import pack_paths, unpack_paths
from .keys import derive_cache_keys, resolve_cache_path
from .store import ArtifactCache, CacheEntry


class CacheRestoreStage:
    """
    Looks up every configured cache and restores hits onto disk.
    A failed restore counts as a miss; the build is then simply slower.
    """

    stage_id = "cache_restore"

    def __init__(
        self,
        cache: ArtifactCache,
        caches: Sequence[CacheSpec],
        *,
        runner_os: str,
        lock_glob: str,
    ) -> None:
        self.cache = cache
        self.caches = list(caches)
        self.runner_os = runner_os
        self.lock_glob = lock_glob

    def run(self, ctx: RunContext) -> dict[str, Any]:
        keys = derive_cache_keys(
            workspace=ctx.workspace,
            runner_os=self.runner_os,
            lock_glob=self.lock_glob,
            caches=self.caches,
        )
        ctx.cache_keys = dict(keys)

        warnings: list[str] = []
        for spec in self.caches:
            key = keys[spec.name]
            entry = self.cache.lookup(key)
            hit = False

            if entry is not None:
                targets = [resolve_cache_path(ctx.workspace, p) for p in entry.paths]
                try:
                    unpack_paths(entry.payload, targets)
                    hit = True
                except Exception as e:
                    warnings.append(f"cache {spec.name}: restore failed, treating as miss: {e}")

            ctx.cache_hits[spec.name] = hit
            ctx.emit(
                EventType.CACHE_HIT if hit else EventType.CACHE_MISS,
                stage=self.stage_id,
                cache=spec.name,
                key=key,
            )

        hits = sum(1 for v in ctx.cache_hits.values() if v)
        return {
            "keys": dict(keys),
            "hits": dict(ctx.cache_hits),
            WARNINGS_KEY: warnings,
            METRICS_KEY: {"hits": hits, "misses": len(self.caches) - hits},
        }


class CacheSaveStage:
    """
    Best-effort save of every cache that missed this run.
    Store failures are reported as warnings and never fail the stage.
    """

    stage_id = "cache_save"

    def __init__(self, cache: ArtifactCache, caches: Sequence[CacheSpec]) -> None:
        self.cache = cache
        self.caches = list(caches)

    def run(self, ctx: RunContext) -> dict[str, Any]:
        keys = ctx.cache_keys

        stored: list[str] = []
        skipped: dict[str, str] = {}
        failed: list[str] = []
        warnings: list[str] = []

        for spec in self.caches:
            key = keys.get(spec.name)
            if key is None:
                skipped[spec.name] = "no key"
                continue
            if ctx.cache_hits.get(spec.name):
                skipped[spec.name] = "hit"
                continue

            try:
                targets = [resolve_cache_path(ctx.workspace, p) for p in spec.paths]
                payload, packed = pack_paths(targets)
                if not packed:
                    skipped[spec.name] = "nothing to cache"
                    continue
                self.cache.store(
                    key, CacheEntry(key=key, paths=tuple(spec.paths), payload=payload)
                )
            except (CacheError, OSError) as e:
                failed.append(spec.name)
                warnings.append(f"cache {spec.name}: store failed, continuing: {e}")
                ctx.emit(
                    EventType.CACHE_STORE_FAILED,
                    stage=self.stage_id,
                    cache=spec.name,
                    key=key,
                    error=str(e),
                )
                continue

            stored.append(spec.name)
            ctx.emit(
                EventType.CACHE_STORED,
                stage=self.stage_id,
                cache=spec.name,
                key=key,
                bytes=len(payload),
            )

        return {
            "stored": stored,
            "skipped": skipped,
            "failed": failed,
            WARNINGS_KEY: warnings,
            METRICS_KEY: {"stored": len(stored), "failed": len(failed)},
        }
