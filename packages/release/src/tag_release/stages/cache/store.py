from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from tag_release.core import CacheError, atomic_write_bytes, sha256_bytes, stable_json_dumps

from .keys import safe_key_filename

log = structlog.get_logger(__name__)

_HEADER_LEN = struct.Struct("<I")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    paths: tuple[str, ...]
    payload: bytes


class CacheBackend(Protocol):
    def read(self, key: str) -> bytes | None: ...
    def write(self, key: str, blob: bytes) -> None: ...


class FilesystemCacheBackend:
    """
    One blob file per key under `root`.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        return self.root / f"{safe_key_filename(key)}.bin"

    def read(self, key: str) -> bytes | None:
        p = self.path_for(key)
        if not p.is_file():
            return None
        return p.read_bytes()

    def write(self, key: str, blob: bytes) -> None:
        atomic_write_bytes(self.path_for(key), blob)


def encode_entry(entry: CacheEntry) -> bytes:
    """
    Blob layout: u32 LE header length, JSON header, payload bytes.
    """
    header = stable_json_dumps(
        {
            "key": entry.key,
            "paths": list(entry.paths),
            "sha256": sha256_bytes(entry.payload),
            "bytes": len(entry.payload),
        },
        indent=None,
    ).encode("utf-8")
    return _HEADER_LEN.pack(len(header)) + header + entry.payload


def decode_entry(blob: bytes) -> CacheEntry:
    if len(blob) < _HEADER_LEN.size:
        raise ValueError("cache blob too short")
    (n,) = _HEADER_LEN.unpack_from(blob)
    start = _HEADER_LEN.size
    header = json.loads(blob[start : start + n].decode("utf-8"))
    payload = blob[start + n :]

    if len(payload) != int(header["bytes"]):
        raise ValueError("cache payload truncated")
    if sha256_bytes(payload) != header["sha256"]:
        raise ValueError("cache payload checksum mismatch")

    return CacheEntry(key=str(header["key"]), paths=tuple(header["paths"]), payload=payload)


class ArtifactCache:
    """
    Key/value cache of build outputs.

    `lookup` never raises: a missing, unreadable or corrupt entry is a miss.
    `store` overwrites (last write wins) and raises CacheError on failure.
    """

    def __init__(self, backend: CacheBackend) -> None:
        self.backend = backend

    def lookup(self, key: str) -> CacheEntry | None:
        try:
            blob = self.backend.read(key)
        except Exception as e:
            log.warning("cache.read_failed", key=key, error=str(e))
            return None
        if blob is None:
            return None

        try:
            entry = decode_entry(blob)
        except Exception as e:
            log.warning("cache.entry_corrupt", key=key, error=str(e))
            return None

        if entry.key != key:
            log.warning("cache.key_mismatch", key=key, stored_key=entry.key)
            return None
        return entry

    def store(self, key: str, entry: CacheEntry) -> None:
        if entry.key != key:
            raise CacheError(f"Entry key {entry.key!r} does not match {key!r}")
        try:
            self.backend.write(key, encode_entry(entry))
        except CacheError:
            raise
        except Exception as e:
            raise CacheError(f"Cache store failed for {key}: {e}") from e
