from .archive import pack_paths, unpack_paths
from .keys import cache_key, derive_cache_keys, find_lock_files, lock_fingerprint
from .stage import CacheRestoreStage, CacheSaveStage
from .store import (
    ArtifactCache,
    CacheBackend,
    CacheEntry,
    FilesystemCacheBackend,
    decode_entry,
    encode_entry,
)

__all__ = [
    "ArtifactCache",
    "CacheBackend",
    "CacheEntry",
    "CacheRestoreStage",
    "CacheSaveStage",
    "FilesystemCacheBackend",
    "cache_key",
    "decode_entry",
    "derive_cache_keys",
    "encode_entry",
    "find_lock_files",
    "lock_fingerprint",
    "pack_paths",
    "unpack_paths",
]
