from .config import Settings, load_settings
from .errors import (
    AlreadyPublished,
    AuthError,
    AuthRejected,
    BuildError,
    CacheError,
    ConfigError,
    ProvisionError,
    PublishError,
    RegistryUnavailable,
    ReleaseError,
    StageError,
    ValidationFailed,
    stage_error_from_exc,
)
from .fs import (
    atomic_write_bytes,
    atomic_write_text,
    ensure_parent,
    make_tmp_dir_for,
    merge_into,
    remove_tree,
    safe_unlink,
)
from .hashing import sha256_bytes, sha256_file, sha256_files
from .json import atomic_write_json, read_json, stable_json_dumps
from .logging import ILogger, bind, clear_bindings, configure_logging, get_logger
from .provenance import RunProvenance, new_run_id
from .time import monotonic_ms, utc_now_iso

__all__ = [
    "Settings",
    "load_settings",
    "ReleaseError",
    "ConfigError",
    "ProvisionError",
    "CacheError",
    "BuildError",
    "AuthError",
    "PublishError",
    "AlreadyPublished",
    "AuthRejected",
    "ValidationFailed",
    "RegistryUnavailable",
    "StageError",
    "stage_error_from_exc",
    "atomic_write_bytes",
    "atomic_write_text",
    "ensure_parent",
    "make_tmp_dir_for",
    "merge_into",
    "remove_tree",
    "safe_unlink",
    "sha256_bytes",
    "sha256_file",
    "sha256_files",
    "atomic_write_json",
    "read_json",
    "stable_json_dumps",
    "ILogger",
    "bind",
    "clear_bindings",
    "configure_logging",
    "get_logger",
    "RunProvenance",
    "new_run_id",
    "monotonic_ms",
    "utc_now_iso",
]
