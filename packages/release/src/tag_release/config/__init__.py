from .loader import load_release_config, resolve_config_path, schema_for_release_config
from .models import CacheSpec, RegistrySpec, ReleaseConfig, ToolchainSpec, default_caches

__all__ = [
    "CacheSpec",
    "RegistrySpec",
    "ReleaseConfig",
    "ToolchainSpec",
    "default_caches",
    "load_release_config",
    "resolve_config_path",
    "schema_for_release_config",
]
