from __future__ import annotations

from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    StringConstraints,
    model_validator,
)

IdPattern = r"^[a-z0-9][a-z0-9_\-]*[a-z0-9]$"

CacheName = Annotated[
    str,
    StringConstraints(min_length=2, max_length=60, pattern=IdPattern),
]
SecretName = Annotated[
    str,
    StringConstraints(min_length=1, max_length=120, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$"),
]


class ToolchainSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    channel: str = Field(default="stable", min_length=1, examples=["stable", "1.78.0"])
    profile: str = Field(default="minimal", min_length=1)
    override: bool = True
    components: tuple[str, ...] = ()


class CacheSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: CacheName
    paths: list[str] = Field(..., min_length=1)
    key_prefix: str = Field(..., min_length=1, examples=["cargo-registry"])


def default_caches() -> list[CacheSpec]:
    return [
        CacheSpec(name="registry", paths=["~/.cargo/registry"], key_prefix="cargo-registry"),
        CacheSpec(name="index", paths=["~/.cargo/git"], key_prefix="cargo-index"),
        CacheSpec(name="build", paths=["target"], key_prefix="cargo-build-target"),
    ]


class RegistrySpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    url: HttpUrl = HttpUrl("https://crates.io")
    secret: SecretName = "crates_token"
    timeout_s: float = Field(default=60.0, gt=0)
    max_query_attempts: int = Field(default=3, ge=1, le=10)


class ReleaseConfig(BaseModel):
    """
    What to release and how. Defaults reproduce the stock cargo publish job.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    spec_version: int = Field(default=1, ge=1)
    package_dir: str = "."
    lock_glob: str = Field(default="**/Cargo.lock", min_length=1)

    toolchain: ToolchainSpec = Field(default_factory=ToolchainSpec)
    caches: list[CacheSpec] = Field(default_factory=default_caches)
    registry: RegistrySpec = Field(default_factory=RegistrySpec)

    require_version_match: bool = True
    command_timeout_s: float = Field(default=1800.0, gt=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _validate(self) -> "ReleaseConfig":
        names = [c.name for c in self.caches]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate cache names: {sorted(names)}")
        prefixes = [c.key_prefix for c in self.caches]
        if len(prefixes) != len(set(prefixes)):
            raise ValueError("Cache key_prefix values must be unique")
        return self
