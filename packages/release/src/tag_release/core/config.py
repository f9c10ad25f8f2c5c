from __future__ import annotations

import platform
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]


def _runner_os() -> str:
    # Matches the runner.os spelling CI systems put in cache keys.
    name = platform.system()
    return {"Darwin": "macOS"}.get(name, name or "Unknown")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TAG_RELEASE_",
        env_file=".env",
        extra="ignore",
    )

    workspace: Path = Field(default=Path("."))
    run_root: Path = Field(default=Path("_runs"))
    cache_root: Path = Field(default=Path(".release-cache"))
    config_path: Path | None = Field(default=None)
    secrets_dir: Path | None = Field(default=None)
    runner_os: str = Field(default_factory=_runner_os)
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
