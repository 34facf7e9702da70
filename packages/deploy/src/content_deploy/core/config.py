from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]
HostKind = Literal["directory", "http"]

DEFAULT_RESOLVE_COMMAND = "python -m pip install --quiet --target {dest} -r {manifest}"
DEFAULT_BUILD_COMMAND = "jupyter-book build {corpus} --path-output {output}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CONTENT_DEPLOY_",
        env_file=".env",
        extra="ignore",
    )

    data_root: Path = Field(default=Path("data"))
    run_root: Path = Field(default=Path("_runs"))
    corpus_root: Path = Field(default=Path("."))
    manifest_paths: list[Path] = Field(default_factory=lambda: [Path("requirements.txt")])

    resolve_command: str = Field(default=DEFAULT_RESOLVE_COMMAND)
    resolve_timeout_s: float = Field(default=900.0, gt=0)

    build_command: str = Field(default=DEFAULT_BUILD_COMMAND)
    build_output_subdir: str = Field(default="_build/html")
    build_required_files: list[str] = Field(default_factory=lambda: ["index.html"])
    build_timeout_s: float = Field(default=300.0, gt=0)

    # becomes part of the cache key and its directory name
    cache_namespace: str = Field(default="pip", pattern=r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
    main_branch: str = Field(default="main")

    gate_group: str = Field(default="pages")
    deploy_latest_pending: bool = Field(default=False)

    host_kind: HostKind = Field(default="directory")
    host_url: str | None = Field(default=None)
    host_token: str | None = Field(default=None)
    site_url: str | None = Field(default=None)

    publish_max_attempts: int = Field(default=3, ge=1)
    backoff_base_s: float = Field(default=0.5, ge=0)
    backoff_cap_s: float = Field(default=4.0, ge=0)

    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
