"""Hive configuration loading and validation."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Literal

import yaml
from pydantic import Field, NonNegativeInt, PositiveFloat, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/hive/hive.yaml"),
    Path("/etc/hive/hive.yml"),
    Path("./config/hive.yaml"),
    Path("./config/hive.yml"),
)

DEFAULT_LOGO = r"""
   _  _  _
  | || |(_)__ __ ___
  | __ || |\ V // -_)
  |_||_||_| \_/ \___|
"""

DEFAULT_WELCOME = "Welcome to the hive. Type .help to list the available commands."


class HiveSettings(BaseSettings):
    """Validated settings for both hive listeners and the operator console."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="HIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Listeners
    worker_host: str = Field(default="0.0.0.0", description="Bind address for worker connections.")
    worker_port: int = Field(default=4444, ge=0, le=65535, description="Port for worker connections.")
    operator_host: str = Field(default="127.0.0.1", description="Bind address for operator connections.")
    operator_port: int = Field(default=1337, ge=0, le=65535, description="Port for operator connections.")

    # Worker handshake
    identity_request: str = Field(
        default="whoami",
        description="Command line written to every worker on connect; the first reply is its identity.",
    )
    handshake_timeout_seconds: PositiveFloat | None = Field(
        default=30.0,
        description="Seconds to wait for the identity reply before dropping the worker (None waits forever).",
    )
    worker_backlog_bytes: NonNegativeInt = Field(
        default=64 * 1024,
        description="Bytes of unattached worker output kept for the next operator that attaches.",
    )
    interactive_command: str = Field(
        default="env DISPLAY=:0 bash",
        description="Line sent to the attached worker by the .interactive command.",
    )

    # Operator console
    command_marker: str = Field(
        default=".",
        min_length=1,
        max_length=1,
        description="Leading character distinguishing meta-commands from passthrough text.",
    )
    prompt: str = Field(default="> ", description="Prompt shown while no worker is attached.")
    welcome_message: str = Field(
        default=f"{DEFAULT_LOGO}\n{DEFAULT_WELCOME}",
        description="Banner sent to every operator on connect.",
    )
    about_text: str = Field(
        default="hive - two-tier TCP worker console",
        description="Static identifying string returned by the .about command.",
    )
    color: bool = Field(default=True, description="Colour operator output with ANSI escape codes.")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the hive process.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[HiveSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._file_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _file_settings_source(settings_cls: type[HiveSettings] | None = None) -> Dict[str, Any]:
        explicit = os.getenv("HIVE_CONFIG_FILE")
        candidates = [Path(explicit).expanduser()] if explicit else list(DEFAULT_CONFIG_LOCATIONS)
        path = next((candidate for candidate in candidates if candidate.is_file()), None)
        if path is None:
            return {}
        # JSON documents are valid YAML, so one parser covers both formats.
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ValueError(f"Unreadable hive config file {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ValueError(f"Hive config file {path} must contain a mapping at top level.")
        raw.setdefault("config_path", path)
        return raw


@lru_cache()
def get_settings() -> HiveSettings:
    """Return memoized hive settings."""

    return HiveSettings()
