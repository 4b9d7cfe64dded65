"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (RESCONTENT__BROWSER__MAX_CONTEXTS=5)
  2. rescontent.yaml        (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults. The API key
is the only value a production deployment must set.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_LAUNCH_ARGS = [
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--no-sandbox",
    "--disable-web-security",
]


def _find_config_file() -> str | None:
    """Return the path of the first rescontent.yaml found, or None."""
    candidates = [
        Path("rescontent.yaml"),
        Path(platformdirs.user_config_dir("rescontent")) / "rescontent.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3100
    api_key: str = ""
    auth_enabled: bool = True
    min_client_version: str = "0.1.0"


class BrowserSettings(BaseModel):
    max_contexts: int = Field(default=3, ge=1)
    context_timeout_ms: int = Field(default=60_000, ge=0)
    page_timeout_ms: int = Field(default=30_000, ge=1)
    headless: bool = True
    launch_args: list[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 720


class CacheSettings(BaseModel):
    max_size: int = Field(default=100, ge=1)
    ttl_seconds: float = Field(default=3600, gt=0)
    cleanup_interval_seconds: float = Field(default=300, gt=0)


class TranscriptSettings(BaseModel):
    yt_dlp_path: str = "yt-dlp"
    default_language: str = "en"
    subtitle_format: Literal["vtt", "json3"] = "vtt"
    list_timeout_seconds: float = 60
    download_timeout_seconds: float = 90
    batch_max: int = Field(default=10, ge=1)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: RESCONTENT__SERVER__PORT=9090
        env_prefix="RESCONTENT__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    browser: BrowserSettings = BrowserSettings()
    cache: CacheSettings = CacheSettings()
    transcript: TranscriptSettings = TranscriptSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
