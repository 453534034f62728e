"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (BREVITY__API__API_KEY=sk-...)
  2. brevity.yaml           (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional. Only the API key has no usable default, and it
can also be supplied at runtime through the SET_API_KEY message.
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

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("brevity")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")

# Value shipped in the example config; treated the same as "no key".
API_KEY_PLACEHOLDER = "YOUR_OPENAI_API_KEY_HERE"

# Namespace token for cache keys in the shared key/value table.
CACHE_KEY_PREFIX = "brevity_"


def _find_config_file() -> str | None:
    """Return the path of the first brevity.yaml found, or None."""
    candidates = [
        Path("brevity.yaml"),
        Path(platformdirs.user_config_dir("brevity")) / "brevity.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    transport: Literal["stdio", "http"] = "stdio"
    host: str = "127.0.0.1"
    port: int = 8080
    auth_enabled: bool = False
    auth_key: str = ""


class ApiSettings(BaseModel):
    endpoint: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    max_tokens: int = 80
    temperature: float = 0.9
    max_input_chars: int = Field(default=2000, ge=1)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay_seconds: float = Field(default=2.0, ge=0)
    timeout_seconds: float = 30.0
    api_key: str = ""


class CacheSettings(BaseModel):
    ttl_days: int = Field(default=30, ge=0)
    db_path: str = _DEFAULT_DB_PATH
    sweep_interval_hours: int = Field(default=24, ge=1)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: BREVITY__CACHE__TTL_DAYS=7
        env_prefix="BREVITY__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    api: ApiSettings = ApiSettings()
    cache: CacheSettings = CacheSettings()
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
        )
