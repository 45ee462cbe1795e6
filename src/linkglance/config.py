"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (LINKGLANCE__CACHE__TTL_SECONDS=60)
  3. linkglance.yaml        (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional, every field has a default.
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

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("linkglance")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first linkglance.yaml found, or None."""
    candidates = [
        Path("linkglance.yaml"),
        Path(platformdirs.user_config_dir("linkglance")) / "linkglance.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class CacheSettings(BaseModel):
    # Ephemeral tier lifetime; the engine's own store lives much longer.
    ttl_seconds: float = Field(default=4 * 60 * 60, gt=0)
    persistent: bool = True
    db_path: str = _DEFAULT_DB_PATH
    persistent_ttl_hours: int = Field(default=24, ge=0)


class BatchSettings(BaseModel):
    concurrency: int = Field(default=3, ge=1)
    failure_policy: Literal["placeholder", "propagate"] = "placeholder"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: LINKGLANCE__BATCH__CONCURRENCY=5
        env_prefix="LINKGLANCE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    cache: CacheSettings = CacheSettings()
    batch: BatchSettings = BatchSettings()
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
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            # dotenv and file secrets intentionally excluded
        )
