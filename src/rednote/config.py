"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (REDNOTE__SERVER__TRANSPORT=http)
  2. rednote.yaml           (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults. The timing
values under ``fetch`` are tuned for Xiaohongshu's current rate limiting and
are expected to need adjustment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("rednote")
_DEFAULT_COOKIES_PATH = str(Path(_DEFAULT_DATA_DIR) / "cookies" / "xiaohongshu-cookies.json")
_DEFAULT_CACHE_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache" / "search-cache.json")
_DEFAULT_MOCK_RESULTS_PATH = str(Path(_DEFAULT_DATA_DIR) / "mock" / "example_search_result.json")

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)


def _find_config_file() -> str | None:
    """Return the path of the first rednote.yaml found, or None."""
    candidates = [
        Path("rednote.yaml"),
        Path(platformdirs.user_config_dir("rednote")) / "rednote.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    transport: Literal["stdio", "http"] = "stdio"
    host: str = "0.0.0.0"
    port: int = 8000
    auth_enabled: bool = False
    auth_key: str = ""
    # Fixture served by the mock_search tool for client development
    mock_results_path: str = _DEFAULT_MOCK_RESULTS_PATH


class BrowserSettings(BaseModel):
    headless: bool = True
    user_agent: str = _DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 800
    base_url: str = "https://www.xiaohongshu.com/"
    home_url: str = "https://www.xiaohongshu.com/explore"
    search_url: str = "https://www.xiaohongshu.com/search_result?keyword={keyword}"
    navigation_timeout_seconds: float = 30.0
    element_timeout_seconds: float = 15.0
    listing_settle_seconds: float = 5.0


class SessionSettings(BaseModel):
    # Raw JSON array of cookie objects; takes priority over cookies_path
    cookies: str | None = None
    cookies_path: str = _DEFAULT_COOKIES_PATH
    login_poll_interval_seconds: float = 2.0
    login_max_attempts: int = 150
    login_settle_seconds: float = 5.0


class FetchSettings(BaseModel):
    max_concurrency: int = 3
    worker_stagger_seconds: float = 1.0
    request_delay_seconds: float = 2.0
    scroll_threshold: int = 6
    scroll_distance: int = 300
    scroll_settle_seconds: float = 0.2
    scroll_final_settle_seconds: float = 2.0
    max_scrolls: int = 10


class CacheSettings(BaseModel):
    ttl_days: int = 14
    path: str = _DEFAULT_CACHE_PATH
    cleanup_interval_hours: int = 6


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: REDNOTE__FETCH__MAX_CONCURRENCY=2
        env_prefix="REDNOTE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    browser: BrowserSettings = BrowserSettings()
    session: SessionSettings = SessionSettings()
    fetch: FetchSettings = FetchSettings()
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
            # dotenv and file secrets intentionally excluded
        )
