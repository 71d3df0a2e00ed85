"""Unified configuration loaded from .fishbowl.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from datetime import time
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".fishbowl.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "fishbowl" / "config.toml"

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class StorageConfig(BaseModel):
    """[storage] section."""

    directory: Path = Field(default_factory=lambda: Path.home() / "Documents" / "fishbowl")

    @field_validator("directory", mode="before")
    @classmethod
    def _expand(cls, value: object) -> object:
        if isinstance(value, str):
            return Path(value).expanduser()
        return value

    @property
    def thoughts_dir(self) -> Path:
        return self.directory / "thoughts"

    @property
    def analysis_dir(self) -> Path:
        return self.directory / "analysis"

    @property
    def theme_index_path(self) -> Path:
        return self.directory / "theme_index.json"

    @property
    def theme_archive_path(self) -> Path:
        return self.directory / "archived_themes.json"


class ModelPreset(StrEnum):
    """Sampling presets for the local model."""

    DEFAULT = "default"
    CREATIVE = "creative"
    PRECISE = "precise"


_PRESETS: dict[ModelPreset, tuple[float, float]] = {
    ModelPreset.DEFAULT: (0.7, 0.9),
    ModelPreset.CREATIVE: (0.85, 0.95),
    ModelPreset.PRECISE: (0.5, 0.8),
}


class ModelConfig(BaseModel):
    """[model] section."""

    url: str = DEFAULT_OLLAMA_URL
    name: str = "gemma3:4b"
    preset: ModelPreset = ModelPreset.DEFAULT
    temperature: float | None = None
    top_p: float | None = None
    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)
    timeout: float = 30.0
    discovery_timeout: float = 120.0
    probe_interval: float = 60.0

    @property
    def sampling(self) -> tuple[float, float]:
        """Effective ``(temperature, top_p)``; explicit values beat the preset."""
        temperature, top_p = _PRESETS[self.preset]
        if self.temperature is not None:
            temperature = self.temperature
        if self.top_p is not None:
            top_p = self.top_p
        return temperature, top_p


class ThemesConfig(BaseModel):
    """[themes] section."""

    max_tracked: int = 10
    min_mentions: int = 2
    active_days: int = 14
    key_dates_limit: int = 10


class AnalysisConfig(BaseModel):
    """[analysis] section."""

    daily_lookback_days: int = 3
    daily_window_hours: int = 24
    weekly_min_entries: int = 5
    weekly_min_words: int = 1000
    weekly_cooldown_days: int = 3
    discovery_cooldown_days: int = 3
    max_lookback_days: int = 14
    top_themes: int = 5


class ScheduleConfig(BaseModel):
    """[schedule] section."""

    tick_seconds: float = 3600.0
    daily_time: time = time(20, 0)
    weekly_day: int = Field(default=6, ge=0, le=6)  # Python weekday, 6 = Sunday
    weekly_time: time = time(19, 0)


class LoggingConfig(BaseModel):
    """[logging] section."""

    level: str = "INFO"


class FishbowlConfig(BaseModel):
    """Top-level configuration model."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    themes: ThemesConfig = Field(default_factory=ThemesConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> FishbowlConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .fishbowl.toml in CWD
    3. ~/.config/fishbowl/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged FishbowlConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = FishbowlConfig()
    if data:
        try:
            config = FishbowlConfig.model_validate(data)
        except ValidationError as exc:
            logger.warning("Invalid config values, using defaults: %s", exc)
    return _apply_env_vars(config)


def merge_cli_overrides(config: FishbowlConfig, **cli_kwargs: object) -> FishbowlConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "directory": ("storage", "directory"),
        "model": ("model", "name"),
        "url": ("model", "url"),
        "log_level": ("logging", "level"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return FishbowlConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: FishbowlConfig) -> FishbowlConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "FISHBOWL_DIR": ("storage", "directory"),
        "FISHBOWL_MODEL": ("model", "name"),
        "FISHBOWL_OLLAMA_URL": ("model", "url"),
        "FISHBOWL_LOG_LEVEL": ("logging", "level"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    retries_raw = os.environ.get("FISHBOWL_MAX_RETRIES")
    if retries_raw is not None:
        try:
            retries = int(retries_raw)
        except ValueError:
            retries = 0
        if retries >= 1:
            data["model"]["max_retries"] = retries
        else:
            logger.warning(
                "Ignoring FISHBOWL_MAX_RETRIES=%r: expected a positive integer", retries_raw
            )

    try:
        return FishbowlConfig.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring invalid environment overrides: %s", exc)
        return config
