"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml
with built-in defaults when the file is absent.

Usage:
    from pyqlab.config.app_config import load_app_config, get_provider_config

    config = load_app_config()
    provider = get_provider_config("lmstudio")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")

# Environment override for the data directory (CLI and API)
DATA_DIR_ENV = "PYQ_DATA_DIR"


@dataclass
class ProviderConfig:
    """Configuration for a single LLM provider."""

    base_url: str | None
    default_model: str
    api_key_env: str | None = None

    def get_api_key(self) -> str | None:
        """Get API key from environment variable."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class GradingConfig:
    """Defaults for test grading."""

    use_ai_comparison: bool = True
    passing_percentage: float = 40.0


@dataclass
class ExtractionConfig:
    """Defaults for AI question extraction."""

    chunk_size: int = 50000
    default_marks: int = 4
    batch_size: int = 50


@dataclass
class AppConfig:
    """Application-wide configuration."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    grading: GradingConfig = field(default_factory=GradingConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    paths: dict[str, str] = field(default_factory=dict)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "providers": {
            "lmstudio": {
                "base_url": "http://localhost:1234/v1",
                "default_model": "llama-3.2-3b-instruct",
                "api_key_env": None,
            },
            "openai": {
                "base_url": None,
                "default_model": "gpt-4o-mini",
                "api_key_env": "OPENAI_API_KEY",
            },
            "gemini": {
                "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
                "default_model": "gemini-2.5-flash",
                "api_key_env": "GEMINI_API_KEY",
            },
        },
        "grading": {
            "use_ai_comparison": True,
            "passing_percentage": 40.0,
        },
        "extraction": {
            "chunk_size": 50000,
            "default_marks": 4,
            "batch_size": 50,
        },
        "paths": {
            "data_dir": "data",
            "db_path": "db/pyqlab.db",
            "config_dir": "data/config",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    providers = {}
    for name, pconfig in data.get("providers", {}).items():
        providers[name] = ProviderConfig(
            base_url=pconfig.get("base_url"),
            default_model=pconfig.get("default_model", "default"),
            api_key_env=pconfig.get("api_key_env"),
        )

    grading_data = data.get("grading", {})
    grading = GradingConfig(
        use_ai_comparison=grading_data.get("use_ai_comparison", True),
        passing_percentage=float(grading_data.get("passing_percentage", 40.0)),
    )

    extraction_data = data.get("extraction", {})
    extraction = ExtractionConfig(
        chunk_size=extraction_data.get("chunk_size", 50000),
        default_marks=extraction_data.get("default_marks", 4),
        batch_size=extraction_data.get("batch_size", 50),
    )

    paths = data.get("paths", {})

    return AppConfig(
        providers=providers,
        grading=grading,
        extraction=extraction,
        paths=paths,
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data = _get_defaults()
    if CONFIG_FILE.exists():
        logger.debug("app_config.loaded", source=str(CONFIG_FILE))
        data = _overlay(data, yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {})
    else:
        logger.debug("app_config.defaults")

    _cached_config = _parse_config(data)
    return _cached_config


def _overlay(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Apply YAML values over the defaults, section by section."""
    merged = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in defaults.items()
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def get_provider_config(provider: str) -> ProviderConfig | None:
    """Endpoint, default model and key variable of a provider, or None."""
    config = load_app_config()
    return config.providers.get(provider)


def get_data_dir() -> Path:
    """Resolve the data directory: PYQ_DATA_DIR, then config, then ./data."""
    env_value = os.environ.get(DATA_DIR_ENV)
    if env_value:
        return Path(env_value)
    return Path(load_app_config().paths.get("data_dir", "data"))


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
