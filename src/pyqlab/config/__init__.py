"""Configuration package for pyqlab."""

from pyqlab.config.app_config import (
    AppConfig,
    ExtractionConfig,
    GradingConfig,
    ProviderConfig,
    get_data_dir,
    get_provider_config,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "ExtractionConfig",
    "GradingConfig",
    "ProviderConfig",
    "get_data_dir",
    "get_provider_config",
    "load_app_config",
]
