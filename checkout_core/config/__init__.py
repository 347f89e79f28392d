"""Configuration resolution, validation and diagnostics."""
from .diagnostics import (
    CONFIG_PRESETS,
    ProductionConfigReport,
    get_config_summary,
    get_production_checklist,
    validate_production_config,
)
from .environment import EnvironmentSettings, load_environment
from .models import AppConfig
from .resolver import ConfigResolver, determine_database_provider
from .validator import ConfigValidator

__all__ = [
    "AppConfig",
    "CONFIG_PRESETS",
    "ConfigResolver",
    "ConfigValidator",
    "EnvironmentSettings",
    "ProductionConfigReport",
    "determine_database_provider",
    "get_config_summary",
    "get_production_checklist",
    "load_environment",
    "validate_production_config",
]
