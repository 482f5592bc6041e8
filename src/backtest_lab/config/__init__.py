"""Config loading and run settings."""

from backtest_lab.config.loader import compute_config_hash, default_config, load_config
from backtest_lab.config.models import (
    DEFAULT_BACKTEST_SETTINGS,
    DEFAULT_PARAM_RANGES,
    ApiConfig,
    AppConfig,
    BacktestConfig,
    EngineConfig,
    MonitoringConfig,
    OptimizationConfig,
    ProviderConfig,
)

__all__ = [
    "ApiConfig",
    "AppConfig",
    "BacktestConfig",
    "DEFAULT_BACKTEST_SETTINGS",
    "DEFAULT_PARAM_RANGES",
    "EngineConfig",
    "MonitoringConfig",
    "OptimizationConfig",
    "ProviderConfig",
    "compute_config_hash",
    "default_config",
    "load_config",
]
