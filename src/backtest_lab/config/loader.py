"""Load application configuration files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any, Optional

import yaml

from backtest_lab.config.models import (
    CONFIG_KEYS,
    DEFAULT_BACKTEST_SETTINGS,
    DEFAULT_PARAM_RANGES,
    ApiConfig,
    AppConfig,
    EngineConfig,
    MonitoringConfig,
    OptimizationConfig,
    ProviderConfig,
)


def load_config(path: str | Path) -> AppConfig:
    path = Path(path)
    data = _load_yaml(path)

    name = str(_require(data, "name"))
    version = str(_require(data, "version"))

    return AppConfig(
        name=name,
        version=version,
        provider=_parse_provider(data.get("provider", {})),
        engine=_parse_engine(data.get("engine", {})),
        defaults=_parse_defaults(data.get("defaults", {})),
        optimization=_parse_optimization(data.get("optimization", {})),
        monitoring=_parse_monitoring(data.get("monitoring", {})),
        api=_parse_api(data.get("api", {})),
    )


def default_config() -> AppConfig:
    return AppConfig(name="backtest-lab", version="1")


def compute_config_hash(path: str | Path) -> str:
    path = Path(path)
    content = path.read_bytes()
    return hashlib.sha256(content).hexdigest()


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Config must be a mapping")
    return data


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"Missing required config key: {key}")
    return data[key]


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def _parse_provider(data: dict[str, Any]) -> ProviderConfig:
    return ProviderConfig(
        base_url=str(data.get("base_url", "https://api.binance.com/api/v3")).rstrip("/"),
        timeout_seconds=float(data.get("timeout_seconds", 10.0)),
        max_attempts=int(data.get("max_attempts", 3)),
        backoff_min_seconds=float(data.get("backoff_min_seconds", 1.0)),
        backoff_max_seconds=float(data.get("backoff_max_seconds", 8.0)),
        page_limit=int(data.get("page_limit", 1000)),
    )


def _parse_engine(data: dict[str, Any]) -> EngineConfig:
    threshold = float(data.get("activation_threshold", 0.5))
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"Invalid activation_threshold: {threshold}")
    return EngineConfig(activation_threshold=threshold)


def _parse_defaults(data: dict[str, Any]) -> dict[str, Any]:
    defaults = dict(DEFAULT_BACKTEST_SETTINGS)
    for key, value in data.items():
        if key not in CONFIG_KEYS:
            raise ValueError(f"Invalid defaults key: {key}")
        defaults[key] = value
    return defaults


def _parse_param_ranges(data: Any) -> dict[str, list[float]]:
    if not data:
        return {key: list(values) for key, values in DEFAULT_PARAM_RANGES.items()}
    if not isinstance(data, dict):
        raise ValueError("default_param_ranges must be a mapping")
    return {str(key): [float(value) for value in values] for key, values in data.items()}


def _parse_optimization(data: dict[str, Any]) -> OptimizationConfig:
    executor = str(data.get("executor", "thread"))
    if executor not in ("thread", "process"):
        raise ValueError(f"Invalid executor: {executor}")
    max_workers = data.get("max_workers")
    return OptimizationConfig(
        executor=executor,
        max_workers=int(max_workers) if max_workers is not None else None,
        batch_timeout_seconds=_optional_float(data.get("batch_timeout_seconds")),
        monte_carlo_simulations=int(data.get("monte_carlo_simulations", 1000)),
        walk_forward_window_days=float(data.get("walk_forward_window_days", 30.0)),
        walk_forward_step_days=float(data.get("walk_forward_step_days", 7.0)),
        walk_forward_fetch_limit=int(data.get("walk_forward_fetch_limit", 10000)),
        default_param_ranges=_parse_param_ranges(data.get("default_param_ranges")),
    )


def _parse_monitoring(data: dict[str, Any]) -> MonitoringConfig:
    path = data.get("audit_log_path")
    return MonitoringConfig(
        audit_log_path=str(path) if path else None,
        log_level=str(data.get("log_level", "INFO")).upper(),
    )


def _parse_api(data: dict[str, Any]) -> ApiConfig:
    return ApiConfig(
        prefix=str(data.get("prefix", "/api/backtest")),
        title=str(data.get("title", "backtest-lab")),
    )
