"""Configuration models for reproducible runs."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Optional

from backtest_lab.errors import InvalidRequestError

# Request keys (camelCase) to BacktestConfig fields.
CONFIG_KEYS = {
    "initialBalance": "initial_balance",
    "positionSize": "position_size",
    "stopLoss": "stop_loss",
    "takeProfit": "take_profit",
    "maxPositions": "max_positions",
    "slippage": "slippage",
    "makerFees": "maker_fees",
    "takerFees": "taker_fees",
    "useMakerFees": "use_maker_fees",
}

DEFAULT_BACKTEST_SETTINGS: dict[str, Any] = {
    "initialBalance": 10000.0,
    "positionSize": 10.0,
    "stopLoss": 2.0,
    "takeProfit": 3.0,
    "maxPositions": 1,
    "slippage": 0.1,
    "makerFees": 0.075,
    "takerFees": 0.1,
    "useMakerFees": False,
}

DEFAULT_PARAM_RANGES: dict[str, list[float]] = {
    "stopLoss": [1, 2, 3, 4, 5],
    "takeProfit": [2, 3, 4, 5, 6],
    "positionSize": [5, 10, 15, 20],
}


@dataclass(frozen=True)
class BacktestConfig:
    """Per-run trading assumptions. Percentage fields are plain percents (2.0 == 2%)."""

    initial_balance: float = 10000.0
    position_size: float = 10.0
    stop_loss: float = 2.0
    take_profit: float = 3.0
    max_positions: int = 1
    slippage: float = 0.1
    maker_fees: float = 0.075
    taker_fees: float = 0.1
    use_maker_fees: bool = False

    @staticmethod
    def from_dict(data: dict, defaults: Optional[dict] = None) -> "BacktestConfig":
        merged = dict(DEFAULT_BACKTEST_SETTINGS if defaults is None else defaults)
        for key, value in data.items():
            if value is None:
                continue
            merged[key] = value
        if not isinstance(merged["useMakerFees"], bool):
            raise InvalidRequestError("useMakerFees must be a boolean")
        try:
            return BacktestConfig(
                initial_balance=float(merged["initialBalance"]),
                position_size=float(merged["positionSize"]),
                stop_loss=float(merged["stopLoss"]),
                take_profit=float(merged["takeProfit"]),
                max_positions=int(merged["maxPositions"]),
                slippage=float(merged["slippage"]),
                maker_fees=float(merged["makerFees"]),
                taker_fees=float(merged["takerFees"]),
                use_maker_fees=merged["useMakerFees"],
            )
        except (TypeError, ValueError) as exc:
            raise InvalidRequestError(f"Invalid config value: {exc}") from exc

    @property
    def fee_rate(self) -> float:
        return self.maker_fees if self.use_maker_fees else self.taker_fees

    def validate(self) -> "BacktestConfig":
        if self.initial_balance <= 0:
            raise InvalidRequestError("Initial balance must be greater than 0")
        if self.position_size <= 0 or self.position_size > 100:
            raise InvalidRequestError("Position size must be between 0 and 100")
        if self.stop_loss <= 0 or self.take_profit <= 0:
            raise InvalidRequestError("Stop loss and take profit must be greater than 0")
        if self.max_positions < 1:
            raise InvalidRequestError("Max positions must be at least 1")
        if self.slippage < 0 or self.maker_fees < 0 or self.taker_fees < 0:
            raise InvalidRequestError("Slippage and fees must not be negative")
        return self

    def with_overrides(self, overrides: dict[str, Any]) -> "BacktestConfig":
        """Apply camelCase or snake_case overrides, e.g. from a grid-search combination."""
        names = {item.name for item in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in overrides.items():
            name = CONFIG_KEYS.get(key, key)
            if name not in names:
                raise InvalidRequestError(f"Unknown config parameter: {key}")
            changes[name] = value
        return replace(self, **changes)

    def to_request_dict(self) -> dict[str, Any]:
        return {key: getattr(self, name) for key, name in CONFIG_KEYS.items()}


def is_config_key(key: str) -> bool:
    return key in CONFIG_KEYS or key in CONFIG_KEYS.values()


@dataclass(frozen=True)
class ProviderConfig:
    base_url: str = "https://api.binance.com/api/v3"
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    backoff_min_seconds: float = 1.0
    backoff_max_seconds: float = 8.0
    page_limit: int = 1000


@dataclass(frozen=True)
class EngineConfig:
    activation_threshold: float = 0.5


@dataclass(frozen=True)
class OptimizationConfig:
    executor: str = "thread"
    max_workers: Optional[int] = None
    batch_timeout_seconds: Optional[float] = None
    monte_carlo_simulations: int = 1000
    walk_forward_window_days: float = 30.0
    walk_forward_step_days: float = 7.0
    walk_forward_fetch_limit: int = 10000
    default_param_ranges: dict[str, list[float]] = field(
        default_factory=lambda: {key: list(values) for key, values in DEFAULT_PARAM_RANGES.items()}
    )


@dataclass(frozen=True)
class MonitoringConfig:
    audit_log_path: Optional[str] = None
    log_level: str = "INFO"


@dataclass(frozen=True)
class ApiConfig:
    prefix: str = "/api/backtest"
    title: str = "backtest-lab"


@dataclass(frozen=True)
class AppConfig:
    name: str
    version: str
    provider: ProviderConfig = ProviderConfig()
    engine: EngineConfig = EngineConfig()
    defaults: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_BACKTEST_SETTINGS))
    optimization: OptimizationConfig = OptimizationConfig()
    monitoring: MonitoringConfig = MonitoringConfig()
    api: ApiConfig = ApiConfig()
