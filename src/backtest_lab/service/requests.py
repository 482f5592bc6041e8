"""Request parsing and validation for the service layer.

Checks run in a fixed order: required fields, config defaults, config bounds.
Strategy lookup and the data-length check happen later in the service, once a
strategy has been built and candles fetched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from backtest_lab.config.models import BacktestConfig
from backtest_lab.errors import InvalidRequestError

REQUIRED_FIELDS = ("symbol", "interval", "strategy", "config")
MISSING_FIELDS_MESSAGE = "Missing required fields: " + ", ".join(REQUIRED_FIELDS)


@dataclass(frozen=True)
class BacktestRequest:
    symbol: str
    interval: str
    strategy: str
    config: BacktestConfig
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    parameters: dict[str, Any] = field(default_factory=dict)


def _missing(payload: dict, key: str) -> bool:
    """An empty ``config`` object is present; defaults fill it in."""
    value = payload.get(key)
    if key == "config":
        return value is None
    return value is None or value == ""


def _optional_int(payload: dict, key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"{key} must be an integer") from exc


def optional_number(payload: dict, key: str, default: Optional[float] = None) -> Optional[float]:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise InvalidRequestError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"{key} must be a number") from exc


def parse_backtest_request(payload: Any, defaults: Optional[dict[str, Any]] = None) -> BacktestRequest:
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    if any(_missing(payload, key) for key in REQUIRED_FIELDS):
        raise InvalidRequestError(MISSING_FIELDS_MESSAGE)
    raw_config = payload["config"]
    if not isinstance(raw_config, dict):
        raise InvalidRequestError("config must be an object")
    parameters = payload.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise InvalidRequestError("parameters must be an object")

    config = BacktestConfig.from_dict(raw_config, defaults).validate()
    return BacktestRequest(
        symbol=str(payload["symbol"]).upper(),
        interval=str(payload["interval"]),
        strategy=str(payload["strategy"]),
        config=config,
        start_time=_optional_int(payload, "startTime"),
        end_time=_optional_int(payload, "endTime"),
        parameters=dict(parameters),
    )


def parse_param_ranges(value: Any, default: dict[str, list[float]]) -> dict[str, list[Any]]:
    if value is None:
        return {key: list(values) for key, values in default.items()}
    if not isinstance(value, dict) or not value:
        raise InvalidRequestError("paramRanges must be a non-empty object")
    ranges: dict[str, list[Any]] = {}
    for key, values in value.items():
        if not isinstance(values, (list, tuple)) or not values:
            raise InvalidRequestError(f"paramRanges.{key} must be a non-empty list")
        ranges[str(key)] = list(values)
    return ranges


def parse_simulations(payload: dict, default: int) -> int:
    value = payload.get("simulations")
    if value is None:
        return default
    try:
        simulations = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError("simulations must be an integer") from exc
    if simulations < 1:
        raise InvalidRequestError("simulations must be at least 1")
    return simulations


def parse_strategy_list(payload: dict) -> list[str]:
    names = payload.get("strategies")
    if not isinstance(names, list) or not names:
        raise InvalidRequestError("strategies must be a non-empty list")
    return [str(name) for name in names]


def parse_confidence_level(payload: dict) -> float:
    level = optional_number(payload, "confidenceLevel", 0.95)
    if not 0.0 < level < 1.0:
        raise InvalidRequestError("Confidence level must be between 0 and 1")
    return level
