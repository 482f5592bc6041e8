"""Async facade that validates requests, fetches candles and runs the engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from backtest_lab.analysis.risk import calculate_risk_metrics
from backtest_lab.config.loader import default_config
from backtest_lab.config.models import AppConfig
from backtest_lab.data.provider import BinanceProvider, HistoricalDataProvider
from backtest_lab.errors import BacktestError, DataProviderError, InsufficientDataError, InvalidRequestError
from backtest_lab.monitoring.audit import AuditLog
from backtest_lab.optimization.compare import compare_strategies
from backtest_lab.optimization.grid import grid_search
from backtest_lab.optimization.monte_carlo import run_monte_carlo
from backtest_lab.optimization.walk_forward import walk_forward
from backtest_lab.serialization import to_payload
from backtest_lab.service.requests import (
    BacktestRequest,
    optional_number,
    parse_backtest_request,
    parse_confidence_level,
    parse_param_ranges,
    parse_simulations,
    parse_strategy_list,
)
from backtest_lab.simulator.engine import ExecutionSimulator
from backtest_lab.simulator.models import BacktestResult, Candle
from backtest_lab.strategy.base import Strategy
from backtest_lab.strategy.registry import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

POPULAR_BASES = ("BTC", "ETH", "ADA", "WLD", "XRP", "SOL", "NEAR", "LINK")
MIN_FETCH_LIMIT = 1000


@dataclass(frozen=True)
class ServiceResponse:
    success: bool
    data: Any = None
    error: Optional[str] = None

    @staticmethod
    def ok(data: Any) -> "ServiceResponse":
        return ServiceResponse(success=True, data=data)

    @staticmethod
    def fail(error: str) -> "ServiceResponse":
        return ServiceResponse(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            body["data"] = to_payload(self.data)
        if self.error is not None:
            body["error"] = self.error
        return body


def popular_symbols(symbols: list[str]) -> list[str]:
    return [symbol for symbol in symbols if symbol.endswith("USDT") and symbol.startswith(POPULAR_BASES)]


def _summary(request: BacktestRequest, result: BacktestResult) -> dict[str, Any]:
    return {
        "symbol": request.symbol,
        "interval": request.interval,
        "strategy": request.strategy,
        "trades": len(result.trades),
        "net_return_pct": result.performance.net_total_return_percentage,
    }


class BacktestService:
    """Every public method is a coroutine returning a ``ServiceResponse``.

    Client mistakes and engine failures come back as ``success=False`` with a
    message; nothing raises past this layer.
    """

    def __init__(
        self,
        provider: Optional[HistoricalDataProvider] = None,
        config: Optional[AppConfig] = None,
        registry: Optional[StrategyRegistry] = None,
        audit_log: Optional[AuditLog] = None,
    ) -> None:
        self.config = config or default_config()
        self.provider = provider or BinanceProvider(self.config.provider)
        self.registry = registry or default_registry()
        if audit_log is None and self.config.monitoring.audit_log_path:
            audit_log = AuditLog(self.config.monitoring.audit_log_path)
        self._audit_log = audit_log

    def _log(self, event: str, payload: dict) -> None:
        if self._audit_log is None:
            return
        self._audit_log.log(event, payload)

    @property
    def _batch_options(self) -> dict[str, Any]:
        options = self.config.optimization
        return {
            "executor": options.executor,
            "max_workers": options.max_workers,
            "timeout": options.batch_timeout_seconds,
        }

    @property
    def _activation_threshold(self) -> float:
        return self.config.engine.activation_threshold

    async def _respond(
        self, operation: str, call: Callable[[], Awaitable[tuple[Any, dict[str, Any]]]]
    ) -> ServiceResponse:
        try:
            data, audit_payload = await call()
        except BacktestError as exc:
            logger.warning("%s failed: %s", operation, exc)
            self._log("request_failed", {"operation": operation, "error": str(exc)})
            return ServiceResponse.fail(str(exc))
        except Exception as exc:
            logger.exception("Unexpected error during %s", operation)
            self._log("request_failed", {"operation": operation, "error": str(exc)})
            return ServiceResponse.fail(str(exc) or exc.__class__.__name__)
        self._log(operation, audit_payload)
        return ServiceResponse.ok(data)

    def _prepare(self, payload: Any) -> tuple[BacktestRequest, Strategy]:
        request = parse_backtest_request(payload, self.config.defaults)
        strategy = self.registry.build_strategy(request.strategy, request.parameters)
        return request, strategy

    async def _fetch(self, request: BacktestRequest, limit: int) -> tuple[Candle, ...]:
        logger.info("Fetching up to %d candles for %s %s", limit, request.symbol, request.interval)
        try:
            candles = await self.provider.get_candles(
                request.symbol, request.interval, request.start_time, request.end_time, limit
            )
        except DataProviderError as exc:
            raise DataProviderError(f"Failed to fetch historical data: {exc}") from exc
        return tuple(candles)

    async def _load(
        self, payload: Any, limit: Optional[int] = None
    ) -> tuple[BacktestRequest, Strategy, tuple[Candle, ...]]:
        request, strategy = self._prepare(payload)
        if limit is None:
            limit = max(strategy.min_window * 2, MIN_FETCH_LIMIT)
        candles = await self._fetch(request, limit)
        if len(candles) < strategy.min_window:
            raise InsufficientDataError(strategy.min_window, len(candles))
        return request, strategy, candles

    def _simulate(self, request: BacktestRequest, strategy: Strategy, candles: tuple[Candle, ...]) -> BacktestResult:
        simulator = ExecutionSimulator(request.config, activation_threshold=self._activation_threshold)
        return simulator.run(candles, strategy)

    async def _backtest(self, payload: Any) -> tuple[BacktestRequest, BacktestResult]:
        request, strategy, candles = await self._load(payload)
        result = await asyncio.to_thread(self._simulate, request, strategy, candles)
        logger.info(
            "Backtest completed for %s on %s. Total trades: %d", request.strategy, request.symbol, len(result.trades)
        )
        return request, result

    async def list_strategies(self) -> ServiceResponse:
        async def call():
            return [self.registry.describe(name) for name in self.registry.names()], {}

        return await self._respond("strategies_listed", call)

    async def get_strategy_info(self, name: str) -> ServiceResponse:
        async def call():
            info = self.registry.describe(name)
            info["parameters"] = self.registry.parameter_names(name)
            return info, {"strategy": name}

        return await self._respond("strategy_described", call)

    async def list_symbols(self) -> ServiceResponse:
        async def call():
            try:
                symbols = await self.provider.list_symbols()
            except DataProviderError as exc:
                raise DataProviderError(f"Failed to get symbols: {exc}") from exc
            return {"all": symbols, "popular": popular_symbols(symbols)}, {"count": len(symbols)}

        return await self._respond("symbols_listed", call)

    async def get_historical_data(self, symbol: str, interval: str, limit: int = 100) -> ServiceResponse:
        async def call():
            if not symbol or not interval:
                raise InvalidRequestError("Missing required parameters: symbol, interval")
            try:
                candles = await self.provider.get_candles(symbol.upper(), interval, limit=limit)
            except DataProviderError as exc:
                raise DataProviderError(f"Failed to fetch historical data: {exc}") from exc
            data = {"symbol": symbol.upper(), "interval": interval, "candles": candles, "count": len(candles)}
            return data, {"symbol": symbol.upper(), "interval": interval, "count": len(candles)}

        return await self._respond("historical_data_fetched", call)

    async def run_backtest(self, payload: Any) -> ServiceResponse:
        async def call():
            request, result = await self._backtest(payload)
            return result, _summary(request, result)

        return await self._respond("backtest_completed", call)

    async def optimize(self, payload: Any) -> ServiceResponse:
        async def call():
            body = payload if isinstance(payload, dict) else {}
            ranges = parse_param_ranges(body.get("paramRanges"), self.config.optimization.default_param_ranges)
            request, _, candles = await self._load(payload)
            result = await asyncio.to_thread(
                grid_search,
                candles,
                request.strategy,
                request.config,
                ranges,
                strategy_params=request.parameters,
                activation_threshold=self._activation_threshold,
                registry=self.registry,
                **self._batch_options,
            )
            audit = {
                "symbol": request.symbol,
                "interval": request.interval,
                "strategy": request.strategy,
                "combinations": len(result.all_results) + len(result.failures),
                "best_params": result.best_params,
                "net_return_pct": result.best_performance.net_total_return_percentage,
            }
            return result, audit

        return await self._respond("optimization_completed", call)

    async def monte_carlo(self, payload: Any) -> ServiceResponse:
        async def call():
            body = payload if isinstance(payload, dict) else {}
            simulations = parse_simulations(body, self.config.optimization.monte_carlo_simulations)
            seed = body.get("seed")
            request, backtest = await self._backtest(payload)
            returns = [trade.net_pnl_percentage for trade in backtest.trades]
            result = await asyncio.to_thread(
                run_monte_carlo,
                returns,
                simulations,
                int(seed) if seed is not None else None,
                **self._batch_options,
            )
            audit = _summary(request, backtest)
            audit["simulations"] = result.simulations
            audit["expected_value"] = result.expected_value
            return result, audit

        return await self._respond("monte_carlo_completed", call)

    async def walk_forward(self, payload: Any) -> ServiceResponse:
        async def call():
            body = payload if isinstance(payload, dict) else {}
            options = self.config.optimization
            window_days = optional_number(body, "windowSize", options.walk_forward_window_days)
            step_days = optional_number(body, "stepSize", options.walk_forward_step_days)
            ranges = parse_param_ranges(body.get("paramRanges"), options.default_param_ranges)
            request, _, candles = await self._load(payload, limit=options.walk_forward_fetch_limit)
            result = await asyncio.to_thread(
                walk_forward,
                candles,
                request.strategy,
                request.config,
                window_days,
                step_days,
                ranges,
                strategy_params=request.parameters,
                activation_threshold=self._activation_threshold,
                registry=self.registry,
                **self._batch_options,
            )
            audit = {
                "symbol": request.symbol,
                "interval": request.interval,
                "strategy": request.strategy,
                "periods": len(result.periods),
                "skipped": len(result.skipped_periods),
                "net_return_pct": result.average_out_of_sample.net_total_return_percentage,
                "stability_score": result.stability_score,
            }
            return result, audit

        return await self._respond("walk_forward_completed", call)

    async def compare(self, payload: Any) -> ServiceResponse:
        async def call():
            body = payload if isinstance(payload, dict) else {}
            names = parse_strategy_list(body)
            request = parse_backtest_request({"strategy": names[0], **body}, self.config.defaults)
            windows = [self.registry.build_strategy(name).min_window for name in names if name in self.registry]
            limit = max([window * 2 for window in windows] + [MIN_FETCH_LIMIT])
            candles = await self._fetch(request, limit)
            result = await asyncio.to_thread(
                compare_strategies,
                candles,
                names,
                request.config,
                activation_threshold=self._activation_threshold,
                registry=self.registry,
                **self._batch_options,
            )
            audit = {
                "symbol": request.symbol,
                "interval": request.interval,
                "strategies": names,
                "best": result.best.strategy,
                "trades": result.best.trade_count,
                "net_return_pct": result.best.performance.net_total_return_percentage,
            }
            return result, audit

        return await self._respond("comparison_completed", call)

    async def risk_metrics(self, payload: Any) -> ServiceResponse:
        async def call():
            body = payload if isinstance(payload, dict) else {}
            confidence_level = parse_confidence_level(body)
            threshold = optional_number(body, "threshold", 0.0)
            request, backtest = await self._backtest(payload)
            risk = calculate_risk_metrics(backtest.trades, request.config, confidence_level, threshold)
            data = {"performance": backtest.performance, "riskMetrics": risk, "tradeCount": len(backtest.trades)}
            return data, _summary(request, backtest)

        return await self._respond("risk_metrics_completed", call)
