"""Backtest REST routes; every handler delegates to ``BacktestService``."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from backtest_lab.service.backtest_service import BacktestService, ServiceResponse

router = APIRouter()


class BacktestRequestBody(BaseModel):
    """Every field is optional so missing ones reach the service's own message."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: Optional[str] = None
    interval: Optional[str] = None
    strategy: Optional[str] = None
    start_time: Optional[int] = Field(None, alias="startTime")
    end_time: Optional[int] = Field(None, alias="endTime")
    config: Optional[dict[str, Any]] = None
    parameters: Optional[dict[str, Any]] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class OptimizeRequestBody(BacktestRequestBody):
    param_ranges: Optional[dict[str, list[Any]]] = Field(None, alias="paramRanges")


class MonteCarloRequestBody(BacktestRequestBody):
    simulations: Optional[int] = None
    seed: Optional[int] = None


class WalkForwardRequestBody(BacktestRequestBody):
    window_size: Optional[float] = Field(None, alias="windowSize")
    step_size: Optional[float] = Field(None, alias="stepSize")
    param_ranges: Optional[dict[str, list[Any]]] = Field(None, alias="paramRanges")


class CompareRequestBody(BacktestRequestBody):
    strategies: Optional[list[str]] = None


class RiskMetricsRequestBody(BacktestRequestBody):
    confidence_level: Optional[float] = Field(None, alias="confidenceLevel")
    threshold: Optional[float] = None


def get_service(request: Request) -> BacktestService:
    return request.app.state.service


def _payload(body: Optional[BacktestRequestBody]) -> dict[str, Any]:
    return body.to_payload() if body is not None else {}


def _reply(response: ServiceResponse) -> JSONResponse:
    return JSONResponse(status_code=200 if response.success else 400, content=response.to_dict())


@router.get("/strategies")
async def list_strategies(service: BacktestService = Depends(get_service)):
    return _reply(await service.list_strategies())


@router.get("/strategies/{name}")
async def strategy_info(name: str, service: BacktestService = Depends(get_service)):
    return _reply(await service.get_strategy_info(name))


@router.get("/symbols")
async def list_symbols(service: BacktestService = Depends(get_service)):
    return _reply(await service.list_symbols())


@router.get("/historical-data")
async def historical_data(
    symbol: str = Query(""),
    interval: str = Query(""),
    limit: int = Query(100, ge=1, le=1000),
    service: BacktestService = Depends(get_service),
):
    return _reply(await service.get_historical_data(symbol, interval, limit))


@router.post("/run")
async def run_backtest(
    body: Optional[BacktestRequestBody] = None,
    service: BacktestService = Depends(get_service),
):
    return _reply(await service.run_backtest(_payload(body)))


@router.post("/optimize")
async def optimize(
    body: Optional[OptimizeRequestBody] = None,
    service: BacktestService = Depends(get_service),
):
    return _reply(await service.optimize(_payload(body)))


@router.post("/monte-carlo")
async def monte_carlo(
    body: Optional[MonteCarloRequestBody] = None,
    service: BacktestService = Depends(get_service),
):
    return _reply(await service.monte_carlo(_payload(body)))


@router.post("/walk-forward")
async def walk_forward(
    body: Optional[WalkForwardRequestBody] = None,
    service: BacktestService = Depends(get_service),
):
    return _reply(await service.walk_forward(_payload(body)))


@router.post("/compare")
async def compare(
    body: Optional[CompareRequestBody] = None,
    service: BacktestService = Depends(get_service),
):
    return _reply(await service.compare(_payload(body)))


@router.post("/risk-metrics")
async def risk_metrics(
    body: Optional[RiskMetricsRequestBody] = None,
    service: BacktestService = Depends(get_service),
):
    return _reply(await service.risk_metrics(_payload(body)))
