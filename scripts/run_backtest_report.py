from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

from backtest_lab.config import compute_config_hash, default_config, load_config
from backtest_lab.data import CsvCandleProvider
from backtest_lab.monitoring import AuditLog, configure_logging
from backtest_lab.service import BacktestService

MODES = ("backtest", "optimize", "monte-carlo", "walk-forward", "compare", "risk")


def _build_payload(args: argparse.Namespace) -> dict:
    payload = {
        "symbol": args.symbol,
        "interval": args.interval,
        "strategy": args.strategy,
        "config": json.loads(args.backtest_config) if args.backtest_config else {},
    }
    if args.mode == "monte-carlo":
        payload["simulations"] = args.simulations
        if args.seed is not None:
            payload["seed"] = args.seed
    elif args.mode == "walk-forward":
        payload["windowSize"] = args.window_days
        payload["stepSize"] = args.step_days
    elif args.mode == "compare":
        payload["strategies"] = [name.strip() for name in args.strategies.split(",") if name.strip()]
    return payload


async def _run(service: BacktestService, mode: str, payload: dict):
    handlers = {
        "backtest": service.run_backtest,
        "optimize": service.optimize,
        "monte-carlo": service.monte_carlo,
        "walk-forward": service.walk_forward,
        "compare": service.compare,
        "risk": service.risk_metrics,
    }
    return await handlers[mode](payload)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a backtest mode over a CSV of candles.")
    parser.add_argument("--candles", required=True, help="CSV with open_time,open,high,low,close,volume")
    parser.add_argument("--strategy", default="RSI_EMA50")
    parser.add_argument("--strategies", default="RSI_EMA50,BB_RSI,MACD_VOLUME", help="compare mode only")
    parser.add_argument("--mode", choices=MODES, default="backtest")
    parser.add_argument("--config", help="YAML application config")
    parser.add_argument("--backtest-config", help="JSON object of camelCase BacktestConfig overrides")
    parser.add_argument("--symbol", default="CSV")
    parser.add_argument("--interval", default="1h")
    parser.add_argument("--simulations", type=int, default=1000)
    parser.add_argument("--seed", type=int)
    parser.add_argument("--window-days", type=float, default=30.0)
    parser.add_argument("--step-days", type=float, default=7.0)
    parser.add_argument("--output", required=True)
    args = parser.parse_args()

    config = load_config(args.config) if args.config else default_config()
    configure_logging(config.monitoring.log_level)
    audit_log = None
    if config.monitoring.audit_log_path:
        config_hash = compute_config_hash(args.config) if args.config else None
        audit_log = AuditLog(config.monitoring.audit_log_path, run_id=args.mode, config_hash=config_hash)

    provider = CsvCandleProvider(args.candles, symbol=args.symbol, interval=args.interval)
    service = BacktestService(provider=provider, config=config, audit_log=audit_log)
    response = asyncio.run(_run(service, args.mode, _build_payload(args)))

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    report = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "candles_path": str(args.candles),
        "config_path": args.config,
        "mode": args.mode,
        **response.to_dict(),
    }
    output_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    print(f"Wrote {output_path}")
    if not response.success:
        raise SystemExit(f"{args.mode} failed: {response.error}")


if __name__ == "__main__":
    main()
