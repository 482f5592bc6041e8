"""REST surface."""

from backtest_lab.api.app import create_app

__all__ = ["create_app"]
