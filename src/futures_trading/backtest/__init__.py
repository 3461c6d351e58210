"""Backtest package exports."""

from futures_trading.backtest.data import bars_from_frame, load_bars_csv, normalize_bars
from futures_trading.backtest.runner import run_backtest, write_backtest_artifacts
from futures_trading.backtest.types import BacktestConfig, BacktestResult

__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "bars_from_frame",
    "load_bars_csv",
    "normalize_bars",
    "run_backtest",
    "write_backtest_artifacts",
]
