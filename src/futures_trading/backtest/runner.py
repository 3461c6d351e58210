"""Deterministic bar-by-bar replay through the risk gate and position manager."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd  # type: ignore[import-untyped]

from futures_trading.backtest.metrics import (
    compute_summary_metrics,
    equity_curve_as_rows,
    trade_records_as_rows,
)
from futures_trading.backtest.types import BacktestConfig, BacktestResult
from futures_trading.config import Settings
from futures_trading.position.manager import PositionManager
from futures_trading.risk.gate import RiskGate
from futures_trading.strategy.base import SignalGenerator
from futures_trading.types import Bar, ExitAction, ExitReason, TradeRecord
from futures_trading.utils.logging import get_logger
from futures_trading.utils.timeutil import venue_date

_EXIT_REASONS = {
    ExitAction.STOP: ExitReason.STOP,
    ExitAction.TARGET: ExitReason.TARGET,
    ExitAction.TIME_EXIT: ExitReason.TIME_EXIT,
}

_logger = get_logger("futures_trading.backtest.runner")


def run_backtest(
    *,
    settings: Settings,
    bars: Sequence[Bar],
    strategy: SignalGenerator,
    config: BacktestConfig | None = None,
) -> BacktestResult:
    """Replay bars once; no wall clock and no randomness."""
    config = config or BacktestConfig()
    settings.contract_spec(config.instrument)
    starting_balance = (
        settings.starting_balance if config.starting_balance is None else config.starting_balance
    )
    gate = RiskGate(settings, starting_balance=starting_balance)
    manager = PositionManager(settings, config.instrument, strategy=strategy)
    result = BacktestResult(
        instrument=config.instrument,
        starting_balance=starting_balance,
        equity_curve=[starting_balance],
        venue_tz=settings.venue_tz,
    )

    tz = settings.venue_tz
    balance = starting_balance
    last_trade_day: date | None = None

    for idx, bar in enumerate(bars):
        now = bar.timestamp
        today = venue_date(now, tz)
        window = bars[: idx + 1]
        if last_trade_day is not None:
            result.max_idle_days = max(result.max_idle_days, (today - last_trade_day).days)

        if not manager.is_flat:
            signal = manager.manage_exit(window)
            if signal.is_terminal and signal.price is not None:
                trade = manager.close(signal.price, _EXIT_REASONS[signal.action], now)
                balance = _book_trade(result, gate, trade, balance)
                last_trade_day = today

        if not manager.is_flat:
            continue

        setup = strategy.check_entry(window, config.regime, config.confidence)
        if setup is None or not setup.is_valid():
            continue

        decision = gate.evaluate(setup, now, balance)
        if decision.approved:
            manager.open_filled(setup, decision, now, idx)
            result.trades_approved += 1
            last_trade_day = today
        else:
            key = decision.summary_reason[: config.reason_key_length]
            result.rejection_reasons[key] = result.rejection_reasons.get(key, 0) + 1
            result.trades_rejected += 1

    if not manager.is_flat and bars:
        final_bar = bars[-1]
        trade = manager.close(final_bar.close, ExitReason.TIME_EXIT, final_bar.timestamp)
        balance = _book_trade(result, gate, trade, balance)

    _logger.info(
        "backtest_complete",
        instrument=config.instrument,
        bars=len(bars),
        trades=result.total_trades,
        total_pnl=round(result.total_pnl, 2),
        rejected=result.trades_rejected,
    )
    return result


def _book_trade(
    result: BacktestResult,
    gate: RiskGate,
    trade: TradeRecord,
    balance: float,
) -> float:
    result.trades.append(trade)
    balance += trade.pnl
    result.equity_curve.append(balance)
    gate.record_trade_result(trade.pnl, trade.exit_time)
    return balance


def write_backtest_artifacts(
    output_dir: Path,
    result: BacktestResult,
    robustness: Mapping[str, Any] | None = None,
) -> None:
    """Persist the ledger, equity curve and metrics of one replay."""
    output_dir.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(trade_records_as_rows(result.trades)).to_csv(
        output_dir / "trades.csv",
        index=False,
    )
    pd.DataFrame(equity_curve_as_rows(result.equity_curve)).to_csv(
        output_dir / "equity_curve.csv",
        index=False,
    )
    metrics = {
        "instrument": result.instrument,
        "metrics": compute_summary_metrics(result),
        "rejection_reasons": result.rejection_reasons,
    }
    _write_json(output_dir / "metrics.json", metrics)
    if robustness is not None:
        _write_json(output_dir / "robustness.json", dict(robustness))


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.write_text(
        json.dumps(payload, ensure_ascii=True, indent=2, sort_keys=True, default=str),
        encoding="utf-8",
    )
