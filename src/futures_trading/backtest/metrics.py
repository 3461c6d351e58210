"""Drawdown and summary metrics for backtest results."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Iterable, Sequence

from futures_trading.types import TradeRecord

if TYPE_CHECKING:
    from futures_trading.backtest.types import BacktestResult


def max_drawdown(equity_curve: Iterable[float]) -> float:
    """Largest peak-to-current shortfall anywhere along the curve."""
    peak: float | None = None
    worst = 0.0
    for equity in equity_curve:
        if peak is None or equity > peak:
            peak = equity
        worst = max(worst, peak - equity)
    return worst


def max_drawdown_from_pnls(pnls: Iterable[float]) -> float:
    """Drawdown of cumulative P&L starting from zero equity."""
    equity = 0.0
    peak = 0.0
    worst = 0.0
    for pnl in pnls:
        equity += pnl
        if equity > peak:
            peak = equity
        worst = max(worst, peak - equity)
    return worst


def compute_summary_metrics(result: BacktestResult) -> dict[str, float | int | None]:
    """Flat metrics dict for reports and artifact files."""
    return {
        "trade_count": result.total_trades,
        "winning_trades": result.winning_trades,
        "losing_trades": result.losing_trades,
        "breakeven_trades": result.breakeven_trades,
        "total_pnl": float(result.total_pnl),
        "final_balance": float(result.final_balance),
        "win_rate_pct": float(result.win_rate),
        "average_win": float(result.average_win),
        "average_loss": float(result.average_loss),
        "profit_factor": float(result.profit_factor),
        "max_drawdown": float(result.max_drawdown),
        "largest_single_loss": float(result.largest_single_loss),
        "largest_daily_loss": float(result.largest_daily_loss),
        "max_consecutive_losses": result.max_consecutive_losses,
        "max_idle_days": result.max_idle_days,
        "trades_approved": result.trades_approved,
        "trades_rejected": result.trades_rejected,
        "pullback_trades": result.pullback_trades,
        "trend_ride_trades": result.trend_ride_trades,
    }


def trade_records_as_rows(trades: Sequence[TradeRecord]) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for trade in trades:
        row = asdict(trade)
        row["direction"] = trade.direction.value
        row["exit_reason"] = trade.exit_reason.value
        row["entry_time"] = trade.entry_time.isoformat()
        row["exit_time"] = trade.exit_time.isoformat()
        rows.append(row)
    return rows


def equity_curve_as_rows(equity_curve: Sequence[float]) -> list[dict[str, object]]:
    return [{"step": idx, "equity": equity} for idx, equity in enumerate(equity_curve)]
