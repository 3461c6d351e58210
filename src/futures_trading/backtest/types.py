"""Shared types for backtest workflow."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, tzinfo

from futures_trading.backtest.metrics import max_drawdown
from futures_trading.types import PULLBACK, TREND_RIDE, TradeRecord
from futures_trading.utils.timeutil import DEFAULT_VENUE_TZ, venue_date


@dataclass(slots=True)
class BacktestConfig:
    """Runtime parameters for one replay."""

    instrument: str = "MGC"
    starting_balance: float | None = None
    regime: str = "BACKTEST"
    confidence: float = 85.0
    reason_key_length: int = 60


@dataclass(slots=True)
class BacktestResult:
    """Trade ledger and equity curve of one replay.

    Every metric is derived from ``trades`` or ``equity_curve`` on access.
    """

    instrument: str
    starting_balance: float
    trades: list[TradeRecord] = field(default_factory=list)
    equity_curve: list[float] = field(default_factory=list)
    trades_approved: int = 0
    trades_rejected: int = 0
    rejection_reasons: dict[str, int] = field(default_factory=dict)
    max_idle_days: int = 0
    venue_tz: tzinfo = DEFAULT_VENUE_TZ

    @property
    def total_trades(self) -> int:
        return len(self.trades)

    @property
    def winning_trades(self) -> int:
        return sum(1 for trade in self.trades if trade.pnl > 0)

    @property
    def losing_trades(self) -> int:
        return sum(1 for trade in self.trades if trade.pnl < 0)

    @property
    def breakeven_trades(self) -> int:
        return sum(1 for trade in self.trades if trade.pnl == 0)

    @property
    def total_pnl(self) -> float:
        return sum(trade.pnl for trade in self.trades)

    @property
    def final_balance(self) -> float:
        return self.equity_curve[-1] if self.equity_curve else self.starting_balance

    @property
    def win_rate(self) -> float:
        if not self.trades:
            return 0.0
        return self.winning_trades / self.total_trades * 100.0

    @property
    def average_win(self) -> float:
        wins = [trade.pnl for trade in self.trades if trade.pnl > 0]
        return sum(wins) / len(wins) if wins else 0.0

    @property
    def average_loss(self) -> float:
        losses = [trade.pnl for trade in self.trades if trade.pnl < 0]
        return sum(losses) / len(losses) if losses else 0.0

    @property
    def profit_factor(self) -> float:
        """Gross profit over gross loss; 0 when there are no losses."""
        gross_loss = -sum(trade.pnl for trade in self.trades if trade.pnl < 0)
        if gross_loss <= 0:
            return 0.0
        return sum(trade.pnl for trade in self.trades if trade.pnl > 0) / gross_loss

    @property
    def max_drawdown(self) -> float:
        return max_drawdown(self.equity_curve)

    @property
    def largest_single_loss(self) -> float:
        losses = [trade.pnl for trade in self.trades if trade.pnl < 0]
        return abs(min(losses)) if losses else 0.0

    @property
    def largest_daily_loss(self) -> float:
        """Worst negative venue-local day by entry date, as a positive amount."""
        daily: dict[date, float] = {}
        for trade in self.trades:
            day = venue_date(trade.entry_time, self.venue_tz)
            daily[day] = daily.get(day, 0.0) + trade.pnl
        negatives = [pnl for pnl in daily.values() if pnl < 0]
        return abs(min(negatives)) if negatives else 0.0

    @property
    def max_consecutive_losses(self) -> int:
        streak = 0
        longest = 0
        for trade in sorted(self.trades, key=lambda t: t.entry_time):
            if trade.pnl < 0:
                streak += 1
                longest = max(longest, streak)
            else:
                streak = 0
        return longest

    @property
    def setup_type_counts(self) -> dict[str, int]:
        return dict(Counter(trade.setup_type for trade in self.trades))

    @property
    def pullback_trades(self) -> int:
        return sum(1 for trade in self.trades if PULLBACK in trade.setup_type)

    @property
    def trend_ride_trades(self) -> int:
        return sum(1 for trade in self.trades if TREND_RIDE in trade.setup_type)

    def days_to_target(self, target: float) -> int | None:
        """Calendar days from the first entry until cumulative P&L reaches target."""
        cumulative = 0.0
        first_entry = None
        for trade in sorted(self.trades, key=lambda t: t.entry_time):
            if first_entry is None:
                first_entry = trade.entry_time
            cumulative += trade.pnl
            if cumulative >= target:
                return (trade.exit_time - first_entry).days
        return None
