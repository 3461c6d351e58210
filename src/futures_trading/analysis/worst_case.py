"""Worst-case streak, day and week detection over a trade ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Sequence

import pandas as pd  # type: ignore[import-untyped]

from futures_trading.types import TradeRecord
from futures_trading.utils.timeutil import DEFAULT_VENUE_TZ, venue_date


@dataclass(frozen=True, slots=True)
class LosingStreak:
    count: int
    total_loss: float
    start: datetime
    end: datetime


@dataclass(frozen=True, slots=True)
class WorstCaseReport:
    top_losing_streaks: tuple[LosingStreak, ...] = ()
    worst_day: date | None = None
    worst_day_pnl: float = 0.0
    best_day: date | None = None
    best_day_pnl: float = 0.0
    worst_week_label: str | None = None
    worst_week_pnl: float = 0.0


def find_losing_streaks(trades: Sequence[TradeRecord]) -> list[LosingStreak]:
    """Maximal runs of consecutive losing trades, in chronological order."""
    ordered = sorted(trades, key=lambda t: t.entry_time)
    streaks: list[LosingStreak] = []
    run: list[TradeRecord] = []
    for trade in ordered + [None]:  # type: ignore[list-item]
        if trade is not None and trade.pnl < 0:
            run.append(trade)
            continue
        if run:
            streaks.append(
                LosingStreak(
                    count=len(run),
                    total_loss=abs(sum(t.pnl for t in run)),
                    start=run[0].entry_time,
                    end=run[-1].exit_time,
                )
            )
            run = []
    return streaks


def analyze_worst_case(
    trades: Sequence[TradeRecord],
    *,
    top: int = 3,
    tz: tzinfo = DEFAULT_VENUE_TZ,
) -> WorstCaseReport:
    if not trades:
        return WorstCaseReport()

    streaks = sorted(find_losing_streaks(trades), key=lambda s: s.total_loss, reverse=True)

    # Grouped by the venue-local calendar date of each entry.
    entry_dates = [venue_date(trade.entry_time, tz) for trade in trades]
    frame = pd.DataFrame(
        {
            "entry_date": entry_dates,
            "week": [_iso_week_label(day) for day in entry_dates],
            "pnl": [trade.pnl for trade in trades],
        }
    )
    daily = frame.groupby("entry_date")["pnl"].sum()
    weekly = frame.groupby("week")["pnl"].sum()

    worst_day = daily.idxmin()
    best_day = daily.idxmax()
    worst_week = weekly.idxmin()
    return WorstCaseReport(
        top_losing_streaks=tuple(streaks[:top]),
        worst_day=worst_day,
        worst_day_pnl=float(daily[worst_day]),
        best_day=best_day,
        best_day_pnl=float(daily[best_day]),
        worst_week_label=str(worst_week),
        worst_week_pnl=float(weekly[worst_week]),
    )


def _iso_week_label(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"
