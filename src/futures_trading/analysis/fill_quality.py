"""Fill-quality Monte Carlo: limit fill, missed fill or market fill per trade."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from futures_trading.analysis.costs import COMMISSION_PER_SIDE, round_trip_cost
from futures_trading.config import ContractSpec
from futures_trading.types import TradeRecord


@dataclass(frozen=True, slots=True)
class FillQualityResult:
    iterations: int
    average_fill_rate: float
    average_trade_count: int
    average_net_pnl: float
    average_win_rate: float
    worst_case_pnl: float
    best_case_pnl: float


def simulate_fill_quality(
    trades: Sequence[TradeRecord],
    spec: ContractSpec,
    *,
    iterations: int = 500,
    seed: int | None = 0,
    limit_fill_probability: float = 0.70,
    miss_probability: float = 0.20,
    commission_per_side: float = COMMISSION_PER_SIDE,
) -> FillQualityResult:
    """Resample execution outcomes independently of the price path.

    Limit fills pay the normal round-trip cost, misses drop the trade, and
    market fills pay one extra slippage unit on top.
    """
    if iterations <= 0:
        raise ValueError("iterations_must_be_positive")
    if limit_fill_probability + miss_probability > 1.0:
        raise ValueError("fill_probabilities_exceed_one")

    gross = np.array([trade.pnl for trade in trades], dtype=float)
    contracts = np.array([trade.contracts for trade in trades], dtype=float)
    if gross.size == 0:
        return FillQualityResult(iterations, 0.0, 0, 0.0, 0.0, 0.0, 0.0)

    cost = round_trip_cost(spec, 1.0, commission_per_side) * contracts
    extra = spec.slippage_per_fill * contracts

    rng = np.random.default_rng(seed)
    rolls = rng.random((iterations, gross.size))
    limit = rolls < limit_fill_probability
    market = rolls >= limit_fill_probability + miss_probability
    filled = limit | market

    net = np.where(limit, gross - cost, 0.0) + np.where(market, gross - cost - extra, 0.0)
    totals = net.sum(axis=1)
    counts = filled.sum(axis=1)
    wins = ((net > 0) & filled).sum(axis=1)
    win_rates = np.divide(
        wins * 100.0,
        counts,
        out=np.zeros(iterations, dtype=float),
        where=counts > 0,
    )

    return FillQualityResult(
        iterations=iterations,
        average_fill_rate=float(counts.mean() / gross.size * 100.0),
        average_trade_count=int(counts.mean()),
        average_net_pnl=float(totals.mean()),
        average_win_rate=float(win_rates.mean()),
        worst_case_pnl=float(totals.min()),
        best_case_pnl=float(totals.max()),
    )
