"""Commission and slippage cost model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from futures_trading.analysis.monte_carlo import sequence_max_drawdown
from futures_trading.config import ContractSpec
from futures_trading.types import TradeRecord

COMMISSION_PER_SIDE = 0.85

SLIPPAGE_SCENARIOS: tuple[tuple[str, float], ...] = (
    ("No slippage", 0.0),
    ("Normal (1 tick)", 1.0),
    ("Worst (2 ticks)", 2.0),
    ("Extreme (3 ticks)", 3.0),
)

_BREAK_EVEN_LOW = 0.0
_BREAK_EVEN_HIGH = 20.0
_BREAK_EVEN_STEPS = 20


def round_trip_cost(
    spec: ContractSpec,
    slippage_multiplier: float = 1.0,
    commission_per_side: float = COMMISSION_PER_SIDE,
) -> float:
    """Entry plus exit cost of one contract."""
    return spec.slippage_per_fill * 2 * slippage_multiplier + commission_per_side * 2


@dataclass(frozen=True, slots=True)
class CostAdjustedResult:
    slippage_multiplier: float
    cost_per_trade: float
    total_costs: float
    gross_pnl: float
    net_pnl: float
    net_win_rate: float
    net_profit_factor: float
    net_max_drawdown: float
    net_average_win: float
    net_average_loss: float

    @property
    def still_profitable(self) -> bool:
        return self.net_pnl > 0


@dataclass(frozen=True, slots=True)
class SlippageSensitivity:
    scenarios: tuple[tuple[str, CostAdjustedResult], ...]
    break_even_multiplier: float
    break_even_cost_per_trade: float


def apply_costs(
    trades: Sequence[TradeRecord],
    spec: ContractSpec,
    slippage_multiplier: float = 1.0,
    *,
    commission_per_side: float = COMMISSION_PER_SIDE,
) -> CostAdjustedResult:
    """Deduct the modeled round-trip cost from every trade."""
    cost_per_contract = round_trip_cost(spec, slippage_multiplier, commission_per_side)
    gross = np.array([trade.pnl for trade in trades], dtype=float)
    contracts = np.array([trade.contracts for trade in trades], dtype=float)
    costs = cost_per_contract * contracts
    net = gross - costs

    wins = net[net > 0]
    losses = net[net < 0]
    gross_loss = float(-losses.sum())
    return CostAdjustedResult(
        slippage_multiplier=slippage_multiplier,
        cost_per_trade=cost_per_contract,
        total_costs=float(costs.sum()),
        gross_pnl=float(gross.sum()),
        net_pnl=float(net.sum()),
        net_win_rate=float(wins.size / net.size * 100.0) if net.size else 0.0,
        net_profit_factor=float(wins.sum()) / gross_loss if gross_loss > 0 else 0.0,
        net_max_drawdown=sequence_max_drawdown(net),
        net_average_win=float(wins.mean()) if wins.size else 0.0,
        net_average_loss=float(losses.mean()) if losses.size else 0.0,
    )


def run_slippage_scenarios(
    trades: Sequence[TradeRecord],
    spec: ContractSpec,
    *,
    commission_per_side: float = COMMISSION_PER_SIDE,
) -> SlippageSensitivity:
    """Fixed scenarios plus the multiplier at which net P&L reaches zero."""
    scenarios = tuple(
        (name, apply_costs(trades, spec, multiplier, commission_per_side=commission_per_side))
        for name, multiplier in SLIPPAGE_SCENARIOS
    )

    low, high = _BREAK_EVEN_LOW, _BREAK_EVEN_HIGH
    for _ in range(_BREAK_EVEN_STEPS):
        mid = (low + high) / 2
        adjusted = apply_costs(trades, spec, mid, commission_per_side=commission_per_side)
        if adjusted.net_pnl > 0:
            low = mid
        else:
            high = mid
    break_even = (low + high) / 2

    return SlippageSensitivity(
        scenarios=scenarios,
        break_even_multiplier=break_even,
        break_even_cost_per_trade=round_trip_cost(spec, break_even, commission_per_side),
    )
