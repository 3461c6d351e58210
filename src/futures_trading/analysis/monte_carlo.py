"""Monte Carlo resampling of trade order to estimate drawdown risk."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np


@dataclass(frozen=True, slots=True)
class MonteCarloResult:
    iterations: int
    average_max_drawdown: float
    median_max_drawdown: float
    percentile_95: float
    percentile_99: float
    worst_max_drawdown: float
    best_max_drawdown: float
    actual_max_drawdown: float
    verdict: str


def sequence_max_drawdown(pnls: np.ndarray) -> float:
    """Peak-to-trough of cumulative P&L, equity starting at zero."""
    if pnls.size == 0:
        return 0.0
    equity = np.concatenate(([0.0], np.cumsum(pnls)))
    peaks = np.maximum.accumulate(equity)
    return float(np.max(peaks - equity))


def iter_permutations(
    pnls: Sequence[float],
    iterations: int,
    seed: int | None,
) -> Iterator[np.ndarray]:
    """Independent shuffles of the same P&L multiset."""
    values = np.asarray(pnls, dtype=float)
    rng = np.random.default_rng(seed)
    for _ in range(iterations):
        yield rng.permutation(values)


def run_monte_carlo(
    pnls: Sequence[float],
    *,
    iterations: int = 1000,
    seed: int | None = 0,
) -> MonteCarloResult:
    """Drawdown distribution over reshuffled trade sequences."""
    if iterations <= 0:
        raise ValueError("iterations_must_be_positive")

    drawdowns = np.sort(
        np.fromiter(
            (sequence_max_drawdown(perm) for perm in iter_permutations(pnls, iterations, seed)),
            dtype=float,
            count=iterations,
        )
    )
    actual = sequence_max_drawdown(np.asarray(pnls, dtype=float))
    average = float(drawdowns.mean())

    if actual < average:
        verdict = "Your backtest DD was BETTER than average - expect worse live"
    else:
        verdict = "Your backtest DD was WORSE than average - typical or unlucky sequence"

    return MonteCarloResult(
        iterations=iterations,
        average_max_drawdown=average,
        median_max_drawdown=float(drawdowns[iterations // 2]),
        percentile_95=float(drawdowns[min(int(iterations * 0.95), iterations - 1)]),
        percentile_99=float(drawdowns[min(int(iterations * 0.99), iterations - 1)]),
        worst_max_drawdown=float(drawdowns[-1]),
        best_max_drawdown=float(drawdowns[0]),
        actual_max_drawdown=actual,
        verdict=verdict,
    )
