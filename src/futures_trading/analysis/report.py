"""Combined robustness report over one backtest result."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from futures_trading.analysis.challenge import ChallengeSimulation, simulate_challenges
from futures_trading.analysis.costs import SlippageSensitivity, run_slippage_scenarios
from futures_trading.analysis.fill_quality import FillQualityResult, simulate_fill_quality
from futures_trading.analysis.monte_carlo import MonteCarloResult, run_monte_carlo
from futures_trading.analysis.worst_case import WorstCaseReport, analyze_worst_case
from futures_trading.backtest.types import BacktestResult
from futures_trading.config import ContractSpec
from futures_trading.utils.logging import get_logger

_logger = get_logger("futures_trading.analysis.report")


@dataclass(frozen=True, slots=True)
class RobustnessReport:
    instrument: str
    trade_count: int
    monte_carlo: MonteCarloResult
    slippage: SlippageSensitivity
    worst_case: WorstCaseReport
    fill_quality: FillQualityResult
    challenges: ChallengeSimulation

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["challenges"]["passed"] = self.challenges.passed
        payload["challenges"]["breached"] = self.challenges.breached
        payload["challenges"]["pass_rate_pct"] = self.challenges.pass_rate
        return payload


def analyze_backtest(
    result: BacktestResult,
    spec: ContractSpec,
    *,
    seed: int | None = 0,
    mc_iterations: int = 1000,
    fill_iterations: int = 500,
) -> RobustnessReport:
    """Run every offline analysis on the trade ledger of ``result``.

    With a fixed seed the report is reproducible.
    """
    pnls = [trade.pnl for trade in result.trades]
    report = RobustnessReport(
        instrument=result.instrument,
        trade_count=len(result.trades),
        monte_carlo=run_monte_carlo(pnls, iterations=mc_iterations, seed=seed),
        slippage=run_slippage_scenarios(result.trades, spec),
        worst_case=analyze_worst_case(result.trades, tz=result.venue_tz),
        fill_quality=simulate_fill_quality(
            result.trades,
            spec,
            iterations=fill_iterations,
            seed=seed,
        ),
        challenges=simulate_challenges(result.trades, spec, tz=result.venue_tz),
    )
    _logger.info(
        "robustness_analysis_complete",
        instrument=result.instrument,
        trades=report.trade_count,
        mc_p95_drawdown=round(report.monte_carlo.percentile_95, 2),
        break_even_multiplier=round(report.slippage.break_even_multiplier, 3),
        challenges_passed=report.challenges.passed,
    )
    return report
