"""Offline robustness analyses over a backtest trade ledger."""

from futures_trading.analysis.challenge import ChallengeSimulation, simulate_challenges
from futures_trading.analysis.costs import (
    CostAdjustedResult,
    SlippageSensitivity,
    apply_costs,
    round_trip_cost,
    run_slippage_scenarios,
)
from futures_trading.analysis.fill_quality import FillQualityResult, simulate_fill_quality
from futures_trading.analysis.monte_carlo import MonteCarloResult, run_monte_carlo
from futures_trading.analysis.report import RobustnessReport, analyze_backtest
from futures_trading.analysis.worst_case import WorstCaseReport, analyze_worst_case

__all__ = [
    "ChallengeSimulation",
    "CostAdjustedResult",
    "FillQualityResult",
    "MonteCarloResult",
    "RobustnessReport",
    "SlippageSensitivity",
    "WorstCaseReport",
    "analyze_backtest",
    "analyze_worst_case",
    "apply_costs",
    "round_trip_cost",
    "run_monte_carlo",
    "run_slippage_scenarios",
    "simulate_challenges",
    "simulate_fill_quality",
]
