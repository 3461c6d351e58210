"""Back-to-back challenge attempts replayed over a net-of-cost ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Literal, Sequence

from futures_trading.analysis.costs import round_trip_cost
from futures_trading.config import ContractSpec
from futures_trading.types import TradeRecord
from futures_trading.utils.timeutil import DEFAULT_VENUE_TZ, venue_date

ChallengeOutcome = Literal["PASSED", "BREACH", "INCOMPLETE"]


@dataclass(frozen=True, slots=True)
class ChallengeAttempt:
    number: int
    outcome: ChallengeOutcome
    trades: int
    peak_pnl: float
    final_pnl: float
    days: int
    detail: str


@dataclass(frozen=True, slots=True)
class ChallengeSimulation:
    attempts: tuple[ChallengeAttempt, ...]

    @property
    def passed(self) -> int:
        return sum(1 for attempt in self.attempts if attempt.outcome == "PASSED")

    @property
    def breached(self) -> int:
        return sum(1 for attempt in self.attempts if attempt.outcome == "BREACH")

    @property
    def pass_rate(self) -> float:
        finished = self.passed + self.breached
        return self.passed / finished * 100.0 if finished else 0.0


def simulate_challenges(
    trades: Sequence[TradeRecord],
    spec: ContractSpec,
    *,
    profit_target: float = 1_250.0,
    max_drawdown: float = 1_000.0,
    daily_loss_limit: float = 1_250.0,
    tz: tzinfo = DEFAULT_VENUE_TZ,
) -> ChallengeSimulation:
    """Start a fresh challenge after every pass or breach until trades run out."""
    ordered = sorted(trades, key=lambda t: t.entry_time)
    cost = round_trip_cost(spec)
    attempts: list[ChallengeAttempt] = []
    idx = 0

    while idx < len(ordered):
        start = ordered[idx].entry_time
        pnl = 0.0
        peak = 0.0
        drawdown = 0.0
        count = 0
        daily: dict[date, float] = {}
        outcome: ChallengeOutcome = "INCOMPLETE"
        detail = ""

        while idx < len(ordered):
            trade = ordered[idx]
            net = trade.pnl - cost * trade.contracts
            pnl += net
            count += 1
            day = venue_date(trade.entry_time, tz)
            daily[day] = daily.get(day, 0.0) + net
            peak = max(peak, pnl)
            drawdown = max(drawdown, peak - pnl)
            idx += 1

            if daily[day] < -daily_loss_limit:
                outcome = "BREACH"
                detail = f"Daily loss ${abs(daily[day]):.2f} > ${daily_loss_limit:.0f} on {day}"
                break
            if drawdown >= max_drawdown:
                outcome = "BREACH"
                detail = f"Max DD ${drawdown:.2f} >= ${max_drawdown:.0f} (peak +${peak:.2f})"
                break
            if pnl >= profit_target:
                outcome = "PASSED"
                detail = f"Target hit in {(trade.exit_time - start).days} days"
                break

        if outcome == "INCOMPLETE":
            detail = f"Ran out of data at ${pnl:+.2f}"

        attempts.append(
            ChallengeAttempt(
                number=len(attempts) + 1,
                outcome=outcome,
                trades=count,
                peak_pnl=peak,
                final_pnl=pnl,
                days=(ordered[idx - 1].exit_time - start).days,
                detail=detail,
            )
        )

    return ChallengeSimulation(attempts=tuple(attempts))
