"""Risk gate: the one place every entry must pass before an order is sent."""

from __future__ import annotations

import math
from datetime import datetime

from futures_trading.config import Settings
from futures_trading.risk.breakers import MasterCircuitBreaker
from futures_trading.risk.budget import RiskBudget
from futures_trading.risk.sizing import PositionSizer, SizingResult
from futures_trading.types import DecisionDetails, GateStatus, TradeDecision, TradeSetup
from futures_trading.utils.logging import get_logger, log_trade_decision


class RiskGate:
    """Composes the budget ledger, sizer and circuit breakers.

    Check order is fixed: breakers, sizing, setup validation, daily-loss cap,
    consistency forward check. Only the daily-loss cap may shrink a trade;
    every other check approves or rejects outright.
    """

    def __init__(self, settings: Settings, *, starting_balance: float | None = None) -> None:
        self._settings = settings
        self.budget = RiskBudget(settings, starting_balance=starting_balance)
        self.breakers = MasterCircuitBreaker(settings)
        self.sizer = PositionSizer(settings, self.budget)
        self._logger = get_logger("futures_trading.risk.gate")

    def evaluate(self, setup: TradeSetup, now: datetime, current_balance: float) -> TradeDecision:
        self.budget.update_balance(current_balance)

        check = self.breakers.can_trade(now)
        if not check.can_trade:
            return self._finish(
                setup,
                TradeDecision(
                    approved=False,
                    reasons=("Trade blocked by circuit breakers",),
                    warnings=check.warnings,
                    blocked_by=check.blocked_by,
                    details=self._details(now),
                ),
            )

        sizing = self.sizer.size(setup, current_balance)
        if not sizing.approved:
            return self._finish(
                setup,
                self._rejected(sizing, sizing.reason, check.warnings, now),
            )

        if not setup.is_valid():
            return self._finish(
                setup,
                self._rejected(
                    sizing,
                    "Trade setup is invalid (check entry/stop/target levels)",
                    check.warnings,
                    now,
                ),
            )

        reasons: list[str] = []
        contracts = sizing.contracts
        total_risk = sizing.total_risk
        total_reward = sizing.total_reward
        rpc = sizing.risk_per_contract

        # Margin/rule caps and the RRR floor are not re-checked after this cap.
        remaining_daily = self.breakers.daily_loss.remaining_daily_buffer(now)
        if total_risk > remaining_daily:
            max_by_daily = math.floor(remaining_daily / rpc) if rpc > 0 else 0
            if max_by_daily <= 0:
                return self._finish(
                    setup,
                    self._rejected(
                        sizing,
                        (
                            f"Would breach daily loss limit: ${rpc:.2f} risk per contract, "
                            f"${remaining_daily:.2f} remaining today"
                        ),
                        check.warnings,
                        now,
                    ),
                )
            scale = max_by_daily / contracts
            contracts = max_by_daily
            total_risk = rpc * contracts
            total_reward *= scale
            reasons.append(f"Contracts reduced to {contracts} to fit remaining daily loss buffer")

        if self.breakers.consistency.would_violate(total_reward, now):
            return self._finish(
                setup,
                self._rejected(
                    sizing,
                    f"Would violate {self._settings.consistency_limit_pct:.0f}% consistency rule "
                    "if trade wins",
                    check.warnings,
                    now,
                ),
            )

        ratio = total_reward / total_risk if total_risk > 0 else 0.0
        reasons.insert(0, f"Trade approved: {contracts} contracts")
        reasons.append(f"Risk: ${total_risk:.2f}, Reward: ${total_reward:.2f}, RRR: {ratio:.2f}")
        return self._finish(
            setup,
            TradeDecision(
                approved=True,
                contracts=contracts,
                risk_per_contract=rpc,
                total_risk=total_risk,
                total_reward=total_reward,
                risk_reward_ratio=ratio,
                reasons=tuple(reasons),
                warnings=check.warnings,
                details=self._details(now, sizing),
            ),
        )

    def record_trade_result(self, pnl: float, now: datetime) -> None:
        """Feed one realized outcome to the breakers and the ledger."""
        self.breakers.record_trade_result(pnl, now)
        self.budget.update_balance(self.budget.current_balance + pnl)

    def status(self, now: datetime) -> GateStatus:
        check = self.breakers.can_trade(now)
        return GateStatus(
            budget=self.budget.status(),
            breakers=self.breakers.status(now),
            can_trade_now=check.can_trade,
            blocked_by=check.blocked_by,
            warnings=check.warnings,
        )

    def _rejected(
        self,
        sizing: SizingResult,
        reason: str,
        warnings: tuple[str, ...],
        now: datetime,
    ) -> TradeDecision:
        return TradeDecision(
            approved=False,
            risk_per_contract=sizing.risk_per_contract,
            total_risk=sizing.total_risk,
            total_reward=sizing.total_reward,
            risk_reward_ratio=sizing.risk_reward_ratio,
            reasons=(reason,),
            warnings=warnings,
            details=self._details(now, sizing),
        )

    def _details(self, now: datetime, sizing: SizingResult | None = None) -> DecisionDetails:
        return DecisionDetails(
            account_mode=self.budget.mode,
            current_balance=self.budget.current_balance,
            remaining_buffer=self.budget.remaining_buffer,
            buffer_used_pct=self.budget.buffer_used_pct,
            remaining_daily_buffer=self.breakers.daily_loss.remaining_daily_buffer(now),
            max_contracts_by_risk=sizing.max_contracts_by_risk if sizing else 0,
            max_contracts_by_margin=sizing.max_contracts_by_margin if sizing else 0,
            max_contracts_by_rules=sizing.max_contracts_by_rules if sizing else 0,
        )

    def _finish(self, setup: TradeSetup, decision: TradeDecision) -> TradeDecision:
        log_trade_decision(
            self._logger,
            instrument=setup.instrument,
            direction=setup.direction.value,
            approved=decision.approved,
            contracts=decision.contracts,
            reasons=decision.reasons,
            blocked_by=list(decision.blocked_by),
            warnings=list(decision.warnings),
        )
        return decision
