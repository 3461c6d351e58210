"""Contract-count sizing under risk, margin and rule caps."""

from __future__ import annotations

import math
from dataclasses import dataclass

from futures_trading.config import ContractSpec, Settings
from futures_trading.risk.budget import RiskBudget
from futures_trading.types import TradeSetup


@dataclass(frozen=True, slots=True)
class SizingResult:
    """Sizer output; contracts is 0 when rejected."""

    approved: bool
    contracts: int
    risk_per_contract: float
    max_contracts_by_risk: int
    max_contracts_by_margin: int
    max_contracts_by_rules: int
    total_risk: float = 0.0
    total_reward: float = 0.0
    risk_reward_ratio: float = 0.0
    reason: str = ""


class PositionSizer:
    """Turns a setup and the current budget into a contract count.

    Pure with respect to its inputs: it reads the budget ledger but never
    mutates it.
    """

    def __init__(self, settings: Settings, budget: RiskBudget) -> None:
        self._settings = settings
        self._budget = budget

    def size(self, setup: TradeSetup, balance: float) -> SizingResult:
        spec: ContractSpec = self._settings.contract_spec(setup.instrument)
        risk_per_contract = setup.risk_per_unit * spec.multiplier
        remaining = self._budget.remaining_buffer
        budget = self._budget.available_risk_budget

        by_risk = math.floor(budget / risk_per_contract) if risk_per_contract > 0 else 0
        by_margin = math.floor(
            balance * self._settings.margin_utilization / spec.typical_margin
        )
        by_rules = self._settings.max_contracts_by_rules(self._budget.mode)
        contracts = max(0, min(by_risk, by_margin, by_rules))
        contracts = min(contracts, self._settings.max_contracts_per_trade)

        caps = {
            "risk_per_contract": risk_per_contract,
            "max_contracts_by_risk": by_risk,
            "max_contracts_by_margin": by_margin,
            "max_contracts_by_rules": by_rules,
        }

        if contracts == 0:
            return SizingResult(
                approved=False,
                contracts=0,
                reason=(
                    f"Cannot afford even 1 contract (risk ${risk_per_contract:.2f} per contract, "
                    f"budget ${budget:.2f})"
                ),
                **caps,
            )

        max_share = self._settings.max_single_contract_buffer_pct
        if remaining <= 0 or risk_per_contract / remaining > max_share:
            return SizingResult(
                approved=False,
                contracts=0,
                reason=(
                    f"Single contract risk too high: ${risk_per_contract:.2f} exceeds "
                    f"{max_share:.0%} of remaining buffer ${remaining:.2f}"
                ),
                **caps,
            )

        total_risk = risk_per_contract * contracts
        total_reward = setup.reward_per_unit * spec.multiplier * contracts
        ratio = total_reward / total_risk if total_risk > 0 else 0.0
        if ratio < self._settings.min_risk_reward:
            return SizingResult(
                approved=False,
                contracts=0,
                reason=(
                    f"Risk/Reward ratio too low: {ratio:.2f} "
                    f"(minimum {self._settings.min_risk_reward:.2f})"
                ),
                **caps,
            )

        return SizingResult(
            approved=True,
            contracts=contracts,
            total_risk=total_risk,
            total_reward=total_reward,
            risk_reward_ratio=ratio,
            reason=(
                f"Approved: {contracts} contracts, risk ${total_risk:.2f} "
                f"({total_risk / remaining:.1%} of buffer)"
            ),
            **caps,
        )
