"""Total-loss budget ledger."""

from __future__ import annotations

import math

from futures_trading.config import Settings
from futures_trading.types import AccountMode, BudgetStatus

# (remaining-buffer ratio threshold, share of buffer risked), best tier first.
# Below the last threshold the last multiplier applies.
_RISK_TIERS: dict[AccountMode, tuple[tuple[float, float], ...]] = {
    AccountMode.CHALLENGE: ((0.70, 0.25), (0.40, 0.15), (0.20, 0.08), (0.0, 0.03)),
    AccountMode.FUNDED_PRE_PAYOUT: ((0.70, 0.10), (0.50, 0.08), (0.30, 0.05), (0.0, 0.05)),
    AccountMode.FUNDED_POST_PAYOUT: ((0.50, 0.05), (0.30, 0.03), (0.10, 0.02), (0.0, 0.02)),
}


def risk_multiplier(buffer_remaining_ratio: float, mode: AccountMode) -> float:
    """Share of the remaining buffer that one trade may risk."""
    tiers = _RISK_TIERS[mode]
    for threshold, multiplier in tiers[:-1]:
        if buffer_remaining_ratio > threshold:
            return multiplier
    return tiers[-1][1]


class RiskBudget:
    """Tracks balance against the account's maximum total loss."""

    def __init__(self, settings: Settings, *, starting_balance: float | None = None) -> None:
        self._mode = settings.account_mode
        self._fixed_cap = settings.max_total_loss
        self._hard_cap = settings.hard_cap
        self._starting_balance = (
            settings.starting_balance if starting_balance is None else starting_balance
        )
        self._current_balance = self._starting_balance

    @property
    def mode(self) -> AccountMode:
        return self._mode

    @property
    def starting_balance(self) -> float:
        return self._starting_balance

    @property
    def current_balance(self) -> float:
        return self._current_balance

    def update_balance(self, balance: float) -> None:
        self._current_balance = balance

    @property
    def max_total_loss(self) -> float:
        if self._mode is AccountMode.FUNDED_POST_PAYOUT:
            return self._current_balance - self._hard_cap
        return self._fixed_cap

    @property
    def remaining_buffer(self) -> float:
        drawdown = self._starting_balance - self._current_balance
        return max(0.0, self.max_total_loss - drawdown)

    @property
    def buffer_remaining_ratio(self) -> float:
        max_loss = self.max_total_loss
        if max_loss <= 0:
            return 0.0
        return self.remaining_buffer / max_loss

    @property
    def buffer_used_pct(self) -> float:
        max_loss = self.max_total_loss
        if max_loss <= 0:
            return 100.0
        return (max_loss - self.remaining_buffer) / max_loss * 100.0

    @property
    def risk_multiplier(self) -> float:
        return risk_multiplier(self.buffer_remaining_ratio, self._mode)

    @property
    def available_risk_budget(self) -> float:
        return self.remaining_buffer * self.risk_multiplier

    def affordable_loss_count(self, average_loss: float) -> int:
        """How many average-sized losses fit in the remaining buffer."""
        if average_loss <= 0:
            return 0
        return math.floor(self.remaining_buffer / average_loss)

    def status(self) -> BudgetStatus:
        return BudgetStatus(
            account_mode=self._mode,
            starting_balance=self._starting_balance,
            current_balance=self._current_balance,
            max_total_loss=self.max_total_loss,
            remaining_buffer=self.remaining_buffer,
            buffer_used_pct=self.buffer_used_pct,
            risk_multiplier=self.risk_multiplier,
        )
