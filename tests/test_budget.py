from __future__ import annotations

import pytest

from futures_trading.config import Settings
from futures_trading.risk.budget import RiskBudget, risk_multiplier
from futures_trading.types import AccountMode


def test_remaining_buffer_never_negative() -> None:
    budget = RiskBudget(Settings(journal_dir="data/journal"))
    budget.update_balance(23_500.0)
    assert budget.remaining_buffer == 0.0
    assert budget.buffer_remaining_ratio == 0.0
    assert budget.buffer_used_pct == 100.0
    assert budget.available_risk_budget == 0.0


def test_balance_above_start_grows_buffer() -> None:
    budget = RiskBudget(Settings(journal_dir="data/journal"))
    budget.update_balance(26_000.0)
    assert budget.remaining_buffer == 2_000.0
    assert budget.risk_multiplier == 0.25


def test_buffer_used_pct_and_affordable_losses() -> None:
    budget = RiskBudget(Settings(journal_dir="data/journal"))
    budget.update_balance(24_600.0)
    assert budget.remaining_buffer == 600.0
    assert budget.buffer_used_pct == pytest.approx(40.0)
    assert budget.affordable_loss_count(150.0) == 4
    assert budget.affordable_loss_count(0.0) == 0


def test_challenge_tiers() -> None:
    mode = AccountMode.CHALLENGE
    assert risk_multiplier(1.0, mode) == 0.25
    assert risk_multiplier(0.71, mode) == 0.25
    assert risk_multiplier(0.70, mode) == 0.15
    assert risk_multiplier(0.41, mode) == 0.15
    assert risk_multiplier(0.40, mode) == 0.08
    assert risk_multiplier(0.20, mode) == 0.03
    assert risk_multiplier(0.0, mode) == 0.03


def test_funded_tiers() -> None:
    assert risk_multiplier(0.8, AccountMode.FUNDED_PRE_PAYOUT) == 0.10
    assert risk_multiplier(0.6, AccountMode.FUNDED_PRE_PAYOUT) == 0.08
    assert risk_multiplier(0.4, AccountMode.FUNDED_PRE_PAYOUT) == 0.05
    assert risk_multiplier(0.1, AccountMode.FUNDED_PRE_PAYOUT) == 0.05
    assert risk_multiplier(0.51, AccountMode.FUNDED_POST_PAYOUT) == 0.05
    assert risk_multiplier(0.4, AccountMode.FUNDED_POST_PAYOUT) == 0.03
    assert risk_multiplier(0.2, AccountMode.FUNDED_POST_PAYOUT) == 0.02
    assert risk_multiplier(0.05, AccountMode.FUNDED_POST_PAYOUT) == 0.02


def test_post_payout_cap_follows_balance() -> None:
    settings = Settings(
        journal_dir="data/journal",
        account_mode=AccountMode.FUNDED_POST_PAYOUT,
        hard_cap=24_000.0,
    )
    budget = RiskBudget(settings)
    assert budget.max_total_loss == 1_000.0
    assert budget.remaining_buffer == 1_000.0
    status = budget.status()
    assert status.account_mode is AccountMode.FUNDED_POST_PAYOUT
    assert status.risk_multiplier == 0.05
