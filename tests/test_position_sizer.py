from __future__ import annotations

import pytest

from conftest import long_setup

from futures_trading.config import Settings, UnknownInstrumentError
from futures_trading.risk.budget import RiskBudget
from futures_trading.risk.sizing import PositionSizer


def _sizer(settings: Settings) -> PositionSizer:
    return PositionSizer(settings, RiskBudget(settings))


def test_approves_one_contract_by_default() -> None:
    settings = Settings(journal_dir="data/journal")
    result = _sizer(settings).size(long_setup(), 25_000.0)
    assert result.approved
    assert result.contracts == 1
    assert result.risk_per_contract == 100.0
    assert result.max_contracts_by_risk == 2
    assert result.max_contracts_by_margin == 17
    assert result.max_contracts_by_rules == 20
    assert result.total_risk == 100.0
    assert result.total_reward == 200.0
    assert result.risk_reward_ratio == pytest.approx(2.0)
    assert result.reason.startswith("Approved: 1 contracts")


def test_rejects_low_reward_risk() -> None:
    settings = Settings(journal_dir="data/journal")
    result = _sizer(settings).size(long_setup(target=2_007.0), 25_000.0)
    assert not result.approved
    assert result.contracts == 0
    assert result.reason.startswith("Risk/Reward ratio too low")


def test_reward_risk_at_floor_is_accepted() -> None:
    settings = Settings(journal_dir="data/journal")
    result = _sizer(settings).size(long_setup(target=2_008.0), 25_000.0)
    assert result.approved
    assert result.risk_reward_ratio >= settings.min_risk_reward


def test_rejects_when_budget_cannot_cover_one_contract() -> None:
    settings = Settings(journal_dir="data/journal")
    result = _sizer(settings).size(long_setup(stop=1_970.0), 25_000.0)
    assert not result.approved
    assert result.max_contracts_by_risk == 0
    assert result.reason.startswith("Cannot afford even 1 contract")


def test_rejects_single_contract_above_buffer_share() -> None:
    settings = Settings(journal_dir="data/journal", max_single_contract_buffer_pct=0.05)
    result = _sizer(settings).size(long_setup(), 25_000.0)
    assert not result.approved
    assert result.reason.startswith("Single contract risk too high")


def test_never_exceeds_rule_cap() -> None:
    settings = Settings(
        journal_dir="data/journal",
        max_total_loss=5_000.0,
        max_contracts_per_trade=50,
        max_contracts_challenge=3,
    )
    result = _sizer(settings).size(long_setup(stop=1_999.0, target=2_002.0), 25_000.0)
    assert result.approved
    assert result.contracts == 3
    assert result.max_contracts_by_rules == 3
    assert result.max_contracts_by_risk > 3


def test_margin_caps_contracts() -> None:
    settings = Settings(
        journal_dir="data/journal",
        max_total_loss=5_000.0,
        max_contracts_per_trade=50,
    )
    result = _sizer(settings).size(long_setup(stop=1_999.0, target=2_002.0), 2_800.0)
    assert result.max_contracts_by_margin == 2
    assert result.contracts == 2


def test_unknown_instrument_is_fatal() -> None:
    settings = Settings(journal_dir="data/journal")
    with pytest.raises(UnknownInstrumentError):
        _sizer(settings).size(long_setup(instrument="ZZZ"), 25_000.0)
