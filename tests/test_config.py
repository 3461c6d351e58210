from __future__ import annotations

import pytest
from pydantic import ValidationError

from futures_trading.config import (
    LogFormat,
    Settings,
    UnknownInstrumentError,
    get_settings,
    reload_settings,
)
from futures_trading.types import AccountMode


def test_environment_overrides_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ACCOUNT_MODE", "funded_pre_payout")
    monkeypatch.setenv("MAX_DAILY_LOSS", "900")
    monkeypatch.setenv("LOG_FORMAT", "json")
    monkeypatch.setenv("JOURNAL_DIR", str(tmp_path / "events"))

    settings = reload_settings()
    assert settings.account_mode is AccountMode.FUNDED_PRE_PAYOUT
    assert settings.max_daily_loss == 900.0
    assert settings.log_format is LogFormat.JSON
    assert get_settings() is settings

    settings.ensure_directories()
    assert (tmp_path / "events").is_dir()


def test_mode_dependent_limits(tmp_path) -> None:
    settings = Settings(journal_dir=tmp_path)
    assert settings.max_contracts_by_rules(AccountMode.CHALLENGE) == 20
    assert settings.max_contracts_by_rules(AccountMode.FUNDED_POST_PAYOUT) == 30
    assert settings.max_idle_days(AccountMode.CHALLENGE) == 7
    assert settings.max_idle_days(AccountMode.FUNDED_PRE_PAYOUT) == 30


def test_contract_lookup(tmp_path) -> None:
    settings = Settings(journal_dir=tmp_path)
    assert settings.contract_spec("mgc").multiplier == 10.0
    assert settings.contract_spec("MES").ticks_per_point == 4.0
    with pytest.raises(UnknownInstrumentError, match="unknown_instrument"):
        settings.contract_spec("ZB")


def test_invalid_values_are_rejected(tmp_path) -> None:
    with pytest.raises(ValidationError, match="unknown_timezone"):
        Settings(journal_dir=tmp_path, venue_timezone="Mars/Olympus")
    with pytest.raises(ValidationError):
        Settings(journal_dir=tmp_path, max_contracts_per_trade=0)
