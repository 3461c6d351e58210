"""Configuration loading from environment variables and the .env file."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from futures_trading.types import AccountMode
from futures_trading.utils.timeutil import DEFAULT_VENUE_TIMEZONE


class LogFormat(str, Enum):
    """Log output format."""

    JSON = "json"
    CONSOLE = "console"


class ConfigurationError(Exception):
    """Base configuration error; always fatal."""


class UnknownInstrumentError(ConfigurationError):
    """Raised when an instrument has no contract specification."""


class ContractSpec(BaseModel):
    """Static contract specification of one futures instrument."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    multiplier: float = Field(gt=0, description="Currency per 1.0 price move per contract")
    tick_size: float = Field(gt=0)
    tick_value: float = Field(gt=0)
    typical_margin: float = Field(gt=0, description="Initial margin per contract")
    slippage_per_fill: float = Field(
        default=0.0,
        ge=0,
        description="Modeled slippage cost per fill, in currency",
    )

    @property
    def ticks_per_point(self) -> float:
        return 1.0 / self.tick_size


def default_contracts() -> dict[str, ContractSpec]:
    """Micro gold and micro S&P specifications."""
    return {
        "MGC": ContractSpec(
            symbol="MGC",
            multiplier=10.0,
            tick_size=0.10,
            tick_value=1.00,
            typical_margin=700.0,
            slippage_per_fill=10.0,
        ),
        "MES": ContractSpec(
            symbol="MES",
            multiplier=5.0,
            tick_size=0.25,
            tick_value=1.25,
            typical_margin=1100.0,
            slippage_per_fill=1.25,
        ),
    }


class Settings(BaseSettings):
    """System settings.

    Loaded from environment variables and the .env file. Components receive an
    instance explicitly; nothing reads process-wide state.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== Account ====================
    account_mode: AccountMode = Field(
        default=AccountMode.CHALLENGE,
        description="challenge, funded_pre_payout or funded_post_payout",
    )
    starting_balance: float = Field(default=25_000.0, gt=0, description="Account size")
    max_total_loss: float = Field(
        default=1_000.0,
        gt=0,
        description="Fixed total-loss cap for challenge and pre-payout accounts",
    )
    hard_cap: float = Field(
        default=0.0,
        ge=0,
        description="Balance floor for post-payout accounts",
    )

    # ==================== Sizing ====================
    margin_utilization: float = Field(
        default=0.5,
        gt=0,
        le=1.0,
        description="Share of balance allowed as initial margin",
    )
    max_contracts_per_trade: int = Field(default=1, ge=1, le=50, description="Hard per-trade cap")
    max_contracts_challenge: int = Field(default=20, ge=1, description="Rule cap in challenge")
    max_contracts_funded: int = Field(default=30, ge=1, description="Rule cap when funded")
    min_risk_reward: float = Field(default=0.8, ge=0.0, le=10.0, description="RRR floor")
    max_single_contract_buffer_pct: float = Field(
        default=0.40,
        gt=0,
        le=1.0,
        description="Max share of remaining buffer one contract may risk",
    )

    # ==================== Circuit breakers ====================
    max_daily_loss: float = Field(default=1_250.0, gt=0, description="Daily loss limit")
    consistency_limit_pct: float = Field(default=40.0, gt=0, le=100.0)
    consistency_min_total_profit: float = Field(
        default=500.0,
        ge=0,
        description="Consistency rule applies only above this total profit",
    )
    consistency_warning_pct: float = Field(default=35.0, gt=0, le=100.0)
    max_idle_days_challenge: int = Field(default=7, ge=1)
    max_idle_days_funded: int = Field(default=30, ge=1)
    cooldown_consecutive_losses: int = Field(default=2, ge=1, le=10)
    cooldown_hours: float = Field(default=2.0, gt=0, le=24.0)
    venue_timezone: str = Field(default=DEFAULT_VENUE_TIMEZONE, description="Venue local time")

    # ==================== Exit management ====================
    breakeven_atr: float = Field(default=1.0, gt=0, le=10.0)
    trend_ride_trail_atr: float = Field(default=1.5, gt=0, le=10.0)

    # ==================== Live loop ====================
    poll_interval_sec: float = Field(default=90.0, gt=0)
    reconcile_interval_sec: float = Field(default=60.0, gt=0)
    venue_timeout_sec: float = Field(default=30.0, gt=0)
    venue_retry_attempts: int = Field(default=3, ge=1, le=10)
    venue_retry_min_wait_sec: float = Field(default=1.0, ge=0)
    venue_retry_max_wait_sec: float = Field(default=8.0, ge=0)
    warmup_retry_sec: float = Field(default=300.0, gt=0)
    shutdown_grace_sec: float = Field(default=3.0, gt=0)
    min_warmup_bars: int = Field(default=50, ge=1)
    max_bars_kept: int = Field(default=2_000, ge=50)
    signal_confidence: float = Field(default=85.0, ge=0, le=100.0)
    signal_regime: str = Field(
        default="LIVE",
        description="Regime label passed to the signal generator",
    )

    # ==================== Instruments ====================
    contracts: dict[str, ContractSpec] = Field(default_factory=default_contracts)

    # ==================== Logging ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: LogFormat = Field(default=LogFormat.CONSOLE)

    # ==================== Storage ====================
    journal_dir: Path = Field(default=Path("data/journal"), description="Event log directory")

    @field_validator("journal_dir", mode="before")
    @classmethod
    def parse_journal_dir(cls, v: str | Path) -> Path:
        return Path(v) if isinstance(v, str) else v

    @field_validator("venue_timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"unknown_timezone: {v}") from exc
        return v

    def ensure_directories(self) -> None:
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    @property
    def venue_tz(self) -> ZoneInfo:
        return ZoneInfo(self.venue_timezone)

    def contract_spec(self, symbol: str) -> ContractSpec:
        """Contract spec for a symbol; unknown symbols are a fatal error."""
        spec = self.contracts.get(symbol.upper())
        if spec is None:
            raise UnknownInstrumentError(f"unknown_instrument: {symbol}")
        return spec

    def max_contracts_by_rules(self, mode: AccountMode) -> int:
        if mode is AccountMode.CHALLENGE:
            return self.max_contracts_challenge
        return self.max_contracts_funded

    def max_idle_days(self, mode: AccountMode) -> int:
        if mode is AccountMode.CHALLENGE:
            return self.max_idle_days_challenge
        return self.max_idle_days_funded


_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazily created settings for entry points."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
