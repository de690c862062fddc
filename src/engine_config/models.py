"""Pydantic models for engine configuration with validation."""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator


class ClassificationConfig(BaseModel):
    """Input boundary settings for raw broker records."""

    known_currencies: List[str] = Field(
        default_factory=lambda: ["RUB", "USD", "EUR", "CNY", "GBP", "HKD", "CHF", "JPY", "KZT", "TRY"],
        description="ISO currency codes accepted on raw positions"
    )

    @field_validator("known_currencies")
    @classmethod
    def normalize_currencies(cls, v: List[str]) -> List[str]:
        """Upper-case codes and reject anything that is not three letters."""
        normalized = []
        for code in v:
            code = code.strip().upper()
            if len(code) != 3 or not code.isalpha():
                raise ValueError(f"Invalid currency code '{code}'. Must be a 3-letter ISO code")
            normalized.append(code)
        return normalized


class DeviationConfig(BaseModel):
    """Target allocation comparison settings."""

    target_sum_tolerance_percent: float = Field(
        default=0.5,
        ge=0.0,
        le=5.0,
        description="Allowed distance of the target weight sum from 100"
    )
    on_target_threshold_percent: float = Field(
        default=2.0,
        ge=0.0,
        le=25.0,
        description="Deviations within this many percentage points count as on target"
    )
    high_priority_threshold_percent: float = Field(
        default=5.0,
        ge=0.0,
        le=50.0,
        description="Deviations above this many percentage points are priority 1"
    )


class RebalancingConfig(BaseModel):
    """Default trade generation options."""

    strategy: Literal["threshold", "strategic", "tax_aware"] = Field(
        default="strategic",
        description="threshold=only when a bucket drifts past threshold_percent, "
                    "strategic=always close deviations, tax_aware=defer taxed short-term gains"
    )
    threshold_percent: float = Field(
        default=5.0,
        ge=0.1,
        le=50.0,
        description="Drift that triggers a threshold rebalance"
    )
    min_trade_size: float = Field(
        default=1000.0,
        ge=0.0,
        description="Orders below this value are dropped as uneconomical"
    )
    max_cost: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Cumulative transaction cost budget, unlimited when unset"
    )
    fractional_shares: bool = Field(
        default=False,
        description="Allow fractional order quantities instead of whole units"
    )


class CostModelConfig(BaseModel):
    """Transaction cost model."""

    flat_fee: float = Field(
        default=0.0,
        ge=0.0,
        description="Fixed fee charged per order"
    )
    commission_rate: float = Field(
        default=0.0003,
        ge=0.0,
        le=0.05,
        description="Commission rate as decimal (e.g., 0.0003 for 0.03%)"
    )
    min_commission: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum commission per order"
    )
    spread_rate: float = Field(
        default=0.001,
        ge=0.0,
        le=0.05,
        description="Estimated bid-ask spread cost as decimal of order value"
    )
    market_impact_threshold: float = Field(
        default=1_000_000.0,
        ge=0.0,
        description="Orders above this value incur market impact"
    )
    market_impact_rate: float = Field(
        default=0.0005,
        ge=0.0,
        le=0.05,
        description="Market impact as decimal of order value for large orders"
    )


class TaxConfig(BaseModel):
    """Capital gains tax rate table."""

    short_term_rate: float = Field(
        default=0.13,
        ge=0.0,
        le=1.0,
        description="Tax rate on gains held less than long_term_holding_days"
    )
    long_term_rate: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Tax rate on gains held at least long_term_holding_days"
    )
    long_term_holding_days: int = Field(
        default=365 * 3,
        ge=1,
        le=3650,
        description="Holding period that qualifies for the long-term rate"
    )
    wash_sale_window_days: int = Field(
        default=30,
        ge=0,
        le=365,
        description="Repurchase window that puts a harvested loss at risk"
    )


class PatternDetectionConfig(BaseModel):
    """Thresholds for trading pattern detectors."""

    panic_sell_loss_percent: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Loss beyond this percent is a panic sell regardless of holding period"
    )
    panic_sell_drop_percent: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Loss beyond this percent is a panic sell inside the quick-sell window"
    )
    quick_sell_window_days: float = Field(
        default=7.0,
        ge=0.0,
        le=365.0,
        description="Holding period considered a quick sell"
    )
    strategic_take_profit_percent: float = Field(
        default=10.0,
        ge=0.0,
        le=1000.0,
        description="Profit above this percent after the minimum holding period is strategic"
    )
    min_holding_period_days: float = Field(
        default=7.0,
        ge=0.0,
        le=3650.0,
        description="Minimum holding period for a strategic take-profit"
    )
    impulse_window_minutes: float = Field(
        default=60.0,
        ge=0.0,
        le=10080.0,
        description="Entry within this many minutes of the previous entry is impulsive"
    )
    day_trading_window_hours: float = Field(
        default=24.0,
        ge=0.0,
        le=720.0,
        description="Round trips shorter than this are day trades"
    )
    frequency_window_days: float = Field(
        default=7.0,
        ge=0.0,
        le=365.0,
        description="Look-back window for counting operations on an instrument"
    )
    frequency_threshold: int = Field(
        default=5,
        ge=1,
        le=1000,
        description="More operations than this inside the look-back window is over-trading"
    )


class LoggingConfig(BaseModel):
    """Logging output settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level"
    )
    format: Literal["text", "json"] = Field(
        default="text",
        description="Log line format"
    )
    file_path: Optional[str] = Field(
        default=None,
        description="Optional log file, rotated daily and compressed"
    )
    backup_count: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Rotated log files to keep"
    )


class EngineConfig(BaseModel):
    """Root engine configuration."""

    classification: ClassificationConfig = Field(
        default_factory=ClassificationConfig,
        description="Input boundary settings"
    )
    deviation: DeviationConfig = Field(
        default_factory=DeviationConfig,
        description="Deviation analysis settings"
    )
    rebalancing: RebalancingConfig = Field(
        default_factory=RebalancingConfig,
        description="Default rebalancing options"
    )
    costs: CostModelConfig = Field(
        default_factory=CostModelConfig,
        description="Transaction cost model"
    )
    tax: TaxConfig = Field(
        default_factory=TaxConfig,
        description="Tax rate table"
    )
    patterns: PatternDetectionConfig = Field(
        default_factory=PatternDetectionConfig,
        description="Trading pattern thresholds"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )
