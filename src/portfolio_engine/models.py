from datetime import date, datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from .exceptions import ValidationError

UNKNOWN = "unknown"

ConcentrationRisk = Literal['low', 'medium', 'high']
DeviationDirection = Literal['over', 'under', 'on_target']
TaxStatus = Literal['not_applicable', 'estimated', 'unknown']
PatternCategory = Literal['panic_sell', 'impulsive', 'strategic', 'other']
Strategy = Literal['threshold', 'strategic', 'tax_aware']

PATTERN_CATEGORIES: Tuple[str, ...] = ('panic_sell', 'impulsive', 'strategic', 'other')


class Dimension(str, Enum):
    """Position attribute that exposures and target allocations are bucketed by"""
    INSTRUMENT = "instrument"
    CURRENCY = "currency"
    SECTOR = "sector"
    GEOGRAPHY = "geography"
    ASSET_CLASS = "asset_class"


class OrderSide:
    """Trade directions"""
    BUY = "buy"
    SELL = "sell"


class PlanStatus:
    """Rebalancing plan lifecycle"""
    DRAFT = "draft"
    APPROVED = "approved"


# Portfolio models
class Position(BaseModel):
    """Value-bearing, tagged holding of one instrument"""
    model_config = ConfigDict(frozen=True)

    instrument_id: str
    quantity: float = Field(ge=0)
    current_price: float = Field(ge=0)
    average_price: Optional[float] = Field(default=None, ge=0)  # None when the broker has no cost basis
    currency: str = UNKNOWN
    sector: str = UNKNOWN
    geography: str = UNKNOWN
    instrument_type: str = UNKNOWN
    asset_class: str = "alternatives"
    name: Optional[str] = None
    acquired_at: Optional[date] = None

    @computed_field
    @property
    def value(self) -> float:
        return self.quantity * self.current_price

    @computed_field
    @property
    def unrealized_pnl(self) -> Optional[float]:
        if self.average_price is None:
            return None
        return self.value - self.quantity * self.average_price

    @property
    def has_cost_basis(self) -> bool:
        return self.average_price is not None


class PositionSet(BaseModel):
    """Ordered positions, unique by instrument_id"""
    model_config = ConfigDict(frozen=True)

    positions: Tuple[Position, ...] = ()

    @model_validator(mode='after')
    def check_unique_ids(self):
        seen = set()
        for position in self.positions:
            if position.instrument_id in seen:
                raise ValidationError(
                    f"Duplicate position for {position.instrument_id}", reason="duplicate_position"
                )
            seen.add(position.instrument_id)
        return self

    @computed_field
    @property
    def total_value(self) -> float:
        return sum(p.value for p in self.positions)

    @property
    def ids(self) -> List[str]:
        return [p.instrument_id for p in self.positions]

    def get(self, instrument_id: str) -> Optional[Position]:
        for position in self.positions:
            if position.instrument_id == instrument_id:
                return position
        return None

    def replace(self, position: Position) -> "PositionSet":
        """Swap in a position with the same id, keeping order"""
        return PositionSet(positions=tuple(
            position if p.instrument_id == position.instrument_id else p for p in self.positions
        ))

    def with_position(self, position: Position) -> "PositionSet":
        return PositionSet(positions=self.positions + (position,))

    def without(self, instrument_id: str) -> "PositionSet":
        return PositionSet(positions=tuple(p for p in self.positions if p.instrument_id != instrument_id))


def dimension_label(position: Position, dimension: Dimension) -> str:
    """Bucket label of a position along a dimension"""
    if dimension == Dimension.INSTRUMENT:
        return position.instrument_id
    return getattr(position, dimension.value)


# Metrics models
class ExposureBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: float
    weight: float  # percent of total value
    count: int


class PortfolioMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_value: float
    position_count: int
    hhi: float  # 0-1 scale
    concentration_risk: ConcentrationRisk
    diversification_score: float
    largest_weight: float
    currency_exposure: List[ExposureBucket] = Field(default_factory=list)
    sector_exposure: List[ExposureBucket] = Field(default_factory=list)
    geography_exposure: List[ExposureBucket] = Field(default_factory=list)
    asset_class_exposure: List[ExposureBucket] = Field(default_factory=list)


# Target allocation and deviation models
class TargetAllocation(BaseModel):
    """Desired percent weight per bucket of one dimension"""
    model_config = ConfigDict(frozen=True)

    dimension: Dimension = Dimension.INSTRUMENT
    weights: Dict[str, float]
    name: Optional[str] = None

    @property
    def total_weight(self) -> float:
        return sum(self.weights.values())


PRESET_ALLOCATIONS: Dict[str, TargetAllocation] = {
    'conservative': TargetAllocation(
        name='conservative',
        dimension=Dimension.ASSET_CLASS,
        weights={'stocks': 40.0, 'bonds': 50.0, 'etf': 10.0},
    ),
    'moderate': TargetAllocation(
        name='moderate',
        dimension=Dimension.ASSET_CLASS,
        weights={'stocks': 60.0, 'bonds': 30.0, 'etf': 10.0},
    ),
    'aggressive': TargetAllocation(
        name='aggressive',
        dimension=Dimension.ASSET_CLASS,
        weights={'stocks': 85.0, 'bonds': 10.0, 'etf': 5.0},
    ),
}


class Deviation(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    dimension: Dimension
    current_weight: float
    target_weight: float
    delta: float  # current - target, percentage points
    deviation_amount: float  # delta expressed in currency
    direction: DeviationDirection
    priority: int  # 1 = highest


class EstimatedImpact(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk_reduction: float
    diversification_improvement: float


class DeviationAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: Dimension
    total_value: float
    deviations: List[Deviation]
    total_deviation_score: float
    high_priority_count: int
    needs_rebalancing: bool
    max_abs_delta: float
    estimated_impact: EstimatedImpact

    def get(self, label: str) -> Optional[Deviation]:
        for deviation in self.deviations:
            if deviation.label == label:
                return deviation
        return None

    def over_weight(self) -> List[Deviation]:
        return [d for d in self.deviations if d.direction == 'over']

    def under_weight(self) -> List[Deviation]:
        return [d for d in self.deviations if d.direction == 'under']


# Scenario models
class PriceChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal['price_change'] = 'price_change'
    instrument_id: str
    percent: float  # e.g. -20 for a 20% drop
    label: Optional[str] = None


class QuantityChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal['quantity_change'] = 'quantity_change'
    instrument_id: str
    delta: float
    label: Optional[str] = None


class AddPosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal['add_position'] = 'add_position'
    position: Position
    label: Optional[str] = None


class RemovePosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal['remove_position'] = 'remove_position'
    instrument_id: str
    label: Optional[str] = None


class MarketEvent(BaseModel):
    """Price multipliers applied to every matching position (0.8 = -20%)"""
    model_config = ConfigDict(frozen=True)

    type: Literal['market_event'] = 'market_event'
    sector_multipliers: Dict[str, float] = Field(default_factory=dict)
    asset_class_multipliers: Dict[str, float] = Field(default_factory=dict)
    instrument_multipliers: Dict[str, float] = Field(default_factory=dict)
    label: Optional[str] = None

    @field_validator('sector_multipliers', 'asset_class_multipliers', 'instrument_multipliers')
    @classmethod
    def validate_multipliers(cls, v: Dict[str, float]) -> Dict[str, float]:
        for key, multiplier in v.items():
            if multiplier < 0:
                raise ValueError(f"Multiplier for {key} must be non-negative, got {multiplier}")
        return v


ScenarioChange = Annotated[
    Union[PriceChange, QuantityChange, AddPosition, RemovePosition, MarketEvent],
    Field(discriminator='type'),
]


class ScenarioSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    positions: PositionSet
    cash_balance: float
    invested_value: float
    total_value: float  # invested + cash
    metrics: PortfolioMetrics


class ScenarioResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    base_snapshot: ScenarioSnapshot
    scenario_snapshot: ScenarioSnapshot
    value_change: float
    value_change_percent: float
    hhi_before: float
    hhi_after: float
    hhi_delta: float
    diversification_before: float
    diversification_after: float
    sector_weight_changes: Dict[str, float]
    geography_weight_changes: Dict[str, float]
    currency_weight_changes: Dict[str, float]
    applied_changes: List[ScenarioChange]
    warnings: List[str] = Field(default_factory=list)
    created_at: datetime


class ScenarioCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    label: str
    value: float


class ScenarioComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    results: List[ScenarioResult]
    best_case: ScenarioCase
    worst_case: ScenarioCase
    value_min: float
    value_max: float
    value_spread: float


# Trade models
class TradeOrder(BaseModel):
    """Proposed order; estimator fields stay unset until annotated"""
    model_config = ConfigDict(frozen=True)

    order_id: str
    instrument_id: str
    side: Literal['buy', 'sell']
    quantity: float
    estimated_price: float
    estimated_total: float
    rationale: str
    bucket: str
    dimension: Dimension = Dimension.INSTRUMENT
    priority: int = 3
    deviation: float = 0.0  # |delta| of the bucket this order closes
    harvests_loss: bool = False
    transaction_cost: Optional[float] = None
    realized_gain: Optional[float] = None
    estimated_tax: Optional[float] = None
    tax_status: TaxStatus = 'not_applicable'

    @property
    def is_sell(self) -> bool:
        return self.side == OrderSide.SELL


class CandidateInstrument(BaseModel):
    """Instrument not currently held that may be bought to fill a bucket"""
    model_config = ConfigDict(frozen=True)

    instrument_id: str
    bucket: str
    price: float = Field(gt=0)


class RebalancingOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: Strategy = 'strategic'
    threshold_percent: float = Field(default=5.0, ge=0)
    min_trade_size: float = Field(default=1000.0, ge=0)
    max_cost: Optional[float] = Field(default=None, ge=0)
    available_cash: Optional[float] = Field(default=None, ge=0)
    fractional_shares: bool = False
    candidates: List[CandidateInstrument] = Field(default_factory=list)

    @classmethod
    def from_config(cls, config, **overrides) -> "RebalancingOptions":
        """Build options from a RebalancingConfig section"""
        values = {
            'strategy': config.strategy,
            'threshold_percent': config.threshold_percent,
            'min_trade_size': config.min_trade_size,
            'max_cost': config.max_cost,
            'fractional_shares': config.fractional_shares,
        }
        values.update(overrides)
        return cls(**values)


class TradeGenerationResult(BaseModel):
    """Result of trade generation with warnings"""
    orders: List[TradeOrder]
    warnings: List[str] = Field(default_factory=list)


# Cost and tax models
class CostItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    instrument_id: str
    commission: float
    spread: float
    market_impact: float
    total_cost: float


class CostBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    commission: float
    spread: float
    market_impact: float
    total_cost: float
    total_traded_value: float
    cost_as_percent: float
    itemized: List[CostItem] = Field(default_factory=list)


class HarvestingOpportunity(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    instrument_id: str
    realized_loss: float  # positive amount
    potential_tax_savings: float
    wash_sale_risk: bool = False


class TaxEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    short_term_gains: float
    long_term_gains: float
    realized_losses: float
    estimated_tax_liability: float
    harvesting_opportunities: List[HarvestingOpportunity] = Field(default_factory=list)
    unknown_cost_basis: List[str] = Field(default_factory=list)
    is_complete: bool = True
    warnings: List[str] = Field(default_factory=list)


# Rebalancing plan models
class PlanSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_trades: int
    total_value: float
    transaction_cost: float
    tax_liability: Optional[float]  # None when the tax estimate is incomplete
    net_cost: Optional[float]
    tax_estimate_complete: bool
    warnings: List[str] = Field(default_factory=list)


class RebalancingPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan_id: str
    created_at: datetime
    strategy: Strategy
    target: TargetAllocation
    deviation_analysis: DeviationAnalysis
    trades: List[TradeOrder]
    cost_estimate: CostBreakdown
    tax_estimate: TaxEstimate
    summary: PlanSummary
    status: Literal['draft', 'approved'] = PlanStatus.DRAFT

    def approve(self) -> "RebalancingPlan":
        """Return an approved copy; only draft plans can be approved"""
        if self.status != PlanStatus.DRAFT:
            raise ValidationError(
                f"Plan {self.plan_id} is {self.status}, only draft plans can be approved",
                reason="invalid_status_transition"
            )
        return self.model_copy(update={'status': PlanStatus.APPROVED})


# Trading pattern models
class Operation(BaseModel):
    """Executed (or pending) historical buy/sell"""
    model_config = ConfigDict(frozen=True)

    operation_id: str
    instrument_id: str
    side: Literal['buy', 'sell']
    date: datetime
    quantity: float = Field(gt=0)
    price: float = Field(ge=0)
    state: Literal['executed', 'canceled', 'progress'] = 'executed'


class OpeningLot(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation_id: str
    date: datetime
    quantity: float
    price: float


class TradePair(BaseModel):
    """Closing operation matched against one or more opening lots"""
    model_config = ConfigDict(frozen=True)

    direction: Literal['long', 'short']
    instrument_id: str
    closing_operation_id: str
    closing_date: datetime
    close_price: float
    opening_lots: List[OpeningLot]
    quantity: float
    average_open_price: float
    holding_period_days: float
    profit_loss: float
    profit_loss_percent: float
    recent_operation_count: int = 0
    minutes_since_previous_open: Optional[float] = None
    category: Optional[PatternCategory] = None


class PatternStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: PatternCategory
    total_count: int
    success_count: int
    failure_count: int
    break_even_count: int
    success_rate: Optional[float]  # None when every pair broke even
    average_profit_loss_percent: float
    average_holding_period_days: float
    total_volume: float


class PatternSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_pairs: int
    total_operations: int
    average_profit_loss_percent: float
    most_common_category: Optional[PatternCategory]
    most_successful_category: Optional[PatternCategory]
    risk_score: float  # 0-100, higher = more emotional trading


class PatternRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    message: str
    severity: Literal['info', 'warning', 'critical']


class PatternAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    pairs: List[TradePair]
    statistics: List[PatternStats]
    summary: PatternSummary
    recommendations: List[PatternRecommendation] = Field(default_factory=list)
    rapid_entries: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
