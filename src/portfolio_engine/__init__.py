from .classifier import PositionClassifier, classify_asset_class
from .metrics import MetricsCalculator, hhi, hhi_to_points, concentration_risk, diversification_score
from .scenario import ScenarioApplier, compare_scenarios
from .deviation import DeviationAnalyzer
from .trade_generator import TradeOrderGenerator
from .sequencer import TradeSequencer
from .estimators import CostEstimator, TaxEstimator
from .planner import RebalancingPlanner, plan_fingerprint
from .patterns import TradingPatternRecognizer, match_trade_pairs
from .history import HistorySnapshot, SnapshotStore, InMemorySnapshotStore
from .logger import configure_logging
from .models import (
    # Portfolio models
    Dimension,
    Position,
    PositionSet,
    PortfolioMetrics,
    ExposureBucket,
    # Allocation and deviation models
    TargetAllocation,
    PRESET_ALLOCATIONS,
    Deviation,
    DeviationAnalysis,
    # Scenario models
    PriceChange,
    QuantityChange,
    AddPosition,
    RemovePosition,
    MarketEvent,
    ScenarioResult,
    ScenarioComparison,
    # Rebalancing models
    OrderSide,
    PlanStatus,
    TradeOrder,
    CandidateInstrument,
    RebalancingOptions,
    CostBreakdown,
    TaxEstimate,
    RebalancingPlan,
    # Pattern models
    Operation,
    TradePair,
    PatternAnalysis,
)
from .exceptions import (
    EngineError,
    ConfigurationError,
    InsufficientDataError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    "PositionClassifier",
    "classify_asset_class",
    "MetricsCalculator",
    "hhi",
    "hhi_to_points",
    "concentration_risk",
    "diversification_score",
    "ScenarioApplier",
    "compare_scenarios",
    "DeviationAnalyzer",
    "TradeOrderGenerator",
    "TradeSequencer",
    "CostEstimator",
    "TaxEstimator",
    "RebalancingPlanner",
    "plan_fingerprint",
    "TradingPatternRecognizer",
    "match_trade_pairs",
    "HistorySnapshot",
    "SnapshotStore",
    "InMemorySnapshotStore",
    "configure_logging",
    "Dimension",
    "Position",
    "PositionSet",
    "PortfolioMetrics",
    "ExposureBucket",
    "TargetAllocation",
    "PRESET_ALLOCATIONS",
    "Deviation",
    "DeviationAnalysis",
    "PriceChange",
    "QuantityChange",
    "AddPosition",
    "RemovePosition",
    "MarketEvent",
    "ScenarioResult",
    "ScenarioComparison",
    "OrderSide",
    "PlanStatus",
    "TradeOrder",
    "CandidateInstrument",
    "RebalancingOptions",
    "CostBreakdown",
    "TaxEstimate",
    "RebalancingPlan",
    "Operation",
    "TradePair",
    "PatternAnalysis",
    "EngineError",
    "ConfigurationError",
    "InsufficientDataError",
    "ValidationError",
    "__version__",
]
