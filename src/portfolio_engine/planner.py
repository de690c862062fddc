"""Rebalancing plan assembly: deviations -> orders -> sequence -> cost and tax"""

from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Union
import hashlib
import json
import logging
from engine_config import EngineConfig, get_config
from .deviation import DeviationAnalyzer
from .estimators import CostEstimator, TaxEstimator
from .exceptions import InsufficientDataError
from .models import (
    DeviationAnalysis, Operation, PlanStatus, PlanSummary, Position, PositionSet, RebalancingOptions,
    RebalancingPlan, TargetAllocation, TradeOrder,
)
from .sequencer import TradeSequencer
from .trade_generator import TradeOrderGenerator


def plan_fingerprint(positions: PositionSet, target: TargetAllocation, options: RebalancingOptions,
                     as_of: date, recent_operations: Optional[Iterable[Operation]] = None) -> str:
    """Stable hash of the plan inputs, usable as plan id and cache key"""
    operations = sorted(recent_operations or [], key=lambda op: (op.date, op.operation_id))
    payload = {
        'positions': positions.model_dump(mode='json'),
        'target': target.model_dump(mode='json'),
        'options': options.model_dump(mode='json'),
        'as_of': as_of.isoformat(),
        'recent_operations': [op.model_dump(mode='json') for op in operations],
    }
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode('utf-8')).hexdigest()
    return f"plan-{digest[:16]}"


class RebalancingPlanner:
    """Build a cost- and tax-aware rebalancing plan for a target allocation"""

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()
        self.analyzer = DeviationAnalyzer(config=self.config, logger=self.logger)
        self.cost_estimator = CostEstimator(config=self.config, logger=self.logger)
        self.tax_estimator = TaxEstimator(config=self.config, logger=self.logger)
        self.generator = TradeOrderGenerator(
            config=self.config, analyzer=self.analyzer, cost_estimator=self.cost_estimator,
            tax_estimator=self.tax_estimator, logger=self.logger,
        )
        self.sequencer = TradeSequencer(logger=self.logger)

    def create_plan(self, positions: Union[PositionSet, Iterable[Position]], target: TargetAllocation,
                    options: Optional[RebalancingOptions] = None, as_of: Optional[date] = None,
                    recent_operations: Optional[Iterable[Operation]] = None) -> RebalancingPlan:
        """
        Create a draft plan.
        Raises ConfigurationError for invalid targets and InsufficientDataError
        for portfolios without value; everything else becomes a summary warning.
        """
        if not isinstance(positions, PositionSet):
            positions = PositionSet(positions=list(positions))
        options = options or RebalancingOptions.from_config(self.config.rebalancing)
        as_of = as_of or date.today()
        recent_operations = list(recent_operations) if recent_operations is not None else None

        plan_id = plan_fingerprint(positions, target, options, as_of, recent_operations)
        log_extra = {'plan_id': plan_id}

        analysis = self.analyzer.analyze(positions, target)
        if positions.total_value <= 0:
            raise InsufficientDataError("Cannot plan a rebalance for a portfolio with no value", reason="no_positions")

        warnings: List[str] = []

        orders = self._generate_orders(positions, analysis, options, as_of, warnings)
        orders = self.sequencer.optimize(orders)
        orders = self.cost_estimator.annotate(orders)
        orders = self.tax_estimator.annotate(orders, positions, as_of)

        cost_estimate = self.cost_estimator.estimate(orders)
        tax_estimate = self.tax_estimator.estimate(orders, positions, as_of, recent_operations)
        warnings.extend(tax_estimate.warnings)
        if not tax_estimate.is_complete:
            warnings.append(
                f"Tax estimate incomplete: unknown cost basis for {', '.join(tax_estimate.unknown_cost_basis)}"
            )

        # None when any sell lacks a cost basis
        tax_liability = tax_estimate.estimated_tax_liability if tax_estimate.is_complete else None
        summary = PlanSummary(
            total_trades=len(orders),
            total_value=cost_estimate.total_traded_value,
            transaction_cost=cost_estimate.total_cost,
            tax_liability=tax_liability,
            net_cost=cost_estimate.total_cost + tax_liability if tax_liability is not None else None,
            tax_estimate_complete=tax_estimate.is_complete,
            warnings=warnings,
        )

        net_cost_text = f"{summary.net_cost:,.2f}" if summary.net_cost is not None else "unknown"
        self.logger.info(
            f"Plan {plan_id} ({options.strategy}): {summary.total_trades} trades, "
            f"value {summary.total_value:,.2f}, net cost {net_cost_text}, "
            f"{len(warnings)} warnings",
            extra=log_extra,
        )

        return RebalancingPlan(
            plan_id=plan_id,
            created_at=datetime.now(timezone.utc),
            strategy=options.strategy,
            target=target,
            deviation_analysis=analysis,
            trades=orders,
            cost_estimate=cost_estimate,
            tax_estimate=tax_estimate,
            summary=summary,
            status=PlanStatus.DRAFT,
        )

    def _generate_orders(self, positions: PositionSet, analysis: DeviationAnalysis, options: RebalancingOptions,
                         as_of: date, warnings: List[str]) -> List[TradeOrder]:
        if options.strategy == 'threshold' and analysis.max_abs_delta <= options.threshold_percent:
            message = (
                f"Largest drift {analysis.max_abs_delta:.2f}pp is within the {options.threshold_percent}% "
                f"threshold; no trades generated"
            )
            self.logger.info(message)
            warnings.append(message)
            return []

        result = self.generator.generate_from_analysis(positions, analysis, options, as_of)
        warnings.extend(result.warnings)
        return result.orders
