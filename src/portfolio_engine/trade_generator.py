"""Trade order generation from allocation deviations"""

from datetime import date
from typing import Iterable, List, Optional, Tuple, Union
import logging
import math
from engine_config import EngineConfig, get_config
from .deviation import DeviationAnalyzer
from .estimators import CostEstimator, TaxEstimator
from .exceptions import InsufficientDataError
from .models import (
    Deviation, DeviationAnalysis, OrderSide, Position, PositionSet, RebalancingOptions, TargetAllocation,
    TradeGenerationResult, TradeOrder, dimension_label,
)

# Guards floor() against 399.99999 style float error on exact multiples
QUANTITY_EPSILON = 1e-9


class TradeOrderGenerator:
    """Convert over/under-weight deviations into sell and buy orders"""

    def __init__(self, config: Optional[EngineConfig] = None, analyzer: Optional[DeviationAnalyzer] = None,
                 cost_estimator: Optional[CostEstimator] = None, tax_estimator: Optional[TaxEstimator] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()
        self.analyzer = analyzer or DeviationAnalyzer(config=self.config, logger=self.logger)
        self.cost_estimator = cost_estimator or CostEstimator(config=self.config, logger=self.logger)
        self.tax_estimator = tax_estimator or TaxEstimator(config=self.config, logger=self.logger)

    def generate(self, positions: Union[PositionSet, Iterable[Position]], target: TargetAllocation,
                 options: Optional[RebalancingOptions] = None, as_of: Optional[date] = None) -> TradeGenerationResult:
        """
        Calculate orders that move `positions` toward `target`.
        Returns TradeGenerationResult containing orders and warnings
        """
        if not isinstance(positions, PositionSet):
            positions = PositionSet(positions=list(positions))
        if not positions.positions or positions.total_value <= 0:
            raise InsufficientDataError("Cannot rebalance a portfolio with no value", reason="no_positions")

        analysis = self.analyzer.analyze(positions, target)
        return self.generate_from_analysis(positions, analysis, options, as_of)

    def generate_from_analysis(self, positions: PositionSet, analysis: DeviationAnalysis,
                               options: Optional[RebalancingOptions] = None,
                               as_of: Optional[date] = None) -> TradeGenerationResult:
        """
        Sells are sized first; with the tax_aware strategy, sells that would realize a
        taxed short-term gain are deferred before their proceeds can fund any buy.
        """
        options = options or RebalancingOptions.from_config(self.config.rebalancing)
        if not positions.positions or positions.total_value <= 0:
            raise InsufficientDataError("Cannot rebalance a portfolio with no value", reason="no_positions")

        warnings: List[str] = []
        drafts: List[dict] = []

        # Phase 1: sells free cash for phase 2
        for deviation in analysis.over_weight():
            drafts.extend(self._sell_drafts(positions, deviation, options, as_of or date.today(), warnings))

        # Phase 2: buys, funded by sell proceeds plus cash when a cash limit is given
        budget = None
        if options.available_cash is not None:
            budget = options.available_cash + sum(d['estimated_total'] for d in drafts)
        for deviation in analysis.under_weight():
            buy_drafts, budget = self._buy_drafts(positions, deviation, options, budget, warnings)
            drafts.extend(buy_drafts)

        orders = [
            TradeOrder(order_id=f"order-{index:03d}", **draft) for index, draft in enumerate(drafts, start=1)
        ]

        if options.max_cost is not None:
            orders = self._apply_max_cost(orders, options, warnings)

        for warning in warnings:
            self.logger.warning(warning)

        sells = sum(1 for o in orders if o.side == OrderSide.SELL)
        self.logger.info(f"Generated {len(orders)} orders ({sells} sells, {len(orders) - sells} buys)")

        return TradeGenerationResult(orders=orders, warnings=warnings)

    def _sell_drafts(self, positions: PositionSet, deviation: Deviation, options: RebalancingOptions,
                     as_of: date, warnings: List[str]) -> List[dict]:
        """Sell each member its value-proportional share of the bucket's excess, largest first"""
        members = [
            p for p in self._members(positions, deviation) if p.value > 0
        ]
        members.sort(key=lambda p: (-p.value, p.instrument_id))
        bucket_value = sum(p.value for p in members)
        excess = deviation.deviation_amount

        drafts = []
        for position in members:
            share = min(excess * position.value / bucket_value, position.value)
            quantity = min(self._quantity(share, position.current_price, options), position.quantity)
            if quantity <= 0:
                continue

            total = quantity * position.current_price
            if total < options.min_trade_size:
                self.logger.debug(
                    f"Skipping sell of {position.instrument_id}: {total:,.2f} below minimum trade size "
                    f"{options.min_trade_size:,.2f}"
                )
                continue

            if options.strategy == 'tax_aware' and self._realizes_short_term_gain(position, quantity, as_of):
                warnings.append(
                    f"Deferred sell of {quantity:g} {position.instrument_id}: would realize a short-term gain of "
                    f"{total - position.average_price * quantity:,.2f}"
                )
                continue

            harvests_loss = position.average_price is not None and position.current_price < position.average_price
            drafts.append(self._draft(
                position.instrument_id, OrderSide.SELL, quantity, position.current_price, deviation,
                f"Reduce {deviation.dimension.value} overweight: {deviation.label} ({deviation.delta:+.2f}pp)",
                harvests_loss,
            ))
        return drafts

    def _buy_drafts(self, positions: PositionSet, deviation: Deviation, options: RebalancingOptions,
                    budget: Optional[float], warnings: List[str]) -> Tuple[List[dict], Optional[float]]:
        """Close the gap with held instruments of the bucket; net-new candidates only when none are held"""
        gap = -deviation.deviation_amount
        targets = self._buy_targets(positions, deviation, options)
        if not targets:
            warnings.append(
                f"No instrument available to buy for {deviation.dimension.value} bucket {deviation.label}; "
                f"supply a candidate instrument"
            )
            return [], budget

        drafts = []
        underfunded = False
        for instrument_id, price, fraction in targets:
            amount = gap * fraction
            if budget is not None and amount > budget:
                amount = max(budget, 0.0)
                underfunded = True

            quantity = self._quantity(amount, price, options)
            total = quantity * price
            if quantity <= 0 or total < options.min_trade_size:
                self.logger.debug(
                    f"Skipping buy of {instrument_id}: {total:,.2f} below minimum trade size "
                    f"{options.min_trade_size:,.2f}"
                )
                continue

            if budget is not None:
                budget -= total
            drafts.append(self._draft(
                instrument_id, OrderSide.BUY, quantity, price, deviation,
                f"Increase {deviation.dimension.value} allocation: {deviation.label} ({deviation.delta:+.2f}pp)",
                False,
            ))

        if underfunded:
            warnings.append(
                f"Buys for {deviation.dimension.value} bucket {deviation.label} limited by available cash"
            )
        return drafts, budget

    def _buy_targets(self, positions: PositionSet, deviation: Deviation,
                     options: RebalancingOptions) -> List[Tuple[str, float, float]]:
        """(instrument_id, price, fraction of gap) for a bucket"""
        members = [p for p in self._members(positions, deviation) if p.current_price > 0]
        if members:
            members.sort(key=lambda p: (-p.value, p.instrument_id))
            bucket_value = sum(p.value for p in members)
            if bucket_value > 0:
                return [(p.instrument_id, p.current_price, p.value / bucket_value) for p in members if p.value > 0]
            return [(p.instrument_id, p.current_price, 1.0 / len(members)) for p in members]

        held = set(positions.ids)
        candidates = sorted(
            (c for c in options.candidates if c.bucket == deviation.label and c.instrument_id not in held),
            key=lambda c: c.instrument_id,
        )
        return [(c.instrument_id, c.price, 1.0 / len(candidates)) for c in candidates]

    @staticmethod
    def _members(positions: PositionSet, deviation: Deviation) -> List[Position]:
        return [p for p in positions.positions if dimension_label(p, deviation.dimension) == deviation.label]

    @staticmethod
    def _quantity(amount: float, price: float, options: RebalancingOptions) -> float:
        if price <= 0 or amount <= 0:
            return 0.0
        raw = amount / price
        if options.fractional_shares:
            return raw
        return float(math.floor(raw + QUANTITY_EPSILON))

    @staticmethod
    def _draft(instrument_id: str, side: str, quantity: float, price: float, deviation: Deviation,
               rationale: str, harvests_loss: bool) -> dict:
        return {
            'instrument_id': instrument_id,
            'side': side,
            'quantity': quantity,
            'estimated_price': price,
            'estimated_total': quantity * price,
            'rationale': rationale,
            'bucket': deviation.label,
            'dimension': deviation.dimension,
            'priority': deviation.priority,
            'deviation': abs(deviation.delta),
            'harvests_loss': harvests_loss,
        }

    def _realizes_short_term_gain(self, position: Position, quantity: float, as_of: date) -> bool:
        if self.config.tax.short_term_rate <= 0 or position.average_price is None:
            return False
        gain = (position.current_price - position.average_price) * quantity
        return gain > 0 and not self.tax_estimator.is_long_term(position, as_of)

    def _apply_max_cost(self, orders: List[TradeOrder], options: RebalancingOptions,
                        warnings: List[str]) -> List[TradeOrder]:
        """Keep the highest-priority orders that fit the budget; stop at the first that does not"""
        max_cost = options.max_cost
        ranked = sorted(
            orders,
            key=lambda o: (-o.deviation, 0 if o.side == OrderSide.SELL else 1, -o.estimated_total, o.instrument_id),
        )

        kept = []
        total_cost = 0.0
        for order in ranked:
            cost = self.cost_estimator.order_cost(order)
            if total_cost + cost > max_cost:
                break
            kept.append(order)
            total_cost += cost

        dropped = len(ranked) - len(kept)
        if dropped:
            warnings.append(
                f"Cost budget {max_cost:,.2f} exhausted after {len(kept)} orders "
                f"(cost {total_cost:,.2f}); dropped {dropped} lower-priority orders"
            )
            if options.available_cash is not None:
                kept = self._refund_buys(kept, options, warnings)
        return kept

    def _refund_buys(self, orders: List[TradeOrder], options: RebalancingOptions,
                     warnings: List[str]) -> List[TradeOrder]:
        """Shrink or drop kept buys whose funding came from sells the cost budget removed"""
        budget = options.available_cash + sum(o.estimated_total for o in orders if o.side == OrderSide.SELL)

        funded = []
        for order in orders:
            if order.side == OrderSide.SELL:
                funded.append(order)
                continue

            if order.estimated_total <= budget:
                budget -= order.estimated_total
                funded.append(order)
                continue

            quantity = self._quantity(budget, order.estimated_price, options)
            total = quantity * order.estimated_price
            if quantity <= 0 or total < options.min_trade_size:
                warnings.append(
                    f"Dropped buy of {order.instrument_id}: the sells funding it were cut by the cost budget"
                )
                continue

            warnings.append(
                f"Reduced buy of {order.instrument_id} from {order.quantity:g} to {quantity:g}: "
                f"the sells funding it were cut by the cost budget"
            )
            budget -= total
            funded.append(order.model_copy(update={'quantity': quantity, 'estimated_total': total}))
        return funded
