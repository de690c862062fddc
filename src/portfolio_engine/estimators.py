"""Transaction cost and tax impact estimation for trade orders"""

from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple
import logging
from engine_config import EngineConfig, get_config
from .models import (
    CostBreakdown, CostItem, HarvestingOpportunity, Operation, OrderSide, Position, PositionSet, TaxEstimate,
    TradeOrder,
)


class CostEstimator:
    """Flat fee + proportional commission, bid-ask spread and market impact per order"""

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()

    def cost_components(self, order_value: float) -> Tuple[float, float, float]:
        """(commission, spread, market_impact) for an order of the given value"""
        costs = self.config.costs
        commission = max(costs.flat_fee + order_value * costs.commission_rate, costs.min_commission)
        spread = order_value * costs.spread_rate
        market_impact = order_value * costs.market_impact_rate if order_value > costs.market_impact_threshold else 0.0
        return commission, spread, market_impact

    def order_cost(self, order: TradeOrder) -> float:
        return sum(self.cost_components(order.estimated_total))

    def estimate(self, orders: Iterable[TradeOrder]) -> CostBreakdown:
        itemized = []
        total_traded_value = 0.0
        for order in orders:
            commission, spread, market_impact = self.cost_components(order.estimated_total)
            itemized.append(CostItem(
                order_id=order.order_id,
                instrument_id=order.instrument_id,
                commission=commission,
                spread=spread,
                market_impact=market_impact,
                total_cost=commission + spread + market_impact,
            ))
            total_traded_value += order.estimated_total

        commission = sum(item.commission for item in itemized)
        spread = sum(item.spread for item in itemized)
        market_impact = sum(item.market_impact for item in itemized)
        total_cost = commission + spread + market_impact
        cost_as_percent = total_cost / total_traded_value * 100 if total_traded_value > 0 else 0.0

        self.logger.debug(
            f"Estimated costs for {len(itemized)} orders: {total_cost:,.2f} "
            f"({cost_as_percent:.3f}% of {total_traded_value:,.2f})"
        )

        return CostBreakdown(
            commission=commission,
            spread=spread,
            market_impact=market_impact,
            total_cost=total_cost,
            total_traded_value=total_traded_value,
            cost_as_percent=cost_as_percent,
            itemized=itemized,
        )

    def annotate(self, orders: Iterable[TradeOrder]) -> List[TradeOrder]:
        """Copies of `orders` with transaction_cost filled in"""
        return [order.model_copy(update={'transaction_cost': self.order_cost(order)}) for order in orders]


class TaxEstimator:
    """Realized gain/loss and tax liability of sell orders against average cost basis"""

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()

    def estimate(self, orders: Iterable[TradeOrder], positions: PositionSet, as_of: Optional[date] = None,
                 recent_operations: Optional[Iterable[Operation]] = None) -> TaxEstimate:
        """
        Short/long-term gains use the holding period up to `as_of` (today when omitted);
        positions without an acquisition date count as short-term.
        Losses offset short-term gains only.
        Sells without a cost basis are flagged unknown instead of being taxed at zero.
        """
        as_of = as_of or date.today()
        tax = self.config.tax
        recent_buys = self._recent_buys(recent_operations, as_of)

        short_term_gains = 0.0
        long_term_gains = 0.0
        realized_losses = 0.0
        opportunities = []
        unknown = []
        warnings = []

        for order in orders:
            if order.side != OrderSide.SELL:
                continue

            position = positions.get(order.instrument_id)
            gain = self.realized_gain(order, position)
            if gain is None:
                if order.instrument_id not in unknown:
                    unknown.append(order.instrument_id)
                message = (
                    f"No cost basis for {order.instrument_id}; tax on sell order {order.order_id} is unknown"
                )
                warnings.append(message)
                self.logger.warning(message)
                continue

            if gain < 0:
                loss = -gain
                realized_losses += loss
                opportunities.append(HarvestingOpportunity(
                    order_id=order.order_id,
                    instrument_id=order.instrument_id,
                    realized_loss=loss,
                    potential_tax_savings=loss * tax.short_term_rate,
                    wash_sale_risk=order.instrument_id in recent_buys,
                ))
            elif self.is_long_term(position, as_of):
                long_term_gains += gain
            else:
                short_term_gains += gain

        for opportunity in opportunities:
            if opportunity.wash_sale_risk:
                message = (
                    f"Loss on {opportunity.instrument_id} may be disallowed: bought within "
                    f"{tax.wash_sale_window_days} days"
                )
                warnings.append(message)
                self.logger.warning(message)

        taxable_short = max(short_term_gains - realized_losses, 0.0)
        liability = taxable_short * tax.short_term_rate + long_term_gains * tax.long_term_rate

        return TaxEstimate(
            short_term_gains=short_term_gains,
            long_term_gains=long_term_gains,
            realized_losses=realized_losses,
            estimated_tax_liability=liability,
            harvesting_opportunities=opportunities,
            unknown_cost_basis=unknown,
            is_complete=not unknown,
            warnings=warnings,
        )

    def annotate(self, orders: Iterable[TradeOrder], positions: PositionSet,
                 as_of: Optional[date] = None) -> List[TradeOrder]:
        """
        Copies of `orders` with realized_gain, estimated_tax and tax_status.
        Per-order tax ignores loss offsets; TaxEstimate holds the netted liability.
        """
        as_of = as_of or date.today()
        annotated = []
        for order in orders:
            if order.side != OrderSide.SELL:
                annotated.append(order.model_copy(update={'tax_status': 'not_applicable'}))
                continue

            position = positions.get(order.instrument_id)
            gain = self.realized_gain(order, position)
            if gain is None:
                annotated.append(order.model_copy(update={
                    'realized_gain': None, 'estimated_tax': None, 'tax_status': 'unknown'
                }))
                continue

            rate = self.config.tax.long_term_rate if self.is_long_term(position, as_of) else self.config.tax.short_term_rate
            annotated.append(order.model_copy(update={
                'realized_gain': gain,
                'estimated_tax': max(gain, 0.0) * rate,
                'tax_status': 'estimated',
                'harvests_loss': gain < 0,
            }))
        return annotated

    @staticmethod
    def realized_gain(order: TradeOrder, position: Optional[Position]) -> Optional[float]:
        """Proceeds minus average cost; None when the cost basis is unknown"""
        if position is None or position.average_price is None:
            return None
        return order.estimated_total - position.average_price * order.quantity

    def is_long_term(self, position: Position, as_of: date) -> bool:
        if position.acquired_at is None:
            return False
        return (as_of - position.acquired_at).days >= self.config.tax.long_term_holding_days

    def _recent_buys(self, operations: Optional[Iterable[Operation]], as_of: date) -> set:
        if not operations:
            return set()
        window_start = as_of - timedelta(days=self.config.tax.wash_sale_window_days)
        return {
            op.instrument_id for op in operations
            if op.side == OrderSide.BUY and op.state == 'executed' and window_start <= op.date.date() <= as_of
        }
