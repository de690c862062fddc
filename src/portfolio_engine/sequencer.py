from typing import Iterable, List, Optional
import logging
from .models import OrderSide, TradeOrder


class TradeSequencer:
    """Order trades so that cash is freed before it is spent"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def optimize(self, orders: Iterable[TradeOrder]) -> List[TradeOrder]:
        """
        Sort by priority: sells first, loss-harvesting sells first within sells,
        then larger estimated totals first. Stable, so equal keys keep input order.
        """
        def sort_key(order: TradeOrder):
            side_rank = 0 if order.side == OrderSide.SELL else 1
            harvest_rank = 0 if order.side == OrderSide.SELL and order.harvests_loss else 1
            return (side_rank, harvest_rank, -order.estimated_total)

        sequenced = sorted(orders, key=sort_key)
        self.logger.debug(f"Sequenced {len(sequenced)} orders")
        return sequenced
