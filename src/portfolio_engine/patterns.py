"""Trade pair matching and behavioural pattern classification over executed operations"""

from collections import defaultdict, deque
from datetime import timedelta
from typing import Callable, Deque, Dict, Iterable, List, Optional, Tuple
import logging
from engine_config import EngineConfig, PatternDetectionConfig, get_config
from .models import (
    PATTERN_CATEGORIES, OpeningLot, Operation, OrderSide, PatternAnalysis, PatternCategory, PatternRecommendation,
    PatternStats, PatternSummary, TradePair,
)

SECONDS_PER_DAY = 86400.0
# Lot residue below this is float error from fractional quantities, not an open position
QUANTITY_EPSILON = 1e-9
RISK_SCORE_CRITICAL = 60.0
PANIC_SELL_CRITICAL_COUNT = 5
IMPULSIVE_CRITICAL_SUCCESS_RATE = 40.0
STRATEGIC_GOOD_SUCCESS_RATE = 60.0


class _Lot:
    """Mutable open lot while matching; frozen into OpeningLot once consumed"""

    __slots__ = ('operation', 'remaining')

    def __init__(self, operation: Operation, remaining: float):
        self.operation = operation
        self.remaining = remaining


def _chronological(operations: Iterable[Operation]) -> List[Operation]:
    return sorted(operations, key=lambda op: (op.date, op.operation_id))


def match_trade_pairs(operations: Iterable[Operation]) -> Tuple[List[TradePair], List[str]]:
    """
    FIFO-match executed operations into closed trade pairs.

    Per instrument, a sell closes the oldest open long lots first; whatever it
    cannot close opens a short lot, which later buys close the same way.
    A lot may be split across several closing operations.
    Returns (pairs ordered by closing date, warnings).
    """
    by_instrument: Dict[str, List[Operation]] = defaultdict(list)
    for op in operations:
        if op.state == 'executed':
            by_instrument[op.instrument_id].append(op)

    pairs: List[TradePair] = []
    warnings: List[str] = []
    for instrument_id in sorted(by_instrument):
        history = _chronological(by_instrument[instrument_id])
        long_lots: Deque[_Lot] = deque()
        short_lots: Deque[_Lot] = deque()

        for op in history:
            if op.side == OrderSide.SELL:
                opposite, same, direction = long_lots, short_lots, 'long'
            else:
                opposite, same, direction = short_lots, long_lots, 'short'

            remaining = op.quantity
            consumed: List[OpeningLot] = []
            while remaining > QUANTITY_EPSILON and opposite:
                lot = opposite[0]
                take = min(lot.remaining, remaining)
                consumed.append(OpeningLot(
                    operation_id=lot.operation.operation_id,
                    date=lot.operation.date,
                    quantity=take,
                    price=lot.operation.price,
                ))
                lot.remaining -= take
                remaining -= take
                if lot.remaining <= QUANTITY_EPSILON:
                    opposite.popleft()

            if consumed:
                pair = _build_pair(direction, op, consumed, history)
                if pair.average_open_price <= 0:
                    warnings.append(
                        f"Opening price of 0 for {instrument_id} closed by {op.operation_id}; "
                        f"P/L percent reported as 0"
                    )
                pairs.append(pair)
            if remaining > QUANTITY_EPSILON:
                same.append(_Lot(op, remaining))

    pairs.sort(key=lambda p: (p.closing_date, p.closing_operation_id))
    return pairs, warnings


def _build_pair(direction: str, closing: Operation, lots: List[OpeningLot],
                history: List[Operation]) -> TradePair:
    quantity = sum(lot.quantity for lot in lots)
    average_open_price = sum(lot.quantity * lot.price for lot in lots) / quantity
    holding_period_days = sum(
        lot.quantity * (closing.date - lot.date).total_seconds() / SECONDS_PER_DAY for lot in lots
    ) / quantity

    if direction == 'long':
        profit_loss = (closing.price - average_open_price) * quantity
    else:
        profit_loss = (average_open_price - closing.price) * quantity
    profit_loss_percent = profit_loss / (average_open_price * quantity) * 100 if average_open_price > 0 else 0.0

    return TradePair(
        direction=direction,
        instrument_id=closing.instrument_id,
        closing_operation_id=closing.operation_id,
        closing_date=closing.date,
        close_price=closing.price,
        opening_lots=lots,
        quantity=quantity,
        average_open_price=average_open_price,
        holding_period_days=holding_period_days,
        profit_loss=profit_loss,
        profit_loss_percent=profit_loss_percent,
        minutes_since_previous_open=_minutes_since_previous_open(lots[-1].operation_id, history),
    )


def _minutes_since_previous_open(operation_id: str, history: List[Operation]) -> Optional[float]:
    """Minutes between the latest opening operation of a pair and the same-side operation before it"""
    for index, op in enumerate(history):
        if op.operation_id != operation_id:
            continue
        for previous in reversed(history[:index]):
            if previous.side == op.side:
                return (op.date - previous.date).total_seconds() / 60.0
        return None
    return None


# Detectors: pure predicates over a matched pair
def is_panic_sell(pair: TradePair, config: PatternDetectionConfig) -> bool:
    if pair.profit_loss_percent < -config.panic_sell_loss_percent:
        return True
    return (
        pair.holding_period_days < config.quick_sell_window_days
        and pair.profit_loss_percent < -config.panic_sell_drop_percent
    )


def is_impulse_entry(pair: TradePair, config: PatternDetectionConfig) -> bool:
    return (
        pair.minutes_since_previous_open is not None
        and pair.minutes_since_previous_open < config.impulse_window_minutes
    )


def is_strategic(pair: TradePair, config: PatternDetectionConfig) -> bool:
    return (
        pair.profit_loss_percent > config.strategic_take_profit_percent
        and pair.holding_period_days > config.min_holding_period_days
    )


def is_overtrading(pair: TradePair, config: PatternDetectionConfig) -> bool:
    if pair.holding_period_days < config.day_trading_window_hours / 24.0:
        return True
    return pair.recent_operation_count > config.frequency_threshold


# First match wins
DETECTORS: List[Tuple[PatternCategory, Callable[[TradePair, PatternDetectionConfig], bool]]] = [
    ('panic_sell', is_panic_sell),
    ('impulsive', is_impulse_entry),
    ('strategic', is_strategic),
    ('impulsive', is_overtrading),
]


def classify_pair(pair: TradePair, config: PatternDetectionConfig) -> PatternCategory:
    for category, detector in DETECTORS:
        if detector(pair, config):
            return category
    return 'other'


class TradingPatternRecognizer:
    """Classify closed trades as panic sells, impulsive, strategic or other, and summarize"""

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()

    def analyze(self, operations: Iterable[Operation]) -> PatternAnalysis:
        operations = list(operations)
        executed = [op for op in operations if op.state == 'executed']
        skipped = len(operations) - len(executed)
        if skipped:
            self.logger.debug(f"Ignoring {skipped} operations that are not executed")

        pairs, warnings = match_trade_pairs(executed)
        pairs = [self._classify(pair, executed) for pair in pairs]

        statistics = [self._statistics(category, pairs) for category in PATTERN_CATEGORIES]
        summary = self._summary(pairs, statistics, len(executed))
        recommendations = self._recommendations(statistics, summary)
        rapid_entries = self._rapid_entries(executed)

        for warning in warnings:
            self.logger.warning(warning)
        self.logger.info(
            f"Pattern analysis: {len(executed)} operations, {len(pairs)} pairs, "
            f"risk score {summary.risk_score:.1f}"
        )

        return PatternAnalysis(
            pairs=pairs,
            statistics=statistics,
            summary=summary,
            recommendations=recommendations,
            rapid_entries=rapid_entries,
            warnings=warnings,
        )

    def _classify(self, pair: TradePair, executed: List[Operation]) -> TradePair:
        window_start = pair.closing_date - timedelta(days=self.config.patterns.frequency_window_days)
        recent = sum(
            1 for op in executed
            if op.instrument_id == pair.instrument_id and window_start <= op.date <= pair.closing_date
        )
        pair = pair.model_copy(update={'recent_operation_count': recent})
        return pair.model_copy(update={'category': classify_pair(pair, self.config.patterns)})

    @staticmethod
    def _statistics(category: PatternCategory, pairs: List[TradePair]) -> PatternStats:
        members = [p for p in pairs if p.category == category]
        wins = sum(1 for p in members if p.profit_loss > 0)
        losses = sum(1 for p in members if p.profit_loss < 0)
        decided = wins + losses
        count = len(members)

        return PatternStats(
            category=category,
            total_count=count,
            success_count=wins,
            failure_count=losses,
            break_even_count=count - decided,
            success_rate=wins / decided * 100 if decided else None,
            average_profit_loss_percent=sum(p.profit_loss_percent for p in members) / count if count else 0.0,
            average_holding_period_days=sum(p.holding_period_days for p in members) / count if count else 0.0,
            total_volume=sum(p.quantity * p.close_price for p in members),
        )

    @staticmethod
    def _summary(pairs: List[TradePair], statistics: List[PatternStats], operation_count: int) -> PatternSummary:
        total = len(pairs)
        counts = {s.category: s.total_count for s in statistics}

        most_common = None
        most_successful = None
        if total:
            # Ties resolve in category declaration order
            most_common = max(statistics, key=lambda s: s.total_count).category
            rated = [s for s in statistics if s.success_rate is not None]
            if rated:
                most_successful = max(rated, key=lambda s: s.success_rate).category

        emotional = counts.get('panic_sell', 0) + counts.get('impulsive', 0)
        return PatternSummary(
            total_pairs=total,
            total_operations=operation_count,
            average_profit_loss_percent=sum(p.profit_loss_percent for p in pairs) / total if total else 0.0,
            most_common_category=most_common,
            most_successful_category=most_successful,
            risk_score=min(100.0, emotional / max(total, 1) * 100),
        )

    @staticmethod
    def _recommendations(statistics: List[PatternStats], summary: PatternSummary) -> List[PatternRecommendation]:
        stats = {s.category: s for s in statistics}
        recommendations = []

        if summary.risk_score > RISK_SCORE_CRITICAL:
            recommendations.append(PatternRecommendation(
                category='risk',
                message='Most closed trades look emotional. Stick to a written plan and avoid impulsive decisions.',
                severity='critical',
            ))

        panic = stats['panic_sell']
        if panic.total_count:
            recommendations.append(PatternRecommendation(
                category='panic_sell',
                message=(
                    f"{panic.total_count} panic sells with an average result of "
                    f"{panic.average_profit_loss_percent:.1f}%. Consider setting stop-losses in advance."
                ),
                severity='critical' if panic.total_count > PANIC_SELL_CRITICAL_COUNT else 'warning',
            ))

        impulsive = stats['impulsive']
        if impulsive.total_count:
            rate = impulsive.success_rate
            rate_text = f"{rate:.0f}%" if rate is not None else "n/a"
            recommendations.append(PatternRecommendation(
                category='impulsive',
                message=(
                    f"{impulsive.total_count} impulsive trades, success rate {rate_text}. "
                    f"Avoid rapid re-entries and very short holding periods."
                ),
                severity='critical' if rate is not None and rate < IMPULSIVE_CRITICAL_SUCCESS_RATE else 'warning',
            ))

        strategic = stats['strategic']
        if strategic.success_rate is not None and strategic.success_rate > STRATEGIC_GOOD_SUCCESS_RATE:
            recommendations.append(PatternRecommendation(
                category='strategic',
                message=(
                    f"Planned trades perform well ({strategic.success_rate:.0f}% successful). Keep following the plan."
                ),
                severity='info',
            ))

        return recommendations

    def _rapid_entries(self, executed: List[Operation]) -> List[str]:
        """Ids of buys placed within the impulse window of the previous buy of the same instrument"""
        window = self.config.patterns.impulse_window_minutes
        buys: Dict[str, List[Operation]] = defaultdict(list)
        for op in _chronological(executed):
            if op.side == OrderSide.BUY:
                buys[op.instrument_id].append(op)

        rapid = []
        for instrument_id in sorted(buys):
            history = buys[instrument_id]
            for previous, current in zip(history, history[1:]):
                if (current.date - previous.date).total_seconds() / 60.0 < window:
                    rapid.append(current.operation_id)
        return rapid
