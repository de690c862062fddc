"""What-if simulation: apply hypothetical changes to a position set and diff the metrics"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import logging
from pydantic import TypeAdapter
from .exceptions import InsufficientDataError
from .metrics import MetricsCalculator, weight_map
from .models import (
    AddPosition, Dimension, MarketEvent, Position, PositionSet, PriceChange, QuantityChange, RemovePosition,
    ScenarioCase, ScenarioChange, ScenarioComparison, ScenarioResult, ScenarioSnapshot,
)

_CHANGE_ADAPTER = TypeAdapter(ScenarioChange)


class ScenarioApplier:
    """Apply scenario changes in order and compare before/after metrics"""

    def __init__(self, metrics: Optional[MetricsCalculator] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.metrics = metrics or MetricsCalculator(logger=self.logger)

    def apply(self, positions: Union[PositionSet, Iterable[Position]],
              changes: Sequence[Union[ScenarioChange, Dict[str, Any]]],
              cash_balance: float = 0.0) -> ScenarioResult:
        """
        Apply `changes` to `positions` in array order.
        Later changes see the effect of earlier ones on the same position.
        Returns ScenarioResult with base/scenario snapshots and deltas.
        """
        base_positions = positions if isinstance(positions, PositionSet) else PositionSet(positions=list(positions))
        parsed = [self._parse_change(change) for change in changes]

        warnings: List[str] = []
        working = base_positions
        for change in parsed:
            working, change_warnings = self._apply_change(working, change)
            warnings.extend(change_warnings)

        for warning in warnings:
            self.logger.warning(warning)

        base_snapshot = self.snapshot(base_positions, cash_balance)
        scenario_snapshot = self.snapshot(working, cash_balance)

        value_change = scenario_snapshot.total_value - base_snapshot.total_value
        value_change_percent = (
            value_change / base_snapshot.total_value * 100 if base_snapshot.total_value > 0 else 0.0
        )

        hhi_before = base_snapshot.metrics.hhi
        hhi_after = scenario_snapshot.metrics.hhi

        self.logger.debug(
            f"Scenario with {len(parsed)} changes: value {base_snapshot.total_value:,.2f} -> "
            f"{scenario_snapshot.total_value:,.2f} ({value_change_percent:+.2f}%)"
        )

        return ScenarioResult(
            label=self._label(parsed),
            base_snapshot=base_snapshot,
            scenario_snapshot=scenario_snapshot,
            value_change=value_change,
            value_change_percent=value_change_percent,
            hhi_before=hhi_before,
            hhi_after=hhi_after,
            hhi_delta=hhi_after - hhi_before,
            diversification_before=base_snapshot.metrics.diversification_score,
            diversification_after=scenario_snapshot.metrics.diversification_score,
            sector_weight_changes=self._weight_deltas(base_positions, working, Dimension.SECTOR),
            geography_weight_changes=self._weight_deltas(base_positions, working, Dimension.GEOGRAPHY),
            currency_weight_changes=self._weight_deltas(base_positions, working, Dimension.CURRENCY),
            applied_changes=parsed,
            warnings=warnings,
            created_at=datetime.now(timezone.utc),
        )

    def snapshot(self, positions: PositionSet, cash_balance: float = 0.0) -> ScenarioSnapshot:
        invested_value = positions.total_value
        return ScenarioSnapshot(
            positions=positions,
            cash_balance=cash_balance,
            invested_value=invested_value,
            total_value=invested_value + cash_balance,
            metrics=self.metrics.calculate(positions),
        )

    @staticmethod
    def _parse_change(change: Union[ScenarioChange, Dict[str, Any]]) -> ScenarioChange:
        if isinstance(change, dict):
            return _CHANGE_ADAPTER.validate_python(change)
        return change

    def _apply_change(self, positions: PositionSet, change: ScenarioChange) -> Tuple[PositionSet, List[str]]:
        if isinstance(change, PriceChange):
            return self._apply_price_change(positions, change)
        if isinstance(change, QuantityChange):
            return self._apply_quantity_change(positions, change)
        if isinstance(change, AddPosition):
            return self._apply_add_position(positions, change)
        if isinstance(change, RemovePosition):
            return self._apply_remove_position(positions, change)
        if isinstance(change, MarketEvent):
            return self._apply_market_event(positions, change)
        raise TypeError(f"Unsupported scenario change: {type(change).__name__}")

    def _apply_price_change(self, positions: PositionSet, change: PriceChange) -> Tuple[PositionSet, List[str]]:
        position = positions.get(change.instrument_id)
        if position is None:
            return positions, [f"price_change skipped: {change.instrument_id} is not in the portfolio"]

        warnings = []
        new_price = position.current_price * (1 + change.percent / 100)
        if new_price < 0:
            warnings.append(
                f"price_change of {change.percent}% on {change.instrument_id} would make the price negative; "
                f"clamped to 0"
            )
            new_price = 0.0
        return positions.replace(position.model_copy(update={'current_price': new_price})), warnings

    def _apply_quantity_change(self, positions: PositionSet,
                               change: QuantityChange) -> Tuple[PositionSet, List[str]]:
        position = positions.get(change.instrument_id)
        if position is None:
            return positions, [f"quantity_change skipped: {change.instrument_id} is not in the portfolio"]

        warnings = []
        new_quantity = position.quantity + change.delta
        if new_quantity < 0:
            warnings.append(
                f"quantity_change of {change.delta} on {change.instrument_id} would leave "
                f"{new_quantity} units; clamped to 0"
            )
            new_quantity = 0.0
        return positions.replace(position.model_copy(update={'quantity': new_quantity})), warnings

    def _apply_add_position(self, positions: PositionSet, change: AddPosition) -> Tuple[PositionSet, List[str]]:
        added = change.position
        # A hypothetical purchase has its purchase price as cost basis
        purchase_price = added.average_price if added.average_price is not None else added.current_price

        existing = positions.get(added.instrument_id)
        if existing is None:
            return positions.with_position(added.model_copy(update={'average_price': purchase_price})), []

        merged_quantity = existing.quantity + added.quantity
        if existing.average_price is None:
            average_price = None
        elif merged_quantity > 0:
            average_price = (
                existing.average_price * existing.quantity + purchase_price * added.quantity
            ) / merged_quantity
        else:
            average_price = existing.average_price

        merged = existing.model_copy(update={'quantity': merged_quantity, 'average_price': average_price})
        return positions.replace(merged), []

    def _apply_remove_position(self, positions: PositionSet,
                               change: RemovePosition) -> Tuple[PositionSet, List[str]]:
        if positions.get(change.instrument_id) is None:
            return positions, [f"remove_position skipped: {change.instrument_id} is not in the portfolio"]
        return positions.without(change.instrument_id), []

    def _apply_market_event(self, positions: PositionSet, change: MarketEvent) -> Tuple[PositionSet, List[str]]:
        updated = []
        matched = 0
        for position in positions.positions:
            multiplier = 1.0
            hit = False
            for multipliers, key in (
                (change.instrument_multipliers, position.instrument_id),
                (change.sector_multipliers, position.sector),
                (change.asset_class_multipliers, position.asset_class),
            ):
                if key in multipliers:
                    multiplier *= multipliers[key]
                    hit = True
            if hit:
                matched += 1
                position = position.model_copy(update={'current_price': position.current_price * multiplier})
            updated.append(position)

        warnings = []
        if matched == 0:
            name = f" '{change.label}'" if change.label else ""
            warnings.append(f"market_event{name} matched no positions")
        return PositionSet(positions=updated), warnings

    @staticmethod
    def _weight_deltas(before: PositionSet, after: PositionSet, dimension: Dimension) -> Dict[str, float]:
        before_weights = weight_map(before, dimension)
        after_weights = weight_map(after, dimension)
        labels = sorted(set(before_weights) | set(after_weights))
        return {label: after_weights.get(label, 0.0) - before_weights.get(label, 0.0) for label in labels}

    @staticmethod
    def _label(changes: List[ScenarioChange]) -> str:
        if not changes:
            return "Empty scenario"
        if len(changes) == 1:
            return changes[0].label or changes[0].type
        return f"{len(changes)} changes"


def compare_scenarios(results: Sequence[ScenarioResult]) -> ScenarioComparison:
    """Best case, worst case and value range across scenario results"""
    if not results:
        raise InsufficientDataError("No scenarios to compare", reason="no_scenarios")

    values = [r.scenario_snapshot.total_value for r in results]
    best_index = max(range(len(values)), key=lambda i: (values[i], -i))
    worst_index = min(range(len(values)), key=lambda i: (values[i], i))

    def case(index: int) -> ScenarioCase:
        return ScenarioCase(index=index, label=results[index].label, value=values[index])

    return ScenarioComparison(
        results=list(results),
        best_case=case(best_index),
        worst_case=case(worst_index),
        value_min=min(values),
        value_max=max(values),
        value_spread=max(values) - min(values),
    )
