"""Compare current allocation against a target allocation"""

from typing import Iterable, List, Optional, Union
import logging
from engine_config import EngineConfig, get_config
from .exceptions import ConfigurationError
from .metrics import weight_map
from .models import (
    Deviation, DeviationAnalysis, DeviationDirection, EstimatedImpact, Position, PositionSet, TargetAllocation,
)

MAX_RISK_REDUCTION = 20.0
MAX_DIVERSIFICATION_IMPROVEMENT = 15.0


class DeviationAnalyzer:
    """Per-bucket over/under-weight analysis"""

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()

    def validate_target(self, target: TargetAllocation) -> None:
        """Fail fast on targets that do not sum to 100; never normalize"""
        tolerance = self.config.deviation.target_sum_tolerance_percent

        negative = sorted(label for label, weight in target.weights.items() if weight < 0)
        if negative:
            raise ConfigurationError(
                f"Target weights must be non-negative: {', '.join(negative)}", reason="negative_target_weight"
            )

        total = target.total_weight
        if abs(total - 100.0) > tolerance:
            self.logger.error(f"Target allocation sums to {total:.4f}%, outside 100 +/- {tolerance}")
            raise ConfigurationError(
                f"Target weights sum to {total:.4f}%, expected 100% +/- {tolerance}", reason="target_sum_mismatch"
            )

    def analyze(self, positions: Union[PositionSet, Iterable[Position]],
                target: TargetAllocation) -> DeviationAnalysis:
        """
        Compute delta = current - target for every bucket held or targeted.
        Buckets only present in the target have a current weight of 0.
        """
        self.validate_target(target)

        if not isinstance(positions, PositionSet):
            positions = PositionSet(positions=list(positions))

        total_value = positions.total_value
        current = weight_map(positions, target.dimension)
        labels = set(current) | set(target.weights)

        deviations = [
            self._deviation(label, target, current.get(label, 0.0), target.weights.get(label, 0.0), total_value)
            for label in labels
        ]
        deviations.sort(key=lambda d: (-abs(d.delta), d.label))

        high_priority_count = sum(1 for d in deviations if d.priority == 1)
        needs_rebalancing = any(d.direction != 'on_target' for d in deviations)
        max_abs_delta = max((abs(d.delta) for d in deviations), default=0.0)

        self.logger.debug(
            f"Deviation analysis on {target.dimension.value}: {len(deviations)} buckets, "
            f"max drift {max_abs_delta:.2f}pp, rebalance needed: {needs_rebalancing}"
        )

        return DeviationAnalysis(
            dimension=target.dimension,
            total_value=total_value,
            deviations=deviations,
            total_deviation_score=sum((d.delta / 100.0) ** 2 for d in deviations),
            high_priority_count=high_priority_count,
            needs_rebalancing=needs_rebalancing,
            max_abs_delta=max_abs_delta,
            estimated_impact=self._estimate_impact(deviations),
        )

    def _deviation(self, label: str, target: TargetAllocation, current_weight: float,
                   target_weight: float, total_value: float) -> Deviation:
        delta = current_weight - target_weight
        return Deviation(
            label=label,
            dimension=target.dimension,
            current_weight=current_weight,
            target_weight=target_weight,
            delta=delta,
            deviation_amount=delta / 100.0 * total_value,
            direction=self._direction(delta),
            priority=self._priority(delta),
        )

    def _direction(self, delta: float) -> DeviationDirection:
        threshold = self.config.deviation.on_target_threshold_percent
        if delta > threshold:
            return 'over'
        if delta < -threshold:
            return 'under'
        return 'on_target'

    def _priority(self, delta: float) -> int:
        magnitude = abs(delta)
        if magnitude > self.config.deviation.high_priority_threshold_percent:
            return 1
        if magnitude > self.config.deviation.on_target_threshold_percent:
            return 2
        return 3

    @staticmethod
    def _estimate_impact(deviations: List[Deviation]) -> EstimatedImpact:
        """Rough benefit of closing the deviations, scaled from the mean absolute drift"""
        if not deviations:
            return EstimatedImpact(risk_reduction=0.0, diversification_improvement=0.0)

        average_drift = sum(abs(d.delta) for d in deviations) / len(deviations)
        return EstimatedImpact(
            risk_reduction=round(min(average_drift, MAX_RISK_REDUCTION), 1),
            diversification_improvement=round(min(average_drift * 0.5, MAX_DIVERSIFICATION_IMPROVEMENT), 1),
        )
