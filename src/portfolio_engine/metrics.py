"""Concentration, diversification and exposure metrics"""

from typing import Callable, Dict, Iterable, List, Optional, Union
import logging
from .models import (
    ConcentrationRisk, Dimension, ExposureBucket, PortfolioMetrics, Position, PositionSet, dimension_label,
)

HIGH_CONCENTRATION_HHI = 0.25
MEDIUM_CONCENTRATION_HHI = 0.15

DimensionSelector = Union[Dimension, Callable[[Position], str]]


def hhi(weights: Iterable[float]) -> float:
    """
    Herfindahl-Hirschman Index on the 0-1 scale.
    `weights` are percentages (0-100). An empty portfolio has an HHI of 0.
    """
    return sum(((weight / 100.0) ** 2 for weight in weights), 0.0)


def hhi_to_points(value: float) -> float:
    """Convert a 0-1 HHI to the 0-10000 points scale used in reports"""
    return value * 10000.0


def concentration_risk(value: float) -> ConcentrationRisk:
    if value >= HIGH_CONCENTRATION_HHI:
        return 'high'
    if value >= MEDIUM_CONCENTRATION_HHI:
        return 'medium'
    return 'low'


def diversification_score(value: float) -> float:
    """Higher is better: 1 - HHI"""
    return 1.0 - value


def _selector(selector: DimensionSelector) -> Callable[[Position], str]:
    if isinstance(selector, Dimension):
        return lambda position: dimension_label(position, selector)
    return selector


def _positions(positions: Union[PositionSet, Iterable[Position]]) -> List[Position]:
    if isinstance(positions, PositionSet):
        return list(positions.positions)
    return list(positions)


def exposure_by_dimension(positions: Union[PositionSet, Iterable[Position]],
                          selector: DimensionSelector) -> List[ExposureBucket]:
    """Group positions along a dimension; sorted by weight desc, then label"""
    members = _positions(positions)
    label_of = _selector(selector)

    groups: Dict[str, Dict[str, float]] = {}
    for position in members:
        group = groups.setdefault(label_of(position), {'value': 0.0, 'count': 0})
        group['value'] += position.value
        group['count'] += 1

    total_value = sum(p.value for p in members)

    buckets = [
        ExposureBucket(
            label=label,
            value=group['value'],
            weight=(group['value'] / total_value * 100) if total_value > 0 else 0.0,
            count=int(group['count']),
        )
        for label, group in groups.items()
    ]
    buckets.sort(key=lambda b: (-b.weight, b.label))
    return buckets


def weight_map(positions: Union[PositionSet, Iterable[Position]], selector: DimensionSelector) -> Dict[str, float]:
    """Label -> weight percent"""
    return {bucket.label: bucket.weight for bucket in exposure_by_dimension(positions, selector)}


class MetricsCalculator:
    """Compute portfolio-level risk and exposure metrics"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def calculate(self, positions: Union[PositionSet, Iterable[Position]]) -> PortfolioMetrics:
        members = _positions(positions)
        position_weights = exposure_by_dimension(members, Dimension.INSTRUMENT)
        index = hhi(bucket.weight for bucket in position_weights)
        total_value = sum(p.value for p in members)

        if not members:
            self.logger.debug("Calculating metrics for an empty portfolio")

        return PortfolioMetrics(
            total_value=total_value,
            position_count=len(members),
            hhi=index,
            concentration_risk=concentration_risk(index),
            diversification_score=diversification_score(index),
            largest_weight=position_weights[0].weight if position_weights else 0.0,
            currency_exposure=exposure_by_dimension(members, Dimension.CURRENCY),
            sector_exposure=exposure_by_dimension(members, Dimension.SECTOR),
            geography_exposure=exposure_by_dimension(members, Dimension.GEOGRAPHY),
            asset_class_exposure=exposure_by_dimension(members, Dimension.ASSET_CLASS),
        )

    def exposure_by_dimension(self, positions: Union[PositionSet, Iterable[Position]],
                              selector: DimensionSelector) -> List[ExposureBucket]:
        return exposure_by_dimension(positions, selector)
