"""Tests for current vs target allocation analysis."""

from __future__ import annotations

import pytest

from engine_config import DeviationConfig, EngineConfig
from portfolio_engine import (
    PRESET_ALLOCATIONS,
    ConfigurationError,
    DeviationAnalyzer,
    Dimension,
    Position,
    PositionSet,
    TargetAllocation,
)


def _two_positions() -> PositionSet:
    return PositionSet(
        positions=[
            Position(instrument_id="A", quantity=10, current_price=100),
            Position(instrument_id="B", quantity=5, current_price=200),
        ]
    )


@pytest.mark.parametrize("a_weight", [69.0, 71.0])
def test_target_outside_tolerance_fails(a_weight) -> None:
    target = TargetAllocation(weights={"A": a_weight, "B": 30})
    with pytest.raises(ConfigurationError) as exc_info:
        DeviationAnalyzer().analyze(_two_positions(), target)
    assert exc_info.value.reason == "target_sum_mismatch"


def test_target_inside_tolerance_is_accepted() -> None:
    target = TargetAllocation(weights={"A": 70.3, "B": 30})
    analysis = DeviationAnalyzer().analyze(_two_positions(), target)
    assert analysis.get("A").target_weight == 70.3


def test_negative_target_weight_fails() -> None:
    target = TargetAllocation(weights={"A": 110, "B": -10})
    with pytest.raises(ConfigurationError) as exc_info:
        DeviationAnalyzer().analyze(_two_positions(), target)
    assert exc_info.value.reason == "negative_target_weight"


def test_equal_holdings_against_70_30_target() -> None:
    analysis = DeviationAnalyzer().analyze(_two_positions(), TargetAllocation(weights={"A": 70, "B": 30}))

    a = analysis.get("A")
    b = analysis.get("B")
    assert a.current_weight == pytest.approx(50)
    assert a.delta == pytest.approx(-20)
    assert a.direction == "under"
    assert a.deviation_amount == pytest.approx(-400)
    assert b.delta == pytest.approx(20)
    assert b.direction == "over"
    assert b.priority == 1
    assert analysis.high_priority_count == 2
    assert analysis.needs_rebalancing
    assert analysis.max_abs_delta == pytest.approx(20)
    assert analysis.total_deviation_score == pytest.approx(0.08)
    assert analysis.estimated_impact.risk_reduction == 20.0
    assert analysis.estimated_impact.diversification_improvement == 10.0


def test_on_target_and_priority_thresholds() -> None:
    positions = [
        Position(instrument_id="A", quantity=1, current_price=51.5),
        Position(instrument_id="B", quantity=1, current_price=48.5),
    ]
    analysis = DeviationAnalyzer().analyze(positions, TargetAllocation(weights={"A": 50, "B": 50}))

    assert analysis.get("A").direction == "on_target"
    assert analysis.get("A").priority == 3
    assert not analysis.needs_rebalancing


def test_medium_priority_deviation() -> None:
    positions = [
        Position(instrument_id="A", quantity=1, current_price=54),
        Position(instrument_id="B", quantity=1, current_price=46),
    ]
    analysis = DeviationAnalyzer().analyze(positions, TargetAllocation(weights={"A": 50, "B": 50}))

    assert analysis.get("A").priority == 2
    assert analysis.get("A").direction == "over"
    assert analysis.high_priority_count == 0


def test_target_only_buckets_have_zero_current_weight() -> None:
    analysis = DeviationAnalyzer().analyze(
        _two_positions(), TargetAllocation(weights={"A": 40, "B": 40, "C": 20})
    )

    c = analysis.get("C")
    assert c.current_weight == 0
    assert c.delta == pytest.approx(-20)
    assert c.direction == "under"


def test_untargeted_holdings_are_over_weight() -> None:
    analysis = DeviationAnalyzer().analyze(_two_positions(), TargetAllocation(weights={"A": 100}))
    assert analysis.get("B").delta == pytest.approx(50)
    assert [d.label for d in analysis.over_weight()] == ["B"]
    assert [d.label for d in analysis.under_weight()] == ["A"]


def test_preset_asset_class_target() -> None:
    positions = [
        Position(instrument_id="S", quantity=1, current_price=600, asset_class="stocks"),
        Position(instrument_id="O", quantity=1, current_price=300, asset_class="bonds"),
        Position(instrument_id="E", quantity=1, current_price=100, asset_class="etf"),
    ]
    analysis = DeviationAnalyzer().analyze(positions, PRESET_ALLOCATIONS["moderate"])

    assert analysis.dimension == Dimension.ASSET_CLASS
    assert not analysis.needs_rebalancing
    assert analysis.max_abs_delta == pytest.approx(0, abs=1e-9)


def test_tolerance_is_configurable() -> None:
    config = EngineConfig(deviation=DeviationConfig(target_sum_tolerance_percent=1.0))
    analysis = DeviationAnalyzer(config=config).analyze(
        _two_positions(), TargetAllocation(weights={"A": 71, "B": 30})
    )
    assert analysis.get("A").delta == pytest.approx(-21)
