"""Tests for transaction cost and tax estimation."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from engine_config import CostModelConfig, EngineConfig
from portfolio_engine import CostEstimator, Operation, Position, PositionSet, TaxEstimator, TradeOrder

AS_OF = date(2024, 6, 1)


def _order(order_id: str, instrument_id: str, side: str, quantity: float, price: float) -> TradeOrder:
    return TradeOrder(
        order_id=order_id,
        instrument_id=instrument_id,
        side=side,
        quantity=quantity,
        estimated_price=price,
        estimated_total=quantity * price,
        rationale="test",
        bucket=instrument_id,
    )


def _positions() -> PositionSet:
    return PositionSet(
        positions=[
            Position(instrument_id="GAIN", quantity=10, current_price=200, average_price=150,
                     acquired_at=date(2024, 1, 1)),
            Position(instrument_id="LOSS", quantity=10, current_price=100, average_price=125,
                     acquired_at=date(2024, 1, 1)),
            Position(instrument_id="OLD", quantity=10, current_price=300, average_price=100,
                     acquired_at=date(2019, 1, 1)),
            Position(instrument_id="NOBASIS", quantity=10, current_price=50),
        ]
    )


def test_small_order_pays_minimum_commission() -> None:
    commission, spread, market_impact = CostEstimator().cost_components(400)

    assert commission == 1.0
    assert spread == pytest.approx(0.4)
    assert market_impact == 0


def test_large_order_pays_market_impact() -> None:
    commission, spread, market_impact = CostEstimator().cost_components(2_000_000)

    assert commission == pytest.approx(600)
    assert spread == pytest.approx(2000)
    assert market_impact == pytest.approx(1000)


def test_cost_breakdown_totals() -> None:
    orders = [_order("o1", "GAIN", "sell", 2, 200), _order("o2", "LOSS", "buy", 100, 100)]
    breakdown = CostEstimator().estimate(orders)

    # 400: 1.00 + 0.40; 10000: 3.00 + 10.00
    assert breakdown.total_traded_value == 10400
    assert breakdown.total_cost == pytest.approx(14.4)
    assert breakdown.cost_as_percent == pytest.approx(14.4 / 10400 * 100)
    assert [item.order_id for item in breakdown.itemized] == ["o1", "o2"]


def test_flat_fee_is_configurable() -> None:
    config = EngineConfig(costs=CostModelConfig(flat_fee=5, commission_rate=0, min_commission=0, spread_rate=0))
    assert CostEstimator(config=config).order_cost(_order("o1", "GAIN", "buy", 1, 10)) == 5


def test_annotate_sets_transaction_cost() -> None:
    annotated = CostEstimator().annotate([_order("o1", "GAIN", "buy", 2, 200)])
    assert annotated[0].transaction_cost == pytest.approx(1.4)


def test_short_term_gain_is_taxed() -> None:
    estimate = TaxEstimator().estimate([_order("o1", "GAIN", "sell", 2, 200)], _positions(), as_of=AS_OF)

    assert estimate.short_term_gains == pytest.approx(100)
    assert estimate.estimated_tax_liability == pytest.approx(13)
    assert estimate.is_complete


def test_long_term_gain_uses_long_term_rate() -> None:
    estimate = TaxEstimator().estimate([_order("o1", "OLD", "sell", 1, 300)], _positions(), as_of=AS_OF)

    assert estimate.long_term_gains == pytest.approx(200)
    assert estimate.short_term_gains == 0
    assert estimate.estimated_tax_liability == 0


def test_losses_offset_gains_and_are_harvestable() -> None:
    orders = [_order("o1", "GAIN", "sell", 2, 200), _order("o2", "LOSS", "sell", 2, 100)]
    estimate = TaxEstimator().estimate(orders, _positions(), as_of=AS_OF)

    assert estimate.realized_losses == pytest.approx(50)
    assert estimate.estimated_tax_liability == pytest.approx(50 * 0.13)
    opportunity = estimate.harvesting_opportunities[0]
    assert opportunity.instrument_id == "LOSS"
    assert opportunity.potential_tax_savings == pytest.approx(6.5)
    assert not opportunity.wash_sale_risk


def test_recent_buy_flags_wash_sale_risk() -> None:
    recent = [
        Operation(operation_id="b1", instrument_id="LOSS", side="buy", date=datetime(2024, 5, 20),
                  quantity=1, price=100),
    ]
    estimate = TaxEstimator().estimate(
        [_order("o2", "LOSS", "sell", 2, 100)], _positions(), as_of=AS_OF, recent_operations=recent
    )

    assert estimate.harvesting_opportunities[0].wash_sale_risk
    assert any("may be disallowed" in warning for warning in estimate.warnings)


def test_unknown_cost_basis_is_flagged_not_zero() -> None:
    estimate = TaxEstimator().estimate([_order("o3", "NOBASIS", "sell", 1, 50)], _positions(), as_of=AS_OF)

    assert not estimate.is_complete
    assert estimate.unknown_cost_basis == ["NOBASIS"]
    assert estimate.warnings

    annotated = TaxEstimator().annotate([_order("o3", "NOBASIS", "sell", 1, 50)], _positions(), as_of=AS_OF)
    assert annotated[0].tax_status == "unknown"
    assert annotated[0].estimated_tax is None


def test_annotate_per_order_tax() -> None:
    orders = [_order("o1", "GAIN", "sell", 2, 200), _order("o2", "LOSS", "buy", 1, 100)]
    annotated = TaxEstimator().annotate(orders, _positions(), as_of=AS_OF)

    assert annotated[0].realized_gain == pytest.approx(100)
    assert annotated[0].estimated_tax == pytest.approx(13)
    assert annotated[0].tax_status == "estimated"
    assert annotated[1].tax_status == "not_applicable"
