"""Tests for trade execution ordering."""

from __future__ import annotations

from portfolio_engine import TradeOrder, TradeSequencer


def _order(order_id: str, side: str, total: float, harvests_loss: bool = False) -> TradeOrder:
    return TradeOrder(
        order_id=order_id,
        instrument_id=order_id.upper(),
        side=side,
        quantity=1,
        estimated_price=total,
        estimated_total=total,
        rationale="test",
        bucket=order_id.upper(),
        harvests_loss=harvests_loss,
    )


def test_sells_come_before_buys() -> None:
    orders = [_order("a", "buy", 500), _order("b", "sell", 100), _order("c", "buy", 900)]

    sequenced = TradeSequencer().optimize(orders)

    assert [order.order_id for order in sequenced] == ["b", "c", "a"]


def test_loss_harvesting_sells_lead() -> None:
    orders = [
        _order("a", "sell", 1000),
        _order("b", "sell", 100, harvests_loss=True),
        _order("c", "buy", 50),
    ]

    sequenced = TradeSequencer().optimize(orders)

    assert [order.order_id for order in sequenced] == ["b", "a", "c"]


def test_equal_keys_keep_input_order() -> None:
    orders = [_order("x", "buy", 100), _order("y", "buy", 100)]
    assert [order.order_id for order in TradeSequencer().optimize(orders)] == ["x", "y"]


def test_equal_value_sell_precedes_buy() -> None:
    orders = [_order("a", "buy", 1000), _order("b", "sell", 1000)]
    assert [order.side for order in TradeSequencer().optimize(orders)] == ["sell", "buy"]
