"""Tests for raw position and operation classification."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from engine_config import ClassificationConfig, EngineConfig
from portfolio_engine import Dimension, MetricsCalculator, PositionClassifier, ValidationError, classify_asset_class


def _raw(**overrides):
    raw = {
        "instrumentId": "SBER",
        "quantity": 10,
        "currentPrice": 250.5,
        "averagePrice": 200,
        "currency": "rub",
        "sector": "Financials",
        "instrumentType": "share",
    }
    raw.update(overrides)
    return raw


def test_classify_normalizes_broker_fields() -> None:
    position = PositionClassifier().classify(_raw())

    assert position.instrument_id == "SBER"
    assert position.quantity == 10
    assert position.current_price == 250.5
    assert position.average_price == 200
    assert position.currency == "RUB"
    assert position.sector == "financials"
    assert position.geography == "unknown"
    assert position.asset_class == "stocks"
    assert position.value == pytest.approx(2505.0)
    assert position.unrealized_pnl == pytest.approx(505.0)


def test_missing_cost_basis_stays_unknown() -> None:
    raw = _raw()
    del raw["averagePrice"]

    position = PositionClassifier().classify(raw)

    assert position.average_price is None
    assert position.unrealized_pnl is None
    assert not position.has_cost_basis


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({"quantity": -1}, "negative_quantity"),
        ({"currentPrice": -5}, "negative_price"),
        ({"currentPrice": "abc"}, "not_a_number"),
        ({"currentPrice": float("nan")}, "not_a_number"),
        ({"currency": None}, "missing_field"),
        ({"currency": "XYZ"}, "unknown_currency"),
        ({"instrumentId": ""}, "missing_field"),
    ],
)
def test_invalid_positions_are_rejected(overrides, reason) -> None:
    with pytest.raises(ValidationError) as exc_info:
        PositionClassifier().classify(_raw(**overrides))
    assert exc_info.value.reason == reason


def test_known_currencies_come_from_config() -> None:
    config = EngineConfig(classification=ClassificationConfig(known_currencies=["usd"]))
    classifier = PositionClassifier(config=config)

    assert classifier.classify(_raw(currency="USD")).currency == "USD"
    with pytest.raises(ValidationError):
        classifier.classify(_raw(currency="RUB"))


def test_classify_all_rejects_duplicate_instruments() -> None:
    with pytest.raises(ValidationError) as exc_info:
        PositionClassifier().classify_all([_raw(), _raw()])
    assert exc_info.value.reason == "duplicate_position"


def test_zero_quantity_position_is_kept_with_zero_weight() -> None:
    positions = PositionClassifier().classify_all([_raw(), _raw(instrumentId="GAZP", quantity=0)])

    assert positions.ids == ["SBER", "GAZP"]
    assert positions.get("GAZP").value == 0
    weights = {
        bucket.label: bucket.weight
        for bucket in MetricsCalculator().exposure_by_dimension(positions, Dimension.INSTRUMENT)
    }
    assert weights == {"SBER": pytest.approx(100), "GAZP": 0}


def test_acquired_at_accepts_iso_strings() -> None:
    position = PositionClassifier().classify(_raw(acquiredAt="2023-04-01T10:00:00"))
    assert position.acquired_at == date(2023, 4, 1)


@pytest.mark.parametrize(
    ("instrument_type", "asset_class"),
    [
        ("share", "stocks"),
        ("Stock", "stocks"),
        ("bond", "bonds"),
        ("etf", "etf"),
        ("currency", "cash"),
        ("futures", "alternatives"),
        (None, "alternatives"),
    ],
)
def test_classify_asset_class(instrument_type, asset_class) -> None:
    assert classify_asset_class(instrument_type) == asset_class


def test_classify_operation_detects_side_from_type() -> None:
    operation = PositionClassifier().classify_operation(
        {
            "id": "op-1",
            "figi": "SBER",
            "operationType": "OPERATION_TYPE_SELL",
            "date": "2024-01-05T12:00:00",
            "quantity": 5,
            "price": 260,
        }
    )

    assert operation.operation_id == "op-1"
    assert operation.instrument_id == "SBER"
    assert operation.side == "sell"
    assert operation.date == datetime(2024, 1, 5, 12, 0)
    assert operation.state == "executed"


def test_classify_operation_rejects_non_trades() -> None:
    with pytest.raises(ValidationError) as exc_info:
        PositionClassifier().classify_operation(
            {"id": "op-2", "figi": "SBER", "operationType": "OPERATION_TYPE_DIVIDEND",
             "date": "2024-01-05", "quantity": 1, "price": 1}
        )
    assert exc_info.value.reason == "unsupported_operation"
