"""Input boundary: turns raw broker records into typed positions and operations"""

from datetime import date, datetime
from typing import Any, Iterable, List, Mapping, Optional
import logging
import math
from pydantic import ValidationError as PydanticValidationError
from engine_config import EngineConfig, get_config
from .exceptions import ValidationError
from .models import UNKNOWN, Operation, OrderSide, Position, PositionSet

# camelCase broker field -> Position field
POSITION_FIELD_ALIASES = {
    'instrumentId': 'instrument_id',
    'figi': 'instrument_id',
    'ticker': 'instrument_id',
    'currentPrice': 'current_price',
    'averagePrice': 'average_price',
    'averagePositionPrice': 'average_price',
    'instrumentType': 'instrument_type',
    'acquiredAt': 'acquired_at',
    'purchaseDate': 'acquired_at',
}

OPERATION_FIELD_ALIASES = {
    'id': 'operation_id',
    'operationId': 'operation_id',
    'instrumentId': 'instrument_id',
    'figi': 'instrument_id',
    'operationType': 'type',
}


def classify_asset_class(instrument_type: Optional[str]) -> str:
    """Normalize a broker instrument type into an asset class"""
    if not instrument_type:
        return 'alternatives'
    kind = instrument_type.lower()
    if 'stock' in kind or 'share' in kind:
        return 'stocks'
    if 'bond' in kind:
        return 'bonds'
    if 'etf' in kind:
        return 'etf'
    if 'currency' in kind or 'cash' in kind:
        return 'cash'
    return 'alternatives'


def classify_side(operation_type: Optional[str]) -> Optional[str]:
    """Detect buy/sell from broker operation type strings such as OPERATION_TYPE_BUY or buy_card"""
    if not operation_type:
        return None
    kind = operation_type.lower()
    if 'sell' in kind:
        return OrderSide.SELL
    if 'buy' in kind:
        return OrderSide.BUY
    return None


class PositionClassifier:
    """Validate and tag raw positions and operations before they enter the engine"""

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()
        self.known_currencies = set(self.config.classification.known_currencies)

    def classify(self, raw: Mapping[str, Any]) -> Position:
        """
        Normalize a raw broker position.
        Missing cost basis stays None; missing sector/geography become "unknown".
        """
        data = self._normalize_keys(raw, POSITION_FIELD_ALIASES)
        instrument_id = data.get('instrument_id')
        if not instrument_id:
            raise ValidationError("Position is missing an instrument identifier", reason="missing_field")

        quantity = self._number(data, 'quantity', instrument_id)
        current_price = self._number(data, 'current_price', instrument_id)
        average_price = self._optional_number(data, 'average_price', instrument_id)

        if quantity < 0:
            raise ValidationError(f"Negative quantity for {instrument_id}: {quantity}", reason="negative_quantity")
        if current_price < 0:
            raise ValidationError(f"Negative price for {instrument_id}: {current_price}", reason="negative_price")
        if average_price is not None and average_price < 0:
            raise ValidationError(
                f"Negative average price for {instrument_id}: {average_price}", reason="negative_price"
            )

        currency = self._currency(data.get('currency'), instrument_id)
        instrument_type = self._tag(data.get('instrument_type'))

        if average_price is None:
            self.logger.debug(f"No cost basis for {instrument_id}, tax estimates will be flagged unknown")

        try:
            return Position(
                instrument_id=str(instrument_id),
                quantity=quantity,
                current_price=current_price,
                average_price=average_price,
                currency=currency,
                sector=self._tag(data.get('sector')),
                geography=self._tag(data.get('geography')),
                instrument_type=instrument_type,
                asset_class=classify_asset_class(instrument_type),
                name=data.get('name'),
                acquired_at=self._date(data.get('acquired_at'), instrument_id),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid position {instrument_id}: {e}") from e

    def classify_all(self, raws: Iterable[Mapping[str, Any]]) -> PositionSet:
        """Classify a batch; duplicate identifiers are rejected by PositionSet"""
        positions = [self.classify(raw) for raw in raws]
        self.logger.debug(f"Classified {len(positions)} positions")
        return PositionSet(positions=positions)

    def classify_operation(self, raw: Mapping[str, Any]) -> Operation:
        """Normalize a raw historical operation for the pattern recognizer"""
        data = self._normalize_keys(raw, OPERATION_FIELD_ALIASES)
        operation_id = data.get('operation_id')
        instrument_id = data.get('instrument_id')
        if not operation_id or not instrument_id:
            raise ValidationError("Operation is missing an id or instrument identifier", reason="missing_field")

        side = data.get('side') or classify_side(data.get('type'))
        if side not in (OrderSide.BUY, OrderSide.SELL):
            raise ValidationError(
                f"Operation {operation_id} is neither a buy nor a sell: {data.get('type')}",
                reason="unsupported_operation"
            )

        quantity = self._number(data, 'quantity', operation_id)
        price = self._number(data, 'price', operation_id)
        if quantity <= 0:
            raise ValidationError(f"Operation {operation_id} has non-positive quantity", reason="negative_quantity")
        if price < 0:
            raise ValidationError(f"Operation {operation_id} has negative price", reason="negative_price")

        try:
            return Operation(
                operation_id=str(operation_id),
                instrument_id=str(instrument_id),
                side=side,
                date=data.get('date'),
                quantity=quantity,
                price=price,
                state=data.get('state', 'executed'),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid operation {operation_id}: {e}") from e

    def classify_operations(self, raws: Iterable[Mapping[str, Any]]) -> List[Operation]:
        return [self.classify_operation(raw) for raw in raws]

    @staticmethod
    def _normalize_keys(raw: Mapping[str, Any], aliases: Mapping[str, str]) -> dict:
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Expected a mapping, got {type(raw).__name__}", reason="invalid_record")
        data = {}
        for key, value in raw.items():
            target = aliases.get(key, key)
            # snake_case keys win over aliases when both are present
            if target in data and key != target:
                continue
            data[target] = value
        return data

    @staticmethod
    def _number(data: Mapping[str, Any], field: str, owner: str) -> float:
        if data.get(field) is None:
            raise ValidationError(f"{owner} is missing {field}", reason="missing_field")
        try:
            value = float(data[field])
        except (TypeError, ValueError) as e:
            raise ValidationError(f"{owner} has non-numeric {field}: {data[field]!r}", reason="not_a_number") from e
        if math.isnan(value) or math.isinf(value):
            raise ValidationError(f"{owner} has non-finite {field}", reason="not_a_number")
        return value

    def _optional_number(self, data: Mapping[str, Any], field: str, owner: str) -> Optional[float]:
        if data.get(field) is None:
            return None
        return self._number(data, field, owner)

    def _currency(self, currency: Optional[str], instrument_id: str) -> str:
        if not currency:
            raise ValidationError(f"{instrument_id} is missing currency", reason="missing_field")
        code = str(currency).strip().upper()
        if code not in self.known_currencies:
            raise ValidationError(f"Unknown currency code for {instrument_id}: {currency}", reason="unknown_currency")
        return code

    @staticmethod
    def _tag(value: Optional[str]) -> str:
        if value is None or not str(value).strip():
            return UNKNOWN
        return str(value).strip().lower()

    @staticmethod
    def _date(value: Any, owner: str) -> Optional[date]:
        if value is None or isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, datetime):
            return value.date()
        try:
            return datetime.fromisoformat(str(value)).date()
        except ValueError as e:
            raise ValidationError(f"{owner} has invalid date {value!r}", reason="invalid_date") from e
