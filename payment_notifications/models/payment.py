"""
Payment data models.

Represents payment details, the webhook message customers receive and
the stored notification record.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Union

from ..errors import ValidationError
from .customer import _parse_timestamp


# Minor-unit digits for currencies that do not use two
CURRENCY_EXPONENTS = {
    'JPY': 0,
    'KRW': 0,
    'VND': 0,
    'BHD': 3,
    'KWD': 3,
    'OMR': 3,
}

DETAIL_FIELDS = ('reference_id', 'channel_code', 'amount', 'currency', 'market')


def currency_exponent(currency: str) -> int:
    """Get the number of minor-unit digits for a currency code."""
    return CURRENCY_EXPONENTS.get(currency.upper(), 2)


def scale_amount(amount: Union[Decimal, int, float, str], currency: str) -> Decimal:
    """
    Convert an amount to a Decimal scaled to the currency's minor unit.

    Raises:
        ValidationError: If the amount is not a finite number
    """
    if isinstance(amount, bool):
        raise ValidationError("amount must be a number")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"amount {amount!r} is not a number")
    if not value.is_finite():
        raise ValidationError("amount must be finite")
    quantum = Decimal(1).scaleb(-currency_exponent(currency))
    try:
        return value.quantize(quantum)
    except InvalidOperation:
        raise ValidationError(f"amount {amount!r} is out of range")


@dataclass(frozen=True)
class PaymentDetails:
    """
    Details of one payment event.

    Treated as an opaque, immutable blob once stored.
    """

    reference_id: str
    channel_code: str
    amount: Decimal
    currency: str
    market: str

    @classmethod
    def from_dict(cls, data: Any) -> 'PaymentDetails':
        """
        Create PaymentDetails from a request body or stored JSON.

        Raises:
            ValidationError: If a field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValidationError("details must be an object")

        missing = [name for name in DETAIL_FIELDS if data.get(name) in (None, '')]
        if missing:
            raise ValidationError(f"details missing field(s): {', '.join(missing)}")

        for name in ('reference_id', 'channel_code', 'currency', 'market'):
            if not isinstance(data[name], str):
                raise ValidationError(f"details.{name} must be a string")

        currency = data['currency'].strip().upper()
        return cls(
            reference_id=data['reference_id'],
            channel_code=data['channel_code'],
            amount=scale_amount(data['amount'], currency),
            currency=currency,
            market=data['market']
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        The amount is kept as decimal text so no precision is lost.
        """
        return {
            'reference_id': self.reference_id,
            'channel_code': self.channel_code,
            'amount': str(self.amount),
            'currency': self.currency,
            'market': self.market
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), separators=(',', ':'))


@dataclass
class NotificationMessage:
    """
    Webhook body sent to customers.

    The same message shape is used for first delivery and for resends,
    which always reuse the original idempotency key.
    """

    idempotency_key: str
    token: str
    details: PaymentDetails

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'idempotency_key': self.idempotency_key,
            'token': self.token,
            'details': self.details.to_dict()
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), separators=(',', ':'))


@dataclass
class NotificationRecord:
    """One recorded notification of one payment event to one customer."""

    idempotency_key: str
    customer_id: int
    details: PaymentDetails
    delivered: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NotificationRecord':
        """
        Create NotificationRecord from a database row.

        Args:
            data: Row with details stored as JSON text

        Returns:
            NotificationRecord instance
        """
        details = data['details']
        if isinstance(details, (str, bytes)):
            details = json.loads(details)

        return cls(
            idempotency_key=data['idempotency_key'],
            customer_id=int(data['customer_id']),
            details=PaymentDetails.from_dict(details),
            delivered=bool(data.get('delivered')),
            created_at=_parse_timestamp(data.get('created_at')),
            updated_at=_parse_timestamp(data.get('updated_at'))
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'idempotency_key': self.idempotency_key,
            'customer_id': self.customer_id,
            'details': self.details.to_dict(),
            'delivered': self.delivered,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat()
        }
