"""
Unit tests for Payment Notifications models.

Run with: pytest tests/test_models.py -v
"""

import json
from decimal import Decimal

import pytest

from payment_notifications.errors import ValidationError
from payment_notifications.models.customer import Customer
from payment_notifications.models.payment import (
    NotificationMessage,
    NotificationRecord,
    PaymentDetails,
)


class TestPaymentDetails:
    """Tests for PaymentDetails parsing and serialization."""

    def test_amount_scaled_to_currency(self):
        details = PaymentDetails.from_dict({
            'reference_id': 'ref1',
            'channel_code': 'card',
            'amount': 100,
            'currency': 'sgd',
            'market': 'SG'
        })

        assert details.amount == Decimal('100.00')
        assert str(details.amount) == '100.00'
        assert details.currency == 'SGD'

    def test_zero_decimal_currency(self):
        details = PaymentDetails.from_dict({
            'reference_id': 'ref1',
            'channel_code': 'card',
            'amount': '1500.4',
            'currency': 'JPY',
            'market': 'JP'
        })

        assert str(details.amount) == '1500'

    def test_missing_fields(self):
        with pytest.raises(ValidationError, match="market"):
            PaymentDetails.from_dict({
                'reference_id': 'ref1',
                'channel_code': 'card',
                'amount': 1,
                'currency': 'SGD'
            })

    @pytest.mark.parametrize("amount", ["abc", True, "NaN", "Infinity", "1e30", 1e30])
    def test_invalid_amount(self, amount):
        with pytest.raises(ValidationError):
            PaymentDetails.from_dict({
                'reference_id': 'ref1',
                'channel_code': 'card',
                'amount': amount,
                'currency': 'SGD',
                'market': 'SG'
            })

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            PaymentDetails.from_dict(["ref1"])

    def test_amount_serialized_as_exact_text(self, details):
        assert json.loads(details.to_json())['amount'] == '100.00'

    def test_large_amount_keeps_every_digit(self):
        details = PaymentDetails.from_dict({
            'reference_id': 'ref1',
            'channel_code': 'card',
            'amount': '12345678901234567.89',
            'currency': 'SGD',
            'market': 'SG'
        })

        restored = PaymentDetails.from_dict(json.loads(details.to_json()))
        assert restored.amount == Decimal('12345678901234567.89')


class TestNotificationMessage:

    def test_message_shape(self, details):
        message = NotificationMessage(idempotency_key='key-1', token='abc', details=details)

        payload = json.loads(message.to_json())
        assert set(payload) == {'idempotency_key', 'token', 'details'}
        assert payload['details']['reference_id'] == 'ref1'


class TestNotificationRecord:

    def test_from_sqlite_row(self, details):
        record = NotificationRecord.from_dict({
            'idempotency_key': 'key-1',
            'customer_id': 1,
            'details': details.to_json(),
            'delivered': 1,
            'created_at': '2024-01-01 10:00:00',
            'updated_at': '2024-01-01 10:05:00'
        })

        assert record.delivered is True
        assert record.details == details
        assert record.updated_at.minute == 5
        assert record.to_dict()['details']['amount'] == '100.00'


class TestCustomer:

    def test_configured_needs_url_and_token(self):
        assert not Customer(id=1, name='customer 1').is_configured()
        assert not Customer(id=1, name='customer 1', notification_url='https://example.com').is_configured()
        assert Customer(id=1, name='customer 1', notification_url='https://example.com', token='abc').is_configured()

    def test_public_dict_masks_token(self):
        customer = Customer.from_dict({
            'id': 1,
            'name': 'customer 1',
            'notification_url': 'https://example.com/hook',
            'token': 'abc'
        })

        assert customer.to_public_dict()['token'] == '***'
