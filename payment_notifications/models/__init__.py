"""Data models for Payment Notifications."""

from .customer import Customer
from .payment import NotificationMessage, NotificationRecord, PaymentDetails

__all__ = ['Customer', 'NotificationMessage', 'NotificationRecord', 'PaymentDetails']
