"""Services module for Payment Notifications."""

from .delivery_client import DeliveryClient
from .delivery_queue import DeliveryJob, DeliveryQueue
from .dispatcher import NotificationDispatcher, new_idempotency_key
from .resend import ResendCoordinator

__all__ = [
    'DeliveryClient',
    'DeliveryJob',
    'DeliveryQueue',
    'NotificationDispatcher',
    'ResendCoordinator',
    'new_idempotency_key'
]
