"""
Error taxonomy for the notification service.

Synchronous API paths turn these into HTTP error responses through
``http_status``; asynchronous delivery paths only log them.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for all service errors."""

    http_status = 500


class ValidationError(NotificationError):
    """Malformed request body, header or URL."""

    http_status = 400


class NotFound(NotificationError):
    """A customer or notification record does not exist."""

    http_status = 404


class NotConfigured(NotificationError):
    """Customer has no webhook URL and token set up."""

    http_status = 409

    def __init__(self, customer_id: int):
        super().__init__(f"Customer {customer_id} has no webhook configured")
        self.customer_id = customer_id


class StorageError(NotificationError):
    """A database transaction failed."""

    http_status = 500


class DuplicateIdempotencyKey(StorageError):
    """A notification with the same idempotency key already exists."""

    http_status = 409

    def __init__(self, idempotency_key: str):
        super().__init__(f"Notification {idempotency_key} already exists")
        self.idempotency_key = idempotency_key


class DeliveryFailed(NotificationError):
    """Webhook delivery gave up after exhausting its attempts."""

    def __init__(self, url: str, attempts: int, last_error: Optional[str]):
        super().__init__(
            f"Delivery to {url} failed after {attempts} attempt(s): {last_error}"
        )
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class DeliveryQueueFull(NotificationError):
    """The in-process delivery queue cannot accept more jobs."""

    http_status = 503
