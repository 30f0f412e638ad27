"""
Notification Dispatcher.

Turns a payment event into a recorded notification and hands it to the
delivery queue without waiting for the customer's endpoint.
"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, Tuple

from ..database.db import Database
from ..errors import NotConfigured, NotFound
from ..models.payment import NotificationMessage, PaymentDetails
from .delivery_queue import DeliveryJob, DeliveryQueue

logger = logging.getLogger(__name__)

TEST_IDEMPOTENCY_KEY = "test_idempotency_key"

# Canned payload sent when a customer asks for a test notification
TEST_DETAILS = PaymentDetails(
    reference_id="test_reference_id",
    channel_code="test_channel_code",
    amount=Decimal("100000.00"),
    currency="SGD",
    market="Singapore"
)


def new_idempotency_key() -> str:
    """Generate a random idempotency key, unrelated to any payload."""
    return str(uuid.uuid4())


class NotificationDispatcher:
    """
    Entry point for notifying a customer about a payment event.

    Each call mints a fresh idempotency key, so the same payment details
    sent twice produce two records; use the resend coordinator to replay
    an existing one.
    """

    def __init__(self, db: Database, queue: DeliveryQueue):
        """
        Initialize the dispatcher.

        Args:
            db: Notification store
            queue: Delivery queue that performs the HTTP calls
        """
        self.db = db
        self.queue = queue
        self._stats = {
            "dispatched": 0,
            "not_configured": 0
        }

    async def resolve_webhook(self, customer_id: int) -> Tuple[str, str]:
        """
        Get the webhook URL and token a customer can be notified on.

        Raises:
            NotConfigured: If the customer is unknown or has no webhook set up
            StorageError: If the lookup fails
        """
        try:
            url, token = await self.db.lookup_webhook(customer_id)
        except NotFound:
            self._stats["not_configured"] += 1
            raise NotConfigured(customer_id)

        if not url or not token:
            self._stats["not_configured"] += 1
            raise NotConfigured(customer_id)
        return url, token

    async def notify_customer(self, customer_id: int, details: PaymentDetails) -> str:
        """
        Record a notification and queue its delivery.

        Args:
            customer_id: Customer to notify
            details: Payment details to send

        Returns:
            The new notification's idempotency key

        Raises:
            NotConfigured: If the customer cannot receive webhooks
            StorageError: If the notification could not be recorded; nothing
                is delivered in that case
            DeliveryQueueFull: If the delivery could not be queued; the record
                stays undelivered
        """
        url, token = await self.resolve_webhook(customer_id)

        idempotency_key = new_idempotency_key()
        await self.db.create_notification(idempotency_key, customer_id, details)

        message = NotificationMessage(
            idempotency_key=idempotency_key,
            token=token,
            details=details
        )
        self.queue.submit(DeliveryJob(
            idempotency_key=idempotency_key,
            url=url,
            token=token,
            body=message.to_json()
        ))

        self._stats["dispatched"] += 1
        logger.info(
            f"Dispatched notification {idempotency_key} to customer {customer_id} "
            f"(reference {details.reference_id})"
        )
        return idempotency_key

    def send_test_notification(self, url: str, token: str) -> None:
        """
        Queue a canned notification so a customer can check their endpoint.

        Nothing is recorded for test notifications.
        """
        message = NotificationMessage(
            idempotency_key=TEST_IDEMPOTENCY_KEY,
            token=token,
            details=TEST_DETAILS
        )
        self.queue.submit(DeliveryJob(
            idempotency_key=TEST_IDEMPOTENCY_KEY,
            url=url,
            token=token,
            body=message.to_json(),
            mark_delivered=False
        ))
        logger.info(f"Queued test notification to {url}")

    def get_stats(self) -> Dict[str, int]:
        """Get dispatch statistics."""
        return self._stats.copy()
