"""
Resend Coordinator.

Replays a previously recorded notification, for example when a customer
reports a missed webhook.
"""

import logging

from ..database.db import Database
from ..errors import NotFound
from ..models.payment import NotificationMessage
from .delivery_queue import DeliveryJob, DeliveryQueue
from .dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class ResendCoordinator:
    """Redeliver a stored notification under its original idempotency key."""

    def __init__(self, db: Database, queue: DeliveryQueue, dispatcher: NotificationDispatcher):
        self.db = db
        self.queue = queue
        self.dispatcher = dispatcher

    async def resend(self, idempotency_key: str, customer_id: int) -> None:
        """
        Queue redelivery of a stored notification.

        The customer's current webhook configuration is used, which may
        differ from the one in place when the notification was created.

        Raises:
            NotFound: If no notification with this key belongs to the customer
            NotConfigured: If the customer has no webhook set up
            StorageError: If a lookup fails
            DeliveryQueueFull: If the delivery could not be queued
        """
        record = await self.db.get_notification(idempotency_key)
        if record.customer_id != customer_id:
            raise NotFound(
                f"Notification {idempotency_key} not found for customer {customer_id}"
            )

        url, token = await self.dispatcher.resolve_webhook(customer_id)

        message = NotificationMessage(
            idempotency_key=idempotency_key,
            token=token,
            details=record.details
        )
        self.queue.submit(DeliveryJob(
            idempotency_key=idempotency_key,
            url=url,
            token=token,
            body=message.to_json()
        ))

        logger.info(
            f"Resending notification {idempotency_key} to customer {customer_id} "
            f"(delivered={record.delivered})"
        )
