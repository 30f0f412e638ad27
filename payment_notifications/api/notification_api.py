"""
Notification API.

Provides REST endpoints for webhook setup, mock payments and resends.
"""

import logging
from typing import Any, Dict
from urllib.parse import urlparse

from aiohttp import web

from ..config import config
from ..database.db import Database
from ..errors import NotificationError, ValidationError
from ..models.payment import PaymentDetails
from ..services.dispatcher import NotificationDispatcher, new_idempotency_key
from ..services.resend import ResendCoordinator

logger = logging.getLogger(__name__)

# Upper bound of the customers.id SERIAL column
MAX_CUSTOMER_ID = 2 ** 31 - 1


class NotificationAPI:
    """
    REST API for payment notifications.

    Endpoints:
    - POST /notifications - Configure a customer's webhook, or send a test
    - POST /notifications/resend - Redeliver a notification by idempotency key
    - GET /notifications/{idempotency_key} - Notification delivery status
    - GET /customers/{customer_id} - Customer webhook configuration
    - POST /payments - Trigger a mock payment notification
    - GET /health - Health check
    """

    def __init__(
        self,
        db: Database,
        dispatcher: NotificationDispatcher,
        resender: ResendCoordinator
    ):
        """
        Initialize the API.

        Args:
            db: Notification store
            dispatcher: Dispatcher for new notifications
            resender: Coordinator for resends
        """
        self.db = db
        self.dispatcher = dispatcher
        self.resender = resender

    def setup_routes(self, app: web.Application) -> None:
        """
        Set up API routes.

        Args:
            app: aiohttp web application
        """
        app.router.add_post('/notifications', self.setup_notification)
        app.router.add_post('/notifications/resend', self.resend_notification)
        app.router.add_get('/notifications/{idempotency_key}', self.get_notification)
        app.router.add_get('/customers/{customer_id}', self.get_customer)
        app.router.add_post('/payments', self.mock_payment)
        app.router.add_get('/health', self.health_check)

    async def setup_notification(self, request: web.Request) -> web.Response:
        """
        Configure a customer's webhook, or send it a test notification.

        Headers:
            Authorization: Bearer <token>

        Request body:
        {
            "is_test": false,
            "secret_key": "...",
            "customer_id": 1,
            "url": "https://...",
            "token": "..."
        }
        """
        token = _bearer_token(request)
        data = await _json_body(request)
        url = _webhook_url(data.get('url'))

        if data.get('is_test'):
            self.dispatcher.send_test_notification(url, token)
            return web.Response(status=202, content_type='text/plain')

        customer_id = _customer_id(data.get('customer_id'))
        await self.db.configure_webhook(customer_id, token, url)

        return web.json_response(
            {"idempotency_key": new_idempotency_key()},
            status=201
        )

    async def mock_payment(self, request: web.Request) -> web.Response:
        """
        Trigger a notification for a mock payment.

        Request body:
        {
            "customer_id": 1,
            "details": {
                "reference_id": "ref1",
                "channel_code": "card",
                "amount": 100.0,
                "currency": "SGD",
                "market": "SG"
            }
        }
        """
        data = await _json_body(request)
        customer_id = _customer_id(data.get('customer_id'))
        details = PaymentDetails.from_dict(data.get('details'))

        try:
            await self.dispatcher.notify_customer(customer_id, details)
        except NotificationError as e:
            logger.error(f"Failed to notify customer {customer_id}: {e}")

        return web.Response(status=202, content_type='text/plain')

    async def resend_notification(self, request: web.Request) -> web.Response:
        """
        Redeliver a notification.

        Request body:
        {
            "customer_id": 1,
            "token": "...",
            "secret_key": "...",
            "idempotency_key": "..."
        }
        """
        data = await _json_body(request)
        customer_id = _customer_id(data.get('customer_id'))
        idempotency_key = data.get('idempotency_key')
        if not idempotency_key or not isinstance(idempotency_key, str):
            raise ValidationError("idempotency_key is required")

        try:
            await self.resender.resend(idempotency_key, customer_id)
        except NotificationError as e:
            logger.error(f"Failed to resend notification {idempotency_key}: {e}")

        return web.Response(status=202, content_type='text/plain')

    async def get_notification(self, request: web.Request) -> web.Response:
        """Get a notification record and its delivered state."""
        record = await self.db.get_notification(request.match_info['idempotency_key'])
        return web.json_response({"notification": record.to_dict()})

    async def get_customer(self, request: web.Request) -> web.Response:
        """Get a customer's webhook configuration (token masked)."""
        customer_id = request.match_info['customer_id']
        if not customer_id.isdigit():
            raise ValidationError("Invalid customer ID format")

        customer = await self.db.get_customer(_customer_id(int(customer_id)))

        return web.json_response({
            "customer": customer.to_public_dict(),
            "configured": customer.is_configured()
        })

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy",
            "service": config.service.name,
            "deliveries": self.dispatcher.queue.get_stats()
        })


async def _json_body(request: web.Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _bearer_token(request: web.Request) -> str:
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme != 'Bearer' or not token.strip():
        raise ValidationError("Authorization header must be 'Bearer <token>'")
    return token.strip()


def _customer_id(customer_id: Any) -> int:
    if isinstance(customer_id, bool) or not isinstance(customer_id, int):
        raise ValidationError("customer_id must be a positive integer")
    if not 0 < customer_id <= MAX_CUSTOMER_ID:
        raise ValidationError(f"customer_id must be between 1 and {MAX_CUSTOMER_ID}")
    return customer_id


def _webhook_url(url: Any) -> str:
    if not url or not isinstance(url, str):
        raise ValidationError("url is required")
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValidationError("url must be an absolute HTTP(S) URL")
    return parsed.geturl()


def create_app(
    db: Database,
    dispatcher: NotificationDispatcher,
    resender: ResendCoordinator
) -> web.Application:
    """
    Create and configure the aiohttp web application.

    Args:
        db: Notification store
        dispatcher: Dispatcher for new notifications
        resender: Coordinator for resends

    Returns:
        Configured aiohttp Application
    """

    # Error handling middleware
    @web.middleware
    async def error_middleware(request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except NotificationError as e:
            if e.http_status >= 500:
                logger.error(f"Request to {request.path} failed: {e}")
            return web.json_response(
                {"error": str(e)},
                status=e.http_status
            )
        except Exception as e:
            logger.error(f"Unhandled error: {e}", exc_info=True)
            return web.json_response(
                {"error": "Internal server error"},
                status=500
            )

    app = web.Application(middlewares=[error_middleware])

    api = NotificationAPI(db=db, dispatcher=dispatcher, resender=resender)
    api.setup_routes(app)

    return app
