"""Shared fixtures for Payment Notifications tests."""

import socket
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from unittest.mock import AsyncMock

from payment_notifications.database.db import Database
from payment_notifications.models.payment import PaymentDetails
from payment_notifications.services.delivery_client import DeliveryClient
from payment_notifications.services.delivery_queue import DeliveryQueue
from payment_notifications.services.dispatcher import NotificationDispatcher
from payment_notifications.services.resend import ResendCoordinator


class WebhookReceiver:
    """Customer endpoint that records requests and replays a status script."""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self.statuses: List[int] = []
        self.url: Optional[str] = None

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append({
            'headers': dict(request.headers),
            'body': await request.json()
        })
        status = self.statuses.pop(0) if self.statuses else 200
        return web.Response(status=status, text='ok')


@pytest_asyncio.fixture
async def db():
    """In-memory SQLite notification store with schema applied."""
    database = Database('sqlite:///:memory:')
    await database.connect()
    await database.init_schema()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def customer_id(db):
    return await db.create_customer("customer 1")


@pytest_asyncio.fixture
async def receiver():
    recv = WebhookReceiver()
    app = web.Application()
    app.router.add_post('/hook', recv.handle)
    server = TestServer(app)
    await server.start_server()
    recv.url = str(server.make_url('/hook'))
    yield recv
    await server.close()


@pytest.fixture
def unused_url():
    """URL on a local port nothing listens on."""
    with socket.socket() as sock:
        sock.bind(('127.0.0.1', 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/hook"


@pytest.fixture
def sleeps():
    return []


@pytest_asyncio.fixture
async def client(sleeps):
    """Real HTTP delivery client that records backoff delays instead of sleeping."""

    async def fake_sleep(delay):
        sleeps.append(delay)

    delivery_client = DeliveryClient(
        timeout=5,
        max_attempts=5,
        initial_interval=0.5,
        multiplier=1.5,
        max_interval=10,
        max_elapsed=60,
        randomization_factor=0,
        sleep=fake_sleep
    )
    yield delivery_client
    await delivery_client.stop()


@pytest.fixture
def mock_client():
    """Delivery client that succeeds on the first attempt without any I/O."""
    fake = AsyncMock(spec=DeliveryClient)
    fake.deliver.return_value = 1
    return fake


@pytest_asyncio.fixture
async def queue(db, mock_client):
    delivery_queue = DeliveryQueue(db, mock_client, workers=2, max_size=10)
    yield delivery_queue
    await delivery_queue.stop(timeout=1)


@pytest.fixture
def dispatcher(db, queue):
    return NotificationDispatcher(db, queue)


@pytest.fixture
def resender(db, queue, dispatcher):
    return ResendCoordinator(db, queue, dispatcher)


@pytest.fixture
def details():
    return PaymentDetails.from_dict({
        'reference_id': 'ref1',
        'amount': 100.0,
        'currency': 'SGD',
        'channel_code': 'card',
        'market': 'SG'
    })
