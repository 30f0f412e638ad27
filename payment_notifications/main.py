#!/usr/bin/env python3
"""
Payment Notifications Service.

Runs the notification store, the delivery queue and the REST API in one
process, and drains queued deliveries on SIGTERM/SIGINT.

Usage:
    payment-notifications
    python -m payment_notifications.main

Configuration is read from the environment, see payment_notifications/config.py.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from aiohttp import web

from .config import config
from .database.db import Database
from .services.delivery_client import DeliveryClient
from .services.delivery_queue import DeliveryQueue
from .services.dispatcher import NotificationDispatcher
from .services.resend import ResendCoordinator
from .api.notification_api import create_app

LOG_FORMAT = '%(asctime)s %(levelname)-8s [%(name)s] %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """
    Send service logs to stdout, and to ``log_file`` when one is set.

    Access logs stay on; client and event-loop chatter is raised to WARNING.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )

    for name in ('aiohttp.client', 'asyncio'):
        logging.getLogger(name).setLevel(logging.WARNING)


class PaymentNotificationService:
    """
    Owns the store, the delivery queue and the API server.

    Shutdown order matters: the API stops taking requests first, then the
    queue drains, then the store closes.
    """

    def __init__(self):
        self.db: Optional[Database] = None
        self.delivery_queue: Optional[DeliveryQueue] = None
        self.api_runner: Optional[web.AppRunner] = None
        self._stopped = asyncio.Event()
        self._stopping = False

    @property
    def port(self) -> Optional[int]:
        """Port the API is bound to, once started."""
        if not self.api_runner or not self.api_runner.addresses:
            return None
        return self.api_runner.addresses[0][1]

    async def start(self) -> None:
        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

        self.db = Database()
        await self.db.connect()
        await self.db.init_schema()

        self.delivery_queue = DeliveryQueue(self.db, DeliveryClient())
        await self.delivery_queue.start()

        dispatcher = NotificationDispatcher(self.db, self.delivery_queue)
        app = create_app(
            db=self.db,
            dispatcher=dispatcher,
            resender=ResendCoordinator(self.db, self.delivery_queue, dispatcher)
        )
        self.api_runner = web.AppRunner(app)
        await self.api_runner.setup()
        await web.TCPSite(self.api_runner, config.api.host, config.api.port).start()

        logger.info(
            f"{config.service.name} listening on {config.api.host}:{self.port} "
            f"({self.delivery_queue.workers} delivery worker(s))"
        )

    async def stop(self) -> None:
        """Stop the service; safe to call more than once."""
        if self._stopping:
            return
        self._stopping = True
        logger.info("Shutting down, draining pending deliveries...")

        if self.api_runner:
            await self.api_runner.cleanup()
        if self.delivery_queue:
            await self.delivery_queue.stop(config.service.shutdown_timeout)
        if self.db:
            await self.db.disconnect()

        logger.info("Shutdown complete")
        self._stopped.set()

    async def run(self) -> None:
        """Start, then block until stop() has finished."""
        await self.start()
        await self._stopped.wait()

    def request_shutdown(self, sig: Optional[signal.Signals] = None) -> None:
        if sig is not None:
            logger.info(f"Received {sig.name}")
        asyncio.ensure_future(self.stop())


async def main() -> None:
    setup_logging(config.logging.level, config.logging.file)
    service = PaymentNotificationService()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, service.request_shutdown, sig)

    try:
        await service.run()
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        await service.stop()
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == '__main__':
    run()
