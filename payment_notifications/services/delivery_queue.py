"""
In-process delivery queue.

Hands webhook deliveries to a pool of background workers so request
handlers never wait on customer endpoints, and lets the service drain
pending deliveries on shutdown.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import config
from ..database.db import Database
from ..errors import DeliveryFailed, DeliveryQueueFull, StorageError
from .delivery_client import DeliveryClient

logger = logging.getLogger(__name__)


@dataclass
class DeliveryJob:
    """One notification waiting to be delivered."""

    idempotency_key: str
    url: str
    token: str
    body: str
    # Test notifications have no stored record to update
    mark_delivered: bool = True


class DeliveryQueue:
    """
    Worker pool fed by an asyncio queue.

    Each job is delivered by the DeliveryClient; on success the matching
    notification record is marked delivered. Failures are logged and the
    record stays undelivered.
    """

    def __init__(
        self,
        db: Database,
        client: DeliveryClient,
        workers: Optional[int] = None,
        max_size: Optional[int] = None
    ):
        """
        Initialize the delivery queue.

        Args:
            db: Notification store used to mark deliveries
            client: Client performing the HTTP deliveries
            workers: Number of concurrent delivery workers
            max_size: Maximum number of queued jobs
        """
        self.db = db
        self.client = client
        self.workers = workers or config.queue.workers
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_size or config.queue.max_size)
        self._tasks: List[asyncio.Task] = []
        self._running = False
        self._closed = False
        self._stats = {
            "submitted": 0,
            "delivered": 0,
            "failed": 0
        }

    async def start(self) -> None:
        """Start the delivery workers."""
        if self._running:
            return

        logger.info(f"Starting delivery queue with {self.workers} worker(s)...")
        await self.client.start()
        self._running = True
        self._closed = False
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"delivery-worker-{n}")
            for n in range(self.workers)
        ]

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting jobs, drain the queue and stop the workers.

        Args:
            timeout: Seconds to wait for queued deliveries before cancelling
        """
        logger.info("Stopping delivery queue...")
        self._closed = True
        timeout = timeout if timeout is not None else config.service.shutdown_timeout

        if self._running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Delivery queue not drained after {timeout}s, "
                    f"dropping {self._queue.qsize()} pending job(s)"
                )

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._running = False

        await self.client.stop()
        logger.info("Delivery queue stopped")

    def submit(self, job: DeliveryJob) -> None:
        """
        Queue a job without waiting for its delivery.

        Raises:
            DeliveryQueueFull: If the queue is at capacity or shutting down
        """
        if self._closed:
            raise DeliveryQueueFull("Delivery queue is shutting down")
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            raise DeliveryQueueFull(
                f"Delivery queue is full, dropping notification {job.idempotency_key}"
            )
        self._stats["submitted"] += 1
        logger.debug(f"Queued delivery of notification {job.idempotency_key}")

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _worker(self, number: int) -> None:
        """Process jobs until cancelled."""
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            except Exception as e:
                logger.error(
                    f"Worker {number} failed on notification {job.idempotency_key}: {e}",
                    exc_info=True
                )
            finally:
                self._queue.task_done()

    async def _process(self, job: DeliveryJob) -> None:
        """Deliver one job and record the outcome."""
        try:
            await self.client.deliver(job.url, job.token, job.body)
        except DeliveryFailed as e:
            self._stats["failed"] += 1
            logger.error(f"Giving up on notification {job.idempotency_key}: {e}")
            return

        self._stats["delivered"] += 1
        if not job.mark_delivered:
            return

        try:
            await self.db.mark_delivered(job.idempotency_key, True)
        except StorageError as e:
            logger.error(
                f"Notification {job.idempotency_key} delivered but not marked: {e}"
            )

    def pending(self) -> int:
        """Number of jobs waiting in the queue."""
        return self._queue.qsize()

    def get_stats(self) -> Dict[str, int]:
        """
        Get delivery statistics.

        Returns:
            Statistics dictionary
        """
        return self._stats.copy()
