"""
Webhook Delivery Client.

Posts one JSON notification to one customer endpoint, retrying with
bounded exponential backoff.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple

import aiohttp

from ..config import config
from ..errors import DeliveryFailed

logger = logging.getLogger(__name__)


class DeliveryClient:
    """
    Client for delivering webhook notifications to customers.

    Features:
    - Bearer token authentication
    - At most ``max_attempts`` attempts per delivery
    - Exponential backoff between attempts, capped per interval and
      bounded in total by ``max_elapsed``
    - Any transport error or non-2xx response counts as a failed attempt
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        initial_interval: Optional[float] = None,
        multiplier: Optional[float] = None,
        max_interval: Optional[float] = None,
        max_elapsed: Optional[float] = None,
        randomization_factor: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the delivery client.

        Args:
            timeout: Per-attempt request timeout in seconds
            max_attempts: Total attempts before giving up
            initial_interval: Delay in seconds after the first failure
            multiplier: Growth factor applied to each following delay
            max_interval: Upper bound for a single delay
            max_elapsed: Upper bound for the whole retry sequence
            randomization_factor: Jitter applied to each delay, in [0, 1)
            sleep: Coroutine used to wait between attempts
        """
        settings = config.webhook
        self.timeout = timeout if timeout is not None else settings.timeout
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_attempts
        self.initial_interval = (
            initial_interval if initial_interval is not None else settings.initial_interval
        )
        self.multiplier = multiplier if multiplier is not None else settings.multiplier
        self.max_interval = max_interval if max_interval is not None else settings.max_interval
        self.max_elapsed = max_elapsed if max_elapsed is not None else settings.max_elapsed
        self.randomization_factor = (
            randomization_factor if randomization_factor is not None
            else settings.randomization_factor
        )
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Open the shared HTTP session."""
        # Nothing awaits between the check and the assignment, so concurrent
        # deliver() calls on an unstarted client still share one session
        if not self._session:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def stop(self) -> None:
        """Close the shared HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def backoff_delay(self, attempt: int) -> float:
        """
        Get the delay to wait after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed, starting at 1

        Returns:
            Delay in seconds
        """
        delay = min(
            self.initial_interval * (self.multiplier ** (attempt - 1)),
            self.max_interval
        )
        if self.randomization_factor:
            spread = delay * self.randomization_factor
            delay = random.uniform(delay - spread, delay + spread)
        return delay

    async def deliver(self, url: str, token: str, body: str) -> int:
        """
        Deliver a JSON body to a webhook URL.

        Args:
            url: Webhook endpoint URL
            token: Bearer token for the Authorization header
            body: Serialized JSON payload

        Returns:
            Number of attempts it took

        Raises:
            DeliveryFailed: If every attempt failed or the retry budget ran out
        """
        await self.start()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_elapsed
        last_error = None
        attempt = 0

        while attempt < self.max_attempts:
            attempt += 1
            success, status, error = await self._post(url, token, body)
            if success:
                logger.info(f"Webhook delivered to {url} (status={status}, attempt={attempt})")
                return attempt

            last_error = error
            logger.warning(f"Webhook attempt {attempt} to {url} failed: {error}")

            if attempt >= self.max_attempts:
                break

            delay = self.backoff_delay(attempt)
            if loop.time() + delay > deadline:
                logger.warning(f"Retry budget of {self.max_elapsed}s exhausted for {url}")
                break
            await self._sleep(delay)

        logger.error(f"Webhook delivery to {url} failed after {attempt} attempt(s): {last_error}")
        raise DeliveryFailed(url, attempt, last_error)

    async def _post(
        self,
        url: str,
        token: str,
        body: str
    ) -> Tuple[bool, Optional[int], Optional[str]]:
        """
        Make a single delivery attempt.

        Returns:
            Tuple of (success, response_code, error_message)
        """
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {token}'
        }

        try:
            async with self._session.post(url, data=body, headers=headers) as response:
                # Success: 2xx status codes
                if 200 <= response.status < 300:
                    return True, response.status, None
                text = await response.text()
                return False, response.status, f"HTTP {response.status}: {text[:200]}"

        except asyncio.TimeoutError:
            return False, None, "Request timeout"
        except aiohttp.ClientError as e:
            return False, None, f"Network error: {e}"
        except ValueError as e:
            # Request could not be built, e.g. a malformed URL
            return False, None, f"Invalid request: {e}"
