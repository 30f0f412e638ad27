"""
Configuration module for the Payment Notifications service.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    url: str


@dataclass
class APIConfig:
    """API server configuration."""
    host: str
    port: int


@dataclass
class WebhookConfig:
    """Webhook delivery configuration."""
    timeout: float  # Per attempt, in seconds
    max_attempts: int
    initial_interval: float
    multiplier: float
    max_interval: float
    max_elapsed: float  # Ceiling on the whole retry sequence
    randomization_factor: float


@dataclass
class QueueConfig:
    """In-process delivery queue configuration."""
    workers: int
    max_size: int


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    file: Optional[str]


@dataclass
class ServiceConfig:
    """Service-level configuration."""
    name: str
    shutdown_timeout: int


class Config:
    """
    Main configuration class that aggregates all config sections.

    Usage:
        from payment_notifications.config import config

        print(config.database.url)
        print(config.webhook.max_attempts)
    """

    def __init__(self):
        self._load_config()

    def _load_config(self):
        """Load all configuration from environment variables."""

        # Database configuration
        self.database = DatabaseConfig(
            url=os.getenv('DATABASE_URL', 'sqlite:///./payment_notifications.db')
        )

        # API configuration
        self.api = APIConfig(
            host=os.getenv('API_HOST', '0.0.0.0'),
            port=int(os.getenv('API_PORT', '5000'))
        )

        # Webhook configuration
        self.webhook = WebhookConfig(
            timeout=float(os.getenv('WEBHOOK_TIMEOUT', '10')),
            max_attempts=int(os.getenv('WEBHOOK_MAX_ATTEMPTS', '5')),
            initial_interval=float(os.getenv('WEBHOOK_INITIAL_INTERVAL', '0.5')),
            multiplier=float(os.getenv('WEBHOOK_BACKOFF_MULTIPLIER', '1.5')),
            max_interval=float(os.getenv('WEBHOOK_MAX_INTERVAL', '10')),
            max_elapsed=float(os.getenv('WEBHOOK_MAX_ELAPSED', '60')),
            randomization_factor=float(os.getenv('WEBHOOK_RANDOMIZATION_FACTOR', '0.5'))
        )

        # Delivery queue configuration
        self.queue = QueueConfig(
            workers=int(os.getenv('DELIVERY_WORKERS', '4')),
            max_size=int(os.getenv('DELIVERY_QUEUE_SIZE', '1000'))
        )

        # Logging configuration
        self.logging = LoggingConfig(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            file=os.getenv('LOG_FILE')
        )

        # Service configuration
        self.service = ServiceConfig(
            name=os.getenv('SERVICE_NAME', 'PaymentNotifications'),
            shutdown_timeout=int(os.getenv('SHUTDOWN_TIMEOUT', '30'))
        )

    def validate(self) -> List[str]:
        """
        Validate required configuration values.

        Returns:
            List of validation error messages (empty if all valid)
        """
        errors = []

        if not self.database.url:
            errors.append("DATABASE_URL is required")

        if self.webhook.max_attempts < 1:
            errors.append("WEBHOOK_MAX_ATTEMPTS must be at least 1")

        if self.webhook.multiplier < 1:
            errors.append("WEBHOOK_BACKOFF_MULTIPLIER must be >= 1")

        if not 0 <= self.webhook.randomization_factor < 1:
            errors.append("WEBHOOK_RANDOMIZATION_FACTOR must be in [0, 1)")

        if self.queue.workers < 1:
            errors.append("DELIVERY_WORKERS must be at least 1")

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


# Global configuration instance
config = Config()
