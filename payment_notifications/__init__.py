"""Payment Notifications: webhook delivery of payment events."""

__version__ = "0.1.0"
