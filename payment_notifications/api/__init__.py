"""API module for Payment Notifications."""

from .notification_api import create_app, NotificationAPI

__all__ = ['create_app', 'NotificationAPI']
