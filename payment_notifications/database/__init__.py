"""Database module for Payment Notifications."""

from .db import Database

__all__ = ['Database']
