"""
Customer data model.

Represents a customer and the webhook endpoint it receives payment
notifications on.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class Customer:
    """
    Represents a customer in the notification system.

    Attributes:
        id: Stable customer identifier
        name: Human-readable customer name
        notification_url: URL receiving webhook notifications (unset until configured)
        token: Bearer token sent with every notification (unset until configured)
        created_at: Timestamp when customer was created
        updated_at: Timestamp of last update
    """

    id: int
    name: str
    notification_url: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        """
        Create Customer from dictionary (e.g., database row).

        Args:
            data: Dictionary with customer data

        Returns:
            Customer instance
        """
        return cls(
            id=int(data['id']),
            name=data.get('name') or '',
            notification_url=data.get('notification_url'),
            token=data.get('token'),
            created_at=_parse_timestamp(data.get('created_at')),
            updated_at=_parse_timestamp(data.get('updated_at'))
        )

    def is_configured(self) -> bool:
        """Check if both webhook URL and token are set."""
        return bool(self.notification_url) and bool(self.token)

    def to_public_dict(self) -> Dict[str, Any]:
        """
        Convert Customer to dictionary for public API (masks the token).

        Returns:
            Dictionary representation without sensitive data
        """
        return {
            'id': self.id,
            'name': self.name,
            'notification_url': self.notification_url,
            'token': '***' if self.token else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }


def _parse_timestamp(value: Any) -> datetime:
    """SQLite hands timestamps back as strings, PostgreSQL as datetimes."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return datetime.utcnow()
