"""
PortalSetting model - runtime settings administrators can change.

One row per key. A missing or empty value means the environment default
applies (see services/settings.py).
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime
from app.database import Base


class PortalSetting(Base):
    """SQLAlchemy model for the portal_settings table."""
    __tablename__ = "portal_settings"

    key = Column(Text, primary_key=True,
                 doc="Setting name, e.g. admin_notification_email")
    value = Column(Text, nullable=False, default="",
                   doc="Setting value as text")
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc),
                        doc="When the value was last changed")

    def __repr__(self):
        return f"<PortalSetting(key='{self.key}', value='{self.value}')>"
