"""
MailMessage model - the outbound email trigger queue.

The portal never talks to a mail server. It inserts rows here and an
external mail worker delivers and marks them.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Index
from app.database import Base


class MailMessage(Base):
    """SQLAlchemy model for the mail_outbox table."""
    __tablename__ = "mail_outbox"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique message identifier")
    to_address = Column(Text, nullable=False,
                        doc="Recipient email address")
    subject = Column(Text, nullable=False,
                     doc="Message subject")
    html = Column(Text, nullable=False,
                  doc="HTML body")
    kind = Column(Text, nullable=False,
                  doc="test_result | reminder | account_removed | admin_alert")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When the message was queued")

    __table_args__ = (
        Index("ix_mail_outbox_kind", "kind"),
    )

    def __repr__(self):
        return f"<MailMessage(id={self.id}, to='{self.to_address}', kind='{self.kind}')>"
