"""
StaffMember model - a person who must hold a current certification.

Staff members own an append-only history of test results. Removal is a
soft delete: the row and its history stay for audit, but the member no
longer appears on dashboards or in reminder runs.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, Boolean, String
from sqlalchemy.orm import relationship
from app.database import Base


class StaffMember(Base):
    """
    SQLAlchemy model for the staff_members table.

    intends_to_continue marks members who plan to keep serving; only they
    are targeted by expiry reminders.
    """
    __tablename__ = "staff_members"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique staff member identifier")
    first_name = Column(Text, nullable=False, default="",
                        doc="Given name")
    last_name = Column(Text, nullable=False, default="",
                       doc="Family name")
    email = Column(Text, nullable=False, unique=True,
                   doc="Normalized (trimmed, lowercase) email address")
    grade_taught = Column(Text, nullable=True,
                          doc="Grade or comma-separated grades taught")
    intends_to_continue = Column(Boolean, nullable=False, default=True,
                                 doc="Whether the member plans to keep serving")
    is_admin = Column(Boolean, nullable=False, default=False,
                      doc="Administrator flag")
    is_deleted = Column(Boolean, nullable=False, default=False,
                        doc="Soft delete flag")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when the member registered")

    results = relationship("TestResultRecord", back_populates="staff_member",
                           order_by="TestResultRecord.date")
    sessions = relationship("AssessmentSessionRecord", back_populates="staff_member")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self):
        return f"<StaffMember(id={self.id}, name='{self.full_name}', email='{self.email}')>"
