"""
AssessmentSessionRecord model - storage for an in-progress assessment.

The engine works on a plain session value; between HTTP requests that
value lives here as JSON. Status tracks the session lifecycle:
- IN_PROGRESS: questions remain
- FINISHED: result appended to the member's history (result_id set)
- ABANDONED: closed without a result

version guards against two requests applying a transition to the same
loaded state; only the first write back succeeds.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, ForeignKey, String, Integer, Index
from sqlalchemy.orm import relationship
from app.database import Base


class AssessmentSessionRecord(Base):
    """SQLAlchemy model for the assessment_sessions table."""
    __tablename__ = "assessment_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique session identifier")
    staff_id = Column(String(36), ForeignKey("staff_members.id"), nullable=False,
                      doc="Staff member taking the assessment")
    status = Column(Text, nullable=False, default="IN_PROGRESS",
                    doc="IN_PROGRESS | FINISHED | ABANDONED")
    state = Column(Text, nullable=False, default="{}",
                   doc="Serialized engine session as JSON")
    started_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When the session was drawn")
    finished_at = Column(DateTime, nullable=True,
                         doc="When the session reached a terminal state")
    result_id = Column(String(36), ForeignKey("test_results.id"), nullable=True,
                       doc="Result produced by a finished session")
    version = Column(Integer, nullable=False, default=0,
                     doc="Bumped on every stored transition; writes must match the loaded value")

    staff_member = relationship("StaffMember", back_populates="sessions")
    result = relationship("TestResultRecord")

    __table_args__ = (
        Index("ix_assessment_sessions_staff_id", "staff_id"),
        Index("ix_assessment_sessions_status", "status"),
    )

    @property
    def state_dict(self):
        """Parse state JSON string to dict."""
        if isinstance(self.state, dict):
            return self.state
        try:
            return json.loads(self.state) if self.state else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<AssessmentSessionRecord(id={self.id}, staff={self.staff_id}, status='{self.status}')>"
