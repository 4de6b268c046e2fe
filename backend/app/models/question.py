"""
Question model - one item in the assessment question bank.

Options are stored as a JSON array; correct_index points into it.
"""

import json
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, Text, DateTime
from app.database import Base


class Question(Base):
    """SQLAlchemy model for the questions table."""
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=False,
                doc="Stable question number")
    text = Column(Text, nullable=False,
                  doc="Question prompt")
    options = Column(Text, nullable=False, default="[]",
                     doc="Answer options as a JSON array of strings")
    correct_index = Column(Integer, nullable=False,
                           doc="Zero-based index of the correct option")
    explanation = Column(Text, nullable=False, default="",
                         doc="Shown after the final incorrect attempt")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When this question was added to the bank")

    @property
    def options_list(self):
        """Parse options JSON string to a list."""
        if isinstance(self.options, list):
            return self.options
        try:
            return json.loads(self.options) if self.options else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return f"<Question(id={self.id}, text='{(self.text or '')[:40]}')>"
