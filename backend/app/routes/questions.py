"""
Question bank API routes.

This module implements:
1. POST /api/questions - bulk upsert of questions by id; each item is
   validated on its own and invalid items are reported, not stored
2. GET /api/questions - the full bank, ordered by id
"""

import time
from typing import List
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.assessment import Question
from app.services.history import load_question_bank, upsert_questions
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class QuestionIn(BaseModel):
    """Schema for one question in a bulk upload."""
    id: int = Field(..., description="Stable question number")
    text: str = Field(..., description="Question prompt")
    options: List[str] = Field(..., description="Answer options, at least two")
    correct_index: int = Field(..., description="Zero-based index of the correct option")
    explanation: str = Field("", description="Shown after the final incorrect attempt")


class QuestionBankRequest(BaseModel):
    """Schema for bulk question upload body."""
    questions: List[QuestionIn]


class QuestionBankSummary(BaseModel):
    """Schema for upload response with processing stats."""
    total_received: int
    created: int
    updated: int
    errors: int
    details: list


@router.post("/api/questions", response_model=QuestionBankSummary)
def upload_questions(request: QuestionBankRequest, db: Session = Depends(get_db)):
    """
    Insert or replace questions in the bank.

    Each item must have at least two options and a correct_index that
    points at one of them.
    """
    start_time = time.time()

    valid = []
    details = []
    for item in request.questions:
        try:
            valid.append(Question(
                id=item.id,
                text=item.text,
                options=tuple(item.options),
                correct_index=item.correct_index,
                explanation=item.explanation,
            ))
        except ValueError as e:
            details.append({"question_id": item.id, "status": "ERROR", "reason": str(e)})

    counts = upsert_questions(db, valid) if valid else {"created": 0, "updated": 0}

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Question upload complete: {} received, {} rejected".format(
            len(request.questions), len(details)),
        extra_data={"duration_ms": round(duration_ms, 2), **counts})

    return QuestionBankSummary(
        total_received=len(request.questions),
        created=counts["created"],
        updated=counts["updated"],
        errors=len(details),
        details=details,
    )


@router.get("/api/questions")
def list_questions(db: Session = Depends(get_db)):
    """List every question in the bank."""
    bank = load_question_bank(db)
    return {"total": len(bank), "questions": [q.to_dict() for q in bank]}
