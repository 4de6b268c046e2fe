"""
Assessment API routes - drive assessment sessions over HTTP.

The engine operates on a session value; this module is its caller. Each
request loads the session from assessment_sessions, applies one engine
transition and stores it back. The write only lands if the row is
still at the version that was loaded, so two overlapping requests cannot
both apply a transition to the same state. When a session finishes, its
result is appended in the same commit that closes the session, so
readers see either both or neither.

Provides endpoints for:
- Starting a session for a staff member
- Viewing the current question
- Submitting an answer, continuing after an explanation, abandoning
"""

import json
import time
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.config import PolicySettings, get_policy
from app.database import get_db
from app.errors import EmptyQuestionPool, InvalidTransition, SessionAlreadyFinished, SessionConflict
from app.models.assessment_session import AssessmentSessionRecord
from app.models.staff_member import StaffMember
from app.routes.staff import require_member
from app.services.assessment import (
    AnswerFeedback, AssessmentSession, Phase,
    abandon_session, continue_session, current_question, select_answer, start_session
)
from app.services.history import STATUS_BY_PHASE, load_question_bank, store_session_state
from app.services.notifications import send_test_result
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class StartRequest(BaseModel):
    """Schema for starting an assessment."""
    staff_id: str


class AnswerRequest(BaseModel):
    """
    Schema for an answer selection.

    attempt is the 1-based attempt the selection was made for; a selection
    for an attempt that has already resolved is ignored.
    """
    option_index: int = Field(..., ge=0, description="Zero-based option index")
    attempt: Optional[int] = Field(None, ge=1, description="Attempt number being answered")


def _load(db: Session, session_id: str, lock: bool = False):
    """Session row and its engine value; lock=True holds the row for a transition."""
    query = db.query(AssessmentSessionRecord).filter(AssessmentSessionRecord.id == session_id)
    if lock:
        query = query.with_for_update()
    record = query.first()
    if not record:
        raise HTTPException(status_code=404, detail="Assessment session not found")
    return record, AssessmentSession.from_dict(record.state_dict)


def serialize_session(record: AssessmentSessionRecord, session: AssessmentSession) -> dict:
    """Session view for the client; the correct option is never included."""
    question = current_question(session)
    return {
        "id": str(record.id),
        "staff_id": str(record.staff_id),
        "status": record.status,
        "phase": session.phase.value,
        "question_number": session.current_index + 1 if question else None,
        "total_questions": session.total_questions,
        "answered": len(session.details),
        "awaited_attempt": session.awaited_attempt if session.phase == Phase.PRESENTING else None,
        "question": {
            "id": question.id,
            "text": question.text,
            "options": list(question.options),
        } if question else None,
        "explanation": question.explanation if question and session.phase == Phase.EXPLAINING else None,
        "result_id": str(record.result_id) if record.result_id else None,
        "result": session.result.to_dict() if session.result else None,
        "started_at": record.started_at.isoformat() if record.started_at else None,
        "finished_at": record.finished_at.isoformat() if record.finished_at else None,
    }


def _feedback_dict(feedback: AnswerFeedback) -> dict:
    return {
        "accepted": feedback.accepted,
        "question_id": feedback.question_id,
        "is_correct": feedback.is_correct,
        "attempts_used": feedback.attempts_used,
        "advanced": feedback.advanced,
        "explanation": feedback.explanation,
        "finished": feedback.finished,
    }


def _save(db: Session, record: AssessmentSessionRecord, session: AssessmentSession,
          version: int, result=None):
    """Store a transition; 409 if another request stored one first."""
    try:
        return store_session_state(db, record, session, version, result=result)
    except SessionConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LookupError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))


def _commit_transition(db: Session, record: AssessmentSessionRecord, session: AssessmentSession,
                       version: int, feedback: AnswerFeedback) -> dict:
    """Persist an accepted transition; append the result when the session finished."""
    if feedback.accepted:
        _save(db, record, session, version, result=feedback.result)

    if feedback.result is not None:
        log_with_context(logger, "INFO",
            "Assessment finished: score {}% (passed={})".format(
                feedback.result.score, feedback.result.passed),
            context={"session_id": str(record.id), "staff_id": str(record.staff_id),
                     "result_id": str(record.result_id)})
        member = db.get(StaffMember, record.staff_id)
        send_test_result(db, member, feedback.result, session.pass_threshold)

    return {"feedback": _feedback_dict(feedback), "session": serialize_session(record, session)}


@router.post("/api/assessments", status_code=201)
def start_assessment(request: StartRequest, db: Session = Depends(get_db),
                     policy: PolicySettings = Depends(get_policy)):
    """Draw a new session from the question bank for a staff member."""
    start_time = time.time()
    member = require_member(db, request.staff_id)

    try:
        session = start_session(load_question_bank(db), policy)
    except EmptyQuestionPool as e:
        raise HTTPException(status_code=409, detail=str(e))

    record = AssessmentSessionRecord(
        staff_id=member.id,
        state=json.dumps(session.to_dict()),
        status=STATUS_BY_PHASE[session.phase],
        version=0,
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Assessment started with {} questions".format(session.total_questions),
        context={"session_id": str(record.id), "staff_id": str(member.id)},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return serialize_session(record, session)


@router.get("/api/assessments/{session_id}")
def get_assessment(session_id: str, db: Session = Depends(get_db)):
    record, session = _load(db, session_id)
    return serialize_session(record, session)


@router.post("/api/assessments/{session_id}/answers")
def submit_answer(session_id: str, request: AnswerRequest, db: Session = Depends(get_db)):
    """Submit an answer for the current question."""
    record, session = _load(db, session_id, lock=True)
    version = record.version
    try:
        feedback = select_answer(session, request.option_index, attempt=request.attempt)
    except SessionAlreadyFinished as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _commit_transition(db, record, session, version, feedback)


@router.post("/api/assessments/{session_id}/continue")
def continue_assessment(session_id: str, db: Session = Depends(get_db)):
    """Move on after the explanation of a failed question."""
    record, session = _load(db, session_id, lock=True)
    version = record.version
    try:
        feedback = continue_session(session)
    except SessionAlreadyFinished as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _commit_transition(db, record, session, version, feedback)


@router.post("/api/assessments/{session_id}/abandon")
def abandon_assessment(session_id: str, db: Session = Depends(get_db)):
    """Close a session without recording a result."""
    record, session = _load(db, session_id, lock=True)
    version = record.version
    try:
        abandon_session(session)
    except SessionAlreadyFinished as e:
        raise HTTPException(status_code=409, detail=str(e))
    _save(db, record, session, version)

    log_with_context(logger, "INFO", "Assessment abandoned",
                     context={"session_id": session_id, "staff_id": str(record.staff_id)})
    return serialize_session(record, session)
