"""
History Service - the persistence boundary around the core.

Implements:
1. Loading the question bank as engine Question values
2. Bulk upsert of questions into the bank
3. append_result: adding a finished TestResult to a member's history
4. Building StaffHistory values for the compliance evaluator
5. store_session_state: guarded write-back of an assessment session

Result rows are inserted, never updated. append_result flushes inside the
caller's transaction so a session can be closed in the same commit.
"""

import json
import time
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session, selectinload

from app.errors import SessionConflict
from app.models.assessment_session import AssessmentSessionRecord
from app.models.question import Question as QuestionRow
from app.models.staff_member import StaffMember
from app.models.test_result import TestResultRecord
from app.services.assessment import AssessmentSession, Phase, Question, TestResult
from app.services.compliance import StaffHistory
from app.logging_config import get_logger, log_with_context

logger = get_logger("db")

SESSION_IN_PROGRESS = "IN_PROGRESS"
STATUS_BY_PHASE = {
    Phase.PRESENTING: SESSION_IN_PROGRESS,
    Phase.EXPLAINING: SESSION_IN_PROGRESS,
    Phase.FINISHED: "FINISHED",
    Phase.ABANDONED: "ABANDONED",
}


def normalize_email(email: str) -> Optional[str]:
    """Trim and lowercase an email address; None for empty input."""
    if not email:
        return None
    return email.strip().lower() or None


def to_engine_question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        text=row.text,
        options=tuple(row.options_list),
        correct_index=row.correct_index,
        explanation=row.explanation or "",
    )


def load_question_bank(db: Session) -> List[Question]:
    """Return every question in the bank, ordered by id."""
    rows = db.query(QuestionRow).order_by(QuestionRow.id).all()
    return [to_engine_question(row) for row in rows]


def upsert_questions(db: Session, questions: Iterable[Question]) -> dict:
    """
    Insert or replace questions by id.

    A repeated id within one batch replaces the earlier item (last one
    wins) and counts as an update.

    Returns:
        Dict with 'created' and 'updated' counts
    """
    created = 0
    updated = 0
    # Rows added in this batch are not flushed yet, so db.get would miss them
    batch = {}
    for question in questions:
        row = batch.get(question.id) or db.get(QuestionRow, question.id)
        if row is None:
            row = QuestionRow(id=question.id)
            db.add(row)
            created += 1
        else:
            updated += 1
        batch[question.id] = row
        row.text = question.text
        row.options = json.dumps(list(question.options))
        row.correct_index = question.correct_index
        row.explanation = question.explanation
    db.commit()

    log_with_context(logger, "INFO",
        "Question bank upserted: {} created, {} updated".format(created, updated),
        extra_data={"created": created, "updated": updated})
    return {"created": created, "updated": updated}


def get_active_member(db: Session, staff_id: str) -> Optional[StaffMember]:
    member = db.get(StaffMember, staff_id)
    if member is None or member.is_deleted:
        return None
    return member


def append_result(db: Session, staff_id: str, result: TestResult,
                  commit: bool = True) -> TestResultRecord:
    """
    Append a finished TestResult to a staff member's history.

    Args:
        db: Database session
        staff_id: Member the result belongs to
        result: Result emitted by the assessment engine
        commit: Commit immediately; pass False to join a larger transaction

    Returns:
        The stored TestResultRecord

    Raises:
        LookupError: If the member does not exist or has been removed
    """
    start_time = time.time()

    member = get_active_member(db, staff_id)
    if member is None:
        raise LookupError(f"Staff member {staff_id} not found")

    record = TestResultRecord(
        staff_id=member.id,
        # Stored naive UTC for SQLite compatibility
        date=result.date.replace(tzinfo=None) if result.date.tzinfo else result.date,
        score=result.score,
        passed=result.passed,
        total_questions=result.total_questions,
        correct_answers=result.correct_answers,
        question_details=json.dumps([a.to_dict() for a in result.question_details]),
    )
    db.add(record)
    db.flush()
    if commit:
        db.commit()
        db.refresh(record)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Result appended: score {}% (passed={})".format(result.score, result.passed),
        context={"staff_id": str(member.id), "result_id": str(record.id)},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return record


def to_staff_history(member: StaffMember) -> StaffHistory:
    return StaffHistory(
        staff_id=str(member.id),
        full_name=member.full_name,
        email=member.email,
        grade_taught=member.grade_taught,
        intends_to_continue=bool(member.intends_to_continue),
        results=tuple(member.results or ()),
    )


def load_active_histories(db: Session) -> List[StaffHistory]:
    """Histories of every member that has not been removed, ordered by name."""
    members = db.query(StaffMember).options(
        selectinload(StaffMember.results)
    ).filter(
        StaffMember.is_deleted.is_(False)
    ).order_by(StaffMember.last_name, StaffMember.first_name).all()
    return [to_staff_history(m) for m in members]


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def store_session_state(db: Session, record: AssessmentSessionRecord,
                        session: AssessmentSession, expected_version: int,
                        result: Optional[TestResult] = None) -> Optional[TestResultRecord]:
    """
    Write a session transition back to its row in one commit.

    The row is only updated while it is still IN_PROGRESS at
    expected_version, the version the caller loaded. A concurrent request
    that already stored a transition from the same state makes this write
    a no-op, and everything in it (including an appended result) is
    rolled back. A finished session's result is appended in the same
    commit and its date becomes the session's finished_at.

    Args:
        db: Database session
        record: The row the session was loaded from
        session: Engine session after the transition
        expected_version: record.version at load time
        result: TestResult emitted by the transition, if any

    Returns:
        The stored TestResultRecord when a result was appended

    Raises:
        SessionConflict: If the row changed since it was loaded
        LookupError: If the member no longer exists
    """
    values = {
        "state": json.dumps(session.to_dict()),
        "status": STATUS_BY_PHASE[session.phase],
        "version": expected_version + 1,
    }
    stored = None
    if result is not None:
        stored = append_result(db, record.staff_id, result, commit=False)
        values["result_id"] = stored.id
        values["finished_at"] = _naive_utc(result.date)
    elif session.is_terminal:
        values["finished_at"] = _naive_utc(datetime.now(timezone.utc))

    updated = db.query(AssessmentSessionRecord).filter(
        AssessmentSessionRecord.id == record.id,
        AssessmentSessionRecord.status == SESSION_IN_PROGRESS,
        AssessmentSessionRecord.version == expected_version,
    ).update(values, synchronize_session=False)

    if updated != 1:
        db.rollback()
        log_with_context(logger, "WARNING",
            "Rejected stale write to assessment session",
            context={"session_id": str(record.id), "staff_id": str(record.staff_id)},
            extra_data={"expected_version": expected_version})
        raise SessionConflict(str(record.id))

    db.commit()
    db.refresh(record)
    if stored is not None:
        db.refresh(stored)
    return stored
