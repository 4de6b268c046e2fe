"""
Staff API routes - registry of staff members and their result history.

Provides endpoints for:
- Registering, listing, viewing and updating staff members
- Removing a member (soft delete with a notification email)
- Reading a member's result history
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.staff_member import StaffMember
from app.models.test_result import TestResultRecord
from app.services.history import get_active_member, normalize_email
from app.services.notifications import send_account_removed
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")
db_logger = get_logger("db")


# ── Pydantic schemas ─────────────────────────────────────────

class StaffCreate(BaseModel):
    """Schema for registering a staff member."""
    first_name: str = Field(..., description="Given name")
    last_name: str = Field(..., description="Family name")
    email: str = Field(..., description="Email address, unique per member")
    grade_taught: Optional[str] = Field(None, description="Grade or comma-separated grades")
    intends_to_continue: bool = Field(True, description="Whether the member plans to keep serving")


class StaffUpdate(BaseModel):
    """
    Schema for profile updates; omitted fields are left unchanged.

    grade_taught may be set to null to clear it. The other fields are
    required columns and reject null.
    """
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    grade_taught: Optional[str] = None
    intends_to_continue: Optional[bool] = None
    is_admin: Optional[bool] = None


REQUIRED_FIELDS = ("first_name", "last_name", "intends_to_continue", "is_admin")


def serialize_member(member: StaffMember) -> dict:
    """Serialize a StaffMember ORM object to a dict for API response."""
    return {
        "id": str(member.id),
        "first_name": member.first_name,
        "last_name": member.last_name,
        "full_name": member.full_name,
        "email": member.email,
        "grade_taught": member.grade_taught,
        "intends_to_continue": bool(member.intends_to_continue),
        "is_admin": bool(member.is_admin),
        "created_at": member.created_at.isoformat() if member.created_at else None,
        "completed_tests": len(member.results or []),
    }


def serialize_result(record: TestResultRecord) -> dict:
    return {
        "id": str(record.id),
        "date": record.date.isoformat() if record.date else None,
        "score": record.score,
        "passed": bool(record.passed),
        "total_questions": record.total_questions,
        "correct_answers": record.correct_answers,
        "question_details": record.question_details_list,
    }


def require_member(db: Session, staff_id: str) -> StaffMember:
    member = get_active_member(db, staff_id)
    if member is None:
        raise HTTPException(status_code=404, detail="Staff member not found")
    return member


@router.post("/api/staff", status_code=201)
def register_staff(request: StaffCreate, db: Session = Depends(get_db)):
    """Register a new staff member."""
    email = normalize_email(request.email)
    if not email:
        raise HTTPException(status_code=400, detail="Email cannot be empty")

    if db.query(StaffMember).filter(StaffMember.email == email).first():
        raise HTTPException(status_code=409, detail="A staff member with this email already exists")

    member = StaffMember(
        first_name=request.first_name.strip(),
        last_name=request.last_name.strip(),
        email=email,
        grade_taught=request.grade_taught,
        intends_to_continue=request.intends_to_continue,
    )
    db.add(member)
    db.commit()
    db.refresh(member)

    log_with_context(db_logger, "INFO", "Registered staff member: {}".format(member.full_name),
                     context={"staff_id": str(member.id)})
    return serialize_member(member)


@router.get("/api/staff")
def list_staff(db: Session = Depends(get_db)):
    """List active staff members ordered by name."""
    members = db.query(StaffMember).filter(
        StaffMember.is_deleted.is_(False)
    ).order_by(StaffMember.last_name, StaffMember.first_name).all()
    return {"total": len(members), "data": [serialize_member(m) for m in members]}


@router.get("/api/staff/{staff_id}")
def get_staff(staff_id: str, db: Session = Depends(get_db)):
    return serialize_member(require_member(db, staff_id))


@router.patch("/api/staff/{staff_id}")
def update_staff(staff_id: str, request: StaffUpdate, db: Session = Depends(get_db)):
    """Update profile fields, teaching intention or admin status."""
    member = require_member(db, staff_id)

    changes = request.model_dump(exclude_unset=True)
    nulls = sorted(name for name in REQUIRED_FIELDS if name in changes and changes[name] is None)
    if nulls:
        raise HTTPException(status_code=400, detail="Fields cannot be null: {}".format(", ".join(nulls)))
    for name in ("first_name", "last_name"):
        if name in changes:
            changes[name] = changes[name].strip()

    for name, value in changes.items():
        setattr(member, name, value)
    db.commit()
    db.refresh(member)

    log_with_context(logger, "INFO", "Updated staff member {}".format(staff_id),
                     context={"staff_id": staff_id},
                     extra_data={"fields": sorted(changes)})
    return serialize_member(member)


@router.delete("/api/staff/{staff_id}")
def remove_staff(staff_id: str, db: Session = Depends(get_db)):
    """
    Remove a staff member.

    The member is notified first, then marked deleted. Their history is
    kept. Administrators must lose admin status before they can be removed.
    """
    member = require_member(db, staff_id)
    if member.is_admin:
        raise HTTPException(
            status_code=400,
            detail="Cannot remove an administrator. Remove admin status first."
        )

    send_account_removed(db, member)

    member.is_deleted = True
    db.commit()

    log_with_context(logger, "INFO", "Removed staff member {}".format(member.full_name),
                     context={"staff_id": staff_id})
    return {"message": "Staff member removed", "staff_id": staff_id}


@router.get("/api/staff/{staff_id}/results")
def list_results(staff_id: str, db: Session = Depends(get_db)):
    """A member's full result history, most recent first."""
    member = require_member(db, staff_id)
    results = sorted(member.results or [], key=lambda r: r.date, reverse=True)
    return {"staff_id": staff_id, "total": len(results), "data": [serialize_result(r) for r in results]}
