"""
Compliance API routes - certification dashboard, reminders and reports.

Every request recomputes statuses from the stored result histories:
1. Load active staff with their full history
2. Evaluate each member independently against the same "today"
3. Apply the requested view (status filter, reminder targets, grades)
"""

import time
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app import config
from app.config import PolicySettings, get_policy
from app.database import get_db
from app.errors import CertificateUnavailable
from app.routes.staff import require_member
from app.services.certificates import build_certificate, render_certificate_pdf
from app.services.compliance import (
    CertificationState, evaluate_member, evaluate_members, filter_by_status,
    group_by_grade, reminder_targets, summarize
)
from app.services.history import load_active_histories, to_staff_history
from app.services.notifications import send_reminders
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


@router.get("/api/compliance")
def compliance_dashboard(
    status: str = Query("all", description="all | outstanding | passed"),
    db: Session = Depends(get_db),
    policy: PolicySettings = Depends(get_policy)
):
    """
    Annotated staff list for the dashboard.

    Summary counts always cover every active member; the member list is
    narrowed by the status filter.
    """
    start_time = time.time()

    entries = evaluate_members(load_active_histories(db), policy)
    try:
        selected = filter_by_status(entries, status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Compliance dashboard: {} of {} members (filter={})".format(len(selected), len(entries), status),
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "filter": status,
        "validity_days": policy.validity_days,
        "summary": summarize(entries).to_dict(),
        "members": [e.to_dict() for e in selected],
    }


@router.get("/api/staff/{staff_id}/compliance")
def member_compliance(staff_id: str, db: Session = Depends(get_db),
                      policy: PolicySettings = Depends(get_policy)):
    """Current certification status of one member."""
    member = require_member(db, staff_id)
    return evaluate_member(to_staff_history(member), policy).to_dict()


@router.post("/api/compliance/reminders")
def send_expiry_reminders(db: Session = Depends(get_db),
                          policy: PolicySettings = Depends(get_policy)):
    """Queue a reminder for every expired member who intends to continue."""
    targets = reminder_targets(evaluate_members(load_active_histories(db), policy))
    if not targets:
        return {"message": "No outstanding staff to remind.", "targets": 0, "queued": 0, "staff_ids": []}

    queued = send_reminders(db, targets)

    log_with_context(logger, "INFO",
        "Reminder run: {} targets, {} queued".format(len(targets), queued),
        extra_data={"targets": len(targets), "queued": queued})
    return {
        "message": "Reminder emails queued." if queued else "Reminder emails could not be queued.",
        "targets": len(targets),
        "queued": queued,
        "staff_ids": [t.staff_id for t in targets],
    }


@router.get("/api/reports/teachers-by-grade")
def teachers_by_grade(db: Session = Depends(get_db),
                      policy: PolicySettings = Depends(get_policy)):
    """Active members grouped by the grades they teach, with their status."""
    groups = group_by_grade(evaluate_members(load_active_histories(db), policy))
    return {
        "grades": {
            grade: [
                {
                    "staff_id": e.staff_id,
                    "full_name": e.full_name,
                    "email": e.email,
                    "state": e.status.state.value,
                }
                for e in members
            ]
            for grade, members in sorted(groups.items())
        }
    }


@router.get("/api/staff/{staff_id}/certificate")
def download_certificate(staff_id: str, db: Session = Depends(get_db),
                         policy: PolicySettings = Depends(get_policy)):
    """
    Certificate PDF for a currently certified member.

    Returns 404 when the member has never passed and 409 when their
    certification has expired.
    """
    member = require_member(db, staff_id)
    entry = evaluate_member(to_staff_history(member), policy)
    try:
        certificate = build_certificate(entry, policy, config.ORGANIZATION_NAME)
    except CertificateUnavailable as e:
        code = 404 if e.state == CertificationState.NEVER_CERTIFIED.value else 409
        raise HTTPException(status_code=code, detail=str(e))

    pdf_bytes = render_certificate_pdf(certificate)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{certificate.filename}"'},
    )
