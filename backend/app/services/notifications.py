"""
Notification Service - queues outbound email in the mail outbox.

Messages are rows in mail_outbox that an external mail worker delivers.
Queueing failures never fail the calling request: they are logged and an
alert is queued for the administrator when one is configured.
"""

from html import escape
from typing import Iterable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import config
from app.models.mail_message import MailMessage
from app.models.staff_member import StaffMember
from app.services.assessment import TestResult
from app.services.compliance import MemberCompliance
from app.services.settings import get_admin_email
from app.logging_config import get_logger, log_with_context

logger = get_logger("notify")

_WRAPPER = (
    '<div style="font-family: sans-serif; padding: 20px; '
    'border: 1px solid #ccc; border-radius: 10px;">{body}</div>'
)


def _wrap(body: str) -> str:
    return _WRAPPER.format(body=body)


def result_message(member: StaffMember, result: TestResult, pass_threshold: int) -> dict:
    name = escape(member.full_name)
    outcome = "PASSED" if result.passed else "FAILED"
    status_line = (f"PASSED ({pass_threshold}% required)" if result.passed
                   else "RETRY REQUIRED")
    body = (
        f"<h2>{escape(config.ORGANIZATION_NAME)} - Test Result</h2>"
        f"<p><strong>Staff Member:</strong> {name}</p>"
        f"<p><strong>Email:</strong> {escape(member.email)}</p>"
        f"<p><strong>Date:</strong> {result.date.strftime('%Y-%m-%d %H:%M')} UTC</p>"
        f"<p><strong>Score:</strong> {result.score}%</p>"
        f"<p><strong>Status:</strong> {status_line}</p>"
        "<hr><p>This is an automated notification. Please do not reply.</p>"
    )
    return {
        "to_address": member.email,
        "subject": f"{config.ORGANIZATION_NAME} Test: {outcome} - {member.full_name}",
        "html": _wrap(body),
        "kind": "test_result",
    }


def reminder_message(entry: MemberCompliance) -> dict:
    body = (
        f"<h2>{escape(config.ORGANIZATION_NAME)} - Certification Expired</h2>"
        f"<p>Dear {escape(entry.full_name)},</p>"
        "<p>Your certification has expired. To continue serving you must "
        "retake and pass the assessment.</p>"
        "<p>Please log in to the portal to complete your recertification.</p>"
    )
    return {
        "to_address": entry.email,
        "subject": f"Action Required: {config.ORGANIZATION_NAME} Certification Expired",
        "html": _wrap(body),
        "kind": "reminder",
    }


def account_removed_message(member: StaffMember) -> dict:
    body = (
        f"<h2>{escape(config.ORGANIZATION_NAME)} - Account Removed</h2>"
        f"<p>Dear {escape(member.full_name)},</p>"
        "<p>Your access to the portal has been removed by the administration. "
        "If you believe this is an error or you intend to continue serving, "
        "please contact the administration.</p>"
    )
    return {
        "to_address": member.email,
        "subject": f"{config.ORGANIZATION_NAME}: Account Access Revoked - {member.full_name}",
        "html": _wrap(body),
        "kind": "account_removed",
    }


def _admin_address(db: Session, context: str) -> str:
    try:
        return get_admin_email(db)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "WARNING",
            "Could not read admin email setting, using environment value: {}".format(e),
            extra_data={"mail_context": context})
        return config.ADMIN_NOTIFICATION_EMAIL


def _alert_admin(db: Session, context: str, error: Exception):
    admin_email = _admin_address(db, context)
    if not admin_email:
        log_with_context(logger, "ERROR",
            "Admin notification email is not set; cannot report mail failure",
            extra_data={"mail_context": context})
        return
    try:
        db.add(MailMessage(
            to_address=admin_email,
            subject="Portal Alert: Email Queueing Failed",
            html=_wrap(
                "<h2>Email System Error</h2>"
                f"<p><strong>Context:</strong> {escape(context)}</p>"
                f"<pre>{escape(str(error))}</pre>"),
            kind="admin_alert",
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR",
            "Failed to queue admin alert: {}".format(e),
            extra_data={"mail_context": context})


def enqueue(db: Session, messages: Iterable[dict], context: str) -> List[MailMessage]:
    """
    Queue messages in one commit.

    Returns:
        The queued MailMessage rows, or an empty list if queueing failed
    """
    rows = [MailMessage(**m) for m in messages if m.get("to_address")]
    if not rows:
        return []
    try:
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR",
            "Failed to queue {} message(s): {}".format(len(rows), e),
            extra_data={"mail_context": context},
            exc_info=e)
        _alert_admin(db, context, e)
        return []

    log_with_context(logger, "INFO",
        "Queued {} message(s) for {}".format(len(rows), context),
        extra_data={"kinds": sorted({r.kind for r in rows})})
    return rows


def send_test_result(db: Session, member: StaffMember, result: TestResult,
                     pass_threshold: int) -> Optional[MailMessage]:
    rows = enqueue(db, [result_message(member, result, pass_threshold)], "Test Result Email")
    return rows[0] if rows else None


def send_reminders(db: Session, entries: Iterable[MemberCompliance]) -> int:
    """Queue one expiry reminder per entry; returns the number queued."""
    return len(enqueue(db, [reminder_message(e) for e in entries], "Bulk Reminder Email"))


def send_account_removed(db: Session, member: StaffMember) -> Optional[MailMessage]:
    rows = enqueue(db, [account_removed_message(member)], "Account Deletion Email")
    return rows[0] if rows else None
