"""
Runtime portal settings.

The admin notification email can be changed by administrators while the
portal runs. A stored value takes precedence; without one the
ADMIN_NOTIFICATION_EMAIL environment value is used.
"""

from typing import Optional
from sqlalchemy.orm import Session

from app import config
from app.models.portal_setting import PortalSetting
from app.logging_config import get_logger, log_with_context

logger = get_logger("db")

ADMIN_EMAIL_KEY = "admin_notification_email"


def stored_admin_email(db: Session) -> Optional[str]:
    row = db.get(PortalSetting, ADMIN_EMAIL_KEY)
    if row is None or not row.value:
        return None
    return row.value


def get_admin_email(db: Session) -> str:
    """Effective admin notification address; empty when none is configured."""
    return stored_admin_email(db) or config.ADMIN_NOTIFICATION_EMAIL


def set_admin_email(db: Session, email: str) -> str:
    """
    Store the admin notification address.

    An empty value clears the stored setting so the environment value
    applies again.

    Raises:
        ValueError: If a non-empty value is not an email address
    """
    email = (email or "").strip().lower()
    if email and ("@" not in email or email.startswith("@") or email.endswith("@")):
        raise ValueError(f"Not an email address: {email!r}")

    row = db.get(PortalSetting, ADMIN_EMAIL_KEY)
    if row is None:
        row = PortalSetting(key=ADMIN_EMAIL_KEY)
        db.add(row)
    row.value = email
    db.commit()

    log_with_context(logger, "INFO",
        "Admin notification email {}".format("updated" if email else "cleared"),
        extra_data={"key": ADMIN_EMAIL_KEY})
    return get_admin_email(db)
