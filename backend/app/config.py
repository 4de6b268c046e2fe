"""
Policy configuration for assessments and certification.

All policy constants come from environment variables so that a deployment
can change the session length, pass mark or validity window without a
code change:

- ASSESSMENT_SESSION_LENGTH: questions drawn per session (N)
- ASSESSMENT_PASS_THRESHOLD: pass percentage
- ASSESSMENT_MAX_ATTEMPTS: attempts allowed per question
- CERTIFICATION_VALIDITY_DAYS: days a pass remains valid
- PORTAL_TIMEZONE: zone used to cut timestamps down to calendar days
"""

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_SESSION_LENGTH = 20
DEFAULT_PASS_THRESHOLD = 80
DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_VALIDITY_DAYS = 365
DEFAULT_TIMEZONE = "UTC"

ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL", "")
ORGANIZATION_NAME = os.getenv("ORGANIZATION_NAME", "Compliance Portal")


@dataclass(frozen=True)
class PolicySettings:
    """
    Assessment and certification policy.

    Attributes:
        session_length: Number of questions drawn per session
        pass_threshold: Minimum percentage score that counts as a pass
        max_attempts: Attempts allowed per question before the explanation
        validity_days: Days a passing result keeps a member certified
        timezone: IANA zone name used for calendar-day comparisons
    """
    session_length: int = DEFAULT_SESSION_LENGTH
    pass_threshold: int = DEFAULT_PASS_THRESHOLD
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    validity_days: int = DEFAULT_VALIDITY_DAYS
    timezone: str = DEFAULT_TIMEZONE

    def __post_init__(self):
        if self.session_length < 1:
            raise ValueError("session_length must be positive")
        if not 0 <= self.pass_threshold <= 100:
            raise ValueError("pass_threshold must be between 0 and 100")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be positive")
        if self.validity_days < 1:
            raise ValueError("validity_days must be positive")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone}") from e

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def load_policy() -> PolicySettings:
    """Build PolicySettings from the environment."""
    return PolicySettings(
        session_length=_int_env("ASSESSMENT_SESSION_LENGTH", DEFAULT_SESSION_LENGTH),
        pass_threshold=_int_env("ASSESSMENT_PASS_THRESHOLD", DEFAULT_PASS_THRESHOLD),
        max_attempts=_int_env("ASSESSMENT_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
        validity_days=_int_env("CERTIFICATION_VALIDITY_DAYS", DEFAULT_VALIDITY_DAYS),
        timezone=os.getenv("PORTAL_TIMEZONE", DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE,
    )


_policy = None


def get_policy() -> PolicySettings:
    """FastAPI dependency returning the process-wide policy."""
    global _policy
    if _policy is None:
        _policy = load_policy()
    return _policy
