"""
Compliance Evaluator - reduces a staff member's result history to a status.

Algorithm per staff member:
1. Validate every history entry; malformed entries are skipped and
   reported on the status (never silently counted either way)
2. Keep passing entries only
3. No pass: never certified, which always counts as expired
4. Otherwise the latest pass (stable sort on date, descending) gives
   last_success_date and last_score
5. expiry_date = calendar day of the last pass + validity_days
6. is_expired = today >= expiry_date (the expiry day itself is expired)

Both "today" and the pass date are cut to calendar days in the portal
timezone before comparing. Statuses are recomputed on every call.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.config import PolicySettings
from app.errors import InvalidResultRecord
from app.logging_config import get_logger, log_with_context

logger = get_logger("compliance")

STATUS_FILTERS = ("all", "outstanding", "passed")


class CertificationState(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    NEVER_CERTIFIED = "never_certified"


@dataclass(frozen=True)
class ComplianceStatus:
    """Current certification status derived from a result history."""
    is_expired: bool
    last_success_date: Optional[datetime]
    last_score: int
    best_score: int = 0
    expiry_date: Optional[date] = None
    issues: Tuple[InvalidResultRecord, ...] = ()

    @property
    def state(self) -> CertificationState:
        if self.last_success_date is None:
            return CertificationState.NEVER_CERTIFIED
        return CertificationState.EXPIRED if self.is_expired else CertificationState.VALID

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "is_expired": self.is_expired,
            "last_success_date": self.last_success_date.isoformat() if self.last_success_date else None,
            "last_score": self.last_score,
            "best_score": self.best_score,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "issues": [issue.to_dict() for issue in self.issues],
        }


@dataclass(frozen=True)
class StaffHistory:
    """A staff member's identity plus their full result history."""
    staff_id: str
    full_name: str
    email: Optional[str] = None
    grade_taught: Optional[str] = None
    intends_to_continue: bool = True
    results: Sequence[Any] = field(default_factory=tuple)


@dataclass(frozen=True)
class MemberCompliance:
    """A staff member annotated with their derived status."""
    staff_id: str
    full_name: str
    email: Optional[str]
    grade_taught: Optional[str]
    intends_to_continue: bool
    status: ComplianceStatus

    @property
    def is_expired(self) -> bool:
        return self.status.is_expired

    def to_dict(self) -> dict:
        return {
            "staff_id": self.staff_id,
            "full_name": self.full_name,
            "email": self.email,
            "grade_taught": self.grade_taught,
            "intends_to_continue": self.intends_to_continue,
            **self.status.to_dict(),
        }


@dataclass(frozen=True)
class ComplianceSummary:
    total: int
    valid: int
    outstanding: int

    def to_dict(self) -> dict:
        return {"total": self.total, "valid": self.valid, "outstanding": self.outstanding}


@dataclass(frozen=True)
class _CheckedRecord:
    date: datetime
    passed: bool
    score: int


def parse_result_date(value, index: int = None) -> datetime:
    """
    Parse a result timestamp into a timezone-aware UTC datetime.

    Accepts datetime objects and ISO 8601 strings (a trailing "Z" is
    allowed). Naive values are taken as UTC.

    Raises:
        InvalidResultRecord: If the value cannot be interpreted
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        ts_str = value.strip()
        if ts_str.endswith("Z"):
            ts_str = ts_str[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(ts_str)
        except ValueError as e:
            raise InvalidResultRecord("unparseable date", value=value, index=index) from e
    else:
        raise InvalidResultRecord("missing or non-text date", value=value, index=index)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _field(record, name: str):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _check_record(record, index: int) -> _CheckedRecord:
    record_date = parse_result_date(_field(record, "date"), index=index)

    passed = _field(record, "passed")
    if not isinstance(passed, bool):
        raise InvalidResultRecord("passed must be a boolean", value=passed, index=index)

    score = _field(record, "score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise InvalidResultRecord("score must be a number", value=score, index=index)
    if isinstance(score, float) and not score.is_integer():
        raise InvalidResultRecord("score must be a whole percentage", value=score, index=index)

    return _CheckedRecord(date=record_date, passed=passed, score=int(score))


def calendar_day(moment: datetime, policy: PolicySettings) -> date:
    """Calendar day of a timestamp in the portal timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(policy.tzinfo).date()


def _resolve_today(today, policy: PolicySettings) -> date:
    if today is None:
        return calendar_day(datetime.now(timezone.utc), policy)
    if isinstance(today, datetime):
        return calendar_day(today, policy)
    return today


def evaluate_history(results: Iterable[Any], policy: PolicySettings,
                     today=None, context: dict = None) -> ComplianceStatus:
    """
    Derive the current ComplianceStatus from one member's history.

    Args:
        results: TestResult values, ORM rows or dicts carrying
            date / passed / score
        policy: Supplies validity_days and the portal timezone
        today: date or datetime to evaluate at (now if None)
        context: Log context identifying the member

    Returns:
        ComplianceStatus; malformed records are listed in issues
    """
    today_day = _resolve_today(today, policy)

    checked = []
    issues = []
    for index, record in enumerate(results):
        try:
            checked.append(_check_record(record, index))
        except InvalidResultRecord as e:
            issues.append(e)
            log_with_context(logger, "WARNING",
                "Skipping malformed result record: {}".format(e.reason),
                context=context,
                extra_data=e.to_dict())

    best_score = max((r.score for r in checked), default=0)
    passes = sorted((r for r in checked if r.passed), key=lambda r: r.date, reverse=True)

    if not passes:
        return ComplianceStatus(
            is_expired=True,
            last_success_date=None,
            last_score=0,
            best_score=best_score,
            expiry_date=None,
            issues=tuple(issues),
        )

    latest = passes[0]
    expiry_date = calendar_day(latest.date, policy) + timedelta(days=policy.validity_days)
    return ComplianceStatus(
        is_expired=today_day >= expiry_date,
        last_success_date=latest.date,
        last_score=latest.score,
        best_score=best_score,
        expiry_date=expiry_date,
        issues=tuple(issues),
    )


def evaluate_member(member: StaffHistory, policy: PolicySettings, today=None) -> MemberCompliance:
    status = evaluate_history(member.results, policy, today=today,
                              context={"staff_id": str(member.staff_id)})
    return MemberCompliance(
        staff_id=member.staff_id,
        full_name=member.full_name,
        email=member.email,
        grade_taught=member.grade_taught,
        intends_to_continue=member.intends_to_continue,
        status=status,
    )


def evaluate_members(members: Iterable[StaffHistory], policy: PolicySettings,
                     today=None) -> List[MemberCompliance]:
    """
    Evaluate every member independently against the same "today".

    Input order is preserved. A malformed record only affects its own
    member's status.
    """
    start_time = time.time()
    today_day = _resolve_today(today, policy)
    entries = [evaluate_member(m, policy, today=today_day) for m in members]

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Evaluated compliance for {} staff members".format(len(entries)),
        extra_data={
            "today": today_day.isoformat(),
            "outstanding": sum(1 for e in entries if e.is_expired),
            "records_skipped": sum(len(e.status.issues) for e in entries),
            "duration_ms": round(duration_ms, 2),
        })
    return entries


def filter_by_status(entries: Iterable[MemberCompliance], status_filter: str = "all") -> List[MemberCompliance]:
    """Select entries for the dashboard: all, outstanding (expired) or passed (valid)."""
    if status_filter not in STATUS_FILTERS:
        raise ValueError(f"Unknown status filter {status_filter!r}; expected one of {STATUS_FILTERS}")
    if status_filter == "outstanding":
        return [e for e in entries if e.is_expired]
    if status_filter == "passed":
        return [e for e in entries if not e.is_expired]
    return list(entries)


def reminder_targets(entries: Iterable[MemberCompliance]) -> List[MemberCompliance]:
    """Members who are expired and intend to continue serving."""
    return [e for e in entries if e.is_expired and e.intends_to_continue]


def summarize(entries: Sequence[MemberCompliance]) -> ComplianceSummary:
    outstanding = sum(1 for e in entries if e.is_expired)
    return ComplianceSummary(total=len(entries), valid=len(entries) - outstanding, outstanding=outstanding)


def group_by_grade(entries: Iterable[MemberCompliance]) -> Dict[str, List[MemberCompliance]]:
    """
    Group members by the grade(s) they teach.

    grade_taught may list several grades separated by commas; the member
    then appears under each. Members without a grade are left out.
    """
    groups: Dict[str, List[MemberCompliance]] = {}
    for entry in entries:
        if not entry.grade_taught:
            continue
        for grade in entry.grade_taught.split(","):
            grade = grade.strip()
            if grade:
                groups.setdefault(grade, []).append(entry)
    return groups
