"""
Unit tests for the compliance evaluator.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.config import PolicySettings
from app.errors import InvalidResultRecord
from app.services.assessment import QuestionAttempt, TestResult
from app.services.compliance import (
    CertificationState, StaffHistory,
    evaluate_history, evaluate_members, filter_by_status, group_by_grade,
    parse_result_date, reminder_targets, summarize
)

TODAY = date(2026, 6, 15)


def at(day: date, hour: int = 12, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def record(days_ago: int, score: int, passed: bool, hour: int = 12) -> dict:
    return {"date": at(TODAY - timedelta(days=days_ago), hour), "score": score, "passed": passed}


def history(staff_id, results=(), grade=None, intends=True):
    return StaffHistory(
        staff_id=staff_id,
        full_name=f"Staff {staff_id}",
        email=f"{staff_id}@example.org",
        grade_taught=grade,
        intends_to_continue=intends,
        results=tuple(results),
    )


class TestEvaluateHistory:

    def test_evaluate_when_history_empty_then_never_certified(self, policy):
        status = evaluate_history([], policy, today=TODAY)

        assert status.is_expired is True
        assert status.last_success_date is None
        assert status.last_score == 0
        assert status.state == CertificationState.NEVER_CERTIFIED

    def test_evaluate_when_only_failures_then_never_certified(self, policy):
        status = evaluate_history([record(3, 60, False)], policy, today=TODAY)

        assert status.is_expired is True
        assert status.last_success_date is None
        assert status.best_score == 60

    def test_evaluate_when_pass_older_than_validity_then_expired_with_score(self, policy):
        # Arrange
        results = [record(400, 90, True)]

        # Act
        status = evaluate_history(results, policy, today=TODAY)

        # Assert
        assert status.is_expired is True
        assert status.last_score == 90
        assert status.last_success_date == at(TODAY - timedelta(days=400))
        assert status.state == CertificationState.EXPIRED

    def test_evaluate_when_later_failure_then_last_pass_still_counts(self, policy):
        results = [record(10, 50, False), record(5, 85, True), record(2, 40, False)]

        status = evaluate_history(results, policy, today=TODAY)

        assert status.is_expired is False
        assert status.last_score == 85
        assert status.last_success_date == at(TODAY - timedelta(days=5))
        assert status.state == CertificationState.VALID

    def test_evaluate_when_several_passes_then_latest_wins_regardless_of_order(self, policy):
        results = [record(5, 85, True), record(200, 100, True), record(30, 95, True)]

        status = evaluate_history(results, policy, today=TODAY)

        assert status.last_score == 85
        assert status.best_score == 100

    def test_evaluate_when_pass_exactly_validity_days_ago_then_expired(self, policy):
        status = evaluate_history([record(365, 80, True)], policy, today=TODAY)

        assert status.expiry_date == TODAY
        assert status.is_expired is True

    def test_evaluate_when_pass_one_day_inside_validity_then_valid(self, policy):
        status = evaluate_history([record(364, 80, True)], policy, today=TODAY)

        assert status.expiry_date == TODAY + timedelta(days=1)
        assert status.is_expired is False

    def test_evaluate_ignores_time_of_day(self, policy):
        """Late-evening pass and early-morning check compare by day only."""
        passed_on = TODAY - timedelta(days=364)
        results = [{"date": at(passed_on, 0, 1), "score": 80, "passed": True}]

        status = evaluate_history(results, policy, today=at(TODAY, 23, 59))

        assert status.is_expired is False

    def test_evaluate_when_portal_timezone_set_then_days_cut_locally(self):
        # 23:30 UTC on 14 June is already 15 June in Johannesburg
        results = [{"date": datetime(2025, 6, 14, 23, 30, tzinfo=timezone.utc), "score": 90, "passed": True}]
        local_policy = PolicySettings(timezone="Africa/Johannesburg")
        utc_policy = PolicySettings()

        local_status = evaluate_history(results, local_policy, today=date(2026, 6, 14))
        utc_status = evaluate_history(results, utc_policy, today=date(2026, 6, 14))

        assert local_status.is_expired is False
        assert utc_status.is_expired is True

    def test_evaluate_when_passes_share_timestamp_then_first_in_input_wins(self, policy):
        when = at(TODAY - timedelta(days=1))
        results = [
            {"date": when, "score": 85, "passed": True},
            {"date": when, "score": 95, "passed": True},
        ]

        status = evaluate_history(results, policy, today=TODAY)

        assert status.last_score == 85

    def test_evaluate_when_called_twice_then_same_status(self, policy):
        results = [record(10, 50, False), record(5, 85, True)]

        assert evaluate_history(results, policy, today=TODAY) == evaluate_history(results, policy, today=TODAY)

    def test_evaluate_when_custom_validity_then_expiry_follows(self):
        status = evaluate_history([record(31, 90, True)], PolicySettings(validity_days=30), today=TODAY)

        assert status.is_expired is True

    def test_evaluate_accepts_engine_results(self, policy):
        result = TestResult(
            date=at(TODAY - timedelta(days=1)),
            score=100,
            passed=True,
            question_details=(QuestionAttempt(1, 1, True),),
        )

        status = evaluate_history([result], policy, today=TODAY)

        assert status.state == CertificationState.VALID
        assert status.last_score == 100

    def test_evaluate_accepts_iso_strings(self, policy):
        results = [{"date": "2026-06-10T08:00:00Z", "score": 90, "passed": True}]

        status = evaluate_history(results, policy, today=TODAY)

        assert status.last_success_date == datetime(2026, 6, 10, 8, tzinfo=timezone.utc)


class TestMalformedRecords:

    def test_evaluate_when_date_unparseable_then_record_skipped_and_reported(self, policy):
        results = [{"date": "not-a-date", "score": 100, "passed": True}]

        status = evaluate_history(results, policy, today=TODAY)

        assert status.state == CertificationState.NEVER_CERTIFIED
        assert len(status.issues) == 1
        assert status.issues[0].index == 0
        assert status.issues[0].reason == "unparseable date"

    def test_evaluate_when_bad_record_beside_good_then_good_still_counts(self, policy):
        results = [{"date": None, "score": 100, "passed": True}, record(5, 85, True)]

        status = evaluate_history(results, policy, today=TODAY)

        assert status.state == CertificationState.VALID
        assert status.last_score == 85
        assert status.best_score == 85
        assert [issue.index for issue in status.issues] == [0]

    @pytest.mark.parametrize("bad_record", [
        {"date": "2026-06-01T00:00:00Z", "score": 90, "passed": "yes"},
        {"date": "2026-06-01T00:00:00Z", "score": "90", "passed": True},
        {"date": "2026-06-01T00:00:00Z", "score": 90.5, "passed": True},
        {"date": "2026-06-01T00:00:00Z", "score": True, "passed": True},
    ])
    def test_evaluate_when_fields_malformed_then_not_counted(self, policy, bad_record):
        status = evaluate_history([bad_record], policy, today=TODAY)

        assert status.last_success_date is None
        assert len(status.issues) == 1

    def test_issue_to_dict_carries_reason_and_index(self):
        issue = InvalidResultRecord("unparseable date", value="x", index=3)

        assert issue.to_dict() == {"reason": "unparseable date", "value": "x", "index": 3}


class TestParseResultDate:

    def test_parse_when_naive_then_assumed_utc(self):
        assert parse_result_date(datetime(2026, 1, 1, 10)) == datetime(2026, 1, 1, 10, tzinfo=timezone.utc)

    def test_parse_when_offset_then_converted_to_utc(self):
        parsed = parse_result_date("2026-01-01T02:00:00+02:00")

        assert parsed == datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_parse_when_fractional_seconds_then_kept(self):
        parsed = parse_result_date("2026-01-01T10:00:00.123+00:00")

        assert parsed == datetime(2026, 1, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)

    def test_parse_when_zulu_suffix_then_utc(self):
        assert parse_result_date("2026-01-01T10:00:00.500Z") == datetime(
            2026, 1, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", 20260101, "01/02/2026"])
    def test_parse_when_invalid_then_raises(self, value):
        with pytest.raises(InvalidResultRecord):
            parse_result_date(value)


class TestBatchOperations:

    def _entries(self, policy):
        members = [
            history("a", [record(5, 85, True)], grade="3"),
            history("b", [record(400, 90, True)], grade="3, 4"),
            history("c", [], grade=None, intends=False),
            history("d", [{"date": "garbage", "score": 1, "passed": True}], grade="5", intends=True),
        ]
        return evaluate_members(members, policy, today=TODAY)

    def test_evaluate_members_preserves_order(self, policy):
        entries = self._entries(policy)

        assert [e.staff_id for e in entries] == ["a", "b", "c", "d"]

    def test_evaluate_members_isolates_malformed_records(self, policy):
        entries = self._entries(policy)

        assert entries[0].status.issues == ()
        assert len(entries[3].status.issues) == 1
        assert entries[0].is_expired is False

    def test_filter_by_status_splits_outstanding_and_passed(self, policy):
        entries = self._entries(policy)

        assert [e.staff_id for e in filter_by_status(entries, "all")] == ["a", "b", "c", "d"]
        assert [e.staff_id for e in filter_by_status(entries, "outstanding")] == ["b", "c", "d"]
        assert [e.staff_id for e in filter_by_status(entries, "passed")] == ["a"]

    def test_filter_by_status_when_unknown_then_raises(self, policy):
        with pytest.raises(ValueError, match="Unknown status filter"):
            filter_by_status(self._entries(policy), "late")

    def test_reminder_targets_skip_members_leaving(self, policy):
        targets = reminder_targets(self._entries(policy))

        assert [e.staff_id for e in targets] == ["b", "d"]

    def test_summarize_counts(self, policy):
        summary = summarize(self._entries(policy))

        assert summary.to_dict() == {"total": 4, "valid": 1, "outstanding": 3}

    def test_group_by_grade_splits_multiple_grades(self, policy):
        groups = group_by_grade(self._entries(policy))

        assert sorted(groups) == ["3", "4", "5"]
        assert [e.staff_id for e in groups["3"]] == ["a", "b"]
        assert [e.staff_id for e in groups["4"]] == ["b"]

    def test_member_to_dict_flattens_status(self, policy):
        entry = self._entries(policy)[0]

        data = entry.to_dict()

        assert data["staff_id"] == "a"
        assert data["state"] == "valid"
        assert data["last_score"] == 85
        assert data["expiry_date"] == (TODAY - timedelta(days=5) + timedelta(days=365)).isoformat()
