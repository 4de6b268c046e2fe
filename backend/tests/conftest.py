import os

# Must be set before app.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import random
from datetime import datetime, timezone

import pytest

from app import models  # noqa: F401  (registers tables on Base.metadata)
from app.config import PolicySettings, get_policy
from app.database import build_engine, create_tables, get_db, session_factory
from app.models.staff_member import StaffMember
from app.models.test_result import TestResultRecord
from app.services.assessment import Question


def make_bank(size: int, option_count: int = 4):
    """Questions 1..size whose correct option rotates through the options."""
    return [
        Question(
            id=i,
            text=f"Question {i}?",
            options=tuple(f"Option {chr(65 + k)}" for k in range(option_count)),
            correct_index=i % option_count,
            explanation=f"Explanation for question {i}",
        )
        for i in range(1, size + 1)
    ]


# Common test fixtures
@pytest.fixture
def policy():
    """Default policy: 20 questions, pass at 80, two attempts, 365 days."""
    return PolicySettings()


@pytest.fixture
def rng():
    """Seeded random source so draws are repeatable."""
    return random.Random(1234)


@pytest.fixture
def bank():
    return make_bank(20)


@pytest.fixture
def fixed_clock():
    moment = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
    return lambda: moment


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite://")
    create_tables(bind=engine)
    db = session_factory(engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def client(db_session):
    """API client bound to the per-test database and default policy."""
    from fastapi.testclient import TestClient
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_policy] = lambda: PolicySettings()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def add_member(db_session):
    """Factory inserting a staff member directly."""
    def _add(first_name="Ada", last_name="Lovelace", email=None, **fields):
        member = StaffMember(
            first_name=first_name,
            last_name=last_name,
            email=email or f"{first_name.lower()}.{last_name.lower()}@example.org",
            **fields,
        )
        db_session.add(member)
        db_session.commit()
        return member
    return _add


@pytest.fixture
def add_result(db_session):
    """Factory inserting a stored result for a member."""
    def _add(member, date, score, passed):
        record = TestResultRecord(
            staff_id=member.id,
            date=date.replace(tzinfo=None) if date.tzinfo else date,
            score=score,
            passed=passed,
            total_questions=20,
            correct_answers=score // 5,
        )
        db_session.add(record)
        db_session.commit()
        return record
    return _add
