"""
Assessment Engine - runs one assessment session and emits one TestResult.

The engine is a set of transition functions over an AssessmentSession
value owned by the caller. It performs no I/O; persisting the session
between requests and appending the finished result to a staff member's
history are the caller's job.

Session flow:
1. start_session draws a uniformly random subset of the question bank
2. select_answer resolves attempts on the current question:
   - correct on any allowed attempt -> recorded as correct, advance
   - wrong with attempts remaining  -> stay on the question
   - wrong on the last attempt      -> recorded as wrong, reveal explanation
3. continue_session leaves the explanation and advances
4. Advancing past the last question finishes the session and builds
   the TestResult (score in units of 100/N, pass at the threshold)

A session that is abandoned never produces a result.
"""

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from app.config import PolicySettings
from app.errors import EmptyQuestionPool, InvalidTransition, SessionAlreadyFinished
from app.logging_config import get_logger, log_with_context

logger = get_logger("assessment")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    PRESENTING = "PRESENTING"
    EXPLAINING = "EXPLAINING"
    FINISHED = "FINISHED"
    ABANDONED = "ABANDONED"


TERMINAL_PHASES = (Phase.FINISHED, Phase.ABANDONED)


@dataclass(frozen=True)
class Question:
    """One multiple-choice assessment item."""
    id: int
    text: str
    options: Tuple[str, ...]
    correct_index: int
    explanation: str = ""

    def __post_init__(self):
        object.__setattr__(self, "options", tuple(self.options))
        if len(self.options) < 2:
            raise ValueError(f"Question {self.id} needs at least 2 options")
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError(
                f"Question {self.id} correct_index {self.correct_index} "
                f"is outside 0..{len(self.options) - 1}")

    def is_correct(self, option_index: int) -> bool:
        return option_index == self.correct_index

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "correct_index": self.correct_index,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=int(data["id"]),
            text=data["text"],
            options=tuple(data["options"]),
            correct_index=int(data["correct_index"]),
            explanation=data.get("explanation") or "",
        )


@dataclass(frozen=True)
class QuestionAttempt:
    """Outcome of one presented question."""
    question_id: int
    attempts_used: int
    is_correct: bool

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "attempts_used": self.attempts_used,
            "is_correct": self.is_correct,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionAttempt":
        return cls(
            question_id=int(data["question_id"]),
            attempts_used=int(data["attempts_used"]),
            is_correct=bool(data["is_correct"]),
        )


@dataclass(frozen=True)
class TestResult:
    """The single immutable artifact produced by a finished session."""
    __test__ = False  # not a pytest test class

    date: datetime
    score: int
    passed: bool
    question_details: Tuple[QuestionAttempt, ...]

    def __post_init__(self):
        object.__setattr__(self, "question_details", tuple(self.question_details))

    @property
    def total_questions(self) -> int:
        return len(self.question_details)

    @property
    def correct_answers(self) -> int:
        return sum(1 for a in self.question_details if a.is_correct)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "score": self.score,
            "passed": self.passed,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "question_details": [a.to_dict() for a in self.question_details],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TestResult":
        return cls(
            date=datetime.fromisoformat(data["date"]),
            score=int(data["score"]),
            passed=bool(data["passed"]),
            question_details=tuple(
                QuestionAttempt.from_dict(a) for a in data.get("question_details", [])),
        )


@dataclass
class AssessmentSession:
    """
    In-progress state of one assessment.

    The session snapshots the pass threshold and attempt allowance it was
    started with, so a session restored from storage is finished under the
    same rules even if the configured policy changes meanwhile.
    """
    questions: List[Question]
    pass_threshold: int
    max_attempts: int
    current_index: int = 0
    attempts_on_current: int = 0
    phase: Phase = Phase.PRESENTING
    details: List[QuestionAttempt] = field(default_factory=list)
    result: Optional[TestResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def awaited_attempt(self) -> int:
        """1-based number of the attempt the session is waiting for."""
        return self.attempts_on_current + 1

    def to_dict(self) -> dict:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "pass_threshold": self.pass_threshold,
            "max_attempts": self.max_attempts,
            "current_index": self.current_index,
            "attempts_on_current": self.attempts_on_current,
            "phase": self.phase.value,
            "details": [a.to_dict() for a in self.details],
            "result": self.result.to_dict() if self.result else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AssessmentSession":
        return cls(
            questions=[Question.from_dict(q) for q in data["questions"]],
            pass_threshold=int(data["pass_threshold"]),
            max_attempts=int(data["max_attempts"]),
            current_index=int(data.get("current_index", 0)),
            attempts_on_current=int(data.get("attempts_on_current", 0)),
            phase=Phase(data.get("phase", Phase.PRESENTING.value)),
            details=[QuestionAttempt.from_dict(a) for a in data.get("details", [])],
            result=TestResult.from_dict(data["result"]) if data.get("result") else None,
        )


@dataclass(frozen=True)
class AnswerFeedback:
    """
    What the caller needs to render after an action.

    accepted is False when the action was ignored (a selection while the
    explanation is shown, or a stale selection for an attempt that has
    already resolved). advanced is True when the session moved past the
    question; the caller may pause before showing the next one.
    """
    accepted: bool
    phase: Phase
    question_id: Optional[int] = None
    is_correct: Optional[bool] = None
    attempts_used: int = 0
    advanced: bool = False
    explanation: Optional[str] = None
    result: Optional[TestResult] = None

    @property
    def finished(self) -> bool:
        return self.phase == Phase.FINISHED


def score_attempts(details: Sequence[QuestionAttempt], pass_threshold: int) -> Tuple[int, bool]:
    """
    Compute (score, passed) with every question weighted 100/N.

    The percentage is rounded half up using integer arithmetic, so N=20
    scores in exact steps of 5.
    """
    total = len(details)
    if total == 0:
        return 0, False
    correct = sum(1 for a in details if a.is_correct)
    score = (200 * correct + total) // (2 * total)
    return score, score >= pass_threshold


def start_session(bank: Sequence[Question], policy: PolicySettings,
                  rng: Optional[random.Random] = None) -> AssessmentSession:
    """
    Draw a new session from the question bank.

    Args:
        bank: Every available question (order does not matter)
        policy: Session length, pass threshold and attempt allowance
        rng: Random source for the shuffle (module-level random if None)

    Returns:
        AssessmentSession presenting its first question

    Raises:
        EmptyQuestionPool: If the bank has no questions
    """
    if not bank:
        log_with_context(logger, "WARNING", "Refusing to start session: question bank is empty")
        raise EmptyQuestionPool()

    shuffled = list(bank)
    (rng or random).shuffle(shuffled)
    drawn = shuffled[:policy.session_length]

    log_with_context(logger, "DEBUG",
        "Session drawn: {} of {} questions".format(len(drawn), len(bank)),
        extra_data={"bank_size": len(bank), "session_length": policy.session_length})

    return AssessmentSession(
        questions=drawn,
        pass_threshold=policy.pass_threshold,
        max_attempts=policy.max_attempts,
    )


def current_question(session: AssessmentSession) -> Optional[Question]:
    """Question awaiting an answer or explanation, None once terminal."""
    if session.is_terminal:
        return None
    return session.questions[session.current_index]


def _ensure_open(session: AssessmentSession):
    if session.is_terminal:
        raise SessionAlreadyFinished(session.phase.value)


def _advance(session: AssessmentSession, clock: Callable[[], datetime]) -> Optional[TestResult]:
    """Move past the current question; finish after the last one."""
    session.attempts_on_current = 0
    if session.current_index < len(session.questions) - 1:
        session.current_index += 1
        session.phase = Phase.PRESENTING
        return None
    return _finish(session, clock)


def _finish(session: AssessmentSession, clock: Callable[[], datetime]) -> TestResult:
    start_time = time.time()
    score, passed = score_attempts(session.details, session.pass_threshold)
    result = TestResult(
        date=clock(),
        score=score,
        passed=passed,
        question_details=tuple(session.details),
    )
    session.phase = Phase.FINISHED
    session.result = result

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Session finished: score {}% ({}/{} correct, passed={})".format(
            score, result.correct_answers, result.total_questions, passed),
        extra_data={
            "score": score,
            "passed": passed,
            "pass_threshold": session.pass_threshold,
            "duration_ms": round(duration_ms, 2),
        })
    return result


def select_answer(session: AssessmentSession, option_index: int,
                  attempt: Optional[int] = None,
                  clock: Callable[[], datetime] = _utcnow) -> AnswerFeedback:
    """
    Resolve one answer selection for the current question.

    Args:
        session: Session to update in place
        option_index: Zero-based index of the chosen option
        attempt: Optional 1-based attempt number the selection was made for;
            a mismatch means the selection is stale and it is ignored
        clock: Source of the completion timestamp

    Returns:
        AnswerFeedback describing the outcome

    Raises:
        SessionAlreadyFinished: If the session is finished or abandoned
        ValueError: If option_index is not an option of the current question
    """
    _ensure_open(session)
    question = session.questions[session.current_index]

    if session.phase == Phase.EXPLAINING or (attempt is not None and attempt != session.awaited_attempt):
        log_with_context(logger, "DEBUG",
            "Ignoring selection for question {} (phase={}, attempt={}, awaited={})".format(
                question.id, session.phase.value, attempt, session.awaited_attempt))
        return AnswerFeedback(accepted=False, phase=session.phase, question_id=question.id,
                              attempts_used=session.attempts_on_current)

    if not 0 <= option_index < len(question.options):
        raise ValueError(
            f"Option {option_index} is not valid for question {question.id} "
            f"({len(question.options)} options)")

    attempts_used = session.attempts_on_current + 1

    if question.is_correct(option_index):
        session.details.append(QuestionAttempt(question.id, attempts_used, True))
        result = _advance(session, clock)
        return AnswerFeedback(accepted=True, phase=session.phase, question_id=question.id,
                              is_correct=True, attempts_used=attempts_used,
                              advanced=True, result=result)

    if attempts_used < session.max_attempts:
        session.attempts_on_current = attempts_used
        return AnswerFeedback(accepted=True, phase=session.phase, question_id=question.id,
                              is_correct=False, attempts_used=attempts_used)

    session.details.append(QuestionAttempt(question.id, attempts_used, False))
    session.attempts_on_current = attempts_used
    session.phase = Phase.EXPLAINING
    return AnswerFeedback(accepted=True, phase=session.phase, question_id=question.id,
                          is_correct=False, attempts_used=attempts_used,
                          explanation=question.explanation)


def continue_session(session: AssessmentSession,
                     clock: Callable[[], datetime] = _utcnow) -> AnswerFeedback:
    """
    Leave the explanation of a failed question and move on.

    Raises:
        SessionAlreadyFinished: If the session is finished or abandoned
        InvalidTransition: If no explanation is being shown
    """
    _ensure_open(session)
    if session.phase != Phase.EXPLAINING:
        raise InvalidTransition("Continue is only allowed while an explanation is shown")

    question = session.questions[session.current_index]
    result = _advance(session, clock)
    return AnswerFeedback(accepted=True, phase=session.phase, question_id=question.id,
                          advanced=True, result=result)


def abandon_session(session: AssessmentSession) -> AssessmentSession:
    """Close the session without a result."""
    _ensure_open(session)
    session.phase = Phase.ABANDONED
    log_with_context(logger, "INFO",
        "Session abandoned at question {} of {}".format(
            session.current_index + 1, session.total_questions))
    return session
