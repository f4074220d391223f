"""
Session lifecycle up to submission: question sampling from a blueprint,
fixed presentation order, answer/doubt edits and deadline checks.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Sequence
from uuid import uuid4

from engine import DEFAULT_DURATION_MINUTES, INSTITUTION_DURATION_MINUTES, SKD_DURATION_MINUTES
from tryout.errors import PoolExhausted, SessionClosed, ValidationError
from tryout.models import BlueprintEntry, Session, normalize_key

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes (e.g. from datetime.utcnow()) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def default_duration_minutes(root_slug: str | None = None, institution: bool = False) -> int:
    """Tryout length: SKD 100 minutes, institution tryouts 60, anything else 30."""
    if institution:
        return INSTITUTION_DURATION_MINUTES
    if (root_slug or "").lower() == "skd":
        return SKD_DURATION_MINUTES
    return DEFAULT_DURATION_MINUTES


def start_session(entries: Sequence[BlueprintEntry], pool, user_id: str, strict: bool = True,
                  duration_minutes: int | None = None, now: datetime | None = None,
                  target_id: str | None = None) -> Session:
    """
    Draw questions for every blueprint entry and open a session.

    Args:
        entries: blueprint entries; their order is the order of the questions
        pool: QuestionPool collaborator (sample(category_id, n))
        user_id: test-taker
        strict: raise PoolExhausted when a category returns fewer ids than
            requested; when False (practice mode) the short draw is accepted
        duration_minutes: time limit; None leaves the session untimed
        now: start time (defaults to current UTC time)
        target_id: package/institution the blueprint belongs to

    Returns:
        In-progress Session with a fixed question order
    """
    if duration_minutes is not None and duration_minutes <= 0:
        raise ValidationError(f"duration_minutes must be > 0, got {duration_minutes}")

    question_ids: list[str] = []
    seen = set()
    for entry in entries:
        if entry.question_count <= 0:
            continue
        drawn = list(pool.sample(entry.category_id, entry.question_count))
        if len(drawn) < entry.question_count:
            if strict:
                raise PoolExhausted(entry.category_id, entry.question_count, len(drawn))
            logger.warning(
                "Category %s: pool returned %d of %d questions (practice mode, continuing)",
                entry.category_id, len(drawn), entry.question_count,
            )
        for qid in drawn:
            if qid in seen:
                logger.warning("Question %s drawn twice (category %s); keeping first", qid, entry.category_id)
                continue
            seen.add(qid)
            question_ids.append(qid)

    started_at = as_utc(now) if now else _utcnow()
    deadline = started_at + timedelta(minutes=duration_minutes) if duration_minutes else None
    session = Session(
        id=str(uuid4()),
        user_id=str(user_id),
        question_ids=tuple(question_ids),
        started_at=started_at,
        deadline=deadline,
        target_id=target_id,
    )
    logger.info(f"Session {session.id}: {len(question_ids)} questions for user {user_id}")
    return session


def presentation_order(session: Session) -> list[tuple[int, str]]:
    """(number, question_id) pairs numbered from 1."""
    return list(enumerate(session.question_ids, start=1))


def number_of(session: Session, question_id: str) -> int:
    try:
        return session.question_ids.index(question_id) + 1
    except ValueError:
        raise ValidationError(f"Question {question_id} is not part of session {session.id}")


def _require_open(session: Session, question_id: str) -> None:
    if session.is_submitted:
        raise SessionClosed(f"Session {session.id} is already submitted")
    if question_id not in session.question_ids:
        raise ValidationError(f"Question {question_id} is not part of session {session.id}")


def record_answer(session: Session, question_id: str, choice_key) -> None:
    """Set (or clear, with None/empty) the answer for one question."""
    _require_open(session, question_id)
    key = normalize_key(choice_key)
    if key is None:
        session.answers.pop(question_id, None)
    else:
        session.answers[question_id] = key


def set_doubt(session: Session, question_id: str, flag: bool = True) -> None:
    """Mark a question as doubtful; advisory only, scoring ignores it."""
    _require_open(session, question_id)
    if flag:
        session.doubt_flags[question_id] = True
    else:
        session.doubt_flags.pop(question_id, None)


def is_overdue(session: Session, now: datetime | None = None) -> bool:
    if session.deadline is None:
        return False
    return as_utc(now or _utcnow()) > as_utc(session.deadline)


def remaining_seconds(session: Session, now: datetime | None = None) -> float | None:
    """Seconds left before the deadline (0 once passed); None for untimed sessions."""
    if session.deadline is None:
        return None
    return max(0.0, (as_utc(session.deadline) - as_utc(now or _utcnow())).total_seconds())
