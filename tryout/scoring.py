"""
Session scoring for multiple-choice and TKP scale questions.

Each answer-key variant has exactly one scoring function, registered in
SCORERS. A new question kind needs a new variant class and one entry here.
"""
import logging
from decimal import Decimal
from typing import Callable, Mapping, Sequence

from tryout.errors import ValidationError
from tryout.models import (
    MultipleChoiceKey,
    Question,
    QuestionScore,
    ScaleKey,
    ScoreResult,
    normalize_key,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def score_multiple_choice(question: Question, chosen: str | None) -> QuestionScore:
    key: MultipleChoiceKey = question.answer_key
    is_correct = chosen is not None and chosen == key.correct_key
    return QuestionScore(
        question_id=question.id,
        kind=question.kind,
        chosen=chosen,
        score_obtained=key.point_value if is_correct else ZERO,
        max_possible=key.point_value,
        is_correct=is_correct,
    )


def score_scale(question: Question, chosen: str | None) -> QuestionScore:
    # No correct answer: every option carries its own points, unknown keys score 0.
    key: ScaleKey = question.answer_key
    obtained = key.points.get(chosen, ZERO) if chosen is not None else ZERO
    return QuestionScore(
        question_id=question.id,
        kind=question.kind,
        chosen=chosen,
        score_obtained=obtained,
        max_possible=max(key.points.values(), default=ZERO),
    )


SCORERS: dict[type, Callable[[Question, str | None], QuestionScore]] = {
    MultipleChoiceKey: score_multiple_choice,
    ScaleKey: score_scale,
}


def score_question(question: Question, chosen) -> QuestionScore:
    scorer = SCORERS.get(type(question.answer_key))
    if scorer is None:
        raise ValidationError(f"No scorer for answer key type {type(question.answer_key).__name__}")
    return scorer(question, normalize_key(chosen))


def score_session(question_ids: Sequence[str], answers: Mapping[str, str],
                  questions: Mapping[str, Question]) -> ScoreResult:
    """
    Score a fixed question list against the recorded answers.

    Args:
        question_ids: the session's questions in presentation order
        answers: question id -> chosen key (missing or empty = unanswered)
        questions: resolved questions by id; ids missing here are excluded
            from every total

    Returns:
        ScoreResult with totals and one QuestionScore per resolved question
    """
    scored = []
    excluded = []
    for qid in question_ids:
        question = questions.get(qid)
        if question is None:
            excluded.append(qid)
            continue
        scored.append(score_question(question, answers.get(qid)))

    if excluded:
        logger.warning("Excluded %d unresolvable question(s) from scoring: %s", len(excluded), excluded)

    answered = sum(1 for s in scored if s.chosen is not None)
    result = ScoreResult(
        score_total=sum((s.score_obtained for s in scored), ZERO),
        max_score=sum((s.max_possible for s in scored), ZERO),
        total_questions=len(scored),
        correct_count=sum(1 for s in scored if s.is_correct),
        answered_count=answered,
        unanswered_count=len(scored) - answered,
        questions=tuple(scored),
        excluded_question_ids=tuple(excluded),
    )
    logger.debug(f"Scored {result.total_questions} questions: {result.score_total}/{result.max_score}")
    return result
