"""Scoring: multiple choice, TKP scale, unanswered and unresolvable questions."""
from decimal import Decimal

import pytest

from tryout.errors import ValidationError
from tryout.models import (
    Choice,
    MultipleChoiceKey,
    Question,
    ScaleKey,
    ScoreResult,
    parse_answer_key,
    question_from_row,
)
from tryout.scoring import score_question, score_session

KEYS = "ABCDE"


def mc(qid, correct, points=5):
    return Question(
        id=qid,
        category_id="twk",
        choices=tuple(Choice(k, f"option {k}") for k in KEYS),
        answer_key=MultipleChoiceKey(correct, Decimal(points)),
    )


def scale(qid, points):
    return Question(
        id=qid,
        category_id="tkp",
        choices=tuple(Choice(k, f"option {k}") for k in points),
        answer_key=ScaleKey({k: Decimal(v) for k, v in points.items()}),
    )


TKP_POINTS = {"A": 2, "B": 1, "C": 5, "D": 1, "E": 3}


def test_multiple_choice_session():
    questions = {q.id: q for q in [mc("q1", "A"), mc("q2", "B"), mc("q3", "C")]}
    result = score_session(["q1", "q2", "q3"], {"q1": "A", "q2": "B"}, questions)

    assert result.score_total == Decimal(10)
    assert result.max_score == Decimal(15)
    assert result.correct_count == 2
    assert result.answered_count == 2
    assert result.unanswered_count == 1
    assert result.total_questions == 3


def test_wrong_answer_scores_zero_without_penalty():
    result = score_question(mc("q1", "A"), "D")
    assert result.score_obtained == 0
    assert result.max_possible == 5
    assert result.is_correct is False


def test_chosen_key_is_normalized():
    assert score_question(mc("q1", "B"), " b ").is_correct is True


def test_scale_best_choice():
    result = score_session(["t1"], {"t1": "C"}, {"t1": scale("t1", TKP_POINTS)})
    assert result.score_total == 5
    assert result.max_score == 5
    assert result.correct_count == 0
    assert result.questions[0].is_correct is None


def test_scale_blank():
    result = score_session(["t1"], {}, {"t1": scale("t1", TKP_POINTS)})
    assert result.score_total == 0
    assert result.max_score == 5
    assert result.unanswered_count == 1


def test_scale_unknown_key_scores_zero():
    assert score_question(scale("t1", TKP_POINTS), "Z").score_obtained == 0


def test_mixed_session():
    questions = {"q1": mc("q1", "A"), "t1": scale("t1", TKP_POINTS)}
    result = score_session(["q1", "t1"], {"q1": "A", "t1": "E"}, questions)
    assert result.score_total == 8
    assert result.max_score == 10
    assert result.correct_count == 1
    assert result.percentage == pytest.approx(80.0)


def test_unresolvable_questions_are_excluded():
    questions = {"q1": mc("q1", "A")}
    result = score_session(["q1", "gone"], {"q1": "A", "gone": "B"}, questions)
    assert result.total_questions == 1
    assert result.max_score == 5
    assert result.answered_count == 1
    assert result.excluded_question_ids == ("gone",)


def test_percentage_is_zero_when_nothing_scored():
    result = score_session(["gone"], {}, {})
    assert result.max_score == 0
    assert result.percentage == 0.0


def test_result_survives_dict_round_trip():
    questions = {"q1": mc("q1", "A"), "t1": scale("t1", TKP_POINTS)}
    result = score_session(["q1", "t1"], {"q1": "B", "t1": "A"}, questions)
    assert ScoreResult.from_dict(result.to_dict()) == result


# --- parsing stored rows ---

def test_mc_row_without_score_defaults_to_one_point():
    row = {
        "id": "q9",
        "category_id": "twk",
        "question_type": "multiple_choice",
        "options": [{"key": "a", "text": "x"}, {"key": "b", "text": "y"}],
        "answer_key": {"correct": "b"},
    }
    question = question_from_row(row)
    assert question.answer_key == MultipleChoiceKey("B", Decimal(1))
    assert question.choice_keys() == ["A", "B"]


def test_figural_row_is_scored_as_multiple_choice():
    row = {
        "id": "f1",
        "question_type": "figural",
        "options": '[{"id": "A", "text": "img1"}, {"id": "B", "text": "img2"}]',
        "answer_key": '{"correct": "A", "score": 5}',
    }
    assert question_from_row(row).kind == "multiple_choice"


def test_answer_key_outside_choices_is_rejected():
    row = {
        "id": "q1",
        "question_type": "multiple_choice",
        "options": [{"key": "A", "text": "x"}, {"key": "B", "text": "y"}],
        "answer_key": {"correct": "E"},
    }
    with pytest.raises(ValidationError):
        question_from_row(row)


@pytest.mark.parametrize("raw", [{}, "not json", {"correct": "A", "score": 0}, {"score": 3}])
def test_bad_mc_answer_keys(raw):
    with pytest.raises(ValidationError):
        parse_answer_key("multiple_choice", raw)


def test_scale_answer_key_must_be_numeric():
    with pytest.raises(ValidationError):
        parse_answer_key("scale_tkp", {"A": "high"})


def test_scale_key_needs_points_for_every_choice():
    with pytest.raises(ValidationError):
        Question(
            id="q1",
            category_id="tkp",
            choices=tuple(Choice(k, f"option {k}") for k in KEYS),
            answer_key=ScaleKey({k: Decimal(v) for k, v in TKP_POINTS.items() if k != "E"}),
        )
