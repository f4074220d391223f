"""
Data model for the composition and scoring engine.

Rows coming from the question bank are normalized here: choice keys are
upper-cased, point values become Decimal, and answer keys are parsed into
one of two variants (MultipleChoiceKey, ScaleKey). Scoring dispatches on the
variant type, never on a string field.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import ClassVar, Mapping

from engine import DEFAULT_MC_POINTS
from tryout.errors import ValidationError

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE = "multiple_choice"
SCALE_TKP = "scale_tkp"
QUESTION_KINDS = (MULTIPLE_CHOICE, SCALE_TKP)

CATEGORY_KINDS = ("subject", "topic", "subtopic")

IN_PROGRESS = "in_progress"
SUBMITTED = "submitted"


def to_decimal(value, field_name: str = "value") -> Decimal:
    """Convert a JSON number (or numeric string) to Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    return result


def normalize_key(value) -> str | None:
    """Upper-case a choice key; empty or missing -> None."""
    if value is None:
        return None
    key = str(value).strip().upper()
    return key or None


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    slug: str
    parent_id: str | None = None
    kind: str = "subject"


@dataclass(frozen=True)
class Choice:
    key: str
    text: str


@dataclass(frozen=True)
class MultipleChoiceKey:
    kind: ClassVar[str] = MULTIPLE_CHOICE

    correct_key: str
    point_value: Decimal

    def referenced_keys(self) -> set:
        return {self.correct_key}


@dataclass(frozen=True)
class ScaleKey:
    kind: ClassVar[str] = SCALE_TKP

    points: Mapping[str, Decimal]

    def referenced_keys(self) -> set:
        return set(self.points)


AnswerKey = MultipleChoiceKey | ScaleKey


@dataclass(frozen=True)
class Question:
    id: str
    category_id: str
    choices: tuple[Choice, ...]
    answer_key: AnswerKey
    text: str = ""

    def __post_init__(self):
        keys = [c.key for c in self.choices]
        if not keys:
            raise ValidationError(f"Question {self.id}: no choices")
        if len(set(keys)) != len(keys):
            raise ValidationError(f"Question {self.id}: duplicate choice keys {keys}")
        unknown = self.answer_key.referenced_keys() - set(keys)
        if unknown:
            raise ValidationError(
                f"Question {self.id}: answer key references {sorted(unknown)} "
                f"not in choices {keys}"
            )
        if isinstance(self.answer_key, MultipleChoiceKey) and self.answer_key.point_value <= 0:
            raise ValidationError(f"Question {self.id}: point value must be > 0")
        if isinstance(self.answer_key, ScaleKey):
            missing = set(keys) - self.answer_key.referenced_keys()
            if missing:
                raise ValidationError(f"Question {self.id}: scale key has no points for {sorted(missing)}")

    @property
    def kind(self) -> str:
        return self.answer_key.kind

    def choice_keys(self) -> list[str]:
        return [c.key for c in self.choices]


@dataclass(frozen=True)
class BlueprintEntry:
    category_id: str
    question_count: int
    passing_grade: int | None = None

    def __post_init__(self):
        if isinstance(self.question_count, bool) or not isinstance(self.question_count, int):
            raise ValidationError(f"question_count must be an integer, got {self.question_count!r}")
        if self.question_count < 0:
            raise ValidationError(f"question_count must be >= 0, got {self.question_count}")
        if self.passing_grade is not None and self.passing_grade < 0:
            raise ValidationError(f"passing_grade must be >= 0, got {self.passing_grade}")


@dataclass(frozen=True)
class QuestionScore:
    question_id: str
    kind: str
    chosen: str | None
    score_obtained: Decimal
    max_possible: Decimal
    is_correct: bool | None = None  # None for scale questions

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "kind": self.kind,
            "chosen": self.chosen,
            "score_obtained": str(self.score_obtained),
            "max_possible": str(self.max_possible),
            "is_correct": self.is_correct,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionScore":
        return cls(
            question_id=data["question_id"],
            kind=data["kind"],
            chosen=data.get("chosen"),
            score_obtained=Decimal(str(data["score_obtained"])),
            max_possible=Decimal(str(data["max_possible"])),
            is_correct=data.get("is_correct"),
        )


@dataclass(frozen=True)
class ScoreResult:
    score_total: Decimal
    max_score: Decimal
    total_questions: int
    correct_count: int
    answered_count: int
    unanswered_count: int
    questions: tuple[QuestionScore, ...] = ()
    excluded_question_ids: tuple[str, ...] = ()

    @property
    def percentage(self) -> float:
        """Score as percent of the maximum; 0 when nothing could be scored."""
        if self.max_score == 0:
            return 0.0
        return float(self.score_total / self.max_score * 100)

    def to_dict(self) -> dict:
        return {
            "score_total": str(self.score_total),
            "max_score": str(self.max_score),
            "total_questions": self.total_questions,
            "correct_count": self.correct_count,
            "answered_count": self.answered_count,
            "unanswered_count": self.unanswered_count,
            "questions": [q.to_dict() for q in self.questions],
            "excluded_question_ids": list(self.excluded_question_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScoreResult":
        return cls(
            score_total=Decimal(str(data["score_total"])),
            max_score=Decimal(str(data["max_score"])),
            total_questions=int(data["total_questions"]),
            correct_count=int(data["correct_count"]),
            answered_count=int(data["answered_count"]),
            unanswered_count=int(data["unanswered_count"]),
            questions=tuple(QuestionScore.from_dict(q) for q in data.get("questions") or []),
            excluded_question_ids=tuple(data.get("excluded_question_ids") or []),
        )


@dataclass
class Session:
    id: str
    user_id: str
    question_ids: tuple[str, ...]
    started_at: datetime
    deadline: datetime | None = None
    answers: dict[str, str] = field(default_factory=dict)
    doubt_flags: dict[str, bool] = field(default_factory=dict)
    status: str = IN_PROGRESS
    target_id: str | None = None
    submitted_at: datetime | None = None
    result: ScoreResult | None = None

    @property
    def is_submitted(self) -> bool:
        return self.status == SUBMITTED


# --- Row parsing (question bank JSON shapes) ---

def parse_choices(value) -> tuple[Choice, ...]:
    """
    Normalize stored options into Choice tuples.

    Accepts a list of {"key"|"id", "text"} objects or a JSON string of such a
    list. Items without a string key and text are dropped.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return ()
    if not isinstance(value, list):
        return ()
    choices = []
    for item in value:
        if not isinstance(item, dict):
            continue
        raw_key = item.get("key") if isinstance(item.get("key"), str) else item.get("id")
        text = item.get("text")
        if not isinstance(raw_key, str) or not isinstance(text, str):
            continue
        choices.append(Choice(key=raw_key.strip().upper(), text=text))
    return tuple(choices)


def parse_answer_key(kind: str, raw) -> AnswerKey:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError(f"answer_key is not valid JSON: {raw!r}")
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("answer_key must be a non-empty object")

    if kind == SCALE_TKP:
        points = {}
        for key, value in raw.items():
            norm = normalize_key(key)
            if norm is None:
                raise ValidationError("answer_key has an empty choice key")
            points[norm] = to_decimal(value, f"score for '{norm}'")
        return ScaleKey(points=points)

    correct = normalize_key(raw.get("correct"))
    if correct is None:
        raise ValidationError("answer_key.correct is required for multiple_choice")
    score = raw.get("score")
    point_value = Decimal(DEFAULT_MC_POINTS) if score in (None, "") else to_decimal(score, "answer_key.score")
    if point_value <= 0:
        raise ValidationError(f"answer_key.score must be > 0, got {score!r}")
    return MultipleChoiceKey(correct_key=correct, point_value=point_value)


def question_from_row(row: dict) -> Question:
    """Build a Question from a `questions` row; raises ValidationError on bad shape."""
    kind = SCALE_TKP if row.get("question_type") == SCALE_TKP else MULTIPLE_CHOICE
    choices = parse_choices(row.get("options"))
    if not choices:
        raise ValidationError(f"Question {row.get('id')}: missing choices")
    return Question(
        id=str(row["id"]),
        category_id=str(row.get("category_id") or ""),
        choices=choices,
        answer_key=parse_answer_key(kind, row.get("answer_key")),
        text=row.get("question_text") or "",
    )


def category_from_row(row: dict) -> Category:
    parent = row.get("parent_id")
    return Category(
        id=str(row["id"]),
        name=row.get("name") or "",
        slug=(row.get("slug") or "").lower(),
        parent_id=str(parent) if parent else None,
        kind=row.get("type") or row.get("kind") or "subject",
    )
