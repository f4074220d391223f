"""
Collaborator protocols consumed by the engine, with in-memory implementations.

The Supabase adapters in `db.py` implement the same protocols against the
hosted tables; the in-memory versions back tests and offline scripts.
"""
import logging
import random
import threading
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Iterable, Protocol, Sequence

from tryout.models import BlueprintEntry, Category, Question, ScoreResult, Session

logger = logging.getLogger(__name__)


class CategoryRepo(Protocol):
    def get(self, category_id: str) -> Category | None: ...

    def children_of(self, category_id: str) -> list[Category]: ...

    def question_stock_direct(self, category_id: str) -> int: ...


class QuestionRepo(Protocol):
    def get(self, question_id: str) -> Question | None: ...

    def get_many(self, question_ids: Sequence[str]) -> dict[str, Question]: ...


class QuestionPool(Protocol):
    def sample(self, category_id: str, n: int) -> list[str]: ...


class BlueprintRepo(Protocol):
    def replace(self, target_id: str, entries: Sequence[BlueprintEntry]) -> None: ...

    def get(self, target_id: str) -> list[BlueprintEntry]: ...

    def upsert(self, target_id: str, entry: BlueprintEntry) -> None: ...

    def remove(self, target_id: str, category_id: str) -> None: ...


class SessionRepo(Protocol):
    def save(self, session: Session) -> None: ...

    def get(self, session_id: str) -> Session | None: ...

    def transition(self, session_id: str, frm: str, to: str, result: ScoreResult,
                   answers: dict[str, str] | None = None,
                   submitted_at: datetime | None = None) -> bool: ...

    def get_result(self, session_id: str) -> ScoreResult | None: ...


class InMemoryCategoryRepo:
    """Categories plus direct question counts held in dicts."""

    def __init__(self, categories: Iterable[Category], direct_counts: dict[str, int] | None = None):
        self._by_id = {c.id: c for c in categories}
        self._children = defaultdict(list)
        for c in self._by_id.values():
            if c.parent_id:
                self._children[c.parent_id].append(c)
        for kids in self._children.values():
            kids.sort(key=lambda c: c.name)
        self._direct = dict(direct_counts or {})

    @classmethod
    def from_questions(cls, categories: Iterable[Category], questions: Iterable[Question]):
        counts = Counter(q.category_id for q in questions)
        return cls(categories, dict(counts))

    def get(self, category_id: str) -> Category | None:
        return self._by_id.get(category_id)

    def all(self) -> list[Category]:
        return list(self._by_id.values())

    def children_of(self, category_id: str) -> list[Category]:
        return list(self._children.get(category_id, []))

    def question_stock_direct(self, category_id: str) -> int:
        return self._direct.get(category_id, 0)

    def direct_counts(self) -> dict[str, int]:
        return dict(self._direct)


class InMemoryQuestionRepo:
    def __init__(self, questions: Iterable[Question] = ()):
        self._by_id: dict[str, Question] = {}
        for q in questions:
            self.add(q)

    def add(self, question: Question) -> None:
        self._by_id[question.id] = question

    def delete(self, question_id: str) -> None:
        self._by_id.pop(question_id, None)

    def get(self, question_id: str) -> Question | None:
        return self._by_id.get(question_id)

    def get_many(self, question_ids: Sequence[str]) -> dict[str, Question]:
        return {qid: self._by_id[qid] for qid in question_ids if qid in self._by_id}

    def ids_in_categories(self, category_ids: Iterable[str]) -> list[str]:
        wanted = set(category_ids)
        return [q.id for q in self._by_id.values() if q.category_id in wanted]


class RandomQuestionPool:
    """
    Uniform sampling without replacement over a category subtree.

    Args:
        tree: CategoryTree used to expand a category into its descendants
        questions: repo exposing ids_in_categories()
        rng: random.Random instance (seed it for reproducible sessions)
    """

    def __init__(self, tree, questions: InMemoryQuestionRepo, rng: random.Random | None = None):
        self.tree = tree
        self.questions = questions
        self.rng = rng or random.Random()

    def sample(self, category_id: str, n: int) -> list[str]:
        ids = self.questions.ids_in_categories(self.tree.descendants_of(category_id))
        if n <= 0 or not ids:
            return []
        return self.rng.sample(ids, min(n, len(ids)))


class InMemoryBlueprintRepo:
    def __init__(self):
        self._entries: dict[str, list[BlueprintEntry]] = {}

    def replace(self, target_id: str, entries: Sequence[BlueprintEntry]) -> None:
        self._entries[target_id] = list(entries)

    def get(self, target_id: str) -> list[BlueprintEntry]:
        return list(self._entries.get(target_id, []))

    def upsert(self, target_id: str, entry: BlueprintEntry) -> None:
        current = self._entries.setdefault(target_id, [])
        for i, existing in enumerate(current):
            if existing.category_id == entry.category_id:
                current[i] = entry
                return
        current.append(entry)

    def remove(self, target_id: str, category_id: str) -> None:
        current = self._entries.get(target_id, [])
        self._entries[target_id] = [e for e in current if e.category_id != category_id]


class InMemorySessionRepo:
    """Sessions in a dict; transition() is atomic under a lock."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def save(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def transition(self, session_id: str, frm: str, to: str, result: ScoreResult,
                   answers: dict[str, str] | None = None,
                   submitted_at: datetime | None = None) -> bool:
        with self._lock:
            stored = self._sessions.get(session_id)
            if stored is None or stored.status != frm:
                return False
            stored.status = to
            stored.result = result
            if answers is not None:
                stored.answers = dict(answers)
            stored.submitted_at = submitted_at or datetime.now(timezone.utc)
            return True

    def get_result(self, session_id: str) -> ScoreResult | None:
        stored = self._sessions.get(session_id)
        return stored.result if stored else None
