"""Supabase adapters for the engine's repository protocols. Client is created lazily."""
import logging
import os
import random
from datetime import datetime, timezone
from typing import Sequence

from dotenv import load_dotenv
from supabase import create_client, Client

from tryout.category_tree import CategoryTree
from tryout.composition import CompositionService
from tryout.errors import ValidationError
from tryout.models import (
    BlueprintEntry,
    Category,
    Question,
    ScoreResult,
    Session,
    category_from_row,
    question_from_row,
)

load_dotenv()

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
IN_CHUNK = 200

_client: Client | None = None


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(url, key)


def get_supabase() -> Client:
    """Shared client for the host process."""
    global _client
    if _client is None:
        _client = _env_client()
    return _client


def get_supabase_uncached() -> Client:
    """For CLI/scripts."""
    return _env_client()


def fetch_all(make_query, page_size: int = PAGE_SIZE) -> list[dict]:
    """Page through a select (Supabase caps responses, often at 1000 rows)."""
    rows = []
    offset = 0
    while True:
        r = make_query().range(offset, offset + page_size - 1).execute()
        data = r.data or []
        rows.extend(data)
        if len(data) < page_size:
            break
        offset += page_size
    return rows


def _parse_ts(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def upsert_questions_bulk(client: Client, rows: list[dict], chunk_size: int = 200):
    """Bulk upsert into questions. Dedupes by id so no chunk has duplicates (avoids Postgres ON CONFLICT error)."""
    n_before = len(rows)
    by_id = {r["id"]: r for r in rows}
    rows = list(by_id.values())
    if len(rows) < n_before:
        logger.info("Deduped questions by id: %d -> %d", n_before, len(rows))
    n_chunks = (len(rows) + chunk_size - 1) // chunk_size
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        logger.info("Upserting chunk %d/%d (%d rows)", i // chunk_size + 1, n_chunks, len(chunk))
        client.table("questions").upsert(chunk, on_conflict="id").execute()


# --- Categories ---

class SupabaseCategoryRepo:
    COLUMNS = "id, name, slug, parent_id, type"

    def __init__(self, client: Client):
        self.client = client

    def get(self, category_id: str) -> Category | None:
        r = self.client.table("categories").select(self.COLUMNS).eq("id", category_id).limit(1).execute()
        return category_from_row(r.data[0]) if r.data else None

    def by_slug(self, slug: str) -> Category | None:
        r = self.client.table("categories").select(self.COLUMNS).eq("slug", slug.lower()).limit(1).execute()
        return category_from_row(r.data[0]) if r.data else None

    def all(self) -> list[Category]:
        rows = fetch_all(lambda: self.client.table("categories").select(self.COLUMNS).order("name"))
        return [category_from_row(row) for row in rows]

    def children_of(self, category_id: str) -> list[Category]:
        r = (
            self.client.table("categories")
            .select(self.COLUMNS)
            .eq("parent_id", category_id)
            .order("name")
            .execute()
        )
        return [category_from_row(row) for row in r.data or []]

    def question_stock_direct(self, category_id: str) -> int:
        r = (
            self.client.table("questions")
            .select("id", count="exact")
            .eq("category_id", category_id)
            .limit(0)
            .execute()
        )
        return int(getattr(r, "count", None) or 0)


# --- Questions ---

class SupabaseQuestionRepo:
    """
    Question lookups for scoring and sampling.

    Rows that fail to parse are logged and treated as missing, so scoring
    excludes them instead of failing the submission.
    """
    COLUMNS = "id, category_id, question_text, question_type, options, answer_key"

    def __init__(self, client: Client):
        self.client = client

    def _parse(self, row: dict) -> Question | None:
        try:
            return question_from_row(row)
        except ValidationError as e:
            logger.warning("Skipping malformed question %s: %s", row.get("id"), e)
            return None

    def get(self, question_id: str) -> Question | None:
        r = self.client.table("questions").select(self.COLUMNS).eq("id", question_id).limit(1).execute()
        return self._parse(r.data[0]) if r.data else None

    def get_many(self, question_ids: Sequence[str]) -> dict[str, Question]:
        found = {}
        ids = list(dict.fromkeys(question_ids))
        for i in range(0, len(ids), IN_CHUNK):
            chunk = ids[i : i + IN_CHUNK]
            r = self.client.table("questions").select(self.COLUMNS).in_("id", chunk).execute()
            for row in r.data or []:
                question = self._parse(row)
                if question is not None:
                    found[question.id] = question
        return found

    def ids_in_categories(self, category_ids: Sequence[str]) -> list[str]:
        ids = []
        category_ids = list(category_ids)
        for i in range(0, len(category_ids), IN_CHUNK):
            chunk = category_ids[i : i + IN_CHUNK]
            rows = fetch_all(
                lambda: self.client.table("questions").select("id").in_("category_id", chunk).order("id")
            )
            ids.extend(str(row["id"]) for row in rows)
        return ids


# --- Blueprints ---

class SupabaseBlueprintRepo:
    """
    Blueprint rows keyed by (target column, category_id).

    replace() deletes every row of the target and inserts the new set:
    the new entries are the full state, never merged into the old one.
    """

    def __init__(self, client: Client, table: str, key_column: str, with_passing_grade: bool):
        self.client = client
        self.table = table
        self.key_column = key_column
        self.with_passing_grade = with_passing_grade

    def _row(self, target_id: str, entry: BlueprintEntry, position: int) -> dict:
        row = {
            self.key_column: target_id,
            "category_id": entry.category_id,
            "question_count": entry.question_count,
            "position": position,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if self.with_passing_grade:
            row["passing_grade"] = entry.passing_grade
        return row

    def replace(self, target_id: str, entries: Sequence[BlueprintEntry]) -> None:
        self.client.table(self.table).delete().eq(self.key_column, target_id).execute()
        rows = [self._row(target_id, e, i) for i, e in enumerate(entries)]
        if rows:
            self.client.table(self.table).insert(rows).execute()
        logger.info("Replaced %s for %s with %d rows", self.table, target_id, len(rows))

    def get(self, target_id: str) -> list[BlueprintEntry]:
        r = (
            self.client.table(self.table)
            .select("*")
            .eq(self.key_column, target_id)
            .order("position")
            .execute()
        )
        return [
            BlueprintEntry(
                category_id=str(row["category_id"]),
                question_count=int(row["question_count"]),
                passing_grade=row.get("passing_grade"),
            )
            for row in r.data or []
        ]

    def upsert(self, target_id: str, entry: BlueprintEntry) -> None:
        current = self.get(target_id)
        position = next(
            (i for i, e in enumerate(current) if e.category_id == entry.category_id),
            len(current),
        )
        self.client.table(self.table).upsert(
            self._row(target_id, entry, position), on_conflict=f"{self.key_column},category_id"
        ).execute()

    def remove(self, target_id: str, category_id: str) -> None:
        (
            self.client.table(self.table)
            .delete()
            .eq(self.key_column, target_id)
            .eq("category_id", category_id)
            .execute()
        )


def package_blueprints(client: Client) -> SupabaseBlueprintRepo:
    return SupabaseBlueprintRepo(client, "exam_package_blueprints", "package_id", with_passing_grade=False)


def institution_blueprints(client: Client) -> SupabaseBlueprintRepo:
    return SupabaseBlueprintRepo(client, "exam_blueprints", "institution_id", with_passing_grade=True)


# --- Sessions ---

class SupabaseSessionRepo:
    """
    Tryout sessions in user_exam_sessions.

    transition() is one UPDATE filtered on both id and the expected status,
    so of two concurrent submits only one matches a row.
    """
    TABLE = "user_exam_sessions"

    def __init__(self, client: Client):
        self.client = client

    def save(self, session: Session) -> None:
        row = {
            "id": session.id,
            "user_id": session.user_id,
            "package_id": session.target_id,
            "question_ids": list(session.question_ids),
            "answers": session.answers,
            "doubts": session.doubt_flags,
            "status": session.status,
            "started_at": session.started_at.isoformat(),
            "deadline": session.deadline.isoformat() if session.deadline else None,
        }
        self.client.table(self.TABLE).upsert(row, on_conflict="id").execute()

    def get(self, session_id: str) -> Session | None:
        r = self.client.table(self.TABLE).select("*").eq("id", session_id).limit(1).execute()
        if not r.data:
            return None
        row = r.data[0]
        return Session(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            question_ids=tuple(row.get("question_ids") or []),
            started_at=_parse_ts(row.get("started_at")),
            deadline=_parse_ts(row.get("deadline")),
            answers=dict(row.get("answers") or {}),
            doubt_flags=dict(row.get("doubts") or {}),
            status=row.get("status") or "in_progress",
            target_id=row.get("package_id"),
            submitted_at=_parse_ts(row.get("finished_at")),
            result=ScoreResult.from_dict(row["result"]) if row.get("result") else None,
        )

    def transition(self, session_id: str, frm: str, to: str, result: ScoreResult,
                   answers: dict[str, str] | None = None,
                   submitted_at: datetime | None = None) -> bool:
        update = {
            "status": to,
            "result": result.to_dict(),
            "score_total": float(result.score_total),
            "max_score": float(result.max_score),
            "total_questions": result.total_questions,
            "correct_count": result.correct_count,
            "finished_at": (submitted_at or datetime.now(timezone.utc)).isoformat(),
        }
        if answers is not None:
            update["answers"] = answers
        r = (
            self.client.table(self.TABLE)
            .update(update)
            .eq("id", session_id)
            .eq("status", frm)
            .execute()
        )
        return bool(r.data)

    def get_result(self, session_id: str) -> ScoreResult | None:
        r = self.client.table(self.TABLE).select("result").eq("id", session_id).limit(1).execute()
        if not r.data or not r.data[0].get("result"):
            return None
        return ScoreResult.from_dict(r.data[0]["result"])


class SupabaseQuestionPool:
    """Uniform draw without replacement from a category subtree stored in Supabase."""

    def __init__(self, categories: SupabaseCategoryRepo, questions: SupabaseQuestionRepo,
                 rng: random.Random | None = None):
        self.categories = categories
        self.questions = questions
        self.rng = rng or random.Random()

    def sample(self, category_id: str, n: int) -> list[str]:
        tree = CategoryTree.load(self.categories, category_id)
        ids = self.questions.ids_in_categories(tree.descendants_of(category_id))
        if n <= 0 or not ids:
            return []
        return self.rng.sample(ids, min(n, len(ids)))


def build_service(client: Client | None = None, rng: random.Random | None = None):
    """CompositionService wired to Supabase; the pool samples uniformly per call."""
    client = client or get_supabase()
    categories = SupabaseCategoryRepo(client)
    questions = SupabaseQuestionRepo(client)
    return CompositionService(
        categories=categories,
        questions=questions,
        blueprints=package_blueprints(client),
        sessions=SupabaseSessionRepo(client),
        pool=SupabaseQuestionPool(categories, questions, rng=rng),
        master_blueprints=institution_blueprints(client),
    )
