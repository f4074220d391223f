"""
Composition service: blueprint write path, session start and submission.

Blueprint edits return a BlueprintOutcome instead of raising, so the host
can show `error` to an admin without handling engine exceptions. Session
start raises typed ExamEngineError subclasses. Submit is at-most-once.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping

from tryout.apportion import WeightPolicy
from tryout.blueprint import allocate_blueprint, total_questions
from tryout.category_tree import CategoryTree
from tryout.errors import ConcurrencyConflict, ExamEngineError, TotalExceedsCapacity, ValidationError
from tryout.models import IN_PROGRESS, SUBMITTED, BlueprintEntry, ScoreResult, Session, normalize_key
from tryout.scoring import score_session
from tryout.session import as_utc, default_duration_minutes, is_overdue, start_session

logger = logging.getLogger(__name__)


@dataclass
class BlueprintOutcome:
    ok: bool
    entries: list[BlueprintEntry] = field(default_factory=list)
    error: ExamEngineError | None = None

    @property
    def message(self) -> str:
        return str(self.error) if self.error else ""


class CompositionService:
    """
    Orchestrates the engine over the collaborator repos.

    Args:
        categories: CategoryRepo
        questions: QuestionRepo used to resolve questions at submit time
        blueprints: BlueprintRepo for package blueprints
        sessions: SessionRepo with an atomic status transition
        pool: default QuestionPool for session start
        master_blueprints: BlueprintRepo for institution (master) blueprints;
            defaults to `blueprints`
    """

    def __init__(self, categories, questions, blueprints, sessions, pool=None, master_blueprints=None):
        self.categories = categories
        self.questions = questions
        self.blueprints = blueprints
        self.sessions = sessions
        self.pool = pool
        self.master_blueprints = master_blueprints or blueprints

    # ============= Blueprints =============

    def generate_blueprint(self, target_id: str, root_category_id: str, total: int,
                           policy: WeightPolicy = WeightPolicy(), reserve_one: bool = True) -> BlueprintOutcome:
        """Allocate `total` questions over the children of a category and replace the target's blueprint."""
        try:
            tree = CategoryTree.load(self.categories, root_category_id)
            entries = allocate_blueprint(tree, root_category_id, total, policy, reserve_one=reserve_one)
        except ExamEngineError as e:
            logger.warning("Blueprint for %s not generated: %s", target_id, e)
            return BlueprintOutcome(ok=False, error=e)

        self.blueprints.replace(target_id, entries)
        logger.info(
            "Blueprint %s replaced: %d questions over %d categories (mode=%s)",
            target_id, total_questions(entries), len(entries), policy.mode,
        )
        return BlueprintOutcome(ok=True, entries=entries)

    def set_blueprint_entry(self, target_id: str, category_id: str, question_count: int,
                            passing_grade: int | None = None) -> BlueprintOutcome:
        """Insert or update one category quota, checked against that category's stock."""
        try:
            if isinstance(question_count, bool) or not isinstance(question_count, int) or question_count <= 0:
                raise ValidationError(f"Question count must be > 0, got {question_count!r}")
            entry = BlueprintEntry(category_id, question_count, passing_grade)
            stock = CategoryTree.load(self.categories, category_id).stock_of(category_id)
            if question_count > stock:
                raise TotalExceedsCapacity(question_count, stock)
        except ExamEngineError as e:
            logger.warning("Blueprint entry %s/%s rejected: %s", target_id, category_id, e)
            return BlueprintOutcome(ok=False, error=e)

        self.blueprints.upsert(target_id, entry)
        return BlueprintOutcome(ok=True, entries=self.blueprints.get(target_id))

    def remove_blueprint_entry(self, target_id: str, category_id: str) -> BlueprintOutcome:
        self.blueprints.remove(target_id, category_id)
        return BlueprintOutcome(ok=True, entries=self.blueprints.get(target_id))

    def apply_master_blueprint(self, package_id: str, institution_id: str) -> BlueprintOutcome:
        """Replace a package blueprint with a copy of the institution's master blueprint."""
        masters = self.master_blueprints.get(institution_id)
        if not masters:
            error = ValidationError(f"Master blueprint for institution {institution_id} is empty")
            logger.warning("%s", error)
            return BlueprintOutcome(ok=False, error=error)
        entries = list(masters)
        self.blueprints.replace(package_id, entries)
        logger.info("Package %s blueprint copied from institution %s (%d entries)",
                    package_id, institution_id, len(entries))
        return BlueprintOutcome(ok=True, entries=entries)

    def get_blueprint(self, target_id: str) -> list[BlueprintEntry]:
        return self.blueprints.get(target_id)

    # ============= Sessions =============

    def _root_slug(self, category_id: str) -> str | None:
        node = self.categories.get(category_id)
        seen = set()
        while node is not None and node.parent_id and node.id not in seen:
            seen.add(node.id)
            parent = self.categories.get(node.parent_id)
            if parent is None:
                break
            node = parent
        return node.slug if node else None

    def default_duration(self, entries: list[BlueprintEntry], institution: bool = False) -> int:
        """Time limit for a tryout over `entries`, picked by the root section of the first entry."""
        root_slug = self._root_slug(entries[0].category_id) if entries else None
        return default_duration_minutes(root_slug, institution=institution)

    def start_session(self, target_id: str, user_id: str, pool=None, strict: bool = True,
                      duration_minutes: int | None = None, now: datetime | None = None,
                      institution: bool = False, timed: bool = True) -> Session:
        """
        Open a session from a package blueprint (or an institution master
        blueprint when `institution` is set).

        Strict tryouts without an explicit `duration_minutes` get the default
        time limit; practice sessions (strict=False) stay untimed unless a
        duration is passed, as do sessions started with timed=False.
        """
        repo = self.master_blueprints if institution else self.blueprints
        entries = repo.get(target_id)
        if not entries:
            raise ValidationError(f"No blueprint for {target_id}")
        pool = pool or self.pool
        if pool is None:
            raise ValidationError("No question pool configured")
        if duration_minutes is None and strict and timed:
            duration_minutes = self.default_duration(entries, institution=institution)
        session = start_session(entries, pool, user_id, strict=strict,
                                duration_minutes=duration_minutes, now=now, target_id=target_id)
        self.sessions.save(session)
        return session

    def submit(self, session: Session, final_answers: Mapping[str, str] | None = None,
               now: datetime | None = None) -> ScoreResult:
        """
        Score and close a session exactly once.

        A session that is already submitted returns its stored result
        unchanged. Submissions after the deadline are still scored with the
        answers given. `final_answers`, when passed, replaces the recorded
        answers.
        """
        if session.is_submitted:
            stored = session.result or self.sessions.get_result(session.id)
            if stored is None:
                raise ConcurrencyConflict(f"Session {session.id} is submitted but has no stored result")
            logger.info("Session %s already submitted; returning stored result", session.id)
            session.result = stored
            return stored

        answers = self._final_answers(session, final_answers)
        now = as_utc(now) if now else datetime.now(timezone.utc)
        if is_overdue(session, now):
            logger.warning("Session %s submitted after deadline %s; scoring recorded answers",
                           session.id, session.deadline.isoformat())

        questions = self.questions.get_many(list(session.question_ids))
        result = score_session(session.question_ids, answers, questions)

        if self.sessions.transition(session.id, IN_PROGRESS, SUBMITTED, result,
                                    answers=answers, submitted_at=now):
            logger.info(f"Session {session.id} submitted: score={result.score_total}/{result.max_score}, "
                        f"correct={result.correct_count}")
            session.answers = answers
        else:
            stored = self.sessions.get_result(session.id)
            if stored is None:
                raise ConcurrencyConflict(f"Session {session.id} could not transition and has no stored result")
            logger.info("Session %s was submitted concurrently; returning stored result", session.id)
            result = stored

        session.status = SUBMITTED
        session.submitted_at = session.submitted_at or now
        session.result = result
        return result

    @staticmethod
    def _final_answers(session: Session, final_answers: Mapping[str, str] | None) -> dict[str, str]:
        source = session.answers if final_answers is None else final_answers
        allowed = set(session.question_ids)
        answers = {}
        for qid, key in source.items():
            norm = normalize_key(key)
            if norm is not None and qid in allowed:
                answers[qid] = norm
        return answers
