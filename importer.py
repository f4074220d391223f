"""Import questions from a JSON file {"questions": [...]}: validate every row, then bulk UPSERT."""
import argparse
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from uuid import NAMESPACE_DNS, uuid5

from db import SupabaseCategoryRepo, get_supabase_uncached, upsert_questions_bulk
from engine import DEFAULT_CORRECT_SCORE, MAX_CHOICES, MIN_CHOICES, TKP_MAX_SCORE, TKP_MIN_SCORE
from tryout.errors import ValidationError
from tryout.models import QUESTION_KINDS, SCALE_TKP, normalize_key, question_from_row, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    total: int = 0
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    rows: list = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _option_keys(options) -> list:
    return [normalize_key(o.get("key")) if isinstance(o, dict) else None for o in options]


def _check_answer_key(line: int, q: dict, keys: list, errors: list) -> None:
    answer_key = q.get("answer_key")
    if not isinstance(answer_key, dict) or not answer_key:
        errors.append(f"Row {line}: answer_key is required")
        return

    if q.get("question_type") == SCALE_TKP:
        for key in answer_key:
            if normalize_key(key) not in keys:
                errors.append(f"Row {line}: answer_key has a score for '{key}', which is not an option")
        by_key = {normalize_key(k): v for k, v in answer_key.items()}
        for key in keys:
            if key not in by_key:
                errors.append(f"Row {line}: answer_key needs a score for option '{key}'")
                continue
            try:
                score = to_decimal(by_key[key])
            except ValidationError:
                score = None
            if score is None or not TKP_MIN_SCORE <= score <= TKP_MAX_SCORE:
                errors.append(
                    f"Row {line}: TKP score for '{key}' must be between {TKP_MIN_SCORE}-{TKP_MAX_SCORE} "
                    f"(best={TKP_MAX_SCORE}, worst={TKP_MIN_SCORE}). Value: {by_key[key]!r}"
                )
        return

    correct = normalize_key(answer_key.get("correct"))
    if correct is None:
        errors.append(f"Row {line}: answer_key.correct is required for multiple_choice")
    elif correct not in keys:
        errors.append(f"Row {line}: answer_key.correct '{correct}' is not one of the options")
    score = answer_key.get("score")
    if score is not None:
        try:
            ok = to_decimal(score) > 0
        except ValidationError:
            ok = False
        if not ok:
            errors.append(f"Row {line}: answer_key.score must be a number > 0")


def to_row(q: dict, category_id: str) -> dict:
    """Normalize one validated import item into a `questions` row."""
    options = [{"key": normalize_key(o["key"]), "text": o.get("text") or ""} for o in q["options"]]
    if q["question_type"] == SCALE_TKP:
        answer_key = {normalize_key(k): v for k, v in q["answer_key"].items()}
    else:
        answer_key = {
            "correct": normalize_key(q["answer_key"]["correct"]),
            "score": q["answer_key"].get("score", DEFAULT_CORRECT_SCORE),
        }
    seed = q.get("id") or f"{q['category_slug']}:{q['question_text']}"
    return {
        "id": str(uuid5(NAMESPACE_DNS, str(seed))),
        "category_id": category_id,
        "question_text": q["question_text"],
        "question_type": q["question_type"],
        "options": options,
        "answer_key": answer_key,
        "discussion": q.get("discussion") or None,
    }


def validate_questions(data, category_ids_by_slug: dict) -> ImportReport:
    """
    Validate an import payload against the known category slugs.

    Args:
        data: parsed JSON; must be an object with a "questions" array
        category_ids_by_slug: slug -> category id

    Returns:
        ImportReport with per-row errors/warnings and the rows to upsert
        (rows are only filled when there are no errors)
    """
    report = ImportReport()
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        report.errors.append("JSON file must have a 'questions' array")
        return report

    questions = data["questions"]
    report.total = len(questions)
    rows = []
    for idx, q in enumerate(questions):
        line = idx + 1
        if not isinstance(q, dict):
            report.errors.append(f"Row {line}: must be an object")
            continue
        before = len(report.errors)

        if not q.get("category_slug"):
            report.errors.append(f"Row {line}: category_slug is required")
        if not q.get("question_text"):
            report.errors.append(f"Row {line}: question_text is required")
        if not q.get("question_type"):
            report.errors.append(f"Row {line}: question_type is required")
        elif q["question_type"] not in QUESTION_KINDS:
            report.errors.append(f"Row {line}: question_type must be one of {', '.join(QUESTION_KINDS)}")

        slug = (q.get("category_slug") or "").lower()
        if slug and slug not in category_ids_by_slug:
            report.errors.append(f"Row {line}: category '{q['category_slug']}' not found")

        options = q.get("options")
        keys = []
        if not isinstance(options, list):
            report.errors.append(f"Row {line}: options must be an array")
        else:
            if len(options) < MIN_CHOICES:
                report.errors.append(f"Row {line}: at least {MIN_CHOICES} options")
            if len(options) > MAX_CHOICES:
                report.errors.append(f"Row {line}: at most {MAX_CHOICES} options")
            keys = _option_keys(options)
            if None in keys:
                report.errors.append(f"Row {line}: every option needs a key")
            elif len(set(keys)) != len(keys):
                report.errors.append(f"Row {line}: option keys must be unique")

        _check_answer_key(line, q, keys, report.errors)

        if not q.get("discussion"):
            report.warnings.append(f"Row {line}: discussion is empty (optional)")

        if len(report.errors) == before:
            row = to_row(q, category_ids_by_slug[slug])
            try:
                question_from_row(row)
            except ValidationError as e:
                report.errors.append(f"Row {line}: {e}")
                continue
            rows.append(row)

    if report.valid:
        report.rows = rows
    return report


def run_import(json_path: Path, chunk_size: int = 200, dry_run: bool = False) -> ImportReport:
    if not json_path.exists():
        raise FileNotFoundError(f"JSON not found: {json_path}")
    with json_path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    client = get_supabase_uncached()
    slugs = {c.slug: c.id for c in SupabaseCategoryRepo(client).all()}
    report = validate_questions(data, slugs)

    for warning in report.warnings:
        logger.warning(warning)
    if not report.valid:
        for error in report.errors:
            logger.error(error)
        print(f"Import rejected: {len(report.errors)} error(s) in {report.total} question(s)")
        return report
    if dry_run:
        print(f"Dry run: would upsert {len(report.rows)} questions from {json_path}")
        if report.rows:
            print("Sample row:", report.rows[0])
        return report

    upsert_questions_bulk(client, report.rows, chunk_size=chunk_size)
    print(f"Upserted {len(report.rows)} questions from {json_path}")
    return report


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Import a questions JSON file into Supabase.")
    parser.add_argument("json", help="Path to a JSON file with a 'questions' array")
    parser.add_argument("--chunk-size", type=int, default=200, help="Upsert chunk size (default 200)")
    parser.add_argument("--dry-run", action="store_true", help="Validate only, do not upsert")
    args = parser.parse_args()
    run_import(Path(args.json), chunk_size=args.chunk_size, dry_run=args.dry_run)
