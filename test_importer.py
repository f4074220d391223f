"""Question import validation (no database)."""
import pytest

from importer import to_row, validate_questions
from tryout.models import question_from_row

SLUGS = {"twk": "cat-twk", "tkp": "cat-tkp"}


def mc_item(**overrides):
    item = {
        "category_slug": "twk",
        "question_text": "Pancasila disahkan pada tanggal?",
        "question_type": "multiple_choice",
        "options": [{"key": k, "text": f"opsi {k}"} for k in "abcde"],
        "answer_key": {"correct": "c", "score": 5},
        "discussion": "18 Agustus 1945",
    }
    item.update(overrides)
    return item


def tkp_item(**overrides):
    item = {
        "category_slug": "TKP",
        "question_text": "Rekan kerja meminta bantuan saat Anda sibuk.",
        "question_type": "scale_tkp",
        "options": [{"key": k, "text": f"sikap {k}"} for k in "ABCDE"],
        "answer_key": {"A": 2, "B": 1, "C": 5, "D": 4, "E": 3},
        "discussion": "Membantu sesuai prioritas.",
    }
    item.update(overrides)
    return item


def test_valid_payload_produces_rows():
    report = validate_questions({"questions": [mc_item(), tkp_item()]}, SLUGS)

    assert report.valid
    assert report.total == 2
    assert len(report.rows) == 2
    mc_row, tkp_row = report.rows
    assert mc_row["category_id"] == "cat-twk"
    assert mc_row["answer_key"] == {"correct": "C", "score": 5}
    assert [o["key"] for o in mc_row["options"]] == list("ABCDE")
    assert tkp_row["category_id"] == "cat-tkp"
    assert question_from_row(tkp_row).kind == "scale_tkp"


def test_mc_score_defaults_for_new_questions():
    item = mc_item(answer_key={"correct": "A"})
    assert to_row(item, "cat-twk")["answer_key"] == {"correct": "A", "score": 5}


def test_row_id_is_stable():
    assert to_row(mc_item(), "x")["id"] == to_row(mc_item(), "x")["id"]
    assert to_row(mc_item(id="given"), "x")["id"] != to_row(mc_item(), "x")["id"]


def test_payload_without_questions_array():
    report = validate_questions({"items": []}, SLUGS)
    assert report.errors == ["JSON file must have a 'questions' array"]


@pytest.mark.parametrize(
    "item,message",
    [
        (mc_item(category_slug=""), "Row 1: category_slug is required"),
        (mc_item(category_slug="nope"), "Row 1: category 'nope' not found"),
        (mc_item(question_text=""), "Row 1: question_text is required"),
        (mc_item(question_type="essay"), "Row 1: question_type must be one of multiple_choice, scale_tkp"),
        (mc_item(options=[{"key": "A", "text": "x"}]), "Row 1: at least 2 options"),
        (mc_item(options=[{"key": "A", "text": "x"}, {"key": "a", "text": "y"}]),
         "Row 1: option keys must be unique"),
        (mc_item(answer_key={"correct": "Z"}), "Row 1: answer_key.correct 'Z' is not one of the options"),
        (mc_item(answer_key={"correct": "A", "score": 0}), "Row 1: answer_key.score must be a number > 0"),
        (mc_item(answer_key=None), "Row 1: answer_key is required"),
    ],
)
def test_row_errors(item, message):
    report = validate_questions({"questions": [item]}, SLUGS)
    assert not report.valid
    assert message in report.errors
    assert report.rows == []


def test_too_many_options():
    options = [{"key": chr(ord("A") + i), "text": str(i)} for i in range(11)]
    report = validate_questions({"questions": [mc_item(options=options)]}, SLUGS)
    assert "Row 1: at most 10 options" in report.errors


def test_tkp_score_out_of_range():
    key = {"A": 2, "B": 1, "C": 6, "D": 4, "E": 3}
    report = validate_questions({"questions": [tkp_item(answer_key=key)]}, SLUGS)
    assert any("TKP score for 'C' must be between 1-5" in e for e in report.errors)


def test_tkp_missing_option_score():
    key = {"A": 2, "B": 1, "C": 5, "D": 4}
    report = validate_questions({"questions": [tkp_item(answer_key=key)]}, SLUGS)
    assert "Row 1: answer_key needs a score for option 'E'" in report.errors


def test_one_bad_row_rejects_the_file():
    report = validate_questions({"questions": [mc_item(), mc_item(question_text="")]}, SLUGS)
    assert report.errors == ["Row 2: question_text is required"]
    assert report.rows == []


def test_missing_discussion_is_a_warning():
    report = validate_questions({"questions": [mc_item(discussion="")]}, SLUGS)
    assert report.valid
    assert report.warnings == ["Row 1: discussion is empty (optional)"]
