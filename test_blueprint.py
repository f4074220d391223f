"""Blueprint generation over a category tree."""
import pytest

from tryout.apportion import RATIO, WeightPolicy
from tryout.blueprint import allocate_blueprint, check_against_stock, eligible_children, total_questions
from tryout.category_tree import CategoryTree
from tryout.errors import NoEligibleCategories, TotalBelowMinimum, TotalExceedsCapacity, ValidationError
from tryout.models import BlueprintEntry, Category


def skd_tree(twk=40, tiu=40, tkp=50, extra=None):
    categories = [
        Category("skd", "SKD", "skd"),
        Category("twk", "TWK", "twk", "skd"),
        Category("tiu", "TIU", "tiu", "skd"),
        Category("tkp", "TKP", "tkp", "skd"),
        Category("tiu-verbal", "Verbal", "tiu-verbal", "tiu", kind="topic"),
    ]
    counts = {"twk": twk, "tiu-verbal": tiu, "tkp": tkp}
    counts.update(extra or {})
    return CategoryTree(categories, counts)


def test_eligible_children_skip_empty_categories():
    tree = skd_tree(twk=0)
    assert [c.id for c, _ in eligible_children(tree, "skd")] == ["tiu", "tkp"]
    assert [stock for _, stock in eligible_children(tree, "skd")] == [40, 50]


def test_leaf_category_has_no_eligible_children():
    with pytest.raises(NoEligibleCategories):
        eligible_children(skd_tree(), "twk")


def test_all_children_empty():
    with pytest.raises(NoEligibleCategories):
        allocate_blueprint(skd_tree(0, 0, 0), "skd", 10)


def test_stock_weighted_blueprint():
    entries = allocate_blueprint(skd_tree(), "skd", 13)
    assert [e.category_id for e in entries] == ["tiu", "tkp", "twk"]
    assert total_questions(entries) == 13
    assert all(e.question_count >= 1 for e in entries)


def test_skd_ratio_blueprint():
    entries = allocate_blueprint(skd_tree(), "skd", 110, WeightPolicy(RATIO))
    assert {e.category_id: e.question_count for e in entries} == {"tiu": 35, "tkp": 45, "twk": 30}


def test_zero_quota_entries_are_dropped_without_reserve():
    tree = skd_tree(twk=0, tiu=1, tkp=100)
    entries = allocate_blueprint(tree, "skd", 2, reserve_one=False)
    assert entries == [BlueprintEntry("tkp", 2)]


def test_total_over_stock():
    with pytest.raises(TotalExceedsCapacity):
        allocate_blueprint(skd_tree(1, 1, 1), "skd", 4)


def test_total_below_one_per_category():
    with pytest.raises(TotalBelowMinimum):
        allocate_blueprint(skd_tree(), "skd", 2)


@pytest.mark.parametrize("total", [0, -5, 3.0, None])
def test_total_must_be_positive_integer(total):
    with pytest.raises(ValidationError):
        allocate_blueprint(skd_tree(), "skd", total)


def test_unknown_root():
    with pytest.raises(ValidationError):
        allocate_blueprint(skd_tree(), "missing", 10)


def test_check_against_stock():
    tree = skd_tree(twk=3)
    check_against_stock([BlueprintEntry("twk", 3)], tree)
    with pytest.raises(TotalExceedsCapacity):
        check_against_stock([BlueprintEntry("twk", 4)], tree)
