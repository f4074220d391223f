"""Category tree: recursive stock, descendants, roots and cycle handling."""
import pytest

from tryout.category_tree import CategoryTree
from tryout.errors import ValidationError
from tryout.models import Category
from tryout.repos import InMemoryCategoryRepo


def three_level_categories():
    return [
        Category("skd", "SKD", "skd"),
        Category("twk", "TWK", "twk", parent_id="skd"),
        Category("pancasila", "Pancasila", "pancasila", parent_id="twk", kind="topic"),
        Category("uud", "UUD 1945", "uud", parent_id="twk", kind="topic"),
        Category("tiu", "TIU", "tiu", parent_id="skd"),
        Category("verbal", "Verbal", "verbal", parent_id="tiu", kind="topic"),
    ]


@pytest.fixture
def tree():
    counts = {"twk": 2, "pancasila": 5, "uud": 1, "tiu": 0, "verbal": 8}
    return CategoryTree(three_level_categories(), counts)


def test_stock_is_recursive(tree):
    assert tree.stock_of("skd") == 16
    assert tree.stock_of("twk") == 8
    assert tree.stock_of("tiu") == 8
    assert tree.stock_of("pancasila") == 5


def test_stock_of_unknown_category_is_zero(tree):
    assert tree.stock_of("missing") == 0


def test_children_sorted_by_name(tree):
    assert [c.id for c in tree.children_of("skd")] == ["tiu", "twk"]
    assert [c.id for c in tree.children_of("twk")] == ["pancasila", "uud"]
    assert tree.children_of("verbal") == []


def test_descendants_start_with_self(tree):
    ids = tree.descendants_of("twk")
    assert ids[0] == "twk"
    assert set(ids) == {"twk", "pancasila", "uud"}
    assert tree.descendants_of("missing") == []


def test_root_of(tree):
    assert tree.root_of("pancasila").id == "skd"
    assert tree.root_of("skd").id == "skd"
    with pytest.raises(ValidationError):
        tree.root_of("missing")


def test_by_slug_is_case_insensitive(tree):
    assert tree.by_slug("TWK").id == "twk"
    assert tree.by_slug("nope") is None
    assert "uud" in tree
    assert len(tree) == 6


def test_cycle_does_not_loop_forever():
    categories = [
        Category("a", "A", "a", parent_id="b"),
        Category("b", "B", "b", parent_id="a"),
    ]
    tree = CategoryTree(categories, {"a": 3, "b": 4})
    assert tree.stock_of("a") == 7
    assert sorted(tree.descendants_of("b")) == ["a", "b"]
    assert tree.root_of("a").id in {"a", "b"}


def test_load_crawls_subtree_from_repo():
    repo = InMemoryCategoryRepo(
        three_level_categories() + [Category("other", "Other", "other")],
        {"pancasila": 5, "uud": 1, "verbal": 8, "other": 50},
    )
    tree = CategoryTree.load(repo, "skd")
    assert "other" not in tree
    assert tree.stock_of("skd") == 14
    assert tree.stock_of("twk") == 6


def test_load_missing_root_raises():
    repo = InMemoryCategoryRepo(three_level_categories())
    with pytest.raises(ValidationError):
        CategoryTree.load(repo, "nope")
