"""Blueprint generation: category tree + stock + weight policy -> quota entries."""
import logging
from typing import Sequence

from tryout.apportion import WeightPolicy, apportion, resolve_weights
from tryout.category_tree import CategoryTree
from tryout.errors import NoEligibleCategories, TotalExceedsCapacity, ValidationError
from tryout.models import BlueprintEntry, Category

logger = logging.getLogger(__name__)


def eligible_children(tree: CategoryTree, root_id: str) -> list[tuple[Category, int]]:
    """Children of root_id (by name) that have at least one question, with their stock."""
    children = tree.children_of(root_id)
    if not children:
        raise NoEligibleCategories(
            f"Category {root_id} has no child categories; pick a section, not a sub-topic"
        )
    eligible = []
    for child in children:
        stock = tree.stock_of(child.id)
        if stock > 0:
            eligible.append((child, stock))
        else:
            logger.debug("Skipping %s (%s): no questions", child.slug, child.id)
    if not eligible:
        raise NoEligibleCategories(f"No child of category {root_id} has questions")
    return eligible


def allocate_blueprint(tree: CategoryTree, root_id: str, total_questions: int,
                       policy: WeightPolicy = WeightPolicy(), reserve_one: bool = True) -> list[BlueprintEntry]:
    """
    Compute blueprint entries for the children of `root_id`.

    Every eligible child gets at least one question when reserve_one is set.
    Children whose quota ends up 0 are left out of the blueprint.
    """
    if isinstance(total_questions, bool) or not isinstance(total_questions, int) or total_questions <= 0:
        raise ValidationError(f"Total questions must be > 0, got {total_questions!r}")
    root = tree.get(root_id)
    if root is None:
        raise ValidationError(f"Category {root_id} not found")

    eligible = eligible_children(tree, root_id)
    categories = [c for c, _ in eligible]
    caps = [stock for _, stock in eligible]
    weights = resolve_weights(policy, categories, caps, parent=root)
    quotas = apportion(weights, caps, total_questions, reserve_one=reserve_one)

    entries = [
        BlueprintEntry(category_id=c.id, question_count=q)
        for c, q in zip(categories, quotas)
        if q > 0
    ]
    check_against_stock(entries, tree)
    return entries


def check_against_stock(entries: Sequence[BlueprintEntry], tree: CategoryTree) -> None:
    """Raise TotalExceedsCapacity for the first entry asking for more than its stock."""
    for entry in entries:
        stock = tree.stock_of(entry.category_id)
        if entry.question_count > stock:
            raise TotalExceedsCapacity(entry.question_count, stock)


def total_questions(entries: Sequence[BlueprintEntry]) -> int:
    return sum(e.question_count for e in entries)
