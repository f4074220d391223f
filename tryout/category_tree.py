"""
In-memory category forest with recursive question stock.

Stock is never cached across runs: build a tree, compute, throw it away.
"""
import logging
from collections import defaultdict
from typing import Iterable

from tryout.errors import ValidationError
from tryout.models import Category

logger = logging.getLogger(__name__)


class CategoryTree:
    """Parent -> children index over a category forest plus direct question counts."""

    def __init__(self, categories: Iterable[Category], direct_counts: dict[str, int] | None = None):
        self._by_id: dict[str, Category] = {c.id: c for c in categories}
        self._children: dict[str, list[Category]] = defaultdict(list)
        for c in self._by_id.values():
            if c.parent_id:
                self._children[c.parent_id].append(c)
        for kids in self._children.values():
            kids.sort(key=lambda c: (c.name, c.id))
        self._direct = dict(direct_counts or {})

    @classmethod
    def load(cls, repo, root_id: str) -> "CategoryTree":
        """Crawl one subtree from a CategoryRepo (children_of + question_stock_direct)."""
        root = repo.get(root_id)
        if root is None:
            raise ValidationError(f"Category {root_id} not found")
        categories = [root]
        counts = {}
        seen = {root_id}
        stack = [root_id]
        while stack:
            cid = stack.pop()
            counts[cid] = repo.question_stock_direct(cid)
            for child in repo.children_of(cid):
                if child.id in seen:
                    logger.warning("Category cycle at %s (child of %s); not descending", child.id, cid)
                    continue
                seen.add(child.id)
                categories.append(child)
                stack.append(child.id)
        logger.debug("Loaded %d categories under %s", len(categories), root_id)
        return cls(categories, counts)

    def get(self, category_id: str) -> Category | None:
        return self._by_id.get(category_id)

    def by_slug(self, slug: str) -> Category | None:
        slug = (slug or "").lower()
        return next((c for c in self._by_id.values() if c.slug == slug), None)

    def __contains__(self, category_id) -> bool:
        return category_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def children_of(self, category_id: str) -> list[Category]:
        return list(self._children.get(category_id, []))

    def direct_stock(self, category_id: str) -> int:
        return self._direct.get(category_id, 0)

    def _walk(self, category_id: str) -> list[str]:
        # Pre-order ids of the subtree; a node reached twice means a cycle and
        # contributes nothing the second time.
        order = []
        visited = set()
        stack = [category_id]
        while stack:
            node = stack.pop()
            if node in visited:
                logger.warning("Category cycle detected at %s while walking %s", node, category_id)
                continue
            visited.add(node)
            order.append(node)
            stack.extend(reversed([c.id for c in self._children.get(node, [])]))
        return order

    def stock_of(self, category_id: str) -> int:
        """Questions attached to the category and all of its descendants."""
        if category_id not in self._by_id:
            return 0
        return sum(self._direct.get(node, 0) for node in self._walk(category_id))

    def descendants_of(self, category_id: str) -> list[str]:
        """The category id followed by every descendant id."""
        if category_id not in self._by_id:
            return []
        return self._walk(category_id)

    def root_of(self, category_id: str) -> Category:
        node = self._by_id.get(category_id)
        if node is None:
            raise ValidationError(f"Category {category_id} not found")
        seen = {node.id}
        while node.parent_id and node.parent_id in self._by_id:
            parent = self._by_id[node.parent_id]
            if parent.id in seen:
                logger.warning("Category cycle detected above %s", category_id)
                break
            seen.add(parent.id)
            node = parent
        return node
