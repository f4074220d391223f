"""
Integer apportionment of a question total across weighted, capped categories.

Shares are computed exactly with Fraction (largest-remainder method), so the
same inputs always give the same quotas regardless of float rounding.
"""
import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from numbers import Number
from typing import Mapping, Sequence

from engine import RATIO_PRESETS
from tryout.errors import (
    NoEligibleCategories,
    TotalBelowMinimum,
    TotalExceedsCapacity,
    UnderAllocated,
    ValidationError,
)
from tryout.models import Category

logger = logging.getLogger(__name__)

STOCK = "stock"
RATIO = "ratio"
WEIGHT_MODES = (STOCK, RATIO)


@dataclass(frozen=True)
class WeightPolicy:
    """
    Where the per-category weights come from.

    mode="stock" weighs each category by its usable stock. mode="ratio" uses
    `ratios` (slug -> weight) when given, else the named `preset`, else the
    preset registered for the parent category's slug.
    """
    mode: str = STOCK
    preset: str | None = None
    ratios: Mapping[str, float] | None = None

    def __post_init__(self):
        if self.mode not in WEIGHT_MODES:
            raise ValidationError(f"Unknown weight mode {self.mode!r}; use one of {WEIGHT_MODES}")
        if self.preset is not None and self.preset.lower() not in RATIO_PRESETS:
            raise ValidationError(f"Unknown ratio preset {self.preset!r}")


def _as_fraction(value, name: str) -> Fraction:
    if isinstance(value, bool) or not isinstance(value, Number):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    try:
        result = Fraction(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{name} must be a finite number, got {value!r}")
    if result < 0:
        raise ValidationError(f"{name} must be >= 0, got {value!r}")
    return result


def largest_remainder(weights: Sequence, total: int) -> list[int]:
    """
    Split `total` proportionally to `weights` (Hamilton / largest remainder).

    Floors of the exact shares first, then one unit each to the largest
    fractional remainders; ties go to the earlier index. Zero weight sum
    yields all zeros.
    """
    fractions = [Fraction(w) for w in weights]
    weight_sum = sum(fractions)
    if weight_sum <= 0 or total <= 0:
        return [0] * len(fractions)

    raw = [total * w / weight_sum for w in fractions]
    base = [math.floor(x) for x in raw]
    leftover = total - sum(base)
    order = sorted(range(len(raw)), key=lambda i: (-(raw[i] - base[i]), i))
    for i in order[:leftover]:
        base[i] += 1
    return base


def allocate_with_caps(weights: Sequence, caps: Sequence[int], total: int) -> list[int]:
    """
    Proportional allocation that respects per-category caps.

    Each round splits what is still unplaced across the categories with cap
    left, clamps to that cap, and carries the rest into the next round.
    Raises UnderAllocated instead of returning a short allocation.
    """
    n = len(weights)
    out = [0] * n
    caps_left = [max(0, c) for c in caps]
    remaining = max(0, total)
    rounds = 0

    while remaining > 0:
        active = [i for i in range(n) if caps_left[i] > 0]
        if not active:
            raise UnderAllocated(remaining)

        active_weights = [max(Fraction(0), Fraction(weights[i])) for i in active]
        if sum(active_weights) <= 0:
            active_weights = [Fraction(1)] * len(active)
        proposed = largest_remainder(active_weights, remaining)

        placed = 0
        for k, i in enumerate(active):
            give = min(proposed[k], caps_left[i])
            out[i] += give
            caps_left[i] -= give
            placed += give
        remaining -= placed
        rounds += 1
        if placed == 0:
            raise UnderAllocated(remaining)

    logger.debug("Allocated %d units over %d categories in %d round(s)", total, n, rounds)
    return out


def apportion(weights: Sequence, caps: Sequence[int], total: int, reserve_one: bool = False) -> list[int]:
    """
    Integer quotas with 0 <= quota[i] <= caps[i] and sum(quota) == total.

    Args:
        weights: non-negative weight per category
        caps: usable stock per category; cap == 0 means ineligible (quota 0)
        total: number of questions to place
        reserve_one: give every eligible category one question before the
            proportional split of the rest

    Raises:
        ValidationError: mismatched lengths, negative values, non-integer total
        NoEligibleCategories: no category has cap > 0
        TotalExceedsCapacity: total > sum(caps)
        TotalBelowMinimum: reserve_one and total < number of eligible categories
        UnderAllocated: redistribution could not place every unit
    """
    if len(weights) != len(caps):
        raise ValidationError(f"Got {len(weights)} weights for {len(caps)} caps")
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        raise ValidationError(f"total must be a non-negative integer, got {total!r}")
    for i, w in enumerate(weights):
        _as_fraction(w, f"weight[{i}]")
    for i, c in enumerate(caps):
        if isinstance(c, bool) or not isinstance(c, int) or c < 0:
            raise ValidationError(f"cap[{i}] must be a non-negative integer, got {c!r}")

    eligible = [i for i, c in enumerate(caps) if c > 0]
    if not eligible:
        raise NoEligibleCategories()
    capacity = sum(caps)
    if total > capacity:
        raise TotalExceedsCapacity(total, capacity)

    if reserve_one:
        if total < len(eligible):
            raise TotalBelowMinimum(total, len(eligible))
        base = [1 if c > 0 else 0 for c in caps]
        extra = allocate_with_caps(weights, [max(0, c - 1) for c in caps], total - len(eligible))
    else:
        base = [0] * len(caps)
        extra = allocate_with_caps(weights, caps, total)

    quotas = [b + e for b, e in zip(base, extra)]
    logger.info("Apportioned %d questions over %d eligible categories: %s", total, len(eligible), quotas)
    return quotas


def resolve_weights(policy: WeightPolicy, children: Sequence[Category], caps: Sequence[int],
                    parent: Category | None = None) -> list:
    """Weights for `children` (aligned with `caps`) under the given policy."""
    if policy.mode == STOCK:
        return list(caps)

    ratios = policy.ratios
    label = "custom ratios"
    if ratios is None:
        name = policy.preset or (parent.slug if parent else None)
        label = f"preset {name!r}"
        ratios = RATIO_PRESETS.get(name.lower()) if name else None

    if ratios:
        by_slug = {slug.lower(): weight for slug, weight in ratios.items()}
        slugs = {c.slug.lower() for c in children}
        if set(by_slug) <= slugs:
            return [by_slug.get(c.slug.lower(), 1) for c in children]
        logger.info(
            "Ratio %s does not match categories %s; using equal weights", label, sorted(slugs)
        )
    return [1] * len(children)
