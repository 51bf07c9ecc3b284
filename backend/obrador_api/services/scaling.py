"""
Recipe yield normalization and scaling.

Recipes are stored at a canonical 1000 g yield. On create the declared
``baseYieldGrams`` drives the rescale; on update the sum of all line
amounts does. Scaled views for production are computed on read and never
written back.
"""

import math
from typing import Any, Dict, List, Optional, Tuple


CANONICAL_YIELD_GRAMS = 1000

# Bounds of the production scale slider
MIN_SCALE_FACTOR = 0.1
MAX_SCALE_FACTOR = 50.0

Lines = List[Dict[str, Any]]


def round_grams(value: float) -> int:
    """Round to the nearest gram, halves away from -inf (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def _rescale(lines: Optional[Lines], factor: float) -> Lines:
    return [
        {**line, "amount_grams": round_grams((line.get("amount_grams") or 0) * factor)}
        for line in (lines or [])
    ]


def total_grams(ingredients: Optional[Lines], linked_recipes: Optional[Lines]) -> float:
    """Sum of every ingredient and linked-recipe amount."""
    return sum((line.get("amount_grams") or 0) for line in (ingredients or [])) + sum(
        (line.get("amount_grams") or 0) for line in (linked_recipes or [])
    )


def normalize_for_create(
    ingredients: Optional[Lines],
    linked_recipes: Optional[Lines],
    base_yield_grams: Optional[float],
) -> Tuple[Lines, Lines, int]:
    """
    Bring a new recipe to the canonical yield.

    Args:
        ingredients: Ingredient lines with an ``amount_grams`` key
        linked_recipes: Linked recipe lines with an ``amount_grams`` key
        base_yield_grams: Yield the amounts were written for

    Returns:
        Tuple of (ingredients, linked_recipes, base_yield_grams), the yield
        always being CANONICAL_YIELD_GRAMS
    """
    ingredients = list(ingredients or [])
    linked_recipes = list(linked_recipes or [])

    if base_yield_grams and base_yield_grams != CANONICAL_YIELD_GRAMS:
        factor = CANONICAL_YIELD_GRAMS / base_yield_grams
        ingredients = _rescale(ingredients, factor)
        linked_recipes = _rescale(linked_recipes, factor)

    return ingredients, linked_recipes, CANONICAL_YIELD_GRAMS


def normalize_for_update(
    ingredients: Optional[Lines],
    linked_recipes: Optional[Lines],
) -> Tuple[Lines, Lines, int]:
    """
    Rescale an edited recipe so that its lines add up to the canonical yield.

    Nothing is rescaled when the lines are empty, all zero, or already sum
    to CANONICAL_YIELD_GRAMS.
    """
    ingredients = list(ingredients or [])
    linked_recipes = list(linked_recipes or [])

    current_total = total_grams(ingredients, linked_recipes)
    if current_total > 0 and current_total != CANONICAL_YIELD_GRAMS:
        factor = CANONICAL_YIELD_GRAMS / current_total
        ingredients = _rescale(ingredients, factor)
        linked_recipes = _rescale(linked_recipes, factor)

    return ingredients, linked_recipes, CANONICAL_YIELD_GRAMS


def validate_scale_factor(scale_factor: float) -> Tuple[bool, str]:
    """
    Validate that a scaling factor is within the production range.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if scale_factor is None or math.isnan(scale_factor):
        return False, "Scaling factor must be a number"
    if scale_factor < MIN_SCALE_FACTOR:
        return False, f"Scaling factor too small (min {MIN_SCALE_FACTOR}x)"
    if scale_factor > MAX_SCALE_FACTOR:
        return False, f"Scaling factor too large (max {MAX_SCALE_FACTOR:g}x)"
    return True, ""


def scale_factor_for(target_yield_grams: float, base_yield_grams: float = CANONICAL_YIELD_GRAMS) -> float:
    """Factor that turns ``base_yield_grams`` into ``target_yield_grams``."""
    if not base_yield_grams or base_yield_grams <= 0:
        raise ValueError("Base yield must be positive")
    return target_yield_grams / base_yield_grams


def scale_amounts(lines: Optional[Lines], scale_factor: float) -> Lines:
    """Multiply each line's amount by ``scale_factor`` without rounding."""
    return [
        {**line, "amount_grams": (line.get("amount_grams") or 0) * scale_factor}
        for line in (lines or [])
    ]


def format_amount(grams: float) -> str:
    """
    Human readable amount.

    Uses kg with one decimal at 1000 g and above, whole grams otherwise
    (e.g. "500g", "1.2kg").
    """
    if grams >= 1000:
        return f"{grams / 1000:.1f}kg"
    return f"{round_grams(grams)}g"
