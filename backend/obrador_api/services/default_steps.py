"""
Default preparation steps per ice-cream category.

Recipe editors start a new ice-cream or sorbet recipe from these steps.
"""

import logging
from typing import Dict, List, Optional

from .database import db_placeholder, execute, fetch_all
from .errors import NotFoundError, ValidationError


logger = logging.getLogger(__name__)

CATEGORIES = ("ice cream", "sorbet")

# Seeded by `manage.py seed-default-steps`
DEFAULT_STEPS: Dict[str, List[str]] = {
    "ice cream": [
        "Weigh all ingredients.",
        "Mix the dry ingredients with the sugars.",
        "Heat the liquids to 40°C and add the dry mix while stirring.",
        "Pasteurize at 85°C.",
        "Cool quickly to 4°C.",
        "Mature in the fridge for at least 4 hours.",
        "Churn in the batch freezer.",
        "Extract, decorate and store at -18°C.",
    ],
    "sorbet": [
        "Weigh all ingredients.",
        "Mix the stabilizer with the sugars.",
        "Dissolve the sugar mix in the water and heat to 65°C.",
        "Cool to 4°C.",
        "Blend in the fruit.",
        "Churn in the batch freezer.",
        "Extract and store at -18°C.",
    ],
}


def validate_category(category: Optional[str]) -> str:
    if category not in CATEGORIES:
        raise ValidationError(
            'Invalid or missing category parameter. Must be "ice cream" or "sorbet".'
        )
    return category


def find_default_steps(conn, category: str) -> List[str]:
    """Stored steps for a category, empty when none are stored."""
    ph = db_placeholder(conn)
    rows = fetch_all(
        conn,
        f'SELECT step FROM defaultsteps WHERE category = {ph} ORDER BY position',
        (category,),
    )
    return [row["step"] for row in rows]


def get_default_steps(conn, category: str) -> List[str]:
    """
    Get the default steps for a category.

    Raises:
        ValidationError: If the category is not "ice cream" or "sorbet"
        NotFoundError: If no steps are stored for the category
    """
    validate_category(category)
    steps = find_default_steps(conn, category)
    if not steps:
        logger.warning("Default steps not found for category: %s", category)
        raise NotFoundError(f"Default steps not found for category: {category}")
    return steps


def replace_default_steps(conn, category: str, steps: List[str]) -> List[str]:
    """Store ``steps`` as the defaults of a category, replacing any existing ones."""
    validate_category(category)
    cleaned = [step.strip() for step in steps if isinstance(step, str) and step.strip()]
    if not cleaned:
        raise ValidationError("Steps must be a non-empty list of non-empty strings.")

    ph = db_placeholder(conn)
    execute(conn, f'DELETE FROM defaultsteps WHERE category = {ph}', (category,))
    for position, step in enumerate(cleaned):
        execute(
            conn,
            f'INSERT INTO defaultsteps (category, position, step) VALUES ({ph}, {ph}, {ph})',
            (category, position, step),
        )
    logger.info("Stored %d default steps for %s", len(cleaned), category)
    return cleaned


def seed_default_steps(conn, force: bool = False) -> List[str]:
    """
    Store the built-in DEFAULT_STEPS.

    Categories that already have steps are skipped unless ``force`` is set.

    Returns:
        Categories that were written
    """
    seeded = []
    for category, steps in DEFAULT_STEPS.items():
        if find_default_steps(conn, category) and not force:
            logger.info("Default steps for %s already present, skipping", category)
            continue
        replace_default_steps(conn, category, steps)
        seeded.append(category)
    return seeded
