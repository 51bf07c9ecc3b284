"""
Default step routes.

Per-category starting steps for new ice-cream and sorbet recipes.
"""

from typing import List

from fastapi import APIRouter

from ..services import default_steps as default_steps_service
from ..services.database import db_pool
from .models import CamelModel


router = APIRouter(prefix="/api/default-steps", tags=["default-steps"])


class DefaultStepsUpdate(CamelModel):
    steps: List[str]


@router.get("/{category}", response_model=List[str])
def get_default_steps(category: str):
    """
    Get the default steps for a category.

    Args:
        category: "ice cream" or "sorbet"

    Returns:
        Ordered list of step texts
    """
    with db_pool.get_connection() as conn:
        return default_steps_service.get_default_steps(conn, category)


@router.put("/{category}", response_model=List[str])
def replace_default_steps(category: str, body: DefaultStepsUpdate):
    """Replace the default steps of a category."""
    with db_pool.get_connection() as conn:
        return default_steps_service.replace_default_steps(conn, category, body.steps)
