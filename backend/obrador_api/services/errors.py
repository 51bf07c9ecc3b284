"""
Service-layer exceptions.

Routes translate these into JSON error responses using ``status_code``.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Response body: the message plus any extra detail keys."""
        return {"message": self.message, **self.details}


class ValidationError(ServiceError):
    """Input is well formed but violates a business rule."""

    status_code = 400


class NotFoundError(ServiceError):
    """Referenced ingredient, recipe or default-step set does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Name/alias collision, or a delete blocked by dependent recipes."""

    status_code = 409


class IngredientNotFound(NotFoundError):
    """Ingredient id does not exist."""

    def __init__(self, ingredient_id: int, message: Optional[str] = None):
        super().__init__(message or f"Ingredient with ID {ingredient_id} not found.")
        self.ingredient_id = ingredient_id


class RecipeNotFound(NotFoundError):
    """Recipe id does not exist."""

    def __init__(self, recipe_id: int, message: Optional[str] = None):
        super().__init__(message or f"Recipe with ID {recipe_id} not found.")
        self.recipe_id = recipe_id
