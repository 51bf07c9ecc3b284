"""
Ingredient routes.

CRUD for ingredients plus alias, stock and dependency endpoints.
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Query
from pydantic import ConfigDict, Field, StrictFloat, StrictInt

from ..services import ingredients as ingredient_service
from ..services import recipes as recipe_service
from ..services.database import db_pool
from ..services.errors import ValidationError
from .models import CamelModel
from .recipes import Recipe


router = APIRouter(prefix="/api/ingredients", tags=["ingredients"])


class Ingredient(CamelModel):
    """Ingredient with its aliases and current stock in grams."""
    id: int = Field(alias="_id")
    name: str
    aliases: List[str] = []
    quantity_in_stock: float = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class IngredientCreate(CamelModel):
    name: Optional[str] = None
    aliases: List[str] = []
    quantity_in_stock: Optional[float] = None


class IngredientUpdate(CamelModel):
    """Partial update. Unknown keys are kept so they can be reported."""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    aliases: Optional[List[str]] = None
    quantity_in_stock: Optional[float] = None


class AliasRequest(CamelModel):
    alias: Optional[str] = None


class StockAdjustment(CamelModel):
    quantity_to_add: Union[StrictInt, StrictFloat]


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    limit: int


class IngredientListResponse(CamelModel):
    """Page of ingredients."""
    data: List[Ingredient]
    pagination: Pagination


class IngredientDeleteResponse(CamelModel):
    message: str
    ingredient: Ingredient


@router.post("/", response_model=Ingredient, status_code=201)
def create_ingredient(body: IngredientCreate):
    """
    Create an ingredient.

    Returns:
        The created ingredient

    Raises:
        400 if the name is missing, 409 if the name or an alias is taken
    """
    with db_pool.get_connection() as conn:
        return ingredient_service.create_ingredient(
            conn, body.name, body.aliases, body.quantity_in_stock
        )


@router.get("/", response_model=IngredientListResponse)
def list_ingredients(
    search_term: Optional[str] = Query(None, alias="searchTerm", description="Match on name or alias"),
    page: int = Query(1, description="1-based page number"),
    limit: int = Query(10, description="Page size"),
):
    """
    List ingredients sorted by name, optionally filtered by a search term.
    """
    with db_pool.get_connection() as conn:
        result = ingredient_service.list_ingredients(conn, search_term, page, limit)

    return IngredientListResponse(
        data=result["ingredients"],
        pagination=Pagination(
            current_page=page,
            total_pages=result["total_pages"],
            total_items=result["total_count"],
            limit=limit,
        ),
    )


@router.get("/{ingredient_id}", response_model=Ingredient)
def get_ingredient(ingredient_id: int):
    with db_pool.get_connection() as conn:
        return ingredient_service.require_ingredient(conn, ingredient_id)


@router.put("/{ingredient_id}", response_model=Ingredient)
def update_ingredient(ingredient_id: int, body: IngredientUpdate):
    """
    Update name, aliases and/or quantityInStock.

    An empty body returns the ingredient unchanged; a body with only
    unrecognized fields is rejected.
    """
    known = {name for name in body.model_fields_set if name in IngredientUpdate.model_fields}
    if not known and body.model_extra:
        raise ValidationError(
            "No valid fields provided for update. Allowed fields: name, aliases, quantityInStock."
        )

    updates: Dict[str, Any] = {name: getattr(body, name) for name in known}
    with db_pool.get_connection() as conn:
        return ingredient_service.update_ingredient(conn, ingredient_id, updates)


@router.delete("/{ingredient_id}", response_model=IngredientDeleteResponse)
def delete_ingredient(ingredient_id: int):
    """
    Delete an ingredient.

    Raises:
        409 with the list of recipes that still use the ingredient
    """
    with db_pool.get_connection() as conn:
        deleted = ingredient_service.delete_ingredient(conn, ingredient_id)
    return IngredientDeleteResponse(message="Ingredient deleted successfully.", ingredient=deleted)


@router.patch("/{ingredient_id}/aliases", response_model=Ingredient)
def add_alias(ingredient_id: int, body: AliasRequest):
    with db_pool.get_connection() as conn:
        return ingredient_service.add_alias(conn, ingredient_id, body.alias)


@router.patch("/{ingredient_id}/stock", response_model=Ingredient)
def adjust_stock(ingredient_id: int, body: StockAdjustment):
    """Add quantityToAdd grams (negative to remove) to the stock."""
    with db_pool.get_connection() as conn:
        return ingredient_service.adjust_stock(conn, ingredient_id, body.quantity_to_add)


@router.get("/{ingredient_id}/dependencies", response_model=List[Recipe])
def get_dependencies(ingredient_id: int):
    """Recipes whose ingredient lines reference this ingredient."""
    with db_pool.get_connection() as conn:
        return recipe_service.get_recipes_using_ingredient(conn, ingredient_id)
