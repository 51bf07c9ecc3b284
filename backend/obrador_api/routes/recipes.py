"""
Recipe routes.

Endpoints for recipe CRUD, dependency lookups, production finalization and
scaled production views.
"""

from typing import List, Optional

from fastapi import APIRouter, Query, Response
from pydantic import Field

from ..services import recipes as recipe_service
from ..services.database import db_pool
from .models import CamelModel, Reference


router = APIRouter(prefix="/api/recipes", tags=["recipes"])


class RecipeIngredient(CamelModel):
    ingredient: Reference
    amount_grams: float


class LinkedRecipe(CamelModel):
    recipe: Reference
    amount_grams: float


class Recipe(CamelModel):
    """Recipe with populated ingredient and linked recipe references."""
    id: int = Field(alias="_id")
    name: str
    type: str
    category: Optional[str] = None
    ingredients: List[RecipeIngredient] = []
    linked_recipes: List[LinkedRecipe] = []
    steps: List[str] = []
    base_yield_grams: float
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RecipeIngredientIn(CamelModel):
    ingredient: int
    amount_grams: float


class LinkedRecipeIn(CamelModel):
    recipe: int
    amount_grams: float


class RecipeCreate(CamelModel):
    """
    New recipe.

    Amounts are written for ``baseYieldGrams`` and are rescaled to 1000 g.
    """
    name: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    ingredients: List[RecipeIngredientIn] = []
    linked_recipes: List[LinkedRecipeIn] = []
    steps: List[str] = []
    base_yield_grams: Optional[float] = None


class RecipeUpdate(CamelModel):
    """Partial recipe update; omitted fields keep their stored value."""
    name: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    ingredients: Optional[List[RecipeIngredientIn]] = None
    linked_recipes: Optional[List[LinkedRecipeIn]] = None
    steps: Optional[List[str]] = None
    base_yield_grams: Optional[float] = None


class RecipeDeleteResponse(CamelModel):
    message: str
    deleted_recipe_id: int


class StockChange(CamelModel):
    ingredient_id: int
    name: str
    change: float
    quantity_in_stock: float


class FinalizeProductionResponse(CamelModel):
    message: str
    recipe: Recipe
    stock_changes: List[StockChange]


class ScaledIngredient(RecipeIngredient):
    display: str


class ScaledLinkedRecipe(LinkedRecipe):
    display: str


class ScaledRecipe(CamelModel):
    """Recipe amounts for one production batch."""
    recipe_id: int
    name: str
    base_yield_grams: float
    scale_factor: float
    yield_grams: float
    yield_display: str
    ingredients: List[ScaledIngredient]
    linked_recipes: List[ScaledLinkedRecipe]


@router.post("/", response_model=Recipe, status_code=201)
def create_recipe(body: RecipeCreate):
    """
    Create a recipe.

    Returns:
        The populated recipe, normalized to a 1000 g yield
    """
    with db_pool.get_connection() as conn:
        return recipe_service.create_recipe(conn, body.model_dump())


@router.get("/", response_model=List[Recipe])
def list_recipes(
    response: Response,
    recipe_type: Optional[str] = Query(None, alias="type", description="ice cream recipe / not ice cream recipe"),
    search_term: Optional[str] = Query(None, alias="searchTerm", description="Match on recipe name"),
    page: Optional[int] = Query(None, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Page size"),
):
    """
    List recipes sorted by name.

    The unpaginated total is returned in the X-Total-Count header.
    """
    with db_pool.get_connection() as conn:
        recipes, total = recipe_service.list_recipes(conn, recipe_type, search_term, page, limit)
    response.headers["X-Total-Count"] = str(total)
    return recipes


@router.get("/{recipe_id}", response_model=Recipe)
def get_recipe(recipe_id: int):
    with db_pool.get_connection() as conn:
        return recipe_service.require_recipe(conn, recipe_id)


@router.put("/{recipe_id}", response_model=Recipe)
def update_recipe(recipe_id: int, body: RecipeUpdate):
    """Apply a partial update; the merged recipe is renormalized to 1000 g."""
    with db_pool.get_connection() as conn:
        return recipe_service.update_recipe(conn, recipe_id, body.model_dump(exclude_unset=True))


@router.delete("/{recipe_id}", response_model=RecipeDeleteResponse)
def delete_recipe(recipe_id: int):
    """
    Delete a recipe.

    Raises:
        409 listing dependentRecipes when other recipes link this one
    """
    with db_pool.get_connection() as conn:
        deleted_id = recipe_service.delete_recipe(conn, recipe_id)
    return RecipeDeleteResponse(message="Recipe deleted successfully", deleted_recipe_id=deleted_id)


@router.get("/{recipe_id}/dependencies", response_model=List[Recipe])
def get_dependencies(recipe_id: int):
    """Parent recipes that use this recipe as a linked recipe."""
    with db_pool.get_connection() as conn:
        return recipe_service.get_dependent_recipes(conn, recipe_id)


@router.post("/{recipe_id}/finalize-production", response_model=FinalizeProductionResponse)
def finalize_production(
    recipe_id: int,
    scale: float = Query(1.0, description="Batch size as a multiple of the 1000 g base"),
):
    """Deduct one batch of the recipe's ingredients from stock."""
    with db_pool.get_connection() as conn:
        result = recipe_service.finalize_production(conn, recipe_id, scale)
    return FinalizeProductionResponse(
        message="Recipe production finalized successfully. Ingredient stock updated.",
        recipe=result["recipe"],
        stock_changes=result["stock_changes"],
    )


@router.get("/{recipe_id}/scaled", response_model=ScaledRecipe)
def get_scaled_recipe(
    recipe_id: int,
    scale: Optional[float] = Query(None, description="Scale factor (0.1 - 50)"),
    target_yield_grams: Optional[float] = Query(None, alias="targetYieldGrams", description="Desired batch yield"),
):
    """Recipe amounts for a batch of the given scale or target yield."""
    with db_pool.get_connection() as conn:
        return recipe_service.scaled_view(conn, recipe_id, scale, target_yield_grams)
