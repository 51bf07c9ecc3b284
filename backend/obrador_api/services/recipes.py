"""
Recipe service.

Recipes are stored across several tables (recipes, recipeingredients,
recipelinks, recipesteps) and assembled into a single "populated" dict on
read, with ingredient and linked recipe references carrying their names.
Every write goes through validation and yield normalization.
"""

import logging
from collections import deque
from typing import Any, Dict, List, Optional, Tuple

from . import scaling
from .database import (
    db_placeholder,
    execute,
    fetch_all,
    fetch_one,
    insert_returning_id,
    placeholders,
    utc_now,
)
from .errors import ConflictError, RecipeNotFound, ValidationError
from .ingredients import adjust_stock, check_grams, escape_like, get_ingredients_by_ids, require_ingredient


logger = logging.getLogger(__name__)

ICE_CREAM_RECIPE = "ice cream recipe"
NOT_ICE_CREAM_RECIPE = "not ice cream recipe"
RECIPE_TYPES = (ICE_CREAM_RECIPE, NOT_ICE_CREAM_RECIPE)
CATEGORIES = ("ice cream", "sorbet")

RECIPE_COLUMNS = "r.recipe_id, r.name, r.type, r.category, r.base_yield_grams, r.created_at, r.updated_at"

# Fields a caller may set on create/update
RECIPE_FIELDS = ("name", "type", "category", "ingredients", "linked_recipes", "steps", "base_yield_grams")


# =============================================================================
# Reading
# =============================================================================

def _populate(conn, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Assemble recipe rows with their ingredient lines, linked recipes and steps."""
    if not rows:
        return []

    recipe_ids = [row["recipe_id"] for row in rows]
    in_clause = placeholders(conn, len(recipe_ids))

    ingredient_rows = fetch_all(
        conn,
        f'''
        SELECT ri.recipe_id, ri.ingredient_id, ri.amount_grams, i.name
        FROM recipeingredients ri
        JOIN ingredients i ON i.ingredient_id = ri.ingredient_id
        WHERE ri.recipe_id IN ({in_clause})
        ORDER BY ri.recipe_id, ri.position
        ''',
        recipe_ids,
    )
    link_rows = fetch_all(
        conn,
        f'''
        SELECT rl.recipe_id, rl.linked_recipe_id, rl.amount_grams, r.name
        FROM recipelinks rl
        JOIN recipes r ON r.recipe_id = rl.linked_recipe_id
        WHERE rl.recipe_id IN ({in_clause})
        ORDER BY rl.recipe_id, rl.position
        ''',
        recipe_ids,
    )
    step_rows = fetch_all(
        conn,
        f'''
        SELECT recipe_id, step
        FROM recipesteps
        WHERE recipe_id IN ({in_clause})
        ORDER BY recipe_id, position
        ''',
        recipe_ids,
    )

    ingredients: Dict[int, list] = {recipe_id: [] for recipe_id in recipe_ids}
    for row in ingredient_rows:
        ingredients[row["recipe_id"]].append({
            "ingredient": {"id": row["ingredient_id"], "name": row["name"]},
            "amount_grams": row["amount_grams"],
        })

    linked: Dict[int, list] = {recipe_id: [] for recipe_id in recipe_ids}
    for row in link_rows:
        linked[row["recipe_id"]].append({
            "recipe": {"id": row["linked_recipe_id"], "name": row["name"]},
            "amount_grams": row["amount_grams"],
        })

    steps: Dict[int, list] = {recipe_id: [] for recipe_id in recipe_ids}
    for row in step_rows:
        steps[row["recipe_id"]].append(row["step"])

    return [
        {
            "id": row["recipe_id"],
            "name": row["name"],
            "type": row["type"],
            "category": row["category"],
            "ingredients": ingredients[row["recipe_id"]],
            "linked_recipes": linked[row["recipe_id"]],
            "steps": steps[row["recipe_id"]],
            "base_yield_grams": row["base_yield_grams"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }
        for row in rows
    ]


def get_recipe(conn, recipe_id: int) -> Optional[Dict[str, Any]]:
    """Get a populated recipe by id, or None."""
    ph = db_placeholder(conn)
    row = fetch_one(
        conn,
        f'SELECT {RECIPE_COLUMNS} FROM recipes r WHERE r.recipe_id = {ph}',
        (recipe_id,),
    )
    if not row:
        return None
    return _populate(conn, [row])[0]


def require_recipe(conn, recipe_id: int) -> Dict[str, Any]:
    """Get a populated recipe or raise RecipeNotFound."""
    recipe = get_recipe(conn, recipe_id)
    if recipe is None:
        logger.warning("Recipe not found: %s", recipe_id)
        raise RecipeNotFound(recipe_id)
    return recipe


def list_recipes(
    conn,
    recipe_type: Optional[str] = None,
    search_term: Optional[str] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """
    List populated recipes sorted by name.

    Args:
        recipe_type: Only recipes of this type
        search_term: Case-insensitive substring of the recipe name
        page: 1-based page; pagination applies only when page and limit are given
        limit: Page size

    Returns:
        Tuple of (recipes, total count before pagination)
    """
    ph = db_placeholder(conn)
    conditions = []
    params: List[Any] = []

    if recipe_type is not None:
        if recipe_type not in RECIPE_TYPES:
            raise ValidationError(
                'Invalid value for "type" query parameter. '
                'Must be "ice cream recipe" or "not ice cream recipe".'
            )
        conditions.append(f"r.type = {ph}")
        params.append(recipe_type)

    if search_term is not None:
        if not search_term.strip():
            raise ValidationError(
                'Invalid value for "searchTerm" query parameter. Must be a non-empty string.'
            )
        conditions.append(f"LOWER(r.name) LIKE {ph} ESCAPE '\\'")
        params.append(f"%{escape_like(search_term.strip().lower())}%")

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    total = fetch_one(conn, f'SELECT COUNT(*) AS total FROM recipes r {where}', params)["total"]

    paging = ""
    if page is not None and limit is not None:
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive integers.")
        paging = f"LIMIT {ph} OFFSET {ph}"
        params = params + [limit, (page - 1) * limit]

    rows = fetch_all(
        conn,
        f'SELECT {RECIPE_COLUMNS} FROM recipes r {where} ORDER BY r.name, r.recipe_id {paging}',
        params,
    )
    return _populate(conn, rows), total


def get_recipes_using_ingredient(conn, ingredient_id: int) -> List[Dict[str, Any]]:
    """Populated recipes with an ingredient line for ``ingredient_id``."""
    require_ingredient(conn, ingredient_id)
    ph = db_placeholder(conn)
    rows = fetch_all(
        conn,
        f'''
        SELECT {RECIPE_COLUMNS}
        FROM recipes r
        WHERE r.recipe_id IN (
            SELECT recipe_id FROM recipeingredients WHERE ingredient_id = {ph}
        )
        ORDER BY r.name
        ''',
        (ingredient_id,),
    )
    return _populate(conn, rows)


def get_dependent_recipes(conn, recipe_id: int) -> List[Dict[str, Any]]:
    """Populated parent recipes that link ``recipe_id`` as a sub-recipe."""
    require_recipe(conn, recipe_id)
    ph = db_placeholder(conn)
    rows = fetch_all(
        conn,
        f'''
        SELECT {RECIPE_COLUMNS}
        FROM recipes r
        WHERE r.recipe_id IN (
            SELECT recipe_id FROM recipelinks WHERE linked_recipe_id = {ph}
        )
        ORDER BY r.name
        ''',
        (recipe_id,),
    )
    return _populate(conn, rows)


# =============================================================================
# Validation
# =============================================================================

def _links_reach(conn, start_ids: List[int], target_id: int) -> bool:
    """True if ``target_id`` is reachable from ``start_ids`` through recipe links."""
    ph = db_placeholder(conn)
    seen = set()
    queue = deque(start_ids)
    while queue:
        current = queue.popleft()
        if current == target_id:
            return True
        if current in seen:
            continue
        seen.add(current)
        for row in fetch_all(
            conn,
            f'SELECT linked_recipe_id FROM recipelinks WHERE recipe_id = {ph}',
            (current,),
        ):
            queue.append(row["linked_recipe_id"])
    return False


def _check_amount(amount: Any, label: str) -> float:
    check_grams(amount, f"{label} must have a numeric amountGrams.")
    if amount < 0:
        raise ValidationError(f"{label} must have a non-negative amountGrams.")
    return amount


def validate_recipe(conn, data: Dict[str, Any], recipe_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Check a complete recipe document and return a cleaned copy.

    Ingredient lines are ``{"ingredient": id, "amount_grams": x}`` and linked
    lines ``{"recipe": id, "amount_grams": x}``.

    Raises:
        ValidationError: On the first rule the document breaks
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Recipe name is required and must be a non-empty string.")

    recipe_type = data.get("type")
    if recipe_type not in RECIPE_TYPES:
        raise ValidationError(
            'Recipe type is required and must be "ice cream recipe" or "not ice cream recipe".'
        )

    category = data.get("category") or None
    if recipe_type == ICE_CREAM_RECIPE:
        if category not in CATEGORIES:
            raise ValidationError(
                'Category is required for ice cream recipes and must be "ice cream" or "sorbet".'
            )
    elif category is not None:
        raise ValidationError("Category should only be provided for ice cream recipes.")

    steps = [step.strip() for step in (data.get("steps") or []) if isinstance(step, str) and step.strip()]

    ingredients = []
    for line in data.get("ingredients") or []:
        ingredient_id = line.get("ingredient")
        if ingredient_id is None:
            raise ValidationError("Each ingredient line must reference an ingredient.")
        amount = _check_amount(line.get("amount_grams"), f"Ingredient line for ingredient {ingredient_id}")
        ingredients.append({"ingredient": ingredient_id, "amount_grams": amount})

    linked_recipes = []
    for line in data.get("linked_recipes") or []:
        linked_id = line.get("recipe")
        if linked_id is None:
            raise ValidationError("Each linked recipe line must reference a recipe.")
        amount = _check_amount(line.get("amount_grams"), f"Linked recipe line for recipe {linked_id}")
        linked_recipes.append({"recipe": linked_id, "amount_grams": amount})

    if not ingredients and not steps and not linked_recipes:
        raise ValidationError("A recipe must have at least one ingredient, step or linked recipe.")

    base_yield_grams = data.get("base_yield_grams")
    if base_yield_grams is not None:
        check_grams(base_yield_grams, "baseYieldGrams must be a positive number.")
        if base_yield_grams <= 0:
            raise ValidationError("baseYieldGrams must be a positive number.")

    ingredient_ids = [line["ingredient"] for line in ingredients]
    found = get_ingredients_by_ids(conn, ingredient_ids)
    missing = sorted(set(ingredient_ids) - set(found))
    if missing:
        logger.warning("Recipe references unknown ingredients: %s", missing)
        raise ValidationError(
            f"Referenced ingredients do not exist: {', '.join(str(i) for i in missing)}."
        )

    linked_ids = [line["recipe"] for line in linked_recipes]
    if linked_ids:
        rows = fetch_all(
            conn,
            f'SELECT recipe_id FROM recipes WHERE recipe_id IN ({placeholders(conn, len(set(linked_ids)))})',
            sorted(set(linked_ids)),
        )
        missing = sorted(set(linked_ids) - {row["recipe_id"] for row in rows})
        if missing:
            logger.warning("Recipe references unknown linked recipes: %s", missing)
            raise ValidationError(
                f"Referenced linked recipes do not exist: {', '.join(str(i) for i in missing)}."
            )

    if recipe_id is not None and linked_ids:
        if recipe_id in linked_ids:
            raise ValidationError("A recipe cannot link to itself.")
        if _links_reach(conn, linked_ids, recipe_id):
            raise ValidationError("Linking these recipes would create a circular dependency.")

    return {
        "name": name,
        "type": recipe_type,
        "category": category,
        "ingredients": ingredients,
        "linked_recipes": linked_recipes,
        "steps": steps,
        "base_yield_grams": base_yield_grams,
    }


# =============================================================================
# Writing
# =============================================================================

def _write_children(conn, recipe_id: int, data: Dict[str, Any]) -> None:
    """Replace the ingredient lines, links and steps of a recipe."""
    ph = db_placeholder(conn)
    for table in ("recipeingredients", "recipelinks", "recipesteps"):
        execute(conn, f'DELETE FROM {table} WHERE recipe_id = {ph}', (recipe_id,))

    for position, line in enumerate(data["ingredients"]):
        execute(
            conn,
            f'''
            INSERT INTO recipeingredients (recipe_id, position, ingredient_id, amount_grams)
            VALUES ({ph}, {ph}, {ph}, {ph})
            ''',
            (recipe_id, position, line["ingredient"], line["amount_grams"]),
        )
    for position, line in enumerate(data["linked_recipes"]):
        execute(
            conn,
            f'''
            INSERT INTO recipelinks (recipe_id, position, linked_recipe_id, amount_grams)
            VALUES ({ph}, {ph}, {ph}, {ph})
            ''',
            (recipe_id, position, line["recipe"], line["amount_grams"]),
        )
    for position, step in enumerate(data["steps"]):
        execute(
            conn,
            f'INSERT INTO recipesteps (recipe_id, position, step) VALUES ({ph}, {ph}, {ph})',
            (recipe_id, position, step),
        )


def create_recipe(conn, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate, normalize to 1000 g and store a new recipe.

    Returns:
        The populated recipe
    """
    cleaned = validate_recipe(conn, data)
    ingredients, linked_recipes, base_yield = scaling.normalize_for_create(
        cleaned["ingredients"], cleaned["linked_recipes"], cleaned["base_yield_grams"]
    )
    cleaned.update(ingredients=ingredients, linked_recipes=linked_recipes, base_yield_grams=base_yield)

    now = utc_now()
    ph = db_placeholder(conn)
    recipe_id = insert_returning_id(
        conn,
        f'''
        INSERT INTO recipes (name, type, category, base_yield_grams, created_at, updated_at)
        VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph})
        ''',
        (cleaned["name"], cleaned["type"], cleaned["category"], base_yield, now, now),
        "recipe_id",
    )
    _write_children(conn, recipe_id, cleaned)
    logger.info("Created recipe %s (%s)", recipe_id, cleaned["name"])
    return get_recipe(conn, recipe_id)


def _as_input(recipe: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a populated recipe back into the id-referencing input shape."""
    return {
        "name": recipe["name"],
        "type": recipe["type"],
        "category": recipe["category"],
        "ingredients": [
            {"ingredient": line["ingredient"]["id"], "amount_grams": line["amount_grams"]}
            for line in recipe["ingredients"]
        ],
        "linked_recipes": [
            {"recipe": line["recipe"]["id"], "amount_grams": line["amount_grams"]}
            for line in recipe["linked_recipes"]
        ],
        "steps": recipe["steps"],
        "base_yield_grams": recipe["base_yield_grams"],
    }


def update_recipe(conn, recipe_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply a partial update, revalidate and renormalize a recipe.

    The merged lines are rescaled so that they sum to 1000 g.
    Changing the type to "not ice cream recipe" clears the category.

    Raises:
        ValidationError: If ``updates`` is empty or the merged recipe is invalid
        RecipeNotFound: If the recipe does not exist
    """
    updates = {key: value for key, value in updates.items() if key in RECIPE_FIELDS}
    if not updates:
        raise ValidationError("Request body cannot be empty for update.")

    current = require_recipe(conn, recipe_id)
    merged = {**_as_input(current), **updates}
    if merged.get("type") == NOT_ICE_CREAM_RECIPE and "category" not in updates:
        merged["category"] = None

    cleaned = validate_recipe(conn, merged, recipe_id=recipe_id)
    ingredients, linked_recipes, base_yield = scaling.normalize_for_update(
        cleaned["ingredients"], cleaned["linked_recipes"]
    )
    cleaned.update(ingredients=ingredients, linked_recipes=linked_recipes, base_yield_grams=base_yield)

    ph = db_placeholder(conn)
    execute(
        conn,
        f'''
        UPDATE recipes
        SET name = {ph}, type = {ph}, category = {ph}, base_yield_grams = {ph}, updated_at = {ph}
        WHERE recipe_id = {ph}
        ''',
        (cleaned["name"], cleaned["type"], cleaned["category"], base_yield, utc_now(), recipe_id),
    )
    _write_children(conn, recipe_id, cleaned)
    return get_recipe(conn, recipe_id)


def delete_recipe(conn, recipe_id: int) -> int:
    """
    Delete a recipe that no other recipe links.

    Returns:
        The deleted recipe id

    Raises:
        RecipeNotFound: If the recipe does not exist
        ConflictError: If parent recipes link it; ``details`` lists them
    """
    recipe = require_recipe(conn, recipe_id)
    parents = get_dependent_recipes(conn, recipe_id)
    if parents:
        raise ConflictError(
            "Recipe cannot be deleted because it is a dependency for other recipes.",
            details={"dependentRecipes": [{"_id": p["id"], "name": p["name"]} for p in parents]},
        )

    ph = db_placeholder(conn)
    for table in ("recipeingredients", "recipelinks", "recipesteps"):
        execute(conn, f'DELETE FROM {table} WHERE recipe_id = {ph}', (recipe_id,))
    execute(conn, f'DELETE FROM recipes WHERE recipe_id = {ph}', (recipe_id,))
    logger.info("Deleted recipe %s (%s)", recipe_id, recipe["name"])
    return recipe_id


def finalize_production(conn, recipe_id: int, scale: float = 1.0) -> Dict[str, Any]:
    """
    Deduct a production run of a recipe from ingredient stock.

    Each ingredient line's ``amount_grams * scale`` is subtracted from its
    ingredient. Linked recipes are not expanded.

    Returns:
        Dict with the populated ``recipe`` and the per-line ``stock_changes``
    """
    is_valid, error = scaling.validate_scale_factor(scale)
    if not is_valid:
        raise ValidationError(error)

    recipe = require_recipe(conn, recipe_id)
    stock_changes = []
    for line in recipe["ingredients"]:
        change = -(line["amount_grams"] * scale)
        ingredient = adjust_stock(conn, line["ingredient"]["id"], change)
        logger.info(
            "Stock for ingredient %s (ID: %s) updated by %s. New stock: %s",
            ingredient["name"], ingredient["id"], change, ingredient["quantity_in_stock"],
        )
        if ingredient["quantity_in_stock"] < 0:
            logger.warning(
                "Stock for ingredient %s (ID: %s) is now negative: %s",
                ingredient["name"], ingredient["id"], ingredient["quantity_in_stock"],
            )
        stock_changes.append({
            "ingredient_id": ingredient["id"],
            "name": ingredient["name"],
            "change": change,
            "quantity_in_stock": ingredient["quantity_in_stock"],
        })

    return {"recipe": recipe, "stock_changes": stock_changes}


def scaled_view(
    conn,
    recipe_id: int,
    scale: Optional[float] = None,
    target_yield_grams: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Recipe amounts multiplied for a production batch, without touching storage.

    Give either ``scale`` or ``target_yield_grams``; neither means 1x.
    """
    if scale is not None and target_yield_grams is not None:
        raise ValidationError("Provide either scale or targetYieldGrams, not both.")

    recipe = require_recipe(conn, recipe_id)
    base_yield = recipe["base_yield_grams"] or scaling.CANONICAL_YIELD_GRAMS
    if target_yield_grams is not None:
        if target_yield_grams <= 0:
            raise ValidationError("targetYieldGrams must be a positive number.")
        scale = scaling.scale_factor_for(target_yield_grams, base_yield)
    elif scale is None:
        scale = 1.0

    is_valid, error = scaling.validate_scale_factor(scale)
    if not is_valid:
        raise ValidationError(error)

    yield_grams = base_yield * scale
    return {
        "recipe_id": recipe["id"],
        "name": recipe["name"],
        "base_yield_grams": base_yield,
        "scale_factor": scale,
        "yield_grams": yield_grams,
        "yield_display": scaling.format_amount(yield_grams),
        "ingredients": [
            {**line, "display": scaling.format_amount(line["amount_grams"])}
            for line in scaling.scale_amounts(recipe["ingredients"], scale)
        ],
        "linked_recipes": [
            {**line, "display": scaling.format_amount(line["amount_grams"])}
            for line in scaling.scale_amounts(recipe["linked_recipes"], scale)
        ],
    }
