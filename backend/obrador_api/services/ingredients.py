"""
Ingredient service.

CRUD for ingredients, their aliases and their stock. Names and aliases
share one case-insensitive namespace: no ingredient may use a term that is
already the name or an alias of another ingredient.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .database import (
    db_placeholder,
    execute,
    fetch_all,
    fetch_one,
    insert_returning_id,
    placeholders,
    utc_now,
)
from .errors import ConflictError, IngredientNotFound, ValidationError


logger = logging.getLogger(__name__)

INGREDIENT_COLUMNS = "i.ingredient_id, i.name, i.quantity_in_stock, i.created_at, i.updated_at"


def check_grams(value: Any, message: str) -> float:
    """Return ``value`` if it is a finite number, else raise ValidationError(message)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(message)
    return value


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so a search term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def clean_aliases(aliases: Optional[Iterable[str]], name: Optional[str] = None) -> List[str]:
    """
    Trim aliases and drop case-insensitive duplicates.

    An alias equal to ``name`` is dropped as well, since the name already
    covers it.

    Raises:
        ValidationError: If any alias is not a string or is blank
    """
    seen = {name.strip().lower()} if name else set()
    cleaned = []
    for alias in aliases or []:
        if not isinstance(alias, str) or not alias.strip():
            raise ValidationError("Aliases must be an array of non-empty strings if provided.")
        alias = alias.strip()
        if alias.lower() not in seen:
            seen.add(alias.lower())
            cleaned.append(alias)
    return cleaned


def _load_aliases(conn, ingredient_ids: List[int]) -> Dict[int, List[str]]:
    """Aliases for each ingredient id, in insertion order."""
    if not ingredient_ids:
        return {}
    rows = fetch_all(
        conn,
        f'''
        SELECT ingredient_id, alias
        FROM ingredientaliases
        WHERE ingredient_id IN ({placeholders(conn, len(ingredient_ids))})
        ORDER BY alias_id
        ''',
        ingredient_ids,
    )
    aliases: Dict[int, List[str]] = {ingredient_id: [] for ingredient_id in ingredient_ids}
    for row in rows:
        aliases[row["ingredient_id"]].append(row["alias"])
    return aliases


def _to_ingredient(row: Dict[str, Any], aliases: List[str]) -> Dict[str, Any]:
    return {
        "id": row["ingredient_id"],
        "name": row["name"],
        "aliases": aliases,
        "quantity_in_stock": row["quantity_in_stock"] or 0,
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _hydrate(conn, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    aliases = _load_aliases(conn, [row["ingredient_id"] for row in rows])
    return [_to_ingredient(row, aliases.get(row["ingredient_id"], [])) for row in rows]


def _replace_aliases(conn, ingredient_id: int, aliases: List[str]) -> None:
    ph = db_placeholder(conn)
    execute(conn, f'DELETE FROM ingredientaliases WHERE ingredient_id = {ph}', (ingredient_id,))
    for alias in aliases:
        execute(
            conn,
            f'INSERT INTO ingredientaliases (ingredient_id, alias) VALUES ({ph}, {ph})',
            (ingredient_id, alias),
        )


# =============================================================================
# Lookups
# =============================================================================

def get_ingredient(conn, ingredient_id: int) -> Optional[Dict[str, Any]]:
    """Get an ingredient by id, or None if it does not exist."""
    ph = db_placeholder(conn)
    row = fetch_one(
        conn,
        f'SELECT {INGREDIENT_COLUMNS} FROM ingredients i WHERE i.ingredient_id = {ph}',
        (ingredient_id,),
    )
    if not row:
        return None
    return _hydrate(conn, [row])[0]


def require_ingredient(conn, ingredient_id: int) -> Dict[str, Any]:
    """Get an ingredient by id or raise IngredientNotFound."""
    ingredient = get_ingredient(conn, ingredient_id)
    if ingredient is None:
        logger.warning("Ingredient not found: %s", ingredient_id)
        raise IngredientNotFound(ingredient_id)
    return ingredient


def get_ingredients_by_ids(conn, ingredient_ids: List[int]) -> Dict[int, Dict[str, Any]]:
    """Map of id -> ingredient for the ids that exist."""
    ids = sorted(set(ingredient_ids))
    if not ids:
        return {}
    rows = fetch_all(
        conn,
        f'''
        SELECT {INGREDIENT_COLUMNS}
        FROM ingredients i
        WHERE i.ingredient_id IN ({placeholders(conn, len(ids))})
        ''',
        ids,
    )
    return {ingredient["id"]: ingredient for ingredient in _hydrate(conn, rows)}


def find_conflict(
    conn,
    terms: Iterable[str],
    exclude_id: Optional[int] = None,
) -> Optional[Tuple[str, str]]:
    """
    Find an ingredient whose name or alias matches one of ``terms``.

    Matching is case-insensitive and exact.

    Args:
        conn: Database connection
        terms: Candidate name/aliases
        exclude_id: Ingredient to ignore (the one being updated)

    Returns:
        Tuple of (conflicting term as given, name of the existing ingredient),
        or None when every term is free
    """
    by_lower: Dict[str, str] = {}
    for term in terms:
        if term and term.strip():
            by_lower.setdefault(term.strip().lower(), term.strip())
    if not by_lower:
        return None

    ph = db_placeholder(conn)
    lowered = list(by_lower)
    in_clause = placeholders(conn, len(lowered))
    params: List[Any] = lowered + lowered
    exclude_clause = ""
    if exclude_id is not None:
        exclude_clause = f"AND i.ingredient_id <> {ph}"
        params.append(exclude_id)

    row = fetch_one(
        conn,
        f'''
        SELECT i.ingredient_id, i.name
        FROM ingredients i
        WHERE (
            LOWER(i.name) IN ({in_clause})
            OR EXISTS (
                SELECT 1 FROM ingredientaliases a
                WHERE a.ingredient_id = i.ingredient_id
                  AND LOWER(a.alias) IN ({in_clause})
            )
        )
        {exclude_clause}
        ORDER BY i.ingredient_id
        LIMIT 1
        ''',
        params,
    )
    if not row:
        return None

    existing_aliases = _load_aliases(conn, [row["ingredient_id"]])[row["ingredient_id"]]
    existing_terms = {row["name"].lower()} | {alias.lower() for alias in existing_aliases}
    for lower, original in by_lower.items():
        if lower in existing_terms:
            return original, row["name"]
    # The database matched with its own LOWER(); fall back to the first term
    return next(iter(by_lower.values())), row["name"]


def find_recipes_using_ingredient(conn, ingredient_id: int) -> List[Dict[str, Any]]:
    """Id and name of every recipe with an ingredient line for ``ingredient_id``."""
    ph = db_placeholder(conn)
    rows = fetch_all(
        conn,
        f'''
        SELECT DISTINCT r.recipe_id, r.name
        FROM recipes r
        JOIN recipeingredients ri ON ri.recipe_id = r.recipe_id
        WHERE ri.ingredient_id = {ph}
        ORDER BY r.name
        ''',
        (ingredient_id,),
    )
    return [{"id": row["recipe_id"], "name": row["name"]} for row in rows]


# =============================================================================
# Operations
# =============================================================================

def create_ingredient(
    conn,
    name: str,
    aliases: Optional[List[str]] = None,
    quantity_in_stock: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Create a new ingredient.

    Raises:
        ValidationError: If the name is empty
        ConflictError: If the name or an alias is already in use
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Ingredient name is required and must be a non-empty string.")
    aliases = clean_aliases(aliases, name)
    if quantity_in_stock is None:
        quantity_in_stock = 0
    check_grams(quantity_in_stock, "quantityInStock must be a number.")

    conflict = find_conflict(conn, [name, *aliases])
    if conflict:
        term, existing_name = conflict
        raise ConflictError(
            f'The name or alias "{term}" conflicts with existing ingredient "{existing_name}".'
        )

    now = utc_now()
    ph = db_placeholder(conn)
    ingredient_id = insert_returning_id(
        conn,
        f'''
        INSERT INTO ingredients (name, quantity_in_stock, created_at, updated_at)
        VALUES ({ph}, {ph}, {ph}, {ph})
        ''',
        (name, quantity_in_stock, now, now),
        "ingredient_id",
    )
    _replace_aliases(conn, ingredient_id, aliases)
    logger.info("Created ingredient %s (%s)", ingredient_id, name)
    return get_ingredient(conn, ingredient_id)


def list_ingredients(
    conn,
    search_term: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    """
    Paginated ingredient list sorted by name.

    Args:
        search_term: Case-insensitive substring matched against name and aliases
        page: 1-based page number
        limit: Page size

    Returns:
        Dict with ``ingredients``, ``total_count`` and ``total_pages``
    """
    if page < 1 or limit < 1:
        raise ValidationError("Page and limit must be positive integers.")

    ph = db_placeholder(conn)
    where = ""
    params: List[Any] = []
    if search_term and search_term.strip():
        pattern = f"%{escape_like(search_term.strip().lower())}%"
        where = f'''
            WHERE LOWER(i.name) LIKE {ph} ESCAPE '\\'
               OR EXISTS (
                   SELECT 1 FROM ingredientaliases a
                   WHERE a.ingredient_id = i.ingredient_id
                     AND LOWER(a.alias) LIKE {ph} ESCAPE '\\'
               )
        '''
        params = [pattern, pattern]

    total = fetch_one(conn, f'SELECT COUNT(*) AS total FROM ingredients i {where}', params)["total"]
    rows = fetch_all(
        conn,
        f'''
        SELECT {INGREDIENT_COLUMNS}
        FROM ingredients i
        {where}
        ORDER BY i.name
        LIMIT {ph} OFFSET {ph}
        ''',
        params + [limit, (page - 1) * limit],
    )
    return {
        "ingredients": _hydrate(conn, rows),
        "total_count": total,
        "total_pages": math.ceil(total / limit),
    }


def update_ingredient(conn, ingredient_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Update name, aliases and/or quantity_in_stock of an ingredient.

    Only the keys present in ``updates`` are touched. New aliases replace the
    existing list. An empty ``updates`` returns the ingredient unchanged.

    Raises:
        IngredientNotFound: If the ingredient does not exist
        ValidationError: If a provided name is empty
        ConflictError: If the new name or aliases belong to another ingredient
    """
    current = require_ingredient(conn, ingredient_id)

    name = None
    aliases = None
    if "name" in updates:
        name = (updates["name"] or "").strip()
        if not name:
            raise ValidationError("Ingredient name cannot be empty if provided for update.")
    if "aliases" in updates:
        raw = updates["aliases"] if isinstance(updates["aliases"], list) else []
        aliases = clean_aliases(raw, name or current["name"])

    if name is None and aliases is None and "quantity_in_stock" not in updates:
        return current

    if name is not None or aliases is not None:
        conflict = find_conflict(conn, [name or "", *(aliases or [])], exclude_id=ingredient_id)
        if conflict:
            term, existing_name = conflict
            raise ConflictError(
                f'The name or alias "{term}" conflicts with existing ingredient "{existing_name}".'
            )

    ph = db_placeholder(conn)
    assignments = [f"updated_at = {ph}"]
    params: List[Any] = [utc_now()]
    if name is not None:
        assignments.append(f"name = {ph}")
        params.append(name)
    if "quantity_in_stock" in updates:
        assignments.append(f"quantity_in_stock = {ph}")
        quantity = updates["quantity_in_stock"]
        params.append(0 if quantity is None else check_grams(quantity, "quantityInStock must be a number."))
    params.append(ingredient_id)
    execute(
        conn,
        f'UPDATE ingredients SET {", ".join(assignments)} WHERE ingredient_id = {ph}',
        params,
    )
    if aliases is not None:
        _replace_aliases(conn, ingredient_id, aliases)

    return get_ingredient(conn, ingredient_id)


def delete_ingredient(conn, ingredient_id: int) -> Dict[str, Any]:
    """
    Delete an ingredient that no recipe uses.

    Returns:
        The deleted ingredient

    Raises:
        IngredientNotFound: If the ingredient does not exist
        ConflictError: If recipes still use it; ``details`` lists them
    """
    ingredient = require_ingredient(conn, ingredient_id)

    recipes = find_recipes_using_ingredient(conn, ingredient_id)
    if recipes:
        raise ConflictError(
            "Ingredient is currently used in recipes and cannot be deleted.",
            details={
                "details": {
                    "message": f"Ingredient with ID {ingredient_id} is used in the following recipes:",
                    "recipes": recipes,
                }
            },
        )

    ph = db_placeholder(conn)
    execute(conn, f'DELETE FROM ingredientaliases WHERE ingredient_id = {ph}', (ingredient_id,))
    execute(conn, f'DELETE FROM ingredients WHERE ingredient_id = {ph}', (ingredient_id,))
    logger.info("Deleted ingredient %s (%s)", ingredient_id, ingredient["name"])
    return ingredient


def add_alias(conn, ingredient_id: int, alias: str) -> Dict[str, Any]:
    """
    Add one alias to an ingredient.

    Adding an alias the ingredient already has (as name or alias) is a
    no-op that returns the ingredient unchanged.

    Raises:
        ValidationError: If the alias is empty
        IngredientNotFound: If the ingredient does not exist
        ConflictError: If another ingredient already uses the alias
    """
    alias = (alias or "").strip()
    if not alias:
        raise ValidationError("Alias is required and must be a non-empty string.")

    ingredient = require_ingredient(conn, ingredient_id)

    conflict = find_conflict(conn, [alias], exclude_id=ingredient_id)
    if conflict:
        raise ConflictError(
            f'Alias "{alias}" is already associated with ingredient "{conflict[1]}".'
        )

    lower = alias.lower()
    if ingredient["name"].lower() == lower or any(a.lower() == lower for a in ingredient["aliases"]):
        logger.warning(
            'Alias "%s" already exists for ingredient "%s" (ID: %s).',
            alias, ingredient["name"], ingredient_id,
        )
        return ingredient

    ph = db_placeholder(conn)
    execute(
        conn,
        f'INSERT INTO ingredientaliases (ingredient_id, alias) VALUES ({ph}, {ph})',
        (ingredient_id, alias),
    )
    execute(
        conn,
        f'UPDATE ingredients SET updated_at = {ph} WHERE ingredient_id = {ph}',
        (utc_now(), ingredient_id),
    )
    return get_ingredient(conn, ingredient_id)


def adjust_stock(conn, ingredient_id: int, change_in_quantity: float) -> Dict[str, Any]:
    """
    Add ``change_in_quantity`` grams to an ingredient's stock.

    Negative changes are allowed and the resulting stock may go below zero.
    """
    check_grams(change_in_quantity, "quantityToAdd is required and must be a number.")

    require_ingredient(conn, ingredient_id)
    ph = db_placeholder(conn)
    execute(
        conn,
        f'''
        UPDATE ingredients
        SET quantity_in_stock = quantity_in_stock + {ph}, updated_at = {ph}
        WHERE ingredient_id = {ph}
        ''',
        (change_in_quantity, utc_now(), ingredient_id),
    )
    return get_ingredient(conn, ingredient_id)
