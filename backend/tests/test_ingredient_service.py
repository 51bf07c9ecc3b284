"""
Tests for the ingredient service.
Covers the shared name/alias namespace, pagination, stock and guarded deletion.
"""
import pytest

from conftest import create_test_ingredient, create_test_recipe
from obrador_api.services import ingredients
from obrador_api.services.errors import ConflictError, IngredientNotFound, ValidationError


class TestCreateIngredient:
    """Test create_ingredient."""

    def test_trims_name_and_cleans_aliases(self, sqlite_conn):
        """Name is trimmed; blank and duplicate aliases are dropped."""
        ing = ingredients.create_ingredient(sqlite_conn, '  Sucre  ', ['sugar', ' Sugar ', 'azúcar'])
        assert ing['name'] == 'Sucre'
        assert ing['aliases'] == ['sugar', 'azúcar']
        assert ing['quantity_in_stock'] == 0
        assert ing['created_at'] is not None

    def test_initial_stock(self, sqlite_conn):
        ing = ingredients.create_ingredient(sqlite_conn, 'Llet', [], 2500)
        assert ing['quantity_in_stock'] == 2500

    def test_blank_alias_rejected(self, sqlite_conn):
        with pytest.raises(ValidationError) as exc_info:
            ingredients.create_ingredient(sqlite_conn, 'Sucre', ['sugar', ''])
        assert exc_info.value.message == 'Aliases must be an array of non-empty strings if provided.'
        assert ingredients.list_ingredients(sqlite_conn)['total_count'] == 0

    def test_non_finite_stock_rejected(self, sqlite_conn):
        with pytest.raises(ValidationError):
            ingredients.create_ingredient(sqlite_conn, 'Sucre', [], float('inf'))

    def test_empty_name_rejected(self, sqlite_conn):
        with pytest.raises(ValidationError):
            ingredients.create_ingredient(sqlite_conn, '   ')

    def test_name_conflicts_with_existing_alias(self, sqlite_conn):
        """A new name may not equal another ingredient's alias, ignoring case."""
        create_test_ingredient(sqlite_conn, 'Sucre', ['sugar'])
        with pytest.raises(ConflictError) as exc_info:
            ingredients.create_ingredient(sqlite_conn, 'SUGAR')
        assert exc_info.value.message == (
            'The name or alias "SUGAR" conflicts with existing ingredient "Sucre".'
        )
        assert exc_info.value.status_code == 409

    def test_alias_conflicts_with_existing_name(self, sqlite_conn):
        create_test_ingredient(sqlite_conn, 'Dextrosa')
        with pytest.raises(ConflictError) as exc_info:
            ingredients.create_ingredient(sqlite_conn, 'Glucosa', ['dextrosa'])
        assert '"dextrosa"' in exc_info.value.message
        assert '"Dextrosa"' in exc_info.value.message


class TestListIngredients:
    """Test list_ingredients pagination and search."""

    def test_sorted_and_paginated(self, sqlite_conn):
        for name in ['Sucre', 'Llet', 'Aigua']:
            create_test_ingredient(sqlite_conn, name)

        page = ingredients.list_ingredients(sqlite_conn, page=1, limit=2)
        assert [i['name'] for i in page['ingredients']] == ['Aigua', 'Llet']
        assert page['total_count'] == 3
        assert page['total_pages'] == 2

        page2 = ingredients.list_ingredients(sqlite_conn, page=2, limit=2)
        assert [i['name'] for i in page2['ingredients']] == ['Sucre']

    def test_search_matches_alias(self, sqlite_conn):
        """Search is a case-insensitive substring over names and aliases."""
        create_test_ingredient(sqlite_conn, 'Sucre', ['Sugar'])
        create_test_ingredient(sqlite_conn, 'Llet')

        result = ingredients.list_ingredients(sqlite_conn, search_term='UGA')
        assert [i['name'] for i in result['ingredients']] == ['Sucre']
        assert result['total_count'] == 1

    def test_search_wildcards_are_literal(self, sqlite_conn):
        create_test_ingredient(sqlite_conn, 'Llet')
        result = ingredients.list_ingredients(sqlite_conn, search_term='%')
        assert result['ingredients'] == []
        assert result['total_pages'] == 0

    def test_invalid_page_rejected(self, sqlite_conn):
        with pytest.raises(ValidationError):
            ingredients.list_ingredients(sqlite_conn, page=0)


class TestUpdateIngredient:
    """Test update_ingredient."""

    def test_empty_update_returns_current(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet', ['milk'])
        ing = ingredients.update_ingredient(sqlite_conn, ing_id, {})
        assert ing['name'] == 'Llet'
        assert ing['aliases'] == ['milk']

    def test_aliases_replace_existing(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet', ['milk'])
        ing = ingredients.update_ingredient(sqlite_conn, ing_id, {'aliases': ['leche', 'lait']})
        assert ing['aliases'] == ['leche', 'lait']

    def test_rename_and_stock(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        ing = ingredients.update_ingredient(
            sqlite_conn, ing_id, {'name': ' Llet sencera ', 'quantity_in_stock': 750}
        )
        assert ing['name'] == 'Llet sencera'
        assert ing['quantity_in_stock'] == 750

    def test_keeping_own_name_is_not_a_conflict(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet', ['milk'])
        ing = ingredients.update_ingredient(sqlite_conn, ing_id, {'name': 'llet', 'aliases': ['Milk']})
        assert ing['name'] == 'llet'

    def test_conflict_with_other_ingredient(self, sqlite_conn):
        create_test_ingredient(sqlite_conn, 'Sucre', ['sugar'])
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        with pytest.raises(ConflictError):
            ingredients.update_ingredient(sqlite_conn, ing_id, {'aliases': ['Sugar']})

    def test_empty_name_rejected(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        with pytest.raises(ValidationError):
            ingredients.update_ingredient(sqlite_conn, ing_id, {'name': ''})

    def test_blank_alias_rejected(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet', ['milk'])
        with pytest.raises(ValidationError) as exc_info:
            ingredients.update_ingredient(sqlite_conn, ing_id, {'aliases': ['leche', ' ']})
        assert exc_info.value.message == 'Aliases must be an array of non-empty strings if provided.'
        assert ingredients.get_ingredient(sqlite_conn, ing_id)['aliases'] == ['milk']

    def test_non_finite_stock_rejected(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        with pytest.raises(ValidationError):
            ingredients.update_ingredient(sqlite_conn, ing_id, {'quantity_in_stock': float('nan')})

    def test_unknown_id(self, sqlite_conn):
        with pytest.raises(IngredientNotFound) as exc_info:
            ingredients.update_ingredient(sqlite_conn, 999, {'name': 'X'})
        assert exc_info.value.message == 'Ingredient with ID 999 not found.'


class TestDeleteIngredient:
    """Test dependency-aware deletion."""

    def test_delete_unused(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet', ['milk'])
        deleted = ingredients.delete_ingredient(sqlite_conn, ing_id)
        assert deleted['name'] == 'Llet'
        assert ingredients.get_ingredient(sqlite_conn, ing_id) is None

        # Aliases go with it
        cursor = sqlite_conn.cursor()
        cursor.execute('SELECT COUNT(*) FROM ingredientaliases WHERE ingredient_id = ?', (ing_id,))
        assert cursor.fetchone()[0] == 0

    def test_delete_in_use_lists_recipes(self, sqlite_conn):
        """Deletion is refused while a recipe still uses the ingredient."""
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        recipe_id = create_test_recipe(sqlite_conn, 'Gelat de llet', ingredients=[(ing_id, 1000)])

        with pytest.raises(ConflictError) as exc_info:
            ingredients.delete_ingredient(sqlite_conn, ing_id)

        body = exc_info.value.to_dict()
        assert body['message'] == 'Ingredient is currently used in recipes and cannot be deleted.'
        assert body['details']['recipes'] == [{'id': recipe_id, 'name': 'Gelat de llet'}]
        assert ingredients.get_ingredient(sqlite_conn, ing_id) is not None

    def test_delete_unknown(self, sqlite_conn):
        with pytest.raises(IngredientNotFound):
            ingredients.delete_ingredient(sqlite_conn, 42)


class TestAliasesAndStock:
    """Test add_alias and adjust_stock."""

    def test_add_alias(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        ing = ingredients.add_alias(sqlite_conn, ing_id, ' milk ')
        assert ing['aliases'] == ['milk']

    def test_add_existing_alias_is_noop(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet', ['milk'])
        ing = ingredients.add_alias(sqlite_conn, ing_id, 'MILK')
        assert ing['aliases'] == ['milk']

    def test_add_alias_used_elsewhere(self, sqlite_conn):
        create_test_ingredient(sqlite_conn, 'Sucre', ['sugar'])
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        with pytest.raises(ConflictError) as exc_info:
            ingredients.add_alias(sqlite_conn, ing_id, 'sugar')
        assert exc_info.value.message == 'Alias "sugar" is already associated with ingredient "Sucre".'

    def test_blank_alias_rejected(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        with pytest.raises(ValidationError):
            ingredients.add_alias(sqlite_conn, ing_id, '  ')

    def test_adjust_stock_can_go_negative(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        assert ingredients.adjust_stock(sqlite_conn, ing_id, 500)['quantity_in_stock'] == 500
        assert ingredients.adjust_stock(sqlite_conn, ing_id, -700)['quantity_in_stock'] == -200

    def test_adjust_stock_requires_number(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet')
        with pytest.raises(ValidationError):
            ingredients.adjust_stock(sqlite_conn, ing_id, '5')
        with pytest.raises(ValidationError):
            ingredients.adjust_stock(sqlite_conn, ing_id, True)

    def test_adjust_stock_rejects_non_finite(self, sqlite_conn):
        ing_id = create_test_ingredient(sqlite_conn, 'Llet', quantity_in_stock=100)
        for value in (float('nan'), float('inf'), float('-inf')):
            with pytest.raises(ValidationError):
                ingredients.adjust_stock(sqlite_conn, ing_id, value)
        assert ingredients.get_ingredient(sqlite_conn, ing_id)['quantity_in_stock'] == 100

    def test_adjust_stock_unknown(self, sqlite_conn):
        with pytest.raises(IngredientNotFound):
            ingredients.adjust_stock(sqlite_conn, 7, 10)
