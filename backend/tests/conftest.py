"""
Pytest fixtures and test infrastructure for the Obrador backend tests.
"""
import pytest
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from obrador_api.services.database import connect_sqlite, init_sqlite_schema


@pytest.fixture
def sqlite_conn():
    """In-memory SQLite database with the full schema, for isolated testing."""
    conn = connect_sqlite(':memory:')
    init_sqlite_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def postgres_conn():
    """Test PostgreSQL connection (requires TEST_DATABASE_URL env var)."""
    import psycopg2
    from obrador_api.services.database import init_postgres_schema
    url = os.environ.get('TEST_DATABASE_URL')
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    conn = psycopg2.connect(url)
    init_postgres_schema(conn)
    yield conn
    conn.rollback()  # Don't persist test data
    conn.close()


@pytest.fixture
def client(monkeypatch):
    """API test client backed by a fresh in-memory SQLite database."""
    from fastapi.testclient import TestClient
    from obrador_api.main import app

    monkeypatch.setenv('DATABASE_URL', 'sqlite:///:memory:')
    with TestClient(app) as test_client:
        yield test_client


# Helper functions for tests
def create_test_ingredient(conn, name='Sucre', aliases=None, quantity_in_stock=0):
    """Helper to create an ingredient for testing; returns its id."""
    from obrador_api.services.ingredients import create_ingredient
    return create_ingredient(conn, name, aliases or [], quantity_in_stock)['id']


def create_test_recipe(conn, name='Gelat de vainilla', ingredients=None, linked_recipes=None,
                       steps=None, recipe_type='ice cream recipe', category='ice cream',
                       base_yield_grams=1000):
    """
    Helper to create a recipe for testing; returns its id.

    ``ingredients`` is a list of (ingredient_id, grams) and ``linked_recipes``
    a list of (recipe_id, grams).
    """
    from obrador_api.services.recipes import create_recipe
    recipe = create_recipe(conn, {
        'name': name,
        'type': recipe_type,
        'category': category,
        'ingredients': [
            {'ingredient': ing_id, 'amount_grams': grams} for ing_id, grams in (ingredients or [])
        ],
        'linked_recipes': [
            {'recipe': rec_id, 'amount_grams': grams} for rec_id, grams in (linked_recipes or [])
        ],
        'steps': steps if steps is not None else ['Barrejar'],
        'base_yield_grams': base_yield_grams,
    })
    return recipe['id']
