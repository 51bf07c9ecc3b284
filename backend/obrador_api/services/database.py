"""
Database service for connection management and schema setup.

Loads credentials from .env file and keeps a single reusable connection.
PostgreSQL is used when DATABASE_URL points at it; otherwise the service
falls back to SQLite so the API (and the test suite) run without a server.
"""

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence

import psycopg2
import psycopg2.extras
from dotenv import load_dotenv


logger = logging.getLogger(__name__)

# Load .env from backend directory
_backend_dir = Path(__file__).parent.parent.parent
_env_path = _backend_dir / ".env"
load_dotenv(_env_path)

DEFAULT_SQLITE_PATH = "obrador.db"
SQLITE_PREFIX = "sqlite:///"


def get_database_url() -> Optional[str]:
    """Get the database URL from environment variables."""
    return os.getenv("DATABASE_URL")


def is_postgres(conn) -> bool:
    """Check if connection is PostgreSQL."""
    return isinstance(conn, psycopg2.extensions.connection)


def db_placeholder(conn) -> str:
    """Return the correct placeholder for the database type."""
    return '%s' if is_postgres(conn) else '?'


def placeholders(conn, count: int) -> str:
    """Comma separated placeholders for an IN (...) clause."""
    return ", ".join([db_placeholder(conn)] * count)


def dict_cursor(conn):
    """Cursor whose rows support dict(row) on both backends."""
    if is_postgres(conn):
        return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
    return conn.cursor()


def fetch_all(conn, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    """Run a query and return every row as a plain dict."""
    cursor = dict_cursor(conn)
    try:
        cursor.execute(query, tuple(params))
        return [dict(row) for row in cursor.fetchall()]
    finally:
        cursor.close()


def fetch_one(conn, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
    """Run a query and return the first row as a dict, or None."""
    cursor = dict_cursor(conn)
    try:
        cursor.execute(query, tuple(params))
        row = cursor.fetchone()
        return dict(row) if row is not None else None
    finally:
        cursor.close()


def execute(conn, query: str, params: Sequence[Any] = ()) -> int:
    """Run a write statement and return the affected row count."""
    cursor = conn.cursor()
    try:
        cursor.execute(query, tuple(params))
        return cursor.rowcount
    finally:
        cursor.close()


def insert_returning_id(conn, query: str, params: Sequence[Any], id_column: str) -> int:
    """Run an INSERT and return the generated primary key."""
    cursor = conn.cursor()
    try:
        if is_postgres(conn):
            cursor.execute(f"{query} RETURNING {id_column}", tuple(params))
            return cursor.fetchone()[0]
        cursor.execute(query, tuple(params))
        return cursor.lastrowid
    finally:
        cursor.close()


def utc_now() -> str:
    """Timestamp stored in created_at / updated_at columns."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Schema
# =============================================================================

def init_postgres_schema(conn) -> None:
    """Create tables on PostgreSQL."""
    cursor = conn.cursor()
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS ingredients (
            ingredient_id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            quantity_in_stock DOUBLE PRECISION NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS ingredientaliases (
            alias_id SERIAL PRIMARY KEY,
            ingredient_id INTEGER NOT NULL REFERENCES ingredients(ingredient_id) ON DELETE CASCADE,
            alias TEXT NOT NULL
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS recipes (
            recipe_id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            category TEXT,
            base_yield_grams DOUBLE PRECISION NOT NULL DEFAULT 1000,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS recipeingredients (
            recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            ingredient_id INTEGER NOT NULL REFERENCES ingredients(ingredient_id),
            amount_grams DOUBLE PRECISION NOT NULL,
            PRIMARY KEY (recipe_id, position)
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS recipelinks (
            recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            linked_recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id),
            amount_grams DOUBLE PRECISION NOT NULL,
            PRIMARY KEY (recipe_id, position)
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS recipesteps (
            recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            step TEXT NOT NULL,
            PRIMARY KEY (recipe_id, position)
        )
    ''')
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS defaultsteps (
            category TEXT NOT NULL,
            position INTEGER NOT NULL,
            step TEXT NOT NULL,
            PRIMARY KEY (category, position)
        )
    ''')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_ingredientaliases_ingredient ON ingredientaliases(ingredient_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_recipeingredients_ingredient ON recipeingredients(ingredient_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_recipelinks_linked ON recipelinks(linked_recipe_id)')
    cursor.close()
    conn.commit()


def init_sqlite_schema(conn) -> None:
    """Create tables on SQLite."""
    conn.execute('PRAGMA foreign_keys = ON')
    conn.executescript('''
        CREATE TABLE IF NOT EXISTS ingredients (
            ingredient_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            quantity_in_stock REAL NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS ingredientaliases (
            alias_id INTEGER PRIMARY KEY AUTOINCREMENT,
            ingredient_id INTEGER NOT NULL REFERENCES ingredients(ingredient_id) ON DELETE CASCADE,
            alias TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS recipes (
            recipe_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            category TEXT,
            base_yield_grams REAL NOT NULL DEFAULT 1000,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS recipeingredients (
            recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            ingredient_id INTEGER NOT NULL REFERENCES ingredients(ingredient_id),
            amount_grams REAL NOT NULL,
            PRIMARY KEY (recipe_id, position)
        );

        CREATE TABLE IF NOT EXISTS recipelinks (
            recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            linked_recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id),
            amount_grams REAL NOT NULL,
            PRIMARY KEY (recipe_id, position)
        );

        CREATE TABLE IF NOT EXISTS recipesteps (
            recipe_id INTEGER NOT NULL REFERENCES recipes(recipe_id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            step TEXT NOT NULL,
            PRIMARY KEY (recipe_id, position)
        );

        CREATE TABLE IF NOT EXISTS defaultsteps (
            category TEXT NOT NULL,
            position INTEGER NOT NULL,
            step TEXT NOT NULL,
            PRIMARY KEY (category, position)
        );

        CREATE INDEX IF NOT EXISTS idx_ingredientaliases_ingredient ON ingredientaliases(ingredient_id);
        CREATE INDEX IF NOT EXISTS idx_recipeingredients_ingredient ON recipeingredients(ingredient_id);
        CREATE INDEX IF NOT EXISTS idx_recipelinks_linked ON recipelinks(linked_recipe_id);
    ''')
    conn.commit()


def init_schema(conn) -> None:
    """Create all tables for whichever backend the connection belongs to."""
    if is_postgres(conn):
        init_postgres_schema(conn)
    else:
        init_sqlite_schema(conn)


def connect_sqlite(path: str) -> sqlite3.Connection:
    """Open a SQLite connection usable from FastAPI's worker threads."""
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys = ON')
    return conn


class DatabasePool:
    """
    Simple connection pool.

    Uses a single connection that is reused across requests. A lock
    serializes transactions so that one request's rollback never discards
    another request's uncommitted writes.
    """

    def __init__(self):
        self._conn = None
        self._lock = threading.RLock()
        self._db_url: Optional[str] = None

    @property
    def backend(self) -> str:
        """Name of the active backend: postgresql, sqlite or none."""
        if self._conn is None:
            return "none"
        return "postgresql" if is_postgres(self._conn) else "sqlite"

    def initialize(self, db_url: Optional[str] = None) -> None:
        """Initialize the database connection and make sure the schema exists."""
        self._db_url = db_url or get_database_url()
        if not self._db_url:
            logger.info("DATABASE_URL not set, using SQLite (%s)", DEFAULT_SQLITE_PATH)
            self._db_url = SQLITE_PREFIX + DEFAULT_SQLITE_PATH
        self._connect()
        init_schema(self._conn)

    def _connect(self) -> None:
        """Establish database connection."""
        if self._conn is not None:
            self.close()

        if self._db_url.startswith(SQLITE_PREFIX):
            self._conn = connect_sqlite(self._db_url[len(SQLITE_PREFIX):])
        else:
            self._conn = psycopg2.connect(self._db_url)
            self._conn.autocommit = False

    def _ensure_connection(self) -> None:
        """Ensure the connection is alive, reconnect if needed."""
        if self._conn is None:
            if self._db_url is None:
                raise RuntimeError("Database pool used before initialize()")
            self._connect()
            return

        if not is_postgres(self._conn):
            return

        try:
            # Test connection with a simple query
            with self._conn.cursor() as cursor:
                cursor.execute("SELECT 1")
        except (psycopg2.OperationalError, psycopg2.InterfaceError):
            logger.warning("Database connection lost, reconnecting")
            self._connect()

    @contextmanager
    def get_connection(self) -> Generator[Any, None, None]:
        """
        Get a database connection from the pool.

        Commits when the block exits normally and rolls back on error.
        Other threads wait until the block has finished.

        Example:
            with db_pool.get_connection() as conn:
                ingredient = ingredients.get_ingredient(conn, 3)
        """
        with self._lock:
            self._ensure_connection()
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    @contextmanager
    def get_cursor(self) -> Generator[Any, None, None]:
        """
        Get a dict-row cursor with automatic connection management.

        Example:
            with db_pool.get_cursor() as cursor:
                cursor.execute("SELECT 1")
        """
        with self.get_connection() as conn:
            cursor = dict_cursor(conn)
            try:
                yield cursor
            finally:
                cursor.close()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            try:
                self._conn.close()
            except (sqlite3.Error, psycopg2.Error) as e:
                logger.warning("Error while closing database connection: %s", e)
            self._conn = None


# Global database pool instance
db_pool = DatabasePool()

