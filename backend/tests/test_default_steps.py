"""
Tests for per-category default steps.
"""
import pytest

from obrador_api.services import default_steps
from obrador_api.services.errors import NotFoundError, ValidationError


class TestGetDefaultSteps:
    """Test get_default_steps."""

    def test_invalid_category(self, sqlite_conn):
        with pytest.raises(ValidationError) as exc_info:
            default_steps.get_default_steps(sqlite_conn, 'granita')
        assert exc_info.value.message == (
            'Invalid or missing category parameter. Must be "ice cream" or "sorbet".'
        )

    def test_missing_steps(self, sqlite_conn):
        with pytest.raises(NotFoundError) as exc_info:
            default_steps.get_default_steps(sqlite_conn, 'sorbet')
        assert exc_info.value.message == 'Default steps not found for category: sorbet'


class TestReplaceDefaultSteps:
    """Test replace_default_steps."""

    def test_replace_keeps_order(self, sqlite_conn):
        default_steps.replace_default_steps(sqlite_conn, 'sorbet', ['Pesar', ' Barrejar ', ''])
        assert default_steps.get_default_steps(sqlite_conn, 'sorbet') == ['Pesar', 'Barrejar']

        default_steps.replace_default_steps(sqlite_conn, 'sorbet', ['Mantecar'])
        assert default_steps.get_default_steps(sqlite_conn, 'sorbet') == ['Mantecar']

    def test_categories_are_independent(self, sqlite_conn):
        default_steps.replace_default_steps(sqlite_conn, 'ice cream', ['Pasteuritzar'])
        assert default_steps.find_default_steps(sqlite_conn, 'sorbet') == []

    def test_blank_steps_rejected(self, sqlite_conn):
        with pytest.raises(ValidationError):
            default_steps.replace_default_steps(sqlite_conn, 'sorbet', ['  '])


class TestSeedDefaultSteps:
    """Test seed_default_steps."""

    def test_seeds_both_categories(self, sqlite_conn):
        seeded = default_steps.seed_default_steps(sqlite_conn)
        assert sorted(seeded) == ['ice cream', 'sorbet']
        assert default_steps.get_default_steps(sqlite_conn, 'ice cream') == default_steps.DEFAULT_STEPS['ice cream']

    def test_existing_categories_skipped(self, sqlite_conn):
        default_steps.replace_default_steps(sqlite_conn, 'sorbet', ['Custom'])
        seeded = default_steps.seed_default_steps(sqlite_conn)
        assert seeded == ['ice cream']
        assert default_steps.get_default_steps(sqlite_conn, 'sorbet') == ['Custom']

    def test_force_overwrites(self, sqlite_conn):
        default_steps.replace_default_steps(sqlite_conn, 'sorbet', ['Custom'])
        default_steps.seed_default_steps(sqlite_conn, force=True)
        assert default_steps.get_default_steps(sqlite_conn, 'sorbet') == default_steps.DEFAULT_STEPS['sorbet']
