"""
Tests for yield normalization and production scaling helpers.
"""
import math

import pytest

from obrador_api.services.scaling import (
    CANONICAL_YIELD_GRAMS,
    format_amount,
    normalize_for_create,
    normalize_for_update,
    round_grams,
    scale_amounts,
    scale_factor_for,
    total_grams,
    validate_scale_factor,
)


def lines(*amounts):
    return [{'ingredient': i + 1, 'amount_grams': amount} for i, amount in enumerate(amounts)]


class TestRoundGrams:
    """Half-up rounding to whole grams."""

    def test_half_rounds_up(self):
        assert round_grams(2.5) == 3
        assert round_grams(333.5) == 334

    def test_negative_half_rounds_towards_positive(self):
        """Matches Math.round: -2.5 -> -2."""
        assert round_grams(-2.5) == -2

    def test_regular_values(self):
        assert round_grams(333.333) == 333
        assert round_grams(666.667) == 667


class TestNormalizeForCreate:
    """Rescaling from the declared base yield."""

    def test_scales_up_from_half_kilo(self):
        """A 500 g recipe is doubled."""
        ings, linked, base = normalize_for_create(lines(300, 200), [{'recipe': 9, 'amount_grams': 0}], 500)
        assert [l['amount_grams'] for l in ings] == [600, 400]
        assert linked[0]['amount_grams'] == 0
        assert base == CANONICAL_YIELD_GRAMS

    def test_scales_down_and_rounds(self):
        """A 3 kg recipe is divided by three and rounded to grams."""
        ings, _, base = normalize_for_create(lines(1000, 2000), [], 3000)
        assert [l['amount_grams'] for l in ings] == [333, 667]
        assert base == 1000

    def test_canonical_yield_untouched(self):
        ings, _, base = normalize_for_create(lines(600, 200), [], 1000)
        assert [l['amount_grams'] for l in ings] == [600, 200]
        assert base == 1000

    def test_missing_yield_defaults_to_canonical(self):
        ings, _, base = normalize_for_create(lines(123), [], None)
        assert ings[0]['amount_grams'] == 123
        assert base == 1000

    def test_input_lines_are_not_mutated(self):
        original = lines(250)
        normalize_for_create(original, [], 500)
        assert original[0]['amount_grams'] == 250


class TestNormalizeForUpdate:
    """Rescaling from the sum of all lines."""

    def test_rescales_to_total_of_1000(self):
        ings, linked, base = normalize_for_update(lines(300, 100), [{'recipe': 2, 'amount_grams': 100}])
        assert [l['amount_grams'] for l in ings] == [600, 200]
        assert linked[0]['amount_grams'] == 200
        assert base == 1000

    def test_already_1000_untouched(self):
        ings, _, _ = normalize_for_update(lines(700, 300), [])
        assert [l['amount_grams'] for l in ings] == [700, 300]

    def test_zero_total_untouched(self):
        ings, linked, base = normalize_for_update(lines(0, 0), [])
        assert [l['amount_grams'] for l in ings] == [0, 0]
        assert base == 1000

    def test_empty_lines(self):
        assert normalize_for_update(None, None) == ([], [], 1000)

    def test_total_grams(self):
        assert total_grams(lines(1, 2), [{'recipe': 1, 'amount_grams': 3}]) == 6


class TestScaleFactor:
    """Production scale bounds and conversions."""

    def test_valid_range(self):
        assert validate_scale_factor(1) == (True, "")
        assert validate_scale_factor(0.1) == (True, "")
        assert validate_scale_factor(50) == (True, "")

    def test_too_small(self):
        is_valid, error = validate_scale_factor(0.05)
        assert not is_valid
        assert error == "Scaling factor too small (min 0.1x)"

    def test_too_large(self):
        is_valid, error = validate_scale_factor(51)
        assert not is_valid
        assert error == "Scaling factor too large (max 50x)"

    def test_nan_rejected(self):
        is_valid, _ = validate_scale_factor(math.nan)
        assert not is_valid

    def test_factor_for_target_yield(self):
        assert scale_factor_for(2500) == 2.5
        assert scale_factor_for(500, 1000) == 0.5

    def test_factor_for_rejects_zero_base(self):
        with pytest.raises(ValueError):
            scale_factor_for(500, 0)

    def test_scale_amounts_keeps_fractions(self):
        scaled = scale_amounts(lines(333), 1.5)
        assert scaled[0]['amount_grams'] == 499.5
        assert scaled[0]['ingredient'] == 1


class TestFormatAmount:
    """Display of gram amounts."""

    def test_grams(self):
        assert format_amount(500) == "500g"
        assert format_amount(499.6) == "500g"
        assert format_amount(0) == "0g"

    def test_kilograms(self):
        assert format_amount(1000) == "1.0kg"
        assert format_amount(1234) == "1.2kg"
        assert format_amount(2500) == "2.5kg"
