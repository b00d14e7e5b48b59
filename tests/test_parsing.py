"""
Tests for numeric coercion helpers
"""
from hotel_ads_funnel.parsing import parse_float_or_0, parse_int_or_0


class TestParseInt:
    def test_numeric_strings(self):
        assert parse_int_or_0("3") == 3
        assert parse_int_or_0(" 42 ") == 42

    def test_leading_integer_prefix(self):
        """Trailing junk and decimals are ignored like parseInt."""
        assert parse_int_or_0("12abc") == 12
        assert parse_int_or_0("3.7") == 3

    def test_missing_and_garbage_default_to_zero(self):
        for value in (None, "", "abc", "NaN", [], {}):
            assert parse_int_or_0(value) == 0

    def test_negative_values_clamp_to_zero(self):
        assert parse_int_or_0("-5") == 0
        assert parse_int_or_0(-5) == 0

    def test_native_numbers(self):
        assert parse_int_or_0(7) == 7
        assert parse_int_or_0(7.9) == 7
        assert parse_int_or_0(float("inf")) == 0

    def test_bool_is_not_a_count(self):
        assert parse_int_or_0(True) == 0


class TestParseFloat:
    def test_numeric_strings(self):
        assert parse_float_or_0("150.50") == 150.5
        assert parse_float_or_0(".5") == 0.5
        assert parse_float_or_0("1e3") == 1000.0

    def test_prefix_parse(self):
        assert parse_float_or_0("99.90 PLN") == 99.9

    def test_missing_garbage_and_negative(self):
        for value in (None, "", "n/a", "-1.5", float("nan"), float("inf"), "1e999"):
            assert parse_float_or_0(value) == 0.0

    def test_native_numbers(self):
        assert parse_float_or_0(3) == 3.0
        assert parse_float_or_0(2.25) == 2.25
