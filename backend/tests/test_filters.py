"""
Core Service — Filter Condition & Pagination Unit Tests
=========================================================

What we test:
    ✅ Range suffixes map to GTE / LTE, bare numbers to equality
    ✅ Integer vs float parsing per registered kind
    ✅ Non-string values and unparseable prefixes are rejected with messages
    ✅ Only ASCII decimal prefixes parse (no spaces, underscores or other digit scripts)
    ✅ Unregistered fields are plain equality, whatever their value type
    ✅ PageRequest validation, offsets and total page arithmetic
    ✅ Order specification parsing
"""

import pytest

from core.exceptions import ParseError, ValidationError, ValueTypeError
from core.persistence.filters import (
    NumericKind,
    Operator,
    PageRequest,
    Predicate,
    default_range_fields,
    parse_conditions,
    parse_order,
    total_pages,
)


class TestParseConditions:

    def setup_method(self):
        self.registry = default_range_fields()

    def test_trailing_minus_is_at_most(self):
        assert parse_conditions({"price": "100-"}, self.registry) == [
            Predicate("price", Operator.LTE, 100)
        ]

    def test_trailing_plus_is_at_least(self):
        assert parse_conditions({"price": "100+"}, self.registry) == [
            Predicate("price", Operator.GTE, 100)
        ]

    def test_bare_number_is_equality(self):
        [predicate] = parse_conditions({"price": "250"}, self.registry)
        assert predicate.op is Operator.EQ
        assert predicate.value == 250
        assert isinstance(predicate.value, int)

    def test_float_field_parses_float(self):
        [predicate] = parse_conditions({"pct_remaining": "0.5+"}, self.registry)
        assert predicate == Predicate("pct_remaining", Operator.GTE, 0.5)

    def test_unregistered_field_is_equality_with_raw_value(self):
        predicates = parse_conditions({"brand": "Dior", "in_stock": True}, self.registry)
        assert predicates == [
            Predicate("brand", Operator.EQ, "Dior"),
            Predicate("in_stock", Operator.EQ, True),
        ]

    def test_mapping_order_preserved(self):
        predicates = parse_conditions(
            {"brand": "Chanel", "price": "50+", "pct_remaining": "0.25-"}, self.registry
        )
        assert [p.field for p in predicates] == ["brand", "price", "pct_remaining"]

    def test_non_string_range_value_rejected(self):
        with pytest.raises(ValueTypeError) as exc_info:
            parse_conditions({"price": 100}, self.registry)
        assert exc_info.value.message == "value (price) is not a string"
        assert exc_info.value.field == "price"

    @pytest.mark.parametrize("value", ["abc-", "-", "+", "", "12.5+"])
    def test_unparseable_integer_prefix_rejected(self, value):
        with pytest.raises(ParseError) as exc_info:
            parse_conditions({"price": value}, self.registry)
        assert exc_info.value.message.startswith("invalid price value")

    @pytest.mark.parametrize("value", ["nan+", "inf-", "x.5"])
    def test_unparseable_float_prefix_rejected(self, value):
        with pytest.raises(ParseError):
            parse_conditions({"pct_remaining": value}, self.registry)

    @pytest.mark.parametrize("value", ["1_000-", " 100-", "100 -", "١٠٠-", "\t7+", "１２+"])
    def test_non_ascii_decimal_integer_rejected(self, value):
        with pytest.raises(ParseError):
            parse_conditions({"price": value}, self.registry)

    @pytest.mark.parametrize("value", ["1_0.5+", " 0.5+", "٠.٥-", "1e999+"])
    def test_non_ascii_decimal_float_rejected(self, value):
        with pytest.raises(ParseError):
            parse_conditions({"pct_remaining": value}, self.registry)

    @pytest.mark.parametrize("value,expected", [("-5+", -5), ("+5-", 5)])
    def test_signed_integer_prefix(self, value, expected):
        [predicate] = parse_conditions({"price": value}, self.registry)
        assert predicate.value == expected

    @pytest.mark.parametrize("value,expected", [(".5+", 0.5), ("1.+", 1.0), ("2.5e-1-", 0.25)])
    def test_float_prefix_forms(self, value, expected):
        [predicate] = parse_conditions({"pct_remaining": value}, self.registry)
        assert predicate.value == expected

    def test_without_registry_everything_is_equality(self):
        assert parse_conditions({"price": "100-"}) == [Predicate("price", Operator.EQ, "100-")]


class TestRangeFieldRegistry:

    def test_defaults(self):
        registry = default_range_fields()
        assert registry.kind_of("price") is NumericKind.INTEGER
        assert registry.kind_of("pct_remaining") is NumericKind.FLOAT
        assert "brand" not in registry

    def test_register_new_field(self):
        registry = default_range_fields().register("volume_ml", NumericKind.INTEGER)
        [predicate] = parse_conditions({"volume_ml": "30+"}, registry)
        assert predicate == Predicate("volume_ml", Operator.GTE, 30)

    def test_copy_is_independent(self):
        original = default_range_fields()
        clone = original.copy().register("rating", NumericKind.FLOAT)
        assert "rating" in clone
        assert "rating" not in original
        assert sorted(original) == ["pct_remaining", "price"]


class TestPagination:

    def test_offset_and_limit(self):
        page = PageRequest(page=3, page_size=10)
        assert page.offset == 20
        assert page.limit == 10

    def test_defaults(self):
        assert PageRequest() == PageRequest(page=1, page_size=20)

    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0), (-1, 5), (True, 5), (1, "10")])
    def test_invalid_values_rejected(self, page, page_size):
        with pytest.raises(ValidationError):
            PageRequest(page=page, page_size=page_size)

    @pytest.mark.parametrize(
        "total,size,expected",
        [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2), (25, 7, 4)],
    )
    def test_total_pages_is_ceiling(self, total, size, expected):
        assert total_pages(total, size) == expected


class TestParseOrder:

    def test_empty_is_natural_order(self):
        assert parse_order(None) is None
        assert parse_order("  ") is None

    def test_direction(self):
        assert parse_order("price") == ("price", False)
        assert parse_order("price asc") == ("price", False)
        assert parse_order("price DESC") == ("price", True)

    @pytest.mark.parametrize("order_by", ["price sideways", "price desc nulls"])
    def test_invalid(self, order_by):
        with pytest.raises(ValidationError):
            parse_order(order_by)
