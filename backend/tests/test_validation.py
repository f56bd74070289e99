"""
Input parsing and money arithmetic tests.

Verifies:
- Money is whole cents; floats, decimals and scientific notation are rejected
- Line totals round half-up to the cent
- payment_status derives from paid vs total
"""

from decimal import Decimal

import pytest

from sierra.models import Product
from sierra.validation import (
    ModelValidationPolicy,
    ValidationError,
    compute_line_total,
    derive_payment_status,
    parse_line_items,
    parse_money,
    parse_percent,
    quantities_by_product,
    validate_payload,
)


POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "unit_price_cents", "reorder_level"},
    required_on_create={"sku", "name"},
)


# =============================================================================
# MONEY AND PERCENTAGES
# =============================================================================


class TestParseMoney:

    @pytest.mark.parametrize("raw,expected", [(0, 0), (5995, 5995), ("5995", 5995), (" 12 ", 12)])
    def test_accepts_whole_cents(self, raw, expected):
        assert parse_money("amount_cents", raw) == expected

    @pytest.mark.parametrize("raw", [12.5, "12.5", "1e5", "", True, -1, 1_000_000_000])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_money("amount_cents", raw)

    def test_positive_rejects_zero(self):
        with pytest.raises(ValidationError):
            parse_money("amount_cents", 0, positive=True)

    def test_optional(self):
        assert parse_money("amount_cents", None, required=False) is None


class TestParsePercent:

    def test_blank_is_zero(self):
        assert parse_percent("discount_percent", None) == Decimal("0.00")
        assert parse_percent("discount_percent", "") == Decimal("0.00")

    def test_quantized(self):
        assert parse_percent("discount_percent", "12.345") == Decimal("12.35")
        assert parse_percent("discount_percent", 10) == Decimal("10.00")

    @pytest.mark.parametrize("raw", [-0.01, 100.01, "ten", "NaN", False])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_percent("discount_percent", raw)


# =============================================================================
# LINE ITEMS
# =============================================================================


class TestLineItems:

    @pytest.mark.parametrize(
        "unit,qty,disc,expected",
        [
            (5995, 3, Decimal("0"), 17985),
            (5995, 3, Decimal("10"), 16187),  # 16186.5 rounds up
            (4000, 50, Decimal("5"), 190000),
            (333, 1, Decimal("50"), 167),  # 166.5 rounds up
            (100, 7, Decimal("100"), 0),
        ],
    )
    def test_compute_line_total(self, unit, qty, disc, expected):
        assert compute_line_total(unit, qty, disc) == expected

    def test_parse_lines(self):
        lines = parse_line_items([
            {"product_id": 1, "quantity": 2, "unit_price_cents": 100},
            {"product_id": 1, "quantity": "3", "unit_price_cents": 100, "discount_percent": "5"},
            {"product_id": 2, "quantity": 1, "unit_price_cents": 0, "mrp_cents": 250},
        ])
        assert lines[1].discount_percent == Decimal("5.00")
        assert lines[2].mrp_cents == 250
        assert quantities_by_product(lines) == {1: 5, 2: 1}

    @pytest.mark.parametrize(
        "items",
        [
            [],
            None,
            ["not-an-object"],
            [{"product_id": 1, "quantity": 0, "unit_price_cents": 100}],
            [{"product_id": 1, "quantity": 1}],
            [{"quantity": 1, "unit_price_cents": 100}],
        ],
    )
    def test_parse_lines_rejects(self, items):
        with pytest.raises(ValidationError):
            parse_line_items(items)


class TestPaymentStatus:

    @pytest.mark.parametrize(
        "paid,total,expected",
        [
            (0, 59950, "unpaid"),
            (1, 59950, "partial"),
            (59950, 59950, "paid"),
            (60000, 59950, "paid"),
            (0, 0, "paid"),
        ],
    )
    def test_derive(self, paid, total, expected):
        assert derive_payment_status(paid, total) == expected


# =============================================================================
# MODEL PAYLOADS
# =============================================================================


class TestValidatePayload:

    def test_create_requires_fields(self, app):
        with pytest.raises(ValidationError, match="sku"):
            validate_payload(model=Product, payload={"name": "Wire"}, policy=POLICY, partial=False)

    def test_patch_skips_required(self, app):
        assert validate_payload(model=Product, payload={"reorder_level": "4"}, policy=POLICY, partial=True) == {
            "reorder_level": 4
        }

    def test_rejects_non_writable(self, app):
        with pytest.raises(ValidationError, match="not allowed"):
            validate_payload(model=Product, payload={"stock_quantity": 1}, policy=POLICY, partial=True)

    def test_strips_and_rejects_blank(self, app):
        patch = validate_payload(model=Product, payload={"sku": " SW-1 ", "name": "Switch"}, policy=POLICY, partial=False)
        assert patch["sku"] == "SW-1"
        with pytest.raises(ValidationError, match="blank"):
            validate_payload(model=Product, payload={"name": "  "}, policy=POLICY, partial=True)

    def test_negative_money_rejected(self, app):
        with pytest.raises(ValidationError):
            validate_payload(model=Product, payload={"unit_price_cents": -1}, policy=POLICY, partial=True)
