from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from books.exceptions import ValidationError
from books.models import ExpenseCategory
from books.validators import (
    parse_amount,
    validate_category_name,
    validate_date_range,
    validate_disbursement,
    validate_email,
    validate_optional_str,
    validate_shareholder_percentage,
    validate_timestamp,
    validate_transaction,
)


def _category(category_id, name, is_active=True):
    return ExpenseCategory(id=category_id, name=name, is_active=is_active, created_at=0)


class TestShareholderPercentage:
    def test_rejects_when_total_would_exceed_hundred(self, make_shareholder):
        existing = [make_shareholder("a", 60)]

        with pytest.raises(ValidationError) as excinfo:
            validate_shareholder_percentage(50, existing)

        message = str(excinfo.value)
        assert "60%" in message
        assert "40%" in message

    def test_accepts_exactly_remaining_capacity(self, make_shareholder):
        existing = [make_shareholder("a", 60)]

        assert validate_shareholder_percentage("40", existing) == Decimal("40")

    def test_excludes_record_under_edit(self, make_shareholder):
        existing = [make_shareholder("a", 60), make_shareholder("b", 30)]

        assert validate_shareholder_percentage(70, existing, exclude_id="a") == Decimal("70")
        with pytest.raises(ValidationError):
            validate_shareholder_percentage(71, existing, exclude_id="a")

    def test_inactive_shareholders_do_not_count(self, make_shareholder):
        existing = [make_shareholder("a", 90, is_active=False)]

        assert validate_shareholder_percentage(100, existing) == Decimal("100")

    @pytest.mark.parametrize("candidate", [0, -5, "100.01", 150])
    def test_rejects_out_of_range(self, candidate):
        with pytest.raises(ValidationError):
            validate_shareholder_percentage(candidate, [])

    def test_remaining_capacity_is_rounded(self, make_shareholder):
        existing = [make_shareholder("a", "33.333")]

        with pytest.raises(ValidationError) as excinfo:
            validate_shareholder_percentage(70, existing)

        assert "33.33%" in str(excinfo.value)
        assert "66.67%" in str(excinfo.value)

    def test_rejects_non_numeric(self):
        with pytest.raises(ValidationError):
            validate_shareholder_percentage("ten", [])


class TestEmail:
    @pytest.mark.parametrize("value", ["owner@example.com", "a.b+c@mail.co.uk", "x@y.z"])
    def test_valid(self, value):
        assert validate_email(value) == value

    def test_trims(self):
        assert validate_email("  owner@example.com ") == "owner@example.com"

    @pytest.mark.parametrize(
        "value", ["", "owner", "owner@example", "own er@example.com", "a@@b.com", "@example.com", None]
    )
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_email(value)


class TestTransaction:
    def test_expense_requires_category(self):
        with pytest.raises(ValidationError, match="category is required"):
            validate_transaction("expense", 10, "Paper", None, {"Supplies"})

    def test_expense_category_must_be_active(self):
        with pytest.raises(ValidationError, match="does not exist or is inactive"):
            validate_transaction("expense", 10, "Paper", "Rent", {"Supplies"})

    def test_category_match_is_exact(self):
        with pytest.raises(ValidationError):
            validate_transaction("expense", 10, "Paper", "supplies", {"Supplies"})

    def test_income_forbids_category(self):
        with pytest.raises(ValidationError, match="cannot have a category"):
            validate_transaction("income", 10, "Sale", "Supplies", {"Supplies"})

    @pytest.mark.parametrize("amount", [0, -1, "0.00", "abc", None, True])
    def test_rejects_bad_amount(self, amount):
        with pytest.raises(ValidationError):
            validate_transaction("income", amount, "Sale", None, set())

    @pytest.mark.parametrize("category", [["Supplies"], {"name": "Supplies"}, 7])
    def test_rejects_non_string_category(self, category):
        with pytest.raises(ValidationError, match="category must be a string"):
            validate_transaction("expense", 10, "Paper", category, {"Supplies"})

    def test_rejects_blank_description(self):
        with pytest.raises(ValidationError):
            validate_transaction("income", 10, "   ", None, set())

    def test_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            validate_transaction("transfer", 10, "Sale", None, set())

    def test_returns_normalised_fields(self):
        fields = validate_transaction("Expense", "12.5", "  Paper  ", "Supplies", {"Supplies"})

        assert fields == {
            "type": "expense",
            "amount": Decimal("12.50"),
            "description": "Paper",
            "category": "Supplies",
        }


class TestDisbursement:
    def test_requires_positive_amount(self, make_shareholder):
        with pytest.raises(ValidationError):
            validate_disbursement(0, make_shareholder("a", 10))

    def test_requires_shareholder(self):
        with pytest.raises(ValidationError, match="shareholder"):
            validate_disbursement(10, None)

    def test_requires_active_shareholder(self, make_shareholder):
        with pytest.raises(ValidationError, match="inactive"):
            validate_disbursement(10, make_shareholder("a", 10, is_active=False))

    def test_returns_amount(self, make_shareholder):
        assert validate_disbursement("99.999", make_shareholder("a", 10)) == Decimal("100.00")


class TestCategoryName:
    def test_rejects_blank(self):
        with pytest.raises(ValidationError):
            validate_category_name("   ", [])

    def test_rejects_case_insensitive_duplicate(self):
        with pytest.raises(ValidationError, match="unique"):
            validate_category_name("rent", [_category("c1", "Rent")])

    def test_inactive_name_can_be_reused(self):
        assert validate_category_name("Rent", [_category("c1", "Rent", is_active=False)]) == "Rent"

    def test_excludes_record_under_edit(self):
        assert validate_category_name(" RENT ", [_category("c1", "Rent")], exclude_id="c1") == "RENT"


class TestFieldHelpers:
    def test_parse_amount_rounds_half_up(self):
        assert parse_amount("10.005") == Decimal("10.01")

    def test_parse_amount_rejects_values_rounding_to_zero(self):
        with pytest.raises(ValidationError):
            parse_amount("0.001")

    def test_optional_str_blank_is_none(self):
        assert validate_optional_str("   ", "notes", 10) is None
        assert validate_optional_str(" hi ", "notes", 10) == "hi"

    def test_timestamp_accepts_several_forms(self):
        expected = int(datetime(2025, 1, 15, tzinfo=timezone.utc).timestamp() * 1000)

        assert validate_timestamp(expected, "date") == expected
        assert validate_timestamp(str(expected), "date") == expected
        assert validate_timestamp("2025-01-15", "date") == expected
        assert validate_timestamp("2025-01-15T00:00:00Z", "date") == expected
        assert validate_timestamp(datetime(2025, 1, 15), "date") == expected
        assert validate_timestamp(date(2025, 1, 15), "date") == expected

    @pytest.mark.parametrize("value", ["not a date", True, None, 1.5])
    def test_timestamp_rejects_garbage(self, value):
        with pytest.raises(ValidationError):
            validate_timestamp(value, "date")

    def test_date_range_must_be_ordered(self):
        with pytest.raises(ValidationError):
            validate_date_range("2025-02-01", "2025-01-01")
        assert validate_date_range(5, 5) == (5, 5)
