"""Validation helpers shared across the bookkeeping services.

The ``validate_*`` business checks are pure: they only look at the values
and the snapshot of existing records handed to them.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Collection, Dict, Iterable, Optional, Tuple

from .exceptions import ValidationError
from .models import (
    EXPENSE,
    INCOME,
    TRANSACTION_TYPES,
    ExpenseCategory,
    Shareholder,
    datetime_to_timestamp,
    parse_datetime,
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAX_PERCENTAGE = Decimal("100")
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 200
NOTES_MAX_LENGTH = 1000


def _quantize_two_decimals(amount: Decimal) -> Decimal:
    """Round the amount to two decimal places using HALF_UP rounding."""
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _display(value: Decimal) -> str:
    text = f"{_quantize_two_decimals(value):f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def _to_decimal(raw: object, field: str) -> Decimal:
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a numeric value")
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, TypeError) as exc:
        raise ValidationError(f"{field} must be a numeric value") from exc
    if not value.is_finite():
        raise ValidationError(f"{field} must be a numeric value")
    return value


def parse_amount(raw: object, field: str = "amount") -> Decimal:
    """Convert raw input to a positive Decimal with exactly two fraction digits."""
    if raw is None:
        raise ValidationError(f"{field} is required")
    amount = _to_decimal(raw, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")

    amount = _quantize_two_decimals(amount)
    if amount <= 0:
        raise ValidationError(f"{field} must be at least 0.01")
    return amount


def parse_percentage(raw: object, field: str = "share_percentage") -> Decimal:
    if raw is None:
        raise ValidationError(f"{field} is required")
    value = _to_decimal(raw, field)
    if value <= 0 or value > MAX_PERCENTAGE:
        raise ValidationError(f"{field} must be greater than 0 and at most 100")
    return value


def validate_required_str(value: object, field: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} cannot be empty")
    if len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return trimmed


def validate_optional_str(value: object, field: str, max_length: int) -> Optional[str]:
    """Trim optional text; blank input collapses to ``None``."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    if not value.strip():
        return None
    return validate_required_str(value, field, max_length)


def validate_enum(value: object, field: str, allowed: Iterable[str]) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    canonical = value.strip().lower()
    if canonical not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")
    return canonical


def validate_timestamp(value: object, field: str) -> int:
    """Normalise a moment to epoch milliseconds.

    Accepts integers (already epoch milliseconds), ``datetime`` and ``date``
    objects, or ISO 8601 strings. Naive values are read as UTC.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a timestamp, date or ISO 8601 string")
    if isinstance(value, int):
        return value
    if isinstance(value, datetime):
        return datetime_to_timestamp(value)
    if isinstance(value, date):
        return datetime_to_timestamp(datetime.combine(value, time.min, tzinfo=timezone.utc))
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            return datetime_to_timestamp(parse_datetime(text))
        except ValueError as exc:
            raise ValidationError(f"{field} must be a valid ISO 8601 date or datetime") from exc
    raise ValidationError(f"{field} must be a timestamp, date or ISO 8601 string")


def validate_date_range(date_from: object, date_to: object) -> Tuple[int, int]:
    start = validate_timestamp(date_from, "date_from")
    end = validate_timestamp(date_to, "date_to")
    if start > end:
        raise ValidationError("date_from must not be later than date_to")
    return start, end


def validate_email(value: object) -> str:
    if not isinstance(value, str):
        raise ValidationError("email must be a string")
    trimmed = value.strip()
    if not trimmed or not EMAIL_PATTERN.fullmatch(trimmed):
        raise ValidationError("email is not a valid address")
    return trimmed


def validate_shareholder_percentage(
    candidate: object,
    active_shareholders: Iterable[Shareholder],
    exclude_id: Optional[str] = None,
) -> Decimal:
    """Check that ``candidate`` fits next to the other active shareholders.

    The total of every active shareholder except ``exclude_id`` plus the
    candidate may not exceed 100.
    """
    percentage = parse_percentage(candidate)
    current_total = sum(
        (
            shareholder.share_percentage
            for shareholder in active_shareholders
            if shareholder.is_active and shareholder.id != exclude_id
        ),
        start=Decimal("0"),
    )
    if current_total + percentage > MAX_PERCENTAGE:
        remaining = MAX_PERCENTAGE - current_total
        raise ValidationError(
            "share_percentage exceeds the available capacity: "
            f"current total is {_display(current_total)}% "
            f"and remaining is {_display(remaining)}%"
        )
    return percentage


def validate_transaction(
    transaction_type: object,
    amount: object,
    description: object,
    category: Optional[str],
    active_category_names: Collection[str],
) -> Dict[str, Any]:
    """Validate the business fields of a transaction and return them normalised."""
    kind = validate_enum(transaction_type, "type", TRANSACTION_TYPES)
    parsed_amount = parse_amount(amount)
    text = validate_required_str(description, "description", DESCRIPTION_MAX_LENGTH)
    if category is not None and not isinstance(category, str):
        raise ValidationError("category must be a string")

    if kind == EXPENSE:
        if not category:
            raise ValidationError("category is required for expenses")
        if category not in active_category_names:
            raise ValidationError(f"category '{category}' does not exist or is inactive")
    elif kind == INCOME and category:
        raise ValidationError("income transactions cannot have a category")

    return {
        "type": kind,
        "amount": parsed_amount,
        "description": text,
        "category": category if kind == EXPENSE else None,
    }


def validate_disbursement(amount: object, shareholder: Optional[Shareholder]) -> Decimal:
    parsed_amount = parse_amount(amount)
    if shareholder is None or not shareholder.is_active:
        raise ValidationError("shareholder does not exist or is inactive")
    return parsed_amount


def validate_category_name(
    name: object,
    existing_active: Iterable[ExpenseCategory],
    exclude_id: Optional[str] = None,
) -> str:
    trimmed = validate_required_str(name, "name", NAME_MAX_LENGTH)
    canonical = trimmed.casefold()

    for category in existing_active:
        if not category.is_active or category.id == exclude_id:
            continue
        if category.name.casefold() == canonical:
            raise ValidationError("Category name must be unique")
    return trimmed
