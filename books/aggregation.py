"""Numeric reductions over transactions and disbursements.

Money is summed exactly with ``Decimal`` and rounded once at the end,
half away from zero, to two places.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import tzinfo
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import EXPENSE, INCOME, timestamp_to_datetime

__all__ = [
    "UNCATEGORIZED",
    "CategoryTotal",
    "MonthTotals",
    "compute_profit_margin",
    "compute_share_amount",
    "group_by_category",
    "group_by_month",
    "month_key",
    "month_label",
    "round_money",
    "round_percent",
    "sum_amount",
    "top_n",
]

UNCATEGORIZED = "uncategorized"

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def round_percent(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def sum_amount(records: Iterable[Any]) -> Decimal:
    return sum((record.amount for record in records), start=ZERO)


@dataclass
class MonthTotals:
    income: Decimal = ZERO
    expenses: Decimal = ZERO


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: Decimal
    percentage: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "total": f"{self.total:.2f}",
            "percentage": f"{self.percentage:.1f}",
        }


def month_key(timestamp: int, tz: Optional[tzinfo] = None) -> str:
    """``"YYYY-MM"`` of the calendar month containing ``timestamp`` in ``tz``."""
    moment = timestamp_to_datetime(timestamp, tz)
    return f"{moment.year:04d}-{moment.month:02d}"


def month_label(key: str) -> str:
    year, month = key.split("-")
    return f"{calendar.month_name[int(month)]} {year}"


def _next_month(key: str) -> str:
    year, month = (int(part) for part in key.split("-"))
    if month == 12:
        year, month = year + 1, 1
    else:
        month += 1
    return f"{year:04d}-{month:02d}"


def group_by_month(transactions: Iterable[Any], tz: Optional[tzinfo] = None) -> Dict[str, MonthTotals]:
    """Income and expense totals per month, ascending.

    Every month between the first and the last month seen is present, with
    zero totals where nothing was recorded.
    """
    grouped: Dict[str, MonthTotals] = {}
    for transaction in transactions:
        bucket = grouped.setdefault(month_key(transaction.date, tz), MonthTotals())
        if transaction.type == INCOME:
            bucket.income += transaction.amount
        elif transaction.type == EXPENSE:
            bucket.expenses += transaction.amount

    if not grouped:
        return {}

    keys = sorted(grouped)
    filled: Dict[str, MonthTotals] = {}
    current, last = keys[0], keys[-1]
    while current <= last:
        filled[current] = grouped.get(current) or MonthTotals()
        current = _next_month(current)
    return filled


def group_by_category(expense_transactions: Iterable[Any]) -> List[CategoryTotal]:
    """Totals per category in first-seen order with their share of the grand total."""
    totals: Dict[str, Decimal] = {}
    grand_total = ZERO
    for transaction in expense_transactions:
        key = transaction.category or UNCATEGORIZED
        totals[key] = totals.get(key, ZERO) + transaction.amount
        grand_total += transaction.amount

    return [
        CategoryTotal(
            category=category,
            total=round_money(total),
            percentage=round_percent(total / grand_total * HUNDRED) if grand_total > 0 else ZERO,
        )
        for category, total in totals.items()
    ]


def top_n(category_totals: Sequence[CategoryTotal], n: int = 5) -> List[CategoryTotal]:
    # sorted() is stable, so equal totals keep their input order.
    ranked = sorted(category_totals, key=lambda entry: entry.total, reverse=True)
    return ranked[: max(n, 0)]


def compute_profit_margin(income: Decimal, expenses: Decimal) -> Decimal:
    income = Decimal(income)
    if income <= 0:
        return ZERO
    net_profit = income - Decimal(expenses)
    return round_money(net_profit / income * HUNDRED)


def compute_share_amount(net_profit: Decimal, share_percentage: Decimal) -> Decimal:
    return round_money(Decimal(net_profit) * Decimal(share_percentage) / HUNDRED)
