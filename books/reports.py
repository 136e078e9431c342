"""Report shapes composed from aggregation results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .aggregation import (
    CategoryTotal,
    compute_profit_margin,
    compute_share_amount,
    group_by_category,
    group_by_month,
    month_label,
    round_money,
    sum_amount,
    top_n,
)
from .models import Disbursement, Shareholder, Transaction, format_money, format_percentage

__all__ = [
    "Metrics",
    "MonthlyTrendPoint",
    "ProfitSummary",
    "ReportBuilder",
    "ShareholderShare",
    "disbursements_in_range",
]


@dataclass(frozen=True)
class Metrics:
    total_income: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    available_profit: Decimal
    profit_margin: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_income": format_money(self.total_income),
            "total_expenses": format_money(self.total_expenses),
            "net_profit": format_money(self.net_profit),
            "available_profit": format_money(self.available_profit),
            "profit_margin": format_money(self.profit_margin),
        }


@dataclass(frozen=True)
class ProfitSummary:
    total_income: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    total_disbursements: Decimal
    available_profit: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_income": format_money(self.total_income),
            "total_expenses": format_money(self.total_expenses),
            "net_profit": format_money(self.net_profit),
            "total_disbursements": format_money(self.total_disbursements),
            "available_profit": format_money(self.available_profit),
        }


@dataclass(frozen=True)
class MonthlyTrendPoint:
    month: str
    month_key: str
    income: Decimal
    expenses: Decimal
    profit: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "month_key": self.month_key,
            "income": format_money(self.income),
            "expenses": format_money(self.expenses),
            "profit": format_money(self.profit),
        }


@dataclass(frozen=True)
class ShareholderShare:
    shareholder_id: str
    name: str
    share_percentage: Decimal
    share_amount: Decimal
    disbursed: Decimal
    remaining: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shareholder_id": self.shareholder_id,
            "name": self.name,
            "share_percentage": format_percentage(self.share_percentage),
            "share_amount": format_money(self.share_amount),
            "disbursed": format_money(self.disbursed),
            "remaining": format_money(self.remaining),
        }


def disbursements_in_range(
    disbursements: Iterable[Disbursement], date_from: int, date_to: int
) -> List[Disbursement]:
    # Linear scan; disbursement volume stays small next to transactions.
    return [d for d in disbursements if date_from <= d.date <= date_to]


class ReportBuilder:
    """Builds reports from records that were already fetched for one date range.

    Callers pass only records dated inside ``[date_from, date_to]`` except for
    disbursements, which are filtered here.
    """

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self._tz = tz

    def metrics(
        self,
        income: Sequence[Transaction],
        expenses: Sequence[Transaction],
        disbursements: Iterable[Disbursement],
        date_from: int,
        date_to: int,
    ) -> Metrics:
        total_income = sum_amount(income)
        total_expenses = sum_amount(expenses)
        net_profit = total_income - total_expenses
        total_disbursed = sum_amount(disbursements_in_range(disbursements, date_from, date_to))
        return Metrics(
            total_income=round_money(total_income),
            total_expenses=round_money(total_expenses),
            net_profit=round_money(net_profit),
            available_profit=round_money(net_profit - total_disbursed),
            profit_margin=compute_profit_margin(total_income, total_expenses),
        )

    def profit_summary(
        self,
        income: Sequence[Transaction],
        expenses: Sequence[Transaction],
        disbursements: Iterable[Disbursement],
        date_from: int,
        date_to: int,
    ) -> ProfitSummary:
        total_income = sum_amount(income)
        total_expenses = sum_amount(expenses)
        net_profit = total_income - total_expenses
        total_disbursed = sum_amount(disbursements_in_range(disbursements, date_from, date_to))
        return ProfitSummary(
            total_income=round_money(total_income),
            total_expenses=round_money(total_expenses),
            net_profit=round_money(net_profit),
            total_disbursements=round_money(total_disbursed),
            available_profit=round_money(net_profit - total_disbursed),
        )

    def monthly_trend(self, transactions: Iterable[Transaction]) -> List[MonthlyTrendPoint]:
        points = []
        for key, totals in group_by_month(transactions, self._tz).items():
            income = round_money(totals.income)
            expenses = round_money(totals.expenses)
            points.append(
                MonthlyTrendPoint(
                    month=month_label(key),
                    month_key=key,
                    income=income,
                    expenses=expenses,
                    profit=round_money(income - expenses),
                )
            )
        return points

    def expense_breakdown(self, expenses: Iterable[Transaction]) -> List[CategoryTotal]:
        categories = group_by_category(expenses)
        return top_n(categories, len(categories))

    def top_expense_categories(self, expenses: Iterable[Transaction], limit: int = 5) -> List[CategoryTotal]:
        return top_n(group_by_category(expenses), limit)

    def shareholder_shares(
        self,
        income: Sequence[Transaction],
        expenses: Sequence[Transaction],
        shareholders: Iterable[Shareholder],
        disbursements: Iterable[Disbursement],
        date_from: int,
        date_to: int,
    ) -> List[ShareholderShare]:
        net_profit = sum_amount(income) - sum_amount(expenses)

        disbursed_by_shareholder: Dict[str, Decimal] = {}
        for disbursement in disbursements_in_range(disbursements, date_from, date_to):
            disbursed_by_shareholder[disbursement.shareholder_id] = (
                disbursed_by_shareholder.get(disbursement.shareholder_id, Decimal("0"))
                + disbursement.amount
            )

        active = sorted(
            (shareholder for shareholder in shareholders if shareholder.is_active),
            key=lambda shareholder: shareholder.name.casefold(),
        )
        shares = []
        for shareholder in active:
            share_amount = compute_share_amount(net_profit, shareholder.share_percentage)
            disbursed = round_money(disbursed_by_shareholder.get(shareholder.id, Decimal("0")))
            shares.append(
                ShareholderShare(
                    shareholder_id=shareholder.id,
                    name=shareholder.name,
                    share_percentage=shareholder.share_percentage,
                    share_amount=share_amount,
                    disbursed=disbursed,
                    remaining=round_money(share_amount - disbursed),
                )
            )
        return shares
