"""Console interface for the shareholder bookkeeping application."""

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

from books.auth import StaticAuth
from books.config import Settings, configure_logging, load_timezone
from books.exceptions import (
    PersistenceError,
    RecordNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from books.models import isoformat_utc
from books.services import Services, build_services
from books.storage import RecordStore
from books.validators import validate_timestamp

logger = logging.getLogger(__name__)


def _parse_moment(value: str) -> int:
    try:
        return validate_timestamp(value, "date")
    except ValidationError as exc:
        raise argparse.ArgumentTypeError(
            f"Invalid date '{value}'. Expected YYYY-MM-DD or an ISO 8601 datetime."
        ) from exc


def _parse_amount(value: str) -> str:
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError("Amount must be a numeric value") from exc
    if not amount.is_finite():
        raise argparse.ArgumentTypeError("Amount must be a finite number")
    if amount <= 0:
        raise argparse.ArgumentTypeError("Amount must be greater than zero")
    return value


def _format_date(timestamp: int) -> str:
    return isoformat_utc(timestamp)[:10]


def _format_transaction(transaction: Dict[str, Any]) -> str:
    category = transaction.get("category") or "-"
    return (
        f"[{transaction['id']}] {_format_date(transaction['date'])} "
        f"{transaction['type']} {transaction['amount']}\n"
        f"  Category: {category}\n"
        f"  Description: {transaction['description']}\n"
        f"  Notes: {transaction.get('notes') or '-'}\n"
    )


def _format_category(category: Dict[str, Any]) -> str:
    status = "active" if category["is_active"] else "inactive"
    return f"[{category['id']}] {category['name']} ({status}) {category.get('description') or ''}".rstrip()


def _format_shareholder(shareholder: Dict[str, Any]) -> str:
    status = "active" if shareholder["is_active"] else "inactive"
    return (
        f"[{shareholder['id']}] {shareholder['name']} <{shareholder['email']}> "
        f"{shareholder['share_percentage']}% ({status})"
    )


def _format_disbursement(entry: Dict[str, Any]) -> str:
    return (
        f"[{entry['id']}] {_format_date(entry['date'])} {entry['shareholder_name']} "
        f"{entry['amount']} period={entry['period']}"
        + (f" notes={entry['notes']}" if entry.get("notes") else "")
    )


def handle_category(args: argparse.Namespace, services: Services) -> None:
    categories = services.categories
    if args.command == "list":
        items = categories.list_all() if args.all else categories.list()
        if not items:
            print("No categories found.")
            return
        for category in items:
            print(_format_category(category.to_dict()))
    elif args.command == "add":
        category = categories.create(args.name, args.description)
        print("Category added: " + _format_category(category.to_dict()))
    elif args.command == "edit":
        category = categories.update(args.id, name=args.name, description=args.description)
        print("Category updated: " + _format_category(category.to_dict()))
    elif args.command == "deactivate":
        category = categories.deactivate(args.id)
        print(f"Category {category.name} deactivated.")
    elif args.command == "seed":
        inserted = categories.seed_defaults()
        print(f"Seeded {inserted} default categories.")


def handle_transaction(args: argparse.Namespace, services: Services) -> None:
    transactions = services.transactions
    if args.command == "add":
        transaction = transactions.create(
            args.type,
            args.amount,
            args.description,
            args.date,
            category=args.category,
            notes=args.notes,
        )
        print("Transaction added:\n" + _format_transaction(transaction.to_dict()))
    elif args.command == "list":
        items = transactions.list(
            args.type,
            date_from=args.date_from,
            date_to=args.date_to,
            category=args.category,
            search_text=args.search,
            limit=args.limit,
        )
        if not items:
            print("No transactions found.")
            return
        print(f"Found {len(items)} {args.type} transactions:")
        for transaction in items:
            print(_format_transaction(transaction.to_dict()))
    elif args.command == "edit":
        transaction = transactions.update(
            args.id,
            amount=args.amount,
            description=args.description,
            date=args.date,
            category=args.category,
            notes=args.notes,
        )
        print("Transaction updated:\n" + _format_transaction(transaction.to_dict()))
    elif args.command == "delete":
        transactions.delete(args.id)
        print(f"Transaction {args.id} deleted.")


def handle_shareholder(args: argparse.Namespace, services: Services) -> None:
    shareholders = services.shareholders
    if args.command == "list":
        items = shareholders.list_all() if args.all else shareholders.list()
        if not items:
            print("No shareholders found.")
            return
        for shareholder in items:
            print(_format_shareholder(shareholder.to_dict()))
    elif args.command == "add":
        shareholder = shareholders.create(args.name, args.email, args.share_percentage)
        print("Shareholder added: " + _format_shareholder(shareholder.to_dict()))
    elif args.command == "edit":
        shareholder = shareholders.update(
            args.id, name=args.name, email=args.email, share_percentage=args.share_percentage
        )
        print("Shareholder updated: " + _format_shareholder(shareholder.to_dict()))
    elif args.command == "deactivate":
        shareholder = shareholders.deactivate(args.id)
        print(f"Shareholder {shareholder.name} deactivated.")
    elif args.command == "total":
        capacity = shareholders.total_percentage().to_dict()
        print(f"Allocated: {capacity['total']}% | Remaining: {capacity['remaining']}%")


def handle_disbursement(args: argparse.Namespace, services: Services) -> None:
    disbursements = services.disbursements
    if args.command == "add":
        disbursement = disbursements.create(
            args.shareholder_id, args.amount, args.date, args.period, notes=args.notes
        )
        print(f"Disbursement {disbursement.id} of {disbursement.amount:.2f} recorded.")
    elif args.command == "list":
        entries = disbursements.list(
            date_from=args.date_from,
            date_to=args.date_to,
            shareholder_id=args.shareholder_id,
            period=args.period,
        )
        if not entries:
            print("No disbursements found.")
            return
        for entry in entries:
            print(_format_disbursement(entry.to_dict()))
    elif args.command == "delete":
        disbursements.delete(args.id)
        print(f"Disbursement {args.id} deleted.")


def handle_report(args: argparse.Namespace, services: Services) -> None:
    reports = services.reports
    if args.command == "metrics":
        metrics = reports.metrics(args.date_from, args.date_to).to_dict()
        print(f"Total income:     {metrics['total_income']}")
        print(f"Total expenses:   {metrics['total_expenses']}")
        print(f"Net profit:       {metrics['net_profit']}")
        print(f"Available profit: {metrics['available_profit']}")
        print(f"Profit margin:    {metrics['profit_margin']}%")
    elif args.command == "summary":
        summary = reports.profit_summary(args.date_from, args.date_to).to_dict()
        for key, value in summary.items():
            print(f"{key.replace('_', ' ').capitalize()}: {value}")
    elif args.command == "trend":
        for point in reports.monthly_trend(args.date_from, args.date_to):
            row = point.to_dict()
            print(
                f"{row['month_key']} {row['month']}: income {row['income']} "
                f"expenses {row['expenses']} profit {row['profit']}"
            )
    elif args.command in {"breakdown", "top"}:
        if args.command == "top":
            entries = reports.top_expense_categories(args.date_from, args.date_to, args.limit)
        else:
            entries = reports.expense_breakdown(args.date_from, args.date_to)
        if not entries:
            print("No expenses in range.")
            return
        for entry in entries:
            row = entry.to_dict()
            print(f"{row['category']}: {row['total']} ({row['percentage']}%)")
    elif args.command == "shares":
        for share in reports.shareholder_shares(args.date_from, args.date_to):
            row = share.to_dict()
            print(
                f"{row['name']} ({row['share_percentage']}%): share {row['share_amount']} "
                f"disbursed {row['disbursed']} remaining {row['remaining']}"
            )


def _add_range(parser: argparse.ArgumentParser, required: bool = True) -> None:
    parser.add_argument("--from", dest="date_from", type=_parse_moment, required=required)
    parser.add_argument("--to", dest="date_to", type=_parse_moment, required=required)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Shareholder bookkeeping CLI")
    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Directory to store JSON data (default: $SHARELEDGER_DATA_DIR or ./data)",
    )
    parser.add_argument("--user", help="Acting user id (default: $SHARELEDGER_USER)")
    parser.add_argument("--timezone", help="IANA timezone for monthly reports (default: local time)")

    subparsers = parser.add_subparsers(dest="entity", required=True)

    category_parser = subparsers.add_parser("category", help="Manage expense categories")
    category_sub = category_parser.add_subparsers(dest="command", required=True)
    category_list = category_sub.add_parser("list", help="List categories")
    category_list.add_argument("--all", action="store_true", help="Include inactive categories")
    category_add = category_sub.add_parser("add", help="Add a category")
    category_add.add_argument("name")
    category_add.add_argument("--description")
    category_edit = category_sub.add_parser("edit", help="Rename or describe a category")
    category_edit.add_argument("id")
    category_edit.add_argument("--name")
    category_edit.add_argument("--description")
    category_deactivate = category_sub.add_parser("deactivate", help="Deactivate a category")
    category_deactivate.add_argument("id")
    category_sub.add_parser("seed", help="Add the default categories")

    transaction_parser = subparsers.add_parser("transaction", help="Manage income and expenses")
    transaction_sub = transaction_parser.add_subparsers(dest="command", required=True)
    transaction_add = transaction_sub.add_parser("add", help="Add a transaction")
    transaction_add.add_argument("type", choices=["income", "expense"])
    transaction_add.add_argument("amount", type=_parse_amount)
    transaction_add.add_argument("description")
    transaction_add.add_argument("date", type=_parse_moment)
    transaction_add.add_argument("--category")
    transaction_add.add_argument("--notes")
    transaction_list = transaction_sub.add_parser("list", help="List transactions")
    transaction_list.add_argument("type", choices=["income", "expense"])
    _add_range(transaction_list, required=False)
    transaction_list.add_argument("--category")
    transaction_list.add_argument("--search")
    transaction_list.add_argument("--limit", type=int, default=100)
    transaction_edit = transaction_sub.add_parser("edit", help="Edit a transaction")
    transaction_edit.add_argument("id")
    transaction_edit.add_argument("--amount", type=_parse_amount)
    transaction_edit.add_argument("--description")
    transaction_edit.add_argument("--date", type=_parse_moment)
    transaction_edit.add_argument("--category")
    transaction_edit.add_argument("--notes")
    transaction_delete = transaction_sub.add_parser("delete", help="Delete a transaction")
    transaction_delete.add_argument("id")

    shareholder_parser = subparsers.add_parser("shareholder", help="Manage shareholders")
    shareholder_sub = shareholder_parser.add_subparsers(dest="command", required=True)
    shareholder_list = shareholder_sub.add_parser("list", help="List shareholders")
    shareholder_list.add_argument("--all", action="store_true", help="Include inactive shareholders")
    shareholder_add = shareholder_sub.add_parser("add", help="Add a shareholder")
    shareholder_add.add_argument("name")
    shareholder_add.add_argument("email")
    shareholder_add.add_argument("share_percentage")
    shareholder_edit = shareholder_sub.add_parser("edit", help="Edit a shareholder")
    shareholder_edit.add_argument("id")
    shareholder_edit.add_argument("--name")
    shareholder_edit.add_argument("--email")
    shareholder_edit.add_argument("--share-percentage", dest="share_percentage")
    shareholder_deactivate = shareholder_sub.add_parser("deactivate", help="Deactivate a shareholder")
    shareholder_deactivate.add_argument("id")
    shareholder_sub.add_parser("total", help="Show allocated and remaining share percentage")

    disbursement_parser = subparsers.add_parser("disbursement", help="Manage disbursements")
    disbursement_sub = disbursement_parser.add_subparsers(dest="command", required=True)
    disbursement_add = disbursement_sub.add_parser("add", help="Record a disbursement")
    disbursement_add.add_argument("shareholder_id")
    disbursement_add.add_argument("amount", type=_parse_amount)
    disbursement_add.add_argument("date", type=_parse_moment)
    disbursement_add.add_argument("period")
    disbursement_add.add_argument("--notes")
    disbursement_list = disbursement_sub.add_parser("list", help="List disbursements")
    _add_range(disbursement_list, required=False)
    disbursement_list.add_argument("--shareholder-id")
    disbursement_list.add_argument("--period")
    disbursement_delete = disbursement_sub.add_parser("delete", help="Delete a disbursement")
    disbursement_delete.add_argument("id")

    report_parser = subparsers.add_parser("report", help="Financial reports for a date range")
    report_sub = report_parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("metrics", "Income, expenses, profit and margin"),
        ("summary", "Profit summary including disbursements"),
        ("trend", "Monthly income, expenses and profit"),
        ("breakdown", "Expenses by category"),
        ("shares", "Profit share per shareholder"),
    ):
        _add_range(report_sub.add_parser(name, help=help_text))
    report_top = report_sub.add_parser("top", help="Top expense categories")
    _add_range(report_top)
    report_top.add_argument("--limit", type=int, default=5)

    return parser


HANDLERS = {
    "category": handle_category,
    "transaction": handle_transaction,
    "shareholder": handle_shareholder,
    "disbursement": handle_disbursement,
    "report": handle_report,
}


def _load_services(args: argparse.Namespace, settings: Settings) -> Services:
    store = RecordStore(args.data_dir or settings.data_dir)
    auth = StaticAuth(args.user or settings.user)
    tz = load_timezone(args.timezone or settings.timezone)
    return build_services(store, auth, tz)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level)

    try:
        services = _load_services(args, settings)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        HANDLERS[args.entity](args, services)
    except UnauthenticatedError as exc:
        print(f"{exc}. Pass --user or set SHARELEDGER_USER.", file=sys.stderr)
        return 1
    except ValidationError as exc:
        print(f"Validation error: {exc}", file=sys.stderr)
        return 1
    except RecordNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except PersistenceError as exc:
        logger.error("Storage failure: %s", exc)
        print(f"Storage error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
