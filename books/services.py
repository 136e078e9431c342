"""Framework-agnostic business services for the bookkeeping application.

Every public method resolves the calling user first, so an anonymous caller
is rejected before the store is touched.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from uuid import uuid4

from .aggregation import CategoryTotal, round_money
from .auth import AuthProvider, require_user
from .exceptions import RecordNotFoundError, ValidationError
from .models import (
    EXPENSE,
    INCOME,
    TRANSACTION_TYPES,
    Disbursement,
    ExpenseCategory,
    Shareholder,
    Transaction,
    format_percentage,
    now_ms,
)
from .reports import (
    Metrics,
    MonthlyTrendPoint,
    ProfitSummary,
    ReportBuilder,
    ShareholderShare,
)
from .storage import (
    DISBURSEMENTS,
    EXPENSE_CATEGORIES,
    SHAREHOLDERS,
    TRANSACTIONS,
    RecordStore,
)
from .validators import (
    DESCRIPTION_MAX_LENGTH,
    NAME_MAX_LENGTH,
    NOTES_MAX_LENGTH,
    validate_category_name,
    validate_date_range,
    validate_disbursement,
    validate_email,
    validate_enum,
    validate_optional_str,
    validate_required_str,
    validate_shareholder_percentage,
    validate_timestamp,
    validate_transaction,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    ("Rent", "Rent and property costs"),
    ("Utilities", "Electricity, water and internet"),
    ("Salaries", "Staff salaries and wages"),
    ("Marketing", "Marketing and advertising"),
    ("Supplies", "Supplies and consumables"),
    ("Operations", "General operating costs"),
    ("Miscellaneous", "Other expenses"),
)

DEFAULT_TRANSACTION_LIMIT = 100
DELETED_SHAREHOLDER_NAME = "Deleted shareholder"


def _by_name(records: Iterable[Any]) -> List[Any]:
    return sorted(records, key=lambda record: record.name.casefold())


def _active_categories(store: RecordStore) -> List[ExpenseCategory]:
    rows = store.query_by_index(EXPENSE_CATEGORIES, "by_is_active", (True,))
    return [ExpenseCategory.from_dict(row) for row in rows]


def _active_shareholders(store: RecordStore) -> List[Shareholder]:
    rows = store.query_by_index(SHAREHOLDERS, "by_is_active", (True,))
    return [Shareholder.from_dict(row) for row in rows]


class CategoryService:
    """Manages expense categories. Categories are deactivated, never deleted."""

    def __init__(self, store: RecordStore, auth: AuthProvider) -> None:
        self._store = store
        self._auth = auth
        # Serialises the read-validate-write sequence behind name uniqueness.
        self._lock = threading.RLock()

    # Public API -----------------------------------------------------------
    def list(self) -> List[ExpenseCategory]:
        """Active categories ordered by name."""
        require_user(self._auth)
        return _by_name(_active_categories(self._store))

    def list_all(self) -> List[ExpenseCategory]:
        require_user(self._auth)
        rows = self._store.query_all(EXPENSE_CATEGORIES)
        return _by_name(ExpenseCategory.from_dict(row) for row in rows)

    def get(self, category_id: str) -> ExpenseCategory:
        require_user(self._auth)
        return self._get_or_raise(category_id)

    def create(self, name: object, description: object = None) -> ExpenseCategory:
        require_user(self._auth)
        with self._lock:
            clean_name = validate_category_name(name, _active_categories(self._store))
            record = {
                "id": uuid4().hex,
                "name": clean_name,
                "description": validate_optional_str(description, "description", DESCRIPTION_MAX_LENGTH),
                "is_active": True,
                "created_at": now_ms(),
            }
            self._store.insert(EXPENSE_CATEGORIES, record)
        logger.info("Created expense category %s (%s)", record["id"], clean_name)
        return ExpenseCategory.from_dict(record)

    def update(
        self, category_id: str, name: object = None, description: object = None
    ) -> ExpenseCategory:
        """Rename and/or re-describe a category; ``None`` leaves a field as is.

        An empty description clears it. Transactions keep the category name
        they were recorded with.
        """
        require_user(self._auth)
        with self._lock:
            existing = self._get_or_raise(category_id)
            changes: Dict[str, Any] = {}
            if name is not None:
                changes["name"] = validate_category_name(
                    name, _active_categories(self._store), exclude_id=category_id
                )
            if description is not None:
                changes["description"] = validate_optional_str(
                    description, "description", DESCRIPTION_MAX_LENGTH
                )
            if changes:
                self._store.patch(EXPENSE_CATEGORIES, category_id, changes)
                logger.info("Updated expense category %s", category_id)
            return self._get_or_raise(category_id) if changes else existing

    def deactivate(self, category_id: str) -> ExpenseCategory:
        require_user(self._auth)
        with self._lock:
            self._get_or_raise(category_id)
            self._store.patch(EXPENSE_CATEGORIES, category_id, {"is_active": False})
        logger.info("Deactivated expense category %s", category_id)
        return self._get_or_raise(category_id)

    def seed_defaults(self) -> int:
        """Insert the default categories whose names are not taken yet."""
        require_user(self._auth)
        with self._lock:
            existing = {
                row["name"].casefold() for row in self._store.query_all(EXPENSE_CATEGORIES)
            }
            inserted = 0
            for name, description in DEFAULT_CATEGORIES:
                if name.casefold() in existing:
                    continue
                self._store.insert(
                    EXPENSE_CATEGORIES,
                    {
                        "id": uuid4().hex,
                        "name": name,
                        "description": description,
                        "is_active": True,
                        "created_at": now_ms(),
                    },
                )
                inserted += 1
        logger.info("Seeded %d default expense categories", inserted)
        return inserted

    # Internal helpers -----------------------------------------------------
    def _get_or_raise(self, category_id: str) -> ExpenseCategory:
        row = self._store.get(EXPENSE_CATEGORIES, category_id)
        if row is None:
            raise RecordNotFoundError(f"Category {category_id} not found")
        return ExpenseCategory.from_dict(row)


class TransactionService:
    """Manages income and expense records."""

    def __init__(self, store: RecordStore, auth: AuthProvider) -> None:
        self._store = store
        self._auth = auth

    # Public API -----------------------------------------------------------
    def list(
        self,
        transaction_type: object,
        date_from: object = None,
        date_to: object = None,
        category: Optional[str] = None,
        search_text: Optional[str] = None,
        limit: Optional[int] = DEFAULT_TRANSACTION_LIMIT,
    ) -> List[Transaction]:
        """Transactions of one type, newest first.

        ``search_text`` matches the description case-insensitively. ``limit``
        of ``None`` returns every match.
        """
        require_user(self._auth)
        kind = validate_enum(transaction_type, "type", TRANSACTION_TYPES)
        start = validate_timestamp(date_from, "date_from") if date_from is not None else None
        end = validate_timestamp(date_to, "date_to") if date_to is not None else None

        rows = self._store.query_by_index(
            TRANSACTIONS, "by_type_and_date", (kind,), gte=start, lte=end, descending=True
        )
        records = (Transaction.from_dict(row) for row in rows)
        if category:
            records = (record for record in records if record.category == category)
        if search_text:
            needle = search_text.strip().casefold()
            records = (record for record in records if needle in record.description.casefold())

        results = list(records)
        return results if limit is None else results[: max(limit, 0)]

    def get(self, transaction_id: str) -> Transaction:
        """Return a transaction or raise if it does not exist."""
        require_user(self._auth)
        return self._get_or_raise(transaction_id)

    def create(
        self,
        transaction_type: object,
        amount: object,
        description: object,
        date: object,
        category: Optional[str] = None,
        notes: object = None,
    ) -> Transaction:
        user_id = require_user(self._auth)
        fields = validate_transaction(
            transaction_type, amount, description, category, self._active_category_names()
        )
        now = now_ms()
        record = {
            "id": uuid4().hex,
            "type": fields["type"],
            "amount": str(fields["amount"]),
            "description": fields["description"],
            "date": validate_timestamp(date, "date"),
            "notes": validate_optional_str(notes, "notes", NOTES_MAX_LENGTH),
            "created_by": user_id,
            "created_at": now,
            "updated_at": now,
        }
        if fields["category"] is not None:
            record["category"] = fields["category"]
        self._store.insert(TRANSACTIONS, record)
        logger.info("Created %s transaction %s", fields["type"], record["id"])
        return Transaction.from_dict(record)

    def update(
        self,
        transaction_id: str,
        amount: object = None,
        description: object = None,
        date: object = None,
        category: Optional[str] = None,
        notes: object = None,
    ) -> Transaction:
        """Apply the supplied field changes together, or none of them.

        The category is only checked against the active categories when it is
        being changed.
        """
        require_user(self._auth)
        existing = self._get_or_raise(transaction_id)

        active_names: Set[str] = set(self._active_category_names())
        if category is None and existing.category:
            active_names.add(existing.category)
        fields = validate_transaction(
            existing.type,
            existing.amount if amount is None else amount,
            existing.description if description is None else description,
            existing.category if category is None else category,
            active_names,
        )

        changes: Dict[str, Any] = {}
        if amount is not None:
            changes["amount"] = str(fields["amount"])
        if description is not None:
            changes["description"] = fields["description"]
        if category is not None and existing.type == EXPENSE:
            changes["category"] = fields["category"]
        if date is not None:
            changes["date"] = validate_timestamp(date, "date")
        if notes is not None:
            changes["notes"] = validate_optional_str(notes, "notes", NOTES_MAX_LENGTH)

        if not changes:
            return existing
        changes["updated_at"] = now_ms()
        self._store.patch(TRANSACTIONS, transaction_id, changes)
        logger.info("Updated transaction %s", transaction_id)
        return self._get_or_raise(transaction_id)

    def delete(self, transaction_id: str) -> None:
        require_user(self._auth)
        self._get_or_raise(transaction_id)
        self._store.delete(TRANSACTIONS, transaction_id)
        logger.info("Deleted transaction %s", transaction_id)

    # Internal helpers -----------------------------------------------------
    def _active_category_names(self) -> Set[str]:
        return {category.name for category in _active_categories(self._store)}

    def _get_or_raise(self, transaction_id: str) -> Transaction:
        row = self._store.get(TRANSACTIONS, transaction_id)
        if row is None:
            raise RecordNotFoundError(f"Transaction {transaction_id} not found")
        return Transaction.from_dict(row)


@dataclass(frozen=True)
class ShareCapacity:
    """Allocated and still available share percentage among active shareholders."""

    total: Decimal
    remaining: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": format_percentage(self.total),
            "remaining": format_percentage(self.remaining),
        }


class ShareholderService:
    """Manages shareholders and keeps active share percentages within 100."""

    def __init__(self, store: RecordStore, auth: AuthProvider) -> None:
        self._store = store
        self._auth = auth
        # Serialises the read-validate-write sequence behind the 100% ceiling.
        self._lock = threading.RLock()

    # Public API -----------------------------------------------------------
    def list(self) -> List[Shareholder]:
        """Active shareholders ordered by name."""
        require_user(self._auth)
        return _by_name(_active_shareholders(self._store))

    def list_all(self) -> List[Shareholder]:
        require_user(self._auth)
        return _by_name(Shareholder.from_dict(row) for row in self._store.query_all(SHAREHOLDERS))

    def get(self, shareholder_id: str) -> Shareholder:
        require_user(self._auth)
        return self._get_or_raise(shareholder_id)

    def total_percentage(self) -> ShareCapacity:
        require_user(self._auth)
        total = sum(
            (shareholder.share_percentage for shareholder in _active_shareholders(self._store)),
            start=Decimal("0"),
        )
        return ShareCapacity(total=round_money(total), remaining=round_money(Decimal("100") - total))

    def create(self, name: object, email: object, share_percentage: object) -> Shareholder:
        require_user(self._auth)
        clean_name = validate_required_str(name, "name", NAME_MAX_LENGTH)
        clean_email = validate_email(email)
        with self._lock:
            percentage = self._check_percentage(share_percentage, exclude_id=None)
            now = now_ms()
            record = {
                "id": uuid4().hex,
                "name": clean_name,
                "email": clean_email,
                "share_percentage": format_percentage(percentage),
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            }
            self._store.insert(SHAREHOLDERS, record)
        logger.info("Created shareholder %s at %s%%", record["id"], record["share_percentage"])
        return Shareholder.from_dict(record)

    def update(
        self,
        shareholder_id: str,
        name: object = None,
        email: object = None,
        share_percentage: object = None,
    ) -> Shareholder:
        require_user(self._auth)
        with self._lock:
            self._get_or_raise(shareholder_id)
            changes: Dict[str, Any] = {}
            if name is not None:
                changes["name"] = validate_required_str(name, "name", NAME_MAX_LENGTH)
            if email is not None:
                changes["email"] = validate_email(email)
            if share_percentage is not None:
                percentage = self._check_percentage(share_percentage, exclude_id=shareholder_id)
                changes["share_percentage"] = format_percentage(percentage)
            changes["updated_at"] = now_ms()
            self._store.patch(SHAREHOLDERS, shareholder_id, changes)
        logger.info("Updated shareholder %s", shareholder_id)
        return self._get_or_raise(shareholder_id)

    def deactivate(self, shareholder_id: str) -> Shareholder:
        require_user(self._auth)
        with self._lock:
            self._get_or_raise(shareholder_id)
            self._store.patch(
                SHAREHOLDERS, shareholder_id, {"is_active": False, "updated_at": now_ms()}
            )
        logger.info("Deactivated shareholder %s", shareholder_id)
        return self._get_or_raise(shareholder_id)

    # Internal helpers -----------------------------------------------------
    def _check_percentage(self, candidate: object, exclude_id: Optional[str]) -> Decimal:
        try:
            return validate_shareholder_percentage(
                candidate, _active_shareholders(self._store), exclude_id=exclude_id
            )
        except ValidationError as exc:
            logger.warning("Rejected share percentage %r: %s", candidate, exc)
            raise

    def _get_or_raise(self, shareholder_id: str) -> Shareholder:
        row = self._store.get(SHAREHOLDERS, shareholder_id)
        if row is None:
            raise RecordNotFoundError(f"Shareholder {shareholder_id} not found")
        return Shareholder.from_dict(row)


@dataclass(frozen=True)
class DisbursementEntry:
    """A disbursement together with the name of the shareholder it was paid to."""

    disbursement: Disbursement
    shareholder_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {**self.disbursement.to_dict(), "shareholder_name": self.shareholder_name}


class DisbursementService:
    """Records payouts to shareholders."""

    def __init__(self, store: RecordStore, auth: AuthProvider) -> None:
        self._store = store
        self._auth = auth

    def list(
        self,
        date_from: object = None,
        date_to: object = None,
        shareholder_id: Optional[str] = None,
        period: Optional[str] = None,
    ) -> List[DisbursementEntry]:
        """Disbursements matching every supplied filter, newest first."""
        require_user(self._auth)
        start = validate_timestamp(date_from, "date_from") if date_from is not None else None
        end = validate_timestamp(date_to, "date_to") if date_to is not None else None

        def matches(disbursement: Disbursement) -> bool:
            if start is not None and disbursement.date < start:
                return False
            if end is not None and disbursement.date > end:
                return False
            if shareholder_id is not None and disbursement.shareholder_id != shareholder_id:
                return False
            if period is not None and disbursement.period != period:
                return False
            return True

        if shareholder_id is not None:
            rows = self._store.query_by_index(DISBURSEMENTS, "by_shareholder_id", (shareholder_id,))
        elif period is not None:
            rows = self._store.query_by_index(DISBURSEMENTS, "by_period", (period,))
        else:
            rows = self._store.query_all(DISBURSEMENTS)
        disbursements = [d for d in (Disbursement.from_dict(row) for row in rows) if matches(d)]
        disbursements.sort(key=lambda d: d.date, reverse=True)

        names: Dict[str, str] = {}
        entries = []
        for disbursement in disbursements:
            if disbursement.shareholder_id not in names:
                row = self._store.get(SHAREHOLDERS, disbursement.shareholder_id)
                names[disbursement.shareholder_id] = row["name"] if row else DELETED_SHAREHOLDER_NAME
            entries.append(DisbursementEntry(disbursement, names[disbursement.shareholder_id]))
        return entries

    def get(self, disbursement_id: str) -> Disbursement:
        require_user(self._auth)
        return self._get_or_raise(disbursement_id)

    def create(
        self,
        shareholder_id: str,
        amount: object,
        date: object,
        period: object,
        notes: object = None,
    ) -> Disbursement:
        """Record a payout to an active shareholder.

        The amount is not capped by the shareholder's computed share.
        """
        user_id = require_user(self._auth)
        row = self._store.get(SHAREHOLDERS, shareholder_id) if shareholder_id else None
        shareholder = Shareholder.from_dict(row) if row else None
        clean_amount = validate_disbursement(amount, shareholder)
        record = {
            "id": uuid4().hex,
            "shareholder_id": shareholder_id,
            "amount": str(clean_amount),
            "date": validate_timestamp(date, "date"),
            "period": validate_required_str(period, "period", NAME_MAX_LENGTH),
            "notes": validate_optional_str(notes, "notes", NOTES_MAX_LENGTH),
            "created_by": user_id,
            "created_at": now_ms(),
        }
        self._store.insert(DISBURSEMENTS, record)
        logger.info(
            "Recorded disbursement %s of %s to shareholder %s",
            record["id"],
            record["amount"],
            shareholder_id,
        )
        return Disbursement.from_dict(record)

    def delete(self, disbursement_id: str) -> None:
        require_user(self._auth)
        self._get_or_raise(disbursement_id)
        self._store.delete(DISBURSEMENTS, disbursement_id)
        logger.info("Deleted disbursement %s", disbursement_id)

    def _get_or_raise(self, disbursement_id: str) -> Disbursement:
        row = self._store.get(DISBURSEMENTS, disbursement_id)
        if row is None:
            raise RecordNotFoundError(f"Disbursement {disbursement_id} not found")
        return Disbursement.from_dict(row)


class ReportService:
    """Fetches the records of a date range and hands them to the report builder."""

    def __init__(self, store: RecordStore, auth: AuthProvider, tz: Optional[tzinfo] = None) -> None:
        self._store = store
        self._auth = auth
        self._builder = ReportBuilder(tz)

    def metrics(self, date_from: object, date_to: object) -> Metrics:
        require_user(self._auth)
        start, end = validate_date_range(date_from, date_to)
        income, expenses = self._transactions(start, end)
        return self._builder.metrics(income, expenses, self._disbursements(), start, end)

    def profit_summary(self, date_from: object, date_to: object) -> ProfitSummary:
        require_user(self._auth)
        start, end = validate_date_range(date_from, date_to)
        income, expenses = self._transactions(start, end)
        return self._builder.profit_summary(income, expenses, self._disbursements(), start, end)

    def monthly_trend(self, date_from: object, date_to: object) -> List[MonthlyTrendPoint]:
        require_user(self._auth)
        start, end = validate_date_range(date_from, date_to)
        income, expenses = self._transactions(start, end)
        return self._builder.monthly_trend(income + expenses)

    def expense_breakdown(self, date_from: object, date_to: object) -> List[CategoryTotal]:
        require_user(self._auth)
        start, end = validate_date_range(date_from, date_to)
        return self._builder.expense_breakdown(self._of_type(EXPENSE, start, end))

    def top_expense_categories(
        self, date_from: object, date_to: object, limit: int = 5
    ) -> List[CategoryTotal]:
        require_user(self._auth)
        start, end = validate_date_range(date_from, date_to)
        return self._builder.top_expense_categories(self._of_type(EXPENSE, start, end), limit)

    def shareholder_shares(self, date_from: object, date_to: object) -> List[ShareholderShare]:
        require_user(self._auth)
        start, end = validate_date_range(date_from, date_to)
        income, expenses = self._transactions(start, end)
        return self._builder.shareholder_shares(
            income, expenses, _active_shareholders(self._store), self._disbursements(), start, end
        )

    def _of_type(self, kind: str, start: int, end: int) -> List[Transaction]:
        rows = self._store.query_by_index(
            TRANSACTIONS, "by_type_and_date", (kind,), gte=start, lte=end
        )
        return [Transaction.from_dict(row) for row in rows]

    def _transactions(self, start: int, end: int) -> Tuple[List[Transaction], List[Transaction]]:
        return self._of_type(INCOME, start, end), self._of_type(EXPENSE, start, end)

    def _disbursements(self) -> List[Disbursement]:
        return [Disbursement.from_dict(row) for row in self._store.query_all(DISBURSEMENTS)]


@dataclass
class Services:
    categories: CategoryService
    transactions: TransactionService
    shareholders: ShareholderService
    disbursements: DisbursementService
    reports: ReportService


def build_services(store: RecordStore, auth: AuthProvider, tz: Optional[tzinfo] = None) -> Services:
    return Services(
        categories=CategoryService(store, auth),
        transactions=TransactionService(store, auth),
        shareholders=ShareholderService(store, auth),
        disbursements=DisbursementService(store, auth),
        reports=ReportService(store, auth, tz),
    )
