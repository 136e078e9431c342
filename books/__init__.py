"""Core business logic package for the shareholder bookkeeping application."""

from .auth import StaticAuth, require_user
from .exceptions import (
    BooksError,
    PersistenceError,
    RecordNotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from .models import Disbursement, ExpenseCategory, Shareholder, Transaction
from .reports import ReportBuilder
from .services import (
    CategoryService,
    DisbursementService,
    ReportService,
    Services,
    ShareholderService,
    TransactionService,
    build_services,
)
from .storage import RecordStore

__all__ = [
    "BooksError",
    "CategoryService",
    "Disbursement",
    "DisbursementService",
    "ExpenseCategory",
    "PersistenceError",
    "RecordNotFoundError",
    "RecordStore",
    "ReportBuilder",
    "ReportService",
    "Services",
    "Shareholder",
    "ShareholderService",
    "StaticAuth",
    "Transaction",
    "TransactionService",
    "UnauthenticatedError",
    "ValidationError",
    "build_services",
    "require_user",
]
