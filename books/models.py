"""Data models for the bookkeeping domain."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Any, Dict, Optional

__all__ = [
    "INCOME",
    "EXPENSE",
    "TRANSACTION_TYPES",
    "Disbursement",
    "ExpenseCategory",
    "Shareholder",
    "Transaction",
    "datetime_to_timestamp",
    "format_money",
    "format_percentage",
    "isoformat_utc",
    "now_ms",
    "parse_datetime",
    "timestamp_to_datetime",
]

INCOME = "income"
EXPENSE = "expense"
TRANSACTION_TYPES = frozenset({INCOME, EXPENSE})


def now_ms() -> int:
    """Current time in milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def datetime_to_timestamp(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def timestamp_to_datetime(value: int, tz: Optional[tzinfo] = timezone.utc) -> datetime:
    """Convert epoch milliseconds to an aware datetime; ``tz=None`` means local time."""
    if tz is None:
        return datetime.fromtimestamp(value / 1000).astimezone()
    return datetime.fromtimestamp(value / 1000, tz=tz)


def isoformat_utc(value: int) -> str:
    """Return an ISO 8601 string with trailing Z for an epoch-millisecond timestamp."""
    iso = timestamp_to_datetime(value).isoformat(timespec="seconds")
    # datetime.isoformat renders +00:00 for UTC; replace with the shorter Z form.
    return iso.replace("+00:00", "Z")


def parse_datetime(value: str) -> datetime:
    """Parse ISO 8601 datetime strings with optional trailing Z into UTC-aware datetime."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Naive input is read as UTC.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_money(value: Decimal) -> str:
    return f"{value:.2f}"


def format_percentage(value: Decimal) -> str:
    # 25 -> "25", 12.50 -> "12.5"
    text = f"{value:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


@dataclass(frozen=True)
class Transaction:
    id: str
    type: str
    amount: Decimal
    description: str
    date: int
    created_by: str
    created_at: int
    updated_at: int
    category: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the transaction to JSON-friendly natives."""
        return {
            "id": self.id,
            "type": self.type,
            "amount": format_money(self.amount),
            "category": self.category,
            "description": self.description,
            "date": self.date,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """Hydrate a Transaction from JSON-native data."""
        return cls(
            id=data["id"],
            type=data["type"],
            amount=Decimal(str(data["amount"])),
            description=data["description"],
            date=int(data["date"]),
            created_by=data["created_by"],
            created_at=int(data["created_at"]),
            updated_at=int(data["updated_at"]),
            category=data.get("category"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class ExpenseCategory:
    id: str
    name: str
    is_active: bool
    created_at: int
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExpenseCategory":
        return cls(
            id=data["id"],
            name=data["name"],
            is_active=bool(data["is_active"]),
            created_at=int(data["created_at"]),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class Shareholder:
    id: str
    name: str
    email: str
    share_percentage: Decimal
    is_active: bool
    created_at: int
    updated_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "share_percentage": format_percentage(self.share_percentage),
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Shareholder":
        return cls(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            share_percentage=Decimal(str(data["share_percentage"])),
            is_active=bool(data["is_active"]),
            created_at=int(data["created_at"]),
            updated_at=int(data["updated_at"]),
        )


@dataclass(frozen=True)
class Disbursement:
    id: str
    shareholder_id: str
    amount: Decimal
    date: int
    period: str
    created_by: str
    created_at: int
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the disbursement to JSON-friendly natives."""
        return {
            "id": self.id,
            "shareholder_id": self.shareholder_id,
            "amount": format_money(self.amount),
            "date": self.date,
            "period": self.period,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Disbursement":
        return cls(
            id=data["id"],
            shareholder_id=data["shareholder_id"],
            amount=Decimal(str(data["amount"])),
            date=int(data["date"]),
            period=data["period"],
            created_by=data["created_by"],
            created_at=int(data["created_at"]),
            notes=data.get("notes"),
        )
