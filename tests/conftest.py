"""Shared fixtures for the bookkeeping test suite."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from books.auth import StaticAuth
from books.models import Shareholder, Transaction
from books.services import build_services
from books.storage import RecordStore


def _ts(year, month, day=15, hour=12):
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture
def ts():
    """Epoch milliseconds for a UTC calendar moment (mid-month noon by default)."""
    return _ts


@pytest.fixture
def make_transaction():
    counter = {"n": 0}

    def factory(kind, amount, date, category=None):
        counter["n"] += 1
        return Transaction(
            id=f"t{counter['n']}",
            type=kind,
            amount=Decimal(str(amount)),
            description=f"{kind} {counter['n']}",
            date=date,
            created_by="user-1",
            created_at=date,
            updated_at=date,
            category=category,
        )

    return factory


@pytest.fixture
def make_shareholder():
    def factory(shareholder_id, percentage, is_active=True, name=None):
        return Shareholder(
            id=shareholder_id,
            name=name or shareholder_id.upper(),
            email=f"{shareholder_id}@example.com",
            share_percentage=Decimal(str(percentage)),
            is_active=is_active,
            created_at=0,
            updated_at=0,
        )

    return factory


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def services(store):
    return build_services(store, StaticAuth("user-1"), timezone.utc)


@pytest.fixture
def anonymous_services(store):
    return build_services(store, StaticAuth(None), timezone.utc)
