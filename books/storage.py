"""Persistence utilities for the bookkeeping core services."""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from .exceptions import PersistenceError, RecordNotFoundError

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
EXPENSE_CATEGORIES = "expense_categories"
SHAREHOLDERS = "shareholders"
DISBURSEMENTS = "disbursements"

TABLE_INDEXES: Dict[str, Dict[str, Tuple[str, ...]]] = {
    TRANSACTIONS: {
        "by_date": ("date",),
        "by_type": ("type",),
        "by_type_and_date": ("type", "date"),
        "by_category": ("category",),
    },
    EXPENSE_CATEGORIES: {
        "by_is_active": ("is_active",),
    },
    SHAREHOLDERS: {
        "by_is_active": ("is_active",),
    },
    DISBURSEMENTS: {
        "by_shareholder_id": ("shareholder_id",),
        "by_period": ("period",),
    },
}

Record = Dict[str, Any]


class JSONStorage:
    """Simple file-based JSON storage with crash-safe writes."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = base_path
        self._base_path.mkdir(parents=True, exist_ok=True)

    def load(self, resource: str) -> List[Record]:
        path = self._base_path / resource
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Corrupted JSON data in {path}") from exc
        except OSError as exc:
            raise PersistenceError(f"Unable to read from {path}") from exc

        if not isinstance(payload, list):
            raise PersistenceError(f"Expected list payload in {path}")
        return payload

    def save(self, resource: str, records: Iterable[Record]) -> None:
        path = self._base_path / resource
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as handle:
                json.dump(list(records), handle, indent=2, ensure_ascii=False)
                handle.flush()
            # Use replace for atomic move on POSIX; ensures crash-safe persistence.
            temp_path.replace(path)
        except (TypeError, ValueError) as exc:
            self._discard(temp_path)
            raise PersistenceError(f"Unable to serialise records for {path}") from exc
        except OSError as exc:
            self._discard(temp_path)
            raise PersistenceError(f"Unable to write to {path}") from exc

    @staticmethod
    def _discard(temp_path: Path) -> None:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove temporary file %s: %s", temp_path, exc)

    @property
    def base_path(self) -> Path:
        return self._base_path


class RecordStore:
    """Table store with named indexes, backed by one JSON file per table.

    Without a ``base_path`` the store lives in memory only. Records are plain
    dicts keyed by ``"id"``; callers always receive copies so that mutating a
    returned record never changes stored state.
    """

    def __init__(
        self,
        base_path: Optional[Path] = None,
        indexes: Mapping[str, Mapping[str, Tuple[str, ...]]] = TABLE_INDEXES,
    ) -> None:
        self._storage = JSONStorage(Path(base_path)) if base_path is not None else None
        self._indexes = indexes
        self._tables: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()

    @property
    def base_path(self) -> Optional[Path]:
        return self._storage.base_path if self._storage else None

    # Public API -----------------------------------------------------------
    def insert(self, table: str, record: Mapping[str, Any]) -> str:
        with self._lock:
            rows = self._table(table)
            record_id = str(record.get("id") or uuid4().hex)
            snapshot = dict(rows)
            rows[record_id] = {**copy.deepcopy(dict(record)), "id": record_id}
            self._persist(table, snapshot)
        logger.debug("Inserted %s/%s", table, record_id)
        return record_id

    def get(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            row = self._table(table).get(record_id)
            return copy.deepcopy(row) if row is not None else None

    def patch(self, table: str, record_id: str, changes: Mapping[str, Any]) -> None:
        """Merge ``changes`` into a record; keys mapped to ``None`` are removed."""
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise RecordNotFoundError(f"{table} record {record_id} not found")
            snapshot = dict(rows)
            row = dict(rows[record_id])
            for key, value in changes.items():
                if key == "id":
                    continue
                if value is None:
                    row.pop(key, None)
                else:
                    row[key] = copy.deepcopy(value)
            rows[record_id] = row
            self._persist(table, snapshot)

    def delete(self, table: str, record_id: str) -> None:
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise RecordNotFoundError(f"{table} record {record_id} not found")
            snapshot = dict(rows)
            del rows[record_id]
            self._persist(table, snapshot)
        logger.debug("Deleted %s/%s", table, record_id)

    def query_all(self, table: str) -> List[Record]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._table(table).values()]

    def query_by_index(
        self,
        table: str,
        index: str,
        eq: Sequence[Any] = (),
        *,
        gte: Any = None,
        lte: Any = None,
        descending: bool = False,
    ) -> List[Record]:
        """Query ``table`` through a named index.

        ``eq`` holds equality values for a prefix of the index fields; ``gte``
        and ``lte`` bound the field that follows the prefix. Results are
        ordered by the index fields, then by insertion order.
        """
        fields = self._index_fields(table, index)
        eq = tuple(eq)
        if len(eq) > len(fields):
            raise ValueError(f"Index {index} has only {len(fields)} field(s)")
        ranged = gte is not None or lte is not None
        if ranged and len(eq) >= len(fields):
            raise ValueError(f"Index {index} has no field left for a range bound")
        range_field = fields[len(eq)] if ranged else None

        def matches(row: Record) -> bool:
            for field, expected in zip(fields, eq):
                if row.get(field) != expected:
                    return False
            if range_field is not None:
                value = row.get(range_field)
                if value is None:
                    return False
                if gte is not None and value < gte:
                    return False
                if lte is not None and value > lte:
                    return False
            return True

        with self._lock:
            selected = [
                (position, row)
                for position, row in enumerate(self._table(table).values())
                if matches(row)
            ]
            # Missing values sort first, as they would in an index.
            selected.sort(
                key=lambda item: (
                    tuple(_sort_key(item[1].get(field)) for field in fields),
                    item[0],
                )
            )
            if descending:
                selected.reverse()
            return [copy.deepcopy(row) for _, row in selected]

    # Internal helpers -----------------------------------------------------
    def _index_fields(self, table: str, index: str) -> Tuple[str, ...]:
        try:
            return tuple(self._indexes[table][index])
        except KeyError as exc:
            raise ValueError(f"Unknown index {table}.{index}") from exc

    def _table(self, table: str) -> Dict[str, Record]:
        rows = self._tables.get(table)
        if rows is None:
            raw_records = self._storage.load(f"{table}.json") if self._storage else []
            rows = {}
            for payload in raw_records:
                if not isinstance(payload, dict) or "id" not in payload:
                    raise PersistenceError(f"Malformed record in {table}.json")
                rows[payload["id"]] = payload
            self._tables[table] = rows
        return rows

    def _persist(self, table: str, snapshot: Dict[str, Record]) -> None:
        """Write ``table`` to disk, restoring ``snapshot`` in memory on failure."""
        if self._storage is None:
            return
        try:
            self._storage.save(f"{table}.json", self._tables[table].values())
        except PersistenceError:
            self._tables[table] = snapshot
            logger.error("Rolled back in-memory changes to %s after a failed write", table)
            raise


def _sort_key(value: Any) -> Tuple[int, Any]:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (2, value)
    return (3, str(value))
