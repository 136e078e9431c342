import json
from decimal import Decimal

import pytest

from books.exceptions import PersistenceError, RecordNotFoundError
from books.storage import TRANSACTIONS, RecordStore


def _seed(store):
    rows = [
        {"id": "t1", "type": "income", "date": 300, "amount": "10.00"},
        {"id": "t2", "type": "expense", "date": 100, "amount": "5.00", "category": "Rent"},
        {"id": "t3", "type": "income", "date": 100, "amount": "7.00"},
        {"id": "t4", "type": "income", "date": 200, "amount": "1.00"},
    ]
    for row in rows:
        store.insert(TRANSACTIONS, row)


def test_insert_generates_id_and_get_returns_copy():
    store = RecordStore()

    record_id = store.insert(TRANSACTIONS, {"type": "income", "date": 1})
    fetched = store.get(TRANSACTIONS, record_id)
    fetched["type"] = "expense"

    assert record_id
    assert store.get(TRANSACTIONS, record_id)["type"] == "income"
    assert store.get(TRANSACTIONS, "missing") is None


def test_patch_merges_and_removes_none_values():
    store = RecordStore()
    store.insert(TRANSACTIONS, {"id": "t1", "type": "income", "notes": "hello", "date": 1})

    store.patch(TRANSACTIONS, "t1", {"date": 2, "notes": None, "id": "other"})

    assert store.get(TRANSACTIONS, "t1") == {"id": "t1", "type": "income", "date": 2}


def test_patch_and_delete_missing_record_raise():
    store = RecordStore()

    with pytest.raises(RecordNotFoundError):
        store.patch(TRANSACTIONS, "nope", {"date": 1})
    with pytest.raises(RecordNotFoundError):
        store.delete(TRANSACTIONS, "nope")


def test_delete_removes_record():
    store = RecordStore()
    _seed(store)

    store.delete(TRANSACTIONS, "t2")

    assert [row["id"] for row in store.query_all(TRANSACTIONS)] == ["t1", "t3", "t4"]


def test_query_by_index_equality_range_and_order():
    store = RecordStore()
    _seed(store)

    ascending = store.query_by_index(TRANSACTIONS, "by_type_and_date", ("income",), gte=100, lte=250)
    descending = store.query_by_index(TRANSACTIONS, "by_type_and_date", ("income",), descending=True)

    assert [row["id"] for row in ascending] == ["t3", "t4"]
    assert [row["id"] for row in descending] == ["t1", "t4", "t3"]


def test_query_by_index_ties_keep_insertion_order():
    store = RecordStore()
    _seed(store)

    rows = store.query_by_index(TRANSACTIONS, "by_date", gte=100, lte=100)

    assert [row["id"] for row in rows] == ["t2", "t3"]


def test_query_by_index_rejects_bad_usage():
    store = RecordStore()

    with pytest.raises(ValueError):
        store.query_by_index(TRANSACTIONS, "by_nothing")
    with pytest.raises(ValueError):
        store.query_by_index(TRANSACTIONS, "by_type", ("income",), gte=1)


def test_records_persist_across_instances(tmp_path):
    first = RecordStore(tmp_path)
    _seed(first)
    first.patch(TRANSACTIONS, "t1", {"amount": "11.00"})

    second = RecordStore(tmp_path)

    assert second.get(TRANSACTIONS, "t1")["amount"] == "11.00"
    assert len(second.query_all(TRANSACTIONS)) == 4
    assert json.loads((tmp_path / "transactions.json").read_text(encoding="utf-8"))[0]["id"] == "t1"


def test_corrupted_file_raises_persistence_error(tmp_path):
    (tmp_path / "transactions.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        RecordStore(tmp_path).query_all(TRANSACTIONS)


def test_non_list_payload_raises_persistence_error(tmp_path):
    (tmp_path / "transactions.json").write_text('{"id": "t1"}', encoding="utf-8")

    with pytest.raises(PersistenceError):
        RecordStore(tmp_path).get(TRANSACTIONS, "t1")


def _block_file(path):
    path.unlink()
    path.mkdir()
    (path / "placeholder").write_text("x", encoding="utf-8")


def test_failed_write_rolls_back_every_mutation(tmp_path):
    store = RecordStore(tmp_path)
    _seed(store)
    _block_file(tmp_path / "transactions.json")

    with pytest.raises(PersistenceError):
        store.insert(TRANSACTIONS, {"id": "t5", "type": "income", "date": 400})
    with pytest.raises(PersistenceError):
        store.patch(TRANSACTIONS, "t1", {"amount": "99.00"})
    with pytest.raises(PersistenceError):
        store.delete(TRANSACTIONS, "t2")

    assert store.get(TRANSACTIONS, "t5") is None
    assert store.get(TRANSACTIONS, "t1")["amount"] == "10.00"
    assert [row["id"] for row in store.query_all(TRANSACTIONS)] == ["t1", "t2", "t3", "t4"]
    assert list(tmp_path.glob("*.tmp")) == []


def test_unserialisable_record_is_not_kept(tmp_path):
    store = RecordStore(tmp_path)
    _seed(store)

    with pytest.raises(PersistenceError):
        store.insert(TRANSACTIONS, {"id": "t5", "amount": Decimal("1")})

    assert store.get(TRANSACTIONS, "t5") is None
    assert list(tmp_path.glob("*.tmp")) == []
    assert len(RecordStore(tmp_path).query_all(TRANSACTIONS)) == 4
