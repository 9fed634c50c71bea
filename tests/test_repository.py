import json
from datetime import timedelta

import pytest

from weighbridge.domain.models import TransactionDirection
from weighbridge.services.repository import (
    DuplicateTicket,
    InMemoryTransactionRepository,
    JsonTransactionRepository,
    TransactionNotFound,
    WeighbridgeError,
)

INBOUND = TransactionDirection.INBOUND
OUTBOUND = TransactionDirection.OUTBOUND


def test_weigh_in_and_out_lifecycle(repository, clock):
    repository.create_weigh_in("WB-20240315-0001", 1, 2, 3, 7, 14500.0, False, INBOUND)
    record = repository.get("WB-20240315-0001")
    assert record.is_open
    assert record.partner_id == 7
    assert record.weigh_in_timestamp == "2024-03-15T10:30:00"
    assert [r.ticket_number for r in repository.open_transactions()] == ["WB-20240315-0001"]

    clock.now = clock.now + timedelta(minutes=20)
    repository.update_weigh_out("WB-20240315-0001", 5200.0, 9300.0)
    record = repository.get("WB-20240315-0001")
    assert not record.is_open
    assert record.net_weight == 9300.0
    assert record.weigh_out_timestamp == "2024-03-15T10:50:00"
    assert repository.open_transactions() == []


def test_duplicate_ticket_rejected(repository):
    repository.create_weigh_in("T1", 1, 2, 3, None, 500.0, True, OUTBOUND)
    with pytest.raises(DuplicateTicket):
        repository.create_weigh_in("T1", 1, 2, 3, None, 600.0, True, OUTBOUND)


def test_update_unknown_ticket(repository):
    with pytest.raises(TransactionNotFound):
        repository.update_weigh_out("nope", 1.0, 1.0)


def test_delete_transaction(repository):
    repository.create_weigh_in("T1", 1, 2, 3, None, 500.0, True, OUTBOUND)
    repository.delete_transaction("T1")
    assert repository.get("T1") is None
    with pytest.raises(TransactionNotFound):
        repository.delete_transaction("T1")


def test_last_ticket(repository, clock):
    assert repository.last_ticket() is None
    repository.create_weigh_in("WB-20240315-0001", 1, 2, 3, None, 500.0, True, OUTBOUND)
    repository.create_weigh_in("WB-20240315-0002", 1, 2, 3, None, 500.0, True, OUTBOUND)
    clock.now = clock.now + timedelta(hours=1)
    repository.create_weigh_in("WB-20240315-0003", 1, 2, 3, None, 500.0, True, OUTBOUND)
    assert repository.last_ticket() == "WB-20240315-0003"
    assert [r.ticket_number for r in repository.all_transactions()][0] == "WB-20240315-0003"


def test_last_ticket_compares_counters_numerically(repository):
    repository.create_weigh_in("WB-20240315-9999", 1, 2, 3, None, 500.0, True, OUTBOUND)
    repository.create_weigh_in("WB-20240315-10000", 1, 2, 3, None, 500.0, True, OUTBOUND)
    assert repository.last_ticket() == "WB-20240315-10000"


def test_json_repository_persists_between_instances(tmp_path, clock):
    path = tmp_path / "data" / "transactions.json"
    first = JsonTransactionRepository(path, clock=clock)
    first.create_weigh_in("T1", 1, 2, 3, None, 900.0, False, INBOUND)
    first.create_weigh_in("T2", 4, 5, 6, 9, 300.0, True, OUTBOUND)
    first.update_weigh_out("T1", 250.0, 650.0)

    second = JsonTransactionRepository(path, clock=clock)
    assert second.get("T1").net_weight == 650.0
    assert second.get("T2").direction is OUTBOUND
    assert [r.ticket_number for r in second.open_transactions()] == ["T2"]

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert {item["ticket_number"] for item in payload} == {"T1", "T2"}
    assert not path.with_suffix(".json.tmp").exists()


def test_json_repository_skips_malformed_entries(tmp_path, clock):
    path = tmp_path / "transactions.json"
    path.write_text(json.dumps([{"ticket_number": "bad"}]), encoding="utf-8")
    repo = JsonTransactionRepository(path, clock=clock)
    assert repo.all_transactions() == []


def test_json_repository_corrupt_file(tmp_path):
    path = tmp_path / "transactions.json"
    path.write_text("[{", encoding="utf-8")
    with pytest.raises(WeighbridgeError):
        JsonTransactionRepository(path)


def test_failed_write_rolls_back(tmp_path, clock, monkeypatch):
    repo = JsonTransactionRepository(tmp_path / "transactions.json", clock=clock)

    def broken_write():
        raise OSError("disk full")

    monkeypatch.setattr(repo, "_changed", broken_write)
    with pytest.raises(OSError):
        repo.create_weigh_in("T1", 1, 2, 3, None, 900.0, False, INBOUND)
    assert repo.get("T1") is None


def test_in_memory_repository_default_clock():
    repo = InMemoryTransactionRepository()
    repo.create_weigh_in("T1", 1, 2, 3, None, 900.0, False, INBOUND)
    assert repo.get("T1").weigh_in_timestamp
