"""Transaction repositories consumed by the weighing engine."""
from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..domain.models import TransactionDirection

log = logging.getLogger(__name__)

STATUS_OPEN = "OPEN"
STATUS_CLOSED = "CLOSED"


class WeighbridgeError(Exception):
    """Base class for collaborator errors surfaced to the engine."""


class TransactionNotFound(WeighbridgeError):
    """Raised when a ticket does not exist or is not open."""


class DuplicateTicket(WeighbridgeError):
    """Raised when a weigh-in reuses an existing ticket number."""


@dataclass(frozen=True)
class TransactionRecord:
    ticket_number: str
    vehicle_id: int
    driver_id: int
    product_id: int
    partner_id: Optional[int]
    direction: TransactionDirection
    weigh_in_weight: float
    weigh_in_timestamp: str
    is_manual: bool
    weigh_out_weight: Optional[float] = None
    weigh_out_timestamp: Optional[str] = None
    net_weight: Optional[float] = None
    status: str = STATUS_OPEN

    @property
    def is_open(self) -> bool:
        return self.status == STATUS_OPEN

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["direction"] = self.direction.value
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TransactionRecord":
        data = dict(payload)
        data["direction"] = TransactionDirection(data["direction"])
        fields = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in fields})


class TransactionRepository(ABC):
    """Persistence contract of the weighing engine."""

    @abstractmethod
    def create_weigh_in(
        self,
        ticket: str,
        vehicle_id: int,
        driver_id: int,
        product_id: int,
        partner_id: Optional[int],
        weight: float,
        is_manual: bool,
        direction: TransactionDirection,
    ) -> None:
        """Open a transaction with its first weight."""

    @abstractmethod
    def update_weigh_out(self, ticket: str, exit_weight: float, net_weight: float) -> None:
        """Close the open transaction identified by ``ticket``."""

    @abstractmethod
    def get(self, ticket: str) -> Optional[TransactionRecord]:
        ...

    @abstractmethod
    def all_transactions(self) -> List[TransactionRecord]:
        ...

    @abstractmethod
    def delete_transaction(self, ticket: str) -> None:
        ...

    def open_transactions(self) -> List[TransactionRecord]:
        """Vehicles that were weighed in but have not been weighed out yet."""
        return [record for record in self.all_transactions() if record.is_open]

    def last_ticket(self) -> Optional[str]:
        records = self.all_transactions()
        if not records:
            return None
        latest = max(
            records,
            key=lambda record: (record.weigh_in_timestamp, _ticket_order(record.ticket_number)),
        )
        return latest.ticket_number


def _ticket_order(ticket: str):
    # "WB-20240315-10000" must sort after "WB-20240315-9999"
    head, _, counter = ticket.rpartition("-")
    if counter.isdigit():
        return (head, int(counter))
    return (ticket, -1)


class InMemoryTransactionRepository(TransactionRepository):
    """Dictionary backed repository, mainly for tests and demos."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or datetime.now
        self._lock = threading.RLock()
        self._records: Dict[str, TransactionRecord] = {}

    def _now(self) -> str:
        return self._clock().isoformat(timespec="seconds")

    def create_weigh_in(
        self,
        ticket: str,
        vehicle_id: int,
        driver_id: int,
        product_id: int,
        partner_id: Optional[int],
        weight: float,
        is_manual: bool,
        direction: TransactionDirection,
    ) -> None:
        with self._lock:
            if ticket in self._records:
                raise DuplicateTicket(f"ticket {ticket} already exists")
            previous = dict(self._records)
            self._records[ticket] = TransactionRecord(
                ticket_number=ticket,
                vehicle_id=vehicle_id,
                driver_id=driver_id,
                product_id=product_id,
                partner_id=partner_id,
                direction=TransactionDirection(direction),
                weigh_in_weight=float(weight),
                weigh_in_timestamp=self._now(),
                is_manual=bool(is_manual),
            )
            self._commit(previous)
        log.info("Weigh-in stored for ticket %s (%.1f kg)", ticket, weight)

    def update_weigh_out(self, ticket: str, exit_weight: float, net_weight: float) -> None:
        with self._lock:
            record = self._records.get(ticket)
            if record is None or not record.is_open:
                raise TransactionNotFound(f"no open transaction for ticket {ticket}")
            previous = dict(self._records)
            self._records[ticket] = replace(
                record,
                weigh_out_weight=float(exit_weight),
                weigh_out_timestamp=self._now(),
                net_weight=float(net_weight),
                status=STATUS_CLOSED,
            )
            self._commit(previous)
        log.info("Weigh-out stored for ticket %s (net %.1f kg)", ticket, net_weight)

    def get(self, ticket: str) -> Optional[TransactionRecord]:
        with self._lock:
            return self._records.get(ticket)

    def all_transactions(self) -> List[TransactionRecord]:
        with self._lock:
            return sorted(
                self._records.values(),
                key=lambda record: record.weigh_in_timestamp,
                reverse=True,
            )

    def delete_transaction(self, ticket: str) -> None:
        with self._lock:
            if ticket not in self._records:
                raise TransactionNotFound(f"ticket {ticket} not found")
            previous = dict(self._records)
            del self._records[ticket]
            self._commit(previous)
        log.info("Transaction %s deleted", ticket)

    def _commit(self, previous: Dict[str, TransactionRecord]) -> None:
        try:
            self._changed()
        except Exception:
            self._records = previous
            raise

    def _changed(self) -> None:
        """Hook run after every mutation while the lock is held."""


class JsonTransactionRepository(InMemoryTransactionRepository):
    """Repository persisted to a single JSON file with atomic replacement."""

    def __init__(self, path: Path, clock: Optional[Callable[[], datetime]] = None) -> None:
        super().__init__(clock=clock)
        self.path = Path(path)
        self._records = {record.ticket_number: record for record in self._load()}

    def _load(self) -> List[TransactionRecord]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        if not raw.strip():
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise WeighbridgeError(f"transaction file {self.path} is corrupt: {exc}") from exc
        records = []
        for item in payload if isinstance(payload, list) else []:
            try:
                records.append(TransactionRecord.from_dict(item))
            except (KeyError, TypeError, ValueError):
                log.warning("Skipping malformed transaction entry in %s: %r", self.path, item)
        log.info("Loaded %d transactions from %s", len(records), self.path)
        return records

    def _changed(self) -> None:
        payload = [record.to_dict() for record in self._records.values()]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)


__all__ = [
    "WeighbridgeError",
    "TransactionNotFound",
    "DuplicateTicket",
    "TransactionRecord",
    "TransactionRepository",
    "InMemoryTransactionRepository",
    "JsonTransactionRepository",
    "STATUS_OPEN",
    "STATUS_CLOSED",
]
