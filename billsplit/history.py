"""
Bill history - saving drafts and finalized bills.

The settlement code never reads or writes history; the app passes a
repository around instead.
"""
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from .config import DEFAULT_CURRENCY, MAX_HISTORY, PERSON_COLORS
from .models import (
    BillRecord,
    BillState,
    BillStatus,
    Person,
    ReceiptItem,
    TipType,
    coverage_payer_from_value,
    coverage_payer_to_value,
)
from .settlement import calculate_bill_totals

logger = logging.getLogger(__name__)


class BillHistoryRepository(ABC):
    """Load/save access to the list of saved bills, newest first."""

    @abstractmethod
    def load(self) -> list[BillRecord]:
        ...

    @abstractmethod
    def save(self, records: list[BillRecord]) -> None:
        ...


class InMemoryHistoryRepository(BillHistoryRepository):

    def __init__(self, records: Optional[list[BillRecord]] = None):
        self._records = list(records or [])

    def load(self) -> list[BillRecord]:
        return list(self._records)

    def save(self, records: list[BillRecord]) -> None:
        self._records = list(records)


class JsonFileHistoryRepository(BillHistoryRepository):
    """Keeps history in a single JSON file."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> list[BillRecord]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [record_from_dict(d) for d in data]
        except FileNotFoundError:
            return []
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Failed to load history from %s: %s", self.path, e)
            return []

    def save(self, records: list[BillRecord]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([record_to_dict(r) for r in records], f, indent=2)


def bill_state_to_dict(state: BillState) -> dict:
    """Convert a BillState to the stored JSON shape."""
    return {
        "items": [
            {
                "id": item.id,
                "name": item.name,
                "price": item.price,
                "assignedTo": list(item.assigned_to),
                "shares": dict(item.shares),
            }
            for item in state.items
        ],
        "subtotal": state.subtotal,
        "tax": state.tax,
        "tipAmount": state.tip_amount,
        "tipPercentage": state.tip_percentage,
        "tipType": state.tip_type.value,
        "people": [
            {"id": p.id, "name": p.name, "color": p.color}
            for p in state.people
        ],
        "tipFromReceipt": state.tip_from_receipt,
        "currency": state.currency,
        "coverAssignments": {
            covered: coverage_payer_to_value(payer)
            for covered, payer in state.cover_assignments.items()
        },
    }


def bill_state_from_dict(d: dict) -> BillState:
    """Convert the stored JSON shape back to a BillState. Subtotal is recomputed."""
    items = [
        ReceiptItem(
            id=i["id"],
            name=i["name"],
            price=float(i["price"]),
            assigned_to=list(i.get("assignedTo", [])),
            shares={pid: int(w) for pid, w in (i.get("shares") or {}).items()},
        )
        for i in d.get("items", [])
    ]
    people = [
        Person(id=p["id"], name=p["name"], color=p.get("color", PERSON_COLORS[0]))
        for p in d.get("people", [])
    ]
    return BillState(
        items=items,
        tax=float(d.get("tax", 0)),
        tip_amount=float(d.get("tipAmount", 0)),
        tip_percentage=float(d.get("tipPercentage", 0)),
        tip_type=TipType(d.get("tipType", TipType.PERCENT.value)),
        people=people,
        cover_assignments={
            covered: coverage_payer_from_value(payer)
            for covered, payer in (d.get("coverAssignments") or {}).items()
        },
        currency=d.get("currency", DEFAULT_CURRENCY),
        tip_from_receipt=bool(d.get("tipFromReceipt", False)),
    )


def record_to_dict(record: BillRecord) -> dict:
    return {
        "id": record.id,
        "date": record.date,
        "status": record.status.value,
        "total": record.total,
        "state": bill_state_to_dict(record.state),
    }


def record_from_dict(d: dict) -> BillRecord:
    return BillRecord(
        id=d["id"],
        date=d["date"],
        status=BillStatus(d["status"]),
        total=float(d["total"]),
        state=bill_state_from_dict(d["state"]),
    )


def save_bill(
    repository: BillHistoryRepository,
    state: BillState,
    status: BillStatus,
    bill_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> Optional[BillRecord]:
    """
    Save a bill to history.

    A bill with no items is not saved. A known id replaces that record in
    place; a new record goes to the top and history keeps the most recent
    MAX_HISTORY records.

    Args:
        repository: Where history lives
        state: Bill to snapshot
        status: Draft or finalized
        bill_id: ID of a previously saved record, if any
        now: Timestamp override

    Returns:
        The saved record, or None if nothing was saved
    """
    if not state.items:
        return None

    now = now or datetime.now(timezone.utc)
    record = BillRecord(
        id=bill_id or f"bill-{int(now.timestamp() * 1000)}",
        date=now.isoformat(),
        status=status,
        total=calculate_bill_totals(state).grand_total,
        state=copy.deepcopy(state),
    )

    records = repository.load()
    for index, existing in enumerate(records):
        if existing.id == record.id:
            records[index] = record
            break
    else:
        records = [record] + records[:MAX_HISTORY - 1]

    repository.save(records)
    logger.info("Saved bill %s as %s", record.id, status.value)
    return record


def finalize_bill(
    repository: BillHistoryRepository,
    state: BillState,
    bill_id: Optional[str] = None
) -> Optional[BillRecord]:
    return save_bill(repository, state, BillStatus.FINALIZED, bill_id)


def find_record(repository: BillHistoryRepository, bill_id: str) -> Optional[BillRecord]:
    for record in repository.load():
        if record.id == bill_id:
            return record
    return None
