"""
Data models for the Bill Splitter application.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
import uuid

from .config import DEFAULT_CURRENCY, DEFAULT_TIP_PERCENTAGE, PERSON_COLORS

SPLIT_ALL = "SPLIT_ALL"


def _short_id() -> str:
    return str(uuid.uuid4())[:8]


class TipType(Enum):
    """How the tip on a bill is expressed."""
    PERCENT = "percent"
    AMOUNT = "amount"


class BillStatus(Enum):
    """Lifecycle state of a saved bill."""
    DRAFT = "draft"
    FINALIZED = "finalized"


@dataclass
class Person:
    """Represents a person sharing the bill."""
    name: str
    id: str = field(default_factory=lambda: f"p-{_short_id()}")
    color: str = PERSON_COLORS[0]

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        if isinstance(other, Person):
            return self.id == other.id
        return False


@dataclass(frozen=True)
class DirectPayer:
    """Coverage paid in full by one other person."""
    person_id: str


@dataclass(frozen=True)
class SplitAmongOthers:
    """Coverage split evenly among everyone else on the bill."""


CoveragePayer = Union[DirectPayer, SplitAmongOthers]


def coverage_payer_from_value(value: str) -> CoveragePayer:
    """Decode the stored payer value (a person id or the SPLIT_ALL sentinel)."""
    if value == SPLIT_ALL:
        return SplitAmongOthers()
    return DirectPayer(value)


def coverage_payer_to_value(payer: CoveragePayer) -> str:
    """Encode a payer for storage."""
    if isinstance(payer, SplitAmongOthers):
        return SPLIT_ALL
    return payer.person_id


@dataclass
class ReceiptItem:
    """A single line on the receipt and who shares it."""
    name: str
    price: float
    id: str = field(default_factory=lambda: f"item-{_short_id()}")
    assigned_to: list[str] = field(default_factory=list)
    shares: dict[str, int] = field(default_factory=dict)

    def weight_of(self, person_id: str) -> int:
        """Share weight of a person on this item, 1 unless set explicitly."""
        return self.shares.get(person_id, 1)


@dataclass
class BillState:
    """
    Everything needed to settle one bill.

    The subtotal is always derived from the items. Coverage assignments map a
    covered person id to the payer, in the order they were made.
    """
    items: list[ReceiptItem] = field(default_factory=list)
    tax: float = 0.0
    tip_amount: float = 0.0
    tip_percentage: float = DEFAULT_TIP_PERCENTAGE
    tip_type: TipType = TipType.PERCENT
    people: list[Person] = field(default_factory=list)
    cover_assignments: dict[str, CoveragePayer] = field(default_factory=dict)
    currency: str = DEFAULT_CURRENCY
    tip_from_receipt: bool = False

    @property
    def subtotal(self) -> float:
        return sum(item.price for item in self.items)

    def get_person_by_id(self, person_id: str) -> Optional[Person]:
        """Find a person by their ID."""
        for p in self.people:
            if p.id == person_id:
                return p
        return None

    def get_person_by_name(self, name: str) -> Optional[Person]:
        """Find a person by their name (case-insensitive)."""
        for p in self.people:
            if p.name.lower() == name.lower():
                return p
        return None

    def get_item(self, item_id: str) -> ReceiptItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise KeyError(f"Unknown item '{item_id}'")

    def add_person(self, name: str) -> Person:
        """Add a new person, picking the next color from the palette."""
        name = name.strip()
        if not name:
            raise ValueError("Person name must not be empty")
        color = PERSON_COLORS[len(self.people) % len(PERSON_COLORS)]
        person = Person(name=name, color=color)
        self.people.append(person)
        return person

    def remove_person(self, person_id: str) -> None:
        """
        Remove a person along with every reference to them.

        Item assignments, share weights and coverage rules that mention the
        person are dropped so the settlement never sees a dangling id.
        """
        if self.get_person_by_id(person_id) is None:
            raise KeyError(f"Unknown person '{person_id}'")
        self.people = [p for p in self.people if p.id != person_id]
        for item in self.items:
            item.assigned_to = [pid for pid in item.assigned_to if pid != person_id]
            item.shares.pop(person_id, None)
        self.cover_assignments = {
            covered: payer
            for covered, payer in self.cover_assignments.items()
            if covered != person_id and payer != DirectPayer(person_id)
        }

    def add_item(self, name: str, price: float) -> ReceiptItem:
        if price < 0:
            raise ValueError(f"Item price must not be negative, got {price}")
        item = ReceiptItem(name=name, price=float(price))
        self.items.append(item)
        return item

    def update_item(
        self,
        item_id: str,
        name: Optional[str] = None,
        price: Optional[float] = None
    ) -> ReceiptItem:
        item = self.get_item(item_id)
        if price is not None:
            if price < 0:
                raise ValueError(f"Item price must not be negative, got {price}")
            item.price = float(price)
        if name is not None:
            item.name = name
        return item

    def remove_item(self, item_id: str) -> None:
        self.get_item(item_id)
        self.items = [i for i in self.items if i.id != item_id]

    def toggle_assignment(self, item_id: str, person_id: str) -> bool:
        """
        Assign or unassign a person on an item.

        Returns True when the person is assigned after the call.
        """
        item = self.get_item(item_id)
        if person_id in item.assigned_to:
            item.assigned_to.remove(person_id)
            item.shares.pop(person_id, None)
            return False
        item.assigned_to.append(person_id)
        item.shares[person_id] = 1
        return True

    def set_share(self, item_id: str, person_id: str, weight: int) -> int:
        """Set a person's share weight on an item. Weights below 1 become 1."""
        item = self.get_item(item_id)
        if person_id not in item.assigned_to:
            raise ValueError(f"'{person_id}' is not assigned to '{item.name}'")
        item.shares[person_id] = max(1, int(weight))
        return item.shares[person_id]

    def set_cover_assignment(self, person_id: str, payer: Optional[CoveragePayer]) -> None:
        """Set who pays for a person. None, or the person themselves, clears it."""
        if payer is None or payer == DirectPayer(person_id):
            self.cover_assignments.pop(person_id, None)
        else:
            self.cover_assignments[person_id] = payer


@dataclass
class BillRecord:
    """A saved snapshot of a bill."""
    id: str
    date: str
    status: BillStatus
    total: float
    state: BillState


@dataclass
class ParsedItem:
    name: str
    price: float


@dataclass
class ParseResult:
    """Structured output of the receipt parsing service."""
    items: list[ParsedItem]
    tax: float = 0.0
    tip: Optional[float] = None
    currency: str = DEFAULT_CURRENCY


@dataclass
class PersonTotals:
    """One person's share before any coverage."""
    subtotal: float
    tax: float
    tip: float
    total: float


@dataclass
class BillTotals:
    final_tip: float
    grand_total: float


@dataclass
class FinalSplits:
    """Result of settling a bill."""
    raw_totals: dict[str, float]
    final_totals: dict[str, float]
    notes: dict[str, list[str]] = field(default_factory=dict)

    def is_covered(self, person_id: str) -> bool:
        return self.final_totals[person_id] == 0 and self.raw_totals[person_id] > 0

    def is_covering_others(self, person_id: str) -> bool:
        return self.final_totals[person_id] > self.raw_totals[person_id]
