"""
Item share allocation - how much of each item a person pays for.
"""
from typing import Iterable

import pandas as pd

from .models import Person, ReceiptItem


def total_shares(item: ReceiptItem) -> int:
    """Sum of share weights over everyone assigned to the item."""
    return sum(item.weight_of(pid) for pid in item.assigned_to)


def item_cost_for(item: ReceiptItem, person_id: str) -> float:
    """
    Fractional cost of one item for one person.

    Args:
        item: The receipt item
        person_id: ID of the person

    Returns:
        price * weight / total weight, or 0 when the person is not assigned
        or the item carries no weight at all
    """
    if person_id not in item.assigned_to:
        return 0.0

    shares = total_shares(item)
    if shares <= 0:
        return 0.0

    return item.price * item.weight_of(person_id) / shares


class ShareAllocator:
    """Splits the items of a bill between the people assigned to them."""

    def __init__(self, items: Iterable[ReceiptItem]):
        self.items = list(items)

    def person_item_total(self, person_id: str) -> float:
        """Sum a person's cost over all items. No rounding is applied."""
        total = 0.0
        for item in self.items:
            total += item_cost_for(item, person_id)
        return total

    def item_breakdown(self, item: ReceiptItem) -> dict[str, float]:
        """Cost of an item for every assigned person, in assignment order."""
        return {pid: item_cost_for(item, pid) for pid in item.assigned_to}

    def unassigned_items(self) -> list[ReceiptItem]:
        """Items nobody has claimed yet."""
        return [item for item in self.items if not item.assigned_to]

    def get_allocation_dataframe(self, people: list[Person]) -> pd.DataFrame:
        """
        Get per-item allocation as a DataFrame.

        Returns:
            DataFrame with one row per item and one cost column per person
        """
        columns = ['item', 'price'] + [p.name for p in people]
        if not self.items:
            return pd.DataFrame(columns=columns)

        data = []
        for item in self.items:
            row = {'item': item.name, 'price': item.price}
            for p in people:
                row[p.name] = item_cost_for(item, p.id)
            data.append(row)

        return pd.DataFrame(data, columns=columns)
