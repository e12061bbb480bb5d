"""
Bill settlement - per-person totals, tax/tip proration and coverage rules.
"""
import logging

import numpy as np
import pandas as pd

from .allocation import ShareAllocator
from .models import (
    BillState,
    BillTotals,
    FinalSplits,
    PersonTotals,
    SplitAmongOthers,
    TipType,
)

logger = logging.getLogger(__name__)

COVERED_BY_GROUP = "Covered by group"


def calculate_tip(bill: BillState) -> float:
    """Tip for the whole bill, from a percentage of the subtotal or a fixed amount."""
    if bill.tip_type == TipType.PERCENT:
        return bill.subtotal * (bill.tip_percentage / 100)
    return bill.tip_amount


def calculate_bill_totals(bill: BillState) -> BillTotals:
    final_tip = calculate_tip(bill)
    return BillTotals(
        final_tip=final_tip,
        grand_total=bill.subtotal + bill.tax + final_tip
    )


def compute_person_totals(person_id: str, bill: BillState) -> PersonTotals:
    """
    Raw amount a person owes before coverage.

    Tax and tip are prorated by the person's share of the subtotal. A bill
    without priced items gives everyone a zero ratio.
    """
    my_item_total = ShareAllocator(bill.items).person_item_total(person_id)

    subtotal = bill.subtotal
    ratio = my_item_total / subtotal if subtotal > 0 else 0.0
    my_tax = bill.tax * ratio
    my_tip = calculate_tip(bill) * ratio

    return PersonTotals(
        subtotal=my_item_total,
        tax=my_tax,
        tip=my_tip,
        total=my_item_total + my_tax + my_tip
    )


def compute_final_splits(bill: BillState) -> FinalSplits:
    """
    Apply coverage rules to the raw totals.

    Every entry moves the covered person's raw total, never an amount they
    picked up by covering someone else, so chains of coverage do not cascade
    and the result does not depend on entry order. Entries with nothing to
    move, an unknown payer or a self-referential payer have no effect.

    Returns:
        FinalSplits with raw totals, final totals and notes per person ID
    """
    raw_totals = {p.id: compute_person_totals(p.id, bill).total for p in bill.people}
    people_by_id = {p.id: p for p in bill.people}

    cleared: set[str] = set()
    received = {pid: 0.0 for pid in raw_totals}
    notes: dict[str, list[str]] = {}

    for covered_id, payer in bill.cover_assignments.items():
        covered = people_by_id.get(covered_id)
        amount = raw_totals.get(covered_id, 0.0)
        if covered is None or amount <= 0:
            continue

        if isinstance(payer, SplitAmongOthers):
            others = [p for p in bill.people if p.id != covered_id]
            if not others:
                logger.debug("No one else to split %s's share with", covered.name)
                continue

            split_amount = amount / len(others)
            cleared.add(covered_id)
            notes.setdefault(covered_id, []).append(COVERED_BY_GROUP)
            for p in others:
                received[p.id] += split_amount
                notes.setdefault(p.id, []).append(f"Covering {covered.name} (split)")
        else:
            payer_person = people_by_id.get(payer.person_id)
            if payer_person is None or payer_person.id == covered_id:
                logger.debug("Ignoring coverage of %s by %r", covered_id, payer)
                continue

            cleared.add(covered_id)
            notes.setdefault(covered_id, []).append(f"Covered by {payer_person.name}")
            received[payer_person.id] += amount
            notes.setdefault(payer_person.id, []).append(f"Covering {covered.name}")

    final_totals = {
        pid: (0.0 if pid in cleared else raw) + received[pid]
        for pid, raw in raw_totals.items()
    }

    return FinalSplits(raw_totals=raw_totals, final_totals=final_totals, notes=notes)


class SettlementEngine:
    """Settles a bill and formats the result for display."""

    def __init__(self, bill: BillState):
        self.bill = bill

    def compute_person_totals(self, person_id: str) -> PersonTotals:
        return compute_person_totals(person_id, self.bill)

    def compute_final_splits(self) -> FinalSplits:
        return compute_final_splits(self.bill)

    def get_splits_dataframe(self) -> pd.DataFrame:
        """
        Get the settlement as a DataFrame, amounts rounded for display.

        Returns:
            DataFrame with one row per person in bill order
        """
        columns = [
            'person_id', 'name', 'subtotal', 'tax', 'tip', 'raw_total',
            'final_total', 'is_covered', 'is_covering_others', 'notes'
        ]
        if not self.bill.people:
            return pd.DataFrame(columns=columns)

        splits = self.compute_final_splits()

        data = []
        for p in self.bill.people:
            totals = self.compute_person_totals(p.id)
            data.append({
                'person_id': p.id,
                'name': p.name,
                'subtotal': np.round(totals.subtotal, 2),
                'tax': np.round(totals.tax, 2),
                'tip': np.round(totals.tip, 2),
                'raw_total': np.round(splits.raw_totals[p.id], 2),
                'final_total': np.round(splits.final_totals[p.id], 2),
                'is_covered': splits.is_covered(p.id),
                'is_covering_others': splits.is_covering_others(p.id),
                'notes': list(splits.notes.get(p.id, []))
            })

        return pd.DataFrame(data, columns=columns)

    def get_settlement_summary(self) -> str:
        """
        Get human-readable settlement lines.

        Returns:
            Formatted string with what each person pays
        """
        if not self.bill.people:
            return "Nobody is on this bill yet."

        currency = self.bill.currency
        bill_totals = calculate_bill_totals(self.bill)
        splits = self.compute_final_splits()

        lines = ["Who pays what:", ""]

        for p in self.bill.people:
            final = splits.final_totals[p.id]
            line = f"  {p.name}: {currency}{final:.2f}"
            if splits.is_covered(p.id) or splits.is_covering_others(p.id):
                line += f" (was {currency}{splits.raw_totals[p.id]:.2f})"
            lines.append(line)
            for note in splits.notes.get(p.id, []):
                lines.append(f"      - {note}")

        unassigned = ShareAllocator(self.bill.items).unassigned_items()
        if unassigned:
            lines.append("")
            lines.append(
                "Unassigned items: " + ", ".join(item.name for item in unassigned)
            )

        lines.append("")
        lines.append(
            f"Subtotal {currency}{self.bill.subtotal:.2f}, "
            f"tax {currency}{self.bill.tax:.2f}, "
            f"tip {currency}{bill_totals.final_tip:.2f}"
        )
        lines.append(f"Grand total: {currency}{bill_totals.grand_total:.2f}")

        return "\n".join(lines)
