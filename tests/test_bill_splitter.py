"""
Tests for the Bill Splitter models, share allocation and settlement.
"""
import unittest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from billsplit.config import PERSON_COLORS
from billsplit.models import (
    BillState, DirectPayer, ReceiptItem, SplitAmongOthers, TipType
)
from billsplit.allocation import ShareAllocator, item_cost_for, total_shares
from billsplit.settlement import (
    SettlementEngine,
    calculate_bill_totals,
    compute_final_splits,
    compute_person_totals,
)


def make_bill(*names):
    bill = BillState(tip_percentage=0.0)
    people = [bill.add_person(name) for name in names]
    return bill, people


def add_assigned_item(bill, name, price, *people):
    item = bill.add_item(name, price)
    for p in people:
        bill.toggle_assignment(item.id, p.id)
    return item


class TestModels(unittest.TestCase):
    """Tests for the bill data model and its editing operations."""

    def setUp(self):
        self.bill, (self.ana, self.ben) = make_bill("Ana", "Ben")

    def test_add_person(self):
        self.assertEqual(len(self.bill.people), 2)
        self.assertEqual(self.ana.name, "Ana")
        self.assertNotEqual(self.ana.id, self.ben.id)

    def test_person_colors_follow_palette(self):
        self.assertEqual(self.ana.color, PERSON_COLORS[0])
        self.assertEqual(self.ben.color, PERSON_COLORS[1])

    def test_add_person_rejects_blank_name(self):
        with self.assertRaises(ValueError):
            self.bill.add_person("   ")

    def test_get_person_by_name(self):
        found = self.bill.get_person_by_name("ben")  # case insensitive
        self.assertIsNotNone(found)
        self.assertEqual(found.id, self.ben.id)

    def test_subtotal_follows_items(self):
        pizza = self.bill.add_item("Pizza", 30.0)
        wine = self.bill.add_item("Wine", 20.0)
        self.assertEqual(self.bill.subtotal, 50.0)

        self.bill.update_item(pizza.id, price=25.0)
        self.assertEqual(self.bill.subtotal, 45.0)

        self.bill.remove_item(wine.id)
        self.assertEqual(self.bill.subtotal, 25.0)

    def test_negative_price_rejected(self):
        with self.assertRaises(ValueError):
            self.bill.add_item("Refund", -5.0)
        item = self.bill.add_item("Soup", 5.0)
        with self.assertRaises(ValueError):
            self.bill.update_item(item.id, price=-1.0)

    def test_unknown_item(self):
        with self.assertRaises(KeyError):
            self.bill.remove_item("nope")

    def test_toggle_assignment(self):
        item = self.bill.add_item("Pizza", 30.0)

        self.assertTrue(self.bill.toggle_assignment(item.id, self.ana.id))
        self.assertEqual(item.assigned_to, [self.ana.id])
        self.assertEqual(item.shares, {self.ana.id: 1})

        self.assertFalse(self.bill.toggle_assignment(item.id, self.ana.id))
        self.assertEqual(item.assigned_to, [])
        self.assertEqual(item.shares, {})

    def test_set_share(self):
        item = add_assigned_item(self.bill, "Pizza", 30.0, self.ana)
        self.assertEqual(self.bill.set_share(item.id, self.ana.id, 3), 3)
        self.assertEqual(self.bill.set_share(item.id, self.ana.id, 0), 1)

    def test_set_share_requires_assignment(self):
        item = add_assigned_item(self.bill, "Pizza", 30.0, self.ana)
        with self.assertRaises(ValueError):
            self.bill.set_share(item.id, self.ben.id, 2)

    def test_weight_defaults_to_one(self):
        item = ReceiptItem(name="Fries", price=6.0, assigned_to=["x", "y"], shares={"x": 2})
        self.assertEqual(item.weight_of("x"), 2)
        self.assertEqual(item.weight_of("y"), 1)

    def test_cover_self_clears_assignment(self):
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))
        self.assertEqual(self.bill.cover_assignments, {self.ana.id: DirectPayer(self.ben.id)})

        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ana.id))
        self.assertEqual(self.bill.cover_assignments, {})

        self.bill.set_cover_assignment(self.ana.id, SplitAmongOthers())
        self.bill.set_cover_assignment(self.ana.id, None)
        self.assertEqual(self.bill.cover_assignments, {})

    def test_remove_person_drops_references(self):
        cleo = self.bill.add_person("Cleo")
        item = add_assigned_item(self.bill, "Pizza", 30.0, self.ana, self.ben)
        self.bill.set_share(item.id, self.ben.id, 2)
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))
        self.bill.set_cover_assignment(cleo.id, SplitAmongOthers())
        self.bill.set_cover_assignment(self.ben.id, DirectPayer(cleo.id))

        self.bill.remove_person(self.ben.id)

        self.assertIsNone(self.bill.get_person_by_id(self.ben.id))
        self.assertEqual(item.assigned_to, [self.ana.id])
        self.assertEqual(item.shares, {self.ana.id: 1})
        self.assertEqual(self.bill.cover_assignments, {cleo.id: SplitAmongOthers()})


class TestShareAllocator(unittest.TestCase):
    """Tests for per-item share allocation."""

    def setUp(self):
        self.bill, (self.ana, self.ben, self.cleo) = make_bill("Ana", "Ben", "Cleo")

    def test_even_split(self):
        item = add_assigned_item(self.bill, "Pizza", 30.0, self.ana, self.ben, self.cleo)
        for p in (self.ana, self.ben, self.cleo):
            self.assertEqual(item_cost_for(item, p.id), 10.0)

    def test_uneven_shares(self):
        item = add_assigned_item(self.bill, "Pizza", 30.0, self.ana, self.ben)
        self.bill.set_share(item.id, self.ana.id, 2)

        self.assertEqual(item_cost_for(item, self.ana.id), 20.0)
        self.assertEqual(item_cost_for(item, self.ben.id), 10.0)

    def test_not_assigned_costs_nothing(self):
        item = add_assigned_item(self.bill, "Pizza", 30.0, self.ana)
        self.assertEqual(item_cost_for(item, self.ben.id), 0.0)

    def test_orphaned_item(self):
        item = self.bill.add_item("Bread", 4.0)
        allocator = ShareAllocator(self.bill.items)

        for p in (self.ana, self.ben, self.cleo):
            self.assertEqual(item_cost_for(item, p.id), 0.0)
            self.assertEqual(allocator.person_item_total(p.id), 0.0)
        self.assertEqual(allocator.unassigned_items(), [item])
        self.assertEqual(self.bill.subtotal, 4.0)

    def test_zero_total_shares(self):
        item = ReceiptItem(name="Water", price=3.0, assigned_to=[self.ana.id], shares={self.ana.id: 0})
        self.assertEqual(total_shares(item), 0)
        self.assertEqual(item_cost_for(item, self.ana.id), 0.0)

    def test_person_item_total(self):
        add_assigned_item(self.bill, "Pizza", 30.0, self.ana, self.ben, self.cleo)
        add_assigned_item(self.bill, "Wine", 24.0, self.ana, self.ben)

        allocator = ShareAllocator(self.bill.items)
        self.assertAlmostEqual(allocator.person_item_total(self.ana.id), 22.0)
        self.assertAlmostEqual(allocator.person_item_total(self.cleo.id), 10.0)

    def test_item_breakdown(self):
        item = add_assigned_item(self.bill, "Wine", 24.0, self.ana, self.ben)
        self.bill.set_share(item.id, self.ben.id, 3)

        breakdown = ShareAllocator(self.bill.items).item_breakdown(item)
        self.assertEqual(breakdown, {self.ana.id: 6.0, self.ben.id: 18.0})

    def test_allocation_dataframe(self):
        add_assigned_item(self.bill, "Pizza", 30.0, self.ana, self.ben, self.cleo)
        self.bill.add_item("Bread", 4.0)

        df = ShareAllocator(self.bill.items).get_allocation_dataframe(self.bill.people)

        self.assertEqual(len(df), 2)
        self.assertEqual(list(df.columns), ['item', 'price', 'Ana', 'Ben', 'Cleo'])
        self.assertEqual(df.iloc[0]['Ana'], 10.0)
        self.assertEqual(df.iloc[1]['Ben'], 0.0)

    def test_allocation_dataframe_empty(self):
        df = ShareAllocator([]).get_allocation_dataframe(self.bill.people)
        self.assertTrue(df.empty)


class TestPersonTotals(unittest.TestCase):
    """Tests for raw per-person totals with tax and tip."""

    def setUp(self):
        self.bill, (self.ana, self.ben) = make_bill("Ana", "Ben")
        add_assigned_item(self.bill, "Steak", 60.0, self.ana)
        add_assigned_item(self.bill, "Salad", 40.0, self.ben)
        self.bill.tax = 10.0

    def test_percent_tip(self):
        self.bill.tip_type = TipType.PERCENT
        self.bill.tip_percentage = 15.0

        totals = compute_person_totals(self.ana.id, self.bill)
        self.assertAlmostEqual(totals.subtotal, 60.0)
        self.assertAlmostEqual(totals.tax, 6.0)
        self.assertAlmostEqual(totals.tip, 9.0)
        self.assertAlmostEqual(totals.total, 75.0)

    def test_amount_tip(self):
        self.bill.tip_type = TipType.AMOUNT
        self.bill.tip_amount = 20.0
        self.bill.tip_percentage = 50.0  # ignored for amount tips

        totals = compute_person_totals(self.ben.id, self.bill)
        self.assertAlmostEqual(totals.tax, 4.0)
        self.assertAlmostEqual(totals.tip, 8.0)
        self.assertAlmostEqual(totals.total, 52.0)

    def test_bill_totals(self):
        self.bill.tip_percentage = 20.0
        totals = calculate_bill_totals(self.bill)
        self.assertAlmostEqual(totals.final_tip, 20.0)
        self.assertAlmostEqual(totals.grand_total, 130.0)

    def test_zero_subtotal(self):
        bill, (ana,) = make_bill("Ana")
        bill.tax = 5.0
        bill.add_item("Free water", 0.0)

        totals = compute_person_totals(ana.id, bill)
        self.assertEqual(totals.total, 0.0)
        self.assertEqual(totals.tax, 0.0)

    def test_unknown_person(self):
        totals = compute_person_totals("ghost", self.bill)
        self.assertEqual(totals.total, 0.0)

    def test_conservation_without_coverage(self):
        bill, people = make_bill("Ana", "Ben", "Cleo", "Dan")
        ana, ben, cleo, dan = people
        item = add_assigned_item(bill, "Nachos", 17.35, ana, ben, cleo)
        bill.set_share(item.id, cleo.id, 3)
        add_assigned_item(bill, "Beer", 23.9, ben, dan)
        add_assigned_item(bill, "Cake", 9.99, dan)
        bill.tax = 4.44
        bill.tip_type = TipType.PERCENT
        bill.tip_percentage = 18.0

        splits = compute_final_splits(bill)
        bill_totals = calculate_bill_totals(bill)
        self.assertAlmostEqual(
            sum(splits.raw_totals.values()), bill_totals.grand_total, places=9
        )
        self.assertEqual(splits.raw_totals, splits.final_totals)
        self.assertEqual(splits.notes, {})


class TestCoverage(unittest.TestCase):
    """Tests for coverage redistribution."""

    def setUp(self):
        self.bill, people = make_bill("Ana", "Ben", "Cleo", "Dan")
        self.ana, self.ben, self.cleo, self.dan = people
        add_assigned_item(self.bill, "Pasta", 25.0, self.ana)
        add_assigned_item(self.bill, "Burger", 15.0, self.ben)
        add_assigned_item(self.bill, "Soup", 20.0, self.cleo)
        add_assigned_item(self.bill, "Lobster", 40.0, self.dan)

    def test_direct_coverage(self):
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))

        splits = compute_final_splits(self.bill)

        self.assertEqual(splits.raw_totals[self.ana.id], 25.0)
        self.assertEqual(splits.final_totals[self.ana.id], 0.0)
        self.assertEqual(splits.final_totals[self.ben.id], 40.0)
        self.assertEqual(splits.notes[self.ana.id], ["Covered by Ben"])
        self.assertEqual(splits.notes[self.ben.id], ["Covering Ana"])
        self.assertNotIn(self.cleo.id, splits.notes)

    def test_group_coverage(self):
        self.bill.set_cover_assignment(self.dan.id, SplitAmongOthers())

        splits = compute_final_splits(self.bill)

        self.assertEqual(splits.final_totals[self.dan.id], 0.0)
        self.assertEqual(splits.notes[self.dan.id], ["Covered by group"])
        for p in (self.ana, self.ben, self.cleo):
            self.assertAlmostEqual(
                splits.final_totals[p.id] - splits.raw_totals[p.id], 40.0 / 3
            )
            self.assertEqual(splits.notes[p.id], ["Covering Dan (split)"])

    def test_coverage_conserves_money(self):
        self.bill.tax = 8.0
        self.bill.tip_percentage = 20.0
        self.bill.set_cover_assignment(self.dan.id, SplitAmongOthers())
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.cleo.id))

        splits = compute_final_splits(self.bill)
        self.assertAlmostEqual(
            sum(splits.final_totals.values()), sum(splits.raw_totals.values()), places=9
        )

    def test_unknown_payer_ignored(self):
        self.bill.cover_assignments[self.ana.id] = DirectPayer("ghost")

        splits = compute_final_splits(self.bill)
        self.assertEqual(splits.final_totals, splits.raw_totals)
        self.assertEqual(splits.notes, {})

    def test_self_coverage_ignored(self):
        self.bill.cover_assignments[self.ana.id] = DirectPayer(self.ana.id)

        splits = compute_final_splits(self.bill)
        self.assertEqual(splits.final_totals, splits.raw_totals)
        self.assertEqual(splits.notes, {})

    def test_nothing_to_cover(self):
        eve = self.bill.add_person("Eve")
        self.bill.set_cover_assignment(eve.id, DirectPayer(self.ben.id))
        self.bill.set_cover_assignment(self.ana.id, SplitAmongOthers())
        self.bill.items[0].price = 0.0

        splits = compute_final_splits(self.bill)
        self.assertEqual(splits.final_totals, splits.raw_totals)
        self.assertEqual(splits.notes, {})

    def test_group_coverage_alone(self):
        bill, (solo,) = make_bill("Solo")
        add_assigned_item(bill, "Pie", 12.0, solo)
        bill.set_cover_assignment(solo.id, SplitAmongOthers())

        splits = compute_final_splits(bill)
        self.assertEqual(splits.final_totals[solo.id], 12.0)
        self.assertEqual(splits.notes, {})

    def test_chains_do_not_cascade(self):
        # Ana -> Ben and Ben -> Cleo: Ben keeps Ana's amount, Cleo takes Ben's own
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))
        self.bill.set_cover_assignment(self.ben.id, DirectPayer(self.cleo.id))

        splits = compute_final_splits(self.bill)

        self.assertEqual(splits.final_totals[self.ana.id], 0.0)
        self.assertEqual(splits.final_totals[self.ben.id], 25.0)
        self.assertEqual(splits.final_totals[self.cleo.id], 35.0)
        self.assertEqual(splits.notes[self.ben.id], ["Covering Ana", "Covered by Cleo"])
        self.assertAlmostEqual(
            sum(splits.final_totals.values()), sum(splits.raw_totals.values()), places=9
        )

    def test_chain_order_does_not_matter(self):
        self.bill.set_cover_assignment(self.ben.id, DirectPayer(self.cleo.id))
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))
        forward = compute_final_splits(self.bill)

        self.assertEqual(forward.final_totals[self.ben.id], 25.0)
        self.assertEqual(forward.final_totals[self.cleo.id], 35.0)
        self.assertEqual(forward.notes[self.ben.id], ["Covered by Cleo", "Covering Ana"])
        self.assertAlmostEqual(
            sum(forward.final_totals.values()), sum(forward.raw_totals.values()), places=9
        )

    def test_cycle(self):
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))
        self.bill.set_cover_assignment(self.ben.id, DirectPayer(self.ana.id))

        splits = compute_final_splits(self.bill)
        self.assertEqual(splits.final_totals[self.ana.id], 15.0)
        self.assertEqual(splits.final_totals[self.ben.id], 25.0)

    def test_idempotent(self):
        self.bill.tax = 7.77
        self.bill.tip_percentage = 12.5
        self.bill.set_cover_assignment(self.dan.id, SplitAmongOthers())
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))

        self.assertEqual(compute_final_splits(self.bill), compute_final_splits(self.bill))

    def test_does_not_mutate_bill(self):
        self.bill.set_cover_assignment(self.dan.id, SplitAmongOthers())
        before = repr(self.bill)
        compute_final_splits(self.bill)
        self.assertEqual(repr(self.bill), before)

    def test_covered_flags(self):
        self.bill.set_cover_assignment(self.ana.id, DirectPayer(self.ben.id))
        splits = compute_final_splits(self.bill)

        self.assertTrue(splits.is_covered(self.ana.id))
        self.assertFalse(splits.is_covering_others(self.ana.id))
        self.assertTrue(splits.is_covering_others(self.ben.id))
        self.assertFalse(splits.is_covered(self.ben.id))
        self.assertFalse(splits.is_covered(self.cleo.id))
        self.assertFalse(splits.is_covering_others(self.cleo.id))


class TestSettlementEngine(unittest.TestCase):
    """Tests for settlement presentation."""

    def setUp(self):
        self.bill, (self.ana, self.ben, self.cleo) = make_bill("Ana", "Ben", "Cleo")
        add_assigned_item(self.bill, "Pizza", 10.0, self.ana, self.ben, self.cleo)
        add_assigned_item(self.bill, "Wine", 20.0, self.ben)
        self.bill.set_cover_assignment(self.cleo.id, DirectPayer(self.ben.id))
        self.engine = SettlementEngine(self.bill)

    def test_splits_dataframe(self):
        df = self.engine.get_splits_dataframe()

        self.assertEqual(list(df['name']), ['Ana', 'Ben', 'Cleo'])
        self.assertIn('final_total', df.columns)
        self.assertIn('notes', df.columns)

        ana = df[df['name'] == 'Ana'].iloc[0]
        cleo = df[df['name'] == 'Cleo'].iloc[0]
        ben = df[df['name'] == 'Ben'].iloc[0]
        self.assertEqual(ana['final_total'], 3.33)
        self.assertEqual(cleo['final_total'], 0.0)
        self.assertTrue(cleo['is_covered'])
        self.assertTrue(ben['is_covering_others'])
        self.assertEqual(ben['notes'], ['Covering Cleo'])

    def test_splits_dataframe_empty(self):
        df = SettlementEngine(BillState()).get_splits_dataframe()
        self.assertTrue(df.empty)

    def test_settlement_summary(self):
        self.bill.add_item("Bread", 2.0)
        summary = self.engine.get_settlement_summary()

        self.assertIn("Ana: $3.33", summary)
        self.assertIn("Covered by Ben", summary)
        self.assertIn("Covering Cleo", summary)
        self.assertIn("Unassigned items: Bread", summary)
        self.assertIn("Grand total: $32.00", summary)

    def test_summary_without_people(self):
        self.assertEqual(
            SettlementEngine(BillState()).get_settlement_summary(),
            "Nobody is on this bill yet."
        )


if __name__ == '__main__':
    unittest.main()
