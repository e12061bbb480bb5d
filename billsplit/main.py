"""
Bill Splitter - CLI Interface

Split a restaurant receipt between friends, including uneven shares and
people covering for each other.
"""
import copy
import sys
from typing import Optional

from .allocation import ShareAllocator
from .config import HISTORY_PATH, configure_logging
from .history import (
    BillHistoryRepository,
    InMemoryHistoryRepository,
    JsonFileHistoryRepository,
    find_record,
    save_bill,
)
from .models import (
    BillState,
    BillStatus,
    DirectPayer,
    Person,
    ReceiptItem,
    SplitAmongOthers,
    TipType,
)
from .receipt_parser import (
    ReceiptParseError,
    ReceiptParser,
    bill_state_from_parse_result,
    run_async,
)
from .settlement import SettlementEngine


def new_bill() -> BillState:
    return BillState(people=[Person(name="Me")])


class BillSplitterApp:
    """Main application class for the Bill Splitter."""

    def __init__(self, repository: Optional[BillHistoryRepository] = None):
        self.repository = repository or JsonFileHistoryRepository(HISTORY_PATH)
        self.bill = new_bill()
        self.bill_id: Optional[str] = None
        self.status = BillStatus.DRAFT
        self.parser: Optional[ReceiptParser] = None

    def _editable(self) -> bool:
        if self.status == BillStatus.FINALIZED:
            print("Error: This bill is finalized and can no longer be edited.")
            return False
        return True

    def _find_person(self, name: str) -> Optional[Person]:
        person = self.bill.get_person_by_name(name)
        if not person:
            print(f"Error: Person '{name}' not found!")
        return person

    def _find_item(self, number: int) -> Optional[ReceiptItem]:
        if 1 <= number <= len(self.bill.items):
            return self.bill.items[number - 1]
        print(f"Error: No item #{number}!")
        return None

    def start_new_bill(self) -> None:
        """Save the current draft (if any) and start over."""
        if self.status == BillStatus.DRAFT:
            save_bill(self.repository, self.bill, BillStatus.DRAFT, self.bill_id)
        self.bill = new_bill()
        self.bill_id = None
        self.status = BillStatus.DRAFT
        print("Started a new bill")

    def add_person(self, name: str) -> None:
        """Add a person to the bill."""
        if not self._editable():
            return
        try:
            p = self.bill.add_person(name)
        except ValueError as e:
            print(f"Error: {e}")
            return
        print(f"Added: {p.name}")

    def remove_person(self, name: str) -> None:
        if not self._editable():
            return
        person = self._find_person(name)
        if person:
            self.bill.remove_person(person.id)
            print(f"Removed: {person.name}")

    def add_item(self, name: str, price: float) -> None:
        """Add an item by hand."""
        if not self._editable():
            return
        try:
            item = self.bill.add_item(name, price)
        except ValueError as e:
            print(f"Error: {e}")
            return
        print(f"Added item #{len(self.bill.items)}: {item.name} "
              f"({self.bill.currency}{item.price:.2f})")

    def toggle_assignment(self, item_number: int, name: str) -> None:
        """Assign a person to an item, or unassign them."""
        if not self._editable():
            return
        item = self._find_item(item_number)
        person = self._find_person(name)
        if not item or not person:
            return
        if self.bill.toggle_assignment(item.id, person.id):
            print(f"{person.name} shares {item.name}")
        else:
            print(f"{person.name} no longer shares {item.name}")

    def set_share(self, item_number: int, name: str, weight: int) -> None:
        if not self._editable():
            return
        item = self._find_item(item_number)
        person = self._find_person(name)
        if not item or not person:
            return
        try:
            weight = self.bill.set_share(item.id, person.id, weight)
        except ValueError as e:
            print(f"Error: {e}")
            return
        print(f"{person.name} has {weight} share(s) of {item.name}")

    def set_tax(self, amount: float) -> None:
        if not self._editable():
            return
        if amount < 0:
            print("Error: Tax must not be negative!")
            return
        self.bill.tax = amount

    def set_tip(self, value: str) -> None:
        """Set the tip as a percentage ('18%') or a fixed amount ('12.50')."""
        if not self._editable():
            return
        try:
            if value.endswith("%"):
                pct = float(value[:-1])
                if pct < 0:
                    raise ValueError("Tip must not be negative")
                self.bill.tip_type = TipType.PERCENT
                self.bill.tip_percentage = pct
            else:
                amount = float(value)
                if amount < 0:
                    raise ValueError("Tip must not be negative")
                self.bill.tip_type = TipType.AMOUNT
                self.bill.tip_amount = amount
        except ValueError as e:
            print(f"Error: {e}")

    def set_cover(self, name: str, payer_name: str) -> None:
        """
        Set who pays for someone.

        payer_name is another person's name, 'all' to split it among
        everyone else, or 'self' to clear the rule.
        """
        if not self._editable():
            return
        person = self._find_person(name)
        if not person:
            return

        if payer_name.lower() == "all":
            self.bill.set_cover_assignment(person.id, SplitAmongOthers())
            print(f"{person.name} is covered by the group")
        elif payer_name.lower() == "self":
            self.bill.set_cover_assignment(person.id, None)
            print(f"{person.name} pays for themselves")
        else:
            payer = self._find_person(payer_name)
            if not payer:
                return
            self.bill.set_cover_assignment(person.id, DirectPayer(payer.id))
            print(f"{person.name} is covered by {payer.name}")

    def cover_command(self, words: list[str]) -> None:
        """
        Handle 'cover <name> <payer|all|self>' where names may contain spaces.

        The words are split at the first point where both sides name someone
        on the bill (or the payer side is 'all' / 'self').
        """
        if len(words) < 2:
            print("Error: Usage: cover <name> <payer|all|self>")
            return
        for i in range(1, len(words)):
            name, payer = " ".join(words[:i]), " ".join(words[i:])
            if not self.bill.get_person_by_name(name):
                continue
            if payer.lower() in ("all", "self") or self.bill.get_person_by_name(payer):
                self.set_cover(name, payer)
                return
        self.set_cover(" ".join(words[:-1]), words[-1])

    def show_items(self) -> None:
        """Display all items and who shares them."""
        print("\n--- Items ---")
        df = ShareAllocator(self.bill.items).get_allocation_dataframe(self.bill.people)
        if df.empty:
            print("No items yet")
            return

        for number, (item, (_, row)) in enumerate(zip(self.bill.items, df.iterrows()), 1):
            names = [
                f"{p.name} x{item.weight_of(p.id)}" if item.weight_of(p.id) > 1 else p.name
                for p in self.bill.people if p.id in item.assigned_to
            ]
            who = ", ".join(names) if names else "unassigned"
            print(f"  #{number} {row['item']}: {self.bill.currency}{row['price']:.2f} ({who})")
        print()

    def show_split(self) -> None:
        """Display what everyone pays."""
        print()
        print(SettlementEngine(self.bill).get_settlement_summary())
        print()

    def scan_receipt(self, path: str) -> None:
        """Start a new bill from a receipt photo."""
        if not self.parser:
            self.parser = ReceiptParser()

        print("Analyzing receipt...")
        try:
            result = run_async(self.parser.parse_receipt_file(path))
        except (ReceiptParseError, OSError) as e:
            print(f"Failed to process receipt: {e}")
            return

        self.bill = bill_state_from_parse_result(result)
        self.bill_id = None
        self.status = BillStatus.DRAFT
        print(f"Found {len(result.items)} items")
        self.show_items()

    def save(self, status: BillStatus = BillStatus.DRAFT) -> None:
        if not self._editable():
            return
        record = save_bill(self.repository, self.bill, status, self.bill_id)
        if not record:
            print("Nothing to save - add some items first.")
            return
        self.bill_id = record.id
        self.status = record.status
        print(f"Saved {record.id} ({record.status.value})")

    def finalize(self) -> None:
        self.save(BillStatus.FINALIZED)

    def show_history(self) -> None:
        print("\n--- History ---")
        records = self.repository.load()
        if not records:
            print("No history yet")
            return

        for r in records:
            print(f"  {r.id} [{r.status.value}] {r.date[:16]}: "
                  f"{r.state.currency}{r.total:.2f} ({len(r.state.people)} people)")
        print()

    def load_bill(self, bill_id: str) -> None:
        record = find_record(self.repository, bill_id)
        if not record:
            print(f"Error: Bill '{bill_id}' not found!")
            return
        self.bill = copy.deepcopy(record.state)
        self.bill_id = record.id
        self.status = record.status
        print(f"Loaded {record.id} ({record.status.value})")


def interactive_mode():
    """Run the application in interactive mode."""
    app = BillSplitterApp()

    print("=" * 50)
    print("  Bill Splitter - Interactive Mode")
    print("=" * 50)
    print("\nCommands:")
    print("  person <name>              - Add person")
    print("  remove <name>              - Remove person")
    print("  item <price> <name>        - Add item")
    print("  assign <item#> <name>      - Toggle who shares an item")
    print("  share <item#> <name> <n>   - Set someone's shares of an item")
    print("  tax <amt>                  - Set tax")
    print("  tip <pct>% | <amt>         - Set tip")
    print("  cover <name> <payer|all|self> - Set who pays for someone (names may have spaces)")
    print("  items                      - Show items")
    print("  split                      - Show who pays what")
    print("  scan <image>               - Read items from a receipt photo")
    print("  save | finalize            - Save to history")
    print("  history | load <id>        - Browse history")
    print("  new                        - Start a new bill")
    print("  quit                       - Exit")
    print()

    while True:
        try:
            cmd = input("> ").strip().split()
            if not cmd:
                continue

            action = cmd[0].lower()

            if action == "quit" or action == "exit":
                print("Goodbye!")
                break
            elif action == "person" and len(cmd) >= 2:
                app.add_person(" ".join(cmd[1:]))
            elif action == "remove" and len(cmd) >= 2:
                app.remove_person(" ".join(cmd[1:]))
            elif action == "item" and len(cmd) >= 3:
                app.add_item(" ".join(cmd[2:]), float(cmd[1]))
            elif action == "assign" and len(cmd) >= 3:
                app.toggle_assignment(int(cmd[1]), " ".join(cmd[2:]))
            elif action == "share" and len(cmd) >= 4:
                app.set_share(int(cmd[1]), " ".join(cmd[2:-1]), int(cmd[-1]))
            elif action == "tax" and len(cmd) == 2:
                app.set_tax(float(cmd[1]))
            elif action == "tip" and len(cmd) == 2:
                app.set_tip(cmd[1])
            elif action == "cover" and len(cmd) >= 3:
                app.cover_command(cmd[1:])
            elif action == "items":
                app.show_items()
            elif action == "split":
                app.show_split()
            elif action == "scan" and len(cmd) >= 2:
                app.scan_receipt(" ".join(cmd[1:]))
            elif action == "save":
                app.save()
            elif action == "finalize":
                app.finalize()
            elif action == "history":
                app.show_history()
            elif action == "load" and len(cmd) == 2:
                app.load_bill(cmd[1])
            elif action == "new":
                app.start_new_bill()
            else:
                print("Unknown command. Type 'quit' to exit.")

        except KeyboardInterrupt:
            print("\nGoodbye!")
            break
        except Exception as e:
            print(f"Error: {e}")


def demo():
    """Run a demonstration of the bill splitter."""
    print("=" * 50)
    print("  Bill Splitter - Demo")
    print("=" * 50)

    app = BillSplitterApp(InMemoryHistoryRepository())

    # People
    app.add_person("Ana")
    app.add_person("Ben")
    app.add_person("Cleo")

    # Items
    app.add_item("Pizza", 30.00)
    app.add_item("Wine", 40.00)
    app.add_item("Salad", 12.00)

    for name in ("Me", "Ana", "Ben", "Cleo"):
        app.toggle_assignment(1, name)
    app.toggle_assignment(2, "Ana")
    app.toggle_assignment(2, "Ben")
    app.set_share(2, "Ana", 2)
    app.toggle_assignment(3, "Cleo")

    app.set_tax(6.56)
    app.set_tip("18%")

    # It's Cleo's birthday, and Ben pays for me
    app.set_cover("Cleo", "all")
    app.set_cover("Me", "Ben")

    app.show_items()
    app.show_split()
    app.finalize()
    app.show_history()


def main():
    configure_logging()
    if len(sys.argv) > 1 and sys.argv[1] == "--demo":
        demo()
    else:
        interactive_mode()


if __name__ == "__main__":
    main()
