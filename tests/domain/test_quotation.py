"""
Tests for the Quotation model.

Covers:
- Item edits (add / remove / update, coercion of invalid input)
- Derived totals recomputed on every read
- Finalize: idempotence, failure leaves the quotation retryable
- Edits after finalization
"""

from decimal import Decimal

import pytest

from quote_kernel.domain.items import LineItem
from quote_kernel.domain.policies import (
    DiscountPolicy,
    DiscountType,
    MarginPolicy,
    MarginType,
    TaxPolicy,
    TaxType,
)
from quote_kernel.domain.quotation import Quotation
from quote_kernel.exceptions import (
    AlreadyFinalizedError,
    ItemNotFoundError,
    NumberingConflictError,
    PersistenceError,
)
from quote_kernel.services.sequence_service import (
    CounterStore,
    NumberingSequencer,
    NumberingState,
)


class CountingStore(CounterStore):
    """In-memory counter that counts commits and can be told to fail."""

    def __init__(self, next_number: int = 1):
        self.next_number = next_number
        self.commits = 0
        self.fail_with: Exception | None = None

    def read_numbering(self) -> NumberingState:
        return NumberingState(prefix="COT-", next_number=self.next_number)

    def compare_and_set_next_number(self, expected: int) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        if self.next_number != expected:
            raise NumberingConflictError("memory", expected, self.next_number)
        self.commits += 1
        self.next_number = expected + 1
        return self.next_number


def _populated(margin=MarginPolicy(MarginType.PERCENTAGE, 20), tax=TaxPolicy(TaxType.INCLUDED, 18)):
    quotation = Quotation(margin_policy=margin, tax_policy=tax)
    for quantity, price in (("2", "150"), ("1", "300.5"), ("5", "25.25")):
        item = quotation.add_item()
        quotation.update_item(item.id, "quantity", quantity)
        quotation.update_item(item.id, "unitPrice", price)
    return quotation


class TestItemEdits:
    """Tests for add_item / remove_item / update_item."""

    def test_add_item_defaults(self):
        quotation = Quotation()
        item = quotation.add_item()
        assert item.description == ""
        assert item.quantity == Decimal("1")
        assert item.unit_price == Decimal("0")
        assert quotation.items == (item,)

    def test_add_item_fresh_ids(self):
        quotation = Quotation()
        ids = {quotation.add_item().id for _ in range(5)}
        assert len(ids) == 5

    def test_remove_item(self):
        quotation = Quotation()
        first = quotation.add_item()
        second = quotation.add_item()
        quotation.remove_item(first.id)
        assert [i.id for i in quotation.items] == [second.id]

    def test_remove_missing_item_is_noop(self):
        quotation = Quotation()
        quotation.add_item()
        quotation.remove_item("does-not-exist")
        assert len(quotation.items) == 1

    def test_update_description(self):
        quotation = Quotation()
        item = quotation.add_item()
        quotation.update_item(item.id, "description", "Cable UTP")
        assert quotation.items[0].description == "Cable UTP"

    @pytest.mark.parametrize("raw", ["abc", None, float("nan"), float("inf"), "", True])
    def test_invalid_numeric_input_coerced_to_zero(self, raw):
        quotation = Quotation()
        item = quotation.add_item()
        quotation.update_item(item.id, "unit_price", raw)
        quotation.update_item(item.id, "quantity", raw)
        assert quotation.items[0].unit_price == Decimal("0")
        assert quotation.items[0].quantity == Decimal("0")

    def test_invalid_input_is_logged(self, captured_logs):
        quotation = Quotation()
        item = quotation.add_item()
        quotation.update_item(item.id, "unit_price", "abc")

        records = [r for r in captured_logs() if r["message"] == "invalid_numeric_input_coerced"]
        assert len(records) == 1
        assert records[0]["code"] == "INVALID_INPUT"
        assert records[0]["field"] == "unit_price"

    def test_unknown_field_raises(self):
        quotation = Quotation()
        item = quotation.add_item()
        with pytest.raises(ValueError):
            quotation.update_item(item.id, "colour", "red")

    def test_unknown_item_raises(self):
        quotation = Quotation()
        with pytest.raises(ItemNotFoundError) as exc_info:
            quotation.update_item("item-missing", "quantity", 2)
        assert exc_info.value.item_id == "item-missing"

    def test_import_items_replaces(self):
        quotation = _populated()
        quotation.import_items([LineItem(description="Solo", quantity=1, unit_price=10)])
        assert [i.description for i in quotation.items] == ["Solo"]


class TestComputeTotals:
    """Totals follow subtotal -> margin -> discount -> tax."""

    def test_worked_example_included(self):
        totals = _populated().compute_totals().rounded()
        assert totals.subtotal == Decimal("726.75")
        assert totals.margin_adjusted_total == Decimal("872.10")
        assert totals.net_amount == Decimal("739.07")
        assert totals.tax_amount == Decimal("133.03")
        assert totals.grand_total == Decimal("872.10")

    def test_worked_example_added(self):
        quotation = _populated(tax=TaxPolicy(TaxType.ADDED, 18))
        totals = quotation.compute_totals().rounded()
        assert totals.net_amount == Decimal("872.10")
        assert totals.tax_amount == Decimal("156.98")
        assert totals.grand_total == Decimal("1029.08")

    def test_fixed_margin(self):
        quotation = _populated(margin=MarginPolicy(MarginType.FIXED, 50))
        totals = quotation.compute_totals()
        assert totals.margin_adjusted_total == Decimal("776.75")
        assert totals.margin_amount == Decimal("50")

    def test_totals_recomputed_after_edit(self):
        quotation = _populated()
        before = quotation.compute_totals()
        item = quotation.items[0]
        quotation.update_item(item.id, "quantity", 3)
        after = quotation.compute_totals()
        assert after.subtotal == before.subtotal + Decimal("150")

    def test_policy_change_reflected(self):
        quotation = _populated()
        quotation.set_tax_policy(TaxPolicy(TaxType.ADDED, 18))
        assert quotation.compute_totals().grand_total > quotation.compute_totals().taxable_total

    def test_discount_applied_before_tax(self):
        quotation = _populated(tax=TaxPolicy(TaxType.ADDED, 10))
        quotation.set_discount_policy(DiscountPolicy(DiscountType.AMOUNT, "72.1"))
        totals = quotation.compute_totals()
        assert totals.taxable_total == Decimal("800.0")
        assert totals.tax_amount == Decimal("80.00")
        assert totals.grand_total == Decimal("880.00")

    def test_empty_quotation(self):
        totals = Quotation(tax_policy=TaxPolicy(TaxType.INCLUDED, 18)).compute_totals()
        assert totals.grand_total == Decimal("0")
        assert totals.tax_amount == Decimal("0")


class TestFinalize:
    """Number binding through the sequencer."""

    def setup_method(self):
        self.store = CountingStore()
        self.sequencer = NumberingSequencer(self.store)

    def test_finalize_binds_reserved_number(self):
        quotation = _populated()
        assert quotation.reserve_number(self.sequencer) == "COT-0001"
        finalized = quotation.finalize(self.sequencer)

        assert finalized.quotation_number == "COT-0001"
        assert finalized.sequence_number == 1
        assert quotation.finalized
        assert self.store.next_number == 2

    def test_finalize_twice_commits_once(self):
        quotation = _populated()
        first = quotation.finalize(self.sequencer)
        second = quotation.finalize(self.sequencer)

        assert first == second
        assert first.quotation_number == "COT-0001"
        assert self.store.commits == 1
        assert self.store.next_number == 2

    def test_finalized_totals_snapshot(self):
        quotation = _populated()
        finalized = quotation.finalize(self.sequencer)
        assert finalized.totals == quotation.compute_totals()

    def test_edits_after_finalize_rejected(self):
        quotation = _populated()
        quotation.finalize(self.sequencer)

        with pytest.raises(AlreadyFinalizedError) as exc_info:
            quotation.add_item()
        assert exc_info.value.quotation_number == "COT-0001"
        with pytest.raises(AlreadyFinalizedError):
            quotation.set_margin_policy(MarginPolicy(MarginType.FIXED, 1))
        with pytest.raises(AlreadyFinalizedError):
            quotation.update_item(quotation.items[0].id, "quantity", 9)

    def test_bind_number_twice_raises(self):
        quotation = _populated()
        quotation.bind_number(self.sequencer)
        with pytest.raises(AlreadyFinalizedError):
            quotation.bind_number(self.sequencer)

    def test_persistence_failure_leaves_unfinalized(self):
        quotation = _populated()
        quotation.reserve_number(self.sequencer)
        self.store.fail_with = PersistenceError("commit_quotation_number", "database down")

        with pytest.raises(PersistenceError):
            quotation.finalize(self.sequencer)
        assert not quotation.finalized
        assert self.store.next_number == 1

        self.store.fail_with = None
        assert quotation.finalize(self.sequencer).quotation_number == "COT-0001"

    def test_conflict_then_refresh(self):
        quotation = _populated()
        quotation.reserve_number(self.sequencer)
        self.store.next_number = 5

        with pytest.raises(NumberingConflictError):
            quotation.finalize(self.sequencer)
        assert not quotation.finalized

        assert quotation.refresh_number(self.sequencer) == "COT-0005"
        assert quotation.finalize(self.sequencer).quotation_number == "COT-0005"
        assert self.store.next_number == 6

    def test_finalize_logs(self, captured_logs):
        quotation = _populated()
        quotation.finalize(self.sequencer)
        quotation.finalize(self.sequencer)

        messages = [r["message"] for r in captured_logs()]
        assert messages.count("quotation_finalized") == 1
        assert "quotation_finalize_idempotent" in messages

    def test_check_number_detects_consumed_number(self):
        quotation = _populated()
        quotation.reserve_number(self.sequencer)
        quotation.check_number(self.sequencer)

        self.store.next_number = 2
        with pytest.raises(NumberingConflictError) as exc_info:
            quotation.check_number(self.sequencer)
        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        assert self.store.commits == 0

    def test_check_number_noop_without_reservation_or_after_finalize(self):
        quotation = _populated()
        self.store.next_number = 7
        quotation.check_number(self.sequencer)

        quotation.finalize(self.sequencer)
        self.store.next_number = 20
        quotation.check_number(self.sequencer)
