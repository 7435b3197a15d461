"""
Quotation -- editable in-memory state of one quotation.

Responsibility:
    Holds line items, pricing policies and client metadata for a single
    quotation, and exposes derived totals that are recomputed from the
    current state on every read. Binds a quotation number exactly once,
    through the numbering sequencer, when an artifact has been produced.

Architecture position:
    Kernel > Domain. Depends on pricing (pure) and on the sequencer
    interface for finalize. Owned by exactly one editing session.

Invariants enforced:
    - Totals are never cached: ``compute_totals`` composes the pricing
      functions over the live item list each time.
    - Numeric edits are total: invalid input is coerced to zero, never
      stored as a non-number.
    - A quotation transitions to finalized exactly once. A repeated
      ``finalize`` returns the same bound number and never touches the
      counter again.
    - A failed commit leaves ``finalized`` unset, so a retry is possible.

Failure modes:
    - AlreadyFinalizedError on edits after finalization.
    - ItemNotFoundError when updating an unknown item id.
    - NumberingConflictError / PersistenceError from finalize (retryable).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable
from uuid import uuid4

from quote_kernel.domain.items import LineItem, coerce_quantity, new_item_id
from quote_kernel.domain.policies import (
    DiscountPolicy,
    MarginPolicy,
    TaxPolicy,
    TaxType,
)
from quote_kernel.domain.pricing import (
    apply_discount,
    apply_margin,
    grand_total,
    split_tax,
    subtotal,
)
from quote_kernel.domain.values import ZERO, parse_amount, round_display
from quote_kernel.exceptions import (
    AlreadyFinalizedError,
    InvalidInputError,
    ItemNotFoundError,
)
from quote_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from quote_kernel.services.sequence_service import NumberingSequencer, Reservation

logger = get_logger("domain.quotation")

# Accepted field names for update_item (wire names map onto attributes)
_ITEM_FIELDS = {
    "description": "description",
    "quantity": "quantity",
    "unit_price": "unit_price",
    "unitPrice": "unit_price",
}


@dataclass(frozen=True)
class QuotationTotals:
    """Derived monetary figures, full precision unless ``rounded()``."""

    subtotal: Decimal
    margin_adjusted_total: Decimal
    discount_amount: Decimal
    taxable_total: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal

    @property
    def margin_amount(self) -> Decimal:
        return self.margin_adjusted_total - self.subtotal

    def rounded(self) -> QuotationTotals:
        """Copy with every figure rounded for display."""
        return QuotationTotals(
            subtotal=round_display(self.subtotal),
            margin_adjusted_total=round_display(self.margin_adjusted_total),
            discount_amount=round_display(self.discount_amount),
            taxable_total=round_display(self.taxable_total),
            net_amount=round_display(self.net_amount),
            tax_amount=round_display(self.tax_amount),
            grand_total=round_display(self.grand_total),
        )


@dataclass(frozen=True)
class FinalizedQuotation:
    """A quotation number permanently bound to a quotation."""

    quotation_id: str
    quotation_number: str
    sequence_number: int
    totals: QuotationTotals


@dataclass
class ClientInfo:
    name: str = ""
    phone: str = ""
    email: str = ""


class Quotation:
    """
    Editable quotation.

    Usage:
        quotation = Quotation(tax_policy=TaxPolicy(TaxType.INCLUDED, 18))
        quotation.reserve_number(sequencer)
        item = quotation.add_item()
        quotation.update_item(item.id, "unit_price", "150")
        totals = quotation.compute_totals()
        finalized = quotation.finalize(sequencer)   # after export succeeds
    """

    def __init__(
        self,
        *,
        margin_policy: MarginPolicy | None = None,
        discount_policy: DiscountPolicy | None = None,
        tax_policy: TaxPolicy | None = None,
        currency_symbol: str = "S/",
        client: ClientInfo | None = None,
        items: Iterable[LineItem] = (),
        quotation_id: str | None = None,
    ):
        self.quotation_id = quotation_id or str(uuid4())
        self.margin_policy = margin_policy or MarginPolicy()
        self.discount_policy = discount_policy or DiscountPolicy()
        self.tax_policy = tax_policy or TaxPolicy(TaxType.INCLUDED, ZERO)
        self.currency_symbol = currency_symbol
        self.client = client or ClientInfo()
        self.payment_term_id: str = ""
        self.custom_payment_term: str = ""
        self.payment_method_id: str = ""
        self.custom_payment_method: str = ""
        self._items: list[LineItem] = list(items)
        self._reservation: Reservation | None = None
        self._finalized: FinalizedQuotation | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple[LineItem, ...]:
        return tuple(self._items)

    @property
    def finalized(self) -> bool:
        return self._finalized is not None

    @property
    def finalized_quotation(self) -> FinalizedQuotation | None:
        return self._finalized

    @property
    def quotation_number(self) -> str:
        """Bound number once finalized, otherwise the reserved display number."""
        if self._finalized is not None:
            return self._finalized.quotation_number
        if self._reservation is not None:
            return self._reservation.formatted
        return ""

    def _ensure_editable(self) -> None:
        if self._finalized is not None:
            raise AlreadyFinalizedError(
                self.quotation_id, self._finalized.quotation_number
            )

    # ------------------------------------------------------------------
    # Item edits
    # ------------------------------------------------------------------

    def add_item(self) -> LineItem:
        """Append an empty item (quantity 1, unit price 0)."""
        self._ensure_editable()
        item = LineItem(id=new_item_id())
        self._items.append(item)
        return item

    def remove_item(self, item_id: str) -> None:
        """Remove the item; unknown ids are ignored."""
        self._ensure_editable()
        self._items = [item for item in self._items if item.id != item_id]

    def update_item(self, item_id: str, field_name: str, value: object) -> LineItem:
        """
        Set one field of one item.

        Numeric fields accept anything; unparseable values become zero.

        Raises:
            ValueError: If ``field_name`` is not an item field.
            ItemNotFoundError: If no item has ``item_id``.
        """
        self._ensure_editable()
        attr = _ITEM_FIELDS.get(field_name)
        if attr is None:
            raise ValueError(f"Unknown line item field: {field_name}")

        item = self._find(item_id)
        if attr == "description":
            item.description = "" if value is None else str(value)
        elif attr == "quantity":
            item.quantity = coerce_quantity(self._checked_amount(item_id, attr, value))
        else:
            item.unit_price = self._checked_amount(item_id, attr, value)
        return item

    def import_items(self, items: Iterable[LineItem]) -> None:
        """Replace all items, e.g. with an extraction result."""
        self._ensure_editable()
        self._items = list(items)

    def _find(self, item_id: str) -> LineItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise ItemNotFoundError(item_id)

    def _checked_amount(self, item_id: str, attr: str, value: object) -> Decimal:
        try:
            return parse_amount(value, attr)
        except InvalidInputError as e:
            logger.info(
                "invalid_numeric_input_coerced",
                extra={
                    "code": e.code,
                    "item_id": item_id,
                    "field": attr,
                    "raw_value": e.value,
                },
            )
            return ZERO

    # ------------------------------------------------------------------
    # Policies and metadata
    # ------------------------------------------------------------------

    def set_margin_policy(self, policy: MarginPolicy) -> None:
        self._ensure_editable()
        self.margin_policy = policy

    def set_discount_policy(self, policy: DiscountPolicy) -> None:
        self._ensure_editable()
        self.discount_policy = policy

    def set_tax_policy(self, policy: TaxPolicy) -> None:
        self._ensure_editable()
        self.tax_policy = policy

    def set_client(self, name: str = "", phone: str = "", email: str = "") -> None:
        self._ensure_editable()
        self.client = ClientInfo(name=name, phone=phone, email=email)

    def select_payment_term(self, term_id: str, custom_text: str = "") -> None:
        """Pick a predefined term by id, or ``"other"`` with free text."""
        self._ensure_editable()
        self.payment_term_id = term_id
        self.custom_payment_term = custom_text

    def select_payment_method(self, method_id: str, custom_text: str = "") -> None:
        self._ensure_editable()
        self.payment_method_id = method_id
        self.custom_payment_method = custom_text

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def compute_totals(self) -> QuotationTotals:
        """subtotal -> margin -> discount -> tax split -> grand total."""
        base = subtotal(self._items)
        adjusted = apply_margin(base, self.margin_policy)
        discount = apply_discount(adjusted, self.discount_policy)
        split = split_tax(
            discount.discounted_total, self.tax_policy.rate, self.tax_policy.type
        )
        return QuotationTotals(
            subtotal=base,
            margin_adjusted_total=adjusted,
            discount_amount=discount.discount_amount,
            taxable_total=discount.discounted_total,
            net_amount=split.net_amount,
            tax_amount=split.tax_amount,
            grand_total=grand_total(
                discount.discounted_total, self.tax_policy.type, split.tax_amount
            ),
        )

    # ------------------------------------------------------------------
    # Numbering
    # ------------------------------------------------------------------

    def reserve_number(self, sequencer: NumberingSequencer) -> str:
        """Take the sequencer's current number as this quotation's display number."""
        self._ensure_editable()
        self._reservation = sequencer.reserve()
        return self._reservation.formatted

    def refresh_number(self, sequencer: NumberingSequencer) -> str:
        """Re-peek after a NumberingConflictError; same as reserve_number."""
        return self.reserve_number(sequencer)

    def check_number(self, sequencer: NumberingSequencer) -> None:
        """
        Raise NumberingConflictError if the displayed number was consumed.

        No-op once finalized or before a number is reserved.
        """
        if self._finalized is None and self._reservation is not None:
            sequencer.verify(self._reservation)

    def bind_number(self, sequencer: NumberingSequencer) -> FinalizedQuotation:
        """
        Commit the reserved number and mark the quotation finalized.

        Raises:
            AlreadyFinalizedError: If a number is already bound.
            NumberingConflictError: If the counter moved since reservation.
            PersistenceError: If the store could not be written.
        """
        self._ensure_editable()
        if self._reservation is None:
            self._reservation = sequencer.reserve()
        reservation = self._reservation

        sequencer.commit(reservation)

        self._finalized = FinalizedQuotation(
            quotation_id=self.quotation_id,
            quotation_number=reservation.formatted,
            sequence_number=reservation.number,
            totals=self.compute_totals(),
        )
        logger.info(
            "quotation_finalized",
            extra={
                "quotation_id": self.quotation_id,
                "quotation_number": reservation.formatted,
                "grand_total": str(round_display(self._finalized.totals.grand_total)),
            },
        )
        return self._finalized

    def finalize(self, sequencer: NumberingSequencer) -> FinalizedQuotation:
        """
        Bind the quotation number; idempotent.

        A second call returns the already-bound result without calling
        ``commit()`` again.
        """
        try:
            return self.bind_number(sequencer)
        except AlreadyFinalizedError as e:
            logger.debug(
                "quotation_finalize_idempotent",
                extra={
                    "quotation_id": e.quotation_id,
                    "quotation_number": e.quotation_number,
                },
            )
            assert self._finalized is not None
            return self._finalized
