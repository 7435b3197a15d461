"""Line item value type."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from itertools import count

from quote_kernel.domain.values import ONE, ZERO, coerce_amount

_item_counter = count(1)


def new_item_id() -> str:
    """Fresh item id, unique within the process."""
    return f"item-{next(_item_counter)}"


@dataclass
class LineItem:
    """
    One priced line on a quotation.

    ``quantity`` and ``unit_price`` are always finite Decimals; anything
    else handed to the constructor is coerced to zero. Negative quantities
    are treated as invalid input.
    """

    id: str = field(default_factory=new_item_id)
    description: str = ""
    quantity: Decimal = ONE
    unit_price: Decimal = ZERO

    def __post_init__(self) -> None:
        self.description = "" if self.description is None else str(self.description)
        self.quantity = coerce_quantity(self.quantity)
        self.unit_price = coerce_amount(self.unit_price, "unit_price")


def coerce_quantity(value: object) -> Decimal:
    quantity = coerce_amount(value, "quantity")
    return quantity if quantity >= ZERO else ZERO
