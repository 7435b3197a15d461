"""
Pricing policies -- margin, discount and tax treatment value objects.

Immutable, self-validating policy types consumed by the pricing functions.
Values are Decimal; construction coerces other numeric input the same way
line items do, except for the tax rate, whose range is a hard guard.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from quote_kernel.domain.values import ZERO, coerce_amount
from quote_kernel.exceptions import InvalidPolicyError


class MarginType(str, Enum):
    """How the margin is applied to the subtotal."""

    PERCENTAGE = "percentage"  # subtotal * (1 + value/100)
    FIXED = "fixed"  # subtotal + value, once per document


class DiscountType(str, Enum):
    """How a discount is taken off the margin-adjusted total."""

    PERCENTAGE = "percentage"
    AMOUNT = "amount"


class TaxType(str, Enum):
    """Whether prices already contain tax."""

    INCLUDED = "included"  # tax extracted from the total
    ADDED = "added"  # tax computed on top of the total


@dataclass(frozen=True)
class MarginPolicy:
    """
    Margin (markup) policy.

    Negative values are permitted and act as a discount.
    """

    type: MarginType = MarginType.PERCENTAGE
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", MarginType(self.type))
        object.__setattr__(self, "value", coerce_amount(self.value, "margin.value"))


@dataclass(frozen=True)
class DiscountPolicy:
    """Document-level discount; the default takes nothing off."""

    type: DiscountType = DiscountType.AMOUNT
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", DiscountType(self.type))
        object.__setattr__(self, "value", coerce_amount(self.value, "discount.value"))


@dataclass(frozen=True)
class TaxPolicy:
    """
    Tax treatment.

    ``rate`` is a percentage (18 for 18%). It must be >= 0 so that the
    INCLUDED divisor ``1 + rate/100`` is never below one.
    """

    type: TaxType = TaxType.INCLUDED
    rate: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", TaxType(self.type))
        rate = coerce_amount(self.rate, "tax.rate")
        if rate < ZERO:
            raise InvalidPolicyError("tax.rate", self.rate, "tax rate cannot be negative")
        object.__setattr__(self, "rate", rate)
