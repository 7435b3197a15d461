"""
Pricing -- pure money arithmetic for quotations.

Responsibility:
    Line totals, margin application, discount, tax split and grand total.
    Every function is pure: Decimal in, Decimal out, no shared state, no
    rounding. ``round_display`` is applied by presentation code only.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Composed in order by ``Quotation.compute_totals``:
    subtotal -> apply_margin -> apply_discount -> split_tax -> grand_total.

Invariants enforced:
    - Total functions: inputs are already coerced (see values.py), so no
      function here raises on arithmetic.
    - TaxPolicy guarantees rate >= 0, so the INCLUDED divisor is >= 1.
    - FIXED margin is document level only: ``per_item_final_price`` leaves
      the line total unchanged, so per-row prices do not sum to the
      margin-adjusted total under FIXED margin.

Usage:
    from decimal import Decimal
    from quote_kernel.domain.items import LineItem
    from quote_kernel.domain.policies import MarginPolicy, MarginType, TaxType

    items = [LineItem(quantity=2, unit_price=Decimal("150"))]
    base = subtotal(items)                                   # 300
    adjusted = apply_margin(base, MarginPolicy(MarginType.PERCENTAGE, 20))
    split = split_tax(adjusted, Decimal("18"), TaxType.INCLUDED)
    total = grand_total(adjusted, TaxType.INCLUDED, split.tax_amount)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from quote_kernel.domain.items import LineItem
from quote_kernel.domain.policies import (
    DiscountPolicy,
    DiscountType,
    MarginPolicy,
    MarginType,
    TaxType,
)
from quote_kernel.domain.values import HUNDRED, ONE, ZERO


@dataclass(frozen=True)
class TaxSplit:
    """Net amount and tax amount extracted from (or added to) a total."""

    net_amount: Decimal
    tax_amount: Decimal


@dataclass(frozen=True)
class DiscountResult:
    """Discount actually taken and the total left after it."""

    discount_amount: Decimal
    discounted_total: Decimal


def line_total(item: LineItem) -> Decimal:
    """quantity * unit_price."""
    return item.quantity * item.unit_price


def subtotal(items: Iterable[LineItem]) -> Decimal:
    """Sum of line totals; an empty sequence yields zero."""
    return sum((line_total(item) for item in items), ZERO)


def _margin_factor(policy: MarginPolicy) -> Decimal:
    return ONE + policy.value / HUNDRED


def apply_margin(base: Decimal, policy: MarginPolicy) -> Decimal:
    """Apply the margin once to the pre-margin subtotal."""
    if policy.type == MarginType.PERCENTAGE:
        return base * _margin_factor(policy)
    return base + policy.value


def per_item_final_price(item: LineItem, policy: MarginPolicy) -> Decimal:
    """
    Row price shown on the document.

    PERCENTAGE margin is distributed proportionally per row. FIXED margin
    is a single document-level amount and is not distributed, so the row
    keeps its unmodified line total.
    """
    if policy.type == MarginType.PERCENTAGE:
        return line_total(item) * _margin_factor(policy)
    return line_total(item)


def per_item_final_unit_price(item: LineItem, policy: MarginPolicy) -> Decimal:
    """Final row price divided by quantity; zero quantity shows zero."""
    if item.quantity == ZERO:
        return ZERO
    return per_item_final_price(item, policy) / item.quantity


def apply_discount(total: Decimal, policy: DiscountPolicy) -> DiscountResult:
    """
    Take the discount off the margin-adjusted total.

    The discounted total is clamped at zero; the reported discount is the
    requested one, as the document shows it.
    """
    if policy.type == DiscountType.PERCENTAGE:
        amount = total * (policy.value / HUNDRED)
    else:
        amount = policy.value
    return DiscountResult(
        discount_amount=amount,
        discounted_total=max(ZERO, total - amount),
    )


def split_tax(total: Decimal, tax_rate: Decimal, tax_type: TaxType) -> TaxSplit:
    """
    Split a margin-adjusted total into net and tax.

    INCLUDED: net = total / (1 + rate/100), tax = total - net.
    ADDED:    net = total,                   tax = net * rate/100.
    """
    rate = tax_rate / HUNDRED
    if tax_type == TaxType.INCLUDED:
        net = total / (ONE + rate)
        return TaxSplit(net_amount=net, tax_amount=total - net)
    return TaxSplit(net_amount=total, tax_amount=total * rate)


def grand_total(total: Decimal, tax_type: TaxType, tax_amount: Decimal) -> Decimal:
    """ADDED adds the tax on top; INCLUDED leaves the total unchanged."""
    if tax_type == TaxType.ADDED:
        return total + tax_amount
    return total
