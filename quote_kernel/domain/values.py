"""
Values -- boundary coercion and presentation rounding for amounts.

Responsibility:
    Converts raw user / extraction input into Decimal amounts and rounds
    derived figures for display. Every number that enters the pricing
    pipeline passes through ``coerce_amount`` first.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by the pricing functions and the quotation model.

Invariants enforced:
    - Decimal only: floats are converted through their shortest repr
      (``Decimal(str(x))``), never through their binary expansion.
    - Total arithmetic: NaN, infinities and unparseable input never reach
      the pipeline; ``coerce_amount`` replaces them with zero.
    - Single rounding point: ``round_display`` is the only sanctioned
      rounding function and is applied at presentation time only.

Failure modes:
    - InvalidInputError from ``parse_amount`` (strict variant).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from quote_kernel.exceptions import InvalidInputError

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

DISPLAY_DECIMAL_PLACES = 2
# Parsed amounts stay below 10**100 in magnitude
MAX_ADJUSTED_EXPONENT = 99
DEFAULT_ROUNDING = ROUND_HALF_UP


def parse_amount(value: object, field: str = "amount") -> Decimal:
    """
    Parse a numeric value into a finite Decimal.

    Accepts Decimal, int, float and numeric strings (surrounding whitespace
    ignored) below 10**100 in magnitude. Booleans are rejected even though
    ``bool`` subclasses ``int``.

    Raises:
        InvalidInputError: If the value is missing, non-numeric or not finite.
    """
    if value is None or isinstance(value, bool):
        raise InvalidInputError(field, value)

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidInputError(field, value)
        try:
            result = Decimal(text)
        except InvalidOperation as e:
            raise InvalidInputError(field, value) from e
    else:
        raise InvalidInputError(field, value)

    if not result.is_finite() or result.adjusted() > MAX_ADJUSTED_EXPONENT:
        raise InvalidInputError(field, value)
    return result


def coerce_amount(value: object, field: str = "amount") -> Decimal:
    """Parse ``value``; anything invalid becomes zero."""
    try:
        return parse_amount(value, field)
    except InvalidInputError:
        return ZERO


def round_display(
    value: Decimal,
    decimal_places: int = DISPLAY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a derived amount for display.

    Postconditions: Returns value quantized to ``decimal_places`` using
        ROUND_HALF_UP. Internal computation never calls this.
    """
    quantize_str = "1" if decimal_places == 0 else "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def format_amount(value: Decimal, currency_symbol: str = "") -> str:
    """Format for documents and messages, e.g. ``S/ 872.10``."""
    text = f"{round_display(value):f}"
    return f"{currency_symbol} {text}" if currency_symbol else text
