"""
Typed Exception Hierarchy for the Quote Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A quotation that goes out with the wrong total, or two quotations that
carry the same number, are business errors the customer sees. Callers must
be able to tell a retryable numbering conflict from a broken renderer
without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        quotation.finalize(sequencer)
    except Exception as e:
        if "changed" in str(e):  # FRAGILE - message might change
            retry()

Example - RIGHT way:
    try:
        quotation.finalize(sequencer)
    except NumberingConflictError as e:
        quotation.refresh_number(sequencer)   # re-peek, then retry
        log.info("renumbered", extra={"expected": e.expected})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    QuoteKernelError (base)
    |
    +-- InputError
    |   +-- InvalidInputError
    |
    +-- PolicyError
    |   +-- InvalidPolicyError
    |
    +-- QuotationError
    |   +-- AlreadyFinalizedError
    |   +-- ItemNotFoundError
    |
    +-- ConcurrencyError
    |   +-- NumberingConflictError
    |   +-- StaleSettingsError
    |
    +-- PersistenceError
    |
    +-- CollaboratorError
        +-- ExtractionError
        +-- RenderError
        +-- DeliveryError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                  | When Raised
--------------|-----------------------|-------------------------------------------
Input         | INVALID_INPUT         | Non-numeric amount (coerced to 0 by model)
Policy        | INVALID_POLICY        | Negative tax rate, bad numbering settings
Quotation     | ALREADY_FINALIZED     | Number already bound (idempotent success)
              | ITEM_NOT_FOUND        | Editing an item id that does not exist
Concurrency   | NUMBERING_CONFLICT    | Counter moved since this session read it
              | STALE_SETTINGS        | Settings record changed since it was loaded
Persistence   | PERSISTENCE_ERROR     | Policy store storage unavailable
Collaborator  | EXTRACTION_FAILED     | Extraction service failed
              | RENDER_FAILED         | Document renderer failed
              | DELIVERY_FAILED       | Delivery channel failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENCY (AlreadyFinalizedError is success):

    try:
        bound = quotation.bind_number(sequencer)
    except AlreadyFinalizedError as e:
        bound = e.quotation_number

2. RETRYABLE ERRORS are grouped under ConcurrencyError and PersistenceError.
   Neither leaves a quotation partially finalized.

3. COLLABORATOR ERRORS are surfaced to the user; the quotation stays
   editable and no quotation number has been consumed.
"""


class QuoteKernelError(Exception):
    """
    Base exception for all quote kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "QUOTE_KERNEL_ERROR"


# Input-related exceptions


class InputError(QuoteKernelError):
    """Base exception for boundary input errors."""

    code: str = "INPUT_ERROR"


class InvalidInputError(InputError):
    """
    Numeric input could not be interpreted.

    Raised by the strict parser only; the quotation model catches it and
    coerces the value to zero.
    """

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = repr(value)
        super().__init__(f"Invalid numeric value for {field}: {value!r}")


# Policy-related exceptions


class PolicyError(QuoteKernelError):
    """Base exception for pricing/numbering policy errors."""

    code: str = "POLICY_ERROR"


class InvalidPolicyError(PolicyError):
    """A policy or settings value is outside its permitted range."""

    code: str = "INVALID_POLICY"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = repr(value)
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


# Quotation-related exceptions


class QuotationError(QuoteKernelError):
    """Base exception for quotation model errors."""

    code: str = "QUOTATION_ERROR"


class AlreadyFinalizedError(QuotationError):
    """Quotation already has a bound number (idempotent success)."""

    code: str = "ALREADY_FINALIZED"

    def __init__(self, quotation_id: str, quotation_number: str):
        self.quotation_id = quotation_id
        self.quotation_number = quotation_number
        super().__init__(
            f"Quotation {quotation_id} already finalized as {quotation_number}"
        )


class ItemNotFoundError(QuotationError):
    """Line item with given id is not on the quotation."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Line item not found: {item_id}")


# Concurrency-related exceptions


class ConcurrencyError(QuoteKernelError):
    """Base exception for retryable concurrent-modification errors."""

    code: str = "CONCURRENCY_ERROR"


class NumberingConflictError(ConcurrencyError):
    """
    The persisted counter changed since this session read it.

    The caller should re-peek the sequencer and retry the finalize.
    """

    code: str = "NUMBERING_CONFLICT"

    def __init__(self, user_key: str, expected: int, actual: int):
        self.user_key = user_key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Numbering conflict for {user_key}: expected next number "
            f"{expected}, store holds {actual}"
        )


class StaleSettingsError(ConcurrencyError):
    """Settings record was modified by another session since it was loaded."""

    code: str = "STALE_SETTINGS"

    def __init__(self, user_key: str, expected_version: int, actual_version: int):
        self.user_key = user_key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Settings for {user_key} are stale: loaded version "
            f"{expected_version}, store holds {actual_version}"
        )


# Persistence-related exceptions


class PersistenceError(QuoteKernelError):
    """Underlying storage failed; no state was changed."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failed during {operation}: {reason}")


# External collaborator exceptions


class CollaboratorError(QuoteKernelError):
    """Base exception for failures of external collaborators."""

    code: str = "COLLABORATOR_ERROR"


class ExtractionError(CollaboratorError):
    """Extraction service could not read items from the document."""

    code: str = "EXTRACTION_FAILED"

    def __init__(self, reason: str, source: str | None = None):
        self.reason = reason
        self.source = source
        super().__init__(
            "No se pudieron extraer los datos del archivo. "
            f"Intenta con un documento más claro. ({reason})"
        )


class RenderError(CollaboratorError):
    """Document renderer failed; nothing was exported."""

    code: str = "RENDER_FAILED"

    def __init__(self, quotation_number: str, reason: str):
        self.quotation_number = quotation_number
        self.reason = reason
        super().__init__(f"Rendering {quotation_number} failed: {reason}")


class DeliveryError(CollaboratorError):
    """Delivery channel failed; the quotation number was not consumed."""

    code: str = "DELIVERY_FAILED"

    def __init__(self, quotation_number: str, channel: str, reason: str):
        self.quotation_number = quotation_number
        self.channel = channel
        self.reason = reason
        super().__init__(
            f"Delivering {quotation_number} via {channel} failed: {reason}"
        )
