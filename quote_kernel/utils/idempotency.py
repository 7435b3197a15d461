"""
Idempotency key generation.

A delivery payload carries a key derived from the bound quotation number,
so a downstream channel receiving the same quotation twice (e.g. after a
client-side retry) can drop the duplicate.
"""

from uuid import UUID


def generate_idempotency_key(
    producer: str,
    action: str,
    subject_id: UUID | str,
) -> str:
    """
    Format: ``producer:action:subject_id``.

    Example:
        >>> generate_idempotency_key("quote_services", "quotation.send", "COT-0001")
        'quote_services:quotation.send:COT-0001'
    """
    return f"{producer}:{action}:{subject_id}"
