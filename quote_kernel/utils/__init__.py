"""Utility functions: canonical hashing and idempotency keys."""

from quote_kernel.utils.hashing import canonicalize_json, hash_payload
from quote_kernel.utils.idempotency import generate_idempotency_key

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "generate_idempotency_key",
]
