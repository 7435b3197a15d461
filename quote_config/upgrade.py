"""
Settings Upgrade and Validation (``quote_config.upgrade``).

Responsibility
--------------
Turns any historical shape of a persisted settings record into the
current complete shape, and validates a ``Settings`` instance before it is
written back.

Architecture position
---------------------
**Config layer**. ``upgrade_settings_record`` is applied exactly once, by
the policy store, when a record is loaded. Nothing else reads raw records.

Invariants enforced
-------------------
* Pure: the input mapping is never mutated; the same input always yields
  the same output.
* Unknown keys are preserved.
* ``schemaVersion`` never decreases; records from a newer schema keep
  their version.
* Legacy string ``paymentTerms`` / ``paymentMethods`` become a single
  ``PaymentOption`` named ``Predeterminado``; an empty string becomes an
  empty list.

Failure modes
-------------
* ``validate_settings`` never raises; it returns a result listing every
  problem so a settings form can show them all at once.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from quote_config.loader import default_schema_version, record_defaults
from quote_config.schema import Settings
from quote_kernel.domain.values import ZERO

MIGRATED_OPTION_NAME = "Predeterminado"
_LEGACY_OPTION_IDS = {
    "paymentTerms": "migrated-term",
    "paymentMethods": "migrated-method",
}

MIN_PADDING = 1
MAX_PADDING = 12

CURRENT_SCHEMA_VERSION = default_schema_version()


def _migrate_payment_options(key: str, value: Any) -> list[dict[str, Any]]:
    """Legacy free-text option -> list of PaymentOption records."""
    if isinstance(value, str):
        if not value:
            return []
        return [{"id": _LEGACY_OPTION_IDS[key], "name": MIGRATED_OPTION_NAME, "details": value}]
    if not value:
        return []
    return list(value)


def upgrade_settings_record(record: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Produce a complete current-schema record from a partial or legacy one.

    Steps:
        1. Migrate legacy string payment options.
        2. Fill keys that are absent (or null where the default is not) from
           the default table in ``defaults.yaml``.
        3. Stamp ``schemaVersion`` with max(stored, current).

    Args:
        record: Persisted record, possibly ``None`` for a new account.

    Returns:
        A new dict; ``record`` is left untouched.
    """
    upgraded: dict[str, Any] = copy.deepcopy(dict(record or {}))

    for key in _LEGACY_OPTION_IDS:
        if key in upgraded:
            upgraded[key] = _migrate_payment_options(key, upgraded[key])

    for key, default in record_defaults().items():
        if key not in upgraded or (upgraded[key] is None and default is not None):
            upgraded[key] = default

    stored_version = upgraded.get("schemaVersion")
    if isinstance(stored_version, int) and not isinstance(stored_version, bool):
        upgraded["schemaVersion"] = max(stored_version, CURRENT_SCHEMA_VERSION)
    else:
        upgraded["schemaVersion"] = CURRENT_SCHEMA_VERSION

    return upgraded


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettingsIssue:
    field: str
    value: Any
    reason: str


@dataclass
class SettingsValidationResult:
    """
    Result of settings validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty. Warnings do not
    block persisting.
    """

    errors: list[SettingsIssue] = field(default_factory=list)
    warnings: list[SettingsIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, field_name: str, value: Any, reason: str) -> None:
        self.errors.append(SettingsIssue(field_name, value, reason))

    def add_warning(self, field_name: str, value: Any, reason: str) -> None:
        self.warnings.append(SettingsIssue(field_name, value, reason))


def validate_settings(settings: Settings) -> SettingsValidationResult:
    """
    Check the invariants a persisted settings record must satisfy.

    Errors: negative tax rate, next number below 1, padding outside
    1..12, duplicate payment option ids.
    Warnings: empty company name, empty quotation prefix.
    """
    result = SettingsValidationResult()

    if settings.tax_rate < ZERO:
        result.add_error("taxRate", settings.tax_rate, "tax rate cannot be negative")
    if settings.quotation_next_number < 1:
        result.add_error(
            "quotationNextNumber",
            settings.quotation_next_number,
            "next quotation number must be at least 1",
        )
    if not MIN_PADDING <= settings.quotation_padding <= MAX_PADDING:
        result.add_error(
            "quotationPadding",
            settings.quotation_padding,
            f"padding must be between {MIN_PADDING} and {MAX_PADDING}",
        )

    for key, options in (
        ("paymentTerms", settings.payment_terms),
        ("paymentMethods", settings.payment_methods),
    ):
        seen: set[str] = set()
        for option in options:
            if option.id in seen:
                result.add_error(key, option.id, "duplicate payment option id")
            seen.add(option.id)

    if not settings.company_name.strip():
        result.add_warning("companyName", settings.company_name, "company name is empty")
    if not settings.quotation_prefix:
        result.add_warning("quotationPrefix", settings.quotation_prefix, "quotation prefix is empty")

    return result
