"""
quote_config -- quotation settings schema, defaults and upgrade.

Responsibility:
    Owns the shape of a persisted settings record: the typed ``Settings``
    view, the default table (``defaults.yaml``), the pure upgrade applied
    at load time and the validation applied before a write.

Architecture position:
    Configuration. Sits above ``quote_kernel`` and below
    ``quote_services``. The kernel MUST NEVER import from ``quote_config``.
"""

from __future__ import annotations

from typing import Any, Mapping

from quote_config.schema import CUSTOM_OPTION_ID, PaymentOption, Settings, Template
from quote_config.upgrade import (
    CURRENT_SCHEMA_VERSION,
    SettingsValidationResult,
    upgrade_settings_record,
    validate_settings,
)
from quote_kernel.logging_config import get_logger

logger = get_logger("config")


def settings_from_record(record: Mapping[str, Any] | None, version: int = 0) -> Settings:
    """Upgrade a raw persisted record and wrap it as ``Settings``."""
    upgraded = upgrade_settings_record(record)
    settings = Settings.from_record(upgraded, version=version)
    logger.debug(
        "settings_record_upgraded",
        extra={
            "stored_schema_version": (record or {}).get("schemaVersion"),
            "schema_version": settings.schema_version,
        },
    )
    return settings


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "CUSTOM_OPTION_ID",
    "PaymentOption",
    "Settings",
    "SettingsValidationResult",
    "Template",
    "settings_from_record",
    "upgrade_settings_record",
    "validate_settings",
]
