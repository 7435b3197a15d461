"""
Extraction import -- populate a quotation from an uploaded document.

Responsibility:
    Calls the external ``ItemExtractor`` and normalizes whatever it
    returns into ``LineItem`` objects, then replaces the quotation's items.

Architecture position:
    Services. The extractor (OCR / AI model) is an injected collaborator;
    this module owns only the response contract and its normalization.

Invariants enforced:
    - Every extracted item has a numeric quantity and unit price and a
      string description: a non-number quantity becomes 1, a non-number
      unit price becomes 0, a non-string description becomes
      ``"Sin descripción"``.
    - A failed or empty extraction leaves the quotation untouched and
      editable.

Failure modes:
    - ExtractionError: the collaborator raised, or its response was not
      valid JSON.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from quote_config import Settings
from quote_kernel.domain.items import LineItem, new_item_id
from quote_kernel.domain.quotation import Quotation
from quote_kernel.domain.values import ONE, ZERO
from quote_kernel.exceptions import ExtractionError
from quote_kernel.logging_config import get_logger
from quote_services.collaborators import ExtractionSource, ItemExtractor

logger = get_logger("services.extraction")

MISSING_DESCRIPTION = "Sin descripción"
NOTHING_EXTRACTED_MESSAGE = (
    "No se encontraron productos en el archivo. Por favor, intenta con un "
    "documento más claro o crea la cotización manualmente."
)


@dataclass(frozen=True)
class ExtractionResult:
    items: tuple[LineItem, ...]
    client_name: str = ""


@dataclass(frozen=True)
class ExtractionOutcome:
    """What ``populate`` did to the quotation."""

    items_imported: int
    client_name: str = ""
    nothing_extracted: bool = False
    message: str = ""


def _number_or(value: Any, default: Decimal) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return default
    if isinstance(value, float):
        if not math.isfinite(value):
            return default
        return Decimal(str(value))
    if isinstance(value, Decimal) and not value.is_finite():
        return default
    return Decimal(value)


def _normalize_item(data: Any) -> LineItem | None:
    if not isinstance(data, dict):
        return None
    description = data.get("description")
    return LineItem(
        id=new_item_id(),
        description=description if isinstance(description, str) else MISSING_DESCRIPTION,
        quantity=_number_or(data.get("quantity"), ONE),
        unit_price=_number_or(data.get("unitPrice", data.get("unit_price")), ZERO),
    )


def parse_extraction_response(raw: Any) -> ExtractionResult:
    """
    Normalize an extractor response.

    Accepts JSON text or already-decoded data, shaped either as an array of
    item objects or as ``{"items": [...], "clientName": "..."}``. Anything
    else yields an empty result.

    Raises:
        ExtractionError: If ``raw`` is text that is not valid JSON.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ExtractionError("response is not UTF-8 text") from e
    if isinstance(raw, str):
        try:
            raw = json.loads(raw.strip() or "[]")
        except json.JSONDecodeError as e:
            raise ExtractionError(f"invalid JSON response: {e.msg}") from e

    client_name = ""
    if isinstance(raw, dict):
        name = raw.get("clientName")
        client_name = name.strip() if isinstance(name, str) else ""
        raw = raw.get("items")

    if not isinstance(raw, list):
        return ExtractionResult(items=(), client_name=client_name)

    items = tuple(item for item in (_normalize_item(entry) for entry in raw) if item is not None)
    return ExtractionResult(items=items, client_name=client_name)


class ExtractionService:
    """
    Populates quotations through an ``ItemExtractor``.

    Usage:
        service = ExtractionService(extractor)
        outcome = service.populate(quotation, ExtractionSource(data, "image/png"))
        if outcome.nothing_extracted:
            show(outcome.message)
    """

    def __init__(self, extractor: ItemExtractor):
        self._extractor = extractor

    def extract(self, source: ExtractionSource) -> ExtractionResult:
        logger.info(
            "extraction_started",
            extra={"media_type": source.media_type, "size_bytes": len(source.content)},
        )
        try:
            raw = self._extractor.extract(source)
        except ExtractionError:
            raise
        except Exception as e:
            logger.warning(
                "extraction_failed",
                extra={"source_name": source.filename, "reason": str(e)},
                exc_info=True,
            )
            raise ExtractionError(str(e), source=source.filename or None) from e
        return parse_extraction_response(raw)

    def populate(
        self,
        quotation: Quotation,
        source: ExtractionSource,
        settings: Settings | None = None,
    ) -> ExtractionOutcome:
        """
        Replace the quotation's items with the extracted ones.

        When ``settings`` is given the margin policy is reset to the
        account default, as for a freshly started quotation. The client
        name is taken from the extraction only when one was found.
        """
        result = self.extract(source)
        if not result.items:
            logger.info("extraction_empty", extra={"quotation_id": quotation.quotation_id})
            return ExtractionOutcome(
                items_imported=0,
                nothing_extracted=True,
                message=NOTHING_EXTRACTED_MESSAGE,
            )

        quotation.import_items(result.items)
        if result.client_name:
            client = quotation.client
            quotation.set_client(result.client_name, client.phone, client.email)
        if settings is not None:
            quotation.set_margin_policy(settings.margin_policy())

        logger.info(
            "extraction_imported",
            extra={
                "quotation_id": quotation.quotation_id,
                "items": len(result.items),
                "client_found": bool(result.client_name),
            },
        )
        return ExtractionOutcome(
            items_imported=len(result.items),
            client_name=result.client_name,
        )
