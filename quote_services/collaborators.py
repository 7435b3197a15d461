"""
External collaborator protocols and artifact DTOs.

Contract:
    DocumentRenderer.render() turns a DocumentView into opaque bytes (a PDF).
    DeliveryChannel.deliver() hands a payload to an outbound channel and
        raises on failure.
    ItemExtractor.extract() returns the raw response of an OCR / AI service
        for an uploaded document.

Architecture: quote_services. Implementations live outside this package.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from quote_services.composition import DocumentView

PDF_MEDIA_TYPE = "application/pdf"


@dataclass(frozen=True)
class RenderedArtifact:
    """Bytes produced by the renderer plus how to name and label them."""

    content: bytes
    media_type: str = PDF_MEDIA_TYPE
    filename: str = ""

    def as_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")


@dataclass(frozen=True)
class ExtractionSource:
    """An uploaded document (image or PDF) to read line items from."""

    content: bytes
    media_type: str
    filename: str = ""

    def as_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")


@runtime_checkable
class DocumentRenderer(Protocol):
    """Rasterizes a composed document into an artifact."""

    def render(self, document: "DocumentView") -> RenderedArtifact:
        ...


@runtime_checkable
class DeliveryChannel(Protocol):
    """Outbound channel (messaging webhook, mail relay)."""

    name: str

    def deliver(self, payload: dict[str, Any]) -> None:
        """Send the payload; raise any exception on failure."""
        ...


@runtime_checkable
class ItemExtractor(Protocol):
    """Reads line items out of an uploaded document."""

    def extract(self, source: ExtractionSource) -> Any:
        """JSON text, a list of item dicts, or ``{"items": [...], "clientName": ...}``."""
        ...
