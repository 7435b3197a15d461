"""
ExportService -- render, deliver, then bind the quotation number.

Responsibility:
    Orchestrates the three export actions of a quotation (download the
    PDF, send it through a messaging channel, send it by e-mail). Each
    action produces its artifact first and finalizes the quotation only
    after the artifact exists, so a failed export never consumes a number.

Architecture position:
    Services -- imperative shell. Wires composition, the external renderer
    and delivery channels, and the kernel's numbering sequencer.

Invariants enforced:
    - commit() runs at most once per quotation, and only after a
      successful render (download) or a successful delivery (send).
    - Render / delivery failures raise RenderError / DeliveryError with the
      quotation still unfinalized and the counter unchanged.
    - Exporting an already finalized quotation re-produces the artifact
      without touching the counter.
    - An unfinalized quotation whose number is no longer the stored next
      number is rejected before anything is rendered or delivered.

Failure modes:
    - RenderError, DeliveryError: nothing consumed; retry is safe.
    - NumberingConflictError: the displayed number was already consumed,
      detected before rendering; or another session committed it between
      delivery and commit. Call ``quotation.refresh_number`` and export
      again.
    - PersistenceError: the counter could not be written; retry finalize.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from quote_config import Settings, Template
from quote_kernel.domain.clock import Clock, SystemClock
from quote_kernel.domain.quotation import FinalizedQuotation, Quotation
from quote_kernel.exceptions import (
    DeliveryError,
    NumberingConflictError,
    PersistenceError,
    RenderError,
)
from quote_kernel.logging_config import LogContext, get_logger
from quote_kernel.services.sequence_service import NumberingSequencer
from quote_services.collaborators import DeliveryChannel, DocumentRenderer, RenderedArtifact
from quote_services.composition import (
    DocumentView,
    EmailDraft,
    artifact_filename,
    build_delivery_payload,
    build_email_draft,
    compose_document,
)

logger = get_logger("services.export")


@dataclass(frozen=True)
class ExportResult:
    """Outcome of one export action."""

    finalized: FinalizedQuotation
    document: DocumentView | None = None
    artifact: RenderedArtifact | None = None
    payload: dict[str, Any] | None = None
    email: EmailDraft | None = None
    already_finalized: bool = False


class ExportService:
    """
    Export orchestration for one account.

    Usage:
        service = ExportService(settings, sequencer, renderer, delivery_channel=webhook)
        result = service.send(quotation)
        result.finalized.quotation_number   # "COT-0001"
    """

    def __init__(
        self,
        settings: Settings,
        sequencer: NumberingSequencer,
        renderer: DocumentRenderer,
        *,
        delivery_channel: DeliveryChannel | None = None,
        email_channel: DeliveryChannel | None = None,
        clock: Clock | None = None,
    ):
        self._settings = settings
        self._sequencer = sequencer
        self._renderer = renderer
        self._delivery_channel = delivery_channel
        self._email_channel = email_channel
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Export actions
    # ------------------------------------------------------------------

    def download(
        self,
        quotation: Quotation,
        template: Template | str | None = None,
    ) -> ExportResult:
        """Render the PDF, then finalize."""
        self._ensure_number(quotation)
        with LogContext.bind(quotation_number=quotation.quotation_number):
            already = quotation.finalized
            document, artifact = self._render(quotation, template)
            finalized = self._finalize(quotation, "download")
            return ExportResult(
                finalized=finalized,
                document=document,
                artifact=artifact,
                already_finalized=already,
            )

    def send(
        self,
        quotation: Quotation,
        template: Template | str | None = None,
    ) -> ExportResult:
        """Render, hand the payload to the delivery channel, then finalize."""
        self._ensure_number(quotation)
        number = quotation.quotation_number
        with LogContext.bind(quotation_number=number):
            channel = self._delivery_channel
            if channel is None:
                raise DeliveryError(number, "none", "no delivery channel configured")
            if not quotation.client.phone:
                raise DeliveryError(number, channel.name, "client phone is required")

            already = quotation.finalized
            document, artifact = self._render(quotation, template)
            payload = build_delivery_payload(quotation, self._settings, artifact)
            self._deliver(channel, number, payload)
            finalized = self._finalize(quotation, "send")
            return ExportResult(
                finalized=finalized,
                document=document,
                artifact=artifact,
                payload=payload,
                already_finalized=already,
            )

    def send_email(
        self,
        quotation: Quotation,
        template: Template | str | None = None,
    ) -> ExportResult:
        """
        Draft the e-mail, then finalize.

        With an e-mail channel configured the PDF is rendered and delivered
        as an attachment before finalizing. Without one the draft is
        returned for the user's own mail client.
        """
        self._ensure_number(quotation)
        number = quotation.quotation_number
        with LogContext.bind(quotation_number=number):
            already = quotation.finalized
            draft = build_email_draft(quotation, self._settings)
            document = artifact = None
            payload = None
            if self._email_channel is not None:
                document, artifact = self._render(quotation, template)
                payload = {
                    **draft.as_payload(),
                    "attachment": artifact.as_base64(),
                    "attachmentFilename": artifact.filename,
                    "attachmentMediaType": artifact.media_type,
                }
                self._deliver(self._email_channel, number, payload)
            finalized = self._finalize(quotation, "send_email")
            return ExportResult(
                finalized=finalized,
                document=document,
                artifact=artifact,
                payload=payload,
                email=draft,
                already_finalized=already,
            )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _ensure_number(self, quotation: Quotation) -> None:
        if quotation.finalized:
            return
        if not quotation.quotation_number:
            quotation.reserve_number(self._sequencer)
        # a consumed number must never reach a rendered or delivered artifact
        quotation.check_number(self._sequencer)

    def _render(
        self,
        quotation: Quotation,
        template: Template | str | None,
    ) -> tuple[DocumentView, RenderedArtifact]:
        document = compose_document(quotation, self._settings, template, self._clock)
        try:
            artifact = self._renderer.render(document)
        except Exception as e:
            logger.error(
                "render_failed",
                extra={"template": document.template, "reason": str(e)},
                exc_info=True,
            )
            raise RenderError(quotation.quotation_number, str(e)) from e

        if not artifact.filename:
            artifact = replace(
                artifact,
                filename=artifact_filename(quotation.quotation_number, quotation.client.name),
            )
        logger.info(
            "document_rendered",
            extra={
                "template": document.template,
                "artifact_name": artifact.filename,
                "size_bytes": len(artifact.content),
                "checksum": document.checksum,
            },
        )
        return document, artifact

    def _deliver(self, channel: DeliveryChannel, number: str, payload: dict[str, Any]) -> None:
        try:
            channel.deliver(payload)
        except Exception as e:
            logger.error(
                "delivery_failed",
                extra={"channel": channel.name, "reason": str(e)},
                exc_info=True,
            )
            raise DeliveryError(number, channel.name, str(e)) from e
        logger.info("quotation_delivered", extra={"channel": channel.name})

    def _finalize(self, quotation: Quotation, action: str) -> FinalizedQuotation:
        try:
            return quotation.finalize(self._sequencer)
        except NumberingConflictError as e:
            logger.warning(
                "export_number_conflict",
                extra={"action": action, "expected": e.expected, "actual": e.actual},
            )
            raise
        except PersistenceError:
            logger.error("export_finalize_failed", extra={"action": action}, exc_info=True)
            raise
