"""
quote_services -- persistence, composition and export around the kernel.

    policy_store    SqlPolicyStore: settings record + locked quotation counter
    drafting        new_quotation / initial_settings from account settings
    composition     DocumentView, delivery payload, message, e-mail draft
    extraction      populate a quotation from an uploaded document
    export_service  render -> deliver -> finalize
"""

from quote_services.collaborators import (
    DeliveryChannel,
    DocumentRenderer,
    ExtractionSource,
    ItemExtractor,
    RenderedArtifact,
)
from quote_services.composition import (
    DocumentView,
    EmailDraft,
    artifact_filename,
    build_delivery_payload,
    build_email_draft,
    build_message,
    compose_document,
)
from quote_services.drafting import initial_settings, new_quotation
from quote_services.export_service import ExportResult, ExportService
from quote_services.extraction import (
    ExtractionOutcome,
    ExtractionService,
    parse_extraction_response,
)
from quote_services.policy_store import PolicyStore, SqlPolicyStore

__all__ = [
    "DeliveryChannel",
    "DocumentRenderer",
    "DocumentView",
    "EmailDraft",
    "ExportResult",
    "ExportService",
    "ExtractionOutcome",
    "ExtractionService",
    "ExtractionSource",
    "ItemExtractor",
    "PolicyStore",
    "RenderedArtifact",
    "SqlPolicyStore",
    "artifact_filename",
    "build_delivery_payload",
    "build_email_draft",
    "build_message",
    "compose_document",
    "initial_settings",
    "new_quotation",
    "parse_extraction_response",
]
