"""
Composition -- render-ready document tree and outbound payloads.

Responsibility:
    Turns a Quotation plus the account's Settings into
      * a ``DocumentView`` (header, client block, item rows, totals block,
        payment text) that an external renderer rasterizes, and
      * the structured delivery payload, customer message, e-mail draft
        and artifact filename that accompany the rendered document.

Architecture position:
    Services. Reads the quotation's derived figures through
    ``Quotation.compute_totals`` and the per-row pricing functions; never
    recomputes arithmetic of its own.

Invariants enforced:
    - Figures shown on the document, in the message and in the payload all
      come from one ``compute_totals`` call and are rounded only here.
    - Item rows use ``per_item_final_price``, so under a FIXED margin the
      rows sum to the subtotal, not to the displayed total.
    - Composition is deterministic: the same quotation, settings, template
      and clock produce the same checksum.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any

from quote_config import CUSTOM_OPTION_ID, PaymentOption, Settings, Template
from quote_config.loader import document_labels, message_templates
from quote_kernel.domain.clock import Clock, SystemClock
from quote_kernel.domain.policies import TaxType
from quote_kernel.domain.pricing import per_item_final_price, per_item_final_unit_price
from quote_kernel.domain.quotation import Quotation, QuotationTotals
from quote_kernel.domain.values import ZERO, format_amount, round_display
from quote_kernel.logging_config import get_logger
from quote_kernel.utils.hashing import hash_payload
from quote_kernel.utils.idempotency import generate_idempotency_key
from quote_services.collaborators import RenderedArtifact

logger = get_logger("services.composition")

PAYLOAD_PRODUCER = "quote_services"

# ---------------------------------------------------------------------------
# Document view model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentHeader:
    company_name: str
    company_logo: str | None
    document_info: str
    contact_line: str
    header_image: str | None
    theme_color: str
    quotation_number: str
    issue_date: date
    issue_date_text: str


@dataclass(frozen=True)
class ClientBlock:
    name: str
    phone: str
    email: str


@dataclass(frozen=True)
class DocumentRow:
    """One item row; amounts rounded for display."""

    index: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_price: Decimal


@dataclass(frozen=True)
class TotalsLine:
    key: str
    label: str
    amount: Decimal
    negative: bool = False


@dataclass(frozen=True)
class TotalsBlock:
    lines: tuple[TotalsLine, ...]
    tax_type: TaxType
    tax_note: str
    grand_total: Decimal


@dataclass(frozen=True)
class DocumentView:
    """
    Render-ready document.

    ``checksum`` is the SHA-256 of every other field, so two views of the
    same quotation can be compared cheaply.
    """

    template: Template
    currency_symbol: str
    header: DocumentHeader
    client: ClientBlock
    rows: tuple[DocumentRow, ...]
    totals: TotalsBlock
    payment_terms: str
    payment_methods: str
    labels: dict[str, str] = field(default_factory=dict)
    checksum: str = ""

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("checksum")
        return data

    def format(self, amount: Decimal) -> str:
        return format_amount(amount, self.currency_symbol)


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def resolve_payment_text(
    option_id: str,
    custom_text: str,
    options: tuple[PaymentOption, ...],
) -> str:
    """Details of the selected option, the custom text for ``"other"``, else ``""``."""
    if option_id == CUSTOM_OPTION_ID:
        return custom_text
    for option in options:
        if option.id == option_id:
            return option.details
    return ""


def normalize_phone(phone: str) -> str:
    """Digits only: ``"+51 999-888 777"`` -> ``"51999888777"``."""
    return re.sub(r"\D", "", phone or "")


def contact_line(settings: Settings) -> str:
    parts = [
        settings.company_address,
        settings.company_phone,
        settings.company_email,
        settings.company_website,
    ]
    return " · ".join(part for part in parts if part)


def format_rate(rate: Decimal) -> str:
    """``Decimal("18.00")`` -> ``"18"``; ``Decimal("10.5")`` -> ``"10.5"``."""
    if rate == rate.to_integral_value():
        return f"{rate.to_integral_value():f}"
    return f"{rate.normalize():f}"


def artifact_filename(quotation_number: str, client_name: str) -> str:
    templates = message_templates()
    client = client_name.replace(" ", "_") if client_name else ""
    return templates["artifact_filename"].format(
        number=quotation_number,
        client=client or templates["anonymous_client"],
    )


# ---------------------------------------------------------------------------
# Document composition
# ---------------------------------------------------------------------------


def _totals_block(
    quotation: Quotation,
    totals: QuotationTotals,
    labels: dict[str, str],
) -> TotalsBlock:
    rounded = totals.rounded()
    lines = [TotalsLine("subtotal", labels["subtotal"], rounded.subtotal)]
    if totals.margin_amount != ZERO:
        lines.append(
            TotalsLine("margin", labels["margin"], round_display(totals.margin_amount))
        )
    if totals.discount_amount > ZERO:
        lines.append(
            TotalsLine("discount", labels["discount"], rounded.discount_amount, negative=True)
        )
    lines.append(TotalsLine("net_amount", labels["net_amount"], rounded.net_amount))
    lines.append(
        TotalsLine(
            "tax",
            labels["tax"].format(rate=format_rate(quotation.tax_policy.rate)),
            rounded.tax_amount,
        )
    )
    lines.append(TotalsLine("grand_total", labels["grand_total"], rounded.grand_total))

    tax_type = quotation.tax_policy.type
    note = labels["tax_included_note"] if tax_type == TaxType.INCLUDED else labels["tax_added_note"]
    return TotalsBlock(
        lines=tuple(lines),
        tax_type=tax_type,
        tax_note=note,
        grand_total=rounded.grand_total,
    )


def compose_document(
    quotation: Quotation,
    settings: Settings,
    template: Template | str | None = None,
    clock: Clock | None = None,
) -> DocumentView:
    """
    Build the document view for ``quotation``.

    Args:
        quotation: Draft or finalized quotation.
        settings: Account settings (company identity, theme, payment options).
        template: Layout; defaults to the account's default template.
        clock: Source of the issue date; defaults to the system clock.
    """
    chosen = Template(template) if template is not None else settings.default_template
    issue_date = (clock or SystemClock()).now().date()
    labels = document_labels()
    totals = quotation.compute_totals()

    rows = tuple(
        DocumentRow(
            index=index,
            description=item.description,
            quantity=item.quantity,
            unit_price=round_display(per_item_final_unit_price(item, quotation.margin_policy)),
            line_price=round_display(per_item_final_price(item, quotation.margin_policy)),
        )
        for index, item in enumerate(quotation.items, start=1)
    )

    view = DocumentView(
        template=chosen,
        currency_symbol=quotation.currency_symbol,
        header=DocumentHeader(
            company_name=settings.company_name,
            company_logo=settings.company_logo,
            document_info=settings.company_document_info,
            contact_line=contact_line(settings),
            header_image=settings.header_image,
            theme_color=settings.theme_color,
            quotation_number=quotation.quotation_number,
            issue_date=issue_date,
            issue_date_text=issue_date.strftime("%d/%m/%Y"),
        ),
        client=ClientBlock(
            name=quotation.client.name,
            phone=quotation.client.phone,
            email=quotation.client.email,
        ),
        rows=rows,
        totals=_totals_block(quotation, totals, labels),
        payment_terms=resolve_payment_text(
            quotation.payment_term_id, quotation.custom_payment_term, settings.payment_terms
        ),
        payment_methods=resolve_payment_text(
            quotation.payment_method_id, quotation.custom_payment_method, settings.payment_methods
        ),
        labels=labels,
    )
    checksum = hash_payload(view.as_dict())

    logger.debug(
        "document_composed",
        extra={
            "quotation_number": quotation.quotation_number,
            "template": chosen,
            "rows": len(rows),
            "checksum": checksum,
        },
    )
    return replace(view, checksum=checksum)


# ---------------------------------------------------------------------------
# Messages and payloads
# ---------------------------------------------------------------------------


def build_message(
    quotation: Quotation,
    settings: Settings,
    totals: QuotationTotals | None = None,
) -> str:
    """
    Customer notification text.

    Empty unless the client has a name and the grand total is positive.
    """
    totals = totals or quotation.compute_totals()
    if not quotation.client.name or totals.grand_total <= ZERO:
        return ""
    return message_templates()["customer_message"].format(
        client=quotation.client.name,
        number=quotation.quotation_number,
        company=settings.company_name,
        total=format_amount(totals.grand_total, quotation.currency_symbol),
    )


@dataclass(frozen=True)
class EmailDraft:
    recipient: str
    subject: str
    body: str

    def as_payload(self) -> dict[str, str]:
        return {"to": self.recipient, "subject": self.subject, "body": self.body}


def build_email_draft(quotation: Quotation, settings: Settings) -> EmailDraft:
    templates = message_templates()
    number = quotation.quotation_number
    return EmailDraft(
        recipient=quotation.client.email,
        subject=templates["email_subject"].format(number=number, company=settings.company_name),
        body=templates["email_body"].format(
            client=quotation.client.name,
            message=build_message(quotation, settings),
            company=settings.company_name,
        ),
    )


def _amount_text(value: Decimal) -> str:
    return f"{round_display(value):f}"


def build_delivery_payload(
    quotation: Quotation,
    settings: Settings,
    artifact: RenderedArtifact,
) -> dict[str, Any]:
    """
    Structured payload for an outbound delivery channel.

    Wire keys are camelCase; amounts are two-place decimal strings.
    """
    totals = quotation.compute_totals()
    number = quotation.quotation_number
    return {
        "client": {
            "name": quotation.client.name,
            "phone": normalize_phone(quotation.client.phone),
        },
        "company": {
            "name": settings.company_name,
            "document": f"{settings.company_document_type} {settings.company_document_number}".strip(),
        },
        "quote": {
            "number": number,
            "items": [
                {
                    "id": item.id,
                    "description": item.description,
                    "quantity": f"{item.quantity:f}",
                    "unitPrice": f"{item.unit_price:f}",
                }
                for item in quotation.items
            ],
            "netAmount": _amount_text(totals.net_amount),
            "taxAmount": _amount_text(totals.tax_amount),
            "grandTotal": _amount_text(totals.grand_total),
            "currency": quotation.currency_symbol,
            "terms": resolve_payment_text(
                quotation.payment_term_id, quotation.custom_payment_term, settings.payment_terms
            ),
            "methods": resolve_payment_text(
                quotation.payment_method_id, quotation.custom_payment_method, settings.payment_methods
            ),
            "message": build_message(quotation, settings, totals),
        },
        "document": artifact.as_base64(),
        "documentFilename": artifact.filename,
        "documentMediaType": artifact.media_type,
        "idempotencyKey": generate_idempotency_key(PAYLOAD_PRODUCER, "quotation.send", number),
    }
