#!/usr/bin/env python3
"""
Walk one quotation through create -> edit -> render -> finalize.

Uses a SQLite database (QUOTE_DATABASE_URL, default sqlite:///quotations.db)
so the counter persists between runs: running the script twice prints
COT-0001 and then COT-0002.

The renderer writes a plain-text rendition instead of a PDF, and the
delivery channel prints the payload summary.

Usage:
    python3 scripts/demo_quotation.py
    python3 scripts/demo_quotation.py --tax-type added --margin 20
    python3 scripts/demo_quotation.py --send --phone "+51 999 888 777"
    python3 scripts/demo_quotation.py --database-url sqlite:// --verbose
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from quote_kernel.db.engine import (  # noqa: E402
    create_tables,
    database_url_from_env,
    get_session_factory,
    init_engine_from_url,
)
from quote_kernel.domain.policies import MarginPolicy, MarginType, TaxPolicy, TaxType  # noqa: E402
from quote_kernel.exceptions import QuoteKernelError  # noqa: E402
from quote_kernel.logging_config import configure_logging  # noqa: E402
from quote_kernel.services.sequence_service import NumberingSequencer  # noqa: E402
from quote_services import (  # noqa: E402
    ExportService,
    RenderedArtifact,
    SqlPolicyStore,
    initial_settings,
    new_quotation,
)

DEMO_ITEMS = [
    ("Servicio de instalación", "1", "350.00"),
    ("Cable UTP Cat6 (metro)", "45", "3.50"),
    ("Conector RJ45", "30", "7.30"),
]


class TextRenderer:
    """Renders a DocumentView as UTF-8 text."""

    def render(self, document):
        header = document.header
        lines = [
            header.company_name,
            header.document_info,
            header.contact_line,
            f"{header.quotation_number}    {document.labels['date']}: {header.issue_date_text}",
            "",
            f"{document.labels['client']}: {document.client.name}",
            "",
        ]
        for row in document.rows:
            lines.append(
                f"{row.index:>3}  {row.description:<30} {row.quantity:>6} "
                f"{document.format(row.unit_price):>12} {document.format(row.line_price):>12}"
            )
        lines.append("")
        for line in document.totals.lines:
            sign = "- " if line.negative else ""
            lines.append(f"{line.label:>40}: {sign}{document.format(line.amount)}")
        lines.append(document.totals.tax_note)
        if document.payment_terms:
            lines += ["", document.labels["payment_terms"], document.payment_terms]
        if document.payment_methods:
            lines += ["", document.labels["payment_methods"], document.payment_methods]
        return RenderedArtifact(content="\n".join(lines).encode("utf-8"), media_type="text/plain")


class PrintChannel:
    name = "stdout"

    def deliver(self, payload):
        quote = payload["quote"]
        print(f"-> {payload['client']['phone']}: {quote['number']} {quote['currency']} {quote['grandTotal']}")
        if quote["message"]:
            print(f"   {quote['message']}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Quotation engine walkthrough")
    parser.add_argument("--database-url", default=None, help="Overrides QUOTE_DATABASE_URL")
    parser.add_argument("--user-key", default="demo")
    parser.add_argument("--client", default="Juan Pérez")
    parser.add_argument("--phone", default="")
    parser.add_argument("--margin", default="20", help="Margin value")
    parser.add_argument("--margin-type", choices=[t.value for t in MarginType], default="percentage")
    parser.add_argument("--tax-type", choices=[t.value for t in TaxType], default="included")
    parser.add_argument("--tax-rate", default="18")
    parser.add_argument("--template", default=None)
    parser.add_argument("--send", action="store_true", help="Deliver instead of download")
    parser.add_argument("--out", default=None, help="Write the rendered artifact here")
    parser.add_argument("--verbose", action="store_true", help="JSON logs to stderr")
    args = parser.parse_args()

    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)
    init_engine_from_url(args.database_url or database_url_from_env())
    create_tables()

    store = SqlPolicyStore(get_session_factory(), user_key=args.user_key)
    settings = store.load_defaults()
    if settings.version == 0:
        settings = store.persist(
            initial_settings(
                "Redes del Sur S.A.C.",
                company_phone="01 555 1234",
                company_address="Av. Arequipa 123, Lima",
                with_starter_options=True,
            ).with_changes(
                company_document_type="RUC",
                company_document_number="20123456789",
            )
        )

    sequencer = NumberingSequencer(store)
    quotation = new_quotation(settings, sequencer)
    quotation.set_client(args.client, args.phone)
    quotation.set_margin_policy(MarginPolicy(args.margin_type, args.margin))
    quotation.set_tax_policy(TaxPolicy(args.tax_type, args.tax_rate))
    for description, quantity, unit_price in DEMO_ITEMS:
        item = quotation.add_item()
        quotation.update_item(item.id, "description", description)
        quotation.update_item(item.id, "quantity", quantity)
        quotation.update_item(item.id, "unit_price", unit_price)

    service = ExportService(
        settings, sequencer, TextRenderer(), delivery_channel=PrintChannel()
    )
    try:
        if args.send:
            result = service.send(quotation, args.template)
        else:
            result = service.download(quotation, args.template)
    except QuoteKernelError as e:
        print(f"[{e.code}] {e}", file=sys.stderr)
        return 1

    print(result.artifact.content.decode("utf-8"))
    print()
    print(f"Finalized {result.finalized.quotation_number}; next number is {store.read_next_number()}")
    if args.out:
        Path(args.out).write_bytes(result.artifact.content)
        print(f"Wrote {args.out} ({result.artifact.filename})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
