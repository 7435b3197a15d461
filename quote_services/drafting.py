"""
Drafting -- create new quotations and new accounts from settings.

``new_quotation`` is the one place where policy-store defaults flow into
a fresh ``Quotation``: margin, tax, currency, the first predefined
payment term / method, and a reserved (not consumed) quotation number.
"""

from __future__ import annotations

from quote_config import CURRENT_SCHEMA_VERSION, PaymentOption, Settings
from quote_config.loader import starter_options
from quote_kernel.domain.quotation import Quotation
from quote_kernel.logging_config import get_logger
from quote_kernel.services.sequence_service import NumberingSequencer

logger = get_logger("services.drafting")


def new_quotation(settings: Settings, sequencer: NumberingSequencer | None = None) -> Quotation:
    """
    Build an empty quotation pre-filled with the account's defaults.

    When ``sequencer`` is given the next number is reserved for display;
    nothing is consumed until the quotation is finalized.
    """
    quotation = Quotation(
        margin_policy=settings.margin_policy(),
        tax_policy=settings.tax_policy(),
        currency_symbol=settings.currency_symbol,
    )
    if settings.payment_terms:
        quotation.select_payment_term(settings.payment_terms[0].id)
    if settings.payment_methods:
        quotation.select_payment_method(settings.payment_methods[0].id)
    if sequencer is not None:
        quotation.reserve_number(sequencer)

    logger.debug(
        "quotation_drafted",
        extra={
            "quotation_id": quotation.quotation_id,
            "quotation_number": quotation.quotation_number,
            "tax_type": settings.tax_type,
            "margin_type": settings.default_margin_type,
        },
    )
    return quotation


def initial_settings(
    company_name: str,
    *,
    company_phone: str = "",
    company_address: str = "",
    company_logo: str | None = None,
    theme_color: str | None = None,
    with_starter_options: bool = False,
) -> Settings:
    """
    Settings for a newly onboarded account.

    ``with_starter_options`` seeds the two example payment terms and
    methods from ``defaults.yaml`` instead of empty lists.
    """
    settings = Settings(
        company_name=company_name,
        company_phone=company_phone,
        company_address=company_address,
        company_logo=company_logo,
        schema_version=CURRENT_SCHEMA_VERSION,
    )
    if theme_color:
        settings = settings.with_changes(theme_color=theme_color)
    if with_starter_options:
        options = starter_options()
        settings = settings.with_changes(
            payment_terms=tuple(PaymentOption.from_record(o) for o in options["paymentTerms"]),
            payment_methods=tuple(PaymentOption.from_record(o) for o in options["paymentMethods"]),
        )
    return settings
