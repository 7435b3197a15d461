"""
Quotation settings schema.

Typed, immutable view of one account's settings record. The persisted
record uses camelCase keys (it is shared with other clients of the same
store); ``Settings`` exposes snake_case attributes and typed values, and
converts in both directions through ``from_record`` / ``to_record``.

Keys the schema does not know are carried in ``extra`` and written back
unchanged, so a newer client's fields survive a round trip through an
older one.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from quote_kernel.domain.policies import MarginPolicy, MarginType, TaxPolicy, TaxType
from quote_kernel.domain.values import coerce_amount
from quote_kernel.exceptions import InvalidPolicyError
from quote_kernel.services.sequence_service import DEFAULT_PADDING, NumberingState

# ---------------------------------------------------------------------------
# Enums and value types
# ---------------------------------------------------------------------------


class Template(str, Enum):
    """Visual layout handed to the renderer."""

    MODERN = "modern"
    CLASSIC = "classic"
    MINIMALIST = "minimalist"
    ELEGANT = "elegant"
    BOLD = "bold"


# Payment option id that selects free text instead of a predefined option
CUSTOM_OPTION_ID = "other"


@dataclass(frozen=True)
class PaymentOption:
    """Predefined payment term or payment method."""

    id: str
    name: str
    details: str = ""

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> PaymentOption:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            details=str(data.get("details") or ""),
        )

    def to_record(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "details": self.details}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

# Persisted camelCase key -> Settings attribute
RECORD_FIELDS: dict[str, str] = {
    "companyName": "company_name",
    "companyLogo": "company_logo",
    "companyAddress": "company_address",
    "companyPhone": "company_phone",
    "companyEmail": "company_email",
    "companyWebsite": "company_website",
    "companyDocumentType": "company_document_type",
    "companyDocumentNumber": "company_document_number",
    "currencySymbol": "currency_symbol",
    "defaultMarginType": "default_margin_type",
    "defaultMarginValue": "default_margin_value",
    "defaultTemplate": "default_template",
    "paymentTerms": "payment_terms",
    "paymentMethods": "payment_methods",
    "quotationPrefix": "quotation_prefix",
    "quotationNextNumber": "quotation_next_number",
    "quotationPadding": "quotation_padding",
    "themeColor": "theme_color",
    "headerImage": "header_image",
    "taxType": "tax_type",
    "taxRate": "tax_rate",
    "schemaVersion": "schema_version",
}


def _enum_value(enum_cls: type[Enum], key: str, value: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as e:
        raise InvalidPolicyError(key, value, f"unknown {enum_cls.__name__} value") from e


def _int_value(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidPolicyError(key, value, "must be an integer")
    try:
        number = Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidPolicyError(key, value, "must be an integer") from e
    if not number.is_finite() or number != number.to_integral_value():
        raise InvalidPolicyError(key, value, "must be an integer")
    return int(number)


def _optional_str(value: Any) -> str | None:
    return None if value in (None, "") else str(value)


@dataclass(frozen=True)
class Settings:
    """
    One account's quotation settings.

    ``version`` is the store's optimistic concurrency token; it is not part
    of the persisted record.
    """

    company_name: str = ""
    company_logo: str | None = None
    company_address: str = ""
    company_phone: str = ""
    company_email: str = ""
    company_website: str = ""
    company_document_type: str = ""
    company_document_number: str = ""
    currency_symbol: str = "S/"
    default_margin_type: MarginType = MarginType.PERCENTAGE
    default_margin_value: Decimal = Decimal("20")
    default_template: Template = Template.MODERN
    payment_terms: tuple[PaymentOption, ...] = ()
    payment_methods: tuple[PaymentOption, ...] = ()
    quotation_prefix: str = "COT-"
    quotation_next_number: int = 1
    quotation_padding: int = DEFAULT_PADDING
    theme_color: str = "#EC4899"
    header_image: str | None = None
    tax_type: TaxType = TaxType.INCLUDED
    tax_rate: Decimal = Decimal("18")
    schema_version: int = 0
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0

    # -- record conversion ---------------------------------------------------

    @classmethod
    def from_record(cls, record: Mapping[str, Any], version: int = 0) -> Settings:
        """
        Build from a complete (already upgraded) camelCase record.

        Raises:
            InvalidPolicyError: If an enum or integer field holds a value
                that cannot be interpreted.
        """
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in record.items():
            attr = RECORD_FIELDS.get(key)
            if attr is None:
                extra[key] = value
            else:
                values[attr] = value

        if "default_margin_type" in values:
            values["default_margin_type"] = _enum_value(
                MarginType, "defaultMarginType", values["default_margin_type"]
            )
        if "tax_type" in values:
            values["tax_type"] = _enum_value(TaxType, "taxType", values["tax_type"])
        if "default_template" in values:
            values["default_template"] = _enum_value(
                Template, "defaultTemplate", values["default_template"]
            )
        for attr in ("default_margin_value", "tax_rate"):
            if attr in values:
                values[attr] = coerce_amount(values[attr], attr)
        for attr, key in (
            ("quotation_next_number", "quotationNextNumber"),
            ("quotation_padding", "quotationPadding"),
            ("schema_version", "schemaVersion"),
        ):
            if attr in values:
                values[attr] = _int_value(key, values[attr])
        for attr in ("payment_terms", "payment_methods"):
            if attr in values:
                values[attr] = tuple(
                    PaymentOption.from_record(option)
                    for option in values[attr] or ()
                    if isinstance(option, Mapping)
                )
        for attr in ("company_logo", "header_image"):
            if attr in values:
                values[attr] = _optional_str(values[attr])
        for attr in (
            "company_name", "company_address", "company_phone", "company_email",
            "company_website", "company_document_type", "company_document_number",
            "currency_symbol", "quotation_prefix", "theme_color",
        ):
            if attr in values:
                values[attr] = "" if values[attr] is None else str(values[attr])

        return cls(**values, extra=MappingProxyType(extra), version=version)

    def to_record(self) -> dict[str, Any]:
        """camelCase record; Decimals are written as strings."""
        record: dict[str, Any] = dict(self.extra)
        for key, attr in RECORD_FIELDS.items():
            value = getattr(self, attr)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, Decimal):
                value = str(value)
            elif attr in ("payment_terms", "payment_methods"):
                value = [option.to_record() for option in value]
            record[key] = value
        return record

    # -- derived views -------------------------------------------------------

    def margin_policy(self) -> MarginPolicy:
        return MarginPolicy(self.default_margin_type, self.default_margin_value)

    def tax_policy(self) -> TaxPolicy:
        return TaxPolicy(self.tax_type, self.tax_rate)

    def numbering(self) -> NumberingState:
        return NumberingState(
            prefix=self.quotation_prefix,
            next_number=self.quotation_next_number,
            padding=self.quotation_padding,
        )

    @property
    def company_document_info(self) -> str:
        """``"RUC: 20123456789"``, or empty when either part is missing."""
        if self.company_document_type and self.company_document_number:
            return f"{self.company_document_type}: {self.company_document_number}"
        return ""

    def find_payment_term(self, option_id: str) -> PaymentOption | None:
        return next((o for o in self.payment_terms if o.id == option_id), None)

    def find_payment_method(self, option_id: str) -> PaymentOption | None:
        return next((o for o in self.payment_methods if o.id == option_id), None)

    def with_changes(self, **changes: Any) -> Settings:
        return replace(self, **changes)
