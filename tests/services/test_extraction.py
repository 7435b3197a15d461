"""
Tests for extraction response normalization and quotation population.
"""

import json
from decimal import Decimal

import pytest

from quote_kernel.domain.policies import MarginPolicy, MarginType
from quote_kernel.domain.quotation import Quotation
from quote_kernel.exceptions import ExtractionError
from quote_services.collaborators import ExtractionSource
from quote_services.drafting import new_quotation
from quote_services.extraction import (
    MISSING_DESCRIPTION,
    NOTHING_EXTRACTED_MESSAGE,
    ExtractionService,
    parse_extraction_response,
)

SOURCE = ExtractionSource(content=b"\x89PNG fake", media_type="image/png", filename="lista.png")


class TestParseExtractionResponse:

    def test_json_array(self):
        result = parse_extraction_response(
            json.dumps([{"description": "Cable", "quantity": 2, "unitPrice": 15.5}])
        )
        assert len(result.items) == 1
        item = result.items[0]
        assert item.description == "Cable"
        assert item.quantity == Decimal("2")
        assert item.unit_price == Decimal("15.5")
        assert result.client_name == ""

    def test_object_with_client(self):
        result = parse_extraction_response(
            {"items": [{"description": "A", "quantity": 1, "unitPrice": 3}], "clientName": " Ferretería Sol "}
        )
        assert result.client_name == "Ferretería Sol"
        assert len(result.items) == 1

    def test_bytes_decoded(self):
        result = parse_extraction_response(b'[{"description": "A", "quantity": 1, "unitPrice": 1}]')
        assert result.items[0].description == "A"

    def test_missing_fields_defaulted(self):
        result = parse_extraction_response([{"description": 42, "quantity": "dos", "unitPrice": None}])
        item = result.items[0]
        assert item.description == MISSING_DESCRIPTION
        assert item.quantity == Decimal("1")
        assert item.unit_price == Decimal("0")

    def test_snake_case_price_accepted(self):
        result = parse_extraction_response([{"description": "A", "quantity": 1, "unit_price": 9}])
        assert result.items[0].unit_price == Decimal("9")

    def test_non_object_entries_skipped(self):
        result = parse_extraction_response([1, "x", None, {"description": "ok"}])
        assert [i.description for i in result.items] == ["ok"]

    def test_fresh_ids(self):
        result = parse_extraction_response([{"description": "a"}, {"description": "b"}])
        assert result.items[0].id != result.items[1].id

    @pytest.mark.parametrize("raw", ["", "null", "{}", '{"items": "none"}', 5])
    def test_empty_shapes(self, raw):
        assert parse_extraction_response(raw).items == ()

    def test_invalid_json(self):
        with pytest.raises(ExtractionError) as exc_info:
            parse_extraction_response("not json [")
        assert exc_info.value.code == "EXTRACTION_FAILED"

    def test_invalid_utf8(self):
        with pytest.raises(ExtractionError):
            parse_extraction_response(b"\xff\xfe\x00")


class TestExtractionService:

    def test_populate_replaces_items(self, make_extractor):
        quotation = Quotation()
        quotation.add_item()
        extractor = make_extractor(
            [{"description": "Tubo PVC", "quantity": 10, "unitPrice": 4.2}]
        )

        outcome = ExtractionService(extractor).populate(quotation, SOURCE)

        assert outcome.items_imported == 1
        assert not outcome.nothing_extracted
        assert [i.description for i in quotation.items] == ["Tubo PVC"]
        assert quotation.compute_totals().subtotal == Decimal("42.0")

    def test_client_name_only_when_found(self, make_extractor):
        quotation = Quotation()
        quotation.set_client("Existente", "999")
        ExtractionService(make_extractor([{"description": "A"}])).populate(quotation, SOURCE)
        assert quotation.client.name == "Existente"

        ExtractionService(
            make_extractor({"items": [{"description": "A"}], "clientName": "Nuevo"})
        ).populate(quotation, SOURCE)
        assert quotation.client.name == "Nuevo"
        assert quotation.client.phone == "999"

    def test_margin_reset_to_account_default(self, make_extractor, settings):
        quotation = new_quotation(settings)
        quotation.set_margin_policy(MarginPolicy(MarginType.FIXED, 5))

        ExtractionService(make_extractor([{"description": "A"}])).populate(quotation, SOURCE, settings)
        assert quotation.margin_policy == settings.margin_policy()

    def test_nothing_extracted_leaves_quotation(self, make_extractor):
        quotation = Quotation()
        existing = quotation.add_item()

        outcome = ExtractionService(make_extractor([])).populate(quotation, SOURCE)

        assert outcome.nothing_extracted
        assert outcome.message == NOTHING_EXTRACTED_MESSAGE
        assert quotation.items == (existing,)

    def test_collaborator_failure_wrapped(self, make_extractor, captured_logs):
        quotation = Quotation()
        existing = quotation.add_item()
        service = ExtractionService(make_extractor(TimeoutError("model timed out")))

        with pytest.raises(ExtractionError) as exc_info:
            service.populate(quotation, SOURCE)

        assert exc_info.value.source == "lista.png"
        assert "model timed out" in exc_info.value.reason
        assert quotation.items == (existing,)
        assert any(r["message"] == "extraction_failed" for r in captured_logs())

    def test_extraction_error_passes_through(self, make_extractor):
        original = ExtractionError("quota exceeded")
        service = ExtractionService(make_extractor(original))
        with pytest.raises(ExtractionError) as exc_info:
            service.extract(SOURCE)
        assert exc_info.value is original
