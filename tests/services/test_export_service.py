"""
Tests for ExportService: artifact first, number last.

Verifies:
- download / send / send_email finalize exactly once on success
- render and delivery failures consume no number
- re-export of a finalized quotation never touches the counter
- a consumed number is rejected before anything is rendered or delivered
- numbering conflicts surface for a refresh-and-retry
"""

import pytest

from quote_kernel.exceptions import (
    DeliveryError,
    NumberingConflictError,
    RenderError,
)
from quote_services.drafting import new_quotation
from quote_services.export_service import ExportService


@pytest.fixture
def quotation(settings, sequencer):
    q = new_quotation(settings, sequencer)
    item = q.add_item()
    q.update_item(item.id, "description", "Instalación de red")
    q.update_item(item.id, "quantity", 2)
    q.update_item(item.id, "unit_price", "150")
    q.set_client("Juan Pérez", "+51 999 888 777", "juan@example.com")
    return q


@pytest.fixture
def service(settings, sequencer, renderer, delivery_channel, deterministic_clock):
    return ExportService(
        settings,
        sequencer,
        renderer,
        delivery_channel=delivery_channel,
        clock=deterministic_clock,
    )


class TestDownload:

    def test_download_finalizes(self, service, quotation, policy_store, renderer):
        result = service.download(quotation)

        assert result.finalized.quotation_number == "COT-0001"
        assert result.artifact.content == b"%PDF-1.4 fake"
        assert result.artifact.filename == "Cotizacion_COT-0001_Juan_Pérez.pdf"
        assert result.document.header.quotation_number == "COT-0001"
        assert not result.already_finalized
        assert quotation.finalized
        assert policy_store.read_next_number() == 2
        assert len(renderer.documents) == 1

    def test_three_downloads_are_gapless(self, service, settings, sequencer, policy_store):
        numbers = []
        for _ in range(3):
            q = new_quotation(settings, sequencer)
            q.add_item()
            numbers.append(service.download(q).finalized.quotation_number)

        assert numbers == ["COT-0001", "COT-0002", "COT-0003"]
        assert policy_store.read_next_number() == 4

    def test_redownload_is_idempotent(self, service, quotation, policy_store, renderer):
        first = service.download(quotation)
        second = service.download(quotation)

        assert second.already_finalized
        assert second.finalized == first.finalized
        assert len(renderer.documents) == 2
        assert policy_store.read_next_number() == 2

    def test_render_failure_consumes_nothing(
        self, settings, sequencer, failing_renderer, quotation, policy_store
    ):
        service = ExportService(settings, sequencer, failing_renderer)

        with pytest.raises(RenderError) as exc_info:
            service.download(quotation)

        assert exc_info.value.quotation_number == "COT-0001"
        assert "rasterizer crashed" in exc_info.value.reason
        assert not quotation.finalized
        assert sequencer.peek() == "COT-0001"
        assert policy_store.read_next_number() == 1

    def test_number_reserved_when_missing(self, service, settings, policy_store):
        q = new_quotation(settings)
        assert q.quotation_number == ""
        assert service.download(q).finalized.quotation_number == "COT-0001"

    def test_stale_number_not_rendered(self, service, quotation, policy_store, renderer):
        policy_store.compare_and_set_next_number(1)
        with pytest.raises(NumberingConflictError):
            service.download(quotation)
        assert renderer.documents == []
        assert policy_store.read_next_number() == 2

    def test_finalized_skips_number_check(self, service, quotation, policy_store, renderer):
        service.download(quotation)
        policy_store.compare_and_set_next_number(2)
        result = service.download(quotation)
        assert result.already_finalized
        assert result.finalized.quotation_number == "COT-0001"


class TestSend:

    def test_send_delivers_then_finalizes(self, service, quotation, delivery_channel, policy_store):
        result = service.send(quotation)

        assert len(delivery_channel.payloads) == 1
        payload = delivery_channel.payloads[0]
        assert payload is result.payload
        assert payload["quote"]["number"] == "COT-0001"
        assert payload["client"]["phone"] == "51999888777"
        assert payload["documentFilename"] == "Cotizacion_COT-0001_Juan_Pérez.pdf"
        assert payload["quote"]["grandTotal"] == "360.00"
        assert result.finalized.quotation_number == "COT-0001"
        assert policy_store.read_next_number() == 2

    def test_delivery_failure_consumes_nothing(
        self, settings, sequencer, renderer, failing_channel, quotation, policy_store
    ):
        service = ExportService(settings, sequencer, renderer, delivery_channel=failing_channel)

        with pytest.raises(DeliveryError) as exc_info:
            service.send(quotation)

        assert exc_info.value.channel == "webhook"
        assert exc_info.value.code == "DELIVERY_FAILED"
        assert not quotation.finalized
        assert sequencer.peek() == "COT-0001"
        assert policy_store.read_next_number() == 1

    def test_retry_after_delivery_failure(
        self, settings, sequencer, renderer, failing_channel, quotation, policy_store
    ):
        service = ExportService(settings, sequencer, renderer, delivery_channel=failing_channel)
        with pytest.raises(DeliveryError):
            service.send(quotation)

        failing_channel.fail = False
        result = service.send(quotation)
        assert result.finalized.quotation_number == "COT-0001"
        assert len(failing_channel.payloads) == 1
        assert policy_store.read_next_number() == 2

    def test_missing_phone_rejected_before_render(self, service, quotation, renderer):
        quotation.set_client("Juan Pérez", "", "juan@example.com")

        with pytest.raises(DeliveryError) as exc_info:
            service.send(quotation)

        assert "phone" in exc_info.value.reason
        assert renderer.documents == []
        assert not quotation.finalized

    def test_no_channel_configured(self, settings, sequencer, renderer, quotation):
        service = ExportService(settings, sequencer, renderer)
        with pytest.raises(DeliveryError) as exc_info:
            service.send(quotation)
        assert exc_info.value.channel == "none"
        assert renderer.documents == []

    def test_consumed_number_never_delivered(
        self, service, quotation, policy_store, sequencer, renderer, delivery_channel
    ):
        """Another session took COT-0001; nothing goes out until refreshed."""
        policy_store.compare_and_set_next_number(1)

        with pytest.raises(NumberingConflictError) as exc_info:
            service.send(quotation)
        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        assert exc_info.value.user_key == "test-user"
        assert delivery_channel.payloads == []
        assert renderer.documents == []
        assert not quotation.finalized

        assert quotation.refresh_number(sequencer) == "COT-0002"
        result = service.send(quotation)
        assert result.finalized.quotation_number == "COT-0002"
        assert [p["quote"]["number"] for p in delivery_channel.payloads] == ["COT-0002"]
        assert policy_store.read_next_number() == 3

    def test_two_drafts_sharing_a_number(
        self, service, settings, sequencer, renderer, delivery_channel, policy_store
    ):
        first = new_quotation(settings, sequencer)
        first.add_item()
        second = new_quotation(settings, sequencer)
        second.add_item()
        second.set_client("Beto", "999111222")
        assert first.quotation_number == second.quotation_number == "COT-0001"

        service.download(first)
        with pytest.raises(NumberingConflictError):
            service.send(second)

        assert delivery_channel.payloads == []
        assert len(renderer.documents) == 1
        assert first.finalized_quotation.quotation_number == "COT-0001"
        assert policy_store.read_next_number() == 2

    def test_commit_race_after_delivery(
        self, service, quotation, policy_store, sequencer, delivery_channel, monkeypatch
    ):
        """A commit landing between delivery and finalize still conflicts."""
        deliver = delivery_channel.deliver

        def deliver_then_race(payload):
            deliver(payload)
            policy_store.compare_and_set_next_number(1)

        monkeypatch.setattr(delivery_channel, "deliver", deliver_then_race)

        with pytest.raises(NumberingConflictError):
            service.send(quotation)
        assert not quotation.finalized
        assert policy_store.read_next_number() == 2

    def test_export_logs_bound_number(self, service, quotation, captured_logs):
        service.send(quotation)
        delivered = [r for r in captured_logs() if r["message"] == "quotation_delivered"]
        assert delivered[0]["quotation_number"] == "COT-0001"
        assert delivered[0]["channel"] == "webhook"


class TestSendEmail:

    def test_draft_only_without_channel(self, service, quotation, renderer, policy_store):
        result = service.send_email(quotation)

        assert result.email.recipient == "juan@example.com"
        assert result.email.subject == "Cotización COT-0001 - Acme Servicios S.A.C."
        assert result.artifact is None
        assert renderer.documents == []
        assert result.finalized.quotation_number == "COT-0001"
        assert policy_store.read_next_number() == 2

    def test_email_channel_gets_attachment(self, settings, sequencer, renderer, email_channel, quotation):
        service = ExportService(settings, sequencer, renderer, email_channel=email_channel)
        result = service.send_email(quotation)

        payload = email_channel.payloads[0]
        assert payload["to"] == "juan@example.com"
        assert payload["attachment"] == result.artifact.as_base64()
        assert payload["attachmentFilename"] == "Cotizacion_COT-0001_Juan_Pérez.pdf"
        assert payload["attachmentMediaType"] == "application/pdf"
        assert len(renderer.documents) == 1
        assert quotation.finalized

    def test_email_delivery_failure_consumes_nothing(
        self, settings, sequencer, renderer, failing_channel, quotation, policy_store
    ):
        service = ExportService(settings, sequencer, renderer, email_channel=failing_channel)
        with pytest.raises(DeliveryError):
            service.send_email(quotation)
        assert not quotation.finalized
        assert policy_store.read_next_number() == 1

    def test_stale_number_rejected_before_draft(
        self, settings, sequencer, renderer, email_channel, quotation, policy_store
    ):
        service = ExportService(settings, sequencer, renderer, email_channel=email_channel)
        policy_store.compare_and_set_next_number(1)

        with pytest.raises(NumberingConflictError):
            service.send_email(quotation)
        assert email_channel.payloads == []
        assert renderer.documents == []
