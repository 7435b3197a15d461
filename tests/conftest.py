"""
Pytest fixtures for the quotation engine test suite.

Provides:
- In-memory SQLite database per test (engine, session factory)
- Policy store, numbering sequencer and persisted account settings
- Deterministic clock
- Fake renderer / delivery channel / extractor collaborators
- Captured structured logs

Environment Variables:
- QUOTE_TEST_DATABASE_URL: database URL for store tests. Defaults to an
  in-memory SQLite database; a PostgreSQL URL exercises the row lock.
"""

import json
import logging
import os
from io import StringIO

import pytest

from quote_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from quote_kernel.domain.clock import DeterministicClock
from quote_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from quote_kernel.services.sequence_service import NumberingSequencer
from quote_services.collaborators import RenderedArtifact
from quote_services.drafting import initial_settings
from quote_services.policy_store import SqlPolicyStore

TEST_USER_KEY = "test-user"
DEFAULT_TEST_DATABASE_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture quote_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            quotation.finalize(sequencer)
            logs = captured_logs()
            assert any(r["message"] == "quotation_finalized" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("quote_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh database with all tables for one test."""
    url = os.environ.get("QUOTE_TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)
    eng = init_engine_from_url(url)
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def policy_store(session_factory):
    return SqlPolicyStore(session_factory, user_key=TEST_USER_KEY)


@pytest.fixture
def sequencer(policy_store):
    return NumberingSequencer(policy_store)


@pytest.fixture
def settings(policy_store):
    """Persisted account settings with starter payment options."""
    return policy_store.persist(
        initial_settings(
            "Acme Servicios S.A.C.",
            company_phone="01 555 1234",
            company_address="Av. Arequipa 123, Lima",
            with_starter_options=True,
        ).with_changes(
            company_document_type="RUC",
            company_document_number="20123456789",
            company_email="ventas@acme.pe",
        )
    )


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeRenderer:
    """Records every document it renders and returns fixed bytes."""

    def __init__(self, content: bytes = b"%PDF-1.4 fake"):
        self.content = content
        self.documents = []

    def render(self, document):
        self.documents.append(document)
        return RenderedArtifact(content=self.content)


class FailingRenderer:
    def render(self, document):
        raise RuntimeError("rasterizer crashed")


class RecordingChannel:
    """Delivery channel that records payloads; optionally fails."""

    def __init__(self, name: str = "webhook", fail: bool = False):
        self.name = name
        self.fail = fail
        self.payloads = []

    def deliver(self, payload):
        if self.fail:
            raise ConnectionError("webhook unreachable")
        self.payloads.append(payload)


class StaticExtractor:
    """Returns a canned response, or raises it if it is an exception."""

    def __init__(self, response):
        self.response = response
        self.calls = 0

    def extract(self, source):
        self.calls += 1
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def delivery_channel():
    return RecordingChannel()


@pytest.fixture
def email_channel():
    return RecordingChannel(name="email")


@pytest.fixture
def failing_renderer():
    return FailingRenderer()


@pytest.fixture
def failing_channel():
    return RecordingChannel(fail=True)


@pytest.fixture
def make_extractor():
    """Factory: ``make_extractor(response)`` -> StaticExtractor."""
    return StaticExtractor
