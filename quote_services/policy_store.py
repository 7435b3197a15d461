"""
Policy store -- per-account settings and the shared quotation counter.

Responsibility:
    Loads an account's settings (upgraded once, at load time), persists
    edited settings, and is the sole owner of the persisted quotation
    counter that ``NumberingSequencer`` reserves against.

Architecture position:
    Services. Implements the kernel's ``CounterStore`` port on top of the
    ``quotation_settings`` table.

Invariants enforced:
    - The counter is advanced only by ``compare_and_set_next_number``,
      under a row lock, and only from the value the caller expected.
    - ``persist`` never moves the counter backwards.
    - Settings writes are optimistic: the caller's ``Settings.version``
      must match the stored row.
    - Every counter commit bumps the row version.
    - Storage errors surface as ``PersistenceError``; no SQLAlchemy
      exception crosses this boundary.

Failure modes:
    - NumberingConflictError: counter moved since the caller read it.
    - StaleSettingsError: settings or the counter were written since load.
    - InvalidPolicyError: settings failed validation.
    - PersistenceError: the database could not be read or written.
"""

from __future__ import annotations

from abc import abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from quote_config import Settings, settings_from_record, upgrade_settings_record, validate_settings
from quote_kernel.db.engine import session_scope
from quote_kernel.exceptions import (
    InvalidPolicyError,
    NumberingConflictError,
    PersistenceError,
    StaleSettingsError,
)
from quote_kernel.logging_config import get_logger
from quote_kernel.services.sequence_service import CounterStore, NumberingState
from quote_services.orm import QuotationSettingsModel

logger = get_logger("services.policy_store")


class PolicyStore(CounterStore):
    """Settings persistence port; also the counter store for numbering."""

    @abstractmethod
    def load_defaults(self) -> Settings:
        """Current settings, upgraded to the current schema."""
        ...

    @abstractmethod
    def persist(self, settings: Settings) -> Settings:
        """Validate and write; returns the settings with the new version."""
        ...

    def read_next_number(self) -> int:
        return self.read_numbering().next_number


class SqlPolicyStore(PolicyStore):
    """
    PolicyStore backed by the ``quotation_settings`` table.

    Each operation runs in its own short transaction opened from
    ``session_factory``.

    Usage:
        store = SqlPolicyStore(get_session_factory(), user_key="acme")
        settings = store.load_defaults()
        sequencer = NumberingSequencer(store)
    """

    def __init__(self, session_factory: sessionmaker[Session], user_key: str):
        self._session_factory = session_factory
        self.user_key = user_key

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    def _select_row(self, session: Session, lock: bool = False) -> QuotationSettingsModel | None:
        stmt = select(QuotationSettingsModel).where(
            QuotationSettingsModel.user_key == self.user_key
        )
        if lock:
            # Row-level lock
            stmt = stmt.with_for_update()
        return session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert_row(
        self,
        session: Session,
        record: dict,
        next_number: int,
        version: int,
    ) -> QuotationSettingsModel | None:
        """Create the account's row; None if another session created it first."""
        savepoint = session.begin_nested()
        try:
            row = QuotationSettingsModel(
                user_key=self.user_key,
                record=record,
                quotation_next_number=next_number,
                version=version,
                schema_version=int(record.get("schemaVersion", 0)),
            )
            session.add(row)
            session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            logger.debug("settings_row_race", extra={"user_key": self.user_key})
            savepoint.rollback()
            return None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def load_defaults(self) -> Settings:
        try:
            with session_scope(self._session_factory) as session:
                row = self._select_row(session)
                if row is None:
                    record, version = None, 0
                else:
                    record = dict(row.record)
                    record["quotationNextNumber"] = row.quotation_next_number
                    version = row.version
        except SQLAlchemyError as e:
            raise PersistenceError("load_settings", str(e)) from e

        settings = settings_from_record(record, version=version)
        logger.debug(
            "settings_loaded",
            extra={
                "user_key": self.user_key,
                "version": version,
                "next_number": settings.quotation_next_number,
                "stored": row is not None,
            },
        )
        return settings

    def persist(self, settings: Settings) -> Settings:
        result = validate_settings(settings)
        if not result.is_valid:
            issue = result.errors[0]
            raise InvalidPolicyError(issue.field, issue.value, issue.reason)
        for warning in result.warnings:
            logger.info(
                "settings_validation_warning",
                extra={"user_key": self.user_key, "field": warning.field, "reason": warning.reason},
            )

        record = settings.to_record()
        try:
            with session_scope(self._session_factory) as session:
                row = self._select_row(session, lock=True)
                if row is None:
                    if settings.version != 0:
                        raise StaleSettingsError(self.user_key, settings.version, 0)
                    row = self._insert_row(
                        session, record, settings.quotation_next_number, version=1
                    )
                    if row is None:
                        raise StaleSettingsError(self.user_key, settings.version, 1)
                    new_version = row.version
                else:
                    if row.version != settings.version:
                        raise StaleSettingsError(self.user_key, settings.version, row.version)
                    if settings.quotation_next_number < row.quotation_next_number:
                        raise InvalidPolicyError(
                            "quotationNextNumber",
                            settings.quotation_next_number,
                            f"cannot be lower than the stored value {row.quotation_next_number}",
                        )
                    row.record = record
                    row.quotation_next_number = settings.quotation_next_number
                    row.schema_version = settings.schema_version
                    row.version += 1
                    new_version = row.version
        except SQLAlchemyError as e:
            raise PersistenceError("persist_settings", str(e)) from e

        logger.info(
            "settings_persisted",
            extra={
                "user_key": self.user_key,
                "version": new_version,
                "next_number": settings.quotation_next_number,
            },
        )
        return settings.with_changes(version=new_version)

    # ------------------------------------------------------------------
    # Counter (CounterStore)
    # ------------------------------------------------------------------

    def read_numbering(self) -> NumberingState:
        return self.load_defaults().numbering()

    def compare_and_set_next_number(self, expected: int) -> int:
        try:
            with session_scope(self._session_factory) as session:
                row = self._select_row(session, lock=True)
                if row is None:
                    record = upgrade_settings_record(None)
                    row = self._insert_row(
                        session, record, int(record["quotationNextNumber"]), version=0
                    )
                    if row is None:
                        row = self._select_row(session, lock=True)
                        assert row is not None

                actual = row.quotation_next_number
                if actual != expected:
                    raise NumberingConflictError(self.user_key, expected, actual)

                # INVARIANT: increment via the locked row, never max()+1
                row.quotation_next_number = expected + 1
                row.version += 1
                new_next = row.quotation_next_number
        except SQLAlchemyError as e:
            raise PersistenceError("commit_quotation_number", str(e)) from e

        logger.debug(
            "quotation_counter_advanced",
            extra={"user_key": self.user_key, "previous": expected, "next_number": new_next},
        )
        return new_next
