"""
NumberingSequencer -- reserve/commit allocation of quotation numbers.

Responsibility:
    Formats the next quotation number for display (``peek`` / ``reserve``)
    and consumes it (``commit``) only once an artifact has actually been
    produced. The persisted counter lives in a CounterStore (the policy
    store); the sequencer never holds it as ambient state.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by Quotation.reserve_number / Quotation.bind_number.

Invariants enforced:
    - Gapless on success: ``next_number`` increases by exactly 1 per
      successful commit, never per reservation and never per failed attempt.
    - Compare-and-swap: commit writes ``expected + 1`` only if the store
      still holds the value this session reserved. The aggregate-max-plus-one
      anti-pattern is never used.
    - Side-effect-free reads: ``peek`` and ``reserve`` never write the store.

Failure modes:
    - NumberingConflictError: another session committed first. The caller
      re-peeks and retries.
    - PersistenceError: the store could not be read or written; nothing
      was consumed.

States:
    UNRESERVED --reserve()--> RESERVED --commit() ok--> UNRESERVED
                                  |
                                  +--commit() fails--> RESERVED (retry or re-reserve)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from quote_kernel.exceptions import NumberingConflictError, PersistenceError
from quote_kernel.logging_config import get_logger

logger = get_logger("services.sequence")

DEFAULT_PADDING = 4


@dataclass(frozen=True)
class NumberingState:
    """Prefix, counter and zero padding as persisted by the policy store."""

    prefix: str
    next_number: int
    padding: int = DEFAULT_PADDING


@dataclass(frozen=True)
class Reservation:
    """A counter value shown on a quotation but not yet consumed."""

    number: int
    formatted: str


class SequencerState(str, Enum):
    UNRESERVED = "unreserved"
    RESERVED = "reserved"


def format_quotation_number(prefix: str, number: int, padding: int = DEFAULT_PADDING) -> str:
    """``COT-`` + 1 -> ``COT-0001``."""
    return f"{prefix}{str(number).zfill(padding)}"


class CounterStore(ABC):
    """
    Persistence port for the numbering counter.

    Implemented by the policy store, which is the sole owner of the
    persisted NumberingState.
    """

    user_key: str = ""

    @abstractmethod
    def read_numbering(self) -> NumberingState:
        """Current persisted numbering state."""
        ...

    @abstractmethod
    def compare_and_set_next_number(self, expected: int) -> int:
        """
        Atomically replace ``expected`` with ``expected + 1``.

        Returns:
            The new next number.

        Raises:
            NumberingConflictError: If the stored value is not ``expected``.
            PersistenceError: If storage is unavailable.
        """
        ...


class NumberingSequencer:
    """
    Session-scoped view of the shared quotation counter.

    Usage:
        sequencer = NumberingSequencer(policy_store)
        sequencer.peek()                     # "COT-0001", any number of times
        reservation = sequencer.reserve()    # shown on the quotation
        ...                                  # produce the PDF / send message
        sequencer.commit(reservation)        # counter -> 2
    """

    def __init__(self, store: CounterStore):
        self._store = store
        self._reservation: Reservation | None = None

    @property
    def state(self) -> SequencerState:
        if self._reservation is None:
            return SequencerState.UNRESERVED
        return SequencerState.RESERVED

    @property
    def last_reservation(self) -> Reservation | None:
        return self._reservation

    def peek(self) -> str:
        """Formatted next number; reads only."""
        numbering = self._store.read_numbering()
        return format_quotation_number(
            numbering.prefix, numbering.next_number, numbering.padding
        )

    def reserve(self) -> Reservation:
        """
        Read the counter and remember it as this session's expected value.

        Does not write the store; reserving twice simply re-reads.
        """
        numbering = self._store.read_numbering()
        self._reservation = Reservation(
            number=numbering.next_number,
            formatted=format_quotation_number(
                numbering.prefix, numbering.next_number, numbering.padding
            ),
        )
        logger.debug(
            "quotation_number_reserved",
            extra={"number": self._reservation.number, "formatted": self._reservation.formatted},
        )
        return self._reservation

    def verify(self, reservation: Reservation) -> None:
        """
        Check that ``reservation`` is still the stored next number.

        Raises:
            NumberingConflictError: If another quotation consumed it.
        """
        actual = self._store.read_numbering().next_number
        if actual != reservation.number:
            logger.warning(
                "quotation_number_stale",
                extra={"expected": reservation.number, "actual": actual},
            )
            raise NumberingConflictError(self._store.user_key, reservation.number, actual)

    def commit(self, reservation: Reservation | None = None) -> int:
        """
        Consume the reserved number.

        The only mutating operation. Called exactly once per successfully
        produced artifact.

        Args:
            reservation: The reservation held by the quotation. Defaults to
                this session's last reservation, reserving first if none.

        Returns:
            The new persisted next number.
        """
        if reservation is None:
            reservation = self._reservation or self.reserve()

        try:
            new_next = self._store.compare_and_set_next_number(reservation.number)
        except NumberingConflictError as e:
            logger.warning(
                "quotation_number_conflict",
                extra={"expected": e.expected, "actual": e.actual},
            )
            raise
        except PersistenceError:
            logger.error(
                "quotation_number_commit_failed",
                extra={"number": reservation.number},
                exc_info=True,
            )
            raise

        # INVARIANT: exactly +1 per successful commit
        assert new_next == reservation.number + 1, (
            "counter must advance by exactly one per commit"
        )
        if self._reservation is not None and self._reservation.number == reservation.number:
            self._reservation = None
        logger.info(
            "quotation_number_committed",
            extra={"number": reservation.number, "formatted": reservation.formatted, "next_number": new_next},
        )
        return new_next
