"""Kernel services: quotation numbering."""

from quote_kernel.services.sequence_service import (
    CounterStore,
    NumberingSequencer,
    NumberingState,
    Reservation,
    SequencerState,
    format_quotation_number,
)

__all__ = [
    "CounterStore",
    "NumberingSequencer",
    "NumberingState",
    "Reservation",
    "SequencerState",
    "format_quotation_number",
]
