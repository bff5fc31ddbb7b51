"""
workflow/ordering.py

Sort keys for slot listings.

Schedules are shown with booked work first, then requests waiting on the
doctor, then open slots, then history:

    BOOKED < PENDING < AVAILABLE < COMPLETED < REMOVED

and within a status by date, then start time.  Booking lists only ever offer
AVAILABLE slots, ordered by date and start time.
"""

from __future__ import annotations

import datetime as dt
from typing import Iterable

from storage.models import Slot, SlotStatus


def slot_display_key(slot: Slot) -> tuple[int, dt.date, dt.time]:
    return (slot.status.display_rank, slot.date, slot.start_time)


def slot_time_key(slot: Slot) -> tuple[dt.date, dt.time]:
    return (slot.date, slot.start_time)


def sort_for_display(slots: Iterable[Slot]) -> list[Slot]:
    return sorted(slots, key=slot_display_key)


def bookable(slots: Iterable[Slot], on_date: dt.date | None = None) -> list[Slot]:
    """AVAILABLE slots (optionally on one date) in chronological order."""
    return sorted(
        (
            s for s in slots
            if s.status == SlotStatus.AVAILABLE and (on_date is None or s.date == on_date)
        ),
        key=slot_time_key,
    )
