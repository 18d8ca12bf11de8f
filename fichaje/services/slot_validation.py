from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from fichaje.models import TimeSlotType

MINUTES_PER_DAY = 24 * 60


class SlotLike(Protocol):
    start_minutes: int
    end_minutes: int
    slot_type: TimeSlotType


def find_slot_errors(slots: Sequence[SlotLike]) -> list[str]:
    """Return the human-readable problems of a day pattern's slots.

    Ranges are half-open ``[start, end)``: touching slots are fine, and a
    WORK slot may contain a BREAK slot. Two slots of the same type must not
    overlap.
    """
    errors: list[str] = []
    for index, slot in enumerate(slots, start=1):
        if slot.start_minutes < 0 or slot.end_minutes > MINUTES_PER_DAY:
            errors.append(f"Tramo {index}: las horas deben estar entre 00:00 y 24:00.")
        if slot.end_minutes <= slot.start_minutes:
            errors.append(f"Tramo {index}: la hora de fin debe ser posterior a la de inicio.")

    by_type: dict[TimeSlotType, list[tuple[int, int]]] = {}
    for slot in slots:
        by_type.setdefault(TimeSlotType(slot.slot_type), []).append((slot.start_minutes, slot.end_minutes))

    for slot_type, ranges in by_type.items():
        if _has_overlap(ranges):
            errors.append(f"Los tramos del mismo tipo no pueden solaparse ({slot_type.value}).")
    return errors


def _has_overlap(ranges: Iterable[tuple[int, int]]) -> bool:
    ordered = sorted(ranges)
    for (_, previous_end), (next_start, _) in zip(ordered, ordered[1:]):
        if next_start < previous_end:
            return True
    return False
