"""Clock state machine and replay of time-entry sequences.

Everything here is pure: it works on already loaded entries (ORM rows or
any object with the same attributes) so the same code serves live clock
actions, daily summaries and exports.
"""

from __future__ import annotations

import enum
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, ClassVar, Protocol
from zoneinfo import ZoneInfo

from fichaje.models import TimeEntryType
from fichaje.services.local_time import local_date, normalize_ts


class ClockState(str, enum.Enum):
    CLOCKED_OUT = "CLOCKED_OUT"
    CLOCKED_IN = "CLOCKED_IN"
    ON_BREAK = "ON_BREAK"


class OpenSessionIssue(str, enum.Enum):
    CROSSED_MIDNIGHT = "CROSSED_MIDNIGHT"
    EXCEEDS_MAX_OPEN_HOURS = "EXCEEDS_MAX_OPEN_HOURS"
    EXCESSIVE_DURATION = "EXCESSIVE_DURATION"


class EntryLike(Protocol):
    id: int | None
    entry_type: TimeEntryType
    timestamp: datetime
    project_id: int | None
    task: str | None
    is_cancelled: bool
    pending_change: dict[str, Any] | None


_TRANSITIONS: dict[tuple[ClockState, TimeEntryType], ClockState] = {
    (ClockState.CLOCKED_OUT, TimeEntryType.CLOCK_IN): ClockState.CLOCKED_IN,
    (ClockState.CLOCKED_IN, TimeEntryType.BREAK_START): ClockState.ON_BREAK,
    (ClockState.ON_BREAK, TimeEntryType.BREAK_END): ClockState.CLOCKED_IN,
    (ClockState.CLOCKED_IN, TimeEntryType.CLOCK_OUT): ClockState.CLOCKED_OUT,
    (ClockState.ON_BREAK, TimeEntryType.CLOCK_OUT): ClockState.CLOCKED_OUT,
    (ClockState.CLOCKED_IN, TimeEntryType.PROJECT_SWITCH): ClockState.CLOCKED_IN,
    (ClockState.ON_BREAK, TimeEntryType.PROJECT_SWITCH): ClockState.ON_BREAK,
}

_TRANSITION_ERRORS: dict[tuple[ClockState, TimeEntryType], tuple[str, str]] = {
    (ClockState.CLOCKED_IN, TimeEntryType.CLOCK_IN): (
        "ALREADY_CLOCKED_IN",
        "Ya tienes una jornada abierta. Ficha la salida antes de volver a entrar.",
    ),
    (ClockState.ON_BREAK, TimeEntryType.CLOCK_IN): (
        "ALREADY_CLOCKED_IN",
        "Estas en pausa. Finaliza la pausa o ficha la salida.",
    ),
    (ClockState.CLOCKED_OUT, TimeEntryType.CLOCK_OUT): (
        "CLOCK_IN_REQUIRED",
        "No hay ninguna entrada abierta. Ficha la entrada primero.",
    ),
    (ClockState.CLOCKED_OUT, TimeEntryType.BREAK_START): (
        "CLOCK_IN_REQUIRED",
        "Debes fichar la entrada antes de iniciar una pausa.",
    ),
    (ClockState.ON_BREAK, TimeEntryType.BREAK_START): (
        "ALREADY_ON_BREAK",
        "Ya estas en pausa.",
    ),
    (ClockState.CLOCKED_OUT, TimeEntryType.BREAK_END): (
        "NOT_ON_BREAK",
        "No hay ninguna pausa en curso.",
    ),
    (ClockState.CLOCKED_IN, TimeEntryType.BREAK_END): (
        "NOT_ON_BREAK",
        "No hay ninguna pausa en curso.",
    ),
    (ClockState.CLOCKED_OUT, TimeEntryType.PROJECT_SWITCH): (
        "CLOCK_IN_REQUIRED",
        "Debes fichar la entrada para cambiar de proyecto.",
    ),
}


def next_state(state: ClockState, entry_type: TimeEntryType) -> ClockState | None:
    return _TRANSITIONS.get((state, TimeEntryType(entry_type)))


def transition_error(state: ClockState, entry_type: TimeEntryType) -> tuple[str, str] | None:
    if next_state(state, entry_type) is not None:
        return None
    return _TRANSITION_ERRORS.get(
        (state, TimeEntryType(entry_type)),
        ("INVALID_TRANSITION", "Accion de fichaje no valida en el estado actual."),
    )


@dataclass(frozen=True)
class PendingProjectChange:
    """Project change requested during a break, applied when the break ends."""

    project_id: int | None
    task: str | None = None

    kind: ClassVar[str] = "PROJECT_CHANGE"

    def to_payload(self) -> dict[str, Any]:
        return {"kind": self.kind, "project_id": self.project_id, "task": self.task}

    @classmethod
    def from_payload(cls, payload: Any) -> PendingProjectChange | None:
        if not isinstance(payload, dict) or payload.get("kind") != cls.kind:
            return None
        raw_project_id = payload.get("project_id")
        return cls(
            project_id=int(raw_project_id) if raw_project_id is not None else None,
            task=payload.get("task"),
        )


@dataclass(frozen=True)
class DayReplay:
    state: ClockState
    first_clock_in: datetime | None
    last_clock_out: datetime | None
    worked_minutes: int
    break_minutes: int
    open_clock_in_id: int | None
    open_session_started_at: datetime | None
    current_segment_started_at: datetime | None
    active_project_id: int | None
    active_task: str | None
    pending_project_change: PendingProjectChange | None
    project_minutes: dict[int | None, int] = field(default_factory=dict)
    incomplete_clock_in_ids: tuple[int, ...] = ()
    unresolved_minutes: int = 0
    rejected_entry_ids: tuple[int, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.state != ClockState.CLOCKED_OUT

    @property
    def is_on_break(self) -> bool:
        return self.state == ClockState.ON_BREAK


@dataclass(frozen=True)
class OpenSessionCheck:
    elapsed_minutes: int
    threshold_minutes: int
    reasons: tuple[OpenSessionIssue, ...]

    @property
    def requires_decision(self) -> bool:
        return (
            OpenSessionIssue.EXCESSIVE_DURATION in self.reasons
            or OpenSessionIssue.EXCEEDS_MAX_OPEN_HOURS in self.reasons
        )


class _SessionAccumulator:
    def __init__(self) -> None:
        self.worked_seconds = 0.0
        self.break_seconds = 0.0
        self.project_seconds: dict[int | None, float] = defaultdict(float)

    def add(self, state: ClockState, project_id: int | None, seconds: float) -> None:
        if seconds <= 0:
            return
        if state == ClockState.CLOCKED_IN:
            self.worked_seconds += seconds
            self.project_seconds[project_id] += seconds
        elif state == ClockState.ON_BREAK:
            self.break_seconds += seconds


def _to_minutes(seconds: float) -> int:
    return int(max(0.0, seconds) // 60)


def sort_entries(entries: Iterable[EntryLike]) -> list[EntryLike]:
    return sorted(entries, key=lambda item: (normalize_ts(item.timestamp), item.id or 0))


def visible_entries(entries: Iterable[EntryLike]) -> list[EntryLike]:
    return [item for item in sort_entries(entries) if item.entry_type != TimeEntryType.PROJECT_SWITCH]


def replay_entries(entries: Iterable[EntryLike], *, now: datetime | None = None) -> DayReplay:
    """Fold an entry sequence into clock state and accumulated minutes.

    Cancelled entries are skipped. A CLOCK_IN arriving while a session is
    still open flags that session as incomplete: its worked time is moved to
    ``unresolved_minutes`` instead of the totals. Entries that are not a
    valid transition from the current state are collected in
    ``rejected_entry_ids`` and otherwise ignored. When ``now`` is given and
    the last session is open, the open segment is accumulated up to ``now``.
    """
    state = ClockState.CLOCKED_OUT
    worked_seconds = 0.0
    break_seconds = 0.0
    unresolved_seconds = 0.0
    project_seconds: dict[int | None, float] = defaultdict(float)
    session = _SessionAccumulator()
    segment_start: datetime | None = None
    open_clock_in_id: int | None = None
    open_started_at: datetime | None = None
    first_clock_in: datetime | None = None
    last_clock_out: datetime | None = None
    project_id: int | None = None
    task: str | None = None
    pending: PendingProjectChange | None = None
    incomplete: list[int] = []
    rejected: list[int] = []

    for entry in sort_entries(item for item in entries if not item.is_cancelled):
        ts = normalize_ts(entry.timestamp)
        entry_type = TimeEntryType(entry.entry_type)

        if entry_type == TimeEntryType.CLOCK_IN and state != ClockState.CLOCKED_OUT:
            if segment_start is not None:
                session.add(state, project_id, (ts - segment_start).total_seconds())
            if open_clock_in_id is not None:
                incomplete.append(open_clock_in_id)
            unresolved_seconds += session.worked_seconds
            session = _SessionAccumulator()
            state = ClockState.CLOCKED_OUT
            segment_start = None
            pending = None

        target = next_state(state, entry_type)
        if target is None:
            if entry.id is not None:
                rejected.append(entry.id)
            continue

        if segment_start is not None:
            session.add(state, project_id, (ts - segment_start).total_seconds())

        if entry_type == TimeEntryType.CLOCK_IN:
            session = _SessionAccumulator()
            open_clock_in_id = entry.id
            open_started_at = ts
            if first_clock_in is None:
                first_clock_in = ts
            project_id = entry.project_id
            task = entry.task
        elif entry_type == TimeEntryType.BREAK_START:
            pending = PendingProjectChange.from_payload(entry.pending_change)
        elif entry_type == TimeEntryType.BREAK_END:
            if pending is not None:
                project_id = pending.project_id
                task = pending.task
                pending = None
        elif entry_type == TimeEntryType.PROJECT_SWITCH:
            if state == ClockState.ON_BREAK:
                pending = PendingProjectChange(project_id=entry.project_id, task=entry.task)
            else:
                project_id = entry.project_id
                task = entry.task
        elif entry_type == TimeEntryType.CLOCK_OUT:
            worked_seconds += session.worked_seconds
            break_seconds += session.break_seconds
            for key, value in session.project_seconds.items():
                project_seconds[key] += value
            session = _SessionAccumulator()
            last_clock_out = ts
            open_clock_in_id = None
            open_started_at = None
            pending = None

        state = target
        segment_start = ts if target != ClockState.CLOCKED_OUT else None

    if state != ClockState.CLOCKED_OUT:
        if now is not None and segment_start is not None:
            session.add(state, project_id, (normalize_ts(now) - segment_start).total_seconds())
        worked_seconds += session.worked_seconds
        break_seconds += session.break_seconds
        for key, value in session.project_seconds.items():
            project_seconds[key] += value

    # Break is derived from the floored total so worked + break matches wall time.
    worked_minutes = _to_minutes(worked_seconds)
    break_minutes = max(0, _to_minutes(worked_seconds + break_seconds) - worked_minutes)
    return DayReplay(
        state=state,
        first_clock_in=first_clock_in,
        last_clock_out=last_clock_out if state == ClockState.CLOCKED_OUT else None,
        worked_minutes=worked_minutes,
        break_minutes=break_minutes,
        open_clock_in_id=open_clock_in_id,
        open_session_started_at=open_started_at,
        current_segment_started_at=segment_start,
        active_project_id=project_id if state != ClockState.CLOCKED_OUT else None,
        active_task=task if state != ClockState.CLOCKED_OUT else None,
        pending_project_change=pending if state == ClockState.ON_BREAK else None,
        project_minutes={key: _to_minutes(value) for key, value in project_seconds.items() if value > 0},
        incomplete_clock_in_ids=tuple(incomplete),
        unresolved_minutes=_to_minutes(unresolved_seconds),
        rejected_entry_ids=tuple(rejected),
    )


def partition_workday_entries(
    entries: Iterable[EntryLike],
    *,
    day: date,
    tz: ZoneInfo,
    max_session: timedelta,
) -> list[EntryLike]:
    """Return the entries that belong to ``day``.

    An entry belongs to the workday of the CLOCK_IN that opened its session,
    so a session crossing midnight is counted on the day it started. Entries
    later than ``max_session`` after that CLOCK_IN, and entries outside any
    session, fall back to their own local date.
    """
    selected: list[EntryLike] = []
    session_day: date | None = None
    session_started_at: datetime | None = None

    for entry in sort_entries(entries):
        ts = normalize_ts(entry.timestamp)
        in_session = (
            session_day is not None
            and session_started_at is not None
            and ts - session_started_at <= max_session
        )
        if not entry.is_cancelled and entry.entry_type == TimeEntryType.CLOCK_IN:
            session_day = local_date(ts, tz)
            session_started_at = ts
            label = session_day
        else:
            label = session_day if in_session else local_date(ts, tz)
            if not entry.is_cancelled and entry.entry_type == TimeEntryType.CLOCK_OUT:
                session_day = None
                session_started_at = None

        if label == day:
            selected.append(entry)
    return selected


@dataclass(frozen=True)
class SessionInterval:
    clock_in_id: int | None
    start: datetime
    end: datetime | None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def overlaps(self, start: datetime, end: datetime) -> bool:
        start = normalize_ts(start)
        end = normalize_ts(end)
        if start <= self.start < end:
            return True
        return self.start < end and (self.end is None or start < self.end)


def session_intervals(entries: Iterable[EntryLike]) -> list[SessionInterval]:
    """Time spans covered by each session in ``entries``.

    A closed session ends at its CLOCK_OUT. A session interrupted by another
    CLOCK_IN ends at its last entry, and the last session has no end while it
    is still open.
    """
    intervals: list[SessionInterval] = []
    clock_in_id: int | None = None
    started_at: datetime | None = None
    last_seen: datetime | None = None

    for entry in sort_entries(item for item in entries if not item.is_cancelled):
        ts = normalize_ts(entry.timestamp)
        entry_type = TimeEntryType(entry.entry_type)
        if entry_type == TimeEntryType.CLOCK_IN:
            if started_at is not None:
                intervals.append(SessionInterval(clock_in_id, started_at, last_seen))
            clock_in_id, started_at, last_seen = entry.id, ts, ts
        elif started_at is not None:
            last_seen = ts
            if entry_type == TimeEntryType.CLOCK_OUT:
                intervals.append(SessionInterval(clock_in_id, started_at, ts))
                clock_in_id, started_at, last_seen = None, None, None

    if started_at is not None:
        intervals.append(SessionInterval(clock_in_id, started_at, None))
    return intervals


def check_open_session(
    *,
    started_at: datetime,
    now: datetime,
    tz: ZoneInfo,
    expected_minutes: int,
    threshold_percent: int,
    max_open_hours: int,
) -> OpenSessionCheck:
    elapsed_minutes = _to_minutes((normalize_ts(now) - normalize_ts(started_at)).total_seconds())
    max_open_minutes = max(1, max_open_hours) * 60
    if expected_minutes > 0:
        threshold_minutes = int(expected_minutes * max(1, threshold_percent) / 100)
    else:
        threshold_minutes = max_open_minutes

    reasons: list[OpenSessionIssue] = []
    if elapsed_minutes > threshold_minutes:
        reasons.append(OpenSessionIssue.EXCESSIVE_DURATION)
    if elapsed_minutes > max_open_minutes:
        reasons.append(OpenSessionIssue.EXCEEDS_MAX_OPEN_HOURS)
    if local_date(now, tz) != local_date(started_at, tz):
        reasons.append(OpenSessionIssue.CROSSED_MIDNIGHT)

    return OpenSessionCheck(
        elapsed_minutes=elapsed_minutes,
        threshold_minutes=threshold_minutes,
        reasons=tuple(reasons),
    )


def last_entry_of_type(entries: Sequence[EntryLike], entry_type: TimeEntryType) -> EntryLike | None:
    for entry in reversed(sort_entries(entries)):
        if not entry.is_cancelled and entry.entry_type == entry_type:
            return entry
    return None
