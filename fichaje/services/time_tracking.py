from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from fichaje.audit import log_audit
from fichaje.errors import ApiError
from fichaje.models import (
    AuditActorType,
    CancellationReason,
    Employee,
    NotificationKind,
    Organization,
    Project,
    TimeEntry,
    TimeEntryType,
    TimeSlotType,
    WorkCenter,
)
from fichaje.services.attendance_state import (
    ClockState,
    DayReplay,
    OpenSessionCheck,
    OpenSessionIssue,
    PendingProjectChange,
    check_open_session,
    last_entry_of_type,
    replay_entries,
    sort_entries,
    transition_error,
)
from fichaje.services.clock_alerts import ClockAlert, location_alerts, schedule_alerts
from fichaje.services.contracts import get_active_contract
from fichaje.services.local_time import (
    combine_local_minutes,
    local_date,
    minutes_of_day,
    normalize_ts,
    resolve_timezone,
)
from fichaje.services.location import LocationEvaluation, evaluate_location
from fichaje.services.notifications import dismissed_reference_ids
from fichaje.services.schedule_resolver import (
    EffectiveSchedule,
    ResolvedSlot,
    fallback_expected_minutes,
    resolve_effective_schedule,
)
from fichaje.services.summaries import DailySummary, get_daily_summary, load_entries_between
from fichaje.services.time_bank import resolve_time_bank_policy, sync_time_bank_for_day
from fichaje.settings import get_settings

logger = logging.getLogger("fichaje.time_tracking")


@dataclass
class ClockActionResult:
    entry: TimeEntry
    state: ClockState
    alerts: list[ClockAlert] = field(default_factory=list)
    extra_entries: list[TimeEntry] = field(default_factory=list)
    project_change_deferred: bool = False

    @property
    def is_on_break(self) -> bool:
        return self.state == ClockState.ON_BREAK


@dataclass(frozen=True)
class ActiveProject:
    project_id: int | None
    task: str | None
    pending_project_change: PendingProjectChange | None = None


@dataclass(frozen=True)
class ClockStatus:
    employee_id: int
    state: ClockState
    workday: date
    summary: DailySummary
    active_project_id: int | None
    active_task: str | None
    pending_project_change: PendingProjectChange | None
    current_segment_started_at: datetime | None
    open_session: OpenSessionCheck | None

    @property
    def is_on_break(self) -> bool:
        return self.state == ClockState.ON_BREAK


@dataclass(frozen=True)
class IncompleteEntry:
    clock_in_id: int
    started_at: datetime
    notification_kind: NotificationKind
    reasons: tuple[str, ...]
    elapsed_minutes: int | None = None
    requires_decision: bool = False


def lock_employee(db: Session, employee_id: int, *, require_active: bool = True) -> Employee:
    # Serializes every clock action of one employee for the rest of the transaction.
    employee = db.scalar(select(Employee).where(Employee.id == employee_id).with_for_update())
    if employee is None:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Empleado no encontrado.")
    if require_active and not employee.is_active:
        raise ApiError(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message="Un empleado inactivo no puede fichar.",
        )
    return employee


def _get_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Empleado no encontrado.")
    return employee


def employee_organization(db: Session, employee: Employee) -> Organization | None:
    return db.get(Organization, employee.org_id)


def _work_centers(db: Session, org_id: int) -> list[WorkCenter]:
    return list(
        db.scalars(
            select(WorkCenter).where(WorkCenter.org_id == org_id, WorkCenter.is_active.is_(True))
        ).all()
    )


def _load_open_session_entries(db: Session, employee_id: int) -> list[TimeEntry]:
    """Entries from the latest non-cancelled CLOCK_IN onwards."""
    last_clock_in = db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.employee_id == employee_id,
            TimeEntry.entry_type == TimeEntryType.CLOCK_IN,
            TimeEntry.is_cancelled.is_(False),
        )
        .order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc())
        .limit(1)
    )
    if last_clock_in is None:
        return []
    return list(
        db.scalars(
            select(TimeEntry)
            .where(
                TimeEntry.employee_id == employee_id,
                TimeEntry.timestamp >= last_clock_in.timestamp,
            )
            .order_by(TimeEntry.timestamp.asc(), TimeEntry.id.asc())
        ).all()
    )


def load_session_entries(db: Session, clock_in: TimeEntry) -> list[TimeEntry]:
    """The CLOCK_IN plus every later entry up to its CLOCK_OUT or the next CLOCK_IN."""
    next_clock_in_ts = db.scalar(
        select(TimeEntry.timestamp)
        .where(
            TimeEntry.employee_id == clock_in.employee_id,
            TimeEntry.entry_type == TimeEntryType.CLOCK_IN,
            TimeEntry.is_cancelled.is_(False),
            TimeEntry.timestamp > clock_in.timestamp,
        )
        .order_by(TimeEntry.timestamp.asc())
        .limit(1)
    )
    stmt = select(TimeEntry).where(
        TimeEntry.employee_id == clock_in.employee_id,
        TimeEntry.timestamp >= clock_in.timestamp,
    )
    if next_clock_in_ts is not None:
        stmt = stmt.where(TimeEntry.timestamp < next_clock_in_ts)
    candidates = db.scalars(stmt.order_by(TimeEntry.timestamp.asc(), TimeEntry.id.asc())).all()

    session: list[TimeEntry] = []
    for entry in sort_entries(candidates):
        same_instant = entry.timestamp == clock_in.timestamp
        if entry.id != clock_in.id and same_instant and (entry.id or 0) < (clock_in.id or 0):
            continue
        session.append(entry)
        if not entry.is_cancelled and entry.entry_type == TimeEntryType.CLOCK_OUT:
            break
    return session


def _raise_for_transition(state: ClockState, entry_type: TimeEntryType) -> None:
    error = transition_error(state, entry_type)
    if error is None:
        return
    code, message = error
    raise ApiError(status_code=409, code=code, message=message, details={"state": state.value})


def _validate_project(db: Session, employee: Employee, project_id: int | None) -> None:
    if project_id is None:
        return
    project = db.get(Project, project_id)
    if project is None or project.org_id != employee.org_id:
        raise ApiError(status_code=404, code="PROJECT_NOT_FOUND", message="Proyecto no encontrado.")
    if not project.is_active:
        raise ApiError(status_code=409, code="PROJECT_INACTIVE", message="El proyecto no esta activo.")


def _expected_for_day(
    db: Session,
    employee: Employee,
    organization: Organization | None,
    day_date: date,
) -> tuple[EffectiveSchedule, int]:
    schedule = resolve_effective_schedule(db, employee_id=employee.id, day_date=day_date)
    contract = get_active_contract(db, employee_id=employee.id, day_date=day_date)
    return schedule, fallback_expected_minutes(schedule, organization=organization, contract=contract)


def _threshold_percent(organization: Organization | None) -> int:
    if organization is not None and organization.excessive_duration_threshold_percent:
        return organization.excessive_duration_threshold_percent
    return get_settings().excessive_duration_threshold_percent


def _check_session(
    db: Session,
    employee: Employee,
    organization: Organization | None,
    replay: DayReplay,
    *,
    now: datetime,
    tz: ZoneInfo,
) -> OpenSessionCheck | None:
    if not replay.is_open or replay.open_session_started_at is None:
        return None
    _, expected = _expected_for_day(db, employee, organization, local_date(replay.open_session_started_at, tz))
    return check_open_session(
        started_at=replay.open_session_started_at,
        now=now,
        tz=tz,
        expected_minutes=expected,
        threshold_percent=_threshold_percent(organization),
        max_open_hours=get_settings().max_open_session_hours,
    )


def _new_entry(
    employee: Employee,
    entry_type: TimeEntryType,
    ts: datetime,
    *,
    location: LocationEvaluation | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy: float | None = None,
    project_id: int | None = None,
    task: str | None = None,
    is_automatic: bool = False,
    automatic_break_slot_id: int | None = None,
) -> TimeEntry:
    return TimeEntry(
        employee_id=employee.id,
        entry_type=entry_type,
        timestamp=ts,
        project_id=project_id,
        task=task,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        is_within_allowed_area=location.is_within_allowed_area if location else None,
        requires_review=location.requires_review if location else False,
        work_center_id=location.work_center_id if location else None,
        distance_from_center_m=location.distance_m if location else None,
        is_manual=False,
        is_automatic=is_automatic,
        automatic_break_slot_id=automatic_break_slot_id,
        is_cancelled=False,
    )


def _log_action(action: str, employee: Employee, entry: TimeEntry, **extra: object) -> None:
    logger.info(
        "clock_action",
        extra={
            "action": action,
            "employee_id": employee.id,
            "entry_id": entry.id,
            "entry_type": TimeEntryType(entry.entry_type).value,
            "ts_utc": normalize_ts(entry.timestamp).isoformat(),
            **extra,
        },
    )


def break_intervals(entries: Iterable[TimeEntry], *, until: datetime) -> list[tuple[datetime, datetime]]:
    intervals: list[tuple[datetime, datetime]] = []
    started: datetime | None = None
    for entry in sort_entries(item for item in entries if not item.is_cancelled):
        ts = normalize_ts(entry.timestamp)
        if entry.entry_type == TimeEntryType.BREAK_START and started is None:
            started = ts
        elif entry.entry_type == TimeEntryType.BREAK_END and started is not None:
            intervals.append((started, ts))
            started = None
    if started is not None:
        intervals.append((started, normalize_ts(until)))
    return intervals


def plan_automatic_breaks(
    *,
    slots: Sequence[ResolvedSlot],
    day_date: date,
    tz: ZoneInfo,
    session_start: datetime,
    clock_out: datetime,
    manual_breaks: Sequence[tuple[datetime, datetime]],
    existing_slot_ids: Iterable[int] = (),
) -> list[tuple[ResolvedSlot, datetime, datetime]]:
    """Automatic BREAK slots to store for a session, clipped to it.

    A slot is skipped when it falls outside the session, overlaps a manual
    break or was already stored for this session.
    """
    already_stored = set(existing_slot_ids)
    planned: list[tuple[ResolvedSlot, datetime, datetime]] = []
    for slot in slots:
        if slot.slot_type != TimeSlotType.BREAK or not slot.is_automatic:
            continue
        if slot.slot_id is not None and slot.slot_id in already_stored:
            continue
        start = max(combine_local_minutes(day_date, slot.start_minutes, tz), normalize_ts(session_start))
        end = min(combine_local_minutes(day_date, slot.end_minutes, tz), normalize_ts(clock_out))
        if end <= start:
            continue
        if any(start < manual_end and manual_start < end for manual_start, manual_end in manual_breaks):
            continue
        planned.append((slot, start, end))
    return planned


def cancel_session_entries(
    entries: Iterable[TimeEntry],
    *,
    reason: CancellationReason,
    notes: str | None,
    now: datetime,
) -> list[TimeEntry]:
    cancelled: list[TimeEntry] = []
    for entry in entries:
        if entry.is_cancelled:
            continue
        entry.is_cancelled = True
        entry.cancellation_reason = reason
        entry.cancelled_at = now
        entry.cancellation_notes = notes
        cancelled.append(entry)
    return cancelled


def sync_workday_time_bank(
    db: Session,
    *,
    employee: Employee,
    organization: Organization | None,
    day_date: date,
    now: datetime,
) -> None:
    summary = get_daily_summary(db, employee_id=employee.id, day_date=day_date, now=now)
    # Workdays with a live session are synced when that session closes.
    if summary.is_open:
        return
    sync_time_bank_for_day(
        db,
        employee=employee,
        day_date=day_date,
        deviation_minutes=summary.compliance.deviation_minutes,
        policy=resolve_time_bank_policy(organization),
    )


def clock_in(
    db: Session,
    *,
    employee_id: int,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy: float | None = None,
    project_id: int | None = None,
    task: str | None = None,
    now: datetime | None = None,
) -> ClockActionResult:
    now = normalize_ts(now)
    employee = lock_employee(db, employee_id)
    organization = employee_organization(db, employee)
    tz = resolve_timezone(organization.timezone if organization else None)

    replay = replay_entries(_load_open_session_entries(db, employee.id), now=now)
    if replay.is_open:
        check = _check_session(db, employee, organization, replay, now=now, tz=tz)
        if check is None or OpenSessionIssue.EXCEEDS_MAX_OPEN_HOURS not in check.reasons:
            _raise_for_transition(replay.state, TimeEntryType.CLOCK_IN)
        # The stale session stays open and is reported as incomplete.
        logger.warning(
            "stale_open_session_left_incomplete",
            extra={
                "employee_id": employee.id,
                "clock_in_id": replay.open_clock_in_id,
                "elapsed_minutes": check.elapsed_minutes if check else None,
            },
        )

    _validate_project(db, employee, project_id)
    location = evaluate_location(_work_centers(db, employee.org_id), latitude, longitude)
    entry = _new_entry(
        employee,
        TimeEntryType.CLOCK_IN,
        now,
        location=location,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        project_id=project_id,
        task=task,
    )
    db.add(entry)
    db.flush()

    schedule = resolve_effective_schedule(db, employee_id=employee.id, day_date=local_date(now, tz))
    alerts = location_alerts(location)
    if organization is not None:
        alerts += schedule_alerts(
            entry_type=TimeEntryType.CLOCK_IN,
            local_minutes=minutes_of_day(now, tz),
            schedule=schedule,
            organization=organization,
        )

    db.commit()
    db.refresh(entry)
    _log_action("clock_in", employee, entry, location_reason=location.reason, alerts=len(alerts))
    return ClockActionResult(entry=entry, state=ClockState.CLOCKED_IN, alerts=alerts)


def clock_out(
    db: Session,
    *,
    employee_id: int,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy: float | None = None,
    cancel_as_closed: bool = False,
    cancellation_notes: str | None = None,
    now: datetime | None = None,
    request_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> ClockActionResult:
    now = normalize_ts(now)
    employee = lock_employee(db, employee_id)
    organization = employee_organization(db, employee)
    tz = resolve_timezone(organization.timezone if organization else None)

    session_entries = _load_open_session_entries(db, employee.id)
    replay = replay_entries(session_entries, now=now)
    _raise_for_transition(replay.state, TimeEntryType.CLOCK_OUT)

    check = _check_session(db, employee, organization, replay, now=now, tz=tz)
    if check is not None and check.requires_decision and not cancel_as_closed:
        raise ApiError(
            status_code=409,
            code="EXCESSIVE_DURATION_DECISION_REQUIRED",
            message=(
                "La jornada abierta supera la duracion esperada. "
                "Cancela el fichaje o solicita una regularizacion."
            ),
            details={
                "clock_in_id": replay.open_clock_in_id,
                "elapsed_minutes": check.elapsed_minutes,
                "threshold_minutes": check.threshold_minutes,
                "reasons": [reason.value for reason in check.reasons],
            },
        )

    session_start = replay.open_session_started_at or now
    session_day = local_date(session_start, tz)
    location = evaluate_location(_work_centers(db, employee.org_id), latitude, longitude)
    extra_entries: list[TimeEntry] = []

    if replay.is_on_break:
        break_end = _new_entry(employee, TimeEntryType.BREAK_END, now)
        db.add(break_end)
        extra_entries.append(break_end)

    schedule: EffectiveSchedule | None = None
    if not cancel_as_closed:
        schedule = resolve_effective_schedule(db, employee_id=employee.id, day_date=session_day)
        planned = plan_automatic_breaks(
            slots=schedule.time_slots,
            day_date=session_day,
            tz=tz,
            session_start=session_start,
            clock_out=now,
            manual_breaks=break_intervals(session_entries, until=now),
            existing_slot_ids=(
                item.automatic_break_slot_id
                for item in session_entries
                if item.automatic_break_slot_id is not None and not item.is_cancelled
            ),
        )
        for slot, start, end in planned:
            for entry_type, ts in ((TimeEntryType.BREAK_START, start), (TimeEntryType.BREAK_END, end)):
                automatic = _new_entry(
                    employee,
                    entry_type,
                    ts,
                    is_automatic=True,
                    automatic_break_slot_id=slot.slot_id,
                )
                db.add(automatic)
                extra_entries.append(automatic)

    entry = _new_entry(
        employee,
        TimeEntryType.CLOCK_OUT,
        now,
        location=location,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
    )
    db.add(entry)

    if cancel_as_closed:
        cancelled = cancel_session_entries(
            [*session_entries, *extra_entries, entry],
            reason=CancellationReason.EXCESSIVE_DURATION,
            notes=cancellation_notes,
            now=now,
        )
        db.flush()
        log_audit(
            db,
            actor_type=AuditActorType.EMPLOYEE,
            actor_id=str(employee.id),
            action="TIME_ENTRY_CANCELLED_AS_CLOSED",
            success=True,
            entity_type="time_entry",
            entity_id=str(replay.open_clock_in_id) if replay.open_clock_in_id else None,
            ip=ip,
            user_agent=user_agent,
            details={
                "clock_in_id": replay.open_clock_in_id,
                "cancelled_entry_ids": [item.id for item in cancelled],
                "elapsed_minutes": check.elapsed_minutes if check else None,
                "threshold_minutes": check.threshold_minutes if check else None,
                "notes": cancellation_notes,
            },
            request_id=request_id,
            commit=False,
        )
    else:
        db.flush()

    sync_workday_time_bank(
        db,
        employee=employee,
        organization=organization,
        day_date=session_day,
        now=now,
    )

    alerts = location_alerts(location)
    if schedule is not None and organization is not None and local_date(now, tz) == session_day:
        alerts += schedule_alerts(
            entry_type=TimeEntryType.CLOCK_OUT,
            local_minutes=minutes_of_day(now, tz),
            schedule=schedule,
            organization=organization,
        )

    db.commit()
    db.refresh(entry)
    _log_action(
        "clock_out",
        employee,
        entry,
        cancel_as_closed=cancel_as_closed,
        automatic_entries=sum(1 for item in extra_entries if item.is_automatic),
    )
    return ClockActionResult(
        entry=entry,
        state=ClockState.CLOCKED_OUT,
        alerts=alerts,
        extra_entries=extra_entries,
    )


def start_break(
    db: Session,
    *,
    employee_id: int,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy: float | None = None,
    now: datetime | None = None,
) -> ClockActionResult:
    now = normalize_ts(now)
    employee = lock_employee(db, employee_id)
    replay = replay_entries(_load_open_session_entries(db, employee.id), now=now)
    _raise_for_transition(replay.state, TimeEntryType.BREAK_START)

    location = evaluate_location(_work_centers(db, employee.org_id), latitude, longitude)
    entry = _new_entry(
        employee,
        TimeEntryType.BREAK_START,
        now,
        location=location,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    _log_action("break_start", employee, entry)
    return ClockActionResult(entry=entry, state=ClockState.ON_BREAK, alerts=location_alerts(location))


def end_break(
    db: Session,
    *,
    employee_id: int,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy: float | None = None,
    now: datetime | None = None,
) -> ClockActionResult:
    now = normalize_ts(now)
    employee = lock_employee(db, employee_id)
    replay = replay_entries(_load_open_session_entries(db, employee.id), now=now)
    _raise_for_transition(replay.state, TimeEntryType.BREAK_END)

    location = evaluate_location(_work_centers(db, employee.org_id), latitude, longitude)
    entry = _new_entry(
        employee,
        TimeEntryType.BREAK_END,
        now,
        location=location,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
    )
    db.add(entry)

    extra_entries: list[TimeEntry] = []
    pending = replay.pending_project_change
    if pending is not None:
        switch = _new_entry(
            employee,
            TimeEntryType.PROJECT_SWITCH,
            now,
            project_id=pending.project_id,
            task=pending.task,
        )
        db.add(switch)
        extra_entries.append(switch)

    db.commit()
    db.refresh(entry)
    _log_action("break_end", employee, entry, applied_project_change=pending is not None)
    return ClockActionResult(
        entry=entry,
        state=ClockState.CLOCKED_IN,
        alerts=location_alerts(location),
        extra_entries=extra_entries,
    )


def change_project(
    db: Session,
    *,
    employee_id: int,
    project_id: int | None,
    task: str | None = None,
    now: datetime | None = None,
) -> ClockActionResult:
    """Switch the active project, or defer the switch to the end of the break."""
    now = normalize_ts(now)
    employee = lock_employee(db, employee_id)
    entries = _load_open_session_entries(db, employee.id)
    replay = replay_entries(entries, now=now)
    _raise_for_transition(replay.state, TimeEntryType.PROJECT_SWITCH)
    _validate_project(db, employee, project_id)

    if replay.is_on_break:
        open_break = last_entry_of_type(entries, TimeEntryType.BREAK_START)
        if open_break is None:
            raise ApiError(status_code=409, code="NOT_ON_BREAK", message="No hay ninguna pausa en curso.")
        open_break.pending_change = PendingProjectChange(project_id=project_id, task=task).to_payload()
        db.commit()
        db.refresh(open_break)
        _log_action("project_change_deferred", employee, open_break, project_id=project_id)
        return ClockActionResult(entry=open_break, state=ClockState.ON_BREAK, project_change_deferred=True)

    if replay.active_project_id == project_id and (replay.active_task or None) == (task or None):
        raise ApiError(
            status_code=409,
            code="PROJECT_UNCHANGED",
            message="Ya estas trabajando en ese proyecto.",
        )

    entry = _new_entry(employee, TimeEntryType.PROJECT_SWITCH, now, project_id=project_id, task=task)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    _log_action("project_switch", employee, entry, project_id=project_id)
    return ClockActionResult(entry=entry, state=ClockState.CLOCKED_IN)


def get_clock_status(db: Session, *, employee_id: int, now: datetime | None = None) -> ClockStatus:
    now = normalize_ts(now)
    employee = _get_employee(db, employee_id)
    organization = employee_organization(db, employee)
    tz = resolve_timezone(organization.timezone if organization else None)

    replay = replay_entries(_load_open_session_entries(db, employee.id), now=now)
    check = _check_session(db, employee, organization, replay, now=now, tz=tz)
    workday = (
        local_date(replay.open_session_started_at, tz)
        if replay.is_open and replay.open_session_started_at is not None
        else local_date(now, tz)
    )
    return ClockStatus(
        employee_id=employee.id,
        state=replay.state,
        workday=workday,
        summary=get_daily_summary(db, employee_id=employee.id, day_date=workday, now=now),
        active_project_id=replay.active_project_id,
        active_task=replay.active_task,
        pending_project_change=replay.pending_project_change,
        current_segment_started_at=replay.current_segment_started_at,
        open_session=check,
    )


def get_current_project(db: Session, *, employee_id: int) -> ActiveProject:
    employee = _get_employee(db, employee_id)
    replay = replay_entries(_load_open_session_entries(db, employee.id))
    return ActiveProject(
        project_id=replay.active_project_id,
        task=replay.active_task,
        pending_project_change=replay.pending_project_change,
    )


def cancel_open_clock_in(
    db: Session,
    *,
    employee_id: int,
    clock_in_id: int,
    reason: CancellationReason = CancellationReason.ADMIN_CORRECTION,
    notes: str | None = None,
    actor_id: str = "admin",
    request_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> list[TimeEntry]:
    now = normalize_ts(now)
    employee = lock_employee(db, employee_id, require_active=False)
    organization = employee_organization(db, employee)
    tz = resolve_timezone(organization.timezone if organization else None)

    clock_in_entry = db.get(TimeEntry, clock_in_id)
    if clock_in_entry is None or clock_in_entry.employee_id != employee.id:
        raise ApiError(status_code=404, code="TIME_ENTRY_NOT_FOUND", message="Fichaje no encontrado.")
    if clock_in_entry.entry_type != TimeEntryType.CLOCK_IN:
        raise ApiError(status_code=409, code="NOT_A_CLOCK_IN", message="Solo se pueden cancelar entradas.")
    if clock_in_entry.is_cancelled:
        raise ApiError(status_code=409, code="ALREADY_CANCELLED", message="El fichaje ya esta cancelado.")

    session = load_session_entries(db, clock_in_entry)
    if any(not item.is_cancelled and item.entry_type == TimeEntryType.CLOCK_OUT for item in session):
        raise ApiError(
            status_code=409,
            code="CLOCK_IN_ALREADY_CLOSED",
            message="La entrada ya tiene una salida registrada.",
        )

    cancelled = cancel_session_entries(session, reason=reason, notes=notes, now=now)
    db.flush()
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id,
        action="TIME_ENTRY_CANCELLED",
        success=True,
        entity_type="time_entry",
        entity_id=str(clock_in_entry.id),
        ip=ip,
        user_agent=user_agent,
        details={
            "employee_id": employee.id,
            "reason": reason.value,
            "notes": notes,
            "cancelled_entry_ids": [item.id for item in cancelled],
        },
        request_id=request_id,
        commit=False,
    )
    sync_workday_time_bank(
        db,
        employee=employee,
        organization=organization,
        day_date=local_date(clock_in_entry.timestamp, tz),
        now=now,
    )
    db.commit()
    logger.info(
        "clock_in_cancelled",
        extra={"employee_id": employee.id, "clock_in_id": clock_in_entry.id, "reason": reason.value},
    )
    return cancelled


def detect_incomplete_entries(
    db: Session,
    *,
    employee_id: int,
    now: datetime | None = None,
) -> list[IncompleteEntry]:
    """Sessions that need the employee's attention, newest first.

    Clock-ins followed by another clock-in without a clock-out are reported
    as INCOMPLETE_ENTRY; the current open session is reported as
    EXCESSIVE_DURATION when it crossed midnight or outgrew its threshold.
    Dismissed notifications are left out.
    """
    now = normalize_ts(now)
    employee = _get_employee(db, employee_id)
    organization = employee_organization(db, employee)
    tz = resolve_timezone(organization.timezone if organization else None)
    settings = get_settings()

    window_start = now - timedelta(days=max(1, settings.incomplete_lookback_days))
    entries = load_entries_between(
        db,
        employee_id=employee.id,
        start=window_start,
        end=now + timedelta(microseconds=1),
    )
    by_id = {entry.id: entry for entry in entries}
    replay = replay_entries(entries, now=now)

    items: list[IncompleteEntry] = []
    dismissed_incomplete = dismissed_reference_ids(
        db,
        employee_id=employee.id,
        kind=NotificationKind.INCOMPLETE_ENTRY,
    )
    for clock_in_id in replay.incomplete_clock_in_ids:
        if clock_in_id in dismissed_incomplete or clock_in_id not in by_id:
            continue
        items.append(
            IncompleteEntry(
                clock_in_id=clock_in_id,
                started_at=normalize_ts(by_id[clock_in_id].timestamp),
                notification_kind=NotificationKind.INCOMPLETE_ENTRY,
                reasons=("CONSECUTIVE_CLOCK_IN",),
                requires_decision=True,
            )
        )

    check = _check_session(db, employee, organization, replay, now=now, tz=tz)
    if check is not None and check.reasons and replay.open_clock_in_id is not None:
        dismissed_excessive = dismissed_reference_ids(
            db,
            employee_id=employee.id,
            kind=NotificationKind.EXCESSIVE_DURATION,
        )
        if replay.open_clock_in_id not in dismissed_excessive:
            items.append(
                IncompleteEntry(
                    clock_in_id=replay.open_clock_in_id,
                    started_at=replay.open_session_started_at or now,
                    notification_kind=NotificationKind.EXCESSIVE_DURATION,
                    reasons=tuple(reason.value for reason in check.reasons),
                    elapsed_minutes=check.elapsed_minutes,
                    requires_decision=check.requires_decision,
                )
            )

    items.sort(key=lambda item: item.started_at, reverse=True)
    return items
