from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from fichaje.errors import ApiError
from fichaje.models import Employee, Organization, TimeEntry
from fichaje.services.attendance_state import partition_workday_entries, replay_entries, visible_entries
from fichaje.services.compliance import (
    ComplianceResult,
    DayStatus,
    calculate_compliance,
    resolve_day_status,
    rollup_compliance_percentage,
)
from fichaje.services.contracts import list_active_contracts, pick_contract
from fichaje.services.local_time import iter_days, local_day_bounds_utc, normalize_ts, resolve_timezone
from fichaje.services.schedule_resolver import (
    EffectiveSchedule,
    build_effective_schedule,
    fallback_expected_minutes,
    load_schedule_inputs,
)
from fichaje.settings import get_settings

logger = logging.getLogger("fichaje.summaries")

MAX_RANGE_DAYS = 366


class SummaryPeriod(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class ProjectMinutes:
    project_id: int | None
    minutes: int


@dataclass(frozen=True)
class DailySummary:
    employee_id: int
    day_date: date
    clock_in: datetime | None
    clock_out: datetime | None
    total_worked_minutes: int
    total_break_minutes: int
    time_entries: tuple[TimeEntry, ...]
    status: DayStatus
    schedule: EffectiveSchedule
    compliance: ComplianceResult
    is_open: bool
    open_clock_in_id: int | None = None
    project_minutes: tuple[ProjectMinutes, ...] = ()
    incomplete_clock_in_ids: tuple[int, ...] = ()
    unresolved_minutes: int = 0


@dataclass(frozen=True)
class PeriodRollup:
    label: str
    start_date: date
    end_date: date
    days_worked: int
    expected_days: int
    worked_minutes: int
    expected_minutes: int
    compliance_percentage: float
    average_daily_minutes: int
    average_weekly_minutes: int
    average_monthly_minutes: int


def max_session_length() -> timedelta:
    return timedelta(hours=max(1, get_settings().max_open_session_hours))


def build_daily_summary(
    *,
    employee_id: int,
    day_date: date,
    entries: Sequence[TimeEntry],
    schedule: EffectiveSchedule,
    expected_minutes: int,
    now: datetime | None = None,
    max_session: timedelta | None = None,
    tolerance_percent: int | None = None,
) -> DailySummary:
    """Summarize one workday from its already partitioned entries.

    An open session only counts as live (accumulating up to ``now``) while
    it is younger than ``max_session``; older open sessions are reported as
    incomplete and contribute only their closed segments.
    """
    max_session = max_session or max_session_length()
    if tolerance_percent is None:
        tolerance_percent = get_settings().completion_tolerance_percent

    replay = replay_entries(entries)
    is_live = False
    if replay.is_open and now is not None and replay.open_session_started_at is not None:
        if normalize_ts(now) - replay.open_session_started_at <= max_session:
            replay = replay_entries(entries, now=now)
            is_live = True

    incomplete_ids = list(replay.incomplete_clock_in_ids)
    if replay.is_open and not is_live and replay.open_clock_in_id is not None:
        incomplete_ids.append(replay.open_clock_in_id)

    compliance = calculate_compliance(expected_minutes=expected_minutes, worked_minutes=replay.worked_minutes)
    has_entries = any(not entry.is_cancelled for entry in entries)
    day_status = resolve_day_status(
        compliance=compliance,
        has_open_session=is_live,
        has_entries=has_entries,
        tolerance_percent=tolerance_percent,
    )

    return DailySummary(
        employee_id=employee_id,
        day_date=day_date,
        clock_in=replay.first_clock_in,
        clock_out=replay.last_clock_out,
        total_worked_minutes=replay.worked_minutes,
        total_break_minutes=replay.break_minutes,
        time_entries=tuple(visible_entries(entries)),
        status=day_status,
        schedule=schedule,
        compliance=compliance,
        is_open=is_live,
        open_clock_in_id=replay.open_clock_in_id if is_live else None,
        project_minutes=tuple(
            ProjectMinutes(project_id=key, minutes=value)
            for key, value in sorted(replay.project_minutes.items(), key=lambda item: (item[0] is None, item[0] or 0))
        ),
        incomplete_clock_in_ids=tuple(incomplete_ids),
        unresolved_minutes=replay.unresolved_minutes,
    )


def load_entries_between(db: Session, *, employee_id: int, start: datetime, end: datetime) -> list[TimeEntry]:
    return list(
        db.scalars(
            select(TimeEntry)
            .where(
                TimeEntry.employee_id == employee_id,
                TimeEntry.timestamp >= start,
                TimeEntry.timestamp < end,
            )
            .order_by(TimeEntry.timestamp.asc(), TimeEntry.id.asc())
        ).all()
    )


def summarize_days(
    db: Session,
    *,
    employee_id: int,
    start_date: date,
    end_date: date,
    now: datetime | None = None,
) -> list[DailySummary]:
    if end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="La fecha de fin debe ser igual o posterior a la de inicio.",
        )
    if (end_date - start_date).days + 1 > MAX_RANGE_DAYS:
        raise ApiError(
            status_code=422,
            code="DATE_RANGE_TOO_LARGE",
            message=f"El rango no puede superar {MAX_RANGE_DAYS} dias.",
        )

    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    organization = db.get(Organization, employee.org_id)
    tz = resolve_timezone(organization.timezone if organization else None)
    max_session = max_session_length()
    tolerance = get_settings().completion_tolerance_percent

    window_start = local_day_bounds_utc(start_date, tz)[0] - max_session
    window_end = local_day_bounds_utc(end_date, tz)[1] + max_session
    entries = load_entries_between(db, employee_id=employee_id, start=window_start, end=window_end)
    assignments, absences = load_schedule_inputs(
        db,
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
    )
    contracts = list_active_contracts(db, employee_id=employee_id, start_date=start_date, end_date=end_date)

    summaries: list[DailySummary] = []
    for day_date in iter_days(start_date, end_date):
        schedule = build_effective_schedule(day_date, assignments=assignments, absences=absences)
        summaries.append(
            build_daily_summary(
                employee_id=employee_id,
                day_date=day_date,
                entries=partition_workday_entries(entries, day=day_date, tz=tz, max_session=max_session),
                schedule=schedule,
                expected_minutes=fallback_expected_minutes(
                    schedule,
                    organization=organization,
                    contract=pick_contract(contracts, day_date),
                ),
                now=now,
                max_session=max_session,
                tolerance_percent=tolerance,
            )
        )
    return summaries


def employee_today(db: Session, *, employee_id: int, now: datetime | None = None) -> date:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    organization = db.get(Organization, employee.org_id)
    tz = resolve_timezone(organization.timezone if organization else None)
    return normalize_ts(now).astimezone(tz).date()


def get_daily_summary(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
    now: datetime | None = None,
) -> DailySummary:
    return summarize_days(db, employee_id=employee_id, start_date=day_date, end_date=day_date, now=now)[0]


def _rollup(label: str, days: Sequence[DailySummary]) -> PeriodRollup:
    worked = sum(day.compliance.worked_minutes for day in days)
    expected = sum(day.compliance.expected_minutes for day in days)
    days_worked = sum(1 for day in days if day.compliance.worked_minutes > 0)
    weeks = {day.day_date.isocalendar()[:2] for day in days}
    months = {(day.day_date.year, day.day_date.month) for day in days}
    return PeriodRollup(
        label=label,
        start_date=min(day.day_date for day in days),
        end_date=max(day.day_date for day in days),
        days_worked=days_worked,
        expected_days=sum(1 for day in days if day.compliance.expected_minutes > 0),
        worked_minutes=worked,
        expected_minutes=expected,
        compliance_percentage=rollup_compliance_percentage(expected_minutes=expected, worked_minutes=worked),
        average_daily_minutes=worked // days_worked if days_worked else 0,
        average_weekly_minutes=worked // len(weeks) if weeks else 0,
        average_monthly_minutes=worked // len(months) if months else 0,
    )


def _group(
    days: Sequence[DailySummary],
    key: Callable[[date], Hashable],
    label: Callable[[date], str],
) -> list[PeriodRollup]:
    groups: dict[Hashable, list[DailySummary]] = {}
    for day in sorted(days, key=lambda item: item.day_date):
        groups.setdefault(key(day.day_date), []).append(day)
    return [_rollup(label(items[0].day_date), items) for items in groups.values()]


def _iso_week_label(day_date: date) -> str:
    year, week, _ = day_date.isocalendar()
    return f"{year}-W{week:02d}"


def rollup_days(days: Sequence[DailySummary], period: SummaryPeriod) -> list[PeriodRollup]:
    if period == SummaryPeriod.WEEKLY:
        return _group(days, lambda item: item.isocalendar()[:2], _iso_week_label)
    if period == SummaryPeriod.MONTHLY:
        return _group(days, lambda item: (item.year, item.month), lambda item: f"{item.year}-{item.month:02d}")
    return _group(days, lambda item: item.year, lambda item: str(item.year))


def get_period_summaries(
    db: Session,
    *,
    employee_id: int,
    period: SummaryPeriod,
    start_date: date,
    end_date: date,
    now: datetime | None = None,
) -> list[PeriodRollup]:
    days = summarize_days(db, employee_id=employee_id, start_date=start_date, end_date=end_date, now=now)
    rollups = rollup_days(days, period)
    logger.info(
        "period_summary_built",
        extra={
            "employee_id": employee_id,
            "period": period.value,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "groups": len(rollups),
        },
    )
    return rollups
