from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from fichaje.models import (
    Absence,
    AbsenceStatus,
    AbsenceType,
    EmployeeScheduleAssignment,
    EmploymentContract,
    Organization,
    SchedulePeriod,
    SchedulePeriodType,
    ScheduleTemplate,
    TimeSlotType,
    WorkDayPattern,
)


class ScheduleSource(str, enum.Enum):
    TEMPLATE = "TEMPLATE"
    ABSENCE = "ABSENCE"
    NO_ASSIGNMENT = "NO_ASSIGNMENT"


_PERIOD_PRIORITY: dict[SchedulePeriodType, int] = {
    SchedulePeriodType.SPECIAL: 3,
    SchedulePeriodType.INTENSIVE: 2,
    SchedulePeriodType.REGULAR: 1,
}


@dataclass(frozen=True)
class ResolvedSlot:
    start_minutes: int
    end_minutes: int
    slot_type: TimeSlotType
    is_automatic: bool
    slot_id: int | None = None

    @property
    def duration_minutes(self) -> int:
        return max(0, self.end_minutes - self.start_minutes)


@dataclass(frozen=True)
class AbsenceInfo:
    absence_id: int | None
    absence_type: AbsenceType
    is_full_day: bool
    minutes: int


@dataclass(frozen=True)
class EffectiveSchedule:
    day_date: date
    source: ScheduleSource
    is_working_day: bool
    expected_minutes: int
    time_slots: tuple[ResolvedSlot, ...] = ()
    period_type: SchedulePeriodType | None = None
    period_id: int | None = None
    template_id: int | None = None
    absence: AbsenceInfo | None = None

    def work_slots(self) -> list[ResolvedSlot]:
        return [slot for slot in self.time_slots if slot.slot_type == TimeSlotType.WORK]


def _covers(valid_from: date | None, valid_to: date | None, day_date: date) -> bool:
    if valid_from is not None and day_date < valid_from:
        return False
    if valid_to is not None and day_date > valid_to:
        return False
    return True


def merged_minutes(intervals: Iterable[tuple[int, int]]) -> int:
    total = 0
    current_start: int | None = None
    current_end = 0
    for start, end in sorted(item for item in intervals if item[1] > item[0]):
        if current_start is None or start > current_end:
            if current_start is not None:
                total += current_end - current_start
            current_start, current_end = start, end
        else:
            current_end = max(current_end, end)
    if current_start is not None:
        total += current_end - current_start
    return total


def select_period(periods: Sequence[SchedulePeriod], day_date: date) -> SchedulePeriod | None:
    applicable = [period for period in periods if _covers(period.valid_from, period.valid_to, day_date)]
    if not applicable:
        return None

    applicable.sort(
        key=lambda item: (
            _PERIOD_PRIORITY[SchedulePeriodType(item.period_type)],
            item.valid_from.toordinal() if item.valid_from else 0,
            item.id or 0,
        ),
        reverse=True,
    )
    return applicable[0]


def select_pattern(period: SchedulePeriod, day_date: date) -> WorkDayPattern | None:
    weekday = day_date.weekday()
    for pattern in period.work_day_patterns or []:
        if pattern.day_of_week == weekday:
            return pattern
    return None


def select_assignment(
    assignments: Sequence[EmployeeScheduleAssignment],
    day_date: date,
) -> EmployeeScheduleAssignment | None:
    applicable = [
        item
        for item in assignments
        if item.is_active and _covers(item.valid_from, item.valid_to, day_date)
    ]
    if not applicable:
        return None
    applicable.sort(key=lambda item: (item.valid_from.toordinal(), item.id or 0), reverse=True)
    return applicable[0]


def select_absence(absences: Sequence[Absence], day_date: date) -> Absence | None:
    applicable = [
        item
        for item in absences
        if AbsenceStatus(item.status) == AbsenceStatus.APPROVED and item.start_date <= day_date <= item.end_date
    ]
    if not applicable:
        return None
    # A full-day absence wins over partial ones on the same date.
    applicable.sort(key=lambda item: (bool(item.is_full_day), item.id or 0), reverse=True)
    return applicable[0]


def _absence_minutes(absence: Absence) -> int:
    if absence.is_full_day or absence.start_minutes is None or absence.end_minutes is None:
        return 0
    return max(0, absence.end_minutes - absence.start_minutes)


def build_effective_schedule(
    day_date: date,
    *,
    assignments: Sequence[EmployeeScheduleAssignment],
    absences: Sequence[Absence],
) -> EffectiveSchedule:
    absence = select_absence(absences, day_date)
    if absence is not None and absence.is_full_day:
        return EffectiveSchedule(
            day_date=day_date,
            source=ScheduleSource.ABSENCE,
            is_working_day=False,
            expected_minutes=0,
            absence=AbsenceInfo(
                absence_id=absence.id,
                absence_type=AbsenceType(absence.absence_type),
                is_full_day=True,
                minutes=0,
            ),
        )

    assignment = select_assignment(assignments, day_date)
    if assignment is None or assignment.template is None:
        return EffectiveSchedule(
            day_date=day_date,
            source=ScheduleSource.NO_ASSIGNMENT,
            is_working_day=False,
            expected_minutes=0,
        )

    template: ScheduleTemplate = assignment.template
    period = select_period(template.periods or [], day_date)
    pattern = select_pattern(period, day_date) if period is not None else None

    slots: tuple[ResolvedSlot, ...] = ()
    is_working_day = False
    expected_minutes = 0
    if pattern is not None:
        slots = tuple(
            ResolvedSlot(
                start_minutes=slot.start_minutes,
                end_minutes=slot.end_minutes,
                slot_type=TimeSlotType(slot.slot_type),
                is_automatic=bool(slot.is_automatic),
                slot_id=slot.id,
            )
            for slot in sorted(pattern.time_slots or [], key=lambda item: (item.start_minutes, item.end_minutes))
        )
        is_working_day = bool(pattern.is_working_day)
        if is_working_day:
            expected_minutes = merged_minutes(
                (slot.start_minutes, slot.end_minutes) for slot in slots if slot.slot_type == TimeSlotType.WORK
            )

    absence_info: AbsenceInfo | None = None
    if absence is not None:
        partial_minutes = _absence_minutes(absence)
        absence_info = AbsenceInfo(
            absence_id=absence.id,
            absence_type=AbsenceType(absence.absence_type),
            is_full_day=False,
            minutes=partial_minutes,
        )
        expected_minutes = max(0, expected_minutes - partial_minutes)

    return EffectiveSchedule(
        day_date=day_date,
        source=ScheduleSource.TEMPLATE,
        is_working_day=is_working_day,
        expected_minutes=expected_minutes,
        time_slots=slots,
        period_type=SchedulePeriodType(period.period_type) if period is not None else None,
        period_id=period.id if period is not None else None,
        template_id=template.id,
        absence=absence_info,
    )


def load_schedule_inputs(
    db: Session,
    *,
    employee_id: int,
    start_date: date,
    end_date: date,
) -> tuple[list[EmployeeScheduleAssignment], list[Absence]]:
    assignments = list(
        db.scalars(
            select(EmployeeScheduleAssignment)
            .options(
                selectinload(EmployeeScheduleAssignment.template)
                .selectinload(ScheduleTemplate.periods)
                .selectinload(SchedulePeriod.work_day_patterns)
                .selectinload(WorkDayPattern.time_slots)
            )
            .where(
                EmployeeScheduleAssignment.employee_id == employee_id,
                EmployeeScheduleAssignment.is_active.is_(True),
                EmployeeScheduleAssignment.valid_from <= end_date,
                or_(
                    EmployeeScheduleAssignment.valid_to.is_(None),
                    EmployeeScheduleAssignment.valid_to >= start_date,
                ),
            )
        ).all()
    )
    absences = list(
        db.scalars(
            select(Absence).where(
                Absence.employee_id == employee_id,
                Absence.status == AbsenceStatus.APPROVED,
                Absence.start_date <= end_date,
                Absence.end_date >= start_date,
            )
        ).all()
    )
    return assignments, absences


def resolve_effective_schedule(db: Session, *, employee_id: int, day_date: date) -> EffectiveSchedule:
    assignments, absences = load_schedule_inputs(
        db,
        employee_id=employee_id,
        start_date=day_date,
        end_date=day_date,
    )
    return build_effective_schedule(day_date, assignments=assignments, absences=absences)


def fallback_expected_minutes(
    schedule: EffectiveSchedule,
    *,
    organization: Organization | None,
    contract: EmploymentContract | None,
) -> int:
    """Expected minutes for a day without any schedule assignment.

    Uses the active contract (weekly minutes spread over its working days)
    and then the organization default, both only on working weekdays.
    Returns 0 when neither is configured.
    """
    if schedule.source != ScheduleSource.NO_ASSIGNMENT:
        return schedule.expected_minutes

    weekday = schedule.day_date.weekday()
    if contract is not None and contract.is_active and contract.working_days_per_week > 0:
        if weekday < contract.working_days_per_week:
            return contract.weekly_minutes // contract.working_days_per_week
        return 0
    if organization is not None and organization.default_daily_minutes and weekday < 5:
        return organization.default_daily_minutes
    return 0
