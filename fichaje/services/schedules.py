from __future__ import annotations

import logging
from datetime import date, timedelta

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from fichaje.errors import ApiError
from fichaje.models import (
    Employee,
    EmployeeScheduleAssignment,
    Organization,
    SchedulePeriod,
    ScheduleTemplate,
    TimeSlot,
    WorkDayPattern,
)
from fichaje.schemas import (
    ScheduleAssignmentCreate,
    SchedulePeriodCreate,
    SchedulePeriodUpdate,
    ScheduleTemplateCreate,
    ScheduleTemplateUpdate,
    TimeSlotPayload,
    WorkDayPatternUpsert,
)
from fichaje.services.slot_validation import find_slot_errors

logger = logging.getLogger("fichaje.schedules")


def _template_options():
    return (
        selectinload(ScheduleTemplate.periods)
        .selectinload(SchedulePeriod.work_day_patterns)
        .selectinload(WorkDayPattern.time_slots),
    )


def _ensure_valid_slots(slots: list[TimeSlotPayload]) -> None:
    errors = find_slot_errors(slots)
    if errors:
        raise ApiError(
            status_code=422,
            code="INVALID_TIME_SLOTS",
            message=" ".join(errors),
            details={"errors": errors},
        )


def _build_slots(slots: list[TimeSlotPayload]) -> list[TimeSlot]:
    _ensure_valid_slots(slots)
    return [
        TimeSlot(
            start_minutes=slot.start_minutes,
            end_minutes=slot.end_minutes,
            slot_type=slot.slot_type,
            is_automatic=slot.is_automatic,
        )
        for slot in sorted(slots, key=lambda item: (item.start_minutes, item.end_minutes))
    ]


def _build_period(payload: SchedulePeriodCreate) -> SchedulePeriod:
    return SchedulePeriod(
        period_type=payload.period_type,
        name=payload.name,
        valid_from=payload.valid_from,
        valid_to=payload.valid_to,
        work_day_patterns=[
            WorkDayPattern(
                day_of_week=pattern.day_of_week,
                is_working_day=pattern.is_working_day,
                time_slots=_build_slots(pattern.time_slots),
            )
            for pattern in payload.work_day_patterns
        ],
    )


def get_template(db: Session, template_id: int) -> ScheduleTemplate:
    template = db.scalar(
        select(ScheduleTemplate).options(*_template_options()).where(ScheduleTemplate.id == template_id)
    )
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule template not found")
    return template


def list_templates(
    db: Session,
    *,
    org_id: int | None = None,
    include_inactive: bool = True,
) -> list[ScheduleTemplate]:
    stmt = (
        select(ScheduleTemplate)
        .options(*_template_options())
        .order_by(ScheduleTemplate.name.asc(), ScheduleTemplate.id.asc())
    )
    if org_id is not None:
        stmt = stmt.where(ScheduleTemplate.org_id == org_id)
    if not include_inactive:
        stmt = stmt.where(ScheduleTemplate.is_active.is_(True))
    return list(db.scalars(stmt).all())


def create_template(db: Session, payload: ScheduleTemplateCreate) -> ScheduleTemplate:
    if db.get(Organization, payload.org_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")

    template = ScheduleTemplate(
        org_id=payload.org_id,
        name=payload.name.strip(),
        description=payload.description,
        is_active=payload.is_active,
        periods=[_build_period(period) for period in payload.periods],
    )
    db.add(template)
    db.commit()
    logger.info("schedule_template_created", extra={"template_id": template.id, "org_id": template.org_id})
    return get_template(db, template.id)


def update_template(db: Session, template_id: int, payload: ScheduleTemplateUpdate) -> ScheduleTemplate:
    template = get_template(db, template_id)
    template.name = payload.name.strip()
    template.description = payload.description
    template.is_active = payload.is_active
    db.commit()
    return get_template(db, template_id)


def delete_template(db: Session, template_id: int) -> None:
    template = get_template(db, template_id)
    in_use = db.scalar(
        select(EmployeeScheduleAssignment.id)
        .where(
            EmployeeScheduleAssignment.template_id == template_id,
            EmployeeScheduleAssignment.is_active.is_(True),
        )
        .limit(1)
    )
    if in_use is not None:
        raise ApiError(
            status_code=409,
            code="TEMPLATE_IN_USE",
            message="La plantilla tiene asignaciones activas y no se puede eliminar.",
        )
    db.delete(template)
    db.commit()


def _get_period(db: Session, period_id: int) -> SchedulePeriod:
    period = db.scalar(
        select(SchedulePeriod)
        .options(selectinload(SchedulePeriod.work_day_patterns).selectinload(WorkDayPattern.time_slots))
        .where(SchedulePeriod.id == period_id)
    )
    if period is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule period not found")
    return period


def add_period(db: Session, template_id: int, payload: SchedulePeriodCreate) -> SchedulePeriod:
    template = get_template(db, template_id)
    period = _build_period(payload)
    template.periods.append(period)
    db.commit()
    return _get_period(db, period.id)


def update_period(db: Session, period_id: int, payload: SchedulePeriodUpdate) -> SchedulePeriod:
    period = _get_period(db, period_id)
    period.period_type = payload.period_type
    period.name = payload.name
    period.valid_from = payload.valid_from
    period.valid_to = payload.valid_to
    db.commit()
    return _get_period(db, period_id)


def delete_period(db: Session, period_id: int) -> None:
    period = _get_period(db, period_id)
    db.delete(period)
    db.commit()


def upsert_day_pattern(db: Session, period_id: int, payload: WorkDayPatternUpsert) -> WorkDayPattern:
    """Create or replace the pattern of one weekday, slots included."""
    period = _get_period(db, period_id)
    slots = _build_slots(payload.time_slots)

    pattern = next(
        (item for item in period.work_day_patterns if item.day_of_week == payload.day_of_week),
        None,
    )
    if pattern is None:
        pattern = WorkDayPattern(day_of_week=payload.day_of_week)
        period.work_day_patterns.append(pattern)
    pattern.is_working_day = payload.is_working_day
    pattern.time_slots = slots
    db.commit()
    db.refresh(pattern)
    return pattern


def delete_day_pattern(db: Session, period_id: int, day_of_week: int) -> None:
    pattern = db.scalar(
        select(WorkDayPattern).where(
            WorkDayPattern.period_id == period_id,
            WorkDayPattern.day_of_week == day_of_week,
        )
    )
    if pattern is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Work day pattern not found")
    db.delete(pattern)
    db.commit()


def create_assignment(db: Session, payload: ScheduleAssignmentCreate) -> EmployeeScheduleAssignment:
    employee = db.get(Employee, payload.employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    template = db.get(ScheduleTemplate, payload.template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule template not found")
    if template.org_id != employee.org_id:
        raise ApiError(
            status_code=409,
            code="ORGANIZATION_MISMATCH",
            message="La plantilla pertenece a otra organizacion.",
        )
    if not template.is_active:
        raise ApiError(status_code=409, code="TEMPLATE_INACTIVE", message="La plantilla no esta activa.")

    current = list(
        db.scalars(
            select(EmployeeScheduleAssignment).where(
                EmployeeScheduleAssignment.employee_id == employee.id,
                EmployeeScheduleAssignment.is_active.is_(True),
            )
        ).all()
    )
    for item in current:
        if item.valid_from == payload.valid_from:
            raise ApiError(
                status_code=409,
                code="ASSIGNMENT_OVERLAP",
                message="Ya existe una asignacion que empieza ese mismo dia.",
            )
        # An open-ended earlier assignment ends the day before the new one.
        if item.valid_to is None and item.valid_from < payload.valid_from:
            item.valid_to = payload.valid_from - timedelta(days=1)

    assignment = EmployeeScheduleAssignment(
        employee_id=employee.id,
        template_id=template.id,
        valid_from=payload.valid_from,
        valid_to=payload.valid_to,
        is_active=True,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info(
        "schedule_assignment_created",
        extra={
            "employee_id": employee.id,
            "template_id": template.id,
            "valid_from": payload.valid_from.isoformat(),
        },
    )
    return assignment


def list_assignments(db: Session, *, employee_id: int) -> list[EmployeeScheduleAssignment]:
    return list(
        db.scalars(
            select(EmployeeScheduleAssignment)
            .where(EmployeeScheduleAssignment.employee_id == employee_id)
            .order_by(EmployeeScheduleAssignment.valid_from.desc(), EmployeeScheduleAssignment.id.desc())
        ).all()
    )


def _get_assignment(db: Session, assignment_id: int) -> EmployeeScheduleAssignment:
    assignment = db.get(EmployeeScheduleAssignment, assignment_id)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule assignment not found")
    return assignment


def end_assignment(db: Session, assignment_id: int, *, valid_to: date) -> EmployeeScheduleAssignment:
    assignment = _get_assignment(db, assignment_id)
    if valid_to < assignment.valid_from:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="valid_to must be greater than or equal to valid_from",
        )
    assignment.valid_to = valid_to
    db.commit()
    db.refresh(assignment)
    return assignment


def deactivate_assignment(db: Session, assignment_id: int) -> EmployeeScheduleAssignment:
    assignment = _get_assignment(db, assignment_id)
    assignment.is_active = False
    db.commit()
    db.refresh(assignment)
    return assignment
