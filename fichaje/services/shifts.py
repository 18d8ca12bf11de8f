from __future__ import annotations

import logging
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from fichaje.errors import ApiError
from fichaje.models import Employee, Organization, Shift, ShiftAssignment, ShiftStatus, WorkCenter
from fichaje.schemas import ShiftCreate, ShiftUpdate

logger = logging.getLogger("fichaje.shifts")

_ALLOWED_TRANSITIONS: dict[ShiftStatus, set[ShiftStatus]] = {
    ShiftStatus.DRAFT: {ShiftStatus.PENDING_APPROVAL, ShiftStatus.PUBLISHED},
    ShiftStatus.PENDING_APPROVAL: {ShiftStatus.PUBLISHED, ShiftStatus.DRAFT},
    ShiftStatus.PUBLISHED: {ShiftStatus.CLOSED},
    ShiftStatus.CLOSED: set(),
}


def can_transition(current: ShiftStatus, target: ShiftStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(ShiftStatus(current), set())


def get_shift(db: Session, shift_id: int) -> Shift:
    shift = db.scalar(select(Shift).options(selectinload(Shift.assignments)).where(Shift.id == shift_id))
    if shift is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shift not found")
    return shift


def _validate_work_center(db: Session, org_id: int, work_center_id: int | None) -> None:
    if work_center_id is None:
        return
    work_center = db.get(WorkCenter, work_center_id)
    if work_center is None or work_center.org_id != org_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Work center not found")


def _ensure_draft(shift: Shift) -> None:
    if ShiftStatus(shift.status) != ShiftStatus.DRAFT:
        raise ApiError(
            status_code=409,
            code="SHIFT_NOT_EDITABLE",
            message="Solo se pueden editar turnos en borrador.",
        )


def create_shift(db: Session, payload: ShiftCreate) -> Shift:
    if db.get(Organization, payload.org_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    _validate_work_center(db, payload.org_id, payload.work_center_id)

    shift = Shift(
        org_id=payload.org_id,
        work_center_id=payload.work_center_id,
        shift_date=payload.shift_date,
        start_minutes=payload.start_minutes,
        end_minutes=payload.end_minutes,
        role_name=payload.role_name,
        required_headcount=payload.required_headcount,
        status=ShiftStatus.DRAFT,
        notes=payload.notes,
    )
    db.add(shift)
    db.commit()
    return get_shift(db, shift.id)


def update_shift(db: Session, shift_id: int, payload: ShiftUpdate) -> Shift:
    shift = get_shift(db, shift_id)
    _ensure_draft(shift)
    _validate_work_center(db, shift.org_id, payload.work_center_id)

    shift.work_center_id = payload.work_center_id
    shift.shift_date = payload.shift_date
    shift.start_minutes = payload.start_minutes
    shift.end_minutes = payload.end_minutes
    shift.role_name = payload.role_name
    shift.required_headcount = payload.required_headcount
    shift.notes = payload.notes
    db.commit()
    return get_shift(db, shift_id)


def change_shift_status(db: Session, shift_id: int, target: ShiftStatus) -> Shift:
    shift = get_shift(db, shift_id)
    current = ShiftStatus(shift.status)
    if not can_transition(current, target):
        raise ApiError(
            status_code=409,
            code="INVALID_SHIFT_TRANSITION",
            message=f"No se puede pasar un turno de {current.value} a {target.value}.",
            details={"current_status": current.value, "target_status": target.value},
        )
    shift.status = target
    db.commit()
    logger.info(
        "shift_status_changed",
        extra={"shift_id": shift.id, "from_status": current.value, "to_status": target.value},
    )
    return get_shift(db, shift_id)


def list_shifts(
    db: Session,
    *,
    org_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    status_filter: ShiftStatus | None = None,
) -> list[Shift]:
    stmt = (
        select(Shift)
        .options(selectinload(Shift.assignments))
        .where(Shift.org_id == org_id)
        .order_by(Shift.shift_date.asc(), Shift.start_minutes.asc(), Shift.id.asc())
    )
    if start_date is not None:
        stmt = stmt.where(Shift.shift_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Shift.shift_date <= end_date)
    if status_filter is not None:
        stmt = stmt.where(Shift.status == status_filter)
    return list(db.scalars(stmt).all())


def delete_shift(db: Session, shift_id: int) -> None:
    shift = get_shift(db, shift_id)
    _ensure_draft(shift)
    db.delete(shift)
    db.commit()


def _ensure_assignable(shift: Shift) -> None:
    if ShiftStatus(shift.status) == ShiftStatus.CLOSED:
        raise ApiError(
            status_code=409,
            code="SHIFT_CLOSED",
            message="No se pueden modificar las asignaciones de un turno cerrado.",
        )


def assign_employee(db: Session, shift_id: int, employee_id: int) -> Shift:
    shift = get_shift(db, shift_id)
    _ensure_assignable(shift)

    employee = db.get(Employee, employee_id)
    if employee is None or employee.org_id != shift.org_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    if any(item.employee_id == employee_id for item in shift.assignments):
        raise ApiError(
            status_code=409,
            code="ALREADY_ASSIGNED",
            message="El empleado ya esta asignado a este turno.",
        )

    shift.assignments.append(ShiftAssignment(employee_id=employee_id))
    db.commit()
    return get_shift(db, shift_id)


def unassign_employee(db: Session, shift_id: int, employee_id: int) -> Shift:
    shift = get_shift(db, shift_id)
    _ensure_assignable(shift)

    assignment = next((item for item in shift.assignments if item.employee_id == employee_id), None)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shift assignment not found")
    shift.assignments.remove(assignment)
    db.commit()
    return get_shift(db, shift_id)
