from __future__ import annotations

import logging
from calendar import monthrange
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from fichaje.models import Absence, Employee
from fichaje.schemas import AbsenceCreate, AbsenceStatusUpdate

logger = logging.getLogger("fichaje.absences")


def create_absence(db: Session, payload: AbsenceCreate) -> Absence:
    employee = db.get(Employee, payload.employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")

    if payload.end_date < payload.start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must be greater than or equal to start_date",
        )

    absence = Absence(
        employee_id=payload.employee_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        absence_type=payload.absence_type,
        status=payload.status,
        is_full_day=payload.is_full_day,
        start_minutes=None if payload.is_full_day else payload.start_minutes,
        end_minutes=None if payload.is_full_day else payload.end_minutes,
        note=payload.note,
    )
    db.add(absence)
    db.commit()
    db.refresh(absence)
    logger.info(
        "absence_created",
        extra={
            "employee_id": absence.employee_id,
            "absence_id": absence.id,
            "absence_type": absence.absence_type.value,
            "is_full_day": absence.is_full_day,
        },
    )
    return absence


def list_absences(
    db: Session,
    *,
    employee_id: int | None,
    year: int | None,
    month: int | None,
) -> list[Absence]:
    if (year is None) != (month is None):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="year and month must be provided together",
        )

    stmt = select(Absence).order_by(Absence.start_date.asc(), Absence.id.asc())
    if employee_id is not None:
        stmt = stmt.where(Absence.employee_id == employee_id)

    if year is not None and month is not None:
        start = date(year, month, 1)
        end = date(year, month, monthrange(year, month)[1])
        stmt = stmt.where(
            Absence.start_date <= end,
            Absence.end_date >= start,
        )

    return list(db.scalars(stmt).all())


def update_absence_status(db: Session, absence_id: int, payload: AbsenceStatusUpdate) -> Absence:
    absence = db.get(Absence, absence_id)
    if absence is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Absence not found")

    absence.status = payload.status
    db.commit()
    db.refresh(absence)
    return absence


def delete_absence(db: Session, absence_id: int) -> None:
    absence = db.get(Absence, absence_id)
    if absence is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Absence not found")

    db.delete(absence)
    db.commit()
