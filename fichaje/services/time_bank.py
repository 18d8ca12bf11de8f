from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fichaje.models import Employee, Organization, TimeBankMovement, TimeBankMovementOrigin
from fichaje.settings import get_settings

logger = logging.getLogger("fichaje.time_bank")


@dataclass(frozen=True)
class TimeBankPolicy:
    rounding_increment_minutes: int
    excess_grace_minutes: int
    deficit_grace_minutes: int


def resolve_time_bank_policy(organization: Organization | None) -> TimeBankPolicy:
    settings = get_settings()

    def _pick(value: int | None, default: int) -> int:
        return default if value is None else value

    return TimeBankPolicy(
        rounding_increment_minutes=_pick(
            organization.time_bank_rounding_increment_minutes if organization else None,
            settings.time_bank_rounding_increment_minutes,
        ),
        excess_grace_minutes=_pick(
            organization.time_bank_excess_grace_minutes if organization else None,
            settings.time_bank_excess_grace_minutes,
        ),
        deficit_grace_minutes=_pick(
            organization.time_bank_deficit_grace_minutes if organization else None,
            settings.time_bank_deficit_grace_minutes,
        ),
    )


def normalize_deviation(value: float, policy: TimeBankPolicy) -> int:
    if not math.isfinite(value):
        return 0

    increment = max(1, policy.rounding_increment_minutes)
    # Half away from zero.
    rounded = int(math.floor(abs(value) / increment + 0.5)) * increment
    rounded = rounded if value >= 0 else -rounded

    if 0 < rounded < policy.excess_grace_minutes:
        return 0
    if rounded < 0 and abs(rounded) < policy.deficit_grace_minutes:
        return 0
    return rounded


def recorded_daily_minutes(db: Session, *, employee_id: int, day_date: date) -> int:
    total = db.scalar(
        select(func.coalesce(func.sum(TimeBankMovement.minutes), 0)).where(
            TimeBankMovement.employee_id == employee_id,
            TimeBankMovement.day_date == day_date,
            TimeBankMovement.origin == TimeBankMovementOrigin.AUTO_DAILY,
        )
    )
    return int(total or 0)


def sync_time_bank_for_day(
    db: Session,
    *,
    employee: Employee,
    day_date: date,
    deviation_minutes: int,
    policy: TimeBankPolicy,
) -> TimeBankMovement | None:
    """Append the delta between the day's normalized deviation and what the
    ledger already holds for it. Never updates existing rows; the caller
    commits."""
    target = normalize_deviation(deviation_minutes, policy)
    already_recorded = recorded_daily_minutes(db, employee_id=employee.id, day_date=day_date)
    delta = target - already_recorded
    if delta == 0:
        return None

    movement = TimeBankMovement(
        employee_id=employee.id,
        day_date=day_date,
        minutes=delta,
        origin=TimeBankMovementOrigin.AUTO_DAILY,
        description=(
            f"Desviacion diaria {day_date.isoformat()}: {deviation_minutes} min"
            if already_recorded == 0
            else f"Correccion diaria {day_date.isoformat()}: {already_recorded} -> {target} min"
        ),
    )
    db.add(movement)
    logger.info(
        "time_bank_movement_appended",
        extra={
            "employee_id": employee.id,
            "day_date": day_date.isoformat(),
            "deviation_minutes": deviation_minutes,
            "target_minutes": target,
            "delta_minutes": delta,
        },
    )
    return movement


def add_manual_adjustment(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
    minutes: int,
    description: str,
) -> TimeBankMovement:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    if minutes == 0:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="minutes must not be zero",
        )

    movement = TimeBankMovement(
        employee_id=employee_id,
        day_date=day_date,
        minutes=minutes,
        origin=TimeBankMovementOrigin.MANUAL_ADJUSTMENT,
        description=description,
    )
    db.add(movement)
    db.commit()
    db.refresh(movement)
    return movement


def get_time_bank_balance(db: Session, *, employee_id: int, until: date | None = None) -> int:
    stmt = select(func.coalesce(func.sum(TimeBankMovement.minutes), 0)).where(
        TimeBankMovement.employee_id == employee_id
    )
    if until is not None:
        stmt = stmt.where(TimeBankMovement.day_date <= until)
    return int(db.scalar(stmt) or 0)


def list_time_bank_movements(
    db: Session,
    *,
    employee_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[TimeBankMovement]:
    stmt = (
        select(TimeBankMovement)
        .where(TimeBankMovement.employee_id == employee_id)
        .order_by(TimeBankMovement.day_date.asc(), TimeBankMovement.id.asc())
    )
    if start_date is not None:
        stmt = stmt.where(TimeBankMovement.day_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(TimeBankMovement.day_date <= end_date)
    return list(db.scalars(stmt).all())
