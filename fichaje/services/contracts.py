from __future__ import annotations

from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from fichaje.models import Employee, EmploymentContract


def _covers_day(day_date: date):
    return (
        EmploymentContract.start_date <= day_date,
        or_(EmploymentContract.end_date.is_(None), EmploymentContract.end_date >= day_date),
    )


def get_active_contract(db: Session, *, employee_id: int, day_date: date) -> EmploymentContract | None:
    return db.scalar(
        select(EmploymentContract)
        .where(
            EmploymentContract.employee_id == employee_id,
            EmploymentContract.is_active.is_(True),
            *_covers_day(day_date),
        )
        .order_by(EmploymentContract.start_date.desc(), EmploymentContract.id.desc())
        .limit(1)
    )


def list_active_contracts(
    db: Session,
    *,
    employee_id: int,
    start_date: date,
    end_date: date,
) -> list[EmploymentContract]:
    return list(
        db.scalars(
            select(EmploymentContract)
            .where(
                EmploymentContract.employee_id == employee_id,
                EmploymentContract.is_active.is_(True),
                EmploymentContract.start_date <= end_date,
                or_(EmploymentContract.end_date.is_(None), EmploymentContract.end_date >= start_date),
            )
            .order_by(EmploymentContract.start_date.desc(), EmploymentContract.id.desc())
        ).all()
    )


def pick_contract(contracts: list[EmploymentContract], day_date: date) -> EmploymentContract | None:
    for contract in contracts:
        if contract.start_date <= day_date and (contract.end_date is None or contract.end_date >= day_date):
            return contract
    return None


def create_contract(
    db: Session,
    *,
    employee_id: int,
    start_date: date,
    end_date: date | None,
    weekly_minutes: int,
    working_days_per_week: int,
) -> EmploymentContract:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    if end_date is not None and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must be greater than or equal to start_date",
        )

    contract = EmploymentContract(
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        weekly_minutes=weekly_minutes,
        working_days_per_week=working_days_per_week,
        is_active=True,
    )
    db.add(contract)
    db.commit()
    db.refresh(contract)
    return contract


def list_contracts(db: Session, *, employee_id: int) -> list[EmploymentContract]:
    return list(
        db.scalars(
            select(EmploymentContract)
            .where(EmploymentContract.employee_id == employee_id)
            .order_by(EmploymentContract.start_date.desc(), EmploymentContract.id.desc())
        ).all()
    )


def deactivate_contract(db: Session, *, contract_id: int) -> EmploymentContract:
    contract = db.get(EmploymentContract, contract_id)
    if contract is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    contract.is_active = False
    db.commit()
    db.refresh(contract)
    return contract
