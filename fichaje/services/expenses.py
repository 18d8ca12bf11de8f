from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from fichaje.errors import ApiError
from fichaje.models import Employee, Expense, ExpenseStatus
from fichaje.schemas import ExpenseCreate, ExpenseUpdate

logger = logging.getLogger("fichaje.expenses")

_ALLOWED_TRANSITIONS: dict[ExpenseStatus, set[ExpenseStatus]] = {
    ExpenseStatus.DRAFT: {ExpenseStatus.SUBMITTED},
    ExpenseStatus.SUBMITTED: {ExpenseStatus.APPROVED, ExpenseStatus.REJECTED},
    ExpenseStatus.APPROVED: {ExpenseStatus.REIMBURSED},
    ExpenseStatus.REJECTED: set(),
    ExpenseStatus.REIMBURSED: set(),
}

_STATUS_LABELS: dict[ExpenseStatus, str] = {
    ExpenseStatus.DRAFT: "borrador",
    ExpenseStatus.SUBMITTED: "enviado",
    ExpenseStatus.APPROVED: "aprobado",
    ExpenseStatus.REJECTED: "rechazado",
    ExpenseStatus.REIMBURSED: "reembolsado",
}


def can_transition(current: ExpenseStatus, target: ExpenseStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(ExpenseStatus(current), set())


def _get_expense(db: Session, expense_id: int) -> Expense:
    expense = db.get(Expense, expense_id)
    if expense is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    return expense


def _transition(expense: Expense, target: ExpenseStatus) -> None:
    current = ExpenseStatus(expense.status)
    if not can_transition(current, target):
        raise ApiError(
            status_code=409,
            code="INVALID_EXPENSE_TRANSITION",
            message=(
                f"No se puede pasar un gasto {_STATUS_LABELS[current]} "
                f"a {_STATUS_LABELS[target]}."
            ),
            details={"current_status": current.value, "target_status": target.value},
        )
    expense.status = target


def create_expense(db: Session, payload: ExpenseCreate) -> Expense:
    employee = db.get(Employee, payload.employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")

    expense = Expense(
        employee_id=payload.employee_id,
        expense_date=payload.expense_date,
        category=payload.category,
        amount=payload.amount,
        currency=payload.currency,
        merchant=payload.merchant,
        description=payload.description,
        status=ExpenseStatus.DRAFT,
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return expense


def update_expense(db: Session, expense_id: int, payload: ExpenseUpdate) -> Expense:
    expense = _get_expense(db, expense_id)
    if ExpenseStatus(expense.status) != ExpenseStatus.DRAFT:
        raise ApiError(
            status_code=409,
            code="EXPENSE_NOT_EDITABLE",
            message="Solo se pueden editar gastos en borrador.",
        )
    expense.expense_date = payload.expense_date
    expense.category = payload.category
    expense.amount = payload.amount
    expense.currency = payload.currency
    expense.merchant = payload.merchant
    expense.description = payload.description
    db.commit()
    db.refresh(expense)
    return expense


def list_expenses(
    db: Session,
    *,
    employee_id: int | None = None,
    status_filter: ExpenseStatus | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Expense]:
    stmt = select(Expense).order_by(Expense.expense_date.desc(), Expense.id.desc())
    if employee_id is not None:
        stmt = stmt.where(Expense.employee_id == employee_id)
    if status_filter is not None:
        stmt = stmt.where(Expense.status == status_filter)
    if start_date is not None:
        stmt = stmt.where(Expense.expense_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Expense.expense_date <= end_date)
    return list(db.scalars(stmt).all())


def submit_expense(db: Session, expense_id: int) -> Expense:
    expense = _get_expense(db, expense_id)
    _transition(expense, ExpenseStatus.SUBMITTED)
    expense.submitted_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(expense)
    logger.info("expense_submitted", extra={"expense_id": expense.id, "employee_id": expense.employee_id})
    return expense


def approve_expense(db: Session, expense_id: int) -> Expense:
    expense = _get_expense(db, expense_id)
    _transition(expense, ExpenseStatus.APPROVED)
    expense.approved_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(expense)
    return expense


def reject_expense(db: Session, expense_id: int, *, reason: str) -> Expense:
    expense = _get_expense(db, expense_id)
    _transition(expense, ExpenseStatus.REJECTED)
    expense.rejected_at = datetime.now(timezone.utc)
    expense.rejection_reason = reason.strip()
    db.commit()
    db.refresh(expense)
    return expense


def reimburse_expense(db: Session, expense_id: int) -> Expense:
    expense = _get_expense(db, expense_id)
    _transition(expense, ExpenseStatus.REIMBURSED)
    expense.reimbursed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(expense)
    return expense


def delete_expense(db: Session, expense_id: int) -> None:
    expense = _get_expense(db, expense_id)
    if ExpenseStatus(expense.status) != ExpenseStatus.DRAFT:
        raise ApiError(
            status_code=409,
            code="EXPENSE_NOT_EDITABLE",
            message="Solo se pueden eliminar gastos en borrador.",
        )
    db.delete(expense)
    db.commit()
