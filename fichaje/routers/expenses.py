from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fichaje.db import get_db
from fichaje.models import ExpenseStatus
from fichaje.schemas import Envelope, ExpenseCreate, ExpenseRead, ExpenseReject, ExpenseUpdate
from fichaje.services.expenses import (
    approve_expense,
    create_expense,
    delete_expense,
    list_expenses,
    reimburse_expense,
    reject_expense,
    submit_expense,
    update_expense,
)

router = APIRouter(tags=["expenses"])


@router.post("/api/expenses", response_model=Envelope[ExpenseRead], status_code=status.HTTP_201_CREATED)
def create_expense_endpoint(payload: ExpenseCreate, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": create_expense(db, payload)}


@router.get("/api/expenses", response_model=Envelope[list[ExpenseRead]])
def list_expenses_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    status_filter: ExpenseStatus | None = Query(default=None, alias="status"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    expenses = list_expenses(
        db,
        employee_id=employee_id,
        status_filter=status_filter,
        start_date=start_date,
        end_date=end_date,
    )
    return {"success": True, "data": expenses}


@router.put("/api/expenses/{expense_id}", response_model=Envelope[ExpenseRead])
def update_expense_endpoint(
    expense_id: int,
    payload: ExpenseUpdate,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": update_expense(db, expense_id, payload)}


@router.delete("/api/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense_endpoint(expense_id: int, db: Session = Depends(get_db)) -> None:
    delete_expense(db, expense_id)


@router.post("/api/expenses/{expense_id}/submit", response_model=Envelope[ExpenseRead])
def submit_expense_endpoint(expense_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": submit_expense(db, expense_id)}


@router.post("/api/admin/expenses/{expense_id}/approve", response_model=Envelope[ExpenseRead])
def approve_expense_endpoint(expense_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": approve_expense(db, expense_id)}


@router.post("/api/admin/expenses/{expense_id}/reject", response_model=Envelope[ExpenseRead])
def reject_expense_endpoint(
    expense_id: int,
    payload: ExpenseReject,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": reject_expense(db, expense_id, reason=payload.reason)}


@router.post("/api/admin/expenses/{expense_id}/reimburse", response_model=Envelope[ExpenseRead])
def reimburse_expense_endpoint(expense_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": reimburse_expense(db, expense_id)}
