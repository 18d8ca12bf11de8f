from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fichaje.db import get_db
from fichaje.models import ShiftStatus
from fichaje.schemas import (
    Envelope,
    ShiftAssignmentCreate,
    ShiftCreate,
    ShiftRead,
    ShiftStatusChange,
    ShiftUpdate,
)
from fichaje.services.shifts import (
    assign_employee,
    change_shift_status,
    create_shift,
    delete_shift,
    get_shift,
    list_shifts,
    unassign_employee,
    update_shift,
)

router = APIRouter(tags=["shifts"])


@router.post("/api/admin/shifts", response_model=Envelope[ShiftRead], status_code=status.HTTP_201_CREATED)
def create_shift_endpoint(payload: ShiftCreate, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": create_shift(db, payload)}


@router.get("/api/admin/shifts", response_model=Envelope[list[ShiftRead]])
def list_shifts_endpoint(
    org_id: int = Query(ge=1),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    status_filter: ShiftStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    shifts = list_shifts(
        db,
        org_id=org_id,
        start_date=start_date,
        end_date=end_date,
        status_filter=status_filter,
    )
    return {"success": True, "data": shifts}


@router.get("/api/admin/shifts/{shift_id}", response_model=Envelope[ShiftRead])
def get_shift_endpoint(shift_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": get_shift(db, shift_id)}


@router.put("/api/admin/shifts/{shift_id}", response_model=Envelope[ShiftRead])
def update_shift_endpoint(
    shift_id: int,
    payload: ShiftUpdate,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": update_shift(db, shift_id, payload)}


@router.delete("/api/admin/shifts/{shift_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_shift_endpoint(shift_id: int, db: Session = Depends(get_db)) -> None:
    delete_shift(db, shift_id)


@router.post("/api/admin/shifts/{shift_id}/status", response_model=Envelope[ShiftRead])
def change_shift_status_endpoint(
    shift_id: int,
    payload: ShiftStatusChange,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": change_shift_status(db, shift_id, payload.status)}


@router.post("/api/admin/shifts/{shift_id}/assignments", response_model=Envelope[ShiftRead])
def assign_employee_endpoint(
    shift_id: int,
    payload: ShiftAssignmentCreate,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": assign_employee(db, shift_id, payload.employee_id)}


@router.delete("/api/admin/shifts/{shift_id}/assignments/{employee_id}", response_model=Envelope[ShiftRead])
def unassign_employee_endpoint(shift_id: int, employee_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": unassign_employee(db, shift_id, employee_id)}
