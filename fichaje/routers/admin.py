from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fichaje.audit import log_audit
from fichaje.db import get_db
from fichaje.models import AuditActorType, RegularizationStatus
from fichaje.schemas import (
    AbsenceCreate,
    AbsenceRead,
    AbsenceStatusUpdate,
    AdminUserActionRequest,
    AdminUserActionResponse,
    CancelClockInRequest,
    ContractCreate,
    ContractRead,
    EmployeeActiveUpdate,
    EmployeeCreate,
    EmployeeRead,
    Envelope,
    OrganizationCreate,
    OrganizationRead,
    OrganizationSettingsUpdate,
    ProjectCreate,
    ProjectRead,
    RegularizationRead,
    RegularizationReview,
    TimeBankAdjustmentCreate,
    TimeBankBalanceRead,
    TimeBankMovementRead,
    TimeEntryRead,
    UserRead,
    WorkCenterCreate,
    WorkCenterRead,
)
from fichaje.services.absences import create_absence, delete_absence, list_absences, update_absence_status
from fichaje.services.contracts import create_contract, deactivate_contract, list_contracts
from fichaje.services.directory import (
    create_employee,
    create_organization,
    create_project,
    create_work_center,
    get_organization,
    list_employees,
    list_projects,
    list_work_centers,
    set_employee_active,
    update_organization_settings,
)
from fichaje.services.regularization import (
    approve_regularization,
    list_regularization_requests,
    reject_regularization,
)
from fichaje.services.time_bank import add_manual_adjustment, get_time_bank_balance, list_time_bank_movements
from fichaje.services.time_tracking import cancel_open_clock_in
from fichaje.services.users import run_user_action

router = APIRouter(tags=["admin"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _audit(
    request: Request,
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: int | str,
    details: dict[str, Any] | None = None,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id="admin",
        action=action,
        success=True,
        entity_type=entity_type,
        entity_id=str(entity_id),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        details=details,
        request_id=_request_id(request),
    )


@router.post(
    "/api/admin/users",
    response_model=AdminUserActionResponse,
    response_model_exclude_none=True,
)
def user_action_endpoint(
    payload: AdminUserActionRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUserActionResponse:
    request.state.actor = "admin"
    result = run_user_action(
        db,
        payload,
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        request_id=_request_id(request),
    )
    return AdminUserActionResponse(
        success=True,
        user=UserRead.model_validate(result.user),
        temporary_password=result.temporary_password,
        invite_email_sent=result.invite_email_sent,
    )


@router.post(
    "/api/admin/organizations",
    response_model=Envelope[OrganizationRead],
    status_code=status.HTTP_201_CREATED,
)
def create_organization_endpoint(
    payload: OrganizationCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    organization = create_organization(db, payload)
    _audit(
        request,
        db,
        action="ORGANIZATION_CREATED",
        entity_type="organization",
        entity_id=organization.id,
        details={"name": organization.name, "timezone": organization.timezone},
    )
    return {"success": True, "data": organization}


@router.get("/api/admin/organizations/{org_id}", response_model=Envelope[OrganizationRead])
def get_organization_endpoint(org_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": get_organization(db, org_id)}


@router.patch("/api/admin/organizations/{org_id}/settings", response_model=Envelope[OrganizationRead])
def update_organization_settings_endpoint(
    org_id: int,
    payload: OrganizationSettingsUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    organization = update_organization_settings(db, org_id, payload)
    _audit(
        request,
        db,
        action="ORGANIZATION_SETTINGS_UPDATED",
        entity_type="organization",
        entity_id=organization.id,
        details=payload.model_dump(exclude_unset=True),
    )
    return {"success": True, "data": organization}


@router.post(
    "/api/admin/employees",
    response_model=Envelope[EmployeeRead],
    status_code=status.HTTP_201_CREATED,
)
def create_employee_endpoint(
    payload: EmployeeCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    employee = create_employee(db, payload)
    request.state.employee_id = employee.id
    _audit(
        request,
        db,
        action="EMPLOYEE_CREATED",
        entity_type="employee",
        entity_id=employee.id,
        details={"org_id": employee.org_id, "full_name": employee.full_name},
    )
    return {"success": True, "data": employee}


@router.get("/api/admin/employees", response_model=Envelope[list[EmployeeRead]])
def list_employees_endpoint(
    org_id: int | None = Query(default=None, ge=1),
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": list_employees(db, org_id=org_id, include_inactive=include_inactive)}


@router.patch("/api/admin/employees/{employee_id}/active", response_model=Envelope[EmployeeRead])
def set_employee_active_endpoint(
    employee_id: int,
    payload: EmployeeActiveUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    employee = set_employee_active(db, employee_id, is_active=payload.is_active)
    request.state.employee_id = employee.id
    _audit(
        request,
        db,
        action="EMPLOYEE_ACTIVATED" if employee.is_active else "EMPLOYEE_DEACTIVATED",
        entity_type="employee",
        entity_id=employee.id,
    )
    return {"success": True, "data": employee}


@router.post(
    "/api/admin/projects",
    response_model=Envelope[ProjectRead],
    status_code=status.HTTP_201_CREATED,
)
def create_project_endpoint(payload: ProjectCreate, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": create_project(db, payload)}


@router.get("/api/admin/projects", response_model=Envelope[list[ProjectRead]])
def list_projects_endpoint(
    org_id: int = Query(ge=1),
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": list_projects(db, org_id=org_id, include_inactive=include_inactive)}


@router.post(
    "/api/admin/work-centers",
    response_model=Envelope[WorkCenterRead],
    status_code=status.HTTP_201_CREATED,
)
def create_work_center_endpoint(payload: WorkCenterCreate, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": create_work_center(db, payload)}


@router.get("/api/admin/work-centers", response_model=Envelope[list[WorkCenterRead]])
def list_work_centers_endpoint(org_id: int = Query(ge=1), db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": list_work_centers(db, org_id=org_id)}


@router.post(
    "/api/admin/employees/{employee_id}/contracts",
    response_model=Envelope[ContractRead],
    status_code=status.HTTP_201_CREATED,
)
def create_contract_endpoint(
    employee_id: int,
    payload: ContractCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    contract = create_contract(
        db,
        employee_id=employee_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        weekly_minutes=payload.weekly_minutes,
        working_days_per_week=payload.working_days_per_week,
    )
    _audit(
        request,
        db,
        action="CONTRACT_CREATED",
        entity_type="contract",
        entity_id=contract.id,
        details={"employee_id": employee_id, "weekly_minutes": contract.weekly_minutes},
    )
    return {"success": True, "data": contract}


@router.get("/api/admin/employees/{employee_id}/contracts", response_model=Envelope[list[ContractRead]])
def list_contracts_endpoint(employee_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": list_contracts(db, employee_id=employee_id)}


@router.delete("/api/admin/contracts/{contract_id}", response_model=Envelope[ContractRead])
def deactivate_contract_endpoint(contract_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": deactivate_contract(db, contract_id=contract_id)}


@router.post(
    "/api/admin/absences",
    response_model=Envelope[AbsenceRead],
    status_code=status.HTTP_201_CREATED,
)
def create_absence_endpoint(
    payload: AbsenceCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    absence = create_absence(db, payload)
    _audit(
        request,
        db,
        action="ABSENCE_CREATED",
        entity_type="absence",
        entity_id=absence.id,
        details={"employee_id": absence.employee_id, "type": absence.absence_type.value},
    )
    return {"success": True, "data": absence}


@router.get("/api/admin/absences", response_model=Envelope[list[AbsenceRead]])
def list_absences_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    year: int | None = Query(default=None, ge=1970),
    month: int | None = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": list_absences(db, employee_id=employee_id, year=year, month=month)}


@router.patch("/api/admin/absences/{absence_id}/status", response_model=Envelope[AbsenceRead])
def update_absence_status_endpoint(
    absence_id: int,
    payload: AbsenceStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    absence = update_absence_status(db, absence_id, payload)
    _audit(
        request,
        db,
        action="ABSENCE_STATUS_UPDATED",
        entity_type="absence",
        entity_id=absence.id,
        details={"status": absence.status.value},
    )
    return {"success": True, "data": absence}


@router.delete("/api/admin/absences/{absence_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_absence_endpoint(absence_id: int, request: Request, db: Session = Depends(get_db)) -> None:
    delete_absence(db, absence_id)
    _audit(request, db, action="ABSENCE_DELETED", entity_type="absence", entity_id=absence_id)


@router.get("/api/admin/employees/{employee_id}/time-bank", response_model=Envelope[TimeBankBalanceRead])
def admin_time_bank_endpoint(
    employee_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    movements = list_time_bank_movements(db, employee_id=employee_id, start_date=start_date, end_date=end_date)
    return {
        "success": True,
        "data": {
            "employee_id": employee_id,
            "balance_minutes": get_time_bank_balance(db, employee_id=employee_id),
            "movements": movements,
        },
    }


@router.post(
    "/api/admin/employees/{employee_id}/time-bank/adjustments",
    response_model=Envelope[TimeBankMovementRead],
    status_code=status.HTTP_201_CREATED,
)
def time_bank_adjustment_endpoint(
    employee_id: int,
    payload: TimeBankAdjustmentCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    movement = add_manual_adjustment(
        db,
        employee_id=employee_id,
        day_date=payload.day_date,
        minutes=payload.minutes,
        description=payload.description,
    )
    request.state.employee_id = employee_id
    _audit(
        request,
        db,
        action="TIME_BANK_ADJUSTED",
        entity_type="time_bank_movement",
        entity_id=movement.id,
        details={"employee_id": employee_id, "minutes": movement.minutes, "day_date": payload.day_date.isoformat()},
    )
    return {"success": True, "data": movement}


@router.post(
    "/api/admin/employees/{employee_id}/clock/cancel",
    response_model=Envelope[list[TimeEntryRead]],
)
def cancel_clock_in_endpoint(
    employee_id: int,
    payload: CancelClockInRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    request.state.actor = "admin"
    request.state.employee_id = employee_id
    request.state.entry_id = payload.clock_in_id
    cancelled = cancel_open_clock_in(
        db,
        employee_id=employee_id,
        clock_in_id=payload.clock_in_id,
        reason=payload.reason,
        notes=payload.notes,
        request_id=_request_id(request),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
    )
    return {"success": True, "data": cancelled}


@router.get("/api/admin/regularizations", response_model=Envelope[list[RegularizationRead]])
def list_all_regularizations_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    status_filter: RegularizationStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    items = list_regularization_requests(db, employee_id=employee_id, status_filter=status_filter)
    return {"success": True, "data": items}


@router.post("/api/admin/regularizations/{request_id}/approve", response_model=Envelope[RegularizationRead])
def approve_regularization_endpoint(
    request_id: int,
    payload: RegularizationReview,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    request.state.actor = "admin"
    approved = approve_regularization(
        db,
        request_id=request_id,
        review_notes=payload.review_notes,
        audit_request_id=_request_id(request),
    )
    request.state.employee_id = approved.employee_id
    return {"success": True, "data": approved}


@router.post("/api/admin/regularizations/{request_id}/reject", response_model=Envelope[RegularizationRead])
def reject_regularization_endpoint(
    request_id: int,
    payload: RegularizationReview,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    request.state.actor = "admin"
    rejected = reject_regularization(
        db,
        request_id=request_id,
        review_notes=payload.review_notes,
        audit_request_id=_request_id(request),
    )
    request.state.employee_id = rejected.employee_id
    return {"success": True, "data": rejected}
