from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from fichaje.db import get_db
from fichaje.models import RegularizationStatus
from fichaje.schemas import (
    ActiveProjectRead,
    AlertRead,
    BreakRequest,
    ClockActionData,
    ClockActionResponse,
    ClockInRequest,
    ClockOutRequest,
    ClockStatusRead,
    DailySummaryRead,
    DismissedNotificationRead,
    DismissNotificationRequest,
    Envelope,
    IncompleteEntryRead,
    PeriodRollupRead,
    ProjectChangeRequest,
    RegularizationCreate,
    RegularizationRead,
    TimeBankBalanceRead,
)
from fichaje.services.notifications import dismiss_notification
from fichaje.services.regularization import create_regularization_request, list_regularization_requests
from fichaje.services.summaries import (
    SummaryPeriod,
    employee_today,
    get_daily_summary,
    get_period_summaries,
    summarize_days,
)
from fichaje.services.time_bank import get_time_bank_balance, list_time_bank_movements
from fichaje.services.time_tracking import (
    ClockActionResult,
    change_project,
    clock_in,
    clock_out,
    detect_incomplete_entries,
    end_break,
    get_clock_status,
    get_current_project,
    start_break,
)

router = APIRouter(tags=["time-tracking"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _action_response(request: Request, result: ClockActionResult) -> ClockActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = result.entry.employee_id
    request.state.entry_id = result.entry.id
    return ClockActionResponse(
        success=True,
        alerts=[AlertRead.model_validate(alert) for alert in result.alerts],
        is_on_break=result.is_on_break,
        data=ClockActionData.model_validate(result),
    )


@router.post(
    "/api/employees/{employee_id}/clock/in",
    response_model=ClockActionResponse,
    response_model_exclude_none=True,
)
def clock_in_endpoint(
    employee_id: int,
    payload: ClockInRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    result = clock_in(
        db,
        employee_id=employee_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy=payload.accuracy,
        project_id=payload.project_id,
        task=payload.task,
    )
    return _action_response(request, result)


@router.post(
    "/api/employees/{employee_id}/clock/out",
    response_model=ClockActionResponse,
    response_model_exclude_none=True,
)
def clock_out_endpoint(
    employee_id: int,
    payload: ClockOutRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    result = clock_out(
        db,
        employee_id=employee_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy=payload.accuracy,
        cancel_as_closed=payload.cancel_as_closed,
        cancellation_notes=payload.cancellation_notes,
        request_id=getattr(request.state, "request_id", None),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
    )
    return _action_response(request, result)


@router.post(
    "/api/employees/{employee_id}/clock/break/start",
    response_model=ClockActionResponse,
    response_model_exclude_none=True,
)
def break_start_endpoint(
    employee_id: int,
    payload: BreakRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    result = start_break(
        db,
        employee_id=employee_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy=payload.accuracy,
    )
    return _action_response(request, result)


@router.post(
    "/api/employees/{employee_id}/clock/break/end",
    response_model=ClockActionResponse,
    response_model_exclude_none=True,
)
def break_end_endpoint(
    employee_id: int,
    payload: BreakRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    result = end_break(
        db,
        employee_id=employee_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy=payload.accuracy,
    )
    return _action_response(request, result)


@router.post(
    "/api/employees/{employee_id}/clock/project",
    response_model=ClockActionResponse,
    response_model_exclude_none=True,
)
def change_project_endpoint(
    employee_id: int,
    payload: ProjectChangeRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    result = change_project(db, employee_id=employee_id, project_id=payload.project_id, task=payload.task)
    return _action_response(request, result)


@router.get("/api/employees/{employee_id}/clock/status", response_model=Envelope[ClockStatusRead])
def clock_status_endpoint(employee_id: int, request: Request, db: Session = Depends(get_db)) -> dict[str, Any]:
    request.state.employee_id = employee_id
    clock_status = get_clock_status(db, employee_id=employee_id)
    return {"success": True, "data": ClockStatusRead.model_validate(clock_status)}


@router.get("/api/employees/{employee_id}/clock/project", response_model=Envelope[ActiveProjectRead])
def current_project_endpoint(employee_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    project = get_current_project(db, employee_id=employee_id)
    return {"success": True, "data": ActiveProjectRead.model_validate(project)}


@router.get("/api/employees/{employee_id}/summary/daily", response_model=Envelope[DailySummaryRead])
def daily_summary_endpoint(
    employee_id: int,
    day_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    if day_date is None:
        day_date = employee_today(db, employee_id=employee_id, now=now)
    summary = get_daily_summary(db, employee_id=employee_id, day_date=day_date, now=now)
    return {"success": True, "data": DailySummaryRead.model_validate(summary)}


@router.get("/api/employees/{employee_id}/summary/range", response_model=Envelope[list[DailySummaryRead]])
def range_summary_endpoint(
    employee_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    days = summarize_days(
        db,
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        now=datetime.now(timezone.utc),
    )
    return {"success": True, "data": [DailySummaryRead.model_validate(day) for day in days]}


@router.get("/api/employees/{employee_id}/summary/{period}", response_model=Envelope[list[PeriodRollupRead]])
def period_summary_endpoint(
    employee_id: int,
    period: SummaryPeriod,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    rollups = get_period_summaries(
        db,
        employee_id=employee_id,
        period=period,
        start_date=start_date,
        end_date=end_date,
        now=datetime.now(timezone.utc),
    )
    return {"success": True, "data": [PeriodRollupRead.model_validate(item) for item in rollups]}


@router.get("/api/employees/{employee_id}/incomplete-entries", response_model=Envelope[list[IncompleteEntryRead]])
def incomplete_entries_endpoint(employee_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    items = detect_incomplete_entries(db, employee_id=employee_id)
    return {"success": True, "data": [IncompleteEntryRead.model_validate(item) for item in items]}


@router.post(
    "/api/employees/{employee_id}/notifications/dismiss",
    response_model=Envelope[DismissedNotificationRead],
)
def dismiss_notification_endpoint(
    employee_id: int,
    payload: DismissNotificationRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    dismissed = dismiss_notification(
        db,
        employee_id=employee_id,
        kind=payload.kind,
        reference_id=payload.reference_id,
    )
    return {"success": True, "data": dismissed}


@router.post(
    "/api/employees/{employee_id}/regularizations",
    response_model=Envelope[RegularizationRead],
    status_code=201,
)
def create_regularization_endpoint(
    employee_id: int,
    payload: RegularizationCreate,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    created = create_regularization_request(db, employee_id=employee_id, payload=payload)
    return {"success": True, "data": created}


@router.get("/api/employees/{employee_id}/regularizations", response_model=Envelope[list[RegularizationRead]])
def list_regularizations_endpoint(
    employee_id: int,
    status_filter: RegularizationStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    items = list_regularization_requests(db, employee_id=employee_id, status_filter=status_filter)
    return {"success": True, "data": items}


@router.get("/api/employees/{employee_id}/time-bank", response_model=Envelope[TimeBankBalanceRead])
def time_bank_endpoint(
    employee_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {
        "success": True,
        "data": {
            "employee_id": employee_id,
            "balance_minutes": get_time_bank_balance(db, employee_id=employee_id),
            "movements": list_time_bank_movements(
                db,
                employee_id=employee_id,
                start_date=start_date,
                end_date=end_date,
            ),
        },
    }
