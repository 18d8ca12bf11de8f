from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fichaje.audit import log_audit
from fichaje.db import get_db
from fichaje.models import AuditActorType
from fichaje.schemas import (
    EffectiveScheduleRead,
    Envelope,
    ScheduleAssignmentCreate,
    ScheduleAssignmentEnd,
    ScheduleAssignmentRead,
    SchedulePeriodCreate,
    SchedulePeriodRead,
    SchedulePeriodUpdate,
    ScheduleTemplateCreate,
    ScheduleTemplateRead,
    ScheduleTemplateUpdate,
    WorkDayPatternRead,
    WorkDayPatternUpsert,
)
from fichaje.services.schedule_resolver import resolve_effective_schedule
from fichaje.services.schedules import (
    add_period,
    create_assignment,
    create_template,
    deactivate_assignment,
    delete_day_pattern,
    delete_period,
    delete_template,
    end_assignment,
    get_template,
    list_assignments,
    list_templates,
    update_period,
    update_template,
    upsert_day_pattern,
)
from fichaje.services.summaries import employee_today

router = APIRouter(tags=["schedules"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _audit(
    request: Request,
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: int,
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
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/api/admin/schedule-templates", response_model=Envelope[list[ScheduleTemplateRead]])
def list_templates_endpoint(
    org_id: int | None = Query(default=None, ge=1),
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": list_templates(db, org_id=org_id, include_inactive=include_inactive)}


@router.post(
    "/api/admin/schedule-templates",
    response_model=Envelope[ScheduleTemplateRead],
    status_code=status.HTTP_201_CREATED,
)
def create_template_endpoint(
    payload: ScheduleTemplateCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    template = create_template(db, payload)
    _audit(
        request,
        db,
        action="SCHEDULE_TEMPLATE_CREATED",
        entity_type="schedule_template",
        entity_id=template.id,
        details={"org_id": template.org_id, "name": template.name},
    )
    return {"success": True, "data": get_template(db, template.id)}


@router.get("/api/admin/schedule-templates/{template_id}", response_model=Envelope[ScheduleTemplateRead])
def get_template_endpoint(template_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"success": True, "data": get_template(db, template_id)}


@router.put("/api/admin/schedule-templates/{template_id}", response_model=Envelope[ScheduleTemplateRead])
def update_template_endpoint(
    template_id: int,
    payload: ScheduleTemplateUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    template = update_template(db, template_id, payload)
    _audit(
        request,
        db,
        action="SCHEDULE_TEMPLATE_UPDATED",
        entity_type="schedule_template",
        entity_id=template.id,
        details={"name": template.name, "is_active": template.is_active},
    )
    return {"success": True, "data": get_template(db, template_id)}


@router.delete("/api/admin/schedule-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template_endpoint(template_id: int, request: Request, db: Session = Depends(get_db)) -> None:
    delete_template(db, template_id)
    _audit(request, db, action="SCHEDULE_TEMPLATE_DELETED", entity_type="schedule_template", entity_id=template_id)


@router.post(
    "/api/admin/schedule-templates/{template_id}/periods",
    response_model=Envelope[SchedulePeriodRead],
    status_code=status.HTTP_201_CREATED,
)
def add_period_endpoint(
    template_id: int,
    payload: SchedulePeriodCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    period = add_period(db, template_id, payload)
    _audit(
        request,
        db,
        action="SCHEDULE_PERIOD_CREATED",
        entity_type="schedule_period",
        entity_id=period.id,
        details={"template_id": template_id, "period_type": period.period_type.value},
    )
    return {"success": True, "data": period}


@router.put("/api/admin/schedule-periods/{period_id}", response_model=Envelope[SchedulePeriodRead])
def update_period_endpoint(
    period_id: int,
    payload: SchedulePeriodUpdate,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": update_period(db, period_id, payload)}


@router.delete("/api/admin/schedule-periods/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_period_endpoint(period_id: int, request: Request, db: Session = Depends(get_db)) -> None:
    delete_period(db, period_id)
    _audit(request, db, action="SCHEDULE_PERIOD_DELETED", entity_type="schedule_period", entity_id=period_id)


@router.put(
    "/api/admin/schedule-periods/{period_id}/day-patterns",
    response_model=Envelope[WorkDayPatternRead],
)
def upsert_day_pattern_endpoint(
    period_id: int,
    payload: WorkDayPatternUpsert,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": upsert_day_pattern(db, period_id, payload)}


@router.delete(
    "/api/admin/schedule-periods/{period_id}/day-patterns/{day_of_week}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_day_pattern_endpoint(period_id: int, day_of_week: int, db: Session = Depends(get_db)) -> None:
    delete_day_pattern(db, period_id, day_of_week)


@router.get("/api/admin/schedule-assignments", response_model=Envelope[list[ScheduleAssignmentRead]])
def list_assignments_endpoint(
    employee_id: int = Query(ge=1),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": list_assignments(db, employee_id=employee_id)}


@router.post(
    "/api/admin/schedule-assignments",
    response_model=Envelope[ScheduleAssignmentRead],
    status_code=status.HTTP_201_CREATED,
)
def create_assignment_endpoint(
    payload: ScheduleAssignmentCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    assignment = create_assignment(db, payload)
    _audit(
        request,
        db,
        action="SCHEDULE_ASSIGNED",
        entity_type="schedule_assignment",
        entity_id=assignment.id,
        details={
            "employee_id": assignment.employee_id,
            "template_id": assignment.template_id,
            "valid_from": assignment.valid_from.isoformat(),
        },
    )
    return {"success": True, "data": assignment}


@router.patch(
    "/api/admin/schedule-assignments/{assignment_id}/end",
    response_model=Envelope[ScheduleAssignmentRead],
)
def end_assignment_endpoint(
    assignment_id: int,
    payload: ScheduleAssignmentEnd,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"success": True, "data": end_assignment(db, assignment_id, valid_to=payload.valid_to)}


@router.delete(
    "/api/admin/schedule-assignments/{assignment_id}",
    response_model=Envelope[ScheduleAssignmentRead],
)
def deactivate_assignment_endpoint(
    assignment_id: int,
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    assignment = deactivate_assignment(db, assignment_id)
    _audit(
        request,
        db,
        action="SCHEDULE_UNASSIGNED",
        entity_type="schedule_assignment",
        entity_id=assignment.id,
        details={"employee_id": assignment.employee_id},
    )
    return {"success": True, "data": assignment}


@router.get("/api/employees/{employee_id}/schedule/effective", response_model=Envelope[EffectiveScheduleRead])
def effective_schedule_endpoint(
    employee_id: int,
    day_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    if day_date is None:
        day_date = employee_today(db, employee_id=employee_id)
    schedule = resolve_effective_schedule(db, employee_id=employee_id, day_date=day_date)
    return {"success": True, "data": EffectiveScheduleRead.model_validate(schedule)}
