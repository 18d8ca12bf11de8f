from datetime import date, datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from fichaje.audit import log_audit
from fichaje.db import get_db
from fichaje.models import AuditActorType, Employee, Organization
from fichaje.services.exports import (
    DAILY_DETAIL_HEADERS,
    build_time_tracking_xlsx_bytes,
    daily_detail_rows,
    export_filename,
    period_rows,
    render_csv,
)
from fichaje.services.local_time import resolve_timezone
from fichaje.services.summaries import SummaryPeriod, rollup_days, summarize_days

router = APIRouter(tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"

ExportKind = Literal["daily", "weekly", "monthly", "yearly"]


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _employee_and_org(db: Session, employee_id: int) -> tuple[Employee, Organization | None]:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    return employee, db.get(Organization, employee.org_id)


def _log_export(
    request: Request,
    db: Session,
    *,
    action: str,
    employee_id: int,
    kind: str,
    start_date: date,
    end_date: date,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id="admin",
        action=action,
        success=True,
        entity_type="export",
        entity_id=str(employee_id),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        details={
            "kind": kind,
            "employee_id": employee_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        },
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/api/employees/{employee_id}/exports/csv")
def export_csv_endpoint(
    employee_id: int,
    request: Request,
    kind: ExportKind = Query(default="daily"),
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
) -> Response:
    employee, organization = _employee_and_org(db, employee_id)
    tz = resolve_timezone(organization.timezone if organization else None)
    now = datetime.now(timezone.utc)
    days = summarize_days(db, employee_id=employee_id, start_date=start_date, end_date=end_date, now=now)

    if kind == "daily":
        headers, rows = DAILY_DETAIL_HEADERS, daily_detail_rows(days, tz)
    else:
        period = SummaryPeriod(kind)
        headers, rows = period_rows(period, rollup_days(days, period))

    _log_export(
        request,
        db,
        action="TIME_TRACKING_EXPORT_CSV",
        employee_id=employee_id,
        kind=kind,
        start_date=start_date,
        end_date=end_date,
    )
    filename = export_filename(employee.full_name, kind, now.astimezone(tz).date(), "csv")
    # BOM so spreadsheet apps detect UTF-8 accents.
    return Response(
        content=render_csv(headers, rows).encode("utf-8-sig"),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/api/employees/{employee_id}/exports/xlsx")
def export_xlsx_endpoint(
    employee_id: int,
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
) -> Response:
    employee, organization = _employee_and_org(db, employee_id)
    tz = resolve_timezone(organization.timezone if organization else None)
    now = datetime.now(timezone.utc)
    days = summarize_days(db, employee_id=employee_id, start_date=start_date, end_date=end_date, now=now)
    payload = build_time_tracking_xlsx_bytes(
        days,
        tz=tz,
        rollups={period: rollup_days(days, period) for period in SummaryPeriod},
    )

    _log_export(
        request,
        db,
        action="TIME_TRACKING_EXPORT_XLSX",
        employee_id=employee_id,
        kind="xlsx",
        start_date=start_date,
        end_date=end_date,
    )
    filename = export_filename(employee.full_name, "informe", now.astimezone(tz).date(), "xlsx")
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
