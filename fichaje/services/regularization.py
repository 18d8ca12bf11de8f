from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from fichaje.audit import log_audit
from fichaje.errors import ApiError
from fichaje.models import (
    AuditActorType,
    CancellationReason,
    RegularizationRequest,
    RegularizationStatus,
    TimeEntry,
    TimeEntryType,
)
from fichaje.schemas import RegularizationCreate
from fichaje.services.attendance_state import session_intervals
from fichaje.services.local_time import local_date, normalize_ts, resolve_timezone
from fichaje.services.summaries import load_entries_between, max_session_length
from fichaje.services.time_tracking import (
    cancel_session_entries,
    employee_organization,
    load_session_entries,
    lock_employee,
    sync_workday_time_bank,
)

logger = logging.getLogger("fichaje.regularization")


def create_regularization_request(
    db: Session,
    *,
    employee_id: int,
    payload: RegularizationCreate,
) -> RegularizationRequest:
    employee = lock_employee(db, employee_id, require_active=False)
    organization = employee_organization(db, employee)
    tz = resolve_timezone(organization.timezone if organization else None)
    requested_day = local_date(payload.requested_clock_in, tz)
    if payload.day_date != requested_day:
        raise ApiError(
            status_code=422,
            code="REGULARIZATION_DAY_MISMATCH",
            message="La fecha no coincide con el dia de la entrada solicitada.",
            details={"day_date": payload.day_date.isoformat(), "requested_day": requested_day.isoformat()},
        )

    if payload.clock_in_entry_id is not None:
        clock_in_entry = db.get(TimeEntry, payload.clock_in_entry_id)
        if clock_in_entry is None or clock_in_entry.employee_id != employee.id:
            raise ApiError(status_code=404, code="TIME_ENTRY_NOT_FOUND", message="Fichaje no encontrado.")
        if clock_in_entry.entry_type != TimeEntryType.CLOCK_IN or clock_in_entry.is_cancelled:
            raise ApiError(
                status_code=409,
                code="INVALID_CLOCK_IN",
                message="Solo se pueden regularizar entradas abiertas.",
            )
        duplicate = db.scalar(
            select(RegularizationRequest.id).where(
                RegularizationRequest.clock_in_entry_id == clock_in_entry.id,
                RegularizationRequest.status == RegularizationStatus.PENDING,
            )
        )
        if duplicate is not None:
            raise ApiError(
                status_code=409,
                code="REGULARIZATION_ALREADY_PENDING",
                message="Ya hay una solicitud pendiente para este fichaje.",
            )

    request = RegularizationRequest(
        employee_id=employee.id,
        clock_in_entry_id=payload.clock_in_entry_id,
        day_date=payload.day_date,
        requested_clock_in=normalize_ts(payload.requested_clock_in),
        requested_clock_out=normalize_ts(payload.requested_clock_out),
        reason=payload.reason.strip(),
        status=RegularizationStatus.PENDING,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(
        "regularization_requested",
        extra={
            "employee_id": employee.id,
            "regularization_id": request.id,
            "clock_in_id": request.clock_in_entry_id,
        },
    )
    return request


def list_regularization_requests(
    db: Session,
    *,
    employee_id: int | None = None,
    status_filter: RegularizationStatus | None = None,
) -> list[RegularizationRequest]:
    stmt = select(RegularizationRequest).order_by(
        RegularizationRequest.created_at.desc(),
        RegularizationRequest.id.desc(),
    )
    if employee_id is not None:
        stmt = stmt.where(RegularizationRequest.employee_id == employee_id)
    if status_filter is not None:
        stmt = stmt.where(RegularizationRequest.status == status_filter)
    return list(db.scalars(stmt).all())


def _get_pending(db: Session, request_id: int) -> RegularizationRequest:
    request = db.get(RegularizationRequest, request_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Regularization request not found")
    if request.status != RegularizationStatus.PENDING:
        raise ApiError(
            status_code=409,
            code="REGULARIZATION_NOT_PENDING",
            message="Solo se pueden revisar solicitudes pendientes.",
        )
    return request


def approve_regularization(
    db: Session,
    *,
    request_id: int,
    review_notes: str | None = None,
    actor_id: str = "admin",
    audit_request_id: str | None = None,
) -> RegularizationRequest:
    """Replace the referenced session with the requested manual clock-in/out."""
    request = _get_pending(db, request_id)
    employee = lock_employee(db, request.employee_id, require_active=False)
    organization = employee_organization(db, employee)
    tz = resolve_timezone(organization.timezone if organization else None)
    now = datetime.now(timezone.utc)
    requested_in = normalize_ts(request.requested_clock_in)
    requested_out = normalize_ts(request.requested_clock_out)

    replaced: list[TimeEntry] = []
    affected_days = {local_date(requested_in, tz)}
    if request.clock_in_entry_id is not None:
        clock_in_entry = db.get(TimeEntry, request.clock_in_entry_id)
        if clock_in_entry is not None and not clock_in_entry.is_cancelled:
            replaced = load_session_entries(db, clock_in_entry)
            affected_days.add(local_date(clock_in_entry.timestamp, tz))

    # Sessions older than one max session length are stale and never reach the window.
    replaced_ids = {item.id for item in replaced}
    remaining = [
        item
        for item in load_entries_between(
            db,
            employee_id=employee.id,
            start=requested_in - max_session_length(),
            end=requested_out,
        )
        if item.id not in replaced_ids
    ]
    overlapping = [
        interval for interval in session_intervals(remaining) if interval.overlaps(requested_in, requested_out)
    ]
    if overlapping:
        raise ApiError(
            status_code=409,
            code="REGULARIZATION_OVERLAP",
            message="El tramo solicitado se solapa con otros fichajes.",
            details={"clock_in_ids": [interval.clock_in_id for interval in overlapping]},
        )

    cancelled = cancel_session_entries(
        replaced,
        reason=CancellationReason.REGULARIZATION,
        notes=f"Regularizacion #{request.id}",
        now=now,
    )
    for entry_type, ts in (
        (TimeEntryType.CLOCK_IN, request.requested_clock_in),
        (TimeEntryType.CLOCK_OUT, request.requested_clock_out),
    ):
        db.add(
            TimeEntry(
                employee_id=employee.id,
                entry_type=entry_type,
                timestamp=ts,
                requires_review=False,
                is_manual=True,
                is_automatic=False,
                is_cancelled=False,
                notes=f"Regularizacion #{request.id}",
            )
        )

    request.status = RegularizationStatus.APPROVED
    request.reviewed_at = now
    request.review_notes = review_notes
    db.flush()

    for day_date in sorted(affected_days):
        sync_workday_time_bank(db, employee=employee, organization=organization, day_date=day_date, now=now)
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id,
        action="REGULARIZATION_APPROVED",
        success=True,
        entity_type="regularization_request",
        entity_id=str(request.id),
        details={
            "employee_id": employee.id,
            "cancelled_entry_ids": [item.id for item in cancelled],
            "requested_clock_in": request.requested_clock_in.isoformat(),
            "requested_clock_out": request.requested_clock_out.isoformat(),
        },
        request_id=audit_request_id,
        commit=False,
    )
    db.commit()
    db.refresh(request)
    return request


def reject_regularization(
    db: Session,
    *,
    request_id: int,
    review_notes: str | None = None,
    actor_id: str = "admin",
    audit_request_id: str | None = None,
) -> RegularizationRequest:
    request = _get_pending(db, request_id)
    request.status = RegularizationStatus.REJECTED
    request.reviewed_at = datetime.now(timezone.utc)
    request.review_notes = review_notes
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id,
        action="REGULARIZATION_REJECTED",
        success=True,
        entity_type="regularization_request",
        entity_id=str(request.id),
        details={"employee_id": request.employee_id, "review_notes": review_notes},
        request_id=audit_request_id,
        commit=False,
    )
    db.commit()
    db.refresh(request)
    return request
