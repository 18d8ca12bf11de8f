from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from fichaje.audit import log_audit
from fichaje.errors import ApiError
from fichaje.models import AuditActorType, Employee, Organization, User
from fichaje.schemas import AdminUserActionRequest
from fichaje.security import generate_temporary_password, hash_password

logger = logging.getLogger("fichaje.users")


@dataclass
class UserActionResult:
    user: User
    temporary_password: str | None = None
    invite_email_sent: bool | None = None


def _get_user(db: Session, user_id: int | None) -> User:
    user = db.get(User, user_id) if user_id is not None else None
    if user is None:
        raise ApiError(status_code=404, code="USER_NOT_FOUND", message="Usuario no encontrado.")
    return user


def _create_user(db: Session, payload: AdminUserActionRequest) -> UserActionResult:
    if db.get(Organization, payload.org_id) is None:
        raise ApiError(status_code=404, code="ORGANIZATION_NOT_FOUND", message="Organizacion no encontrada.")
    existing = db.scalar(select(User).where(User.email == payload.email))
    if existing is not None:
        raise ApiError(
            status_code=409,
            code="EMAIL_ALREADY_EXISTS",
            message="Ya existe un usuario con ese email.",
            details={"email": payload.email},
        )

    temporary_password = generate_temporary_password()
    user = User(
        org_id=payload.org_id,
        email=payload.email,
        full_name=payload.full_name,
        password_hash=hash_password(temporary_password),
        must_change_password=True,
        failed_login_attempts=0,
        is_active=True,
    )
    if payload.role is not None:
        user.role = payload.role
    db.add(user)
    db.flush()

    if payload.create_employee:
        db.add(
            Employee(
                org_id=user.org_id,
                user_id=user.id,
                full_name=user.full_name,
                employee_number=payload.employee_number,
                is_active=True,
            )
        )
    # Invitation e-mails are not sent; the admin hands over the password.
    return UserActionResult(user=user, temporary_password=temporary_password, invite_email_sent=False)


def _change_role(db: Session, payload: AdminUserActionRequest) -> UserActionResult:
    user = _get_user(db, payload.user_id)
    user.role = payload.role
    return UserActionResult(user=user)


def _reset_password(db: Session, payload: AdminUserActionRequest) -> UserActionResult:
    user = _get_user(db, payload.user_id)
    temporary_password = generate_temporary_password()
    user.password_hash = hash_password(temporary_password)
    user.must_change_password = True
    user.failed_login_attempts = 0
    user.locked_until = None
    return UserActionResult(user=user, temporary_password=temporary_password)


def _toggle_active(db: Session, payload: AdminUserActionRequest) -> UserActionResult:
    user = _get_user(db, payload.user_id)
    user.is_active = not user.is_active
    employee = db.scalar(select(Employee).where(Employee.user_id == user.id))
    if employee is not None:
        employee.is_active = user.is_active
    return UserActionResult(user=user)


def _unlock_account(db: Session, payload: AdminUserActionRequest) -> UserActionResult:
    user = _get_user(db, payload.user_id)
    user.failed_login_attempts = 0
    user.locked_until = None
    return UserActionResult(user=user)


_ACTIONS = {
    "create": _create_user,
    "change-role": _change_role,
    "reset-password": _reset_password,
    "toggle-active": _toggle_active,
    "unlock-account": _unlock_account,
}


def run_user_action(
    db: Session,
    payload: AdminUserActionRequest,
    *,
    actor_id: str = "admin",
    ip: str | None = None,
    user_agent: str | None = None,
    request_id: str | None = None,
) -> UserActionResult:
    handler = _ACTIONS.get(payload.action)
    if handler is None:
        raise ApiError(status_code=422, code="UNKNOWN_ACTION", message=f"Accion desconocida: {payload.action}")

    result = handler(db, payload)
    db.flush()
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id,
        action=f"USER_{payload.action.upper().replace('-', '_')}",
        success=True,
        entity_type="user",
        entity_id=str(result.user.id),
        ip=ip,
        user_agent=user_agent,
        details={
            "email": result.user.email,
            "role": result.user.role.value if result.user.role else None,
            "is_active": result.user.is_active,
        },
        request_id=request_id,
        commit=False,
    )
    db.commit()
    db.refresh(result.user)
    logger.info("user_action", extra={"action": payload.action, "user_id": result.user.id})
    return result
