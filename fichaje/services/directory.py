from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fichaje.errors import ApiError
from fichaje.models import Employee, Organization, Project, WorkCenter
from fichaje.schemas import (
    EmployeeCreate,
    OrganizationCreate,
    OrganizationSettingsUpdate,
    ProjectCreate,
    WorkCenterCreate,
)


def get_organization(db: Session, org_id: int) -> Organization:
    organization = db.get(Organization, org_id)
    if organization is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    return organization


def create_organization(db: Session, payload: OrganizationCreate) -> Organization:
    organization = Organization(
        name=payload.name.strip(),
        timezone=payload.timezone.strip(),
        default_daily_minutes=payload.default_daily_minutes,
    )
    db.add(organization)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="ORGANIZATION_EXISTS",
            message="Ya existe una organizacion con ese nombre.",
        ) from exc
    db.refresh(organization)
    return organization


def update_organization_settings(
    db: Session,
    org_id: int,
    payload: OrganizationSettingsUpdate,
) -> Organization:
    organization = get_organization(db, org_id)
    for field_name, value in payload.model_dump(exclude_unset=True).items():
        setattr(organization, field_name, value)
    db.commit()
    db.refresh(organization)
    return organization


def create_employee(db: Session, payload: EmployeeCreate) -> Employee:
    get_organization(db, payload.org_id)
    employee = Employee(
        org_id=payload.org_id,
        full_name=payload.full_name.strip(),
        employee_number=payload.employee_number,
        is_active=True,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def list_employees(db: Session, *, org_id: int | None = None, include_inactive: bool = False) -> list[Employee]:
    stmt = select(Employee).order_by(Employee.full_name.asc(), Employee.id.asc())
    if org_id is not None:
        stmt = stmt.where(Employee.org_id == org_id)
    if not include_inactive:
        stmt = stmt.where(Employee.is_active.is_(True))
    return list(db.scalars(stmt).all())


def set_employee_active(db: Session, employee_id: int, *, is_active: bool) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    employee.is_active = is_active
    db.commit()
    db.refresh(employee)
    return employee


def create_project(db: Session, payload: ProjectCreate) -> Project:
    get_organization(db, payload.org_id)
    project = Project(
        org_id=payload.org_id,
        name=payload.name.strip(),
        code=payload.code,
        is_active=True,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def list_projects(db: Session, *, org_id: int, include_inactive: bool = False) -> list[Project]:
    stmt = select(Project).where(Project.org_id == org_id).order_by(Project.name.asc(), Project.id.asc())
    if not include_inactive:
        stmt = stmt.where(Project.is_active.is_(True))
    return list(db.scalars(stmt).all())


def create_work_center(db: Session, payload: WorkCenterCreate) -> WorkCenter:
    get_organization(db, payload.org_id)
    work_center = WorkCenter(
        org_id=payload.org_id,
        name=payload.name.strip(),
        latitude=payload.latitude,
        longitude=payload.longitude,
        allowed_radius_m=payload.allowed_radius_m,
        is_active=True,
    )
    db.add(work_center)
    db.commit()
    db.refresh(work_center)
    return work_center


def list_work_centers(db: Session, *, org_id: int) -> list[WorkCenter]:
    return list(
        db.scalars(
            select(WorkCenter)
            .where(WorkCenter.org_id == org_id)
            .order_by(WorkCenter.name.asc(), WorkCenter.id.asc())
        ).all()
    )
