"""Initial time tracking schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> postgresql.ENUM:
    return postgresql.ENUM(*values, name=name, create_type=False)


user_role = _enum("user_role", "EMPLOYEE", "MANAGER", "HR_ADMIN", "ORG_ADMIN")
time_entry_type = _enum(
    "time_entry_type",
    "CLOCK_IN",
    "CLOCK_OUT",
    "BREAK_START",
    "BREAK_END",
    "PROJECT_SWITCH",
)
cancellation_reason = _enum(
    "cancellation_reason",
    "EXCESSIVE_DURATION",
    "ADMIN_CORRECTION",
    "REGULARIZATION",
)
schedule_period_type = _enum("schedule_period_type", "REGULAR", "INTENSIVE", "SPECIAL")
time_slot_type = _enum("time_slot_type", "WORK", "BREAK")
absence_type = _enum(
    "absence_type",
    "VACATION",
    "SICK_LEAVE",
    "PERSONAL",
    "UNPAID",
    "PUBLIC_HOLIDAY",
    "OTHER",
)
absence_status = _enum("absence_status", "APPROVED", "PENDING", "REJECTED")
time_bank_movement_origin = _enum("time_bank_movement_origin", "AUTO_DAILY", "MANUAL_ADJUSTMENT")
notification_kind = _enum("notification_kind", "INCOMPLETE_ENTRY", "EXCESSIVE_DURATION")
regularization_status = _enum("regularization_status", "PENDING", "APPROVED", "REJECTED")
expense_status = _enum("expense_status", "DRAFT", "SUBMITTED", "APPROVED", "REJECTED", "REIMBURSED")
expense_category = _enum(
    "expense_category",
    "FUEL",
    "MILEAGE",
    "MEALS",
    "TOLLS",
    "PARKING",
    "LODGING",
    "OTHER",
)
shift_status = _enum("shift_status", "DRAFT", "PENDING_APPROVAL", "PUBLISHED", "CLOSED")
audit_actor_type = _enum("audit_actor_type", "ADMIN", "EMPLOYEE", "SYSTEM")

ALL_ENUMS = (
    user_role,
    time_entry_type,
    cancellation_reason,
    schedule_period_type,
    time_slot_type,
    absence_type,
    absence_status,
    time_bank_movement_origin,
    notification_kind,
    regularization_status,
    expense_status,
    expense_category,
    shift_status,
    audit_actor_type,
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def _flag(name: str, default: bool) -> sa.Column:
    return sa.Column(
        name,
        sa.Boolean(),
        nullable=False,
        server_default=sa.text("true" if default else "false"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "timezone",
            sa.String(length=64),
            nullable=False,
            server_default=sa.text("'Europe/Madrid'"),
        ),
        sa.Column("default_daily_minutes", sa.Integer(), nullable=True),
        sa.Column("excessive_duration_threshold_percent", sa.Integer(), nullable=True),
        sa.Column("clock_in_tolerance_minutes", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("clock_out_tolerance_minutes", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("critical_late_arrival_minutes", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("critical_early_departure_minutes", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("time_bank_rounding_increment_minutes", sa.Integer(), nullable=True),
        sa.Column("time_bank_excess_grace_minutes", sa.Integer(), nullable=True),
        sa.Column("time_bank_deficit_grace_minutes", sa.Integer(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("name", name="uq_organizations_name"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False, server_default=sa.text("'EMPLOYEE'")),
        _flag("is_active", True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        _flag("must_change_password", True),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_users_org_id", "users", ["org_id"], unique=False)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("employee_number", sa.String(length=64), nullable=True),
        _flag("is_active", True),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", name="uq_employees_user_id"),
    )
    op.create_index("ix_employees_org_id", "employees", ["org_id"], unique=False)

    op.create_table(
        "employment_contracts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("weekly_minutes", sa.Integer(), nullable=False, server_default=sa.text("2400")),
        sa.Column("working_days_per_week", sa.Integer(), nullable=False, server_default=sa.text("5")),
        _flag("is_active", True),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_employment_contracts_employee_id",
        "employment_contracts",
        ["employee_id"],
        unique=False,
    )

    op.create_table(
        "work_centers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("allowed_radius_m", sa.Integer(), nullable=False, server_default=sa.text("200")),
        _flag("is_active", True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_work_centers_org_id", "work_centers", ["org_id"], unique=False)

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=True),
        _flag("is_active", True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_projects_org_id", "projects", ["org_id"], unique=False)

    op.create_table(
        "schedule_templates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        _flag("is_active", True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_schedule_templates_org_id", "schedule_templates", ["org_id"], unique=False)

    op.create_table(
        "schedule_periods",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("period_type", schedule_period_type, nullable=False, server_default=sa.text("'REGULAR'")),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("valid_from", sa.Date(), nullable=True),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["template_id"], ["schedule_templates.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_schedule_periods_template_id", "schedule_periods", ["template_id"], unique=False)

    op.create_table(
        "work_day_patterns",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        _flag("is_working_day", True),
        sa.ForeignKeyConstraint(["period_id"], ["schedule_periods.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("period_id", "day_of_week", name="uq_work_day_patterns_period_day"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_work_day_patterns_day_of_week"),
    )
    op.create_index("ix_work_day_patterns_period_id", "work_day_patterns", ["period_id"], unique=False)

    op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("pattern_id", sa.Integer(), nullable=False),
        sa.Column("start_minutes", sa.Integer(), nullable=False),
        sa.Column("end_minutes", sa.Integer(), nullable=False),
        sa.Column("slot_type", time_slot_type, nullable=False, server_default=sa.text("'WORK'")),
        _flag("is_automatic", False),
        sa.ForeignKeyConstraint(["pattern_id"], ["work_day_patterns.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "start_minutes >= 0 AND end_minutes <= 1440 AND end_minutes > start_minutes",
            name="ck_time_slots_range",
        ),
    )
    op.create_index("ix_time_slots_pattern_id", "time_slots", ["pattern_id"], unique=False)

    op.create_table(
        "employee_schedule_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_to", sa.Date(), nullable=True),
        _flag("is_active", True),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["template_id"], ["schedule_templates.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_employee_schedule_assignments_employee_id",
        "employee_schedule_assignments",
        ["employee_id"],
        unique=False,
    )
    op.create_index(
        "ix_employee_schedule_assignments_template_id",
        "employee_schedule_assignments",
        ["template_id"],
        unique=False,
    )

    op.create_table(
        "time_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("entry_type", time_entry_type, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("task", sa.String(length=255), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("is_within_allowed_area", sa.Boolean(), nullable=True),
        _flag("requires_review", False),
        sa.Column("work_center_id", sa.Integer(), nullable=True),
        sa.Column("distance_from_center_m", sa.Float(), nullable=True),
        _flag("is_manual", False),
        _flag("is_automatic", False),
        sa.Column("automatic_break_slot_id", sa.Integer(), nullable=True),
        sa.Column("pending_change", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _flag("is_cancelled", False),
        sa.Column("cancellation_reason", cancellation_reason, nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_notes", sa.String(length=1000), nullable=True),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["work_center_id"], ["work_centers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["automatic_break_slot_id"], ["time_slots.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_time_entries_employee_id", "time_entries", ["employee_id"], unique=False)
    op.create_index("ix_time_entries_timestamp", "time_entries", ["timestamp"], unique=False)
    op.create_index(
        "ix_time_entries_employee_timestamp",
        "time_entries",
        ["employee_id", "timestamp", "id"],
        unique=False,
    )

    op.create_table(
        "absences",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("absence_type", absence_type, nullable=False),
        sa.Column("status", absence_status, nullable=False, server_default=sa.text("'APPROVED'")),
        _flag("is_full_day", True),
        sa.Column("start_minutes", sa.Integer(), nullable=True),
        sa.Column("end_minutes", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_absences_employee_id", "absences", ["employee_id"], unique=False)

    op.create_table(
        "time_bank_movements",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("day_date", sa.Date(), nullable=False),
        sa.Column("minutes", sa.Integer(), nullable=False),
        sa.Column("origin", time_bank_movement_origin, nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_time_bank_movements_employee_id", "time_bank_movements", ["employee_id"], unique=False)
    op.create_index("ix_time_bank_movements_day_date", "time_bank_movements", ["day_date"], unique=False)

    op.create_table(
        "dismissed_notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column(
            "dismissed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "employee_id",
            "kind",
            "reference_id",
            name="uq_dismissed_notifications_employee_kind_reference",
        ),
    )
    op.create_index(
        "ix_dismissed_notifications_employee_id",
        "dismissed_notifications",
        ["employee_id"],
        unique=False,
    )

    op.create_table(
        "regularization_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("clock_in_entry_id", sa.Integer(), nullable=True),
        sa.Column("day_date", sa.Date(), nullable=False),
        sa.Column("requested_clock_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("requested_clock_out", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=False),
        sa.Column("status", regularization_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["clock_in_entry_id"], ["time_entries.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_regularization_requests_employee_id",
        "regularization_requests",
        ["employee_id"],
        unique=False,
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("category", expense_category, nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default=sa.text("'EUR'")),
        sa.Column("merchant", sa.String(length=255), nullable=True),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("status", expense_status, nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(length=1000), nullable=True),
        sa.Column("reimbursed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_expenses_employee_id", "expenses", ["employee_id"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("work_center_id", sa.Integer(), nullable=True),
        sa.Column("shift_date", sa.Date(), nullable=False),
        sa.Column("start_minutes", sa.Integer(), nullable=False),
        sa.Column("end_minutes", sa.Integer(), nullable=False),
        sa.Column("role_name", sa.String(length=255), nullable=True),
        sa.Column("required_headcount", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", shift_status, nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["work_center_id"], ["work_centers.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_shifts_org_id", "shifts", ["org_id"], unique=False)
    op.create_index("ix_shifts_shift_date", "shifts", ["shift_date"], unique=False)

    op.create_table(
        "shift_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("shift_id", "employee_id", name="uq_shift_assignments_shift_employee"),
    )
    op.create_index("ix_shift_assignments_shift_id", "shift_assignments", ["shift_id"], unique=False)
    op.create_index("ix_shift_assignments_employee_id", "shift_assignments", ["employee_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=255), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        _flag("success", True),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_shift_assignments_employee_id", table_name="shift_assignments")
    op.drop_index("ix_shift_assignments_shift_id", table_name="shift_assignments")
    op.drop_table("shift_assignments")
    op.drop_index("ix_shifts_shift_date", table_name="shifts")
    op.drop_index("ix_shifts_org_id", table_name="shifts")
    op.drop_table("shifts")
    op.drop_index("ix_expenses_employee_id", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_regularization_requests_employee_id", table_name="regularization_requests")
    op.drop_table("regularization_requests")
    op.drop_index("ix_dismissed_notifications_employee_id", table_name="dismissed_notifications")
    op.drop_table("dismissed_notifications")
    op.drop_index("ix_time_bank_movements_day_date", table_name="time_bank_movements")
    op.drop_index("ix_time_bank_movements_employee_id", table_name="time_bank_movements")
    op.drop_table("time_bank_movements")
    op.drop_index("ix_absences_employee_id", table_name="absences")
    op.drop_table("absences")
    op.drop_index("ix_time_entries_employee_timestamp", table_name="time_entries")
    op.drop_index("ix_time_entries_timestamp", table_name="time_entries")
    op.drop_index("ix_time_entries_employee_id", table_name="time_entries")
    op.drop_table("time_entries")
    op.drop_index(
        "ix_employee_schedule_assignments_template_id",
        table_name="employee_schedule_assignments",
    )
    op.drop_index(
        "ix_employee_schedule_assignments_employee_id",
        table_name="employee_schedule_assignments",
    )
    op.drop_table("employee_schedule_assignments")
    op.drop_index("ix_time_slots_pattern_id", table_name="time_slots")
    op.drop_table("time_slots")
    op.drop_index("ix_work_day_patterns_period_id", table_name="work_day_patterns")
    op.drop_table("work_day_patterns")
    op.drop_index("ix_schedule_periods_template_id", table_name="schedule_periods")
    op.drop_table("schedule_periods")
    op.drop_index("ix_schedule_templates_org_id", table_name="schedule_templates")
    op.drop_table("schedule_templates")
    op.drop_index("ix_projects_org_id", table_name="projects")
    op.drop_table("projects")
    op.drop_index("ix_work_centers_org_id", table_name="work_centers")
    op.drop_table("work_centers")
    op.drop_index("ix_employment_contracts_employee_id", table_name="employment_contracts")
    op.drop_table("employment_contracts")
    op.drop_index("ix_employees_org_id", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_org_id", table_name="users")
    op.drop_table("users")
    op.drop_table("organizations")

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
