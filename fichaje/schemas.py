from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from fichaje.models import (
    AbsenceStatus,
    AbsenceType,
    CancellationReason,
    ExpenseCategory,
    ExpenseStatus,
    NotificationKind,
    RegularizationStatus,
    SchedulePeriodType,
    ShiftStatus,
    TimeBankMovementOrigin,
    TimeEntryType,
    TimeSlotType,
    UserRole,
)
from fichaje.services.attendance_state import ClockState, OpenSessionIssue
from fichaje.services.clock_alerts import AlertSeverity
from fichaje.services.compliance import DayStatus
from fichaje.services.schedule_resolver import ScheduleSource
from fichaje.services.slot_validation import MINUTES_PER_DAY, find_slot_errors

DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT | None = None
    error: str | None = None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Organizations, employees, catalog


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    timezone: str = Field(default="Europe/Madrid", min_length=1, max_length=64)
    default_daily_minutes: int | None = Field(default=None, ge=0, le=MINUTES_PER_DAY)


class OrganizationSettingsUpdate(BaseModel):
    timezone: str | None = Field(default=None, min_length=1, max_length=64)
    default_daily_minutes: int | None = Field(default=None, ge=0, le=MINUTES_PER_DAY)
    excessive_duration_threshold_percent: int | None = Field(default=None, ge=100, le=1000)
    clock_in_tolerance_minutes: int | None = Field(default=None, ge=0, le=240)
    clock_out_tolerance_minutes: int | None = Field(default=None, ge=0, le=240)
    critical_late_arrival_minutes: int | None = Field(default=None, ge=0, le=480)
    critical_early_departure_minutes: int | None = Field(default=None, ge=0, le=480)
    time_bank_rounding_increment_minutes: int | None = Field(default=None, ge=1, le=60)
    time_bank_excess_grace_minutes: int | None = Field(default=None, ge=0, le=240)
    time_bank_deficit_grace_minutes: int | None = Field(default=None, ge=0, le=240)


class OrganizationRead(BaseModel):
    id: int
    name: str
    timezone: str
    default_daily_minutes: int | None = None
    excessive_duration_threshold_percent: int | None = None
    clock_in_tolerance_minutes: int
    clock_out_tolerance_minutes: int
    critical_late_arrival_minutes: int
    critical_early_departure_minutes: int
    time_bank_rounding_increment_minutes: int | None = None
    time_bank_excess_grace_minutes: int | None = None
    time_bank_deficit_grace_minutes: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EmployeeCreate(BaseModel):
    org_id: int = Field(ge=1)
    full_name: str = Field(min_length=2, max_length=255)
    employee_number: str | None = Field(default=None, max_length=64)


class EmployeeActiveUpdate(BaseModel):
    is_active: bool


class EmployeeRead(BaseModel):
    id: int
    org_id: int
    user_id: int | None = None
    full_name: str
    employee_number: str | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ProjectCreate(BaseModel):
    org_id: int = Field(ge=1)
    name: str = Field(min_length=2, max_length=255)
    code: str | None = Field(default=None, max_length=64)


class ProjectRead(BaseModel):
    id: int
    org_id: int
    name: str
    code: str | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class WorkCenterCreate(BaseModel):
    org_id: int = Field(ge=1)
    name: str = Field(min_length=2, max_length=255)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    allowed_radius_m: int = Field(default=200, ge=1, le=50000)


class WorkCenterRead(BaseModel):
    id: int
    org_id: int
    name: str
    latitude: float
    longitude: float
    allowed_radius_m: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ContractCreate(BaseModel):
    start_date: date
    end_date: date | None = None
    weekly_minutes: int = Field(default=2400, ge=0, le=7 * MINUTES_PER_DAY)
    working_days_per_week: int = Field(default=5, ge=0, le=7)

    @model_validator(mode="after")
    def _validate_dates(self) -> "ContractCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return self


class ContractRead(BaseModel):
    id: int
    employee_id: int
    start_date: date
    end_date: date | None = None
    weekly_minutes: int
    working_days_per_week: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# Time tracking


class ClockLocationPayload(BaseModel):
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)


class ClockInRequest(ClockLocationPayload):
    project_id: int | None = Field(default=None, ge=1)
    task: str | None = Field(default=None, max_length=255)


class ClockOutRequest(ClockLocationPayload):
    cancel_as_closed: bool = False
    cancellation_notes: str | None = Field(default=None, max_length=1000)


class BreakRequest(ClockLocationPayload):
    pass


class ProjectChangeRequest(BaseModel):
    project_id: int | None = Field(default=None, ge=1)
    task: str | None = Field(default=None, max_length=255)


class AlertRead(BaseModel):
    type: str
    severity: AlertSeverity
    title: str
    description: str
    deviation_minutes: int | None = None

    model_config = ConfigDict(from_attributes=True)


class TimeEntryRead(BaseModel):
    id: int
    employee_id: int
    entry_type: TimeEntryType
    timestamp: datetime
    project_id: int | None = None
    task: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    is_within_allowed_area: bool | None = None
    requires_review: bool
    work_center_id: int | None = None
    distance_from_center_m: float | None = None
    is_manual: bool
    is_automatic: bool
    pending_change: dict[str, Any] | None = None
    is_cancelled: bool
    cancellation_reason: CancellationReason | None = None
    cancelled_at: datetime | None = None
    cancellation_notes: str | None = None
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ClockActionData(BaseModel):
    entry: TimeEntryRead
    state: ClockState
    extra_entries: list[TimeEntryRead] = Field(default_factory=list)
    project_change_deferred: bool = False

    model_config = ConfigDict(from_attributes=True)


class ClockActionResponse(CamelModel):
    success: bool
    alerts: list[AlertRead] = Field(default_factory=list)
    is_on_break: bool | None = None
    error: str | None = None
    data: ClockActionData | None = None


class PendingProjectChangeRead(BaseModel):
    project_id: int | None = None
    task: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ActiveProjectRead(BaseModel):
    project_id: int | None = None
    task: str | None = None
    pending_project_change: PendingProjectChangeRead | None = None

    model_config = ConfigDict(from_attributes=True)


class OpenSessionCheckRead(BaseModel):
    elapsed_minutes: int
    threshold_minutes: int
    reasons: list[OpenSessionIssue]
    requires_decision: bool

    model_config = ConfigDict(from_attributes=True)


class ResolvedSlotRead(BaseModel):
    start_minutes: int
    end_minutes: int
    slot_type: TimeSlotType
    is_automatic: bool
    slot_id: int | None = None
    duration_minutes: int

    model_config = ConfigDict(from_attributes=True)


class AbsenceInfoRead(BaseModel):
    absence_id: int | None = None
    absence_type: AbsenceType
    is_full_day: bool
    minutes: int

    model_config = ConfigDict(from_attributes=True)


class EffectiveScheduleRead(BaseModel):
    day_date: date
    source: ScheduleSource
    is_working_day: bool
    expected_minutes: int
    time_slots: list[ResolvedSlotRead] = Field(default_factory=list)
    period_type: SchedulePeriodType | None = None
    period_id: int | None = None
    template_id: int | None = None
    absence: AbsenceInfoRead | None = None

    model_config = ConfigDict(from_attributes=True)


class ComplianceRead(BaseModel):
    expected_minutes: int
    worked_minutes: int
    remaining_minutes: int
    deviation_minutes: int
    is_completed: bool
    is_working_on_absence: bool
    progress_percentage: int | None = None

    model_config = ConfigDict(from_attributes=True)


class ProjectMinutesRead(BaseModel):
    project_id: int | None = None
    minutes: int

    model_config = ConfigDict(from_attributes=True)


class DailySummaryRead(BaseModel):
    employee_id: int
    day_date: date
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    total_worked_minutes: int
    total_break_minutes: int
    time_entries: list[TimeEntryRead] = Field(default_factory=list)
    status: DayStatus
    schedule: EffectiveScheduleRead
    compliance: ComplianceRead
    is_open: bool
    open_clock_in_id: int | None = None
    project_minutes: list[ProjectMinutesRead] = Field(default_factory=list)
    incomplete_clock_in_ids: list[int] = Field(default_factory=list)
    unresolved_minutes: int = 0

    model_config = ConfigDict(from_attributes=True)


class ClockStatusRead(BaseModel):
    employee_id: int
    state: ClockState
    is_on_break: bool
    workday: date
    summary: DailySummaryRead
    active_project_id: int | None = None
    active_task: str | None = None
    pending_project_change: PendingProjectChangeRead | None = None
    current_segment_started_at: datetime | None = None
    open_session: OpenSessionCheckRead | None = None

    model_config = ConfigDict(from_attributes=True)


class PeriodRollupRead(BaseModel):
    label: str
    start_date: date
    end_date: date
    days_worked: int
    expected_days: int
    worked_minutes: int
    expected_minutes: int
    compliance_percentage: float
    average_daily_minutes: int
    average_weekly_minutes: int
    average_monthly_minutes: int

    model_config = ConfigDict(from_attributes=True)


class IncompleteEntryRead(BaseModel):
    clock_in_id: int
    started_at: datetime
    notification_kind: NotificationKind
    reasons: list[str]
    elapsed_minutes: int | None = None
    requires_decision: bool

    model_config = ConfigDict(from_attributes=True)


class DismissNotificationRequest(BaseModel):
    kind: NotificationKind
    reference_id: int = Field(ge=1)


class DismissedNotificationRead(BaseModel):
    id: int
    employee_id: int
    kind: NotificationKind
    reference_id: int
    dismissed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CancelClockInRequest(BaseModel):
    clock_in_id: int = Field(ge=1)
    reason: CancellationReason = CancellationReason.ADMIN_CORRECTION
    notes: str | None = Field(default=None, max_length=1000)


# Schedules


class TimeSlotPayload(BaseModel):
    start_minutes: int = Field(ge=0, le=MINUTES_PER_DAY)
    end_minutes: int = Field(ge=0, le=MINUTES_PER_DAY)
    slot_type: TimeSlotType = TimeSlotType.WORK
    is_automatic: bool = False

    @model_validator(mode="after")
    def _validate_range(self) -> "TimeSlotPayload":
        if self.end_minutes <= self.start_minutes:
            raise ValueError("end_minutes must be greater than start_minutes")
        if self.is_automatic and self.slot_type != TimeSlotType.BREAK:
            raise ValueError("only BREAK slots can be automatic")
        return self


class WorkDayPatternUpsert(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    is_working_day: bool = True
    time_slots: list[TimeSlotPayload] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_slots(self) -> "WorkDayPatternUpsert":
        errors = find_slot_errors(self.time_slots)
        if errors:
            raise ValueError(" ".join(errors))
        return self


class SchedulePeriodCreate(BaseModel):
    period_type: SchedulePeriodType = SchedulePeriodType.REGULAR
    name: str | None = Field(default=None, max_length=255)
    valid_from: date | None = None
    valid_to: date | None = None
    work_day_patterns: list[WorkDayPatternUpsert] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_period(self) -> "SchedulePeriodCreate":
        if self.valid_from is not None and self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("valid_to must be greater than or equal to valid_from")
        days = [pattern.day_of_week for pattern in self.work_day_patterns]
        if len(days) != len(set(days)):
            raise ValueError("day_of_week must be unique within a period")
        return self


class SchedulePeriodUpdate(BaseModel):
    period_type: SchedulePeriodType
    name: str | None = Field(default=None, max_length=255)
    valid_from: date | None = None
    valid_to: date | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> "SchedulePeriodUpdate":
        if self.valid_from is not None and self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("valid_to must be greater than or equal to valid_from")
        return self


class ScheduleTemplateCreate(BaseModel):
    org_id: int = Field(ge=1)
    name: str = Field(min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    is_active: bool = True
    periods: list[SchedulePeriodCreate] = Field(default_factory=list)


class ScheduleTemplateUpdate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    is_active: bool = True


class TimeSlotRead(BaseModel):
    id: int
    start_minutes: int
    end_minutes: int
    slot_type: TimeSlotType
    is_automatic: bool

    model_config = ConfigDict(from_attributes=True)


class WorkDayPatternRead(BaseModel):
    id: int
    period_id: int
    day_of_week: int
    is_working_day: bool
    time_slots: list[TimeSlotRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class SchedulePeriodRead(BaseModel):
    id: int
    template_id: int
    period_type: SchedulePeriodType
    name: str | None = None
    valid_from: date | None = None
    valid_to: date | None = None
    work_day_patterns: list[WorkDayPatternRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class ScheduleTemplateRead(BaseModel):
    id: int
    org_id: int
    name: str
    description: str | None = None
    is_active: bool
    periods: list[SchedulePeriodRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScheduleAssignmentCreate(BaseModel):
    employee_id: int = Field(ge=1)
    template_id: int = Field(ge=1)
    valid_from: date
    valid_to: date | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> "ScheduleAssignmentCreate":
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("valid_to must be greater than or equal to valid_from")
        return self


class ScheduleAssignmentEnd(BaseModel):
    valid_to: date


class ScheduleAssignmentRead(BaseModel):
    id: int
    employee_id: int
    template_id: int
    valid_from: date
    valid_to: date | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# Absences


class AbsenceCreate(BaseModel):
    employee_id: int = Field(ge=1)
    start_date: date
    end_date: date
    absence_type: AbsenceType
    status: AbsenceStatus = AbsenceStatus.APPROVED
    is_full_day: bool = True
    start_minutes: int | None = Field(default=None, ge=0, le=MINUTES_PER_DAY)
    end_minutes: int | None = Field(default=None, ge=0, le=MINUTES_PER_DAY)
    note: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_absence(self) -> "AbsenceCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        if self.is_full_day:
            self.start_minutes = None
            self.end_minutes = None
            return self
        if self.start_date != self.end_date:
            raise ValueError("partial absences must start and end on the same date")
        if self.start_minutes is None or self.end_minutes is None:
            raise ValueError("partial absences require start_minutes and end_minutes")
        if self.end_minutes <= self.start_minutes:
            raise ValueError("end_minutes must be greater than start_minutes")
        return self


class AbsenceStatusUpdate(BaseModel):
    status: AbsenceStatus


class AbsenceRead(BaseModel):
    id: int
    employee_id: int
    start_date: date
    end_date: date
    absence_type: AbsenceType
    status: AbsenceStatus
    is_full_day: bool
    start_minutes: int | None = None
    end_minutes: int | None = None
    note: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Time bank


class TimeBankAdjustmentCreate(BaseModel):
    day_date: date
    minutes: int = Field(ge=-7 * MINUTES_PER_DAY, le=7 * MINUTES_PER_DAY)
    description: str = Field(min_length=3, max_length=1000)

    @model_validator(mode="after")
    def _validate_minutes(self) -> "TimeBankAdjustmentCreate":
        if self.minutes == 0:
            raise ValueError("minutes must not be zero")
        return self


class TimeBankMovementRead(BaseModel):
    id: int
    employee_id: int
    day_date: date
    minutes: int
    origin: TimeBankMovementOrigin
    description: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimeBankBalanceRead(BaseModel):
    employee_id: int
    balance_minutes: int
    movements: list[TimeBankMovementRead] = Field(default_factory=list)


# Regularization


class RegularizationCreate(BaseModel):
    clock_in_entry_id: int | None = Field(default=None, ge=1)
    day_date: date
    requested_clock_in: datetime
    requested_clock_out: datetime
    reason: str = Field(min_length=3, max_length=1000)

    @model_validator(mode="after")
    def _validate_times(self) -> "RegularizationCreate":
        if self.requested_clock_out <= self.requested_clock_in:
            raise ValueError("requested_clock_out must be greater than requested_clock_in")
        return self


class RegularizationReview(BaseModel):
    review_notes: str | None = Field(default=None, max_length=1000)


class RegularizationRead(BaseModel):
    id: int
    employee_id: int
    clock_in_entry_id: int | None = None
    day_date: date
    requested_clock_in: datetime
    requested_clock_out: datetime
    reason: str
    status: RegularizationStatus
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Expenses


class ExpenseCreate(BaseModel):
    employee_id: int = Field(ge=1)
    expense_date: date
    category: ExpenseCategory
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="EUR", pattern=r"^[A-Z]{3}$")
    merchant: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


class ExpenseUpdate(BaseModel):
    expense_date: date
    category: ExpenseCategory
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="EUR", pattern=r"^[A-Z]{3}$")
    merchant: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


class ExpenseReject(BaseModel):
    reason: str = Field(min_length=3, max_length=1000)


class ExpenseRead(BaseModel):
    id: int
    employee_id: int
    expense_date: date
    category: ExpenseCategory
    amount: Decimal
    currency: str
    merchant: str | None = None
    description: str | None = None
    status: ExpenseStatus
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    reimbursed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Shifts


class ShiftCreate(BaseModel):
    org_id: int = Field(ge=1)
    work_center_id: int | None = Field(default=None, ge=1)
    shift_date: date
    start_minutes: int = Field(ge=0, le=MINUTES_PER_DAY)
    end_minutes: int = Field(ge=0, le=2 * MINUTES_PER_DAY)
    role_name: str | None = Field(default=None, max_length=255)
    required_headcount: int = Field(default=1, ge=1, le=500)
    notes: str | None = None

    @model_validator(mode="after")
    def _validate_range(self) -> "ShiftCreate":
        if self.end_minutes <= self.start_minutes:
            raise ValueError("end_minutes must be greater than start_minutes")
        return self


class ShiftUpdate(BaseModel):
    work_center_id: int | None = Field(default=None, ge=1)
    shift_date: date
    start_minutes: int = Field(ge=0, le=MINUTES_PER_DAY)
    end_minutes: int = Field(ge=0, le=2 * MINUTES_PER_DAY)
    role_name: str | None = Field(default=None, max_length=255)
    required_headcount: int = Field(default=1, ge=1, le=500)
    notes: str | None = None

    @model_validator(mode="after")
    def _validate_range(self) -> "ShiftUpdate":
        if self.end_minutes <= self.start_minutes:
            raise ValueError("end_minutes must be greater than start_minutes")
        return self


class ShiftStatusChange(BaseModel):
    status: ShiftStatus


class ShiftAssignmentCreate(BaseModel):
    employee_id: int = Field(ge=1)


class ShiftAssignmentRead(BaseModel):
    id: int
    shift_id: int
    employee_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ShiftRead(BaseModel):
    id: int
    org_id: int
    work_center_id: int | None = None
    shift_date: date
    start_minutes: int
    end_minutes: int
    role_name: str | None = None
    required_headcount: int
    status: ShiftStatus
    notes: str | None = None
    assignments: list[ShiftAssignmentRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Users


UserAction = Literal["create", "change-role", "reset-password", "toggle-active", "unlock-account"]


class AdminUserActionRequest(BaseModel):
    action: UserAction
    user_id: int | None = Field(default=None, ge=1)
    org_id: int | None = Field(default=None, ge=1)
    email: str | None = Field(default=None, max_length=255)
    full_name: str | None = Field(default=None, max_length=255)
    role: UserRole | None = None
    create_employee: bool = False
    employee_number: str | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _validate_action(self) -> "AdminUserActionRequest":
        if self.action == "create":
            missing = [name for name in ("org_id", "email", "full_name") if not getattr(self, name)]
            if missing:
                raise ValueError(f"create requires: {', '.join(missing)}")
            normalized_email = (self.email or "").strip().lower()
            if "@" not in normalized_email:
                raise ValueError("email is not valid")
            self.email = normalized_email
            self.full_name = (self.full_name or "").strip()
            return self
        if self.user_id is None:
            raise ValueError(f"{self.action} requires user_id")
        if self.action == "change-role" and self.role is None:
            raise ValueError("change-role requires role")
        return self


class UserRead(BaseModel):
    id: int
    org_id: int
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    must_change_password: bool
    failed_login_attempts: int
    locked_until: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AdminUserActionResponse(CamelModel):
    success: bool = True
    user: UserRead | None = None
    temporary_password: str | None = None
    invite_email_sent: bool | None = None
    error: str | None = None
    details: Any = None
