from __future__ import annotations

import enum
from dataclasses import dataclass


class DayStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    IN_PROGRESS = "IN_PROGRESS"
    INCOMPLETE = "INCOMPLETE"
    ABSENT = "ABSENT"


@dataclass(frozen=True)
class ComplianceResult:
    expected_minutes: int
    worked_minutes: int
    remaining_minutes: int
    deviation_minutes: int
    is_completed: bool
    is_working_on_absence: bool
    progress_percentage: int | None


def calculate_compliance(*, expected_minutes: int, worked_minutes: int) -> ComplianceResult:
    expected = max(0, int(expected_minutes))
    worked = max(0, int(worked_minutes))

    progress: int | None = None
    if expected > 0:
        progress = round(worked / expected * 100)

    return ComplianceResult(
        expected_minutes=expected,
        worked_minutes=worked,
        remaining_minutes=max(0, expected - worked),
        deviation_minutes=worked - expected,
        is_completed=expected > 0 and worked >= expected,
        is_working_on_absence=expected == 0 and worked > 0,
        progress_percentage=progress,
    )


def resolve_day_status(
    *,
    compliance: ComplianceResult,
    has_open_session: bool,
    has_entries: bool,
    tolerance_percent: int,
) -> DayStatus:
    if has_open_session:
        return DayStatus.IN_PROGRESS
    if not has_entries or (compliance.worked_minutes == 0 and compliance.expected_minutes > 0):
        return DayStatus.ABSENT
    if compliance.expected_minutes == 0:
        return DayStatus.COMPLETED
    ratio = compliance.worked_minutes / compliance.expected_minutes * 100
    if ratio >= tolerance_percent:
        return DayStatus.COMPLETED
    return DayStatus.INCOMPLETE


def rollup_compliance_percentage(*, expected_minutes: int, worked_minutes: int) -> float:
    if expected_minutes <= 0:
        return 0.0
    return round(worked_minutes / expected_minutes * 100, 1)
