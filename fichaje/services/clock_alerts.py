from __future__ import annotations

import enum
from dataclasses import dataclass

from fichaje.models import Organization, TimeEntryType
from fichaje.services.location import LocationEvaluation
from fichaje.services.schedule_resolver import EffectiveSchedule, ScheduleSource


class AlertSeverity(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class ClockAlert:
    type: str
    severity: AlertSeverity
    title: str
    description: str
    deviation_minutes: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "deviation_minutes": self.deviation_minutes,
        }


def format_minutes(minutes: int) -> str:
    hours, rest = divmod(abs(int(minutes)), 60)
    if hours and rest:
        return f"{hours}h {rest}min"
    if hours:
        return f"{hours}h"
    return f"{rest}min"


def location_alerts(evaluation: LocationEvaluation) -> list[ClockAlert]:
    if not evaluation.has_location:
        return [
            ClockAlert(
                type="NO_LOCATION",
                severity=AlertSeverity.WARNING,
                title="Fichaje sin ubicacion",
                description="No se pudo obtener la ubicacion. El fichaje se ha registrado sin coordenadas.",
            )
        ]
    if evaluation.is_within_allowed_area is False:
        distance_text = f"{int(evaluation.distance_m or 0)} m"
        return [
            ClockAlert(
                type="OUTSIDE_ALLOWED_AREA",
                severity=AlertSeverity.WARNING,
                title="Fuera del area permitida",
                description=f"El fichaje se realizo a {distance_text} del centro de trabajo y queda pendiente de revision.",
            )
        ]
    return []


def schedule_alerts(
    *,
    entry_type: TimeEntryType,
    local_minutes: int,
    schedule: EffectiveSchedule,
    organization: Organization,
) -> list[ClockAlert]:
    alerts: list[ClockAlert] = []

    if entry_type == TimeEntryType.CLOCK_IN:
        if schedule.source == ScheduleSource.NO_ASSIGNMENT:
            alerts.append(
                ClockAlert(
                    type="NO_SCHEDULE_ASSIGNMENT",
                    severity=AlertSeverity.WARNING,
                    title="Sin horario asignado",
                    description="No tienes un horario asignado. Contacta con RRHH para configurarlo.",
                )
            )
            return alerts
        if schedule.source == ScheduleSource.ABSENCE:
            alerts.append(
                ClockAlert(
                    type="ABSENCE_DAY_CLOCK_IN",
                    severity=AlertSeverity.INFO,
                    title="Fichaje en dia de ausencia",
                    description="Hoy tienes una ausencia aprobada. El tiempo se registrara como trabajo fuera de horario.",
                )
            )
            return alerts
        if not schedule.is_working_day:
            alerts.append(
                ClockAlert(
                    type="NON_WORKDAY_CLOCK_IN",
                    severity=AlertSeverity.WARNING,
                    title="Fichaje en dia no laborable",
                    description="Hoy no es un dia laborable segun tu horario.",
                )
            )
            return alerts

    work_slots = schedule.work_slots()
    if not work_slots:
        return alerts

    if entry_type == TimeEntryType.CLOCK_IN:
        late_minutes = local_minutes - work_slots[0].start_minutes
        if late_minutes > organization.critical_late_arrival_minutes:
            alerts.append(
                ClockAlert(
                    type="CRITICAL_LATE_ARRIVAL",
                    severity=AlertSeverity.CRITICAL,
                    title="Entrada tardia critica",
                    description=(
                        f"Entrada {format_minutes(late_minutes)} tarde "
                        f"(umbral critico: {format_minutes(organization.critical_late_arrival_minutes)})."
                    ),
                    deviation_minutes=late_minutes,
                )
            )
        elif late_minutes > organization.clock_in_tolerance_minutes:
            alerts.append(
                ClockAlert(
                    type="LATE_ARRIVAL",
                    severity=AlertSeverity.WARNING,
                    title="Entrada tardia",
                    description=(
                        f"Entrada {format_minutes(late_minutes)} tarde "
                        f"(tolerancia: {format_minutes(organization.clock_in_tolerance_minutes)})."
                    ),
                    deviation_minutes=late_minutes,
                )
            )
    elif entry_type == TimeEntryType.CLOCK_OUT:
        early_minutes = work_slots[-1].end_minutes - local_minutes
        if early_minutes > organization.critical_early_departure_minutes:
            alerts.append(
                ClockAlert(
                    type="CRITICAL_EARLY_DEPARTURE",
                    severity=AlertSeverity.CRITICAL,
                    title="Salida temprana critica",
                    description=(
                        f"Salida {format_minutes(early_minutes)} antes "
                        f"(umbral critico: {format_minutes(organization.critical_early_departure_minutes)})."
                    ),
                    deviation_minutes=early_minutes,
                )
            )
        elif early_minutes > organization.clock_out_tolerance_minutes:
            alerts.append(
                ClockAlert(
                    type="EARLY_DEPARTURE",
                    severity=AlertSeverity.WARNING,
                    title="Salida temprana",
                    description=(
                        f"Salida {format_minutes(early_minutes)} antes "
                        f"(tolerancia: {format_minutes(organization.clock_out_tolerance_minutes)})."
                    ),
                    deviation_minutes=early_minutes,
                )
            )
    return alerts
