from __future__ import annotations

import csv
import re
import unicodedata
from collections.abc import Sequence
from datetime import date, timedelta
from io import BytesIO, StringIO
from zoneinfo import ZoneInfo

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from fichaje.models import TimeEntry, TimeEntryType
from fichaje.services.compliance import DayStatus
from fichaje.services.local_time import normalize_ts
from fichaje.services.summaries import DailySummary, PeriodRollup, SummaryPeriod

DAILY_DETAIL_HEADERS = [
    "Fecha",
    "Tipo",
    "Hora",
    "Horas Esperadas",
    "Horas Trabajadas",
    "Cumplimiento",
    "Estado",
    "Observaciones",
]
WEEKLY_HEADERS = [
    "Semana",
    "Días Trabajados",
    "Horas Trabajadas",
    "Horas Esperadas",
    "Cumplimiento",
    "Promedio Diario",
]
MONTHLY_HEADERS = [
    "Mes",
    "Días Trabajados",
    "Horas Trabajadas",
    "Horas Esperadas",
    "Cumplimiento",
    "Promedio Semanal",
]
YEARLY_HEADERS = [
    "Año",
    "Días Trabajados",
    "Horas Trabajadas",
    "Horas Esperadas",
    "Promedio Mensual",
]

STATUS_LABELS: dict[DayStatus, str] = {
    DayStatus.COMPLETED: "Completado",
    DayStatus.IN_PROGRESS: "En progreso",
    DayStatus.INCOMPLETE: "Incompleto",
    DayStatus.ABSENT: "Ausente",
}

ENTRY_TYPE_LABELS: dict[TimeEntryType, str] = {
    TimeEntryType.CLOCK_IN: "Entrada",
    TimeEntryType.CLOCK_OUT: "Salida",
    TimeEntryType.BREAK_START: "Inicio pausa",
    TimeEntryType.BREAK_END: "Fin pausa",
    TimeEntryType.PROJECT_SWITCH: "Cambio de proyecto",
}

SPANISH_MONTHS = [
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
ALERT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")
HEADER_FONT = Font(bold=True, color="FFFFFF")
THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def format_hours(minutes: int) -> str:
    return f"{round(max(0, int(minutes)) / 60, 2):g}h"


def format_percentage(value: float | int | None) -> str:
    if value is None:
        return ""
    return f"{value:g}%"


def _entry_observations(entry: TimeEntry) -> str:
    notes: list[str] = []
    if entry.is_cancelled:
        notes.append("Cancelado")
        if entry.cancellation_notes:
            notes.append(entry.cancellation_notes)
    if entry.is_automatic:
        notes.append("Pausa automatica")
    if entry.is_manual:
        notes.append("Manual")
    if entry.requires_review:
        notes.append("Fuera del area permitida")
    elif entry.latitude is None and not entry.is_automatic and not entry.is_manual:
        notes.append("Sin ubicacion")
    if entry.notes:
        notes.append(entry.notes)
    return "; ".join(notes)


def _day_observations(summary: DailySummary) -> str:
    notes: list[str] = []
    if summary.schedule.absence is not None:
        notes.append("Ausencia" if summary.schedule.absence.is_full_day else "Ausencia parcial")
    if summary.incomplete_clock_in_ids:
        notes.append("Fichaje incompleto")
    if summary.compliance.is_working_on_absence:
        notes.append("Trabajo fuera de horario")
    return "; ".join(notes)


def daily_detail_rows(summaries: Sequence[DailySummary], tz: ZoneInfo) -> list[list[str]]:
    """One row per visible entry; days without entries still get one row."""
    rows: list[list[str]] = []
    for summary in summaries:
        day_columns = [
            format_hours(summary.compliance.expected_minutes),
            format_hours(summary.compliance.worked_minutes),
            format_percentage(summary.compliance.progress_percentage),
            STATUS_LABELS[summary.status],
        ]
        day_label = summary.day_date.strftime("%d/%m/%Y")
        if not summary.time_entries:
            rows.append([day_label, "", "", *day_columns, _day_observations(summary)])
            continue
        for entry in summary.time_entries:
            observations = "; ".join(
                item for item in (_entry_observations(entry), _day_observations(summary)) if item
            )
            rows.append(
                [
                    day_label,
                    ENTRY_TYPE_LABELS[TimeEntryType(entry.entry_type)],
                    normalize_ts(entry.timestamp).astimezone(tz).strftime("%H:%M"),
                    *day_columns,
                    observations,
                ]
            )
    return rows


def _days_worked(rollup: PeriodRollup) -> str:
    return f"{rollup.days_worked}/{rollup.expected_days}"


def week_label(rollup: PeriodRollup) -> str:
    week_start = rollup.start_date - timedelta(days=rollup.start_date.weekday())
    week_end = week_start + timedelta(days=6)
    return f"{week_start.strftime('%d/%m')} - {week_end.strftime('%d/%m/%Y')}"


def month_label(rollup: PeriodRollup) -> str:
    return f"{SPANISH_MONTHS[rollup.start_date.month - 1]} {rollup.start_date.year}"


def period_rows(period: SummaryPeriod, rollups: Sequence[PeriodRollup]) -> tuple[list[str], list[list[str]]]:
    if period == SummaryPeriod.WEEKLY:
        return WEEKLY_HEADERS, [
            [
                week_label(item),
                _days_worked(item),
                format_hours(item.worked_minutes),
                format_hours(item.expected_minutes),
                format_percentage(item.compliance_percentage),
                format_hours(item.average_daily_minutes),
            ]
            for item in rollups
        ]
    if period == SummaryPeriod.MONTHLY:
        return MONTHLY_HEADERS, [
            [
                month_label(item),
                _days_worked(item),
                format_hours(item.worked_minutes),
                format_hours(item.expected_minutes),
                format_percentage(item.compliance_percentage),
                format_hours(item.average_weekly_minutes),
            ]
            for item in rollups
        ]
    return YEARLY_HEADERS, [
        [
            str(item.start_date.year),
            _days_worked(item),
            format_hours(item.worked_minutes),
            format_hours(item.expected_minutes),
            format_hours(item.average_monthly_minutes),
        ]
        for item in rollups
    ]


def render_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def export_filename(employee_name: str, kind: str, today: date, extension: str) -> str:
    ascii_name = unicodedata.normalize("NFKD", employee_name).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name.lower()).strip("-") or "empleado"
    return f"fichajes-{slug}-{kind}-{today.isoformat()}.{extension}"


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _write_table(
    ws: Worksheet,
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    *,
    alert_column: int | None = None,
    alert_values: set[str] | None = None,
) -> None:
    ws.append(list(headers))
    _style_header(ws)
    for row_idx, row in enumerate(rows, start=2):
        ws.append(list(row))
        is_alert = (
            alert_column is not None
            and alert_values is not None
            and row[alert_column] in alert_values
        )
        for cell in ws[row_idx]:
            cell.border = THIN_BORDER
            if is_alert:
                cell.fill = ALERT_FILL
            elif row_idx % 2 == 0:
                cell.fill = ZEBRA_FILL
    ws.freeze_panes = "A2"
    _auto_width(ws)


def build_time_tracking_xlsx_bytes(
    summaries: Sequence[DailySummary],
    *,
    tz: ZoneInfo,
    rollups: dict[SummaryPeriod, Sequence[PeriodRollup]] | None = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Detalle diario"
    _write_table(
        ws,
        DAILY_DETAIL_HEADERS,
        daily_detail_rows(summaries, tz),
        alert_column=DAILY_DETAIL_HEADERS.index("Estado"),
        alert_values={STATUS_LABELS[DayStatus.INCOMPLETE], STATUS_LABELS[DayStatus.ABSENT]},
    )

    sheet_titles = {
        SummaryPeriod.WEEKLY: "Semanas",
        SummaryPeriod.MONTHLY: "Meses",
        SummaryPeriod.YEARLY: "Años",
    }
    for period, items in (rollups or {}).items():
        headers, rows = period_rows(period, items)
        _write_table(wb.create_sheet(title=sheet_titles[period]), headers, rows)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
