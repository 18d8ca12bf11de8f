from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from io import BytesIO
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from openpyxl import load_workbook

from fichaje.models import TimeEntryType, TimeSlotType
from fichaje.services.compliance import DayStatus
from fichaje.services.exports import (
    WEEKLY_HEADERS,
    YEARLY_HEADERS,
    build_time_tracking_xlsx_bytes,
    daily_detail_rows,
    export_filename,
    format_hours,
    format_percentage,
    month_label,
    period_rows,
    render_csv,
    week_label,
)
from fichaje.services.schedule_resolver import EffectiveSchedule, ResolvedSlot, ScheduleSource
from fichaje.services.summaries import SummaryPeriod, build_daily_summary, rollup_days

MADRID = ZoneInfo("Europe/Madrid")
MAX_SESSION = timedelta(hours=16)


def _entry(entry_id: int, entry_type: TimeEntryType, ts: datetime, **values) -> SimpleNamespace:
    defaults = {
        "project_id": None,
        "task": None,
        "is_cancelled": False,
        "pending_change": None,
        "cancellation_notes": None,
        "is_automatic": False,
        "is_manual": False,
        "requires_review": False,
        "latitude": None,
        "notes": None,
    }
    defaults.update(values)
    return SimpleNamespace(id=entry_id, entry_type=entry_type, timestamp=ts, **defaults)


def _schedule(day_date: date, expected: int = 480) -> EffectiveSchedule:
    return EffectiveSchedule(
        day_date=day_date,
        source=ScheduleSource.TEMPLATE,
        is_working_day=expected > 0,
        expected_minutes=expected,
        time_slots=(ResolvedSlot(540, 540 + expected, TimeSlotType.WORK, False),) if expected else (),
    )


def _day(day_date: date, worked: int, expected: int = 480, *, first_id: int = 1):
    start = datetime.combine(day_date, datetime.min.time(), tzinfo=timezone.utc) + timedelta(hours=8)
    entries = []
    if worked:
        entries = [
            _entry(first_id, TimeEntryType.CLOCK_IN, start),
            _entry(first_id + 1, TimeEntryType.CLOCK_OUT, start + timedelta(minutes=worked)),
        ]
    return build_daily_summary(
        employee_id=1,
        day_date=day_date,
        entries=entries,
        schedule=_schedule(day_date, expected),
        expected_minutes=expected,
        max_session=MAX_SESSION,
        tolerance_percent=95,
    )


class BuildDailySummaryTests(unittest.TestCase):
    def test_closed_day_is_completed(self) -> None:
        summary = _day(date(2026, 2, 9), 480)
        self.assertEqual(summary.status, DayStatus.COMPLETED)
        self.assertEqual(summary.total_worked_minutes, 480)
        self.assertEqual(summary.compliance.progress_percentage, 100)
        self.assertFalse(summary.is_open)
        self.assertEqual(len(summary.time_entries), 2)

    def test_full_day_with_lunch_break(self) -> None:
        # 09:00-17:30 Madrid with a 13:00-13:30 break.
        start = datetime(2026, 2, 9, 8, 0, tzinfo=timezone.utc)
        summary = build_daily_summary(
            employee_id=1,
            day_date=date(2026, 2, 9),
            entries=[
                _entry(1, TimeEntryType.CLOCK_IN, start),
                _entry(2, TimeEntryType.BREAK_START, start + timedelta(hours=4)),
                _entry(3, TimeEntryType.BREAK_END, start + timedelta(hours=4, minutes=30)),
                _entry(4, TimeEntryType.CLOCK_OUT, start + timedelta(hours=8, minutes=30)),
            ],
            schedule=_schedule(date(2026, 2, 9)),
            expected_minutes=480,
            max_session=MAX_SESSION,
            tolerance_percent=95,
        )
        self.assertEqual(summary.total_worked_minutes, 480)
        self.assertEqual(summary.total_break_minutes, 30)
        self.assertTrue(summary.compliance.is_completed)
        self.assertEqual(summary.compliance.progress_percentage, 100)
        self.assertEqual(summary.clock_out, start + timedelta(hours=8, minutes=30))

    def test_live_session_is_in_progress(self) -> None:
        clock_in_at = datetime(2026, 2, 9, 8, 0, tzinfo=timezone.utc)
        summary = build_daily_summary(
            employee_id=1,
            day_date=date(2026, 2, 9),
            entries=[_entry(3, TimeEntryType.CLOCK_IN, clock_in_at)],
            schedule=_schedule(date(2026, 2, 9)),
            expected_minutes=480,
            now=clock_in_at + timedelta(hours=2),
            max_session=MAX_SESSION,
            tolerance_percent=95,
        )
        self.assertTrue(summary.is_open)
        self.assertEqual(summary.status, DayStatus.IN_PROGRESS)
        self.assertEqual(summary.total_worked_minutes, 120)
        self.assertEqual(summary.open_clock_in_id, 3)
        self.assertEqual(summary.incomplete_clock_in_ids, ())

    def test_stale_open_session_is_incomplete(self) -> None:
        clock_in_at = datetime(2026, 2, 9, 8, 0, tzinfo=timezone.utc)
        summary = build_daily_summary(
            employee_id=1,
            day_date=date(2026, 2, 9),
            entries=[_entry(3, TimeEntryType.CLOCK_IN, clock_in_at)],
            schedule=_schedule(date(2026, 2, 9)),
            expected_minutes=480,
            now=clock_in_at + timedelta(hours=20),
            max_session=MAX_SESSION,
            tolerance_percent=95,
        )
        self.assertFalse(summary.is_open)
        self.assertIsNone(summary.open_clock_in_id)
        self.assertEqual(summary.incomplete_clock_in_ids, (3,))
        self.assertEqual(summary.total_worked_minutes, 0)

    def test_project_switches_are_hidden_but_counted(self) -> None:
        start = datetime(2026, 2, 9, 8, 0, tzinfo=timezone.utc)
        summary = build_daily_summary(
            employee_id=1,
            day_date=date(2026, 2, 9),
            entries=[
                _entry(1, TimeEntryType.CLOCK_IN, start, project_id=7),
                _entry(2, TimeEntryType.PROJECT_SWITCH, start + timedelta(hours=3), project_id=8),
                _entry(3, TimeEntryType.CLOCK_OUT, start + timedelta(hours=8)),
            ],
            schedule=_schedule(date(2026, 2, 9)),
            expected_minutes=480,
            max_session=MAX_SESSION,
            tolerance_percent=95,
        )
        self.assertEqual([item.id for item in summary.time_entries], [1, 3])
        self.assertEqual(
            [(item.project_id, item.minutes) for item in summary.project_minutes],
            [(7, 180), (8, 300)],
        )


class RollupDaysTests(unittest.TestCase):
    def setUp(self) -> None:
        self.days = [
            _day(date(2026, 2, 9), 480),
            _day(date(2026, 2, 10), 240),
            _day(date(2026, 2, 14), 0, expected=0),
            _day(date(2026, 2, 16), 450),
        ]

    def test_weekly_rollups_use_iso_weeks(self) -> None:
        rollups = rollup_days(self.days, SummaryPeriod.WEEKLY)
        self.assertEqual([item.label for item in rollups], ["2026-W07", "2026-W08"])

        first = rollups[0]
        self.assertEqual(first.worked_minutes, 720)
        self.assertEqual(first.expected_minutes, 960)
        self.assertEqual(first.days_worked, 2)
        self.assertEqual(first.expected_days, 2)
        self.assertEqual(first.compliance_percentage, 75.0)
        self.assertEqual(first.average_daily_minutes, 360)

    def test_monthly_and_yearly_rollups(self) -> None:
        monthly = rollup_days(self.days, SummaryPeriod.MONTHLY)
        yearly = rollup_days(self.days, SummaryPeriod.YEARLY)

        self.assertEqual([item.label for item in monthly], ["2026-02"])
        self.assertEqual(monthly[0].worked_minutes, 1170)
        self.assertEqual(monthly[0].average_weekly_minutes, 585)
        self.assertEqual([item.label for item in yearly], ["2026"])
        self.assertEqual(yearly[0].average_monthly_minutes, 1170)


class ExportFormattingTests(unittest.TestCase):
    def test_format_helpers(self) -> None:
        self.assertEqual(format_hours(510), "8.5h")
        self.assertEqual(format_hours(480), "8h")
        self.assertEqual(format_hours(-30), "0h")
        self.assertEqual(format_percentage(95.8), "95.8%")
        self.assertEqual(format_percentage(None), "")

    def test_export_filename_is_ascii_slug(self) -> None:
        self.assertEqual(
            export_filename("José Pérez Núñez", "diario", date(2026, 2, 9), "csv"),
            "fichajes-jose-perez-nunez-diario-2026-02-09.csv",
        )
        self.assertEqual(
            export_filename("***", "informe", date(2026, 2, 9), "xlsx"),
            "fichajes-empleado-informe-2026-02-09.xlsx",
        )

    def test_render_csv_quotes_separators(self) -> None:
        self.assertEqual(render_csv(["A", "B"], [["1", "x,y"]]), 'A,B\r\n1,"x,y"\r\n')

    def test_daily_detail_rows(self) -> None:
        rows = daily_detail_rows(
            [_day(date(2026, 2, 9), 480), _day(date(2026, 2, 10), 0)],
            MADRID,
        )
        self.assertEqual(
            rows[0],
            ["09/02/2026", "Entrada", "09:00", "8h", "8h", "100%", "Completado", "Sin ubicacion"],
        )
        self.assertEqual(rows[1][1:3], ["Salida", "17:00"])
        self.assertEqual(rows[2], ["10/02/2026", "", "", "8h", "0h", "0%", "Ausente", ""])

    def test_period_labels(self) -> None:
        rollup = rollup_days([_day(date(2026, 2, 10), 240)], SummaryPeriod.WEEKLY)[0]
        self.assertEqual(week_label(rollup), "09/02 - 15/02/2026")
        self.assertEqual(month_label(rollup), "febrero 2026")

        headers, rows = period_rows(SummaryPeriod.WEEKLY, [rollup])
        self.assertEqual(headers, WEEKLY_HEADERS)
        self.assertEqual(rows[0][1], "1/1")

        headers, rows = period_rows(SummaryPeriod.YEARLY, [rollup])
        self.assertEqual(headers, YEARLY_HEADERS)
        self.assertEqual(rows[0][0], "2026")

    def test_xlsx_has_detail_and_period_sheets(self) -> None:
        days = [_day(date(2026, 2, 9), 480), _day(date(2026, 2, 10), 240)]
        content = build_time_tracking_xlsx_bytes(
            days,
            tz=MADRID,
            rollups={
                SummaryPeriod.WEEKLY: rollup_days(days, SummaryPeriod.WEEKLY),
                SummaryPeriod.MONTHLY: rollup_days(days, SummaryPeriod.MONTHLY),
            },
        )

        workbook = load_workbook(BytesIO(content))
        self.assertEqual(workbook.sheetnames, ["Detalle diario", "Semanas", "Meses"])
        detail = workbook["Detalle diario"]
        self.assertEqual(detail["A1"].value, "Fecha")
        self.assertEqual(detail["G4"].value, "Incompleto")
        self.assertEqual(detail.freeze_panes, "A2")


if __name__ == "__main__":
    unittest.main()
