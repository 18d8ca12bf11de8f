from __future__ import annotations

import unittest
from datetime import date
from types import SimpleNamespace
from unittest.mock import patch

from fichaje.models import TimeBankMovementOrigin, TimeEntryType, TimeSlotType
from fichaje.services.clock_alerts import format_minutes, location_alerts, schedule_alerts
from fichaje.services.compliance import (
    DayStatus,
    calculate_compliance,
    resolve_day_status,
    rollup_compliance_percentage,
)
from fichaje.services.location import distance_m, evaluate_location
from fichaje.services.schedule_resolver import EffectiveSchedule, ResolvedSlot, ScheduleSource
from fichaje.services.time_bank import TimeBankPolicy, normalize_deviation, sync_time_bank_for_day

POLICY = TimeBankPolicy(rounding_increment_minutes=5, excess_grace_minutes=15, deficit_grace_minutes=10)


class _LedgerDB:
    def __init__(self) -> None:
        self.added: list[object] = []

    def add(self, item: object) -> None:
        self.added.append(item)


def _organization(**overrides):
    values = {
        "clock_in_tolerance_minutes": 5,
        "clock_out_tolerance_minutes": 5,
        "critical_late_arrival_minutes": 30,
        "critical_early_departure_minutes": 30,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _working_schedule() -> EffectiveSchedule:
    return EffectiveSchedule(
        day_date=date(2026, 2, 9),
        source=ScheduleSource.TEMPLATE,
        is_working_day=True,
        expected_minutes=480,
        time_slots=(
            ResolvedSlot(540, 840, TimeSlotType.WORK, False),
            ResolvedSlot(840, 900, TimeSlotType.BREAK, True),
            ResolvedSlot(900, 1080, TimeSlotType.WORK, False),
        ),
    )


class ComplianceTests(unittest.TestCase):
    def test_partial_progress(self) -> None:
        result = calculate_compliance(expected_minutes=480, worked_minutes=360)
        self.assertEqual(result.remaining_minutes, 120)
        self.assertEqual(result.deviation_minutes, -120)
        self.assertEqual(result.progress_percentage, 75)
        self.assertFalse(result.is_completed)

    def test_overtime(self) -> None:
        result = calculate_compliance(expected_minutes=480, worked_minutes=510)
        self.assertEqual(result.remaining_minutes, 0)
        self.assertEqual(result.deviation_minutes, 30)
        self.assertTrue(result.is_completed)

    def test_work_on_day_without_expected_time(self) -> None:
        result = calculate_compliance(expected_minutes=0, worked_minutes=90)
        self.assertIsNone(result.progress_percentage)
        self.assertTrue(result.is_working_on_absence)
        self.assertFalse(result.is_completed)
        self.assertEqual(result.deviation_minutes, 90)

    def test_day_status(self) -> None:
        def status(expected: int, worked: int, *, open_session: bool = False, has_entries: bool = True):
            return resolve_day_status(
                compliance=calculate_compliance(expected_minutes=expected, worked_minutes=worked),
                has_open_session=open_session,
                has_entries=has_entries,
                tolerance_percent=95,
            )

        self.assertEqual(status(480, 100, open_session=True), DayStatus.IN_PROGRESS)
        self.assertEqual(status(480, 0, has_entries=False), DayStatus.ABSENT)
        self.assertEqual(status(480, 460), DayStatus.COMPLETED)
        self.assertEqual(status(480, 400), DayStatus.INCOMPLETE)
        self.assertEqual(status(0, 60), DayStatus.COMPLETED)

    def test_rollup_percentage(self) -> None:
        self.assertEqual(rollup_compliance_percentage(expected_minutes=2400, worked_minutes=2300), 95.8)
        self.assertEqual(rollup_compliance_percentage(expected_minutes=0, worked_minutes=120), 0.0)


class NormalizeDeviationTests(unittest.TestCase):
    def test_rounds_to_increment_half_away_from_zero(self) -> None:
        self.assertEqual(normalize_deviation(17, POLICY), 15)
        self.assertEqual(normalize_deviation(-12.5, POLICY), -15)
        self.assertEqual(normalize_deviation(-28, POLICY), -30)

    def test_grace_windows_absorb_small_deviations(self) -> None:
        self.assertEqual(normalize_deviation(12, POLICY), 0)
        self.assertEqual(normalize_deviation(-7, POLICY), 0)
        self.assertEqual(normalize_deviation(0, POLICY), 0)

    def test_non_finite_values(self) -> None:
        self.assertEqual(normalize_deviation(float("nan"), POLICY), 0)


class SyncTimeBankTests(unittest.TestCase):
    def test_appends_delta_against_recorded_minutes(self) -> None:
        db = _LedgerDB()
        employee = SimpleNamespace(id=3)

        with patch("fichaje.services.time_bank.recorded_daily_minutes", return_value=30):
            movement = sync_time_bank_for_day(
                db,
                employee=employee,
                day_date=date(2026, 2, 9),
                deviation_minutes=-20,
                policy=POLICY,
            )

        self.assertIs(db.added[0], movement)
        self.assertEqual(movement.minutes, -50)
        self.assertEqual(movement.origin, TimeBankMovementOrigin.AUTO_DAILY)
        self.assertIn("30 -> -20", movement.description)

    def test_no_movement_when_ledger_is_up_to_date(self) -> None:
        db = _LedgerDB()
        with patch("fichaje.services.time_bank.recorded_daily_minutes", return_value=15):
            movement = sync_time_bank_for_day(
                db,
                employee=SimpleNamespace(id=3),
                day_date=date(2026, 2, 9),
                deviation_minutes=16,
                policy=POLICY,
            )
        self.assertIsNone(movement)
        self.assertEqual(db.added, [])


class ClockAlertTests(unittest.TestCase):
    def test_format_minutes(self) -> None:
        self.assertEqual(format_minutes(45), "45min")
        self.assertEqual(format_minutes(120), "2h")
        self.assertEqual(format_minutes(-95), "1h 35min")

    def test_late_arrival_levels(self) -> None:
        schedule = _working_schedule()
        organization = _organization()

        on_time = schedule_alerts(
            entry_type=TimeEntryType.CLOCK_IN,
            local_minutes=543,
            schedule=schedule,
            organization=organization,
        )
        late = schedule_alerts(
            entry_type=TimeEntryType.CLOCK_IN,
            local_minutes=555,
            schedule=schedule,
            organization=organization,
        )
        critical = schedule_alerts(
            entry_type=TimeEntryType.CLOCK_IN,
            local_minutes=600,
            schedule=schedule,
            organization=organization,
        )

        self.assertEqual(on_time, [])
        self.assertEqual([alert.type for alert in late], ["LATE_ARRIVAL"])
        self.assertEqual(late[0].deviation_minutes, 15)
        self.assertEqual([alert.type for alert in critical], ["CRITICAL_LATE_ARRIVAL"])

    def test_early_departure_uses_last_work_slot(self) -> None:
        alerts = schedule_alerts(
            entry_type=TimeEntryType.CLOCK_OUT,
            local_minutes=1060,
            schedule=_working_schedule(),
            organization=_organization(),
        )
        self.assertEqual([alert.type for alert in alerts], ["EARLY_DEPARTURE"])
        self.assertEqual(alerts[0].deviation_minutes, 20)

    def test_clock_in_without_assignment(self) -> None:
        schedule = EffectiveSchedule(
            day_date=date(2026, 2, 9),
            source=ScheduleSource.NO_ASSIGNMENT,
            is_working_day=False,
            expected_minutes=0,
        )
        alerts = schedule_alerts(
            entry_type=TimeEntryType.CLOCK_IN,
            local_minutes=540,
            schedule=schedule,
            organization=_organization(),
        )
        self.assertEqual([alert.type for alert in alerts], ["NO_SCHEDULE_ASSIGNMENT"])


class LocationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.center = SimpleNamespace(
            id=1,
            is_active=True,
            latitude=40.4168,
            longitude=-3.7038,
            allowed_radius_m=150,
        )

    def test_distance_is_zero_for_same_point(self) -> None:
        self.assertAlmostEqual(distance_m(40.0, -3.0, 40.0, -3.0), 0.0)

    def test_inside_work_center(self) -> None:
        evaluation = evaluate_location([self.center], 40.4169, -3.7039)
        self.assertTrue(evaluation.is_within_allowed_area)
        self.assertFalse(evaluation.requires_review)
        self.assertEqual(location_alerts(evaluation), [])

    def test_outside_work_center_requires_review(self) -> None:
        evaluation = evaluate_location([self.center], 40.4268, -3.7038)
        self.assertFalse(evaluation.is_within_allowed_area)
        self.assertTrue(evaluation.requires_review)
        self.assertGreater(evaluation.distance_m, 1000)
        self.assertEqual([alert.type for alert in location_alerts(evaluation)], ["OUTSIDE_ALLOWED_AREA"])

    def test_missing_coordinates(self) -> None:
        evaluation = evaluate_location([self.center], None, None)
        self.assertFalse(evaluation.has_location)
        self.assertEqual([alert.type for alert in location_alerts(evaluation)], ["NO_LOCATION"])

    def test_no_active_work_center(self) -> None:
        self.center.is_active = False
        evaluation = evaluate_location([self.center], 40.4168, -3.7038)
        self.assertIsNone(evaluation.is_within_allowed_area)
        self.assertEqual(evaluation.reason, "work_center_not_set")


if __name__ == "__main__":
    unittest.main()
