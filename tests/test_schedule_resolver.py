from __future__ import annotations

import unittest
from datetime import date
from types import SimpleNamespace

from fichaje.models import AbsenceStatus, AbsenceType, SchedulePeriodType, TimeSlotType
from fichaje.services.schedule_resolver import (
    ScheduleSource,
    build_effective_schedule,
    fallback_expected_minutes,
    merged_minutes,
    select_period,
)
from fichaje.services.slot_validation import find_slot_errors

MONDAY = date(2026, 2, 9)
SATURDAY = date(2026, 2, 14)
JULY_MONDAY = date(2026, 7, 6)


def _slot(start: int, end: int, slot_type: TimeSlotType = TimeSlotType.WORK, *, automatic: bool = False):
    return SimpleNamespace(
        id=None,
        start_minutes=start,
        end_minutes=end,
        slot_type=slot_type,
        is_automatic=automatic,
    )


def _week(slots_factory, *, working_days: range = range(0, 5)):
    return [
        SimpleNamespace(
            day_of_week=day,
            is_working_day=day in working_days,
            time_slots=slots_factory() if day in working_days else [],
        )
        for day in range(7)
    ]


def _period(period_id: int, period_type: SchedulePeriodType, patterns, *, valid_from=None, valid_to=None):
    return SimpleNamespace(
        id=period_id,
        period_type=period_type,
        valid_from=valid_from,
        valid_to=valid_to,
        work_day_patterns=patterns,
    )


def _split_shift():
    return [
        _slot(9 * 60, 14 * 60),
        _slot(14 * 60, 15 * 60, TimeSlotType.BREAK, automatic=True),
        _slot(15 * 60, 18 * 60),
    ]


def _intensive_shift():
    return [_slot(8 * 60, 15 * 60)]


def _template():
    return SimpleNamespace(
        id=10,
        periods=[
            _period(1, SchedulePeriodType.REGULAR, _week(_split_shift)),
            _period(
                2,
                SchedulePeriodType.INTENSIVE,
                _week(_intensive_shift),
                valid_from=date(2026, 7, 1),
                valid_to=date(2026, 8, 31),
            ),
        ],
    )


def _assignment(assignment_id: int = 1, *, template=None, valid_from=date(2026, 1, 1), valid_to=None, active=True):
    return SimpleNamespace(
        id=assignment_id,
        is_active=active,
        valid_from=valid_from,
        valid_to=valid_to,
        template=template if template is not None else _template(),
    )


def _absence(*, full_day: bool = True, start_minutes=None, end_minutes=None, status=AbsenceStatus.APPROVED):
    return SimpleNamespace(
        id=5,
        status=status,
        absence_type=AbsenceType.SICK_LEAVE,
        start_date=MONDAY,
        end_date=MONDAY,
        is_full_day=full_day,
        start_minutes=start_minutes,
        end_minutes=end_minutes,
    )


class MergedMinutesTests(unittest.TestCase):
    def test_overlapping_intervals_are_counted_once(self) -> None:
        self.assertEqual(merged_minutes([(540, 840), (600, 700), (900, 1080)]), 480)

    def test_touching_and_empty_intervals(self) -> None:
        self.assertEqual(merged_minutes([(0, 60), (60, 120), (200, 200)]), 120)
        self.assertEqual(merged_minutes([]), 0)


class SelectPeriodTests(unittest.TestCase):
    def test_special_period_wins_over_intensive_and_regular(self) -> None:
        periods = [
            _period(1, SchedulePeriodType.REGULAR, []),
            _period(2, SchedulePeriodType.INTENSIVE, [], valid_from=date(2026, 7, 1), valid_to=date(2026, 8, 31)),
            _period(3, SchedulePeriodType.SPECIAL, [], valid_from=JULY_MONDAY, valid_to=JULY_MONDAY),
        ]
        self.assertEqual(select_period(periods, JULY_MONDAY).id, 3)
        self.assertEqual(select_period(periods, date(2026, 7, 7)).id, 2)
        self.assertEqual(select_period(periods, MONDAY).id, 1)

    def test_no_period_covers_date(self) -> None:
        periods = [_period(1, SchedulePeriodType.REGULAR, [], valid_from=date(2027, 1, 1))]
        self.assertIsNone(select_period(periods, MONDAY))


class BuildEffectiveScheduleTests(unittest.TestCase):
    def test_regular_weekday_counts_merged_work_slots(self) -> None:
        schedule = build_effective_schedule(MONDAY, assignments=[_assignment()], absences=[])

        self.assertEqual(schedule.source, ScheduleSource.TEMPLATE)
        self.assertTrue(schedule.is_working_day)
        self.assertEqual(schedule.expected_minutes, 480)
        self.assertEqual(schedule.period_type, SchedulePeriodType.REGULAR)
        self.assertEqual(schedule.template_id, 10)
        self.assertEqual([slot.duration_minutes for slot in schedule.work_slots()], [300, 180])
        self.assertEqual(len(schedule.time_slots), 3)

    def test_resolution_is_repeatable(self) -> None:
        assignments = [_assignment()]
        first = build_effective_schedule(MONDAY, assignments=assignments, absences=[])
        second = build_effective_schedule(MONDAY, assignments=assignments, absences=[])
        self.assertEqual(first, second)

    def test_intensive_period_applies_in_summer(self) -> None:
        schedule = build_effective_schedule(JULY_MONDAY, assignments=[_assignment()], absences=[])
        self.assertEqual(schedule.period_type, SchedulePeriodType.INTENSIVE)
        self.assertEqual(schedule.expected_minutes, 420)

    def test_weekend_is_not_a_working_day(self) -> None:
        schedule = build_effective_schedule(SATURDAY, assignments=[_assignment()], absences=[])
        self.assertEqual(schedule.source, ScheduleSource.TEMPLATE)
        self.assertFalse(schedule.is_working_day)
        self.assertEqual(schedule.expected_minutes, 0)

    def test_without_assignment(self) -> None:
        expired = _assignment(valid_to=date(2026, 1, 31))
        inactive = _assignment(2, active=False)
        schedule = build_effective_schedule(MONDAY, assignments=[expired, inactive], absences=[])
        self.assertEqual(schedule.source, ScheduleSource.NO_ASSIGNMENT)
        self.assertEqual(schedule.expected_minutes, 0)

    def test_latest_assignment_wins(self) -> None:
        short_template = SimpleNamespace(
            id=20,
            periods=[_period(9, SchedulePeriodType.REGULAR, _week(lambda: [_slot(540, 780)]))],
        )
        schedule = build_effective_schedule(
            MONDAY,
            assignments=[_assignment(1), _assignment(2, template=short_template, valid_from=date(2026, 2, 1))],
            absences=[],
        )
        self.assertEqual(schedule.template_id, 20)
        self.assertEqual(schedule.expected_minutes, 240)

    def test_full_day_absence_overrides_template(self) -> None:
        schedule = build_effective_schedule(MONDAY, assignments=[_assignment()], absences=[_absence()])
        self.assertEqual(schedule.source, ScheduleSource.ABSENCE)
        self.assertEqual(schedule.expected_minutes, 0)
        self.assertFalse(schedule.is_working_day)
        self.assertEqual(schedule.absence.absence_type, AbsenceType.SICK_LEAVE)

    def test_partial_absence_reduces_expected_minutes(self) -> None:
        schedule = build_effective_schedule(
            MONDAY,
            assignments=[_assignment()],
            absences=[_absence(full_day=False, start_minutes=9 * 60, end_minutes=11 * 60)],
        )
        self.assertEqual(schedule.source, ScheduleSource.TEMPLATE)
        self.assertEqual(schedule.expected_minutes, 360)
        self.assertEqual(schedule.absence.minutes, 120)

    def test_pending_absence_is_ignored(self) -> None:
        schedule = build_effective_schedule(
            MONDAY,
            assignments=[_assignment()],
            absences=[_absence(status=AbsenceStatus.PENDING)],
        )
        self.assertEqual(schedule.expected_minutes, 480)
        self.assertIsNone(schedule.absence)


class FallbackExpectedMinutesTests(unittest.TestCase):
    def test_contract_spreads_weekly_minutes(self) -> None:
        schedule = build_effective_schedule(MONDAY, assignments=[], absences=[])
        contract = SimpleNamespace(is_active=True, working_days_per_week=5, weekly_minutes=2250)
        self.assertEqual(fallback_expected_minutes(schedule, organization=None, contract=contract), 450)

        weekend = build_effective_schedule(SATURDAY, assignments=[], absences=[])
        self.assertEqual(fallback_expected_minutes(weekend, organization=None, contract=contract), 0)

    def test_organization_default_on_weekdays(self) -> None:
        organization = SimpleNamespace(default_daily_minutes=480)
        schedule = build_effective_schedule(MONDAY, assignments=[], absences=[])
        self.assertEqual(fallback_expected_minutes(schedule, organization=organization, contract=None), 480)

    def test_template_schedule_is_left_untouched(self) -> None:
        schedule = build_effective_schedule(SATURDAY, assignments=[_assignment()], absences=[])
        organization = SimpleNamespace(default_daily_minutes=480)
        self.assertEqual(fallback_expected_minutes(schedule, organization=organization, contract=None), 0)


class SlotValidationTests(unittest.TestCase):
    def test_break_inside_work_slot_is_valid(self) -> None:
        self.assertEqual(find_slot_errors(_split_shift()), [])
        self.assertEqual(
            find_slot_errors([_slot(540, 1080), _slot(840, 900, TimeSlotType.BREAK)]),
            [],
        )

    def test_invalid_ranges(self) -> None:
        errors = find_slot_errors([_slot(600, 540), _slot(1400, 1500)])
        self.assertIn("Tramo 1: la hora de fin debe ser posterior a la de inicio.", errors)
        self.assertIn("Tramo 2: las horas deben estar entre 00:00 y 24:00.", errors)

    def test_same_type_overlap(self) -> None:
        errors = find_slot_errors([_slot(540, 840), _slot(800, 1000)])
        self.assertEqual(errors, ["Los tramos del mismo tipo no pueden solaparse (WORK)."])


if __name__ == "__main__":
    unittest.main()
