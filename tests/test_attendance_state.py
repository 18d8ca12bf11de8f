from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from fichaje.models import TimeEntryType
from fichaje.services.attendance_state import (
    ClockState,
    OpenSessionIssue,
    PendingProjectChange,
    check_open_session,
    next_state,
    partition_workday_entries,
    replay_entries,
    session_intervals,
    transition_error,
    visible_entries,
)

MADRID = ZoneInfo("Europe/Madrid")


def _ts(hour: int, minute: int = 0, *, day: int = 10) -> datetime:
    return datetime(2026, 2, day, hour, minute, tzinfo=timezone.utc)


def _entry(
    entry_id: int,
    entry_type: TimeEntryType,
    timestamp: datetime,
    *,
    project_id: int | None = None,
    task: str | None = None,
    is_cancelled: bool = False,
    pending_change: dict | None = None,
) -> SimpleNamespace:
    return SimpleNamespace(
        id=entry_id,
        entry_type=entry_type,
        timestamp=timestamp,
        project_id=project_id,
        task=task,
        is_cancelled=is_cancelled,
        pending_change=pending_change,
    )


class ClockTransitionTests(unittest.TestCase):
    def test_valid_transitions(self) -> None:
        self.assertEqual(next_state(ClockState.CLOCKED_OUT, TimeEntryType.CLOCK_IN), ClockState.CLOCKED_IN)
        self.assertEqual(next_state(ClockState.CLOCKED_IN, TimeEntryType.BREAK_START), ClockState.ON_BREAK)
        self.assertEqual(next_state(ClockState.ON_BREAK, TimeEntryType.BREAK_END), ClockState.CLOCKED_IN)
        self.assertEqual(next_state(ClockState.ON_BREAK, TimeEntryType.CLOCK_OUT), ClockState.CLOCKED_OUT)
        self.assertIsNone(transition_error(ClockState.CLOCKED_IN, TimeEntryType.CLOCK_OUT))

    def test_invalid_transitions_have_stable_codes(self) -> None:
        self.assertEqual(
            transition_error(ClockState.CLOCKED_OUT, TimeEntryType.CLOCK_OUT)[0],
            "CLOCK_IN_REQUIRED",
        )
        self.assertEqual(
            transition_error(ClockState.CLOCKED_IN, TimeEntryType.CLOCK_IN)[0],
            "ALREADY_CLOCKED_IN",
        )
        self.assertEqual(
            transition_error(ClockState.ON_BREAK, TimeEntryType.BREAK_START)[0],
            "ALREADY_ON_BREAK",
        )
        self.assertEqual(
            transition_error(ClockState.CLOCKED_IN, TimeEntryType.BREAK_END)[0],
            "NOT_ON_BREAK",
        )


class ReplayEntriesTests(unittest.TestCase):
    def test_closed_day_with_break(self) -> None:
        replay = replay_entries(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(8)),
                _entry(2, TimeEntryType.BREAK_START, _ts(12)),
                _entry(3, TimeEntryType.BREAK_END, _ts(12, 30)),
                _entry(4, TimeEntryType.CLOCK_OUT, _ts(16, 30)),
            ]
        )

        self.assertEqual(replay.state, ClockState.CLOCKED_OUT)
        self.assertEqual(replay.worked_minutes, 480)
        self.assertEqual(replay.break_minutes, 30)
        self.assertEqual(replay.first_clock_in, _ts(8))
        self.assertEqual(replay.last_clock_out, _ts(16, 30))
        self.assertIsNone(replay.open_clock_in_id)

    def test_entries_are_replayed_in_timestamp_order(self) -> None:
        replay = replay_entries(
            [
                _entry(4, TimeEntryType.CLOCK_OUT, _ts(14)),
                _entry(1, TimeEntryType.CLOCK_IN, _ts(9)),
            ]
        )
        self.assertEqual(replay.worked_minutes, 300)
        self.assertEqual(replay.rejected_entry_ids, ())

    def test_cancelled_entries_are_ignored(self) -> None:
        replay = replay_entries(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(8)),
                _entry(2, TimeEntryType.CLOCK_OUT, _ts(9), is_cancelled=True),
                _entry(3, TimeEntryType.CLOCK_OUT, _ts(10)),
            ]
        )
        self.assertEqual(replay.worked_minutes, 120)
        self.assertEqual(replay.last_clock_out, _ts(10))

    def test_open_session_accumulates_until_now(self) -> None:
        replay = replay_entries([_entry(7, TimeEntryType.CLOCK_IN, _ts(8))], now=_ts(10, 30))

        self.assertTrue(replay.is_open)
        self.assertEqual(replay.state, ClockState.CLOCKED_IN)
        self.assertEqual(replay.worked_minutes, 150)
        self.assertEqual(replay.open_clock_in_id, 7)
        self.assertEqual(replay.current_segment_started_at, _ts(8))
        self.assertIsNone(replay.last_clock_out)

    def test_open_session_without_now_counts_nothing_after_last_entry(self) -> None:
        replay = replay_entries(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(8)),
                _entry(2, TimeEntryType.BREAK_START, _ts(11)),
            ]
        )
        self.assertTrue(replay.is_on_break)
        self.assertEqual(replay.worked_minutes, 180)
        self.assertEqual(replay.break_minutes, 0)

    def test_consecutive_clock_in_flags_previous_session_as_unresolved(self) -> None:
        replay = replay_entries(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(8)),
                _entry(2, TimeEntryType.CLOCK_IN, _ts(10)),
                _entry(3, TimeEntryType.CLOCK_OUT, _ts(12)),
            ]
        )

        self.assertEqual(replay.incomplete_clock_in_ids, (1,))
        self.assertEqual(replay.unresolved_minutes, 120)
        self.assertEqual(replay.worked_minutes, 120)
        self.assertEqual(replay.first_clock_in, _ts(8))
        self.assertEqual(replay.state, ClockState.CLOCKED_OUT)

    def test_invalid_entries_are_rejected_and_skipped(self) -> None:
        replay = replay_entries(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(8)),
                _entry(2, TimeEntryType.BREAK_END, _ts(9)),
                _entry(3, TimeEntryType.CLOCK_OUT, _ts(10)),
                _entry(4, TimeEntryType.CLOCK_OUT, _ts(11)),
            ]
        )
        self.assertEqual(replay.rejected_entry_ids, (2, 4))
        self.assertEqual(replay.worked_minutes, 120)

    def test_project_switch_splits_project_minutes(self) -> None:
        replay = replay_entries(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(8), project_id=1),
                _entry(2, TimeEntryType.PROJECT_SWITCH, _ts(10), project_id=2, task="Soporte"),
                _entry(3, TimeEntryType.CLOCK_OUT, _ts(12)),
            ]
        )
        self.assertEqual(replay.project_minutes, {1: 120, 2: 120})
        self.assertIsNone(replay.active_project_id)

    def test_project_change_requested_during_break_applies_on_break_end(self) -> None:
        pending = PendingProjectChange(project_id=2, task="Obra norte").to_payload()
        entries = [
            _entry(1, TimeEntryType.CLOCK_IN, _ts(8), project_id=1),
            _entry(2, TimeEntryType.BREAK_START, _ts(10), pending_change=pending),
        ]

        on_break = replay_entries(entries, now=_ts(10, 15))
        self.assertEqual(on_break.active_project_id, 1)
        self.assertEqual(on_break.pending_project_change, PendingProjectChange(project_id=2, task="Obra norte"))

        entries += [
            _entry(3, TimeEntryType.BREAK_END, _ts(10, 30)),
            _entry(4, TimeEntryType.CLOCK_OUT, _ts(12, 30)),
        ]
        closed = replay_entries(entries)
        self.assertEqual(closed.project_minutes, {1: 120, 2: 120})
        self.assertEqual(closed.break_minutes, 30)
        self.assertIsNone(closed.pending_project_change)

    def test_cancelled_pair_does_not_pollute_the_day(self) -> None:
        replay = replay_entries(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(9)),
                _entry(2, TimeEntryType.CLOCK_OUT, _ts(9, 5), is_cancelled=True),
                _entry(3, TimeEntryType.CLOCK_IN, _ts(9, 10)),
                _entry(4, TimeEntryType.CLOCK_OUT, _ts(17, 10)),
            ]
        )
        self.assertEqual(replay.worked_minutes, 480)
        self.assertEqual(replay.incomplete_clock_in_ids, (1,))
        self.assertEqual(replay.unresolved_minutes, 10)

    def test_worked_plus_break_equals_wall_time(self) -> None:
        entries = [
            _entry(1, TimeEntryType.CLOCK_IN, _ts(7, 45)),
            _entry(2, TimeEntryType.BREAK_START, _ts(10, 10)),
            _entry(3, TimeEntryType.BREAK_END, _ts(10, 25)),
            _entry(4, TimeEntryType.PROJECT_SWITCH, _ts(11), project_id=9),
            _entry(5, TimeEntryType.BREAK_START, _ts(13, 2)),
            _entry(6, TimeEntryType.BREAK_END, _ts(13, 47)),
            _entry(7, TimeEntryType.CLOCK_OUT, _ts(16, 15)),
        ]
        replay = replay_entries(entries)
        wall_minutes = int((_ts(16, 15) - _ts(7, 45)).total_seconds() // 60)
        self.assertEqual(replay.worked_minutes + replay.break_minutes, wall_minutes)
        self.assertEqual(replay.break_minutes, 60)

    def test_sub_minute_segments_keep_wall_time(self) -> None:
        start = _ts(8)
        entries = [
            _entry(1, TimeEntryType.CLOCK_IN, start),
            _entry(2, TimeEntryType.BREAK_START, start + timedelta(seconds=30)),
            _entry(3, TimeEntryType.BREAK_END, start + timedelta(seconds=60)),
            _entry(4, TimeEntryType.CLOCK_OUT, start + timedelta(seconds=120)),
        ]
        replay = replay_entries(entries)
        self.assertEqual(replay.worked_minutes, 1)
        self.assertEqual(replay.break_minutes, 1)
        self.assertEqual(replay.worked_minutes + replay.break_minutes, 2)

    def test_visible_entries_hide_project_switches(self) -> None:
        entries = [
            _entry(1, TimeEntryType.CLOCK_IN, _ts(8)),
            _entry(2, TimeEntryType.PROJECT_SWITCH, _ts(9), project_id=3),
            _entry(3, TimeEntryType.CLOCK_OUT, _ts(10)),
        ]
        self.assertEqual([item.id for item in visible_entries(entries)], [1, 3])


class PendingProjectChangeTests(unittest.TestCase):
    def test_from_payload_ignores_foreign_payloads(self) -> None:
        self.assertIsNone(PendingProjectChange.from_payload(None))
        self.assertIsNone(PendingProjectChange.from_payload({"kind": "OTHER", "project_id": 1}))

    def test_from_payload_reads_project_change(self) -> None:
        change = PendingProjectChange.from_payload({"kind": "PROJECT_CHANGE", "project_id": "5", "task": None})
        self.assertEqual(change, PendingProjectChange(project_id=5))


class PartitionWorkdayTests(unittest.TestCase):
    def test_session_crossing_midnight_belongs_to_start_day(self) -> None:
        # 22:00 and 02:00 Madrid time (UTC+1 in February).
        entries = [
            _entry(1, TimeEntryType.CLOCK_IN, _ts(21, day=10)),
            _entry(2, TimeEntryType.CLOCK_OUT, _ts(1, day=11)),
            _entry(3, TimeEntryType.CLOCK_IN, _ts(8, day=11)),
        ]

        first_day = partition_workday_entries(
            entries,
            day=date(2026, 2, 10),
            tz=MADRID,
            max_session=timedelta(hours=16),
        )
        second_day = partition_workday_entries(
            entries,
            day=date(2026, 2, 11),
            tz=MADRID,
            max_session=timedelta(hours=16),
        )

        self.assertEqual([item.id for item in first_day], [1, 2])
        self.assertEqual([item.id for item in second_day], [3])

    def test_entries_beyond_max_session_fall_back_to_their_own_date(self) -> None:
        entries = [
            _entry(1, TimeEntryType.CLOCK_IN, _ts(7, day=10)),
            _entry(2, TimeEntryType.CLOCK_OUT, _ts(9, day=11)),
        ]
        second_day = partition_workday_entries(
            entries,
            day=date(2026, 2, 11),
            tz=MADRID,
            max_session=timedelta(hours=16),
        )
        self.assertEqual([item.id for item in second_day], [2])


class OpenSessionCheckTests(unittest.TestCase):
    def test_within_threshold_needs_no_decision(self) -> None:
        check = check_open_session(
            started_at=_ts(8),
            now=_ts(15),
            tz=MADRID,
            expected_minutes=480,
            threshold_percent=150,
            max_open_hours=16,
        )
        self.assertEqual(check.elapsed_minutes, 420)
        self.assertEqual(check.threshold_minutes, 720)
        self.assertEqual(check.reasons, ())
        self.assertFalse(check.requires_decision)

    def test_excessive_duration_and_crossed_midnight(self) -> None:
        check = check_open_session(
            started_at=_ts(8, day=10),
            now=_ts(1, day=11),
            tz=MADRID,
            expected_minutes=480,
            threshold_percent=150,
            max_open_hours=16,
        )
        self.assertIn(OpenSessionIssue.EXCESSIVE_DURATION, check.reasons)
        self.assertIn(OpenSessionIssue.EXCEEDS_MAX_OPEN_HOURS, check.reasons)
        self.assertIn(OpenSessionIssue.CROSSED_MIDNIGHT, check.reasons)
        self.assertTrue(check.requires_decision)

    def test_without_expected_minutes_uses_max_open_hours(self) -> None:
        check = check_open_session(
            started_at=_ts(6),
            now=_ts(20),
            tz=MADRID,
            expected_minutes=0,
            threshold_percent=150,
            max_open_hours=12,
        )
        self.assertEqual(check.threshold_minutes, 720)
        self.assertEqual(
            check.reasons,
            (OpenSessionIssue.EXCESSIVE_DURATION, OpenSessionIssue.EXCEEDS_MAX_OPEN_HOURS),
        )


class SessionIntervalTests(unittest.TestCase):
    def test_closed_session_covers_its_whole_span(self) -> None:
        intervals = session_intervals(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(8)),
                _entry(2, TimeEntryType.BREAK_START, _ts(12)),
                _entry(3, TimeEntryType.BREAK_END, _ts(12, 30)),
                _entry(4, TimeEntryType.CLOCK_OUT, _ts(18)),
            ]
        )
        self.assertEqual(len(intervals), 1)
        session = intervals[0]
        self.assertEqual((session.clock_in_id, session.start, session.end), (1, _ts(8), _ts(18)))
        self.assertTrue(session.overlaps(_ts(9), _ts(10)))
        self.assertTrue(session.overlaps(_ts(7), _ts(8, 30)))
        self.assertFalse(session.overlaps(_ts(18), _ts(19)))
        self.assertFalse(session.overlaps(_ts(6), _ts(8)))

    def test_open_and_interrupted_sessions(self) -> None:
        intervals = session_intervals(
            [
                _entry(1, TimeEntryType.CLOCK_IN, _ts(7)),
                _entry(2, TimeEntryType.BREAK_START, _ts(9)),
                _entry(3, TimeEntryType.CLOCK_IN, _ts(11)),
                _entry(4, TimeEntryType.CLOCK_OUT, _ts(12), is_cancelled=True),
            ]
        )
        self.assertEqual([(item.clock_in_id, item.end) for item in intervals], [(1, _ts(9)), (3, None)])
        self.assertFalse(intervals[0].overlaps(_ts(9, 30), _ts(10, 30)))
        self.assertTrue(intervals[1].is_open)
        self.assertTrue(intervals[1].overlaps(_ts(15), _ts(16)))
        self.assertFalse(intervals[1].overlaps(_ts(10), _ts(11)))

    def test_clock_in_at_window_start_overlaps(self) -> None:
        intervals = session_intervals(
            [_entry(1, TimeEntryType.CLOCK_IN, _ts(9)), _entry(2, TimeEntryType.CLOCK_IN, _ts(13))]
        )
        self.assertTrue(intervals[0].overlaps(_ts(9), _ts(10)))


if __name__ == "__main__":
    unittest.main()
