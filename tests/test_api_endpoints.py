from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from fichaje.db import get_db
from fichaje.errors import ApiError
from fichaje.main import app
from fichaje.models import Employee, TimeEntry, TimeEntryType
from fichaje.services.attendance_state import ClockState
from fichaje.services.clock_alerts import AlertSeverity, ClockAlert
from fichaje.services.time_tracking import ClockActionResult


class _FakeDB:
    def __init__(self, objects: dict[tuple[type, int], object] | None = None) -> None:
        self.objects = objects or {}

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        return self.objects.get((model, pk))

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        return None

    def commit(self) -> None:
        return None

    def refresh(self, _obj) -> None:  # type: ignore[no-untyped-def]
        return None


def _override_get_db(fake_db: _FakeDB):
    def _override() -> Generator[_FakeDB, None, None]:
        yield fake_db

    return _override


def _clock_in_entry() -> TimeEntry:
    return TimeEntry(
        id=21,
        employee_id=1,
        entry_type=TimeEntryType.CLOCK_IN,
        timestamp=datetime(2026, 2, 9, 8, 0, tzinfo=timezone.utc),
        requires_review=False,
        is_manual=False,
        is_automatic=False,
        is_cancelled=False,
    )


class ClockEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB())
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_clock_in_returns_action_envelope(self) -> None:
        result = ClockActionResult(
            entry=_clock_in_entry(),
            state=ClockState.CLOCKED_IN,
            alerts=[
                ClockAlert(
                    type="NO_LOCATION",
                    severity=AlertSeverity.WARNING,
                    title="Fichaje sin ubicacion",
                    description="Sin coordenadas.",
                )
            ],
        )

        with patch("fichaje.routers.time_tracking.clock_in", return_value=result) as clock_in_mock:
            response = self.client.post("/api/employees/1/clock/in", json={"project_id": 3})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertFalse(body["isOnBreak"])
        self.assertEqual(body["alerts"][0]["type"], "NO_LOCATION")
        self.assertNotIn("deviation_minutes", body["alerts"][0])
        self.assertEqual(body["data"]["state"], "CLOCKED_IN")
        self.assertEqual(body["data"]["entry"]["id"], 21)
        self.assertEqual(body["data"]["entry"]["entry_type"], "CLOCK_IN")
        self.assertEqual(clock_in_mock.call_args.kwargs["project_id"], 3)

    def test_clock_in_conflict_uses_error_envelope(self) -> None:
        error = ApiError(
            status_code=409,
            code="ALREADY_CLOCKED_IN",
            message="Ya tienes una jornada abierta.",
            details={"state": "CLOCKED_IN"},
        )

        with patch("fichaje.routers.time_tracking.clock_in", side_effect=error):
            response = self.client.post(
                "/api/employees/1/clock/in",
                json={},
                headers={"X-Request-Id": "req-123"},
            )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.headers["X-Request-Id"], "req-123")
        self.assertEqual(
            response.json(),
            {
                "success": False,
                "error": "Ya tienes una jornada abierta.",
                "code": "ALREADY_CLOCKED_IN",
                "request_id": "req-123",
                "details": {"state": "CLOCKED_IN"},
            },
        )

    def test_invalid_coordinates_are_rejected(self) -> None:
        with patch("fichaje.routers.time_tracking.clock_in") as clock_in_mock:
            response = self.client.post("/api/employees/1/clock/in", json={"latitude": 120})

        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertEqual(body["code"], "VALIDATION_ERROR")
        self.assertEqual(body["error"], "Datos de entrada no validos.")
        self.assertEqual(body["details"][0]["field"], "latitude")
        clock_in_mock.assert_not_called()

    def test_range_summary_rejects_reversed_dates(self) -> None:
        response = self.client.get(
            "/api/employees/1/summary/range",
            params={"start_date": "2026-02-10", "end_date": "2026-02-01"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["code"], "INVALID_DATE_RANGE")


class AdminEndpointTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_missing_expense_returns_not_found_envelope(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB())
        client = TestClient(app)

        response = client.post("/api/expenses/99/submit")

        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["code"], "NOT_FOUND")
        self.assertEqual(body["error"], "Expense not found")

    def test_overlapping_day_pattern_slots_are_rejected(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB())
        client = TestClient(app)

        with patch("fichaje.routers.schedules.upsert_day_pattern") as upsert_mock:
            response = client.put(
                "/api/admin/schedule-periods/1/day-patterns",
                json={
                    "day_of_week": 0,
                    "time_slots": [
                        {"start_minutes": 540, "end_minutes": 840},
                        {"start_minutes": 800, "end_minutes": 1000},
                    ],
                },
            )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertIn("solaparse", response.json()["details"][0]["message"])
        upsert_mock.assert_not_called()

    def test_csv_export_has_bom_and_attachment_name(self) -> None:
        employee = Employee(id=1, org_id=1, full_name="Ana García", is_active=True)
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB({(Employee, 1): employee}))
        client = TestClient(app)

        with (
            patch("fichaje.routers.reports.summarize_days", return_value=[]),
            patch("fichaje.routers.reports.log_audit") as audit_mock,
        ):
            response = client.get(
                "/api/employees/1/exports/csv",
                params={"start_date": "2026-02-01", "end_date": "2026-02-28"},
            )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.content.startswith(b"\xef\xbb\xbf"))
        self.assertTrue(response.content.decode("utf-8-sig").startswith("Fecha,Tipo,Hora"))
        self.assertIn("fichajes-ana-garcia-daily-", response.headers["content-disposition"])
        self.assertEqual(audit_mock.call_args.kwargs["action"], "TIME_TRACKING_EXPORT_CSV")


class HealthEndpointTests(unittest.TestCase):
    def test_health_reports_unreachable_database(self) -> None:
        broken_engine = MagicMock()
        broken_engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        with patch("fichaje.main.engine", broken_engine):
            response = TestClient(app).get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertEqual(response.json()["database"], "unreachable")

    def test_health_with_database(self) -> None:
        engine = MagicMock()
        connection = engine.connect.return_value.__enter__.return_value
        connection.execute.return_value = SimpleNamespace()

        with patch("fichaje.main.engine", engine):
            response = TestClient(app).get("/health")

        self.assertEqual(response.json()["database"], "ok")
        connection.execute.assert_called_once()


if __name__ == "__main__":
    unittest.main()
