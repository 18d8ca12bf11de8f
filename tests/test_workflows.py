from __future__ import annotations

import unittest
from types import SimpleNamespace
from unittest.mock import patch

from fichaje.errors import ApiError
from fichaje.models import Employee, Expense, ExpenseStatus, ShiftStatus, UserRole
from fichaje.schemas import AdminUserActionRequest
from fichaje.security import generate_temporary_password, hash_password, verify_password
from fichaje.services import expenses as expense_service
from fichaje.services import shifts as shift_service
from fichaje.services.users import run_user_action


class _DummyDB:
    def __init__(self, objects: dict[tuple[type, int], object] | None = None) -> None:
        self.objects = objects or {}
        self.added: list[object] = []
        self.commits = 0

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        return self.objects.get((model, pk))

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        return None

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def flush(self) -> None:
        return

    def commit(self) -> None:
        self.commits += 1

    def refresh(self, _obj: object) -> None:
        return


class ExpenseLifecycleTests(unittest.TestCase):
    def test_allowed_transitions(self) -> None:
        self.assertTrue(expense_service.can_transition(ExpenseStatus.DRAFT, ExpenseStatus.SUBMITTED))
        self.assertTrue(expense_service.can_transition(ExpenseStatus.SUBMITTED, ExpenseStatus.REJECTED))
        self.assertTrue(expense_service.can_transition(ExpenseStatus.APPROVED, ExpenseStatus.REIMBURSED))
        self.assertFalse(expense_service.can_transition(ExpenseStatus.DRAFT, ExpenseStatus.APPROVED))
        self.assertFalse(expense_service.can_transition(ExpenseStatus.REIMBURSED, ExpenseStatus.DRAFT))

    def test_submit_sets_timestamp(self) -> None:
        expense = Expense(id=4, employee_id=1, status=ExpenseStatus.DRAFT)
        db = _DummyDB({(Expense, 4): expense})

        result = expense_service.submit_expense(db, 4)

        self.assertIs(result, expense)
        self.assertEqual(expense.status, ExpenseStatus.SUBMITTED)
        self.assertIsNotNone(expense.submitted_at)
        self.assertEqual(db.commits, 1)

    def test_reimbursing_unapproved_expense_is_rejected(self) -> None:
        expense = Expense(id=4, employee_id=1, status=ExpenseStatus.SUBMITTED)
        db = _DummyDB({(Expense, 4): expense})

        with self.assertRaises(ApiError) as exc:
            expense_service.reimburse_expense(db, 4)

        self.assertEqual(exc.exception.code, "INVALID_EXPENSE_TRANSITION")
        self.assertEqual(exc.exception.details, {"current_status": "SUBMITTED", "target_status": "REIMBURSED"})
        self.assertEqual(expense.status, ExpenseStatus.SUBMITTED)
        self.assertEqual(db.commits, 0)

    def test_rejection_keeps_trimmed_reason(self) -> None:
        expense = Expense(id=4, employee_id=1, status=ExpenseStatus.SUBMITTED)
        db = _DummyDB({(Expense, 4): expense})

        expense_service.reject_expense(db, 4, reason="  Falta el ticket  ")

        self.assertEqual(expense.status, ExpenseStatus.REJECTED)
        self.assertEqual(expense.rejection_reason, "Falta el ticket")


class ShiftLifecycleTests(unittest.TestCase):
    def test_allowed_transitions(self) -> None:
        self.assertTrue(shift_service.can_transition(ShiftStatus.DRAFT, ShiftStatus.PUBLISHED))
        self.assertTrue(shift_service.can_transition(ShiftStatus.PENDING_APPROVAL, ShiftStatus.DRAFT))
        self.assertTrue(shift_service.can_transition(ShiftStatus.PUBLISHED, ShiftStatus.CLOSED))
        self.assertFalse(shift_service.can_transition(ShiftStatus.CLOSED, ShiftStatus.PUBLISHED))
        self.assertFalse(shift_service.can_transition(ShiftStatus.PUBLISHED, ShiftStatus.DRAFT))

    def test_invalid_status_change(self) -> None:
        shift = SimpleNamespace(id=2, status=ShiftStatus.CLOSED, assignments=[])
        db = _DummyDB()

        with patch("fichaje.services.shifts.get_shift", return_value=shift):
            with self.assertRaises(ApiError) as exc:
                shift_service.change_shift_status(db, 2, ShiftStatus.PUBLISHED)

        self.assertEqual(exc.exception.code, "INVALID_SHIFT_TRANSITION")
        self.assertEqual(db.commits, 0)

    def test_closed_shift_assignments_are_frozen(self) -> None:
        shift = SimpleNamespace(id=2, org_id=1, status=ShiftStatus.CLOSED, assignments=[])

        with patch("fichaje.services.shifts.get_shift", return_value=shift):
            with self.assertRaises(ApiError) as exc:
                shift_service.assign_employee(_DummyDB(), 2, 9)

        self.assertEqual(exc.exception.code, "SHIFT_CLOSED")

    def test_duplicate_assignment(self) -> None:
        shift = SimpleNamespace(
            id=2,
            org_id=1,
            status=ShiftStatus.PUBLISHED,
            assignments=[SimpleNamespace(employee_id=9)],
        )
        employee = SimpleNamespace(id=9, org_id=1)

        db = _DummyDB({(Employee, 9): employee})

        with patch("fichaje.services.shifts.get_shift", return_value=shift):
            with self.assertRaises(ApiError) as exc:
                shift_service.assign_employee(db, 2, 9)

        self.assertEqual(exc.exception.code, "ALREADY_ASSIGNED")


class UserActionTests(unittest.TestCase):
    def test_temporary_password_mixes_character_classes(self) -> None:
        password = generate_temporary_password(12)
        self.assertEqual(len(password), 12)
        self.assertTrue(any(char.isupper() for char in password))
        self.assertTrue(any(char.islower() for char in password))
        self.assertTrue(any(char.isdigit() for char in password))
        self.assertFalse(set(password) & set("0O1lI"))

    def test_minimum_password_length(self) -> None:
        self.assertEqual(len(generate_temporary_password(4)), 8)

    def test_password_hash_round_trip(self) -> None:
        password_hash = hash_password("Clave-Segura-9")
        self.assertTrue(verify_password("Clave-Segura-9", password_hash))
        self.assertFalse(verify_password("otra", password_hash))
        self.assertFalse(verify_password("otra", "not-a-hash"))

    def test_reset_password_clears_lockout(self) -> None:
        user = SimpleNamespace(
            id=3,
            email="ana@example.com",
            role=UserRole.EMPLOYEE,
            is_active=True,
            password_hash="old",
            must_change_password=False,
            failed_login_attempts=4,
            locked_until="2026-02-09T10:00:00Z",
        )
        db = _DummyDB()

        with (
            patch("fichaje.services.users._get_user", return_value=user),
            patch("fichaje.services.users.hash_password", return_value="hashed"),
            patch("fichaje.services.users.log_audit") as audit_mock,
        ):
            result = run_user_action(db, AdminUserActionRequest(action="reset-password", user_id=3))

        self.assertEqual(user.password_hash, "hashed")
        self.assertTrue(user.must_change_password)
        self.assertEqual(user.failed_login_attempts, 0)
        self.assertIsNone(user.locked_until)
        self.assertIsNotNone(result.temporary_password)
        self.assertEqual(audit_mock.call_args.kwargs["action"], "USER_RESET_PASSWORD")
        self.assertEqual(db.commits, 1)

    def test_create_requires_existing_organization(self) -> None:
        payload = AdminUserActionRequest(
            action="create",
            org_id=1,
            email="nuevo@example.com",
            full_name="Nuevo Usuario",
        )
        with self.assertRaises(ApiError) as exc:
            run_user_action(_DummyDB(), payload)
        self.assertEqual(exc.exception.code, "ORGANIZATION_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
