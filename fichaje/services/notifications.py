from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from fichaje.models import DismissedNotification, NotificationKind

logger = logging.getLogger("fichaje.notifications")


def dismissed_reference_ids(
    db: Session,
    *,
    employee_id: int,
    kind: NotificationKind,
) -> set[int]:
    return set(
        db.scalars(
            select(DismissedNotification.reference_id).where(
                DismissedNotification.employee_id == employee_id,
                DismissedNotification.kind == kind,
            )
        ).all()
    )


def dismiss_notification(
    db: Session,
    *,
    employee_id: int,
    kind: NotificationKind,
    reference_id: int,
) -> DismissedNotification:
    existing = db.scalar(
        select(DismissedNotification).where(
            DismissedNotification.employee_id == employee_id,
            DismissedNotification.kind == kind,
            DismissedNotification.reference_id == reference_id,
        )
    )
    if existing is not None:
        return existing

    dismissed = DismissedNotification(
        employee_id=employee_id,
        kind=kind,
        reference_id=reference_id,
    )
    db.add(dismissed)
    db.commit()
    db.refresh(dismissed)
    logger.info(
        "notification_dismissed",
        extra={"employee_id": employee_id, "kind": kind.value, "reference_id": reference_id},
    )
    return dismissed
