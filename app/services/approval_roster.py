"""
Shared multi-role approval roster for purchase orders and variation orders.

A roster is a list of approver seats attached to an approvable entity.
Every (re)submission deletes the old seats and creates fresh ones, so a
decision from an earlier round can never count towards a new one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete

from app.core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from app.models.auth import Role
from app.models.purchase_order import (
    APPROVER_APPROVED,
    APPROVER_DECISIONS,
    APPROVER_REJECTED,
    APPROVER_WAITING,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Seat:
    role_key: str
    user_id: int | None = None


def rebuild_roster(store, approver_model, owner_field: str, owner_id: int, seats: list[Seat]) -> list:
    """Replace every approver row of the owner with fresh WAITING seats."""
    owner_column = getattr(approver_model, owner_field)
    store.session.execute(delete(approver_model).where(owner_column == owner_id))
    rows = []
    for seat in seats:
        row = approver_model(
            role_key=seat.role_key,
            user_id=seat.user_id,
            status=APPROVER_WAITING,
            **{owner_field: owner_id},
        )
        store.session.add(row)
        rows.append(row)
    store.uow.flush()
    logger.info(
        "Approver roster rebuilt",
        extra={"owner": approver_model.__tablename__, "owner_id": owner_id, "seats": [s.role_key for s in seats]},
    )
    return rows


def record_decision(approver, decision: str, actor, comment: str | None = None) -> None:
    """Record ``actor``'s decision on one seat.

    Raises:
        ValidationError: unknown decision.
        ConflictError: the seat was already decided.
        PermissionDeniedError: the actor does not hold the seat's role or the
            seat is assigned to another user.
    """
    if decision not in APPROVER_DECISIONS:
        raise ValidationError(
            f"Decision must be one of {sorted(APPROVER_DECISIONS)}",
            details={"status": decision},
        )
    if approver.status != APPROVER_WAITING:
        raise ConflictError(
            "Approver has already decided",
            resource=type(approver).__name__, field="status", value=approver.status,
        )
    if approver.role_key != actor.role.value:
        raise PermissionDeniedError(
            f"Seat requires role {approver.role_key}", role=actor.role.value,
        )
    if approver.user_id is not None and approver.user_id != actor.user_id:
        raise PermissionDeniedError(
            "Seat is assigned to another user", role=actor.role.value,
        )
    approver.status = decision
    approver.user_id = actor.user_id
    approver.comment = comment
    approver.decided_at = datetime.now(timezone.utc)


def all_approved(approvers) -> bool:
    """PO quorum: every seat approved."""
    return bool(approvers) and all(a.status == APPROVER_APPROVED for a in approvers)


def any_rejected(approvers) -> bool:
    return any(a.status == APPROVER_REJECTED for a in approvers)


def ceo_or_unanimous(approvers) -> bool:
    """VO quorum: the CEO approved, or every non-CEO seat approved."""
    ceo_seats = [a for a in approvers if a.role_key == Role.CEO.value]
    others = [a for a in approvers if a.role_key != Role.CEO.value]
    if any(a.status == APPROVER_APPROVED for a in ceo_seats):
        return True
    return bool(others) and all(a.status == APPROVER_APPROVED for a in others)


def ceo_rejected(approvers) -> bool:
    return any(a.role_key == Role.CEO.value and a.status == APPROVER_REJECTED for a in approvers)
