"""
Variation Order Service — batch amendments to an approved quotation.

A VO collects cost lines it adds (``vo_add_id``) and lines it removes
(``vo_delete_id``).  Neither side affects project totals until the VO is
APPROVED.  Quorum: the CEO alone, or every non-CEO seat unanimously.  A CEO
rejection closes the round as REJECTED; the VO can then be edited and
resubmitted with a fresh roster.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from app.models import db
from app.models.auth import Role
from app.models.project import Project
from app.models.purchase_order import APPROVER_WAITING, DISCOUNT_FIXED
from app.models.variation_order import (
    VO_APPROVED,
    VO_EDITABLE,
    VO_REJECTED,
    VO_WAITING_APPROVAL,
    VariationOrder,
    VOApprover,
)
from app.services.approval_roster import Seat, ceo_or_unanimous, ceo_rejected, rebuild_roster, record_decision
from app.services.ledger_store import CostItemFilter, LedgerStore
from app.services.purchase_order_service import discount_fields
from app.services.unit_of_work import ledger_operation

logger = logging.getLogger(__name__)


def _editable_vo(store: LedgerStore, vo_id: int) -> VariationOrder:
    vo = store.get(VariationOrder, vo_id)
    if vo.status not in VO_EDITABLE:
        raise ConflictError(
            "Variation order can no longer be changed",
            resource="VariationOrder", field="status", value=vo.status,
        )
    return vo


@ledger_operation
def create_vo(uow, project_id: int, data: dict, actor) -> dict:
    store = LedgerStore(uow)
    project = store.get(Project, project_id)
    if not project.is_locked:
        raise ConflictError(
            "Variation orders amend approved quotations only",
            resource="Project", field="quotation_status", value=project.quotation_status,
        )
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    vo = store.add(VariationOrder(project_id=project.id, name=name, **discount_fields(data)))
    logger.info("Variation order created", extra={"project_id": project.id, "vo_id": vo.id, "user_id": actor.user_id})
    return {"vo": vo.to_dict()}


@ledger_operation
def remove_cost_item(uow, vo_id: int, cost_item_id: int) -> dict:
    """Mark an accepted top-level cost line for removal by the VO."""
    store = LedgerStore(uow)
    vo = _editable_vo(store, vo_id)
    item = store.load_cost_item(cost_item_id, project_id=vo.project_id)
    if item.parent_id is not None or item.is_parent:
        raise ConflictError(
            "Budget-linked cost items cannot be removed by a variation order",
            resource="CostItem", field="id", value=str(item.id),
        )
    if item.vo_add_id == vo.id:
        raise ConflictError(
            "Cost item was added by this variation order",
            resource="CostItem", field="vo_add_id", value=str(vo.id),
        )
    if item.vo_delete_id is not None and item.vo_delete_id != vo.id:
        raise ConflictError(
            "Cost item is already removed by another variation order",
            resource="CostItem", field="vo_delete_id", value=str(item.vo_delete_id),
        )
    item.vo_delete_id = vo.id
    uow.flush()
    return {"cost_item": item.to_dict()}


def _vo_seats(store: LedgerStore, project: Project) -> list[Seat]:
    manager = store.active_user(project.manage_by)
    sale = store.active_user(project.sale_by)
    return [
        Seat(role_key=Role.CEO.value),
        Seat(role_key=Role.PROCUREMENT_MANAGER.value),
        Seat(role_key=Role.PM.value, user_id=manager.id if manager else None),
        Seat(role_key=Role.SALE.value, user_id=sale.id if sale else None),
    ]


@ledger_operation
def submit_vo(uow, vo_id: int, actor) -> dict:
    store = LedgerStore(uow)
    vo = _editable_vo(store, vo_id)
    project = store.get(Project, vo.project_id)
    added = store.load_cost_items(CostItemFilter(vo_add_id=vo.id))
    removed = store.load_cost_items(CostItemFilter(vo_delete_id=vo.id))
    if not added and not removed:
        raise ValidationError("Variation order has no cost changes")

    approvers = rebuild_roster(store, VOApprover, "vo_id", vo.id, _vo_seats(store, project))
    vo.status = VO_WAITING_APPROVAL
    uow.flush()
    logger.info("Variation order submitted", extra={"project_id": project.id, "vo_id": vo.id, "user_id": actor.user_id})
    return {"vo": vo.to_dict(), "approvers": [a.to_dict() for a in approvers]}


def vo_difference(store: LedgerStore, vo: VariationOrder) -> tuple[float, float]:
    """Net cost delta of the VO after discount, and the VAT on it."""
    total = sum(item.total for item in store.load_cost_items(CostItemFilter(vo_add_id=vo.id)))
    total -= sum(item.total for item in store.load_cost_items(CostItemFilter(vo_delete_id=vo.id)))
    if vo.discount_type == DISCOUNT_FIXED:
        discount = vo.discount_amount or 0
    else:
        discount = (vo.discount_amount or 0) * total / 100
    without_vat = total - discount
    return without_vat, (vo.vat_percent or 0) * without_vat / 100


@ledger_operation
def decide_vo(uow, vo_id: int, decision: str, actor, comment: str | None = None) -> dict:
    """Record the actor's decision on their open seat and settle the VO."""
    store = LedgerStore(uow)
    vo = store.get(VariationOrder, vo_id)
    if vo.status != VO_WAITING_APPROVAL:
        raise ConflictError(
            "Variation order is not waiting for approval",
            resource="VariationOrder", field="status", value=vo.status,
        )
    project = store.get(Project, vo.project_id)
    if not project.is_locked:
        raise ConflictError(
            "Project quotation is not approved",
            resource="Project", field="quotation_status", value=project.quotation_status,
        )

    approvers = vo.approvers.all()
    role_seats = [a for a in approvers if a.role_key == actor.role.value]
    if not role_seats:
        raise PermissionDeniedError(
            f"Role {actor.role.value} has no seat on this variation order", role=actor.role.value,
        )
    # Prefer an open seat this actor may take; otherwise record_decision reports why not
    seat = next(
        (a for a in role_seats if a.status == APPROVER_WAITING and a.user_id in (None, actor.user_id)),
        role_seats[0],
    )
    record_decision(seat, decision, actor, comment)
    uow.flush()

    if ceo_or_unanimous(approvers):
        vo.diff_total, vo.diff_vat = vo_difference(store, vo)
        vo.status = VO_APPROVED
    elif ceo_rejected(approvers):
        vo.status = VO_REJECTED
    uow.flush()

    logger.info(
        "Variation order decided",
        extra={"vo_id": vo.id, "approver_id": seat.id, "status": decision, "vo_status": vo.status, "user_id": actor.user_id},
    )
    return {"vo": vo.to_dict(), "approver": seat.to_dict()}


def list_approvers(vo_id: int) -> list[dict]:
    stmt = select(VOApprover).where(VOApprover.vo_id == vo_id).order_by(VOApprover.id)
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]
