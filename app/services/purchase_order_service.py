"""
Purchase Order Service — PO lifecycle and approval escalation.

Lifecycle:
    PROCESSING ──submit──► WAITING_APPROVAL ──all seats approve──► APPROVED
         ▲                       │
         └──── resubmit ◄── REJECTED (any seat rejects)
    any non-frozen status ──freeze──► FREEZED ──defrost──► previous status

Roster on submit: the project manager, a procurement manager, and a CEO
seat when the PO's attached cost reaches the project's ``max_po_price``.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.auth import Role
from app.models.project import Project, Vendor
from app.models.purchase_order import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENT,
    PO_APPROVED,
    PO_CANCELLED,
    PO_DEFROST,
    PO_FREEZED,
    PO_PROCESSING,
    PO_REJECTED,
    PO_REQUESTABLE,
    PO_SUBMITTABLE,
    PO_WAITING_APPROVAL,
    PurchaseOrder,
    PurchaseOrderApprover,
)
from app.services.approval_roster import Seat, all_approved, any_rejected, rebuild_roster, record_decision
from app.services.ledger_store import CostItemFilter, LedgerStore
from app.services.unit_of_work import ledger_operation

logger = logging.getLogger(__name__)

PO_ATTACHABLE = frozenset({PO_PROCESSING, PO_REJECTED})


def discount_fields(data: dict) -> dict:
    discount_type = data.get("discount_type", DISCOUNT_PERCENT)
    if discount_type not in (DISCOUNT_PERCENT, DISCOUNT_FIXED):
        raise ValidationError("discount_type must be '%' or '$'", details={"discount_type": discount_type})
    try:
        vat_percent = float(data.get("vat_percent") or 0)
        discount_amount = float(data.get("discount_amount") or 0)
    except (TypeError, ValueError) as err:
        raise ValidationError("vat_percent and discount_amount must be numbers") from err
    if vat_percent < 0 or discount_amount < 0:
        raise ValidationError("vat_percent and discount_amount must not be negative")
    return {"discount_type": discount_type, "vat_percent": vat_percent, "discount_amount": discount_amount}


def list_purchase_orders(project_id: int) -> list[dict]:
    stmt = select(PurchaseOrder).where(PurchaseOrder.project_id == project_id).order_by(PurchaseOrder.id)
    return [po.to_dict() for po in db.session.execute(stmt).scalars().all()]


@ledger_operation
def create_purchase_order(uow, project_id: int, data: dict, actor) -> dict:
    store = LedgerStore(uow)
    project = store.get(Project, project_id)
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    vendor_id = data.get("vendor_id")
    if vendor_id is not None:
        store.get(Vendor, vendor_id)

    po = store.add(PurchaseOrder(project_id=project.id, name=name, vendor_id=vendor_id, **discount_fields(data)))
    logger.info(
        "Purchase order created",
        extra={"project_id": project.id, "purchase_order_id": po.id, "user_id": actor.user_id},
    )
    return {"purchase_order": po.to_dict()}


@ledger_operation
def attach_cost_items(uow, purchase_order_id: int, cost_item_ids: list[int]) -> dict:
    """Attach accepted, non-parent cost items of the same project to a PO."""
    store = LedgerStore(uow)
    po = store.get(PurchaseOrder, purchase_order_id)
    if po.status not in PO_ATTACHABLE:
        raise ConflictError(
            "Purchase order can no longer be changed",
            resource="PurchaseOrder", field="status", value=po.status,
        )
    for item_id in cost_item_ids or []:
        item = store.load_cost_item(item_id, project_id=po.project_id)
        if item.is_parent or not item.is_accepted:
            raise ConflictError(
                "Only accepted leaf cost items can be ordered",
                resource="CostItem", field="id", value=str(item.id),
            )
        if item.purchase_order_id not in (None, po.id):
            raise ConflictError(
                "Cost item is already on another purchase order",
                resource="CostItem", field="purchase_order_id", value=str(item.purchase_order_id),
            )
        item.purchase_order_id = po.id
    uow.flush()
    items = store.load_cost_items(CostItemFilter(purchase_order_id=po.id))
    return {"purchase_order": po.to_dict(), "cost_items": [i.to_dict() for i in items]}


def _po_seats(store: LedgerStore, project: Project, total: float) -> list[Seat]:
    manager = store.active_user(project.manage_by)
    if manager is None:
        raise ConflictError(
            "Project has no active manager",
            resource="Project", field="manage_by", value=str(project.manage_by),
        )
    if store.first_active_user_with_role(Role.PROCUREMENT_MANAGER) is None:
        raise ConflictError(
            "No active procurement manager",
            resource="User", field="role_key", value=Role.PROCUREMENT_MANAGER.value,
        )
    seats = [
        Seat(role_key=manager.role_key, user_id=manager.id),
        Seat(role_key=Role.PROCUREMENT_MANAGER.value),
    ]
    if project.max_po_price is not None and total >= project.max_po_price:
        if store.first_active_user_with_role(Role.CEO) is None:
            raise ConflictError(
                "No active CEO for an escalated purchase order",
                resource="User", field="role_key", value=Role.CEO.value,
            )
        seats.append(Seat(role_key=Role.CEO.value))
    return seats


def _submit(store: LedgerStore, po: PurchaseOrder) -> None:
    if po.status not in PO_SUBMITTABLE:
        raise ConflictError(
            "Purchase order cannot be submitted from its current status",
            resource="PurchaseOrder", field="status", value=po.status,
        )
    project = store.get(Project, po.project_id)
    if not project.is_locked:
        raise ConflictError(
            "Project quotation is not approved",
            resource="Project", field="quotation_status", value=project.quotation_status,
        )
    items = store.load_cost_items(CostItemFilter(purchase_order_id=po.id))
    if not items:
        raise ValidationError("Purchase order has no cost items")
    for item in items:
        if store.waiting_modification(item.id) is not None:
            raise ConflictError(
                "Purchase order has cost items with pending modifications",
                resource="CostItem", field="id", value=str(item.id),
            )
    total = sum(item.total for item in items)
    rebuild_roster(store, PurchaseOrderApprover, "purchase_order_id", po.id, _po_seats(store, project, total))
    po.status = PO_WAITING_APPROVAL


@ledger_operation
def change_status(uow, purchase_order_id: int, status: str, actor) -> dict:
    """Submit (WAITING_APPROVAL) or cancel (CANCELLED) a purchase order."""
    if status not in PO_REQUESTABLE:
        raise ValidationError(
            f"Status must be one of {sorted(PO_REQUESTABLE)}", details={"status": status},
        )
    store = LedgerStore(uow)
    po = store.get(PurchaseOrder, purchase_order_id)

    if status == PO_WAITING_APPROVAL:
        _submit(store, po)
    else:
        if po.status in (PO_APPROVED, PO_FREEZED, PO_CANCELLED):
            raise ConflictError(
                "Purchase order cannot be cancelled from its current status",
                resource="PurchaseOrder", field="status", value=po.status,
            )
        po.status = PO_CANCELLED
    uow.flush()

    logger.info(
        "Purchase order status changed",
        extra={"purchase_order_id": po.id, "status": po.status, "user_id": actor.user_id},
    )
    return {
        "purchase_order": po.to_dict(),
        "approvers": [a.to_dict() for a in po.approvers],
    }


@ledger_operation
def change_freeze(uow, purchase_order_id: int, action: str, actor) -> dict:
    """Freeze a PO (remembering its status) or defrost it back."""
    store = LedgerStore(uow)
    po = store.get(PurchaseOrder, purchase_order_id)
    if action == PO_FREEZED:
        if po.status == PO_FREEZED:
            raise ConflictError(
                "Purchase order is already frozen",
                resource="PurchaseOrder", field="status", value=po.status,
            )
        po.old_status, po.status = po.status, PO_FREEZED
    elif action == PO_DEFROST:
        if po.status != PO_FREEZED:
            raise ConflictError(
                "Purchase order is not frozen",
                resource="PurchaseOrder", field="status", value=po.status,
            )
        po.status, po.old_status = po.old_status or PO_PROCESSING, None
    else:
        raise ValidationError(
            f"Action must be {PO_FREEZED} or {PO_DEFROST}", details={"status": action},
        )
    uow.flush()
    logger.info(
        "Purchase order freeze changed",
        extra={"purchase_order_id": po.id, "status": po.status, "user_id": actor.user_id},
    )
    return {"purchase_order": po.to_dict()}


def list_approvers(purchase_order_id: int) -> list[dict]:
    stmt = (
        select(PurchaseOrderApprover)
        .where(PurchaseOrderApprover.purchase_order_id == purchase_order_id)
        .order_by(PurchaseOrderApprover.id)
    )
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]


@ledger_operation
def decide_approver(uow, approver_id: int, decision: str, actor, comment: str | None = None) -> dict:
    """Record one seat's decision and settle the PO when the round is complete."""
    store = LedgerStore(uow)
    approver = store.get(PurchaseOrderApprover, approver_id)
    po = store.get(PurchaseOrder, approver.purchase_order_id)
    if po.status != PO_WAITING_APPROVAL:
        raise ConflictError(
            "Purchase order is not waiting for approval",
            resource="PurchaseOrder", field="status", value=po.status,
        )
    record_decision(approver, decision, actor, comment)
    uow.flush()

    approvers = po.approvers.all()
    if any_rejected(approvers):
        po.status = PO_REJECTED
    elif all_approved(approvers):
        po.status = PO_APPROVED
    uow.flush()

    logger.info(
        "Purchase order approver decided",
        extra={
            "purchase_order_id": po.id,
            "approver_id": approver.id,
            "status": decision,
            "po_status": po.status,
            "user_id": actor.user_id,
        },
    )
    return {"purchase_order": po.to_dict(), "approver": approver.to_dict()}
