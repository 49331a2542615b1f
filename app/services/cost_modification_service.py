"""
Cost Modification Service — direct revisions and the approval state machine.

States:
    WAITING ─┬─► VALID      (reallocation only, no approver)
             ├─► APPROVED   (explicit decision)
             └─► REJECTED   (explicit decision)

VALID, APPROVED and REJECTED are final.  Decisions re-validate the project
state and the Extra-Fee Gate at decision time; nothing checked when the
request was created is trusted.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.cost import (
    MOD_APPROVED,
    MOD_VALID,
    MOD_WAITING,
    MODIFICATION_DECISIONS,
    CostItem,
    CostModification,
    validate_modification_transition,
)
from app.models.project import Project
from app.services.cost_aggregation import extra_fee_cap, extra_fee_exceeded, sum_project_cost
from app.services.cost_ledger import (
    accept_values,
    cascade_rejection,
    contribution,
    ensure_no_waiting,
    old_pair_for,
    totals_equal,
)
from app.services.ledger_store import LedgerStore
from app.services.permission import DecisionContext, require_decision_authority, skips_growth_review
from app.services.unit_of_work import ledger_operation

logger = logging.getLogger(__name__)


def list_modifications(project_id: int, status: str | None = None) -> list[dict]:
    """Return the project's modification ledger, newest first."""
    stmt = select(CostModification).where(CostModification.project_id == project_id)
    if status:
        stmt = stmt.where(CostModification.status == status)
    stmt = stmt.order_by(CostModification.id.desc())
    return [mod.to_dict() for mod in db.session.execute(stmt).scalars().all()]


def _require_locked_project(store: LedgerStore, project_id: int) -> Project:
    project = store.get(Project, project_id)
    if not project.is_locked:
        raise ConflictError(
            "Project quotation is not approved",
            resource="Project", field="quotation_status", value=project.quotation_status,
        )
    return project


def validate_cost_values(amount, price) -> tuple[float, float]:
    try:
        amount, price = float(amount), float(price)
    except (TypeError, ValueError) as err:
        raise ValidationError(
            "amount and price must be numbers",
            details={"amount": str(amount), "price": str(price)},
        ) from err
    if amount < 0 or price < 0:
        raise ValidationError(
            "amount and price must not be negative",
            details={"amount": amount, "price": price},
        )
    return amount, price


def apply_modify_cost(store: LedgerStore, item: CostItem, amount, price, actor, vendor_id=None):
    """Revise a top-level cost item inside the caller's unit of work.

    Returns the new CostModification, or None when the change is a no-op.
    """
    project = _require_locked_project(store, item.project_id)
    if item.parent_id is not None:
        raise ValidationError(
            "Child cost items are revised through their parent's budget",
            details={"parent_id": item.parent_id},
        )
    if item.is_parent:
        raise ConflictError(
            "Cost item has child revisions; its budget is fixed",
            resource="CostItem", field="is_parent", value="true",
        )
    ensure_no_waiting(store, item)
    amount, price = validate_cost_values(amount, price)

    if vendor_id is not None:
        item.vendor_id = vendor_id

    is_new = item.is_extra and item.bk_price is None
    old_pair = old_pair_for(item, price, is_new)
    new_pair = (amount, price)
    new_total = amount * price
    if totals_equal(old_pair[0] * old_pair[1], new_total):
        logger.info(
            "Cost change is a no-op, nothing recorded",
            extra={"project_id": project.id, "cost_item_id": item.id},
        )
        return None

    if skips_growth_review(actor):
        status = MOD_VALID
    else:
        if item.bk_price is not None:
            base_total = (item.bk_amount or 0) * item.bk_price
        else:
            base_total = item.total
        growth_limit = base_total * (project.extra_cost_fee or 0) / 100
        status = MOD_WAITING if is_new or new_total - base_total > growth_limit else MOD_VALID

    old_total = contribution(item)
    if status == MOD_VALID:
        summary = sum_project_cost(project.id, store.session)
        if extra_fee_exceeded(project, summary, old_total, new_total):
            status = MOD_WAITING

    mod = store.create_modification(item, old_pair, new_pair, status)
    if status == MOD_VALID:
        accept_values(item, new_pair, old_pair)
    store.uow.flush()

    logger.info(
        "Cost modification requested",
        extra={
            "project_id": project.id,
            "cost_item_id": item.id,
            "modification_id": mod.id,
            "status": status,
            "user_id": actor.user_id,
        },
    )
    return mod


@ledger_operation
def modify_cost(uow, cost_item_id: int, amount, price, actor, vendor_id=None) -> dict:
    """Request a direct revision of a top-level cost item."""
    store = LedgerStore(uow)
    item = store.load_cost_item(cost_item_id)
    mod = apply_modify_cost(store, item, amount, price, actor, vendor_id=vendor_id)
    return {
        "cost_item": item.to_dict(),
        "modification": mod.to_dict() if mod else None,
    }


@ledger_operation
def decide(uow, modification_id: int, decision: str, actor) -> dict:
    """Approve or reject a WAITING cost modification.

    Raises:
        ValidationError: ``decision`` is not APPROVED or REJECTED.
        NotFoundError: modification or its cost item is missing.

    Refusals (returned as a failed LedgerResult):
        ConflictError: modification already resolved or project not approved.
        PermissionDeniedError: actor's role cannot decide.
        CapacityError: cap-bound role approving past the extra fee cap.
    """
    if decision not in MODIFICATION_DECISIONS:
        raise ValidationError(
            f"Decision must be one of {sorted(MODIFICATION_DECISIONS)}",
            details={"status": decision},
        )

    store = LedgerStore(uow)
    mod = store.get(CostModification, modification_id)
    if not validate_modification_transition(mod.status, decision) or mod.approve_by is not None:
        raise ConflictError(
            "Cost modification has already been decided",
            resource="CostModification", field="status", value=mod.status,
        )
    project = _require_locked_project(store, mod.project_id)
    if mod.cost_item_id is None:
        raise ConflictError(
            "Cost item of this modification no longer exists",
            resource="CostModification", field="cost_item_id", value=None,
        )

    item = store.load_cost_item(mod.cost_item_id, project_id=project.id)

    summary = sum_project_cost(project.id, store.session)
    old_total = contribution(item)
    context = DecisionContext(
        decision=decision,
        cap_exceeded=decision == MOD_APPROVED and extra_fee_exceeded(project, summary, old_total, mod.new_total),
        projected=summary.with_change(old_total, mod.new_total).extra,
        cap=extra_fee_cap(project, summary),
    )
    require_decision_authority(actor, context)

    mod.status = decision
    mod.approve_by = actor.user_id

    accepted_siblings = []
    if decision == MOD_APPROVED:
        accept_values(item, (mod.new_amount, mod.new_price), (mod.old_amount, mod.old_price))
        if item.parent_id is not None:
            store.load_cost_item(item.parent_id).is_parent = True
    elif item.parent_id is not None:
        accepted_siblings = cascade_rejection(store, item.parent_id).accepted_ids
    uow.flush()

    logger.info(
        "Cost modification decided",
        extra={
            "project_id": project.id,
            "cost_item_id": item.id,
            "modification_id": mod.id,
            "status": decision,
            "user_id": actor.user_id,
        },
    )
    return {
        "modification": mod.to_dict(),
        "cost_item": item.to_dict(),
        "accepted_sibling_ids": accepted_siblings,
    }
