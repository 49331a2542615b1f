"""
Running-total reallocator for child cost items.

A parent cost line has a fixed baseline budget ``amount * price``.  Extra
child lines created after the quotation is approved compete for that
budget in creation order (ascending id): earlier children get first claim.

One walk over the children decides, for the child being changed, whether
its new value still fits (auto-accepted, VALID) or must wait for a manual
decision (WAITING).  The same walk finds WAITING siblings that now fit
because room was freed (a sibling shrank, was deleted or was rejected);
those are accepted as VALID in the same unit of work.

Walk rules:
    - children whose latest modification is REJECTED and which were never
      accepted (``bk_price`` is NULL) consume no budget
    - a sibling with a WAITING modification is counted at its requested value
    - every other sibling is counted at its live value
    - a WAITING sibling is freed when the running total through its own
      position is within budget
    - the changed child is counted at its requested value and fits when the
      running total over all children is within budget

A fitting change is then checked against the project-wide Extra-Fee Gate
and forced to WAITING when the projected extra is over the cap.  Freed
siblings are accepted on budget fit alone.

Accepting a change writes the requested values live and, on first
acceptance only, stores the pre-change pair as the backup snapshot
(``bk_amount``/``bk_price``).  The snapshot is never cleared afterwards.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from app.core.exceptions import ConflictError, ValidationError
from app.models.cost import MOD_REJECTED, MOD_VALID, MOD_WAITING, CostItem, CostModification
from app.models.project import Project
from app.services.cost_aggregation import extra_fee_exceeded, sum_project_cost
from app.services.ledger_store import CostItemFilter, LedgerStore

logger = logging.getLogger(__name__)


def totals_equal(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-9)


def _fits(running_total: float, budget: float) -> bool:
    return running_total <= budget or totals_equal(running_total, budget)


@dataclass
class ChildChange:
    """A requested new amount/price for one child line."""

    item: CostItem
    amount: float
    price: float
    is_new: bool = False

    @property
    def new_total(self) -> float:
        return self.amount * self.price


@dataclass
class Allocation:
    """Result of one walk over a parent's children."""

    budget: float
    running_total: float = 0.0
    changed_fits: bool | None = None
    freed: list[tuple[CostItem, CostModification]] = field(default_factory=list)
    modification: CostModification | None = None
    accepted_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "budget": self.budget,
            "running_total": self.running_total,
            "modification": self.modification.to_dict() if self.modification else None,
            "accepted_sibling_ids": list(self.accepted_ids),
        }


# ── Snapshot helpers ─────────────────────────────────────────────────────────


def old_pair_for(item: CostItem, new_price: float, is_new: bool = False) -> tuple[float, float]:
    """Pre-change (amount, price) recorded on a modification.

    Accepted lines report their live values; a line that was never accepted
    reports zero quantity at the requested price.
    """
    if is_new or not item.is_accepted:
        return 0.0, new_price
    return item.amount, item.price


def contribution(item: CostItem) -> float:
    """Current contribution of ``item`` to the project's accepted cost."""
    return item.total if item.is_accepted else 0.0


def accept_values(item: CostItem, new_pair, old_pair) -> None:
    """Write an accepted change live and take the first-acceptance snapshot."""
    if item.bk_price is None:
        item.bk_amount, item.bk_price = old_pair
    item.amount, item.price = new_pair


# ── Parent checks ────────────────────────────────────────────────────────────


def check_budget_parent(store: LedgerStore, parent: CostItem) -> None:
    """Raise unless ``parent`` can act as a baseline budget for children."""
    if parent.parent_id is not None:
        raise ValidationError(
            "Cost items can only be nested one level deep",
            details={"parent_id": f"CostItem {parent.id} is itself a child"},
        )
    if parent.is_extra and parent.bk_price is None:
        raise ConflictError(
            "Parent cost item has not been accepted yet",
            resource="CostItem", field="bk_price", value=None,
        )
    if store.waiting_modification(parent.id) is not None:
        raise ConflictError(
            "Parent cost item has a modification waiting for approval",
            resource="CostItem", field="status", value=MOD_WAITING,
        )


def ensure_no_waiting(store: LedgerStore, item: CostItem) -> None:
    if store.waiting_modification(item.id) is not None:
        raise ConflictError(
            "Cost item already has a modification waiting for approval",
            resource="CostItem", field="status", value=MOD_WAITING,
        )


# ── Walk ─────────────────────────────────────────────────────────────────────


def walk_children(store: LedgerStore, parent: CostItem, change: ChildChange | None = None) -> Allocation:
    """Accumulate the running total over ``parent``'s children in creation order.

    Freed WAITING siblings are judged at their own position; the changed
    child is judged against the total of the whole walk.
    """
    allocation = Allocation(budget=parent.amount * parent.price)
    children = store.load_cost_items(CostItemFilter(parent_id=parent.id))
    latest = store.latest_modifications(child.id for child in children)
    changed_id = change.item.id if change is not None else None

    for child in children:
        mod = latest.get(child.id)
        if child.id == changed_id:
            allocation.running_total += change.new_total
            continue
        if mod is not None and mod.status == MOD_REJECTED and child.bk_price is None:
            continue
        if mod is not None and mod.status == MOD_WAITING:
            allocation.running_total += mod.new_total
            if _fits(allocation.running_total, allocation.budget):
                allocation.freed.append((child, mod))
            continue
        allocation.running_total += child.total

    if change is not None:
        allocation.changed_fits = _fits(allocation.running_total, allocation.budget)
    return allocation


def _accept_freed(project: Project, parent: CostItem, allocation: Allocation) -> None:
    """Turn freed WAITING siblings into VALID."""
    for sibling, mod in allocation.freed:
        mod.status = MOD_VALID
        accept_values(sibling, (mod.new_amount, mod.new_price), (mod.old_amount, mod.old_price))
        allocation.accepted_ids.append(sibling.id)
        logger.info(
            "Sibling modification accepted after reallocation",
            extra={
                "project_id": project.id,
                "cost_item_id": sibling.id,
                "modification_id": mod.id,
                "status": MOD_VALID,
            },
        )
    if allocation.accepted_ids:
        parent.is_parent = True


# ── Operations ───────────────────────────────────────────────────────────────


def reallocate(
    store: LedgerStore,
    parent_id: int,
    change: ChildChange | None = None,
    is_deleting: bool = False,
) -> Allocation:
    """Re-derive the budget split under ``parent_id`` within the caller's unit of work.

    With ``change`` the child's request is recorded as a modification (unless
    it is a no-op) and auto-accepted when it fits.  With ``is_deleting`` the
    removed child is already gone and only siblings are reconsidered.

    Raises:
        NotFoundError: parent missing.
        ValidationError: parent is itself a child.
        ConflictError: parent is provisional or waiting; the changed child
            already has a WAITING modification.
    """
    parent = store.load_cost_item(parent_id)
    check_budget_parent(store, parent)
    project = store.get(Project, parent.project_id)

    if is_deleting:
        change = None

    old_pair = new_pair = None
    if change is not None:
        ensure_no_waiting(store, change.item)
        old_pair = old_pair_for(change.item, change.price, change.is_new)
        new_pair = (change.amount, change.price)
        if totals_equal(old_pair[0] * old_pair[1], change.new_total):
            logger.info(
                "Cost change is a no-op, nothing recorded",
                extra={"project_id": project.id, "cost_item_id": change.item.id},
            )
            change = None

    store.uow.flush()
    allocation = walk_children(store, parent, change)

    if change is not None:
        status = MOD_VALID if allocation.changed_fits else MOD_WAITING
        old_total = contribution(change.item)
        summary = sum_project_cost(project.id, store.session)
        if status == MOD_VALID and extra_fee_exceeded(project, summary, old_total, change.new_total):
            status = MOD_WAITING

        allocation.modification = store.create_modification(change.item, old_pair, new_pair, status)
        if status == MOD_VALID:
            accept_values(change.item, new_pair, old_pair)
            parent.is_parent = True
        logger.info(
            "Child cost change recorded",
            extra={
                "project_id": project.id,
                "cost_item_id": change.item.id,
                "modification_id": allocation.modification.id,
                "status": status,
                "running_total": allocation.running_total,
                "budget": allocation.budget,
            },
        )

    _accept_freed(project, parent, allocation)
    store.uow.flush()
    return allocation


def cascade_rejection(store: LedgerStore, parent_id: int) -> Allocation:
    """Re-walk siblings after a child's modification was rejected.

    The rejected child no longer claims budget, so WAITING siblings behind
    it may now fit.
    """
    parent = store.load_cost_item(parent_id)
    if parent.is_extra and parent.bk_price is None:
        raise ConflictError(
            "Parent cost item has not been accepted yet",
            resource="CostItem", field="bk_price", value=None,
        )
    project = store.get(Project, parent.project_id)

    store.uow.flush()
    allocation = walk_children(store, parent)
    _accept_freed(project, parent, allocation)
    store.uow.flush()

    logger.info(
        "Rejection cascaded to siblings",
        extra={
            "project_id": project.id,
            "cost_item_id": parent.id,
            "accepted": allocation.accepted_ids,
        },
    )
    return allocation
