"""
Project-wide cost aggregation and the Extra-Fee Gate.

``sum_project_cost`` is read-only and may be called at any point inside a
unit of work; its result is a snapshot of the session state at call time.

Counting rules:
    base      sum of baseline (non-extra) lines at their first accepted
              value (the backup snapshot when present, live values otherwise)
    modified  sum of currently accepted lines at their live value; a parent
              with children contributes nothing because its children
              consume its budget instead
    has_po    accepted cost attached to a purchase order, per PO after
              discount and VAT
    no_po     accepted cost not attached to any purchase order

Lines added by a variation order count only once that VO is APPROVED;
lines removed by a VO stop counting once that VO is APPROVED.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, replace

from sqlalchemy import select

from app.models import db
from app.models.cost import CostItem
from app.models.purchase_order import PurchaseOrder
from app.models.variation_order import VO_APPROVED, VariationOrder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostSummary:
    base: float = 0.0
    modified: float = 0.0
    has_po: float = 0.0
    no_po: float = 0.0

    @property
    def extra(self) -> float:
        """Accepted growth over the baseline (may be negative)."""
        return self.modified - self.base

    def with_change(self, old_total: float, new_total: float) -> "CostSummary":
        """Summary as it would read after one line moves from old_total to new_total."""
        return replace(self, modified=self.modified - old_total + new_total)

    def to_dict(self) -> dict:
        return asdict(self)


def _counts_in_project(item: CostItem, vo_status: dict) -> bool:
    if item.vo_add_id is not None and vo_status.get(item.vo_add_id) != VO_APPROVED:
        return False
    if item.vo_delete_id is not None and vo_status.get(item.vo_delete_id) == VO_APPROVED:
        return False
    return True


def sum_project_cost(project_id: int, session=None) -> CostSummary:
    """Aggregate base/modified/PO cost for a project."""
    session = session or db.session

    items = session.execute(
        select(CostItem).where(CostItem.project_id == project_id).order_by(CostItem.id)
    ).scalars().all()
    vo_status = dict(
        session.execute(
            select(VariationOrder.id, VariationOrder.status).where(VariationOrder.project_id == project_id)
        ).all()
    )
    purchase_orders = {
        po.id: po
        for po in session.execute(
            select(PurchaseOrder).where(PurchaseOrder.project_id == project_id)
        ).scalars()
    }

    base = modified = no_po = 0.0
    po_gross = defaultdict(float)
    for item in items:
        if not _counts_in_project(item, vo_status):
            continue
        if not item.is_extra:
            if item.bk_price is not None:
                base += (item.bk_amount or 0) * item.bk_price
            else:
                base += item.total
        if not item.is_accepted or item.is_parent:
            continue
        modified += item.total
        if item.purchase_order_id in purchase_orders:
            po_gross[item.purchase_order_id] += item.total
        else:
            no_po += item.total

    has_po = sum(purchase_orders[po_id].net_total(gross) for po_id, gross in po_gross.items())
    return CostSummary(base=base, modified=modified, has_po=has_po, no_po=no_po)


def extra_fee_cap(project, summary: CostSummary) -> float:
    return summary.base * (project.total_extra_fee or 0) / 100


def extra_fee_exceeded(project, summary: CostSummary, old_total: float, new_total: float) -> bool:
    """True when moving one line from old_total to new_total breaks the project cap.

    ``old_total`` is the line's current contribution to ``summary.modified``
    (0 for lines that were never accepted).  The check is on the projected
    extra alone, so a decrease still trips the gate while the project stays
    over its cap.
    """
    projected = summary.with_change(old_total, new_total).extra
    cap = extra_fee_cap(project, summary)
    if projected > cap:
        logger.info(
            "Extra fee cap exceeded",
            extra={"project_id": project.id, "projected": projected, "cap": cap},
        )
        return True
    return False
