"""
Cost ledger models — CostItem and CostModification.

CostItem rows form a two-level tree through ``parent_id``: a baseline
("parent") line and the extra child lines that consume its budget.
CostModification rows are the append-only audit ledger of revision
requests; they are resolved but never deleted.
"""

from datetime import datetime, timezone

from app.models import db

# ── Modification lifecycle ───────────────────────────────────────────────────

MOD_WAITING = "WAITING"
MOD_VALID = "VALID"
MOD_APPROVED = "APPROVED"
MOD_REJECTED = "REJECTED"

MODIFICATION_STATUSES = frozenset({MOD_WAITING, MOD_VALID, MOD_APPROVED, MOD_REJECTED})

# Decisions a human may record; VALID is reached only through reallocation
MODIFICATION_DECISIONS = frozenset({MOD_APPROVED, MOD_REJECTED})

MODIFICATION_TRANSITIONS = {
    MOD_WAITING:  [MOD_VALID, MOD_APPROVED, MOD_REJECTED],
    MOD_VALID:    [],
    MOD_APPROVED: [],
    MOD_REJECTED: [],
}


def validate_modification_transition(old_status, new_status):
    """Return True if CostModification status transition is valid."""
    return new_status in MODIFICATION_TRANSITIONS.get(old_status, [])


class CostItem(db.Model):
    """One purchasing line of a project.

    ``amount``/``price`` hold the live accepted values. ``bk_amount``/
    ``bk_price`` hold the backup snapshot; ``bk_price IS NULL`` means the
    item has never had an accepted revision.
    """

    __tablename__ = "cost_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("cost_items.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    vo_add_id = db.Column(
        db.Integer,
        db.ForeignKey("variation_orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="VO that introduced this line",
    )
    vo_delete_id = db.Column(
        db.Integer,
        db.ForeignKey("variation_orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="VO that removes this line once approved",
    )

    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(50), nullable=False, default="item")
    amount = db.Column(db.Float, nullable=False, default=0)
    price = db.Column(db.Float, nullable=False, default=0)
    bk_amount = db.Column(db.Float, nullable=True)
    bk_price = db.Column(db.Float, nullable=True)
    is_extra = db.Column(db.Boolean, nullable=False, default=False)
    is_parent = db.Column(db.Boolean, nullable=False, default=False)
    note = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def total(self):
        return (self.amount or 0) * (self.price or 0)

    @property
    def is_accepted(self):
        """Non-extra lines are accepted by the quotation; extras by the ledger."""
        return not self.is_extra or self.bk_price is not None

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "parent_id": self.parent_id,
            "vendor_id": self.vendor_id,
            "purchase_order_id": self.purchase_order_id,
            "vo_add_id": self.vo_add_id,
            "vo_delete_id": self.vo_delete_id,
            "name": self.name,
            "unit": self.unit,
            "amount": self.amount,
            "price": self.price,
            "total": self.total,
            "bk_amount": self.bk_amount,
            "bk_price": self.bk_price,
            "is_extra": self.is_extra,
            "is_parent": self.is_parent,
            "note": self.note,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CostItem {self.id}: {self.name} {self.amount}x{self.price}>"


class CostModification(db.Model):
    """A revision request against one CostItem.

    Business rules:
    - At most one WAITING row per cost item at any time.
    - WAITING → VALID happens only through reallocation (no approver).
    - WAITING → APPROVED / REJECTED happens only through an explicit decision.
    - Rows outlive their cost item (``cost_item_id`` is nulled on delete).
    """

    __tablename__ = "cost_modifications"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cost_item_id = db.Column(
        db.Integer,
        db.ForeignKey("cost_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    approve_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(50), nullable=False, default="item")
    old_amount = db.Column(db.Float, nullable=False, default=0)
    old_price = db.Column(db.Float, nullable=False, default=0)
    new_amount = db.Column(db.Float, nullable=False, default=0)
    new_price = db.Column(db.Float, nullable=False, default=0)
    status = db.Column(
        db.String(20), nullable=False, default=MOD_WAITING,
        comment="WAITING | VALID | APPROVED | REJECTED",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_cost_mod_item_status", "cost_item_id", "status"),
    )

    @property
    def old_total(self):
        return self.old_amount * self.old_price

    @property
    def new_total(self):
        return self.new_amount * self.new_price

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "cost_item_id": self.cost_item_id,
            "vendor_id": self.vendor_id,
            "approve_by": self.approve_by,
            "name": self.name,
            "unit": self.unit,
            "old_amount": self.old_amount,
            "old_price": self.old_price,
            "new_amount": self.new_amount,
            "new_price": self.new_price,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CostModification {self.id} item={self.cost_item_id} {self.status}>"
