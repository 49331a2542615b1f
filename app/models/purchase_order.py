"""Purchase orders and their approver roster."""

from datetime import datetime, timezone

from app.models import db

PO_PROCESSING = "PROCESSING"
PO_WAITING_APPROVAL = "WAITING_APPROVAL"
PO_APPROVED = "APPROVED"
PO_REJECTED = "REJECTED"
PO_CANCELLED = "CANCELLED"
PO_FREEZED = "FREEZED"
PO_DEFROST = "DEFROST"

# Statuses a caller may request through change_status
PO_REQUESTABLE = frozenset({PO_WAITING_APPROVAL, PO_CANCELLED})

# Submission is allowed from these statuses
PO_SUBMITTABLE = frozenset({PO_PROCESSING, PO_REJECTED, PO_CANCELLED})

APPROVER_WAITING = "WAITING_APPROVAL"
APPROVER_APPROVED = "APPROVED"
APPROVER_REJECTED = "REJECTED"
APPROVER_DECISIONS = frozenset({APPROVER_APPROVED, APPROVER_REJECTED})

DISCOUNT_PERCENT = "%"
DISCOUNT_FIXED = "$"


class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(30), nullable=False, default=PO_PROCESSING)
    old_status = db.Column(db.String(30), nullable=True, comment="Status held while FREEZED")
    vat_percent = db.Column(db.Float, nullable=False, default=0)
    discount_type = db.Column(db.String(1), nullable=False, default=DISCOUNT_PERCENT)
    discount_amount = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    approvers = db.relationship(
        "PurchaseOrderApprover",
        backref="purchase_order",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderApprover.id",
    )

    def net_total(self, gross):
        """Apply the PO discount and then VAT to ``gross``."""
        if self.discount_type == DISCOUNT_PERCENT:
            discount = gross * (self.discount_amount or 0) / 100
        else:
            discount = self.discount_amount or 0
        subtotal = gross - discount
        return subtotal + subtotal * (self.vat_percent or 0) / 100

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "vendor_id": self.vendor_id,
            "name": self.name,
            "status": self.status,
            "old_status": self.old_status,
            "vat_percent": self.vat_percent,
            "discount_type": self.discount_type,
            "discount_amount": self.discount_amount,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PurchaseOrderApprover(db.Model):
    """One seat in a PO approval round. Rebuilt from scratch on every submit."""

    __tablename__ = "purchase_order_approvers"

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_key = db.Column(db.String(40), nullable=False)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Pre-assigned for the PM seat; filled by whoever decides otherwise",
    )
    status = db.Column(db.String(30), nullable=False, default=APPROVER_WAITING)
    comment = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "role_key": self.role_key,
            "user_id": self.user_id,
            "status": self.status,
            "comment": self.comment,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }
