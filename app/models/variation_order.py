"""Variation orders (VO) — batch amendments to an approved quotation."""

from datetime import datetime, timezone

from app.models import db
from app.models.purchase_order import APPROVER_WAITING, DISCOUNT_PERCENT

VO_PROCESSING = "PROCESSING"
VO_WAITING_APPROVAL = "WAITING_APPROVAL"
VO_APPROVED = "APPROVED"
VO_REJECTED = "REJECTED"

# A VO can still collect cost lines and be (re)submitted from these statuses
VO_EDITABLE = frozenset({VO_PROCESSING, VO_REJECTED})


class VariationOrder(db.Model):
    __tablename__ = "variation_orders"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(30), nullable=False, default=VO_PROCESSING)
    vat_percent = db.Column(db.Float, nullable=False, default=0)
    discount_type = db.Column(db.String(1), nullable=False, default=DISCOUNT_PERCENT)
    discount_amount = db.Column(db.Float, nullable=False, default=0)
    diff_total = db.Column(db.Float, nullable=True, comment="Net cost delta, set on approval")
    diff_vat = db.Column(db.Float, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    approvers = db.relationship(
        "VOApprover",
        backref="variation_order",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="VOApprover.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "status": self.status,
            "vat_percent": self.vat_percent,
            "discount_type": self.discount_type,
            "discount_amount": self.discount_amount,
            "diff_total": self.diff_total,
            "diff_vat": self.diff_vat,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class VOApprover(db.Model):
    __tablename__ = "vo_approvers"

    id = db.Column(db.Integer, primary_key=True)
    vo_id = db.Column(
        db.Integer,
        db.ForeignKey("variation_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_key = db.Column(db.String(40), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = db.Column(db.String(30), nullable=False, default=APPROVER_WAITING)
    comment = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "vo_id": self.vo_id,
            "role_key": self.role_key,
            "user_id": self.user_id,
            "status": self.status,
            "comment": self.comment,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }
