"""Project domain model — aggregate root of the cost ledger."""

from datetime import datetime, timezone

from app.models import db

# ── Quotation lifecycle ──────────────────────────────────────────────────────

QUOTATION_PROCESSING = "PROCESSING"
QUOTATION_WAITING_APPROVAL = "WAITING_APPROVAL"
QUOTATION_APPROVED = "APPROVED"
QUOTATION_CANCELLED = "CANCELLED"

# Quotation states in which baseline lines may still be edited freely
QUOTATION_EDITABLE = frozenset({QUOTATION_PROCESSING, QUOTATION_CANCELLED})


class Project(db.Model):
    """Construction/contracting project owning quotations and cost lines.

    The quotation status is driven by the quotation-approval flow; the cost
    ledger only reads it (and the fee caps below) to decide what may change.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    quotation_status = db.Column(
        db.String(30), nullable=False, default=QUOTATION_PROCESSING,
        comment="PROCESSING | WAITING_APPROVAL | APPROVED | CANCELLED",
    )
    extra_cost_fee = db.Column(
        db.Float, nullable=False, default=0,
        comment="Per-item growth (percent of snapshot) allowed without manual approval",
    )
    total_extra_fee = db.Column(
        db.Float, nullable=False, default=0,
        comment="Project-wide cap on extra cost, percent of base cost",
    )
    max_po_price = db.Column(
        db.Float, nullable=True,
        comment="PO total at/above which a CEO approver is appended",
    )

    manage_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    qs_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    purchase_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    sale_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

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
    def is_locked(self):
        """True once the quotation is approved and the ledger governs costs."""
        return self.quotation_status == QUOTATION_APPROVED

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "quotation_status": self.quotation_status,
            "extra_cost_fee": self.extra_cost_fee,
            "total_extra_fee": self.total_extra_fee,
            "max_po_price": self.max_po_price,
            "manage_by": self.manage_by,
            "qs_by": self.qs_by,
            "purchase_by": self.purchase_by,
            "sale_by": self.sale_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.code} [{self.quotation_status}]>"


class Vendor(db.Model):
    __tablename__ = "vendors"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    short_name = db.Column(db.String(100), nullable=True)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "short_name": self.short_name}
