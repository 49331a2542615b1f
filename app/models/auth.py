"""
Auth Models — users and their single role key.

Every user carries exactly one ``role_key``; the capability checks built on
top of it live in ``app.services.permission``.
"""

import enum
from datetime import datetime, timezone

from app.models import db


class Role(str, enum.Enum):
    """Role keys a user can hold."""

    CEO = "CEO"
    CFO = "CFO"
    ADMIN = "ADMIN"
    PM = "PM"
    QS = "QS"
    SALE = "SALE"
    PURCHASING = "PURCHASING"
    PROCUREMENT_MANAGER = "PROCUREMENT_MANAGER"
    CONSTRUCTION_MANAGER = "CONSTRUCTION_MANAGER"
    FINANCE = "FINANCE"

    @classmethod
    def parse(cls, value):
        """Return the Role for ``value`` or None when it is unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    role_key = db.Column(db.String(40), nullable=False, index=True)
    is_disabled = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def role(self):
        return Role.parse(self.role_key)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role_key": self.role_key,
            "is_disabled": self.is_disabled,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} [{self.role_key}]>"
