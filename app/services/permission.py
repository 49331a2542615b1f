"""
Role capabilities for the cost ledger.

Every acting user is reduced to an ``Actor`` (user id + ``Role``).  What a
role may do is expressed as capability sets here, in one place, rather than
as scattered role checks inside services.

Usage:
    from app.services.permission import Actor, DecisionContext, require_decision_authority

    require_decision_authority(actor, DecisionContext(decision="APPROVED", cap_exceeded=False))

    if actor_can_decide(actor.role, context):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import CapacityError, PermissionDeniedError
from app.models.auth import Role
from app.models.cost import MOD_APPROVED

# Roles allowed to approve or reject a WAITING cost modification
DECISION_ROLES = frozenset({Role.CEO, Role.PROCUREMENT_MANAGER})

# Roles whose approvals are still bound by the project extra-fee cap
CAP_BOUND_ROLES = frozenset({Role.PROCUREMENT_MANAGER})

# Roles whose direct cost revisions skip the per-item growth check
MODIFY_WITHOUT_REVIEW_ROLES = frozenset({Role.PROCUREMENT_MANAGER})

# Roles allowed to request a direct revision of a top-level cost item
MODIFY_COST_ROLES = frozenset({Role.PURCHASING, Role.PROCUREMENT_MANAGER})


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role

    @classmethod
    def from_user(cls, user) -> "Actor | None":
        role = user.role
        if role is None:
            return None
        return cls(user_id=user.id, role=role)


@dataclass(frozen=True)
class DecisionContext:
    """Facts a cost modification decision depends on.

    ``cap_exceeded`` is the Extra-Fee Gate recomputed at decision time for
    this modification.
    """

    decision: str
    cap_exceeded: bool = False
    projected: float | None = None
    cap: float | None = None


def actor_can_decide(role: Role, context: DecisionContext) -> bool:
    """Return True if ``role`` may record ``context.decision``."""
    if role not in DECISION_ROLES:
        return False
    if context.decision == MOD_APPROVED and role in CAP_BOUND_ROLES and context.cap_exceeded:
        return False
    return True


def require_decision_authority(actor: Actor, context: DecisionContext) -> None:
    """Raise unless ``actor`` may record the decision.

    Raises:
        PermissionDeniedError: The role cannot decide cost modifications at all.
        CapacityError: The role is cap-bound and approving would break the cap.
    """
    if actor_can_decide(actor.role, context):
        return
    if actor.role not in DECISION_ROLES:
        raise PermissionDeniedError(
            f"Role {actor.role.value} cannot decide cost modifications",
            role=actor.role.value,
        )
    raise CapacityError(
        "Approving this change would exceed the project's extra fee cap",
        projected=context.projected,
        cap=context.cap,
    )


def skips_growth_review(actor: Actor) -> bool:
    return actor.role in MODIFY_WITHOUT_REVIEW_ROLES
