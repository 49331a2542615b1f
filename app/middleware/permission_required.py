"""
Role Decorators — actor-aware RBAC decorators for route protection.

The acting user is resolved by ``app.middleware.actor_context`` into
``g.actor`` before the view runs.

Usage:
    @bp.route("/api/v1/cost-items/<int:cost_item_id>/modify-cost", methods=["PUT"])
    @require_roles(Role.PURCHASING, Role.PROCUREMENT_MANAGER)
    def modify_cost(cost_item_id):
        ...

    @bp.route("/api/v1/projects/<int:project_id>/cost-items", methods=["POST"])
    @require_actor
    def create_cost_item(project_id):
        ...
"""

import functools
import logging

from flask import g

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_actor(f):
    """Decorator: require a resolved acting user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "actor", None) is None:
            return api_error(E.UNAUTHENTICATED, "Acting user is required")
        return f(*args, **kwargs)
    return decorated


def require_roles(*roles):
    """
    Decorator: require the acting user to hold at least ONE of the listed roles.
    """
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return api_error(E.UNAUTHENTICATED, "Acting user is required")

            if actor.role not in allowed:
                logger.warning(
                    "User %d denied: role %s not in %s on %s",
                    actor.user_id, actor.role.value, sorted(r.value for r in allowed), f.__name__,
                )
                return api_error(
                    E.FORBIDDEN,
                    "Permission denied",
                    details={"required_any": sorted(r.value for r in allowed)},
                )

            return f(*args, **kwargs)
        return decorated
    return decorator
