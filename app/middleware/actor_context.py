"""
Actor Context Middleware — resolves the acting user of an API request.

The caller identifies itself with the header named by ``ACTOR_HEADER``
(default ``X-User-Id``).  When the header names an active user with a
known role, ``g.actor`` is set to an ``Actor``; otherwise ``g.actor`` is
None and role-protected routes answer 401.

This middleware never blocks a request by itself.

Chain order:
  timing.py  →  actor_context.py  →  route handler
"""

import logging

from flask import current_app, g, request

from app.models import db
from app.models.auth import User
from app.services.permission import Actor

logger = logging.getLogger(__name__)

# Paths that skip actor resolution
ACTOR_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_actor_context(app):
    """Register actor resolution as a before_request hook."""

    @app.before_request
    def _actor_context():
        g.actor = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in ACTOR_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        raw = request.headers.get(current_app.config.get("ACTOR_HEADER", "X-User-Id"))
        if not raw:
            return None
        try:
            user_id = int(raw)
        except ValueError:
            logger.warning("Ignoring malformed actor header: %r", raw)
            return None

        user = db.session.get(User, user_id)
        if user is None or user.is_disabled:
            logger.warning("Actor %s not found or disabled", user_id)
            return None

        g.actor = Actor.from_user(user)
        if g.actor is None:
            logger.warning("Actor %s has unknown role %s", user_id, user.role_key)
        return None
