"""
Cost Modification Blueprint — direct revisions and their decisions.

Endpoints:
    PUT    /api/v1/cost-items/<id>/modify-cost
           Body: { "amount": <num>, "price": <num>, "vendor_id": <int optional> }
           Roles: PURCHASING, PROCUREMENT_MANAGER

    GET    /api/v1/projects/<pid>/cost-modifications
           Query params: status (WAITING|VALID|APPROVED|REJECTED)

    PUT    /api/v1/cost-modifications/<id>/status
           Body: { "status": "APPROVED|REJECTED" }
           Roles: CEO, PROCUREMENT_MANAGER
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.blueprints import json_body, ledger_response, register_ledger_error_handlers
from app.middleware.permission_required import require_roles
from app.models.cost import MODIFICATION_STATUSES
from app.services import cost_modification_service
from app.services.permission import DECISION_ROLES, MODIFY_COST_ROLES
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

cost_modification_bp = Blueprint("cost_modification", __name__, url_prefix="/api/v1")
register_ledger_error_handlers(cost_modification_bp)


@cost_modification_bp.route("/cost-items/<int:cost_item_id>/modify-cost", methods=["PUT"])
@require_roles(*MODIFY_COST_ROLES)
def modify_cost(cost_item_id):
    data = json_body()
    missing = [k for k in ("amount", "price") if data.get(k) is None]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            "amount and price are required",
            details={k: "required" for k in missing},
        )
    result = cost_modification_service.modify_cost(
        cost_item_id, data["amount"], data["price"], g.actor, vendor_id=data.get("vendor_id"),
    )
    return ledger_response(result)


@cost_modification_bp.route("/projects/<int:project_id>/cost-modifications", methods=["GET"])
def list_modifications(project_id):
    status = request.args.get("status")
    if status and status not in MODIFICATION_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"Unknown status: {status}")
    mods = cost_modification_service.list_modifications(project_id, status=status)
    return jsonify({"items": mods, "total": len(mods)}), 200


@cost_modification_bp.route("/cost-modifications/<int:modification_id>/status", methods=["PUT"])
@require_roles(*DECISION_ROLES)
def decide(modification_id):
    decision = (json_body().get("status") or "").strip().upper()
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "status is required", details={"status": "required"})
    result = cost_modification_service.decide(modification_id, decision, g.actor)
    return ledger_response(result)
