"""
Variation Order Blueprint.

Endpoints:
    POST   /api/v1/projects/<pid>/vos
           Body: { "name", "discount_type": "%|$", "discount_amount", "vat_percent" }

    PUT    /api/v1/vos/<id>/remove-cost
           Body: { "cost_item_id": <int> }

    PUT    /api/v1/vos/<id>/submit

    PUT    /api/v1/vos/<id>/approve
           Body: { "status": "APPROVED|REJECTED", "comment": "..." }

    GET    /api/v1/vos/<id>/approvers

Cost lines are added to a VO through POST /projects/<pid>/cost-items
with a ``vo_id`` in the body.
"""

import logging

from flask import Blueprint, g, jsonify

from app.blueprints import json_body, ledger_response, register_ledger_error_handlers
from app.middleware.permission_required import require_actor
from app.services import variation_order_service
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

variation_order_bp = Blueprint("variation_order", __name__, url_prefix="/api/v1")
register_ledger_error_handlers(variation_order_bp)


@variation_order_bp.route("/projects/<int:project_id>/vos", methods=["POST"])
@require_actor
def create_vo(project_id):
    result = variation_order_service.create_vo(project_id, json_body(), g.actor)
    return ledger_response(result, success_status=201)


@variation_order_bp.route("/vos/<int:vo_id>/remove-cost", methods=["PUT"])
@require_actor
def remove_cost_item(vo_id):
    cost_item_id = json_body().get("cost_item_id")
    if not isinstance(cost_item_id, int):
        return api_error(E.VALIDATION_REQUIRED, "cost_item_id is required", details={"cost_item_id": "required"})
    return ledger_response(variation_order_service.remove_cost_item(vo_id, cost_item_id))


@variation_order_bp.route("/vos/<int:vo_id>/submit", methods=["PUT"])
@require_actor
def submit_vo(vo_id):
    return ledger_response(variation_order_service.submit_vo(vo_id, g.actor))


@variation_order_bp.route("/vos/<int:vo_id>/approve", methods=["PUT"])
@require_actor
def decide_vo(vo_id):
    data = json_body()
    decision = (data.get("status") or "").strip().upper()
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "status is required", details={"status": "required"})
    result = variation_order_service.decide_vo(vo_id, decision, g.actor, comment=data.get("comment"))
    return ledger_response(result)


@variation_order_bp.route("/vos/<int:vo_id>/approvers", methods=["GET"])
def list_approvers(vo_id):
    approvers = variation_order_service.list_approvers(vo_id)
    return jsonify({"items": approvers, "total": len(approvers)}), 200
