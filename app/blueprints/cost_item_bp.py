"""
Cost Item Blueprint — cost lines of a project.

Endpoints:
    GET    /api/v1/projects/<pid>/cost-items
           Query params: parent_id, extra (true|false)
           Returns: 200 with the project's cost lines.

    POST   /api/v1/projects/<pid>/cost-items
           Body: { "name", "amount", "price", "unit", "vendor_id",
                   "parent_id": <int optional>, "vo_id": <int optional> }
           Returns: 201 with the line, its modification and the allocation.

    PUT    /api/v1/cost-items/<id>
           Body: any of { "name", "amount", "price", "unit", "note", "description" }

    PUT    /api/v1/cost-items/<id>/vendor
           Body: { "vendor_id": <int|null> }

    DELETE /api/v1/cost-items/<id>

    GET    /api/v1/projects/<pid>/cost-summary
           Returns: 200 with base / modified / has_po / no_po / extra totals.

Layer contract:
    - Blueprint: parse input, call service, map the LedgerResult to JSON.
    - NO db.session calls here — all writes owned by cost_item_service.
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.blueprints import json_body, ledger_response, register_ledger_error_handlers
from app.middleware.permission_required import require_actor
from app.services import cost_item_service

logger = logging.getLogger(__name__)

cost_item_bp = Blueprint("cost_item", __name__, url_prefix="/api/v1")
register_ledger_error_handlers(cost_item_bp)


def _parse_bool(value):
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes")


@cost_item_bp.route("/projects/<int:project_id>/cost-items", methods=["GET"])
def list_cost_items(project_id):
    items = cost_item_service.list_cost_items(
        project_id,
        parent_id=request.args.get("parent_id", type=int),
        extra=_parse_bool(request.args.get("extra")),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@cost_item_bp.route("/projects/<int:project_id>/cost-items", methods=["POST"])
@require_actor
def create_cost_item(project_id):
    result = cost_item_service.create_cost_item(project_id, json_body(), g.actor)
    return ledger_response(result, success_status=201)


@cost_item_bp.route("/cost-items/<int:cost_item_id>", methods=["PUT"])
@require_actor
def update_cost_item(cost_item_id):
    result = cost_item_service.update_cost_item(cost_item_id, json_body(), g.actor)
    return ledger_response(result)


@cost_item_bp.route("/cost-items/<int:cost_item_id>/vendor", methods=["PUT"])
@require_actor
def update_vendor(cost_item_id):
    result = cost_item_service.update_vendor(cost_item_id, json_body().get("vendor_id"))
    return ledger_response(result)


@cost_item_bp.route("/cost-items/<int:cost_item_id>", methods=["DELETE"])
@require_actor
def delete_cost_item(cost_item_id):
    result = cost_item_service.delete_cost_item(cost_item_id, g.actor)
    return ledger_response(result)


@cost_item_bp.route("/projects/<int:project_id>/cost-summary", methods=["GET"])
def cost_summary(project_id):
    return jsonify(cost_item_service.cost_summary(project_id)), 200
