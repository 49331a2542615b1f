"""
Purchase Order Blueprint — PO lifecycle and approver decisions.

Endpoints:
    GET    /api/v1/projects/<pid>/purchase-orders
    POST   /api/v1/projects/<pid>/purchase-orders
           Body: { "name", "vendor_id", "discount_type": "%|$",
                   "discount_amount", "vat_percent" }

    POST   /api/v1/purchase-orders/<id>/cost-items
           Body: { "cost_item_ids": [<int>, ...] }

    PUT    /api/v1/purchase-orders/<id>/status
           Body: { "status": "WAITING_APPROVAL|CANCELLED" }

    PUT    /api/v1/purchase-orders/<id>/freeze
           Body: { "status": "FREEZED|DEFROST" }

    GET    /api/v1/purchase-orders/<id>/approvers

    PUT    /api/v1/purchase-order-approvers/<id>
           Body: { "status": "APPROVED|REJECTED", "comment": "..." }
"""

import logging

from flask import Blueprint, g, jsonify

from app.blueprints import json_body, ledger_response, register_ledger_error_handlers
from app.middleware.permission_required import require_actor
from app.services import purchase_order_service
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

purchase_order_bp = Blueprint("purchase_order", __name__, url_prefix="/api/v1")
register_ledger_error_handlers(purchase_order_bp)


def _required_status():
    data = json_body()
    status = (data.get("status") or "").strip().upper()
    if not status:
        return data, None, api_error(E.VALIDATION_REQUIRED, "status is required", details={"status": "required"})
    return data, status, None


@purchase_order_bp.route("/projects/<int:project_id>/purchase-orders", methods=["GET"])
def list_purchase_orders(project_id):
    orders = purchase_order_service.list_purchase_orders(project_id)
    return jsonify({"items": orders, "total": len(orders)}), 200


@purchase_order_bp.route("/projects/<int:project_id>/purchase-orders", methods=["POST"])
@require_actor
def create_purchase_order(project_id):
    result = purchase_order_service.create_purchase_order(project_id, json_body(), g.actor)
    return ledger_response(result, success_status=201)


@purchase_order_bp.route("/purchase-orders/<int:po_id>/cost-items", methods=["POST"])
@require_actor
def attach_cost_items(po_id):
    ids = json_body().get("cost_item_ids")
    if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
        return api_error(E.VALIDATION_INVALID, "cost_item_ids must be a list of integers")
    return ledger_response(purchase_order_service.attach_cost_items(po_id, ids))


@purchase_order_bp.route("/purchase-orders/<int:po_id>/status", methods=["PUT"])
@require_actor
def change_status(po_id):
    _, status, err = _required_status()
    if err:
        return err
    return ledger_response(purchase_order_service.change_status(po_id, status, g.actor))


@purchase_order_bp.route("/purchase-orders/<int:po_id>/freeze", methods=["PUT"])
@require_actor
def change_freeze(po_id):
    _, action, err = _required_status()
    if err:
        return err
    return ledger_response(purchase_order_service.change_freeze(po_id, action, g.actor))


@purchase_order_bp.route("/purchase-orders/<int:po_id>/approvers", methods=["GET"])
def list_approvers(po_id):
    approvers = purchase_order_service.list_approvers(po_id)
    return jsonify({"items": approvers, "total": len(approvers)}), 200


@purchase_order_bp.route("/purchase-order-approvers/<int:approver_id>", methods=["PUT"])
@require_actor
def decide_approver(approver_id):
    data, decision, err = _required_status()
    if err:
        return err
    result = purchase_order_service.decide_approver(approver_id, decision, g.actor, comment=data.get("comment"))
    return ledger_response(result)
