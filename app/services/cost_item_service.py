"""
Cost Item Service — entry, edit and removal of cost lines.

What a write does depends on the project's quotation status:

    PROCESSING / CANCELLED   baseline lines are edited freely
    WAITING_APPROVAL         every write is refused
    APPROVED                 new lines are extra costs governed by the ledger:
                               * with ``vo_id``     line added by a variation order
                               * with ``parent_id`` child line, reallocated
                                                    against the parent's budget
                               * otherwise          top-level extra line, revised
                                                    as a brand-new cost
"""

from __future__ import annotations

import logging

from app.core.exceptions import ConflictError, ValidationError
from app.models.cost import CostItem
from app.models.project import (
    QUOTATION_APPROVED,
    QUOTATION_EDITABLE,
    QUOTATION_WAITING_APPROVAL,
    Project,
    Vendor,
)
from app.models.variation_order import VO_EDITABLE, VariationOrder
from app.services.cost_aggregation import sum_project_cost
from app.services.cost_ledger import ChildChange, check_budget_parent, reallocate
from app.services.cost_modification_service import apply_modify_cost, validate_cost_values
from app.services.ledger_store import CostItemFilter, LedgerStore
from app.services.unit_of_work import UnitOfWork, ledger_operation

logger = logging.getLogger(__name__)

DESCRIPTIVE_FIELDS = ("name", "unit", "note", "description")


def list_cost_items(project_id: int, parent_id: int | None = None, extra: bool | None = None) -> list[dict]:
    store = LedgerStore(UnitOfWork())
    store.get(Project, project_id)
    filters = CostItemFilter(project_id=project_id, parent_id=parent_id, is_extra=extra)
    return [item.to_dict() for item in store.load_cost_items(filters)]


def cost_summary(project_id: int) -> dict:
    store = LedgerStore(UnitOfWork())
    store.get(Project, project_id)
    return sum_project_cost(project_id, store.session).to_dict()


def _refuse_while_awaiting_quotation(project: Project) -> None:
    if project.quotation_status == QUOTATION_WAITING_APPROVAL:
        raise ConflictError(
            "Project quotation is waiting for approval",
            resource="Project", field="quotation_status", value=project.quotation_status,
        )


def _resolve_vendor(store: LedgerStore, vendor_id):
    if vendor_id in (None, ""):
        return None
    return store.get(Vendor, vendor_id).id


def _descriptive(data: dict) -> dict:
    fields = {key: data[key] for key in DESCRIPTIVE_FIELDS if key in data}
    if "name" in fields:
        fields["name"] = (fields["name"] or "").strip()
        if not fields["name"]:
            raise ValidationError("name is required", details={"name": "required"})
    return fields


@ledger_operation
def create_cost_item(uow, project_id: int, data: dict, actor) -> dict:
    store = LedgerStore(uow)
    project = store.get(Project, project_id)
    _refuse_while_awaiting_quotation(project)

    fields = _descriptive(data)
    if "name" not in fields:
        raise ValidationError("name is required", details={"name": "required"})
    amount, price = validate_cost_values(data.get("amount", 0), data.get("price", 0))
    fields.update(
        project_id=project.id,
        vendor_id=_resolve_vendor(store, data.get("vendor_id")),
        amount=amount,
        price=price,
    )

    if project.quotation_status in QUOTATION_EDITABLE:
        item = store.add(CostItem(**fields))
        logger.info("Baseline cost item created", extra={"project_id": project.id, "cost_item_id": item.id})
        return {"cost_item": item.to_dict(), "modification": None}

    vo_id = data.get("vo_id")
    if vo_id:
        vo = store.get(VariationOrder, vo_id, project_id=project.id)
        if vo.status not in VO_EDITABLE:
            raise ConflictError(
                "Variation order can no longer be changed",
                resource="VariationOrder", field="status", value=vo.status,
            )
        item = store.add(CostItem(vo_add_id=vo.id, **fields))
        logger.info(
            "Cost item added by variation order",
            extra={"project_id": project.id, "cost_item_id": item.id, "vo_id": vo.id},
        )
        return {"cost_item": item.to_dict(), "modification": None}

    parent_id = data.get("parent_id")
    if parent_id:
        parent = store.load_cost_item(parent_id, project_id=project.id)
        check_budget_parent(store, parent)
        item = store.add(CostItem(parent_id=parent.id, is_extra=True, **fields))
        parent.is_parent = True
        allocation = reallocate(store, parent.id, ChildChange(item, amount, price, is_new=True))
        return {
            "cost_item": item.to_dict(),
            "modification": allocation.modification.to_dict() if allocation.modification else None,
            "allocation": allocation.to_dict(),
        }

    item = store.add(CostItem(is_extra=True, **fields))
    mod = apply_modify_cost(store, item, amount, price, actor)
    return {"cost_item": item.to_dict(), "modification": mod.to_dict() if mod else None}


@ledger_operation
def update_cost_item(uow, cost_item_id: int, data: dict, actor) -> dict:
    store = LedgerStore(uow)
    item = store.load_cost_item(cost_item_id)
    project = store.get(Project, item.project_id)
    _refuse_while_awaiting_quotation(project)

    fields = _descriptive(data)
    if "vendor_id" in data:
        fields["vendor_id"] = _resolve_vendor(store, data["vendor_id"])
    amount, price = validate_cost_values(data.get("amount", item.amount), data.get("price", item.price))

    if item.parent_id is not None:
        for key, value in fields.items():
            setattr(item, key, value)
        allocation = reallocate(store, item.parent_id, ChildChange(item, amount, price))
        return {
            "cost_item": item.to_dict(),
            "modification": allocation.modification.to_dict() if allocation.modification else None,
            "allocation": allocation.to_dict(),
        }

    if project.quotation_status not in QUOTATION_EDITABLE:
        raise ConflictError(
            "Approved cost items are revised through modify-cost",
            resource="Project", field="quotation_status", value=project.quotation_status,
        )
    if item.is_parent:
        raise ConflictError(
            "Cost item has child revisions; its budget is fixed",
            resource="CostItem", field="is_parent", value="true",
        )
    for key, value in fields.items():
        setattr(item, key, value)
    item.amount, item.price = amount, price
    uow.flush()

    logger.info("Baseline cost item updated", extra={"project_id": project.id, "cost_item_id": item.id})
    return {"cost_item": item.to_dict(), "modification": None}


@ledger_operation
def update_vendor(uow, cost_item_id: int, vendor_id) -> dict:
    store = LedgerStore(uow)
    item = store.load_cost_item(cost_item_id)
    if item.purchase_order_id is not None:
        raise ConflictError(
            "Cost item is attached to a purchase order",
            resource="CostItem", field="purchase_order_id", value=str(item.purchase_order_id),
        )
    item.vendor_id = _resolve_vendor(store, vendor_id)
    uow.flush()
    return {"cost_item": item.to_dict()}


@ledger_operation
def delete_cost_item(uow, cost_item_id: int, actor) -> dict:
    store = LedgerStore(uow)
    item = store.load_cost_item(cost_item_id)
    project = store.get(Project, item.project_id)
    _refuse_while_awaiting_quotation(project)

    if project.quotation_status == QUOTATION_APPROVED and (not item.is_extra or item.is_parent):
        raise ConflictError(
            "Approved baseline items and parents cannot be deleted",
            resource="CostItem", field="id", value=str(item.id),
        )
    if item.purchase_order_id is not None:
        raise ConflictError(
            "Cost item is attached to a purchase order",
            resource="CostItem", field="purchase_order_id", value=str(item.purchase_order_id),
        )

    parent_id = item.parent_id
    removed = store.delete_cost_item(item)

    allocation = None
    if parent_id is not None:
        if store.count_children(parent_id) == 0:
            store.load_cost_item(parent_id).is_parent = False
        else:
            allocation = reallocate(store, parent_id, is_deleting=True)

    logger.info(
        "Cost item deleted",
        extra={"project_id": project.id, "cost_item_id": cost_item_id, "user_id": actor.user_id},
    )
    return {
        "deleted_ids": removed,
        "allocation": allocation.to_dict() if allocation else None,
    }
