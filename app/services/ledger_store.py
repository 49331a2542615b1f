"""
Ledger Store — transaction-bound data access for cost items and modifications.

Every read and write of the cost ledger goes through a ``LedgerStore``
bound to the caller's ``UnitOfWork``, so the atomicity boundary is visible
at each call site.  Queries take typed filter structs instead of free-form
option dicts.

Lookups by id are project-scoped whenever the caller knows the project:

    store = LedgerStore(uow)
    item = store.get(CostItem, item_id, project_id=project_id)
    children = store.load_cost_items(CostItemFilter(parent_id=parent.id))

Missing rows and rows outside the given scope both raise ``NotFoundError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update

from app.core.exceptions import NotFoundError
from app.models.auth import Role, User
from app.models.cost import MOD_REJECTED, MOD_WAITING, CostItem, CostModification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostItemFilter:
    """Selection of cost items.

    ``None`` fields are not filtered on.  Results are always ordered by id
    ascending (creation order).
    """

    project_id: int | None = None
    parent_id: int | None = None
    is_extra: bool | None = None
    purchase_order_id: int | None = None
    vo_add_id: int | None = None
    vo_delete_id: int | None = None

    def clauses(self) -> list:
        clauses = []
        if self.project_id is not None:
            clauses.append(CostItem.project_id == self.project_id)
        if self.parent_id is not None:
            clauses.append(CostItem.parent_id == self.parent_id)
        if self.is_extra is not None:
            clauses.append(CostItem.is_extra.is_(self.is_extra))
        if self.purchase_order_id is not None:
            clauses.append(CostItem.purchase_order_id == self.purchase_order_id)
        if self.vo_add_id is not None:
            clauses.append(CostItem.vo_add_id == self.vo_add_id)
        if self.vo_delete_id is not None:
            clauses.append(CostItem.vo_delete_id == self.vo_delete_id)
        return clauses


@dataclass(frozen=True)
class ModificationFilter:
    """Selection of cost modifications, ordered by id ascending."""

    project_id: int | None = None
    cost_item_id: int | None = None
    cost_item_ids: tuple[int, ...] | None = None
    status: str | None = None

    def clauses(self) -> list:
        clauses = []
        if self.project_id is not None:
            clauses.append(CostModification.project_id == self.project_id)
        if self.cost_item_id is not None:
            clauses.append(CostModification.cost_item_id == self.cost_item_id)
        if self.cost_item_ids is not None:
            clauses.append(CostModification.cost_item_id.in_(self.cost_item_ids))
        if self.status is not None:
            clauses.append(CostModification.status == self.status)
        return clauses


class LedgerStore:
    def __init__(self, uow):
        self.uow = uow
        self.session = uow.session

    # ── Generic ────────────────────────────────────────────────────────────

    def get(self, model, pk, *, project_id: int | None = None):
        """Fetch ``model`` by PK, optionally scoped to ``project_id``.

        Raises:
            NotFoundError: If the row does not exist or belongs to another project.
        """
        stmt = select(model).where(model.id == pk)
        if project_id is not None:
            stmt = stmt.where(model.project_id == project_id)
        obj = self.session.execute(stmt).scalar_one_or_none()
        if obj is None:
            raise NotFoundError(resource=model.__name__, resource_id=pk, project_id=project_id)
        return obj

    def add(self, instance):
        self.uow.add(instance)
        self.uow.flush()
        return instance

    # ── Cost items ─────────────────────────────────────────────────────────

    def load_cost_item(self, item_id: int, *, project_id: int | None = None) -> CostItem:
        return self.get(CostItem, item_id, project_id=project_id)

    def load_cost_items(self, filters: CostItemFilter) -> list[CostItem]:
        stmt = select(CostItem).where(*filters.clauses()).order_by(CostItem.id)
        return list(self.session.execute(stmt).scalars().all())

    def count_children(self, parent_id: int) -> int:
        return len(self.load_cost_items(CostItemFilter(parent_id=parent_id)))

    def delete_cost_item(self, item: CostItem) -> list[int]:
        """Delete ``item`` and any children, keeping their modification history.

        WAITING modifications of the removed rows are closed as REJECTED and
        every modification row is detached (``cost_item_id`` set to NULL).
        Returns the ids of the removed rows.
        """
        children = self.load_cost_items(CostItemFilter(parent_id=item.id))
        ids = tuple(row.id for row in children) + (item.id,)

        self.session.execute(
            update(CostModification)
            .where(CostModification.cost_item_id.in_(ids), CostModification.status == MOD_WAITING)
            .values(status=MOD_REJECTED)
            .execution_options(synchronize_session="fetch")
        )
        self.session.execute(
            update(CostModification)
            .where(CostModification.cost_item_id.in_(ids))
            .values(cost_item_id=None)
            .execution_options(synchronize_session="fetch")
        )
        # Children first; the self-referencing FK has no ORM relationship to order deletes
        for row in children:
            self.session.delete(row)
        self.uow.flush()
        self.session.delete(item)
        self.uow.flush()
        return list(ids)

    # ── Modifications ──────────────────────────────────────────────────────

    def load_modifications(self, filters: ModificationFilter) -> list[CostModification]:
        stmt = select(CostModification).where(*filters.clauses()).order_by(CostModification.id)
        return list(self.session.execute(stmt).scalars().all())

    def latest_modifications(self, item_ids) -> dict[int, CostModification]:
        """Map each cost item id to its most recent modification (highest id)."""
        item_ids = tuple(item_ids)
        if not item_ids:
            return {}
        latest = {}
        for mod in self.load_modifications(ModificationFilter(cost_item_ids=item_ids)):
            latest[mod.cost_item_id] = mod
        return latest

    def waiting_modification(self, item_id: int) -> CostModification | None:
        mods = self.load_modifications(ModificationFilter(cost_item_id=item_id, status=MOD_WAITING))
        return mods[0] if mods else None

    def create_modification(
        self,
        item: CostItem,
        old_pair: tuple[float, float],
        new_pair: tuple[float, float],
        status: str,
    ) -> CostModification:
        mod = CostModification(
            project_id=item.project_id,
            cost_item_id=item.id,
            vendor_id=item.vendor_id,
            name=item.name,
            unit=item.unit,
            old_amount=old_pair[0],
            old_price=old_pair[1],
            new_amount=new_pair[0],
            new_price=new_pair[1],
            status=status,
        )
        return self.add(mod)

    # ── Users ──────────────────────────────────────────────────────────────

    def active_user(self, user_id: int | None) -> User | None:
        if user_id is None:
            return None
        stmt = select(User).where(User.id == user_id, User.is_disabled.is_(False))
        return self.session.execute(stmt).scalar_one_or_none()

    def first_active_user_with_role(self, role: Role) -> User | None:
        stmt = (
            select(User)
            .where(User.role_key == role.value, User.is_disabled.is_(False))
            .order_by(User.id)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()
