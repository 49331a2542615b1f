"""
Direct revisions of top-level cost items and the decision state machine.
"""
import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.auth import Role
from app.models.cost import MOD_APPROVED, MOD_REJECTED, MOD_VALID, MOD_WAITING, CostItem
from app.models.project import QUOTATION_PROCESSING
from app.services import cost_item_service, cost_modification_service


@pytest.fixture()
def roomy_project(make_project):
    """Project with a 10% per-item growth allowance and a 50% extra cap."""
    return make_project(extra_cost_fee=10, total_extra_fee=50)


@pytest.fixture()
def line(roomy_project, make_item):
    return make_item(roomy_project, name="Rebar", amount=1, price=100)


def _reload(pk):
    db.session.expire_all()
    return db.session.get(CostItem, pk)


# ═════════════════════════════════════════════════════════════════════════
# MODIFY COST
# ═════════════════════════════════════════════════════════════════════════

class TestModifyCost:
    def test_growth_within_allowance_is_valid(self, line, actors):
        result = cost_modification_service.modify_cost(line.id, 1, 105, actors[Role.PURCHASING])

        assert result.status, result.message
        assert result.data["modification"]["status"] == MOD_VALID
        item = _reload(line.id)
        assert (item.amount, item.price) == (1, 105)
        assert (item.bk_amount, item.bk_price) == (1, 100)

    def test_growth_is_measured_from_snapshot(self, line, actors):
        cost_modification_service.modify_cost(line.id, 1, 105, actors[Role.PURCHASING])
        result = cost_modification_service.modify_cost(line.id, 1, 112, actors[Role.PURCHASING])

        assert result.data["modification"]["status"] == MOD_WAITING
        assert _reload(line.id).price == 105

    def test_growth_beyond_allowance_waits(self, line, actors):
        result = cost_modification_service.modify_cost(line.id, 1, 120, actors[Role.PURCHASING])

        assert result.data["modification"]["status"] == MOD_WAITING
        item = _reload(line.id)
        assert item.price == 100
        assert item.bk_price is None

    def test_procurement_manager_skips_growth_review(self, line, actors):
        result = cost_modification_service.modify_cost(line.id, 1, 120, actors[Role.PROCUREMENT_MANAGER])
        assert result.data["modification"]["status"] == MOD_VALID

    def test_cap_still_applies_to_procurement_manager(self, line, actors):
        result = cost_modification_service.modify_cost(line.id, 1, 200, actors[Role.PROCUREMENT_MANAGER])
        assert result.data["modification"]["status"] == MOD_WAITING

    def test_decrease_is_valid(self, line, actors):
        result = cost_modification_service.modify_cost(line.id, 1, 80, actors[Role.PURCHASING])
        assert result.data["modification"]["status"] == MOD_VALID
        assert _reload(line.id).price == 80

    def test_unchanged_total_returns_no_modification(self, line, actors):
        result = cost_modification_service.modify_cost(line.id, 2, 50, actors[Role.PURCHASING])
        assert result.status
        assert result.data["modification"] is None

    def test_negative_values_are_invalid(self, line, actors):
        with pytest.raises(ValidationError):
            cost_modification_service.modify_cost(line.id, -1, 100, actors[Role.PURCHASING])

    def test_missing_item(self, roomy_project, actors):
        with pytest.raises(NotFoundError):
            cost_modification_service.modify_cost(9999, 1, 100, actors[Role.PURCHASING])

    def test_unapproved_quotation_is_refused(self, make_project, make_item, actors):
        project = make_project(quotation_status=QUOTATION_PROCESSING)
        item = make_item(project)
        result = cost_modification_service.modify_cost(item.id, 1, 120, actors[Role.PURCHASING])
        assert result.status is False
        assert result.code == "ERR_CONFLICT_STATE"

    def test_child_items_are_revised_through_the_parent(self, roomy_project, line, actors):
        child = cost_item_service.create_cost_item(
            roomy_project.id, {"name": "Child", "amount": 1, "price": 10, "parent_id": line.id},
            actors[Role.PURCHASING],
        ).data["cost_item"]
        with pytest.raises(ValidationError):
            cost_modification_service.modify_cost(child["id"], 1, 20, actors[Role.PURCHASING])

    def test_parent_budget_is_fixed(self, roomy_project, line, actors):
        cost_item_service.create_cost_item(
            roomy_project.id, {"name": "Child", "amount": 1, "price": 10, "parent_id": line.id},
            actors[Role.PURCHASING],
        )
        result = cost_modification_service.modify_cost(line.id, 1, 150, actors[Role.PROCUREMENT_MANAGER])
        assert result.status is False
        assert result.code == "ERR_CONFLICT_STATE"


class TestNewTopLevelExtra:
    def test_new_extra_waits_for_review(self, roomy_project, line, actors):
        result = cost_item_service.create_cost_item(
            roomy_project.id, {"name": "Scaffold", "amount": 1, "price": 30}, actors[Role.PURCHASING],
        )
        assert result.data["cost_item"]["is_extra"] is True
        assert result.data["modification"]["status"] == MOD_WAITING
        assert result.data["modification"]["old_amount"] == 0

    def test_procurement_manager_extra_is_valid(self, roomy_project, line, actors):
        result = cost_item_service.create_cost_item(
            roomy_project.id, {"name": "Scaffold", "amount": 1, "price": 30},
            actors[Role.PROCUREMENT_MANAGER],
        )
        assert result.data["modification"]["status"] == MOD_VALID
        item = _reload(result.data["cost_item"]["id"])
        assert (item.bk_amount, item.bk_price) == (0, 30)


# ═════════════════════════════════════════════════════════════════════════
# DECIDE
# ═════════════════════════════════════════════════════════════════════════

class TestDecide:
    @pytest.fixture()
    def waiting(self, line, actors):
        return cost_modification_service.modify_cost(line.id, 1, 120, actors[Role.PURCHASING]).data["modification"]

    def test_approve_writes_values_and_snapshot(self, line, waiting, actors):
        result = cost_modification_service.decide(waiting["id"], MOD_APPROVED, actors[Role.PROCUREMENT_MANAGER])

        assert result.status, result.message
        assert result.data["modification"]["status"] == MOD_APPROVED
        item = _reload(line.id)
        assert item.price == 120
        assert item.bk_price == 100

    def test_reject_keeps_values(self, line, waiting, actors):
        result = cost_modification_service.decide(waiting["id"], MOD_REJECTED, actors[Role.CEO])

        assert result.data["modification"]["status"] == MOD_REJECTED
        assert result.data["accepted_sibling_ids"] == []
        assert _reload(line.id).price == 100

    def test_unknown_decision_is_invalid(self, waiting, actors):
        with pytest.raises(ValidationError):
            cost_modification_service.decide(waiting["id"], MOD_VALID, actors[Role.CEO])

    def test_role_without_authority_is_forbidden(self, waiting, actors):
        result = cost_modification_service.decide(waiting["id"], MOD_APPROVED, actors[Role.PURCHASING])
        assert result.status is False
        assert result.code == "ERR_FORBIDDEN"
        assert result.data["role"] == Role.PURCHASING.value

    def test_second_decision_conflicts(self, waiting, actors):
        cost_modification_service.decide(waiting["id"], MOD_REJECTED, actors[Role.CEO])
        result = cost_modification_service.decide(waiting["id"], MOD_APPROVED, actors[Role.CEO])
        assert result.status is False
        assert result.code == "ERR_CONFLICT_STATE"

    def test_list_modifications_newest_first(self, roomy_project, line, waiting, actors):
        cost_modification_service.decide(waiting["id"], MOD_REJECTED, actors[Role.CEO])
        cost_modification_service.modify_cost(line.id, 1, 90, actors[Role.PURCHASING])

        mods = cost_modification_service.list_modifications(roomy_project.id)
        assert [m["status"] for m in mods] == [MOD_VALID, MOD_REJECTED]
        assert len(cost_modification_service.list_modifications(roomy_project.id, status=MOD_VALID)) == 1

    def test_decrease_past_cap_needs_ceo(self, make_project, make_item, make_modification, actors):
        project = make_project(total_extra_fee=0)
        item = make_item(project, name="Rebar", amount=1, price=150, bk_amount=1, bk_price=100)
        mod = make_modification(item, 1, 120, MOD_WAITING, old_amount=1, old_price=150)

        refused = cost_modification_service.decide(mod.id, MOD_APPROVED, actors[Role.PROCUREMENT_MANAGER])
        assert refused.status is False
        assert refused.code == "ERR_CAPACITY_EXCEEDED"
        assert refused.data["projected"] == 20

        approved = cost_modification_service.decide(mod.id, MOD_APPROVED, actors[Role.CEO])
        assert approved.status, approved.message
        assert _reload(item.id).price == 120
