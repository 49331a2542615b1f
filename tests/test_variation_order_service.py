"""Variation orders: collecting changes, roster and CEO-or-unanimous quorum."""
import pytest

from app.core.exceptions import ValidationError
from app.models.auth import Role
from app.models.project import QUOTATION_PROCESSING
from app.models.purchase_order import APPROVER_APPROVED, APPROVER_REJECTED
from app.models.variation_order import VO_APPROVED, VO_REJECTED, VO_WAITING_APPROVAL
from app.services import cost_item_service
from app.services import variation_order_service as svc
from app.services.cost_aggregation import sum_project_cost


@pytest.fixture()
def vo(project, actors):
    result = svc.create_vo(
        project.id,
        {"name": "VO-01", "discount_type": "%", "discount_amount": 10, "vat_percent": 10},
        actors[Role.QS],
    )
    assert result.status, result.message
    return result.data["vo"]


@pytest.fixture()
def amended_vo(project, parent, vo, actors):
    """VO adding a 1 x 300 line and removing the 1 x 100 baseline line."""
    added = cost_item_service.create_cost_item(
        project.id, {"name": "Facade", "amount": 1, "price": 300, "vo_id": vo["id"]}, actors[Role.QS],
    )
    assert added.status, added.message
    removed = svc.remove_cost_item(vo["id"], parent.id)
    assert removed.status, removed.message
    return vo


@pytest.fixture()
def submitted(amended_vo, actors):
    result = svc.submit_vo(amended_vo["id"], actors[Role.QS])
    assert result.status, result.message
    return result.data


class TestCollectChanges:
    def test_requires_approved_quotation(self, make_project, actors):
        project = make_project(quotation_status=QUOTATION_PROCESSING)
        result = svc.create_vo(project.id, {"name": "VO"}, actors[Role.QS])
        assert result.code == "ERR_CONFLICT_STATE"

    def test_added_line_is_baseline_without_modification(self, project, vo, actors):
        result = cost_item_service.create_cost_item(
            project.id, {"name": "Facade", "amount": 1, "price": 300, "vo_id": vo["id"]}, actors[Role.QS],
        )
        assert result.data["cost_item"]["vo_add_id"] == vo["id"]
        assert result.data["cost_item"]["is_extra"] is False
        assert result.data["modification"] is None

    def test_budget_children_cannot_be_removed(self, project, parent, vo, actors):
        child = cost_item_service.create_cost_item(
            project.id, {"name": "Child", "amount": 1, "price": 10, "parent_id": parent.id},
            actors[Role.PURCHASING],
        ).data["cost_item"]
        result = svc.remove_cost_item(vo["id"], child["id"])
        assert result.code == "ERR_CONFLICT_STATE"

    def test_submit_without_changes(self, vo, actors):
        with pytest.raises(ValidationError):
            svc.submit_vo(vo["id"], actors[Role.QS])

    def test_totals_unchanged_until_approved(self, project, amended_vo):
        summary = sum_project_cost(project.id)
        assert summary.base == 100
        assert summary.modified == 100


class TestRoster:
    def test_submit_builds_four_seats(self, submitted, users):
        seats = [(a["role_key"], a["user_id"]) for a in submitted["approvers"]]
        assert seats == [
            (Role.CEO.value, None),
            (Role.PROCUREMENT_MANAGER.value, None),
            (Role.PM.value, users[Role.PM].id),
            (Role.SALE.value, users[Role.SALE].id),
        ]
        assert submitted["vo"]["status"] == VO_WAITING_APPROVAL

    def test_locked_while_waiting(self, project, submitted, actors):
        result = cost_item_service.create_cost_item(
            project.id, {"name": "Late", "amount": 1, "price": 5, "vo_id": submitted["vo"]["id"]},
            actors[Role.QS],
        )
        assert result.code == "ERR_CONFLICT_STATE"


class TestQuorum:
    def test_ceo_alone_approves_and_prices_the_difference(self, project, submitted, actors):
        result = svc.decide_vo(submitted["vo"]["id"], APPROVER_APPROVED, actors[Role.CEO])

        assert result.status, result.message
        vo = result.data["vo"]
        assert vo["status"] == VO_APPROVED
        assert vo["diff_total"] == pytest.approx(180)
        assert vo["diff_vat"] == pytest.approx(18)

        summary = sum_project_cost(project.id)
        assert summary.base == 300
        assert summary.modified == 300

    def test_non_ceo_seats_must_be_unanimous(self, submitted, actors):
        vo_id = submitted["vo"]["id"]
        for role in (Role.PROCUREMENT_MANAGER, Role.PM):
            result = svc.decide_vo(vo_id, APPROVER_APPROVED, actors[role])
            assert result.data["vo"]["status"] == VO_WAITING_APPROVAL

        result = svc.decide_vo(vo_id, APPROVER_APPROVED, actors[Role.SALE])
        assert result.data["vo"]["status"] == VO_APPROVED

    def test_non_ceo_rejection_keeps_waiting(self, submitted, actors):
        result = svc.decide_vo(submitted["vo"]["id"], APPROVER_REJECTED, actors[Role.SALE])
        assert result.data["vo"]["status"] == VO_WAITING_APPROVAL
        assert result.data["approver"]["status"] == APPROVER_REJECTED

    def test_ceo_rejection_reopens_for_resubmission(self, submitted, actors):
        vo_id = submitted["vo"]["id"]
        result = svc.decide_vo(vo_id, APPROVER_REJECTED, actors[Role.CEO], comment="too expensive")
        assert result.data["vo"]["status"] == VO_REJECTED

        again = svc.submit_vo(vo_id, actors[Role.QS])
        assert again.status
        assert len(svc.list_approvers(vo_id)) == 4

    def test_role_without_seat(self, submitted, actors):
        result = svc.decide_vo(submitted["vo"]["id"], APPROVER_APPROVED, actors[Role.FINANCE])
        assert result.code == "ERR_FORBIDDEN"

    def test_seat_decides_once(self, submitted, actors):
        vo_id = submitted["vo"]["id"]
        svc.decide_vo(vo_id, APPROVER_REJECTED, actors[Role.PM])
        result = svc.decide_vo(vo_id, APPROVER_APPROVED, actors[Role.PM])
        assert result.code == "ERR_CONFLICT_STATE"
