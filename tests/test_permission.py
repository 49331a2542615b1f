"""Role capabilities and the ledger unit of work."""
import pytest

from app.core.exceptions import CapacityError, ConflictError, PermissionDeniedError
from app.models import db
from app.models.auth import Role
from app.models.cost import MOD_APPROVED, MOD_REJECTED
from app.models.project import Vendor
from app.services.permission import (
    Actor,
    DecisionContext,
    actor_can_decide,
    require_decision_authority,
    skips_growth_review,
)
from app.services.unit_of_work import LedgerResult, ledger_operation


class TestDecisionAuthority:
    @pytest.mark.parametrize("role", [Role.CEO, Role.PROCUREMENT_MANAGER])
    def test_decision_roles(self, role):
        assert actor_can_decide(role, DecisionContext(decision=MOD_APPROVED)) is True

    @pytest.mark.parametrize("role", [Role.PURCHASING, Role.PM, Role.QS, Role.CFO])
    def test_other_roles(self, role):
        assert actor_can_decide(role, DecisionContext(decision=MOD_REJECTED)) is False

    def test_ceo_ignores_cap(self):
        context = DecisionContext(decision=MOD_APPROVED, cap_exceeded=True)
        assert actor_can_decide(Role.CEO, context) is True

    def test_procurement_manager_may_reject_past_cap(self):
        context = DecisionContext(decision=MOD_REJECTED, cap_exceeded=True)
        assert actor_can_decide(Role.PROCUREMENT_MANAGER, context) is True

    def test_require_raises_capacity(self):
        context = DecisionContext(decision=MOD_APPROVED, cap_exceeded=True, projected=60, cap=50)
        with pytest.raises(CapacityError) as exc:
            require_decision_authority(Actor(1, Role.PROCUREMENT_MANAGER), context)
        assert (exc.value.projected, exc.value.cap) == (60, 50)

    def test_require_raises_forbidden(self):
        with pytest.raises(PermissionDeniedError):
            require_decision_authority(Actor(1, Role.SALE), DecisionContext(decision=MOD_APPROVED))

    def test_growth_review(self):
        assert skips_growth_review(Actor(1, Role.PROCUREMENT_MANAGER)) is True
        assert skips_growth_review(Actor(1, Role.PURCHASING)) is False


@ledger_operation
def _add_vendor(uow, name, refuse=False):
    vendor = uow.add(Vendor(name=name))
    uow.flush()
    if refuse:
        raise ConflictError("refused", resource="Vendor", field="name", value=name)
    return {"id": vendor.id}


class TestUnitOfWork:
    def test_commit_on_success(self):
        result = _add_vendor("Acme")
        assert result.status is True
        db.session.expire_all()
        assert Vendor.query.count() == 1

    def test_rollback_on_refusal(self):
        result = _add_vendor("Acme", refuse=True)
        assert result.status is False
        assert result.code == "ERR_CONFLICT_STATE"
        assert result.data == {"resource": "Vendor", "field": "name", "value": "Acme"}
        assert Vendor.query.count() == 0

    def test_result_to_dict(self):
        assert LedgerResult.ok({"a": 1}).to_dict() == {"status": True, "message": "OK", "data": {"a": 1}}
        refused = LedgerResult.refused(ConflictError("busy", field="status")).to_dict()
        assert refused == {
            "status": False,
            "message": "busy",
            "code": "ERR_CONFLICT_STATE",
            "data": {"field": "status"},
        }
