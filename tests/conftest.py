"""
Shared pytest fixtures for the cost ledger test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / users / actors: one active user and Actor per role
    - make_project / project: APPROVED project managed by the PM user
    - make_item / parent: committed cost lines
    - vendor

Factories commit: ledger operations roll back on refusal, and rows that
were only flushed would disappear with them.
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import Role, User
from app.models.cost import CostItem, CostModification
from app.models.project import QUOTATION_APPROVED, Project, Vendor
from app.services.permission import Actor


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    def _make(role, **kwargs):
        role = Role(role)
        kwargs.setdefault("email", f"{role.value.lower()}-{User.query.count() + 1}@example.com")
        kwargs.setdefault("full_name", role.value.title())
        user = User(role_key=role.value, **kwargs)
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def users(make_user):
    """One active user per role, keyed by Role."""
    return {role: make_user(role) for role in Role}


@pytest.fixture()
def actors(users):
    return {role: Actor(user_id=user.id, role=role) for role, user in users.items()}


@pytest.fixture()
def make_project(users):
    def _make(**kwargs):
        kwargs.setdefault("code", "PRJ-001")
        kwargs.setdefault("name", "Riverside Tower")
        kwargs.setdefault("quotation_status", QUOTATION_APPROVED)
        kwargs.setdefault("extra_cost_fee", 10)
        kwargs.setdefault("total_extra_fee", 0)
        kwargs.setdefault("manage_by", users[Role.PM].id)
        kwargs.setdefault("sale_by", users[Role.SALE].id)
        project = Project(**kwargs)
        _db.session.add(project)
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def project(make_project):
    return make_project()


@pytest.fixture()
def vendor():
    v = Vendor(name="Acme Supplies", short_name="ACME")
    _db.session.add(v)
    _db.session.commit()
    return v


@pytest.fixture()
def make_item():
    def _make(project, **kwargs):
        kwargs.setdefault("name", "Line item")
        kwargs.setdefault("amount", 1)
        kwargs.setdefault("price", 100)
        item = CostItem(project_id=project.id, **kwargs)
        _db.session.add(item)
        _db.session.commit()
        return item
    return _make


@pytest.fixture()
def make_modification():
    def _make(item, new_amount, new_price, status, old_amount=0, old_price=None):
        mod = CostModification(
            project_id=item.project_id,
            cost_item_id=item.id,
            name=item.name,
            old_amount=old_amount,
            old_price=new_price if old_price is None else old_price,
            new_amount=new_amount,
            new_price=new_price,
            status=status,
        )
        _db.session.add(mod)
        _db.session.commit()
        return mod
    return _make


@pytest.fixture()
def parent(project, make_item):
    """Baseline line with a 1 x 100 budget."""
    return make_item(project, name="Concrete works", amount=1, price=100)
