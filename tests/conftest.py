"""
Shared pytest fixtures for the Resource Allocation Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org: departments and one user per role
    - phase / vm_template / vm_pool: a phase declaring a 5-unit VM pool
"""

from types import SimpleNamespace

import pytest

from app import create_app
from app.models import db as _db
import factories as f


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def org():
    """One user per role; ``operator`` is the assignable operations member."""
    ops = f.make_department("Operations", unit_type="operations")
    approvals = f.make_department("Management", unit_type="approval")
    it_dept = f.make_department("IT", unit_type="admin")
    people = SimpleNamespace(
        ops=ops,
        requester=f.make_user("member", ops, full_name="Rita Requester"),
        operator=f.make_user("member", ops, full_name="Omar Operator"),
        dept_head=f.make_user("department_head", approvals, full_name="Dana Head"),
        it_head=f.make_user("it_head", it_dept, full_name="Ivan IT Head"),
        it_team=f.make_user("it_team", it_dept, full_name="Tara Tech"),
        admin=f.make_user("admin", it_dept, full_name="Ada Admin"),
    )
    _db.session.commit()
    return people


@pytest.fixture()
def phase():
    p = f.make_phase()
    _db.session.commit()
    return p


@pytest.fixture()
def vm_template():
    t = f.make_template("Standard VM", approval_levels=1)
    _db.session.commit()
    return t


@pytest.fixture()
def vm_pool(phase, vm_template):
    pool = f.make_pool(phase, template=vm_template, total_qty=5)
    _db.session.commit()
    return pool
