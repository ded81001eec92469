"""
Shared pytest fixtures for the Atelier phase workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - default_tenant / other_tenant: Tenant entities
    - manager / designer: Users of the default tenant
    - auth_headers / make_headers: Bearer JWT headers
    - templates: Seeded default phase template catalogue
    - project: Bare project (no phases) of the default tenant
"""

import pytest

from atelier import create_app
from atelier.models import db as _db
from atelier.models.auth import Tenant, User
from atelier.models.project import Project
from atelier.services.jwt_service import generate_access_token


def _ensure_default_tenant():
    t = Tenant.query.filter_by(slug="test-default").first()
    if not t:
        t = Tenant(name="Test Default", slug="test-default")
        _db.session.add(t)
        _db.session.commit()
    return t.id


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


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
        _ensure_default_tenant()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Tenancy & auth ───────────────────────────────────────────────────────


@pytest.fixture()
def default_tenant():
    """Return the auto-created default test tenant."""
    return Tenant.query.filter_by(slug="test-default").first()


@pytest.fixture()
def other_tenant():
    t = Tenant(name="Other Studio", slug="other-studio")
    _db.session.add(t)
    _db.session.commit()
    return t


def _make_user(tenant_id, email, full_name=None):
    user = User(tenant_id=tenant_id, email=email, full_name=full_name, status="active")
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def manager(default_tenant):
    return _make_user(default_tenant.id, "pm@studio.test", "Priya Manager")


@pytest.fixture()
def designer(default_tenant):
    return _make_user(default_tenant.id, "designer@studio.test", "Dev Designer")


@pytest.fixture()
def make_headers():
    """Build Authorization headers for any user / tenant pair."""

    def _make(user_id, tenant_id, roles=("project_manager",)):
        token = generate_access_token(user_id, tenant_id, list(roles))
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    return _make


@pytest.fixture()
def auth_headers(manager, default_tenant, make_headers):
    return make_headers(manager.id, default_tenant.id)


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def templates():
    """Seed the default system phase template catalogue."""
    from atelier.services.phase_template_service import seed_default_templates

    count = seed_default_templates()
    _db.session.commit()
    return count


@pytest.fixture()
def project(default_tenant, manager):
    """A project of the default tenant with no phases yet."""
    proj = Project(
        tenant_id=default_tenant.id,
        project_number="PRJ-26-0001",
        name="Sharma Residence",
        client_name="A. Sharma",
        category="turnkey",
        created_by=manager.id,
    )
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def add_phase(project):
    """Factory: add a phase directly to ``project``."""
    from atelier.models.phase import ProjectPhase

    def _add(name, display_order=None, **kwargs):
        phase = ProjectPhase(
            tenant_id=project.tenant_id,
            project_id=project.id,
            name=name,
            display_order=display_order if display_order is not None else
            ProjectPhase.query.filter_by(project_id=project.id).count() + 1,
            **kwargs,
        )
        _db.session.add(phase)
        _db.session.commit()
        return phase

    return _add


@pytest.fixture()
def add_dependency():
    """Factory: add an edge ``phase`` → ``depends_on`` directly."""
    from atelier.models.phase import PhaseDependency

    def _add(phase, depends_on, dependency_type="hard"):
        dep = PhaseDependency(
            tenant_id=phase.tenant_id,
            project_phase_id=phase.id,
            depends_on_phase_id=depends_on.id,
            dependency_type=dependency_type,
        )
        _db.session.add(dep)
        _db.session.commit()
        return dep

    return _add
