"""
Shared pytest fixtures for the Case Study Builder test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - translator: In-memory translation gateway (autouse, no network)
    - crm_mock_mode: Insightly gateway without an API key (autouse)
    - make_user / admin / approver / contributor / marketing / viewer
    - auth: Bearer header builder for a user
    - make_case: Case study factory going through the service layer
"""

import pytest

from app import create_app
from app.integrations import insightly_gateway as ig
from app.integrations import translation_gateway as tg
from app.models import db as _db
from app.models.auth import (
    ROLE_ADMIN,
    ROLE_APPROVER,
    ROLE_CONTRIBUTOR,
    ROLE_MARKETING,
    ROLE_VIEWER,
    User,
)
from app.services.jwt_service import generate_access_token


CASE_PAYLOAD = {
    "type": "APPLICATION",
    "customer_name": "ABC Mining",
    "industry": "Mining",
    "location": "Perth",
    "country": "Australia",
    "component_workpiece": "Crusher Hammer",
    "work_type": "WORKSHOP",
    "wear_type": ["ABRASION", "IMPACT"],
    "problem_description": "Hammers wear out after three months of abrasive service",
    "previous_solution": "Manganese steel replacement",
    "wa_solution": "Hardfacing overlay applied in the workshop",
    "wa_product": "HARDFACE HC-O",
    "technical_advantages": "Four times the service life",
    "solution_value_revenue": 50000,
}


class FakeTranslationGateway:
    """Deterministic stand-in for TranslationGateway.

    Detection uses the real script heuristic; translation prefixes the
    target language code.  ``fail`` makes every translation unsuccessful.
    """

    provider_name = "fake"

    def __init__(self):
        self.calls = []
        self.fail = False

    def translate(self, text, target, source=None):
        self.calls.append((text, target, source))
        if self.fail:
            return tg.TranslationResult(
                success=False, target_language=target, provider=self.provider_name,
                error="provider unavailable",
            )
        return tg.TranslationResult(
            success=True, target_language=target, provider=self.provider_name,
            translated_text=f"[{target}] {text}", source_language=source,
        )

    def detect_language(self, text):
        if not text or not text.strip():
            return tg.DetectionResult(success=False, error="No text provided")
        return tg.detect_language_heuristic(text)

    def batch_translate(self, texts, target, source=None):
        return [self.translate(t, target, source) for t in texts]


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


# ── Provider fixtures ────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def translator(monkeypatch):
    """Replace the translation gateway singleton for every test."""
    fake = FakeTranslationGateway()
    monkeypatch.setattr(tg, "translation_gateway", fake)
    return fake


@pytest.fixture(autouse=True)
def crm_mock_mode(monkeypatch):
    """Insightly gateway with no API key, regardless of the environment."""
    gateway = ig.InsightlyGateway(api_key="")
    monkeypatch.setattr(ig, "insightly_gateway", gateway)
    return gateway


# ── Users & auth ─────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user(role, email=None, **fields) → committed User."""
    counter = {"n": 0}

    def _make(role=ROLE_CONTRIBUTOR, email=None, **fields):
        counter["n"] += 1
        user = User(
            email=email or f"{role.lower()}{counter['n']}@example.com",
            name=fields.pop("name", f"{role.title()} {counter['n']}"),
            role=role,
            **fields,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def admin(make_user):
    return make_user(ROLE_ADMIN, email="admin@example.com", name="Ada Admin")


@pytest.fixture()
def approver(make_user):
    return make_user(ROLE_APPROVER, email="approver@example.com", name="Avery Approver")


@pytest.fixture()
def contributor(make_user):
    return make_user(ROLE_CONTRIBUTOR, email="contributor@example.com", name="Casey Contributor")


@pytest.fixture()
def marketing(make_user):
    return make_user(ROLE_MARKETING, email="marketing@example.com", name="Morgan Marketing")


@pytest.fixture()
def viewer(make_user):
    return make_user(ROLE_VIEWER, email="viewer@example.com", name="Vic Viewer")


@pytest.fixture()
def auth():
    """auth(user) → Authorization header dict with a fresh access token."""
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user)}"}
    return _headers


# ── Case studies ─────────────────────────────────────────────────────────


@pytest.fixture()
def case_payload():
    """A valid APPLICATION case study body (fresh copy per test)."""
    return {**CASE_PAYLOAD, "wear_type": list(CASE_PAYLOAD["wear_type"])}


@pytest.fixture()
def make_case(case_payload):
    """Factory: make_case(user, **overrides) → CaseStudy row."""
    from app.models.case_study import CaseStudy
    from app.services.case_study_service import create_case_study

    def _make(user, **overrides):
        data = {**case_payload, **overrides}
        created = create_case_study(data, user)
        return _db.session.get(CaseStudy, created["id"])

    return _make


@pytest.fixture()
def submitted_case(make_case, contributor):
    return make_case(contributor, status="SUBMITTED")


@pytest.fixture()
def approved_case(submitted_case, approver):
    from app.services.approval_service import approve_case_study
    approve_case_study(submitted_case.id, approver)
    return submitted_case
