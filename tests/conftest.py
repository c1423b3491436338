"""Shared fixtures: a throwaway Kuzu database per test and an API client."""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from folio import create_app
from folio.services import (
    KuzuBookService,
    KuzuFavoritesService,
    KuzuReadingProgressService,
    KuzuReviewService,
    KuzuUserService,
)
from folio.utils.safe_kuzu_manager import SafeKuzuManager, reset_safe_kuzu_manager

# Keep test databases small; Kuzu reserves max_db_size of address space up front.
TEST_BUFFER_POOL_SIZE = 64 * 1024 * 1024
TEST_MAX_DB_SIZE = 1 << 30

PASSWORD = "Shelf-life42"
ADMIN_SECRET = "let-me-curate"


class SteppingClock:
    """Deterministic clock: every call is one minute after the previous one."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.current = self.current + timedelta(minutes=1)
        return self.current


@pytest.fixture
def kuzu_manager(tmp_path):
    manager = SafeKuzuManager(
        str(tmp_path / "kuzu" / "test.kuzu"),
        buffer_pool_size=TEST_BUFFER_POOL_SIZE,
        max_db_size=TEST_MAX_DB_SIZE,
    )
    yield manager
    manager.close()


@pytest.fixture
def password():
    return PASSWORD


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def services(kuzu_manager, clock):
    """Every domain service bound to the same test database."""
    return SimpleNamespace(
        users=KuzuUserService(kuzu_manager, clock=clock),
        books=KuzuBookService(kuzu_manager, clock=clock),
        progress=KuzuReadingProgressService(kuzu_manager, clock=clock),
        reviews=KuzuReviewService(kuzu_manager, clock=clock),
        favorites=KuzuFavoritesService(kuzu_manager),
    )


@pytest.fixture
def make_user(services):
    def _make(name="Ada Reader", email=None, **kwargs):
        email = email or f"{name.split()[0].lower()}@example.com"
        return services.users.register(name, email, PASSWORD, **kwargs)
    return _make


@pytest.fixture
def make_book(services):
    def _make(owner, title="Middlemarch", author="George Eliot", category="Fiction", pages=880):
        return services.books.create_book(owner, {
            "title": title,
            "author": author,
            "category": category,
            "pages": pages,
        })
    return _make


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "ADMIN_SECRET": ADMIN_SECRET,
        "KUZU_DB_PATH": str(tmp_path / "kuzu" / "api.kuzu"),
        "KUZU_BUFFER_POOL_SIZE": TEST_BUFFER_POOL_SIZE,
        "KUZU_MAX_DB_SIZE": TEST_MAX_DB_SIZE,
        "AI_FALLBACK_ENABLED": "false",
    })
    yield app
    reset_safe_kuzu_manager()


@pytest.fixture
def client(app):
    return app.test_client()


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def bearer():
    return _bearer


@pytest.fixture
def register(client):
    """POST /api/auth/register and return the JSON session payload."""
    def _register(name="Ada Reader", email=None, password=PASSWORD, **extra):
        body = {"name": name, "email": email or f"{name.split()[0].lower()}@example.com", "password": password}
        body.update(extra)
        response = client.post("/api/auth/register", json=body)
        assert response.status_code == 201, response.get_json()
        return response.get_json()
    return _register


@pytest.fixture
def admin_session(register):
    return register("Grace Admin", email="grace@example.com", role="admin", adminSecret=ADMIN_SECRET)


@pytest.fixture
def reader_session(register):
    return register("Ada Reader", email="ada@example.com")


@pytest.fixture
def api_book(client, admin_session):
    response = client.post("/api/books", json={
        "title": "Middlemarch",
        "author": "George Eliot",
        "category": "Fiction",
        "pages": 880,
    }, headers=_bearer(admin_session["token"]))
    assert response.status_code == 201
    return response.get_json()
