from datetime import date

import pytest

from library_service.app import create_app
from library_service.clock import FixedClock

START = date(2025, 9, 5)


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def app(clock):
    # Every app gets its own in-memory database
    app = create_app(
        {
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "TESTING": True,
            "LOG_LEVEL": "WARNING",
            "SERVICE_API_KEY": "test-service-key",
        },
        clock=clock,
    )
    yield app
    app.extensions["library"].engine.dispose()


@pytest.fixture
def lib(app):
    return app.extensions["library"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_book(lib):
    def _make(title="Clean Code", author="Robert C. Martin", isbn=None, total_copies=1, **fields):
        return lib.books.register_book(
            title=title, author=author, isbn=isbn, total_copies=total_copies, **fields
        )

    return _make


@pytest.fixture
def make_member(lib):
    counter = {"n": 0}

    def _make(name="Alice", email=None, max_loan_count=None):
        counter["n"] += 1
        email = email or f"member{counter['n']}@example.com"
        return lib.members.create_member(name=name, email=email, max_loan_count=max_loan_count)

    return _make


def _login(client, username, password):
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return {"Authorization": f"Bearer {resp.get_json()['access_token']}"}


@pytest.fixture
def admin_headers(lib, client):
    lib.auth.create_admin("admin", "admin-password", "admin@example.com")
    return _login(client, "admin", "admin-password")


@pytest.fixture
def user_headers(lib, client):
    lib.auth.register("reader", "reader-password", "reader@example.com", "Reader")
    return _login(client, "reader", "reader-password")
