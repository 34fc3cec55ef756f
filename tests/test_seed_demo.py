import pytest
import requests

import seed_demo


class _Response:
    """Enough of requests.Response for the seeding script."""

    def __init__(self, flask_response):
        self.status_code = flask_response.status_code
        self.ok = self.status_code < 400
        self.text = flask_response.get_data(as_text=True)
        self._json = flask_response.get_json(silent=True)

    def json(self):
        return self._json


@pytest.fixture
def routed(client, monkeypatch):
    """Send the script's HTTP calls through the Flask test client."""

    def _path(url):
        return url.replace(seed_demo.BASE_URL, "")

    def fake_get(url, **kwargs):
        return _Response(client.get(_path(url)))

    def fake_post(url, json=None, headers=None, **kwargs):
        return _Response(client.post(_path(url), json=json, headers=headers))

    monkeypatch.setattr(seed_demo.requests, "get", fake_get)
    monkeypatch.setattr(seed_demo.requests, "post", fake_post)


def test_seed_books_and_members(lib, routed):
    lib.auth.create_admin("admin", "admin-password", "admin@example.com")

    assert seed_demo.check_service(seed_demo.BASE_URL)
    token = seed_demo.login(seed_demo.BASE_URL, "admin", "admin-password")
    assert token

    assert seed_demo.seed_books(seed_demo.BASE_URL, token) == len(seed_demo.BOOKS)
    assert seed_demo.seed_members(seed_demo.BASE_URL, token) == len(seed_demo.MEMBERS)
    assert lib.books.count_books() == 5
    assert lib.books.find_by_isbn("978-0201616224").total_copies == 4
    assert lib.members.get_by_email("carol@example.com").max_loan_count == 2

    # a second run hits the duplicate checks instead of creating rows
    assert seed_demo.seed_books(seed_demo.BASE_URL, token) == 0
    assert lib.books.count_books() == 5


def test_login_failure_returns_none(lib, routed):
    assert seed_demo.login(seed_demo.BASE_URL, "nobody", "wrong") is None


def test_check_service_unreachable(monkeypatch):
    def refuse(url, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(seed_demo.requests, "get", refuse)
    assert not seed_demo.check_service("http://localhost:1")
