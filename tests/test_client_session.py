"""Tests for the API client's explicit session handling."""
import pytest

from folio.client import (
    AccountSuspendedError,
    ClientError,
    ClientSession,
    LibraryClient,
    SessionExpiredError,
    TEARDOWN_EXPIRED,
    TEARDOWN_LOGOUT,
    TEARDOWN_SUSPENDED,
)

LOGIN_PAYLOAD = {"id": "u-1", "name": "Ada", "email": "ada@example.com", "role": "reader", "token": "tok-1"}


class DummyResponse:
    def __init__(self, payload, status_code=200, reason="OK"):
        self._payload = payload
        self.status_code = status_code
        self.reason = reason

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHttp:
    """Replays queued responses and records what was sent."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.sent = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.sent.append({"method": method, "url": url, "json": json, "headers": headers})
        return self.responses.pop(0)


def test_login_establishes_session():
    http = FakeHttp(DummyResponse(LOGIN_PAYLOAD), DummyResponse({"email": "ada@example.com"}))
    client = LibraryClient("http://folio.test/", http=http)

    client.login("ada@example.com", "secret")
    client.me()

    assert client.session.token == "tok-1"
    assert client.session.user["role"] == "reader"
    assert "token" not in client.session.user
    assert http.sent[0]["url"] == "http://folio.test/api/auth/login"
    assert "Authorization" not in http.sent[0]["headers"]
    assert http.sent[1]["headers"]["Authorization"] == "Bearer tok-1"


def test_unauthorized_response_tears_session_down():
    session = ClientSession(token="stale", user={"id": "u-1"})
    http = FakeHttp(DummyResponse({"status": "error", "message": "Session expired", "code": "unauthenticated"},
                                  status_code=401))
    client = LibraryClient("http://folio.test", session=session, http=http)

    with pytest.raises(SessionExpiredError):
        client.me()

    assert not session.is_active
    assert session.user == {}
    assert session.last_teardown_reason == TEARDOWN_EXPIRED


def test_suspension_is_explicit():
    session = ClientSession(token="tok-1", user={"id": "u-1"})
    http = FakeHttp(DummyResponse({"status": "error", "message": "suspended", "code": "account_suspended"},
                                  status_code=403))
    client = LibraryClient("http://folio.test", session=session, http=http)

    with pytest.raises(AccountSuspendedError) as excinfo:
        client.toggle_favorite("b-1")

    assert excinfo.value.code == "account_suspended"
    assert session.last_teardown_reason == TEARDOWN_SUSPENDED
    assert not session.is_active


def test_role_forbidden_keeps_session():
    session = ClientSession(token="tok-1", user={"id": "u-1"})
    http = FakeHttp(DummyResponse({"status": "error", "message": "nope", "code": "forbidden_role"},
                                  status_code=403))
    client = LibraryClient("http://folio.test", session=session, http=http)

    with pytest.raises(ClientError) as excinfo:
        client.review("b-1", 5, "Great")

    assert not isinstance(excinfo.value, AccountSuspendedError)
    assert session.token == "tok-1"


def test_failed_login_does_not_tear_down_existing_session():
    session = ClientSession(token="tok-1", user={"id": "u-1"})
    http = FakeHttp(DummyResponse({"message": "Invalid email or password", "code": "unauthenticated"},
                                  status_code=401))
    client = LibraryClient("http://folio.test", session=session, http=http)

    with pytest.raises(ClientError) as excinfo:
        client.login("ada@example.com", "wrong")

    assert excinfo.value.status_code == 401
    assert session.token == "tok-1"


def test_logout_clears_session_even_on_error():
    session = ClientSession(token="tok-1", user={"id": "u-1"})
    client = LibraryClient("http://folio.test", session=session,
                           http=FakeHttp(DummyResponse(None, status_code=502, reason="Bad Gateway")))

    with pytest.raises(ClientError):
        client.logout()

    assert session.last_teardown_reason == TEARDOWN_LOGOUT
    assert not session.is_active


def test_session_persists_to_disk(tmp_path):
    path = str(tmp_path / "state" / "session.json")
    session = ClientSession(storage_path=path)
    session.establish(LOGIN_PAYLOAD)

    restored = ClientSession.load(path)
    assert restored.token == "tok-1"
    assert restored.user["email"] == "ada@example.com"

    restored.teardown(TEARDOWN_LOGOUT)
    assert ClientSession.load(path).token is None


def test_chat_sends_full_context():
    http = FakeHttp(DummyResponse({"reply": "Sure."}))
    client = LibraryClient("http://folio.test", session=ClientSession(token="tok-1"), http=http)

    reply = client.chat("Summarize", [{"role": "user", "text": "hi"}], "page text", 4, "Emma", "Jane Austen")

    assert reply == "Sure."
    body = http.sent[0]["json"]
    assert body["pageContent"] == "page text"
    assert body["pageNumber"] == 4
    assert body["history"] == [{"role": "user", "text": "hi"}]
