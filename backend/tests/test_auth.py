import threading
from datetime import timedelta

from fastapi.testclient import TestClient

from finance_tracker.auth_utils import hash_password, verify_password
from finance_tracker.main import create_app
from finance_tracker.persistence import InMemoryPersistence


def _secured_client() -> TestClient:
    return TestClient(create_app(InMemoryPersistence(), auth_required=True, seed=False))


def test_password_hash_round_trip() -> None:
    stored = hash_password("correct horse")
    assert verify_password("correct horse", stored)
    assert not verify_password("wrong horse", stored)
    assert not verify_password("correct horse", "malformed")


def test_api_requires_session_when_enabled() -> None:
    client = _secured_client()
    assert client.get("/api/health").status_code == 200

    res = client.get("/api/incomes")
    assert res.status_code == 401
    assert res.json()["message"] == "authentication required"


def test_register_sets_cookie_session() -> None:
    client = _secured_client()
    res = client.post("/api/register", json={"username": "ana", "password": "segredo123"})
    assert res.status_code == 201
    assert res.json()["user"]["username"] == "ana"

    assert client.get("/api/incomes").status_code == 200
    assert client.get("/api/user").json()["username"] == "ana"


def test_login_with_bearer_token_and_logout() -> None:
    client = _secured_client()
    client.post("/api/register", json={"username": "bia", "password": "segredo123"})
    client.cookies.clear()

    assert client.post("/api/login", json={"username": "bia", "password": "errada123"}).status_code == 401

    token = client.post("/api/login", json={"username": "bia", "password": "segredo123"}).json()["token"]
    client.cookies.clear()
    headers = {"Authorization": f"Bearer {token}"}
    assert client.get("/api/fixed-expenses", headers=headers).status_code == 200

    assert client.post("/api/logout", headers=headers).status_code == 200
    assert client.get("/api/fixed-expenses", headers=headers).status_code == 401


def test_duplicate_username_is_conflict() -> None:
    client = _secured_client()
    client.post("/api/register", json={"username": "caio", "password": "segredo123"})
    res = client.post("/api/register", json={"username": "caio", "password": "outra12345"})
    assert res.status_code == 409
    assert res.json()["field"] == "username"


def test_register_validation() -> None:
    client = _secured_client()
    assert client.post("/api/register", json={"username": "a b c", "password": "segredo123"}).status_code == 400
    assert client.post("/api/register", json={"username": "dora", "password": "short"}).status_code == 400


def test_idle_session_expires() -> None:
    app = create_app(InMemoryPersistence(), auth_required=True, seed=False, session_timeout_minutes=30)
    client = TestClient(app)
    token = client.post("/api/register", json={"username": "edu", "password": "segredo123"}).json()["token"]
    assert client.get("/api/incomes").status_code == 200

    app.state.sessions[token]["last_seen"] -= timedelta(minutes=31)

    assert client.get("/api/incomes").status_code == 401
    assert token not in app.state.sessions


def test_activity_keeps_session_alive() -> None:
    app = create_app(InMemoryPersistence(), auth_required=True, seed=False, session_timeout_minutes=30)
    client = TestClient(app)
    token = client.post("/api/register", json={"username": "fabi", "password": "segredo123"}).json()["token"]

    app.state.sessions[token]["last_seen"] -= timedelta(minutes=29)
    assert client.get("/api/incomes").status_code == 200
    app.state.sessions[token]["last_seen"] -= timedelta(minutes=29)
    assert client.get("/api/incomes").status_code == 200


def test_login_drops_expired_sessions() -> None:
    app = create_app(InMemoryPersistence(), auth_required=True, seed=False, session_timeout_minutes=30)
    client = TestClient(app)
    old_token = client.post("/api/register", json={"username": "gil", "password": "segredo123"}).json()["token"]
    app.state.sessions[old_token]["last_seen"] -= timedelta(hours=2)

    new_token = client.post("/api/login", json={"username": "gil", "password": "segredo123"}).json()["token"]

    assert list(app.state.sessions) == [new_token]


def test_user_lookup_waits_for_store_lock() -> None:
    persistence = InMemoryPersistence()
    user = persistence.register_user("hugo", "segredo123")
    results = []

    with persistence.store.lock:
        reader = threading.Thread(target=lambda: results.append(persistence.get_user_by_id(user["id"])))
        reader.start()
        reader.join(timeout=0.2)
        assert reader.is_alive()
        assert results == []

    reader.join(timeout=5)
    assert results == [user]
    assert persistence.get_user_by_id(999) is None
