from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import RedisError
from sqlalchemy import update
from httpx import ASGITransport, AsyncClient

from config import settings
from database import get_db
from main import create_app
from models.auth_session import AuthSession
from routers import rate_limit
from services.session_token import create_access_token
from services.sessions import purge_expired_sessions


@pytest.mark.asyncio
async def test_session_strategy_signs_in_with_cookie_only(client_factory, register_account):
    client = client_factory("session")

    registered = await register_account(client, "Alice@Example.com")

    assert registered["user"]["email"] == "alice@example.com"
    assert "token" not in registered
    assert client.cookies.get(settings.SESSION_COOKIE_NAME)

    me = await client.get("/api/user")
    assert me.status_code == 200
    assert me.json()["user"]["id"] == registered["user"]["id"]


@pytest.mark.asyncio
async def test_session_strategy_ignores_bearer_tokens(client_factory, register_account):
    client = client_factory("session")
    registered = await register_account(client, "alice@example.com")
    token = create_access_token(registered["user"]["id"], "alice@example.com")["token"]

    outsider = client_factory("session")
    response = await outsider.get("/api/user", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["code"] == "authentication_required"


@pytest.mark.asyncio
async def test_token_strategy_returns_token_and_no_session(client_factory, register_account):
    client = client_factory("token")

    registered = await register_account(client, "bob@example.com")

    assert registered["token"]
    assert client.cookies.get(settings.SESSION_COOKIE_NAME) is None
    assert (await client.get("/api/user")).status_code == 401

    me = await client.get("/api/user", headers={"Authorization": f"Bearer {registered['token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "bob@example.com"


@pytest.mark.asyncio
async def test_token_strategy_reads_jwt_cookie(client_factory, register_account):
    client = client_factory("token")
    registered = await register_account(client, "bob@example.com")

    cookie_client = client_factory("token")
    cookie_client.cookies.set(settings.JWT_COOKIE_NAME, registered["token"])

    assert (await cookie_client.get("/api/user")).status_code == 200


@pytest.mark.asyncio
async def test_token_strategy_rejects_garbage_token(client_factory):
    client = client_factory("token")

    response = await client.get("/api/user", headers={"Authorization": "Bearer not-a-real-token"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_hybrid_accepts_session_or_token(client_factory, register_account):
    client = client_factory("hybrid")
    registered = await register_account(client, "carol@example.com")
    handle = client.cookies.get(settings.SESSION_COOKIE_NAME)

    assert registered["token"]
    assert handle

    token_only = client_factory("hybrid")
    response = await token_only.get("/api/user", headers={"Authorization": f"Bearer {registered['token']}"})
    assert response.status_code == 200

    session_only = client_factory("hybrid")
    session_only.cookies.set(settings.SESSION_COOKIE_NAME, handle)
    assert (await session_only.get("/api/user")).status_code == 200


@pytest.mark.asyncio
async def test_hybrid_falls_back_to_token_after_logout(client_factory, register_account):
    client = client_factory("hybrid")
    registered = await register_account(client, "carol@example.com")

    assert (await client.post("/api/logout")).status_code == 200
    assert (await client.get("/api/user")).status_code == 401

    response = await client.get("/api/user", headers={"Authorization": f"Bearer {registered['token']}"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_logout_revokes_session_and_is_idempotent(client_factory, register_account):
    client = client_factory("session")
    await register_account(client, "dave@example.com")
    handle = client.cookies.get(settings.SESSION_COOKIE_NAME)

    first = await client.post("/api/logout")
    second = await client.post("/api/logout")

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json()["success"] is True

    replay = client_factory("session")
    replay.cookies.set(settings.SESSION_COOKIE_NAME, handle)
    assert (await replay.get("/api/user")).status_code == 401


@pytest.mark.asyncio
async def test_expired_session_is_rejected_and_purged(client_factory, session_maker, register_account):
    client = client_factory("session")
    await register_account(client, "erin@example.com")

    async with session_maker() as session:
        await session.execute(
            update(AuthSession).values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await session.commit()

    assert (await client.get("/api/user")).status_code == 401

    async with session_maker() as session:
        assert await purge_expired_sessions(session) == 1


@pytest.mark.asyncio
async def test_oversized_session_cookie_is_rejected(client_factory):
    client = client_factory("session")
    client.cookies.set(settings.SESSION_COOKIE_NAME, "x" * 5000)

    assert (await client.get("/api/user")).status_code == 401


@pytest.mark.asyncio
async def test_login_by_email_or_username(client_factory, register_account):
    client = client_factory("token")
    await register_account(client, "frank@example.com", username="frankie")

    by_email = await client.post("/api/login", json={"email": "FRANK@example.com", "password": "correct-horse"})
    by_username = await client.post("/api/login", json={"username": "frankie", "password": "correct-horse"})

    assert by_email.status_code == 200
    assert by_username.status_code == 200
    assert by_email.json()["token"]
    assert by_email.json()["user"]["username"] == "frankie"


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(client_factory, register_account):
    client = client_factory("session")
    await register_account(client, "grace@example.com")

    wrong_password = await client.post("/api/login", json={"email": "grace@example.com", "password": "nope-nope"})
    unknown_account = await client.post("/api/login", json={"email": "nobody@example.com", "password": "nope-nope"})

    assert wrong_password.status_code == 401
    assert unknown_account.status_code == 401
    assert wrong_password.json() == unknown_account.json()
    assert wrong_password.json()["message"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_requires_an_identifier(client_factory):
    client = client_factory("session")

    response = await client.post("/api/login", json={"password": "whatever"})

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(client_factory, register_account):
    client = client_factory("session")
    await register_account(client, "heidi@example.com")

    response = await client.post("/api/register", json={"email": "HEIDI@example.com", "password": "another-pass"})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "message": "Email already exists",
        "code": "account_exists",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"email": "not-an-email", "password": "long-enough"},
        {"email": "ivan@example.com", "password": "short"},
        {"password": "long-enough"},
    ],
)
async def test_register_validation_errors(client_factory, body):
    client = client_factory("session")

    response = await client.post("/api/register", json=body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["success"] is False
    assert payload["message"] == "Invalid request data"
    assert payload["errors"]


@pytest.mark.asyncio
async def test_auth_health_reports_strategy(client_factory):
    for strategy in ("session", "token", "hybrid"):
        response = await client_factory(strategy).get("/api/auth/health")
        assert response.status_code == 200
        assert response.json()["strategy"] == strategy


@pytest.mark.asyncio
async def test_liveness_and_root(client_factory):
    client = client_factory("session")

    assert (await client.get("/health/live")).json() == {"alive": True}
    assert (await client.get("/")).json()["status"] == "running"


def test_unknown_strategy_fails_fast():
    with pytest.raises(ValueError):
        create_app("magic-link")


@pytest.mark.asyncio
async def test_login_is_rate_limited_without_redis(session_maker, monkeypatch):
    async def _redis_down(key, window_seconds):
        raise RedisError("connection refused")

    monkeypatch.setattr(rate_limit, "_hit_redis", _redis_down)

    api = create_app("session")
    api.state.disable_rate_limits = False

    async def override_get_db():
        async with session_maker() as session:
            yield session

    api.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as client:
        statuses = []
        for _ in range(31):
            response = await client.post("/api/login", json={"email": "nobody@example.com", "password": "x"})
            statuses.append(response.status_code)

    assert statuses[:30] == [401] * 30
    assert statuses[30] == 429
    assert response.json()["code"] == "rate_limited"
    assert response.json()["retryAfter"] >= 1


@pytest.mark.asyncio
async def test_readiness_flags_default_secret_for_strategy(client_factory, monkeypatch):
    monkeypatch.setattr(settings, "SESSION_SECRET", "change_me_session_secret")
    monkeypatch.setattr(settings, "JWT_SECRET", "change_me_in_production")

    session_ready = await client_factory("session").get("/health/ready")
    token_ready = await client_factory("token").get("/health/ready")

    assert session_ready.status_code == 503
    assert session_ready.json()["missing"] == ["SESSION_SECRET"]
    assert token_ready.json()["missing"] == ["JWT_SECRET"]


@pytest.mark.asyncio
async def test_readiness_passes_with_strong_secrets(client_factory, monkeypatch):
    monkeypatch.setattr(settings, "SESSION_SECRET", "s" * 32)
    monkeypatch.setattr(settings, "JWT_SECRET", "j" * 32)

    response = await client_factory("hybrid").get("/health/ready")

    assert response.status_code == 200
    assert response.json() == {"ready": True}


@pytest.mark.asyncio
async def test_rotating_forwarded_for_does_not_reset_login_limit(session_maker, monkeypatch):
    async def _redis_down(key, window_seconds):
        raise RedisError("connection refused")

    monkeypatch.setattr(rate_limit, "_hit_redis", _redis_down)

    api = create_app("session")
    api.state.disable_rate_limits = False

    async def override_get_db():
        async with session_maker() as session:
            yield session

    api.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as client:
        statuses = []
        for i in range(40):
            response = await client.post(
                "/api/login",
                json={"email": "victim@example.com", "password": "guess"},
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
            )
            statuses.append(response.status_code)

    assert statuses.count(401) == 30
    assert statuses.count(429) == 10


def test_run_serves_app_with_configured_address(monkeypatch):
    import uvicorn

    import main

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr(settings, "API_HOST", "127.0.0.1")
    monkeypatch.setattr(settings, "API_PORT", 8123)

    main.run()

    assert calls == [("main:app", {"host": "127.0.0.1", "port": 8123, "reload": False})]
