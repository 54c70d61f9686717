"""Tests for the opt-in identity provider session check."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from httpx import AsyncClient

from ledger.config import settings


def make_token(subject: str, minutes: int = 10, **claims) -> str:
    payload = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
        **claims,
    }
    return jwt.encode(
        payload, settings.AUTH_JWT_KEY, algorithm=settings.AUTH_JWT_ALGORITHM
    )


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def payload_for(user_id: str) -> dict:
    return {"user_id": user_id, "title": "Coffee", "amount": -5, "category": "Food"}


@pytest.mark.asyncio
async def test_disabled_by_default_trusts_user_id(client: AsyncClient):
    """Without AUTH_ENABLED any caller can act for any user_id."""
    response = await client.get("/api/transactions/someone-else")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_requires_token_when_enabled(client: AsyncClient, auth_settings):
    response = await client.get("/api/transactions/u1")

    assert response.status_code == 401
    assert response.json() == {"error": "Could not validate credentials"}


@pytest.mark.asyncio
async def test_own_transactions_allowed(client: AsyncClient, auth_settings):
    headers = bearer(make_token("u1"))

    created = await client.post(
        "/api/transactions", json=payload_for("u1"), headers=headers
    )
    listed = await client.get("/api/transactions/u1", headers=headers)
    summary = await client.get("/api/transactions/summary/u1", headers=headers)

    assert created.status_code == 201
    assert listed.status_code == 200
    assert len(listed.json()) == 1
    assert summary.json() == {"balance": -5, "income": 0, "expense": -5}


@pytest.mark.asyncio
async def test_other_users_transactions_forbidden(
    client: AsyncClient, auth_settings, row_count
):
    headers = bearer(make_token("u1"))

    listed = await client.get("/api/transactions/u2", headers=headers)
    summary = await client.get("/api/transactions/summary/u2", headers=headers)
    created = await client.post(
        "/api/transactions", json=payload_for("u2"), headers=headers
    )

    assert listed.status_code == 403
    assert summary.status_code == 403
    assert created.status_code == 403
    assert await row_count() == 0


@pytest.mark.asyncio
async def test_cannot_delete_other_users_transaction(
    client: AsyncClient, auth_settings, row_count
):
    owner_headers = bearer(make_token("u1"))
    created = await client.post(
        "/api/transactions", json=payload_for("u1"), headers=owner_headers
    )
    transaction_id = created.json()["id"]

    response = await client.delete(
        f"/api/transactions/{transaction_id}", headers=bearer(make_token("u2"))
    )

    # 404 rather than 403 so ids of other users are not revealed
    assert response.status_code == 404
    assert await row_count() == 1

    response = await client.delete(
        f"/api/transactions/{transaction_id}", headers=owner_headers
    )
    assert response.status_code == 200
    assert await row_count() == 0


@pytest.mark.asyncio
async def test_expired_token_rejected(client: AsyncClient, auth_settings):
    response = await client.get(
        "/api/transactions/u1", headers=bearer(make_token("u1", minutes=-10))
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_with_wrong_key_rejected(client: AsyncClient, auth_settings):
    forged = jwt.encode(
        {"sub": "u1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "some-other-secret-key-with-enough-length",
        algorithm="HS256",
    )

    response = await client.get("/api/transactions/u1", headers=bearer(forged))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_issuer_checked_when_configured(
    client: AsyncClient, auth_settings, monkeypatch
):
    monkeypatch.setattr(settings, "AUTH_JWT_ISSUER", "https://id.example.com")

    wrong = await client.get(
        "/api/transactions/u1",
        headers=bearer(make_token("u1", iss="https://evil.example.com")),
    )
    right = await client.get(
        "/api/transactions/u1",
        headers=bearer(make_token("u1", iss="https://id.example.com")),
    )

    assert wrong.status_code == 401
    assert right.status_code == 200


@pytest.mark.asyncio
async def test_malformed_auth_header(client: AsyncClient, auth_settings):
    for headers in [
        {"Authorization": "invalid_format"},
        {"Authorization": "Bearer"},
        {"Authorization": "Bearer not.a.jwt"},
        {"Authorization": ""},
    ]:
        response = await client.get("/api/transactions/u1", headers=headers)
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_public_routes_need_no_token(client: AsyncClient, auth_settings):
    assert (await client.get("/health")).status_code == 200
    assert (await client.get("/")).status_code == 200
    assert (await client.get("/api/transactions")).status_code == 200
