"""
Identity gate tests.

Missing assertion → 401, bad/expired/revoked assertion → 403, verified
identity without an account → 403 wherever a role is needed.
"""

from datetime import timedelta

import pytest
from jose import jwt

from delivery_backend.app.core.config import settings
from delivery_backend.app.core.jwt import create_identity_token, verify_identity_token


@pytest.mark.asyncio
async def test_missing_header_is_unauthenticated(client):
    response = await client.get("/v1/users/me")
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_non_bearer_scheme_is_unauthenticated(client):
    response = await client.get("/v1/users/me", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_bad_signature_is_forbidden(client, customer):
    forged = jwt.encode({"sub": customer.uid, "email": customer.email}, "not-the-secret", algorithm="HS256")
    response = await client.get("/v1/users/me", headers={"Authorization": f"Bearer {forged}"})
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_AUTH_002"


@pytest.mark.asyncio
async def test_expired_assertion_is_forbidden(client, customer):
    token = create_identity_token(customer.uid, customer.email, expires_delta=timedelta(seconds=-5))
    response = await client.get("/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403


def test_assertion_without_email_claim_is_rejected():
    token = jwt.encode({"sub": "someone"}, settings.identity_secret_key, algorithm=settings.identity_algorithm)
    assert verify_identity_token(token) is None


def test_email_claim_is_lowercased():
    identity = verify_identity_token(create_identity_token("uid-1", "Mixed@Case.COM"))
    assert identity["email"] == "mixed@case.com"
    assert identity["subject"] == "uid-1"


@pytest.mark.asyncio
async def test_identity_without_account_cannot_use_role_endpoints(client):
    headers = {"Authorization": f"Bearer {create_identity_token('ghost', 'ghost@test.com')}"}
    response = await client.get("/v1/users/me", headers=headers)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_customer_cannot_reach_admin_endpoint(client, customer_headers):
    response = await client.get("/v1/riders/pending", headers=customer_headers)
    assert response.status_code == 403
    assert "admin" in response.json()["message"]


@pytest.mark.asyncio
async def test_role_is_read_fresh_on_every_request(client, admin, admin_headers, customer, customer_headers):
    """Promoting an account takes effect without a new assertion."""
    assert (await client.get("/v1/parcels", headers=customer_headers)).status_code == 403

    response = await client.patch(
        f"/v1/users/{customer.id}/role", json={"role": "admin"}, headers=admin_headers
    )
    assert response.status_code == 200

    assert (await client.get("/v1/parcels", headers=customer_headers)).status_code == 200


@pytest.mark.asyncio
async def test_logout_revokes_the_assertion(client, customer, redis_client):
    token = create_identity_token(customer.uid, customer.email)
    headers = {"Authorization": f"Bearer {token}"}

    response = await client.post("/v1/users/logout", headers=headers)
    assert response.status_code == 200
    assert len(redis_client.store) == 1
    assert 0 < next(iter(redis_client.ttls.values())) <= settings.identity_token_expire_minutes * 60

    response = await client.get("/v1/users/me", headers=headers)
    assert response.status_code == 403
    assert "revoked" in response.json()["message"]


@pytest.mark.asyncio
async def test_revocation_check_fails_open_when_redis_is_down(client, customer_headers, redis_client, mocker):
    from redis.exceptions import ConnectionError as RedisConnectionError

    mocker.patch.object(redis_client, "exists", side_effect=RedisConnectionError("down"))
    response = await client.get("/v1/users/me", headers=customer_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_error_responses_are_consistent(client):
    response = await client.get("/v1/parcels/not-a-number", headers={"Authorization": "Bearer x"})
    body = response.json()
    assert set(body) == {"error_code", "message", "details"}


@pytest.mark.asyncio
async def test_health_and_root(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["redis"] == "up"
    assert response.headers.get("X-Correlation-ID")

    response = await client.get("/")
    assert response.json()["docs"] == "/docs"
