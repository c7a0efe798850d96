"""
Account directory tests: login upsert, search and role changes.
"""

import pytest
from sqlalchemy import select

from delivery_backend.app.core.exceptions import ConflictError
from delivery_backend.app.core.jwt import create_identity_token
from delivery_backend.app.db.store import insert_unique
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.audit_log import AuditLog
from delivery_backend.app.models.enums import AccountRole


def bearer(uid, email):
    return {"Authorization": f"Bearer {create_identity_token(uid, email)}"}


@pytest.mark.asyncio
async def test_first_login_creates_user_account(client, db_session):
    response = await client.post(
        "/v1/users", json={"name": "New Person", "provider": "google"}, headers=bearer("new-uid", "new@test.com")
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_new_user"] is True

    account = (await db_session.execute(select(Account).where(Account.uid == "new-uid"))).scalar_one()
    assert account.role == AccountRole.USER
    assert account.email == "new@test.com"
    assert account.name == "New Person"


@pytest.mark.asyncio
async def test_repeat_login_updates_profile_but_never_role(client, db_session, admin):
    response = await client.post(
        "/v1/users", json={"name": "Renamed Admin", "photo_url": "https://img/a.png"},
        headers=bearer(admin.uid, admin.email),
    )
    assert response.status_code == 200
    assert response.json() == {"is_new_user": False, "id": admin.id}

    account = await db_session.get(Account, admin.id, populate_existing=True)
    assert account.role == AccountRole.ADMIN
    assert account.name == "Renamed Admin"
    assert account.photo_url == "https://img/a.png"


@pytest.mark.asyncio
async def test_login_with_email_owned_by_other_uid_is_conflict(client, customer):
    response = await client.post("/v1/users", json={}, headers=bearer("other-uid", customer.email))
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_duplicate_uid_insert_is_reported_as_conflict(db_session, customer):
    """A first login that loses the insert race reports Conflict, not a 500."""
    # The rollback expires every loaded instance, customer included
    uid = customer.uid
    duplicate = Account(uid=uid, email="someone-else@test.com", role=AccountRole.USER)

    with pytest.raises(ConflictError):
        await insert_unique(db_session, duplicate, "Account already exists for this identity")

    remaining = (await db_session.execute(select(Account).where(Account.uid == uid))).scalars().all()
    assert len(remaining) == 1


@pytest.mark.asyncio
async def test_me_and_role(client, customer_headers, customer):
    response = await client.get("/v1/users/me", headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["email"] == customer.email

    response = await client.get("/v1/users/me/role", headers=customer_headers)
    assert response.json() == {"role": "user"}


@pytest.mark.asyncio
async def test_search_is_admin_only(client, customer_headers):
    response = await client.get("/v1/users/search", params={"q": "cu"}, headers=customer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_search_matches_email_and_name_case_insensitively(client, admin_headers, make_account):
    await make_account("u1", "alice@test.com", name="Alice Smith")
    await make_account("u2", "bob@test.com", name="Bob ALICEson")
    await make_account("u3", "carol@test.com", name="Carol")

    response = await client.get("/v1/users/search", params={"q": "ALIce"}, headers=admin_headers)
    assert response.status_code == 200
    emails = [u["email"] for u in response.json()["users"]]
    # Newest first
    assert emails == ["bob@test.com", "alice@test.com"]


@pytest.mark.asyncio
async def test_search_requires_two_characters(client, admin_headers):
    response = await client.get("/v1/users/search", params={"q": "a"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_ARG_001"


@pytest.mark.asyncio
async def test_search_limit_is_clamped(client, admin_headers, make_account):
    for i in range(25):
        await make_account(f"bulk-{i}", f"bulk{i}@test.com", name="Bulk")

    response = await client.get("/v1/users/search", params={"q": "bulk", "limit": 500}, headers=admin_headers)
    assert len(response.json()["users"]) == 20

    response = await client.get("/v1/users/search", params={"q": "bulk", "limit": 0}, headers=admin_headers)
    assert len(response.json()["users"]) == 1


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(client, admin_headers, make_account):
    await make_account("pct", "percent@test.com", name="100% real")
    await make_account("plain", "plain@test.com", name="1000 real")

    response = await client.get("/v1/users/search", params={"q": "0%"}, headers=admin_headers)
    assert [u["email"] for u in response.json()["users"]] == ["percent@test.com"]


@pytest.mark.asyncio
async def test_change_role_and_audit(client, admin, admin_headers, customer, db_session):
    response = await client.patch(f"/v1/users/{customer.id}/role", json={"role": "rider"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"modified": True, "id": customer.id, "role": "rider"}

    # Same role again is a no-op
    response = await client.patch(f"/v1/users/{customer.id}/role", json={"role": "rider"}, headers=admin_headers)
    assert response.json()["modified"] is False

    logs = (await db_session.execute(select(AuditLog).where(AuditLog.action == "ROLE_CHANGED"))).scalars().all()
    assert len(logs) == 1
    assert logs[0].actor_email == admin.email
    assert logs[0].target_id == customer.id


@pytest.mark.asyncio
async def test_change_role_rejects_unknown_role(client, admin_headers, customer):
    response = await client.patch(f"/v1/users/{customer.id}/role", json={"role": "superuser"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_ARG_001"


@pytest.mark.asyncio
async def test_change_role_unknown_account(client, admin_headers):
    response = await client.patch("/v1/users/9999/role", json={"role": "user"}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_cannot_demote_self(client, admin, admin_headers, db_session):
    response = await client.patch(f"/v1/users/{admin.id}/role", json={"role": "user"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_OP_001"

    account = await db_session.get(Account, admin.id, populate_existing=True)
    assert account.role == AccountRole.ADMIN


@pytest.mark.asyncio
async def test_admin_may_reassert_own_admin_role(client, admin, admin_headers):
    response = await client.patch(f"/v1/users/{admin.id}/role", json={"role": "ADMIN"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["modified"] is False
