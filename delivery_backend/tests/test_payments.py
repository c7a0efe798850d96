"""
Payment reconciliation tests.

The gateway is replaced by an in-memory fake; confirmation must verify the
gateway status and amount, then mark the parcel paid and write exactly one
ledger row.
"""

import pytest
from sqlalchemy import func, select

from delivery_backend.app.core.exceptions import ConflictError
from delivery_backend.app.domain.parcels.lifecycle import ParcelLifecycleEngine
from delivery_backend.app.domain.payments.reconciler import PaymentReconciler, expected_amount_minor_units
from delivery_backend.app.models.parcel import Parcel
from delivery_backend.app.models.parcel_enums import PaymentType
from delivery_backend.app.models.payment import PaymentRecord


async def confirm(client, parcel_id, intent_id, headers, **extra):
    body = {"parcel_id": parcel_id, "payment_intent_id": intent_id, **extra}
    return await client.post("/v1/payments/confirm", json=body, headers=headers)


async def count_records(db_session, parcel_id):
    return (await db_session.execute(
        select(func.count(PaymentRecord.id)).where(PaymentRecord.parcel_id == parcel_id)
    )).scalar()


@pytest.mark.parametrize("cod_amount,expected", [
    (25.00, 2500),
    (0, 0),
    (19.99, 1999),
    (0.005, 1),
    (10.125, 1013),
])
def test_expected_amount_rounds_half_up(cod_amount, expected):
    assert expected_amount_minor_units(cod_amount) == expected


@pytest.mark.asyncio
async def test_confirm_marks_parcel_paid(client, parcel, customer, customer_headers, payment_gateway, db_session):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)

    response = await confirm(client, parcel["id"], "pi_ok", customer_headers, user_name="Customer Name")
    assert response.status_code == 201
    record = response.json()
    assert record["amount"] == 25.00
    assert record["amount_in_cents"] == 2500
    assert record["currency"] == "usd"
    assert record["payment_intent_id"] == "pi_ok"
    assert record["payment_method"] == "card"
    assert record["provider"] == "stripe"
    assert record["user_email"] == customer.email
    assert record["user_name"] == "Customer Name"
    assert record["parcel_name"] == parcel["parcel_title"]

    stored = await db_session.get(Parcel, parcel["id"], populate_existing=True)
    assert stored.payment_type == PaymentType.PAID
    assert stored.transaction_id == "pi_ok"
    assert stored.paid_at is not None
    assert await count_records(db_session, parcel["id"]) == 1


@pytest.mark.asyncio
async def test_second_confirmation_is_conflict(client, parcel, customer_headers, payment_gateway, db_session):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)
    assert (await confirm(client, parcel["id"], "pi_ok", customer_headers)).status_code == 201

    response = await confirm(client, parcel["id"], "pi_ok", customer_headers)
    assert response.status_code == 409
    assert response.json()["message"] == "Payment already recorded for this parcel"
    assert await count_records(db_session, parcel["id"]) == 1


@pytest.mark.asyncio
async def test_ledger_unique_index_backs_the_precheck(db_session, parcel, customer, payment_gateway, mocker):
    """A duplicate that slips past the pre-check is still rejected, and the parcel update rolls back with it."""
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)
    payment_gateway.add_intent("pi_dup", status="succeeded", amount=2500)
    reconciler = PaymentReconciler(db_session, payment_gateway)
    await reconciler.confirm_payment(parcel["id"], "pi_ok", customer.email)

    mocker.patch.object(reconciler, "_existing_record", return_value=None)
    with pytest.raises(ConflictError):
        await reconciler.confirm_payment(parcel["id"], "pi_dup", customer.email)

    stored = await db_session.get(Parcel, parcel["id"], populate_existing=True)
    assert stored.transaction_id == "pi_ok"
    assert await count_records(db_session, parcel["id"]) == 1


@pytest.mark.asyncio
async def test_one_intent_settles_one_parcel(client, parcel, parcel_payload, customer_headers, payment_gateway, db_session):
    response = await client.post("/v1/parcels", json=parcel_payload, headers=customer_headers)
    second = response.json()
    payment_gateway.add_intent("pi_once", status="succeeded", amount=2500)
    assert (await confirm(client, parcel["id"], "pi_once", customer_headers)).status_code == 201

    response = await confirm(client, second["id"], "pi_once", customer_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"

    stored = await db_session.get(Parcel, second["id"], populate_existing=True)
    assert stored.payment_type == PaymentType.COD
    assert stored.transaction_id is None
    assert await count_records(db_session, second["id"]) == 0


@pytest.mark.asyncio
async def test_ledger_rejects_reused_intent_past_the_precheck(db_session, parcel, parcel_payload, customer, payment_gateway, mocker):
    second = await ParcelLifecycleEngine(db_session).create_parcel(parcel_payload, customer.email)
    second_id = second.id
    payment_gateway.add_intent("pi_once", status="succeeded", amount=2500)
    reconciler = PaymentReconciler(db_session, payment_gateway)
    await reconciler.confirm_payment(parcel["id"], "pi_once", customer.email)

    mocker.patch.object(reconciler, "_intent_already_used", return_value=False)
    with pytest.raises(ConflictError):
        await reconciler.confirm_payment(second_id, "pi_once", customer.email)

    stored = await db_session.get(Parcel, second_id, populate_existing=True)
    assert stored.payment_type == PaymentType.COD
    assert await count_records(db_session, second_id) == 0


@pytest.mark.asyncio
async def test_intent_opened_for_another_parcel_is_refused(client, parcel, parcel_payload, customer_headers, payment_gateway, db_session):
    response = await client.post("/v1/parcels", json=parcel_payload, headers=customer_headers)
    second = response.json()

    response = await client.post("/v1/payments/create-intent", json={"parcel_id": parcel["id"]}, headers=customer_headers)
    intent_id = response.json()["intent_id"]
    assert payment_gateway.created[0].metadata == {"parcel_id": str(parcel["id"])}
    payment_gateway.intents[intent_id].status = "succeeded"

    response = await confirm(client, second["id"], intent_id, customer_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "ERR_ARG_001"
    assert body["details"] == {"parcel_id": second["id"], "intent_parcel_id": str(parcel["id"])}
    assert await count_records(db_session, second["id"]) == 0

    response = await confirm(client, parcel["id"], intent_id, customer_headers)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_confirm_for_someone_elses_parcel(client, parcel, make_account, headers_for, payment_gateway, db_session):
    stranger = await make_account("stranger", "stranger@test.com")
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)

    response = await confirm(client, parcel["id"], "pi_ok", headers_for(stranger))
    assert response.status_code == 403
    assert await count_records(db_session, parcel["id"]) == 0


@pytest.mark.asyncio
async def test_admin_may_confirm_for_a_customer(client, parcel, admin, admin_headers, payment_gateway):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)

    response = await confirm(client, parcel["id"], "pi_ok", admin_headers)
    assert response.status_code == 201
    assert response.json()["user_email"] == admin.email


@pytest.mark.asyncio
@pytest.mark.parametrize("gateway_status",["requires_payment_method", "processing", "canceled"])
async def test_unsucceeded_payment_is_refused(client, parcel, customer_headers, payment_gateway, db_session, gateway_status):
    payment_gateway.add_intent("pi_pending", status=gateway_status, amount=2500)

    response = await confirm(client, parcel["id"], "pi_pending", customer_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "ERR_PAY_001"
    assert body["details"] == {"status": gateway_status}

    stored = await db_session.get(Parcel, parcel["id"], populate_existing=True)
    assert stored.payment_type == PaymentType.COD
    assert await count_records(db_session, parcel["id"]) == 0


@pytest.mark.asyncio
async def test_amount_mismatch_is_refused(client, parcel, customer_headers, payment_gateway, db_session):
    payment_gateway.add_intent("pi_short", status="succeeded", amount=2499)

    response = await confirm(client, parcel["id"], "pi_short", customer_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "ERR_PAY_002"
    assert body["details"] == {"expected": 2500, "got": 2499}
    assert await count_records(db_session, parcel["id"]) == 0


@pytest.mark.asyncio
async def test_confirm_unknown_parcel(client, customer_headers, payment_gateway):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)
    response = await confirm(client, 9999, "pi_ok", customer_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_gateway_failure_is_bad_gateway(client, parcel, customer_headers):
    response = await confirm(client, parcel["id"], "pi_missing", customer_headers)
    assert response.status_code == 502
    assert response.json()["error_code"] == "ERR_PAY_003"


@pytest.mark.asyncio
async def test_create_intent_for_expected_amount(client, parcel, customer_headers, payment_gateway):
    response = await client.post("/v1/payments/create-intent", json={"parcel_id": parcel["id"]}, headers=customer_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["amount_in_cents"] == 2500
    assert data["currency"] == "usd"
    assert data["client_secret"].endswith("_secret")
    assert payment_gateway.created[0].amount == 2500


@pytest.mark.asyncio
async def test_create_intent_for_someone_elses_parcel(client, parcel, make_account, headers_for):
    stranger = await make_account("stranger", "stranger@test.com")
    response = await client.post("/v1/payments/create-intent", json={"parcel_id": parcel["id"]}, headers=headers_for(stranger))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_intent_refused_once_paid(client, parcel, customer_headers, payment_gateway):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)
    await confirm(client, parcel["id"], "pi_ok", customer_headers)

    response = await client.post("/v1/payments/create-intent", json={"parcel_id": parcel["id"]}, headers=customer_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_paid_parcel_cannot_be_deleted(client, parcel, customer_headers, payment_gateway):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)
    await confirm(client, parcel["id"], "pi_ok", customer_headers)

    response = await client.delete(f"/v1/parcels/{parcel['id']}", headers=customer_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_payment_history(client, parcel, customer_headers, admin_headers, payment_gateway):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)
    await confirm(client, parcel["id"], "pi_ok", customer_headers)

    response = await client.get("/v1/payments", headers=customer_headers)
    assert [p["payment_intent_id"] for p in response.json()["payments"]] == ["pi_ok"]

    response = await client.get("/v1/payments", headers=admin_headers)
    assert response.json()["payments"] == []


@pytest.mark.asyncio
async def test_admin_reads_another_payers_history(client, parcel, customer, customer_headers, admin_headers, payment_gateway):
    payment_gateway.add_intent("pi_ok", status="succeeded", amount=2500)
    await confirm(client, parcel["id"], "pi_ok", customer_headers)

    response = await client.get("/v1/payments", params={"email": customer.email}, headers=admin_headers)
    assert len(response.json()["payments"]) == 1

    response = await client.get("/v1/payments", params={"email": "admin@test.com"}, headers=customer_headers)
    assert response.status_code == 403
