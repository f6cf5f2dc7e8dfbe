import pytest
from sqlalchemy import func, select

from app.main import app
from app.models import CauseStatus, Donation, DonationStatus, UserRole
from app.routers.payments import get_payment_gateway
from app.services import ledger


def _donation_count(db_session) -> int:
    return db_session.scalar(select(func.count(Donation.id)))


@pytest.mark.anyio
async def test_create_intent_returns_fee_breakdown(client, donor_headers, cause, gateway):
    response = await client.post(
        "/payments/intent",
        json={"amount": 1000, "causeId": cause.id, "isAnonymous": False, "message": "Hi"},
        headers=donor_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["platformFee"] == 50
    assert body["netAmount"] == 950
    assert body["totalAmount"] == 1000
    assert body["clientSecret"] == gateway.intents[body["transactionId"]].client_secret


@pytest.mark.anyio
async def test_create_intent_below_minimum(client, donor_headers, cause, gateway):
    response = await client.post(
        "/payments/intent", json={"amount": 99, "causeId": cause.id}, headers=donor_headers
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "AMOUNT_BELOW_MINIMUM"
    assert gateway.calls == []


@pytest.mark.anyio
async def test_create_intent_for_unapproved_cause(client, donor_headers, make_cause, gateway):
    cause = make_cause(CauseStatus.pending)

    response = await client.post(
        "/payments/intent", json={"amount": 1000, "causeId": cause.id}, headers=donor_headers
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CAUSE_NOT_APPROVED"
    assert gateway.calls == []


@pytest.mark.anyio
async def test_create_intent_requires_a_donor(client, cause, make_user, make_headers):
    anonymous = await client.post("/payments/intent", json={"amount": 1000, "causeId": cause.id})
    assert anonymous.status_code == 401

    fundraiser_headers = make_headers(make_user(UserRole.fundraiser))
    forbidden = await client.post(
        "/payments/intent", json={"amount": 1000, "causeId": cause.id}, headers=fundraiser_headers
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "INSUFFICIENT_ROLE"


@pytest.mark.anyio
async def test_confirm_completes_once(client, db_session, donor_headers, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")
    body = {"transactionId": intent.id, "causeId": cause.id, "message": "Proud to help", "isAnonymous": True}

    first = await client.post("/payments/confirm", json=body, headers=donor_headers)
    second = await client.post("/payments/confirm", json=body, headers=donor_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    donation = first.json()["donation"]
    assert donation["status"] == "completed"
    assert donation["transactionId"] == intent.id
    assert donation["message"] == "Proud to help"
    assert donation["isAnonymous"] is True
    assert second.json()["donation"]["id"] == donation["id"]

    db_session.refresh(cause)
    db_session.refresh(donor)
    assert cause.current_amount == 950
    assert donor.total_donations == 950


@pytest.mark.anyio
async def test_confirm_unpaid_intent_is_402(client, db_session, donor_headers, cause, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="requires_payment_method")

    response = await client.post(
        "/payments/confirm",
        json={"transactionId": intent.id, "causeId": cause.id},
        headers=donor_headers,
    )

    assert response.status_code == 402
    assert response.json()["error"]["code"] == "PAYMENT_NOT_COMPLETED"
    assert _donation_count(db_session) == 0


@pytest.mark.anyio
async def test_confirm_rejects_cause_mismatch(client, db_session, donor_headers, make_cause, gateway, metadata_for):
    other = make_cause(title="Another cause")
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")

    response = await client.post(
        "/payments/confirm",
        json={"transactionId": intent.id, "causeId": other.id},
        headers=donor_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_CAUSE_MISMATCH"
    assert _donation_count(db_session) == 0


@pytest.mark.anyio
async def test_confirm_failed_donation_is_conflict(client, db_session, donor_headers, cause, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")
    ledger.record_pending(db_session, transaction_id=intent.id, metadata=metadata_for(), source="test")
    ledger.mark_failed(db_session, transaction_id=intent.id, source="test")
    db_session.commit()

    response = await client.post(
        "/payments/confirm", json={"transactionId": intent.id, "causeId": cause.id}, headers=donor_headers
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DONATION_FAILED"
    db_session.refresh(cause)
    assert cause.current_amount == 0


@pytest.mark.anyio
async def test_gateway_errors_are_502(client, donor_headers, cause, gateway):
    response = await client.post(
        "/payments/confirm", json={"transactionId": "pi_missing", "causeId": cause.id}, headers=donor_headers
    )

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "STRIPE_INTENT_LOOKUP_FAILED"


@pytest.mark.anyio
async def test_checkout_session_endpoint(client, donor_headers, cause, gateway):
    response = await client.post(
        "/payments/checkout-session",
        json={"amount": 1500, "causeId": cause.id, "successUrl": "https://app.example/ok"},
        headers=donor_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["sessionId"] in gateway.sessions
    assert body["url"].startswith("https://checkout.stripe.test/")
    assert gateway.last_redirects[0] == "https://app.example/ok"


@pytest.mark.anyio
async def test_verify_session_unpaid_is_402_without_record(client, db_session, cause, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="requires_payment_method")
    session = gateway.add_session(intent=intent, payment_status="unpaid")

    response = await client.get(f"/payments/verify-session/{session.id}")

    assert response.status_code == 402
    assert response.json()["error"]["code"] == "PAYMENT_NOT_COMPLETED"
    assert _donation_count(db_session) == 0


@pytest.mark.anyio
async def test_verify_session_paid_is_public_and_idempotent(client, db_session, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")
    session = gateway.add_session(intent=intent, payment_status="paid")

    first = await client.get(f"/payments/verify-session/{session.id}")
    second = await client.get(f"/payments/verify-session/{session.id}")

    assert first.status_code == 200
    assert first.json()["success"] is True
    assert first.json()["donation"]["status"] == "completed"
    assert second.json()["donation"]["id"] == first.json()["donation"]["id"]
    db_session.refresh(cause)
    assert cause.current_amount == 950


@pytest.mark.anyio
async def test_verify_payment_reports_gateway_and_ledger(client, db_session, donor_headers, cause, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="processing")

    before = await client.get(f"/payments/verify/{intent.id}", headers=donor_headers)
    assert before.status_code == 200
    assert before.json()["success"] is False
    assert before.json()["payment"]["status"] == "processing"
    assert before.json()["donation"] is None

    ledger.record_pending(db_session, transaction_id=intent.id, metadata=metadata_for(), source="test")
    db_session.commit()
    after = await client.get(f"/payments/verify/{intent.id}", headers=donor_headers)
    assert after.json()["donation"]["status"] == "pending"


@pytest.mark.anyio
async def test_webhook_status_lifecycle(client, db_session, donor_headers, gateway, metadata_for):
    missing = await client.get("/payments/webhook-status/pi_nothing", headers=donor_headers)
    assert missing.status_code == 200
    assert missing.json() == {"status": "not_found", "donation": None}

    ledger.reconcile_success(db_session, transaction_id="pi_done", metadata=metadata_for(), source="test")
    db_session.commit()
    done = await client.get("/payments/webhook-status/pi_done", headers=donor_headers)
    assert done.json()["status"] == DonationStatus.completed.value
    assert done.json()["donation"]["transactionId"] == "pi_done"


@pytest.mark.anyio
async def test_payment_routes_are_503_without_gateway(client, donor_headers, cause):
    app.dependency_overrides.pop(get_payment_gateway, None)

    response = await client.post(
        "/payments/intent", json={"amount": 1000, "causeId": cause.id}, headers=donor_headers
    )

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "STRIPE_DISABLED"


@pytest.mark.anyio
async def test_payment_lookups_are_limited_to_owner_and_admin(
    client, db_session, make_user, make_headers, admin_headers, gateway, metadata_for
):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")
    ledger.reconcile_success(db_session, transaction_id=intent.id, metadata=metadata_for(), source="test")
    db_session.commit()
    stranger_headers = make_headers(make_user(UserRole.donor))

    hidden_status = await client.get(f"/payments/webhook-status/{intent.id}", headers=stranger_headers)
    hidden_verify = await client.get(f"/payments/verify/{intent.id}", headers=stranger_headers)
    admin_status = await client.get(f"/payments/webhook-status/{intent.id}", headers=admin_headers)
    admin_verify = await client.get(f"/payments/verify/{intent.id}", headers=admin_headers)

    assert hidden_status.json() == {"status": "not_found", "donation": None}
    assert hidden_verify.status_code == 404
    assert hidden_verify.json()["error"]["code"] == "PAYMENT_NOT_FOUND"
    assert admin_status.json()["status"] == DonationStatus.completed.value
    assert admin_verify.json()["donation"]["transactionId"] == intent.id


@pytest.mark.anyio
async def test_verify_before_any_donation_uses_intent_owner(client, make_user, make_headers, donor_headers, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="processing")
    stranger_headers = make_headers(make_user(UserRole.donor))

    owner = await client.get(f"/payments/verify/{intent.id}", headers=donor_headers)
    stranger = await client.get(f"/payments/verify/{intent.id}", headers=stranger_headers)

    assert owner.status_code == 200
    assert owner.json()["donation"] is None
    assert stranger.status_code == 404
