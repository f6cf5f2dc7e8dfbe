import logging
import threading

import pytest
from sqlalchemy import func, select

from app.models import Donation, DonationStatus, PSPWebhookEvent
from app.services import ledger, psp_webhooks

from conftest import make_event, sign_payload


async def _deliver(client, event_type: str, obj: dict, event_id: str | None = None, signature: str | None = None):
    payload = make_event(event_type, obj, event_id)
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else sign_payload(payload)
    return await client.post("/payments/webhook", content=payload, headers=headers)


def _intent_object(intent) -> dict:
    return {"id": intent.id, "object": "payment_intent", "status": intent.status, "metadata": intent.metadata}


def _totals(db_session, cause, donor) -> tuple[int, int]:
    db_session.refresh(cause)
    db_session.refresh(donor)
    return cause.current_amount, donor.total_donations


@pytest.mark.anyio
async def test_succeeded_webhook_completes_donation(client, db_session, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")

    response = await _deliver(client, "payment_intent.succeeded", _intent_object(intent), "evt_a")

    assert response.status_code == 200
    assert response.json() == {"received": True, "type": "payment_intent.succeeded", "id": "evt_a"}
    donation = ledger.get_donation_by_transaction(db_session, intent.id)
    assert donation.status == DonationStatus.completed
    assert (donation.amount, donation.platform_fee, donation.total_amount) == (950, 50, 1000)
    assert _totals(db_session, cause, donor) == (950, 950)


@pytest.mark.anyio
async def test_duplicate_delivery_is_acknowledged_without_reprocessing(
    client, db_session, cause, donor, gateway, metadata_for, caplog
):
    caplog.set_level(logging.INFO, logger="app.services.psp_webhooks")
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")

    first = await _deliver(client, "payment_intent.succeeded", _intent_object(intent), "evt_dup")
    second = await _deliver(client, "payment_intent.succeeded", _intent_object(intent), "evt_dup")
    # Stripe may also send a fresh event for the same intent.
    third = await _deliver(client, "payment_intent.succeeded", _intent_object(intent), "evt_dup_2")

    assert [r.status_code for r in (first, second, third)] == [200, 200, 200]
    assert "Stripe webhook already processed" in caplog.text
    assert _totals(db_session, cause, donor) == (950, 950)
    assert db_session.scalar(select(func.count(Donation.id))) == 1
    assert db_session.scalar(select(func.count(PSPWebhookEvent.id))) == 2


@pytest.mark.anyio
async def test_failed_webhook_for_unknown_intent_is_ignored(client, db_session, caplog):
    caplog.set_level(logging.INFO, logger="app.services.ledger")

    response = await _deliver(
        client, "payment_intent.payment_failed", {"id": "pi_never_seen", "object": "payment_intent"}
    )

    assert response.status_code == 200
    assert db_session.scalar(select(func.count(Donation.id))) == 0
    assert "Payment failure for unknown transaction ignored" in caplog.text


@pytest.mark.anyio
async def test_created_then_succeeded_moves_pending_to_completed(client, db_session, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="requires_payment_method")

    await _deliver(client, "payment_intent.created", _intent_object(intent))
    pending = ledger.get_donation_by_transaction(db_session, intent.id)
    assert pending.status == DonationStatus.pending
    assert _totals(db_session, cause, donor) == (0, 0)

    await _deliver(client, "payment_intent.succeeded", _intent_object(intent))
    completed = ledger.get_donation_by_transaction(db_session, intent.id)
    assert completed.id == pending.id
    assert completed.status == DonationStatus.completed
    assert _totals(db_session, cause, donor) == (950, 950)


@pytest.mark.anyio
async def test_failure_marks_pending_donation_failed(client, db_session, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="requires_payment_method")
    await _deliver(client, "payment_intent.created", _intent_object(intent))

    await _deliver(client, "payment_intent.payment_failed", _intent_object(intent))
    # A late success signal must not resurrect the failed donation.
    late = await _deliver(client, "payment_intent.succeeded", _intent_object(intent))

    assert late.status_code == 200
    donation = ledger.get_donation_by_transaction(db_session, intent.id)
    assert donation.status == DonationStatus.failed
    assert _totals(db_session, cause, donor) == (0, 0)


@pytest.mark.anyio
async def test_webhook_and_confirmation_converge(client, db_session, donor_headers, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")

    await _deliver(client, "payment_intent.succeeded", _intent_object(intent))
    confirm = await client.post(
        "/payments/confirm", json={"transactionId": intent.id, "causeId": cause.id}, headers=donor_headers
    )

    assert confirm.status_code == 200
    assert confirm.json()["donation"]["status"] == "completed"
    assert _totals(db_session, cause, donor) == (950, 950)


@pytest.mark.anyio
async def test_confirmation_then_webhook_converge(client, db_session, donor_headers, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")

    await client.post(
        "/payments/confirm", json={"transactionId": intent.id, "causeId": cause.id}, headers=donor_headers
    )
    response = await _deliver(client, "payment_intent.succeeded", _intent_object(intent))

    assert response.status_code == 200
    assert db_session.scalar(select(func.count(Donation.id))) == 1
    assert _totals(db_session, cause, donor) == (950, 950)


@pytest.mark.anyio
async def test_checkout_completed_uses_the_session_intent(client, db_session, cause, donor, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")
    session = gateway.add_session(intent=intent, payment_status="paid")

    response = await _deliver(client, "checkout.session.completed", {"id": session.id, "object": "checkout.session"})

    assert response.status_code == 200
    assert "retrieve_checkout_session" in gateway.calls
    donation = ledger.get_donation_by_transaction(db_session, intent.id)
    assert donation.status == DonationStatus.completed
    assert _totals(db_session, cause, donor) == (950, 950)


@pytest.mark.anyio
async def test_expired_and_unknown_events_are_only_acknowledged(client, db_session):
    expired = await _deliver(client, "checkout.session.expired", {"id": "cs_old", "object": "checkout.session"})
    other = await _deliver(client, "charge.refunded", {"id": "ch_1", "object": "charge"})

    assert expired.status_code == 200
    assert other.json()["type"] == "charge.refunded"
    assert db_session.scalar(select(func.count(Donation.id))) == 0


@pytest.mark.anyio
async def test_bad_signature_is_rejected(client, db_session):
    response = await _deliver(
        client, "payment_intent.succeeded", {"id": "pi_x"}, signature="t=1700000000,v1=deadbeef"
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "STRIPE_SIGNATURE_INVALID"
    assert db_session.scalar(select(func.count(PSPWebhookEvent.id))) == 0


@pytest.mark.anyio
async def test_missing_signature_is_rejected(client):
    response = await client.post("/payments/webhook", content=make_event("payment_intent.succeeded", {"id": "pi_x"}))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "STRIPE_SIGNATURE_MISSING"


@pytest.mark.anyio
async def test_processing_error_is_400_and_rolled_back(client, db_session, cause, gateway, metadata_for):
    intent = gateway.add_intent(metadata=metadata_for(donor_id=999_999), status="succeeded")

    response = await _deliver(client, "payment_intent.succeeded", _intent_object(intent), "evt_broken")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "WEBHOOK_PROCESSING_FAILED"
    assert db_session.scalar(select(func.count(PSPWebhookEvent.id))) == 0
    assert db_session.scalar(select(func.count(Donation.id))) == 0


@pytest.mark.anyio
async def test_success_with_identity_only_metadata_is_acknowledged(client, db_session, cause, donor, caplog):
    caplog.set_level(logging.INFO, logger="app.services.psp_webhooks")
    obj = {
        "id": "pi_identity_only",
        "object": "payment_intent",
        "status": "succeeded",
        "metadata": {"causeId": str(cause.id), "donorId": str(donor.id)},
    }

    created = await _deliver(client, "payment_intent.created", obj)
    succeeded = await _deliver(client, "payment_intent.succeeded", obj)

    assert (created.status_code, succeeded.status_code) == (200, 200)
    assert db_session.scalar(select(func.count(Donation.id))) == 0
    assert "Succeeded PaymentIntent has no donation and no metadata; ignored" in caplog.text


@pytest.mark.anyio
async def test_identity_only_metadata_still_completes_a_recorded_donation(
    client, db_session, cause, donor, metadata_for
):
    ledger.record_pending(db_session, transaction_id="pi_recorded", metadata=metadata_for(), source="test")
    db_session.commit()
    obj = {
        "id": "pi_recorded",
        "object": "payment_intent",
        "metadata": {"causeId": str(cause.id), "donorId": str(donor.id)},
    }

    response = await _deliver(client, "payment_intent.succeeded", obj)

    assert response.status_code == 200
    assert ledger.get_donation_by_transaction(db_session, "pi_recorded").status == DonationStatus.completed
    assert _totals(db_session, cause, donor) == (950, 950)


@pytest.mark.anyio
async def test_webhook_work_runs_off_the_event_loop(monkeypatch, client, gateway, metadata_for):
    threads = []
    real_handler = psp_webhooks.handle_stripe_webhook

    def _recording_handler(*args, **kwargs):
        threads.append(threading.current_thread())
        return real_handler(*args, **kwargs)

    monkeypatch.setattr(psp_webhooks, "handle_stripe_webhook", _recording_handler)
    intent = gateway.add_intent(metadata=metadata_for(), status="succeeded")

    response = await _deliver(client, "payment_intent.succeeded", _intent_object(intent))

    assert response.status_code == 200
    assert len(threads) == 1
    assert threads[0] is not threading.main_thread()
