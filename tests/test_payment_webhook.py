"""
Integration tests for the payment provider webhook.
"""
import pytest

from app.db.models.payment import Payment, PaymentStatus
from app.db.models.subscription import Subscription
from app.services import stripe_service


def _event(event_type, payment_id=None, intent_id="pi_123", error=None):
    intent = {"id": intent_id, "metadata": {"payment_id": payment_id} if payment_id else {}}
    if error:
        intent["last_payment_error"] = {"message": error}
    return {"id": "evt_1", "type": event_type, "data": {"object": intent}}


@pytest.fixture
def deliver(client, monkeypatch):
    """Post an already-verified event to the webhook."""
    def _deliver(event):
        monkeypatch.setattr(stripe_service, "verify_webhook", lambda body, signature: event)
        return client.post("/payments/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=sig"})
    return _deliver


@pytest.fixture
def pending_purchase(service, seller):
    return service.initiate_purchase(seller.id, "basic")


def test_unverifiable_webhook_is_rejected(client):
    response = client.post("/payments/webhook", content=b"{}", headers={"Stripe-Signature": "bad"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invalid_webhook"


def test_succeeded_event_confirms_payment(deliver, db_session, pending_purchase, seller):
    response = deliver(_event("payment_intent.succeeded", pending_purchase.payment_id))

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["ignored"] is False

    db_session.expire_all()
    payment = db_session.get(Payment, pending_purchase.payment_id)
    assert payment.provider_transaction_id == "pi_123"
    assert db_session.query(Subscription).filter_by(seller_id=seller.id).count() == 1


def test_duplicate_delivery_is_harmless(deliver, db_session, notifier, pending_purchase, seller):
    event = _event("payment_intent.succeeded", pending_purchase.payment_id)
    deliver(event)
    response = deliver(event)

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    db_session.expire_all()
    assert db_session.query(Subscription).filter_by(seller_id=seller.id).count() == 1
    assert len(notifier.list_for_seller(seller.id)) == 1


def test_failed_event_marks_payment_failed(deliver, db_session, pending_purchase):
    response = deliver(_event("payment_intent.payment_failed", pending_purchase.payment_id, error="Card expired"))

    assert response.json()["status"] == "failed"
    db_session.expire_all()
    payment = db_session.get(Payment, pending_purchase.payment_id)
    assert payment.status == PaymentStatus.FAILED
    assert payment.error_message == "Card expired"


def test_unhandled_and_foreign_events_are_ignored(deliver):
    other = deliver(_event("charge.refunded", "whatever"))
    assert other.json()["ignored"] is True

    no_metadata = deliver(_event("payment_intent.succeeded"))
    assert no_metadata.json()["ignored"] is True

    unknown = deliver(_event("payment_intent.succeeded", "not-ours"))
    assert unknown.status_code == 200
    assert unknown.json()["ignored"] is True
