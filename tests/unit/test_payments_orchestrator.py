import asyncio

import pytest

from workshop_backend.errors import (
    ConflictError,
    GatewayError,
    NotFoundError,
    PreconditionError,
    SignatureError,
    StoreError,
    ValidationError,
)
from workshop_backend.payments.schemas import (
    CreateOrderRequest,
    PaymentFailureRequest,
    RefundRequest,
    VerifyPaymentRequest,
)
from workshop_backend.payments.service import PaymentOrchestrator, PaymentSettings
from workshop_backend.payments.signature import compute_signature
from workshop_backend.registrations.models import now_ms

TEST_SECRET = "rzp_test_secret"

async def _place_order(orchestrator, payload):
    return await orchestrator.create_payment_order(CreateOrderRequest(**payload))

def _verify_req(registration_id, order_id, payment_id="pay_1", secret=TEST_SECRET, signature=None):
    return VerifyPaymentRequest(
        registrationId=registration_id,
        orderId=order_id,
        paymentId=payment_id,
        signature=signature or compute_signature(order_id, payment_id, secret),
    )

# --- create_payment_order ---

@pytest.mark.asyncio
async def test_create_order_persists_registration_and_order(orchestrator, store, gateway, order_payload):
    data = await _place_order(orchestrator, order_payload)

    assert data["amount"] == 1000
    assert data["currency"] == "INR"
    assert data["keyId"] == "rzp_test_key"
    row = store.get(data["registrationId"])
    assert row["status"] == "Pending"
    assert row["paymentStatus"] == "Pending"
    assert row["orderId"] == data["orderId"]
    assert gateway.orders[0]["amount"] == 100000
    assert gateway.orders[0]["receipt"] == f"reg_{data['registrationId']}"

@pytest.mark.asyncio
async def test_create_order_minimal_amount(orchestrator, gateway, order_payload):
    data = await _place_order(orchestrator, {**order_payload, "amount": 1})
    assert gateway.orders[0]["amount"] == 100
    assert data["amount"] == 1

@pytest.mark.asyncio
async def test_create_order_gateway_failure_leaves_pending_row(orchestrator, store, gateway, order_payload):
    gateway.fail_create = True
    with pytest.raises(GatewayError):
        await _place_order(orchestrator, order_payload)
    rows = store.list()
    assert len(rows) == 1
    assert rows[0]["status"] == "Pending"
    assert "orderId" not in rows[0]

@pytest.mark.asyncio
async def test_create_order_without_gateway(store, mailer, settings, order_payload):
    orchestrator = PaymentOrchestrator(store, None, mailer, settings)
    with pytest.raises(GatewayError) as exc:
        await _place_order(orchestrator, order_payload)
    assert exc.value.message == "Payment gateway is not configured"
    assert store.list() == []

# --- verify_payment ---

@pytest.mark.asyncio
async def test_verify_confirms_and_notifies(orchestrator, store, mailer, order_payload):
    data = await _place_order(orchestrator, order_payload)

    result = await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))

    assert result["status"] == "Confirmed"
    assert result["alreadyConfirmed"] is False
    assert result["billDownloadUrl"] == f"/api/payments/bill/{data['registrationId']}"
    row = store.get(data["registrationId"])
    assert row["status"] == "Confirmed"
    assert row["paymentStatus"] == "Completed"
    assert row["paymentId"] == "pay_1"
    assert row["confirmationDate"]
    assert row["notificationStatus"] == "Sent"
    assert len(mailer.bill_emails) == 1
    assert len(mailer.admin_emails) == 1
    sent = mailer.bill_emails[0]
    assert sent["recipient_email"] == "asha@example.com"
    assert sent["bill"].startswith(b"%PDF")
    assert sent["filename"] == f"bill_{data['registrationId']}.pdf"

@pytest.mark.asyncio
async def test_verify_invalid_signature_changes_nothing(orchestrator, store, gateway, mailer, order_payload):
    data = await _place_order(orchestrator, order_payload)
    req = _verify_req(data["registrationId"], data["orderId"], secret="wrong-secret")

    with pytest.raises(SignatureError) as exc:
        await orchestrator.verify_payment(req)

    assert exc.value.status_code == 400
    assert exc.value.message == "Invalid payment signature"
    assert store.get(data["registrationId"])["status"] == "Pending"
    assert gateway.fetched == []
    assert mailer.bill_emails == []

@pytest.mark.asyncio
async def test_verify_unknown_registration(orchestrator):
    with pytest.raises(NotFoundError):
        await orchestrator.verify_payment(_verify_req("missing", "order_x"))

@pytest.mark.asyncio
async def test_verify_rejects_order_of_another_registration(orchestrator, store, order_payload):
    first = await _place_order(orchestrator, order_payload)
    second = await _place_order(orchestrator, order_payload)
    with pytest.raises(SignatureError):
        await orchestrator.verify_payment(_verify_req(first["registrationId"], second["orderId"]))
    assert store.get(first["registrationId"])["status"] == "Pending"

@pytest.mark.asyncio
@pytest.mark.parametrize("vendor_status", ["failed", "created", None])
async def test_verify_rejects_unsuccessful_vendor_status(orchestrator, store, gateway, mailer, order_payload, vendor_status):
    data = await _place_order(orchestrator, order_payload)
    gateway.payment_status = vendor_status
    with pytest.raises(PreconditionError):
        await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))
    assert store.get(data["registrationId"])["paymentStatus"] == "Pending"
    assert mailer.bill_emails == []

@pytest.mark.asyncio
async def test_verify_accepts_authorized_status(orchestrator, store, gateway, order_payload):
    data = await _place_order(orchestrator, order_payload)
    gateway.payment_status = "authorized"
    await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))
    assert store.get(data["registrationId"])["status"] == "Confirmed"

@pytest.mark.asyncio
async def test_verify_fetch_error_keeps_registration_pending(orchestrator, store, gateway, order_payload):
    data = await _place_order(orchestrator, order_payload)
    gateway.fail_fetch = True
    with pytest.raises(GatewayError):
        await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))
    assert store.get(data["registrationId"])["status"] == "Pending"

@pytest.mark.asyncio
async def test_verify_twice_is_idempotent(orchestrator, store, gateway, mailer, order_payload):
    data = await _place_order(orchestrator, order_payload)
    req = _verify_req(data["registrationId"], data["orderId"])

    first = await orchestrator.verify_payment(req)
    second = await orchestrator.verify_payment(req)

    assert first["alreadyConfirmed"] is False
    assert second["alreadyConfirmed"] is True
    assert len(mailer.bill_emails) == 1
    assert len(mailer.admin_emails) == 1
    assert gateway.fetched == ["pay_1"]

@pytest.mark.asyncio
async def test_verify_concurrent_calls_confirm_once(orchestrator, mailer, order_payload):
    data = await _place_order(orchestrator, order_payload)
    req = _verify_req(data["registrationId"], data["orderId"])

    results = await asyncio.gather(*(orchestrator.verify_payment(req) for _ in range(5)))

    assert sum(1 for r in results if not r["alreadyConfirmed"]) == 1
    assert all(r["status"] == "Confirmed" for r in results)
    assert len(mailer.bill_emails) == 1
    assert len(mailer.admin_emails) == 1

@pytest.mark.asyncio
async def test_verify_with_other_payment_id_after_confirmation_conflicts(orchestrator, order_payload):
    data = await _place_order(orchestrator, order_payload)
    await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"], payment_id="pay_1"))
    with pytest.raises(ConflictError) as exc:
        await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"], payment_id="pay_2"))
    assert exc.value.status_code == 409

@pytest.mark.asyncio
async def test_verify_cancelled_registration_conflicts(orchestrator, store, order_payload):
    data = await _place_order(orchestrator, order_payload)
    store.update(data["registrationId"], {"status": "Cancelled"})
    with pytest.raises(ConflictError):
        await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))
    assert store.get(data["registrationId"])["paymentStatus"] == "Pending"

@pytest.mark.asyncio
async def test_verify_email_failure_does_not_block_confirmation(orchestrator, store, mailer, order_payload):
    data = await _place_order(orchestrator, order_payload)
    mailer.fail_bill = True

    result = await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))

    assert result["status"] == "Confirmed"
    row = store.get(data["registrationId"])
    assert row["paymentStatus"] == "Completed"
    assert row["notificationStatus"] == "Pending"
    assert row["notificationAttempts"] == 1
    assert row["billEmailSent"] is False
    assert row["adminNotified"] is True

@pytest.mark.asyncio
async def test_verify_crashing_notifier_is_contained(orchestrator, store, mailer, order_payload):
    data = await _place_order(orchestrator, order_payload)
    mailer.crash_admin = True
    result = await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))
    assert result["status"] == "Confirmed"
    row = store.get(data["registrationId"])
    assert row["billEmailSent"] is True
    assert row["adminNotified"] is False

# --- outbox ---

@pytest.mark.asyncio
async def test_retry_sends_only_missing_channel(orchestrator, store, mailer, order_payload):
    data = await _place_order(orchestrator, order_payload)
    mailer.fail_bill = True
    await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))
    assert len(mailer.admin_emails) == 1

    mailer.fail_bill = False
    summary = await orchestrator.retry_pending_notifications()

    assert summary == {"processed": 1, "sent": 1, "failed": 0}
    assert len(mailer.bill_emails) == 1
    assert len(mailer.admin_emails) == 1
    row = store.get(data["registrationId"])
    assert row["notificationStatus"] == "Sent"
    assert row["notificationAttempts"] == 2

@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts(orchestrator, store, mailer, settings, order_payload):
    data = await _place_order(orchestrator, order_payload)
    mailer.fail_bill = True
    await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))

    for _ in range(settings.max_notification_attempts + 2):
        await orchestrator.retry_pending_notifications()

    row = store.get(data["registrationId"])
    assert row["notificationStatus"] == "Failed"
    assert row["notificationAttempts"] == settings.max_notification_attempts
    assert (await orchestrator.retry_pending_notifications())["processed"] == 0

@pytest.mark.asyncio
async def test_outbox_store_error_is_logged_not_raised(orchestrator, store, monkeypatch, seeded):
    def boom(*a, **kw):
        raise StoreError("Failed to record notification state")
    monkeypatch.setattr(store, "record_notification", boom)
    assert await orchestrator.deliver_notifications(seeded) is True

# --- bill ---

@pytest.mark.asyncio
async def test_download_bill_for_completed_registration(orchestrator, seeded):
    bill = await orchestrator.download_bill(seeded["id"])
    assert bill.content.startswith(b"%PDF")
    assert bill.filename == f"bill_{seeded['id']}.pdf"
    assert bill.media_type == "application/pdf"

@pytest.mark.asyncio
async def test_download_bill_is_deterministic(orchestrator, seeded):
    first = await orchestrator.download_bill(seeded["id"])
    second = await orchestrator.download_bill(seeded["id"])
    assert first.content == second.content

@pytest.mark.asyncio
async def test_download_bill_requires_completed_payment(orchestrator, store, order_payload):
    data = await _place_order(orchestrator, order_payload)
    with pytest.raises(PreconditionError) as exc:
        await orchestrator.download_bill(data["registrationId"])
    assert exc.value.message == "Bill is only available for completed payments"
    with pytest.raises(NotFoundError):
        await orchestrator.download_bill("missing")

# --- failure ---

@pytest.mark.asyncio
async def test_failure_marks_pending_failed(orchestrator, store, order_payload):
    data = await _place_order(orchestrator, order_payload)
    req = PaymentFailureRequest(
        registrationId=data["registrationId"],
        orderId=data["orderId"],
        error={"code": "BAD_REQUEST_ERROR", "description": "Card declined"},
    )
    result = await orchestrator.handle_failure(req)
    assert result == {"registrationId": data["registrationId"], "updated": True}
    row = store.get(data["registrationId"])
    assert row["status"] == "Pending"
    assert row["paymentStatus"] == "Failed"
    assert row["failureReason"] == "Card declined"

@pytest.mark.asyncio
async def test_failure_then_verify_still_confirms(orchestrator, store, order_payload):
    data = await _place_order(orchestrator, order_payload)
    await orchestrator.handle_failure(PaymentFailureRequest(registrationId=data["registrationId"], error="timeout"))
    await orchestrator.verify_payment(_verify_req(data["registrationId"], data["orderId"]))
    row = store.get(data["registrationId"])
    assert row["paymentStatus"] == "Completed"
    assert row["failureReason"] is None

@pytest.mark.asyncio
async def test_failure_never_downgrades_completed(orchestrator, store, seeded):
    result = await orchestrator.handle_failure(PaymentFailureRequest(registrationId=seeded["id"], error="late"))
    assert result["updated"] is False
    assert store.get(seeded["id"])["paymentStatus"] == "Completed"

@pytest.mark.asyncio
async def test_failure_reason_is_truncated(orchestrator, store, order_payload):
    data = await _place_order(orchestrator, order_payload)
    await orchestrator.handle_failure(PaymentFailureRequest(registrationId=data["registrationId"], error="x" * 2000))
    assert len(store.get(data["registrationId"])["failureReason"]) == 500

# --- refund ---

@pytest.mark.asyncio
async def test_refund_full(orchestrator, store, gateway, seeded):
    result = await orchestrator.refund_payment(seeded["id"], RefundRequest(reason="customer request"))
    assert result["refund"]["payment_id"] == "pay_seed"
    assert gateway.refunds[0]["amount"] is None
    row = store.get(seeded["id"])
    assert row["status"] == "Cancelled"
    assert row["paymentStatus"] == "Refunded"
    assert row["cancellationReason"] == "customer request"

@pytest.mark.asyncio
async def test_refund_amount_above_paid(orchestrator, gateway, seeded):
    with pytest.raises(ValidationError):
        await orchestrator.refund_payment(seeded["id"], RefundRequest(amount=999999))
    assert gateway.refunds == []

@pytest.mark.asyncio
async def test_refund_requires_completed_payment(orchestrator, order_payload):
    data = await _place_order(orchestrator, order_payload)
    with pytest.raises(PreconditionError):
        await orchestrator.refund_payment(data["registrationId"], RefundRequest())

# --- stale sweep ---

@pytest.mark.asyncio
async def test_expire_stale_cancels_only_old_unpaid(orchestrator, store, seeded, order_payload):
    old = await _place_order(orchestrator, order_payload)
    fresh = await _place_order(orchestrator, order_payload)
    two_days = 49 * 3600 * 1000
    store.rows[old["registrationId"]]["createdAt"] = now_ms() - two_days
    store.rows[seeded["id"]]["createdAt"] = now_ms() - two_days

    result = await orchestrator.expire_stale_registrations()

    assert result == {"expired": 1}
    expired = store.get(old["registrationId"])
    assert expired["status"] == "Cancelled"
    assert expired["cancellationReason"] == "expired"
    assert store.get(fresh["registrationId"])["status"] == "Pending"
    assert store.get(seeded["id"])["status"] == "Confirmed"

@pytest.mark.asyncio
async def test_expire_stale_rejects_non_positive_ttl(orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.expire_stale_registrations(ttl_hours=0)

def test_settings_from_config(monkeypatch):
    from workshop_backend import config
    monkeypatch.setattr(config, "GST_PERCENTAGE", 12)
    s = PaymentSettings.from_config()
    assert s.gst_percentage == 12
    assert s.bill_url_prefix == "/api/payments/bill"
