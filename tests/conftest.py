import os

# Aucun Redis / Razorpay / SMTP réel pendant les tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_SECRET_KEY", "rzp_test_secret")
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")

import copy
import itertools
import threading
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

from workshop_backend.app import app as fastapi_app
from workshop_backend.app_setup.container import get_orchestrator, get_registration_store
from workshop_backend.errors import GatewayError
from workshop_backend.notifications.mailer import NotificationResult
from workshop_backend.payments.razorpay_client import to_minor_units
from workshop_backend.payments.service import PaymentOrchestrator, PaymentSettings
from workshop_backend.registrations.models import (
    EXPIRED_REASON,
    NOTIFICATION_PENDING,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    now_iso,
    now_ms,
)
from workshop_backend.utils.security import get_current_user, require_admin, require_user

TEST_SECRET = "rzp_test_secret"
TEST_KEY_ID = "rzp_test_key"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)


class InMemoryRegistrationStore:
    """Double du RegistrationRepository: mêmes méthodes, updates conditionnels sous verrou."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _copy(self, row):
        return copy.deepcopy(row) if row is not None else None

    def _cas(self, registration_id, predicate, changes):
        with self._lock:
            row = self.rows.get(registration_id)
            if not row or not predicate(row):
                return None
            row.update(changes, updatedAt=now_ms())
            return self._copy(row)

    def create(self, data):
        with self._lock:
            registration_id = f"reg{next(self._ids)}"
            ts = now_ms()
            row = {
                "organization": "",
                "notes": "",
                **data,
                "id": registration_id,
                "status": STATUS_PENDING,
                "paymentStatus": PAYMENT_PENDING,
                "registrationDate": now_iso(),
                "notificationAttempts": 0,
                "createdAt": ts,
                "updatedAt": ts,
            }
            self.rows[registration_id] = row
            return self._copy(row)

    def get(self, registration_id):
        with self._lock:
            return self._copy(self.rows.get(registration_id))

    def list(self, *, workshop_id=None, status=None, payment_status=None, sort_by="createdAt", descending=True):
        rows = [
            r for r in self.rows.values()
            if (not workshop_id or r.get("workshopId") == workshop_id)
            and (not status or r.get("status") == status)
            and (not payment_status or r.get("paymentStatus") == payment_status)
        ]
        return self._copy(sorted(rows, key=lambda r: r.get(sort_by) or 0, reverse=descending))

    def update(self, registration_id, changes):
        return self._cas(registration_id, lambda r: True, dict(changes))

    def bulk_update(self, registration_ids, changes):
        return sum(1 for rid in registration_ids if self.update(rid, changes))

    def delete(self, registration_id):
        with self._lock:
            return self.rows.pop(registration_id, None) is not None

    def set_order_id(self, registration_id, order_id):
        return self.update(registration_id, {"orderId": order_id})

    def confirm_if_pending(self, registration_id, payment_id, confirmation_date):
        return self._cas(
            registration_id,
            lambda r: r["status"] == STATUS_PENDING and r["paymentStatus"] != PAYMENT_COMPLETED,
            {
                "status": STATUS_CONFIRMED,
                "paymentStatus": PAYMENT_COMPLETED,
                "paymentId": payment_id,
                "confirmationDate": confirmation_date,
                "failureReason": None,
                "notificationStatus": NOTIFICATION_PENDING,
                "notificationAttempts": 0,
                "billEmailSent": False,
                "adminNotified": False,
            },
        )

    def mark_failed(self, registration_id, reason=None):
        return self._cas(
            registration_id,
            lambda r: r["paymentStatus"] != PAYMENT_COMPLETED and r["status"] != STATUS_CANCELLED,
            {"status": STATUS_PENDING, "paymentStatus": PAYMENT_FAILED, "failureReason": reason},
        )

    def mark_refunded(self, registration_id, reason=None):
        return self._cas(
            registration_id,
            lambda r: r["paymentStatus"] == PAYMENT_COMPLETED,
            {"status": STATUS_CANCELLED, "paymentStatus": PAYMENT_REFUNDED, "cancellationReason": reason or "refunded"},
        )

    def list_notifications_due(self, max_attempts, limit=50):
        due = [
            r for r in self.rows.values()
            if r.get("notificationStatus") == NOTIFICATION_PENDING
            and r.get("paymentStatus") == PAYMENT_COMPLETED
            and int(r.get("notificationAttempts") or 0) < max_attempts
        ]
        return self._copy(due[:limit])

    def record_notification(self, registration_id, status, attempts, **channels):
        self.update(registration_id, {"notificationStatus": status, "notificationAttempts": attempts, **channels})

    def list_stale(self, created_before_ms, limit=200):
        stale = [
            r for r in self.rows.values()
            if r["status"] == STATUS_PENDING
            and r["paymentStatus"] in (PAYMENT_PENDING, PAYMENT_FAILED)
            and r["createdAt"] < created_before_ms
        ]
        return self._copy(stale[:limit])

    def expire_if_stale(self, registration_id):
        return self._cas(
            registration_id,
            lambda r: r["status"] == STATUS_PENDING and r["paymentStatus"] in (PAYMENT_PENDING, PAYMENT_FAILED),
            {"status": STATUS_CANCELLED, "cancellationReason": EXPIRED_REASON},
        ) is not None

    def count_for_workshop(self, workshop_id):
        return sum(1 for r in self.rows.values() if r.get("workshopId") == workshop_id and r["status"] != STATUS_CANCELLED)

    def counts_for_workshops(self, workshop_ids):
        return {i: self.count_for_workshop(i) for i in workshop_ids}

    def stats(self):
        rows = list(self.rows.values())
        completed = [r for r in rows if r["paymentStatus"] == PAYMENT_COMPLETED]
        return {
            "total": len(rows),
            "pending": sum(1 for r in rows if r["status"] == STATUS_PENDING),
            "confirmed": sum(1 for r in rows if r["status"] == STATUS_CONFIRMED),
            "cancelled": sum(1 for r in rows if r["status"] == STATUS_CANCELLED),
            "paymentCompleted": len(completed),
            "paymentPending": sum(1 for r in rows if r["paymentStatus"] == PAYMENT_PENDING),
            "totalRevenue": sum(float(r.get("amount") or 0) for r in completed),
        }


class FakeGateway:
    """Passerelle simulée: commandes numérotées, statut de paiement pilotable."""

    def __init__(self):
        self.orders: List[Dict[str, Any]] = []
        self.fetched: List[str] = []
        self.refunds: List[Dict[str, Any]] = []
        self.payment_status = "captured"
        self.fail_create = False
        self.fail_fetch = False

    def create_order(self, *, amount, receipt, notes=None, currency="INR"):
        if self.fail_create:
            raise GatewayError("Failed to create payment order", detail="gateway unavailable")
        order = {
            "order_id": f"order_{len(self.orders) + 1}",
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        self.orders.append(order)
        return order

    def fetch_payment(self, payment_id):
        self.fetched.append(payment_id)
        if self.fail_fetch:
            raise GatewayError("Failed to fetch payment details", detail="timeout")
        return {"id": payment_id, "status": self.payment_status, "amount": 100, "currency": "INR"}

    def refund(self, payment_id, amount=None, reason=None):
        refund = {"id": f"rfnd_{len(self.refunds) + 1}", "payment_id": payment_id, "amount": amount, "status": "processed"}
        self.refunds.append({**refund, "reason": reason})
        return refund


class FakeMailer:
    """Mailer simulé: enregistre les envois; échecs pilotables par canal."""

    is_configured = True

    def __init__(self):
        self.bill_emails: List[Dict[str, Any]] = []
        self.admin_emails: List[Dict[str, Any]] = []
        self.fail_bill = False
        self.fail_admin = False
        self.crash_admin = False

    async def send_bill_email(self, **kwargs):
        if self.fail_bill:
            return NotificationResult(False, error="smtp down")
        self.bill_emails.append(kwargs)
        return NotificationResult(True, message_id=f"<bill-{len(self.bill_emails)}@test>")

    async def send_admin_notification(self, **kwargs):
        if self.crash_admin:
            raise RuntimeError("template exploded")
        if self.fail_admin:
            return NotificationResult(False, error="smtp down")
        self.admin_emails.append(kwargs)
        return NotificationResult(True, message_id=f"<admin-{len(self.admin_emails)}@test>")


@pytest.fixture
def store() -> InMemoryRegistrationStore:
    return InMemoryRegistrationStore()

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()

@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()

@pytest.fixture
def settings() -> PaymentSettings:
    return PaymentSettings(key_id=TEST_KEY_ID, secret=TEST_SECRET, max_notification_attempts=3, pending_ttl_hours=48)

@pytest.fixture
def orchestrator(store, gateway, mailer, settings) -> PaymentOrchestrator:
    return PaymentOrchestrator(store, gateway, mailer, settings)

@pytest.fixture
def order_payload() -> Dict[str, Any]:
    return {
        "userName": "Asha Rao",
        "email": "asha@example.com",
        "phone": "9876543210",
        "workshopId": "ws-1",
        "workshopTitle": "FastAPI in Production",
        "organization": "Acme Labs",
        "amount": 1000,
    }

@pytest.fixture
def app():
    return fastapi_app

@pytest.fixture
def client(app, orchestrator, store) -> Generator[TestClient, None, None]:
    """Client HTTP branché sur le store/passerelle/mailer simulés."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_registration_store] = lambda: store
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()

ADMIN_USER = {"id": "admin-user-id", "email": "admin@example.com", "role": "super_admin", "metadata": {}}

@pytest.fixture
def admin_client(app, client) -> TestClient:
    app.dependency_overrides[get_current_user] = lambda: ADMIN_USER
    app.dependency_overrides[require_admin] = lambda: ADMIN_USER
    app.dependency_overrides[require_user] = lambda: ADMIN_USER
    return client

@pytest.fixture
def seeded(store) -> Optional[Dict[str, Any]]:
    """Inscription confirmée et payée, prête pour facture/remboursement."""
    row = store.create({
        "userName": "Ravi Kumar",
        "email": "ravi@example.com",
        "phone": "9123456780",
        "organization": "Globex",
        "workshopId": "ws-1",
        "workshopTitle": "Data Engineering Bootcamp",
        "amount": 2500,
    })
    store.set_order_id(row["id"], "order_seed")
    return store.confirm_if_pending(row["id"], "pay_seed", "2024-05-02T09:30:00+00:00")


class MemoryCollection:
    """Double du CollectionRepository (contenus, workshops, certificats)."""

    def __init__(self, rows=None):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        for row in rows or []:
            self.create(row)

    def list(self, filters=None, order_by=None):
        rows = [
            r for r in self.rows.values()
            if all(r.get(k) == v for k, v in (filters or {}).items() if v is not None)
        ]
        return copy.deepcopy(sorted(rows, key=lambda r: r.get("order") or 0))

    def get(self, item_id):
        return copy.deepcopy(self.rows.get(item_id))

    def find_one(self, field, value):
        for row in self.rows.values():
            if row.get(field) == value:
                return copy.deepcopy(row)
        return None

    def create(self, data):
        item_id = data.get("id") or f"item{next(self._ids)}"
        self.rows[item_id] = {**data, "id": item_id, "createdAt": now_ms(), "updatedAt": now_ms()}
        return copy.deepcopy(self.rows[item_id])

    def update(self, item_id, data):
        if item_id not in self.rows:
            return None
        self.rows[item_id].update(data, updatedAt=now_ms())
        return copy.deepcopy(self.rows[item_id])

    def update_if(self, item_id, data, expected):
        row = self.rows.get(item_id)
        if row is None or any(row.get(k) != v for k, v in expected.items()):
            return None
        return self.update(item_id, data)

    def upsert(self, rows, on_conflict):
        for row in rows:
            existing = self.find_one(on_conflict, row[on_conflict])
            if existing:
                self.update(existing["id"], row)
            else:
                self.create(row)
        return True

    def delete(self, item_id):
        return self.rows.pop(item_id, None) is not None

    def bulk_update(self, ids, data):
        return sum(1 for i in ids if self.update(str(i), data))

    def reorder(self, items):
        return sum(1 for item in items if self.update(str(item["id"]), {"order": int(item["order"])}))

@pytest.fixture
def collections(app, client):
    """Remplace chaque collection de contenu par un MemoryCollection; renvoie {table: collection}."""
    from workshop_backend.catalog.views import PROVIDERS, get_settings_store
    from workshop_backend.app_setup.container import get_certificate_store, get_workshop_store

    stores = {table: MemoryCollection() for table in PROVIDERS}
    stores["settings"] = MemoryCollection()
    stores["workshops"] = MemoryCollection()
    stores["certificates"] = MemoryCollection()
    for table, provider in PROVIDERS.items():
        app.dependency_overrides[provider] = (lambda s: lambda: s)(stores[table])
    app.dependency_overrides[get_settings_store] = lambda: stores["settings"]
    app.dependency_overrides[get_workshop_store] = lambda: stores["workshops"]
    app.dependency_overrides[get_certificate_store] = lambda: stores["certificates"]
    return stores
