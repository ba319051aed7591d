import pytest

from workshop_backend.errors import NotFoundError, PreconditionError, ValidationError
from workshop_backend.registrations import service
from workshop_backend.registrations.models import RegistrationCreate, RegistrationUpdate, check_status_pair

def _new(store, **over):
    data = {
        "userName": "Asha", "email": "asha@example.com", "phone": "9876543210",
        "workshopId": "w1", "workshopTitle": "T", "amount": 100,
    }
    data.update(over)
    return service.create_registration(store, RegistrationCreate(**data))

def test_check_status_pair():
    check_status_pair("Confirmed", "Completed")
    check_status_pair("Pending", "Failed")
    with pytest.raises(ValueError):
        check_status_pair("Pending", "Completed")

def test_registration_create_rejects_bad_phone():
    with pytest.raises(ValueError):
        RegistrationCreate(userName="A", email="a@b.co", phone="12345", workshopId="w", workshopTitle="T")

def test_create_registration_starts_pending(store):
    row = _new(store)
    assert row["status"] == "Pending"
    assert row["paymentStatus"] == "Pending"

def test_get_registration_not_found(store):
    with pytest.raises(NotFoundError):
        service.get_registration(store, "nope")

def test_update_rejects_setting_completed(store):
    row = _new(store)
    with pytest.raises(ValidationError):
        service.update_registration(store, row["id"], {"paymentStatus": "Completed", "status": "Confirmed"})
    assert store.get(row["id"])["paymentStatus"] == "Pending"

def test_update_rejects_cancelling_completed(store, seeded):
    with pytest.raises(PreconditionError):
        service.update_status(store, seeded["id"], "Cancelled", "no show")
    assert store.get(seeded["id"])["status"] == "Confirmed"

def test_update_status_rejects_confirming_unpaid(store):
    row = _new(store)
    with pytest.raises(PreconditionError):
        service.update_status(store, row["id"], "Confirmed")
    after = store.get(row["id"])
    assert after["status"] == "Pending"
    assert not after.get("confirmationDate")

def test_update_rejects_confirming_failed_payment(store):
    row = _new(store)
    store.update(row["id"], {"paymentStatus": "Failed"})
    with pytest.raises(PreconditionError):
        service.update_registration(store, row["id"], {"status": "Confirmed", "notes": "paid cash"})
    assert store.get(row["id"])["status"] == "Pending"

def test_update_confirmed_paid_registration_keeps_status(store, seeded):
    updated = service.update_registration(store, seeded["id"], {"status": "Confirmed", "notes": "front row"})
    assert updated["status"] == "Confirmed"
    assert updated["notes"] == "front row"

def test_update_status_cancelled_keeps_reason(store):
    row = _new(store)
    updated = service.update_status(store, row["id"], "Cancelled", "changed plans")
    assert updated["cancellationReason"] == "changed plans"

def test_update_requires_changes(store):
    row = _new(store)
    with pytest.raises(ValidationError):
        service.update_registration(store, row["id"], RegistrationUpdate().changes())

def test_delete_registration(store):
    row = _new(store)
    service.delete_registration(store, row["id"])
    with pytest.raises(NotFoundError):
        service.delete_registration(store, row["id"])

def test_bulk_update_is_all_or_nothing(store, seeded):
    a = _new(store)
    with pytest.raises(PreconditionError):
        service.bulk_update(store, [a["id"], seeded["id"]], {"status": "Cancelled"})
    assert store.get(a["id"])["status"] == "Pending"

def test_bulk_update_unknown_id(store):
    a = _new(store)
    with pytest.raises(NotFoundError):
        service.bulk_update(store, [a["id"], "ghost"], {"notes": "x"})

def test_bulk_update_applies_to_all(store):
    a = _new(store)
    b = _new(store)
    assert service.bulk_update(store, [a["id"], b["id"], a["id"]], {"notes": "vip"}) == 2
    assert store.get(b["id"])["notes"] == "vip"

def test_bulk_confirm_rejected_when_any_row_unpaid(store, seeded):
    a = _new(store)
    with pytest.raises(PreconditionError):
        service.bulk_update(store, [seeded["id"], a["id"]], {"status": "Confirmed"})
    assert store.get(a["id"])["status"] == "Pending"
