"""
Cas d'usage 'registrations' (back-office).

Seule la vérification de paiement écrit paymentStatus=Completed; les mises à jour
admin sont refusées si elles cassent la règle Completed => Confirmed.
"""
import logging
from typing import Any, Dict, List, Optional

from workshop_backend.errors import NotFoundError, PreconditionError, ValidationError
from workshop_backend.registrations.models import (
    PAYMENT_COMPLETED,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    RegistrationCreate,
    check_status_pair,
)
from workshop_backend.registrations.repository import RegistrationRepository

logger = logging.getLogger(__name__)

def _guard_changes(current: Dict[str, Any], changes: Dict[str, Any]) -> None:
    """
    Valide une modification admin:
    - paymentStatus=Completed et status=Confirmed ne s'obtiennent que par la vérification du paiement
    - un paiement Completed doit être remboursé avant tout changement de statut
    """
    if changes.get("paymentStatus") == PAYMENT_COMPLETED and current.get("paymentStatus") != PAYMENT_COMPLETED:
        raise ValidationError("paymentStatus Completed can only be set by payment verification")
    if changes.get("status") == STATUS_CONFIRMED and current.get("paymentStatus") != PAYMENT_COMPLETED:
        raise PreconditionError("A registration can only be confirmed by a verified payment")
    merged = {**current, **changes}
    try:
        check_status_pair(merged.get("status"), merged.get("paymentStatus"))
    except ValueError:
        raise PreconditionError("A completed payment must be refunded before the registration can change status") from None

# module workshop_backend.registrations.service
def create_registration(store: RegistrationRepository, data: RegistrationCreate) -> dict:
    return store.create(data.model_dump())

def get_registration(store: RegistrationRepository, registration_id: str) -> dict:
    registration = store.get(registration_id)
    if not registration:
        raise NotFoundError("Registration not found")
    return registration

def update_registration(store: RegistrationRepository, registration_id: str, changes: Dict[str, Any]) -> dict:
    if not changes:
        raise ValidationError("No fields to update")
    current = get_registration(store, registration_id)
    _guard_changes(current, changes)
    updated = store.update(registration_id, changes)
    if not updated:
        raise NotFoundError("Registration not found")
    return updated

def update_status(store: RegistrationRepository, registration_id: str, status: str, reason: Optional[str] = None) -> dict:
    changes: Dict[str, Any] = {"status": status}
    if status == STATUS_CANCELLED and reason:
        changes["cancellationReason"] = reason
    return update_registration(store, registration_id, changes)

def delete_registration(store: RegistrationRepository, registration_id: str) -> None:
    """Suppression admin; le compteur d'inscrits est dérivé, rien d'autre à ajuster."""
    if not store.delete(registration_id):
        raise NotFoundError("Registration not found")
    logger.info("registrations.service deleted id=%s", registration_id)

def bulk_update(store: RegistrationRepository, registration_ids: List[str], changes: Dict[str, Any]) -> int:
    """
    Applique la même modification à plusieurs inscriptions.
    Tout ou rien: une seule ligne invalide rejette la requête avant toute écriture.
    """
    if not changes:
        raise ValidationError("No fields to update")
    ids = list(dict.fromkeys(registration_ids))
    for registration_id in ids:
        current = store.get(registration_id)
        if not current:
            raise NotFoundError(f"Registration not found: {registration_id}")
        _guard_changes(current, changes)
    return store.bulk_update(ids, dict(changes))
