"""
Accès aux données pour la feature 'registrations' (table Supabase 'registrations').

Contrairement aux collections de contenu, les échecs Supabase sont propagés
(StoreError): le tunnel de paiement ne doit jamais confondre "erreur" et "absent".
Les transitions d'état sensibles sont des updates conditionnels (compare-and-set)
filtrés sur l'état attendu: la ligne n'est modifiée que si elle y est encore.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from workshop_backend.errors import StoreError
from workshop_backend.infra import supabase_client
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

logger = logging.getLogger(__name__)

# module workshop_backend.registrations.repository
TABLE = "registrations"
SORTABLE_FIELDS = ("createdAt", "registrationDate", "userName", "amount", "status")

def _first(res: Any) -> Optional[dict]:
    rows = getattr(res, "data", None) or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None

def _rows(res: Any) -> List[dict]:
    rows = getattr(res, "data", None) or []
    return rows if isinstance(rows, list) else [rows]


class RegistrationRepository:
    """Magasin des inscriptions, injecté dans l'orchestrateur et les vues."""

    def __init__(self, client_factory: Optional[Callable[[], Any]] = None):
        self._client_factory = client_factory or supabase_client.get_service_supabase

    def _table(self):
        return self._client_factory().table(TABLE)

    def create(self, data: Dict[str, Any]) -> dict:
        """
        Insère une inscription Pending/Pending et renvoie la ligne (avec id).
        """
        ts = now_ms()
        row = {
            "organization": "",
            "notes": "",
            **data,
            "status": STATUS_PENDING,
            "paymentStatus": PAYMENT_PENDING,
            "registrationDate": data.get("registrationDate") or now_iso(),
            "notificationAttempts": 0,
            "createdAt": ts,
            "updatedAt": ts,
        }
        try:
            res = self._table().insert(row).execute()
        except Exception as e:
            logger.exception("registrations.repository.create failed workshopId=%s", data.get("workshopId"))
            raise StoreError("Failed to create registration") from e
        created = _first(res)
        if not created or not created.get("id"):
            raise StoreError("Failed to create registration", detail="insert returned no id")
        return created

    def get(self, registration_id: str) -> Optional[dict]:
        if not registration_id:
            return None
        try:
            res = self._table().select("*").eq("id", registration_id).limit(1).execute()
        except Exception as e:
            logger.exception("registrations.repository.get failed id=%s", registration_id)
            raise StoreError("Failed to read registration") from e
        return _first(res)

    def list(
        self,
        *,
        workshop_id: Optional[str] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        sort_by: str = "createdAt",
        descending: bool = True,
    ) -> List[dict]:
        if sort_by not in SORTABLE_FIELDS:
            sort_by = "createdAt"
        try:
            q = self._table().select("*")
            if workshop_id:
                q = q.eq("workshopId", workshop_id)
            if status:
                q = q.eq("status", status)
            if payment_status:
                q = q.eq("paymentStatus", payment_status)
            res = q.order(sort_by, desc=descending).execute()
        except Exception as e:
            logger.exception("registrations.repository.list failed")
            raise StoreError("Failed to list registrations") from e
        return _rows(res)

    def update(self, registration_id: str, changes: Dict[str, Any]) -> Optional[dict]:
        """Update administrateur inconditionnel; None si la ligne n'existe pas."""
        try:
            res = (
                self._table()
                .update({**changes, "updatedAt": now_ms()})
                .eq("id", registration_id)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.update failed id=%s", registration_id)
            raise StoreError("Failed to update registration") from e
        return _first(res)

    def bulk_update(self, registration_ids: List[str], changes: Dict[str, Any]) -> int:
        try:
            res = (
                self._table()
                .update({**changes, "updatedAt": now_ms()})
                .in_("id", list(registration_ids))
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.bulk_update failed ids=%s", registration_ids)
            raise StoreError("Failed to update registrations") from e
        return len(_rows(res))

    def delete(self, registration_id: str) -> bool:
        try:
            res = self._table().delete().eq("id", registration_id).execute()
        except Exception as e:
            logger.exception("registrations.repository.delete failed id=%s", registration_id)
            raise StoreError("Failed to delete registration") from e
        return bool(_rows(res))

    # --- Tunnel de paiement ---

    def set_order_id(self, registration_id: str, order_id: str) -> Optional[dict]:
        try:
            res = (
                self._table()
                .update({"orderId": order_id, "updatedAt": now_ms()})
                .eq("id", registration_id)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.set_order_id failed id=%s", registration_id)
            raise StoreError("Failed to store order id") from e
        return _first(res)

    def confirm_if_pending(self, registration_id: str, payment_id: str, confirmation_date: str) -> Optional[dict]:
        """
        Pending -> Confirmed/Completed en un seul update conditionnel.
        - Retourne la ligne confirmée, ou None si elle n'était plus Pending
          (déjà confirmée par un appel concurrent, annulée, remboursée).
        """
        changes = {
            "status": STATUS_CONFIRMED,
            "paymentStatus": PAYMENT_COMPLETED,
            "paymentId": payment_id,
            "confirmationDate": confirmation_date,
            "failureReason": None,
            "notificationStatus": NOTIFICATION_PENDING,
            "notificationAttempts": 0,
            "billEmailSent": False,
            "adminNotified": False,
            "updatedAt": now_ms(),
        }
        try:
            res = (
                self._table()
                .update(changes)
                .eq("id", registration_id)
                .eq("status", STATUS_PENDING)
                .neq("paymentStatus", PAYMENT_COMPLETED)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.confirm_if_pending failed id=%s", registration_id)
            raise StoreError("Failed to confirm registration") from e
        return _first(res)

    def mark_failed(self, registration_id: str, reason: Optional[str] = None) -> Optional[dict]:
        """Pending/Failed, sauf si le paiement est déjà Completed (None alors)."""
        changes = {
            "status": STATUS_PENDING,
            "paymentStatus": PAYMENT_FAILED,
            "failureReason": reason,
            "updatedAt": now_ms(),
        }
        try:
            res = (
                self._table()
                .update(changes)
                .eq("id", registration_id)
                .neq("paymentStatus", PAYMENT_COMPLETED)
                .neq("status", STATUS_CANCELLED)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.mark_failed failed id=%s", registration_id)
            raise StoreError("Failed to record payment failure") from e
        return _first(res)

    def mark_refunded(self, registration_id: str, reason: Optional[str] = None) -> Optional[dict]:
        changes = {
            "status": STATUS_CANCELLED,
            "paymentStatus": PAYMENT_REFUNDED,
            "cancellationReason": reason or "refunded",
            "updatedAt": now_ms(),
        }
        try:
            res = (
                self._table()
                .update(changes)
                .eq("id", registration_id)
                .eq("paymentStatus", PAYMENT_COMPLETED)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.mark_refunded failed id=%s", registration_id)
            raise StoreError("Failed to record refund") from e
        return _first(res)

    # --- Outbox des notifications ---

    def list_notifications_due(self, max_attempts: int, limit: int = 50) -> List[dict]:
        try:
            res = (
                self._table()
                .select("*")
                .eq("notificationStatus", NOTIFICATION_PENDING)
                .eq("paymentStatus", PAYMENT_COMPLETED)
                .lt("notificationAttempts", max_attempts)
                .order("updatedAt", desc=False)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.list_notifications_due failed")
            raise StoreError("Failed to list pending notifications") from e
        return _rows(res)

    def record_notification(self, registration_id: str, status: str, attempts: int, **channels: bool) -> None:
        """
        Enregistre l'état de l'outbox; channels = billEmailSent / adminNotified
        pour ne pas renvoyer un email déjà parti lors d'une relance.
        """
        changes: Dict[str, Any] = {"notificationStatus": status, "notificationAttempts": attempts, "updatedAt": now_ms()}
        changes.update(channels)
        try:
            (
                self._table()
                .update(changes)
                .eq("id", registration_id)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.record_notification failed id=%s", registration_id)
            raise StoreError("Failed to record notification state") from e

    # --- Expiration des inscriptions jamais payées ---

    def list_stale(self, created_before_ms: int, limit: int = 200) -> List[dict]:
        try:
            res = (
                self._table()
                .select("*")
                .eq("status", STATUS_PENDING)
                .in_("paymentStatus", [PAYMENT_PENDING, PAYMENT_FAILED])
                .lt("createdAt", created_before_ms)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.list_stale failed")
            raise StoreError("Failed to list stale registrations") from e
        return _rows(res)

    def expire_if_stale(self, registration_id: str) -> bool:
        try:
            res = (
                self._table()
                .update({"status": STATUS_CANCELLED, "cancellationReason": EXPIRED_REASON, "updatedAt": now_ms()})
                .eq("id", registration_id)
                .eq("status", STATUS_PENDING)
                .in_("paymentStatus", [PAYMENT_PENDING, PAYMENT_FAILED])
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.expire_if_stale failed id=%s", registration_id)
            raise StoreError("Failed to expire registration") from e
        return bool(_rows(res))

    # --- Agrégats ---

    def count_for_workshop(self, workshop_id: str) -> int:
        """Places occupées: inscriptions non annulées du workshop (count='exact')."""
        try:
            res = (
                self._table()
                .select("id", count="exact")
                .eq("workshopId", workshop_id)
                .neq("status", STATUS_CANCELLED)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.count_for_workshop failed workshopId=%s", workshop_id)
            raise StoreError("Failed to count registrations") from e
        if getattr(res, "count", None) is not None:
            return int(res.count)
        return len(_rows(res))

    def counts_for_workshops(self, workshop_ids: List[str]) -> Dict[str, int]:
        """Places occupées pour plusieurs workshops en une requête (colonne workshopId seule)."""
        ids = [str(i) for i in dict.fromkeys(workshop_ids) if i]
        if not ids:
            return {}
        try:
            res = (
                self._table()
                .select("workshopId")
                .in_("workshopId", ids)
                .neq("status", STATUS_CANCELLED)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.counts_for_workshops failed count=%s", len(ids))
            raise StoreError("Failed to count registrations") from e
        counts = dict.fromkeys(ids, 0)
        for row in _rows(res):
            key = str(row.get("workshopId"))
            if key in counts:
                counts[key] += 1
        return counts

    def stats(self) -> Dict[str, Any]:
        try:
            res = self._table().select("status, paymentStatus, amount").execute()
        except Exception as e:
            logger.exception("registrations.repository.stats failed")
            raise StoreError("Failed to compute registration stats") from e
        rows = _rows(res)
        completed = [r for r in rows if r.get("paymentStatus") == PAYMENT_COMPLETED]
        return {
            "total": len(rows),
            "pending": sum(1 for r in rows if r.get("status") == STATUS_PENDING),
            "confirmed": sum(1 for r in rows if r.get("status") == STATUS_CONFIRMED),
            "cancelled": sum(1 for r in rows if r.get("status") == STATUS_CANCELLED),
            "paymentCompleted": len(completed),
            "paymentPending": sum(1 for r in rows if r.get("paymentStatus") == PAYMENT_PENDING),
            "totalRevenue": sum(float(r.get("amount") or 0) for r in completed),
        }
