"""
Cas d'usage 'payments': orchestre inscription, passerelle Razorpay, facture et emails.

Cycle de vie d'une tentative:
  CREATED (Pending/Pending) --commande créée--> ORDER_PLACED
  ORDER_PLACED --signature + statut fournisseur ok--> CONFIRMED (Confirmed/Completed)
  ORDER_PLACED --signature invalide / statut refusé--> REJECTED (ligne inchangée)
  CREATED --échec passerelle--> FAILED (ligne Pending/Pending sans orderId)

La confirmation est un update conditionnel: un seul appel de /verify produit
les effets de bord (facture, emails), les suivants sont idempotents.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool

from workshop_backend import config
from workshop_backend.billing.renderer import BillFile, bill_data_from_registration, bill_filename, render_bill
from workshop_backend.errors import (
    ConflictError,
    GatewayError,
    NotFoundError,
    PreconditionError,
    SignatureError,
    StoreError,
    ValidationError,
    scrub_secrets,
)
from workshop_backend.payments.razorpay_client import from_minor_units
from workshop_backend.payments.schemas import (
    CreateOrderRequest,
    PaymentFailureRequest,
    RefundRequest,
    VerifyPaymentRequest,
)
from workshop_backend.payments.signature import verify_signature
from workshop_backend.registrations.models import (
    NOTIFICATION_FAILED,
    NOTIFICATION_PENDING,
    NOTIFICATION_SENT,
    PAYMENT_COMPLETED,
    STATUS_CONFIRMED,
    now_iso,
    now_ms,
)

logger = logging.getLogger(__name__)

# module workshop_backend.payments.service
ACCEPTED_PAYMENT_STATUSES = ("captured", "authorized")
FAILURE_REASON_MAX_LENGTH = 500


@dataclass(frozen=True)
class PaymentSettings:
    key_id: str
    secret: str
    currency: str = "INR"
    gst_percentage: int = 18
    max_notification_attempts: int = 5
    pending_ttl_hours: int = 48
    bill_url_prefix: str = "/api/payments/bill"

    @classmethod
    def from_config(cls) -> "PaymentSettings":
        return cls(
            key_id=config.RAZORPAY_KEY_ID,
            secret=config.RAZORPAY_SECRET_KEY,
            currency=config.PAYMENT_CURRENCY,
            gst_percentage=config.GST_PERCENTAGE,
            max_notification_attempts=config.NOTIFICATION_MAX_ATTEMPTS,
            pending_ttl_hours=config.PENDING_REGISTRATION_TTL_HOURS,
        )


def _describe_failure(error: Any) -> str:
    """Réduit l'objet d'erreur du checkout à une chaîne courte et sans secret."""
    if isinstance(error, dict):
        error = error.get("description") or error.get("reason") or error.get("code") or error
    return scrub_secrets(error)[:FAILURE_REASON_MAX_LENGTH] or "Payment failed"

def _is_confirmed_with(registration: Optional[dict], payment_id: str) -> bool:
    return bool(
        registration
        and registration.get("status") == STATUS_CONFIRMED
        and registration.get("paymentStatus") == PAYMENT_COMPLETED
        and registration.get("paymentId") == payment_id
    )


class PaymentOrchestrator:
    """
    Point d'entrée unique du tunnel de paiement, construit au démarrage avec
    ses collaborateurs (store, passerelle, mailer) puis injecté dans les vues.
    """

    def __init__(self, store, gateway, mailer, settings: PaymentSettings):
        self.store = store
        self.gateway = gateway
        self.mailer = mailer
        self.settings = settings

    def _require_gateway(self):
        if self.gateway is None:
            raise GatewayError("Payment gateway is not configured")
        return self.gateway

    async def _get_registration(self, registration_id: str) -> dict:
        registration = await run_in_threadpool(self.store.get, registration_id)
        if not registration:
            raise NotFoundError("Registration not found")
        return registration

    def _verified_payload(self, registration_id: str, payment_id: str, already_confirmed: bool) -> Dict[str, Any]:
        return {
            "registrationId": registration_id,
            "paymentId": payment_id,
            "status": STATUS_CONFIRMED,
            "billDownloadUrl": f"{self.settings.bill_url_prefix}/{registration_id}",
            "alreadyConfirmed": already_confirmed,
        }

    async def create_payment_order(self, req: CreateOrderRequest) -> Dict[str, Any]:
        """
        Crée l'inscription Pending/Pending puis la commande Razorpay (reçu reg_<id>).
        - Échec passerelle: GatewayError, l'inscription reste sans orderId
          (reprise par l'expiration des inscriptions jamais payées).
        """
        gateway = self._require_gateway()
        registration = await run_in_threadpool(
            self.store.create,
            {
                "userName": req.userName,
                "email": str(req.email),
                "phone": req.phone,
                "organization": req.organization,
                "workshopId": req.workshopId,
                "workshopTitle": req.workshopTitle,
                "amount": req.amount,
            },
        )
        registration_id = str(registration["id"])
        order = await run_in_threadpool(
            gateway.create_order,
            amount=req.amount,
            currency=self.settings.currency,
            receipt=f"reg_{registration_id}",
            notes={
                "userName": req.userName,
                "email": str(req.email),
                "workshopId": req.workshopId,
                "workshopTitle": req.workshopTitle,
            },
        )
        await run_in_threadpool(self.store.set_order_id, registration_id, order["order_id"])
        logger.info("payments.service order placed registration=%s order=%s", registration_id, order["order_id"])
        return {
            "registrationId": registration_id,
            "orderId": order["order_id"],
            "amount": from_minor_units(order["amount"]),
            "currency": order["currency"],
            "keyId": self.settings.key_id,
        }

    async def verify_payment(self, req: VerifyPaymentRequest) -> Dict[str, Any]:
        """
        Vérifie puis confirme un paiement.
        Ordre: signature -> inscription -> commande attendue -> statut fournisseur
        -> update conditionnel -> facture + emails (best-effort).
        """
        if not verify_signature(req.orderId, req.paymentId, req.signature, self.settings.secret):
            logger.warning("payments.service invalid signature registration=%s order=%s", req.registrationId, req.orderId)
            raise SignatureError("Invalid payment signature")

        registration = await self._get_registration(req.registrationId)
        if registration.get("orderId") != req.orderId:
            logger.warning("payments.service order mismatch registration=%s order=%s", req.registrationId, req.orderId)
            raise SignatureError("Payment order does not match this registration")
        if _is_confirmed_with(registration, req.paymentId):
            return self._verified_payload(req.registrationId, req.paymentId, already_confirmed=True)

        payment = await run_in_threadpool(self._require_gateway().fetch_payment, req.paymentId)
        vendor_status = payment.get("status")
        if vendor_status not in ACCEPTED_PAYMENT_STATUSES:
            logger.warning("payments.service payment rejected registration=%s status=%s", req.registrationId, vendor_status)
            raise PreconditionError(f"Payment is not successful (status={vendor_status})")

        confirmed = await run_in_threadpool(self.store.confirm_if_pending, req.registrationId, req.paymentId, now_iso())
        if not confirmed:
            current = await run_in_threadpool(self.store.get, req.registrationId)
            if _is_confirmed_with(current, req.paymentId):
                return self._verified_payload(req.registrationId, req.paymentId, already_confirmed=True)
            raise ConflictError("Registration is no longer awaiting payment")

        logger.info("payments.service payment confirmed registration=%s payment=%s", req.registrationId, req.paymentId)
        await self.deliver_notifications(confirmed)
        return self._verified_payload(req.registrationId, req.paymentId, already_confirmed=False)

    def build_bill(self, registration: dict) -> BillFile:
        data = bill_data_from_registration(registration, self.settings.gst_percentage)
        return BillFile(content=render_bill(data), filename=bill_filename(data.registration_id))

    async def download_bill(self, registration_id: str) -> BillFile:
        registration = await self._get_registration(registration_id)
        if registration.get("paymentStatus") != PAYMENT_COMPLETED:
            raise PreconditionError("Bill is only available for completed payments")
        return await run_in_threadpool(self.build_bill, registration)

    async def handle_failure(self, req: PaymentFailureRequest) -> Dict[str, Any]:
        """
        Enregistre l'échec signalé par le checkout: Pending/Failed.
        - Une inscription déjà payée n'est jamais rétrogradée (acquittement sans effet).
        """
        registration = await self._get_registration(req.registrationId)
        if registration.get("paymentStatus") == PAYMENT_COMPLETED:
            logger.warning("payments.service failure ignored, already completed registration=%s", req.registrationId)
            return {"registrationId": req.registrationId, "updated": False}
        reason = _describe_failure(req.error)
        updated = await run_in_threadpool(self.store.mark_failed, req.registrationId, reason)
        logger.info("payments.service payment failed registration=%s updated=%s", req.registrationId, bool(updated))
        return {"registrationId": req.registrationId, "updated": bool(updated)}

    async def refund_payment(self, registration_id: str, req: RefundRequest) -> Dict[str, Any]:
        """Rembourse (totalement ou partiellement) puis passe l'inscription en Cancelled/Refunded."""
        registration = await self._get_registration(registration_id)
        payment_id = registration.get("paymentId")
        if registration.get("paymentStatus") != PAYMENT_COMPLETED or not payment_id:
            raise PreconditionError("Only completed payments can be refunded")
        if req.amount is not None and req.amount > float(registration.get("amount") or 0):
            raise ValidationError("Refund amount exceeds the amount paid")
        refund = await run_in_threadpool(
            self._require_gateway().refund, payment_id, amount=req.amount, reason=req.reason
        )
        updated = await run_in_threadpool(self.store.mark_refunded, registration_id, req.reason)
        if not updated:
            raise ConflictError("Registration changed while processing the refund")
        logger.info("payments.service refund registration=%s refund=%s", registration_id, refund.get("id"))
        return {"refund": refund, "registration": updated}

    # --- Notifications (outbox) ---

    async def deliver_notifications(self, registration: dict) -> bool:
        """
        Facture + emails participant/admin, en parallèle et sans jamais lever.
        Met à jour l'outbox: Sent, Pending (relance) ou Failed (tentatives épuisées).
        """
        registration_id = str(registration.get("id"))
        attempts = int(registration.get("notificationAttempts") or 0) + 1
        bill_sent = bool(registration.get("billEmailSent"))
        admin_sent = bool(registration.get("adminNotified"))

        jobs = []
        if not bill_sent:
            jobs.append(("bill", self._send_bill_email(registration)))
        if not admin_sent:
            jobs.append(("admin", self.mailer.send_admin_notification(
                workshop_title=registration.get("workshopTitle") or "",
                user_name=registration.get("userName") or "",
                email=registration.get("email") or "",
                phone=registration.get("phone") or "",
                organization=registration.get("organization") or "",
                registration_id=registration_id,
                amount=registration.get("amount"),
                registered_at=registration.get("registrationDate"),
            )))
        results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
        for (kind, _), result in zip(jobs, results):
            if isinstance(result, BaseException):
                logger.error("payments.service %s notification crashed registration=%s: %s",
                             kind, registration_id, scrub_secrets(result))
                continue
            if result.success:
                if kind == "bill":
                    bill_sent = True
                else:
                    admin_sent = True

        delivered = bill_sent and admin_sent
        if delivered:
            status = NOTIFICATION_SENT
        elif attempts >= self.settings.max_notification_attempts:
            status = NOTIFICATION_FAILED
        else:
            status = NOTIFICATION_PENDING
        try:
            await run_in_threadpool(
                self.store.record_notification,
                registration_id,
                status,
                attempts,
                billEmailSent=bill_sent,
                adminNotified=admin_sent,
            )
        except StoreError:
            logger.exception("payments.service outbox update failed registration=%s", registration_id)
        if not delivered:
            logger.warning("payments.service notifications incomplete registration=%s status=%s attempts=%s",
                           registration_id, status, attempts)
        return delivered

    async def _send_bill_email(self, registration: dict):
        bill = await run_in_threadpool(self.build_bill, registration)
        return await self.mailer.send_bill_email(
            recipient_email=registration.get("email") or "",
            recipient_name=registration.get("userName") or "",
            bill=bill.content,
            workshop_title=registration.get("workshopTitle") or "",
            registration_id=str(registration.get("id")),
            amount=registration.get("amount"),
            filename=bill.filename,
        )

    async def retry_pending_notifications(self, limit: int = 50) -> Dict[str, int]:
        """Une passe de l'outbox: relance les notifications encore Pending."""
        due = await run_in_threadpool(
            self.store.list_notifications_due, self.settings.max_notification_attempts, limit
        )
        sent = 0
        for registration in due:
            if await self.deliver_notifications(registration):
                sent += 1
        if due:
            logger.info("payments.service outbox pass processed=%s sent=%s", len(due), sent)
        return {"processed": len(due), "sent": sent, "failed": len(due) - sent}

    async def expire_stale_registrations(self, ttl_hours: Optional[int] = None) -> Dict[str, int]:
        """
        Annule (raison 'expired') les inscriptions jamais payées plus vieilles que le TTL.
        Les lignes sont conservées pour audit.
        """
        ttl = self.settings.pending_ttl_hours if ttl_hours is None else ttl_hours
        if ttl <= 0:
            raise ValidationError("ttlHours must be greater than 0")
        cutoff = now_ms() - ttl * 3600 * 1000
        stale = await run_in_threadpool(self.store.list_stale, cutoff)
        expired = 0
        for registration in stale:
            if await run_in_threadpool(self.store.expire_if_stale, str(registration.get("id"))):
                expired += 1
        if expired:
            logger.info("payments.service expired stale registrations count=%s ttl_hours=%s", expired, ttl)
        return {"expired": expired}
