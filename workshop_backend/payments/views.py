"""
Endpoints du tunnel de paiement (/api/payments).
- Public: create-order, verify, failure, bill/{registrationId}
- Admin: refund, relance des notifications, expiration des inscriptions non payées
Les erreurs métier (ValidationError, SignatureError, ...) sont converties par
le handler DomainError; les vues ne font que lire le corps et déléguer.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from workshop_backend.app_setup.container import get_orchestrator
from workshop_backend.errors import ValidationError
from workshop_backend.payments.schemas import (
    CreateOrderRequest,
    PaymentFailureRequest,
    RefundRequest,
    VerifyPaymentRequest,
    parse_body,
)
from workshop_backend.payments.service import PaymentOrchestrator
from workshop_backend.utils.rate_limit import optional_rate_limit
from workshop_backend.utils.security import require_admin

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payments", tags=["Payments API"])

async def _json_body(request: Request, *, allow_empty: bool = False) -> Dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        if allow_empty:
            return {}
        raise ValidationError("Invalid request body")
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body") from None

# module workshop_backend.payments.views
@router.post("/create-order", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_order(request: Request, payments: PaymentOrchestrator = Depends(get_orchestrator)):
    """
    Crée l'inscription et la commande Razorpay.
    - Entrée JSON: {userName, email, phone, workshopId, workshopTitle, organization, amount}
    - Sortie: {registrationId, orderId, amount, currency, keyId} pour ouvrir le checkout
    - Erreurs: 400 champ manquant / montant <= 0, 500 passerelle
    """
    body = parse_body(CreateOrderRequest, await _json_body(request))
    data = await payments.create_payment_order(body)
    return {"success": True, "message": "Order created successfully", "data": data}

@router.post("/verify", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
async def verify_payment(request: Request, payments: PaymentOrchestrator = Depends(get_orchestrator)):
    """
    Vérifie la signature du checkout, confirme l'inscription, envoie facture et emails.
    - Entrée JSON: {registrationId, orderId, paymentId, signature}
    - Idempotent: un second appel identique renvoie alreadyConfirmed=true sans renvoyer d'email
    - Erreurs: 400 signature/paiement refusé, 404 inscription inconnue, 409 état concurrent
    """
    body = parse_body(VerifyPaymentRequest, await _json_body(request))
    data = await payments.verify_payment(body)
    return {"success": True, "message": "Payment verified successfully", "data": data}

@router.get("/bill/{registration_id}")
async def download_bill(registration_id: str, payments: PaymentOrchestrator = Depends(get_orchestrator)):
    """
    Facture PDF (téléchargement). 404 inconnue, 400 si le paiement n'est pas Completed.
    """
    bill = await payments.download_bill(registration_id)
    return Response(
        content=bill.content,
        media_type=bill.media_type,
        headers={"Content-Disposition": f'attachment; filename="{bill.filename}"'},
    )

@router.post("/failure")
async def payment_failure(request: Request, payments: PaymentOrchestrator = Depends(get_orchestrator)):
    """Échec signalé par le checkout: Pending/Failed (jamais sur un paiement Completed)."""
    body = parse_body(PaymentFailureRequest, await _json_body(request))
    data = await payments.handle_failure(body)
    return {"success": True, "message": "Payment failure recorded", "data": data}

@router.post("/refund/{registration_id}", dependencies=[Depends(require_admin)])
async def refund_payment(
    registration_id: str,
    request: Request,
    payments: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Remboursement (admin). Corps optionnel {amount?, reason?}: sans montant, remboursement total."""
    body = parse_body(RefundRequest, await _json_body(request, allow_empty=True))
    data = await payments.refund_payment(registration_id, body)
    return {"success": True, "message": "Refund processed successfully", "data": data}

@router.post("/notifications/retry", dependencies=[Depends(require_admin)])
async def retry_notifications(limit: int = 50, payments: PaymentOrchestrator = Depends(get_orchestrator)):
    data = await payments.retry_pending_notifications(limit=max(1, min(limit, 200)))
    return {"success": True, "data": data}

@router.post("/registrations/expire-stale", dependencies=[Depends(require_admin)])
async def expire_stale(ttlHours: Optional[int] = None, payments: PaymentOrchestrator = Depends(get_orchestrator)):
    """Annule (raison 'expired') les inscriptions jamais payées plus vieilles que ttlHours."""
    data = await payments.expire_stale_registrations(ttl_hours=ttlHours)
    return {"success": True, "data": data}
