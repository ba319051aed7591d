"""
Adaptateur Razorpay: centralise les appels à l'API Orders/Payments/Refunds.
- Montants reçus en unités majeures (roupies), envoyés en paise (x100).
- Toute erreur du SDK est convertie en GatewayError (message nettoyé des secrets).
"""
import logging
import math
from typing import Any, Dict, Optional

import razorpay

from workshop_backend.errors import GatewayError, ValidationError, scrub_secrets

logger = logging.getLogger(__name__)

# module workshop_backend.payments.razorpay_client
def to_minor_units(amount: Any) -> int:
    value = float(amount)
    if not math.isfinite(value):
        raise ValidationError("Amount must be a finite number")
    return int(round(value * 100))

def from_minor_units(amount: Any) -> float:
    return float(amount or 0) / 100

class RazorpayGateway:
    """Passerelle Orders/Payments construite une fois au démarrage."""

    def __init__(self, client: Any):
        self._client = client

    def create_order(
        self,
        *,
        amount: Any,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
        currency: str = "INR",
    ) -> Dict[str, Any]:
        """
        Crée une commande Razorpay.
        Retour: {order_id, amount (paise), currency, receipt}
        """
        data = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            order = self._client.order.create(data=data)
        except Exception as e:
            logger.exception("payments.razorpay.create_order failed receipt=%s", receipt)
            raise GatewayError("Failed to create payment order", detail=scrub_secrets(e)) from e
        order_id = (order or {}).get("id")
        if not order_id:
            raise GatewayError("Failed to create payment order", detail="order id missing in gateway response")
        logger.info("payments.razorpay order created order_id=%s receipt=%s", order_id, receipt)
        return {
            "order_id": order_id,
            "amount": order.get("amount", data["amount"]),
            "currency": order.get("currency", currency),
            "receipt": order.get("receipt", receipt),
        }

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        """Lit l'état courant d'un paiement (pas de cache)."""
        try:
            payment = self._client.payment.fetch(payment_id)
        except Exception as e:
            logger.exception("payments.razorpay.fetch_payment failed payment_id=%s", payment_id)
            raise GatewayError("Failed to fetch payment details", detail=scrub_secrets(e)) from e
        payment = payment or {}
        return {
            "id": payment.get("id", payment_id),
            "amount": payment.get("amount"),
            "currency": payment.get("currency"),
            "status": payment.get("status"),
            "method": payment.get("method"),
            "email": payment.get("email"),
            "contact": payment.get("contact"),
            "created_at": payment.get("created_at"),
            "order_id": payment.get("order_id"),
        }

    def refund(self, payment_id: str, amount: Any = None, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Rembourse tout ou partie d'un paiement capturé.
        - amount absent: remboursement total.
        """
        data: Dict[str, Any] = {"speed": "normal"}
        if amount is not None:
            data["amount"] = to_minor_units(amount)
        if reason:
            data["notes"] = {"reason": reason}
        try:
            refund = self._client.payment.refund(payment_id, data)
        except Exception as e:
            logger.exception("payments.razorpay.refund failed payment_id=%s", payment_id)
            raise GatewayError("Failed to process refund", detail=scrub_secrets(e)) from e
        refund = refund or {}
        return {
            "id": refund.get("id"),
            "payment_id": refund.get("payment_id", payment_id),
            "amount": refund.get("amount"),
            "status": refund.get("status"),
            "created_at": refund.get("created_at"),
        }

    def capture(self, payment_id: str, amount: Any, currency: str = "INR") -> Dict[str, Any]:
        """Capture un paiement autorisé (capture manuelle)."""
        try:
            payment = self._client.payment.capture(payment_id, to_minor_units(amount), {"currency": currency})
        except Exception as e:
            logger.exception("payments.razorpay.capture failed payment_id=%s", payment_id)
            raise GatewayError("Failed to capture payment", detail=scrub_secrets(e)) from e
        return dict(payment or {})


def build_gateway(key_id: Optional[str] = None, secret: Optional[str] = None) -> RazorpayGateway:
    """
    Construit la passerelle depuis la configuration.
    - Sans clés: GatewayError (l'application démarre quand même, l'erreur arrive à l'appel).
    """
    from workshop_backend import config
    key_id = key_id if key_id is not None else config.RAZORPAY_KEY_ID
    secret = secret if secret is not None else config.RAZORPAY_SECRET_KEY
    if not key_id or not secret:
        raise GatewayError("Payment gateway is not configured")
    return RazorpayGateway(razorpay.Client(auth=(key_id, secret)))
