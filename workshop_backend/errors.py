"""
Taxonomie des erreurs métier.

Chaque erreur porte un status HTTP et un message public; le handler enregistré
par app_setup.exceptions les convertit en {"success": false, "message": ...}.
Les messages venant d'un fournisseur (Razorpay, SMTP, Supabase) passent par
scrub_secrets avant d'être loggés ou renvoyés.
"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = scrub_secrets(detail) if detail else None
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "message": self.message}
        if self.detail:
            payload["error"] = self.detail
        return payload


class ValidationError(DomainError):
    status_code = 400
    default_message = "Invalid request"


class SignatureError(DomainError):
    status_code = 400
    default_message = "Invalid payment signature"


class NotFoundError(DomainError):
    status_code = 404
    default_message = "Not found"


class PreconditionError(DomainError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class ForbiddenError(DomainError):
    status_code = 403
    default_message = "Forbidden"


class ConflictError(DomainError):
    status_code = 409
    default_message = "Registration was modified concurrently"


class GatewayError(DomainError):
    status_code = 500
    default_message = "Payment gateway error"


class StoreError(DomainError):
    status_code = 500
    default_message = "Registration store error"


class NotificationError(DomainError):
    # jamais remonté au client: loggé puis converti en NotificationResult
    status_code = 500
    default_message = "Notification failed"


def scrub_secrets(text: Any) -> str:
    """Remplace chaque secret configuré par *** dans un message."""
    from workshop_backend.config import secret_values
    out = str(text or "")
    for secret in secret_values():
        out = out.replace(secret, "***")
    return out
