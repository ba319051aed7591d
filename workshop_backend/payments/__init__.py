"""
Module 'payments' (feature-first): point d'entrée public.
Réunit vérification de signature, passerelle Razorpay, schémas de requête et orchestrateur.
"""

from .signature import compute_signature, verify_signature
from .razorpay_client import RazorpayGateway, build_gateway, to_minor_units, from_minor_units
from .schemas import CreateOrderRequest, VerifyPaymentRequest, PaymentFailureRequest, RefundRequest, parse_body
from .service import PaymentOrchestrator, PaymentSettings, ACCEPTED_PAYMENT_STATUSES

__all__ = [
    # signature
    "compute_signature",
    "verify_signature",
    # razorpay
    "RazorpayGateway",
    "build_gateway",
    "to_minor_units",
    "from_minor_units",
    # schemas
    "CreateOrderRequest",
    "VerifyPaymentRequest",
    "PaymentFailureRequest",
    "RefundRequest",
    "parse_body",
    # services
    "PaymentOrchestrator",
    "PaymentSettings",
    "ACCEPTED_PAYMENT_STATUSES",
]
