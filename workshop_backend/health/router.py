from fastapi import APIRouter, Request
from workshop_backend.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])
api_router = APIRouter(prefix="/api/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@api_router.get("")
def health_details(request: Request):
    """
    État des dépendances configurées (sans appel réseau):
    passerelle de paiement, transport email, rate limiting.
    """
    services = getattr(request.app.state, "services", None)
    return {
        "ok": True,
        "paymentGateway": bool(services and services.gateway is not None),
        "email": bool(services and services.mailer.is_configured),
        "rateLimit": rate_limit_health_info(request),
    }
