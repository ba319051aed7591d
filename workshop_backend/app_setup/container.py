"""
Objets de service partagés par le processus.

Construits une fois par le lifespan et rangés dans app.state.services; les vues
les reçoivent par Depends(get_*). Les tests remplacent ces providers via
app.dependency_overrides (store en mémoire, fausse passerelle, faux mailer).
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from workshop_backend.catalog.repository import CollectionRepository
from workshop_backend.certificates.service import CertificateRepository
from workshop_backend.errors import GatewayError
from workshop_backend.notifications.mailer import Mailer
from workshop_backend.payments.razorpay_client import RazorpayGateway, build_gateway
from workshop_backend.payments.service import PaymentOrchestrator, PaymentSettings
from workshop_backend.registrations.repository import RegistrationRepository
from workshop_backend.workshops.repository import WorkshopRepository

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    registrations: RegistrationRepository
    workshops: WorkshopRepository
    certificates: CertificateRepository
    gateway: Optional[RazorpayGateway]
    mailer: Mailer
    payments: PaymentOrchestrator


# module workshop_backend.app_setup.container
def build_container() -> ServiceContainer:
    registrations = RegistrationRepository()
    try:
        gateway: Optional[RazorpayGateway] = build_gateway()
    except GatewayError:
        # L'app démarre sans Razorpay; les routes de paiement répondent 500 "not configured"
        logging.getLogger("uvicorn.error").warning("Razorpay keys missing: payment routes disabled")
        gateway = None
    mailer = Mailer.from_config()
    if not mailer.is_configured:
        logging.getLogger("uvicorn.error").warning("SMTP not configured: notifications stay pending")
    payments = PaymentOrchestrator(registrations, gateway, mailer, PaymentSettings.from_config())
    return ServiceContainer(
        registrations=registrations,
        workshops=WorkshopRepository(),
        certificates=CertificateRepository(),
        gateway=gateway,
        mailer=mailer,
        payments=payments,
    )

def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "services", None)
    if container is None:
        container = build_container()
        request.app.state.services = container
    return container

def get_orchestrator(request: Request) -> PaymentOrchestrator:
    return get_container(request).payments

def get_registration_store(request: Request) -> RegistrationRepository:
    return get_container(request).registrations

def get_workshop_store(request: Request) -> WorkshopRepository:
    return get_container(request).workshops

def get_certificate_store(request: Request) -> CertificateRepository:
    return get_container(request).certificates

_collections: dict = {}

def collection_provider(table: str, **options):
    """Provider FastAPI d'un CollectionRepository (une instance par table)."""
    def _get() -> CollectionRepository:
        repo = _collections.get(table)
        if repo is None:
            repo = CollectionRepository(table, **options)
            _collections[table] = repo
        return repo
    _get.__name__ = f"get_{table}_store"
    return _get
