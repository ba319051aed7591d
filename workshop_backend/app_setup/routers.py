"""
Registre central des routers.
- Paiements: /api/payments
- Inscriptions, workshops, certificats: /api/registrations, /api/workshops, /api/certificates
- Collections de contenu + réglages: /api/trainers, /api/faqs, ..., /api/settings
- Auth (profil courant) et health
"""
from fastapi import FastAPI
from workshop_backend.auth.views import router as auth_router
from workshop_backend.catalog.views import collection_routers, settings_router
from workshop_backend.certificates.views import router as certificates_router
from workshop_backend.health.router import router as health_router, api_router as api_health_router
from workshop_backend.payments.views import router as payments_router
from workshop_backend.registrations.views import router as registrations_router
from workshop_backend.workshops.views import router as workshops_router

def register_routers(app: FastAPI) -> None:
    app.include_router(payments_router)
    app.include_router(registrations_router)
    app.include_router(workshops_router)
    app.include_router(certificates_router)
    for router in collection_routers():
        app.include_router(router)
    app.include_router(settings_router)
    app.include_router(auth_router)
    app.include_router(health_router)
    app.include_router(api_health_router)
