"""
Endpoints API des inscriptions (/api/registrations).
- Public: création d'une inscription (formulaire sans paiement en ligne).
- Admin: liste filtrée, stats, détail, mise à jour, statut, suppression, mise à jour groupée.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from workshop_backend.app_setup.container import get_registration_store
from workshop_backend.registrations import service
from workshop_backend.registrations.models import BulkUpdate, RegistrationCreate, RegistrationUpdate, StatusUpdate
from workshop_backend.registrations.repository import RegistrationRepository
from workshop_backend.utils.rate_limit import optional_rate_limit
from workshop_backend.utils.security import require_admin, require_roles

router = APIRouter(prefix="/api/registrations", tags=["Registrations API"])

@router.post("", status_code=201, dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_registration(body: RegistrationCreate, store: RegistrationRepository = Depends(get_registration_store)):
    created = await run_in_threadpool(service.create_registration, store, body)
    return {"success": True, "message": "Registration created successfully", "data": created}

@router.get("", dependencies=[Depends(require_admin)])
async def list_registrations(
    workshopId: Optional[str] = None,
    status: Optional[str] = None,
    paymentStatus: Optional[str] = None,
    sortBy: str = "createdAt",
    store: RegistrationRepository = Depends(get_registration_store),
):
    """Liste admin; filtres workshopId/status/paymentStatus, tri décroissant sur sortBy."""
    rows = await run_in_threadpool(
        store.list, workshop_id=workshopId, status=status, payment_status=paymentStatus, sort_by=sortBy
    )
    return {"success": True, "count": len(rows), "data": rows}

@router.get("/stats", dependencies=[Depends(require_admin)])
async def registration_stats(store: RegistrationRepository = Depends(get_registration_store)):
    return {"success": True, "data": await run_in_threadpool(store.stats)}

@router.get("/{registration_id}", dependencies=[Depends(require_admin)])
async def get_registration(registration_id: str, store: RegistrationRepository = Depends(get_registration_store)):
    return {"success": True, "data": await run_in_threadpool(service.get_registration, store, registration_id)}

@router.put("/{registration_id}", dependencies=[Depends(require_admin)])
async def update_registration(
    registration_id: str,
    body: RegistrationUpdate,
    store: RegistrationRepository = Depends(get_registration_store),
):
    updated = await run_in_threadpool(service.update_registration, store, registration_id, body.changes())
    return {"success": True, "message": "Registration updated successfully", "data": updated}

@router.patch("/{registration_id}/status", dependencies=[Depends(require_admin)])
async def update_registration_status(
    registration_id: str,
    body: StatusUpdate,
    store: RegistrationRepository = Depends(get_registration_store),
):
    """Confirmed pose confirmationDate; Cancelled enregistre la raison fournie."""
    updated = await run_in_threadpool(service.update_status, store, registration_id, body.status, body.reason)
    return {"success": True, "message": f"Registration {body.status.lower()} successfully", "data": updated}

@router.delete("/{registration_id}", dependencies=[Depends(require_roles("super_admin"))])
async def delete_registration(registration_id: str, store: RegistrationRepository = Depends(get_registration_store)):
    await run_in_threadpool(service.delete_registration, store, registration_id)
    return {"success": True, "message": "Registration deleted successfully"}

@router.post("/bulk/update", dependencies=[Depends(require_admin)])
async def bulk_update_registrations(body: BulkUpdate, store: RegistrationRepository = Depends(get_registration_store)):
    count = await run_in_threadpool(service.bulk_update, store, body.registrationIds, body.updates.changes())
    data: Dict[str, Any] = {"updated": count}
    return {"success": True, "message": f"{count} registrations updated successfully", "data": data}
