"""Endpoints API des workshops (/api/workshops).
- Lecture publique avec enrolled/seatsLeft dérivés des inscriptions.
- CRUD et mise à jour groupée réservés aux admins.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from workshop_backend.app_setup.container import get_registration_store, get_workshop_store
from workshop_backend.errors import NotFoundError, StoreError, ValidationError
from workshop_backend.registrations.repository import RegistrationRepository
from workshop_backend.utils.security import require_admin, require_roles
from workshop_backend.workshops.models import WorkshopBulkUpdate, WorkshopCreate, WorkshopUpdate
from workshop_backend.workshops.repository import WorkshopRepository, with_enrollment, with_enrollments

router = APIRouter(prefix="/api/workshops", tags=["Workshops API"])

@router.get("")
async def list_workshops(
    isActive: Optional[bool] = None,
    isFeatured: Optional[bool] = None,
    workshops: WorkshopRepository = Depends(get_workshop_store),
    registrations: RegistrationRepository = Depends(get_registration_store),
):
    rows = await run_in_threadpool(workshops.list, {"isActive": isActive, "isFeatured": isFeatured})
    data = await run_in_threadpool(with_enrollments, rows, registrations)
    return {"success": True, "count": len(data), "data": data}

@router.get("/{workshop_id}")
async def get_workshop(
    workshop_id: str,
    workshops: WorkshopRepository = Depends(get_workshop_store),
    registrations: RegistrationRepository = Depends(get_registration_store),
):
    item = await run_in_threadpool(workshops.get, workshop_id)
    if not item:
        raise NotFoundError("Workshop not found")
    return {"success": True, "data": await run_in_threadpool(with_enrollment, item, registrations)}

@router.post("", status_code=201, dependencies=[Depends(require_admin)])
async def create_workshop(body: WorkshopCreate, workshops: WorkshopRepository = Depends(get_workshop_store)):
    created = await run_in_threadpool(workshops.create, body.model_dump())
    if not created:
        raise StoreError("Failed to create workshop")
    return {"success": True, "message": "Workshop created successfully", "data": created}

@router.put("/{workshop_id}", dependencies=[Depends(require_admin)])
async def update_workshop(workshop_id: str, body: WorkshopUpdate, workshops: WorkshopRepository = Depends(get_workshop_store)):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    updated = await run_in_threadpool(workshops.update, workshop_id, changes)
    if not updated:
        raise NotFoundError("Workshop not found")
    return {"success": True, "message": "Workshop updated successfully", "data": updated}

@router.delete("/{workshop_id}", dependencies=[Depends(require_roles("super_admin"))])
async def delete_workshop(workshop_id: str, workshops: WorkshopRepository = Depends(get_workshop_store)):
    if not await run_in_threadpool(workshops.delete, workshop_id):
        raise NotFoundError("Workshop not found")
    return {"success": True, "message": "Workshop deleted successfully"}

@router.post("/bulk/update", dependencies=[Depends(require_admin)])
async def bulk_update_workshops(body: WorkshopBulkUpdate, workshops: WorkshopRepository = Depends(get_workshop_store)):
    changes = body.updates.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    count = await run_in_threadpool(workshops.bulk_update, body.workshopIds, changes)
    return {"success": True, "message": f"{count} workshops updated successfully", "data": {"updated": count}}
