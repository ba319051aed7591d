"""Endpoints API des certificats (/api/certificates).
- Public: vérification par certificateId (POST ou GET) et PDF d'un certificat émis.
- Admin: liste (status, search), détail, émission, mise à jour, suppression.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from workshop_backend.app_setup.container import get_certificate_store
from workshop_backend.certificates import service
from workshop_backend.certificates.models import CertificateCreate, CertificateUpdate, CertificateVerifyRequest
from workshop_backend.certificates.service import CertificateRepository
from workshop_backend.errors import NotFoundError, ValidationError
from workshop_backend.utils.rate_limit import optional_rate_limit
from workshop_backend.utils.security import require_admin, require_roles

router = APIRouter(prefix="/api/certificates", tags=["Certificates API"])
verify_limit = optional_rate_limit(times=30, seconds=60)

@router.post("/verify", dependencies=[Depends(verify_limit)])
async def verify_certificate(body: CertificateVerifyRequest, repo: CertificateRepository = Depends(get_certificate_store)):
    data = await run_in_threadpool(service.verify_certificate, repo, body.certificateId)
    return {"success": True, "message": "Certificate verified successfully", "data": data}

@router.get("/verify/{certificate_id}", dependencies=[Depends(verify_limit)])
async def verify_certificate_link(certificate_id: str, repo: CertificateRepository = Depends(get_certificate_store)):
    """Cible du QR code imprimé sur le PDF."""
    data = await run_in_threadpool(service.verify_certificate, repo, certificate_id)
    return {"success": True, "message": "Certificate verified successfully", "data": data}

@router.get("/{certificate_id}/pdf")
async def certificate_pdf(certificate_id: str, repo: CertificateRepository = Depends(get_certificate_store)):
    content = await run_in_threadpool(service.certificate_pdf, repo, certificate_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="certificate_{certificate_id}.pdf"'},
    )

@router.get("", dependencies=[Depends(require_admin)])
async def list_certificates(
    status: Optional[str] = None,
    search: Optional[str] = None,
    repo: CertificateRepository = Depends(get_certificate_store),
):
    rows = await run_in_threadpool(service.search_certificates, repo, status, search)
    return {"success": True, "count": len(rows), "data": rows}

@router.get("/{item_id}", dependencies=[Depends(require_admin)])
async def get_certificate(item_id: str, repo: CertificateRepository = Depends(get_certificate_store)):
    item = await run_in_threadpool(repo.get, item_id)
    if not item:
        raise NotFoundError("Certificate not found")
    return {"success": True, "data": item}

@router.post("", status_code=201, dependencies=[Depends(require_admin)])
async def create_certificate(body: CertificateCreate, repo: CertificateRepository = Depends(get_certificate_store)):
    created = await run_in_threadpool(service.issue_certificate, repo, body.model_dump(exclude_none=True))
    return {"success": True, "message": "Certificate created successfully", "data": created}

@router.put("/{item_id}", dependencies=[Depends(require_admin)])
async def update_certificate(item_id: str, body: CertificateUpdate, repo: CertificateRepository = Depends(get_certificate_store)):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    updated = await run_in_threadpool(repo.update, item_id, changes)
    if not updated:
        raise NotFoundError("Certificate not found")
    return {"success": True, "message": "Certificate updated successfully", "data": updated}

@router.delete("/{item_id}", dependencies=[Depends(require_roles("super_admin"))])
async def delete_certificate(item_id: str, repo: CertificateRepository = Depends(get_certificate_store)):
    if not await run_in_threadpool(repo.delete, item_id):
        raise NotFoundError("Certificate not found")
    return {"success": True, "message": "Certificate deleted successfully"}
