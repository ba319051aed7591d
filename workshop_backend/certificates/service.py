"""
Cas d'usage 'certificates': émission, vérification publique, rendu PDF.
"""
import io
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from workshop_backend import config
from workshop_backend.catalog.repository import CollectionRepository
from workshop_backend.errors import ForbiddenError, NotFoundError, StoreError, ValidationError
from workshop_backend.utils.qrcode_utils import generate_qr_png

logger = logging.getLogger(__name__)

STATUS_ISSUED = "issued"


class CertificateRepository(CollectionRepository):
    def __init__(self, **kwargs: Any):
        super().__init__("certificates", order_by="createdAt", descending=True, **kwargs)


# module workshop_backend.certificates.service
def generate_certificate_id(now: Optional[datetime] = None) -> str:
    """CERT-<epoch ms>-<8 hex majuscules>."""
    ts = int((now or datetime.now(timezone.utc)).timestamp() * 1000)
    return f"CERT-{ts}-{secrets.token_hex(4).upper()}"

def verification_url(certificate_id: str) -> str:
    return f"{config.BASE_URL.rstrip('/')}/api/certificates/verify/{certificate_id}"

def issue_certificate(repo: CertificateRepository, data: Dict[str, Any]) -> dict:
    payload = {
        **data,
        "certificateId": generate_certificate_id(),
        "issueDate": data.get("issueDate") or datetime.now(timezone.utc).date().isoformat(),
    }
    created = repo.create(payload)
    if not created:
        raise StoreError("Failed to create certificate")
    logger.info("certificates.service issued certificateId=%s", payload["certificateId"])
    return created

def verify_certificate(repo: CertificateRepository, certificate_id: Optional[str]) -> dict:
    """
    Vérification publique.
    - 400 sans identifiant, 404 inconnu, 403 si le certificat n'est pas 'issued'.
    """
    if not (certificate_id or "").strip():
        raise ValidationError("Certificate ID is required")
    certificate = repo.find_one("certificateId", certificate_id.strip())
    if not certificate:
        raise NotFoundError("Certificate not found")
    if certificate.get("status") != STATUS_ISSUED:
        raise ForbiddenError("Certificate is not active")
    return {
        "certificateId": certificate.get("certificateId"),
        "studentName": certificate.get("studentName"),
        "courseName": certificate.get("courseName"),
        "courseCode": certificate.get("courseCode"),
        "instructorName": certificate.get("instructorName"),
        "completionDate": certificate.get("completionDate"),
        "issueDate": certificate.get("issueDate"),
        "status": certificate.get("status"),
    }

def search_certificates(repo: CertificateRepository, status: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
    rows = repo.list({"status": status} if status else None)
    term = (search or "").strip().lower()
    if not term:
        return rows
    return [
        r for r in rows
        if term in str(r.get("studentName") or "").lower()
        or term in str(r.get("certificateId") or "").lower()
        or term in str(r.get("studentEmail") or "").lower()
    ]

def render_certificate(certificate: Dict[str, Any]) -> bytes:
    """PDF paysage A4 avec QR code pointant vers l'URL de vérification."""
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=landscape(A4), invariant=1)
    width, height = landscape(A4)
    certificate_id = str(certificate.get("certificateId") or "")
    pdf.setTitle(f"Certificate {certificate_id}")

    pdf.setLineWidth(3)
    pdf.rect(30, 30, width - 60, height - 60)
    pdf.setFont("Helvetica-Bold", 30)
    pdf.drawCentredString(width / 2, height - 110, "CERTIFICATE OF COMPLETION")
    pdf.setFont("Helvetica", 14)
    pdf.drawCentredString(width / 2, height - 160, "This is to certify that")
    pdf.setFont("Helvetica-Bold", 26)
    pdf.drawCentredString(width / 2, height - 205, str(certificate.get("studentName") or ""))
    pdf.setFont("Helvetica", 14)
    pdf.drawCentredString(width / 2, height - 245, "has successfully completed")
    pdf.setFont("Helvetica-Bold", 20)
    course = str(certificate.get("courseName") or "")
    if certificate.get("courseCode"):
        course = f"{course} ({certificate['courseCode']})"
    pdf.drawCentredString(width / 2, height - 280, course)
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(width / 2, height - 315, f"Completed on {certificate.get('completionDate') or ''}")

    pdf.drawString(80, 110, f"Instructor: {certificate.get('instructorName') or ''}")
    pdf.drawString(80, 92, f"Issued: {certificate.get('issueDate') or ''}")
    pdf.drawString(80, 74, f"Certificate ID: {certificate_id}")
    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawCentredString(width / 2, 74, config.COMPANY_NAME)

    qr = ImageReader(io.BytesIO(generate_qr_png(verification_url(certificate_id), box_size=4, border=1)))
    pdf.drawImage(qr, width - 170, 60, width=100, height=100)
    pdf.setFont("Helvetica", 8)
    pdf.drawCentredString(width - 120, 50, "Scan to verify")

    pdf.showPage()
    pdf.save()
    return buf.getvalue()

def certificate_pdf(repo: CertificateRepository, certificate_id: str) -> bytes:
    certificate = repo.find_one("certificateId", certificate_id)
    if not certificate:
        raise NotFoundError("Certificate not found")
    if certificate.get("status") != STATUS_ISSUED:
        raise ForbiddenError("Certificate is not active")
    return render_certificate(certificate)
