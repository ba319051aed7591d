"""
Génération du PDF de facture (reportlab).

- Les montants sont calculés en Decimal: GST = montant x taux / 100, total = montant + GST.
- Le canvas est créé en mode invariant: pour une même BillData, le PDF produit
  est identique octet pour octet (aucune date de génération embarquée).
- La facture n'est jamais stockée: elle est recalculée depuis l'inscription.
"""
import io
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from workshop_backend import config

CENT = Decimal("0.01")

TERMS = (
    "1. This bill is valid only with the workshop registration confirmation email.",
    "2. All payments are non-refundable after 7 days of registration.",
    "3. Please check your email for workshop schedule and login details.",
    "4. For any queries, contact support at {email}",
)


@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    gst: Decimal
    total: Decimal


@dataclass(frozen=True)
class BillData:
    registration_id: str
    user_name: str
    email: str
    phone: str
    organization: str
    workshop_title: str
    amount: Decimal
    payment_id: str
    bill_date: str
    payment_date: str
    gst_percentage: int = 18


@dataclass(frozen=True)
class BillFile:
    content: bytes
    filename: str
    media_type: str = "application/pdf"


def compute_totals(amount: Any, gst_percentage: Any = 18) -> BillTotals:
    subtotal = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    gst = (subtotal * Decimal(str(gst_percentage)) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return BillTotals(subtotal=subtotal, gst=gst, total=subtotal + gst)

def format_money(value: Decimal) -> str:
    # Helvetica n'a pas de glyphe pour le symbole roupie
    return f"Rs. {value:,.2f}"

def _display_date(value: Optional[str]) -> str:
    """'2024-05-01T10:00:00+00:00' -> '2024-05-01' (chaîne brute si non ISO)."""
    raw = str(value or "")
    return raw[:10] if len(raw) >= 10 and raw[4:5] == "-" else raw

def bill_data_from_registration(registration: Dict[str, Any], gst_percentage: int = 18) -> BillData:
    """
    Construit la BillData uniquement depuis la ligne stockée: deux téléchargements
    d'une même inscription donnent donc le même document.
    """
    confirmed_on = _display_date(registration.get("confirmationDate"))
    return BillData(
        registration_id=str(registration.get("id") or ""),
        user_name=registration.get("userName") or "",
        email=registration.get("email") or "",
        phone=registration.get("phone") or "",
        organization=registration.get("organization") or "N/A",
        workshop_title=registration.get("workshopTitle") or "",
        amount=Decimal(str(registration.get("amount") or 0)),
        payment_id=registration.get("paymentId") or "",
        bill_date=confirmed_on,
        payment_date=confirmed_on,
        gst_percentage=gst_percentage,
    )

def bill_filename(registration_id: str) -> str:
    return f"bill_{registration_id}.pdf"

# module workshop_backend.billing.renderer
def render_bill(bill: BillData) -> bytes:
    """
    Dessine la facture sur une page A4:
    en-tête entreprise, références, destinataire, ligne workshop,
    totaux HT/GST/TTC, informations de paiement, conditions, pied de page.
    """
    totals = compute_totals(bill.amount, bill.gst_percentage)
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4, invariant=1)
    pdf.setTitle(f"Bill {bill.registration_id}")
    pdf.setAuthor(config.COMPANY_NAME)
    width, height = A4
    left, right = 50, width - 50
    col_qty, col_rate = 330, 440

    # En-tête
    y = height - 60
    pdf.setFont("Helvetica-Bold", 24)
    pdf.drawCentredString(width / 2, y, config.COMPANY_NAME)
    y -= 20
    pdf.setFont("Helvetica", 10)
    pdf.drawCentredString(width / 2, y, config.COMPANY_TAGLINE)
    y -= 14
    pdf.setFont("Helvetica", 9)
    pdf.drawCentredString(width / 2, y, f"Email: {config.COMPANY_EMAIL} | Phone: {config.COMPANY_PHONE}")
    y -= 12
    pdf.line(left, y, right, y)

    # Références
    y -= 30
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(left, y, "WORKSHOP REGISTRATION BILL")
    pdf.setFont("Helvetica", 10)
    pdf.drawString(350, y, f"Bill #: {bill.registration_id}")
    pdf.drawString(350, y - 16, f"Bill Date: {bill.bill_date}")
    pdf.drawString(350, y - 32, f"Payment Date: {bill.payment_date}")

    # Destinataire
    y -= 60
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(left, y, "BILL TO:")
    pdf.setFont("Helvetica", 10)
    for line in (
        f"Name: {bill.user_name}",
        f"Email: {bill.email}",
        f"Phone: {bill.phone}",
        f"Organization: {bill.organization}",
    ):
        y -= 15
        pdf.drawString(left, y, line)

    # Tableau
    y -= 35
    pdf.setFillGray(0.9)
    pdf.rect(left, y - 8, right - left, 24, stroke=0, fill=1)
    pdf.setFillGray(0)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(left + 10, y, "DESCRIPTION")
    pdf.drawString(col_qty + 10, y, "QUANTITY")
    pdf.drawString(col_rate + 10, y, "RATE")
    y -= 26
    pdf.setFont("Helvetica", 10)
    pdf.drawString(left + 10, y, bill.workshop_title[:55])
    pdf.drawString(col_qty + 10, y, "1")
    pdf.drawString(col_rate + 10, y, format_money(totals.subtotal))
    y -= 12
    pdf.line(left, y, right, y)

    # Totaux
    y -= 20
    pdf.drawString(col_qty, y, "Workshop Fee:")
    pdf.drawRightString(right, y, format_money(totals.subtotal))
    y -= 16
    pdf.drawString(col_qty, y, f"GST ({bill.gst_percentage}%):")
    pdf.drawRightString(right, y, format_money(totals.gst))
    y -= 20
    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawString(col_qty, y, "TOTAL AMOUNT:")
    pdf.drawRightString(right, y, format_money(totals.total))

    # Paiement
    y -= 40
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(left, y, "PAYMENT INFORMATION")
    pdf.setFont("Helvetica", 10)
    for line in (
        "Payment Method: Online (Razorpay)",
        f"Transaction ID: {bill.payment_id}",
        "Payment Status: Completed",
        f"Amount Paid: {format_money(totals.total)}",
    ):
        y -= 15
        pdf.drawString(left, y, line)

    # Conditions
    y -= 35
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(left, y, "TERMS & CONDITIONS:")
    pdf.setFont("Helvetica", 9)
    for term in TERMS:
        y -= 13
        pdf.drawString(left, y, term.format(email=config.COMPANY_EMAIL))

    # Pied de page
    y -= 30
    pdf.line(left, y, right, y)
    y -= 16
    pdf.setFont("Helvetica", 9)
    pdf.drawCentredString(width / 2, y, f"Thank you for choosing {config.COMPANY_NAME.title()}!")
    pdf.drawCentredString(width / 2, y - 12, f"For support, visit {config.COMPANY_WEBSITE}")

    pdf.showPage()
    pdf.save()
    return buf.getvalue()
