import qrcode
from io import BytesIO
from qrcode.constants import ERROR_CORRECT_M


def generate_qr_png(data: str, box_size: int = 10, border: int = 4) -> bytes:
    """
    Encode une URL (lien de vérification d'un certificat) en PNG.

    version=None laisse qrcode choisir la taille minimale: les URLs de
    vérification dépassent la capacité d'un QR version 1.
    """
    if not data:
        raise ValueError("Contenu du QR code vide")
    code = qrcode.QRCode(version=None, error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    code.add_data(data)
    code.make(fit=True)
    out = BytesIO()
    code.make_image(fill_color="black", back_color="white").save(out, format="PNG")
    return out.getvalue()
