"""
Vérification de la signature renvoyée par le checkout Razorpay.

signature = HMAC-SHA256(secret, "<order_id>|<payment_id>") en hexadécimal.
"""
import hashlib
import hmac

# module workshop_backend.payments.signature
def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """
    Compare en temps constant la signature reçue avec celle attendue.
    - False si le secret est vide ou si un des champs manque.
    - Comparaison sur les octets: une signature non ASCII est simplement refusée.
    """
    if not secret or not order_id or not payment_id or not signature:
        return False
    expected = compute_signature(order_id, payment_id, secret)
    received = str(signature).encode("utf-8", errors="replace")
    return hmac.compare_digest(expected.encode("ascii"), received)
