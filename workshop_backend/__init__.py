"""Backend FastAPI des inscriptions aux workshops (paiement Razorpay, factures, certificats)."""

__version__ = "1.0.0"
