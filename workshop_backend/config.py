# workshop_backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = PACKAGE_DIR / "notifications" / "templates"

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Razorpay, SMTP), sécurité cookies, CORS/hosts
- Paramètres métier: TVA (GST), devise, identité de l'entreprise pour factures et emails
- Paramètres des tâches périodiques (relance des notifications, expiration des inscriptions)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

def _bool_env(name: str, default: bool = False) -> bool:
    raw = _clean_env(os.getenv(name) or "").lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Razorpay: identifiant public (renvoyé au client) et secret (signature + API)
RAZORPAY_KEY_ID = _clean_env(os.getenv("RAZORPAY_KEY_ID") or "")
RAZORPAY_SECRET_KEY = _clean_env(os.getenv("RAZORPAY_SECRET_KEY") or "")
PAYMENT_CURRENCY = _clean_env(os.getenv("PAYMENT_CURRENCY") or "INR")
GST_PERCENTAGE = _int_env("GST_PERCENTAGE", 18)

# SMTP (notifications)
EMAIL_HOST = _clean_env(os.getenv("EMAIL_HOST") or "smtp.gmail.com")
EMAIL_PORT = _int_env("EMAIL_PORT", 587)
EMAIL_USER = _clean_env(os.getenv("EMAIL_USER") or "")
EMAIL_PASSWORD = _clean_env(os.getenv("EMAIL_PASSWORD") or "")
EMAIL_USE_TLS = _bool_env("EMAIL_USE_TLS", True)
EMAIL_FROM = _clean_env(os.getenv("EMAIL_FROM") or EMAIL_USER)
ADMIN_EMAIL = _clean_env(os.getenv("ADMIN_EMAIL") or "")

# Identité de l'entreprise (factures, certificats, emails)
COMPANY_NAME = _clean_env(os.getenv("COMPANY_NAME") or "NIKLAUS SOLUTIONS")
COMPANY_TAGLINE = _clean_env(os.getenv("COMPANY_TAGLINE") or "Professional Tech Workshops & Training")
COMPANY_EMAIL = _clean_env(os.getenv("COMPANY_EMAIL") or "info@theniklaus.com")
COMPANY_PHONE = _clean_env(os.getenv("COMPANY_PHONE") or "+91-9876543210")
COMPANY_WEBSITE = _clean_env(os.getenv("COMPANY_WEBSITE") or "www.theniklaus.com")

# Cookies / CORS / hôtes
COOKIE_SECURE = _bool_env("COOKIE_SECURE", False)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")

# Outbox des notifications: 0 = pas de relance périodique
NOTIFICATION_RETRY_INTERVAL_SECONDS = _int_env("NOTIFICATION_RETRY_INTERVAL_SECONDS", 0)
NOTIFICATION_MAX_ATTEMPTS = _int_env("NOTIFICATION_MAX_ATTEMPTS", 5)

# Expiration des inscriptions jamais payées: 0 = pas de balayage périodique
PENDING_REGISTRATION_TTL_HOURS = _int_env("PENDING_REGISTRATION_TTL_HOURS", 48)
PENDING_SWEEP_INTERVAL_SECONDS = _int_env("PENDING_SWEEP_INTERVAL_SECONDS", 0)

# Rôles autorisés sur les routes d'administration
ADMIN_ROLES = ("super_admin", "admin", "editor")

def secret_values() -> list[str]:
    """
    Secrets à ne jamais exposer dans une réponse ou un log.
    Relu à chaque appel pour suivre les monkeypatch des tests.
    """
    import workshop_backend.config as cfg
    return [s for s in (cfg.RAZORPAY_SECRET_KEY, cfg.EMAIL_PASSWORD, cfg.SUPABASE_SERVICE_KEY) if s]
