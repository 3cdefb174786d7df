# backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend boutique.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, SMTP), sécurité cookies, CORS/hosts
- Expose les paramètres métier: devise, frais de livraison par défaut, tarifs d'abonnement,
  nombre de tentatives pour les mises à jour conditionnelles du stock
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

# Supabase: URLs et clés (public/anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
ADMIN_EMAILS = [e.strip() for e in os.getenv("ADMIN_EMAILS", "admin@example.com").split(",") if e.strip()]

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clés privées, secret webhook et bornes réseau (timeout + retries)
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_CURRENCY = _clean_env(os.getenv("STRIPE_CURRENCY") or "eur").lower()
STRIPE_TIMEOUT_SECONDS = _float_env("STRIPE_TIMEOUT_SECONDS", 10.0)
STRIPE_MAX_NETWORK_RETRIES = _int_env("STRIPE_MAX_NETWORK_RETRIES", 2)

# Commandes / stock
DEFAULT_DELIVERY_CHARGE = _float_env("DEFAULT_DELIVERY_CHARGE", 0.0)
STOCK_CAS_MAX_ATTEMPTS = _int_env("STOCK_CAS_MAX_ATTEMPTS", 10)

# Abonnements (montants en unités de devise)
MEMBERSHIP_PRICES = {
    "monthly": _float_env("MEMBERSHIP_MONTHLY_PRICE", 4.99),
    "annual": _float_env("MEMBERSHIP_ANNUAL_PRICE", 49.99),
}

# SMTP: notifications e-mail (best-effort)
SMTP_HOST = _clean_env(os.getenv("SMTP_HOST") or "")
SMTP_PORT = _int_env("SMTP_PORT", 587)
SMTP_USERNAME = _clean_env(os.getenv("SMTP_USERNAME") or "")
SMTP_PASSWORD = _clean_env(os.getenv("SMTP_PASSWORD") or "")
SMTP_USE_TLS = (os.getenv("SMTP_USE_TLS", "true").lower() == "true")
SMTP_TIMEOUT_SECONDS = _float_env("SMTP_TIMEOUT_SECONDS", 10.0)
MAIL_FROM = _clean_env(os.getenv("MAIL_FROM") or SMTP_USERNAME or "no-reply@example.com")
STORE_NAME = _clean_env(os.getenv("STORE_NAME") or "Boutique")

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")
