# llc_backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du backend de paiement.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets Stripe, les Price IDs des abonnements
- Fournit l'URL du site pour les redirections du checkout
- Paramètre Redis (rate limiting, registre anti-doublons du webhook)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

# Stripe: clé secrète, secret webhook, version d'API figée
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_API_VERSION = _clean_env(os.getenv("STRIPE_API_VERSION") or "2024-06-20")
# Borne chaque appel sortant vers Stripe (secondes)
STRIPE_TIMEOUT_SECONDS = _int_env("STRIPE_TIMEOUT_SECONDS", 10)
# Fenêtre de rejeu tolérée pour la signature des webhooks (secondes)
STRIPE_WEBHOOK_TOLERANCE = _int_env("STRIPE_WEBHOOK_TOLERANCE", 300)

# Price IDs Stripe des add-ons récurrents
RA_YEARLY_PRICE_ID = _clean_env(os.getenv("RA_YEARLY_PRICE_ID") or "")        # Registered Agent (annuel)
MAIL_MONTHLY_PRICE_ID = _clean_env(os.getenv("MAIL_MONTHLY_PRICE_ID") or "")  # Mail Forwarding (mensuel)

# Catalogue de prix optionnel (JSON) remplaçant les tables par défaut
PRICING_CATALOG_FILE = _clean_env(os.getenv("PRICING_CATALOG_FILE") or "")

# Site public: cible des redirections success/cancel
SITE_URL = _clean_env(os.getenv("SITE_URL") or os.getenv("NEXT_PUBLIC_SITE_URL") or "https://llcstack.com")
if SITE_URL.endswith("/"):
    SITE_URL = SITE_URL.rstrip("/")

CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/thank-you")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/checkout-cancelled")

# CORS: par défaut, seul le site public peut appeler l'API depuis le navigateur
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", SITE_URL).split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "*").split(",") if h.strip()]

# Redis: rate limiting (fastapi-limiter) et registre des abonnements différés
RATE_LIMIT_REDIS_URL = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
DEDUP_REDIS_URL = os.getenv("DEDUP_REDIS_URL", "redis://127.0.0.1:6379/1")
# Stripe relivre un événement pendant 3 jours: on garde la trace 30 jours
DEDUP_TTL_SECONDS = _int_env("DEDUP_TTL_SECONDS", 60 * 60 * 24 * 30)
# Bail du verrou "pending": quelques appels Stripe bornés par STRIPE_TIMEOUT_SECONDS.
# Un worker tué en cours de création ne bloque pas les relivraisons au-delà.
DEDUP_PENDING_TTL_SECONDS = _int_env("DEDUP_PENDING_TTL_SECONDS", 6 * STRIPE_TIMEOUT_SECONDS)
