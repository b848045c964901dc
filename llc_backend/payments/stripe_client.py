"""
Adaptateur Stripe: centralise les appels, la configuration et la traduction
des erreurs du SDK vers la taxonomie de llc_backend.errors.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import stripe
from fastapi import Request

from llc_backend import config
from llc_backend.errors import (
    ConfigurationError,
    ProcessorError,
    SessionNotFound,
    SignatureError,
)

logger = logging.getLogger(__name__)

_http_client = None

# module llc_backend.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure clé secrète et version d'API (STRIPE_SECRET_KEY, STRIPE_API_VERSION).
    - Borne chaque appel sortant par STRIPE_TIMEOUT_SECONDS, sans retry réseau
      implicite (le timeout remonte en ProcessorError retryable).
    - Soulève ConfigurationError si la clé est absente.
    """
    global _http_client
    if not config.STRIPE_SECRET_KEY:
        raise ConfigurationError("STRIPE_SECRET_KEY manquant")
    stripe.api_key = config.STRIPE_SECRET_KEY
    stripe.api_version = config.STRIPE_API_VERSION
    stripe.max_network_retries = 0
    if _http_client is None:
        _http_client = stripe.RequestsClient(timeout=config.STRIPE_TIMEOUT_SECONDS)
        stripe.default_http_client = _http_client
    return stripe

@contextmanager
def _stripe_call(action: str):
    """Traduit les exceptions du SDK: timeout/réseau -> retryable, 404 -> SessionNotFound."""
    try:
        yield
    except stripe.APIConnectionError as e:
        logger.exception("payments.stripe %s connection failed", action)
        raise ProcessorError(f"Stripe injoignable ({action}): {e.user_message or e}", retryable=True)
    except stripe.InvalidRequestError as e:
        if e.http_status == 404 or getattr(e, "code", None) == "resource_missing":
            raise SessionNotFound(f"Ressource Stripe introuvable ({action})")
        logger.exception("payments.stripe %s invalid request", action)
        raise ProcessorError(f"Requête Stripe refusée ({action}): {e.user_message or e}")
    except stripe.StripeError as e:
        logger.exception("payments.stripe %s failed", action)
        raise ProcessorError(f"Erreur Stripe ({action}): {e.user_message or e}")

def _to_dict(obj) -> Dict[str, Any]:
    """StripeObject -> dict récursif (depuis stripe 15, StripeObject n'est plus un dict)."""
    if obj is None:
        return {}
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return dict(obj)

def find_or_create_customer(email: str) -> Dict[str, Any]:
    """
    Retrouve le client Stripe par email, sinon le crée.
    - Vérification puis création non atomiques: deux appels concurrents pour le
      même email peuvent créer deux clients.
    """
    require_stripe()
    with _stripe_call("customers.list"):
        existing = stripe.Customer.list(email=email, limit=1)
    data = _to_dict(existing).get("data") or []
    if data:
        return data[0]
    with _stripe_call("customers.create"):
        customer = _to_dict(stripe.Customer.create(email=email))
    logger.info("payments.stripe customer created id=%s", customer.get("id"))
    return customer

def create_session(
    *,
    mode: str,
    customer: str,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout.
    - mode "payment": la carte est enregistrée pour un usage ultérieur (setup_future_usage)
    - mode "subscription": Stripe enregistre la carte de lui-même
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    params: Dict[str, Any] = dict(
        mode=mode,
        customer=customer,
        line_items=line_items,
        success_url=success_url,
        cancel_url=cancel_url,
        metadata=metadata,
    )
    if mode == "payment":
        params["payment_intent_data"] = {"setup_future_usage": "off_session"}
    with _stripe_call("checkout.sessions.create"):
        session = stripe.checkout.Session.create(**params)
    return _to_dict(session)

def get_session(session_id: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict session incluant "status", "payment_status", "mode", "metadata", etc.
    """
    require_stripe()
    with _stripe_call("checkout.sessions.retrieve"):
        session = stripe.checkout.Session.retrieve(session_id)
    return _to_dict(session)

def create_subscription(*, customer: str, price_id: str) -> Dict[str, Any]:
    """
    Crée un abonnement hors checkout avec payment_behavior=default_incomplete:
    l'abonnement et sa première facture existent avant que le paiement aboutisse.
    """
    require_stripe()
    with _stripe_call("subscriptions.create"):
        subscription = stripe.Subscription.create(
            customer=customer,
            items=[{"price": price_id}],
            payment_behavior="default_incomplete",
            expand=["latest_invoice.payment_intent"],
        )
    return _to_dict(subscription)

def construct_event(payload: bytes, sig_header: Optional[str]):
    """
    Valide la signature d'un événement Stripe (body brut + Stripe-Signature).
    - ConfigurationError si STRIPE_WEBHOOK_SECRET est absent (aucun traitement).
    - SignatureError si la signature, l'horodatage (fenêtre de rejeu) ou le JSON est invalide.
    """
    if not config.STRIPE_WEBHOOK_SECRET:
        raise ConfigurationError("Missing STRIPE_WEBHOOK_SECRET")
    try:
        event = stripe.Webhook.construct_event(
            payload,
            sig_header or "",
            config.STRIPE_WEBHOOK_SECRET,
            tolerance=config.STRIPE_WEBHOOK_TOLERANCE,
        )
    except stripe.SignatureVerificationError as e:
        raise SignatureError(f"Webhook Error: {e.user_message or e}")
    except ValueError as e:
        raise SignatureError(f"Webhook Error: payload invalide ({e})")
    return _to_dict(event)

async def parse_event(request: Request):
    """
    Parse et valide un événement Stripe signé (webhook).
    - Contrôle la configuration avant de lire le body
    - Lit le body brut non modifié, requis pour la signature
    """
    if not config.STRIPE_WEBHOOK_SECRET:
        raise ConfigurationError("Missing STRIPE_WEBHOOK_SECRET")
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    return construct_event(payload, sig_header)
