"""
Cas d'usage 'payments': composition du checkout, vérification de la session,
réconciliation de l'abonnement différé. Orchestre compose, metadata, stripe_client, ledger.
"""
import logging
import uuid
from typing import Any, Dict, Mapping, Optional

import redis

from llc_backend import config
from llc_backend.errors import CheckoutError, InvalidDeferredMarker, PaymentIncomplete, ValidationError
from . import metadata as meta
from . import stripe_client
from .catalog import PricingCatalog, get_catalog
from .compose import compose, normalize_state
from .ledger import DeferredSubscriptionLedger
from .models import AddOns, ReconcileResult, ReconcileState, VerifiedContext

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"

def checkout_urls() -> tuple:
    sep = "&" if "?" in config.CHECKOUT_SUCCESS_PATH else "?"
    success_url = f"{config.SITE_URL}{config.CHECKOUT_SUCCESS_PATH}{sep}session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = f"{config.SITE_URL}{config.CHECKOUT_CANCEL_PATH}"
    return success_url, cancel_url

def create_checkout(
    *,
    customer_id: str,
    email: str,
    entity_id: str,
    state: str,
    add_ons: AddOns,
    legal_name: str = "LLC",
    catalog: Optional[PricingCatalog] = None,
) -> Dict[str, Any]:
    """
    Prépare la session Stripe Checkout d'une constitution de LLC.
    - compose() décide du mode et de l'abonnement différé (aucun appel Stripe si la
      requête est invalide)
    - retrouve ou crée le client Stripe par email
    - persiste customer_id, entity_id, state, add_ons et deferred dans les métadonnées
    Retour: {"id", "url"} de la session.
    """
    catalog = catalog or get_catalog()
    intent = compose(state, add_ons, legal_name, catalog)
    state = normalize_state(state)

    customer = stripe_client.find_or_create_customer(email)
    success_url, cancel_url = checkout_urls()
    session = stripe_client.create_session(
        mode=intent.mode,
        customer=customer.get("id"),
        line_items=intent.line_items(),
        success_url=success_url,
        cancel_url=cancel_url,
        metadata=meta.make_metadata(
            intent=intent,
            customer_id=customer_id,
            entity_id=entity_id,
            state=state,
            add_ons=add_ons,
        ),
    )
    logger.info(
        "payments.checkout created session_id=%s mode=%s state=%s deferred=%s",
        session.get("id"), intent.mode, state, intent.deferred.value if intent.deferred else "",
    )
    return {"id": session.get("id"), "url": session.get("url")}

def is_paid(session: Mapping[str, Any]) -> bool:
    """
    Session payée: status "complete" ET (payment_status "paid" OU mode "subscription").
    Un abonnement peut démarrer avec un premier paiement encore en attente.
    """
    return session.get("status") == "complete" and (
        session.get("payment_status") == "paid" or session.get("mode") == "subscription"
    )

def verify_checkout(session_id: str) -> VerifiedContext:
    """
    Confirme la session et renvoie le contexte utile pour pré-remplir la suite du parcours.
    - ValidationError si session_id est vide
    - SessionNotFound / ProcessorError selon la réponse Stripe
    - PaymentIncomplete si la session n'est pas payée
    """
    session_id = (session_id or "").strip()
    if not session_id:
        raise ValidationError("Missing session_id")

    session = stripe_client.get_session(session_id)
    if not is_paid(session):
        logger.info(
            "payments.verify incomplete session_id=%s status=%s payment_status=%s",
            session_id, session.get("status"), session.get("payment_status"),
        )
        raise PaymentIncomplete()

    metadata = meta.session_metadata(session)
    details = session.get("customer_details") or {}
    return VerifiedContext(
        session_id=session_id,
        customer_email=details.get("email") or None,
        stripe_customer_id=_customer_id(session),
        customer_id=metadata.get("customer_id") or None,
        entity_id=metadata.get("entity_id") or None,
        state=metadata.get("state") or None,
        add_ons=meta.parse_add_ons(metadata.get("add_ons")),
    )

def _customer_id(session: Mapping[str, Any]) -> Optional[str]:
    customer = session.get("customer")
    if isinstance(customer, Mapping):
        return customer.get("id")
    return customer or None

def reconcile_completed_session(
    session: Mapping[str, Any],
    *,
    catalog: Optional[PricingCatalog] = None,
    ledger: Optional[DeferredSubscriptionLedger] = None,
) -> ReconcileResult:
    """
    Crée l'abonnement différé d'une session terminée.
    - marqueur vide, inconnu ou Price ID non configuré: no-op (log)
    - erreur Stripe: create-failed, jamais d'exception (la relivraison Stripe réessaie)
    - sans ledger, chaque livraison crée un abonnement; avec ledger, une seule
      création par (session, type d'abonnement), les doublons renvoient "duplicate"
    """
    catalog = catalog or get_catalog()
    session_id = session.get("id")

    try:
        kind = meta.extract_deferred(session)
    except InvalidDeferredMarker as e:
        logger.warning("payments.reconcile skipped session_id=%s reason=%s", session_id, e.detail)
        return ReconcileResult(state=ReconcileState.NOOP, session_id=session_id, detail=e.detail)
    if kind is None:
        return ReconcileResult(state=ReconcileState.NOOP, session_id=session_id)

    price = catalog.recurring_price(kind.add_on)
    if price is None or not price.configured:
        logger.warning("payments.reconcile skipped session_id=%s deferred=%s reason=price_not_configured", session_id, kind.value)
        return ReconcileResult(state=ReconcileState.NOOP, session_id=session_id, deferred=kind, detail="price_not_configured")

    customer = _customer_id(session)
    if not customer:
        logger.error("payments.reconcile no customer session_id=%s deferred=%s", session_id, kind.value)
        return ReconcileResult(state=ReconcileState.CREATE_FAILED, session_id=session_id, deferred=kind, detail="missing_customer")

    key = None
    holder_id = uuid.uuid4().hex
    if ledger is not None:
        key = ledger.key(session_id, kind)
        try:
            acquired = ledger.try_acquire(key, holder_id)
        except redis.RedisError:
            logger.exception("payments.reconcile ledger unavailable session_id=%s", session_id)
            return ReconcileResult(state=ReconcileState.CREATE_FAILED, session_id=session_id, deferred=kind, detail="ledger_unavailable")
        if not acquired:
            logger.info("payments.reconcile duplicate session_id=%s deferred=%s", session_id, kind.value)
            return ReconcileResult(state=ReconcileState.DUPLICATE, session_id=session_id, deferred=kind)

    logger.info("payments.reconcile %s session_id=%s deferred=%s", ReconcileState.PENDING_CREATE.value, session_id, kind.value)
    try:
        subscription = stripe_client.create_subscription(customer=customer, price_id=price.price_id)
    except CheckoutError as e:
        logger.error("payments.reconcile create failed session_id=%s deferred=%s error=%s", session_id, kind.value, e.detail)
        if key:
            _release(ledger, key, holder_id)
        return ReconcileResult(state=ReconcileState.CREATE_FAILED, session_id=session_id, deferred=kind, detail=e.detail)

    subscription_id = subscription.get("id")
    if key:
        try:
            ledger.mark_completed(key, subscription_id)
        except redis.RedisError:
            # La clé reste "pending" jusqu'à la fin du bail
            logger.exception("payments.reconcile ledger mark failed key=%s", key)
    logger.info("payments.reconcile created session_id=%s deferred=%s subscription_id=%s", session_id, kind.value, subscription_id)
    return ReconcileResult(state=ReconcileState.CREATED, session_id=session_id, deferred=kind, subscription_id=subscription_id)

def _release(ledger: DeferredSubscriptionLedger, key: str, holder_id: str) -> None:
    try:
        ledger.release(key, holder_id)
    except redis.RedisError:
        logger.exception("payments.reconcile ledger release failed key=%s", key)

def handle_event(
    event: Mapping[str, Any],
    *,
    catalog: Optional[PricingCatalog] = None,
    ledger: Optional[DeferredSubscriptionLedger] = None,
) -> Optional[ReconcileResult]:
    """Traite checkout.session.completed; None pour tout autre type d'événement."""
    if (event or {}).get("type") != CHECKOUT_COMPLETED:
        return None
    session = (event.get("data") or {}).get("object") or {}
    return reconcile_completed_session(session, catalog=catalog, ledger=ledger)
