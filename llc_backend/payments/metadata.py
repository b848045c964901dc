"""
Sérialisation/désérialisation des métadonnées Stripe de la session
(customer_id, entity_id, state, add_ons, deferred).
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from .models import AddOns, CheckoutIntent, DeferredKind

logger = logging.getLogger(__name__)

# module llc_backend.payments.metadata
def make_metadata(
    *,
    intent: CheckoutIntent,
    customer_id: str,
    entity_id: str,
    state: str,
    add_ons: AddOns,
) -> Dict[str, str]:
    """
    Métadonnées persistées par Stripe avec la session, lues ensuite par la
    vérification et le webhook. Stripe n'accepte que des chaînes (500 car. max).
    """
    return {
        "customer_id": customer_id,
        "entity_id": entity_id,
        "state": state,
        "add_ons": json.dumps(add_ons.model_dump())[:500],
        "deferred": DeferredKind.to_metadata(intent.deferred),
    }

def session_metadata(session: Mapping[str, Any]) -> Mapping[str, Any]:
    return (session or {}).get("metadata") or {}

def parse_add_ons(raw: Optional[str]) -> AddOns:
    """
    Relit la sélection d'add-ons.
    - Tolérant aux erreurs: JSON absent ou invalide -> sélection vide (jamais d'exception).
    """
    try:
        data = json.loads(raw) if raw else {}
        if not isinstance(data, dict):
            return AddOns()
        return AddOns.model_validate(data)
    except (ValueError, PydanticValidationError):
        logger.warning("payments.metadata malformed add_ons=%r", raw)
        return AddOns()

def extract_deferred(session: Mapping[str, Any]) -> Optional[DeferredKind]:
    """Marqueur d'abonnement différé; InvalidDeferredMarker si la valeur est inconnue."""
    return DeferredKind.from_metadata(session_metadata(session).get("deferred"))
