import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from llc_backend.utils.rate_limit import optional_rate_limit
from llc_backend.payments import service as payments_service
from llc_backend.payments import stripe_client
from llc_backend.payments.models import AddOns, ReconcileState

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Payments API"])


class CheckoutRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    email: EmailStr
    entity_id: str = Field(min_length=1)
    state: str = Field(min_length=1)
    add_ons: AddOns = Field(default_factory=AddOns)
    legal_name: str = "LLC"


class VerifyRequest(BaseModel):
    session_id: str = Field(min_length=1)


# module llc_backend.payments.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout_session(body: CheckoutRequest) -> Dict[str, Any]:
    """
    Crée une session Checkout Stripe pour une constitution de LLC.
    - Entrée JSON: {customer_id, email, entity_id, state, add_ons{ein, certified_copy, ra, mail_forwarding}, legal_name}
    - Sécurité: rate limit (10 req / 60s par IP)
    - Réponse: {"id", "url"} (redirection vers la page Stripe)
    - Erreurs: 400 État non proposé / add-on non configuré / champs manquants, 502-503 Stripe
    """
    return payments_service.create_checkout(
        customer_id=body.customer_id,
        email=str(body.email),
        entity_id=body.entity_id,
        state=body.state,
        add_ons=body.add_ons,
        legal_name=body.legal_name,
    )

@router.post("/checkout/verify")
def verify_checkout_session(body: VerifyRequest) -> Dict[str, Any]:
    """
    Vérifie une session terminée (page de remerciement) et renvoie le contexte
    pour pré-remplir la suite: email, client Stripe, entity_id, state, add_ons.
    - Erreurs: 402 paiement non terminé, 404 session inconnue
    """
    context = payments_service.verify_checkout(body.session_id)
    return {"ok": True, **context.model_dump(mode="json")}

@router.post("/stripe/webhook", include_in_schema=False)
async def stripe_webhook(request: Request):
    """
    Webhook Stripe: consomme checkout.session.completed pour créer l'abonnement différé.
    - Signature: body brut + Stripe-Signature + STRIPE_WEBHOOK_SECRET (400 si invalide)
    - Doublons: registre Redis (app.state.ledger) par session et type d'abonnement
    - Réponses: {"received": true, "status": "<état>"}; 500 si la création a échoué,
      pour que Stripe relivre l'événement
    """
    event = await stripe_client.parse_event(request)
    ledger = getattr(request.app.state, "ledger", None)
    result = payments_service.handle_event(event, ledger=ledger)
    if result is None:
        return JSONResponse({"received": True, "status": "ignored"})

    logger.info(
        "payments.webhook event_id=%s session_id=%s status=%s",
        (event or {}).get("id"), result.session_id, result.state.value,
    )
    status_code = 500 if result.state == ReconcileState.CREATE_FAILED else 200
    return JSONResponse(
        status_code=status_code,
        content={"received": True, "status": result.state.value, "subscription_id": result.subscription_id},
    )
