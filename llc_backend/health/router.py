from fastapi import APIRouter, Request
from llc_backend import config
from llc_backend.payments.catalog import get_catalog
from llc_backend.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/stripe")
def health_stripe(request: Request):
    """Présence de la configuration Stripe (jamais les valeurs des secrets)."""
    catalog = get_catalog()
    return {
        "secret_key": bool(config.STRIPE_SECRET_KEY),
        "webhook_secret": bool(config.STRIPE_WEBHOOK_SECRET),
        "api_version": config.STRIPE_API_VERSION,
        "recurring_prices": {key: price.configured for key, price in catalog.recurring.items()},
        "states": catalog.states,
        "ledger": getattr(request.app.state, "ledger", None) is not None,
        "rate_limit": rate_limit_health_info(request),
    }
